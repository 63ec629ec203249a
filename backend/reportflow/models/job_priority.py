"""
Job priority - closed set ordered by urgency.
"""
import enum
from typing import Union

from reportflow.lib.errors import ValidationError


class JobPriority(int, enum.Enum):
    """Higher value means more urgent."""
    LOW = 1
    NORMAL = 5
    MEDIUM = 10
    HIGH = 15
    CRITICAL = 20
    
    @classmethod
    def parse(cls, value: Union["JobPriority", int, str]) -> "JobPriority":
        """
        Coerce a priority given by member, number or name.
        
        Raises:
            ValidationError: value is not one of the five priorities
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            name = value.strip().upper()
            if name in cls.__members__:
                return cls[name]
            if name.isdigit():
                value = int(name)
        if isinstance(value, int) and not isinstance(value, bool):
            try:
                return cls(value)
            except ValueError:
                pass
        allowed = ", ".join(f"{p.name}={p.value}" for p in cls)
        raise ValidationError("priority", f"Invalid job priority {value!r}; expected one of {allowed}")
