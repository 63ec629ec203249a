"""
Job status - lifecycle states of a background job.
"""
import enum


class JobStatus(str, enum.Enum):
    """Job execution status."""
    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"
    DELAYED = "delayed"
    PAUSED = "paused"
    
    @property
    def is_terminal(self) -> bool:
        """COMPLETED and FAILED never transition on their own."""
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)
