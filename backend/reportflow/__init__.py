"""
reportflow - background job execution engine and recurring-report scheduler.
"""

__version__ = "0.1.0"
