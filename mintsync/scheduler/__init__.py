"""
Periodic runner for the sync tokens job.
"""

from .lease import JobLease
from .task_scheduler import ScheduledTask, TaskScheduler

__all__ = ["JobLease", "ScheduledTask", "TaskScheduler"]
