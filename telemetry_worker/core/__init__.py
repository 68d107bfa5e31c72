"""Runtime primitives shared by the background jobs."""

from .lease import JobLease
from .resolver import DependencyResolver, QueueDependencies
from .timers import TimerRegistry, delay_to_next_hour, delay_to_next_minute

__all__ = [
    "JobLease",
    "DependencyResolver",
    "QueueDependencies",
    "TimerRegistry",
    "delay_to_next_hour",
    "delay_to_next_minute",
]
