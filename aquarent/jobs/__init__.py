"""
Background Jobs Module

Handles scheduled tasks for:
- Subscription expiry
"""

from aquarent.jobs.scheduler import scheduler, start_scheduler, shutdown_scheduler
from aquarent.jobs.subscription_jobs import expire_due_subscriptions

__all__ = [
    "scheduler",
    "start_scheduler",
    "shutdown_scheduler",
    "expire_due_subscriptions",
]
