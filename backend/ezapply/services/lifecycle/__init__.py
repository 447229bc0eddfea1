"""
Account Lifecycle Services

Deactivation -> Archive -> Reactivation
- AccountStateMachine: lifecycle transitions and session-boundary verdicts
- ArchivalEngine: snapshot and restore of an account's record graph
- DeactivationScheduler: daily batch over accounts past their grace period
- ReviewQueueService: admin queue and archive console listings
"""

from .context import LifecycleContext
from .archival import ArchivalEngine
from .state_machine import (
    AccountStateMachine, SessionVerdict, SessionCheck, ReviewDecision, STATE_CONFIG,
)
from .scheduler import DeactivationScheduler
from .review_queue import ReviewQueueService, paginate

__all__ = [
    'LifecycleContext',
    'ArchivalEngine',
    'AccountStateMachine',
    'SessionVerdict',
    'SessionCheck',
    'ReviewDecision',
    'STATE_CONFIG',
    'DeactivationScheduler',
    'ReviewQueueService',
    'paginate',
]
