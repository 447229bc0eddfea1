"""
Lifecycle Context

Explicit actor and clock passed into every lifecycle operation.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from ...database import utc_now


@dataclass(frozen=True)
class LifecycleContext:
    """Who is acting, and what time it is for this operation."""
    actor_id: Optional[str]
    now: datetime

    @classmethod
    def system(cls, now: Optional[datetime] = None) -> "LifecycleContext":
        """Actor-less context used by the scheduler."""
        return cls(actor_id=None, now=now or utc_now())

    @classmethod
    def for_actor(cls, actor_id: str, now: Optional[datetime] = None) -> "LifecycleContext":
        return cls(actor_id=actor_id, now=now or utc_now())
