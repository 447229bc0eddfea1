"""
Notification Channel

Lifecycle and ledger components fire events here; delivery is best effort.
A failing notifier is logged and never breaks the operation that fired it,
so callers must only notify after their unit of work has committed.
"""
import logging
from typing import Any, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)


# Event names
CREDIT_BALANCE_LOW = "credit_balance_low"
PRICING_CHANGED = "pricing_changed"
ACCOUNT_DEACTIVATED = "account_deactivated"
REACTIVATION_REVIEWED = "reactivation_reviewed"


class Notifier:
    """Delivery backend. Subclasses implement ``deliver``."""

    def deliver(self, user_id: str, event: str, payload: Dict[str, Any]) -> None:
        raise NotImplementedError

    def notify(self, user_id: str, event: str, payload: Optional[Dict[str, Any]] = None) -> bool:
        """Deliver one event. Returns False when delivery failed."""
        try:
            self.deliver(user_id, event, payload or {})
            return True
        except Exception as e:
            logger.warning(f"Notification '{event}' to user {user_id} failed: {e}")
            return False


class LoggingNotifier(Notifier):
    """Default backend: writes events to the application log."""

    def deliver(self, user_id: str, event: str, payload: Dict[str, Any]) -> None:
        logger.info(f"Notify user={user_id} event={event} payload={payload}")


class RecordingNotifier(Notifier):
    """Keeps delivered events in memory (dry runs and tests)."""

    def __init__(self):
        self.sent: List[Tuple[str, str, Dict[str, Any]]] = []

    def deliver(self, user_id: str, event: str, payload: Dict[str, Any]) -> None:
        self.sent.append((user_id, event, payload))

    def events(self, event: str) -> List[Tuple[str, str, Dict[str, Any]]]:
        return [item for item in self.sent if item[1] == event]


_default_notifier: Notifier = LoggingNotifier()


def get_notifier() -> Notifier:
    """FastAPI dependency / default backend."""
    return _default_notifier
