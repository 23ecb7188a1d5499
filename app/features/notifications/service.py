"""
Notifications about role assignment changes.

Route handlers publish a ``RoleAssignmentsChanged`` event once their write
transaction has committed, through FastAPI ``BackgroundTasks``. Delivery
(e-mail, in-app) is external; the default sender only logs.
"""
from dataclasses import dataclass, field
from typing import Optional, Protocol

from app.utils import get_logger


log = get_logger(__name__)


@dataclass(frozen=True)
class RoleAssignmentsChanged:
    user_id: str
    changed_by_id: str
    added: tuple[str, ...] = field(default_factory=tuple)
    removed: tuple[str, ...] = field(default_factory=tuple)
    project_id: Optional[int] = None

    @property
    def scope(self) -> str:
        return "organization" if self.project_id is None else f"project {self.project_id}"


class NotificationSender(Protocol):
    async def send(self, event: RoleAssignmentsChanged) -> None:
        ...


class LoggingNotificationSender:
    """Sender that records the event in the application log."""

    async def send(self, event: RoleAssignmentsChanged) -> None:
        log.info(
            "Roles changed for user %s at %s by %s: added=%s removed=%s",
            event.user_id, event.scope, event.changed_by_id,
            list(event.added), list(event.removed),
        )


_default_sender = LoggingNotificationSender()


def get_notification_sender() -> NotificationSender:
    """FastAPI dependency returning the configured sender."""
    return _default_sender
