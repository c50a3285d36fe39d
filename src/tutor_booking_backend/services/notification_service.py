'''
Adapter for the notification dispatch collaborator.
'''
from typing import Iterable, Optional
from uuid import UUID
from datetime import datetime
from fastapi import BackgroundTasks

from ..models.notifications import NotificationEvent, NotificationType
from ..common.logger import log


class NotificationService:
    """
    Fire-and-forget dispatch. A failure to notify is logged and swallowed so
    that it can never undo a committed booking or cancellation.

    Inside a request, events are queued on the request's BackgroundTasks.
    FastAPI runs those only after the request's database session has
    committed, so a rolled-back request notifies nobody. Without a task queue
    (scripts, tests) events are delivered immediately.
    """

    def __init__(self, background_tasks: Optional[BackgroundTasks] = None):
        self.background_tasks = background_tasks

    def dispatch(self, event: NotificationEvent) -> None:
        if self.background_tasks is not None:
            self.background_tasks.add_task(self._deliver, event)
        else:
            self._deliver(event)

    def _deliver(self, event: NotificationEvent) -> None:
        try:
            self._send(event)
        except Exception as e:
            log.error(f"Failed to dispatch {event.event_type.value} to {event.recipient_id}: {e}", exc_info=True)

    def notify(
        self,
        event_type: NotificationType,
        recipients: Iterable[UUID],
        occurred_at: datetime,
        session_id: Optional[UUID] = None,
        contract_id: Optional[UUID] = None,
        **payload
    ) -> None:
        for recipient_id in recipients:
            self.dispatch(NotificationEvent(
                event_type=event_type,
                recipient_id=recipient_id,
                occurred_at=occurred_at,
                session_id=session_id,
                contract_id=contract_id,
                payload=payload
            ))

    def _send(self, event: NotificationEvent) -> None:
        log.info(f"Notification {event.event_type.value} -> {event.recipient_id}: {event.model_dump_json()}")


def get_notification_service(background_tasks: BackgroundTasks) -> NotificationService:
    """FastAPI dependency providing a per-request dispatcher that sends after commit."""
    return NotificationService(background_tasks)
