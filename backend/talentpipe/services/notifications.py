"""Notification boundary of the pipeline.

The engine hands every committed transition to a ``NotificationHook``. Delivery is
fire-and-forget: ``emit`` never raises, failures are logged here and the pipeline
caller never sees them.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from functools import partial
from typing import Any, Dict, Iterable

from anyio import to_thread

from talentpipe.services.email import send_email
from talentpipe.services.event_bus import EventBus

logger = logging.getLogger("talentpipe.notifications")


class EventType(str, Enum):
    INTERVIEW_SCHEDULED = "interview_scheduled"
    INTERVIEW_RESCHEDULED = "interview_rescheduled"
    INTERVIEW_CANCELLED = "interview_cancelled"
    INTERVIEWER_ASSIGNED = "interviewer_assigned"
    STAGE_ADVANCED = "stage_advanced"
    CANDIDATE_REJECTED = "candidate_rejected"
    CANDIDATE_MOVED_TO_DOCUMENTATION = "candidate_moved_to_documentation"
    CANDIDATE_HIRED = "candidate_hired"
    CANDIDATE_DISMISSED = "candidate_dismissed"
    STAGE_CHAIN_REPLACED = "stage_chain_replaced"
    FEEDBACK_REMINDER = "feedback_reminder"


@dataclass(frozen=True)
class NotificationEvent:
    event_type: EventType
    candidate_id: int
    payload: Dict[str, Any] = field(default_factory=dict)
    recipient_id: int | None = None

    def as_message(self) -> Dict[str, Any]:
        return {
            "type": self.event_type.value,
            "candidate_id": self.candidate_id,
            "recipient_id": self.recipient_id,
            "data": self.payload,
        }


class NotificationHook:
    async def emit(self, event: NotificationEvent) -> None:
        try:
            await self._deliver(event)
        except Exception:  # noqa: BLE001
            logger.exception(
                "notification_delivery_failed",
                extra={"event_type": event.event_type.value, "candidate_id": event.candidate_id},
            )

    async def _deliver(self, event: NotificationEvent) -> None:
        raise NotImplementedError

    async def close(self) -> None:
        return None


class NullNotificationHook(NotificationHook):
    async def _deliver(self, event: NotificationEvent) -> None:
        return None


class BroadcastNotificationHook(NotificationHook):
    """Pushes events to connected UI clients through the event bus."""

    def __init__(self, bus: EventBus) -> None:
        self._bus = bus

    async def _deliver(self, event: NotificationEvent) -> None:
        await self._bus.publish(event.as_message())


_EMAIL_TEMPLATES: dict[EventType, tuple[str, str]] = {
    EventType.INTERVIEW_SCHEDULED: ("interview_scheduled", "New interview assigned"),
    EventType.INTERVIEW_RESCHEDULED: ("interview_rescheduled", "Interview rescheduled"),
    EventType.INTERVIEWER_ASSIGNED: ("interviewer_assigned", "Candidate assigned to your stage"),
    EventType.FEEDBACK_REMINDER: ("feedback_reminder", "Interview feedback pending"),
}


class EmailNotificationHook(NotificationHook):
    """Emails the interviewer named in the payload. The blocking send runs in a worker thread."""

    def __init__(self) -> None:
        self._pending: set[asyncio.Task] = set()

    async def _deliver(self, event: NotificationEvent) -> None:
        template = _EMAIL_TEMPLATES.get(event.event_type)
        if template is None:
            return
        recipient = event.payload.get("interviewer_email")
        if not recipient:
            return
        template_name, subject = template
        candidate_name = event.payload.get("candidate_name") or "Candidate"
        task = asyncio.create_task(
            to_thread.run_sync(
                partial(
                    send_email,
                    to_emails=[recipient],
                    subject=f"{subject} - {candidate_name}",
                    template_name=template_name,
                    context=dict(event.payload),
                    email_type=event.event_type.value,
                )
            )
        )
        self._pending.add(task)
        task.add_done_callback(self._finished)

    def _finished(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("email_notification_failed", exc_info=exc)

    async def drain(self) -> None:
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def close(self) -> None:
        await self.drain()


class CompositeNotificationHook(NotificationHook):
    def __init__(self, hooks: Iterable[NotificationHook]) -> None:
        self._hooks = list(hooks)

    async def _deliver(self, event: NotificationEvent) -> None:
        for hook in self._hooks:
            await hook.emit(event)

    async def close(self) -> None:
        for hook in self._hooks:
            await hook.close()


def build_default_hook(bus: EventBus) -> NotificationHook:
    return CompositeNotificationHook([BroadcastNotificationHook(bus), EmailNotificationHook()])
