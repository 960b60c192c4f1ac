from __future__ import annotations

from typing import TYPE_CHECKING
from typing import Any

from taskboard.realtime.protocol import NEW_NOTIFICATION
from taskboard.realtime.socketio import emit_event_to_user

if TYPE_CHECKING:  # import for type checking only
    from taskboard.notifications.models import Notification


def build_notification_payload(notification: Notification) -> dict[str, Any]:
    return {
        "id": notification.id,
        "user": notification.recipient_id,
        "task": notification.task_id,
        "title": notification.title,
        "message": notification.message,
        "type": notification.notification_type,
        "isRead": notification.is_read,
        "createdAt": notification.created_at.isoformat(),
    }


def publish_notification_created(notification: Notification) -> None:
    """Publish a newly created Notification to the recipient in realtime."""

    payload = build_notification_payload(notification)
    emit_event_to_user(notification.recipient_id, NEW_NOTIFICATION, payload)
