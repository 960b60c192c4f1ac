"""Wire vocabulary shared by the Socket.IO server and the client bridge.

Event names are the ones the browser board already speaks, so they use
dashes rather than underscores.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

# client -> server
JOIN_USER = "join-user"
TASK_CREATED = "task-created"
TASK_UPDATED = "task-updated"
TASK_DELETED = "task-deleted"
TASK_STATUS_CHANGED = "task-status-changed"
NOTIFICATION_CREATED = "notification-created"
USER_TYPING = "user-typing"

# server -> clients
USER_ONLINE = "user-online"
USER_OFFLINE = "user-offline"
NEW_TASK = "new-task"
TASK_UPDATE = "task-update"
TASK_DELETE = "task-delete"
TASK_STATUS_UPDATE = "task-status-update"
NEW_NOTIFICATION = "new-notification"

# Task mutations reported by one client are rebroadcast to the others under
# a different name.
TASK_EVENT_FANOUT = {
    TASK_CREATED: NEW_TASK,
    TASK_UPDATED: TASK_UPDATE,
    TASK_DELETED: TASK_DELETE,
    TASK_STATUS_CHANGED: TASK_STATUS_UPDATE,
}

TASK_ID_FIELD = "id"


def channel_for_user(user_id: Any) -> str:
    return f"user-{user_id}"


class MalformedEventError(ValueError):
    """Raised when an incoming task event cannot be interpreted."""


@dataclass(frozen=True)
class TaskCreated:
    task_id: Any
    task: dict[str, Any]

    def to_wire(self) -> tuple[str, Any]:
        return TASK_CREATED, self.task


@dataclass(frozen=True)
class TaskUpdated:
    task_id: Any
    task: dict[str, Any]

    def to_wire(self) -> tuple[str, Any]:
        return TASK_UPDATED, self.task


@dataclass(frozen=True)
class TaskDeleted:
    task_id: Any

    def to_wire(self) -> tuple[str, Any]:
        return TASK_DELETED, self.task_id


@dataclass(frozen=True)
class TaskStatusChanged:
    task_id: Any
    new_status: str
    task: dict[str, Any] | None = None
    old_status: str | None = None

    def to_wire(self) -> tuple[str, Any]:
        payload: dict[str, Any] = {
            "taskId": self.task_id,
            "newStatus": self.new_status,
            "task": self.task,
        }
        if self.old_status is not None:
            payload["oldStatus"] = self.old_status
        return TASK_STATUS_CHANGED, payload


TaskEvent = TaskCreated | TaskUpdated | TaskDeleted | TaskStatusChanged


def _snapshot(payload: Any, event: str) -> dict[str, Any]:
    if not isinstance(payload, dict) or TASK_ID_FIELD not in payload:
        msg = f"{event} payload must be a task snapshot with an '{TASK_ID_FIELD}'"
        raise MalformedEventError(msg)
    return payload


def parse_task_event(event: str, payload: Any) -> TaskEvent:
    """Turn a task event received from the wire into its typed variant.

    Both the inbound (``task-created``) and the rebroadcast (``new-task``)
    names are accepted.
    """

    if event in (TASK_CREATED, NEW_TASK):
        task = _snapshot(payload, event)
        return TaskCreated(task_id=task[TASK_ID_FIELD], task=task)
    if event in (TASK_UPDATED, TASK_UPDATE):
        task = _snapshot(payload, event)
        return TaskUpdated(task_id=task[TASK_ID_FIELD], task=task)
    if event in (TASK_DELETED, TASK_DELETE):
        if payload is None or isinstance(payload, (dict, list)):
            msg = f"{event} payload must be a task id"
            raise MalformedEventError(msg)
        return TaskDeleted(task_id=payload)
    if event in (TASK_STATUS_CHANGED, TASK_STATUS_UPDATE):
        if not isinstance(payload, dict) or "taskId" not in payload:
            msg = f"{event} payload must carry 'taskId' and 'newStatus'"
            raise MalformedEventError(msg)
        if "newStatus" not in payload:
            msg = f"{event} payload must carry 'taskId' and 'newStatus'"
            raise MalformedEventError(msg)
        return TaskStatusChanged(
            task_id=payload["taskId"],
            new_status=payload["newStatus"],
            task=payload.get("task"),
            old_status=payload.get("oldStatus"),
        )
    msg = f"Unknown task event: {event}"
    raise MalformedEventError(msg)
