"""Client-side task list kept in step with the server and with peers.

Local mutations go to the server first and land in the list once the server
accepts them; they are then announced to peers through the bridge. Events
from peers are merged by task id, so replaying one is harmless.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING
from typing import Any

from taskboard.realtime.protocol import NEW_TASK
from taskboard.realtime.protocol import TASK_DELETE
from taskboard.realtime.protocol import TASK_ID_FIELD
from taskboard.realtime.protocol import TASK_STATUS_UPDATE
from taskboard.realtime.protocol import TASK_UPDATE
from taskboard.realtime.protocol import MalformedEventError
from taskboard.realtime.protocol import TaskCreated
from taskboard.realtime.protocol import TaskDeleted
from taskboard.realtime.protocol import TaskEvent
from taskboard.realtime.protocol import TaskStatusChanged
from taskboard.realtime.protocol import TaskUpdated
from taskboard.realtime.protocol import parse_task_event
from taskboard.sync.service import TaskService
from taskboard.sync.service import TaskServiceError

if TYPE_CHECKING:
    from taskboard.sync.bridge import ClientSyncBridge

logger = logging.getLogger(__name__)

Task = dict[str, Any]


def _same_id(a: Any, b: Any) -> bool:
    # Ids travel as JSON and may come back as strings (e.g. from a URL).
    return str(a) == str(b)


@dataclass
class MutationResult:
    success: bool
    data: Any = None
    error: str | None = None


class TaskReconciler:
    def __init__(self, service: TaskService, bridge: ClientSyncBridge | None = None):
        self.service = service
        self.bridge = bridge
        self.tasks: list[Task] = []
        self.loading = False
        self.error = ""
        self._unsubscribers: list[Callable[[], None]] = []

    def get(self, task_id: Any) -> Task | None:
        for task in self.tasks:
            if _same_id(task.get(TASK_ID_FIELD), task_id):
                return task
        return None

    def __contains__(self, task_id: object) -> bool:
        return self.get(task_id) is not None

    # remote events

    def attach(self, bridge: ClientSyncBridge) -> None:
        """Start merging the task events ``bridge`` receives."""

        self.detach()
        self.bridge = bridge
        for event in (NEW_TASK, TASK_UPDATE, TASK_DELETE, TASK_STATUS_UPDATE):
            self._unsubscribers.append(
                bridge.subscribe(event, self._remote_handler(event))
            )

    def detach(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []

    def _remote_handler(self, event: str):
        def handle(payload: Any) -> None:
            try:
                task_event = parse_task_event(event, payload)
            except MalformedEventError as exc:
                logger.warning("Ignoring %s: %s", event, exc)
                return
            logger.debug("Real-time: %s for task %s", event, task_event.task_id)
            self.apply_event(task_event)

        return handle

    def apply_event(self, event: TaskEvent) -> None:
        if isinstance(event, TaskCreated):
            self.apply_created(event.task)
        elif isinstance(event, TaskUpdated):
            self.apply_updated(event.task)
        elif isinstance(event, TaskDeleted):
            self.apply_deleted(event.task_id)
        elif isinstance(event, TaskStatusChanged):
            self.apply_status_changed(event.task_id, event.new_status)

    def apply_created(self, task: Task) -> None:
        if task.get(TASK_ID_FIELD) in self:
            return
        self.tasks = [task, *self.tasks]

    def apply_updated(self, task: Task) -> None:
        task_id = task.get(TASK_ID_FIELD)
        self.tasks = [
            task if _same_id(t.get(TASK_ID_FIELD), task_id) else t for t in self.tasks
        ]

    def apply_deleted(self, task_id: Any) -> None:
        self.tasks = [
            t for t in self.tasks if not _same_id(t.get(TASK_ID_FIELD), task_id)
        ]

    def apply_status_changed(self, task_id: Any, new_status: str) -> None:
        # Board columns are derived from status, so nothing else needs to move.
        self.tasks = [
            {**t, "status": new_status}
            if _same_id(t.get(TASK_ID_FIELD), task_id)
            else t
            for t in self.tasks
        ]

    # local mutations

    async def fetch_tasks(self) -> MutationResult:
        """Replace the whole list with the server's."""

        self.loading = True
        self.error = ""
        try:
            response = await self.service.get_tasks()
        except TaskServiceError as exc:
            self.error = "Failed to fetch tasks"
            logger.error("Fetch tasks error: %s", exc)
            return MutationResult(success=False, error=self.error)
        finally:
            self.loading = False
        self.tasks = list(response["data"])
        return MutationResult(success=True, data=self.tasks)

    async def _announce(self, method: str, *args: Any) -> None:
        if self.bridge is None or not self.bridge.is_connected:
            return
        await getattr(self.bridge, method)(*args)

    def _fail(self, exc: TaskServiceError, default: str) -> MutationResult:
        self.error = str(exc) or default
        return MutationResult(success=False, error=self.error)

    async def create_task(self, data: dict[str, Any]) -> MutationResult:
        self.error = ""
        try:
            response = await self.service.create_task(data)
        except TaskServiceError as exc:
            return self._fail(exc, "Failed to create task")
        task = response["data"]
        if task.get(TASK_ID_FIELD) in self:
            self.apply_updated(task)
        else:
            self.tasks = [task, *self.tasks]
        await self._announce("emit_task_created", task)
        return MutationResult(success=True, data=task)

    async def update_task(self, task_id: Any, data: dict[str, Any]) -> MutationResult:
        self.error = ""
        try:
            response = await self.service.update_task(task_id, data)
        except TaskServiceError as exc:
            return self._fail(exc, "Failed to update task")
        task = response["data"]
        self.apply_updated(task)
        await self._announce("emit_task_updated", task)
        return MutationResult(success=True, data=task)

    async def update_task_status(self, task_id: Any, status: str) -> MutationResult:
        self.error = ""
        previous = self.get(task_id)
        try:
            response = await self.service.update_task_status(task_id, status)
        except TaskServiceError as exc:
            return self._fail(exc, "Failed to update task status")
        task = response["data"]
        self.apply_updated(task)
        await self._announce(
            "emit_task_status_changed",
            task_id,
            status,
            task,
            previous.get("status") if previous else None,
        )
        return MutationResult(success=True, data=task)

    async def delete_task(self, task_id: Any) -> MutationResult:
        self.error = ""
        try:
            await self.service.delete_task(task_id)
        except TaskServiceError as exc:
            return self._fail(exc, "Failed to delete task")
        self.apply_deleted(task_id)
        await self._announce("emit_task_deleted", task_id)
        return MutationResult(success=True)
