import asyncio
import random

import pytest
from asgiref.sync import async_to_sync

from taskboard.realtime.protocol import TaskCreated
from taskboard.realtime.protocol import TaskDeleted
from taskboard.realtime.protocol import TaskStatusChanged
from taskboard.realtime.protocol import TaskUpdated
from taskboard.sync.bridge import ClientSyncBridge
from taskboard.sync.reconciler import TaskReconciler
from taskboard.sync.service import TaskService
from taskboard.sync.service import TaskServiceError
from tests.fakes import FakeSession
from tests.fakes import FakeSocketClient
from tests.fakes import FakeTaskService

T1 = {"id": 1, "title": "Write report", "status": "todo"}
T2 = {"id": 2, "title": "Review PR", "status": "in-progress"}


def _ids(reconciler):
    return [t["id"] for t in reconciler.tasks]


def _connected_reconciler(service=None):
    client = FakeSocketClient()
    bridge = ClientSyncBridge("http://board.test", 1, client=client)
    async_to_sync(bridge.connect)()
    client.emitted.clear()
    reconciler = TaskReconciler(service or FakeTaskService())
    reconciler.attach(bridge)
    return reconciler, client


class TestRemoteMerge:
    def test_created_prepends_once(self):
        reconciler = TaskReconciler(FakeTaskService())
        reconciler.tasks = [T1]
        reconciler.apply_event(TaskCreated(2, T2))
        reconciler.apply_event(TaskCreated(2, T2))
        assert _ids(reconciler) == [2, 1]

    def test_created_for_known_id_is_ignored(self):
        reconciler = TaskReconciler(FakeTaskService())
        reconciler.tasks = [T1]
        reconciler.apply_created({**T1, "title": "changed"})
        assert reconciler.tasks == [T1]

    def test_updated_replaces_in_place(self):
        reconciler = TaskReconciler(FakeTaskService())
        reconciler.tasks = [T2, T1]
        changed = {**T1, "title": "Write final report"}
        reconciler.apply_event(TaskUpdated(1, changed))
        assert reconciler.tasks == [T2, changed]

    def test_updated_for_absent_id_is_a_no_op(self):
        reconciler = TaskReconciler(FakeTaskService())
        reconciler.tasks = [T1]
        reconciler.apply_event(TaskUpdated(9, {"id": 9, "title": "ghost"}))
        assert reconciler.tasks == [T1]

    def test_deleted_removes_and_tolerates_repeats(self):
        reconciler = TaskReconciler(FakeTaskService())
        reconciler.tasks = [T2, T1]
        reconciler.apply_event(TaskDeleted(1))
        reconciler.apply_event(TaskDeleted(1))
        assert _ids(reconciler) == [2]

    def test_status_change_only_touches_status(self):
        reconciler = TaskReconciler(FakeTaskService())
        reconciler.tasks = [T1]
        stale = {**T1, "title": "stale title", "status": "done"}
        reconciler.apply_event(TaskStatusChanged(1, "done", stale))
        assert reconciler.tasks == [{**T1, "status": "done"}]

    def test_status_change_for_absent_id_is_a_no_op(self):
        reconciler = TaskReconciler(FakeTaskService())
        reconciler.tasks = [T1]
        reconciler.apply_status_changed(5, "done")
        assert reconciler.tasks == [T1]

    def test_ids_match_across_string_and_int(self):
        reconciler = TaskReconciler(FakeTaskService())
        reconciler.tasks = [T1]
        reconciler.apply_deleted("1")
        assert reconciler.tasks == []

    def test_bridge_events_are_merged(self):
        reconciler, client = _connected_reconciler()
        async_to_sync(client.receive)("new-task", T1)
        async_to_sync(client.receive)(
            "task-status-update", {"taskId": 1, "newStatus": "done"}
        )
        assert reconciler.tasks == [{**T1, "status": "done"}]

    def test_malformed_bridge_event_is_ignored(self, caplog):
        reconciler, client = _connected_reconciler()
        reconciler.tasks = [T1]
        async_to_sync(client.receive)("task-delete", {"id": 1})
        async_to_sync(client.receive)("new-task", "not a task")
        assert reconciler.tasks == [T1]
        assert "Ignoring" in caplog.text

    def test_detach_stops_merging(self):
        reconciler, client = _connected_reconciler()
        reconciler.detach()
        async_to_sync(client.receive)("new-task", T1)
        assert reconciler.tasks == []


class TestFetch:
    def test_fetch_replaces_the_list(self):
        reconciler = TaskReconciler(FakeTaskService([T1, T2]))
        reconciler.tasks = [{"id": 99, "title": "local only"}]
        result = async_to_sync(reconciler.fetch_tasks)()
        assert result.success is True
        assert _ids(reconciler) == [2, 1]
        assert reconciler.loading is False
        assert reconciler.error == ""

    def test_fetch_failure_keeps_the_list(self):
        service = FakeTaskService([T1])
        reconciler = TaskReconciler(service)
        reconciler.tasks = [T2]
        service.fail_with = TaskServiceError("boom", status=500)
        result = async_to_sync(reconciler.fetch_tasks)()
        assert result.success is False
        assert reconciler.error == "Failed to fetch tasks"
        assert reconciler.tasks == [T2]
        assert reconciler.loading is False


class TestLocalMutations:
    def test_create_prepends_and_announces(self):
        reconciler, client = _connected_reconciler(FakeTaskService([T1]))
        reconciler.tasks = [T1]
        result = async_to_sync(reconciler.create_task)({"title": "New"})
        assert result.success is True
        assert result.data["id"] == 2
        assert _ids(reconciler) == [2, 1]
        assert client.emitted == [("task-created", result.data)]

    def test_create_does_not_duplicate_an_id_already_seen(self):
        reconciler, client = _connected_reconciler(FakeTaskService([T1]))
        reconciler.tasks = [T1]
        # a peer's echo of the same task arrived before our response
        echo = {"id": 2, "title": "New", "status": "todo"}
        async_to_sync(client.receive)("new-task", echo)
        async_to_sync(reconciler.create_task)({"title": "New"})
        assert _ids(reconciler) == [2, 1]

    def test_create_failure_sets_error_and_keeps_list(self):
        service = FakeTaskService()
        reconciler, client = _connected_reconciler(service)
        service.fail_with = TaskServiceError("Title is required", status=400)
        result = async_to_sync(reconciler.create_task)({})
        assert result.success is False
        assert result.error == "Title is required"
        assert reconciler.error == "Title is required"
        assert reconciler.tasks == []
        assert client.emitted == []

    def test_failure_without_message_uses_default(self):
        service = FakeTaskService([T1])
        reconciler = TaskReconciler(service)
        service.fail_with = TaskServiceError("")
        result = async_to_sync(reconciler.delete_task)(1)
        assert result.error == "Failed to delete task"

    def test_update_replaces_and_announces(self):
        reconciler, client = _connected_reconciler(FakeTaskService([T1]))
        reconciler.tasks = [T1]
        async_to_sync(reconciler.update_task)(1, {"title": "Renamed"})
        assert reconciler.tasks == [{**T1, "title": "Renamed"}]
        assert client.emitted == [("task-updated", {**T1, "title": "Renamed"})]

    def test_status_change_announces_old_and_new_status(self):
        reconciler, client = _connected_reconciler(FakeTaskService([T1]))
        reconciler.tasks = [T1]
        async_to_sync(reconciler.update_task_status)(1, "done")
        assert reconciler.get(1)["status"] == "done"
        assert client.emitted == [
            (
                "task-status-changed",
                {
                    "taskId": 1,
                    "newStatus": "done",
                    "task": {**T1, "status": "done"},
                    "oldStatus": "todo",
                },
            )
        ]

    def test_delete_removes_and_announces(self):
        reconciler, client = _connected_reconciler(FakeTaskService([T1, T2]))
        reconciler.tasks = [T2, T1]
        async_to_sync(reconciler.delete_task)(2)
        assert _ids(reconciler) == [1]
        assert client.emitted == [("task-deleted", 2)]

    def test_mutations_without_connection_are_not_announced(self):
        client = FakeSocketClient()
        bridge = ClientSyncBridge("http://board.test", 1, client=client)
        reconciler = TaskReconciler(FakeTaskService(), bridge)
        result = async_to_sync(reconciler.create_task)({"title": "Offline"})
        assert result.success is True
        assert _ids(reconciler) == [1]
        assert client.emitted == []

    def test_timeout_surfaces_as_error_text(self):
        service = TaskService(
            "http://board.test", session=FakeSession(error=asyncio.TimeoutError())
        )
        reconciler = TaskReconciler(service)
        reconciler.tasks = [T1]
        for call, args in [
            ("create_task", ({"title": "x"},)),
            ("update_task", (1, {"title": "y"})),
            ("update_task_status", (1, "done")),
            ("delete_task", (1,)),
        ]:
            result = async_to_sync(getattr(reconciler, call))(*args)
            assert result.success is False
            assert reconciler.error == "Request timed out"
        assert reconciler.tasks == [T1]

    def test_fetch_timeout_keeps_the_list(self):
        service = TaskService(
            "http://board.test", session=FakeSession(error=asyncio.TimeoutError())
        )
        reconciler = TaskReconciler(service)
        reconciler.tasks = [T1]
        result = async_to_sync(reconciler.fetch_tasks)()
        assert result.success is False
        assert reconciler.error == "Failed to fetch tasks"
        assert reconciler.loading is False
        assert reconciler.tasks == [T1]


def _random_events(seed, length=40):
    rng = random.Random(seed)
    events = []
    for n in range(length):
        raw_id = rng.choice([1, 2, 3])
        # the same task may arrive with a numeric or a string id
        task_id = str(raw_id) if rng.random() < 0.3 else raw_id
        kind = rng.choice(["created", "updated", "deleted", "status"])
        task = {"id": task_id, "title": f"v{n}", "status": "todo"}
        if kind == "created":
            events.append(TaskCreated(task_id, task))
        elif kind == "updated":
            events.append(TaskUpdated(task_id, task))
        elif kind == "deleted":
            events.append(TaskDeleted(task_id))
        else:
            status = rng.choice(["todo", "in-progress", "done"])
            events.append(TaskStatusChanged(task_id, status))
    return events


def _expected_board(events):
    board = {}
    for event in events:
        key = str(event.task_id)
        if isinstance(event, TaskCreated):
            board.setdefault(key, event.task)
        elif isinstance(event, TaskUpdated):
            if key in board:
                board[key] = event.task
        elif isinstance(event, TaskDeleted):
            board.pop(key, None)
        elif key in board:
            board[key] = {**board[key], "status": event.new_status}
    return board


class TestEventSequences:
    @pytest.mark.parametrize("seed", range(25))
    def test_any_sequence_keeps_one_entry_per_id(self, seed):
        events = _random_events(seed)
        reconciler = TaskReconciler(FakeTaskService())
        for event in events:
            reconciler.apply_event(event)

        keys = [str(t["id"]) for t in reconciler.tasks]
        assert len(keys) == len(set(keys))
        assert {str(t["id"]): t for t in reconciler.tasks} == _expected_board(events)

    @pytest.mark.parametrize("seed", range(10))
    def test_repeating_the_last_event_changes_nothing(self, seed):
        events = _random_events(seed)
        reconciler = TaskReconciler(FakeTaskService())
        for event in events:
            reconciler.apply_event(event)
        settled = list(reconciler.tasks)
        reconciler.apply_event(events[-1])
        assert reconciler.tasks == settled

    def test_interleaved_ids_with_mixed_types(self):
        reconciler = TaskReconciler(FakeTaskService())
        for event in [
            TaskCreated(1, {"id": 1, "title": "a", "status": "todo"}),
            TaskCreated("1", {"id": "1", "title": "dup", "status": "todo"}),
            TaskCreated(2, {"id": 2, "title": "b", "status": "todo"}),
            TaskStatusChanged("2", "done"),
            TaskDeleted("1"),
            TaskUpdated(1, {"id": 1, "title": "gone", "status": "todo"}),
            TaskCreated("1", {"id": "1", "title": "again", "status": "todo"}),
        ]:
            reconciler.apply_event(event)
        assert reconciler.tasks == [
            {"id": "1", "title": "again", "status": "todo"},
            {"id": 2, "title": "b", "status": "done"},
        ]
