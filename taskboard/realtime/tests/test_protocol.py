import pytest

from taskboard.realtime import protocol
from taskboard.realtime.protocol import MalformedEventError
from taskboard.realtime.protocol import TaskCreated
from taskboard.realtime.protocol import TaskDeleted
from taskboard.realtime.protocol import TaskStatusChanged
from taskboard.realtime.protocol import TaskUpdated
from taskboard.realtime.protocol import parse_task_event


def test_channel_name():
    assert protocol.channel_for_user(12) == "user-12"


@pytest.mark.parametrize(
    ("event", "payload", "expected"),
    [
        ("new-task", {"id": 1, "title": "a"}, TaskCreated(1, {"id": 1, "title": "a"})),
        ("task-update", {"id": 2}, TaskUpdated(2, {"id": 2})),
        ("task-delete", 3, TaskDeleted(3)),
        (
            "task-status-update",
            {"taskId": 4, "newStatus": "done", "task": {"id": 4}},
            TaskStatusChanged(4, "done", {"id": 4}),
        ),
    ],
)
def test_parse_outbound_events(event, payload, expected):
    assert parse_task_event(event, payload) == expected


def test_parse_accepts_inbound_names():
    parsed = parse_task_event("task-created", {"id": 1})
    assert isinstance(parsed, TaskCreated)


def test_status_changed_keeps_old_status():
    parsed = parse_task_event(
        "task-status-changed",
        {"taskId": 1, "newStatus": "done", "oldStatus": "todo"},
    )
    assert parsed.old_status == "todo"
    assert parsed.task is None


def test_status_changed_wire_shape():
    name, payload = TaskStatusChanged(1, "done", {"id": 1}, "todo").to_wire()
    assert name == "task-status-changed"
    assert payload == {
        "taskId": 1,
        "newStatus": "done",
        "task": {"id": 1},
        "oldStatus": "todo",
    }


@pytest.mark.parametrize(
    ("event", "payload"),
    [
        ("new-task", {"title": "no id"}),
        ("new-task", "nope"),
        ("task-delete", {"id": 1}),
        ("task-delete", None),
        ("task-status-update", {"taskId": 1}),
        ("something-else", {}),
    ],
)
def test_malformed_events_raise(event, payload):
    with pytest.raises(MalformedEventError):
        parse_task_event(event, payload)
