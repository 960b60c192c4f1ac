"""Client side of the board's realtime channel.

The bridge owns one Socket.IO connection, joins the user's channel every time
the transport (re)connects, and hands incoming events to subscribers. Outgoing
events are dropped while not connected; nothing is buffered.
"""

from __future__ import annotations

import inspect
import logging
from collections import defaultdict
from collections.abc import Callable
from enum import Enum
from typing import Any

import socketio
from socketio.exceptions import ConnectionError as SocketConnectionError

from taskboard.realtime.protocol import JOIN_USER
from taskboard.realtime.protocol import NEW_NOTIFICATION
from taskboard.realtime.protocol import NEW_TASK
from taskboard.realtime.protocol import NOTIFICATION_CREATED
from taskboard.realtime.protocol import TASK_DELETE
from taskboard.realtime.protocol import TASK_STATUS_UPDATE
from taskboard.realtime.protocol import TASK_UPDATE
from taskboard.realtime.protocol import USER_OFFLINE
from taskboard.realtime.protocol import USER_ONLINE
from taskboard.realtime.protocol import USER_TYPING
from taskboard.realtime.protocol import TaskCreated
from taskboard.realtime.protocol import TaskDeleted
from taskboard.realtime.protocol import TaskStatusChanged
from taskboard.realtime.protocol import TaskUpdated

logger = logging.getLogger(__name__)

DEFAULT_SOCKETIO_PATH = "ws/board"

INCOMING_EVENTS = (
    NEW_TASK,
    TASK_UPDATE,
    TASK_DELETE,
    TASK_STATUS_UPDATE,
    NEW_NOTIFICATION,
    USER_ONLINE,
    USER_OFFLINE,
    USER_TYPING,
)

Handler = Callable[[Any], Any]


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class ClientSyncBridge:
    """Socket.IO connection for one signed-in board client.

    Use as an async context manager so the transport is closed and all
    subscriptions are released however the block exits::

        async with ClientSyncBridge(url, user_id, token=token) as bridge:
            bridge.subscribe(NEW_TASK, on_new_task)
            ...

    While the client retries a lost transport the state is CONNECTING; a failed
    attempt drops it to DISCONNECTED until a later one succeeds.
    """

    def __init__(
        self,
        url: str,
        user_id: Any,
        *,
        token: str | None = None,
        socketio_path: str = DEFAULT_SOCKETIO_PATH,
        client: socketio.AsyncClient | None = None,
    ):
        self.url = url
        self.user_id = user_id
        self.token = token
        self.socketio_path = socketio_path
        self.client = client or socketio.AsyncClient(
            reconnection=True,
            logger=False,
            engineio_logger=False,
        )
        self.state = ConnectionState.DISCONNECTED
        self.online_users: list[dict[str, Any]] = []
        self._subscriptions: dict[str, list[Handler]] = defaultdict(list)
        self._closed = False

        self.client.on("connect", self._on_connect)
        self.client.on("disconnect", self._on_disconnect)
        self.client.on("connect_error", self._on_connect_error)
        for event in INCOMING_EVENTS:
            self.client.on(event, self._dispatcher(event))

    @property
    def is_connected(self) -> bool:
        return self.state is ConnectionState.CONNECTED

    async def __aenter__(self) -> ClientSyncBridge:
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def connect(self) -> bool:
        if self.state is not ConnectionState.DISCONNECTED:
            return self.is_connected
        self._closed = False
        self.state = ConnectionState.CONNECTING
        logger.info("Connecting to socket server %s", self.url)
        try:
            await self.client.connect(
                self.url,
                auth={"token": self.token} if self.token else None,
                transports=["websocket", "polling"],
                socketio_path=self.socketio_path,
            )
        except SocketConnectionError as exc:
            logger.error("Socket connection error: %s", exc)
            self.state = ConnectionState.DISCONNECTED
            return False
        return self.is_connected

    async def close(self) -> None:
        """Close the transport and release every subscription.

        ``shutdown`` also cancels a reconnect loop that is still running, so
        the bridge cannot come back to life after teardown.
        """

        logger.info("Cleaning up socket connection")
        self._closed = True
        try:
            await self.client.shutdown()
        finally:
            self._subscriptions.clear()
            self.online_users = []
            self.state = ConnectionState.DISCONNECTED

    async def _on_connect(self) -> None:
        if self._closed:
            return
        self.state = ConnectionState.CONNECTED
        logger.info("Socket connected: %s", self.client.get_sid())
        await self.client.emit(JOIN_USER, self.user_id)

    async def _on_disconnect(self, reason: Any = None) -> None:
        logger.info("Socket disconnected: %s", reason)
        # Only a lost transport is retried by the client; a client or server
        # initiated disconnect is final.
        if (
            not self._closed
            and self.client.reconnection
            and reason == socketio.AsyncClient.reason.TRANSPORT_ERROR
        ):
            self.state = ConnectionState.CONNECTING
        else:
            self.state = ConnectionState.DISCONNECTED

    async def _on_connect_error(self, data: Any = None) -> None:
        logger.error("Socket connection error: %s", data)
        self.state = ConnectionState.DISCONNECTED

    # subscriptions

    def subscribe(self, event: str, handler: Handler) -> Callable[[], None]:
        """Call ``handler(payload)`` for every ``event``; returns an unsubscriber."""

        if event not in INCOMING_EVENTS:
            msg = f"Unknown incoming event: {event}"
            raise ValueError(msg)
        self._subscriptions[event].append(handler)
        return lambda: self.unsubscribe(event, handler)

    def unsubscribe(self, event: str, handler: Handler) -> None:
        handlers = self._subscriptions.get(event)
        if handlers and handler in handlers:
            handlers.remove(handler)

    def _dispatcher(self, event: str):
        async def dispatch(data: Any = None) -> None:
            await self.dispatch(event, data)

        return dispatch

    async def dispatch(self, event: str, data: Any) -> None:
        if event == USER_ONLINE:
            self._track_online(data)
        elif event == USER_OFFLINE:
            self._track_offline(data)
        for handler in list(self._subscriptions.get(event, ())):
            result = handler(data)
            if inspect.isawaitable(result):
                await result

    def _track_online(self, data: Any) -> None:
        if not isinstance(data, dict):
            return
        if any(u.get("userId") == data.get("userId") for u in self.online_users):
            return
        self.online_users = [*self.online_users, data]

    def _track_offline(self, data: Any) -> None:
        if not isinstance(data, dict):
            return
        self.online_users = [
            u for u in self.online_users if u.get("userId") != data.get("userId")
        ]

    # outgoing

    async def emit(self, event: str, payload: Any) -> bool:
        if not self.is_connected:
            logger.debug("Dropping %s while %s", event, self.state.value)
            return False
        await self.client.emit(event, payload)
        return True

    async def emit_task_created(self, task: dict[str, Any]) -> bool:
        return await self.emit(*TaskCreated(task.get("id"), task).to_wire())

    async def emit_task_updated(self, task: dict[str, Any]) -> bool:
        return await self.emit(*TaskUpdated(task.get("id"), task).to_wire())

    async def emit_task_deleted(self, task_id: Any) -> bool:
        return await self.emit(*TaskDeleted(task_id).to_wire())

    async def emit_task_status_changed(
        self,
        task_id: Any,
        new_status: str,
        task: dict[str, Any] | None = None,
        old_status: str | None = None,
    ) -> bool:
        event = TaskStatusChanged(task_id, new_status, task, old_status)
        return await self.emit(*event.to_wire())

    async def emit_notification_created(self, notification: dict[str, Any]) -> bool:
        return await self.emit(NOTIFICATION_CREATED, notification)

    async def emit_user_typing(self, data: Any) -> bool:
        return await self.emit(USER_TYPING, data)
