"""In-process bookkeeping of live Socket.IO connections and user channels.

A connection belongs to at most one channel (``user-<id>``); a channel can hold
many connections because a user may have several tabs or devices open.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable
from collections.abc import Callable
from typing import Any

from taskboard.realtime.protocol import channel_for_user

logger = logging.getLogger(__name__)

# (connection_id, event, payload) -> delivery to a single connection
SendFunc = Callable[[str, str, Any], Awaitable[None]]


class ConnectionRegistry:
    def __init__(self, send: SendFunc):
        self._send = send
        self._connections: set[str] = set()
        self._membership: dict[str, str] = {}
        self._users: dict[str, Any] = {}
        self._channels: dict[str, set[str]] = {}

    def __len__(self) -> int:
        return len(self._connections)

    def __contains__(self, sid: object) -> bool:
        return sid in self._connections

    def connect(self, sid: str) -> None:
        self._connections.add(sid)

    def join(self, sid: str, user_id: Any) -> bool:
        """Add ``sid`` to the user's channel.

        Returns False when the connection already was a member. A connection
        sitting in another user's channel is moved.
        """

        channel = channel_for_user(user_id)
        current = self._membership.get(sid)
        if current == channel:
            return False
        if current is not None:
            self.leave(sid)
        self._connections.add(sid)
        self._membership[sid] = channel
        self._users[sid] = user_id
        self._channels.setdefault(channel, set()).add(sid)
        return True

    def leave(self, sid: str) -> str | None:
        """Drop the channel membership of ``sid``; returns the channel left."""

        channel = self._membership.pop(sid, None)
        self._users.pop(sid, None)
        if channel is None:
            return None
        members = self._channels.get(channel)
        if members is not None:
            members.discard(sid)
            if not members:
                del self._channels[channel]
        return channel

    def disconnect(self, sid: str) -> str | None:
        channel = self.leave(sid)
        self._connections.discard(sid)
        return channel

    def channel_of(self, sid: str) -> str | None:
        return self._membership.get(sid)

    def user_of(self, sid: str) -> Any | None:
        return self._users.get(sid)

    def members(self, user_id: Any) -> frozenset[str]:
        return frozenset(self._channels.get(channel_for_user(user_id), ()))

    def connections(self) -> frozenset[str]:
        return frozenset(self._connections)

    async def send(self, sid: str, event: str, payload: Any) -> None:
        await self._send(sid, event, payload)

    async def publish_to_channel(self, user_id: Any, event: str, payload: Any) -> int:
        """Deliver ``payload`` to every member of the user's channel.

        Nothing is queued for empty channels. Returns the number of
        connections the event was handed to.
        """

        members = self.members(user_id)
        if not members:
            logger.debug(
                "Dropping %s for %s: no connections",
                event,
                channel_for_user(user_id),
            )
            return 0
        for sid in members:
            await self._send(sid, event, payload)
        return len(members)
