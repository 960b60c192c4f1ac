"""Fan-out of board events to connected clients.

The relay is stateless per event: it neither persists nor validates payloads.
What a sender emits is what recipients receive.
"""

from __future__ import annotations

import logging
from typing import Any

from taskboard.realtime.protocol import TASK_EVENT_FANOUT
from taskboard.realtime.registry import ConnectionRegistry

logger = logging.getLogger(__name__)


class EventRelay:
    def __init__(self, registry: ConnectionRegistry):
        self.registry = registry

    async def broadcast_except_sender(
        self,
        sender_sid: str | None,
        event: str,
        payload: Any,
    ) -> int:
        """Deliver to every live connection except ``sender_sid``.

        ``sender_sid`` may be None when the event originates outside a socket
        (HTTP layer, background jobs); everybody receives it then.
        """

        recipients = [
            sid for sid in self.registry.connections() if sid != sender_sid
        ]
        for sid in recipients:
            await self.registry.send(sid, event, payload)
        logger.debug("Broadcast %s to %d connection(s)", event, len(recipients))
        return len(recipients)

    async def publish_targeted(self, user_id: Any, event: str, payload: Any) -> int:
        return await self.registry.publish_to_channel(user_id, event, payload)

    async def relay_task_event(self, sender_sid: str, event: str, payload: Any) -> int:
        """Rebroadcast a client's task mutation under its outbound name."""

        outbound = TASK_EVENT_FANOUT[event]
        return await self.broadcast_except_sender(sender_sid, outbound, payload)
