"""Global Socket.IO server for the board frontend.

One in-process hub: the registry below is the only record of who is
connected, so events published from another process (e.g. a Celery worker)
reach nobody.

Frontend convention:
- URL base: ws://<host>:8000
- Socket.IO path: settings.REALTIME_SOCKETIO_PATH (``/ws/board/``)
- Auth: ``auth.token`` or ``query.token`` (JWT access token)
"""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import parse_qs

import socketio
from asgiref.sync import async_to_sync
from channels.db import database_sync_to_async
from django.conf import settings
from rest_framework.exceptions import AuthenticationFailed
from rest_framework_simplejwt.authentication import JWTAuthentication
from rest_framework_simplejwt.exceptions import TokenError

from taskboard.realtime.protocol import JOIN_USER
from taskboard.realtime.protocol import NEW_NOTIFICATION
from taskboard.realtime.protocol import NOTIFICATION_CREATED
from taskboard.realtime.protocol import TASK_CREATED
from taskboard.realtime.protocol import TASK_DELETED
from taskboard.realtime.protocol import TASK_STATUS_CHANGED
from taskboard.realtime.protocol import TASK_UPDATED
from taskboard.realtime.protocol import USER_OFFLINE
from taskboard.realtime.protocol import USER_ONLINE
from taskboard.realtime.protocol import USER_TYPING
from taskboard.realtime.protocol import channel_for_user
from taskboard.realtime.registry import ConnectionRegistry
from taskboard.realtime.relay import EventRelay

logger = logging.getLogger(__name__)


# async_handlers=False keeps each connection's events in the order they were
# emitted.
sio = socketio.AsyncServer(
    async_mode="asgi",
    cors_allowed_origins=settings.REALTIME_CORS_ALLOWED_ORIGINS,
    async_handlers=False,
    logger=False,
    engineio_logger=False,
)


async def _send_to_connection(sid: str, event: str, payload: Any) -> None:
    await sio.emit(event, payload, to=sid)


registry = ConnectionRegistry(_send_to_connection)
relay = EventRelay(registry)


@database_sync_to_async
def _get_user_id_from_access_token(token: str) -> int:
    jwt_auth = JWTAuthentication()
    validated = jwt_auth.get_validated_token(token)
    user = jwt_auth.get_user(validated)
    return int(user.id)


def _extract_token(environ: dict[str, Any], auth: Any | None) -> str | None:
    """Extract JWT token from Socket.IO environ/auth.

    Handles python-socketio environ shapes across ASGI/WSGI servers.
    """

    if isinstance(auth, dict):
        auth_token = auth.get("token")
        if isinstance(auth_token, str) and auth_token:
            return auth_token

    scope: Any = environ
    if isinstance(environ, dict) and "asgi.scope" in environ:
        inner = environ.get("asgi.scope")
        if isinstance(inner, dict):
            scope = inner

    query_string: str | bytes = ""
    if isinstance(scope, dict) and "query_string" in scope:
        query_string = scope.get("query_string", b"")
    elif isinstance(scope, dict) and "QUERY_STRING" in scope:
        query_string = scope.get("QUERY_STRING", "")

    if isinstance(query_string, (bytes, bytearray)):
        query_string = query_string.decode(errors="ignore")

    token = parse_qs(str(query_string)).get("token", [None])[0]
    if isinstance(token, str) and token:
        return token
    return None


async def _authenticate(environ: dict[str, Any], auth: Any | None) -> int | None:
    token = _extract_token(environ, auth)
    if not token:
        if settings.REALTIME_REQUIRE_AUTH:
            msg = "unauthorized"
            raise ConnectionRefusedError(msg)
        return None

    try:
        return await _get_user_id_from_access_token(token)
    except TokenError as exc:
        if "expired" in str(exc).lower():
            msg = "jwt_expired"
            raise ConnectionRefusedError(msg) from exc
        msg = "unauthorized"
        raise ConnectionRefusedError(msg) from exc
    except AuthenticationFailed as exc:  # user not found / inactive, etc.
        msg = "unauthorized"
        raise ConnectionRefusedError(msg) from exc
    except Exception as exc:
        logger.exception("Socket.IO connect error")
        msg = "server_error"
        raise ConnectionRefusedError(msg) from exc


@sio.event
async def connect(sid: str, environ: dict[str, Any], auth: Any | None = None):
    user_id = await _authenticate(environ, auth)
    await sio.save_session(sid, {"user_id": user_id})
    registry.connect(sid)
    logger.info("Socket connected: %s (user %s)", sid, user_id)


@sio.event
async def disconnect(sid: str, reason: Any = None):
    user_id = registry.user_of(sid)
    registry.disconnect(sid)
    logger.info("Socket disconnected: %s (%s)", sid, reason)
    if user_id is not None and not registry.members(user_id):
        await relay.broadcast_except_sender(sid, USER_OFFLINE, {"userId": user_id})


@sio.on(JOIN_USER)
async def join_user(sid: str, user_id: Any = None):
    if user_id is None:
        logger.warning("Ignoring %s without a user id from %s", JOIN_USER, sid)
        return

    session = await sio.get_session(sid)
    authenticated = session.get("user_id") if isinstance(session, dict) else None
    if authenticated is not None and str(authenticated) != str(user_id):
        logger.warning(
            "Socket %s (user %s) tried to join %s",
            sid,
            authenticated,
            channel_for_user(user_id),
        )
        return

    if not registry.join(sid, user_id):
        return
    logger.info("User %s joined room: %s", user_id, channel_for_user(user_id))
    await relay.broadcast_except_sender(
        sid,
        USER_ONLINE,
        {"userId": user_id, "socketId": sid},
    )


@sio.on(TASK_CREATED)
async def task_created(sid: str, task: Any = None):
    await relay.relay_task_event(sid, TASK_CREATED, task)


@sio.on(TASK_UPDATED)
async def task_updated(sid: str, task: Any = None):
    await relay.relay_task_event(sid, TASK_UPDATED, task)


@sio.on(TASK_DELETED)
async def task_deleted(sid: str, task_id: Any = None):
    await relay.relay_task_event(sid, TASK_DELETED, task_id)


@sio.on(TASK_STATUS_CHANGED)
async def task_status_changed(sid: str, data: Any = None):
    await relay.relay_task_event(sid, TASK_STATUS_CHANGED, data)


@sio.on(NOTIFICATION_CREATED)
async def notification_created(sid: str, notification: Any = None):
    target = notification.get("user") if isinstance(notification, dict) else None
    await relay.publish_targeted(target, NEW_NOTIFICATION, notification)


@sio.on(USER_TYPING)
async def user_typing(sid: str, data: Any = None):
    await relay.broadcast_except_sender(sid, USER_TYPING, data)


def connection_count() -> int:
    return len(registry)


def emit_event_to_user(user_id: int, event: str, payload: dict[str, Any]) -> None:
    """Emit an event to every connection of a user from sync Django code.

    If nobody is connected, this is effectively a no-op.
    """

    async_to_sync(relay.publish_targeted)(user_id, event, payload)
