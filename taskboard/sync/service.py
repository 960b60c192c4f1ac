"""HTTP client for the board's task endpoints."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import aiohttp

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30


class TaskServiceError(Exception):
    """A task CRUD call failed; ``str(exc)`` is safe to show to the user."""

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.status = status


class TaskService:
    """CRUD calls against ``/api/v1/tasks/``.

    Each call returns the ``{"success": ..., "data": ...}`` envelope on
    success and raises TaskServiceError otherwise.
    """

    def __init__(
        self,
        base_url: str,
        *,
        token: str | None = None,
        session: aiohttp.ClientSession | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self._session = session

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
        return self._session

    async def close(self):
        if self._session and not self._session.closed:
            await self._session.close()

    def _headers(self) -> dict[str, str]:
        if not self.token:
            return {}
        return {"Authorization": f"Bearer {self.token}"}

    async def _request(
        self,
        method: str,
        path: str,
        payload: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        session = await self._get_session()
        url = f"{self.base_url}/api/v1/tasks/{path}"
        try:
            async with session.request(
                method,
                url,
                json=payload,
                headers=self._headers(),
                timeout=self.timeout,
            ) as response:
                try:
                    body = await response.json(content_type=None)
                except ValueError:
                    body = None
                if response.status >= 400 or not isinstance(body, dict):
                    message = body.get("message") if isinstance(body, dict) else None
                    raise TaskServiceError(
                        message or f"Request failed with status {response.status}",
                        status=response.status,
                    )
        except asyncio.TimeoutError as exc:
            logger.warning("Task service request timed out: %s %s", method, url)
            msg = "Request timed out"
            raise TaskServiceError(msg) from exc
        except aiohttp.ClientError as exc:
            logger.warning("Task service connection error: %s", exc)
            raise TaskServiceError(str(exc) or "Connection error") from exc
        if not body.get("success", False):
            raise TaskServiceError(body.get("message") or "Request failed")
        return body

    async def get_tasks(self) -> dict[str, Any]:
        return await self._request("GET", "")

    async def create_task(self, data: dict[str, Any]) -> dict[str, Any]:
        return await self._request("POST", "", data)

    async def update_task(self, task_id: Any, data: dict[str, Any]) -> dict[str, Any]:
        return await self._request("PATCH", f"{task_id}/", data)

    async def update_task_status(self, task_id: Any, status: str) -> dict[str, Any]:
        return await self._request("PATCH", f"{task_id}/status/", {"status": status})

    async def delete_task(self, task_id: Any) -> dict[str, Any]:
        return await self._request("DELETE", f"{task_id}/")
