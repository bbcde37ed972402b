"""Deadline-bound request client for discrete Doorbird API calls."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any

import httpx
from loguru import logger

from birdlink.device.errors import (
    DeviceError,
    DeviceErrorKind,
    classify_status,
    classify_transport_error,
)


class BoundedRequestClient:
    """Issues one request at a time under a wall-clock deadline.

    Every failure path is logged and collapsed to `None`; callers only see
    a usable response or nothing. The most recent failure is kept on
    `last_error` for diagnostics.
    """

    def __init__(
        self,
        *,
        label: str | Callable[[], str] = "Doorbird",
        verify_tls: bool = False,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._label = label
        self._owns_client = client is None
        # Deadlines are enforced here, so the transport itself never times out.
        self._client = client or httpx.AsyncClient(verify=verify_tls, timeout=None)
        self.last_error: DeviceError | None = None

    async def send(
        self,
        url: str,
        *,
        method: str = "GET",
        headers: dict[str, str] | None = None,
        content: bytes | str | None = None,
        timeout_seconds: float,
        log_errors: bool = True,
    ) -> httpx.Response | None:
        try:
            async with asyncio.timeout(max(0.0, float(timeout_seconds))):
                response = await self._client.request(
                    method,
                    url,
                    headers=headers,
                    content=content,
                )
        except Exception as e:
            return self._fail(classify_transport_error(e), log_errors=log_errors)

        error = classify_status(response)
        if error is not None:
            return self._fail(error, log_errors=log_errors)

        self.last_error = None
        return response

    @property
    def label(self) -> str:
        return self._label() if callable(self._label) else self._label

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def status_snapshot(self) -> dict[str, Any]:
        error = self.last_error
        return {
            "last_error": error.kind.value if error else "",
            "last_error_detail": error.describe() if error else "",
        }

    def _fail(self, error: DeviceError, *, log_errors: bool) -> None:
        self.last_error = error
        # Only the catch-all classification is quiet for background callers.
        if error.kind == DeviceErrorKind.UNKNOWN_TRANSPORT_ERROR and not log_errors:
            return None
        logger.warning(f"{self.label}: {error.describe()}")
        return None
