"""Long-lived watcher for the Doorbird `monitor.cgi` event stream."""

from __future__ import annotations

import asyncio
import contextlib
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

import httpx
from loguru import logger

from birdlink.device.errors import classify_transport_error
from birdlink.device.events import (
    DispatchMetrics,
    EventDispatcher,
    EventHandlers,
    extract_boundary,
)


def now_ms() -> int:
    return int(time.time() * 1000)


class MonitorState(StrEnum):
    """Lifecycle state of one event stream monitor."""

    IDLE = "idle"
    CONNECTING = "connecting"
    STREAMING = "streaming"
    FAILED = "failed"
    HEARTBEAT_LOST = "heartbeat_lost"


class AttemptOutcome(StrEnum):
    GAVE_UP = "gave_up"
    HEARTBEAT_LOST = "heartbeat_lost"


class StreamAttempt:
    """Cancellation signal owned by exactly one connection attempt."""

    def __init__(self, number: int) -> None:
        self.number = number
        self.aborted = asyncio.Event()
        self._response: httpx.Response | None = None

    def bind(self, response: httpx.Response) -> None:
        self._response = response

    @property
    def is_aborted(self) -> bool:
        return self.aborted.is_set()

    async def abort(self) -> None:
        if self.aborted.is_set():
            return
        self.aborted.set()
        if self._response is not None:
            with contextlib.suppress(Exception):
                await self._response.aclose()


@dataclass(slots=True)
class MonitorMetrics:
    """In-memory counters for the monitor lifecycle."""

    started_at_ms: int = field(default_factory=now_ms)
    connect_attempts_total: int = 0
    connects_total: int = 0
    connect_failures_total: int = 0
    heartbeat_losses_total: int = 0
    chunks_total: int = 0
    last_chunk_at_ms: int = 0

    def snapshot(self) -> dict[str, Any]:
        return {
            "started_at_ms": self.started_at_ms,
            "connect_attempts_total": self.connect_attempts_total,
            "connects_total": self.connects_total,
            "connect_failures_total": self.connect_failures_total,
            "heartbeat_losses_total": self.heartbeat_losses_total,
            "chunks_total": self.chunks_total,
            "last_chunk_at_ms": self.last_chunk_at_ms,
        }


class EventStreamMonitor:
    """Keeps one streaming connection to the device and dispatches its events.

    The device sends a chunk at least every ~20 seconds while healthy. If no
    chunk arrives within `heartbeat_interval_s`, the connection is treated as
    lost: it is aborted, the monitor waits `reboot_cooldown_s` so a rebooting
    device is not hammered, then connects again. This is the only automatic
    reconnect path.

    A failure before the stream starts (transport error, non-2xx status or an
    unparseable `Content-Type`) ends the monitor with state `idle`, unless
    `retry_on_connect_failure` is set, in which case it is retried after the
    same cooldown.
    """

    def __init__(
        self,
        url: str,
        handlers: EventHandlers,
        *,
        label: str | Callable[[], str] = "Doorbird",
        heartbeat_interval_s: float = 25.0,
        reboot_cooldown_s: float = 120.0,
        retry_on_connect_failure: bool = False,
        verify_tls: bool = False,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.url = url
        self.handlers = handlers
        self._label = label
        self.heartbeat_interval_s = max(0.0, float(heartbeat_interval_s))
        self.reboot_cooldown_s = max(0.0, float(reboot_cooldown_s))
        self.retry_on_connect_failure = bool(retry_on_connect_failure)
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(verify=verify_tls, timeout=None)
        self.state = MonitorState.IDLE
        self.metrics = MonitorMetrics()
        self.dispatch_metrics = DispatchMetrics()
        self._attempt: StreamAttempt | None = None
        self._task: asyncio.Task | None = None

    @property
    def label(self) -> str:
        return self._label() if callable(self._label) else self._label

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> asyncio.Task:
        if self._task is not None and not self._task.done():
            return self._task
        self._task = asyncio.create_task(self.run(), name=f"birdlink-monitor:{self.label}")
        return self._task

    async def stop(self) -> None:
        if self._attempt is not None:
            await self._attempt.abort()
        if self._task is not None:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None
        self.state = MonitorState.IDLE

    async def wait(self) -> None:
        """Block until the monitor loop ends (it only does so after giving up)."""
        if self._task is not None:
            await self._task

    async def aclose(self) -> None:
        await self.stop()
        if self._owns_client:
            await self._client.aclose()

    async def run(self) -> None:
        while True:
            outcome = await self._run_attempt()
            if outcome == AttemptOutcome.GAVE_UP:
                if not self.retry_on_connect_failure:
                    self.state = MonitorState.IDLE
                    return
                logger.info(
                    f"{self.label}: Retrying the Doorbird events API connection "
                    f"in {self.reboot_cooldown_s:g} seconds."
                )
                self.state = MonitorState.IDLE
            # Wait for the reboot to complete before retrying so we don't spam the Doorbird.
            await asyncio.sleep(self.reboot_cooldown_s)

    def status_snapshot(self) -> dict[str, Any]:
        return {
            "state": self.state.value,
            "running": self.running,
            "attempt": self._attempt.number if self._attempt else 0,
            "heartbeat_interval_s": self.heartbeat_interval_s,
            "reboot_cooldown_s": self.reboot_cooldown_s,
            "retry_on_connect_failure": self.retry_on_connect_failure,
            "metrics": self.metrics.snapshot(),
            "events": self.dispatch_metrics.snapshot(),
        }

    async def _run_attempt(self) -> AttemptOutcome:
        if self._attempt is not None:
            await self._attempt.abort()
        self.metrics.connect_attempts_total += 1
        attempt = StreamAttempt(self.metrics.connect_attempts_total)
        self._attempt = attempt
        self.state = MonitorState.CONNECTING

        try:
            request = self._client.build_request("GET", self.url)
            response = await self._client.send(request, stream=True)
        except Exception as e:
            error = classify_transport_error(e)
            logger.warning(f"{self.label}: Unable to reach the Doorbird events API: {error.describe()}")
            return self._give_up()

        attempt.bind(response)
        try:
            if not response.is_success:
                logger.debug(
                    f"{self.label}: events API answered {response.status_code} {response.reason_phrase}"
                )
                return self._give_up()

            content_type = response.headers.get("Content-Type", "")
            boundary = extract_boundary(content_type)
            if boundary is None:
                logger.warning(f"{self.label}: Unable to parse content-type header: {content_type}.")
                return self._give_up()

            logger.info(f"{self.label}: Connected to the Doorbird events API.")
            self.metrics.connects_total += 1
            self.state = MonitorState.STREAMING
            dispatcher = EventDispatcher(
                self.handlers,
                boundary=boundary,
                label=self.label,
                metrics=self.dispatch_metrics,
            )
            await self._consume(response, dispatcher)

            self.metrics.heartbeat_losses_total += 1
            self.state = MonitorState.HEARTBEAT_LOST
            logger.warning(
                f"{self.label}: Connection to Doorbird events API has been lost. "
                f"Reconnection attempt in {self.reboot_cooldown_s / 60:g} minutes."
            )
            return AttemptOutcome.HEARTBEAT_LOST
        finally:
            # Kill the connection before any cooldown begins.
            await attempt.abort()

    async def _consume(self, response: httpx.Response, dispatcher: EventDispatcher) -> None:
        """Read chunks until the heartbeat watchdog expires."""
        loop = asyncio.get_running_loop()
        chunks = aiter(response.aiter_bytes())
        deadline = loop.time() + self.heartbeat_interval_s
        while True:
            try:
                async with asyncio.timeout_at(deadline):
                    chunk = await anext(chunks)
            except TimeoutError:
                return
            except StopAsyncIteration:
                # The socket closed; the watchdog still has to run out.
                await asyncio.sleep(max(0.0, deadline - loop.time()))
                return
            except Exception as e:
                logger.debug(f"{self.label}: events API stream error: {e}")
                await asyncio.sleep(max(0.0, deadline - loop.time()))
                return

            deadline = loop.time() + self.heartbeat_interval_s
            self.metrics.chunks_total += 1
            self.metrics.last_chunk_at_ms = now_ms()
            dispatcher.feed(chunk)

    def _give_up(self) -> AttemptOutcome:
        self.metrics.connect_failures_total += 1
        self.state = MonitorState.FAILED
        return AttemptOutcome.GAVE_UP
