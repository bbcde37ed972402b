"""Failure taxonomy for Doorbird HTTP and event stream calls."""

from __future__ import annotations

import socket
from dataclasses import dataclass
from enum import StrEnum

import httpx


class DeviceErrorKind(StrEnum):
    """Tag for one failure classification."""

    TIMEOUT = "timeout"
    CONNECTION_REFUSED = "connection_refused"
    CONNECTION_RESET = "connection_reset"
    HOST_NOT_FOUND = "host_not_found"
    INVALID_CREDENTIALS = "invalid_credentials"
    REQUEST_FAILED = "request_failed"
    MALFORMED_BODY = "malformed_body"
    UNRECOGNIZED_STREAM_FRAME = "unrecognized_stream_frame"
    HEARTBEAT_LOST = "heartbeat_lost"
    UNKNOWN_TRANSPORT_ERROR = "unknown_transport_error"


_MESSAGES: dict[DeviceErrorKind, str] = {
    DeviceErrorKind.TIMEOUT: "Doorbird API connection was terminated because it was taking too long.",
    DeviceErrorKind.CONNECTION_REFUSED: "Connection refused.",
    DeviceErrorKind.CONNECTION_RESET: "Connection reset.",
    DeviceErrorKind.HOST_NOT_FOUND: (
        "Hostname or IP address not found. "
        "Please ensure the address you configured for this Doorbird is correct."
    ),
    DeviceErrorKind.INVALID_CREDENTIALS: "Invalid login credentials given. Please check your login and password.",
    DeviceErrorKind.MALFORMED_BODY: "Unable to parse the device information retrieved from the Doorbird.",
    DeviceErrorKind.HEARTBEAT_LOST: "Connection to Doorbird events API has been lost.",
}


@dataclass(slots=True, frozen=True)
class DeviceError:
    """One classified failure. `status` is only set for HTTP-level failures."""

    kind: DeviceErrorKind
    status: int | None = None
    detail: str = ""

    def describe(self) -> str:
        if self.kind == DeviceErrorKind.REQUEST_FAILED:
            return f"Error: {self.status} - {self.detail}"
        if self.kind == DeviceErrorKind.UNRECOGNIZED_STREAM_FRAME:
            return f"Received an unknown response: {self.detail}."
        if self.kind == DeviceErrorKind.UNKNOWN_TRANSPORT_ERROR:
            return f"Unexpected transport error: {self.detail}"
        return _MESSAGES[self.kind]


def classify_status(response: httpx.Response) -> DeviceError | None:
    """Return the failure for a non-2xx response, or None when it succeeded."""
    if response.status_code == 401:
        return DeviceError(DeviceErrorKind.INVALID_CREDENTIALS, status=401)
    if not response.is_success:
        return DeviceError(
            DeviceErrorKind.REQUEST_FAILED,
            status=response.status_code,
            detail=response.reason_phrase,
        )
    return None


def classify_transport_error(exc: BaseException) -> DeviceError:
    """Map an exception raised while talking to the device onto the taxonomy."""
    if isinstance(exc, (TimeoutError, httpx.TimeoutException)):
        return DeviceError(DeviceErrorKind.TIMEOUT, detail=str(exc))

    for cause in _exception_chain(exc):
        if isinstance(cause, ConnectionRefusedError):
            return DeviceError(DeviceErrorKind.CONNECTION_REFUSED, detail=str(exc))
        if isinstance(cause, ConnectionResetError):
            return DeviceError(DeviceErrorKind.CONNECTION_RESET, detail=str(exc))
        if isinstance(cause, socket.gaierror):
            return DeviceError(DeviceErrorKind.HOST_NOT_FOUND, detail=str(exc))

    text = str(exc).lower()
    if "connection refused" in text or "errno 111" in text:
        return DeviceError(DeviceErrorKind.CONNECTION_REFUSED, detail=str(exc))
    if "connection reset" in text or "errno 104" in text:
        return DeviceError(DeviceErrorKind.CONNECTION_RESET, detail=str(exc))
    if any(
        marker in text
        for marker in (
            "name or service not known",
            "nodename nor servname",
            "getaddrinfo failed",
            "temporary failure in name resolution",
        )
    ):
        return DeviceError(DeviceErrorKind.HOST_NOT_FOUND, detail=str(exc))

    name = type(exc).__name__
    return DeviceError(DeviceErrorKind.UNKNOWN_TRANSPORT_ERROR, detail=f"{name}: {exc}")


def _exception_chain(exc: BaseException) -> list[BaseException]:
    chain: list[BaseException] = []
    current: BaseException | None = exc
    while current is not None and current not in chain:
        chain.append(current)
        current = current.__cause__ or current.__context__
    return chain
