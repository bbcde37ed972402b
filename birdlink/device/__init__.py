"""Doorbird LAN API client and event stream monitor."""

from birdlink.device.api import DeviceIdentity, DoorbirdApi
from birdlink.device.client import BoundedRequestClient
from birdlink.device.errors import DeviceError, DeviceErrorKind
from birdlink.device.events import EventDispatcher, decode_event_line, extract_boundary
from birdlink.device.monitor import EventStreamMonitor, MonitorState
from birdlink.device.urls import build_auth_url

__all__ = [
    "BoundedRequestClient",
    "DeviceError",
    "DeviceErrorKind",
    "DeviceIdentity",
    "DoorbirdApi",
    "EventDispatcher",
    "EventStreamMonitor",
    "MonitorState",
    "build_auth_url",
    "decode_event_line",
    "extract_boundary",
]
