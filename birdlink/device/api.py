"""Doorbird LAN API session: commands, identity and the event monitor.

The API is documented at https://www.doorbird.com/downloads/api_lan.pdf
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any
from urllib.parse import urlencode

import httpx
from loguru import logger

from birdlink.device.client import BoundedRequestClient
from birdlink.device.errors import DeviceError, DeviceErrorKind
from birdlink.device.events import EventHandlers
from birdlink.device.monitor import EventStreamMonitor
from birdlink.device.urls import (
    AUDIO_PATH,
    INFO_PATH,
    LIGHT_ON_PATH,
    MONITOR_PATH,
    OPEN_DOOR_PATH,
    SNAPSHOT_PATH,
    VIDEO_PATH,
    build_auth_url,
)


@dataclass(slots=True, frozen=True)
class DeviceIdentity:
    """Device attributes reported by `info.cgi`."""

    mac: str
    device_type: str
    firmware: str
    relays: list[str] = field(default_factory=list)

    @classmethod
    def from_info(cls, data: Any) -> DeviceIdentity | None:
        if not isinstance(data, dict):
            return None
        bha = data.get("BHA")
        if not isinstance(bha, dict):
            return None
        versions = bha.get("VERSION")
        if not isinstance(versions, list) or not versions or not isinstance(versions[0], dict):
            return None
        info = versions[0]
        relays = info.get("RELAYS") or []
        return cls(
            mac=str(info.get("PRIMARY_MAC_ADDR") or info.get("WIFI_MAC_ADDR") or ""),
            device_type=str(info.get("DEVICE-TYPE") or ""),
            firmware=str(info.get("FIRMWARE") or ""),
            relays=[str(relay) for relay in relays] if isinstance(relays, list) else [],
        )


class DoorbirdApi:
    """One session per physical Doorbird.

    Register event handlers on `events` (event name -> zero-argument
    callable) before calling `login()`; the monitor reads that mapping
    directly.
    """

    def __init__(
        self,
        *,
        name: str = "",
        address: str,
        username: str,
        password: str,
        response_timeout_s: float = 5.0,
        heartbeat_interval_s: float = 25.0,
        reboot_cooldown_s: float = 120.0,
        retry_on_connect_failure: bool = False,
        verify_tls: bool = False,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.name = str(name or "").strip()
        self.address = str(address or "").strip()
        self._username = username
        self._password = password
        self.response_timeout_s = max(0.1, float(response_timeout_s))
        self.heartbeat_interval_s = float(heartbeat_interval_s)
        self.reboot_cooldown_s = float(reboot_cooldown_s)
        self.retry_on_connect_failure = bool(retry_on_connect_failure)
        self.verify_tls = bool(verify_tls)
        self.events: EventHandlers = {}
        self.identity: DeviceIdentity | None = None
        self.monitor: EventStreamMonitor | None = None
        self._client = client
        self.http = BoundedRequestClient(
            label=self.display_name,
            verify_tls=self.verify_tls,
            client=client,
        )

    @property
    def mac(self) -> str | None:
        return self.identity.mac if self.identity else None

    @property
    def device_type(self) -> str | None:
        return self.identity.device_type if self.identity else None

    @property
    def firmware(self) -> str | None:
        return self.identity.firmware if self.identity else None

    @property
    def relays(self) -> list[str]:
        return list(self.identity.relays) if self.identity else []

    def display_name(self) -> str:
        """
        Label used in log lines.

        One of, in order of preference:
          the configured name,
          `<device type>@<address>` once the device type is known,
          the bare address.
        """
        if self.name:
            return self.name
        if self.device_type:
            return f"{self.device_type}@{self.address}"
        return self.address

    async def login(self) -> bool:
        response = await self.http.send(
            self.auth_url(INFO_PATH),
            timeout_seconds=self.response_timeout_s,
        )
        if response is None:
            logger.warning(f"{self.display_name()}: Unable to retrieve device information from the Doorbird.")
            return False

        try:
            data = response.json()
        except ValueError:
            data = None
            self.http.last_error = DeviceError(DeviceErrorKind.MALFORMED_BODY, detail="invalid JSON")
            logger.warning(
                f"{self.display_name()}: Unable to parse the device information retrieved from the Doorbird."
            )

        identity = DeviceIdentity.from_info(data)
        if identity is None:
            if data is not None:
                self.http.last_error = DeviceError(DeviceErrorKind.MALFORMED_BODY, detail="missing BHA.VERSION")
            logger.warning(f"{self.display_name()}: Unable to retrieve device information from the Doorbird.")
            return False

        self.identity = identity
        await self._launch_event_monitor()
        return True

    async def light_on(self) -> bool:
        """Activate night vision."""
        response = await self.http.send(
            self.auth_url(LIGHT_ON_PATH),
            timeout_seconds=self.response_timeout_s,
        )
        if response is None:
            logger.warning(f"{self.display_name()}: Unable to activate night vision on the Doorbird.")
            return False
        return True

    async def open_door(self, relay: str) -> bool:
        """Unlock one relay. The relay id is not checked against `relays`."""
        params = urlencode({"r": relay})
        response = await self.http.send(
            self.auth_url(f"{OPEN_DOOR_PATH}?{params}"),
            timeout_seconds=self.response_timeout_s,
        )
        if response is None:
            logger.warning(f"{self.display_name()}: Unable to unlock relay {relay} on the Doorbird.")
            return False
        return True

    def auth_url(self, path: str) -> str:
        return build_auth_url(self.address, path, self._username, self._password)

    def events_url(self) -> str:
        return self.auth_url(MONITOR_PATH)

    def audio_url(self) -> str:
        return self.auth_url(AUDIO_PATH)

    def video_url(self) -> str:
        return self.auth_url(VIDEO_PATH)

    def snapshot_url(self) -> str:
        return self.auth_url(SNAPSHOT_PATH)

    def status_snapshot(self) -> dict[str, Any]:
        return {
            "name": self.display_name(),
            "address": self.address,
            "identity": asdict(self.identity) if self.identity else None,
            "handlers": sorted(self.events),
            "monitor": self.monitor.status_snapshot() if self.monitor else None,
            **self.http.status_snapshot(),
        }

    async def close(self) -> None:
        if self.monitor is not None:
            await self.monitor.aclose()
            self.monitor = None
        await self.http.aclose()

    async def _launch_event_monitor(self) -> None:
        if self.monitor is not None:
            await self.monitor.aclose()
        self.monitor = EventStreamMonitor(
            self.events_url(),
            self.events,
            label=self.display_name,
            heartbeat_interval_s=self.heartbeat_interval_s,
            reboot_cooldown_s=self.reboot_cooldown_s,
            retry_on_connect_failure=self.retry_on_connect_failure,
            verify_tls=self.verify_tls,
            client=self._client,
        )
        self.monitor.start()
