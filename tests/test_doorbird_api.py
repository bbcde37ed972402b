import copy

import httpx
import pytest

from birdlink.device.api import DeviceIdentity, DoorbirdApi
from birdlink.device.errors import DeviceErrorKind
from birdlink.device.monitor import MonitorState
from http_fakes import INFO_PAYLOAD, ScriptedStream, info_response, stream_response, wait_for


class FakeDoorbird:
    """Routes requests by path and records every URL it sees."""

    def __init__(self, *, info=None, status: int = 200) -> None:  # type: ignore[no-untyped-def]
        self.info = info
        self.status = status
        self.urls: list[str] = []
        self.stream = ScriptedStream([b"--ioboundary\r\nContent-Type: text/plain\r\n\r\nmotionsensor:H\r\n"])

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.urls.append(str(request.url))
        path = request.url.path
        if path == "/bha-api/info.cgi":
            if self.status != 200:
                return httpx.Response(self.status)
            if isinstance(self.info, bytes):
                return httpx.Response(200, content=self.info)
            return info_response(self.info)
        if path == "/bha-api/monitor.cgi":
            return stream_response(self.stream)
        return httpx.Response(self.status)


def _api(device: FakeDoorbird, **kwargs) -> DoorbirdApi:  # type: ignore[no-untyped-def]
    options = {
        "address": "192.168.1.20",
        "username": "user0001",
        "password": "secret",
        "heartbeat_interval_s": 5.0,
        "reboot_cooldown_s": 0.1,
        "client": httpx.AsyncClient(transport=httpx.MockTransport(device)),
    }
    options.update(kwargs)
    return DoorbirdApi(**options)


def test_display_name_preference_order() -> None:
    api = DoorbirdApi(name="Front door", address="10.0.0.9", username="u", password="p")
    assert api.display_name() == "Front door"

    api = DoorbirdApi(address="10.0.0.9", username="u", password="p")
    assert api.display_name() == "10.0.0.9"

    api.identity = DeviceIdentity(mac="AA", device_type="DoorBird D101", firmware="1")
    assert api.display_name() == "DoorBird D101@10.0.0.9"


def test_identity_prefers_primary_mac_and_falls_back_to_wifi() -> None:
    identity = DeviceIdentity.from_info(INFO_PAYLOAD)
    assert identity is not None
    assert identity.mac == "1CCAE3700000"
    assert identity.relays == ["1", "2", "ghchdi@1"]

    payload = copy.deepcopy(INFO_PAYLOAD)
    del payload["BHA"]["VERSION"][0]["PRIMARY_MAC_ADDR"]
    identity = DeviceIdentity.from_info(payload)
    assert identity is not None
    assert identity.mac == "1CCAE3799999"

    assert DeviceIdentity.from_info({"BHA": {}}) is None
    assert DeviceIdentity.from_info([]) is None


@pytest.mark.asyncio
async def test_login_populates_identity_and_dispatches_stream_events(log_lines: list[str]) -> None:
    device = FakeDoorbird()
    api = _api(device, name="Front door")
    motions: list[int] = []
    api.events["motionsensor"] = lambda: motions.append(1)

    try:
        assert await api.login() is True
        assert api.mac == "1CCAE3700000"
        assert api.device_type == "DoorBird D2101V"
        assert api.firmware == "000125"
        assert api.relays == ["1", "2", "ghchdi@1"]

        await wait_for(lambda: motions == [1])
        assert api.monitor is not None
        assert api.monitor.state == MonitorState.STREAMING
    finally:
        await api.close()

    assert motions == [1]
    assert device.urls[0] == (
        "https://192.168.1.20/bha-api/info.cgi?http-user=user0001&http-password=secret"
    )
    assert device.urls[1] == (
        "https://192.168.1.20/bha-api/monitor.cgi?ring=doorbell,motionsensor"
        "&http-user=user0001&http-password=secret"
    )
    assert "Front door: Connected to the Doorbird events API." in log_lines


@pytest.mark.asyncio
async def test_login_rejected_credentials_do_not_start_monitor(log_lines: list[str]) -> None:
    device = FakeDoorbird(status=401)
    api = _api(device)

    assert await api.login() is False
    assert api.monitor is None
    assert api.identity is None
    assert len(device.urls) == 1
    assert api.http.last_error is not None
    assert api.http.last_error.kind == DeviceErrorKind.INVALID_CREDENTIALS
    assert log_lines == [
        "192.168.1.20: Invalid login credentials given. Please check your login and password.",
        "192.168.1.20: Unable to retrieve device information from the Doorbird.",
    ]


@pytest.mark.asyncio
async def test_login_rejects_malformed_body(log_lines: list[str]) -> None:
    api = _api(FakeDoorbird(info=b"<html>not json</html>"))

    assert await api.login() is False
    assert api.monitor is None
    assert api.http.last_error is not None
    assert api.http.last_error.kind == DeviceErrorKind.MALFORMED_BODY
    assert "192.168.1.20: Unable to parse the device information retrieved from the Doorbird." in log_lines

    api = _api(FakeDoorbird(info={"unexpected": True}))
    assert await api.login() is False
    assert api.http.last_error is not None
    assert api.http.last_error.kind == DeviceErrorKind.MALFORMED_BODY


@pytest.mark.asyncio
async def test_relogin_replaces_previous_monitor() -> None:
    device = FakeDoorbird()
    api = _api(device)

    try:
        assert await api.login() is True
        first = api.monitor
        await wait_for(lambda: first is not None and first.state == MonitorState.STREAMING)
        first_stream = device.stream
        device.stream = ScriptedStream([b"doorbell:L\r\n"])

        assert await api.login() is True
        assert api.monitor is not first
        assert first is not None and first.running is False
        assert first_stream.closed.is_set()
    finally:
        await api.close()


@pytest.mark.asyncio
async def test_open_door_passes_relay_without_validation() -> None:
    device = FakeDoorbird()
    api = _api(device)

    assert await api.open_door("ghchdi@1") is True
    assert await api.open_door("not-a-relay") is True

    assert device.urls == [
        "https://192.168.1.20/bha-api/open-door.cgi?r=ghchdi%401&http-user=user0001&http-password=secret",
        "https://192.168.1.20/bha-api/open-door.cgi?r=not-a-relay&http-user=user0001&http-password=secret",
    ]


@pytest.mark.asyncio
async def test_open_door_reports_device_rejection(log_lines: list[str]) -> None:
    api = _api(FakeDoorbird(status=400), name="Gate")

    assert await api.open_door("9") is False
    assert log_lines == [
        "Gate: Error: 400 - Bad Request",
        "Gate: Unable to unlock relay 9 on the Doorbird.",
    ]


@pytest.mark.asyncio
async def test_light_on_success_and_failure(log_lines: list[str]) -> None:
    device = FakeDoorbird()
    api = _api(device)
    assert await api.light_on() is True
    assert device.urls[-1].startswith("https://192.168.1.20/bha-api/light-on.cgi?http-user=")

    api = _api(FakeDoorbird(status=500))
    assert await api.light_on() is False
    assert "192.168.1.20: Unable to activate night vision on the Doorbird." in log_lines


def test_stream_urls_carry_credentials() -> None:
    api = DoorbirdApi(address="doorbird.local", username="u", password="p")

    assert api.snapshot_url() == "https://doorbird.local/bha-api/image.cgi?http-user=u&http-password=p"
    assert api.audio_url() == "https://doorbird.local/bha-api/audio-receive.cgi?http-user=u&http-password=p"
    assert api.video_url() == "https://doorbird.local/bha-api/video.cgi?http-user=u&http-password=p"
    assert api.events_url().endswith("monitor.cgi?ring=doorbell,motionsensor&http-user=u&http-password=p")


@pytest.mark.asyncio
async def test_status_snapshot_before_login() -> None:
    api = _api(FakeDoorbird(), name="Front door")
    api.events["doorbell"] = lambda: None

    snapshot = api.status_snapshot()

    assert snapshot["name"] == "Front door"
    assert snapshot["identity"] is None
    assert snapshot["monitor"] is None
    assert snapshot["handlers"] == ["doorbell"]
    assert snapshot["last_error"] == ""
