"""Credential-bearing URL construction for the Doorbird LAN API."""

from __future__ import annotations

INFO_PATH = "/bha-api/info.cgi"
LIGHT_ON_PATH = "/bha-api/light-on.cgi"
OPEN_DOOR_PATH = "/bha-api/open-door.cgi"
MONITOR_PATH = "/bha-api/monitor.cgi?ring=doorbell,motionsensor"
AUDIO_PATH = "/bha-api/audio-receive.cgi"
VIDEO_PATH = "/bha-api/video.cgi"
SNAPSHOT_PATH = "/bha-api/image.cgi"


def build_auth_url(
    address: str,
    path: str,
    username: str,
    password: str,
    *,
    scheme: str = "https",
) -> str:
    """
    Return a fully qualified URL with `http-user`/`http-password` query params.

    Credentials are appended verbatim. The device parses its query string
    leniently, and escaping here would change what it receives, so characters
    such as `&` or `#` in a password are a known limitation.
    """
    separator = "&" if "?" in path else "?"
    return f"{scheme}://{address}{path}{separator}http-user={username}&http-password={password}"
