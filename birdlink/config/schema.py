"""Configuration schema using Pydantic."""

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings


class DeviceConfig(BaseModel):
    """One Doorbird on the local network."""
    name: str = ""  # Display name used in log lines; falls back to type@address
    address: str = ""  # Host or IP, optionally with :port
    username: str = ""
    password: str = ""
    verify_tls: bool = False  # Doorbirds ship self-signed certificates


class TimingConfig(BaseModel):
    """Timing constants for command calls and the event stream."""
    response_timeout_s: float = 5.0  # Deadline for discrete command requests
    heartbeat_interval_s: float = 25.0  # The events API sends data every ~20 seconds
    reboot_cooldown_s: float = 120.0  # Wait after a lost stream before reconnecting


class MonitorConfig(BaseModel):
    """Event stream monitor behavior."""
    retry_on_connect_failure: bool = False  # Also retry when the stream never connects


class Config(BaseSettings):
    """Root configuration for birdlink."""
    devices: list[DeviceConfig] = Field(default_factory=list)
    timing: TimingConfig = Field(default_factory=TimingConfig)
    monitor: MonitorConfig = Field(default_factory=MonitorConfig)

    def get_device(self, name: str | None = None) -> DeviceConfig | None:
        """Find a device by name or address. Defaults to the first configured device."""
        if not self.devices:
            return None
        if not name:
            return self.devices[0]
        wanted = name.strip().lower()
        for device in self.devices:
            if device.name.lower() == wanted or device.address.lower() == wanted:
                return device
        return None

    model_config = ConfigDict(
        env_prefix="BIRDLINK_",
        env_nested_delimiter="__"
    )
