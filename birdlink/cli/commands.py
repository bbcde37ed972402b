"""CLI commands for birdlink."""

import asyncio
import contextlib
import json
import sys
from pathlib import Path

import typer
from loguru import logger
from rich.console import Console
from rich.table import Table

from birdlink import __logo__, __version__
from birdlink.config.schema import Config, DeviceConfig
from birdlink.device.api import DoorbirdApi

app = typer.Typer(
    name="birdlink",
    help=f"{__logo__} birdlink - Doorbird intercom client",
    no_args_is_help=True,
)

console = Console()

DEFAULT_EVENTS = ("doorbell", "motionsensor")


def version_callback(value: bool):
    if value:
        console.print(f"{__logo__} birdlink v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None, "--version", "-v", callback=version_callback, is_eager=True
    ),
):
    """birdlink - Doorbird intercom client."""
    pass


_log_sink_id: int | None = 0  # loguru default stderr handler


def _set_logs(enabled: bool, verbose: bool = False) -> None:
    global _log_sink_id
    if _log_sink_id is not None:
        with contextlib.suppress(ValueError):
            logger.remove(_log_sink_id)
    _log_sink_id = logger.add(sys.stderr, level="DEBUG" if verbose else "INFO")
    if enabled:
        logger.enable("birdlink")
    else:
        logger.disable("birdlink")


def _load(config_path: Path | None) -> Config:
    from birdlink.config.loader import load_config

    return load_config(config_path.expanduser() if config_path else None)


def _select_device(config: Config, device: str | None) -> DeviceConfig:
    selected = config.get_device(device)
    if selected is None or not selected.address:
        wanted = f" '{device}'" if device else ""
        console.print(f"[red]No Doorbird{wanted} configured.[/red] Add one under 'devices' in the config file.")
        raise typer.Exit(2)
    return selected


def _make_api(config: Config, device: DeviceConfig) -> DoorbirdApi:
    return DoorbirdApi(
        name=device.name,
        address=device.address,
        username=device.username,
        password=device.password,
        response_timeout_s=config.timing.response_timeout_s,
        heartbeat_interval_s=config.timing.heartbeat_interval_s,
        reboot_cooldown_s=config.timing.reboot_cooldown_s,
        retry_on_connect_failure=config.monitor.retry_on_connect_failure,
        verify_tls=device.verify_tls,
    )


def _identity_table(api: DoorbirdApi) -> Table:
    table = Table(title=api.display_name())
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("Address", api.address)
    table.add_row("MAC", api.mac or "")
    table.add_row("Device type", api.device_type or "")
    table.add_row("Firmware", api.firmware or "")
    table.add_row("Relays", ", ".join(api.relays))
    return table


# ============================================================================
# Device Commands
# ============================================================================


@app.command()
def info(
    device: str = typer.Option(None, "--device", "-d", help="Device name or address"),
    config: Path | None = typer.Option(None, "--config", help="Config path"),
    logs: bool = typer.Option(True, "--logs/--no-logs", help="Show birdlink runtime logs"),
    verbose: bool = typer.Option(False, "--verbose", help="Show debug logs"),
):
    """Log in and print the device identity."""
    _set_logs(logs, verbose)
    cfg = _load(config)
    api = _make_api(cfg, _select_device(cfg, device))

    async def run() -> bool:
        try:
            ok = await api.login()
            # login always starts the event monitor; info has no use for it.
            if ok and api.monitor is not None:
                await api.monitor.stop()
            return ok
        finally:
            await api.close()

    if not asyncio.run(run()):
        console.print(f"[red]Login to {api.display_name()} failed.[/red]")
        raise typer.Exit(1)
    console.print(_identity_table(api))


@app.command("open-door")
def open_door(
    relay: str = typer.Argument(..., help="Relay identifier, e.g. 1 or gggaaa@1"),
    device: str = typer.Option(None, "--device", "-d", help="Device name or address"),
    config: Path | None = typer.Option(None, "--config", help="Config path"),
    logs: bool = typer.Option(True, "--logs/--no-logs", help="Show birdlink runtime logs"),
    verbose: bool = typer.Option(False, "--verbose", help="Show debug logs"),
):
    """Unlock a relay."""
    _set_logs(logs, verbose)
    cfg = _load(config)
    api = _make_api(cfg, _select_device(cfg, device))

    async def run() -> bool:
        try:
            return await api.open_door(relay)
        finally:
            await api.close()

    if not asyncio.run(run()):
        console.print(f"[red]Unable to unlock relay {relay}.[/red]")
        raise typer.Exit(1)
    console.print(f"[green]✓[/green] Relay {relay} unlocked on {api.display_name()}")


@app.command("light-on")
def light_on(
    device: str = typer.Option(None, "--device", "-d", help="Device name or address"),
    config: Path | None = typer.Option(None, "--config", help="Config path"),
    logs: bool = typer.Option(True, "--logs/--no-logs", help="Show birdlink runtime logs"),
    verbose: bool = typer.Option(False, "--verbose", help="Show debug logs"),
):
    """Turn on night vision."""
    _set_logs(logs, verbose)
    cfg = _load(config)
    api = _make_api(cfg, _select_device(cfg, device))

    async def run() -> bool:
        try:
            return await api.light_on()
        finally:
            await api.close()

    if not asyncio.run(run()):
        console.print("[red]Unable to activate night vision.[/red]")
        raise typer.Exit(1)
    console.print(f"[green]✓[/green] Night vision on for {api.display_name()}")


@app.command()
def monitor(
    device: str = typer.Option(None, "--device", "-d", help="Device name or address"),
    config: Path | None = typer.Option(None, "--config", help="Config path"),
    event: list[str] = typer.Option(
        list(DEFAULT_EVENTS),
        "--event",
        "-e",
        help="Event name to print (repeatable)",
    ),
    logs: bool = typer.Option(True, "--logs/--no-logs", help="Show birdlink runtime logs"),
    verbose: bool = typer.Option(False, "--verbose", help="Show debug logs"),
):
    """Log in and print device events until interrupted."""
    _set_logs(logs, verbose)
    cfg = _load(config)
    api = _make_api(cfg, _select_device(cfg, device))

    def _printer(name: str):
        def _on_event() -> None:
            console.print(f"[cyan]{api.display_name()}[/cyan] event: [bold]{name}[/bold]")
        return _on_event

    for name in event:
        api.events[name] = _printer(name)

    async def run() -> bool:
        try:
            if not await api.login():
                return False
            console.print(f"{__logo__} Watching {', '.join(event)} on {api.display_name()} (Ctrl+C to stop)")
            if api.monitor is not None:
                await api.monitor.wait()
            return False
        finally:
            await api.close()

    try:
        ok = asyncio.run(run())
    except KeyboardInterrupt:
        console.print("\nShutting down...")
        return
    if not ok:
        console.print(f"[red]Event stream for {api.display_name()} is not running.[/red]")
        raise typer.Exit(1)


@app.command()
def urls(
    device: str = typer.Option(None, "--device", "-d", help="Device name or address"),
    config: Path | None = typer.Option(None, "--config", help="Config path"),
):
    """Print credential-bearing URLs for the stream endpoints."""
    cfg = _load(config)
    api = _make_api(cfg, _select_device(cfg, device))
    table = Table(title=api.display_name())
    table.add_column("Endpoint", style="cyan")
    table.add_column("URL", overflow="fold")
    table.add_row("events", api.events_url())
    table.add_row("snapshot", api.snapshot_url())
    table.add_row("audio", api.audio_url())
    table.add_row("video", api.video_url())
    console.print(table)


# ============================================================================
# Config Commands
# ============================================================================


config_app = typer.Typer(help="Manage birdlink config")
app.add_typer(config_app, name="config")


@config_app.command("check")
def config_check(
    config: Path | None = typer.Option(None, "--config", help="Config path to validate"),
):
    """Validate config JSON structure and schema."""
    from birdlink.config.loader import convert_keys, get_config_path

    config_path = (config or get_config_path()).expanduser()
    if not config_path.exists():
        console.print(f"[red]Config file not found:[/red] {config_path}")
        raise typer.Exit(2)

    try:
        with config_path.open() as f:
            raw = json.load(f)
    except json.JSONDecodeError as exc:
        console.print(f"[red]Invalid JSON:[/red] {exc}")
        raise typer.Exit(2) from exc

    try:
        cfg = Config.model_validate(convert_keys(raw))
    except Exception as exc:
        console.print(f"[red]Schema validation failed:[/red] {exc}")
        raise typer.Exit(1) from exc

    console.print("[green]✓[/green] Config validation passed")
    console.print(f"path={config_path}")
    console.print(f"devices={len(cfg.devices)}")
    for device in cfg.devices:
        console.print(f"  - {device.name or device.address} ({device.address})")
    console.print(
        "timing="
        f"response={cfg.timing.response_timeout_s:g}s "
        f"heartbeat={cfg.timing.heartbeat_interval_s:g}s "
        f"cooldown={cfg.timing.reboot_cooldown_s:g}s"
    )
