"""Command-line interface for Control D Sync using Click."""

import logging
import signal
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

import click
from rich.console import Console

from . import __version__
from .client import ControlDClient
from .common import audit_log, ensure_log_dir, get_log_dir, validate_resource_id
from .config import load_config
from .exceptions import ConfigurationError, RegistryError, ServiceCommunicationError
from .registry import CachedEntityRegistry
from .service import ProfileSyncService

# =============================================================================
# LOGGING SETUP
# =============================================================================


def get_app_log_file() -> Path:
    """Get the app log file path."""
    return get_log_dir() / "app.log"


def setup_logging(verbose: bool = False) -> None:
    """Setup logging configuration.

    This function configures logging with both file and console handlers.
    It avoids adding duplicate handlers if called multiple times.

    Args:
        verbose: If True, sets log level to DEBUG; otherwise INFO.
    """
    ensure_log_dir()

    level = logging.DEBUG if verbose else logging.INFO
    root_logger = logging.getLogger()

    if root_logger.handlers:
        root_logger.setLevel(level)
        return

    root_logger.setLevel(level)
    formatter = logging.Formatter("%(asctime)s - %(levelname)s - %(message)s")

    file_handler = logging.FileHandler(get_app_log_file())
    file_handler.setFormatter(formatter)
    root_logger.addHandler(file_handler)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)


logger = logging.getLogger(__name__)
console = Console(highlight=False)

config_dir_option = click.option(
    "--config-dir",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    help="Config directory (default: auto-detect)",
)


def _load_config_or_exit(config_dir: Optional[Path]) -> dict[str, Any]:
    try:
        return load_config(config_dir)
    except ConfigurationError as e:
        logger.error(str(e))
        console.print(f"\n  [red]Config error: {e}[/red]\n", highlight=False)
        sys.exit(1)


def _make_client(config: dict[str, Any]) -> ControlDClient:
    return ControlDClient(config["api_token"], config["timeout"])


def _make_service(config: dict[str, Any], refresh_interval: Optional[int] = None) -> ProfileSyncService:
    return ProfileSyncService(
        _make_client(config),
        CachedEntityRegistry(config["cache_file"]),
        refresh_interval or config["refresh_interval"],
    )


def _format_ttl(disable_ttl: Optional[int]) -> str:
    if not disable_ttl:
        return ""
    return datetime.fromtimestamp(disable_ttl).strftime("%Y-%m-%d %H:%M")


# =============================================================================
# CLICK CLI
# =============================================================================


@click.group(invoke_without_command=True)
@click.version_option(version=__version__, prog_name="controld-sync")
@click.option("--no-color", is_flag=True, help="Disable colored output")
@click.pass_context
def main(ctx: click.Context, no_color: bool) -> None:
    """Control D Sync - Expose Control D profiles as filtering switches."""
    if no_color:
        console.no_color = True

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())


@main.command()
@config_dir_option
@click.option(
    "--interval",
    type=click.IntRange(min=1),
    help="Refresh interval in seconds (overrides REFRESH_INTERVAL)",
)
@click.option("-v", "--verbose", is_flag=True, help="Verbose output")
def run(config_dir: Optional[Path], interval: Optional[int], verbose: bool) -> None:
    """Sync profiles, then keep their status fresh until interrupted."""
    setup_logging(verbose)
    config = _load_config_or_exit(config_dir)
    service = _make_service(config, interval)

    if not service.start():
        sys.exit(1)

    logger.info(
        f"Watching {len(service.tracked_ids)} profile(s), "
        f"refreshing every {service.refresh_interval}s"
    )

    def handle_shutdown(signum, frame):
        logger.info(f"Received signal {signum}, shutting down gracefully...")
        service.scheduler.stop()

    previous_handler = signal.signal(signal.SIGTERM, handle_shutdown)
    try:
        service.scheduler.wait()
    except KeyboardInterrupt:
        logger.info("Shutting down gracefully...")
    finally:
        signal.signal(signal.SIGTERM, previous_handler)
        try:
            service.stop()
        except RegistryError as e:
            logger.error(str(e))


@main.command()
@config_dir_option
@click.option("-v", "--verbose", is_flag=True, help="Verbose output")
def sync(config_dir: Optional[Path], verbose: bool) -> None:
    """Run a single full reconciliation pass."""
    setup_logging(verbose)
    config = _load_config_or_exit(config_dir)
    service = _make_service(config)

    if not service.start(schedule_refresh=False):
        sys.exit(1)

    try:
        service.stop()
    except RegistryError as e:
        console.print(f"  [red]Cache error: {e}[/red]", highlight=False)
        sys.exit(1)

    console.print(f"  Sync: [green]{len(service.tracked_ids)} profile(s) exposed[/green]")


@main.command()
@config_dir_option
def profiles(config_dir: Optional[Path]) -> None:
    """List profiles and their filtering state."""
    config = _load_config_or_exit(config_dir)
    client = _make_client(config)

    items = client.list_profiles()
    console.print(f"\n  [bold]Profiles ({len(items)}):[/bold]")
    for profile in items:
        if profile.filtering_enabled:
            state = "[green]filtering[/green]"
        else:
            state = f"[yellow]disabled until {_format_ttl(profile.disable_ttl)}[/yellow]"
        console.print(f"    {profile.pk}  {profile.name}  {state}")
    console.print()


def _toggle(profile_id: str, enabled: bool, config_dir: Optional[Path]) -> None:
    if not validate_resource_id(profile_id):
        console.print(f"\n  [red]Error: Invalid profile ID '{profile_id}'[/red]\n", highlight=False)
        sys.exit(1)

    config = _load_config_or_exit(config_dir)
    service = _make_service(config)
    action = "enable" if enabled else "disable"

    try:
        success = service.set_profile_filtering(profile_id, enabled)
    except (ServiceCommunicationError, RegistryError) as e:
        console.print(f"\n  [red]Error: {e}[/red]\n", highlight=False)
        sys.exit(1)

    if not success:
        console.print(
            f"\n  [red]Error: Failed to {action} filtering for '{profile_id}'[/red]\n",
            highlight=False,
        )
        sys.exit(1)

    audit_log(action.upper(), profile_id)
    if enabled:
        console.print(f"\n  [green]Filtering enabled: {profile_id}[/green]\n")
    else:
        console.print(f"\n  [yellow]Filtering disabled for 24 hours: {profile_id}[/yellow]\n")


@main.command()
@click.argument("profile_id")
@config_dir_option
def enable(profile_id: str, config_dir: Optional[Path]) -> None:
    """Enable filtering on PROFILE_ID."""
    _toggle(profile_id, True, config_dir)


@main.command()
@click.argument("profile_id")
@config_dir_option
def disable(profile_id: str, config_dir: Optional[Path]) -> None:
    """Suspend filtering on PROFILE_ID for 24 hours."""
    _toggle(profile_id, False, config_dir)


@main.command()
@config_dir_option
def devices(config_dir: Optional[Path]) -> None:
    """List devices and the profile each one uses."""
    config = _load_config_or_exit(config_dir)
    client = _make_client(config)

    items = client.list_devices()
    console.print(f"\n  [bold]Devices ({len(items)}):[/bold]")
    for device in items:
        profile = device.profile_name or device.profile_pk or "-"
        console.print(f"    {device.pk}  {device.name}  -> {profile}")
    console.print()


@main.command()
@click.argument("device_id")
@click.argument("profile_id")
@config_dir_option
def assign(device_id: str, profile_id: str, config_dir: Optional[Path]) -> None:
    """Assign DEVICE_ID to PROFILE_ID."""
    config = _load_config_or_exit(config_dir)
    client = _make_client(config)

    if client.assign_device_profile(device_id, profile_id):
        audit_log("ASSIGN", f"{device_id} -> {profile_id}")
        console.print(f"\n  [green]Device {device_id} now uses profile {profile_id}[/green]\n")
    else:
        console.print(
            f"\n  [red]Error: Failed to assign '{device_id}' to '{profile_id}'[/red]\n",
            highlight=False,
        )
        sys.exit(1)


@main.command()
@config_dir_option
def entities(config_dir: Optional[Path]) -> None:
    """List exposed profile switches from the local cache."""
    config = _load_config_or_exit(config_dir)
    registry = CachedEntityRegistry(config["cache_file"])

    items = registry.entities()
    console.print(f"\n  [bold]Exposed switches ({len(items)}):[/bold]")
    for entity in items:
        icon = "[green]ON[/green] " if entity.on else "[red]OFF[/red]"
        pk = entity.profile.pk if entity.profile else "?"
        console.print(f"    {icon} {entity.name} ({pk})")
    console.print()


@main.command()
@config_dir_option
def health(config_dir: Optional[Path]) -> None:
    """Perform health checks."""
    checks_passed = 0
    checks_total = 0

    console.print("\n  [bold]Health Check[/bold]")
    console.print("  [bold]------------[/bold]")

    checks_total += 1
    try:
        config = load_config(config_dir)
        checks_passed += 1
        console.print("  [green][✓][/green] Configuration loaded")
    except ConfigurationError as e:
        console.print(f"  [red][✗][/red] Configuration: {e}")
        console.print(f"\n  Result: {checks_passed}/{checks_total} checks passed\n")
        sys.exit(1)

    checks_total += 1
    client = _make_client(config)
    if client.validate_token():
        checks_passed += 1
        console.print("  [green][✓][/green] API token accepted")
    else:
        console.print("  [red][✗][/red] API token rejected or API unreachable")

    checks_total += 1
    cache_dir = Path(config["cache_file"]).parent
    try:
        cache_dir.mkdir(parents=True, exist_ok=True)
        checks_passed += 1
        console.print(f"  [green][✓][/green] Cache directory: {cache_dir}")
    except OSError as e:
        console.print(f"  [red][✗][/red] Cache directory: {e}")

    console.print(f"\n  Result: {checks_passed}/{checks_total} checks passed")
    if checks_passed == checks_total:
        console.print("  Status: [green]HEALTHY[/green]\n")
    else:
        console.print("  Status: [red]DEGRADED[/red]\n")
        sys.exit(1)


if __name__ == "__main__":
    main()
