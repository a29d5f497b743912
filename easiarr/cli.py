"""Command-line interface for easiarr."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import List, NoReturn, Optional

import httpx
import typer
from rich.console import Console
from rich.table import Table

from .clients.arr import ArrApiError
from .clients.prowlarr import ProwlarrClient
from .constants import APP_CATEGORIES, api_key_env
from .converge.profiles import apply_trash_preset
from .converge.services import FullAutoSetup, SetupStep, collect_api_keys
from .envfile import get_env_value, read_env, update_env
from .logs import configure_logging
from .migrations import MigrationRunner
from .models import AppConfig, EasiarrConfig
from .registry import get_all_apps, get_app, get_arch_warning, resolve_port
from .rendering import ComposeRenderer
from .runtime.docker import DockerComposeRunner
from .storage import ConfigRepository, create_default_config
from .system import get_config_dir, get_default_root_dir
from .validators import run_validation

log = logging.getLogger(__name__)

app = typer.Typer(
    name="easiarr",
    help="Generate, deploy and auto-configure a docker compose media stack.",
    no_args_is_help=True,
    context_settings={"help_option_names": ["-h", "--help"]},
)
env_app = typer.Typer(help="Read and write values in the stack's .env file.", no_args_is_help=True)
app.add_typer(env_app, name="env")

console = Console()

STATUS_STYLES = {
    "success": "green",
    "ok": "green",
    "skipped": "yellow",
    "error": "red",
    "failed": "red",
    "running": "cyan",
}


def get_repo() -> ConfigRepository:
    return ConfigRepository(get_config_dir())


def fail(message: str) -> NoReturn:
    console.print(f"[red]Error:[/red] {message}")
    raise typer.Exit(code=1)


def load_config(repo: ConfigRepository) -> EasiarrConfig:
    try:
        return repo.load_stack()
    except FileNotFoundError:
        fail(f"No configuration at {repo.config_path}; run `easiarr init` first")


def compose_runner(repo: ConfigRepository) -> DockerComposeRunner:
    if not repo.compose_path.exists():
        fail(f"{repo.compose_path} not found; run `easiarr render` first")
    return DockerComposeRunner(repo.compose_path)


@app.callback()
def main_callback(verbose: bool = typer.Option(False, "--verbose", "-v", help="Log debug output to the console.")) -> None:
    configure_logging(get_config_dir(), verbose=verbose)


@app.command()
def init(
    root_dir: Optional[Path] = typer.Option(None, "--root-dir", help="Root of the media and config tree."),
    force: bool = typer.Option(False, "--force", help="Overwrite an existing configuration."),
) -> None:
    """Create a default configuration."""
    repo = get_repo()
    if repo.config_exists() and not force:
        fail(f"{repo.config_path} already exists (use --force to overwrite)")
    root = (root_dir or get_default_root_dir()).expanduser().resolve()
    config = create_default_config(root)
    repo.save_config(config)
    console.print(f"[green]Created[/green] {repo.config_path} with root dir {root}")


@app.command("apps")
def list_apps(category: Optional[str] = typer.Option(None, "--category", "-c", help="Only show one category.")) -> None:
    """List the apps easiarr can deploy."""
    if category and category not in APP_CATEGORIES:
        fail(f"Unknown category {category!r}; choose from {', '.join(APP_CATEGORIES)}")
    config = get_repo().load_config()
    table = Table(title="Available apps")
    table.add_column("ID", style="bold")
    table.add_column("Name")
    table.add_column("Category")
    table.add_column("Port", justify="right")
    table.add_column("Enabled")
    for definition in get_all_apps():
        if category and definition.category != category:
            continue
        enabled = bool(config and config.is_enabled(definition.id))
        warning = get_arch_warning(definition)
        table.add_row(
            definition.id,
            definition.name + (f" [yellow]({warning})[/yellow]" if warning else ""),
            APP_CATEGORIES.get(definition.category, definition.category),
            str(definition.default_port or "-"),
            "[green]yes[/green]" if enabled else "no",
        )
    console.print(table)


def _set_enabled(app_ids: List[str], enabled: bool, port: Optional[int] = None) -> None:
    repo = get_repo()
    config = load_config(repo)
    for app_id in app_ids:
        if get_app(app_id) is None:
            fail(f"Unknown app {app_id!r}")
        app_config = config.get_app(app_id)
        if app_config is None:
            app_config = AppConfig(id=app_id, enabled=enabled)
            config.apps.append(app_config)
        app_config.enabled = enabled
        if port is not None:
            app_config.port = port
    repo.save_config(config)
    state = "[green]enabled[/green]" if enabled else "[yellow]disabled[/yellow]"
    console.print(f"{', '.join(app_ids)} {state}")


@app.command()
def enable(
    app_ids: List[str] = typer.Argument(..., help="App ids to enable."),
    port: Optional[int] = typer.Option(None, "--port", help="Host port override (single app only)."),
) -> None:
    """Enable one or more apps."""
    if port is not None and len(app_ids) != 1:
        fail("--port needs exactly one app")
    _set_enabled(app_ids, True, port)


@app.command()
def disable(app_ids: List[str] = typer.Argument(..., help="App ids to disable.")) -> None:
    """Disable one or more apps."""
    _set_enabled(app_ids, False)


@app.command()
def render() -> None:
    """Write docker-compose.yml and update .env."""
    repo = get_repo()
    config = load_config(repo)
    result = ComposeRenderer().render(config, repo.config_dir)
    console.print(f"[green]Wrote[/green] {result.compose_path}")
    console.print(f"[green]Updated[/green] {result.env_path}")


@app.command()
def up() -> None:
    """Start the stack with docker compose."""
    repo = get_repo()
    config = load_config(repo)
    repo.ensure_directories(config)
    ok, detail = compose_runner(repo).up()
    if not ok:
        fail(detail)
    console.print("[green]Stack started[/green]")


@app.command()
def down() -> None:
    """Stop and remove the stack's containers."""
    ok, detail = compose_runner(get_repo()).down()
    if not ok:
        fail(detail)
    console.print("[green]Stack stopped[/green]")


def _check_services(config: EasiarrConfig, app_ids: List[str]) -> None:
    for app_id in app_ids:
        if not config.is_enabled(app_id):
            fail(f"{app_id} is not enabled")


@app.command()
def start(app_ids: Optional[List[str]] = typer.Argument(None, help="Apps to start; all when omitted.")) -> None:
    """Start stopped containers."""
    repo = get_repo()
    services = app_ids or []
    _check_services(load_config(repo), services)
    ok, detail = compose_runner(repo).start(*services)
    if not ok:
        fail(detail)
    console.print(f"[green]Started[/green] {', '.join(services) or 'all containers'}")


@app.command()
def stop(app_ids: Optional[List[str]] = typer.Argument(None, help="Apps to stop; all when omitted.")) -> None:
    """Stop containers without removing them."""
    repo = get_repo()
    services = app_ids or []
    _check_services(load_config(repo), services)
    ok, detail = compose_runner(repo).stop(*services)
    if not ok:
        fail(detail)
    console.print(f"[green]Stopped[/green] {', '.join(services) or 'all containers'}")


@app.command()
def restart(app_ids: Optional[List[str]] = typer.Argument(None, help="Apps to restart; all when omitted.")) -> None:
    """Restart containers."""
    repo = get_repo()
    services = app_ids or []
    _check_services(load_config(repo), services)
    ok, detail = compose_runner(repo).restart(*services)
    if not ok:
        fail(detail)
    console.print(f"[green]Restarted[/green] {', '.join(services) or 'all containers'}")


@app.command()
def pull() -> None:
    """Pull newer images for the stack."""
    ok, detail = compose_runner(get_repo()).pull()
    if not ok:
        fail(detail)
    console.print("[green]Images pulled[/green]; run `easiarr up` to recreate changed containers")


@app.command()
def logs(
    app_id: str = typer.Argument(..., help="App whose container output to show."),
    tail: int = typer.Option(100, "--tail", "-n", help="Number of lines from the end."),
    save: bool = typer.Option(False, "--save", help="Also write the output under logs/<app>/."),
    saved: bool = typer.Option(False, "--saved", help="List previously saved logs instead."),
) -> None:
    """Show (and optionally save) a container's recent output."""
    repo = get_repo()
    if saved:
        paths = repo.list_container_logs(app_id)
        if not paths:
            console.print(f"No saved logs for {app_id}")
        for path in paths:
            console.print(str(path), markup=False, highlight=False)
        return
    _check_services(load_config(repo), [app_id])
    ok, detail = compose_runner(repo).logs(app_id, tail=tail)
    if not ok:
        fail(detail)
    console.print(detail, markup=False, highlight=False)
    if save:
        console.print(f"[green]Saved[/green] {repo.save_container_log(app_id, detail)}")


def _print_step(step: SetupStep) -> None:
    if step.status == "running":
        return
    style = STATUS_STYLES.get(step.status, "white")
    console.print(f"[{style}]{step.status:>8}[/{style}] {step.name}" + (f": {step.message}" if step.message else ""))


@app.command()
def setup(host: str = typer.Option("localhost", "--host", help="Host the app ports are published on.")) -> None:
    """Collect API keys and run the first-run setup sequence."""
    repo = get_repo()
    config = load_config(repo)
    found = collect_api_keys(config, repo)
    if found:
        console.print(f"Collected {len(found)} API keys")
    events = FullAutoSetup(config, repo, host=host, on_update=_print_step).run()
    failed = [event for event in events if event.status == "failed"]
    if failed:
        fail(f"{len(failed)} setup steps failed")
    console.print("[green]Setup complete[/green]")


@app.command()
def bookmarks() -> None:
    """Write browser bookmark files for the enabled apps."""
    repo = get_repo()
    config = load_config(repo)
    for path in ComposeRenderer().save_bookmarks(config, repo.config_dir, read_env(repo.env_path)):
        console.print(f"[green]Wrote[/green] {path}")


@app.command()
def homepage() -> None:
    """Write Homepage's services.yaml."""
    repo = get_repo()
    config = load_config(repo)
    path = ComposeRenderer().save_homepage_services(config, read_env(repo.env_path))
    console.print(f"[green]Wrote[/green] {path}")


@app.command()
def soularr() -> None:
    """Write Soularr's config.ini from the Lidarr and slskd API keys."""
    repo = get_repo()
    config = load_config(repo)
    path = ComposeRenderer().save_soularr_config(config, read_env(repo.env_path))
    console.print(f"[green]Wrote[/green] {path}")


@app.command()
def migrate() -> None:
    """Apply pending .env and config migrations."""
    completed = MigrationRunner(get_repo()).run()
    if not completed:
        console.print("No pending migrations")
    for label in completed:
        console.print(f"[green]Applied[/green] {label}")


@app.command()
def status() -> None:
    """Show container state for the stack."""
    repo = get_repo()
    config = load_config(repo)
    containers = {}
    if repo.compose_path.exists():
        containers = {container.name: container for container in DockerComposeRunner(repo.compose_path).ps()}
    table = Table(title="Stack status")
    table.add_column("App", style="bold")
    table.add_column("Port", justify="right")
    table.add_column("State")
    for app_config in config.apps:
        if not app_config.enabled:
            continue
        definition = get_app(app_config.id)
        port = resolve_port(definition, app_config.port) if definition else app_config.port
        container = containers.get(app_config.id)
        if container is None:
            state = "[dim]not created[/dim]"
        elif container.status == "running":
            state = "[green]running[/green]"
        else:
            state = "[red]stopped[/red]"
        table.add_row(app_config.id, str(port or "-"), state)
    console.print(table)


@app.command()
def validate() -> None:
    """Check the root dir, dependencies and host ports."""
    config = load_config(get_repo())
    result = run_validation(config)
    table = Table(title="Validation")
    table.add_column("Check")
    table.add_column("Result")
    for key, value in result.checks.items():
        style = "green" if value in ("ok", "present", "skipped", "none", "in_use_by_stack") else "red"
        table.add_row(key, f"[{style}]{value}[/{style}]")
    console.print(table)
    for warning in result.warnings:
        console.print(f"[yellow]Warning:[/yellow] {warning}")
    if not result.ok:
        fail("Validation failed")


@env_app.command("get")
def env_get(key: str = typer.Argument(..., help="Variable name.")) -> None:
    """Print one .env value."""
    value = get_env_value(get_repo().env_path, key)
    if value is None:
        fail(f"{key} is not set")
    console.print(value, markup=False, highlight=False)


@env_app.command("set")
def env_set(
    key: str = typer.Argument(..., help="Variable name."),
    value: str = typer.Argument(..., help="New value."),
) -> None:
    """Set one .env value, keeping the others."""
    repo = get_repo()
    repo.ensure_config_dir()
    update_env(repo.env_path, {key: value})
    console.print(f"[green]Set[/green] {key}")


@app.command()
def trash(
    app_id: str = typer.Argument(..., help="*arr app id (radarr, sonarr, lidarr)."),
    preset_id: str = typer.Argument(..., help="Preset id, e.g. hd-bluray-web."),
    host: str = typer.Option("localhost", "--host", help="Host the app's port is published on."),
) -> None:
    """Apply a TRaSH quality profile preset to an *arr app."""
    repo = get_repo()
    config = load_config(repo)
    definition = get_app(app_id)
    if definition is None or not config.is_enabled(app_id):
        fail(f"{app_id} is not enabled")
    api_key = get_env_value(repo.env_path, api_key_env(app_id))
    if not api_key:
        fail(f"No {api_key_env(app_id)} in .env; run `easiarr setup` first")
    port = resolve_port(definition, config.get_app(app_id).port)
    try:
        result = apply_trash_preset(app_id, preset_id, host, port, api_key)
    except (ValueError, ArrApiError) as exc:
        fail(str(exc))
    console.print(
        f"[green]{result.preset.name}[/green]: {result.imported} custom formats imported, "
        f"{result.definitions_updated} quality definitions updated"
    )
    if result.failed:
        console.print(f"[yellow]Could not fetch:[/yellow] {', '.join(result.failed)}")


@app.command("sync-profiles")
def sync_profiles(host: str = typer.Option("localhost", "--host", help="Host Prowlarr's port is published on.")) -> None:
    """Create Prowlarr's sync profiles for indexers with API limits."""
    repo = get_repo()
    config = load_config(repo)
    if not config.is_enabled("prowlarr"):
        fail("prowlarr is not enabled")
    api_key = get_env_value(repo.env_path, api_key_env("prowlarr"))
    if not api_key:
        fail(f"No {api_key_env('prowlarr')} in .env; run `easiarr setup` first")
    port = resolve_port(get_app("prowlarr"), config.get_app("prowlarr").port)
    try:
        with ProwlarrClient(host, port, api_key) as prowlarr:
            profiles = prowlarr.create_limited_api_sync_profiles()
    except (ArrApiError, httpx.HTTPError) as exc:
        fail(str(exc))
    for profile in profiles.values():
        console.print(f"[green]Ready[/green] {profile.get('name')} (id {profile.get('id')})")


@app.command()
def serve(
    host: str = typer.Option("0.0.0.0", "--host", help="Bind address."),
    port: int = typer.Option(8443, "--port", help="Bind port."),
) -> None:
    """Run the HTTP API."""
    import uvicorn

    uvicorn.run("easiarr.app:app", host=host, port=port)


def main() -> None:
    app()
