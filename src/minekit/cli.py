"""MineKit command-line interface."""

from __future__ import annotations

import logging
import re
import sys
from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as get_version
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from .catalog import load_catalog
from .config import InstallerSettings, load_settings
from .exceptions import MineKitError
from .fetcher import Fetcher, HttpTransport, resolve_target_version
from .merger import MARKER, has_marker
from .models import (
    DocumentState,
    InstallTarget,
    PlanAction,
    ResourceCatalog,
    RunResult,
)
from .orchestrator import SyncOrchestrator, installed_version
from .recovery import StateFileStatus, recover_state_file

app = typer.Typer(
    name="mine",
    help="MineKit: install and sync Mine workflows for Antigravity",
    add_completion=False,
)
console = Console()

FATAL_HINT = (
    "Run 'mine install' again to finish the update. "
    "Do not edit the managed files by hand."
)


def _get_version_string() -> str:
    """Get version string from package metadata or pyproject.toml."""
    try:
        return get_version("minekit")
    except PackageNotFoundError:
        pass

    # Try to read version from pyproject.toml for development installs
    pyproject_path = Path(__file__).parent.parent.parent / "pyproject.toml"
    if pyproject_path.exists():
        content = pyproject_path.read_text()
        match = re.search(r'version\s*=\s*["\']([^"\']+)["\']', content)
        if match:
            return f"{match.group(1)} (development)"

    return "unknown"


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def version_callback(value: bool) -> None:
    """Callback for --version flag."""
    if value:
        console.print(f"MineKit version {_get_version_string()}")
        raise typer.Exit


@app.callback()
def main_callback(
    version: bool = typer.Option(
        False,
        "--version",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Log each fetch and write to stderr",
    ),
) -> None:
    """MineKit: install and sync Mine workflows for Antigravity."""
    _configure_logging(verbose)


def _display_path(path: Path) -> str:
    try:
        return "~/" + str(Path(path).relative_to(Path.home()))
    except ValueError:
        return str(path)


def _settings(
    config: Path | None,
    home: Path | None,
    catalog: Path | None = None,
    source: str | None = None,
    concurrency: int | None = None,
    timeout: float | None = None,
) -> InstallerSettings:
    return load_settings(
        config,
        base_root=home,
        catalog=catalog,
        source_base=source,
        concurrency=concurrency,
        timeout=timeout,
    )


def _orchestrator(
    settings: InstallerSettings,
    catalog: ResourceCatalog,
    fetcher: Fetcher | None = None,
    version: str | None = None,
) -> SyncOrchestrator:
    return SyncOrchestrator(
        catalog,
        InstallTarget.from_base_root(settings.base_root),
        fetcher,
        version=version,
        concurrency=settings.concurrency,
        timeout=settings.timeout,
        use_lock=settings.lock,
        lock_ttl=settings.lock_ttl,
    )


def _render_result(result: RunResult, verb: str) -> None:
    report = result.report
    plan = result.plan

    if plan is not None and plan.action == PlanAction.UP_TO_DATE:
        console.print(
            f"[green]✓[/green] Mine {plan.target_version} is already installed, "
            "nothing to do",
        )
        return

    table = Table(title=f"MineKit {verb}")
    table.add_column("Outcome", style="cyan")
    table.add_column("Files", justify="right")
    table.add_row("[green]Succeeded[/green]", str(len(report.succeeded)))
    table.add_row("[red]Failed[/red]", str(len(report.failed)))
    table.add_row("[yellow]Skipped (optional)[/yellow]", str(len(report.skipped_optional)))
    console.print(table)

    if report.has_failures:
        console.print("[red]Some files could not be installed:[/red]")
    for failure in report.failed:
        console.print(
            f"  [red]✗[/red] {failure.descriptor.group}/{failure.descriptor.name} "
            f"[dim]({failure.kind.value})[/dim]",
        )
    for skipped in report.skipped_optional:
        console.print(f"  [yellow]-[/yellow] {skipped.group}/{skipped.name} [dim](optional)[/dim]")


def _finish(result: RunResult, verb: str, success: str) -> None:
    _render_result(result, verb)
    if not result.ok:
        console.print(f"[red]Error:[/red] {verb} did not complete. {FATAL_HINT}")
        raise typer.Exit(1)
    if result.plan is None or result.plan.action != PlanAction.UP_TO_DATE:
        console.print(f"[green]✓[/green] {success}")


def _sync_command(
    *,
    upgrade: bool,
    force: bool,
    remote_version: bool,
    config: Path | None,
    home: Path | None,
    catalog_path: Path | None,
    source: str | None,
    concurrency: int | None,
    timeout: float | None,
) -> None:
    settings = _settings(config, home, catalog_path, source, concurrency, timeout)
    catalog = load_catalog(settings.catalog, source_base=settings.source_base)

    with HttpTransport() as transport:
        fetcher = Fetcher(transport, max_attempts=settings.max_attempts)
        version = catalog.version
        if remote_version:
            version = resolve_target_version(
                fetcher,
                catalog.source_base,
                catalog.version,
                settings.timeout,
            )

        orchestrator = _orchestrator(settings, catalog, fetcher, version)
        installed = orchestrator.version_store.read()
        console.print(f"[bold blue]Mine {version}[/bold blue]")
        if installed.is_installed:
            console.print(f"  Installed: {installed.installed_version} → {version}")
        console.print(f"  Base root: {_display_path(orchestrator.target.base_root)}\n")

        if upgrade:
            result = orchestrator.upgrade(force=force)
        else:
            result = orchestrator.install(force=force)

    verb = "update" if upgrade else "install"
    _finish(result, verb, f"Mine {version} {verb} complete. Type '/plan' to try it.")


@app.command()
def install(
    force: bool = typer.Option(
        False,
        "--force",
        "-f",
        help="Refetch everything even when already up to date",
    ),
    remote_version: bool = typer.Option(
        False,
        "--remote-version",
        help="Target the version published at the source instead of the catalog's",
    ),
    config: Path | None = typer.Option(
        None,
        "--config",
        envvar="MINE_CONFIG",
        help="Settings YAML file",
    ),
    home: Path | None = typer.Option(
        None,
        "--home",
        help="Base root (defaults to ~/.gemini/antigravity)",
    ),
    catalog_path: Path | None = typer.Option(
        None,
        "--catalog",
        help="Catalog YAML (defaults to the bundled catalog)",
    ),
    source: str | None = typer.Option(
        None,
        "--source",
        help="Override the catalog's source base URL",
    ),
    concurrency: int | None = typer.Option(
        None,
        "--concurrency",
        "-j",
        help="Parallel downloads (default 4)",
    ),
    timeout: float | None = typer.Option(
        None,
        "--timeout",
        help="Seconds per download (default 10)",
    ),
) -> None:
    """Install Mine workflows, schemas, templates, and skills.

    Re-running is safe: an up-to-date installation is left alone, and an
    older one is upgraded in place. Content you added to GEMINI.md above
    the Mine section is preserved.
    """
    try:
        _sync_command(
            upgrade=False,
            force=force,
            remote_version=remote_version,
            config=config,
            home=home,
            catalog_path=catalog_path,
            source=source,
            concurrency=concurrency,
            timeout=timeout,
        )
    except MineKitError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e


@app.command()
def update(
    force: bool = typer.Option(False, "--force", "-f", help="Refetch even when up to date"),
    remote_version: bool = typer.Option(
        True,
        "--remote-version/--catalog-version",
        help="Target the published version (default) or the catalog's",
    ),
    config: Path | None = typer.Option(None, "--config", envvar="MINE_CONFIG", help="Settings YAML file"),
    home: Path | None = typer.Option(None, "--home", help="Base root"),
    catalog_path: Path | None = typer.Option(None, "--catalog", help="Catalog YAML"),
    source: str | None = typer.Option(None, "--source", help="Source base URL"),
    concurrency: int | None = typer.Option(None, "--concurrency", "-j", help="Parallel downloads"),
    timeout: float | None = typer.Option(None, "--timeout", help="Seconds per download"),
) -> None:
    """Upgrade an existing Mine installation."""
    try:
        _sync_command(
            upgrade=True,
            force=force,
            remote_version=remote_version,
            config=config,
            home=home,
            catalog_path=catalog_path,
            source=source,
            concurrency=concurrency,
            timeout=timeout,
        )
    except MineKitError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e


@app.command()
def uninstall(
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
    config: Path | None = typer.Option(None, "--config", envvar="MINE_CONFIG", help="Settings YAML file"),
    home: Path | None = typer.Option(None, "--home", help="Base root"),
    catalog_path: Path | None = typer.Option(None, "--catalog", help="Catalog YAML"),
) -> None:
    """Remove Mine files, the Mine section of GEMINI.md, and preferences.

    Works offline. Files you added next to the installed ones are kept.
    """
    try:
        settings = _settings(config, home, catalog_path)
        catalog = load_catalog(settings.catalog)

        if not yes and not typer.confirm("Remove Mine and all of its settings?"):
            console.print("[yellow]Uninstall cancelled.[/yellow]")
            raise typer.Exit(0)

        result = _orchestrator(settings, catalog).uninstall()
    except MineKitError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e

    _finish(result, "uninstall", "Mine has been removed.")


@app.command()
def status(
    config: Path | None = typer.Option(None, "--config", envvar="MINE_CONFIG", help="Settings YAML file"),
    home: Path | None = typer.Option(None, "--home", help="Base root"),
    catalog_path: Path | None = typer.Option(None, "--catalog", help="Catalog YAML"),
) -> None:
    """Show what is installed. Never touches the network."""
    try:
        settings = _settings(config, home, catalog_path)
        catalog = load_catalog(settings.catalog)
    except MineKitError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e

    target = InstallTarget.from_base_root(settings.base_root)
    state = installed_version(target)

    document = DocumentState.ABSENT
    if target.managed_document.exists():
        text = target.managed_document.read_text(encoding="utf-8", errors="replace")
        document = DocumentState.BLOCK_PRESENT if has_marker(text, MARKER) else DocumentState.NO_BLOCK

    table = Table(title="MineKit Status")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Base Root", _display_path(target.base_root))
    table.add_row("Installed Version", state.installed_version or "not installed")
    table.add_row("Catalog Version", catalog.version)
    table.add_row("GEMINI.md", document.value.replace("_", " "))
    table.add_row("Preferences", "present" if target.preferences_file.exists() else "absent")
    for group in catalog.groups():
        present = sum(1 for d in group.resources if target.destination(group, d).is_file())
        table.add_row(f"{group.name.capitalize()}", f"{present}/{len(group.resources)}")
    console.print(table)


@app.command()
def repair(
    state_file: Path = typer.Argument(..., help="State file to check, e.g. .brain/brain.json"),
    template: Path | None = typer.Option(
        None,
        "--template",
        help="Template to recreate from (defaults to the installed <name>.example.json)",
    ),
    schema: Path | None = typer.Option(
        None,
        "--schema",
        help="JSON schema to validate against (defaults to the installed <name>.schema.json)",
    ),
    home: Path | None = typer.Option(None, "--home", help="Base root"),
) -> None:
    """Back up and recreate a malformed brain/session state file."""
    try:
        settings = _settings(None, home)
        base = InstallTarget.from_base_root(settings.base_root).base_root
        stem = state_file.name.split(".")[0]
        if template is None:
            template = base / "templates" / f"{stem}.example.json"
        if schema is None:
            candidate = base / "schemas" / f"{stem}.schema.json"
            schema = candidate if candidate.exists() else None

        result = recover_state_file(state_file, template, schema)
    except MineKitError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e

    if result.check.status == StateFileStatus.OK:
        console.print(f"[green]✓[/green] {state_file} is healthy, nothing to repair")
        return
    if result.backup_path is not None:
        console.print(f"[yellow]![/yellow] {state_file} was malformed: {result.check.reason}")
        console.print(f"  Backup saved to {result.backup_path}")
    console.print(f"[green]✓[/green] Recreated {state_file} from {template}")


@app.command()
def version() -> None:
    """Show MineKit version information."""
    console.print(f"MineKit version {_get_version_string()}")


def main() -> None:
    """Entry point for the CLI."""
    try:
        app()
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted[/yellow]")
        sys.exit(130)


if __name__ == "__main__":
    main()
