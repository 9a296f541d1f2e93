"""
Mathmark CLI - Command-line host for Markdown arithmetic assertions.

Provides commands for listing, running and continuously re-running the
assertions found in a directory of documents.
"""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel

from mathmark.config import CONFIG_FILE_NAME, ConfigError, ConfigLoader, RunProfileKind
from mathmark.discovery.models import Node
from mathmark.discovery.tree import UnknownNodeError
from mathmark.discovery.workspace import FileSystemWorkspace
from mathmark.reporting.console import ConsoleReporter, render_tree
from mathmark.runtime.controller import MathTestController
from mathmark.runtime.scheduler import RunHandle

app = typer.Typer(
    name="mathmark",
    help="Run arithmetic assertions embedded in Markdown documents",
    add_completion=False,
)

console = Console()


def version_callback(value: bool) -> None:
    """Display version information."""
    if value:
        from mathmark import __version__

        console.print(f"[bold blue]Mathmark[/bold blue] v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None,
        "--version",
        "-v",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
) -> None:
    """Mathmark - Markdown arithmetic assertion runner."""
    pass


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


def _load(path: str, config_path: str | None, log_level: str | None) -> MathTestController:
    """Validate the path, load config and build an unresolved controller."""
    target_path = Path(path)
    if not target_path.is_dir():
        console.print(f"[red]Error:[/red] Directory not found: {path}")
        raise typer.Exit(1)

    try:
        config = ConfigLoader.discover(target_path, config_path)
    except (FileNotFoundError, ConfigError) as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e

    _configure_logging(log_level.upper() if log_level else config.log_level)
    workspace = FileSystemWorkspace(
        target_path,
        encoding=config.encoding,
        exclude_dirs=config.exclude_dirs,
        poll_interval_seconds=config.poll_interval_seconds,
    )
    return MathTestController(workspace, config=config, root=workspace.root)


def _select(controller: MathTestController, node_ids: list[str] | None) -> list[Node] | None:
    if not node_ids:
        return None
    try:
        return [controller.get(node_id) for node_id in node_ids]
    except UnknownNodeError as e:
        console.print(f"[red]Error:[/red] Unknown node: {e.node_id}")
        console.print("[dim]Use 'mathmark list --ids' to see node ids[/dim]")
        raise typer.Exit(1) from e


def _profile_kind(coverage: bool) -> RunProfileKind:
    return RunProfileKind.COVERAGE if coverage else RunProfileKind.RUN


@app.command("list")
def list_(
    path: str = typer.Argument(".", help="Directory containing documents"),
    ids: bool = typer.Option(False, "--ids", help="Show node ids"),
    format_: str = typer.Option("console", "--format", "-f", help="Output format: console, json"),
    config: str = typer.Option(None, "--config", "-c", help="Path to YAML config file"),
    log_level: str = typer.Option(None, "--log-level", help="Override the configured log level"),
) -> None:
    """
    Show the documents, sections and assertions discovered under a directory.
    """
    controller = _load(path, config, log_level)

    async def resolve() -> None:
        await controller.discover()
        await controller.resolve_all()

    asyncio.run(resolve())

    if format_ == "json":
        console.print_json(json.dumps(controller.tree.to_dict()))
        return

    console.print(render_tree(controller.documents))
    if ids:
        for node in controller.tree.assertions():
            console.print(f"  [dim]{node.id}[/dim]  {node.label}")
    console.print(f"\n[bold]{len(controller.tree.assertions())} assertion(s)[/bold]")


@app.command()
def run(
    path: str = typer.Argument(".", help="Directory containing documents"),
    coverage: bool = typer.Option(False, "--coverage", help="Collect line coverage"),
    only: list[str] = typer.Option(None, "--only", help="Node id to run (repeatable)"),
    exclude: list[str] = typer.Option(None, "--exclude", help="Node id to skip (repeatable)"),
    format_: str = typer.Option("console", "--format", "-f", help="Output format: console, json"),
    verbose: bool = typer.Option(False, "--verbose", "-V", help="Print run output lines"),
    config: str = typer.Option(None, "--config", "-c", help="Path to YAML config file"),
    log_level: str = typer.Option(None, "--log-level", help="Override the configured log level"),
) -> None:
    """
    Run assertions once.

    Exits with status 1 if any assertion fails.
    """
    controller = _load(path, config, log_level)
    if format_ != "json":
        controller.listeners.append(ConsoleReporter(console, verbose=verbose))
        console.print(
            Panel(
                f"[bold]Running:[/bold] {path}"
                + ("\n[dim]Coverage: enabled[/dim]" if coverage else ""),
                title="🧮 Mathmark",
                border_style="green",
            )
        )

    async def execute():
        await controller.discover()
        if only or exclude:
            await controller.resolve_all()
        handle = controller.request_run(
            include=_select(controller, only),
            exclude=_select(controller, exclude),
            profile=controller.config.get_profile(_profile_kind(coverage)),
        )
        return await handle.wait()

    summary = asyncio.run(execute())

    if format_ == "json":
        console.print_json(json.dumps(summary.to_dict()))

    if not summary.success:
        raise typer.Exit(1)


@app.command()
def watch(
    path: str = typer.Argument(".", help="Directory containing documents"),
    coverage: bool = typer.Option(False, "--coverage", help="Collect line coverage"),
    only: list[str] = typer.Option(None, "--only", help="Node id to watch (repeatable)"),
    verbose: bool = typer.Option(False, "--verbose", "-V", help="Print run output lines"),
    config: str = typer.Option(None, "--config", "-c", help="Path to YAML config file"),
    log_level: str = typer.Option(None, "--log-level", help="Override the configured log level"),
) -> None:
    """
    Run assertions, then re-run them whenever their documents change.

    Stop with Ctrl+C.
    """
    controller = _load(path, config, log_level)
    controller.listeners.append(ConsoleReporter(console, verbose=verbose))
    profile = controller.config.get_profile(_profile_kind(coverage))

    console.print(
        Panel(
            f"[bold]Watching:[/bold] {path}\n[dim]Profile: {profile.name}[/dim]",
            title="👀 Mathmark Watch",
            border_style="blue",
        )
    )

    async def watch_forever() -> None:
        await controller.discover()
        await controller.resolve_all()
        include = _select(controller, only)

        initial = controller.request_run(include=include, profile=profile)
        if isinstance(initial, RunHandle):
            await initial.wait()

        controller.request_run(include=include, profile=profile, continuous=True)
        await controller.watch_workspace()

    try:
        asyncio.run(watch_forever())
    except KeyboardInterrupt:
        console.print("\n[dim]Stopped watching[/dim]")


@app.command()
def init(
    path: str = typer.Argument(".", help="Path to initialize Mathmark config"),
    force: bool = typer.Option(False, "--force", "-f", help="Overwrite existing config"),
) -> None:
    """
    Initialize Mathmark configuration in a project.

    Creates mathmark.yaml with default settings.
    """
    target_path = Path(path)
    config_file = target_path / CONFIG_FILE_NAME

    if config_file.exists() and not force:
        console.print(f"[yellow]⚠️  Config file already exists:[/yellow] {config_file}")
        console.print("[dim]Use --force to overwrite[/dim]")
        raise typer.Exit(1)

    target_path.mkdir(parents=True, exist_ok=True)

    default_config = """\
# Mathmark Configuration
# Arithmetic assertions embedded in Markdown documents

# Documents to scan
include: "**/*.md"
exclude_dirs:
  - .git
  - node_modules
  - .venv

# Watch settings
poll_interval_seconds: 0.5

encoding: utf-8
log_level: WARNING

# Run profiles
profiles:
  - name: Run Tests
    kind: run
  - name: Run with Coverage
    kind: coverage
"""

    config_file.write_text(default_config)

    console.print(f"[green]✓[/green] Created configuration: {config_file}")
    console.print("\n[bold]Next steps:[/bold]")
    console.print("  1. Write lines like [cyan]2 + 2 = 4[/cyan] in your Markdown")
    console.print("  2. Run [cyan]mathmark list <path>[/cyan] to see what was found")
    console.print("  3. Run [cyan]mathmark run <path>[/cyan] to check them")


if __name__ == "__main__":
    app()
