"""Main CLI entry point for Code Reveal."""

import logging
import sys
import threading
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import BarColumn, Progress, TextColumn
from rich.table import Table
from rich import box

from ..core.config import CodeRevealConfig, ConfigManager
from ..core.diff_viewer import DiffViewer
from ..core.events import EventRecorder, SessionEvent, SessionEventType
from ..core.models import DiffFormat
from ..core.timers import ManualTimerBackend, ThreadingTimerBackend
from ..core.workspace import Workspace
from ..demo import DEMO_BASELINE, demo_files


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=verbose)],
        force=True,
    )


@click.group()
@click.option('--config', '-c', type=click.Path(exists=True),
              help='Path to configuration file')
@click.option('--project-root', '-p', type=click.Path(exists=True),
              help='Project root directory')
@click.option('--verbose', '-v', is_flag=True, help='Enable verbose output')
@click.pass_context
def cli(ctx: click.Context, config: Optional[str], project_root: Optional[str], verbose: bool):
    """Code Reveal - Simulated live authorship of program text."""
    ctx.ensure_object(dict)
    _configure_logging(verbose)

    project_path = Path(project_root) if project_root else Path.cwd()
    config_manager = ConfigManager(project_path)

    if config:
        config_data = config_manager.load_config(Path(config))
    else:
        config_data = config_manager.load_config()

    ctx.obj['config'] = config_data
    ctx.obj['config_manager'] = config_manager
    ctx.obj['project_root'] = project_path
    ctx.obj['verbose'] = verbose


@cli.command()
@click.option('--force', is_flag=True, help='Overwrite an existing configuration file')
@click.pass_context
def init(ctx: click.Context, force: bool):
    """Write a default configuration file for this project."""
    config_manager = ctx.obj['config_manager']
    config_path = config_manager.get_config_path()

    if config_path.exists() and not force:
        click.echo(f"Configuration already exists: {config_path}")
        click.echo("Use --force to overwrite.")
        return

    if config_manager.create_default_config_file():
        click.echo(f"✓ Created configuration file: {config_path}")
    else:
        click.echo("✗ Failed to create configuration file", err=True)
        sys.exit(1)


@cli.command()
@click.pass_context
def config(ctx: click.Context):
    """Show current configuration."""
    config_data = ctx.obj['config']
    config_manager = ctx.obj['config_manager']

    click.echo(f"Configuration file: {config_manager.get_config_path()}")
    click.echo("Current configuration:")
    click.echo("=" * 50)

    for section in ('reveal', 'session', 'history', 'diff', 'display'):
        click.echo(f"{section.capitalize()}:")
        for key, value in config_data.get(section, {}).items():
            click.echo(f"  {key}: {value}")


@cli.command()
@click.option('--validate-only', is_flag=True, help='Only validate configuration without showing details')
@click.pass_context
def validate(ctx: click.Context, validate_only: bool):
    """Validate the current configuration."""
    config_data = ctx.obj['config']
    config_manager = ctx.obj['config_manager']

    validation_errors = config_manager.validate_config(config_data)

    if validation_errors:
        click.echo("Configuration validation failed:", err=True)
        for error in validation_errors:
            click.echo(f"  ✗ {error}", err=True)
        sys.exit(1)

    click.echo("✓ Configuration is valid")
    if not validate_only:
        click.echo(f"Configuration file: {config_manager.get_config_path()}")


@cli.command()
@click.option('--chars-per-tick', type=int, help='Characters revealed per tick')
@click.option('--tick-ms', type=float, help='Milliseconds between ticks')
@click.option('--instant', is_flag=True, help='Replay on a virtual clock without waiting')
@click.option('--show-diff', is_flag=True, help='Show diffs of modified files afterwards')
@click.option('--format', '-F', 'diff_format', type=click.Choice(['unified', 'side-by-side']),
              default=None, help='Diff output format')
@click.option('--no-color', is_flag=True, help='Disable syntax highlighting and colors')
@click.pass_context
def demo(ctx: click.Context, chars_per_tick: Optional[int], tick_ms: Optional[float],
         instant: bool, show_diff: bool, diff_format: Optional[str], no_color: bool):
    """Stream the built-in demo files and show the result."""
    config_manager = ctx.obj['config_manager']
    config_data = ctx.obj['config']

    if chars_per_tick is not None:
        config_data['reveal']['chars_per_tick'] = chars_per_tick
    if tick_ms is not None:
        config_data['reveal']['tick_interval_ms'] = tick_ms

    validation_errors = config_manager.validate_config(config_data)
    if validation_errors:
        click.echo("Configuration validation failed:", err=True)
        for error in validation_errors:
            click.echo(f"  ✗ {error}", err=True)
        sys.exit(1)

    typed_config = CodeRevealConfig.from_dict(config_data)
    backend = ManualTimerBackend() if instant else ThreadingTimerBackend()
    console = Console(no_color=no_color)
    finished = threading.Event()
    recorder = EventRecorder()

    with Workspace(typed_config, backend) as workspace:
        for file_path, content in DEMO_BASELINE.items():
            workspace.open_file(file_path, content)

        files = demo_files()
        show_progress = typed_config.display.progress_indicators and not instant

        with Progress(TextColumn("{task.description}"), BarColumn(),
                      TextColumn("{task.percentage:>5.1f}%"),
                      console=console, disable=not show_progress) as progress:
            overall_task = progress.add_task("Overall", total=100)
            file_task = progress.add_task("Waiting", total=100)

            def on_event(event: SessionEvent) -> None:
                recorder(event)
                if event.progress is not None:
                    progress.update(overall_task, completed=event.progress.overall_progress)
                    progress.update(file_task, completed=event.progress.current_file_progress)
                if event.event_type == SessionEventType.CURRENT_FILE_CHANGED:
                    progress.update(file_task, description=event.file_change.file_path, completed=0)
                if event.event_type in (SessionEventType.SESSION_COMPLETED,
                                        SessionEventType.SESSION_CANCELLED):
                    finished.set()

            workspace.subscribe(on_event)
            workspace.start_streaming_session(files)

            if instant:
                backend.run_until_idle()
            else:
                try:
                    while not finished.wait(timeout=0.1):
                        pass
                except KeyboardInterrupt:
                    workspace.cancel_streaming_session()
                    click.echo("Streaming cancelled.")

        _print_summary(console, workspace, files, recorder)

        if show_diff:
            viewer = DiffViewer(
                context_lines=typed_config.diff.context_lines,
                enable_colors=not no_color,
                syntax_highlighting=typed_config.display.syntax_highlighting,
            )
            fmt = DiffFormat(diff_format or typed_config.display.diff_format)
            for file_path in DEMO_BASELINE:
                preview = workspace.request_diff_preview(file_path, 0)
                click.echo("")
                click.echo(viewer.render(preview, fmt))


def _print_summary(console: Console, workspace: Workspace, files, recorder: EventRecorder) -> None:
    failed = {error.file_path for error in workspace.errors}
    session = workspace.session

    table = Table(show_header=True, header_style="bold magenta", box=box.SIMPLE)
    table.add_column("File", style="cyan")
    table.add_column("Action", style="yellow")
    table.add_column("Language", style="green")
    table.add_column("Revision", style="blue")
    table.add_column("Status")

    for file_change in files:
        path = file_change.file_path
        if path in failed:
            status, revision = "[red]failed[/red]", "-"
        elif workspace.store.has_file(path) and workspace.store.can_undo_file(path):
            status = "[green]revealed[/green]"
            revision = str(workspace.store.current_revision(path).revision)
        else:
            status, revision = "[dim]pending[/dim]", "-"
        table.add_row(path, file_change.action.value, file_change.resolved_language,
                      revision, status)

    console.print(table)
    state = session.status.value if session else "idle"
    console.print(f"Session {session.id if session else '-'}: {state}, "
                  f"{len(recorder.of_type(SessionEventType.PROGRESS))} progress events, "
                  f"{len(workspace.errors)} errors")
