"""CLI interface for the Claude CLI locator."""

import asyncio
import logging
import sys
from typing import Optional

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from .cache import DetectionCache
from .cli_utils import current_host_platform, find_cli_executable, load_shell_environment
from .errors import InvalidConfigurationError, LocatorError, NotDetectedError
from .execution import SubprocessRunner
from .manager import DetectionManager
from .models import DetectionConfig, DetectionResult
from .path_translator import PathTranslator
from .settings import JsonSettingsStore
from .subsystems.wsl import LinuxSubsystem

console = Console()
err_console = Console(stderr=True)

# Windows-compatible symbols (cp1252 doesn't support Unicode checkmarks)
if sys.platform == "win32":
    SYM_OK = "[OK]"
    SYM_FAIL = "[X]"
else:
    SYM_OK = "✓"
    SYM_FAIL = "✗"


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )


def create_manager(ctx: click.Context) -> DetectionManager:
    """Build the manager from the global options."""
    return DetectionManager(config=ctx.obj["config"], settings=ctx.obj["settings"])


def print_result(result: DetectionResult) -> None:
    if result.success:
        console.print(f"[green]{SYM_OK}[/green] Claude CLI found")
        console.print(f"  [bold]Path:[/bold] {result.cli_path}")
        if result.resolved_path:
            console.print(f"  [bold]Resolved:[/bold] {result.resolved_path}")
        console.print(f"  [bold]Version:[/bold] {result.version or 'unknown'}")
        console.print(f"  [bold]Method:[/bold] {result.detection_method}")
        console.print(f"  [bold]Mode:[/bold] {result.execution_mode.value}")
        if result.subsystem_distribution:
            console.print(f"  [bold]Distribution:[/bold] {result.subsystem_distribution}")
        for key, value in sorted(result.metadata.items()):
            if value is not None:
                console.print(f"  [dim]{key}: {value}[/dim]")
        return

    console.print(f"[red]{SYM_FAIL}[/red] {result.error.message} [dim]({result.error.kind.value})[/dim]")
    if result.suggestions:
        console.print("\nSuggestions:")
        for suggestion in result.suggestions:
            console.print(f"  - {suggestion}")


@click.group()
@click.version_option(package_name="claude-locator")
@click.option('--verbose', '-v', is_flag=True, help='Show detection steps as they run')
@click.option('--cache-file', type=click.Path(dir_okay=False), help='Detection cache file')
@click.option('--settings-file', type=click.Path(dir_okay=False), help='Settings file holding the custom CLI path')
@click.option('--cli-path', help='Use this CLI path instead of the configured one')
@click.option('--no-cache', is_flag=True, help='Ignore the detection cache')
@click.pass_context
def main(
    ctx: click.Context,
    verbose: bool,
    cache_file: Optional[str],
    settings_file: Optional[str],
    cli_path: Optional[str],
    no_cache: bool
):
    """Claude CLI Locator - find, verify and run the Claude CLI on any host."""
    configure_logging(verbose)
    options = {"custom_cli_path": cli_path, "use_cache": not no_cache}
    if cache_file:
        options["cache_file"] = cache_file
    ctx.ensure_object(dict)
    ctx.obj["config"] = DetectionConfig(**options)
    ctx.obj["settings"] = JsonSettingsStore(settings_file)


@main.command()
@click.option('--fresh', is_flag=True, help='Clear the cache and probe again')
@click.option('--json', 'as_json', is_flag=True, help='Print the raw detection result as JSON')
@click.option('--shell-env', is_flag=True, help='Import the login shell environment first (Unix)')
@click.pass_context
def detect(ctx: click.Context, fresh: bool, as_json: bool, shell_env: bool):
    """Detect the Claude CLI."""
    if shell_env:
        load_shell_environment()
    manager = create_manager(ctx)
    result = asyncio.run(manager.redetect_claude() if fresh else manager.detect_claude())

    if as_json:
        click.echo(result.model_dump_json(indent=2))
    else:
        print_result(result)
    if not result.success:
        ctx.exit(1)


@main.command()
@click.pass_context
def stats(ctx: click.Context):
    """Show detection diagnostics."""
    manager = create_manager(ctx)
    info = asyncio.run(manager.get_detection_stats())

    table = Table(title="Detection Stats", show_header=False)
    table.add_column("Field", style="bold")
    table.add_column("Value")
    for field, value in info.model_dump(mode="json").items():
        table.add_row(field, "" if value is None else str(value))
    console.print(table)


@main.command('list')
@click.pass_context
def list_installations(ctx: click.Context):
    """List every Claude CLI installation found."""
    manager = create_manager(ctx)
    installations = asyncio.run(manager.list_installations())
    if not installations:
        console.print("[yellow]No Claude installations found[/yellow]")
        ctx.exit(1)

    table = Table(title="Claude Installations")
    table.add_column("Path")
    table.add_column("Version")
    table.add_column("Source")
    table.add_column("Type")
    for inst in installations:
        table.add_row(inst.path, inst.version or "unknown", inst.source, inst.installation_type.value)
    console.print(table)


@main.command()
@click.argument('path')
@click.pass_context
def verify(ctx: click.Context, path: str):
    """Check that PATH is a working Claude CLI."""
    manager = create_manager(ctx)
    if asyncio.run(manager.verify_claude(path)):
        console.print(f"[green]{SYM_OK}[/green] {path} is a working Claude CLI")
    else:
        console.print(f"[red]{SYM_FAIL}[/red] {path} is not a working Claude CLI")
        ctx.exit(1)


@main.command()
@click.pass_context
def which(ctx: click.Context):
    """Quick PATH lookup without verification."""
    found = find_cli_executable(ctx.obj["config"].command_names)
    if not found:
        console.print("[yellow]Claude CLI not found on PATH[/yellow]")
        ctx.exit(1)
    click.echo(found)


@main.command(context_settings={"ignore_unknown_options": True})
@click.option('--cwd', type=click.Path(), help='Working directory (host path)')
@click.argument('args', nargs=-1, type=click.UNPROCESSED)
@click.pass_context
def run(ctx: click.Context, cwd: Optional[str], args: tuple[str, ...]):
    """Run the detected Claude CLI with ARGS.

    \b
    Examples:
        claude-locator run -- --version
        claude-locator run --cwd ./project -- -p "hello"
    """
    manager = create_manager(ctx)

    async def _run():
        result = await manager.detect_claude()
        if not result.success:
            return result, None
        return result, await manager.execute(list(args), cwd)

    try:
        detection, process = asyncio.run(_run())
    except (InvalidConfigurationError, NotDetectedError) as e:
        console.print(f"[red]Error:[/red] {e}")
        ctx.exit(2)

    if process is None:
        print_result(detection)
        ctx.exit(1)
    if process.stdout:
        click.echo(process.stdout, nl=False)
    if process.stderr:
        click.echo(process.stderr, nl=False, err=True)
    if process.timed_out:
        console.print("[red]Claude CLI timed out[/red]")
    ctx.exit(process.exit_code if process.exit_code >= 0 else 1)


@main.command()
@click.pass_context
def distros(ctx: click.Context):
    """List WSL distributions (Windows only)."""
    subsystem = LinuxSubsystem(SubprocessRunner(current_host_platform()), ctx.obj["config"])
    info = asyncio.run(subsystem.detect_environment())
    if not info.available:
        console.print("[yellow]WSL is not available[/yellow]")
        ctx.exit(1)

    table = Table(title=f"WSL Distributions ({info.version})")
    table.add_column("Name")
    table.add_column("State")
    table.add_column("Version")
    table.add_column("Default")
    for dist in info.distributions:
        table.add_row(dist.name, dist.state.value, dist.version, SYM_OK if dist.is_default else "")
    console.print(table)


@main.command()
@click.argument('path')
def translate(path: str):
    """Translate PATH between Windows and WSL forms."""
    try:
        click.echo(PathTranslator().smart_convert(path))
    except InvalidConfigurationError as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)


@main.group()
def cache():
    """Manage the detection cache."""
    pass


@cache.command('clear')
@click.pass_context
def cache_clear(ctx: click.Context):
    """Delete the detection cache file."""
    config = ctx.obj["config"]
    DetectionCache(config.cache_path, current_host_platform()).clear()
    console.print(f"[green]OK[/green] Cleared {config.cache_path}")


@main.group()
def config():
    """Manage the custom Claude CLI path."""
    pass


@config.command('set-path')
@click.argument('path')
@click.pass_context
def config_set_path(ctx: click.Context, path: str):
    """Verify PATH and save it as the Claude CLI to use."""
    manager = create_manager(ctx)
    try:
        result = asyncio.run(manager.set_custom_cli_path(path))
    except LocatorError as e:
        console.print(f"[red]Error:[/red] {e}")
        ctx.exit(1)
    console.print(f"[green]OK[/green] Saved custom Claude path: {path}")
    print_result(result)


@config.command('reset')
@click.pass_context
def config_reset(ctx: click.Context):
    """Forget the custom path and detect automatically."""
    manager = create_manager(ctx)
    result = asyncio.run(manager.reset_to_auto_discovery())
    console.print("[green]OK[/green] Custom Claude path cleared")
    print_result(result)


if __name__ == "__main__":
    main()
