"""CLI commands for HarborQA."""

from __future__ import annotations

import logging
import platform
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

from harborqa import __version__
from harborqa.adapters import builtin_registries
from harborqa.cleanup.discovery import DiscoverOptions
from harborqa.cleanup.orchestrator import CleanupOrchestrator, ResourceType, format_cleanup_result
from harborqa.cli.scaffold import parse_templates, scaffold_suite
from harborqa.config.durations import parse_duration
from harborqa.config.settings import DEFAULT_CONFIG_FILE, HarborSettings, load_settings
from harborqa.core.bus import Consumer
from harborqa.core.cancellation import CancellationToken, ShutdownController
from harborqa.errors.base import HarborQAError
from harborqa.infra.docker import get_runtime
from harborqa.logging_setup import setup_logging
from harborqa.reporters import ConsoleReporter, HTMLReporter, JSONReporter
from harborqa.runner import Runner, SuiteFilter, discover_suites, dry_run

logger = logging.getLogger(__name__)

console = Console()
err_console = Console(stderr=True)


def _settings(base_dir: str | None, **overrides) -> HarborSettings:
    config_file = Path(base_dir or ".") / DEFAULT_CONFIG_FILE
    try:
        return load_settings(config_file, base_dir=base_dir, **overrides)
    except ValueError as e:
        raise click.BadParameter(str(e)) from e


def _duration(ctx: click.Context, param: click.Parameter, value: str | None) -> float | None:
    if value is None:
        return None
    try:
        return parse_duration(value)
    except ValueError as e:
        raise click.BadParameter(str(e)) from e


def _fail(error: HarborQAError, verbose: bool = False) -> None:
    err_console.print(f"[red]Error:[/red] {error}", highlight=False)
    if verbose:
        err_console.print(error.format_verbose(), highlight=False)
    for suggestion in error.suggestions:
        err_console.print(f"  [dim]hint:[/dim] {suggestion}", highlight=False)
    sys.exit(1)


@click.group(invoke_without_command=True)
@click.version_option(__version__, prog_name="harborqa")
@click.pass_context
def cli(ctx: click.Context) -> None:
    """HarborQA - end-to-end tests in ephemeral container environments.

    Running without a command is the same as ``harborqa run``.
    """
    if ctx.invoked_subcommand is None:
        ctx.invoke(run)


@cli.command()
@click.option("--suite", "-s", "suite_filter", default=None, help="Comma-separated suite names or globs")
@click.option("--parallel", "-p", is_flag=True, help="Run suites in parallel")
@click.option("--verbose", "-v", is_flag=True, help="Show container and cleanup progress")
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.option("--html", "html_path", type=click.Path(dir_okay=False), default=None, help="Write an HTML report")
@click.option("--json", "json_path", type=click.Path(dir_okay=False), default=None, help="Write a JSON report")
@click.option("--base-dir", "-d", type=click.Path(file_okay=False), default=None, help="Project directory")
@click.option("--max-retries", type=click.IntRange(min=0), default=None, help="Setup attempts per suite")
@click.option("--retry-delay", callback=_duration, default=None, help="Delay between setup attempts, e.g. 2s")
@click.option("--cleanup-cache", is_flag=True, help="Remove images built by earlier runs once this run ends")
def run(
    suite_filter: str | None = None,
    parallel: bool = False,
    verbose: bool = False,
    debug: bool = False,
    html_path: str | None = None,
    json_path: str | None = None,
    base_dir: str | None = None,
    max_retries: int | None = None,
    retry_delay: float | None = None,
    cleanup_cache: bool = False,
) -> None:
    """Run every suite under <base-dir>/tests."""
    settings = _settings(
        base_dir,
        max_retries=max_retries,
        retry_delay=retry_delay,
        verbose=verbose or None,
        debug=debug or None,
        cleanup_cache=cleanup_cache or None,
    )
    setup_logging(settings.verbose, settings.debug)

    runtime = get_runtime()
    try:
        runtime.ping()
    except HarborQAError as e:
        _fail(e, settings.debug)

    consumers: list[Consumer] = [ConsoleReporter(console, verbose=settings.verbose or settings.debug)]
    if json_path:
        consumers.append(JSONReporter(json_path))
    if html_path:
        consumers.append(HTMLReporter(html_path))

    token = CancellationToken()
    shutdown = ShutdownController(token, notify=lambda msg: err_console.print(f"[yellow]{msg}[/yellow]"))
    shutdown.install()
    try:
        runner = Runner(settings, builtin_registries(), runtime, consumers=consumers)
        summary = runner.run(SuiteFilter.parse(suite_filter), parallel=parallel, token=token)
    finally:
        shutdown.restore()

    if not summary.results:
        err_console.print(f"[yellow]No suites found under {Path(settings.base_dir) / 'tests'}[/yellow]")
    if summary.cancelled:
        err_console.print("[yellow]Run was cancelled[/yellow]")
    sys.exit(summary.exit_code)


@cli.command("dry-run")
@click.argument("suite_file", required=False, type=click.Path(exists=True, dir_okay=False))
@click.option("--base-dir", "-d", type=click.Path(file_okay=False), default=None, help="Project directory")
@click.option("--verbose", "-v", is_flag=True, help="Show unit details")
@click.option("--debug", is_flag=True, help="Enable debug logging")
def dry_run_command(suite_file: str | None, base_dir: str | None, verbose: bool, debug: bool) -> None:
    """Validate suites without starting any containers."""
    setup_logging(verbose, debug)
    settings = _settings(base_dir)
    entries = dry_run(
        suite_file or settings.base_dir,
        builtin_registries(),
        startup_timeout=settings.startup_timeout,
    )

    if not entries:
        err_console.print(f"[yellow]No suites found under {Path(settings.base_dir) / 'tests'}[/yellow]")
        sys.exit(1)

    for entry in entries:
        if not entry.ok:
            console.print(f"[red]✗[/red] {entry.path}")
            for issue in entry.issues:
                console.print(f"    {issue}", highlight=False)
            continue

        suite = entry.suite
        console.print(f"[green]✓[/green] [bold]{suite.name}[/bold] [dim]({entry.path})[/dim]")
        console.print(f"    target: {suite.target_name or '-'}")
        for unit in suite.units:
            line = f"    unit  {unit.name} [dim]({unit.kind})[/dim]"
            if verbose and getattr(unit, "image", None):
                line += f" image={unit.image}"
            console.print(line)
        for test in suite.tests:
            console.print(f"    test  {test.name} [dim]({test.kind} -> {test.target_name or suite.target_name})[/dim]")

    failed = [entry for entry in entries if not entry.ok]
    console.print()
    if failed:
        console.print(f"[red]{len(failed)} of {len(entries)} suite(s) have issues[/red]")
        sys.exit(1)
    console.print(f"[green]{len(entries)} suite(s) are valid[/green]")


@cli.command("list-suites")
@click.option("--base-dir", "-d", type=click.Path(file_okay=False), default=".", help="Project directory")
def list_suites(base_dir: str) -> None:
    """List suite files under <base-dir>/tests."""
    paths = discover_suites(base_dir)
    if not paths:
        console.print(f"No suites found under {Path(base_dir) / 'tests'}")
        return

    table = Table(title=f"{len(paths)} suite(s)")
    table.add_column("Suite", style="cyan")
    table.add_column("Path")
    for path in paths:
        table.add_row(path.parent.name, str(path))
    console.print(table)


@cli.command("scaffold-test")
@click.argument("name")
@click.option("--tmpl", "-t", default="http", show_default=True, help="Comma-separated templates: http,postgres,httpmock,mongo,minio")
@click.option("--base-dir", "-d", type=click.Path(file_okay=False), default=".", help="Project directory")
def scaffold_test(name: str, tmpl: str, base_dir: str) -> None:
    """Create tests/NAME/suite.yml from templates."""
    try:
        path = scaffold_suite(base_dir, name, parse_templates(tmpl))
    except HarborQAError as e:
        _fail(e)
    console.print(f"[green]Created[/green] {path}")


@cli.command()
@click.argument(
    "resource_type",
    required=False,
    default="all",
    type=click.Choice([t.value for t in ResourceType]),
)
@click.option("--dry-run", "list_only", is_flag=True, help="Only list what would be removed")
@click.option("--force", "-f", is_flag=True, help="Do not ask for confirmation")
@click.option("--all", "include_all", is_flag=True, help="Include young, running and attached resources")
@click.option("--older-than", callback=_duration, default=None, help="Only resources older than this, e.g. 1h")
@click.option("--verbose", "-v", is_flag=True, help="List every removed resource")
def cleanup(
    resource_type: str,
    list_only: bool,
    force: bool,
    include_all: bool,
    older_than: float | None,
    verbose: bool,
) -> None:
    """Remove containers and networks left behind by earlier runs."""
    setup_logging(verbose)
    settings = _settings(None)
    runtime = get_runtime()
    try:
        runtime.ping()
    except HarborQAError as e:
        _fail(e, verbose)

    kind = ResourceType(resource_type)
    options = DiscoverOptions(
        older_than=older_than or 0.0,
        include_all=include_all,
        pattern=settings.network_prefix,
    )
    orchestrator = CleanupOrchestrator(runtime, timeout=settings.cleanup_timeout)

    if not list_only and not force:
        preview = orchestrator.run(kind, options, dry_run=True)
        console.print(format_cleanup_result(preview, verbose=True), highlight=False)
        if preview.total_found == 0:
            return
        if not click.confirm("Proceed with cleanup?", default=False):
            console.print("Aborted.")
            return

    token = CancellationToken()
    shutdown = ShutdownController(token, notify=lambda msg: err_console.print(f"[yellow]{msg}[/yellow]"))
    shutdown.install()
    try:
        result = orchestrator.run(kind, options, dry_run=list_only, token=token)
    finally:
        shutdown.restore()

    console.print(format_cleanup_result(result, verbose=verbose), highlight=False)
    if not result.success:
        sys.exit(1)


@cli.command()
def version() -> None:
    """Show version information."""
    console.print(f"harborqa {__version__}")
    console.print(f"Python {platform.python_version()} ({sys.implementation.name})")
    console.print(f"Platform {platform.system()} {platform.release()} ({platform.machine()})")
