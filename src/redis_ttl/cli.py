"""Typer-based CLI entrypoint for redis-ttl."""

from __future__ import annotations

import threading
from pathlib import Path
from typing import Any, Dict, List, Optional

import typer
from loguru import logger
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from redis_ttl import __version__
from redis_ttl.cluster import ShardResult
from redis_ttl.config import RunConfig, load_config
from redis_ttl.durations import format_ttl, parse_ttl
from redis_ttl.exceptions import ConfigurationError, FanOutError, RedisTtlError
from redis_ttl.logging import init_logging
from redis_ttl.metrics import start_metrics_server
from redis_ttl.service import TtlMaintenanceService, build_injector

EXIT_FAILURE = 1
EXIT_INTERRUPTED = 130

console = Console()
app = typer.Typer(help="Bulk TTL maintenance for Redis keys", no_args_is_help=True, pretty_exceptions_enable=False)


@app.callback()
def main(
    ctx: typer.Context,
    log_level: str = typer.Option("INFO", "--log-level", help="Logging level."),
    log_file: Optional[Path] = typer.Option(None, "--log-file", help="Optional log file path."),
) -> None:
    """Initialize logging before executing any subcommand."""

    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
        raise typer.Exit(code=0)

    target = log_file.expanduser().resolve() if log_file else None
    init_logging(target, log_level)


@app.command("version")
def version() -> None:
    """Print the CLI version."""

    console.print(f"redis-ttl {__version__}")


@app.command("parse-ttl")
def parse_ttl_command(
    value: str = typer.Argument(..., help="Duration such as 90s, 1h30m, 7d or 2w."),
) -> None:
    """Show how a --desired-ttl value is interpreted."""

    try:
        parsed = parse_ttl(value)
    except ConfigurationError as exc:
        raise typer.BadParameter(str(exc))
    console.print(f"{format_ttl(parsed)} ({parsed.total_seconds():g}s)")


@app.command("primaries")
def primaries_command(
    redis_cluster_addrs: str = typer.Option(
        ..., "--redis-cluster-addrs", help="Comma separated seeds, e.g. node1:6379,node2:6379."
    ),
    username: Optional[str] = typer.Option(None, "--username", help="ACL username."),
    password: Optional[str] = typer.Option(None, "--password", envvar="REDIS_TTL_PASSWORD", help="Password."),
) -> None:
    """List the primary nodes a cluster run would scan."""

    config = _resolve_config(
        None,
        {"redis_cluster_addrs": redis_cluster_addrs, "username": username, "password": password},
    )
    service = build_injector(config).get(TtlMaintenanceService)
    try:
        primaries = service.discover_primaries()
    except RedisTtlError as exc:
        console.print(f"[red]{escape(str(exc))}[/red]")
        raise typer.Exit(code=EXIT_FAILURE)
    for primary in primaries:
        console.print(primary.address)


@app.command("run")
def run_command(
    config_file: Optional[Path] = typer.Option(
        None, "--config", exists=True, file_okay=True, dir_okay=False, help="YAML file with run settings."
    ),
    redis_addr: Optional[str] = typer.Option(None, "--redis-addr", help="Standalone server address [default: :6379]."),
    redis_cluster_addrs: Optional[str] = typer.Option(
        None, "--redis-cluster-addrs", help="Comma separated cluster seeds; enables cluster mode."
    ),
    scan_prefix: Optional[str] = typer.Option(None, "--scan-prefix", help="SCAN MATCH pattern, e.g. 'session:*'."),
    mode: Optional[str] = typer.Option(
        None,
        "--mode",
        help="exp|gt|lt|nx|xx|noop|persist (or set|setIfGreater|setIfLess|setIfAbsent|setIfPresent|clear) [default: noop].",
    ),
    desired_ttl: Optional[str] = typer.Option(None, "--desired-ttl", help="Target TTL, e.g. 24h or 7d [default: 1h]."),
    rps: Optional[int] = typer.Option(
        None,
        "--rps",
        help="Keys processed per second, per primary. Mode gt also reads PTTL, "
        "so it sends up to two commands per key [default: 100].",
    ),
    scan_type: Optional[str] = typer.Option(
        None, "--scan-type", help="any|string|list|set|zset|hash|stream [default: string]."
    ),
    scan_count: Optional[int] = typer.Option(None, "--scan-count", min=0, help="SCAN COUNT hint, 0 = server default."),
    on_error: Optional[str] = typer.Option(
        None,
        "--on-error",
        help="abort|continue. With 'continue' (the default) failed keys are logged and counted, "
        "and the run still succeeds.",
    ),
    username: Optional[str] = typer.Option(None, "--username", help="ACL username."),
    password: Optional[str] = typer.Option(None, "--password", envvar="REDIS_TTL_PASSWORD", help="Password."),
    db: Optional[int] = typer.Option(None, "--db", min=0, help="Database index (standalone only)."),
    max_duration: Optional[str] = typer.Option(None, "--max-duration", help="Cancel the run after this long."),
    metrics_port: Optional[int] = typer.Option(None, "--metrics-port", help="Expose Prometheus metrics on this port."),
) -> None:
    """Scan matching keys and normalize their TTL."""

    config = _resolve_config(
        config_file,
        {
            "redis_addr": redis_addr,
            "redis_cluster_addrs": redis_cluster_addrs,
            "scan_prefix": scan_prefix,
            "mode": mode,
            "desired_ttl": desired_ttl,
            "rps": rps,
            "scan_type": scan_type,
            "scan_count": scan_count,
            "on_error": on_error,
            "username": username,
            "password": password,
            "db": db,
            "max_duration": max_duration,
        },
    )

    if metrics_port:
        start_metrics_server(metrics_port)
        logger.info("Prometheus metrics exposed on port {}", metrics_port)

    service = build_injector(config).get(TtlMaintenanceService)
    cancel = threading.Event()
    timer: Optional[threading.Timer] = None
    if config.max_duration is not None:
        timer = threading.Timer(config.max_duration.total_seconds(), cancel.set)
        timer.daemon = True
        timer.start()

    logger.info(
        "mode={} ttl={} pattern={} rps={} on_error={}",
        config.mode.value,
        format_ttl(config.desired_ttl),
        config.scan_prefix,
        config.rps,
        config.on_error.value,
    )
    try:
        report = service.run(cancel)
    except KeyboardInterrupt:
        cancel.set()
        console.print("[yellow]Interrupted, mutations already applied are kept.[/yellow]")
        raise typer.Exit(code=EXIT_INTERRUPTED)
    except FanOutError as exc:
        _print_results(exc.results)
        console.print(f"[red]{escape(str(exc))}[/red]")
        raise typer.Exit(code=EXIT_FAILURE)
    except ConfigurationError as exc:
        raise typer.BadParameter(str(exc))
    except RedisTtlError as exc:
        if exc.tally is not None:
            _print_results([ShardResult.failure(_single_label(config), str(exc), exc.tally)])
        console.print(f"[red]{escape(str(exc))}[/red]")
        raise typer.Exit(code=EXIT_FAILURE)
    finally:
        if timer is not None:
            timer.cancel()

    _print_results(report.results)
    if report.degraded:
        console.print(
            f"[yellow]Completed with {report.total.errors} key errors; see the log for details.[/yellow]"
        )
    console.print("[green]done[/green]")


def _resolve_config(config_file: Optional[Path], overrides: Dict[str, Any]) -> RunConfig:
    try:
        return load_config(config_file, overrides)
    except (ConfigurationError, ValidationError) as exc:
        raise typer.BadParameter(str(exc))


def _single_label(config: RunConfig) -> str:
    return config.redis_addr if not config.clustered else "cluster"


def _print_results(results: List[ShardResult]) -> None:
    table = Table(title="TTL maintenance summary")
    table.add_column("Shard", style="cyan")
    table.add_column("Status")
    table.add_column("Visited", justify="right")
    table.add_column("Mutated", justify="right")
    table.add_column("Skipped", justify="right")
    table.add_column("Errors", justify="right")
    table.add_column("Duration", justify="right")
    for result in results:
        status = "[green]completed[/green]" if result.is_success else "[red]failed[/red]"
        table.add_row(
            escape(result.label),
            status,
            str(result.tally.visited),
            str(result.tally.mutated),
            str(result.tally.skipped),
            str(result.tally.errors),
            f"{result.duration:.1f}s",
        )
    console.print(table)
