"""Scan CLI commands."""

from __future__ import annotations

import asyncio
import contextlib
import signal
from pathlib import Path

import typer
from rich.console import Console
from rich.progress import BarColumn, Progress, TaskProgressColumn, TextColumn, TimeElapsedColumn
from rich.table import Table

from portsweep.core.errors import ScanValidationError
from portsweep.core.export import FORMATS, default_export_name, write_export
from portsweep.core.models import ScanProgress, ScanSummary
from portsweep.core.port_prober import SERVICE_NAMES
from portsweep.core.scan_engine import ScanEngine
from portsweep.core.targets import parse_ports, resolve_targets
from portsweep.schemas.scan import ScanOptions, build_options

console = Console()
app = typer.Typer(no_args_is_help=True)


@app.command("run")
def run_scan(
    target: str = typer.Argument(..., help="IP, hostname, range (10.0.0.1-50) or CIDR (10.0.0.0/24)"),
    ports: str | None = typer.Option(None, "--ports", "-p", help='Port list, e.g. "22,80,8000-8100"'),
    port_timeout: int | None = typer.Option(None, "--port-timeout", help="Connect timeout (ms)"),
    ping_timeout: int | None = typer.Option(None, "--ping-timeout", help="Ping timeout (ms)"),
    host_concurrency: int | None = typer.Option(None, "--hosts", help="Hosts scanned concurrently"),
    port_concurrency: int | None = typer.Option(None, "--workers", help="Ports probed concurrently per host"),
    ping: bool | None = typer.Option(None, "--ping/--no-ping", help="Ping hosts before port probing"),
    skip_offline: bool | None = typer.Option(None, "--skip-offline/--scan-offline", help="Skip ports on hosts that fail ping"),
    banners: bool | None = typer.Option(None, "--banners/--no-banners", help="Capture service banners"),
    json_out: Path | None = typer.Option(None, "--json", help="Write results as JSON"),
    csv_out: Path | None = typer.Option(None, "--csv", help="Write results as CSV"),
    export: list[str] | None = typer.Option(
        None, "--export", "-e", help="Save as json or csv under a timestamped name (repeatable)"
    ),
    show_offline: bool = typer.Option(False, "--show-offline", help="List offline hosts too"),
):
    """Scan a target for live hosts and open TCP ports."""
    port_list = None
    if ports is not None:
        port_list = parse_ports(ports)
        if not port_list:
            console.print("[red]Enter valid port numbers[/red]")
            raise typer.Exit(1)

    exports = [(json_out, "json"), (csv_out, "csv")]
    for fmt in export or []:
        fmt = fmt.lower()
        if fmt not in FORMATS:
            console.print(f"[red]Unknown export format: {fmt}[/red]")
            raise typer.Exit(1)
        exports.append((Path(default_export_name(fmt)), fmt))

    try:
        if not target.strip():
            raise ScanValidationError("Enter a target IP, hostname, or CIDR range")
        options = build_options(
            ports=port_list,
            port_timeout_ms=port_timeout,
            ping_timeout_ms=ping_timeout,
            max_host_concurrency=host_concurrency,
            max_port_concurrency=port_concurrency,
            ping_first=ping,
            skip_offline_hosts=skip_offline,
            grab_banners=banners,
        )
    except ScanValidationError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    summary = asyncio.run(_run_scan(target, options))

    _print_summary(summary, show_offline)
    for path, fmt in exports:
        if path is not None:
            write_export(path, summary.results, fmt)
            console.print(f"Exported to {path}")

    if summary.cancelled:
        raise typer.Exit(130)
    if summary.error_message:
        raise typer.Exit(1)


async def _run_scan(target: str, options: ScanOptions) -> ScanSummary:
    cancel_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    with contextlib.suppress(NotImplementedError):
        loop.add_signal_handler(signal.SIGINT, cancel_event.set)

    columns = (
        TextColumn("{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        TextColumn("{task.completed}/{task.total} hosts"),
        TimeElapsedColumn(),
    )
    try:
        with Progress(*columns, console=console, transient=True) as progress:
            task_id = progress.add_task(f"Scanning {target}...", total=None)

            def on_progress(p: ScanProgress) -> None:
                progress.update(
                    task_id,
                    total=p.total_hosts,
                    completed=p.scanned_hosts,
                    description=f"Scanning {p.current_host}",
                )

            engine = ScanEngine(progress_callback=on_progress)
            return await engine.scan(target, options, cancel_event)
    finally:
        with contextlib.suppress(NotImplementedError):
            loop.remove_signal_handler(signal.SIGINT)


def _print_summary(summary: ScanSummary, show_offline: bool) -> None:
    rows = [r for r in summary.results if r.is_online or show_offline]
    rows.sort(key=lambda r: r.host)

    if rows:
        table = Table(title=f"Scan results for {summary.target}")
        table.add_column("Host")
        table.add_column("Status")
        table.add_column("Latency", justify="right")
        table.add_column("Port", justify="right")
        table.add_column("Service")
        table.add_column("Banner", overflow="fold")

        for r in rows:
            status = "[green]online[/green]" if r.is_online else "[red]offline[/red]"
            latency = f"{r.latency_ms:.0f} ms" if r.latency_ms is not None else "-"
            if not r.open_ports:
                table.add_row(r.host, status, latency, "-", "", "")
                continue
            for i, p in enumerate(r.open_ports):
                if i == 0:
                    table.add_row(r.host, status, latency, str(p.port), p.service, p.banner)
                else:
                    table.add_row("", "", "", str(p.port), p.service, p.banner)
        console.print(table)

    if summary.cancelled:
        console.print("[yellow]Scan cancelled[/yellow]")
    elif summary.error_message:
        console.print(f"[red]Error: {summary.error_message}[/red]")
    else:
        console.print(f"[green]Complete in {summary.elapsed:.1f}s[/green]")
    console.print(
        f"{len(summary.results)} hosts scanned | {summary.online_count} online | "
        f"{summary.open_port_count} open ports"
    )


@app.command("targets")
def show_targets(
    target: str = typer.Argument(..., help="IP, hostname, range or CIDR"),
):
    """Print the hosts a target expression expands to."""
    hosts = resolve_targets(target)
    for host in hosts:
        console.print(host, highlight=False)
    console.print(f"[dim]{len(hosts)} hosts[/dim]")


@app.command("ports")
def show_ports(
    expression: str = typer.Argument(..., help='Port list, e.g. "22,80,8000-8100"'),
):
    """Print the port set a port expression expands to."""
    port_list = parse_ports(expression)
    if not port_list:
        console.print("[red]No valid ports[/red]")
        raise typer.Exit(1)
    console.print(",".join(str(p) for p in port_list), highlight=False)
    console.print(f"[dim]{len(port_list)} ports[/dim]")


@app.command("services")
def show_services():
    """List the well-known service labels."""
    table = Table(title="Service labels")
    table.add_column("Port", justify="right")
    table.add_column("Service")
    for port, name in sorted(SERVICE_NAMES.items()):
        table.add_row(str(port), name)
    console.print(table)
