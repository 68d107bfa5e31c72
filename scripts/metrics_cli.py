#!/usr/bin/env python3
"""
Metrics CLI - Terminal dashboard for the telemetry store.

Usage:
  python scripts/metrics_cli.py              # Interactive mode
  python scripts/metrics_cli.py summary      # Last 24h overview
  python scripts/metrics_cli.py watch        # Auto-refresh dashboard

Commands:
  (no args)    Interactive menu
  summary      Request totals and error rate from raw metrics
  services     Per-service/path breakdown from minute rollups
  queues       Pending entries in the Redis telemetry queues
  watch        Auto-refresh dashboard
"""

import argparse
import asyncio
import sys
from collections import defaultdict
from datetime import datetime
from pathlib import Path

# Add project root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

# Load .env file if it exists
from dotenv import load_dotenv
load_dotenv(Path(__file__).parent.parent / ".env")

from rich.console import Console
from rich.table import Table
from rich.panel import Panel
from rich.text import Text
from rich.prompt import Prompt
from rich import box

from telemetry_worker.config import settings
from telemetry_worker.core.pool import redis_pool
from telemetry_worker.dependencies.services import create_monitoring_service
from telemetry_worker.storage import TelemetryDatabase

console = Console()


def format_duration(ms: float) -> str:
    """Format milliseconds to human readable."""
    if ms < 1000:
        return f"{ms:.0f}ms"
    elif ms < 60000:
        return f"{ms/1000:.2f}s"
    else:
        return f"{ms/60000:.1f}m"


def format_error_rate(rate: float, warn_threshold: float = 5, bad_threshold: float = 20) -> Text:
    """Format an error percentage with color coding."""
    text = f"{rate:.1f}%"
    if rate < warn_threshold:
        return Text(text, style="green")
    elif rate < bad_threshold:
        return Text(text, style="yellow")
    else:
        return Text(text, style="red")


async def open_database() -> TelemetryDatabase:
    database = TelemetryDatabase(settings.telemetry_db_path)
    await database.connect()
    return database


async def build_summary_panel(database: TelemetryDatabase, service=None) -> Panel:
    """Build the 24h overview panel from raw metrics."""
    overview = await create_monitoring_service(database).get_overview(service=service)

    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="white")

    table.add_row("Total Requests", str(overview["total_requests"]))
    table.add_row("Errors", str(overview["error_count"]))
    table.add_row("Error Rate", format_error_rate(overview["error_rate"]))
    table.add_row("Avg Latency", format_duration(overview["avg_latency"]))

    title = "[bold]Summary[/bold] (last 24h)"
    if service:
        title += f" - {service}"
    return Panel(table, title=title, border_style="blue")


async def build_services_table(database: TelemetryDatabase, hours: int = 1) -> Table:
    """Combine minute rollups into one row per service and path."""
    rollups = await create_monitoring_service(database).get_metrics(hours=hours)

    totals = defaultdict(lambda: {"count": 0, "errors": 0, "latency": 0.0, "p95": 0.0})
    for rollup in rollups:
        entry = totals[(rollup["service"], rollup["path"])]
        entry["count"] += rollup["count"]
        entry["errors"] += rollup["error_count"]
        entry["latency"] += rollup["avg_latency_ms"] * rollup["count"]
        entry["p95"] = max(entry["p95"], rollup["p95_latency_ms"])

    table = Table(title=f"Service Metrics (last {hours}h)", box=box.ROUNDED)
    table.add_column("Service", style="cyan")
    table.add_column("Path")
    table.add_column("Requests", justify="right")
    table.add_column("Error Rate", justify="right")
    table.add_column("Avg Latency", justify="right")
    table.add_column("Worst p95", justify="right")

    ranked = sorted(totals.items(), key=lambda item: item[1]["count"], reverse=True)
    for (service, path), entry in ranked:
        count = entry["count"]
        table.add_row(
            service,
            path,
            str(count),
            format_error_rate(entry["errors"] / count * 100 if count else 0),
            format_duration(entry["latency"] / count if count else 0),
            format_duration(entry["p95"]),
        )

    if not ranked:
        table.add_row("[dim]No data[/dim]", "", "", "", "", "")

    return table


async def build_queues_panel() -> Panel:
    """Build the queue backlog panel from Redis list lengths."""
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column("Queue", style="cyan")
    table.add_column("Pending", style="white")

    try:
        client = redis_pool.get_client()
        for key in (settings.queue_logs_key, settings.queue_metrics_key, settings.queue_alerts_key):
            pending = await client.llen(key)
            style = "yellow" if pending > settings.log_batch_size else "green"
            table.add_row(key, Text(str(pending), style=style))
    except Exception as e:
        table.add_row("[red]Redis unavailable[/red]", str(e))

    return Panel(table, title="[bold]Queues[/bold]", border_style="magenta")


async def cmd_summary(args):
    """Show summary."""
    database = await open_database()
    try:
        panel = await build_summary_panel(database, args.service)
    finally:
        await database.close()
    console.print()
    console.print(panel)
    console.print()


async def cmd_services(args):
    """Show per-service metrics."""
    database = await open_database()
    try:
        table = await build_services_table(database, args.hours)
    finally:
        await database.close()
    console.print()
    console.print(table)
    console.print()


async def cmd_queues(args):
    """Show queue backlog."""
    try:
        panel = await build_queues_panel()
    finally:
        await redis_pool.close()
    console.print()
    console.print(panel)
    console.print()


async def render_dashboard(database: TelemetryDatabase) -> None:
    console.clear()
    console.print(Panel.fit(
        "[bold cyan]Telemetry Metrics[/bold cyan]\n"
        f"[dim]Last updated: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}[/dim]",
        border_style="cyan"
    ))
    console.print()
    console.print(await build_summary_panel(database))
    console.print()
    console.print(await build_queues_panel())
    console.print()
    console.print(await build_services_table(database, 1))
    console.print()


async def cmd_watch(args):
    """Auto-refresh dashboard."""
    console.print("\n[bold cyan]Live Metrics Dashboard[/bold cyan]")
    console.print("[dim]Press Ctrl+C to exit[/dim]\n")

    database = await open_database()
    try:
        while True:
            await render_dashboard(database)
            console.print(f"[dim]Refreshing in {args.interval}s... (Ctrl+C to exit)[/dim]")
            await asyncio.sleep(args.interval)
    except (KeyboardInterrupt, asyncio.CancelledError):
        console.print("\n[yellow]Dashboard stopped.[/yellow]")
    finally:
        await database.close()
        await redis_pool.close()


async def cmd_interactive(args):
    """Interactive menu."""
    database = await open_database()
    try:
        while True:
            console.clear()
            console.print(Panel.fit(
                "[bold cyan]Telemetry Metrics[/bold cyan]\n"
                "[dim]Interactive Dashboard[/dim]",
                border_style="cyan"
            ))
            console.print()

            console.print("[bold]Commands:[/bold]")
            console.print("  [cyan]1[/cyan]  Summary")
            console.print("  [cyan]2[/cyan]  Service breakdown")
            console.print("  [cyan]3[/cyan]  Queue backlog")
            console.print("  [cyan]4[/cyan]  Live dashboard (auto-refresh)")
            console.print("  [cyan]q[/cyan]  Quit")
            console.print()

            choice = Prompt.ask("Select", choices=["1", "2", "3", "4", "q"], default="1")

            if choice == "q":
                console.print("[yellow]Goodbye![/yellow]")
                break
            elif choice == "1":
                console.print()
                console.print(await build_summary_panel(database))
            elif choice == "2":
                console.print()
                console.print(await build_services_table(database, 1))
            elif choice == "3":
                console.print()
                console.print(await build_queues_panel())
            elif choice == "4":
                args.interval = 5
                await cmd_watch(args)
                break

            console.print()
            Prompt.ask("[dim]Press Enter to continue[/dim]", default="")
    finally:
        await database.close()
        await redis_pool.close()


def main():
    parser = argparse.ArgumentParser(
        description="Metrics CLI - Telemetry rollup dashboard",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    subparsers = parser.add_subparsers(dest="command")

    # summary
    summary_p = subparsers.add_parser("summary", help="Show 24h summary")
    summary_p.add_argument("--service", default=None, help="Filter by service name")

    # services
    services_p = subparsers.add_parser("services", help="Per-service metrics")
    services_p.add_argument("--hours", type=int, default=1)

    # queues
    subparsers.add_parser("queues", help="Redis queue backlog")

    # watch
    watch_p = subparsers.add_parser("watch", help="Auto-refresh dashboard")
    watch_p.add_argument("--interval", type=int, default=5, help="Refresh interval in seconds")

    args = parser.parse_args()

    handlers = {
        "summary": cmd_summary,
        "services": cmd_services,
        "queues": cmd_queues,
        "watch": cmd_watch,
        None: cmd_interactive,
    }

    try:
        asyncio.run(handlers[args.command](args))
    except KeyboardInterrupt:
        console.print("\n[yellow]Cancelled.[/yellow]")
        sys.exit(0)


if __name__ == "__main__":
    main()
