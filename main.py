"""CLI entrypoint for genome pipeline runs and read-only analytics views."""

from __future__ import annotations

import argparse
import asyncio
import json
from typing import Any

from rich.console import Console
from rich.table import Table

from config import Settings, get_settings
from orchestrator import PipelineOrchestrator, build_orchestrator
from utils.logger import setup_logger


console = Console()


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, ensure_ascii=False, default=str, indent=2))


def _render_report(status) -> None:
    report = status.report
    table = Table(title=f"Run {status.run_id} ({status.state})")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Mode", status.mode.value)
    if report is not None:
        table.add_row("Status", report.status.value)
        table.add_row("Records extracted", str(report.records_extracted))
        table.add_row("New genomes", str(report.new_count))
        table.add_row("Updated genomes", str(report.updated_count))
        table.add_row("Total genomes", str(report.total_projects))
        for key, value in report.overview_deltas.items():
            table.add_row(f"Δ {key}", f"{value:+g}")
        for domain, stats in report.per_domain_stats.items():
            flag = " (stopped early)" if stats.stopped_early else ""
            table.add_row(
                domain,
                f"{stats.records_fetched} records / {stats.pages_fetched} pages{flag}",
            )
        if report.duration_ms is not None:
            table.add_row("Duration", f"{report.duration_ms / 1000:.1f}s")
    for error in status.errors:
        table.add_row("Error", f"[red]{error}[/red]")
    console.print(table)


async def _run(orchestrator: PipelineOrchestrator, args: argparse.Namespace) -> int:
    store = orchestrator.data_store

    if args.command == "run":
        handle = orchestrator.trigger(full_extraction=args.full)
        console.print(f"[bold]Started run {handle.run_id}[/bold]")
        status = await handle.wait()
        if args.json:
            _print_json(status.model_dump(mode="json"))
        else:
            _render_report(status)
        return 0 if status.state == "completed" else 1

    if args.command == "scheduled":
        status = await orchestrator.run_scheduled()
        if status is None:
            console.print("[yellow]A run is already in progress, scheduled run skipped[/yellow]")
            return 0
        if args.json:
            _print_json(status.model_dump(mode="json"))
        else:
            _render_report(status)
        return 0 if status.state == "completed" else 1

    if args.command == "overview":
        overview = await store.get_overview()
        if args.json:
            _print_json(overview.model_dump(mode="json"))
            return 0
        table = Table(title="Genome Overview")
        table.add_column("Metric", style="cyan")
        table.add_column("Value", style="green")
        for key, value in overview.model_dump().items():
            table.add_row(key, str(value))
        console.print(table)
        return 0

    if args.command == "trends":
        trends = await store.get_trends()
        rows = getattr(trends, args.period)
        if args.json:
            _print_json([row.model_dump(mode="json") for row in rows])
            return 0
        table = Table(title=f"{args.period.capitalize()} submissions")
        table.add_column("Bucket", style="cyan")
        table.add_column("Domain")
        table.add_column("Count", justify="right", style="green")
        for row in rows:
            bucket = getattr(row, {"daily": "date", "monthly": "month", "yearly": "year"}[args.period])
            table.add_row(bucket, row.domain, str(row.count))
        console.print(table)
        return 0

    if args.command == "health":
        health = await store.get_pipeline_health()
        if args.json:
            _print_json(health.model_dump(mode="json"))
            return 0
        color = {"healthy": "green", "warning": "yellow", "error": "red"}[health.status]
        table = Table(title="Pipeline Health")
        table.add_column("Metric", style="cyan")
        table.add_column("Value")
        table.add_row("Status", f"[{color}]{health.status}[/{color}]")
        table.add_row("Last extraction", str(health.last_extraction or "-"))
        table.add_row("Extraction count", str(health.extraction_count))
        table.add_row("Error rate", f"{health.error_rate:.2%}")
        table.add_row("Avg processing time", f"{health.avg_processing_time:.0f} ms")
        table.add_row("Uptime", f"{health.uptime:.2f}%")
        console.print(table)
        return 0

    if args.command == "activity":
        events = await store.get_recent_activity()
        if args.json:
            _print_json([event.model_dump(mode="json") for event in events])
            return 0
        table = Table(title="Recent Activity")
        table.add_column("Time", style="dim")
        table.add_column("Type", style="cyan")
        table.add_column("Status")
        table.add_column("Message")
        for event in events:
            table.add_row(event.timestamp, event.type, event.status, event.message)
        console.print(table)
        return 0

    if args.command == "search":
        matches = await store.search_metadata(args.query)
        if args.json:
            _print_json([p.model_dump(mode="json", by_alias=True) for p in matches[: args.limit]])
            return 0
        table = Table(title=f"Search: {args.query} ({len(matches)} matches)")
        table.add_column("ID", style="dim")
        table.add_column("Organism", style="cyan")
        table.add_column("Domain")
        table.add_column("Type")
        table.add_column("Submitted")
        for project in matches[: args.limit]:
            table.add_row(
                project.id,
                project.organism,
                project.domain.value,
                project.sequence_type,
                project.submission_date[:10],
            )
        console.print(table)
        return 0

    if args.command == "status":
        status = await orchestrator.get_pipeline_status()
        _print_json(status.model_dump(mode="json"))
        return 0

    raise ValueError(f"Unknown command: {args.command}")


async def _main(settings: Settings, args: argparse.Namespace) -> int:
    orchestrator = build_orchestrator(settings)
    try:
        return await _run(orchestrator, args)
    finally:
        await orchestrator.aclose()


def main() -> None:
    parser = argparse.ArgumentParser(description="Archaea/Bacteria genome ingestion pipeline")
    parser.add_argument("--json", action="store_true", help="print machine-readable JSON")
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="manual trigger")
    run.add_argument("--full", action="store_true", help="deep extraction instead of incremental")

    sub.add_parser("scheduled", help="scheduled trigger (always incremental)")
    sub.add_parser("overview")

    trends = sub.add_parser("trends")
    trends.add_argument("--period", choices=["daily", "monthly", "yearly"], default="daily")

    sub.add_parser("health")
    sub.add_parser("activity")

    search = sub.add_parser("search")
    search.add_argument("query")
    search.add_argument("--limit", type=int, default=25)

    sub.add_parser("status")

    args = parser.parse_args()
    settings = get_settings()
    setup_logger(level=settings.general.log_level, log_file=settings.general.log_file)

    raise SystemExit(asyncio.run(_main(settings, args)))


if __name__ == "__main__":
    main()
