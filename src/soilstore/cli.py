#!/usr/bin/env python3
"""SoilStore CLI for inspecting and maintaining soil reports."""

import argparse
import sys

import questionary
from rich.console import Console
from rich.table import Table

from soilstore import db
from soilstore.errors import SoilStoreError
from soilstore.report import RecordStore
from soilstore.report.validation import FIELDS, TEXT_FIELDS

console = Console()


def check_health(store: RecordStore, args) -> int:
    """Probe the database connection."""
    if store.health_check():
        console.print("[green]ok[/]")
        return 0
    console.print("[red]Database is unreachable.[/]")
    return 1


def list_reports(store: RecordStore, args) -> int:
    """Show one page of reports matching the given filters."""
    filters = {
        "state": args.state,
        "district": args.district,
        "village": args.village,
        "ph_min": args.ph_min,
        "ph_max": args.ph_max,
        "start_date": args.start_date,
        "end_date": args.end_date,
    }
    page = store.find_page(
        {k: v for k, v in filters.items() if v is not None},
        {"page": args.page, "limit": args.limit},
    )
    if not page.records:
        console.print("[yellow]No soil reports found.[/]")
        return 0

    table = Table(title="Soil Reports")
    table.add_column("ID", style="dim")
    for field in FIELDS:
        table.add_column(field.capitalize(), justify="left" if field in TEXT_FIELDS else "right")
    table.add_column("Timestamp")
    for report in page.records:
        table.add_row(
            report["id"],
            *(str(report[field]) for field in FIELDS),
            report["timestamp"].isoformat(timespec="seconds"),
        )
    console.print(table)
    console.print(f"Page {page.page} of {page.total_pages} ({page.total} reports)")
    return 0


def _print_report(report: dict) -> None:
    for key, value in report.items():
        console.print(f"[bold]{key}[/]: {value}")


def _field_values(args) -> dict:
    """Report fields given on the command line."""
    return {field: getattr(args, field) for field in FIELDS if getattr(args, field) is not None}


def show_report(store: RecordStore, args) -> int:
    """Show a single report."""
    _print_report(store.find_by_id(args.id))
    return 0


def create_report(store: RecordStore, args) -> int:
    """Create a report, prompting for any field not given as an option."""
    data = _field_values(args)
    for field in FIELDS:
        if field in data:
            continue
        answer = questionary.text(f"{field.capitalize()}:").ask()
        if answer is None:
            console.print("[dim]Cancelled.[/]")
            return 0
        data[field] = answer

    report = store.create(data)
    console.print(f"[green]Created soil report {report['id']}.[/]")
    _print_report(report)
    return 0


def update_report(store: RecordStore, args) -> int:
    """Change the given fields of a report."""
    data = _field_values(args)
    if not data:
        console.print("[yellow]Nothing to update. Pass at least one field option.[/]")
        return 1

    report = store.update(args.id, data)
    console.print(f"[green]Updated soil report {report['id']}.[/]")
    _print_report(report)
    return 0


def delete_report(store: RecordStore, args) -> int:
    """Delete a report after confirmation."""
    report = store.find_by_id(args.id)
    summary = (
        f"Will permanently delete the report for [bold]{report['village']}, "
        f"{report['district']}, {report['state']}[/] ({report['id']})."
    )
    console.print(f"[yellow]{summary}[/]")

    if not args.yes and not questionary.confirm("Proceed with these changes?").ask():
        console.print("[dim]Cancelled.[/]")
        return 0

    store.delete(args.id)
    console.print(f"[green]Deleted soil report {args.id}.[/]")
    return 0


COMMANDS = {
    "health": check_health,
    "list": list_reports,
    "show": show_report,
    "create": create_report,
    "update": update_report,
    "delete": delete_report,
}


def _add_field_arguments(parser: argparse.ArgumentParser) -> None:
    for field in FIELDS:
        parser.add_argument(f"--{field}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="SoilStore CLI")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("health", help="Check database connectivity")

    list_parser = subparsers.add_parser("list", help="List soil reports, newest first")
    list_parser.add_argument("--state")
    list_parser.add_argument("--district")
    list_parser.add_argument("--village")
    list_parser.add_argument("--ph-min", dest="ph_min")
    list_parser.add_argument("--ph-max", dest="ph_max")
    list_parser.add_argument("--start-date", dest="start_date", help="YYYY-MM-DD")
    list_parser.add_argument("--end-date", dest="end_date", help="YYYY-MM-DD")
    list_parser.add_argument("--page", type=int, default=1)
    list_parser.add_argument("--limit", type=int, default=10)

    show_parser = subparsers.add_parser("show", help="Show one soil report")
    show_parser.add_argument("id")

    create_parser = subparsers.add_parser("create", help="Create a soil report")
    _add_field_arguments(create_parser)

    update_parser = subparsers.add_parser("update", help="Change fields of a soil report")
    update_parser.add_argument("id")
    _add_field_arguments(update_parser)

    delete_parser = subparsers.add_parser("delete", help="Delete a soil report")
    delete_parser.add_argument("id")
    delete_parser.add_argument("--yes", action="store_true", help="Skip confirmation")

    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    store = RecordStore(db.init())
    try:
        return COMMANDS[args.command](store, args)
    except SoilStoreError as e:
        console.print(f"[red]{e}[/]")
        for field, message in getattr(e, "errors", {}).items():
            console.print(f"  {field}: {message}")
        return 1
    finally:
        db.shutdown()


if __name__ == "__main__":
    sys.exit(main())
