# ruff: noqa: I001
"""CLI for the ``clinic_analytics`` package.

Typer-based console interface over :mod:`clinic_analytics.api`. Environment
variables (``DATABASE_URL``, ``CLINIC_ANALYTICS_LOG_LEVEL``) are loaded from a
local ``.env`` using ``python-dotenv`` before any command runs. Business logic
lives in ``clinic_analytics.api`` and ``clinic_analytics.persistence``; this
module only parses options and renders results with Rich.
"""

from __future__ import annotations

import csv
import json
from datetime import datetime
from pathlib import Path
from typing import Annotated

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.table import Table
from typer.models import ArgumentInfo

from .logging_setup import configure_logging
from .models import Category, MembershipType, WeeklyReport

console = Console()

_DATE_FORMATS = ["%Y-%m-%d"]


# ---- Rendering helpers -------------------------------------------------------


def _fail(message: str) -> typer.Exit:
    console.print(f"[red]Error:[/red] {message}")
    return typer.Exit(1)


def _render_report(report: WeeklyReport) -> None:
    agg = report.aggregate
    title = f"Week {agg.week_start:%Y-%m-%d} (Mon) .. {agg.week_end:%Y-%m-%d} (Sun)"

    console.print(f"[bold]{title}[/bold]")
    revenue = Table()
    revenue.add_column("Category")
    revenue.add_column("Revenue", justify="right")
    for category in Category:
        revenue.add_row(str(category), f"{agg.revenue_by_category[category]:,.2f}")
    revenue.add_row("[bold]total[/bold]", f"[bold]{agg.total_revenue:,.2f}[/bold]")
    console.print(revenue)

    console.print(
        f"Customers: {agg.unique_customers} "
        f"(members {agg.member_customers}, non-members {agg.non_member_customers}); "
        f"transactions: {agg.transaction_count}"
    )
    visits = ", ".join(f"{k}={v}" for k, v in agg.visit_counts.items())
    if visits:
        console.print(f"Visits: {visits}")

    memberships = Table(title="Memberships")
    memberships.add_column("Type")
    memberships.add_column("Signups", justify="right")
    memberships.add_column("New", justify="right")
    for mtype in MembershipType:
        if agg.membership_counts[mtype]:
            memberships.add_row(
                str(mtype),
                str(agg.membership_counts[mtype]),
                str(agg.new_membership_counts[mtype]),
            )
    if memberships.row_count:
        console.print(memberships)

    for category, services in agg.top_services.items():
        if services:
            console.print(f"Top {category}: " + "; ".join(services))

    if report.unmapped:
        from .categorize import summarize_unmapped

        console.print(
            f"[yellow]{len(report.unmapped)} unmapped service row(s):[/yellow] "
            + "; ".join(f"{desc} (x{n})" for desc, n in summarize_unmapped(report.unmapped))
        )
    if report.rejected_count:
        console.print(f"[yellow]Rejected rows:[/yellow] {report.rejected_count}")
    if report.out_of_range_count:
        console.print(f"Rows outside the week: {report.out_of_range_count}")


def _persist_reports(
    reports: list[WeeklyReport], *, database_url: str | None, source_name: str
) -> None:
    from sqlalchemy.exc import SQLAlchemyError

    from db.client import create_db_engine, session_scope
    from .persistence import save_weekly_report

    try:
        engine = create_db_engine(database_url, create_schema=True)
        try:
            with session_scope(engine) as session:
                for report in reports:
                    save_weekly_report(session, report, source_name=source_name)
        finally:
            engine.dispose()
    except (RuntimeError, SQLAlchemyError) as e:
        raise _fail(f"persistence failed: {e}") from e
    console.print(f"[green]Saved {len(reports)} week(s) to the database.[/green]")


# ---- Typer-based console interface -------------------------------------------


app = typer.Typer(
    no_args_is_help=True,
    add_completion=False,
    help=(
        "Weekly revenue, customer and membership analytics from clinic billing "
        "exports (CSV, XLSX or MHTML). Loads DATABASE_URL from a local .env."
    ),
)


# Module-level argument object to satisfy ruff B008 (no calls in parameter
# defaults).
FILE_ARGUMENT: ArgumentInfo = typer.Argument(
    ...,
    help="Billing export to import (.csv, .xlsx, .xls/.mhtml/.html).",
    dir_okay=False,
    file_okay=True,
    exists=False,  # the handler reports a clean error
)


@app.command("import-week")
def import_week_cmd(
    file: Annotated[Path, FILE_ARGUMENT],
    *,
    fmt: str | None = typer.Option(
        None, "--format", help="Force the adapter: csv, xlsx or mhtml (default: by extension)."
    ),
    week_of: datetime | None = typer.Option(
        None,
        "--week-of",
        formats=_DATE_FORMATS,
        help="Any date in the reporting week (default: week of the latest row).",
    ),
    all_weeks: bool = typer.Option(
        False, "--all-weeks", help="Report every week present in the file."
    ),
    top: int = typer.Option(3, "--top", min=1, help="Top services listed per category."),
    persist: bool = typer.Option(
        False, help="Save the weekly aggregate(s) to the database (replaces the week)."
    ),
    database_url: str | None = typer.Option(
        None, help="Override DATABASE_URL (falls back to env var)."
    ),
    as_json: bool = typer.Option(False, "--json", help="Print snapshot JSON instead of tables."),
) -> None:
    """Import a billing export and report its Monday..Sunday week(s)."""

    from .aggregate import WeekSpanError
    from .api import import_file, import_file_weeks, to_snapshot
    from .schema import MissingColumnsError

    if all_weeks and week_of is not None:
        raise _fail("--week-of and --all-weeks are mutually exclusive")

    try:
        if all_weeks:
            reports = import_file_weeks(file, fmt=fmt, top_n=top)
        else:
            reports = [
                import_file(
                    file,
                    fmt=fmt,
                    reference_date=week_of.date() if week_of else None,
                    top_n=top,
                )
            ]
    except FileNotFoundError:
        raise _fail(f"File not found: {file}") from None
    except PermissionError:
        raise _fail(f"Permission denied: {file}") from None
    except MissingColumnsError as e:
        raise _fail(f"Unrecognized export layout: {e}") from e
    except WeekSpanError as e:
        raise _fail(f"Invalid reporting week: {e}") from e
    except (csv.Error, ValueError) as e:
        raise _fail(f"Failed to read {file.name}: {e}") from e

    if not reports:
        console.print("[yellow]No valid transactions found.[/yellow]")
        return

    if as_json:
        payload = [to_snapshot(r.aggregate).model_dump(mode="json") for r in reports]
        typer.echo(json.dumps(payload if all_weeks else payload[0], indent=2))
    else:
        for report in reports:
            _render_report(report)

    if persist:
        _persist_reports(reports, database_url=database_url, source_name=file.name)


@app.command("audit-unmapped")
def audit_unmapped_cmd(
    *,
    week_start: datetime | None = typer.Option(
        None, "--week-start", formats=_DATE_FORMATS, help="Only this week (a Monday)."
    ),
    limit: int = typer.Option(20, "--limit", min=1, help="Maximum descriptions listed."),
    database_url: str | None = typer.Option(
        None, help="Override DATABASE_URL (falls back to env var)."
    ),
) -> None:
    """List stored charge descriptions that matched no service rule."""

    from sqlalchemy.exc import SQLAlchemyError

    from db.client import create_db_engine, session_scope
    from .persistence import list_unmapped

    try:
        engine = create_db_engine(database_url, create_schema=True)
        try:
            with session_scope(engine) as session:
                rows = list_unmapped(
                    session,
                    week_start=week_start.date() if week_start else None,
                    limit=limit,
                )
        finally:
            engine.dispose()
    except (RuntimeError, SQLAlchemyError) as e:
        raise _fail(f"audit failed: {e}") from e

    if not rows:
        console.print("[green]No unmapped services recorded.[/green]")
        return

    table = Table(title="Unmapped services")
    table.add_column("Description")
    table.add_column("Count", justify="right")
    for desc, count in rows:
        table.add_row(desc, str(count))
    console.print(table)


@app.command("classify")
def classify_cmd(
    descriptions: Annotated[list[str], typer.Argument(help="Charge descriptions to classify.")],
) -> None:
    """Show how charge descriptions are categorized."""

    from .categorize import Categorizer, is_new_membership, membership_type_for

    categorizer = Categorizer()
    table = Table()
    table.add_column("Description")
    table.add_column("Category")
    table.add_column("Membership")
    table.add_column("New", justify="center")
    for desc in descriptions:
        category = categorizer.category_for(desc)
        mtype = membership_type_for(desc) if category is Category.MEMBERSHIP_OR_ADMIN else None
        table.add_row(
            desc,
            str(category),
            str(mtype) if mtype else "-",
            "yes" if mtype and is_new_membership(desc) else "-",
        )
    console.print(table)


@app.callback()
def _root() -> None:
    """Root command.

    Loads ``.env`` from the current working directory (without overriding any
    already-set environment variables) and configures logging once.
    """

    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)
    configure_logging()


if __name__ == "__main__":  # pragma: no cover
    app()
