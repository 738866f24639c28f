"""Command-line interface for the Tax Event Ledger."""

import argparse
import sys
from datetime import date
from pathlib import Path
from uuid import UUID

from tax_event_ledger import __version__
from tax_event_ledger.config import DatabaseType, get_settings
from tax_event_ledger.container import Container
from tax_event_ledger.domain.transaction_events import TransactionEvent
from tax_event_ledger.domain.value_objects import EventKind
from tax_event_ledger.exceptions import CompanyNotFoundError, TaxEventLedgerError
from tax_event_ledger.logging_config import configure_logging


def build_container(args: argparse.Namespace) -> Container:
    """Create a container, pointing SQLite at --database when given."""
    settings = get_settings()
    if args.database:
        settings = settings.model_copy(update={"sqlite_path": Path(args.database)})
    return Container(settings=settings)


def _parse_uuid(value: str, label: str) -> UUID | None:
    try:
        return UUID(value)
    except ValueError:
        print(f"Error: Invalid {label} ID: {value}")
        return None


def _parse_date(value: str | None) -> date | None:
    return date.fromisoformat(value) if value else None


def _parse_kind(value: str | None) -> EventKind | None:
    if not value:
        return None
    if value.isdigit():
        return EventKind(int(value))
    return EventKind[value.upper().replace("-", "_")]


def _print_event(event: TransactionEvent) -> None:
    summary = event.metadata.tax_summary
    print(
        f"  {event.period.isoformat()}  {event.event_id.name:<16} "
        f"invoice={event.invoice_id}  status={event.invoice_status}  "
        f"taxes={summary.total_taxes}  paid={summary.total_paid}  "
        f"[{summary.status.value}]"
    )


def cmd_init(args: argparse.Namespace) -> int:
    """Initialize the ledger schema."""
    with build_container(args) as container:
        _ = container.database
        if container.settings.database_type == DatabaseType.POSTGRES:
            print("Initialized Postgres schema")
        else:
            print(f"Initialized database at {container.settings.sqlite_path}")
    return 0


def cmd_version(args: argparse.Namespace) -> int:
    """Show version information."""
    print(f"Tax Event Ledger v{__version__}")
    return 0


def cmd_record_accrual(args: argparse.Namespace) -> int:
    """Record an INVOICE_UPDATED snapshot for one invoice."""
    invoice_id = _parse_uuid(args.invoice_id, "invoice")
    if invoice_id is None:
        return 1

    try:
        period = _parse_date(args.period)
    except ValueError:
        print(f"Error: Invalid period date: {args.period}")
        return 1

    with build_container(args) as container:
        tenant = container.tenant
        try:
            with tenant.database.transaction():
                event = container.accrual_recorder.record_by_id(
                    tenant, invoice_id, period
                )
        except TaxEventLedgerError as e:
            print(f"Error: {e.message}")
            return 1

    print(f"Recorded accrual event {event.id} for period {event.period.isoformat()}")
    _print_event(event)
    return 0


def cmd_delete_payment(args: argparse.Namespace) -> int:
    """Delete a payment and reverse its effects."""
    payment_id = _parse_uuid(args.payment_id, "payment")
    if payment_id is None:
        return 1

    with build_container(args) as container:
        try:
            payment = container.reversal_service.delete_payment_by_id(
                container.tenant,
                payment_id,
                update_client_paid_to_date=not args.keep_client_paid_to_date,
            )
        except TaxEventLedgerError as e:
            print(f"Error: {e.message}")
            return 1

    print(f"Deleted payment {payment.number} ({payment.id})")
    print(f"  Amount: {payment.amount}")
    print(f"  Status: {payment.status.name.lower()}")
    return 0


def cmd_events(args: argparse.Namespace) -> int:
    """List ledger rows."""
    invoice_id = None
    if args.invoice:
        invoice_id = _parse_uuid(args.invoice, "invoice")
        if invoice_id is None:
            return 1

    try:
        period_start = _parse_date(args.period_start)
        period_end = _parse_date(args.period_end)
    except ValueError as e:
        print(f"Error: Invalid period date: {e}")
        return 1

    try:
        kind = _parse_kind(args.kind)
    except (KeyError, ValueError):
        print(f"Error: Unknown event kind: {args.kind}")
        return 1

    with build_container(args) as container:
        events = container.tenant.repos.events.query(
            invoice_id=invoice_id,
            period_start=period_start,
            period_end=period_end,
            kinds=[kind] if kind else None,
        )

    if not events:
        print("No ledger events found")
        return 0

    print(f"Ledger events ({len(events)}):")
    for event in events:
        _print_event(event)
    return 0


def cmd_tax_summary(args: argparse.Namespace) -> int:
    """Run the scheduled tax summary sweep once."""
    if args.hour is not None and not 0 <= args.hour <= 23:
        print(f"Error: Hour must be between 0 and 23: {args.hour}")
        return 1

    with build_container(args) as container:
        result = container.tax_summary_service.run(
            container.tenants, utc_hour=args.hour
        )

    print("Tax summary sweep")
    print("=" * 40)
    print(f"  Companies processed: {result.companies}")
    print(f"  Accrual events:      {result.accrual_events}")
    print(f"  Cash events:         {result.cash_events}")
    print(f"  Failures:            {len(result.failures)}")
    for invoice_id in result.failures:
        print(f"    - {invoice_id}")
    return 1 if result.failures else 0


def cmd_backfill(args: argparse.Namespace) -> int:
    """Seed the ledger for a company's invoices that have no rows yet."""
    company_id = _parse_uuid(args.company_id, "company")
    if company_id is None:
        return 1

    with build_container(args) as container:
        tenant = container.tenant
        try:
            company = tenant.repos.companies.get(company_id)
            if company is None:
                raise CompanyNotFoundError(company_id)
            result = container.tax_summary_service.backfill(tenant, company)
        except TaxEventLedgerError as e:
            print(f"Error: {e.message}")
            return 1

    print(f"Backfilled ledger for {company.name}")
    print(f"  Accrual events: {result.accrual_events}")
    print(f"  Cash events:    {result.cash_events}")
    print(f"  Failures:       {len(result.failures)}")
    return 1 if result.failures else 0


def cmd_serve(args: argparse.Namespace) -> int:
    """Serve the read-only ledger API."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "tax_event_ledger.api.app:app",
        host=args.host or settings.api_host,
        port=args.port or settings.api_port,
    )
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="tel",
        description="Tax Event Ledger - Append-only ledger of invoice tax snapshots",
    )
    parser.add_argument(
        "--database",
        "-d",
        help="Path to SQLite database file",
        default=None,
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # init command
    init_parser = subparsers.add_parser("init", help="Initialize the ledger schema")
    init_parser.set_defaults(func=cmd_init)

    # version command
    version_parser = subparsers.add_parser("version", help="Show version")
    version_parser.set_defaults(func=cmd_version)

    # record-accrual command
    accrual_parser = subparsers.add_parser(
        "record-accrual", help="Record an accrual snapshot for an invoice"
    )
    accrual_parser.add_argument("invoice_id", help="Invoice ID")
    accrual_parser.add_argument(
        "--period", help="Period end date (YYYY-MM-DD), defaults to this month"
    )
    accrual_parser.set_defaults(func=cmd_record_accrual)

    # delete-payment command
    delete_parser = subparsers.add_parser(
        "delete-payment", help="Delete a payment and reverse its effects"
    )
    delete_parser.add_argument("payment_id", help="Payment ID")
    delete_parser.add_argument(
        "--keep-client-paid-to-date",
        action="store_true",
        help="Do not reduce the client's paid-to-date by unattributed amounts",
    )
    delete_parser.set_defaults(func=cmd_delete_payment)

    # events command
    events_parser = subparsers.add_parser("events", help="List ledger events")
    events_parser.add_argument("--invoice", help="Filter by invoice ID")
    events_parser.add_argument("--period-start", help="Start period (YYYY-MM-DD)")
    events_parser.add_argument("--period-end", help="End period (YYYY-MM-DD)")
    events_parser.add_argument(
        "--kind",
        help="Event kind (invoice_updated, payment_refunded, payment_deleted, payment_cash)",
    )
    events_parser.set_defaults(func=cmd_events)

    # tax-summary command
    summary_parser = subparsers.add_parser(
        "tax-summary", help="Run the tax summary sweep once"
    )
    summary_parser.add_argument(
        "--hour", type=int, default=None, help="UTC hour to run for (default: now)"
    )
    summary_parser.set_defaults(func=cmd_tax_summary)

    # backfill command
    backfill_parser = subparsers.add_parser(
        "backfill", help="Seed ledger rows for invoices that have none"
    )
    backfill_parser.add_argument("company_id", help="Company ID")
    backfill_parser.set_defaults(func=cmd_backfill)

    # serve command
    serve_parser = subparsers.add_parser("serve", help="Serve the ledger API")
    serve_parser.add_argument("--host", default=None, help="Bind address")
    serve_parser.add_argument("--port", type=int, default=None, help="Port")
    serve_parser.set_defaults(func=cmd_serve)

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    configure_logging()

    result: int = args.func(args)
    return result


if __name__ == "__main__":
    sys.exit(main())
