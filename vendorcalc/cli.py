"""
Command line front end for the ledger.

Usage:
    python -m vendorcalc status
    python -m vendorcalc export [PATH]
    python -m vendorcalc import PATH
    python -m vendorcalc history --search tea --sort amount-desc
    python -m vendorcalc summary --period week
    python -m vendorcalc sync --uid UID --token TOKEN
    python -m vendorcalc migrate-legacy PATH
    python -m vendorcalc test-remote
    python -m vendorcalc audit
"""
from __future__ import annotations
import argparse
import sys
from typing import Optional
from loguru import logger

from .config import VendorCalcConfig
from .debug import LedgerDebugger
from .errors import LedgerError
from .ledger import SESSION_TOKEN_KEY, SESSION_UID_KEY, Ledger
from .models import Session
from .reports import PERIODS, SORT_MODES, sales_summary, search_history
from .snapshot import default_backup_name, read_snapshot, write_snapshot
from .store import migrate_legacy


def configure_logging(config: VendorCalcConfig, verbose: bool = False):
    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if verbose else config.log_level)
    if config.log_file:
        logger.add(config.log_file, level="DEBUG", rotation="10 MB")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="vendorcalc",
        description="VendorCalc - local-first billing ledger",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose logging")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("status", help="Show local store status")

    p = sub.add_parser("export", help="Export products and invoices to a JSON backup")
    p.add_argument("path", nargs="?", help="Output file (default: vendorcalc-backup-DD-MM-YYYY.json)")

    p = sub.add_parser("import", help="Replace local data with a JSON backup")
    p.add_argument("path", help="Backup file")

    p = sub.add_parser("history", help="List saved invoices")
    p.add_argument("--search", default="", help="Match vendor, customer or invoice number")
    p.add_argument("--sort", choices=SORT_MODES, default="date-desc")

    p = sub.add_parser("summary", help="Sales summary for a period")
    p.add_argument("--period", choices=PERIODS, default="today")

    p = sub.add_parser("sync", help="Sign in and reconcile with the remote replica")
    p.add_argument("--uid", required=True)
    p.add_argument("--token", required=True)
    p.add_argument("--name", help="Display name")

    p = sub.add_parser("migrate-legacy", help="Import a legacy JSON export once")
    p.add_argument("path")

    sub.add_parser("test-remote", help="Test the remote with the saved session")
    sub.add_parser("audit", help="Check saved invoices for broken totals or duplicate numbers")
    return parser


def run_command(args: argparse.Namespace, ledger: Ledger) -> int:
    debugger = LedgerDebugger(ledger)

    if args.command == "status":
        debugger.inspect_store(verbose=True)

    elif args.command == "export":
        path = write_snapshot(ledger.export_snapshot(), args.path or default_backup_name())
        print(f"Backup written to {path}")

    elif args.command == "import":
        products, invoices = ledger.import_snapshot(read_snapshot(args.path))
        print(f"Restored {products} products & {invoices} invoices")

    elif args.command == "history":
        for inv in search_history(ledger.history(), args.search, args.sort):
            customer = f" [{inv.customer_name}]" if inv.customer_name else ""
            print(f"{inv.invoice_no}  {inv.created_at}  {inv.vendor_name}{customer}  {inv.final_total:.2f}")

    elif args.command == "summary":
        summary = sales_summary(ledger.history(), args.period)
        print(f"\n=== Sales since {summary.since:%Y-%m-%d} ({summary.period}) ===")
        print(f"Invoices: {summary.total_invoices}")
        print(f"Revenue: {summary.total_revenue:.2f}")
        for item in summary.items:
            print(f"  {item.name}: qty={item.total_qty} revenue={item.total_revenue:.2f} bills={item.times_appeared}")

    elif args.command == "sync":
        results = ledger.sign_in(Session(uid=args.uid, id_token=args.token, display_name=args.name))
        ledger.flush()
        if results is None:
            print("Remote replica unavailable; nothing synced")
            return 1
        print("\n=== Sync Results ===")
        for entity, counts in results.items():
            print(f"{entity}: " + ", ".join(f"{k}={v}" for k, v in counts.items()))

    elif args.command == "migrate-legacy":
        result = migrate_legacy(ledger.store, args.path)
        if result is None:
            print("Nothing migrated (already migrated or unreadable file)")
            return 1
        print(f"Migrated {result['products']} products and {result['history']} invoices")

    elif args.command == "test-remote":
        uid = ledger.store.settings_get(SESSION_UID_KEY)
        token = ledger.store.settings_get(SESSION_TOKEN_KEY)
        if uid and token:
            session = Session(uid=uid, id_token=token)
            ledger.replica.authenticate(session)
            result = ledger.replica.test_connection(uid)
        else:
            result = debugger.test_connection()
        print(f"Connection test: {result}")
        return 0 if result["status"] == "connected" else 1

    elif args.command == "audit":
        report = debugger.audit_invoices(verbose=True)
        return 1 if report["violations"] or report["duplicates"] else 0

    return 0


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    config = VendorCalcConfig.from_env()
    configure_logging(config, args.verbose)

    errors = config.validate()
    if errors:
        for err in errors:
            logger.error(f"Config error: {err}")
        return 1

    try:
        with Ledger(config) as ledger:
            return run_command(args, ledger)
    except LedgerError as e:
        logger.error(f"{type(e).__name__}: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
