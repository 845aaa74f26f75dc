"""
Notification ledger audit tool.

Recomputes the notification hash chain of a custody database and reports
whether any entry was altered after the fact. Optionally prints the whole
chain or one wallet's history.

Usage:
    treasury-sentinel-audit
    python -m treasury_sentinel.ledger.audit --database-url sqlite:///wallets.db
    python -m treasury_sentinel.ledger.audit --verbose
    python -m treasury_sentinel.ledger.audit --wallet 3f1c...
"""

from __future__ import annotations

import argparse
import sys
import time
from uuid import UUID

from rich.console import Console
from rich.table import Table

from treasury_sentinel.config import settings
from treasury_sentinel.ledger.models import NotificationEntryDB
from treasury_sentinel.ledger.service import NotificationLedger, create_database_engine
from treasury_sentinel.runtime import configure_logging

console = Console()


def _history_table(title: str, entries: list[NotificationEntryDB]) -> Table:
    table = Table(title=title, show_lines=True)
    table.add_column("#", style="cyan", justify="right")
    table.add_column("Kind", style="green")
    table.add_column("Wallet", style="yellow")
    table.add_column("Actor")
    table.add_column("Tick", justify="right")
    table.add_column("Entry hash", style="dim")
    for entry in entries:
        table.add_row(
            str(entry.sequence_number),
            entry.kind,
            str(entry.wallet_id)[:8] if entry.wallet_id else "-",
            entry.actor or "-",
            str(entry.content.get("tick", "-")),
            f"{entry.entry_hash[:16]}...",
        )
    return table


def _summary_table(count: int, is_valid: bool, verified: int, message: str, seconds: float) -> Table:
    summary = Table(title="Chain integrity", show_header=False)
    summary.add_column("field", style="bold")
    summary.add_column("value")
    summary.add_row("entries", str(count))
    summary.add_row(
        "status",
        "[bold green]intact[/bold green]" if is_valid else "[bold red]TAMPERED[/bold red]",
    )
    summary.add_row("verified" if is_valid else "first bad entry", str(verified))
    summary.add_row("detail", message)
    summary.add_row("elapsed", f"{seconds * 1000:.1f} ms")
    return summary


def run_audit(
    database_url: str,
    verbose: bool = False,
    wallet_id: UUID | None = None,
) -> bool:
    """
    Verify the notification chain stored at ``database_url``.

    Args:
        database_url: SQLAlchemy connection string.
        verbose: Also print every entry in the chain.
        wallet_id: Also print this wallet's entries.

    Returns:
        False if any entry fails verification.
    """
    engine = create_database_engine(database_url)
    try:
        ledger = NotificationLedger(engine)
        count = ledger.get_entry_count()
        if count == 0:
            console.print("[yellow]No notification entries found; nothing to verify.[/yellow]")
            return True

        started = time.perf_counter()
        is_valid, verified, message = ledger.verify_chain()
        console.print(
            _summary_table(count, is_valid, verified, message, time.perf_counter() - started)
        )

        if wallet_id is not None:
            console.print(
                _history_table(f"Wallet {wallet_id}", ledger.get_entries_for_wallet(wallet_id))
            )
        elif verbose:
            chain = list(reversed(ledger.get_latest_entries(limit=count)))
            console.print(_history_table("Notification chain", chain))
        return is_valid
    finally:
        engine.dispose()


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="treasury-sentinel-audit",
        description="Verify the wallet notification hash chain",
    )
    parser.add_argument(
        "--database-url",
        default=None,
        help="SQLAlchemy URL (defaults to SENTINEL_DATABASE_URL)",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Print every entry in the chain",
    )
    parser.add_argument(
        "--wallet",
        type=UUID,
        default=None,
        metavar="UUID",
        help="Print the history of one wallet",
    )
    args = parser.parse_args()

    configure_logging()
    ok = run_audit(args.database_url or settings.database_url, args.verbose, args.wallet)
    sys.exit(0 if ok else 1)


if __name__ == "__main__":
    main()
