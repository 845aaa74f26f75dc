"""
Notification Ledger — append-only, hash-chained audit trail of wallet events.

Every state transition the engine commits (wallet creation, treasury funding,
operator changes, session registration and revocation, transfers, recovery
proposals, votes and executions) is appended here inside the same database
transaction as the state change itself. If the invocation fails, its
notifications roll back with it.

Integrity:
1. Append-only            — only INSERT operations are issued
2. Hash chained           — each entry commits to its predecessor's hash
3. Independently auditable — verify_chain() recomputes every hash
"""

from __future__ import annotations

import hashlib
import json
import logging
from datetime import datetime, timezone
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import create_engine, func, select
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from treasury_sentinel.ledger.models import Base, NotificationEntryDB
from treasury_sentinel.wallet.schema import NotificationKind

logger = logging.getLogger(__name__)


GENESIS_HASH = "0" * 64  # previous_hash of sequence 0


class LedgerIntegrityError(Exception):
    """Raised when the notification chain cannot be extended."""


def create_database_engine(database_url: str, echo: bool = False) -> Engine:
    """
    Build a SQLAlchemy engine.

    In-memory SQLite URLs share one connection so every session sees the same
    database.
    """
    if database_url.startswith("sqlite") and (
        database_url.rstrip("/") in ("sqlite:", "sqlite+pysqlite:") or ":memory:" in database_url
    ):
        return create_engine(
            database_url,
            echo=echo,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
    return create_engine(database_url, echo=echo)


class NotificationLedger:
    """
    Notification channel backed by the ``notification_entries`` table.

    Usage:
        ledger = NotificationLedger(engine)
        ledger.initialize()  # Create tables, seed genesis entry

        with ledger.SessionLocal.begin() as session:
            ledger.append(
                session,
                kind=NotificationKind.TRANSFER_COMPLETED,
                wallet_id=wallet.id,
                actor=owner,
                content={"amount": 10, "path": "owner_threshold"},
            )
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        self.SessionLocal = sessionmaker(bind=engine)

    def initialize(self) -> None:
        """Create the schema and seed the genesis entry if missing."""
        Base.metadata.create_all(self.engine)

        with self.SessionLocal.begin() as session:
            existing = session.execute(
                select(NotificationEntryDB).where(NotificationEntryDB.sequence_number == 0)
            ).scalar_one_or_none()

            if existing is None:
                genesis = self._build_entry(
                    sequence_number=0,
                    previous_hash=GENESIS_HASH,
                    kind=NotificationKind.GENESIS,
                    wallet_id=None,
                    actor=None,
                    content={"message": "Genesis of the wallet notification ledger"},
                )
                session.add(genesis)
                logger.info("Genesis entry created: hash=%s", genesis.entry_hash[:16])

    def append(
        self,
        session: Session,
        kind: NotificationKind,
        wallet_id: UUID | None,
        actor: str | None,
        content: dict[str, Any],
    ) -> NotificationEntryDB:
        """
        Append a notification within the caller's transaction.

        Raises:
            LedgerIntegrityError: If the ledger has not been initialized.
        """
        last_entry = session.execute(
            select(NotificationEntryDB)
            .order_by(NotificationEntryDB.sequence_number.desc())
            .limit(1)
        ).scalar_one_or_none()

        if last_entry is None:
            raise LedgerIntegrityError(
                "Cannot append: no genesis entry found. Call initialize() first."
            )

        entry = self._build_entry(
            sequence_number=last_entry.sequence_number + 1,
            previous_hash=last_entry.entry_hash,
            kind=kind,
            wallet_id=wallet_id,
            actor=actor,
            content=content,
        )
        session.add(entry)
        session.flush()

        logger.debug(
            "Notification appended: seq=%d kind=%s hash=%s",
            entry.sequence_number, kind.value, entry.entry_hash[:16],
        )
        return entry

    def verify_chain(self) -> tuple[bool, int, str]:
        """
        Recompute every entry hash from genesis forward.

        Returns:
            (is_valid, count, message). On failure ``count`` is the position
            of the first bad entry.
        """
        with self.SessionLocal() as session:
            entries = session.execute(
                select(NotificationEntryDB).order_by(NotificationEntryDB.sequence_number.asc())
            ).scalars().all()

        if not entries:
            return False, 0, "Ledger is empty; genesis entry missing"

        expected_previous = GENESIS_HASH
        for position, entry in enumerate(entries):
            if entry.sequence_number != position:
                return (
                    False, position,
                    f"Sequence gap: found {entry.sequence_number} at position {position}",
                )
            if entry.previous_hash != expected_previous:
                return (
                    False, position,
                    f"Broken link at sequence {position}: previous_hash "
                    f"{entry.previous_hash[:16]}... != {expected_previous[:16]}...",
                )
            recomputed = self._hash_row(entry)
            if entry.entry_hash != recomputed:
                return (
                    False, position,
                    f"Hash mismatch at sequence {position}: "
                    f"stored {entry.entry_hash[:16]}... recomputed {recomputed[:16]}...",
                )
            expected_previous = entry.entry_hash

        return True, len(entries), f"{len(entries)} entries verified"

    def get_latest_entries(self, limit: int = 50) -> list[NotificationEntryDB]:
        with self.SessionLocal() as session:
            return list(
                session.execute(
                    select(NotificationEntryDB)
                    .order_by(NotificationEntryDB.sequence_number.desc())
                    .limit(limit)
                ).scalars().all()
            )

    def get_entries_for_wallet(
        self,
        wallet_id: UUID,
        kind: NotificationKind | None = None,
    ) -> list[NotificationEntryDB]:
        """Entries for one wallet in append order, optionally filtered by kind."""
        with self.SessionLocal() as session:
            stmt = select(NotificationEntryDB).where(NotificationEntryDB.wallet_id == wallet_id)
            if kind is not None:
                stmt = stmt.where(NotificationEntryDB.kind == kind.value)
            stmt = stmt.order_by(NotificationEntryDB.sequence_number.asc())
            return list(session.execute(stmt).scalars().all())

    def get_entry_count(self) -> int:
        with self.SessionLocal() as session:
            result = session.execute(
                select(func.count()).select_from(NotificationEntryDB)
            )
            return result.scalar() or 0

    # ── Internal ────────────────────────────────────────────────

    def _build_entry(
        self,
        sequence_number: int,
        previous_hash: str,
        kind: NotificationKind,
        wallet_id: UUID | None,
        actor: str | None,
        content: dict[str, Any],
    ) -> NotificationEntryDB:
        entry = NotificationEntryDB(
            id=uuid4(),
            sequence_number=sequence_number,
            previous_hash=previous_hash,
            recorded_at=datetime.now(timezone.utc).isoformat(),
            kind=kind.value,
            wallet_id=wallet_id,
            actor=actor,
            content=content,
        )
        entry.entry_hash = self._hash_row(entry)
        return entry

    @classmethod
    def _hash_row(cls, entry: NotificationEntryDB) -> str:
        return cls._compute_hash(
            entry_id=entry.id,
            sequence_number=entry.sequence_number,
            previous_hash=entry.previous_hash,
            recorded_at=entry.recorded_at,
            kind=entry.kind,
            wallet_id=entry.wallet_id,
            actor=entry.actor,
            content=entry.content,
        )

    @staticmethod
    def _compute_hash(
        entry_id: UUID,
        sequence_number: int,
        previous_hash: str,
        recorded_at: str,
        kind: str,
        wallet_id: UUID | None,
        actor: str | None,
        content: dict[str, Any],
    ) -> str:
        """SHA-256 over the previous hash followed by the entry's canonical JSON."""
        fields = dict(
            id=str(entry_id),
            sequence_number=sequence_number,
            previous_hash=previous_hash,
            recorded_at=recorded_at,
            kind=kind,
            wallet_id=None if wallet_id is None else str(wallet_id),
            actor=actor,
            content=content,
        )
        digest = hashlib.sha256(previous_hash.encode("utf-8"))
        digest.update(json.dumps(fields, sort_keys=True, default=str).encode("utf-8"))
        return digest.hexdigest()
