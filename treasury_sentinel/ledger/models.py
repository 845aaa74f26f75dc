"""
Custody Store — SQLAlchemy models for wallets, session keys, custody records
and the notification ledger.

Wallet and session state are stored as JSON documents produced by the pydantic
schema, keyed by the deterministic addresses the engine derives:

- wallets            — keyed by wallet id
- session_keys       — keyed by session_key_address(wallet, authority)
- custody_records    — keyed by custody address (treasuries carry wallet_id)
- notification_entries — append-only, SHA-256 hash-chained audit trail

The notification table is APPEND-ONLY. No rows are updated or deleted.
"""

from __future__ import annotations

from uuid import uuid4

from sqlalchemy import (
    JSON,
    BigInteger,
    Column,
    Index,
    Integer,
    String,
    Uuid,
)
from sqlalchemy.orm import DeclarativeBase

# Custody balances live in a signed 64-bit column.
MAX_CUSTODY_BALANCE = 2**63 - 1


class Base(DeclarativeBase):
    """SQLAlchemy declarative base for all custody models."""
    pass


class WalletDB(Base):
    """One multi-party wallet; ``state`` is a serialized WalletState."""

    __tablename__ = "wallets"

    id = Column(Uuid, primary_key=True, default=uuid4)
    state = Column(JSON, nullable=False, comment="WalletState document")

    def __repr__(self) -> str:
        return f"<Wallet id={str(self.id)[:8]}>"


class SessionKeyDB(Base):
    """A live session key. Revocation deletes the row."""

    __tablename__ = "session_keys"

    address = Column(
        String(64), primary_key=True,
        comment="Derived from (wallet, authority)",
    )
    wallet_id = Column(Uuid, nullable=False, index=True)
    authority = Column(String(88), nullable=False)
    state = Column(JSON, nullable=False, comment="SessionKeyAccount document")

    __table_args__ = (
        Index("ix_session_wallet_authority", "wallet_id", "authority", unique=True),
    )


class CustodyRecordDB(Base):
    """A balance-holding record; treasuries reference their wallet."""

    __tablename__ = "custody_records"

    address = Column(String(128), primary_key=True)
    balance = Column(BigInteger, nullable=False, default=0)
    wallet_id = Column(
        Uuid, nullable=True, index=True,
        comment="Back-reference set for wallet treasuries",
    )

    def __repr__(self) -> str:
        return f"<CustodyRecord {self.address} balance={self.balance}>"


class NotificationEntryDB(Base):
    """
    A single notification in the audit trail.

    Each entry stores SHA-256(previous_hash || canonical_json(fields)), so any
    retroactive alteration is detectable by recomputing the chain.
    """

    __tablename__ = "notification_entries"

    id = Column(Uuid, primary_key=True, default=uuid4)
    sequence_number = Column(
        Integer, nullable=False, unique=True, index=True,
        comment="Monotonically increasing sequence number",
    )
    previous_hash = Column(String(64), nullable=False)
    entry_hash = Column(String(64), nullable=False, unique=True)
    recorded_at = Column(
        String(40), nullable=False,
        comment="ISO-8601 UTC wall time the entry was recorded",
    )
    kind = Column(String(50), nullable=False, index=True)
    wallet_id = Column(Uuid, nullable=True)
    actor = Column(String(88), nullable=True)
    content = Column(JSON, nullable=False)

    __table_args__ = (
        Index("ix_notification_wallet", "wallet_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<NotificationEntry seq={self.sequence_number} "
            f"kind={self.kind} hash={self.entry_hash[:12]}...>"
        )
