"""Loads and stores wallet, session and custody records inside one SQLAlchemy session."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from treasury_sentinel.errors import ErrorKind, wallet_error
from treasury_sentinel.ledger.models import (
    MAX_CUSTODY_BALANCE,
    CustodyRecordDB,
    SessionKeyDB,
    WalletDB,
)
from treasury_sentinel.wallet.schema import CustodyRecord, SessionKeyAccount, WalletState


class WalletRepository:
    """
    Storage adapter keyed by wallet id, (wallet, authority) session addresses
    and custody addresses.

    All writes go through the caller's session; committing or rolling back is
    the caller's decision.
    """

    def __init__(self, session: Session) -> None:
        self.session = session

    # ── Wallets ─────────────────────────────────────────────────

    def get_wallet(self, wallet_id: UUID) -> WalletState | None:
        row = self.session.get(WalletDB, wallet_id)
        if row is None:
            return None
        return WalletState.model_validate(row.state)

    def require_wallet(self, wallet_id: UUID) -> WalletState:
        wallet = self.get_wallet(wallet_id)
        if wallet is None:
            raise wallet_error(ErrorKind.WALLET_NOT_FOUND)
        return wallet

    def add_wallet(self, wallet: WalletState) -> None:
        self.session.add(WalletDB(id=wallet.id, state=wallet.model_dump(mode="json")))
        self.session.flush()

    def save_wallet(self, wallet: WalletState) -> None:
        row = self.session.get(WalletDB, wallet.id)
        if row is None:
            raise wallet_error(ErrorKind.WALLET_NOT_FOUND)
        row.state = wallet.model_dump(mode="json")

    # ── Session keys ────────────────────────────────────────────

    def get_session(self, address: str) -> SessionKeyAccount | None:
        row = self.session.get(SessionKeyDB, address)
        if row is None:
            return None
        return SessionKeyAccount.model_validate(row.state)

    def add_session(self, account: SessionKeyAccount) -> None:
        self.session.add(
            SessionKeyDB(
                address=account.address,
                wallet_id=account.wallet_id,
                authority=account.authority,
                state=account.model_dump(mode="json"),
            )
        )
        self.session.flush()

    def save_session(self, account: SessionKeyAccount) -> None:
        row = self.session.get(SessionKeyDB, account.address)
        if row is None:
            raise wallet_error(ErrorKind.SESSION_KEY_NOT_FOUND)
        row.state = account.model_dump(mode="json")

    def delete_session(self, address: str) -> None:
        row = self.session.get(SessionKeyDB, address)
        if row is None:
            raise wallet_error(ErrorKind.SESSION_KEY_NOT_FOUND)
        self.session.delete(row)

    def list_sessions(self, wallet_id: UUID) -> list[SessionKeyAccount]:
        rows = self.session.execute(
            select(SessionKeyDB)
            .where(SessionKeyDB.wallet_id == wallet_id)
            .order_by(SessionKeyDB.authority.asc())
        ).scalars().all()
        return [SessionKeyAccount.model_validate(row.state) for row in rows]

    # ── Custody records ─────────────────────────────────────────

    def get_record(self, address: str) -> CustodyRecord | None:
        row = self.session.get(CustodyRecordDB, address)
        if row is None:
            return None
        return CustodyRecord(address=row.address, balance=row.balance, wallet_id=row.wallet_id)

    def put_record(self, record: CustodyRecord) -> None:
        """Create or overwrite a custody record's balance."""
        if record.balance > MAX_CUSTODY_BALANCE:
            raise wallet_error(ErrorKind.ARITHMETIC_OVERFLOW)
        row = self.session.get(CustodyRecordDB, record.address)
        if row is None:
            self.session.add(
                CustodyRecordDB(
                    address=record.address,
                    balance=record.balance,
                    wallet_id=record.wallet_id,
                )
            )
            self.session.flush()
        else:
            row.balance = record.balance
