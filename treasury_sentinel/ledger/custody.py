"""
Custody Transfer — the atomic value movement between two custody records.

Both balances are computed before either is written, and both writes go into
the caller's transaction, so a transfer either lands completely or (on any
error, here or later in the same invocation) not at all.
"""

from __future__ import annotations

import logging

from treasury_sentinel.errors import ErrorKind, wallet_error
from treasury_sentinel.ledger.models import MAX_CUSTODY_BALANCE
from treasury_sentinel.ledger.repository import WalletRepository
from treasury_sentinel.wallet.schema import CustodyRecord

logger = logging.getLogger(__name__)


class CustodyLedger:
    """Moves value between custody records held in a WalletRepository."""

    def __init__(self, repository: WalletRepository) -> None:
        self.repository = repository

    def balance_of(self, address: str) -> int:
        record = self.repository.get_record(address)
        return record.balance if record is not None else 0

    def credit(self, address: str, amount: int) -> CustodyRecord:
        """Add ``amount`` to an existing record (used to fund treasuries)."""
        record = self.repository.get_record(address)
        if record is None:
            raise wallet_error(ErrorKind.VAULT_BALANCE_MISSING)
        new_balance = record.balance + amount
        if new_balance > MAX_CUSTODY_BALANCE:
            raise wallet_error(ErrorKind.ARITHMETIC_OVERFLOW)

        updated = record.model_copy(update={"balance": new_balance})
        self.repository.put_record(updated)
        return updated

    def transfer(
        self,
        source: CustodyRecord,
        destination_address: str,
        amount: int,
    ) -> tuple[CustodyRecord, CustodyRecord]:
        """
        Debit ``source`` and credit ``destination_address``.

        The destination record is created on first credit.

        Returns:
            The source and destination records after the transfer.

        Raises:
            ResourceStateError: INSUFFICIENT_VAULT_BALANCE.
            InputValidationError: ARITHMETIC_OVERFLOW on the destination balance.
        """
        if source.balance < amount:
            raise wallet_error(ErrorKind.INSUFFICIENT_VAULT_BALANCE)

        if destination_address == source.address:
            return source, source

        destination = self.repository.get_record(destination_address) or CustodyRecord(
            address=destination_address
        )
        credited = destination.balance + amount
        if credited > MAX_CUSTODY_BALANCE:
            raise wallet_error(ErrorKind.ARITHMETIC_OVERFLOW)

        source_after = source.model_copy(update={"balance": source.balance - amount})
        destination_after = destination.model_copy(update={"balance": credited})

        self.repository.put_record(source_after)
        self.repository.put_record(destination_after)

        logger.debug(
            "Custody transfer: %s -> %s amount=%d",
            source.address, destination_address, amount,
        )
        return source_after, destination_after
