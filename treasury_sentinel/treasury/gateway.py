"""
Treasury Gateway — the only code path that moves value out of a wallet treasury.

The gateway never decides *whether* a caller is entitled to spend; one of the
authorization paths (owner threshold, session key, operator delegate) must
already have succeeded. It enforces the transfer contract itself:

- the amount is strictly positive
- the memo, when present, is at most MAX_MEMO_LENGTH bytes
- the destination is a well-formed identity
- the treasury exists and points back at the wallet being debited
- the treasury balance covers the amount

and then emits one uniform transfer-completed notification tagged with the
authorization path, whichever path it was.
"""

from __future__ import annotations

import logging
from typing import Callable

from treasury_sentinel.errors import ErrorKind, wallet_error
from treasury_sentinel.ledger.custody import CustodyLedger
from treasury_sentinel.wallet.schema import AuthorizationPath, TransferReceipt, WalletState
from treasury_sentinel.wallet.validation import (
    normalize_memo,
    validate_amount,
    validate_identity,
)

logger = logging.getLogger(__name__)

TransferListener = Callable[[TransferReceipt], None]


class TreasuryGateway:
    """Executes authorized transfers against a wallet's treasury."""

    def authorize_operator(self, wallet: WalletState, caller: str) -> None:
        """
        Operator path: the caller must be the configured operator delegate.

        Raises:
            AuthorizationError: OPERATOR_NOT_CONFIGURED, also when no delegate is set.
        """
        if wallet.operator_delegate is None or wallet.operator_delegate != caller:
            raise wallet_error(ErrorKind.OPERATOR_NOT_CONFIGURED)

    def transfer(
        self,
        custody: CustodyLedger,
        wallet: WalletState,
        actor: str,
        destination: str,
        amount: int,
        memo: bytes | str | None,
        path: AuthorizationPath,
        notify: TransferListener | None = None,
    ) -> TransferReceipt:
        """
        Move ``amount`` from the wallet treasury to ``destination``.

        Args:
            custody: Custody ledger bound to the current transaction.
            wallet: Wallet whose treasury is debited.
            actor: Identity credited with the transfer in the notification.
            destination: Custody address receiving the value.
            amount: Strictly positive amount.
            memo: Optional memo (bytes, or text encoded as UTF-8).
            path: Authorization path that released the transfer.
            notify: Receives the transfer-completed notification.

        Returns:
            The TransferReceipt that was emitted.
        """
        validate_amount(amount)
        memo_bytes = normalize_memo(memo)
        validate_identity(destination)

        treasury = custody.repository.get_record(wallet.treasury)
        if treasury is None or treasury.wallet_id != wallet.id:
            raise wallet_error(ErrorKind.VAULT_BALANCE_MISSING)

        treasury_after, _ = custody.transfer(treasury, destination, amount)

        receipt = TransferReceipt(
            wallet_id=wallet.id,
            actor=actor,
            destination=destination,
            amount=amount,
            memo=memo_bytes,
            path=path,
            treasury_balance_after=treasury_after.balance,
        )
        if notify is not None:
            notify(receipt)

        logger.info(
            "Transfer completed: wallet=%s path=%s amount=%d destination=%s",
            str(wallet.id)[:8], path.value, amount, destination,
        )
        return receipt


treasury_gateway = TreasuryGateway()
