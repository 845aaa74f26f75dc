"""
Session Key Registry — scoped, quota-bounded delegated authorities.

Owners (through the weighted threshold) register a session key for an
authority identity. The key may then release treasury transfers on its own
signature, without the owner threshold, as long as every quota holds:

1. the session belongs to the wallet being debited
2. the caller is the session's authority
3. a call remains (when a usage limit was set)
4. the value budget covers the amount (when a value limit was set)
5. the current tick is not past the expiry (when one was set)
6. the destination is allow-listed (when the allowlist is non-empty)

Checks run in that order against a working copy of the session. The caller
receives the decremented copy and persists it only when the whole invocation,
including the transfer itself, succeeds.
"""

from __future__ import annotations

import logging
from typing import Iterable
from uuid import UUID

from treasury_sentinel.authorization.threshold import ThresholdAuthorizer, threshold_authorizer
from treasury_sentinel.errors import ErrorKind, wallet_error
from treasury_sentinel.wallet.schema import (
    MAX_SESSION_TARGETS,
    SessionConfig,
    SessionKeyAccount,
    WalletState,
    session_key_address,
)
from treasury_sentinel.wallet.validation import checked_add_u64, validate_amount

logger = logging.getLogger(__name__)


class SessionKeyRegistry:
    """Creates, revokes and consumes session keys."""

    def __init__(self, authorizer: ThresholdAuthorizer | None = None) -> None:
        self.authorizer = authorizer or threshold_authorizer

    def register(
        self,
        wallet: WalletState,
        signers: Iterable[str],
        authority: str,
        config: SessionConfig,
        existing: SessionKeyAccount | None = None,
    ) -> tuple[WalletState, SessionKeyAccount]:
        """
        Register a session key for ``authority`` on ``wallet``.

        Args:
            wallet: Wallet the key will spend from.
            signers: Verified identities authorizing the registration.
            authority: Identity that will sign session transfers.
            config: Expiry, usage and value limits, target allowlist.
            existing: Session already stored at (wallet, authority), if any.

        Returns:
            The wallet with its session nonce advanced, and the new session.
        """
        if len(config.allowed_targets) > MAX_SESSION_TARGETS:
            raise wallet_error(ErrorKind.SESSION_PROGRAM_NOT_AUTHORISED)

        self.authorizer.verify(wallet, signers)

        if existing is not None:
            raise wallet_error(ErrorKind.SESSION_KEY_ALREADY_REGISTERED)

        session = SessionKeyAccount(
            address=session_key_address(wallet.id, authority),
            wallet_id=wallet.id,
            authority=authority,
            expires_at=config.expires_at,
            remaining_calls=config.usage_limit,
            remaining_value=config.value_limit,
            allowed_targets=config.allowed_targets,
        )
        updated_wallet = wallet.model_copy(
            update={"session_nonce": checked_add_u64(wallet.session_nonce, 1)}
        )

        logger.info(
            "Session key registered: wallet=%s authority=%s expires_at=%s usage_limit=%s",
            str(wallet.id)[:8], authority, config.expires_at, config.usage_limit,
        )
        return updated_wallet, session

    def revoke(
        self,
        wallet: WalletState,
        signers: Iterable[str],
        session: SessionKeyAccount | None,
    ) -> SessionKeyAccount:
        """Authorize destruction of ``session``; returns the session being closed."""
        self.authorizer.verify(wallet, signers)
        if session is None:
            raise wallet_error(ErrorKind.SESSION_KEY_NOT_FOUND)
        if session.wallet_id != wallet.id:
            raise wallet_error(ErrorKind.SESSION_KEY_WALLET_MISMATCH)

        logger.info(
            "Session key revoked: wallet=%s authority=%s",
            str(wallet.id)[:8], session.authority,
        )
        return session

    def authorize_transfer(
        self,
        session: SessionKeyAccount,
        wallet_id: UUID,
        caller: str,
        amount: int,
        destination: str,
        now: int,
    ) -> SessionKeyAccount:
        """
        Run the per-use checks and return the session with quotas consumed.

        The input session is never modified.

        Raises:
            AuthorizationError: SESSION_KEY_WALLET_MISMATCH, WITHDRAW_AUTHORISATION_FAILED.
            ResourceStateError: SESSION_KEY_EXHAUSTED, INSUFFICIENT_VAULT_BALANCE,
                SESSION_KEY_EXPIRED, SESSION_PROGRAM_NOT_AUTHORISED.
        """
        validate_amount(amount)
        remaining_calls = session.remaining_calls
        remaining_value = session.remaining_value

        if session.wallet_id != wallet_id:
            raise wallet_error(ErrorKind.SESSION_KEY_WALLET_MISMATCH)
        if session.authority != caller:
            raise wallet_error(ErrorKind.WITHDRAW_AUTHORISATION_FAILED)

        if remaining_calls is not None:
            if remaining_calls <= 0:
                raise wallet_error(ErrorKind.SESSION_KEY_EXHAUSTED)
            remaining_calls -= 1

        if remaining_value is not None:
            if remaining_value < amount:
                raise wallet_error(ErrorKind.INSUFFICIENT_VAULT_BALANCE)
            remaining_value -= amount

        if session.expires_at is not None and now > session.expires_at:
            raise wallet_error(ErrorKind.SESSION_KEY_EXPIRED)

        if session.allowed_targets and destination not in session.allowed_targets:
            raise wallet_error(ErrorKind.SESSION_PROGRAM_NOT_AUTHORISED)

        return session.model_copy(
            update={
                "remaining_calls": remaining_calls,
                "remaining_value": remaining_value,
            }
        )

