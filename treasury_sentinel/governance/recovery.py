"""
Guardian Recovery — time-locked replacement of a wallet's owner set.

Implements the recovery lifecycle:
1. PROPOSE — a guardian proposes new owners and threshold; its approval is recorded
2. VOTE    — other guardians add their approval, each at most once
3. LOCK    — nothing may execute before proposed_at + cooldown
4. EXECUTE — any guardian executes once the time-lock has passed and the
             quorum of approvals is reached; owners and threshold are replaced

At most one proposal is in flight per wallet and there is no cancel
transition: a stale proposal blocks new ones until it is executed. The
time-lock gives legitimate owners a window to notice and respond to a hostile
guardian majority before it takes effect.

Guardians can only drive recovery; they never authorize ordinary transfers.
"""

from __future__ import annotations

import logging
from typing import Sequence

from treasury_sentinel.errors import ErrorKind, wallet_error
from treasury_sentinel.wallet.schema import (
    NoActiveRecovery,
    OwnerShare,
    RecoveryPhase,
    RecoveryProposal,
    WalletState,
)
from treasury_sentinel.wallet.validation import (
    checked_add_u64,
    validate_owner_set,
    validate_threshold,
)

logger = logging.getLogger(__name__)


def _pending(wallet: WalletState) -> RecoveryProposal:
    recovery = wallet.guardians.recovery
    if isinstance(recovery, NoActiveRecovery):
        raise wallet_error(ErrorKind.NO_ACTIVE_RECOVERY)
    if isinstance(recovery, RecoveryProposal):
        return recovery
    raise TypeError(f"Unknown recovery state: {recovery!r}")


def _with_recovery(
    wallet: WalletState,
    recovery: NoActiveRecovery | RecoveryProposal,
    **updates,
) -> WalletState:
    guardians = wallet.guardians.model_copy(update={"recovery": recovery})
    return wallet.model_copy(update={"guardians": guardians, **updates})


class RecoveryCoordinator:
    """
    Guardian-driven state machine over a wallet's recovery variant.

    Every method takes the current wallet and returns the next wallet; the
    input is never modified, so a rejected call has no effect.
    """

    def ensure_guardian(self, wallet: WalletState, guardian: str) -> None:
        if not wallet.guardians.is_guardian(guardian):
            raise wallet_error(ErrorKind.GUARDIAN_NOT_FOUND)

    def initiate(
        self,
        wallet: WalletState,
        guardian: str,
        new_threshold: int,
        new_owners: Sequence[OwnerShare],
        now: int,
    ) -> WalletState:
        """
        Propose a new owner set.

        Args:
            wallet: Wallet under recovery.
            guardian: Proposing guardian (its approval is recorded).
            new_threshold: Threshold to install on execution.
            new_owners: Owner shares to install on execution.
            now: Current logical tick.

        Raises:
            InputValidationError / AuthorizationError: malformed owners or threshold.
            AuthorizationError: GUARDIAN_NOT_FOUND.
            RecoveryStateError: RECOVERY_IN_PROGRESS.
        """
        validate_owner_set(new_owners)
        self.ensure_guardian(wallet, guardian)

        recovery = wallet.guardians.recovery
        if isinstance(recovery, RecoveryProposal):
            raise wallet_error(ErrorKind.RECOVERY_IN_PROGRESS)
        if not isinstance(recovery, NoActiveRecovery):
            raise TypeError(f"Unknown recovery state: {recovery!r}")

        validate_threshold(new_owners, new_threshold)
        execute_after = checked_add_u64(now, wallet.guardians.cooldown)

        proposal = RecoveryProposal(
            proposer=guardian,
            proposed_at=now,
            execute_after=execute_after,
            new_threshold=new_threshold,
            new_owners=tuple(new_owners),
            approvals=(guardian,),
        )

        logger.info(
            "Recovery proposed: wallet=%s guardian=%s execute_after=%d owners=%d",
            str(wallet.id)[:8], guardian, execute_after, len(new_owners),
        )
        return _with_recovery(wallet, proposal)

    def vote(self, wallet: WalletState, guardian: str) -> WalletState:
        """
        Record ``guardian``'s approval of the active proposal.

        Raises:
            AuthorizationError: GUARDIAN_NOT_FOUND.
            RecoveryStateError: NO_ACTIVE_RECOVERY, GUARDIAN_ALREADY_APPROVED.
        """
        self.ensure_guardian(wallet, guardian)
        proposal = _pending(wallet)

        if guardian in proposal.approvals:
            raise wallet_error(ErrorKind.GUARDIAN_ALREADY_APPROVED)

        updated = proposal.model_copy(
            update={"approvals": proposal.approvals + (guardian,)}
        )

        logger.info(
            "Recovery vote: wallet=%s guardian=%s approvals=%d/%d",
            str(wallet.id)[:8], guardian, len(updated.approvals), wallet.guardians.quorum,
        )
        return _with_recovery(wallet, updated)

    def execute(self, wallet: WalletState, guardian: str, now: int) -> WalletState:
        """
        Install the proposed owners and threshold, clearing the proposal.

        Raises:
            AuthorizationError: GUARDIAN_NOT_FOUND.
            RecoveryStateError: NO_ACTIVE_RECOVERY, RECOVERY_NOT_READY,
                GUARDIAN_QUORUM_NOT_MET.
        """
        self.ensure_guardian(wallet, guardian)
        proposal = _pending(wallet)

        if not proposal.is_ready(now):
            raise wallet_error(ErrorKind.RECOVERY_NOT_READY)
        if len(proposal.approvals) < wallet.guardians.quorum:
            raise wallet_error(ErrorKind.GUARDIAN_QUORUM_NOT_MET)

        # Re-checked so the weight invariant holds even for hand-built proposals.
        validate_owner_set(proposal.new_owners)
        validate_threshold(proposal.new_owners, proposal.new_threshold)

        logger.info(
            "Recovery executed: wallet=%s tick=%d new_owners=%d new_threshold=%d",
            str(wallet.id)[:8], now, len(proposal.new_owners), proposal.new_threshold,
        )
        return _with_recovery(
            wallet,
            NoActiveRecovery(),
            owners=proposal.new_owners,
            threshold=proposal.new_threshold,
        )

    def phase(self, wallet: WalletState, now: int) -> RecoveryPhase:
        """Derived lifecycle phase at tick ``now``."""
        recovery = wallet.guardians.recovery
        if isinstance(recovery, NoActiveRecovery):
            return RecoveryPhase.NO_ACTIVE
        if isinstance(recovery, RecoveryProposal):
            if recovery.is_ready(now) and len(recovery.approvals) >= wallet.guardians.quorum:
                return RecoveryPhase.READY_TO_EXECUTE
            return RecoveryPhase.PROPOSED
        raise TypeError(f"Unknown recovery state: {recovery!r}")


recovery_coordinator = RecoveryCoordinator()
