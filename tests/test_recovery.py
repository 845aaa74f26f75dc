"""
Tests for guardian recovery.

Validates:
- Proposal, vote and execution lifecycle
- Time-lock (RecoveryNotReady before proposed_at + cooldown)
- Quorum counting with at most one approval per guardian
- At most one active proposal
- Rejected calls leave the wallet untouched
"""

from __future__ import annotations

import pytest

from treasury_sentinel.errors import ErrorKind, RecoveryStateError, WalletError
from treasury_sentinel.governance.recovery import RecoveryCoordinator
from treasury_sentinel.wallet.schema import (
    U64_MAX,
    GuardianSet,
    NoActiveRecovery,
    OwnerShare,
    RecoveryPhase,
    RecoveryProposal,
    WalletState,
)

NEW_OWNERS = (OwnerShare(identity="X", weight=1),)


def _wallet(quorum: int = 2, cooldown: int = 100) -> WalletState:
    return WalletState(
        owners=(
            OwnerShare(identity="A", weight=1),
            OwnerShare(identity="B", weight=1),
        ),
        threshold=2,
        guardians=GuardianSet(guardians=("G1", "G2", "G3"), quorum=quorum, cooldown=cooldown),
    )


class TestRecoveryLifecycle:
    """Scenario: guardians G1..G3, quorum 2, cooldown 100."""

    def setup_method(self):
        self.coordinator = RecoveryCoordinator()
        self.wallet = _wallet()

    def test_full_recovery_flow(self):
        proposed = self.coordinator.initiate(self.wallet, "G1", 1, NEW_OWNERS, now=1000)
        proposal = proposed.guardians.recovery
        assert isinstance(proposal, RecoveryProposal)
        assert proposal.execute_after == 1100
        assert proposal.approvals == ("G1",)
        assert proposal.proposer == "G1"

        voted = self.coordinator.vote(proposed, "G2")
        assert voted.guardians.recovery.approvals == ("G1", "G2")

        with pytest.raises(RecoveryStateError) as exc:
            self.coordinator.execute(voted, "G3", now=1050)
        assert exc.value.kind == ErrorKind.RECOVERY_NOT_READY

        recovered = self.coordinator.execute(voted, "G3", now=1100)
        assert recovered.owners == NEW_OWNERS
        assert recovered.threshold == 1
        assert isinstance(recovered.guardians.recovery, NoActiveRecovery)
        assert recovered.guardians.guardians == ("G1", "G2", "G3")

    def test_quorum_not_met(self):
        """Only the proposer has approved: execution after the lock still fails."""
        proposed = self.coordinator.initiate(self.wallet, "G1", 1, NEW_OWNERS, now=0)
        with pytest.raises(RecoveryStateError) as exc:
            self.coordinator.execute(proposed, "G1", now=500)
        assert exc.value.kind == ErrorKind.GUARDIAN_QUORUM_NOT_MET

    def test_quorum_of_one_executes_after_lock(self):
        wallet = _wallet(quorum=1, cooldown=0)
        proposed = self.coordinator.initiate(wallet, "G2", 1, NEW_OWNERS, now=7)
        recovered = self.coordinator.execute(proposed, "G3", now=7)
        assert recovered.owners == NEW_OWNERS

    def test_duplicate_vote_rejected(self):
        proposed = self.coordinator.initiate(self.wallet, "G1", 1, NEW_OWNERS, now=0)
        with pytest.raises(RecoveryStateError) as exc:
            self.coordinator.vote(proposed, "G1")
        assert exc.value.kind == ErrorKind.GUARDIAN_ALREADY_APPROVED

    def test_second_proposal_rejected(self):
        proposed = self.coordinator.initiate(self.wallet, "G1", 1, NEW_OWNERS, now=0)
        with pytest.raises(RecoveryStateError) as exc:
            self.coordinator.initiate(proposed, "G2", 1, NEW_OWNERS, now=1)
        assert exc.value.kind == ErrorKind.RECOVERY_IN_PROGRESS

    def test_new_proposal_allowed_after_execution(self):
        proposed = self.coordinator.initiate(self.wallet, "G1", 1, NEW_OWNERS, now=0)
        voted = self.coordinator.vote(proposed, "G2")
        recovered = self.coordinator.execute(voted, "G1", now=100)
        again = self.coordinator.initiate(recovered, "G3", 1, NEW_OWNERS, now=200)
        assert again.guardians.recovery.proposer == "G3"

    def test_vote_without_proposal(self):
        with pytest.raises(RecoveryStateError) as exc:
            self.coordinator.vote(self.wallet, "G1")
        assert exc.value.kind == ErrorKind.NO_ACTIVE_RECOVERY

    def test_execute_without_proposal(self):
        with pytest.raises(RecoveryStateError) as exc:
            self.coordinator.execute(self.wallet, "G1", now=10_000)
        assert exc.value.kind == ErrorKind.NO_ACTIVE_RECOVERY

    def test_input_wallet_not_modified(self):
        proposed = self.coordinator.initiate(self.wallet, "G1", 1, NEW_OWNERS, now=0)
        self.coordinator.vote(proposed, "G2")
        assert isinstance(self.wallet.guardians.recovery, NoActiveRecovery)
        assert proposed.guardians.recovery.approvals == ("G1",)


class TestRecoveryMembership:
    """Only guardians may drive recovery."""

    def setup_method(self):
        self.coordinator = RecoveryCoordinator()
        self.wallet = _wallet()

    def test_non_guardian_cannot_initiate(self):
        with pytest.raises(WalletError) as exc:
            self.coordinator.initiate(self.wallet, "A", 1, NEW_OWNERS, now=0)
        assert exc.value.kind == ErrorKind.GUARDIAN_NOT_FOUND

    def test_non_guardian_cannot_vote(self):
        proposed = self.coordinator.initiate(self.wallet, "G1", 1, NEW_OWNERS, now=0)
        with pytest.raises(WalletError) as exc:
            self.coordinator.vote(proposed, "mallory")
        assert exc.value.kind == ErrorKind.GUARDIAN_NOT_FOUND

    def test_non_guardian_cannot_execute(self):
        proposed = self.coordinator.initiate(self.wallet, "G1", 1, NEW_OWNERS, now=0)
        voted = self.coordinator.vote(proposed, "G2")
        with pytest.raises(WalletError) as exc:
            self.coordinator.execute(voted, "B", now=1000)
        assert exc.value.kind == ErrorKind.GUARDIAN_NOT_FOUND


class TestRecoveryValidation:
    """Proposed owner sets obey the same rules as wallet creation."""

    def setup_method(self):
        self.coordinator = RecoveryCoordinator()
        self.wallet = _wallet()

    def test_threshold_above_total_weight(self):
        with pytest.raises(WalletError) as exc:
            self.coordinator.initiate(self.wallet, "G1", 2, NEW_OWNERS, now=0)
        assert exc.value.kind == ErrorKind.OWNER_THRESHOLD_NOT_MET

    def test_zero_threshold(self):
        with pytest.raises(WalletError) as exc:
            self.coordinator.initiate(self.wallet, "G1", 0, NEW_OWNERS, now=0)
        assert exc.value.kind == ErrorKind.OWNER_THRESHOLD_NOT_MET

    def test_duplicate_new_owner(self):
        owners = (OwnerShare(identity="X", weight=1), OwnerShare(identity="X", weight=2))
        with pytest.raises(WalletError) as exc:
            self.coordinator.initiate(self.wallet, "G1", 1, owners, now=0)
        assert exc.value.kind == ErrorKind.DUPLICATE_OWNER

    def test_owner_validation_precedes_membership(self):
        with pytest.raises(WalletError) as exc:
            self.coordinator.initiate(self.wallet, "mallory", 1, (), now=0)
        assert exc.value.kind == ErrorKind.OWNER_THRESHOLD_NOT_MET

    def test_cooldown_overflow(self):
        wallet = _wallet(cooldown=U64_MAX)
        with pytest.raises(WalletError) as exc:
            self.coordinator.initiate(wallet, "G1", 1, NEW_OWNERS, now=1)
        assert exc.value.kind == ErrorKind.ARITHMETIC_OVERFLOW


class TestRecoveryPhase:
    def setup_method(self):
        self.coordinator = RecoveryCoordinator()
        self.wallet = _wallet()

    def test_phases(self):
        assert self.coordinator.phase(self.wallet, 0) == RecoveryPhase.NO_ACTIVE

        proposed = self.coordinator.initiate(self.wallet, "G1", 1, NEW_OWNERS, now=0)
        assert self.coordinator.phase(proposed, 500) == RecoveryPhase.PROPOSED

        voted = self.coordinator.vote(proposed, "G2")
        assert self.coordinator.phase(voted, 99) == RecoveryPhase.PROPOSED
        assert self.coordinator.phase(voted, 100) == RecoveryPhase.READY_TO_EXECUTE
