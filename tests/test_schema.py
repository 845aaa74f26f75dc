"""
Tests for wallet schema models, validation helpers and the error taxonomy.

Validates:
- Frozen models and derived fields
- Owner, guardian, amount and memo validation
- Error kinds map to their failure family
- The logical clock never moves backwards
"""

from __future__ import annotations

from uuid import uuid4

import pytest
from pydantic import ValidationError

from treasury_sentinel.errors import (
    AuthorizationError,
    ErrorKind,
    InputValidationError,
    RecoveryStateError,
    ResourceStateError,
    WalletError,
    wallet_error,
)
from treasury_sentinel.wallet.clock import ManualClock
from treasury_sentinel.wallet.schema import (
    MAX_GUARDIANS,
    MAX_OWNERS,
    U64_MAX,
    GuardianSet,
    NoActiveRecovery,
    OwnerShare,
    RecoveryProposal,
    WalletState,
    session_key_address,
    treasury_address,
)
from treasury_sentinel.wallet.validation import (
    checked_add_u64,
    normalize_memo,
    owner_share,
    validate_amount,
    validate_guardians,
    validate_identity,
    validate_owner_set,
    validate_threshold,
    validate_u64,
)


def _shares(*pairs):
    return tuple(OwnerShare(identity=i, weight=w) for i, w in pairs)


class TestWalletModels:
    def test_total_weight(self):
        wallet = WalletState(owners=_shares(("A", 2), ("B", 3)), threshold=4)
        assert wallet.total_weight == 5
        assert wallet.owner_weight("B") == 3
        assert wallet.owner_weight("Z") is None

    def test_models_are_frozen(self):
        wallet = WalletState(owners=_shares(("A", 1)), threshold=1)
        with pytest.raises(ValidationError):
            wallet.threshold = 5

    def test_weight_out_of_range(self):
        with pytest.raises(ValidationError):
            OwnerShare(identity="A", weight=70_000)

    def test_quorum_is_u8(self):
        with pytest.raises(ValidationError):
            GuardianSet(guardians=("G",), quorum=256)

    def test_recovery_round_trips_through_json(self):
        proposal = RecoveryProposal(
            proposer="G1",
            proposed_at=5,
            execute_after=105,
            new_threshold=1,
            new_owners=_shares(("X", 1)),
            approvals=("G1",),
        )
        wallet = WalletState(
            owners=_shares(("A", 1)),
            threshold=1,
            guardians=GuardianSet(guardians=("G1",), quorum=1, recovery=proposal),
        )
        restored = WalletState.model_validate(wallet.model_dump(mode="json"))
        assert restored == wallet
        assert isinstance(restored.guardians.recovery, RecoveryProposal)

    def test_default_recovery_is_inactive(self):
        assert isinstance(GuardianSet().recovery, NoActiveRecovery)

    def test_addresses_are_deterministic(self):
        wallet_id = uuid4()
        assert session_key_address(wallet_id, "k") == session_key_address(wallet_id, "k")
        assert session_key_address(wallet_id, "k") != session_key_address(wallet_id, "j")
        assert session_key_address(wallet_id, "k") != session_key_address(uuid4(), "k")
        assert treasury_address(wallet_id).endswith(str(wallet_id))


class TestOwnerValidation:
    def test_valid_owner_set(self):
        validate_owner_set(_shares(("A", 1), ("B", 1)))

    def test_empty_owner_set(self):
        with pytest.raises(AuthorizationError) as exc:
            validate_owner_set(())
        assert exc.value.kind == ErrorKind.OWNER_THRESHOLD_NOT_MET

    def test_too_many_owners(self):
        owners = _shares(*[(f"o{i}", 1) for i in range(MAX_OWNERS + 1)])
        with pytest.raises(InputValidationError) as exc:
            validate_owner_set(owners)
        assert exc.value.kind == ErrorKind.TOO_MANY_OWNERS

    def test_max_owners_accepted(self):
        validate_owner_set(_shares(*[(f"o{i}", 1) for i in range(MAX_OWNERS)]))

    def test_duplicate_owner(self):
        with pytest.raises(InputValidationError) as exc:
            validate_owner_set(_shares(("A", 1), ("A", 2)))
        assert exc.value.kind == ErrorKind.DUPLICATE_OWNER

    def test_zero_weight(self):
        with pytest.raises(WalletError) as exc:
            validate_owner_set(_shares(("A", 0)))
        assert exc.value.kind == ErrorKind.OWNER_THRESHOLD_NOT_MET

    @pytest.mark.parametrize("threshold", [0, 4])
    def test_threshold_out_of_range(self, threshold):
        with pytest.raises(AuthorizationError):
            validate_threshold(_shares(("A", 1), ("B", 2)), threshold)

    def test_threshold_capped_at_u16(self):
        owners = _shares(("A", 65535), ("B", 65535))
        validate_threshold(owners, 65535)
        with pytest.raises(AuthorizationError) as exc:
            validate_threshold(owners, 70_000)
        assert exc.value.kind == ErrorKind.OWNER_THRESHOLD_NOT_MET

    def test_owner_share_maps_range_errors(self):
        assert owner_share("A", 2) == OwnerShare(identity="A", weight=2)
        with pytest.raises(InputValidationError) as exc:
            owner_share("", 1)
        assert exc.value.kind == ErrorKind.INVALID_IDENTITY
        with pytest.raises(InputValidationError) as exc:
            owner_share("A", 70_000)
        assert exc.value.kind == ErrorKind.ARITHMETIC_OVERFLOW
        with pytest.raises(AuthorizationError):
            owner_share("A", -1)

    def test_threshold_equal_to_total_weight(self):
        validate_threshold(_shares(("A", 1), ("B", 2)), 3)


class TestGuardianValidation:
    def test_no_guardians_requires_zero_quorum(self):
        validate_guardians((), 0)
        with pytest.raises(RecoveryStateError) as exc:
            validate_guardians((), 1)
        assert exc.value.kind == ErrorKind.GUARDIAN_QUORUM_NOT_MET

    @pytest.mark.parametrize("quorum", [0, 3])
    def test_quorum_out_of_range(self, quorum):
        with pytest.raises(RecoveryStateError):
            validate_guardians(("G1", "G2"), quorum)

    def test_too_many_guardians(self):
        guardians = tuple(f"g{i}" for i in range(MAX_GUARDIANS + 1))
        with pytest.raises(InputValidationError) as exc:
            validate_guardians(guardians, 1)
        assert exc.value.kind == ErrorKind.TOO_MANY_GUARDIANS

    def test_malformed_guardian_identity(self):
        with pytest.raises(InputValidationError) as exc:
            validate_guardians(("G1", "g" * 89), 1)
        assert exc.value.kind == ErrorKind.INVALID_IDENTITY

    def test_duplicate_guardian(self):
        with pytest.raises(InputValidationError) as exc:
            validate_guardians(("G1", "G1"), 1)
        assert exc.value.kind == ErrorKind.DUPLICATE_GUARDIAN


class TestIdentityValidation:
    @pytest.mark.parametrize("identity", ["", "x" * 89, None, 7])
    def test_malformed_identity(self, identity):
        with pytest.raises(InputValidationError) as exc:
            validate_identity(identity)
        assert exc.value.kind == ErrorKind.INVALID_IDENTITY

    def test_identity_at_limit(self):
        assert validate_identity("x" * 88) == "x" * 88


class TestAmountsAndMemos:
    def test_amount_bounds(self):
        validate_amount(1)
        validate_amount(U64_MAX)
        with pytest.raises(InputValidationError):
            validate_amount(0)
        with pytest.raises(InputValidationError) as exc:
            validate_amount(U64_MAX + 1)
        assert exc.value.kind == ErrorKind.ARITHMETIC_OVERFLOW

    def test_memo_normalization(self):
        assert normalize_memo(None) is None
        assert normalize_memo("hi") == b"hi"
        assert normalize_memo(b"\x00\x01") == b"\x00\x01"

    def test_u64_range(self):
        assert validate_u64(U64_MAX) == U64_MAX
        with pytest.raises(InputValidationError):
            validate_u64(U64_MAX + 1)
        with pytest.raises(InputValidationError):
            validate_u64(-1)

    def test_checked_add(self):
        assert checked_add_u64(U64_MAX - 1, 1) == U64_MAX
        with pytest.raises(WalletError):
            checked_add_u64(U64_MAX, 1)


class TestErrorFamilies:
    @pytest.mark.parametrize(
        "kind,family",
        [
            (ErrorKind.MEMO_TOO_LONG, InputValidationError),
            (ErrorKind.GUARDIAN_NOT_FOUND, AuthorizationError),
            (ErrorKind.SESSION_KEY_EXPIRED, ResourceStateError),
            (ErrorKind.RECOVERY_NOT_READY, RecoveryStateError),
        ],
    )
    def test_wallet_error_picks_family(self, kind, family):
        error = wallet_error(kind)
        assert isinstance(error, family)
        assert isinstance(error, WalletError)
        assert error.kind == kind

    def test_every_kind_has_a_family(self):
        for kind in ErrorKind:
            assert type(wallet_error(kind)) is not WalletError

    def test_family_rejects_foreign_kind(self):
        with pytest.raises(TypeError):
            RecoveryStateError(ErrorKind.MEMO_TOO_LONG)


class TestManualClock:
    def test_advance_and_set(self):
        clock = ManualClock(10)
        assert clock.now() == 10
        assert clock.advance(5) == 15
        assert clock.set(20) == 20

    def test_cannot_go_backwards(self):
        clock = ManualClock(10)
        with pytest.raises(ValueError):
            clock.set(9)
        with pytest.raises(ValueError):
            clock.advance(-1)
