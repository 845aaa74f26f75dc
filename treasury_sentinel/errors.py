"""
Wallet error taxonomy.

Every rejected invocation raises exactly one ``WalletError``. The error carries
nothing but its kind: callers branch on ``exc.kind`` and resubmit if they want
to retry. The subclasses group kinds into the four failure families:

- InputValidationError  — malformed amounts, memos, owner or guardian sets
- AuthorizationError    — the caller is not entitled to the operation
- ResourceStateError    — missing records, exhausted or out-of-scope quotas
- RecoveryStateError    — the guardian recovery lifecycle rejects the call
"""

from __future__ import annotations

import enum


class ErrorKind(str, enum.Enum):
    """Stable identifiers for every failure the engine can report."""

    # Input validation
    AMOUNT_MUST_BE_POSITIVE = "amount_must_be_positive"
    MEMO_TOO_LONG = "memo_too_long"
    DUPLICATE_OWNER = "duplicate_owner"
    TOO_MANY_OWNERS = "too_many_owners"
    TOO_MANY_GUARDIANS = "too_many_guardians"
    DUPLICATE_GUARDIAN = "duplicate_guardian"
    ARITHMETIC_OVERFLOW = "arithmetic_overflow"
    INVALID_IDENTITY = "invalid_identity"

    # Authorization
    OWNER_THRESHOLD_NOT_MET = "owner_threshold_not_met"
    WITHDRAW_AUTHORISATION_FAILED = "withdraw_authorisation_failed"
    OPERATOR_NOT_CONFIGURED = "operator_not_configured"
    GUARDIAN_NOT_FOUND = "guardian_not_found"
    SESSION_KEY_WALLET_MISMATCH = "session_key_wallet_mismatch"

    # Resource state
    VAULT_BALANCE_MISSING = "vault_balance_missing"
    INSUFFICIENT_VAULT_BALANCE = "insufficient_vault_balance"
    SESSION_KEY_EXHAUSTED = "session_key_exhausted"
    SESSION_KEY_EXPIRED = "session_key_expired"
    SESSION_PROGRAM_NOT_AUTHORISED = "session_program_not_authorised"
    WALLET_NOT_FOUND = "wallet_not_found"
    SESSION_KEY_NOT_FOUND = "session_key_not_found"
    SESSION_KEY_ALREADY_REGISTERED = "session_key_already_registered"

    # Recovery state
    RECOVERY_IN_PROGRESS = "recovery_in_progress"
    NO_ACTIVE_RECOVERY = "no_active_recovery"
    GUARDIAN_ALREADY_APPROVED = "guardian_already_approved"
    GUARDIAN_QUORUM_NOT_MET = "guardian_quorum_not_met"
    RECOVERY_NOT_READY = "recovery_not_ready"


_MESSAGES: dict[ErrorKind, str] = {
    ErrorKind.AMOUNT_MUST_BE_POSITIVE: "Amount must be greater than zero",
    ErrorKind.MEMO_TOO_LONG: "Memo exceeds allowed length",
    ErrorKind.DUPLICATE_OWNER: "Duplicate owner detected",
    ErrorKind.TOO_MANY_OWNERS: "Too many owners supplied",
    ErrorKind.TOO_MANY_GUARDIANS: "Too many guardians supplied",
    ErrorKind.DUPLICATE_GUARDIAN: "Duplicate guardian detected",
    ErrorKind.ARITHMETIC_OVERFLOW: "Counter would overflow",
    ErrorKind.INVALID_IDENTITY: "Identity is empty or too long",
    ErrorKind.OWNER_THRESHOLD_NOT_MET: "Owner signature threshold not satisfied",
    ErrorKind.WITHDRAW_AUTHORISATION_FAILED: "Caller is not authorised to withdraw",
    ErrorKind.OPERATOR_NOT_CONFIGURED: "Operator delegate is not configured",
    ErrorKind.GUARDIAN_NOT_FOUND: "Guardian is not registered",
    ErrorKind.SESSION_KEY_WALLET_MISMATCH: "Session key account does not belong to wallet",
    ErrorKind.VAULT_BALANCE_MISSING: "Treasury record missing for wallet",
    ErrorKind.INSUFFICIENT_VAULT_BALANCE: "Balance is insufficient",
    ErrorKind.SESSION_KEY_EXHAUSTED: "Session key already exhausted",
    ErrorKind.SESSION_KEY_EXPIRED: "Session key has expired",
    ErrorKind.SESSION_PROGRAM_NOT_AUTHORISED: "Session key is not authorised for this target",
    ErrorKind.WALLET_NOT_FOUND: "Wallet does not exist",
    ErrorKind.SESSION_KEY_NOT_FOUND: "Session key does not exist",
    ErrorKind.SESSION_KEY_ALREADY_REGISTERED: "Session key already registered for authority",
    ErrorKind.RECOVERY_IN_PROGRESS: "Guardian recovery already in progress",
    ErrorKind.NO_ACTIVE_RECOVERY: "No active guardian recovery to act on",
    ErrorKind.GUARDIAN_ALREADY_APPROVED: "Guardian has already approved this recovery proposal",
    ErrorKind.GUARDIAN_QUORUM_NOT_MET: "Guardian quorum not satisfied",
    ErrorKind.RECOVERY_NOT_READY: "Guardian recovery is not yet ready to execute",
}


class WalletError(Exception):
    """Base class for every rejected wallet invocation."""

    kinds: frozenset[ErrorKind] = frozenset()

    def __init__(self, kind: ErrorKind) -> None:
        if self.kinds and kind not in self.kinds:
            raise TypeError(f"{kind.value} is not a {type(self).__name__}")
        self.kind = kind
        super().__init__(_MESSAGES[kind])

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.kind.value})"


class InputValidationError(WalletError):
    """Malformed request input."""

    kinds = frozenset({
        ErrorKind.AMOUNT_MUST_BE_POSITIVE,
        ErrorKind.MEMO_TOO_LONG,
        ErrorKind.DUPLICATE_OWNER,
        ErrorKind.TOO_MANY_OWNERS,
        ErrorKind.TOO_MANY_GUARDIANS,
        ErrorKind.DUPLICATE_GUARDIAN,
        ErrorKind.ARITHMETIC_OVERFLOW,
        ErrorKind.INVALID_IDENTITY,
    })


class AuthorizationError(WalletError):
    """The invoking identities do not carry the required authority."""

    kinds = frozenset({
        ErrorKind.OWNER_THRESHOLD_NOT_MET,
        ErrorKind.WITHDRAW_AUTHORISATION_FAILED,
        ErrorKind.OPERATOR_NOT_CONFIGURED,
        ErrorKind.GUARDIAN_NOT_FOUND,
        ErrorKind.SESSION_KEY_WALLET_MISMATCH,
    })


class ResourceStateError(WalletError):
    """A referenced record is missing or cannot cover the request."""

    kinds = frozenset({
        ErrorKind.VAULT_BALANCE_MISSING,
        ErrorKind.INSUFFICIENT_VAULT_BALANCE,
        ErrorKind.SESSION_KEY_EXHAUSTED,
        ErrorKind.SESSION_KEY_EXPIRED,
        ErrorKind.SESSION_PROGRAM_NOT_AUTHORISED,
        ErrorKind.WALLET_NOT_FOUND,
        ErrorKind.SESSION_KEY_NOT_FOUND,
        ErrorKind.SESSION_KEY_ALREADY_REGISTERED,
    })


class RecoveryStateError(WalletError):
    """The guardian recovery lifecycle does not permit the call."""

    kinds = frozenset({
        ErrorKind.RECOVERY_IN_PROGRESS,
        ErrorKind.NO_ACTIVE_RECOVERY,
        ErrorKind.GUARDIAN_ALREADY_APPROVED,
        ErrorKind.GUARDIAN_QUORUM_NOT_MET,
        ErrorKind.RECOVERY_NOT_READY,
    })


_FAMILIES: tuple[type[WalletError], ...] = (
    InputValidationError,
    AuthorizationError,
    ResourceStateError,
    RecoveryStateError,
)


def wallet_error(kind: ErrorKind) -> WalletError:
    """Build the error of the right family for ``kind``."""
    for family in _FAMILIES:
        if kind in family.kinds:
            return family(kind)
    return WalletError(kind)
