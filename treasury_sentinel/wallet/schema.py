"""
Wallet Schema — Pydantic models for every entity the custody engine reasons about.

These models are the canonical in-memory shapes for wallet configuration,
delegated session keys, guardian recovery proposals, custody records and the
notifications emitted for audit. They are frozen: every state transition
produces a new instance, so a failed invocation can never leave a half-updated
object behind.

Integer fields carry the widths the wallet contract is defined over
(u8 quorum, u16 weights and thresholds, u64 ticks, amounts and quotas).
"""

from __future__ import annotations

import enum
import hashlib
from typing import Annotated, Literal, Union
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, StringConstraints, computed_field


# ════════════════════════════════════════════════════════════════
# Capacities and integer widths
# ════════════════════════════════════════════════════════════════

MAX_OWNERS = 10
MAX_GUARDIANS = 10
MAX_SESSION_TARGETS = 8
MAX_MEMO_LENGTH = 128

U8_MAX = 2**8 - 1
U16_MAX = 2**16 - 1
U64_MAX = 2**64 - 1

MAX_IDENTITY_LENGTH = 88

Identity = Annotated[str, StringConstraints(min_length=1, max_length=MAX_IDENTITY_LENGTH)]
U8 = Annotated[int, Field(ge=0, le=U8_MAX)]
U16 = Annotated[int, Field(ge=0, le=U16_MAX)]
U64 = Annotated[int, Field(ge=0, le=U64_MAX)]


def treasury_address(wallet_id: UUID) -> str:
    """Deterministic custody address of a wallet's treasury."""
    return f"wallet-treasury:{wallet_id}"


def session_key_address(wallet_id: UUID, authority: str) -> str:
    """Deterministic storage address of the session keyed by (wallet, authority)."""
    digest = hashlib.sha256(
        f"session-key|{wallet_id}|{authority}".encode("utf-8")
    ).hexdigest()
    return f"session-key:{digest[:40]}"


# ════════════════════════════════════════════════════════════════
# Enumerations
# ════════════════════════════════════════════════════════════════


class AuthorizationPath(str, enum.Enum):
    """Which authorization path released a treasury transfer."""

    OWNER_THRESHOLD = "owner_threshold"
    SESSION_KEY = "session_key"
    OPERATOR = "operator"


class NotificationKind(str, enum.Enum):
    """Types of entries written to the notification ledger."""

    GENESIS = "genesis"
    WALLET_INITIALIZED = "wallet_initialized"
    TREASURY_FUNDED = "treasury_funded"
    OPERATOR_CHANGED = "operator_changed"
    SESSION_KEY_REGISTERED = "session_key_registered"
    SESSION_KEY_REVOKED = "session_key_revoked"
    TRANSFER_COMPLETED = "transfer_completed"
    RECOVERY_PROPOSED = "recovery_proposed"
    RECOVERY_VOTE = "recovery_vote"
    RECOVERY_COMPLETED = "recovery_completed"


class RecoveryPhase(str, enum.Enum):
    """Derived lifecycle phase of a wallet's guardian recovery."""

    NO_ACTIVE = "no_active"
    PROPOSED = "proposed"
    READY_TO_EXECUTE = "ready_to_execute"


# ════════════════════════════════════════════════════════════════
# Owners and guardians
# ════════════════════════════════════════════════════════════════


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


class OwnerShare(_Frozen):
    """An owner identity paired with its voting weight."""

    identity: Identity
    weight: U16 = Field(description="Voting weight; zero is rejected by owner-set validation")


class NoActiveRecovery(_Frozen):
    """Recovery variant: nothing in flight."""

    status: Literal["no_active"] = "no_active"


class RecoveryProposal(_Frozen):
    """
    Recovery variant: a guardian proposal awaiting votes and its time-lock.

    ``approvals`` is seeded with the proposer and never holds a guardian twice.
    """

    status: Literal["proposed"] = "proposed"
    proposer: Identity
    proposed_at: U64 = Field(description="Tick at which the proposal was made")
    execute_after: U64 = Field(description="proposed_at + cooldown")
    new_threshold: U16
    new_owners: tuple[OwnerShare, ...]
    approvals: tuple[Identity, ...]

    def is_ready(self, now: int) -> bool:
        return now >= self.execute_after


RecoveryState = Annotated[
    Union[NoActiveRecovery, RecoveryProposal],
    Field(discriminator="status"),
]


class GuardianSet(_Frozen):
    """Guardians, their quorum and cooldown. Only ``recovery`` changes after creation."""

    guardians: tuple[Identity, ...] = ()
    quorum: U8 = 0
    cooldown: U64 = Field(default=0, description="Time-lock length in ticks")
    recovery: RecoveryState = Field(default_factory=NoActiveRecovery)

    def is_guardian(self, identity: str) -> bool:
        return identity in self.guardians


# ════════════════════════════════════════════════════════════════
# Wallet
# ════════════════════════════════════════════════════════════════


class WalletState(_Frozen):
    """
    Configuration of one multi-party wallet.

    Invariant: 0 < threshold <= total_weight, checked at creation and at every
    recovery execution.
    """

    id: UUID = Field(default_factory=uuid4)
    owners: tuple[OwnerShare, ...]
    threshold: U16
    guardians: GuardianSet = Field(default_factory=GuardianSet)
    session_nonce: U64 = 0
    treasury: str = Field(default="", description="Custody address of the treasury")
    operator_delegate: Identity | None = None

    @computed_field
    @property
    def total_weight(self) -> int:
        return sum(share.weight for share in self.owners)

    def owner_weight(self, identity: str) -> int | None:
        for share in self.owners:
            if share.identity == identity:
                return share.weight
        return None


# ════════════════════════════════════════════════════════════════
# Session keys
# ════════════════════════════════════════════════════════════════


class SessionConfig(_Frozen):
    """Limits requested when registering a session key. ``None`` means unlimited."""

    expires_at: U64 | None = Field(default=None, description="Last tick the key is usable")
    usage_limit: U64 | None = None
    value_limit: U64 | None = None
    allowed_targets: tuple[Identity, ...] = Field(
        default=(), description="Permitted destinations; empty means unrestricted"
    )


class SessionKeyAccount(_Frozen):
    """A delegated authority with consumable quotas."""

    address: str
    wallet_id: UUID
    authority: Identity
    expires_at: U64 | None = None
    remaining_calls: U64 | None = None
    remaining_value: U64 | None = None
    allowed_targets: tuple[Identity, ...] = ()


# ════════════════════════════════════════════════════════════════
# Custody and notifications
# ════════════════════════════════════════════════════════════════


class CustodyRecord(_Frozen):
    """A balance-holding record. Treasuries carry a back-reference to their wallet."""

    address: str
    balance: int = Field(default=0, ge=0)
    wallet_id: UUID | None = None


class TransferReceipt(_Frozen):
    """The uniform transfer-completed notification, whatever path authorized it."""

    wallet_id: UUID
    actor: Identity
    destination: Identity
    amount: U64
    memo: bytes | None = None
    path: AuthorizationPath
    treasury_balance_after: int = Field(ge=0)

    @computed_field
    @property
    def via_session(self) -> bool:
        return self.path == AuthorizationPath.SESSION_KEY

    def to_content(self) -> dict:
        return {
            "wallet": str(self.wallet_id),
            "actor": self.actor,
            "destination": self.destination,
            "amount": self.amount,
            "memo": self.memo.hex() if self.memo is not None else None,
            "path": self.path.value,
            "via_session": self.via_session,
            "treasury_balance_after": self.treasury_balance_after,
        }
