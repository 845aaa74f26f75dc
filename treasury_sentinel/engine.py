"""
Wallet Engine — the invocation boundary of the custody engine.

Each public method is one externally triggered invocation. For every call the
engine:

1. reads the logical clock once
2. assembles the deduplicated identity set the host verified for the call
3. opens a single database transaction and loads the entities it touches
4. runs exactly one authorization path (owner threshold, session key,
   guardian membership, or operator match) against detached copies
5. writes state, performs the custody transfer and appends notifications in
   that same transaction

Any WalletError raised at any step rolls back every write of the call, so
quota decrements, approval appends, owner replacement, the transfer and its
notification are observed together or not at all. Callers serialize access to
a given wallet; the engine performs no retries.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterable, Iterator, Sequence
from uuid import UUID, uuid4

from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from treasury_sentinel.authorization.sessions import SessionKeyRegistry
from treasury_sentinel.authorization.threshold import (
    ThresholdAuthorizer,
    dedupe_identities,
    threshold_authorizer,
)
from treasury_sentinel.config import settings
from treasury_sentinel.errors import ErrorKind, WalletError, wallet_error
from treasury_sentinel.governance.recovery import RecoveryCoordinator, recovery_coordinator
from treasury_sentinel.ledger.custody import CustodyLedger
from treasury_sentinel.ledger.models import NotificationEntryDB
from treasury_sentinel.ledger.repository import WalletRepository
from treasury_sentinel.ledger.service import NotificationLedger, create_database_engine
from treasury_sentinel.treasury.gateway import TreasuryGateway, treasury_gateway
from treasury_sentinel.wallet.clock import Clock, ManualClock
from treasury_sentinel.wallet.schema import (
    AuthorizationPath,
    CustodyRecord,
    GuardianSet,
    NotificationKind,
    OwnerShare,
    RecoveryPhase,
    SessionConfig,
    SessionKeyAccount,
    TransferReceipt,
    WalletState,
    session_key_address,
    treasury_address,
)
from treasury_sentinel.wallet.validation import (
    normalize_memo,
    owner_share,
    validate_amount,
    validate_guardians,
    validate_identity,
    validate_owner_set,
    validate_threshold,
    validate_u64,
)

logger = logging.getLogger(__name__)

OwnerInput = OwnerShare | tuple[str, int]


def _as_shares(owners: Sequence[OwnerInput]) -> tuple[OwnerShare, ...]:
    return tuple(
        owner if isinstance(owner, OwnerShare) else owner_share(*owner)
        for owner in owners
    )


def _owners_content(owners: Sequence[OwnerShare]) -> list[dict]:
    return [{"identity": share.identity, "weight": share.weight} for share in owners]


class _Invocation:
    """Per-call handles bound to one open transaction."""

    def __init__(self, session: Session, now: int) -> None:
        self.session = session
        self.now = now
        self.repository = WalletRepository(session)
        self.custody = CustodyLedger(self.repository)


class WalletEngine:
    """
    Exposes the wallet operations to the host.

    Usage:
        engine = WalletEngine.from_url("sqlite://", clock=ManualClock())
        wallet = engine.init_wallet(
            owners=[("alice", 1), ("bob", 1)],
            threshold=2,
            guardians=["g1", "g2", "g3"],
            quorum=2,
            cooldown=100,
        )
        engine.fund_treasury(wallet.id, 1_000, depositor="alice")
        engine.execute_transfer(wallet.id, {"alice", "bob"}, "merchant", 250)
    """

    def __init__(
        self,
        database: Engine,
        clock: Clock,
        authorizer: ThresholdAuthorizer | None = None,
        sessions: SessionKeyRegistry | None = None,
        recovery: RecoveryCoordinator | None = None,
        gateway: TreasuryGateway | None = None,
    ) -> None:
        self.database = database
        self.clock = clock
        self.authorizer = authorizer or threshold_authorizer
        self.sessions = sessions or SessionKeyRegistry(self.authorizer)
        self.recovery = recovery or recovery_coordinator
        self.gateway = gateway or treasury_gateway
        self.ledger = NotificationLedger(database)
        self.SessionLocal = self.ledger.SessionLocal

    @classmethod
    def from_url(
        cls,
        database_url: str | None = None,
        clock: Clock | None = None,
        echo: bool | None = None,
    ) -> WalletEngine:
        """Build an engine on ``database_url`` (settings by default) and initialize it."""
        database = create_database_engine(
            database_url or settings.database_url,
            echo=settings.database_echo if echo is None else echo,
        )
        engine = cls(database, clock or ManualClock())
        engine.initialize()
        return engine

    def initialize(self) -> None:
        """Create tables and seed the notification ledger."""
        self.ledger.initialize()

    @contextmanager
    def _invoke(self, operation: str) -> Iterator[_Invocation]:
        now = self.clock.now()
        try:
            with self.SessionLocal.begin() as session:
                yield _Invocation(session, now)
        except WalletError as exc:
            logger.warning("Invocation rejected: op=%s kind=%s", operation, exc.kind.value)
            raise

    def _notify(
        self,
        call: _Invocation,
        kind: NotificationKind,
        wallet_id: UUID,
        actor: str | None,
        content: dict,
    ) -> None:
        self.ledger.append(
            call.session,
            kind=kind,
            wallet_id=wallet_id,
            actor=actor,
            content={**content, "tick": call.now},
        )

    def _transfer_listener(self, call: _Invocation):
        def _emit(receipt: TransferReceipt) -> None:
            self._notify(
                call,
                NotificationKind.TRANSFER_COMPLETED,
                receipt.wallet_id,
                receipt.actor,
                receipt.to_content(),
            )
        return _emit

    # ════════════════════════════════════════════════════════════
    # Wallet lifecycle
    # ════════════════════════════════════════════════════════════

    def init_wallet(
        self,
        owners: Sequence[OwnerInput],
        threshold: int,
        guardians: Sequence[str] = (),
        quorum: int = 0,
        cooldown: int = 0,
        operator: str | None = None,
        wallet_id: UUID | None = None,
    ) -> WalletState:
        """
        Create a wallet and its empty treasury.

        Raises:
            InputValidationError: TOO_MANY_OWNERS, DUPLICATE_OWNER,
                TOO_MANY_GUARDIANS, DUPLICATE_GUARDIAN.
            AuthorizationError: OWNER_THRESHOLD_NOT_MET for an empty owner set,
                a zero weight or a threshold outside (0, total weight].
            InputValidationError: INVALID_IDENTITY for an empty or over-long
                owner, guardian or operator identity; ARITHMETIC_OVERFLOW for a
                weight or cooldown outside its integer width.
            RecoveryStateError: GUARDIAN_QUORUM_NOT_MET for an invalid quorum.
        """
        with self._invoke("init_wallet") as call:
            shares = _as_shares(owners)
            validate_owner_set(shares)
            validate_guardians(guardians, quorum)
            validate_threshold(shares, threshold)
            validate_u64(cooldown)
            if operator is not None:
                validate_identity(operator)

            wallet_id = wallet_id or uuid4()
            wallet = WalletState(
                id=wallet_id,
                owners=shares,
                threshold=threshold,
                guardians=GuardianSet(
                    guardians=tuple(guardians),
                    quorum=quorum,
                    cooldown=cooldown,
                ),
                session_nonce=0,
                treasury=treasury_address(wallet_id),
                operator_delegate=operator,
            )
            call.repository.add_wallet(wallet)
            call.repository.put_record(
                CustodyRecord(address=wallet.treasury, balance=0, wallet_id=wallet.id)
            )
            self._notify(
                call,
                NotificationKind.WALLET_INITIALIZED,
                wallet.id,
                None,
                {
                    "owners": _owners_content(shares),
                    "threshold": threshold,
                    "guardians": list(guardians),
                    "quorum": quorum,
                    "cooldown": cooldown,
                    "operator": operator,
                    "treasury": wallet.treasury,
                },
            )

        logger.info(
            "Wallet initialized: id=%s owners=%d threshold=%d guardians=%d",
            str(wallet.id)[:8], len(shares), threshold, len(guardians),
        )
        return wallet

    def fund_treasury(self, wallet_id: UUID, amount: int, depositor: str) -> int:
        """Credit the wallet treasury; returns the new treasury balance."""
        with self._invoke("fund_treasury") as call:
            validate_amount(amount)
            wallet = call.repository.require_wallet(wallet_id)
            record = call.repository.get_record(wallet.treasury)
            if record is None or record.wallet_id != wallet.id:
                raise wallet_error(ErrorKind.VAULT_BALANCE_MISSING)
            updated = call.custody.credit(wallet.treasury, amount)
            self._notify(
                call,
                NotificationKind.TREASURY_FUNDED,
                wallet.id,
                depositor,
                {"amount": amount, "balance_after": updated.balance},
            )
        return updated.balance

    def set_operator(
        self,
        wallet_id: UUID,
        signers: Iterable[str],
        new_operator: str | None,
    ) -> WalletState:
        """Owner-gated: set or clear the operator delegate."""
        verified = dedupe_identities(signers)
        with self._invoke("set_operator") as call:
            if new_operator is not None:
                validate_identity(new_operator)
            wallet = call.repository.require_wallet(wallet_id)
            self.authorizer.verify(wallet, verified)

            updated = wallet.model_copy(update={"operator_delegate": new_operator})
            call.repository.save_wallet(updated)
            self._notify(
                call,
                NotificationKind.OPERATOR_CHANGED,
                wallet.id,
                None,
                {
                    "previous_operator": wallet.operator_delegate,
                    "operator": new_operator,
                    "signers": list(verified),
                },
            )
        return updated

    # ════════════════════════════════════════════════════════════
    # Session keys
    # ════════════════════════════════════════════════════════════

    def register_session_key(
        self,
        wallet_id: UUID,
        signers: Iterable[str],
        authority: str,
        config: SessionConfig | None = None,
    ) -> SessionKeyAccount:
        """Owner-gated: create the session keyed by (wallet, authority)."""
        verified = dedupe_identities(signers)
        config = config or SessionConfig()
        with self._invoke("register_session_key") as call:
            validate_identity(authority)
            wallet = call.repository.require_wallet(wallet_id)
            existing = call.repository.get_session(session_key_address(wallet.id, authority))
            updated_wallet, session = self.sessions.register(
                wallet, verified, authority, config, existing=existing
            )
            call.repository.add_session(session)
            call.repository.save_wallet(updated_wallet)
            self._notify(
                call,
                NotificationKind.SESSION_KEY_REGISTERED,
                wallet.id,
                authority,
                {
                    "session": session.address,
                    "expires_at": session.expires_at,
                    "usage_limit": session.remaining_calls,
                    "value_limit": session.remaining_value,
                    "allowed_targets": list(session.allowed_targets),
                    "session_nonce": updated_wallet.session_nonce,
                },
            )
        return session

    def revoke_session_key(
        self,
        wallet_id: UUID,
        signers: Iterable[str],
        authority: str,
    ) -> SessionKeyAccount:
        """Owner-gated: destroy the session keyed by (wallet, authority)."""
        verified = dedupe_identities(signers)
        with self._invoke("revoke_session_key") as call:
            wallet = call.repository.require_wallet(wallet_id)
            session = call.repository.get_session(session_key_address(wallet.id, authority))
            closed = self.sessions.revoke(wallet, verified, session)
            call.repository.delete_session(closed.address)
            self._notify(
                call,
                NotificationKind.SESSION_KEY_REVOKED,
                wallet.id,
                authority,
                {"session": closed.address},
            )
        return closed

    # ════════════════════════════════════════════════════════════
    # Transfers
    # ════════════════════════════════════════════════════════════

    def execute_transfer(
        self,
        wallet_id: UUID,
        signers: Iterable[str],
        destination: str,
        amount: int,
        memo: bytes | str | None = None,
    ) -> TransferReceipt:
        """Owner-gated transfer out of the treasury."""
        verified = dedupe_identities(signers)
        with self._invoke("execute_transfer") as call:
            validate_amount(amount)
            normalize_memo(memo)
            wallet = call.repository.require_wallet(wallet_id)
            result = self.authorizer.verify(wallet, verified)
            return self.gateway.transfer(
                call.custody,
                wallet,
                actor=result.approvers[0],
                destination=destination,
                amount=amount,
                memo=memo,
                path=AuthorizationPath.OWNER_THRESHOLD,
                notify=self._transfer_listener(call),
            )

    def execute_transfer_via_session(
        self,
        wallet_id: UUID,
        session_address: str,
        caller: str,
        destination: str,
        amount: int,
        memo: bytes | str | None = None,
    ) -> TransferReceipt:
        """
        Session-gated transfer: authorized by the session authority alone.

        Quota decrements are persisted only if the transfer also succeeds.
        """
        with self._invoke("execute_transfer_via_session") as call:
            validate_amount(amount)
            normalize_memo(memo)
            session = call.repository.get_session(session_address)
            if session is None:
                raise wallet_error(ErrorKind.SESSION_KEY_NOT_FOUND)
            wallet = call.repository.require_wallet(wallet_id)

            consumed = self.sessions.authorize_transfer(
                session,
                wallet_id=wallet.id,
                caller=caller,
                amount=amount,
                destination=destination,
                now=call.now,
            )
            receipt = self.gateway.transfer(
                call.custody,
                wallet,
                actor=caller,
                destination=destination,
                amount=amount,
                memo=memo,
                path=AuthorizationPath.SESSION_KEY,
                notify=self._transfer_listener(call),
            )
            call.repository.save_session(consumed)
        return receipt

    def operator_transfer(
        self,
        wallet_id: UUID,
        caller: str,
        destination: str,
        amount: int,
        memo: bytes | str | None = None,
    ) -> TransferReceipt:
        """Operator-gated transfer: the caller must be the operator delegate."""
        with self._invoke("operator_transfer") as call:
            validate_amount(amount)
            normalize_memo(memo)
            wallet = call.repository.require_wallet(wallet_id)
            self.gateway.authorize_operator(wallet, caller)
            return self.gateway.transfer(
                call.custody,
                wallet,
                actor=caller,
                destination=destination,
                amount=amount,
                memo=memo,
                path=AuthorizationPath.OPERATOR,
                notify=self._transfer_listener(call),
            )

    # ════════════════════════════════════════════════════════════
    # Guardian recovery
    # ════════════════════════════════════════════════════════════

    def guardian_initiate_recovery(
        self,
        wallet_id: UUID,
        guardian: str,
        new_threshold: int,
        new_owners: Sequence[OwnerInput],
    ) -> WalletState:
        with self._invoke("guardian_initiate_recovery") as call:
            shares = _as_shares(new_owners)
            wallet = call.repository.require_wallet(wallet_id)
            updated = self.recovery.initiate(wallet, guardian, new_threshold, shares, call.now)
            call.repository.save_wallet(updated)
            self._notify(
                call,
                NotificationKind.RECOVERY_PROPOSED,
                wallet.id,
                guardian,
                {
                    "execute_after": updated.guardians.recovery.execute_after,
                    "new_threshold": new_threshold,
                    "new_owners": _owners_content(shares),
                },
            )
        return updated

    def guardian_vote_recovery(self, wallet_id: UUID, guardian: str) -> WalletState:
        with self._invoke("guardian_vote_recovery") as call:
            wallet = call.repository.require_wallet(wallet_id)
            updated = self.recovery.vote(wallet, guardian)
            call.repository.save_wallet(updated)
            self._notify(
                call,
                NotificationKind.RECOVERY_VOTE,
                wallet.id,
                guardian,
                {"approvals": len(updated.guardians.recovery.approvals)},
            )
        return updated

    def guardian_execute_recovery(self, wallet_id: UUID, guardian: str) -> WalletState:
        with self._invoke("guardian_execute_recovery") as call:
            wallet = call.repository.require_wallet(wallet_id)
            updated = self.recovery.execute(wallet, guardian, call.now)
            call.repository.save_wallet(updated)
            self._notify(
                call,
                NotificationKind.RECOVERY_COMPLETED,
                wallet.id,
                guardian,
                {
                    "executed_tick": call.now,
                    "owners": _owners_content(updated.owners),
                    "threshold": updated.threshold,
                },
            )
        return updated

    # ════════════════════════════════════════════════════════════
    # Read accessors
    # ════════════════════════════════════════════════════════════

    def get_wallet(self, wallet_id: UUID) -> WalletState:
        with self.SessionLocal() as session:
            return WalletRepository(session).require_wallet(wallet_id)

    def get_session(self, wallet_id: UUID, authority: str) -> SessionKeyAccount | None:
        with self.SessionLocal() as session:
            return WalletRepository(session).get_session(
                session_key_address(wallet_id, authority)
            )

    def list_sessions(self, wallet_id: UUID) -> list[SessionKeyAccount]:
        with self.SessionLocal() as session:
            return WalletRepository(session).list_sessions(wallet_id)

    def balance_of(self, address: str) -> int:
        with self.SessionLocal() as session:
            return CustodyLedger(WalletRepository(session)).balance_of(address)

    def treasury_balance(self, wallet_id: UUID) -> int:
        return self.balance_of(treasury_address(wallet_id))

    def recovery_phase(self, wallet_id: UUID) -> RecoveryPhase:
        return self.recovery.phase(self.get_wallet(wallet_id), self.clock.now())

    def notifications(
        self,
        wallet_id: UUID,
        kind: NotificationKind | None = None,
    ) -> list[NotificationEntryDB]:
        return self.ledger.get_entries_for_wallet(wallet_id, kind)

    def verify_audit_trail(self) -> tuple[bool, int, str]:
        return self.ledger.verify_chain()
