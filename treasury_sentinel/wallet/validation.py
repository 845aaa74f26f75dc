"""Input validation shared by wallet creation, recovery and transfers."""

from __future__ import annotations

from typing import Sequence

from treasury_sentinel.errors import ErrorKind, wallet_error
from treasury_sentinel.wallet.schema import (
    MAX_GUARDIANS,
    MAX_IDENTITY_LENGTH,
    MAX_MEMO_LENGTH,
    MAX_OWNERS,
    U16_MAX,
    U64_MAX,
    OwnerShare,
)


def validate_identity(identity: object) -> str:
    """Non-empty string of at most MAX_IDENTITY_LENGTH characters."""
    if not isinstance(identity, str) or not 0 < len(identity) <= MAX_IDENTITY_LENGTH:
        raise wallet_error(ErrorKind.INVALID_IDENTITY)
    return identity


def owner_share(identity: str, weight: int) -> OwnerShare:
    """Build an OwnerShare, mapping out-of-range input onto wallet errors."""
    validate_identity(identity)
    if weight < 0:
        raise wallet_error(ErrorKind.OWNER_THRESHOLD_NOT_MET)
    if weight > U16_MAX:
        raise wallet_error(ErrorKind.ARITHMETIC_OVERFLOW)
    return OwnerShare(identity=identity, weight=weight)


def validate_owner_set(owners: Sequence[OwnerShare]) -> None:
    """Non-empty, at most MAX_OWNERS, positive weights, no identity twice."""
    if not owners:
        raise wallet_error(ErrorKind.OWNER_THRESHOLD_NOT_MET)
    if len(owners) > MAX_OWNERS:
        raise wallet_error(ErrorKind.TOO_MANY_OWNERS)

    seen: set[str] = set()
    for share in owners:
        if share.weight <= 0:
            raise wallet_error(ErrorKind.OWNER_THRESHOLD_NOT_MET)
        if share.identity in seen:
            raise wallet_error(ErrorKind.DUPLICATE_OWNER)
        seen.add(share.identity)


def validate_threshold(owners: Sequence[OwnerShare], threshold: int) -> None:
    total_weight = sum(share.weight for share in owners)
    if threshold <= 0 or threshold > min(total_weight, U16_MAX):
        raise wallet_error(ErrorKind.OWNER_THRESHOLD_NOT_MET)


def validate_guardians(guardians: Sequence[str], quorum: int) -> None:
    """
    Validate a guardian list and its quorum.

    An empty list requires quorum 0; otherwise 1 <= quorum <= len(guardians).
    """
    if len(guardians) > MAX_GUARDIANS:
        raise wallet_error(ErrorKind.TOO_MANY_GUARDIANS)
    if not guardians:
        if quorum != 0:
            raise wallet_error(ErrorKind.GUARDIAN_QUORUM_NOT_MET)
        return
    if quorum <= 0 or quorum > len(guardians):
        raise wallet_error(ErrorKind.GUARDIAN_QUORUM_NOT_MET)

    seen: set[str] = set()
    for guardian in guardians:
        validate_identity(guardian)
        if guardian in seen:
            raise wallet_error(ErrorKind.DUPLICATE_GUARDIAN)
        seen.add(guardian)


def validate_amount(amount: int) -> None:
    if amount <= 0:
        raise wallet_error(ErrorKind.AMOUNT_MUST_BE_POSITIVE)
    if amount > U64_MAX:
        raise wallet_error(ErrorKind.ARITHMETIC_OVERFLOW)


def normalize_memo(memo: bytes | str | None) -> bytes | None:
    """Encode a text memo as UTF-8 and enforce MAX_MEMO_LENGTH bytes."""
    if memo is None:
        return None
    data = memo.encode("utf-8") if isinstance(memo, str) else bytes(memo)
    if len(data) > MAX_MEMO_LENGTH:
        raise wallet_error(ErrorKind.MEMO_TOO_LONG)
    return data


def validate_u64(value: int) -> int:
    if value < 0 or value > U64_MAX:
        raise wallet_error(ErrorKind.ARITHMETIC_OVERFLOW)
    return value


def checked_add_u64(left: int, right: int) -> int:
    result = left + right
    if result > U64_MAX:
        raise wallet_error(ErrorKind.ARITHMETIC_OVERFLOW)
    return result
