"""
Owner Threshold Authorization — weighted multisignature check.

Every owner-gated operation (operator change, session key registration and
revocation, direct treasury transfer) passes through this check before any
state is touched. The check is a pure function of the wallet configuration and
the identity set the host has already verified for the current call:

- identities are deduplicated, so one signer never counts twice
- identities that are not owners are ignored rather than rejected
- the call is authorized iff the summed owner weight reaches the threshold

The identity set is always passed in explicitly by the boundary layer. Nothing
here enumerates signers on its own.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable

from treasury_sentinel.errors import ErrorKind, wallet_error
from treasury_sentinel.wallet.schema import WalletState

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ThresholdCheckResult:
    """Outcome of summing owner weight for one identity set."""

    approving_weight: int
    threshold: int
    approvers: tuple[str, ...] = field(default_factory=tuple)
    ignored: tuple[str, ...] = field(default_factory=tuple)

    @property
    def is_allowed(self) -> bool:
        return self.approving_weight >= self.threshold


def dedupe_identities(identities: Iterable[str]) -> tuple[str, ...]:
    """Order-preserving deduplication of a verified identity set."""
    return tuple(dict.fromkeys(identities))


class ThresholdAuthorizer:
    """Pure predicate over (wallet, verified identities)."""

    def check(self, wallet: WalletState, signers: Iterable[str]) -> ThresholdCheckResult:
        """
        Sum the weight of distinct owners among ``signers``.

        Args:
            wallet: Current wallet configuration.
            signers: Identities the host verified as authorizing this call.

        Returns:
            ThresholdCheckResult with the approving weight and who counted.
        """
        approvers: list[str] = []
        ignored: list[str] = []
        weight = 0

        for identity in dedupe_identities(signers):
            owner_weight = wallet.owner_weight(identity)
            if owner_weight is None:
                ignored.append(identity)
                continue
            weight += owner_weight
            approvers.append(identity)

        return ThresholdCheckResult(
            approving_weight=weight,
            threshold=wallet.threshold,
            approvers=tuple(approvers),
            ignored=tuple(ignored),
        )

    def verify(self, wallet: WalletState, signers: Iterable[str]) -> ThresholdCheckResult:
        """
        Like ``check`` but raises when the threshold is not reached.

        Raises:
            AuthorizationError: OWNER_THRESHOLD_NOT_MET.
        """
        result = self.check(wallet, signers)
        if not result.is_allowed:
            logger.debug(
                "Owner threshold not met: wallet=%s weight=%d threshold=%d",
                str(wallet.id)[:8], result.approving_weight, result.threshold,
            )
            raise wallet_error(ErrorKind.OWNER_THRESHOLD_NOT_MET)
        return result


threshold_authorizer = ThresholdAuthorizer()
