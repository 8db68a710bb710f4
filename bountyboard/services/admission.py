"""
Admission Limiter
=================
Anti-hoarding gate applied before a claim is attempted.

Counts the bounties an identity holds in status exactly "claimed". Bounties
already "submitted" do not count: once work is delivered the slot frees,
even before approval.

This is a point-in-time scan over every bounty, recomputed per request.
Fine at moderate scale; above ~10^4 bounties it should become an indexed
per-identity counter.
"""
import logging
from typing import Iterable, List

from bountyboard.core.constants import STATUS_CLAIMED
from bountyboard.core.errors import PolicyRejected
from bountyboard.models.bounty import Bounty

logger = logging.getLogger(__name__)


class AdmissionLimiter:

    def __init__(self, max_active_claims: int = 3) -> None:
        self.max_active_claims = max_active_claims

    @staticmethod
    def active_claims(identity: str, bounties: Iterable[Bounty]) -> List[str]:
        """Ids of bounties ``identity`` currently holds in status "claimed"."""
        identity = identity.lower()
        return [
            b.id for b in bounties
            if b.status == STATUS_CLAIMED and b.claimant == identity
        ]

    def enforce(self, identity: str, bounties: Iterable[Bounty]) -> None:
        """
        Raise PolicyRejected if ``identity`` is at or above the ceiling.

        The rejection lists the offending bounty ids so the client can
        submit or release one of them.
        """
        held = self.active_claims(identity, bounties)
        if len(held) >= self.max_active_claims:
            logger.info("[ADMISSION] %s holds %d claimed bounties (max %d)",
                        identity, len(held), self.max_active_claims)
            raise PolicyRejected(
                f"You already hold {len(held)} claimed bounties (max {self.max_active_claims}).",
                hint="Submit work for or release one of your claimed bounties first.",
                details={"activeClaims": held, "maxActiveClaims": self.max_active_claims},
            )
