"""
Anti-Gaming Policy
==================
Independent guards applied at transition boundaries. Each guard raises
PolicyRejected (or Unauthorized for relationship failures) with a
human-readable reason and, where possible, a remediation hint.

Guards:
    blocklist            — claim: identity present in the block record
    self_dealing         — claim: requester is the bounty's creator
    conflict_of_interest — approve: approver is the bounty's claimant
    min_work_time        — submit: high-reward bounty submitted too soon after claim
    proof_required       — submit: very-high-reward bounty with no proof and no URL
    submission_quality   — approve: content too short, placeholder URL, or
                           claim→submit gap short enough to look automated

The guards are a deterrent, not a proof system: a client with many wallets
can still get around them.
"""
import logging
import math
from dataclasses import dataclass
from typing import Optional

from bountyboard.core.constants import (
    MIN_CONTENT_LENGTH,
    MIN_WORK_REWARD_THRESHOLD,
    MIN_WORK_TIME_MS,
    PROOF_REWARD_THRESHOLD,
    SUSPICIOUS_SUBMIT_GAP_MS,
)
from bountyboard.core.errors import PolicyRejected, Unauthorized
from bountyboard.models.bounty import Bounty, Submission
from bountyboard.services.blocklist import Blocklist
from bountyboard.utils.url_utils import contains_url, is_placeholder_url

logger = logging.getLogger(__name__)


@dataclass
class AntiGamingPolicy:
    """Thresholds for every guard; defaults come from core.constants."""
    min_work_reward_threshold: int = MIN_WORK_REWARD_THRESHOLD
    min_work_time_ms: int = MIN_WORK_TIME_MS
    proof_reward_threshold: int = PROOF_REWARD_THRESHOLD
    min_content_length: int = MIN_CONTENT_LENGTH
    suspicious_submit_gap_ms: int = SUSPICIOUS_SUBMIT_GAP_MS

    # -----------------------------------------------------------------------
    # Claim
    # -----------------------------------------------------------------------
    @staticmethod
    def check_blocklist(identity: str, blocklist: Optional[Blocklist]) -> None:
        if blocklist is not None and blocklist.is_blocked(identity):
            logger.info("[BLOCKED] %s attempted to claim but is blocklisted", identity)
            raise PolicyRejected("This wallet has been blocklisted for abuse")

    @staticmethod
    def check_self_dealing(bounty: Bounty, requester: str) -> None:
        if bounty.creator == requester.lower():
            logger.info("[SELF-DEALING] %s tried to claim own bounty %s", requester, bounty.id)
            raise PolicyRejected(
                "Creators cannot claim their own bounties",
                hint="Use a different identity to work on bounties.",
            )

    # -----------------------------------------------------------------------
    # Submit
    # -----------------------------------------------------------------------
    def check_min_work_time(self, bounty: Bounty, now: int) -> None:
        if bounty.reward <= self.min_work_reward_threshold or bounty.claimed_at is None:
            return
        elapsed = now - bounty.claimed_at
        if elapsed < self.min_work_time_ms:
            wait_seconds = math.ceil((self.min_work_time_ms - elapsed) / 1000)
            raise PolicyRejected(
                f"Submission too soon after claiming for a bounty of this size "
                f"(minimum {self.min_work_time_ms // 60000} minutes of work).",
                hint=f"Try again in {wait_seconds} seconds.",
                details={"waitSeconds": wait_seconds},
            )

    def check_proof(self, bounty: Bounty, content: str, proof: Optional[str]) -> None:
        if bounty.reward <= self.proof_reward_threshold:
            return
        if not (proof and proof.strip()) and not contains_url(content):
            raise PolicyRejected(
                "Bounties of this size require proof of work.",
                hint="Add a proof field or include a link to the delivered work in the submission.",
            )

    # -----------------------------------------------------------------------
    # Approve
    # -----------------------------------------------------------------------
    @staticmethod
    def check_conflict_of_interest(bounty: Bounty, approver: Optional[str]) -> None:
        if approver and bounty.claimant and approver.lower() == bounty.claimant:
            raise Unauthorized("The claimant cannot approve their own submission")

    def check_submission_quality(self, bounty: Bounty, submission: Optional[Submission]) -> None:
        if submission is None:
            return
        content = (submission.content or "").strip()
        if len(content) < self.min_content_length:
            raise PolicyRejected("Submission content too short to be valid work")

        if content.startswith("http") and is_placeholder_url(content):
            raise PolicyRejected(
                "Submission URL appears to be a test/placeholder. Please submit real work."
            )

        gap = submission.submitted_at - (bounty.claimed_at or 0)
        if 0 < gap < self.suspicious_submit_gap_ms:
            raise PolicyRejected(
                f"Submission came {round(gap / 1000)}s after claiming. "
                f"This looks automated. Please allow time for real work.",
                hint="If this is legitimate, contact the bounty creator for manual approval.",
            )

    # -----------------------------------------------------------------------
    # Composites per transition
    # -----------------------------------------------------------------------
    def guard_claim(self, bounty: Bounty, requester: str, blocklist: Optional[Blocklist]) -> None:
        self.check_blocklist(requester, blocklist)
        self.check_self_dealing(bounty, requester)

    def guard_submit(self, bounty: Bounty, content: str, proof: Optional[str], now: int) -> None:
        self.check_min_work_time(bounty, now)
        self.check_proof(bounty, content, proof)

    def guard_approval(self, bounty: Bounty, approver: Optional[str]) -> None:
        self.check_conflict_of_interest(bounty, approver)
        self.check_submission_quality(bounty, bounty.last_submission)
