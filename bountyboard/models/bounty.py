"""
Bounty Model
============
Pydantic models for a bounty and everything it owns.

Bounty fields:
    id            — store-assigned key (string form of the row id)
    uuid          — client-side UUID, used for idempotent lookups
    title, description, requirements, tags
    reward        — integer amount in the smallest USDC unit
    deadline      — epoch ms
    status        — see BountyStatus
    creator       — lower-cased creator address
    claimant      — lower-cased claimant address (None unless claimed..completed)
    claimed_at    — epoch ms of the winning claim
    submissions   — ordered, owned by the bounty, mutated only by the claimant
    rejections    — audit trail of reject transitions
    releases      — audit trail of release transitions
    payment       — outcome of the approval / payment step

Invariants (enforced by the state machine, checked by check_invariants):
    claimant is set  ⇔  status ∈ {claimed, submitted, payment_pending, completed}
    submissions      ⇔  status ∈ {submitted, payment_pending, completed}
    creator != claimant
"""
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, computed_field

from bountyboard.core.constants import (
    CLAIMANT_STATUSES,
    SUBMISSION_STATUSES,
    USDC_UNIT,
)

BountyStatus = Literal[
    "open",
    "claimed",
    "submitted",
    "payment_pending",
    "completed",
    "cancelled",
]


def format_usdc(amount: int) -> str:
    """Render an integer USDC amount as "12.34 USDC"."""
    return f"{amount / USDC_UNIT:.2f} USDC"


class RequirementCheck(BaseModel):
    requirement: str
    check: str            # link / word_count / video / platform / image / keywords
    met: bool
    detail: str = ""


class GradeResult(BaseModel):
    score: int
    passed: bool
    checks: List[RequirementCheck] = Field(default_factory=list)
    auto_reject: bool = False
    graded_at: int = 0


class Submission(BaseModel):
    id: str
    content: str
    proof: Optional[str] = None
    submitted_at: int
    edited_at: Optional[int] = None
    grade: Optional[GradeResult] = None


class AuditRecord(BaseModel):
    """One reject or release cycle, kept after the live fields are cleared."""
    at: int
    reason: str
    previous_claimant: Optional[str] = None
    previous_claimed_at: Optional[int] = None
    previous_submissions: List[Submission] = Field(default_factory=list)
    actor: Optional[str] = None


class PaymentRecord(BaseModel):
    status: Literal["released", "pending"]
    recipient: str
    gross_amount: int
    fee: int
    net_amount: int
    fee_percent: int
    tx_hash: Optional[str] = None
    token: str = "USDC"
    chain: str = "base"
    approved_by: Optional[str] = None

    @computed_field
    @property
    def net_amount_formatted(self) -> str:
        return format_usdc(self.net_amount)

    @computed_field
    @property
    def fee_formatted(self) -> str:
        return format_usdc(self.fee)


class Bounty(BaseModel):
    id: str
    uuid: str
    title: str
    description: str
    requirements: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    reward: int
    deadline: int
    status: BountyStatus = "open"
    creator: str
    claimant: Optional[str] = None
    claimed_at: Optional[int] = None
    submissions: List[Submission] = Field(default_factory=list)
    rejections: List[AuditRecord] = Field(default_factory=list)
    releases: List[AuditRecord] = Field(default_factory=list)
    payment: Optional[PaymentRecord] = None
    created_at: int
    updated_at: int
    approved_at: Optional[int] = None
    completed_at: Optional[int] = None
    cancelled_at: Optional[int] = None

    @computed_field
    @property
    def reward_formatted(self) -> str:
        return format_usdc(self.reward)

    @property
    def last_submission(self) -> Optional[Submission]:
        return self.submissions[-1] if self.submissions else None

    def find_submission(self, submission_id: str) -> Optional[Submission]:
        for sub in self.submissions:
            if sub.id == submission_id:
                return sub
        return None

    def to_document(self) -> dict:
        """JSON-safe document as stored in the row store."""
        return self.model_dump(mode="json")

    @classmethod
    def from_document(cls, doc: dict) -> "Bounty":
        return cls.model_validate(doc)


def check_invariants(bounty: Bounty) -> List[str]:
    """
    Return a list of violated lifecycle invariants (empty when consistent).

    Parameters
    ----------
    bounty : Bounty
        Bounty to inspect.

    Returns
    -------
    list[str]
        Human-readable violations.
    """
    problems: List[str] = []
    has_claimant = bounty.claimant is not None
    if has_claimant != (bounty.status in CLAIMANT_STATUSES):
        problems.append(
            f"claimant={bounty.claimant!r} inconsistent with status={bounty.status}"
        )
    has_submissions = bool(bounty.submissions)
    if has_submissions != (bounty.status in SUBMISSION_STATUSES):
        problems.append(
            f"{len(bounty.submissions)} submissions inconsistent with status={bounty.status}"
        )
    if has_claimant and bounty.claimant == bounty.creator:
        problems.append("creator and claimant are the same identity")
    return problems
