"""
Bounty State Machine
====================
Owns every valid status transition and the per-action source-state rules.

    open            → claimed          (claim, optimistic protocol only)
    open            → cancelled        (cancel, creator only)
    claimed         → submitted        (submit)
    claimed         → open             (reject / release)
    submitted       → submitted        (additional submission)
    submitted       → claimed          (last submission deleted)
    submitted       → completed        (approve, payment executed synchronously)
    submitted       → payment_pending  (approve, payment deferred to the relay)
    submitted       → open             (reject / release)
    payment_pending → completed        (confirm_payment from the relay)

Rules:
    - open → claimed only through the optimistic claim protocol
    - every transition stamps updated_at
    - reject / release append exactly one audit record (previous claimant,
      previous submissions, reason) before clearing claimant and submissions
    - payment_pending and completed never go back to open
    - cancelled is terminal
"""
import logging
from typing import Dict, FrozenSet, Optional

from bountyboard.core.constants import (
    STATUS_CANCELLED,
    STATUS_CLAIMED,
    STATUS_COMPLETED,
    STATUS_OPEN,
    STATUS_PAYMENT_PENDING,
    STATUS_SUBMITTED,
)
from bountyboard.core.errors import InvalidState
from bountyboard.models.bounty import AuditRecord, Bounty

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Transition table: status → reachable statuses
# ---------------------------------------------------------------------------
TRANSITIONS: Dict[str, FrozenSet[str]] = {
    STATUS_OPEN: frozenset({STATUS_CLAIMED, STATUS_CANCELLED}),
    STATUS_CLAIMED: frozenset({STATUS_SUBMITTED, STATUS_OPEN}),
    STATUS_SUBMITTED: frozenset({
        STATUS_SUBMITTED, STATUS_CLAIMED, STATUS_PAYMENT_PENDING, STATUS_COMPLETED, STATUS_OPEN,
    }),
    STATUS_PAYMENT_PENDING: frozenset({STATUS_COMPLETED}),
    STATUS_COMPLETED: frozenset(),
    STATUS_CANCELLED: frozenset(),
}

# ---------------------------------------------------------------------------
# Action → statuses it may start from
# ---------------------------------------------------------------------------
ACTION_SOURCES: Dict[str, FrozenSet[str]] = {
    "claim": frozenset({STATUS_OPEN}),
    "cancel": frozenset({STATUS_OPEN}),
    "update": frozenset({STATUS_OPEN}),
    "submit": frozenset({STATUS_CLAIMED, STATUS_SUBMITTED}),
    "edit_submission": frozenset({STATUS_SUBMITTED}),
    "delete_submission": frozenset({STATUS_SUBMITTED}),
    "approve": frozenset({STATUS_SUBMITTED}),
    "grade": frozenset({STATUS_SUBMITTED}),
    "reject": frozenset({STATUS_CLAIMED, STATUS_SUBMITTED}),
    "release": frozenset({STATUS_CLAIMED, STATUS_SUBMITTED}),
    "confirm_payment": frozenset({STATUS_PAYMENT_PENDING}),
}

_STATE_MESSAGES = {
    "claim": "Bounty is not open for claims",
    "cancel": "Cannot cancel claimed bounty",
    "update": "Only open bounties can be edited",
    "submit": "Bounty is not claimed",
    "edit_submission": "Submissions can only be edited while awaiting review",
    "delete_submission": "Submissions can only be deleted while awaiting review",
    "approve": "No submission to approve",
    "grade": "No submission to grade",
    "reject": "Cannot reject bounty",
    "release": "Cannot release bounty",
    "confirm_payment": "Bounty has no pending payment",
}


def can(action: str, status: str) -> bool:
    return status in ACTION_SOURCES.get(action, frozenset())


def require_state(bounty: Bounty, action: str) -> None:
    """Raise InvalidState if ``action`` is not allowed from the bounty's status."""
    if not can(action, bounty.status):
        message = _STATE_MESSAGES.get(action, f"Cannot {action} bounty")
        raise InvalidState(
            f"{message} (status: {bounty.status})",
            details={"status": bounty.status, "action": action},
        )


def transition(bounty: Bounty, target: str, now: int) -> Bounty:
    """
    Move ``bounty`` to ``target`` in place, stamping updated_at.

    Raises
    ------
    InvalidState
        If the transition table does not allow status → target.
    """
    if target not in TRANSITIONS.get(bounty.status, frozenset()):
        raise InvalidState(
            f"Illegal transition {bounty.status} → {target}",
            details={"status": bounty.status, "target": target},
        )
    logger.debug("Bounty %s: %s → %s", bounty.id, bounty.status, target)
    bounty.status = target
    bounty.updated_at = now
    return bounty


def reset_to_open(
    bounty: Bounty,
    trail: str,
    reason: str,
    now: int,
    actor: Optional[str] = None,
) -> AuditRecord:
    """
    Return a claimed/submitted bounty to open, keeping an audit record.

    Parameters
    ----------
    trail : str
        "rejections" or "releases".

    Returns
    -------
    AuditRecord
        The record appended to the trail.
    """
    record = AuditRecord(
        at=now,
        reason=reason,
        previous_claimant=bounty.claimant,
        previous_claimed_at=bounty.claimed_at,
        previous_submissions=list(bounty.submissions),
        actor=actor,
    )
    getattr(bounty, trail).append(record)
    transition(bounty, STATUS_OPEN, now)
    bounty.claimant = None
    bounty.claimed_at = None
    bounty.submissions = []
    return record
