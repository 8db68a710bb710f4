"""
Bounty Lifecycle Engine
=======================
Runs every bounty action through its guards and the state machine, then
persists the result through the durable cache.

Control Flow (per mutating action):
    RateLimiter → AdmissionLimiter (claim only) → AntiGamingPolicy
        → state machine transition → Grader (submit only) → DurableCache

Optimistic Claim Protocol:
    1. read the bounty; missing → NotFound, status != open → InvalidState
    2. build the claimed document (existing fields + claimant, claimed_at)
    3. conditional write with status=open in the write's own predicate
    4. zero rows matched → lost race: re-read and raise Conflict naming the
       winner (or InvalidState if the bounty left "open" some other way)
    5. memory-only mode falls back to an in-process check-then-set, logged
       as unsafe by the cache on every use

cancel() and update_details() also leave "open", so they use the same
conditional write and lose to a claim that landed first. Every other
transition is a guarded overwrite: only the claimant submits and only the
creator or a moderator approves.

Payment:
    With a payment executor configured, approve() blocks on the transfer and
    only marks the bounty completed if it succeeds. A failed transfer raises
    UpstreamUnavailable and leaves the bounty submitted. Without an executor
    the bounty moves to payment_pending and confirm_payment() completes it.
    While a transfer is in flight, submit, edit, delete, reject and release
    on that bounty are refused with Conflict.

Side Effects (fire-and-forget, outbound queue):
    - new-bounty webhooks on create
    - reputation feedback on completion
"""
import logging
import uuid
from typing import Callable, Dict, Iterable, List, Optional, Set, Tuple

from bountyboard.core.constants import (
    ACTION_CLAIM,
    ACTION_CREATE,
    ACTION_SUBMIT,
    DEFAULT_DEADLINE_MS,
    MAX_DESCRIPTION_LENGTH,
    MAX_REQUIREMENTS,
    MAX_SUBMISSION_LENGTH,
    MAX_TITLE_LENGTH,
    PAYMENT_CHAIN,
    PAYMENT_TOKEN,
    PLATFORM_FEE_PERCENT,
    REPUTATION_FEEDBACK_SCORE,
    STATUS_CANCELLED,
    STATUS_CLAIMED,
    STATUS_COMPLETED,
    STATUS_OPEN,
    STATUS_PAYMENT_PENDING,
    STATUS_SUBMITTED,
    USDC_UNIT,
)
from bountyboard.core.errors import (
    Conflict,
    InvalidInput,
    InvalidState,
    NotFound,
    PayloadTooLarge,
    PolicyRejected,
    Unauthorized,
    UpstreamUnavailable,
)
from bountyboard.engine.anti_gaming import AntiGamingPolicy
from bountyboard.engine.grader import grade_submission
from bountyboard.engine.state_machine import reset_to_open, require_state, transition
from bountyboard.llm.client import AdvisoryGrader, manual_review
from bountyboard.models.bounty import Bounty, PaymentRecord, Submission, check_invariants, format_usdc
from bountyboard.models.updates import BountyPatch
from bountyboard.services.admission import AdmissionLimiter
from bountyboard.services.agent_registry import AgentRegistry
from bountyboard.services.background import BackgroundQueue
from bountyboard.services.blocklist import Blocklist
from bountyboard.services.durable_cache import DurableCache
from bountyboard.services.notifier import WebhookNotifier
from bountyboard.services.payment import PaymentError, PaymentExecutor
from bountyboard.services.rate_limiter import RateLimiter
from bountyboard.services.reputation import ReputationClient
from bountyboard.services.row_store import RowStoreError
from bountyboard.utils.clock import now_ms

logger = logging.getLogger(__name__)

DEFAULT_REJECT_REASON = "Submission did not meet requirements"
DEFAULT_RELEASE_REASON = "Released by claimant"


def platform_fee(gross: int, percent: int = PLATFORM_FEE_PERCENT) -> Tuple[int, int]:
    """Return (fee, net) for a gross reward, fee rounded down."""
    fee = gross * percent // 100
    return fee, gross - fee


class BountyEngine:
    """
    Usage:
        engine = BountyEngine(bounties_cache, rate_limiter=limiter, agents=registry)
        bounty = await engine.create("0xcreator", "Write a post", "...", 25_000_000)
        bounty = await engine.claim(bounty.id, "0xagent")
    """

    def __init__(
        self,
        bounties: DurableCache,
        rate_limiter: Optional[RateLimiter] = None,
        admission: Optional[AdmissionLimiter] = None,
        policy: Optional[AntiGamingPolicy] = None,
        blocklist: Optional[Blocklist] = None,
        agents: Optional[AgentRegistry] = None,
        notifier: Optional[WebhookNotifier] = None,
        payments: Optional[PaymentExecutor] = None,
        reputation: Optional[ReputationClient] = None,
        advisory: Optional[AdvisoryGrader] = None,
        outbound: Optional[BackgroundQueue] = None,
        public_base_url: str = "",
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self.bounties = bounties
        self.rate_limiter = rate_limiter
        self.admission = admission or AdmissionLimiter()
        self.policy = policy or AntiGamingPolicy()
        self.blocklist = blocklist
        self.agents = agents
        self.notifier = notifier
        self.payments = payments
        self.reputation = reputation
        self.advisory = advisory
        self.outbound = outbound or BackgroundQueue("outbound")
        self.public_base_url = public_base_url.rstrip("/")
        self._clock = clock
        # bounty ids with a payment transfer in flight
        self._approving: Set[str] = set()

    # -----------------------------------------------------------------------
    # Persistence helpers
    # -----------------------------------------------------------------------
    @staticmethod
    def _materialise(key: str, doc: dict) -> Bounty:
        return Bounty.from_document({**doc, "id": key})

    def _load(self, bounty_id: str) -> Bounty:
        key = self.bounties.resolve_key(str(bounty_id))
        doc = self.bounties.get(key) if key is not None else None
        if doc is None:
            raise NotFound("Bounty not found", details={"bountyId": str(bounty_id)})
        return self._materialise(key, doc)

    def _save(self, bounty: Bounty) -> Bounty:
        problems = check_invariants(bounty)
        if problems:
            logger.error("[INVARIANT] Bounty %s: %s", bounty.id, "; ".join(problems))
        self.bounties.set(bounty.id, bounty.to_document())
        return bounty

    async def _reread(self, bounty_id: str) -> Optional[Bounty]:
        """Current stored version of a bounty after a lost conditional write."""
        try:
            doc = await self.bounties.refresh(bounty_id)
        except RowStoreError as e:
            logger.error("[STORE] Re-read of bounty %s failed after a lost write: %s", bounty_id, e)
            raise UpstreamUnavailable(
                "Row store unavailable, bounty state unknown",
                hint="No state was changed. Try again shortly or contact an operator.",
            ) from e
        return self._materialise(bounty_id, doc) if doc is not None else None

    async def _save_if_open(self, bounty: Bounty, action: str) -> bool:
        """
        Persist a transition out of ``open`` only if the bounty is still open.

        Returns False when another writer moved it first.

        Raises
        ------
        UpstreamUnavailable
            The row store could not be reached; nothing was written.
        """
        problems = check_invariants(bounty)
        if problems:
            logger.error("[INVARIANT] Bounty %s: %s", bounty.id, "; ".join(problems))
        try:
            return await self.bounties.compare_and_set(
                bounty.id, bounty.to_document(), "status", STATUS_OPEN
            )
        except RowStoreError as e:
            logger.error("[STORE] Row store unreachable during %s of %s: %s", action, bounty.id, e)
            raise UpstreamUnavailable(
                f"Row store unavailable, {action} not recorded",
                hint="No state was changed. Try again shortly or contact an operator.",
            ) from e

    @staticmethod
    def _lost_race(current: Optional[Bounty], action: str) -> InvalidState:
        status = current.status if current is not None else "deleted"
        return InvalidState(
            f"Bounty is no longer open (status: {status})",
            details={"status": status, "action": action},
        )

    def _guard_payment_in_flight(self, bounty: Bounty) -> None:
        if bounty.id in self._approving:
            raise Conflict(
                "Payment for this bounty is already in progress",
                details={"bountyId": bounty.id},
            )

    def _rate_limit(self, identity: str, action: str) -> None:
        if self.rate_limiter is not None:
            self.rate_limiter.enforce(identity, action)

    @staticmethod
    def _identity(identity: Optional[str]) -> str:
        if not identity or not identity.strip():
            raise InvalidInput("address required")
        return identity.strip().lower()

    @staticmethod
    def _check_submission_size(content: str) -> None:
        if len(content) > MAX_SUBMISSION_LENGTH:
            raise PayloadTooLarge(
                "Submission too large",
                details={"maxLength": MAX_SUBMISSION_LENGTH, "yourLength": len(content)},
            )

    @staticmethod
    def _auto_rejected(score: int) -> PolicyRejected:
        return PolicyRejected(
            f"Submission automatically rejected: score {score}/100 with no link to delivered work",
            hint="Your earlier submission is unchanged and still awaiting review.",
            details={"score": score},
        )

    @staticmethod
    def _require_claimant(bounty: Bounty, identity: str, message: str) -> None:
        if bounty.claimant != identity:
            raise Unauthorized(message)

    def all_bounties(self) -> List[Bounty]:
        return [self._materialise(key, doc) for key, doc in self.bounties.items()]

    # -----------------------------------------------------------------------
    # Create
    # -----------------------------------------------------------------------
    async def create(
        self,
        creator: str,
        title: str,
        description: str,
        reward: int,
        requirements: Optional[List[str]] = None,
        tags: Optional[List[str]] = None,
        deadline: Optional[int] = None,
        bounty_uuid: Optional[str] = None,
    ) -> Bounty:
        """
        Create an open bounty and notify every registered webhook.

        Passing a ``bounty_uuid`` that already exists returns the existing
        bounty instead of creating a duplicate.
        """
        creator = self._identity(creator)
        if bounty_uuid and self.bounties.has(bounty_uuid):
            logger.info("[BOUNTY CREATE] Duplicate uuid %s, returning existing bounty", bounty_uuid)
            return self._load(bounty_uuid)

        self._rate_limit(creator, ACTION_CREATE)

        if not title or not description or not reward:
            raise InvalidInput("title, description, and reward required")
        if reward < 0:
            raise InvalidInput("reward must be positive")
        if len(title) > MAX_TITLE_LENGTH:
            raise InvalidInput(
                f"Title too long (max {MAX_TITLE_LENGTH} chars)", details={"yourLength": len(title)}
            )
        if len(description) > MAX_DESCRIPTION_LENGTH:
            raise InvalidInput(
                f"Description too long (max {MAX_DESCRIPTION_LENGTH} chars)",
                details={"yourLength": len(description)},
            )
        requirements = list(requirements or [])
        if len(requirements) > MAX_REQUIREMENTS:
            raise InvalidInput(
                f"Too many requirements (max {MAX_REQUIREMENTS})", details={"yourCount": len(requirements)}
            )

        now = self._clock()
        bounty = Bounty(
            id="",
            uuid=bounty_uuid or str(uuid.uuid4()),
            title=title,
            description=description,
            requirements=requirements,
            tags=list(tags or []),
            reward=reward,
            deadline=deadline or now + DEFAULT_DEADLINE_MS,
            status=STATUS_OPEN,
            creator=creator,
            created_at=now,
            updated_at=now,
        )
        doc = bounty.to_document()
        doc.pop("id")
        key = await self.bounties.insert(doc)
        bounty.id = key
        logger.info("[BOUNTY CREATED] %s: %s - %s by %s", key, title, bounty.reward_formatted, creator)

        if self.notifier is not None:
            self.notifier.notify_new_bounty(bounty)
        return bounty

    # -----------------------------------------------------------------------
    # Claim (optimistic)
    # -----------------------------------------------------------------------
    async def claim(self, bounty_id: str, identity: str, agent_id: Optional[int] = None) -> Bounty:
        identity = self._identity(identity)
        if agent_id is not None and self.reputation is not None:
            self.reputation.register_agent(identity, agent_id)

        self._rate_limit(identity, ACTION_CLAIM)
        bounty = self._load(bounty_id)
        self.policy.guard_claim(bounty, identity, self.blocklist)
        require_state(bounty, "claim")
        self.admission.enforce(identity, self.all_bounties())

        now = self._clock()
        target = bounty.model_copy(deep=True)
        transition(target, STATUS_CLAIMED, now)
        target.claimant = identity
        target.claimed_at = now

        if not await self._save_if_open(target, "claim"):
            current = await self._reread(bounty.id)
            if current is not None and current.status == STATUS_CLAIMED:
                logger.info("[CLAIM RACE] %s lost race for bounty %s to %s",
                            identity, bounty.id, current.claimant)
                raise Conflict(
                    "Bounty was just claimed by another user",
                    details={"claimedBy": current.claimant, "claimedAt": current.claimed_at},
                )
            raise self._lost_race(current, "claim")

        logger.info("[BOUNTY CLAIMED] %s claimed by %s", bounty.id, identity)
        return target

    # -----------------------------------------------------------------------
    # Submissions
    # -----------------------------------------------------------------------
    async def submit(
        self,
        bounty_id: str,
        identity: str,
        content: str,
        proof: Optional[str] = None,
    ) -> Bounty:
        identity = self._identity(identity)
        self._rate_limit(identity, ACTION_SUBMIT)
        bounty = self._load(bounty_id)
        require_state(bounty, "submit")
        self._guard_payment_in_flight(bounty)
        self._require_claimant(bounty, identity, "Only the claiming agent can submit")
        if not content or not content.strip():
            raise InvalidInput("submission required")
        self._check_submission_size(content)

        now = self._clock()
        self.policy.guard_submit(bounty, content, proof, now)

        grade = grade_submission(bounty.requirements, content, proof, graded_at=now)
        if grade.auto_reject and bounty.submissions:
            # earlier work is still awaiting review; keep it and drop only this one
            raise self._auto_rejected(grade.score)
        submission = Submission(
            id=str(uuid.uuid4()),
            content=content,
            proof=proof or None,
            submitted_at=now,
            grade=grade,
        )
        bounty.submissions.append(submission)
        transition(bounty, STATUS_SUBMITTED, now)

        if grade.auto_reject:
            reason = (
                f"Automatically rejected: score {grade.score}/100 with no link to delivered work"
            )
            reset_to_open(bounty, "rejections", reason, now, actor="grader")
            logger.info("[AUTO REJECTED] %s submission by %s (score %d)", bounty.id, identity, grade.score)
            return self._save(bounty)

        logger.info("[BOUNTY SUBMITTED] %s work submitted by %s (score %d)", bounty.id, identity, grade.score)
        return self._save(bounty)

    async def edit_submission(
        self,
        bounty_id: str,
        submission_id: str,
        identity: str,
        content: Optional[str] = None,
        proof: Optional[str] = None,
    ) -> Bounty:
        identity = self._identity(identity)
        bounty = self._load(bounty_id)
        require_state(bounty, "edit_submission")
        self._guard_payment_in_flight(bounty)
        self._require_claimant(bounty, identity, "Only the claimer can edit submissions")
        submission = bounty.find_submission(submission_id)
        if submission is None:
            raise NotFound("Submission not found", details={"submissionId": submission_id})

        new_content = submission.content if content is None else content
        new_proof = submission.proof if proof is None else (proof or None)
        if not new_content.strip():
            raise InvalidInput("submission must not be empty")
        self._check_submission_size(new_content)
        self.policy.check_proof(bounty, new_content, new_proof)

        now = self._clock()
        grade = grade_submission(bounty.requirements, new_content, new_proof, graded_at=now)
        if grade.auto_reject:
            raise self._auto_rejected(grade.score)

        submission.content = new_content
        submission.proof = new_proof
        submission.edited_at = now
        submission.grade = grade
        bounty.updated_at = now
        logger.info("[SUBMISSION EDITED] %s/%s by %s", bounty.id, submission_id, identity)
        return self._save(bounty)

    async def delete_submission(self, bounty_id: str, submission_id: str, identity: str) -> Bounty:
        identity = self._identity(identity)
        bounty = self._load(bounty_id)
        require_state(bounty, "delete_submission")
        self._guard_payment_in_flight(bounty)
        self._require_claimant(bounty, identity, "Only the claimer can delete submissions")
        submission = bounty.find_submission(submission_id)
        if submission is None:
            raise NotFound("Submission not found", details={"submissionId": submission_id})

        now = self._clock()
        bounty.submissions = [s for s in bounty.submissions if s.id != submission_id]
        if not bounty.submissions:
            transition(bounty, STATUS_CLAIMED, now)
        else:
            bounty.updated_at = now
        logger.info("[SUBMISSION DELETED] %s/%s by %s", bounty.id, submission_id, identity)
        return self._save(bounty)

    # -----------------------------------------------------------------------
    # Approval and payment
    # -----------------------------------------------------------------------
    async def approve(
        self,
        bounty_id: str,
        approver: Optional[str] = None,
        moderator: bool = False,
    ) -> Bounty:
        """
        Approve the latest submission and pay the claimant.

        Parameters
        ----------
        approver : str, optional
            Verified identity of the approving actor.
        moderator : bool
            True when authorised by the moderator key. Otherwise the
            approver must be the bounty's creator.

        Raises
        ------
        UpstreamUnavailable
            The payment transfer failed; the bounty stays submitted.
        """
        approver = approver.lower() if approver else None
        bounty = self._load(bounty_id)
        require_state(bounty, "approve")
        if not moderator and (approver is None or approver != bounty.creator):
            raise Unauthorized("Only the bounty creator or a moderator can approve")
        self.policy.guard_approval(bounty, approver)

        self._guard_payment_in_flight(bounty)

        recipient = bounty.claimant
        fee, net = platform_fee(bounty.reward)
        now = self._clock()
        record = PaymentRecord(
            status="pending",
            recipient=recipient,
            gross_amount=bounty.reward,
            fee=fee,
            net_amount=net,
            fee_percent=PLATFORM_FEE_PERCENT,
            token=PAYMENT_TOKEN,
            chain=PAYMENT_CHAIN,
            approved_by=approver or "moderator",
        )

        if self.payments is None or not self.payments.available:
            bounty.payment = record
            bounty.approved_at = now
            transition(bounty, STATUS_PAYMENT_PENDING, now)
            logger.info("[BOUNTY PAYMENT] No executor, bounty %s queued for payment relay (%s to %s)",
                        bounty.id, format_usdc(net), recipient)
            return self._save(bounty)

        self._approving.add(bounty.id)
        try:
            tx_hash = await self.payments.execute(recipient, net, reference=f"bounty-{bounty.id}")
        except PaymentError as e:
            logger.error("[BOUNTY PAYMENT] Transfer failed for bounty %s: %s", bounty.id, e)
            raise UpstreamUnavailable(
                "Payment transfer failed",
                hint="Bounty NOT marked as completed. Try again or contact an operator.",
                details={"reason": str(e)},
            ) from e
        finally:
            self._approving.discard(bounty.id)

        # the transfer awaited I/O; stamp the current version, not the one read before it
        bounty = self._load(bounty.id)
        if bounty.status != STATUS_SUBMITTED or bounty.claimant != recipient:
            logger.error(
                "[BOUNTY PAYMENT] Bounty %s changed to %s (claimant %s) while paying %s, tx %s not applied",
                bounty.id, bounty.status, bounty.claimant, recipient, tx_hash,
            )
            raise Conflict(
                "Bounty changed while the payment was in flight",
                hint="The transfer was sent but the bounty was NOT marked as completed. Contact an operator.",
                details={"status": bounty.status, "recipient": recipient, "txHash": tx_hash},
            )

        now = self._clock()
        record.status = "released"
        record.tx_hash = tx_hash
        bounty.payment = record
        bounty.approved_at = now
        bounty.completed_at = now
        transition(bounty, STATUS_COMPLETED, now)
        self._save(bounty)
        self._on_completed(bounty)
        logger.info("[BOUNTY COMPLETED] %s - Net: %s to %s (fee: %s) tx: %s",
                    bounty.id, record.net_amount_formatted, recipient, record.fee_formatted, tx_hash)
        return bounty

    async def confirm_payment(self, bounty_id: str, tx_hash: str) -> Bounty:
        """Complete a payment_pending bounty once the relay reports the transfer."""
        if not tx_hash:
            raise InvalidInput("txHash required")
        bounty = self._load(bounty_id)
        require_state(bounty, "confirm_payment")
        now = self._clock()
        if bounty.payment is None:
            fee, net = platform_fee(bounty.reward)
            bounty.payment = PaymentRecord(
                status="released", recipient=bounty.claimant, gross_amount=bounty.reward,
                fee=fee, net_amount=net, fee_percent=PLATFORM_FEE_PERCENT,
            )
        bounty.payment.status = "released"
        bounty.payment.tx_hash = tx_hash
        bounty.completed_at = now
        transition(bounty, STATUS_COMPLETED, now)
        self._save(bounty)
        self._on_completed(bounty)
        logger.info("[BOUNTY COMPLETED] %s - payment confirmed by relay, tx: %s", bounty.id, tx_hash)
        return bounty

    def _on_completed(self, bounty: Bounty) -> None:
        net = bounty.payment.net_amount if bounty.payment else bounty.reward
        if self.agents is not None:
            self.agents.record_completion(bounty.claimant, net)
        if self.reputation is None or not self.reputation.available:
            return
        reputation, claimant = self.reputation, bounty.claimant
        tag2 = f"reward-{round(net / USDC_UNIT)}"
        endpoint = f"{self.public_base_url}/bounties/{bounty.id}"
        self.outbound.submit(
            f"reputation bounty {bounty.id}",
            lambda: reputation.post_bounty_reputation(
                claimant, REPUTATION_FEEDBACK_SCORE, "bounty-completed", tag2, endpoint
            ),
        )

    # -----------------------------------------------------------------------
    # Reject / release / cancel / update
    # -----------------------------------------------------------------------
    async def reject(self, bounty_id: str, reason: Optional[str] = None, actor: Optional[str] = None) -> Bounty:
        bounty = self._load(bounty_id)
        require_state(bounty, "reject")
        self._guard_payment_in_flight(bounty)
        reason = reason or DEFAULT_REJECT_REASON
        reset_to_open(bounty, "rejections", reason, self._clock(), actor=actor)
        logger.info("[BOUNTY REJECTED] %s - %s", bounty.id, reason)
        return self._save(bounty)

    async def release(self, bounty_id: str, identity: str, reason: Optional[str] = None) -> Bounty:
        identity = self._identity(identity)
        bounty = self._load(bounty_id)
        require_state(bounty, "release")
        self._guard_payment_in_flight(bounty)
        self._require_claimant(bounty, identity, "Only the claimant can release a bounty")
        reset_to_open(bounty, "releases", reason or DEFAULT_RELEASE_REASON, self._clock(), actor=identity)
        logger.info("[BOUNTY RELEASED] %s released by %s", bounty.id, identity)
        return self._save(bounty)

    async def cancel(self, bounty_id: str, identity: str) -> Bounty:
        identity = self._identity(identity)
        bounty = self._load(bounty_id)
        if bounty.creator != identity:
            raise Unauthorized("Only creator can cancel")
        require_state(bounty, "cancel")
        now = self._clock()
        transition(bounty, STATUS_CANCELLED, now)
        bounty.cancelled_at = now
        if not await self._save_if_open(bounty, "cancel"):
            raise self._lost_race(await self._reread(bounty.id), "cancel")
        logger.info("[BOUNTY CANCELLED] %s by %s", bounty.id, identity)
        return bounty

    async def update_details(
        self,
        bounty_id: str,
        patch: BountyPatch,
        identity: Optional[str] = None,
        moderator: bool = False,
    ) -> Bounty:
        bounty = self._load(bounty_id)
        if not moderator and (not identity or identity.lower() != bounty.creator):
            raise Unauthorized("Only the creator can edit a bounty")
        require_state(bounty, "update")
        changes = patch.changed_fields()
        if not changes:
            return bounty
        updated = bounty.model_copy(update={**changes, "updated_at": self._clock()})
        if not await self._save_if_open(updated, "update"):
            raise self._lost_race(await self._reread(bounty.id), "update")
        logger.info("[BOUNTY UPDATED] %s: %s", bounty.id, ", ".join(sorted(changes)))
        return updated

    # -----------------------------------------------------------------------
    # Reads
    # -----------------------------------------------------------------------
    def get(self, bounty_id: str) -> Bounty:
        return self._load(bounty_id)

    def list(self, status: Optional[str] = None, tag: Optional[str] = None) -> List[Bounty]:
        results = self.all_bounties()
        if status:
            results = [b for b in results if b.status == status]
        if tag:
            results = [b for b in results if tag in b.tags]
        results.sort(key=lambda b: b.created_at, reverse=True)
        return results

    def discover(
        self,
        capabilities: Optional[Iterable[str]] = None,
        min_reward: Optional[int] = None,
        max_reward: Optional[int] = None,
    ) -> List[Bounty]:
        """Open bounties matching any capability tag, highest reward first."""
        results = [b for b in self.all_bounties() if b.status == STATUS_OPEN]
        caps = {c.strip().lower() for c in (capabilities or []) if c.strip()}
        if caps:
            results = [b for b in results if any(t.lower() in caps for t in b.tags)]
        if min_reward is not None:
            results = [b for b in results if b.reward >= min_reward]
        if max_reward is not None:
            results = [b for b in results if b.reward <= max_reward]
        results.sort(key=lambda b: b.reward, reverse=True)
        return results

    async def grade(self, bounty_id: str) -> dict:
        """Heuristic grade of the latest submission plus the advisory opinion."""
        bounty = self._load(bounty_id)
        require_state(bounty, "grade")
        submission = bounty.last_submission
        heuristic = grade_submission(
            bounty.requirements, submission.content, submission.proof, graded_at=self._clock()
        )
        if self.advisory is not None:
            advisory = await self.advisory.grade(bounty, submission)
        else:
            advisory = manual_review("No AI grading API configured")
        return {
            "bountyId": bounty.id,
            "bountyTitle": bounty.title,
            "heuristic": heuristic.model_dump(),
            "advisory": advisory.to_dict(),
            "gradedAt": heuristic.graded_at,
        }

    def profile(self, address: str) -> dict:
        normalized = address.lower()
        everything = self.all_bounties()
        grouped: Dict[str, List[Bounty]] = {
            "submitted": [b for b in everything if b.claimant == normalized and b.status == STATUS_SUBMITTED],
            "inProgress": [b for b in everything if b.claimant == normalized and b.status == STATUS_CLAIMED],
            "completed": [b for b in everything if b.claimant == normalized and b.status == STATUS_COMPLETED],
            "created": [b for b in everything if b.creator == normalized],
        }
        earned = sum(b.payment.net_amount if b.payment else b.reward for b in grouped["completed"])
        return {
            "address": normalized,
            "stats": {
                "totalSubmitted": len(grouped["submitted"]),
                "totalInProgress": len(grouped["inProgress"]),
                "totalCompleted": len(grouped["completed"]),
                "totalCreated": len(grouped["created"]),
                "totalEarned": earned,
                "totalEarnedFormatted": format_usdc(earned),
            },
            "bounties": {k: [b.model_dump(mode="json") for b in v] for k, v in grouped.items()},
        }

    def stats(self) -> dict:
        everything = self.all_bounties()
        completed = [b for b in everything if b.status == STATUS_COMPLETED]
        total_rewards = sum(b.reward for b in completed)
        return {
            "totalBounties": len(everything),
            "openBounties": sum(1 for b in everything if b.status == STATUS_OPEN),
            "completedBounties": len(completed),
            "paymentPendingBounties": sum(1 for b in everything if b.status == STATUS_PAYMENT_PENDING),
            "totalRewards": total_rewards,
            "totalRewardsFormatted": format_usdc(total_rewards),
            "totalAgents": len(self.agents) if self.agents is not None else 0,
            "dbConnected": self.bounties.is_durable,
        }
