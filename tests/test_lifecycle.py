"""
Lifecycle Engine Tests
======================
End-to-end flows through the engine with the payment executor and
identity service mocked.
"""
import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from bountyboard.core.constants import USDC_UNIT
from bountyboard.core.errors import (
    Conflict,
    InvalidInput,
    InvalidState,
    NotFound,
    PayloadTooLarge,
    PolicyRejected,
    RateLimited,
    Unauthorized,
    UpstreamUnavailable,
)
from bountyboard.engine.state_machine import reset_to_open
from bountyboard.models.bounty import check_invariants
from bountyboard.models.updates import BountyPatch
from bountyboard.services.payment import PaymentError
from conftest import AGENT_A, AGENT_B, CREATOR, T0, build_engine, create_bounty

PROOF_URL = "https://github.com/agent-a/thread-writeup"


def mock_payments(tx_hash="0xtxhash"):
    payments = MagicMock()
    payments.available = True
    payments.execute = AsyncMock(return_value=tx_hash)
    return payments


def assert_consistent(engine):
    for bounty in engine.all_bounties():
        assert check_invariants(bounty) == [], bounty.id


# ---------------------------------------------------------------------------
# Example flow
# ---------------------------------------------------------------------------
def test_create_claim_submit_approve_flow(clock):
    async def run_test():
        payments = mock_payments()
        engine = build_engine(clock=clock, payments=payments)
        engine.agents.register(AGENT_A, "Agent A")

        bounty = await create_bounty(engine, reward=25_000_000)
        assert bounty.status == "open"
        assert bounty.deadline == T0 + 7 * 24 * 60 * 60 * 1000

        claimed = await engine.claim(bounty.id, AGENT_A)
        assert claimed.status == "claimed"
        assert claimed.claimed_at == T0

        clock.advance(11 * 60)
        submitted = await engine.submit(bounty.id, AGENT_A, "Thread is live, write-up here", proof=PROOF_URL)
        assert submitted.status == "submitted"
        assert submitted.last_submission.grade is not None
        assert submitted.last_submission.grade.score == 100

        completed = await engine.approve(bounty.id, approver=CREATOR)
        assert completed.status == "completed"
        assert completed.payment.status == "released"
        assert completed.payment.tx_hash == "0xtxhash"
        assert completed.payment.fee == 1_250_000
        assert completed.payment.net_amount == 23_750_000
        payments.execute.assert_awaited_once_with(AGENT_A, 23_750_000, reference=f"bounty-{bounty.id}")

        agent = engine.agents.get(AGENT_A)
        assert agent.reputation == 10
        assert agent.completed_bounties == 1
        assert agent.total_earned == 23_750_000
        assert_consistent(engine)

    asyncio.run(run_test())


def test_completion_posts_reputation_in_background(clock):
    async def run_test():
        reputation = MagicMock()
        reputation.available = True
        reputation.post_bounty_reputation = AsyncMock(return_value={"success": True})
        engine = build_engine(clock=clock, payments=mock_payments(), reputation=reputation)

        bounty = await create_bounty(engine, reward=25_000_000)
        await engine.claim(bounty.id, AGENT_A)
        clock.advance(11 * 60)
        await engine.submit(bounty.id, AGENT_A, "Thread is live, write-up here", proof=PROOF_URL)
        await engine.approve(bounty.id, approver=CREATOR)
        await engine.outbound.drain()

        args = reputation.post_bounty_reputation.await_args.args
        assert args[:4] == (AGENT_A, 100, "bounty-completed", "reward-24")
        assert args[4].endswith(f"/bounties/{bounty.id}")

    asyncio.run(run_test())


def test_claim_registers_agent_id(clock):
    async def run_test():
        reputation = MagicMock()
        engine = build_engine(clock=clock, reputation=reputation)
        bounty = await create_bounty(engine)
        await engine.claim(bounty.id, AGENT_A, agent_id=2108)
        reputation.register_agent.assert_called_once_with(AGENT_A, 2108)

    asyncio.run(run_test())


# ---------------------------------------------------------------------------
# Payment paths
# ---------------------------------------------------------------------------
async def _submitted_bounty(engine, clock, reward=5 * USDC_UNIT):
    bounty = await create_bounty(engine, reward=reward)
    await engine.claim(bounty.id, AGENT_A)
    clock.advance(11 * 60)
    await engine.submit(bounty.id, AGENT_A, "Thread is live, write-up here", proof=PROOF_URL)
    return bounty


def test_no_executor_goes_to_payment_pending_then_relay_completes(clock):
    async def run_test():
        engine = build_engine(clock=clock)
        engine.agents.register(AGENT_A, "Agent A")
        bounty = await _submitted_bounty(engine, clock)

        pending = await engine.approve(bounty.id, moderator=True)
        assert pending.status == "payment_pending"
        assert pending.payment.status == "pending"
        assert pending.payment.recipient == AGENT_A
        assert engine.agents.get(AGENT_A).completed_bounties == 0

        with pytest.raises(InvalidState):
            await engine.reject(bounty.id)

        done = await engine.confirm_payment(bounty.id, "0xrelaytx")
        assert done.status == "completed"
        assert done.payment.status == "released"
        assert done.payment.tx_hash == "0xrelaytx"
        assert engine.agents.get(AGENT_A).completed_bounties == 1
        assert_consistent(engine)

    asyncio.run(run_test())


def test_failed_payment_leaves_bounty_submitted(clock):
    async def run_test():
        payments = mock_payments()
        payments.execute.side_effect = PaymentError("insufficient balance")
        engine = build_engine(clock=clock, payments=payments)
        bounty = await _submitted_bounty(engine, clock)

        with pytest.raises(UpstreamUnavailable) as exc:
            await engine.approve(bounty.id, approver=CREATOR)
        assert "NOT marked as completed" in exc.value.hint
        assert exc.value.category == "contact_operator"
        current = engine.get(bounty.id)
        assert current.status == "submitted"
        assert current.payment is None

    asyncio.run(run_test())


def test_only_creator_or_moderator_can_approve(clock):
    async def run_test():
        engine = build_engine(clock=clock, payments=mock_payments())
        bounty = await _submitted_bounty(engine, clock)
        with pytest.raises(Unauthorized):
            await engine.approve(bounty.id, approver=AGENT_B)
        with pytest.raises(Unauthorized):
            await engine.approve(bounty.id, approver=AGENT_A, moderator=True)

    asyncio.run(run_test())


def test_approve_requires_submission(clock):
    async def run_test():
        engine = build_engine(clock=clock)
        bounty = await create_bounty(engine)
        with pytest.raises(InvalidState):
            await engine.approve(bounty.id, moderator=True)

    asyncio.run(run_test())


# ---------------------------------------------------------------------------
# Actions racing an in-flight transfer
# ---------------------------------------------------------------------------
def gated_payments(tx_hash="0xtxhash"):
    """Payment executor whose transfer waits until the returned event is set."""
    gate = asyncio.Event()
    payments = mock_payments(tx_hash)

    async def execute(recipient, amount, reference=None):
        await gate.wait()
        return tx_hash

    payments.execute = AsyncMock(side_effect=execute)
    return payments, gate


def test_transitions_refused_while_payment_in_flight(clock):
    async def run_test():
        payments, gate = gated_payments()
        engine = build_engine(clock=clock, payments=payments)
        bounty = await _submitted_bounty(engine, clock)
        sub_id = engine.get(bounty.id).last_submission.id

        approving = asyncio.create_task(engine.approve(bounty.id, approver=CREATOR))
        await asyncio.sleep(0)
        payments.execute.assert_awaited_once()

        with pytest.raises(Conflict):
            await engine.release(bounty.id, AGENT_A)
        with pytest.raises(Conflict):
            await engine.reject(bounty.id, "Changed my mind")
        with pytest.raises(Conflict):
            await engine.submit(bounty.id, AGENT_A, "Another take " + PROOF_URL)
        with pytest.raises(Conflict):
            await engine.edit_submission(bounty.id, sub_id, AGENT_A, content="Swapped " + PROOF_URL)
        with pytest.raises(Conflict):
            await engine.delete_submission(bounty.id, sub_id, AGENT_A)
        with pytest.raises(Conflict):
            await engine.approve(bounty.id, moderator=True)
        with pytest.raises(InvalidState):
            await engine.claim(bounty.id, AGENT_B)

        gate.set()
        done = await approving
        assert done.status == "completed"
        assert done.claimant == AGENT_A
        assert done.releases == []
        assert done.rejections == []
        assert done.last_submission.id == sub_id
        assert engine.get(bounty.id).status == "completed"
        payments.execute.assert_awaited_once()
        assert_consistent(engine)

    asyncio.run(run_test())


def test_bounty_reopened_during_transfer_is_not_completed(clock):
    async def run_test():
        payments, gate = gated_payments()
        engine = build_engine(clock=clock, payments=payments)
        engine.agents.register(AGENT_A, "Agent A")
        bounty = await _submitted_bounty(engine, clock)

        approving = asyncio.create_task(engine.approve(bounty.id, approver=CREATOR))
        await asyncio.sleep(0)

        # another instance rejected it and the write reached this process
        reopened = engine.get(bounty.id)
        reset_to_open(reopened, "rejections", "Rejected elsewhere", clock(), actor="moderator")
        engine.bounties.set(bounty.id, reopened.to_document())

        gate.set()
        with pytest.raises(Conflict) as exc:
            await approving
        assert exc.value.details["txHash"] == "0xtxhash"
        assert exc.value.details["status"] == "open"

        current = engine.get(bounty.id)
        assert current.status == "open"
        assert current.payment is None
        assert len(current.rejections) == 1
        assert engine.agents.get(AGENT_A).completed_bounties == 0
        assert_consistent(engine)

    asyncio.run(run_test())


# ---------------------------------------------------------------------------
# Reject / release
# ---------------------------------------------------------------------------
@pytest.mark.parametrize("action", ["reject", "release"])
def test_reject_release_round_trip(clock, action):
    async def run_test():
        engine = build_engine(clock=clock)
        bounty = await _submitted_bounty(engine, clock)

        if action == "reject":
            reopened = await engine.reject(bounty.id, "Missing the write-up", actor="moderator")
            trail = reopened.rejections
        else:
            reopened = await engine.release(bounty.id, AGENT_A)
            trail = reopened.releases

        assert reopened.status == "open"
        assert reopened.claimant is None
        assert reopened.submissions == []
        assert len(trail) == 1
        assert trail[0].previous_claimant == AGENT_A
        assert len(trail[0].previous_submissions) == 1

        again = await engine.claim(bounty.id, AGENT_B)
        assert again.claimant == AGENT_B
        assert_consistent(engine)

    asyncio.run(run_test())


def test_release_from_claimed_by_claimant_only(clock):
    async def run_test():
        engine = build_engine(clock=clock)
        bounty = await create_bounty(engine)
        await engine.claim(bounty.id, AGENT_A)
        with pytest.raises(Unauthorized):
            await engine.release(bounty.id, AGENT_B)
        released = await engine.release(bounty.id, AGENT_A, reason="Too busy")
        assert released.status == "open"
        assert released.releases[0].reason == "Too busy"

    asyncio.run(run_test())


# ---------------------------------------------------------------------------
# Guards
# ---------------------------------------------------------------------------
def test_self_dealing_claim_rejected(clock):
    async def run_test():
        engine = build_engine(clock=clock)
        bounty = await create_bounty(engine)
        with pytest.raises(PolicyRejected):
            await engine.claim(bounty.id, CREATOR)
        await engine.cancel(bounty.id, CREATOR)
        with pytest.raises(PolicyRejected):
            await engine.claim(bounty.id, CREATOR)

    asyncio.run(run_test())


def test_blocklisted_claim_rejected(clock):
    async def run_test():
        engine = build_engine(clock=clock)
        engine.blocklist._cache.set(AGENT_A, {"wallet": AGENT_A, "reason": "spam"})
        bounty = await create_bounty(engine)
        with pytest.raises(PolicyRejected):
            await engine.claim(bounty.id, AGENT_A.upper().replace("0X", "0x"))

    asyncio.run(run_test())


def test_admission_ceiling_and_release_by_submit(clock):
    async def run_test():
        engine = build_engine(clock=clock, max_active_claims=3)
        bounties = [await create_bounty(engine) for _ in range(4)]
        for b in bounties[:3]:
            await engine.claim(b.id, AGENT_A)

        with pytest.raises(PolicyRejected) as exc:
            await engine.claim(bounties[3].id, AGENT_A)
        assert sorted(exc.value.details["activeClaims"]) == sorted(b.id for b in bounties[:3])

        clock.advance(2 * 60)
        await engine.submit(bounties[0].id, AGENT_A, "Delivered: https://github.com/a/b")
        claimed = await engine.claim(bounties[3].id, AGENT_A)
        assert claimed.status == "claimed"

    asyncio.run(run_test())


def test_claim_rate_limit(clock):
    async def run_test():
        engine = build_engine(clock=clock, limits={"claim": 3, "submit": 5, "create": 100})
        bounties = [await create_bounty(engine) for _ in range(4)]
        for b in bounties[:3]:
            await engine.claim(b.id, AGENT_A)
            await engine.release(b.id, AGENT_A)
        # fourth attempt in the same window
        with pytest.raises(RateLimited) as exc:
            await engine.claim(bounties[3].id, AGENT_A)
        assert exc.value.retry_after == 60
        assert engine.get(bounties[3].id).status == "open"

        clock.advance(61)
        claimed = await engine.claim(bounties[3].id, AGENT_A)
        assert claimed.claimant == AGENT_A

    asyncio.run(run_test())


def test_min_work_time_on_submit(clock):
    async def run_test():
        engine = build_engine(clock=clock)
        bounty = await create_bounty(engine, reward=25 * USDC_UNIT)
        await engine.claim(bounty.id, AGENT_A)
        clock.advance(5 * 60)
        with pytest.raises(PolicyRejected) as exc:
            await engine.submit(bounty.id, AGENT_A, "Early work " + PROOF_URL)
        assert exc.value.details["waitSeconds"] == 300

    asyncio.run(run_test())


def test_proof_required_on_large_bounty(clock):
    async def run_test():
        engine = build_engine(clock=clock)
        bounty = await create_bounty(engine, reward=100 * USDC_UNIT)
        await engine.claim(bounty.id, AGENT_A)
        clock.advance(15 * 60)
        with pytest.raises(PolicyRejected):
            await engine.submit(bounty.id, AGENT_A, "I did all the work, promise")
        ok = await engine.submit(bounty.id, AGENT_A, "All done", proof=PROOF_URL)
        assert ok.status == "submitted"

    asyncio.run(run_test())


def test_garbage_submission_blocked_at_approval(clock):
    async def run_test():
        engine = build_engine(clock=clock, payments=mock_payments())
        bounty = await create_bounty(engine)
        await engine.claim(bounty.id, AGENT_A)
        clock.advance(20)
        await engine.submit(bounty.id, AGENT_A, "Finished quickly " + PROOF_URL)
        with pytest.raises(PolicyRejected):
            await engine.approve(bounty.id, approver=CREATOR)
        assert engine.get(bounty.id).status == "submitted"

    asyncio.run(run_test())


# ---------------------------------------------------------------------------
# Submissions
# ---------------------------------------------------------------------------
def test_submit_checks(clock):
    async def run_test():
        engine = build_engine(clock=clock)
        bounty = await create_bounty(engine)
        with pytest.raises(InvalidState):
            await engine.submit(bounty.id, AGENT_A, "work")
        await engine.claim(bounty.id, AGENT_A)
        with pytest.raises(Unauthorized):
            await engine.submit(bounty.id, AGENT_B, "work")
        with pytest.raises(InvalidInput):
            await engine.submit(bounty.id, AGENT_A, "   ")
        with pytest.raises(PayloadTooLarge) as exc:
            await engine.submit(bounty.id, AGENT_A, "x" * 5001)
        assert exc.value.details["maxLength"] == 5000

    asyncio.run(run_test())


def test_resubmission_keeps_status_and_delete_last_returns_to_claimed(clock):
    async def run_test():
        engine = build_engine(clock=clock)
        bounty = await create_bounty(engine)
        await engine.claim(bounty.id, AGENT_A)
        clock.advance(120)
        first = await engine.submit(bounty.id, AGENT_A, "Draft one " + PROOF_URL)
        second = await engine.submit(bounty.id, AGENT_A, "Draft two " + PROOF_URL)
        assert second.status == "submitted"
        assert len(second.submissions) == 2

        sub_ids = [s.id for s in second.submissions]
        after_one = await engine.delete_submission(bounty.id, sub_ids[0], AGENT_A)
        assert after_one.status == "submitted"
        after_two = await engine.delete_submission(bounty.id, sub_ids[1], AGENT_A)
        assert after_two.status == "claimed"
        assert after_two.submissions == []
        assert first.id == bounty.id
        assert_consistent(engine)

    asyncio.run(run_test())


def test_edit_submission(clock):
    async def run_test():
        engine = build_engine(clock=clock)
        bounty = await create_bounty(engine)
        await engine.claim(bounty.id, AGENT_A)
        clock.advance(120)
        submitted = await engine.submit(bounty.id, AGENT_A, "Draft " + PROOF_URL)
        sub_id = submitted.last_submission.id

        clock.advance(30)
        edited = await engine.edit_submission(bounty.id, sub_id, AGENT_A, content="Final version " + PROOF_URL)
        assert edited.last_submission.content.startswith("Final version")
        assert edited.last_submission.edited_at == clock.now

        with pytest.raises(Unauthorized):
            await engine.edit_submission(bounty.id, sub_id, AGENT_B, content="hijack")
        with pytest.raises(NotFound):
            await engine.edit_submission(bounty.id, "missing", AGENT_A, content="x")

    asyncio.run(run_test())


def test_auto_reject_reopens_bounty(clock):
    async def run_test():
        engine = build_engine(clock=clock)
        bounty = await create_bounty(
            engine, requirements=["Explain the optimistic claim protocol", "Describe admission control limits"]
        )
        await engine.claim(bounty.id, AGENT_A)
        clock.advance(120)
        result = await engine.submit(bounty.id, AGENT_A, "lorem ipsum dolor sit amet")
        assert result.status == "open"
        assert result.claimant is None
        assert result.rejections[0].actor == "grader"
        assert result.rejections[0].previous_submissions[0].grade.auto_reject is True

    asyncio.run(run_test())


def test_auto_rejected_resubmission_keeps_pending_work(clock):
    async def run_test():
        engine = build_engine(clock=clock)
        bounty = await create_bounty(
            engine, requirements=["Explain the optimistic claim protocol", "Describe admission control limits"]
        )
        await engine.claim(bounty.id, AGENT_A)
        clock.advance(120)
        first = await engine.submit(bounty.id, AGENT_A, "Write-up of both topics: " + PROOF_URL)
        sub_id = first.last_submission.id

        with pytest.raises(PolicyRejected) as exc:
            await engine.submit(bounty.id, AGENT_A, "lorem ipsum dolor sit amet")
        assert exc.value.details["score"] < 20

        with pytest.raises(PolicyRejected):
            await engine.edit_submission(bounty.id, sub_id, AGENT_A, content="lorem ipsum dolor sit amet")

        current = engine.get(bounty.id)
        assert current.status == "submitted"
        assert current.claimant == AGENT_A
        assert [s.id for s in current.submissions] == [sub_id]
        assert current.last_submission.content.endswith(PROOF_URL)
        assert current.rejections == []

    asyncio.run(run_test())


def test_edit_cannot_strip_required_proof(clock):
    async def run_test():
        engine = build_engine(clock=clock, payments=mock_payments())
        bounty = await _submitted_bounty(engine, clock, reward=60 * USDC_UNIT)
        sub_id = engine.get(bounty.id).last_submission.id

        with pytest.raises(PolicyRejected):
            await engine.edit_submission(bounty.id, sub_id, AGENT_A, proof="")
        assert engine.get(bounty.id).last_submission.proof == PROOF_URL

        edited = await engine.edit_submission(
            bounty.id, sub_id, AGENT_A, content="Thread is live: " + PROOF_URL, proof=""
        )
        assert edited.last_submission.proof is None
        assert edited.last_submission.content.endswith(PROOF_URL)

    asyncio.run(run_test())


# ---------------------------------------------------------------------------
# Create / cancel / update / reads
# ---------------------------------------------------------------------------
def test_create_validation_and_uuid_idempotency(clock):
    async def run_test():
        engine = build_engine(clock=clock)
        with pytest.raises(InvalidInput):
            await create_bounty(engine, title="")
        with pytest.raises(InvalidInput):
            await create_bounty(engine, title="x" * 201)
        with pytest.raises(InvalidInput):
            await create_bounty(engine, requirements=[f"r{i}" for i in range(21)])

        first = await create_bounty(engine, bounty_uuid="fixed-uuid")
        again = await create_bounty(engine, bounty_uuid="fixed-uuid")
        assert again.id == first.id
        assert len(engine.all_bounties()) == 1
        assert engine.get("fixed-uuid").id == first.id

    asyncio.run(run_test())


def test_cancel_rules(clock):
    async def run_test():
        engine = build_engine(clock=clock)
        bounty = await create_bounty(engine)
        with pytest.raises(Unauthorized):
            await engine.cancel(bounty.id, AGENT_A)
        cancelled = await engine.cancel(bounty.id, CREATOR)
        assert cancelled.status == "cancelled"
        assert cancelled.cancelled_at == T0
        with pytest.raises(InvalidState):
            await engine.claim(bounty.id, AGENT_A)

        claimed = await create_bounty(engine)
        await engine.claim(claimed.id, AGENT_A)
        with pytest.raises(InvalidState):
            await engine.cancel(claimed.id, CREATOR)

    asyncio.run(run_test())


def test_update_details(clock):
    async def run_test():
        engine = build_engine(clock=clock)
        bounty = await create_bounty(engine)
        updated = await engine.update_details(
            bounty.id, BountyPatch(title="New title", tags=["writing"]), identity=CREATOR
        )
        assert updated.title == "New title"
        assert updated.tags == ["writing"]
        assert updated.description == bounty.description
        with pytest.raises(Unauthorized):
            await engine.update_details(bounty.id, BountyPatch(title="Nope"), identity=AGENT_A)

        await engine.claim(bounty.id, AGENT_A)
        with pytest.raises(InvalidState):
            await engine.update_details(bounty.id, BountyPatch(title="Late"), identity=CREATOR)

    asyncio.run(run_test())


def test_list_discover_and_profile(clock):
    async def run_test():
        engine = build_engine(clock=clock)
        small = await create_bounty(engine, reward=2 * USDC_UNIT, tags=["Writing"])
        clock.advance(1)
        big = await create_bounty(engine, reward=9 * USDC_UNIT, tags=["code"])
        clock.advance(1)
        other = await create_bounty(engine, reward=5 * USDC_UNIT, tags=["writing", "video"])
        await engine.claim(other.id, AGENT_A)

        assert [b.id for b in engine.list()] == [other.id, big.id, small.id]
        assert [b.id for b in engine.list(status="open")] == [big.id, small.id]
        assert [b.id for b in engine.list(tag="code")] == [big.id]

        assert [b.id for b in engine.discover()] == [big.id, small.id]
        assert [b.id for b in engine.discover(["writing"])] == [small.id]
        assert [b.id for b in engine.discover(min_reward=3 * USDC_UNIT)] == [big.id]

        profile = engine.profile(AGENT_A.upper().replace("0X", "0x"))
        assert profile["stats"]["totalInProgress"] == 1
        assert profile["bounties"]["inProgress"][0]["id"] == other.id

        stats = engine.stats()
        assert stats["totalBounties"] == 3
        assert stats["openBounties"] == 2
        assert stats["dbConnected"] is False

    asyncio.run(run_test())


def test_unknown_bounty_not_found(clock):
    async def run_test():
        engine = build_engine(clock=clock)
        with pytest.raises(NotFound):
            await engine.claim("999", AGENT_A)
        with pytest.raises(NotFound):
            engine.get("no-such-uuid")

    asyncio.run(run_test())


def test_grade_returns_heuristic_and_manual_review(clock):
    async def run_test():
        engine = build_engine(clock=clock)
        bounty = await create_bounty(engine, requirements=["Include a link to the repo"])
        await engine.claim(bounty.id, AGENT_A)
        clock.advance(120)
        await engine.submit(bounty.id, AGENT_A, "Repo: " + PROOF_URL)
        result = await engine.grade(bounty.id)
        assert result["heuristic"]["score"] == 100
        assert result["advisory"]["recommendation"] == "manual_review"

    asyncio.run(run_test())
