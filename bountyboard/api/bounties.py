"""
Bounty Endpoints
================
    GET    /bounties                         list (status, tag filters)
    GET    /bounties/{id}                    one bounty (store id or uuid)
    POST   /bounties                         create, paid with an X-Payment header
    POST   /internal/bounties                create, moderator key
    PATCH  /bounties/{id}                    creator edits while open
    POST   /bounties/{id}/claim
    POST   /bounties/{id}/submit
    PUT    /bounties/{id}/submissions/{sid}
    DELETE /bounties/{id}/submissions/{sid}
    POST   /bounties/{id}/approve            moderator key or creator signature
    POST   /bounties/{id}/reject             moderator key
    POST   /bounties/{id}/release            claimant
    POST   /bounties/{id}/cancel             creator
    POST   /bounties/{id}/grade              heuristic + advisory grade
    POST   /internal/bounties/{id}/confirm-payment   payment relay, moderator key
    GET    /discover
"""
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Header, Query
from pydantic import BaseModel, ConfigDict, Field

from bountyboard.api.deps import get_container, internal_key_header, require_moderator, verify_signed
from bountyboard.core.constants import PAYMENT_CHAIN, PAYMENT_TOKEN, POSTING_FEE
from bountyboard.core.container import Container
from bountyboard.core.errors import PaymentRequired, Unauthorized, UpstreamUnavailable
from bountyboard.models.updates import BountyPatch
from bountyboard.services.payment import PaymentError

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Bounties"])


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------
class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class CreateBountyRequest(CamelModel):
    title: str = ""
    description: str = ""
    reward: int = 0
    requirements: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    deadline: Optional[int] = None
    uuid: Optional[str] = None
    creator: Optional[str] = None


class ClaimRequest(CamelModel):
    address: str = ""
    agent_id: Optional[int] = Field(default=None, alias="agentId")


class SubmitRequest(CamelModel):
    address: str = ""
    submission: str = ""
    proof: Optional[str] = None


class EditSubmissionRequest(CamelModel):
    address: str = ""
    submission: Optional[str] = None
    proof: Optional[str] = None


class AddressRequest(CamelModel):
    address: str = ""
    reason: Optional[str] = None


class ApproveRequest(CamelModel):
    address: Optional[str] = None
    creator_signature: Optional[str] = Field(default=None, alias="creatorSignature")


class RejectRequest(CamelModel):
    reason: Optional[str] = None


class ConfirmPaymentRequest(CamelModel):
    tx_hash: str = Field(default="", alias="txHash")


class UpdateBountyRequest(CamelModel):
    address: Optional[str] = None
    changes: BountyPatch


def _dump(bounty) -> dict:
    return bounty.model_dump(mode="json")


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------
@router.get("/bounties")
async def list_bounties(
    status: Optional[str] = None,
    tag: Optional[str] = None,
    container: Container = Depends(get_container),
):
    return [_dump(b) for b in container.engine.list(status=status, tag=tag)]


@router.get("/bounties/{bounty_id}")
async def get_bounty(bounty_id: str, container: Container = Depends(get_container)):
    return _dump(container.engine.get(bounty_id))


@router.get("/discover")
async def discover(
    capabilities: Optional[str] = None,
    min_reward: Optional[int] = Query(default=None, alias="minReward"),
    max_reward: Optional[int] = Query(default=None, alias="maxReward"),
    container: Container = Depends(get_container),
):
    caps = capabilities.split(",") if capabilities else None
    results = container.engine.discover(caps, min_reward, max_reward)
    return {
        "count": len(results),
        "bounties": [_dump(b) for b in results],
        "claimInstructions": 'POST to /bounties/{id}/claim with { "address": "0x..." }',
    }


# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------
async def _create(container: Container, creator: str, body: CreateBountyRequest) -> dict:
    bounty = await container.engine.create(
        creator,
        body.title,
        body.description,
        body.reward,
        requirements=body.requirements,
        tags=body.tags,
        deadline=body.deadline,
        bounty_uuid=body.uuid,
    )
    return _dump(bounty)


@router.post("/bounties", status_code=201)
async def create_bounty(
    body: CreateBountyRequest,
    x_payment: Optional[str] = Header(default=None),
    container: Container = Depends(get_container),
):
    if not x_payment:
        raise PaymentRequired(
            "Payment Required",
            details={"x402": {
                "version": "1.0",
                "network": PAYMENT_CHAIN,
                "recipient": container.treasury_address,
                "amount": str(POSTING_FEE),
                "token": PAYMENT_TOKEN,
                "description": "Bounty posting fee",
            }},
        )
    if not container.payments.available:
        raise UpstreamUnavailable("Payment verification unavailable")
    try:
        payer = await container.payments.verify_posting_payment(
            x_payment, container.treasury_address, POSTING_FEE
        )
    except PaymentError as e:
        raise PaymentRequired("Payment verification failed", details={"message": str(e)}) from e
    return await _create(container, payer, body)


@router.post("/internal/bounties", status_code=201)
async def create_internal_bounty(
    body: CreateBountyRequest,
    internal_key: Optional[str] = Depends(internal_key_header),
    container: Container = Depends(get_container),
):
    require_moderator(container, internal_key)
    return await _create(container, body.creator or container.treasury_address, body)


@router.patch("/bounties/{bounty_id}")
async def update_bounty(
    bounty_id: str,
    body: UpdateBountyRequest,
    internal_key: Optional[str] = Depends(internal_key_header),
    container: Container = Depends(get_container),
):
    bounty = await container.engine.update_details(
        bounty_id,
        body.changes,
        identity=body.address,
        moderator=container.is_moderator(internal_key),
    )
    return _dump(bounty)


# ---------------------------------------------------------------------------
# Claim / submit
# ---------------------------------------------------------------------------
@router.post("/bounties/{bounty_id}/claim")
async def claim_bounty(bounty_id: str, body: ClaimRequest, container: Container = Depends(get_container)):
    bounty = await container.engine.claim(bounty_id, body.address, agent_id=body.agent_id)
    return _dump(bounty)


@router.post("/bounties/{bounty_id}/submit")
async def submit_work(bounty_id: str, body: SubmitRequest, container: Container = Depends(get_container)):
    bounty = await container.engine.submit(bounty_id, body.address, body.submission, body.proof)
    return _dump(bounty)


@router.put("/bounties/{bounty_id}/submissions/{submission_id}")
async def edit_submission(
    bounty_id: str,
    submission_id: str,
    body: EditSubmissionRequest,
    container: Container = Depends(get_container),
):
    bounty = await container.engine.edit_submission(
        bounty_id, submission_id, body.address, content=body.submission, proof=body.proof
    )
    return _dump(bounty)


@router.delete("/bounties/{bounty_id}/submissions/{submission_id}")
async def delete_submission(
    bounty_id: str,
    submission_id: str,
    body: AddressRequest,
    container: Container = Depends(get_container),
):
    bounty = await container.engine.delete_submission(bounty_id, submission_id, body.address)
    return _dump(bounty)


# ---------------------------------------------------------------------------
# Approve / reject / release / cancel
# ---------------------------------------------------------------------------
@router.post("/bounties/{bounty_id}/approve")
async def approve_bounty(
    bounty_id: str,
    body: ApproveRequest,
    internal_key: Optional[str] = Depends(internal_key_header),
    container: Container = Depends(get_container),
):
    if container.is_moderator(internal_key):
        bounty = await container.engine.approve(bounty_id, approver=body.address, moderator=True)
        return _dump(bounty)

    if not body.address or not body.creator_signature:
        raise Unauthorized(
            "Authentication required",
            hint="Provide x-internal-key header or address and creatorSignature in body.",
        )
    message = f"approve-bounty:{bounty_id}"
    if not await verify_signed(container, body.address, message, body.creator_signature):
        raise Unauthorized("Invalid creator signature", hint=f'Sign the message "{message}".')
    bounty = await container.engine.approve(bounty_id, approver=body.address)
    return _dump(bounty)


@router.post("/bounties/{bounty_id}/reject")
async def reject_bounty(
    bounty_id: str,
    body: RejectRequest,
    internal_key: Optional[str] = Depends(internal_key_header),
    container: Container = Depends(get_container),
):
    require_moderator(container, internal_key, "Authentication required. Provide x-internal-key header.")
    bounty = await container.engine.reject(bounty_id, body.reason, actor="moderator")
    result = _dump(bounty)
    result["message"] = f"Bounty rejected and reset to open. Reason: {bounty.rejections[-1].reason}"
    return result


@router.post("/bounties/{bounty_id}/release")
async def release_bounty(bounty_id: str, body: AddressRequest, container: Container = Depends(get_container)):
    bounty = await container.engine.release(bounty_id, body.address, body.reason)
    return _dump(bounty)


@router.post("/bounties/{bounty_id}/cancel")
async def cancel_bounty(bounty_id: str, body: AddressRequest, container: Container = Depends(get_container)):
    bounty = await container.engine.cancel(bounty_id, body.address)
    return _dump(bounty)


@router.post("/bounties/{bounty_id}/grade")
async def grade_bounty(bounty_id: str, container: Container = Depends(get_container)):
    return await container.engine.grade(bounty_id)


@router.post("/internal/bounties/{bounty_id}/confirm-payment")
async def confirm_payment(
    bounty_id: str,
    body: ConfirmPaymentRequest,
    internal_key: Optional[str] = Depends(internal_key_header),
    container: Container = Depends(get_container),
):
    require_moderator(container, internal_key)
    bounty = await container.engine.confirm_payment(bounty_id, body.tx_hash)
    return _dump(bounty)
