"""
Webhook Endpoints
=================
    POST /webhooks   register a new-bounty sink (moderator key, or a signature
                     over "register-webhook:{name}:{endpoint}" by agentAddress)
    GET  /webhooks   list sinks; endpoints are not exposed
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field

from bountyboard.api.deps import get_container, internal_key_header, verify_signed
from bountyboard.core.container import Container
from bountyboard.core.errors import Unauthorized

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Webhooks"])


class RegisterWebhookRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str = ""
    endpoint: str = ""
    agent_address: Optional[str] = Field(default=None, alias="agentAddress")
    signature: Optional[str] = None


@router.post("/webhooks")
async def register_webhook(
    body: RegisterWebhookRequest,
    internal_key: Optional[str] = Depends(internal_key_header),
    container: Container = Depends(get_container),
):
    authenticated = container.is_moderator(internal_key)
    if not authenticated and body.agent_address and body.signature:
        message = f"register-webhook:{body.name}:{body.endpoint}"
        authenticated = await verify_signed(container, body.agent_address, message, body.signature)
    if not authenticated:
        raise Unauthorized(
            "Authentication required",
            hint='Provide x-internal-key header OR sign message "register-webhook:{name}:{endpoint}" '
                 "with agentAddress",
        )

    webhook = container.notifier.register(body.name, body.endpoint, agent_address=body.agent_address)
    return {
        "id": webhook.id,
        "name": webhook.name,
        "endpoint": webhook.endpoint,
        "message": "Webhook registered. You will be notified of new bounties.",
    }


@router.get("/webhooks")
async def list_webhooks(container: Container = Depends(get_container)):
    return [
        {"id": w.id, "name": w.name, "agentAddress": w.agent_address}
        for w in container.notifier.list()
    ]
