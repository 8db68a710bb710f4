"""
Agent Endpoints
    POST  /agents
    GET   /agents/{address}
    PATCH /agents/{address}
    GET   /api/profile/{address}
"""
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field

from bountyboard.api.deps import get_container
from bountyboard.core.container import Container
from bountyboard.models.updates import AgentPatch

router = APIRouter(tags=["Agents"])


class RegisterAgentRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    address: str = ""
    name: str = ""
    capabilities: List[str] = Field(default_factory=list)
    endpoint: Optional[str] = None
    webhook_url: Optional[str] = Field(default=None, alias="webhookUrl")
    agent_id: Optional[int] = Field(default=None, alias="agentId")


@router.post("/agents")
async def register_agent(body: RegisterAgentRequest, container: Container = Depends(get_container)):
    agent = container.agents.register(
        body.address,
        body.name,
        capabilities=body.capabilities,
        endpoint=body.endpoint,
        webhook_url=body.webhook_url,
        agent_id=body.agent_id,
    )
    return agent.model_dump()


@router.get("/agents/{address}")
async def get_agent(address: str, container: Container = Depends(get_container)):
    return container.agents.require(address).model_dump()


@router.patch("/agents/{address}")
async def update_agent(address: str, patch: AgentPatch, container: Container = Depends(get_container)):
    return container.agents.update(address, patch).model_dump()


@router.get("/api/profile/{address}")
async def get_profile(address: str, container: Container = Depends(get_container)):
    return container.engine.profile(address)
