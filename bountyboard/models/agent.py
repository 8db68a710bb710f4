"""
Agent Model
Pydantic models for registered identities (agents) and webhook sinks.
"""
from typing import List, Optional

from pydantic import BaseModel, Field


class Agent(BaseModel):
    address: str
    name: str
    capabilities: List[str] = Field(default_factory=list)
    endpoint: Optional[str] = None
    agent_id: Optional[int] = None
    reputation: int = 0
    completed_bounties: int = 0
    total_earned: int = 0
    created_at: int
    updated_at: Optional[int] = None


class Webhook(BaseModel):
    id: str
    name: str
    endpoint: str
    agent_address: Optional[str] = None
    created_at: int
