"""
Partial Update Models
=====================
Explicit, validated partial updates per entity. Only the listed fields can
change; unknown keys are rejected instead of being merged into the document.

BountyPatch — creator-only, allowed while the bounty is still open
AgentPatch  — profile fields an agent may change about itself
"""
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, field_validator

from bountyboard.core.constants import (
    MAX_DESCRIPTION_LENGTH,
    MAX_REQUIREMENTS,
    MAX_TITLE_LENGTH,
)


class BountyPatch(BaseModel):
    model_config = ConfigDict(extra="forbid")

    title: Optional[str] = None
    description: Optional[str] = None
    requirements: Optional[List[str]] = None
    tags: Optional[List[str]] = None
    deadline: Optional[int] = None

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip()
        if not v:
            raise ValueError("title must not be empty")
        if len(v) > MAX_TITLE_LENGTH:
            raise ValueError(f"Title too long (max {MAX_TITLE_LENGTH} chars)")
        return v

    @field_validator("description")
    @classmethod
    def validate_description(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and len(v) > MAX_DESCRIPTION_LENGTH:
            raise ValueError(f"Description too long (max {MAX_DESCRIPTION_LENGTH} chars)")
        return v

    @field_validator("requirements")
    @classmethod
    def validate_requirements(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        if v is not None and len(v) > MAX_REQUIREMENTS:
            raise ValueError(f"Too many requirements (max {MAX_REQUIREMENTS})")
        return v

    def changed_fields(self) -> dict:
        return self.model_dump(exclude_unset=True)


class AgentPatch(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = None
    capabilities: Optional[List[str]] = None
    endpoint: Optional[str] = None

    def changed_fields(self) -> dict:
        return self.model_dump(exclude_unset=True)
