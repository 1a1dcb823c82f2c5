"""Create and update requests for opportunities."""

from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from yoma_opportunity.models.lookup import VerificationMethod, VerificationType


class OpportunityVerificationTypeRequest(BaseModel):
    type: VerificationType
    description: Optional[str] = None


class OpportunityRequestBase(BaseModel):
    """Fields shared by create and update."""

    title: str
    description: str
    type_id: UUID
    organization_id: UUID
    summary: Optional[str] = None
    instructions: Optional[str] = None
    url: Optional[str] = None
    zlto_reward: Optional[Decimal] = None
    yoma_reward: Optional[Decimal] = None
    zlto_reward_pool: Optional[Decimal] = None
    yoma_reward_pool: Optional[Decimal] = None
    verification_enabled: bool = False
    verification_method: Optional[VerificationMethod] = None
    difficulty_id: UUID
    commitment_interval_id: UUID
    commitment_interval_count: int
    participant_limit: Optional[int] = None
    keywords: Optional[list[str]] = None
    date_start: datetime
    date_end: Optional[datetime] = None
    credential_issuance_enabled: bool = False
    ssi_schema_name: Optional[str] = None
    engagement_type_id: Optional[UUID] = None
    share_with_partners: bool = False
    hidden: bool = False
    categories: list[UUID] = Field(default_factory=list)
    countries: list[UUID] = Field(default_factory=list)
    languages: list[UUID] = Field(default_factory=list)
    skills: Optional[list[UUID]] = None
    verification_types: Optional[list[OpportunityVerificationTypeRequest]] = None


class OpportunityRequestCreate(OpportunityRequestBase):
    post_as_active: bool = False
    external_id: Optional[str] = None


class OpportunityRequestUpdate(OpportunityRequestBase):
    id: UUID
