"""Opportunity entity and its read models."""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from yoma_opportunity.models.lookup import (
    LookupItem,
    OrganizationStatus,
    Status,
    TimeIntervalOption,
    VerificationMethod,
    VerificationType,
)


class OpportunityVerificationTypeItem(BaseModel):
    """Verification type linked to an opportunity, with an optional description override."""

    id: UUID
    type: VerificationType
    display_name: str
    description: Optional[str] = None


class Opportunity(BaseModel):
    """Opportunity as stored, with denormalized organization fields and lookup names."""

    id: UUID
    title: str
    description: str
    type_id: UUID
    type: str
    organization_id: UUID
    organization_name: str
    organization_logo_storage_type: Optional[str] = None
    organization_logo_key: Optional[str] = None
    organization_logo_url: Optional[str] = None
    organization_status_id: UUID
    organization_status: OrganizationStatus
    organization_zlto_reward_balance: Optional[Decimal] = None
    organization_yoma_reward_balance: Optional[Decimal] = None
    summary: Optional[str] = None
    instructions: Optional[str] = None
    url: Optional[str] = None

    zlto_reward: Optional[Decimal] = None
    yoma_reward: Optional[Decimal] = None
    zlto_reward_pool: Optional[Decimal] = None
    yoma_reward_pool: Optional[Decimal] = None
    zlto_reward_cumulative: Optional[Decimal] = None
    yoma_reward_cumulative: Optional[Decimal] = None
    zlto_reward_balance: Optional[Decimal] = None
    yoma_reward_balance: Optional[Decimal] = None

    verification_enabled: bool = False
    verification_method: Optional[VerificationMethod] = None
    difficulty_id: UUID
    difficulty: str
    commitment_interval_id: UUID
    commitment_interval: TimeIntervalOption
    commitment_interval_count: int
    commitment_interval_description: Optional[str] = None
    participant_limit: Optional[int] = None
    participant_count: Optional[int] = None

    status_id: UUID
    status: Status
    keywords: Optional[list[str]] = None
    date_start: datetime
    date_end: Optional[datetime] = None
    credential_issuance_enabled: bool = False
    ssi_schema_name: Optional[str] = None
    featured: Optional[bool] = None
    engagement_type_id: Optional[UUID] = None
    engagement_type: Optional[str] = None
    share_with_partners: Optional[bool] = None
    hidden: Optional[bool] = None
    external_id: Optional[str] = None
    published: bool = False

    date_created: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    created_by_user_id: Optional[UUID] = None
    date_modified: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    modified_by_user_id: Optional[UUID] = None

    categories: Optional[list[LookupItem]] = None
    countries: Optional[list[LookupItem]] = None
    languages: Optional[list[LookupItem]] = None
    skills: Optional[list[LookupItem]] = None
    verification_types: Optional[list[OpportunityVerificationTypeItem]] = None


class OpportunityInfo(BaseModel):
    """Read model returned to API consumers, with participant counts."""

    id: UUID
    title: str
    description: str
    type: str
    organization_id: UUID
    organization_name: str
    organization_logo_url: Optional[str] = None
    summary: Optional[str] = None
    instructions: Optional[str] = None
    url: Optional[str] = None
    zlto_reward: Optional[Decimal] = None
    zlto_reward_pool: Optional[Decimal] = None
    zlto_reward_cumulative: Optional[Decimal] = None
    zlto_reward_balance: Optional[Decimal] = None
    yoma_reward: Optional[Decimal] = None
    yoma_reward_pool: Optional[Decimal] = None
    yoma_reward_cumulative: Optional[Decimal] = None
    yoma_reward_balance: Optional[Decimal] = None
    verification_enabled: bool = False
    verification_method: Optional[VerificationMethod] = None
    difficulty: str
    commitment_interval: TimeIntervalOption
    commitment_interval_count: int
    commitment_interval_description: Optional[str] = None
    commitment_interval_hours: int = 0
    participant_limit: Optional[int] = None
    participant_count_completed: int = 0
    participant_count_pending: int = 0
    participant_count_total: int = 0
    participant_limit_reached: bool = False
    status: Status
    keywords: Optional[list[str]] = None
    date_start: datetime
    date_end: Optional[datetime] = None
    featured: bool = False
    engagement_type: Optional[str] = None
    share_with_partners: bool = False
    hidden: bool = False
    published: bool = False
    is_completable: bool = False
    non_completable_reason: Optional[str] = None
    yoma_info_url: str
    categories: list[LookupItem] = Field(default_factory=list)
    countries: list[LookupItem] = Field(default_factory=list)
    languages: list[LookupItem] = Field(default_factory=list)
    skills: list[LookupItem] = Field(default_factory=list)
    verification_types: list[OpportunityVerificationTypeItem] = Field(default_factory=list)


class RewardAllocation(BaseModel):
    """Rewards granted for one completion after clamping against the pools."""

    zlto_reward: Optional[Decimal] = None
    zlto_reward_reduced: bool = False
    zlto_reward_pool_depleted: bool = False
    yoma_reward: Optional[Decimal] = None
    yoma_reward_reduced: bool = False
    yoma_reward_pool_depleted: bool = False
