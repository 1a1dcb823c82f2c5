"""Organization and user models."""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from yoma_opportunity.models.lookup import OrganizationStatus


class Organization(BaseModel):
    """Organization that posts opportunities and funds their rewards."""

    id: UUID
    name: str
    status_id: UUID
    status: OrganizationStatus
    logo_storage_type: Optional[str] = None
    logo_key: Optional[str] = None
    zlto_reward_pool: Optional[Decimal] = None
    yoma_reward_pool: Optional[Decimal] = None
    zlto_reward_cumulative: Optional[Decimal] = None
    yoma_reward_cumulative: Optional[Decimal] = None
    date_created: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    date_modified: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def zlto_reward_balance(self) -> Optional[Decimal]:
        if self.zlto_reward_pool is None:
            return None
        return self.zlto_reward_pool - (self.zlto_reward_cumulative or Decimal(0))

    @property
    def yoma_reward_balance(self) -> Optional[Decimal]:
        if self.yoma_reward_pool is None:
            return None
        return self.yoma_reward_pool - (self.yoma_reward_cumulative or Decimal(0))


class UserInfo(BaseModel):
    """Platform user. is_admin marks platform administrators."""

    id: UUID
    email: str
    display_name: Optional[str] = None
    country_id: Optional[UUID] = None
    is_admin: bool = False
