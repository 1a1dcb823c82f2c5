"""Email types and template payloads."""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class EmailType(str, Enum):
    OPPORTUNITY_POSTED_ADMIN = "Opportunity_Posted_Admin"
    OPPORTUNITY_EXPIRATION_EXPIRED = "Opportunity_Expiration_Expired"
    OPPORTUNITY_EXPIRATION_WITHIN_NEXT_DAYS = "Opportunity_Expiration_WithinNextDays"


class EmailRecipient(BaseModel):
    email: str
    display_name: Optional[str] = None


class EmailOpportunityItem(BaseModel):
    title: str
    date_start: datetime
    date_end: Optional[datetime] = None
    url: str
    zlto_reward: Optional[Decimal] = None
    yoma_reward: Optional[Decimal] = None


class EmailOpportunityAnnounced(BaseModel):
    """Payload for newly posted opportunities."""

    opportunities: list[EmailOpportunityItem] = Field(default_factory=list)


class EmailOpportunityExpiration(BaseModel):
    """Payload for expired or soon-to-expire opportunities, grouped per recipient."""

    within_next_days: Optional[int] = None
    opportunities: list[EmailOpportunityItem] = Field(default_factory=list)
