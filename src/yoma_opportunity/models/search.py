"""Search filters, ordering and result models."""

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from yoma_opportunity.models.lookup import PublishedState, Status, TimeIntervalOption
from yoma_opportunity.models.opportunity import Opportunity, OpportunityInfo


class OrderField(str, Enum):
    DATE_START = "date_start"
    DATE_END = "date_end"
    TITLE = "title"
    ID = "id"
    DATE_CREATED = "date_created"
    DATE_MODIFIED = "date_modified"
    SEQUENCE = "sequence"


class SortOrder(str, Enum):
    ASCENDING = "asc"
    DESCENDING = "desc"


class OrderInstruction(BaseModel):
    """
    One ORDER BY term. SEQUENCE orders by position in the given id list
    (ids not in the list sort last).
    """

    field: OrderField
    sort_order: SortOrder = SortOrder.ASCENDING
    sequence: Optional[list[UUID]] = None


class CommitmentIntervalMax(BaseModel):
    """Upper bound on commitment, e.g. at most 2 weeks."""

    interval: TimeIntervalOption
    count: int = Field(..., gt=0)


class OpportunitySearchFilterBase(BaseModel):
    page_number: Optional[int] = None
    page_size: Optional[int] = None
    types: Optional[list[UUID]] = None
    categories: Optional[list[UUID]] = None
    languages: Optional[list[UUID]] = None
    countries: Optional[list[UUID]] = None
    organizations: Optional[list[UUID]] = None
    commitment_intervals: Optional[list[str]] = Field(
        default=None,
        description="Options formatted as '{count}|{interval_id}'",
    )
    zlto_reward_ranges: Optional[list[str]] = Field(
        default=None,
        description="Ranges formatted as '{from}|{to}'",
    )
    published_states: Optional[list[PublishedState]] = None
    featured: Optional[bool] = None
    value_contains: Optional[str] = None

    @property
    def paginated(self) -> bool:
        return self.page_number is not None and self.page_size is not None


class OpportunitySearchFilter(OpportunitySearchFilterBase):
    """Anonymous search."""

    most_viewed: Optional[bool] = None
    most_completed: Optional[bool] = None


class OpportunitySearchFilterAdmin(OpportunitySearchFilterBase):
    """Search used by administrators and, internally, by every other search."""

    engagement_types: Optional[list[UUID]] = None
    statuses: Optional[list[Status]] = None
    opportunities: Optional[list[UUID]] = None
    commitment_interval_max: Optional[CommitmentIntervalMax] = None
    has_zlto_reward: Optional[bool] = None
    share_with_partners: Optional[bool] = None
    hidden: Optional[bool] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    published: Optional[bool] = None
    include_expired: Optional[bool] = None
    total_count_only: bool = False
    order_instructions: Optional[list[OrderInstruction]] = None


class OpportunitySearchResults(BaseModel):
    total_count: Optional[int] = None
    items: list[Opportunity] = Field(default_factory=list)


class OpportunitySearchResultsInfo(BaseModel):
    total_count: Optional[int] = None
    items: list[OpportunityInfo] = Field(default_factory=list)


class SearchCriteriaItem(BaseModel):
    """Lookup value available as a search facet, with the number of matching opportunities."""

    id: UUID
    name: str
    count: int = 0
    code: Optional[str] = None
    logo_url: Optional[str] = None


class SearchCriteriaOption(BaseModel):
    """Encoded facet option such as a commitment interval or reward range."""

    id: str
    name: str
