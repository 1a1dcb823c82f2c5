"""Domain models for opportunities, organizations, lookups and search."""

from yoma_opportunity.models.lookup import (
    LookupItem,
    LookupKind,
    MyOpportunityAction,
    OrganizationStatus,
    PublishedState,
    Status,
    TimeIntervalOption,
    VerificationMethod,
    VerificationStatus,
    VerificationType,
)
from yoma_opportunity.models.opportunity import (
    Opportunity,
    OpportunityInfo,
    OpportunityVerificationTypeItem,
    RewardAllocation,
)
from yoma_opportunity.models.organization import Organization, UserInfo
from yoma_opportunity.models.requests import (
    OpportunityRequestCreate,
    OpportunityRequestUpdate,
    OpportunityVerificationTypeRequest,
)
from yoma_opportunity.models.search import (
    CommitmentIntervalMax,
    OpportunitySearchFilter,
    OpportunitySearchFilterAdmin,
    OpportunitySearchResults,
    OpportunitySearchResultsInfo,
    OrderField,
    OrderInstruction,
    SearchCriteriaItem,
    SearchCriteriaOption,
    SortOrder,
)

__all__ = [
    "CommitmentIntervalMax",
    "LookupItem",
    "LookupKind",
    "MyOpportunityAction",
    "Opportunity",
    "OpportunityInfo",
    "OpportunityRequestCreate",
    "OpportunityRequestUpdate",
    "OpportunitySearchFilter",
    "OpportunitySearchFilterAdmin",
    "OpportunitySearchResults",
    "OpportunitySearchResultsInfo",
    "OpportunityVerificationTypeItem",
    "OpportunityVerificationTypeRequest",
    "OrderField",
    "OrderInstruction",
    "Organization",
    "OrganizationStatus",
    "PublishedState",
    "RewardAllocation",
    "SearchCriteriaItem",
    "SearchCriteriaOption",
    "SortOrder",
    "Status",
    "TimeIntervalOption",
    "UserInfo",
    "VerificationMethod",
    "VerificationStatus",
    "VerificationType",
]
