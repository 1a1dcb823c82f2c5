"""Local storage for opportunities, organizations, users and reference data."""

from yoma_opportunity.store.database import Database
from yoma_opportunity.store.lookup_store import LookupStore
from yoma_opportunity.store.my_opportunity_store import MyOpportunityStore
from yoma_opportunity.store.organization_store import OrganizationStore, UserStore
from yoma_opportunity.store.query import OpportunityQuery, Predicate
from yoma_opportunity.store.sqlite_store import OpportunityStore

__all__ = [
    "Database",
    "LookupStore",
    "MyOpportunityStore",
    "OpportunityQuery",
    "OpportunityStore",
    "OrganizationStore",
    "Predicate",
    "UserStore",
]
