"""User actions against opportunities, aggregated for participant counts and rankings."""

from datetime import datetime
from typing import Optional
from uuid import UUID

from yoma_opportunity.models.lookup import (
    MyOpportunityAction,
    OrganizationStatus,
    Status,
    VerificationStatus,
)
from yoma_opportunity.services.lookups import LookupServices
from yoma_opportunity.store.my_opportunity_store import MyOpportunityStore


class MyOpportunityService:
    def __init__(self, store: MyOpportunityStore, lookups: LookupServices):
        self._store = store
        self._lookups = lookups

    def record_action(
        self,
        user_id: UUID,
        opportunity_id: UUID,
        action: MyOpportunityAction,
        verification_status: Optional[VerificationStatus] = None,
        date_completed: Optional[datetime] = None,
    ) -> UUID:
        if action == MyOpportunityAction.VERIFICATION and verification_status is None:
            raise ValueError("verification_status is required for verification actions")
        return self._store.insert(
            user_id,
            opportunity_id,
            self._lookups.my_opportunity_actions.id_of(action),
            self._lookups.verification_statuses.id_of(verification_status) if verification_status else None,
            date_completed,
        )

    def count_pending_verifications(self, opportunity_ids: list[UUID]) -> dict[UUID, int]:
        """Verification requests awaiting review, per opportunity."""
        counts = self._store.count_by_opportunity(
            opportunity_ids,
            self._lookups.my_opportunity_actions.id_of(MyOpportunityAction.VERIFICATION),
            self._lookups.verification_statuses.id_of(VerificationStatus.PENDING),
        )
        return {oid: counts.get(str(oid), 0) for oid in opportunity_ids}

    def _aggregate(
        self,
        action: MyOpportunityAction,
        include_expired: bool,
        verification_status: Optional[VerificationStatus] = None,
    ) -> dict[UUID, int]:
        statuses = [Status.ACTIVE] + ([Status.EXPIRED] if include_expired else [])
        rows = self._store.aggregate_by_opportunity(
            self._lookups.my_opportunity_actions.id_of(action),
            [self._lookups.opportunity_statuses.id_of(s) for s in statuses],
            self._lookups.organization_statuses.id_of(OrganizationStatus.ACTIVE),
            self._lookups.verification_statuses.id_of(verification_status) if verification_status else None,
        )
        # insertion order carries the ranking
        return {UUID(oid): n for oid, n in rows}

    def list_aggregated_opportunity_by_viewed(self, include_expired: bool) -> dict[UUID, int]:
        return self._aggregate(MyOpportunityAction.VIEWED, include_expired)

    def list_aggregated_opportunity_by_completed(self, include_expired: bool) -> dict[UUID, int]:
        return self._aggregate(MyOpportunityAction.VERIFICATION, include_expired, VerificationStatus.COMPLETED)
