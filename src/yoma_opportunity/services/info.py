"""Opportunity info service: the read model handed to API consumers."""

import csv
import io
import logging
from typing import Optional
from uuid import UUID

from yoma_opportunity.config import AppSettings
from yoma_opportunity.context import RequestContext
from yoma_opportunity.derived import published_or_expired, to_opportunity_info, utcnow
from yoma_opportunity.errors import EntityNotFoundError, RequestValidationError
from yoma_opportunity.models.lookup import PublishedState
from yoma_opportunity.models.opportunity import Opportunity, OpportunityInfo
from yoma_opportunity.models.search import (
    OpportunitySearchFilter,
    OpportunitySearchFilterAdmin,
    OpportunitySearchResultsInfo,
    OrderField,
    OrderInstruction,
    SortOrder,
)
from yoma_opportunity.services.my_opportunity import MyOpportunityService
from yoma_opportunity.services.opportunity import DEFAULT_PUBLISHED_STATES, OpportunityService

logger = logging.getLogger(__name__)

DEFAULT_ORDER_INSTRUCTIONS = [
    OrderInstruction(field=OrderField.DATE_START, sort_order=SortOrder.DESCENDING),
    # open-ended opportunities sort first
    OrderInstruction(field=OrderField.DATE_END, sort_order=SortOrder.DESCENDING),
    OrderInstruction(field=OrderField.TITLE),
    OrderInstruction(field=OrderField.ID),
]

CSV_COLUMNS = [
    "id",
    "title",
    "organization_name",
    "type",
    "status",
    "published",
    "date_start",
    "date_end",
    "commitment_interval_description",
    "zlto_reward",
    "yoma_reward",
    "participant_limit",
    "participant_count_completed",
    "participant_count_pending",
    "participant_count_total",
    "yoma_info_url",
]


class OpportunityInfoService:
    """Wraps OpportunityService results as OpportunityInfo with participant counts."""

    def __init__(
        self,
        opportunities: OpportunityService,
        my_opportunities: MyOpportunityService,
        settings: AppSettings,
    ):
        self._opportunities = opportunities
        self._my_opportunities = my_opportunities
        self._settings = settings

    def _to_info(self, items: list[Opportunity]) -> list[OpportunityInfo]:
        pending = self._my_opportunities.count_pending_verifications([o.id for o in items])
        results: list[OpportunityInfo] = []
        for opp in items:
            info = to_opportunity_info(opp, self._settings.app_base_url)
            info.participant_count_pending = pending.get(opp.id, 0)
            info.participant_count_total = info.participant_count_completed + info.participant_count_pending
            results.append(info)
        return results

    def get_by_id(
        self,
        opportunity_id: UUID,
        ensure_org_auth: bool = False,
        context: Optional[RequestContext] = None,
    ) -> OpportunityInfo:
        opp = self._opportunities.get_by_id(opportunity_id, True, True, ensure_org_auth, context)
        return self._to_info([opp])[0]

    def get_published_or_expired_by_id(self, opportunity_id: UUID) -> OpportunityInfo:
        """Anonymous read. Anything not publicly visible is reported as missing."""
        opp = self._opportunities.get_by_id(opportunity_id, True, True)
        visible, reason = published_or_expired(opp)
        if not visible:
            raise EntityNotFoundError(reason)
        return self._to_info([opp])[0]

    def search(
        self,
        flt: OpportunitySearchFilterAdmin,
        context: Optional[RequestContext] = None,
        ensure_org_auth: bool = False,
    ) -> OpportunitySearchResultsInfo:
        results = self._opportunities.search(flt, context, ensure_org_auth)
        return OpportunitySearchResultsInfo(total_count=results.total_count, items=self._to_info(results.items))

    def search_public(self, flt: OpportunitySearchFilter) -> OpportunitySearchResultsInfo:
        """
        Published (or expired) opportunities of active organizations, hidden ones
        excluded. most_viewed / most_completed order by the aggregated user actions;
        otherwise newest start date first.
        """
        if flt is None:
            raise ValueError("filter is required")
        if flt.most_viewed and flt.most_completed:
            raise RequestValidationError("Most viewed and most completed filters cannot be used together")

        published_states = flt.published_states or list(DEFAULT_PUBLISHED_STATES)
        admin_filter = OpportunitySearchFilterAdmin(
            **flt.model_dump(exclude={"most_viewed", "most_completed", "published_states"}),
            published_states=published_states,
            hidden=False,
            order_instructions=list(DEFAULT_ORDER_INSTRUCTIONS),
        )

        include_expired = PublishedState.EXPIRED in published_states
        ranking: Optional[dict[UUID, int]] = None
        if flt.most_viewed:
            ranking = self._my_opportunities.list_aggregated_opportunity_by_viewed(include_expired)
        elif flt.most_completed:
            ranking = self._my_opportunities.list_aggregated_opportunity_by_completed(include_expired)

        if ranking is not None:
            ranked_ids = list(ranking)
            admin_filter.opportunities = ranked_ids
            admin_filter.order_instructions = [OrderInstruction(field=OrderField.SEQUENCE, sequence=ranked_ids)]

        return self.search(admin_filter)

    def export_to_csv(
        self,
        flt: OpportunitySearchFilterAdmin,
        context: Optional[RequestContext] = None,
        ensure_org_auth: bool = False,
    ) -> tuple[bytes, str]:
        """All matching opportunities as UTF-8 CSV. Returns (content, file name)."""
        flt = flt.model_copy(update={"page_number": None, "page_size": None, "total_count_only": False})
        if not flt.order_instructions:
            flt.order_instructions = list(DEFAULT_ORDER_INSTRUCTIONS)
        results = self.search(flt, context, ensure_org_auth)

        buffer = io.StringIO()
        writer = csv.DictWriter(buffer, fieldnames=CSV_COLUMNS, extrasaction="ignore")
        writer.writeheader()
        for info in results.items:
            writer.writerow(info.model_dump(mode="json", include=set(CSV_COLUMNS)))

        file_name = f"Transactions_{utcnow():%Y%m%d_%H%M%S}.csv"
        logger.info("Exported %d opportunities to %s", len(results.items), file_name)
        return buffer.getvalue().encode("utf-8"), file_name
