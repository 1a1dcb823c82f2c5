"""Opportunity service: search, create/update, status lifecycle, rewards and associations."""

import logging
import math
import uuid
from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Callable, Optional
from uuid import UUID

from yoma_opportunity.config import AppSettings
from yoma_opportunity.context import ROLE_ORGANIZATION_ADMIN, RequestContext
from yoma_opportunity.derived import (
    MINUTES_PER_INTERVAL,
    allocate_reward,
    commitment_description,
    ensure_https_scheme,
    remove_time,
    set_balances,
    set_published,
    time_interval_to_days,
    to_end_of_day,
    utcnow,
)
from yoma_opportunity.email.client import EmailProviderClient, EmailURLFactory
from yoma_opportunity.email.models import (
    EmailOpportunityAnnounced,
    EmailOpportunityItem,
    EmailRecipient,
    EmailType,
)
from yoma_opportunity.errors import EntityNotFoundError, RequestValidationError
from yoma_opportunity.models.lookup import (
    CATEGORY_OTHER,
    COUNTRY_WORLDWIDE,
    LookupItem,
    OrganizationStatus,
    PublishedState,
    Status,
    TimeIntervalOption,
    VerificationType,
)
from yoma_opportunity.models.opportunity import (
    Opportunity,
    OpportunityVerificationTypeItem,
    RewardAllocation,
)
from yoma_opportunity.models.organization import Organization
from yoma_opportunity.models.requests import (
    OpportunityRequestBase,
    OpportunityRequestCreate,
    OpportunityRequestUpdate,
    OpportunityVerificationTypeRequest,
)
from yoma_opportunity.models.search import (
    OpportunitySearchFilterAdmin,
    OpportunitySearchResults,
    SearchCriteriaItem,
    SearchCriteriaOption,
)
from yoma_opportunity.services.blob import BlobService
from yoma_opportunity.services.lookups import LookupService, LookupServices
from yoma_opportunity.services.organizations import OrganizationService, UserService
from yoma_opportunity.store.database import Database, to_db_time
from yoma_opportunity.store.query import (
    OpportunityQuery,
    Predicate,
    and_,
    contains,
    exists_in,
    in_,
    or_,
)
from yoma_opportunity.store.sqlite_store import OpportunityStore
from yoma_opportunity.validation.engine import RequestValidator, ValidationContext
from yoma_opportunity.validation.rules import OPPORTUNITY_REQUEST_RULES
from yoma_opportunity.validation.search import SEARCH_FILTER_RULES

logger = logging.getLogger(__name__)

STATUSES_UPDATABLE = (Status.ACTIVE, Status.INACTIVE)
STATUSES_ACTIVATABLE = (Status.INACTIVE,)
STATUSES_DEACTIVATABLE = (Status.ACTIVE, Status.EXPIRED)
STATUSES_DELETABLE = (Status.ACTIVE, Status.INACTIVE)

DEFAULT_PUBLISHED_STATES = [PublishedState.NOT_STARTED, PublishedState.ACTIVE]
ZLTO_REWARD_RANGE_INCREMENT = 50
COUNTRY_CODE_WORLDWIDE = "WW"


def _join_names(statuses) -> str:
    return " / ".join(s.value for s in statuses)


def parse_commitment_interval_options(values: Optional[list[str]]) -> list[tuple[int, UUID]]:
    """Parse '{count}|{interval_id}' options into (count, interval_id)."""
    result: list[tuple[int, UUID]] = []
    for value in values or []:
        parts = (value or "").split("|")
        if len(parts) != 2:
            raise ValueError(f"Commitment interval option '{value}' is not in the format 'count|interval_id'")
        try:
            result.append((int(parts[0]), UUID(parts[1])))
        except ValueError as e:
            raise ValueError(f"Commitment interval option '{value}' is not in the format 'count|interval_id'") from e
    return result


def parse_zlto_reward_ranges(values: Optional[list[str]]) -> list[tuple[Decimal, Decimal]]:
    """Parse '{from}|{to}' ranges into (from, to)."""
    result: list[tuple[Decimal, Decimal]] = []
    for value in values or []:
        parts = (value or "").split("|")
        if len(parts) != 2:
            raise ValueError(f"Zlto reward range '{value}' is not in the format 'from|to'")
        try:
            low, high = Decimal(parts[0]), Decimal(parts[1])
        except InvalidOperation as e:
            raise ValueError(f"Zlto reward range '{value}' is not in the format 'from|to'") from e
        if low > high:
            raise ValueError(f"Zlto reward range '{value}' has 'from' greater than 'to'")
        result.append((low, high))
    return result


class OpportunityService:
    """
    Validates and persists opportunities, owns the status state machine, composes
    search predicates and maintains the lookup associations.
    """

    def __init__(
        self,
        db: Database,
        store: OpportunityStore,
        lookups: LookupServices,
        organizations: OrganizationService,
        users: UserService,
        blob: BlobService,
        email_client: EmailProviderClient,
        settings: AppSettings,
    ):
        self._db = db
        self._store = store
        self._lookups = lookups
        self._organizations = organizations
        self._users = users
        self._blob = blob
        self._email = email_client
        self._settings = settings
        self._email_urls = EmailURLFactory(settings.app_base_url)
        validation_context = ValidationContext(lookups=lookups, organizations=organizations)
        self._request_validator: RequestValidator = RequestValidator(validation_context, OPPORTUNITY_REQUEST_RULES)
        self._search_validator: RequestValidator = RequestValidator(validation_context, SEARCH_FILTER_RULES)

    # reads

    def _status_id(self, status: Status) -> UUID:
        return self._lookups.opportunity_statuses.id_of(status)

    def _decorate(self, opp: Opportunity, include_computed: bool) -> Opportunity:
        set_published(opp)
        opp.commitment_interval_description = commitment_description(
            opp.commitment_interval_count, opp.commitment_interval
        )
        if include_computed:
            opp.organization_logo_url = self._blob.get_url(
                opp.organization_logo_storage_type, opp.organization_logo_key
            )
            set_balances(opp)
        return opp

    def get_by_id(
        self,
        opportunity_id: UUID,
        include_children: bool = True,
        include_computed: bool = True,
        ensure_org_auth: bool = False,
        context: Optional[RequestContext] = None,
    ) -> Opportunity:
        if opportunity_id is None or opportunity_id.int == 0:
            raise ValueError("opportunity_id is required")
        opp = self._store.get(opportunity_id, include_children)
        if opp is None:
            raise EntityNotFoundError(f"Opportunity with id '{opportunity_id}' does not exist")
        if ensure_org_auth:
            self._organizations.is_admin(opp.organization_id, context or RequestContext(), throw_unauthorized=True)
        return self._decorate(opp, include_computed)

    def get_by_title_or_none(
        self,
        title: str,
        include_children: bool = False,
        include_computed: bool = False,
    ) -> Optional[Opportunity]:
        if not title or not title.strip():
            raise ValueError("title is required")
        opp = self._store.get_by_title(title, include_children)
        return self._decorate(opp, include_computed) if opp else None

    # search

    def _resolve_published_states(self, flt: OpportunitySearchFilterAdmin) -> list[PublishedState]:
        """Explicit published states plus those implied by the published / include_expired flags."""
        states = list(flt.published_states or [])
        if flt.published:
            states += DEFAULT_PUBLISHED_STATES
            if flt.include_expired:
                states.append(PublishedState.EXPIRED)
        return list(dict.fromkeys(states))

    def _published_states_predicate(self, states: list[PublishedState], now: datetime) -> Predicate:
        active_id = str(self._status_id(Status.ACTIVE))
        expired_id = str(self._status_id(Status.EXPIRED))
        now_db = to_db_time(now)
        terms: list[Predicate] = []
        for state in states:
            if state == PublishedState.NOT_STARTED:
                terms.append(Predicate("o.status_id = ? AND o.date_start > ?", (active_id, now_db)))
            elif state == PublishedState.ACTIVE:
                terms.append(Predicate("o.status_id = ? AND o.date_start <= ?", (active_id, now_db)))
            elif state == PublishedState.EXPIRED:
                terms.append(Predicate("o.status_id = ?", (expired_id,)))
        org_active_id = str(self._lookups.organization_statuses.id_of(OrganizationStatus.ACTIVE))
        return and_(Predicate("org.status_id = ?", (org_active_id,)), or_(*terms))

    def _commitment_max_predicate(self, interval: TimeIntervalOption, count: int) -> Predicate:
        """Commitment converted to minutes is at most count intervals."""
        whens: list[str] = []
        params: list = []
        for option, minutes in MINUTES_PER_INTERVAL.items():
            whens.append("WHEN ? THEN ?")
            params += [str(self._lookups.time_intervals.id_of(option)), minutes]
        max_minutes = MINUTES_PER_INTERVAL[interval] * count
        return Predicate(
            f"o.commitment_interval_count * (CASE o.commitment_interval_id {' '.join(whens)} END) <= ?",
            tuple(params) + (max_minutes,),
        )

    def _value_contains_predicate(self, value: str) -> Predicate:
        """Organization name, type, category, opportunity text or skill contains value."""
        terms: list[Predicate] = [contains("org.name", value)]
        type_ids = [i.id for i in self._lookups.types.contains(value)]
        if type_ids:
            terms.append(in_("o.type_id", type_ids))
        category_ids = [i.id for i in self._lookups.categories.contains(value)]
        if category_ids:
            terms.append(exists_in("opportunity_categories", "category_id", category_ids))
        terms.append(
            or_(
                contains("o.title", value),
                contains("o.summary", value),
                contains("o.keywords", value),
                contains("o.description", value),
            )
        )
        skill_ids = [i.id for i in self._lookups.skills.contains(value)]
        if skill_ids:
            terms.append(exists_in("opportunity_skills", "skill_id", skill_ids))
        return or_(*terms)

    def _build_search_query(
        self,
        flt: OpportunitySearchFilterAdmin,
        context: RequestContext,
        ensure_org_auth: bool,
        commitment_options: list[tuple[int, UUID]],
        zlto_ranges: list[tuple[Decimal, Decimal]],
    ) -> OpportunityQuery:
        query = OpportunityQuery()
        now = utcnow()

        if flt.types:
            query.where(in_("o.type_id", flt.types))
        if flt.categories:
            query.where(exists_in("opportunity_categories", "category_id", flt.categories))
        if flt.languages:
            query.where(exists_in("opportunity_languages", "language_id", flt.languages))
        if flt.countries:
            query.where(exists_in("opportunity_countries", "country_id", flt.countries))

        if ensure_org_auth and not context.is_admin and not flt.organizations:
            # no organizations requested: narrow to those the caller administers
            administered = [o.id for o in self._organizations.list_admins_of(context)]
            query.where(in_("o.organization_id", administered))
        elif flt.organizations:
            if ensure_org_auth:
                self._organizations.is_admins_of(flt.organizations, context, throw_unauthorized=True)
            query.where(in_("o.organization_id", flt.organizations))

        if flt.published_states is not None or flt.published:
            # an empty state list matches nothing
            query.where(self._published_states_predicate(self._resolve_published_states(flt), now))

        if flt.engagement_types:
            # opportunities without an engagement type match every engagement type
            query.where(or_(Predicate("o.engagement_type_id IS NULL"), in_("o.engagement_type_id", flt.engagement_types)))
        if flt.statuses:
            query.where(in_("o.status_id", [self._status_id(s) for s in flt.statuses]))
        if flt.opportunities is not None:
            query.where(in_("o.id", dict.fromkeys(flt.opportunities)))

        if commitment_options:
            query.where(
                or_(
                    *(
                        Predicate(
                            "o.commitment_interval_id = ? AND o.commitment_interval_count = ?",
                            (str(interval_id), count),
                        )
                        for count, interval_id in commitment_options
                    )
                )
            )
        if flt.commitment_interval_max is not None:
            query.where(
                self._commitment_max_predicate(flt.commitment_interval_max.interval, flt.commitment_interval_max.count)
            )

        if zlto_ranges:
            query.where(
                or_(
                    *(
                        Predicate("o.zlto_reward >= ? AND o.zlto_reward <= ?", (float(low), float(high)))
                        for low, high in zlto_ranges
                    )
                )
            )
        if flt.has_zlto_reward is True:
            query.where(Predicate("o.zlto_reward > 0"))
        elif flt.has_zlto_reward is False:
            query.where(Predicate("COALESCE(o.zlto_reward, 0) = 0"))

        if flt.featured is not None:
            query.where(Predicate("COALESCE(o.featured, 0) = ?", (int(flt.featured),)))
        if flt.share_with_partners is not None:
            query.where(Predicate("COALESCE(o.share_with_partners, 0) = ?", (int(flt.share_with_partners),)))
        if flt.hidden is not None:
            query.where(Predicate("COALESCE(o.hidden, 0) = ?", (int(flt.hidden),)))

        if flt.start_date is not None:
            query.where(Predicate("o.date_start >= ?", (to_db_time(remove_time(flt.start_date)),)))
        if flt.end_date is not None:
            query.where(Predicate("o.date_end <= ?", (to_db_time(to_end_of_day(flt.end_date)),)))

        if flt.value_contains and flt.value_contains.strip():
            query.where(self._value_contains_predicate(flt.value_contains.strip()))

        return query

    def search(
        self,
        flt: OpportunitySearchFilterAdmin,
        context: Optional[RequestContext] = None,
        ensure_org_auth: bool = False,
    ) -> OpportunitySearchResults:
        """
        AND together a predicate per populated filter field, then count and page.
        total_count_only skips loading items; otherwise order instructions are required.
        """
        if flt is None:
            raise ValueError("filter is required")
        context = context or RequestContext()

        commitment_options = parse_commitment_interval_options(flt.commitment_intervals)
        zlto_ranges = parse_zlto_reward_ranges(flt.zlto_reward_ranges)
        self._search_validator.validate_and_raise(flt)

        query = self._build_search_query(flt, context, ensure_org_auth, commitment_options, zlto_ranges)

        if flt.total_count_only:
            return OpportunitySearchResults(total_count=self._store.count(query))

        if not flt.order_instructions:
            raise ValueError("Ordering required")
        for instruction in flt.order_instructions:
            query.order_by_instruction(instruction)

        results = OpportunitySearchResults()
        skip: Optional[int] = None
        take: Optional[int] = None
        if flt.paginated:
            results.total_count = self._store.count(query)
            skip = (flt.page_number - 1) * flt.page_size
            take = flt.page_size

        results.items = [self._decorate(o, include_computed=True) for o in self._store.list(query, skip=skip, take=take)]
        return results

    # search criteria

    def _criteria_query(self, published_states: Optional[list[PublishedState]]) -> OpportunityQuery:
        states = published_states or DEFAULT_PUBLISHED_STATES
        return OpportunityQuery().where(self._published_states_predicate(states, utcnow()))

    def _criteria_admin_organization(
        self,
        organization_id: Optional[UUID],
        context: RequestContext,
        ensure_org_auth: bool,
    ) -> Optional[Organization]:
        if organization_id is None:
            if not context.is_admin:
                raise RequestValidationError(f"Organization required for '{ROLE_ORGANIZATION_ADMIN}' role only")
            return None
        return self._organizations.get_by_id(organization_id, ensure_org_auth, context)

    def _criteria_admin_query(self, org: Optional[Organization]) -> OpportunityQuery:
        query = OpportunityQuery()
        if org is not None:
            query.where(Predicate("o.organization_id = ?", (str(org.id),)))
        return query

    def _facet_items(self, service: LookupService, counts: dict[str, int]) -> list[SearchCriteriaItem]:
        return [
            SearchCriteriaItem(
                id=item.id,
                name=item.name,
                count=counts[str(item.id)],
                code=item.code,
                logo_url=item.data.get("image_url"),
            )
            for item in service.list()
            if str(item.id) in counts
        ]

    def _categories(self, query: OpportunityQuery) -> list[SearchCriteriaItem]:
        items = self._facet_items(self._lookups.categories, self._store.facet_counts(query, "categories"))
        return sorted(items, key=lambda i: (i.name == CATEGORY_OTHER, i.name))

    def list_search_criteria_categories(
        self, published_states: Optional[list[PublishedState]] = None
    ) -> list[SearchCriteriaItem]:
        """Categories with published opportunities, 'Other' last."""
        return self._categories(self._criteria_query(published_states))

    def list_search_criteria_categories_admin(
        self,
        organization_id: Optional[UUID],
        context: RequestContext,
        ensure_org_auth: bool = False,
    ) -> list[SearchCriteriaItem]:
        org = self._criteria_admin_organization(organization_id, context, ensure_org_auth)
        return self._categories(self._criteria_admin_query(org))

    def list_search_criteria_countries(
        self,
        published_states: Optional[list[PublishedState]] = None,
        context: Optional[RequestContext] = None,
    ) -> list[SearchCriteriaItem]:
        """Worldwide first, then the caller's country, then by opportunity count and name."""
        items = self._facet_items(
            self._lookups.countries,
            self._store.facet_counts(self._criteria_query(published_states), "countries"),
        )
        user = self._users.get_by_email_or_none(context.username) if context else None
        user_country_id = user.country_id if user else None

        def sort_key(item: SearchCriteriaItem):
            worldwide = item.name == COUNTRY_WORLDWIDE or item.code == COUNTRY_CODE_WORLDWIDE
            return (not worldwide, item.id != user_country_id, -item.count, item.name)

        return sorted(items, key=sort_key)

    def list_search_criteria_countries_admin(
        self,
        organization_id: Optional[UUID],
        context: RequestContext,
        ensure_org_auth: bool = False,
    ) -> list[SearchCriteriaItem]:
        org = self._criteria_admin_organization(organization_id, context, ensure_org_auth)
        items = self._facet_items(
            self._lookups.countries,
            self._store.facet_counts(self._criteria_admin_query(org), "countries"),
        )
        return sorted(items, key=lambda i: i.name)

    def list_search_criteria_languages(
        self,
        published_states: Optional[list[PublishedState]] = None,
        language_code_site: Optional[str] = None,
    ) -> list[SearchCriteriaItem]:
        """The site's language first, then by opportunity count and name."""
        items = self._facet_items(
            self._lookups.languages,
            self._store.facet_counts(self._criteria_query(published_states), "languages"),
        )
        site = (language_code_site or "").strip().casefold()

        def sort_key(item: SearchCriteriaItem):
            is_site = bool(site) and (item.code or "").casefold() == site
            return (not is_site, -item.count, item.name)

        return sorted(items, key=sort_key)

    def list_search_criteria_languages_admin(
        self,
        organization_id: Optional[UUID],
        context: RequestContext,
        ensure_org_auth: bool = False,
    ) -> list[SearchCriteriaItem]:
        org = self._criteria_admin_organization(organization_id, context, ensure_org_auth)
        items = self._facet_items(
            self._lookups.languages,
            self._store.facet_counts(self._criteria_admin_query(org), "languages"),
        )
        return sorted(items, key=lambda i: i.name)

    def list_search_criteria_organizations(
        self, published_states: Optional[list[PublishedState]] = None
    ) -> list[SearchCriteriaItem]:
        counts = dict(self._store.column_counts(self._criteria_query(published_states), "o.organization_id"))
        orgs = self._organizations.list_by_ids([UUID(i) for i in counts])
        items = [
            SearchCriteriaItem(
                id=org.id,
                name=org.name,
                count=counts[str(org.id)],
                logo_url=self._organizations.get_logo_url(org),
            )
            for org in orgs
        ]
        return sorted(items, key=lambda i: (-i.count, i.name))

    def list_search_criteria_commitment_intervals(
        self, published_states: Optional[list[PublishedState]] = None
    ) -> list[SearchCriteriaOption]:
        """Distinct '{count}|{interval_id}' options, shortest interval first."""
        rows = self._store.column_counts(
            self._criteria_query(published_states),
            "o.commitment_interval_count || '|' || o.commitment_interval_id",
        )
        options: list[tuple[int, int, SearchCriteriaOption]] = []
        order = list(TimeIntervalOption)
        for value, _ in rows:
            count, interval_id = parse_commitment_interval_options([value])[0]
            interval = TimeIntervalOption(self._lookups.time_intervals.get_by_id(interval_id).name)
            options.append(
                (
                    order.index(interval),
                    count,
                    SearchCriteriaOption(id=value, name=commitment_description(count, interval)),
                )
            )
        return [option for _, _, option in sorted(options, key=lambda t: (t[0], t[1]))]

    def list_search_criteria_zlto_reward_ranges(
        self, published_states: Optional[list[PublishedState]] = None
    ) -> list[SearchCriteriaOption]:
        """Fixed-width reward buckets spanning the lowest to highest published Zlto reward."""
        query = self._criteria_query(published_states).where(Predicate("o.zlto_reward > 0"))
        low = self._store.scalar(query, "MIN(o.zlto_reward)")
        high = self._store.scalar(query, "MAX(o.zlto_reward)")
        if low is None or high is None:
            return []
        step = ZLTO_REWARD_RANGE_INCREMENT
        start = math.floor(low / step) * step
        end = math.ceil(high / step) * step
        if end == start:
            end = start + step
        results: list[SearchCriteriaOption] = []
        for lower in range(int(start), int(end), step):
            upper = min(lower + step, int(end))
            results.append(SearchCriteriaOption(id=f"{lower}|{upper}", name=f"Z{lower} - Z{upper}"))
        return results

    # create / update

    def _normalize_request(self, request: OpportunityRequestBase) -> OpportunityRequestBase:
        return request.model_copy(
            update={
                "title": request.title.strip() if request.title else request.title,
                "url": ensure_https_scheme(request.url),
                "date_start": remove_time(request.date_start),
                "date_end": to_end_of_day(request.date_end) if request.date_end else None,
            }
        )

    def _assert_commitment_fits(self, request: OpportunityRequestBase) -> TimeIntervalOption:
        interval = TimeIntervalOption(self._lookups.time_intervals.get_by_id(request.commitment_interval_id).name)
        if request.date_end is None:
            return interval
        days = time_interval_to_days(interval, request.commitment_interval_count)
        if request.date_start + timedelta(days=days - 1) > request.date_end:
            raise RequestValidationError(
                f"The opportunity's duration (Start Date to End Date) must be at least equal to its commitment "
                f"period ({commitment_description(request.commitment_interval_count, interval)})"
            )
        return interval

    def _assert_organization_active(self, organization_id: UUID) -> Organization:
        org = self._organizations.get_by_id(organization_id)
        if org.status != OrganizationStatus.ACTIVE:
            raise RequestValidationError(f"Organization '{org.name}' is not active")
        return org

    def _assert_title_available(self, title: str, exclude_id: Optional[UUID] = None) -> None:
        existing = self.get_by_title_or_none(title)
        if existing is not None and existing.id != exclude_id:
            raise RequestValidationError(f"Opportunity with the specified name '{title}' already exists")

    def _user_id(self, context: Optional[RequestContext]) -> Optional[UUID]:
        user = self._users.get_by_email_or_none(context.username) if context else None
        return user.id if user else None

    def _apply_request(self, opp: Opportunity, request: OpportunityRequestBase, interval: TimeIntervalOption) -> None:
        """Copy the scalar request fields and their lookup names onto the entity."""
        opp.title = request.title
        opp.description = request.description
        opp.type_id = request.type_id
        opp.type = self._lookups.types.get_by_id(request.type_id).name
        opp.summary = request.summary
        opp.instructions = request.instructions
        opp.url = request.url
        opp.zlto_reward = request.zlto_reward
        opp.yoma_reward = request.yoma_reward
        opp.zlto_reward_pool = request.zlto_reward_pool
        opp.yoma_reward_pool = request.yoma_reward_pool
        opp.verification_enabled = request.verification_enabled
        opp.verification_method = request.verification_method
        opp.difficulty_id = request.difficulty_id
        opp.difficulty = self._lookups.difficulties.get_by_id(request.difficulty_id).name
        opp.commitment_interval_id = request.commitment_interval_id
        opp.commitment_interval = interval
        opp.commitment_interval_count = request.commitment_interval_count
        opp.participant_limit = request.participant_limit
        opp.keywords = request.keywords
        opp.date_start = request.date_start
        opp.date_end = request.date_end
        opp.credential_issuance_enabled = request.credential_issuance_enabled
        opp.ssi_schema_name = request.ssi_schema_name
        opp.engagement_type_id = request.engagement_type_id
        opp.engagement_type = (
            self._lookups.engagement_types.get_by_id(request.engagement_type_id).name
            if request.engagement_type_id
            else None
        )
        opp.share_with_partners = request.share_with_partners
        opp.hidden = request.hidden

    def create(
        self,
        request: OpportunityRequestCreate,
        context: RequestContext,
        ensure_org_auth: bool = False,
    ) -> Opportunity:
        """
        Persist a new opportunity and its associations in one transaction. Status
        is Active or Inactive per post_as_active, or Expired when the end date has
        already passed.
        """
        if request is None:
            raise ValueError("request is required")
        request = self._normalize_request(request)
        self._request_validator.validate_and_raise(request)

        if ensure_org_auth:
            self._organizations.is_admin(request.organization_id, context, throw_unauthorized=True)

        self._assert_title_available(request.title)

        now = utcnow()
        status = Status.ACTIVE if request.post_as_active else Status.INACTIVE
        if request.date_end is not None and request.date_end <= now:
            if request.post_as_active:
                raise RequestValidationError("Opportunity has already ended and can not be posted as active")
            status = Status.EXPIRED

        org = self._assert_organization_active(request.organization_id)
        interval = self._assert_commitment_fits(request)
        user_id = self._user_id(context)

        opp = Opportunity(
            id=uuid.uuid4(),
            title=request.title,
            description=request.description,
            type_id=request.type_id,
            type="",
            organization_id=org.id,
            organization_name=org.name,
            organization_status_id=org.status_id,
            organization_status=org.status,
            difficulty_id=request.difficulty_id,
            difficulty="",
            commitment_interval_id=request.commitment_interval_id,
            commitment_interval=interval,
            commitment_interval_count=request.commitment_interval_count,
            status_id=self._status_id(status),
            status=status,
            date_start=request.date_start,
            external_id=request.external_id,
            date_created=now,
            created_by_user_id=user_id,
            date_modified=now,
            modified_by_user_id=user_id,
        )
        self._apply_request(opp, request, interval)

        with self._db.transaction(requires_new=True):
            self._store.insert(opp)
            self._assign(opp, "categories", self._lookups.categories, request.categories)
            self._assign(opp, "countries", self._lookups.countries, request.countries)
            self._assign(opp, "languages", self._lookups.languages, request.languages)
            if request.skills:
                self._assign(opp, "skills", self._lookups.skills, request.skills)
            if request.verification_types:
                self._assign_verification_types(opp, request.verification_types)

        logger.info("Created opportunity '%s' (%s) with status %s", opp.title, opp.id, status.value)
        result = self.get_by_id(opp.id)
        if result.status == Status.ACTIVE:
            self._send_email(result, EmailType.OPPORTUNITY_POSTED_ADMIN)
        return result

    def update(
        self,
        request: OpportunityRequestUpdate,
        context: RequestContext,
        ensure_org_auth: bool = False,
    ) -> Opportunity:
        """Update scalar fields and reconcile associations with the request."""
        if request is None:
            raise ValueError("request is required")
        request = self._normalize_request(request)
        self._request_validator.validate_and_raise(request)

        result = self.get_by_id(request.id, True, True, ensure_org_auth, context)
        if ensure_org_auth and request.organization_id != result.organization_id:
            self._organizations.is_admin(request.organization_id, context, throw_unauthorized=True)
        self._assert_updatable(result)
        self._assert_title_available(request.title, exclude_id=result.id)

        now = utcnow()
        if request.date_start != result.date_start and request.date_start < remove_time(now):
            raise RequestValidationError("The start date cannot be in the past. It can only remain unchanged if already in the past")

        org = self._assert_organization_active(request.organization_id)
        interval = self._assert_commitment_fits(request)

        for label, pool, cumulative in (
            ("Zlto", request.zlto_reward_pool, result.zlto_reward_cumulative),
            ("Yoma", request.yoma_reward_pool, result.yoma_reward_cumulative),
        ):
            if pool is not None and cumulative is not None and pool < cumulative:
                raise RequestValidationError(
                    f"The {label} reward pool cannot be less than the cumulative {label} rewards already allocated ({cumulative})"
                )

        self._apply_request(result, request, interval)
        result.organization_id = org.id
        result.organization_name = org.name
        result.organization_status_id = org.status_id
        result.organization_status = org.status
        if request.date_end is not None and request.date_end <= now:
            result.status = Status.EXPIRED
            result.status_id = self._status_id(Status.EXPIRED)
        result.modified_by_user_id = self._user_id(context)
        result.date_modified = now

        with self._db.transaction(requires_new=True):
            self._store.update(result)
            self._sync(result, "categories", self._lookups.categories, request.categories)
            self._sync(result, "countries", self._lookups.countries, request.countries)
            self._sync(result, "languages", self._lookups.languages, request.languages)
            self._sync(result, "skills", self._lookups.skills, request.skills or [])

            requested_types = {vt.type for vt in request.verification_types or []}
            stale = [vt.type for vt in result.verification_types or [] if vt.type not in requested_types]
            if stale:
                self._remove_verification_types(result, stale)
            if request.verification_types:
                self._assign_verification_types(result, request.verification_types)

        logger.info("Updated opportunity '%s' (%s)", result.title, result.id)
        return self.get_by_id(result.id)

    # status, flags and rewards

    def _assert_updatable(self, opp: Opportunity) -> None:
        if opp.status not in STATUSES_UPDATABLE:
            raise RequestValidationError(
                f"Opportunity can no longer be updated (current status '{opp.status.value}'). "
                f"Required state '{_join_names(STATUSES_UPDATABLE)}'"
            )

    def _persist_modification(self, opp: Opportunity, context: Optional[RequestContext]) -> None:
        opp.modified_by_user_id = self._user_id(context)
        opp.date_modified = utcnow()
        self._store.update(opp)

    def update_status(
        self,
        opportunity_id: UUID,
        status: Status,
        context: RequestContext,
        ensure_org_auth: bool = False,
    ) -> Opportunity:
        """
        Transition to Active, Inactive or Deleted. Each target has an allow-list of
        current statuses; requesting the current status is a no-op.
        """
        result = self.get_by_id(opportunity_id, True, True, ensure_org_auth, context)
        if result.status == status:
            return result

        if status == Status.ACTIVE:
            if result.status not in STATUSES_ACTIVATABLE:
                raise RequestValidationError(
                    f"Opportunity can not be activated (current status '{result.status.value}'). "
                    f"Required state '{_join_names(STATUSES_ACTIVATABLE)}'"
                )
            if result.date_end is not None and result.date_end <= utcnow():
                raise RequestValidationError(
                    "Opportunity has already ended and can not be activated. Please update the end date first"
                )
        elif status == Status.INACTIVE:
            if result.status not in STATUSES_DEACTIVATABLE:
                raise RequestValidationError(
                    f"Opportunity can not be deactivated (current status '{result.status.value}'). "
                    f"Required state '{_join_names(STATUSES_DEACTIVATABLE)}'"
                )
        elif status == Status.DELETED:
            if result.status not in STATUSES_DELETABLE:
                raise RequestValidationError(
                    f"Opportunity can not be deleted (current status '{result.status.value}'). "
                    f"Required state '{_join_names(STATUSES_DELETABLE)}'"
                )
        else:
            raise ValueError(f"Status '{status.value}' not supported")

        result.status = status
        result.status_id = self._status_id(status)
        with self._db.transaction(requires_new=True):
            self._persist_modification(result, context)
        set_published(result)
        logger.info("Opportunity %s status changed to %s", result.id, status.value)

        if status == Status.ACTIVE:
            self._send_email(result, EmailType.OPPORTUNITY_POSTED_ADMIN)
        return result

    def update_featured(self, opportunity_id: UUID, featured: bool, context: RequestContext) -> Opportunity:
        """Administrative action."""
        result = self.get_by_id(opportunity_id, True, True)
        self._assert_updatable(result)
        result.featured = featured
        with self._db.transaction(requires_new=True):
            self._persist_modification(result, context)
        return result

    def update_hidden(
        self,
        opportunity_id: UUID,
        hidden: bool,
        context: RequestContext,
        ensure_org_auth: bool = False,
    ) -> Opportunity:
        result = self.get_by_id(opportunity_id, True, True, ensure_org_auth, context)
        self._assert_updatable(result)
        if hidden and result.share_with_partners:
            raise RequestValidationError("An opportunity shared with partners cannot be flagged as hidden.")
        result.hidden = hidden
        with self._db.transaction(requires_new=True):
            self._persist_modification(result, context)
        return result

    def allocate_rewards(
        self,
        opportunity_id: UUID,
        ensure_org_auth: bool = False,
        context: Optional[RequestContext] = None,
    ) -> RewardAllocation:
        """
        Grant one participant's rewards, clamped by the organization pool and then
        the opportunity pool, and record the participant and cumulative totals.
        """
        opp = self.get_by_id(opportunity_id, False, True, ensure_org_auth, context)
        now = utcnow()

        can_complete = (opp.published and opp.date_start <= now) or opp.status == Status.EXPIRED
        if not can_complete:
            reasons: list[str] = []
            if not opp.published:
                reasons.append("it has not been published")
            if opp.status != Status.ACTIVE:
                reasons.append(f"its status is '{opp.status.value}'")
            if opp.date_start > now:
                reasons.append(f"it has not yet started (start date: {opp.date_start:%Y-%m-%d})")
            raise RequestValidationError(
                f"Opportunity '{opp.title}' rewards can no longer be allocated, because {', '.join(reasons)}. "
                "Please check these conditions and try again"
            )

        count = (opp.participant_count or 0) + 1
        if opp.participant_limit is not None and count > opp.participant_limit:
            raise RequestValidationError(
                f"The number of participants cannot exceed the limit. The current count is '{opp.participant_count or 0}', "
                f"and the limit is '{opp.participant_limit}'. Please edit the opportunity to increase or remove the limit, "
                "or reject the verification request"
            )

        org = self._organizations.get_by_id(opp.organization_id)
        result = RewardAllocation(zlto_reward=opp.zlto_reward, yoma_reward=opp.yoma_reward)

        result.zlto_reward, result.zlto_reward_reduced, result.zlto_reward_pool_depleted = allocate_reward(
            result.zlto_reward, org.zlto_reward_pool, org.zlto_reward_cumulative
        )
        result.zlto_reward, result.zlto_reward_reduced, result.zlto_reward_pool_depleted = allocate_reward(
            result.zlto_reward,
            opp.zlto_reward_pool,
            opp.zlto_reward_cumulative,
            result.zlto_reward_reduced,
            result.zlto_reward_pool_depleted,
        )
        result.yoma_reward, result.yoma_reward_reduced, result.yoma_reward_pool_depleted = allocate_reward(
            result.yoma_reward, org.yoma_reward_pool, org.yoma_reward_cumulative
        )
        result.yoma_reward, result.yoma_reward_reduced, result.yoma_reward_pool_depleted = allocate_reward(
            result.yoma_reward,
            opp.yoma_reward_pool,
            opp.yoma_reward_cumulative,
            result.yoma_reward_reduced,
            result.yoma_reward_pool_depleted,
        )

        with self._db.transaction(requires_new=True):
            opp.participant_count = count
            self._organizations.allocate_rewards(org, result.zlto_reward, result.yoma_reward)
            if result.zlto_reward is not None:
                opp.zlto_reward_cumulative = (opp.zlto_reward_cumulative or Decimal(0)) + result.zlto_reward
            if result.yoma_reward is not None:
                opp.yoma_reward_cumulative = (opp.yoma_reward_cumulative or Decimal(0)) + result.yoma_reward
            self._persist_modification(opp, context)

        set_balances(opp)
        logger.info(
            "Allocated rewards for opportunity %s: zlto=%s yoma=%s",
            opp.id,
            result.zlto_reward,
            result.yoma_reward,
        )
        return result

    # associations

    def _assign(self, opp: Opportunity, association: str, service: LookupService, ids: list[UUID]) -> None:
        """Insert join rows for ids not yet associated. Joins the enclosing transaction."""
        if not ids:
            raise ValueError(f"{association} are required")
        collection: list[LookupItem] = list(getattr(opp, association) or [])
        with self._db.transaction():
            for item_id in dict.fromkeys(ids):
                item = service.get_by_id(item_id)
                if self._store.has_association(association, opp.id, item.id):
                    continue
                self._store.add_association(association, opp.id, item.id)
                collection.append(item)
        setattr(opp, association, collection)

    def _remove(self, opp: Opportunity, association: str, service: LookupService, ids: list[UUID]) -> None:
        if not ids:
            raise ValueError(f"{association} are required")
        removed: set[UUID] = set()
        with self._db.transaction():
            for item_id in dict.fromkeys(ids):
                item = service.get_by_id(item_id)
                if self._store.remove_association(association, opp.id, item.id):
                    removed.add(item.id)
        setattr(opp, association, [i for i in getattr(opp, association) or [] if i.id not in removed])

    def _sync(self, opp: Opportunity, association: str, service: LookupService, ids: list[UUID]) -> None:
        """Remove associations missing from ids, then assign ids."""
        wanted = set(ids)
        stale = [i.id for i in getattr(opp, association) or [] if i.id not in wanted]
        if stale:
            self._remove(opp, association, service, stale)
        if ids:
            self._assign(opp, association, service, ids)

    def _assign_verification_types(
        self, opp: Opportunity, requests: list[OpportunityVerificationTypeRequest]
    ) -> None:
        """Add verification types, or update the description override of ones already linked."""
        if not requests:
            raise ValueError("verification types are required")
        collection = list(opp.verification_types or [])
        with self._db.transaction():
            for req in {r.type: r for r in requests}.values():
                item = self._lookups.verification_types.get_by_name(req.type.value)
                description = (req.description or "").strip() or None
                existing = next((vt for vt in collection if vt.id == item.id), None)
                if existing is not None or self._store.has_association("verification_types", opp.id, item.id):
                    self._store.update_verification_type_description(opp.id, item.id, description)
                    if existing is not None:
                        existing.description = description or item.data.get("description")
                    continue
                self._store.add_association("verification_types", opp.id, item.id, description)
                collection.append(
                    OpportunityVerificationTypeItem(
                        id=item.id,
                        type=req.type,
                        display_name=item.data.get("display_name", item.name),
                        description=description or item.data.get("description"),
                    )
                )
        opp.verification_types = collection

    def _remove_verification_types(self, opp: Opportunity, types: list[VerificationType]) -> None:
        if not types:
            raise ValueError("verification types are required")
        removed: set[UUID] = set()
        with self._db.transaction():
            for vt in dict.fromkeys(types):
                item = self._lookups.verification_types.get_by_name(vt.value)
                if self._store.remove_association("verification_types", opp.id, item.id):
                    removed.add(item.id)
        opp.verification_types = [vt for vt in opp.verification_types or [] if vt.id not in removed]

    def _change_associations(
        self,
        opportunity_id: UUID,
        values: list,
        context: RequestContext,
        ensure_org_auth: bool,
        change: Callable[[Opportunity, list], None],
    ) -> Opportunity:
        if not values:
            raise ValueError("One or more values are required")
        result = self.get_by_id(opportunity_id, True, True, ensure_org_auth, context)
        self._assert_updatable(result)
        with self._db.transaction(requires_new=True):
            change(result, values)
            self._persist_modification(result, context)
        return result

    def assign_categories(
        self, opportunity_id: UUID, category_ids: list[UUID], context: RequestContext, ensure_org_auth: bool = False
    ) -> Opportunity:
        return self._change_associations(
            opportunity_id,
            category_ids,
            context,
            ensure_org_auth,
            lambda opp, ids: self._assign(opp, "categories", self._lookups.categories, ids),
        )

    def remove_categories(
        self, opportunity_id: UUID, category_ids: list[UUID], context: RequestContext, ensure_org_auth: bool = False
    ) -> Opportunity:
        return self._change_associations(
            opportunity_id,
            category_ids,
            context,
            ensure_org_auth,
            lambda opp, ids: self._remove(opp, "categories", self._lookups.categories, ids),
        )

    def assign_countries(
        self, opportunity_id: UUID, country_ids: list[UUID], context: RequestContext, ensure_org_auth: bool = False
    ) -> Opportunity:
        return self._change_associations(
            opportunity_id,
            country_ids,
            context,
            ensure_org_auth,
            lambda opp, ids: self._assign(opp, "countries", self._lookups.countries, ids),
        )

    def remove_countries(
        self, opportunity_id: UUID, country_ids: list[UUID], context: RequestContext, ensure_org_auth: bool = False
    ) -> Opportunity:
        return self._change_associations(
            opportunity_id,
            country_ids,
            context,
            ensure_org_auth,
            lambda opp, ids: self._remove(opp, "countries", self._lookups.countries, ids),
        )

    def assign_languages(
        self, opportunity_id: UUID, language_ids: list[UUID], context: RequestContext, ensure_org_auth: bool = False
    ) -> Opportunity:
        return self._change_associations(
            opportunity_id,
            language_ids,
            context,
            ensure_org_auth,
            lambda opp, ids: self._assign(opp, "languages", self._lookups.languages, ids),
        )

    def remove_languages(
        self, opportunity_id: UUID, language_ids: list[UUID], context: RequestContext, ensure_org_auth: bool = False
    ) -> Opportunity:
        return self._change_associations(
            opportunity_id,
            language_ids,
            context,
            ensure_org_auth,
            lambda opp, ids: self._remove(opp, "languages", self._lookups.languages, ids),
        )

    def assign_skills(
        self, opportunity_id: UUID, skill_ids: list[UUID], context: RequestContext, ensure_org_auth: bool = False
    ) -> Opportunity:
        return self._change_associations(
            opportunity_id,
            skill_ids,
            context,
            ensure_org_auth,
            lambda opp, ids: self._assign(opp, "skills", self._lookups.skills, ids),
        )

    def remove_skills(
        self, opportunity_id: UUID, skill_ids: list[UUID], context: RequestContext, ensure_org_auth: bool = False
    ) -> Opportunity:
        return self._change_associations(
            opportunity_id,
            skill_ids,
            context,
            ensure_org_auth,
            lambda opp, ids: self._remove(opp, "skills", self._lookups.skills, ids),
        )

    def assign_verification_types(
        self,
        opportunity_id: UUID,
        verification_types: list[OpportunityVerificationTypeRequest],
        context: RequestContext,
        ensure_org_auth: bool = False,
    ) -> Opportunity:
        return self._change_associations(
            opportunity_id,
            verification_types,
            context,
            ensure_org_auth,
            self._assign_verification_types,
        )

    def remove_verification_types(
        self,
        opportunity_id: UUID,
        verification_types: list[VerificationType],
        context: RequestContext,
        ensure_org_auth: bool = False,
    ) -> Opportunity:
        def change(opp: Opportunity, types: list[VerificationType]) -> None:
            if opp.verification_enabled:
                remaining = [vt for vt in opp.verification_types or [] if vt.type not in types]
                if not remaining:
                    raise RequestValidationError(
                        "One or more verification types are required when verification is supported. "
                        "Removal will result in no associated verification types"
                    )
            self._remove_verification_types(opp, types)

        return self._change_associations(opportunity_id, verification_types, context, ensure_org_auth, change)

    # email

    def _send_email(self, opp: Opportunity, email_type: EmailType) -> None:
        """Notify platform admins. Failures are logged, never raised."""
        try:
            if email_type != EmailType.OPPORTUNITY_POSTED_ADMIN:
                raise ValueError(f"Email type '{email_type.value}' not supported")
            recipients = [
                EmailRecipient(email=u.email, display_name=u.display_name) for u in self._users.list_platform_admins()
            ]
            if not recipients:
                return
            data = EmailOpportunityAnnounced(
                opportunities=[
                    EmailOpportunityItem(
                        title=opp.title,
                        date_start=opp.date_start,
                        date_end=opp.date_end,
                        url=self._email_urls.opportunity_item_url(email_type, opp.id, opp.organization_id),
                        zlto_reward=opp.zlto_reward,
                        yoma_reward=opp.yoma_reward,
                    )
                ]
            )
            self._email.send(email_type, recipients, data)
            logger.info("Sent '%s' email for opportunity %s", email_type.value, opp.id)
        except Exception:
            logger.exception("Failed to send '%s' email for opportunity %s", email_type.value, opp.id)


__all__ = [
    "OpportunityService",
    "parse_commitment_interval_options",
    "parse_zlto_reward_ranges",
]
