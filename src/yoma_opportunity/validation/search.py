"""Search filter rules."""

from yoma_opportunity.models.search import OpportunitySearchFilterAdmin
from yoma_opportunity.services.lookups import LookupService
from yoma_opportunity.validation.engine import ValidationContext


def _missing(service: LookupService, ids) -> bool:
    return any(service.get_by_id_or_none(i) is None for i in ids or [])


def apply_pagination_rule(flt: OpportunitySearchFilterAdmin, ctx: ValidationContext) -> list[str]:
    errors: list[str] = []
    if (flt.page_number is None) != (flt.page_size is None):
        errors.append("Pagination requires both 'Page Number' and 'Page Size'.")
    if flt.page_number is not None and flt.page_number <= 0:
        errors.append("'Page Number' must be greater than 0.")
    if flt.page_size is not None and flt.page_size <= 0:
        errors.append("'Page Size' must be greater than 0.")
    return errors


def apply_lookup_filters_rule(flt: OpportunitySearchFilterAdmin, ctx: ValidationContext) -> list[str]:
    errors: list[str] = []
    if _missing(ctx.lookups.types, flt.types):
        errors.append("Specified type(s) are invalid / do not exist.")
    if _missing(ctx.lookups.categories, flt.categories):
        errors.append("Specified category(ies) are invalid / do not exist.")
    if _missing(ctx.lookups.languages, flt.languages):
        errors.append("Specified language(s) are invalid / do not exist.")
    if _missing(ctx.lookups.countries, flt.countries):
        errors.append("Specified country(ies) are invalid / do not exist.")
    if _missing(ctx.lookups.engagement_types, flt.engagement_types):
        errors.append("Specified engagement type(s) are invalid / do not exist.")
    return errors


def apply_date_range_rule(flt: OpportunitySearchFilterAdmin, ctx: ValidationContext) -> list[str]:
    if flt.start_date is not None and flt.end_date is not None and flt.end_date < flt.start_date:
        return ["'End Date' is earlier than the Start Date."]
    return []


def apply_published_flags_rule(flt: OpportunitySearchFilterAdmin, ctx: ValidationContext) -> list[str]:
    if flt.include_expired and not flt.published:
        return ["'Include Expired' is only supported when filtering on published opportunities."]
    return []


SEARCH_FILTER_RULES = [
    apply_pagination_rule,
    apply_lookup_filters_rule,
    apply_date_range_rule,
    apply_published_flags_rule,
]
