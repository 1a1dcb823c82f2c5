"""Opportunity create/update rules: each returns the list of messages it raises."""

from decimal import Decimal
from typing import Optional
from urllib.parse import urlparse
from uuid import UUID

from yoma_opportunity.models.lookup import OrganizationStatus, VerificationMethod
from yoma_opportunity.models.requests import OpportunityRequestBase
from yoma_opportunity.services.lookups import LookupService
from yoma_opportunity.validation.engine import ValidationContext

KEYWORDS_SEPARATOR = ","
KEYWORDS_COMBINED_MAX_LENGTH = 500
REWARD_MAX = Decimal(2000)
REWARD_POOL_MAX = Decimal(10_000_000)
URL_MAX_LENGTH = 2048


def _exists(service: LookupService, item_id: Optional[UUID]) -> bool:
    return item_id is not None and item_id.int != 0 and service.get_by_id_or_none(item_id) is not None


def _all_exist(service: LookupService, ids: Optional[list[UUID]]) -> bool:
    return bool(ids) and all(_exists(service, i) for i in ids)


def _length_between(value: Optional[str], low: int, high: int) -> bool:
    value = (value or "").strip()
    return low <= len(value) <= high


def apply_title_rule(request: OpportunityRequestBase, ctx: ValidationContext) -> list[str]:
    if not _length_between(request.title, 1, 150):
        return ["'Title' is required and must be between 1 and 150 characters long."]
    return []


def apply_description_rule(request: OpportunityRequestBase, ctx: ValidationContext) -> list[str]:
    if not (request.description or "").strip():
        return ["'Description' is required."]
    return []


def apply_summary_rule(request: OpportunityRequestBase, ctx: ValidationContext) -> list[str]:
    if not _length_between(request.summary, 1, 150):
        return ["'Summary' is required and must be between 1 and 150 characters."]
    return []


def apply_url_rule(request: OpportunityRequestBase, ctx: ValidationContext) -> list[str]:
    if not request.url:
        return []
    parsed = urlparse(request.url)
    if len(request.url) > URL_MAX_LENGTH or not parsed.scheme or not parsed.netloc or " " in request.url.strip():
        return ["'URL' must be between 1 and 2048 characters long and be a valid URL if specified."]
    return []


def apply_lookup_references_rule(request: OpportunityRequestBase, ctx: ValidationContext) -> list[str]:
    """Type, difficulty, commitment interval and engagement type must exist."""
    errors: list[str] = []
    if not _exists(ctx.lookups.types, request.type_id):
        errors.append("Specified type is invalid / does not exist.")
    if not _exists(ctx.lookups.difficulties, request.difficulty_id):
        errors.append("Specified difficulty is invalid / does not exist.")
    if not _exists(ctx.lookups.time_intervals, request.commitment_interval_id):
        errors.append("Specified time interval is invalid / does not exist.")
    if request.commitment_interval_count <= 0:
        errors.append("'Commitment Interval Count' must be greater than 0.")
    if request.engagement_type_id is not None and not _exists(ctx.lookups.engagement_types, request.engagement_type_id):
        errors.append("Specified engagement type is invalid / does not exist.")
    return errors


def apply_organization_rule(request: OpportunityRequestBase, ctx: ValidationContext) -> list[str]:
    org = ctx.organizations.get_by_id_or_none(request.organization_id)
    if org is None or org.status != OrganizationStatus.ACTIVE:
        return ["The selected organization is either invalid or inactive."]
    return []


def apply_reward_rule(request: OpportunityRequestBase, ctx: ValidationContext) -> list[str]:
    """Rewards are bounded; Zlto amounts are whole numbers; a pool covers at least one reward."""
    errors: list[str] = []
    zlto, yoma = request.zlto_reward, request.yoma_reward
    if zlto is not None:
        if zlto <= 0:
            errors.append("'Zlto Reward' must be greater than 0.")
        if zlto > REWARD_MAX:
            errors.append("'Zlto Reward' must be less than or equal to 2000.")
        if zlto % 1 != 0:
            errors.append("'Zlto Reward' does not support decimal points.")
    if yoma is not None:
        if yoma <= 0:
            errors.append("'Yoma Reward' must be greater than 0.")
        if yoma > REWARD_MAX:
            errors.append("'Yoma Reward' must be less than or equal to 2000.")

    zlto_pool, yoma_pool = request.zlto_reward_pool, request.yoma_reward_pool
    if zlto_pool is not None:
        if zlto_pool <= 0:
            errors.append("'Zlto Reward Pool' must be greater than 0.")
        if zlto is None or zlto_pool < zlto:
            errors.append("'Zlto Reward Pool' must be greater than or equal to ZltoReward.")
        if zlto_pool > REWARD_POOL_MAX:
            errors.append("'Zlto Reward Pool' must not exceed 10 million.")
        if zlto_pool % 1 != 0:
            errors.append("'Zlto Reward Pool' does not support decimal points.")
    if yoma_pool is not None:
        if yoma_pool <= 0:
            errors.append("'Yoma Reward Pool' must be greater than 0.")
        if yoma is None or yoma_pool < yoma:
            errors.append("'Yoma Reward Pool' must be greater than or equal to YomaReward.")
        if yoma_pool > REWARD_POOL_MAX:
            errors.append("'Yoma Reward Pool' must not exceed 10 million.")
    return errors


def apply_verification_rule(request: OpportunityRequestBase, ctx: ValidationContext) -> list[str]:
    """Verification method, participant limit, credential issuance and verification types."""
    errors: list[str] = []
    if request.verification_enabled and request.verification_method is None:
        errors.append("A verification method is required when verification is enabled.")
    if request.participant_limit is not None:
        if not request.verification_enabled:
            errors.append(
                "'Participant Limit' is not supported when verification is not enabled. Please remove the specified value."
            )
        if request.participant_limit <= 0:
            errors.append("'Participant Limit' must be greater than 0.")
    if request.credential_issuance_enabled and not request.verification_enabled:
        errors.append("Credential issuance cannot be enabled when verification is disabled.")
    if request.verification_enabled and not request.credential_issuance_enabled:
        errors.append("Credential issuance is required when verification is enabled.")
    if request.credential_issuance_enabled and not (request.ssi_schema_name or "").strip():
        errors.append("SSI schema name is required when credential issuance is enabled.")
    if request.verification_method == VerificationMethod.MANUAL and not request.verification_types:
        errors.append("With manual verification, one or more verification types are required.")
    for vt in request.verification_types or []:
        if ctx.lookups.verification_types.get_by_name_or_none(vt.type.value) is None:
            errors.append("Verification types must exist if specified.")
            break
    return errors


def apply_keywords_rule(request: OpportunityRequestBase, ctx: ValidationContext) -> list[str]:
    if request.keywords is None:
        return []
    errors: list[str] = []
    if any(not k.strip() or KEYWORDS_SEPARATOR in k for k in request.keywords):
        errors.append("'Keywords' contains empty value(s) or keywords with ',' character.")
    combined = len(KEYWORDS_SEPARATOR.join(request.keywords))
    if not 1 <= combined <= KEYWORDS_COMBINED_MAX_LENGTH:
        errors.append("The combined length of keywords must be between 1 and 500 characters.")
    return errors


def apply_dates_rule(request: OpportunityRequestBase, ctx: ValidationContext) -> list[str]:
    # start may be backdated; the services reject a past start only when it changes
    if request.date_end is not None and request.date_end < request.date_start:
        return ["'Date End' is earlier than the Start Date."]
    return []


def apply_associations_rule(request: OpportunityRequestBase, ctx: ValidationContext) -> list[str]:
    errors: list[str] = []
    if not _all_exist(ctx.lookups.categories, request.categories):
        errors.append("Categories are required and must exist.")
    if not _all_exist(ctx.lookups.countries, request.countries):
        errors.append("Countries are required and must exist.")
    if not _all_exist(ctx.lookups.languages, request.languages):
        errors.append("Languages are required and must exist.")
    if request.skills and not _all_exist(ctx.lookups.skills, request.skills):
        errors.append("Skills are optional, but must exist if specified.")
    return errors


def apply_visibility_rule(request: OpportunityRequestBase, ctx: ValidationContext) -> list[str]:
    if request.hidden and request.share_with_partners:
        return ["An opportunity shared with partners cannot be flagged as hidden."]
    return []


OPPORTUNITY_REQUEST_RULES = [
    apply_title_rule,
    apply_description_rule,
    apply_lookup_references_rule,
    apply_organization_rule,
    apply_summary_rule,
    apply_url_rule,
    apply_reward_rule,
    apply_verification_rule,
    apply_keywords_rule,
    apply_dates_rule,
    apply_associations_rule,
    apply_visibility_rule,
]
