"""Unit tests for request and search filter validation rules."""

import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from yoma_opportunity.app import Services
from yoma_opportunity.errors import RequestValidationError
from yoma_opportunity.models.lookup import OrganizationStatus, VerificationMethod
from yoma_opportunity.models.search import OpportunitySearchFilterAdmin
from yoma_opportunity.validation import (
    OPPORTUNITY_REQUEST_RULES,
    SEARCH_FILTER_RULES,
    RequestValidator,
    ValidationContext,
)
from yoma_opportunity.validation.rules import (
    apply_keywords_rule,
    apply_reward_rule,
    apply_verification_rule,
)


@pytest.fixture
def context(services: Services) -> ValidationContext:
    return ValidationContext(lookups=services.lookups, organizations=services.organizations)


@pytest.fixture
def request_validator(context: ValidationContext) -> RequestValidator:
    return RequestValidator(context, OPPORTUNITY_REQUEST_RULES)


@pytest.fixture
def search_validator(context: ValidationContext) -> RequestValidator:
    return RequestValidator(context, SEARCH_FILTER_RULES)


class TestRequestValidator:
    """Tests for the aggregated create/update rules."""

    def test_valid_request_passes(self, request_validator: RequestValidator, make_request) -> None:
        result = request_validator.validate(make_request())
        assert result.valid is True
        assert result.errors == []

    def test_errors_from_all_rules_are_collected(self, request_validator: RequestValidator, make_request) -> None:
        result = request_validator.validate(make_request(title=" ", summary=None, categories=[]))
        assert result.valid is False
        assert "'Title' is required and must be between 1 and 150 characters long." in result.errors
        assert "'Summary' is required and must be between 1 and 150 characters." in result.errors
        assert "Categories are required and must exist." in result.errors

    def test_validate_and_raise(self, request_validator: RequestValidator, make_request) -> None:
        now = datetime.now(timezone.utc)
        with pytest.raises(RequestValidationError) as exc:
            request_validator.validate_and_raise(make_request(date_start=now, date_end=now - timedelta(days=2)))
        assert exc.value.errors == ["'Date End' is earlier than the Start Date."]

    def test_inactive_organization_rejected(self, request_validator: RequestValidator, make_request, services, seeded) -> None:
        services.organization_store.update_status(
            seeded.organization.id, services.lookups.organization_statuses.id_of(OrganizationStatus.INACTIVE)
        )
        result = request_validator.validate(make_request())
        assert "The selected organization is either invalid or inactive." in result.errors

    def test_hidden_and_shared_conflict(self, request_validator: RequestValidator, make_request) -> None:
        result = request_validator.validate(make_request(hidden=True, share_with_partners=True))
        assert "An opportunity shared with partners cannot be flagged as hidden." in result.errors


class TestIndividualRules:
    """Tests for single rules."""

    def test_zlto_reward_must_be_whole(self, context: ValidationContext, make_request) -> None:
        errors = apply_reward_rule(make_request(zlto_reward=Decimal("10.5")), context)
        assert errors == ["'Zlto Reward' does not support decimal points."]

    def test_pool_must_cover_reward(self, context: ValidationContext, make_request) -> None:
        errors = apply_reward_rule(make_request(zlto_reward=Decimal(100), zlto_reward_pool=Decimal(50)), context)
        assert "'Zlto Reward Pool' must be greater than or equal to ZltoReward." in errors

    def test_participant_limit_requires_verification(self, context: ValidationContext, make_request) -> None:
        errors = apply_verification_rule(make_request(participant_limit=10), context)
        assert errors == [
            "'Participant Limit' is not supported when verification is not enabled. Please remove the specified value."
        ]

    def test_manual_verification_requires_types(self, context: ValidationContext, make_request) -> None:
        errors = apply_verification_rule(
            make_request(
                verification_enabled=True,
                verification_method=VerificationMethod.MANUAL,
                credential_issuance_enabled=True,
                ssi_schema_name="Opportunity|Default",
            ),
            context,
        )
        assert errors == ["With manual verification, one or more verification types are required."]

    def test_keywords_reject_separator(self, context: ValidationContext, make_request) -> None:
        errors = apply_keywords_rule(make_request(keywords=["a,b"]), context)
        assert errors == ["'Keywords' contains empty value(s) or keywords with ',' character."]


class TestSearchFilterRules:
    """Tests for search filter validation."""

    def test_include_expired_requires_published(self, search_validator: RequestValidator) -> None:
        result = search_validator.validate(OpportunitySearchFilterAdmin(include_expired=True, published=False))
        assert result.errors == ["'Include Expired' is only supported when filtering on published opportunities."]

    def test_pagination_requires_both_values(self, search_validator: RequestValidator) -> None:
        result = search_validator.validate(OpportunitySearchFilterAdmin(page_number=1))
        assert result.errors == ["Pagination requires both 'Page Number' and 'Page Size'."]

    def test_unknown_category_rejected(self, search_validator: RequestValidator) -> None:
        result = search_validator.validate(OpportunitySearchFilterAdmin(categories=[uuid.uuid4()]))
        assert result.errors == ["Specified category(ies) are invalid / do not exist."]

    def test_end_date_before_start_date(self, search_validator: RequestValidator) -> None:
        now = datetime.now(timezone.utc)
        result = search_validator.validate(
            OpportunitySearchFilterAdmin(start_date=now, end_date=now - timedelta(days=1))
        )
        assert result.errors == ["'End Date' is earlier than the Start Date."]
