"""Tests for OpportunityService create, update and reads."""

import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import patch

import pytest

from yoma_opportunity.app import Services
from yoma_opportunity.email.models import EmailType
from yoma_opportunity.errors import AuthorizationError, EntityNotFoundError, RequestValidationError
from yoma_opportunity.models.lookup import Status, TimeIntervalOption, VerificationType
from yoma_opportunity.models.requests import (
    OpportunityRequestCreate,
    OpportunityRequestUpdate,
    OpportunityVerificationTypeRequest,
)


def _to_update(request: OpportunityRequestCreate, opportunity_id: uuid.UUID, **kwargs) -> OpportunityRequestUpdate:
    data = request.model_dump(exclude={"post_as_active", "external_id"})
    data.update(kwargs)
    return OpportunityRequestUpdate(id=opportunity_id, **data)


class TestCreate:
    """Tests for OpportunityService.create."""

    def test_create_active_persists_and_notifies_admins(self, services: Services, seeded, make_request, email_client) -> None:
        """Posted as active: published, associations stored, platform admins emailed."""
        opp = services.opportunities.create(make_request(title="Intro to Python"), seeded.admin_context)

        assert opp.status == Status.ACTIVE
        assert opp.published is True
        assert opp.title == "Intro to Python"
        assert [c.id for c in opp.categories] == [seeded.categories["Technology"]]
        assert [c.id for c in opp.countries] == [seeded.countries["South Africa"]]
        assert [c.id for c in opp.languages] == [seeded.languages["English"]]
        assert opp.commitment_interval_description == "1 Day"
        assert opp.created_by_user_id == seeded.platform_admin.id

        sent = email_client.of_type(EmailType.OPPORTUNITY_POSTED_ADMIN)
        assert len(sent) == 1
        _, recipients, data = sent[0]
        assert [r.email for r in recipients] == ["admin@yoma.test"]
        assert data.opportunities[0].title == "Intro to Python"
        assert data.opportunities[0].url.endswith("?returnUrl=%2Fadmin%2Fopportunities")

    def test_create_inactive_does_not_notify(self, services: Services, seeded, make_request, email_client) -> None:
        opp = services.opportunities.create(make_request(post_as_active=False), seeded.admin_context)
        assert opp.status == Status.INACTIVE
        assert opp.published is False
        assert email_client.sent == []

    def test_create_normalizes_dates_and_url(self, services: Services, seeded, make_request) -> None:
        opp = services.opportunities.create(make_request(url="yoma.world/learn"), seeded.admin_context)
        assert opp.url == "https://yoma.world/learn"
        assert (opp.date_start.hour, opp.date_start.minute) == (0, 0)
        assert (opp.date_end.hour, opp.date_end.minute) == (23, 59)

    def test_create_already_ended_as_active_rejected(self, services: Services, seeded, make_request) -> None:
        now = datetime.now(timezone.utc)
        request = make_request(date_start=now - timedelta(days=5), date_end=now - timedelta(days=1))
        with pytest.raises(RequestValidationError) as exc:
            services.opportunities.create(request, seeded.admin_context)
        assert "Opportunity has already ended and can not be posted as active" in str(exc.value)

    def test_create_already_ended_as_inactive_is_expired(self, services: Services, seeded, make_request) -> None:
        now = datetime.now(timezone.utc)
        request = make_request(
            date_start=now - timedelta(days=5), date_end=now - timedelta(days=1), post_as_active=False
        )
        opp = services.opportunities.create(request, seeded.admin_context)
        assert opp.status == Status.EXPIRED

    def test_create_duplicate_title_rejected(self, services: Services, seeded, make_request) -> None:
        services.opportunities.create(make_request(title="Beach Clean-up"), seeded.admin_context)
        with pytest.raises(RequestValidationError) as exc:
            services.opportunities.create(make_request(title="beach clean-up"), seeded.admin_context)
        assert "Opportunity with the specified name 'beach clean-up' already exists" in str(exc.value)

    def test_create_for_foreign_organization_unauthorized(self, services: Services, seeded, make_request) -> None:
        with pytest.raises(AuthorizationError):
            services.opportunities.create(make_request(), seeded.other_org_admin_context, ensure_org_auth=True)

    def test_create_by_organization_admin(self, services: Services, seeded, make_request) -> None:
        opp = services.opportunities.create(make_request(), seeded.org_admin_context, ensure_org_auth=True)
        assert opp.organization_id == seeded.organization.id
        assert opp.created_by_user_id == seeded.org_admin.id

    def test_commitment_longer_than_duration_rejected(self, services: Services, seeded, make_request) -> None:
        now = datetime.now(timezone.utc)
        request = make_request(
            commitment_interval_id=seeded.week_id,
            commitment_interval_count=2,
            date_start=now,
            date_end=now + timedelta(days=3),
        )
        with pytest.raises(RequestValidationError) as exc:
            services.opportunities.create(request, seeded.admin_context)
        assert "commitment period (2 Weeks)" in str(exc.value)

    def test_create_rolls_back_when_association_fails(self, services: Services, seeded, make_request) -> None:
        """A failure after the insert leaves no opportunity behind."""
        request = make_request(title="Rolled back")
        with patch.object(
            services.opportunities, "_assign_verification_types", side_effect=RuntimeError("boom")
        ):
            with pytest.raises(RuntimeError):
                services.opportunities.create(
                    request.model_copy(
                        update={"verification_types": [OpportunityVerificationTypeRequest(type=VerificationType.PICTURE)]}
                    ),
                    seeded.admin_context,
                )
        assert services.opportunities.get_by_title_or_none("Rolled back") is None

    def test_email_failure_does_not_fail_create(self, services: Services, seeded, make_request, email_client) -> None:
        with patch.object(email_client, "send", side_effect=RuntimeError("provider down")):
            opp = services.opportunities.create(make_request(), seeded.admin_context)
        assert opp.status == Status.ACTIVE


class TestUpdate:
    """Tests for OpportunityService.update."""

    def test_update_replaces_fields_and_associations(self, services: Services, seeded, make_request) -> None:
        request = make_request()
        opp = services.opportunities.create(request, seeded.admin_context)

        updated = services.opportunities.update(
            _to_update(
                request,
                opp.id,
                title="Advanced Python",
                categories=[seeded.categories["Agriculture"], seeded.categories["Environment"]],
                skills=[seeded.skills["Python Programming"]],
                zlto_reward=Decimal(150),
            ),
            seeded.admin_context,
        )

        assert updated.title == "Advanced Python"
        assert updated.zlto_reward == Decimal(150)
        assert {c.name for c in updated.categories} == {"Agriculture", "Environment"}
        assert [s.name for s in updated.skills] == ["Python Programming"]
        assert updated.modified_by_user_id == seeded.platform_admin.id

    def test_update_expired_rejected(self, services: Services, seeded, make_request) -> None:
        now = datetime.now(timezone.utc)
        request = make_request(date_start=now - timedelta(days=5), date_end=now - timedelta(days=1), post_as_active=False)
        opp = services.opportunities.create(request, seeded.admin_context)
        with pytest.raises(RequestValidationError) as exc:
            services.opportunities.update(_to_update(request, opp.id), seeded.admin_context)
        assert "can no longer be updated (current status 'Expired')" in str(exc.value)

    def test_update_start_moved_into_past_rejected(self, services: Services, seeded, make_request) -> None:
        request = make_request()
        opp = services.opportunities.create(request, seeded.admin_context)
        past = datetime.now(timezone.utc) - timedelta(days=3)
        with pytest.raises(RequestValidationError) as exc:
            services.opportunities.update(_to_update(request, opp.id, date_start=past), seeded.admin_context)
        assert "The start date cannot be in the past" in str(exc.value)

    def test_update_keeps_past_start_when_unchanged(self, services: Services, seeded, make_request) -> None:
        request = make_request()
        opp = services.opportunities.create(request, seeded.admin_context)
        updated = services.opportunities.update(_to_update(request, opp.id, summary="New summary"), seeded.admin_context)
        assert updated.summary == "New summary"
        assert updated.date_start == opp.date_start

    def test_update_with_past_end_date_expires(self, services: Services, seeded, make_request) -> None:
        now = datetime.now(timezone.utc)
        request = make_request(date_start=now - timedelta(days=5))
        opp = services.opportunities.create(request, seeded.admin_context)
        updated = services.opportunities.update(
            _to_update(request, opp.id, date_end=now - timedelta(days=1)), seeded.admin_context
        )
        assert updated.status == Status.EXPIRED

    def test_update_title_taken_by_another(self, services: Services, seeded, make_request) -> None:
        services.opportunities.create(make_request(title="Taken"), seeded.admin_context)
        request = make_request()
        opp = services.opportunities.create(request, seeded.admin_context)
        with pytest.raises(RequestValidationError):
            services.opportunities.update(_to_update(request, opp.id, title="TAKEN"), seeded.admin_context)

    def test_update_by_foreign_admin_unauthorized(self, services: Services, seeded, make_request) -> None:
        request = make_request()
        opp = services.opportunities.create(request, seeded.admin_context)
        with pytest.raises(AuthorizationError):
            services.opportunities.update(
                _to_update(request, opp.id), seeded.other_org_admin_context, ensure_org_auth=True
            )


class TestReads:
    """Tests for get_by_id / get_by_title_or_none."""

    def test_get_by_id_missing_raises(self, services: Services, seeded) -> None:
        with pytest.raises(EntityNotFoundError):
            services.opportunities.get_by_id(uuid.uuid4())

    def test_get_by_id_requires_id(self, services: Services) -> None:
        with pytest.raises(ValueError):
            services.opportunities.get_by_id(uuid.UUID(int=0))

    def test_get_by_id_computes_balances(self, services: Services, seeded, make_request) -> None:
        opp = services.opportunities.create(make_request(zlto_reward_pool=Decimal(500)), seeded.admin_context)
        loaded = services.opportunities.get_by_id(opp.id)
        assert loaded.zlto_reward_balance == Decimal(500)
        assert loaded.organization_zlto_reward_balance == Decimal(1000)

    def test_get_by_title_or_none_requires_title(self, services: Services) -> None:
        with pytest.raises(ValueError):
            services.opportunities.get_by_title_or_none("")

    def test_commitment_interval_resolved(self, services: Services, seeded, make_request) -> None:
        opp = services.opportunities.create(
            make_request(commitment_interval_id=seeded.week_id, date_end=None), seeded.admin_context
        )
        assert opp.commitment_interval == TimeIntervalOption.WEEK
        assert opp.date_end is None
