"""Tests for the opportunity status state machine, featured and hidden flags."""

from datetime import datetime, timedelta, timezone

import pytest

from yoma_opportunity.app import Services
from yoma_opportunity.email.models import EmailType
from yoma_opportunity.errors import AuthorizationError, RequestValidationError
from yoma_opportunity.models.lookup import Status
from yoma_opportunity.store import OpportunityStore


@pytest.fixture
def active(services: Services, seeded, make_request):
    return services.opportunities.create(make_request(), seeded.admin_context)


@pytest.fixture
def inactive(services: Services, seeded, make_request):
    return services.opportunities.create(make_request(post_as_active=False), seeded.admin_context)


@pytest.fixture
def expired(services: Services, seeded, make_request):
    now = datetime.now(timezone.utc)
    return services.opportunities.create(
        make_request(date_start=now - timedelta(days=5), date_end=now - timedelta(days=1), post_as_active=False),
        seeded.admin_context,
    )


class TestUpdateStatus:
    """Tests for OpportunityService.update_status."""

    def test_same_status_is_noop(self, services: Services, seeded, active) -> None:
        """Requesting the current status returns the entity without modifying it."""
        result = services.opportunities.update_status(active.id, Status.ACTIVE, seeded.admin_context)
        assert result.status == Status.ACTIVE
        assert result.date_modified == active.date_modified

    def test_activate_inactive_notifies_admins(self, services: Services, seeded, inactive, email_client) -> None:
        result = services.opportunities.update_status(inactive.id, Status.ACTIVE, seeded.admin_context)
        assert result.status == Status.ACTIVE
        assert result.published is True
        assert len(email_client.of_type(EmailType.OPPORTUNITY_POSTED_ADMIN)) == 1
        assert services.opportunities.get_by_id(inactive.id).status == Status.ACTIVE

    def test_activate_with_past_end_date_rejected(self, services: Services, seeded, make_request) -> None:
        """An opportunity whose end date passed cannot be re-activated."""
        now = datetime.now(timezone.utc)
        opp = services.opportunities.create(make_request(post_as_active=False), seeded.admin_context)
        # end date moves into the past without the expiration job running
        stored = services.opportunities.get_by_id(opp.id)
        stored.date_end = now - timedelta(days=1)
        OpportunityStore(services.db).update(stored)
        with pytest.raises(RequestValidationError) as exc:
            services.opportunities.update_status(opp.id, Status.ACTIVE, seeded.admin_context)
        assert "Opportunity has already ended and can not be activated" in str(exc.value)

    def test_activate_expired_rejected(self, services: Services, seeded, expired) -> None:
        with pytest.raises(RequestValidationError) as exc:
            services.opportunities.update_status(expired.id, Status.ACTIVE, seeded.admin_context)
        assert str(exc.value) == (
            "Opportunity can not be activated (current status 'Expired'). Required state 'Inactive'"
        )

    def test_deactivate_active_and_expired(self, services: Services, seeded, active, expired) -> None:
        assert services.opportunities.update_status(active.id, Status.INACTIVE, seeded.admin_context).status == Status.INACTIVE
        assert services.opportunities.update_status(expired.id, Status.INACTIVE, seeded.admin_context).status == Status.INACTIVE

    def test_delete_expired_rejected(self, services: Services, seeded, expired) -> None:
        with pytest.raises(RequestValidationError) as exc:
            services.opportunities.update_status(expired.id, Status.DELETED, seeded.admin_context)
        assert "Required state 'Active / Inactive'" in str(exc.value)

    def test_delete_inactive(self, services: Services, seeded, inactive) -> None:
        result = services.opportunities.update_status(inactive.id, Status.DELETED, seeded.admin_context)
        assert result.status == Status.DELETED

    def test_deleted_is_terminal(self, services: Services, seeded, inactive) -> None:
        services.opportunities.update_status(inactive.id, Status.DELETED, seeded.admin_context)
        with pytest.raises(RequestValidationError):
            services.opportunities.update_status(inactive.id, Status.ACTIVE, seeded.admin_context)

    def test_expired_target_not_supported(self, services: Services, seeded, active) -> None:
        with pytest.raises(ValueError, match="Status 'Expired' not supported"):
            services.opportunities.update_status(active.id, Status.EXPIRED, seeded.admin_context)

    def test_foreign_admin_unauthorized(self, services: Services, seeded, active) -> None:
        with pytest.raises(AuthorizationError):
            services.opportunities.update_status(
                active.id, Status.INACTIVE, seeded.other_org_admin_context, ensure_org_auth=True
            )


class TestFlags:
    """Tests for update_featured / update_hidden."""

    def test_update_featured(self, services: Services, seeded, active) -> None:
        assert services.opportunities.update_featured(active.id, True, seeded.admin_context).featured is True
        assert services.opportunities.get_by_id(active.id).featured is True

    def test_update_hidden(self, services: Services, seeded, active) -> None:
        result = services.opportunities.update_hidden(active.id, True, seeded.org_admin_context, ensure_org_auth=True)
        assert result.hidden is True

    def test_hidden_rejected_when_shared(self, services: Services, seeded, make_request) -> None:
        opp = services.opportunities.create(make_request(share_with_partners=True), seeded.admin_context)
        with pytest.raises(RequestValidationError):
            services.opportunities.update_hidden(opp.id, True, seeded.admin_context)

    def test_flags_require_updatable_status(self, services: Services, seeded, expired) -> None:
        with pytest.raises(RequestValidationError):
            services.opportunities.update_featured(expired.id, True, seeded.admin_context)
