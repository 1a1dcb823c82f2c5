"""Tests for reward allocation against organization and opportunity pools."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from yoma_opportunity.app import Services
from yoma_opportunity.errors import RequestValidationError
from yoma_opportunity.models.lookup import Status, VerificationMethod, VerificationType
from yoma_opportunity.models.requests import OpportunityRequestUpdate, OpportunityVerificationTypeRequest


def _verified(make_request, **kwargs):
    """A request with manual verification enabled."""
    defaults = {
        "verification_enabled": True,
        "verification_method": VerificationMethod.MANUAL,
        "credential_issuance_enabled": True,
        "ssi_schema_name": "Opportunity|Default",
        "verification_types": [OpportunityVerificationTypeRequest(type=VerificationType.PICTURE)],
    }
    defaults.update(kwargs)
    return make_request(**defaults)


class TestAllocateRewards:
    """Tests for OpportunityService.allocate_rewards."""

    def test_full_reward_when_pools_cover_it(self, services: Services, seeded, make_request) -> None:
        opp = services.opportunities.create(make_request(zlto_reward_pool=Decimal(500)), seeded.admin_context)
        result = services.opportunities.allocate_rewards(opp.id)
        assert result.zlto_reward == Decimal(100)
        assert result.zlto_reward_reduced is False
        assert result.zlto_reward_pool_depleted is False

        loaded = services.opportunities.get_by_id(opp.id)
        assert loaded.participant_count == 1
        assert loaded.zlto_reward_cumulative == Decimal(100)
        assert loaded.zlto_reward_balance == Decimal(400)

    def test_repeated_allocation_never_exceeds_pool(self, services: Services, seeded, make_request) -> None:
        """Rewards shrink to the remaining balance, then to zero once the pool is spent."""
        opp = services.opportunities.create(make_request(zlto_reward_pool=Decimal(250)), seeded.admin_context)
        rewards = [services.opportunities.allocate_rewards(opp.id) for _ in range(4)]

        assert [r.zlto_reward for r in rewards] == [Decimal(100), Decimal(100), Decimal(50), Decimal(0)]
        assert [r.zlto_reward_reduced for r in rewards] == [False, False, True, True]
        assert rewards[-1].zlto_reward_pool_depleted is True
        loaded = services.opportunities.get_by_id(opp.id)
        assert loaded.zlto_reward_cumulative == Decimal(250)
        assert loaded.participant_count == 4

    def test_organization_pool_clamps_first(self, services: Services, seeded, make_request) -> None:
        """The organization balance limits the reward even when the opportunity pool has room."""
        opp = services.opportunities.create(
            make_request(yoma_reward=Decimal(300), yoma_reward_pool=Decimal(1000)), seeded.admin_context
        )
        first = services.opportunities.allocate_rewards(opp.id)
        second = services.opportunities.allocate_rewards(opp.id)
        assert first.yoma_reward == Decimal(300)
        assert second.yoma_reward == Decimal(200)
        assert second.yoma_reward_reduced is True

        org = services.organizations.get_by_id(seeded.organization.id)
        assert org.yoma_reward_cumulative == Decimal(500)
        assert org.zlto_reward_cumulative == Decimal(200)

    def test_no_pools_grants_full_reward(self, services: Services, seeded, make_request) -> None:
        opp = services.opportunities.create(
            make_request(organization_id=seeded.other_organization.id), seeded.admin_context
        )
        result = services.opportunities.allocate_rewards(opp.id)
        assert result.zlto_reward == Decimal(100)
        assert result.yoma_reward is None

    def test_participant_limit_enforced(self, services: Services, seeded, make_request) -> None:
        opp = services.opportunities.create(_verified(make_request, participant_limit=1), seeded.admin_context)
        services.opportunities.allocate_rewards(opp.id)
        with pytest.raises(RequestValidationError) as exc:
            services.opportunities.allocate_rewards(opp.id)
        assert "The number of participants cannot exceed the limit" in str(exc.value)
        assert "The current count is '1', and the limit is '1'" in str(exc.value)

    def test_not_started_rejected(self, services: Services, seeded, make_request) -> None:
        now = datetime.now(timezone.utc)
        opp = services.opportunities.create(
            make_request(date_start=now + timedelta(days=2), date_end=now + timedelta(days=20)),
            seeded.admin_context,
        )
        with pytest.raises(RequestValidationError) as exc:
            services.opportunities.allocate_rewards(opp.id)
        assert "rewards can no longer be allocated, because it has not yet started" in str(exc.value)

    def test_inactive_rejected(self, services: Services, seeded, make_request) -> None:
        opp = services.opportunities.create(make_request(post_as_active=False), seeded.admin_context)
        with pytest.raises(RequestValidationError) as exc:
            services.opportunities.allocate_rewards(opp.id)
        assert "it has not been published" in str(exc.value)

    def test_expired_allowed(self, services: Services, seeded, make_request) -> None:
        now = datetime.now(timezone.utc)
        opp = services.opportunities.create(
            make_request(date_start=now - timedelta(days=5), date_end=now - timedelta(days=1), post_as_active=False),
            seeded.admin_context,
        )
        assert opp.status == Status.EXPIRED
        assert services.opportunities.allocate_rewards(opp.id).zlto_reward == Decimal(100)


class TestPoolUpdates:
    """Pools may not drop below what was already allocated."""

    def test_pool_below_cumulative_rejected(self, services: Services, seeded, make_request) -> None:
        request = make_request(zlto_reward_pool=Decimal(500))
        opp = services.opportunities.create(request, seeded.admin_context)
        services.opportunities.allocate_rewards(opp.id)
        services.opportunities.allocate_rewards(opp.id)

        data = request.model_dump(exclude={"post_as_active", "external_id"})
        data.update(zlto_reward_pool=Decimal(150))
        with pytest.raises(RequestValidationError) as exc:
            services.opportunities.update(OpportunityRequestUpdate(id=opp.id, **data), seeded.admin_context)
        assert "cannot be less than the cumulative Zlto rewards already allocated" in str(exc.value)
