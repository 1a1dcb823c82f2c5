"""Pytest fixtures for yoma-opportunity tests."""

import tempfile
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path
from typing import Callable, Optional
from uuid import UUID

import pytest
from pydantic import BaseModel

from yoma_opportunity.app import Services, build_services
from yoma_opportunity.config import AppSettings, ScheduleJobOptions
from yoma_opportunity.context import ROLE_ADMIN, ROLE_ORGANIZATION_ADMIN, RequestContext
from yoma_opportunity.email.client import EmailProviderClient
from yoma_opportunity.email.models import EmailRecipient, EmailType
from yoma_opportunity.models.lookup import LookupKind, OrganizationStatus, TimeIntervalOption
from yoma_opportunity.models.organization import Organization, UserInfo
from yoma_opportunity.models.requests import OpportunityRequestCreate


class RecordingEmailClient(EmailProviderClient):
    """Keeps every sent email in memory."""

    def __init__(self) -> None:
        self.sent: list[tuple[EmailType, list[EmailRecipient], BaseModel]] = []

    def send(self, email_type: EmailType, recipients: list[EmailRecipient], data: BaseModel) -> None:
        self.sent.append((email_type, recipients, data))

    def of_type(self, email_type: EmailType) -> list[tuple[EmailType, list[EmailRecipient], BaseModel]]:
        return [s for s in self.sent if s[0] == email_type]


@dataclass
class Seeded:
    """Reference data created for each test."""

    type_id: UUID
    difficulty_id: UUID
    engagement_type_id: UUID
    day_id: UUID
    week_id: UUID
    categories: dict[str, UUID]
    countries: dict[str, UUID]
    languages: dict[str, UUID]
    skills: dict[str, UUID]
    organization: Organization
    other_organization: Organization
    platform_admin: UserInfo
    org_admin: UserInfo
    other_org_admin: UserInfo
    admin_context: RequestContext
    org_admin_context: RequestContext
    other_org_admin_context: RequestContext


@pytest.fixture
def temp_db() -> Path:
    """Temporary database path for isolated tests."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        path = Path(f.name)
    yield path
    path.unlink(missing_ok=True)


@pytest.fixture
def settings(temp_db: Path) -> AppSettings:
    return AppSettings(
        app_base_url="https://app.yoma.test",
        database_path=str(temp_db),
        schedule_jobs=ScheduleJobOptions(
            opportunity_expiration_batch_size=2,
            opportunity_expiration_notification_interval_in_days=3,
            opportunity_deletion_batch_size=2,
            opportunity_deletion_interval_in_days=90,
        ),
    )


@pytest.fixture
def email_client() -> RecordingEmailClient:
    return RecordingEmailClient()


@pytest.fixture
def services(settings: AppSettings, email_client: RecordingEmailClient) -> Services:
    """All services over a fresh database with enumerated lookups seeded."""
    return build_services(settings, email_client=email_client)


def _add(services: Services, kind: LookupKind, names: list[str], codes: Optional[dict[str, str]] = None) -> dict[str, UUID]:
    codes = codes or {}
    return {
        name: services.lookup_store.add(kind, name, {"code": codes[name]} if name in codes else None).id
        for name in names
    }


def _add_user(services: Services, email: str, is_admin: bool = False, country_id: Optional[UUID] = None) -> UserInfo:
    user = UserInfo(id=uuid.uuid4(), email=email, display_name=email.split("@")[0], is_admin=is_admin, country_id=country_id)
    services.user_store.insert(user)
    return user


def _add_organization(services: Services, name: str, admin: UserInfo, **kwargs) -> Organization:
    status = kwargs.pop("status", OrganizationStatus.ACTIVE)
    org = Organization(
        id=uuid.uuid4(),
        name=name,
        status_id=services.lookups.organization_statuses.id_of(status),
        status=status,
        **kwargs,
    )
    services.organization_store.insert(org)
    services.organization_store.add_admin(org.id, admin.id)
    return org


@pytest.fixture
def seeded(services: Services) -> Seeded:
    """Lookups, two organizations with one admin each, and a platform admin."""
    types = _add(services, LookupKind.OPPORTUNITY_TYPE, ["Learning", "Task"])
    difficulties = _add(services, LookupKind.OPPORTUNITY_DIFFICULTY, ["Beginner", "Advanced"])
    engagement = _add(services, LookupKind.ENGAGEMENT_TYPE, ["Online", "Offline"])
    categories = _add(services, LookupKind.OPPORTUNITY_CATEGORY, ["Technology", "Agriculture", "Other", "Environment"])
    countries = _add(
        services,
        LookupKind.COUNTRY,
        ["Worldwide", "South Africa", "Kenya", "Nigeria"],
        {"Worldwide": "WW", "South Africa": "ZA", "Kenya": "KE", "Nigeria": "NG"},
    )
    languages = _add(services, LookupKind.LANGUAGE, ["English", "French", "Swahili"], {"English": "EN", "French": "FR", "Swahili": "SW"})
    skills = _add(services, LookupKind.SKILL, ["Python Programming", "Gardening"])
    services.lookups.refresh()

    platform_admin = _add_user(services, "admin@yoma.test", is_admin=True)
    org_admin = _add_user(services, "orgadmin@acme.test", country_id=countries["Kenya"])
    other_org_admin = _add_user(services, "orgadmin@globex.test")
    organization = _add_organization(
        services, "Acme Learning", org_admin, zlto_reward_pool=Decimal(1000), yoma_reward_pool=Decimal(500)
    )
    other_organization = _add_organization(services, "Globex Skills", other_org_admin)

    return Seeded(
        type_id=types["Learning"],
        difficulty_id=difficulties["Beginner"],
        engagement_type_id=engagement["Online"],
        day_id=services.lookups.time_intervals.id_of(TimeIntervalOption.DAY),
        week_id=services.lookups.time_intervals.id_of(TimeIntervalOption.WEEK),
        categories=categories,
        countries=countries,
        languages=languages,
        skills=skills,
        organization=organization,
        other_organization=other_organization,
        platform_admin=platform_admin,
        org_admin=org_admin,
        other_org_admin=other_org_admin,
        admin_context=RequestContext(username=platform_admin.email, roles=frozenset({ROLE_ADMIN})),
        org_admin_context=RequestContext(username=org_admin.email, roles=frozenset({ROLE_ORGANIZATION_ADMIN})),
        other_org_admin_context=RequestContext(
            username=other_org_admin.email, roles=frozenset({ROLE_ORGANIZATION_ADMIN})
        ),
    )


@pytest.fixture
def make_request(seeded: Seeded) -> Callable[..., OpportunityRequestCreate]:
    """Factory for a valid create request; keyword arguments override fields."""
    counter = iter(range(1, 10_000))

    def _make(**kwargs) -> OpportunityRequestCreate:
        now = datetime.now(timezone.utc)
        defaults = {
            "title": f"Intro to Python {next(counter)}",
            "description": "Learn the basics of Python programming.",
            "summary": "Python basics",
            "type_id": seeded.type_id,
            "organization_id": seeded.organization.id,
            "difficulty_id": seeded.difficulty_id,
            "commitment_interval_id": seeded.day_id,
            "commitment_interval_count": 1,
            "date_start": now - timedelta(days=1),
            "date_end": now + timedelta(days=30),
            "zlto_reward": Decimal(100),
            "categories": [seeded.categories["Technology"]],
            "countries": [seeded.countries["South Africa"]],
            "languages": [seeded.languages["English"]],
            "keywords": ["python", "coding"],
            "post_as_active": True,
        }
        defaults.update(kwargs)
        return OpportunityRequestCreate(**defaults)

    return _make
