"""Service wiring and reference-data seeding."""

import logging
import threading
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

try:
    import yaml
except ModuleNotFoundError as e:
    raise ModuleNotFoundError(
        "PyYAML is required for seed loading. Run: pip install -e ."
    ) from e

from yoma_opportunity.config import AppSettings
from yoma_opportunity.email.client import EmailProviderClient, build_email_client
from yoma_opportunity.models.lookup import LookupKind, OrganizationStatus
from yoma_opportunity.models.organization import Organization, UserInfo
from yoma_opportunity.services.background import OpportunityBackgroundService
from yoma_opportunity.services.blob import BlobService
from yoma_opportunity.services.info import OpportunityInfoService
from yoma_opportunity.services.lookups import LookupServices
from yoma_opportunity.services.my_opportunity import MyOpportunityService
from yoma_opportunity.services.opportunity import OpportunityService
from yoma_opportunity.services.organizations import OrganizationService, UserService
from yoma_opportunity.store import (
    Database,
    LookupStore,
    MyOpportunityStore,
    OpportunityStore,
    OrganizationStore,
    UserStore,
)

logger = logging.getLogger(__name__)

# seed file section -> lookup kind
SEED_LOOKUP_SECTIONS: dict[str, LookupKind] = {
    "types": LookupKind.OPPORTUNITY_TYPE,
    "categories": LookupKind.OPPORTUNITY_CATEGORY,
    "difficulties": LookupKind.OPPORTUNITY_DIFFICULTY,
    "engagement_types": LookupKind.ENGAGEMENT_TYPE,
    "countries": LookupKind.COUNTRY,
    "languages": LookupKind.LANGUAGE,
    "skills": LookupKind.SKILL,
}


@dataclass
class Services:
    """Every service of the opportunity domain, sharing one database and lookup cache."""

    settings: AppSettings
    db: Database
    lookup_store: LookupStore
    lookups: LookupServices
    users: UserService
    organizations: OrganizationService
    my_opportunities: MyOpportunityService
    opportunities: OpportunityService
    info: OpportunityInfoService
    background: OpportunityBackgroundService
    organization_store: OrganizationStore = field(repr=False)
    user_store: UserStore = field(repr=False)


def build_services(
    settings: AppSettings,
    *,
    email_client: Optional[EmailProviderClient] = None,
    lock: Optional[threading.Lock] = None,
) -> Services:
    """Open the database, seed enumerated lookups and construct the services."""
    db = Database(settings.database_path)
    lookup_store = LookupStore(db)
    lookup_store.seed_defaults()
    lookups = LookupServices.from_store(lookup_store)

    email_client = email_client or build_email_client(settings.email)
    blob = BlobService(settings.blob)
    organization_store = OrganizationStore(db)
    user_store = UserStore(db)
    users = UserService(user_store)
    organizations = OrganizationService(organization_store, users, blob)
    my_opportunities = MyOpportunityService(MyOpportunityStore(db), lookups)
    opportunity_store = OpportunityStore(db)

    opportunities = OpportunityService(
        db, opportunity_store, lookups, organizations, users, blob, email_client, settings
    )
    info = OpportunityInfoService(opportunities, my_opportunities, settings)
    background = OpportunityBackgroundService(
        db, opportunity_store, lookups, organizations, email_client, settings, lock
    )
    return Services(
        settings=settings,
        db=db,
        lookup_store=lookup_store,
        lookups=lookups,
        users=users,
        organizations=organizations,
        my_opportunities=my_opportunities,
        opportunities=opportunities,
        info=info,
        background=background,
        organization_store=organization_store,
        user_store=user_store,
    )


def _lookup_entry(entry: Any) -> tuple[str, dict[str, Any]]:
    """A seed entry is either a bare name or a mapping with name plus extra data (code, image_url)."""
    if isinstance(entry, str):
        return entry, {}
    data = dict(entry)
    return str(data.pop("name")), data


def seed_reference_data(services: Services, path: str | Path) -> dict[str, int]:
    """
    Load lookups, users and organizations from a YAML seed file. Existing rows
    (matched by name or email) are left untouched. Returns counts per section.
    """
    data = yaml.safe_load(Path(path).read_text()) or {}
    counts: dict[str, int] = {}

    for section, kind in SEED_LOOKUP_SECTIONS.items():
        entries = data.get(section) or []
        for entry in entries:
            name, extra = _lookup_entry(entry)
            services.lookup_store.add(kind, name, extra)
        counts[section] = len(entries)
    services.lookups.refresh()

    users = data.get("users") or []
    for entry in users:
        if services.users.get_by_email_or_none(entry["email"]) is not None:
            continue
        country = entry.get("country")
        services.user_store.insert(
            UserInfo(
                id=uuid.uuid4(),
                email=entry["email"],
                display_name=entry.get("display_name"),
                country_id=services.lookups.countries.get_by_name(country).id if country else None,
                is_admin=bool(entry.get("is_admin", False)),
            )
        )
    counts["users"] = len(users)

    organizations = data.get("organizations") or []
    for entry in organizations:
        org = services.organization_store.get_by_name(entry["name"])
        if org is None:
            status = OrganizationStatus(entry.get("status", OrganizationStatus.ACTIVE.value))
            org = Organization(
                id=uuid.uuid4(),
                name=entry["name"],
                status_id=services.lookups.organization_statuses.id_of(status),
                status=status,
                logo_storage_type=entry.get("logo_storage_type"),
                logo_key=entry.get("logo_key"),
                zlto_reward_pool=entry.get("zlto_reward_pool"),
                yoma_reward_pool=entry.get("yoma_reward_pool"),
            )
            services.organization_store.insert(org)
        for email in entry.get("admins") or []:
            user = services.users.get_by_email(email)
            if not services.organization_store.is_admin(org.id, user.id):
                services.organization_store.add_admin(org.id, user.id)
    counts["organizations"] = len(organizations)

    logger.info("Seeded reference data from %s: %s", path, counts)
    return counts
