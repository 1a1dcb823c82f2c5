"""Scheduled opportunity jobs: expiration, expiration notifications and deletion."""

import logging
import threading
from datetime import datetime, timedelta
from typing import Optional
from uuid import UUID

from yoma_opportunity.config import AppSettings
from yoma_opportunity.derived import remove_time, to_end_of_day, utcnow, yoma_info_url
from yoma_opportunity.email.client import EmailProviderClient
from yoma_opportunity.email.models import (
    EmailOpportunityExpiration,
    EmailOpportunityItem,
    EmailRecipient,
    EmailType,
)
from yoma_opportunity.models.lookup import Status
from yoma_opportunity.models.opportunity import Opportunity
from yoma_opportunity.models.organization import UserInfo
from yoma_opportunity.services.lookups import LookupServices
from yoma_opportunity.services.organizations import OrganizationService
from yoma_opportunity.store.database import Database, to_db_time
from yoma_opportunity.store.query import OpportunityQuery, Predicate, in_
from yoma_opportunity.store.sqlite_store import OpportunityStore

logger = logging.getLogger(__name__)

STATUSES_EXPIRABLE = (Status.ACTIVE, Status.INACTIVE)
STATUSES_DELETION = (Status.INACTIVE, Status.EXPIRED)


class OpportunityBackgroundService:
    """
    Batch jobs run by the scheduler. All three share one lock so that at most one
    runs at a time within the process.
    """

    def __init__(
        self,
        db: Database,
        store: OpportunityStore,
        lookups: LookupServices,
        organizations: OrganizationService,
        email_client: EmailProviderClient,
        settings: AppSettings,
        lock: Optional[threading.Lock] = None,
    ):
        self._db = db
        self._store = store
        self._lookups = lookups
        self._organizations = organizations
        self._email = email_client
        self._settings = settings
        self._options = settings.schedule_jobs
        self._lock = lock or threading.Lock()

    def _status_ids(self, statuses) -> list[UUID]:
        return [self._lookups.opportunity_statuses.id_of(s) for s in statuses]

    def _set_status(self, items: list[Opportunity], status: Status, now: datetime) -> None:
        """Flip every item to status in one transaction."""
        status_id = self._lookups.opportunity_statuses.id_of(status)
        with self._db.transaction(requires_new=True):
            for item in items:
                item.status = status
                item.status_id = status_id
                item.date_modified = now
                self._store.update(item)

    def process_expiration(self) -> int:
        """Expire Active / Inactive opportunities whose end date has passed. Returns the number expired."""
        with self._lock:
            now = utcnow()
            batch_size = self._options.opportunity_expiration_batch_size
            total = 0
            while True:
                # expired rows leave the result set, so every page starts at offset 0
                query = (
                    OpportunityQuery()
                    .where(in_("o.status_id", self._status_ids(STATUSES_EXPIRABLE)))
                    .where(Predicate("o.date_end IS NOT NULL AND o.date_end <= ?", (to_db_time(now),)))
                    .order_by("o.date_end")
                    .order_by("o.id")
                )
                items = self._store.list(query, take=batch_size, include_children=False)
                if not items:
                    break
                self._set_status(items, Status.EXPIRED, now)
                total += len(items)
                logger.info("Expired %d opportunities", len(items))
                self._send_email(items, EmailType.OPPORTUNITY_EXPIRATION_EXPIRED)
            return total

    def process_expiration_notifications(self) -> int:
        """Notify organization admins of opportunities ending within the configured window. Returns the number notified."""
        with self._lock:
            today = remove_time(utcnow())
            until = to_end_of_day(today + timedelta(days=self._options.opportunity_expiration_notification_interval_in_days))
            batch_size = self._options.opportunity_expiration_batch_size
            query = (
                OpportunityQuery()
                .where(in_("o.status_id", self._status_ids(STATUSES_EXPIRABLE)))
                .where(
                    Predicate(
                        "o.date_end IS NOT NULL AND o.date_end >= ? AND o.date_end <= ?",
                        (to_db_time(today), to_db_time(until)),
                    )
                )
                .order_by("o.date_end")
                .order_by("o.id")
            )
            total = 0
            skip = 0
            while True:
                items = self._store.list(query, skip=skip, take=batch_size, include_children=False)
                if not items:
                    break
                total += len(items)
                skip += len(items)
                self._send_email(items, EmailType.OPPORTUNITY_EXPIRATION_WITHIN_NEXT_DAYS)
            logger.info("Sent expiration notifications for %d opportunities", total)
            return total

    def process_deletion(self) -> int:
        """Flag Inactive / Expired opportunities untouched for the configured interval as Deleted."""
        with self._lock:
            now = utcnow()
            cutoff = now - timedelta(days=self._options.opportunity_deletion_interval_in_days)
            batch_size = self._options.opportunity_deletion_batch_size
            total = 0
            while True:
                query = (
                    OpportunityQuery()
                    .where(in_("o.status_id", self._status_ids(STATUSES_DELETION)))
                    .where(Predicate("o.date_modified <= ?", (to_db_time(cutoff),)))
                    .order_by("o.date_modified")
                    .order_by("o.id")
                )
                items = self._store.list(query, take=batch_size, include_children=False)
                if not items:
                    break
                self._set_status(items, Status.DELETED, now)
                total += len(items)
                logger.info("Deleted %d opportunities", len(items))
            return total

    def _send_email(self, items: list[Opportunity], email_type: EmailType) -> None:
        """One email per organization admin listing that admin's opportunities from items."""
        grouped: dict[UUID, tuple[UserInfo, list[Opportunity]]] = {}
        admins_by_org: dict[UUID, list[UserInfo]] = {}
        for opp in items:
            if opp.organization_id not in admins_by_org:
                admins_by_org[opp.organization_id] = self._organizations.list_admins(opp.organization_id)
            for admin in admins_by_org[opp.organization_id]:
                grouped.setdefault(admin.id, (admin, []))[1].append(opp)

        for admin, opportunities in grouped.values():
            try:
                data = EmailOpportunityExpiration(
                    within_next_days=self._options.opportunity_expiration_notification_interval_in_days,
                    opportunities=[
                        EmailOpportunityItem(
                            title=opp.title,
                            date_start=opp.date_start,
                            date_end=opp.date_end,
                            url=yoma_info_url(self._settings.app_base_url, opp.id),
                        )
                        for opp in opportunities
                    ],
                )
                recipients = [EmailRecipient(email=admin.email, display_name=admin.display_name)]
                self._email.send(email_type, recipients, data)
                logger.info("Sent '%s' email to %s", email_type.value, admin.email)
            except Exception:
                logger.exception("Failed to send '%s' email to %s", email_type.value, admin.email)
