"""Lookup services: each reference table loaded once into an id/name map."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional
from uuid import UUID

from yoma_opportunity.errors import EntityNotFoundError
from yoma_opportunity.models.lookup import LookupItem, LookupKind
from yoma_opportunity.store.lookup_store import LookupStore

logger = logging.getLogger(__name__)


class LookupService:
    """
    Cached view of one lookup kind. The map is built on first use; a miss
    reloads it once so values added after startup are still found.
    """

    def __init__(self, store: LookupStore, kind: LookupKind):
        self._store = store
        self.kind = kind
        self._by_id: Optional[dict[UUID, LookupItem]] = None
        self._by_name: dict[str, LookupItem] = {}

    def refresh(self) -> None:
        items = self._store.list(self.kind)
        self._by_id = {i.id: i for i in items}
        self._by_name = {i.name.casefold(): i for i in items}
        logger.debug("Loaded %d %s lookups", len(items), self.kind.value)

    def _items(self) -> dict[UUID, LookupItem]:
        if self._by_id is None:
            self.refresh()
        return self._by_id or {}

    @property
    def _label(self) -> str:
        return self.kind.value.replace("_", " ")

    def list(self) -> list[LookupItem]:
        return sorted(self._items().values(), key=lambda i: i.name)

    def get_by_id_or_none(self, item_id: UUID) -> Optional[LookupItem]:
        if not isinstance(item_id, UUID):
            item_id = UUID(str(item_id))
        item = self._items().get(item_id)
        if item is None:
            self.refresh()
            item = self._items().get(item_id)
        return item

    def get_by_id(self, item_id: UUID) -> LookupItem:
        item = self.get_by_id_or_none(item_id)
        if item is None:
            raise EntityNotFoundError(f"{self._label} with id '{item_id}' does not exist")
        return item

    def get_by_name_or_none(self, name: str) -> Optional[LookupItem]:
        if not name or not name.strip():
            raise ValueError("name is required")
        self._items()
        key = name.strip().casefold()
        item = self._by_name.get(key)
        if item is None:
            self.refresh()
            item = self._by_name.get(key)
        return item

    def get_by_name(self, name: str) -> LookupItem:
        item = self.get_by_name_or_none(name)
        if item is None:
            raise EntityNotFoundError(f"{self._label} with name '{name}' does not exist")
        return item

    def contains(self, value: str) -> list[LookupItem]:
        """Items whose name contains value, ignoring case."""
        needle = value.strip().casefold()
        return [i for i in self.list() if needle in i.name.casefold()]

    def id_of(self, member: Enum) -> UUID:
        """Surrogate id of an enumerated value."""
        return self.get_by_name(member.value).id


@dataclass
class LookupServices:
    """All lookup services used by the opportunity domain."""

    opportunity_statuses: LookupService
    organization_statuses: LookupService
    types: LookupService
    categories: LookupService
    difficulties: LookupService
    engagement_types: LookupService
    verification_types: LookupService
    time_intervals: LookupService
    countries: LookupService
    languages: LookupService
    skills: LookupService
    my_opportunity_actions: LookupService
    verification_statuses: LookupService

    @classmethod
    def from_store(cls, store: LookupStore) -> "LookupServices":
        return cls(
            opportunity_statuses=LookupService(store, LookupKind.OPPORTUNITY_STATUS),
            organization_statuses=LookupService(store, LookupKind.ORGANIZATION_STATUS),
            types=LookupService(store, LookupKind.OPPORTUNITY_TYPE),
            categories=LookupService(store, LookupKind.OPPORTUNITY_CATEGORY),
            difficulties=LookupService(store, LookupKind.OPPORTUNITY_DIFFICULTY),
            engagement_types=LookupService(store, LookupKind.ENGAGEMENT_TYPE),
            verification_types=LookupService(store, LookupKind.VERIFICATION_TYPE),
            time_intervals=LookupService(store, LookupKind.TIME_INTERVAL),
            countries=LookupService(store, LookupKind.COUNTRY),
            languages=LookupService(store, LookupKind.LANGUAGE),
            skills=LookupService(store, LookupKind.SKILL),
            my_opportunity_actions=LookupService(store, LookupKind.MY_OPPORTUNITY_ACTION),
            verification_statuses=LookupService(store, LookupKind.VERIFICATION_STATUS),
        )

    def refresh(self) -> None:
        """Reload every lookup map, e.g. after seeding."""
        for service in vars(self).values():
            service.refresh()
