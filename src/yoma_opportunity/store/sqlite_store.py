"""SQLite-backed opportunity store with many-to-many lookup associations."""

from __future__ import annotations

import json
import sqlite3
import uuid
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any, Optional
from uuid import UUID

from yoma_opportunity.models.lookup import LookupItem
from yoma_opportunity.models.opportunity import Opportunity, OpportunityVerificationTypeItem
from yoma_opportunity.store.database import (
    Database,
    from_db_bool,
    from_db_decimal,
    from_db_time,
    to_db_bool,
    to_db_decimal,
    to_db_time,
)
from yoma_opportunity.store.query import OPPORTUNITY_FROM, OpportunityQuery

# association name -> (join table, lookup id column)
ASSOCIATIONS: dict[str, tuple[str, str]] = {
    "categories": ("opportunity_categories", "category_id"),
    "countries": ("opportunity_countries", "country_id"),
    "languages": ("opportunity_languages", "language_id"),
    "skills": ("opportunity_skills", "skill_id"),
    "verification_types": ("opportunity_verification_types", "verification_type_id"),
}

_SELECT = f"""
    SELECT o.*,
        org.name AS organization_name,
        org.status_id AS organization_status_id,
        os.name AS organization_status_name,
        org.logo_storage_type AS organization_logo_storage_type,
        org.logo_key AS organization_logo_key,
        org.zlto_reward_pool AS organization_zlto_reward_pool,
        org.zlto_reward_cumulative AS organization_zlto_reward_cumulative,
        org.yoma_reward_pool AS organization_yoma_reward_pool,
        org.yoma_reward_cumulative AS organization_yoma_reward_cumulative,
        lt.name AS type_name,
        ld.name AS difficulty_name,
        li.name AS commitment_interval_name,
        ls.name AS status_name,
        le.name AS engagement_type_name
    FROM {OPPORTUNITY_FROM}
    JOIN lookups os ON os.id = org.status_id
    JOIN lookups lt ON lt.id = o.type_id
    JOIN lookups ld ON ld.id = o.difficulty_id
    JOIN lookups li ON li.id = o.commitment_interval_id
    JOIN lookups ls ON ls.id = o.status_id
    LEFT JOIN lookups le ON le.id = o.engagement_type_id
"""

_COLUMNS = (
    "id", "title", "description", "type_id", "organization_id", "summary", "instructions", "url",
    "zlto_reward", "yoma_reward", "zlto_reward_pool", "yoma_reward_pool",
    "zlto_reward_cumulative", "yoma_reward_cumulative", "verification_enabled", "verification_method",
    "difficulty_id", "commitment_interval_id", "commitment_interval_count", "participant_limit",
    "participant_count", "status_id", "keywords", "date_start", "date_end",
    "credential_issuance_enabled", "ssi_schema_name", "featured", "engagement_type_id",
    "share_with_partners", "hidden", "external_id", "date_created", "created_by_user_id",
    "date_modified", "modified_by_user_id",
)


def _balance(pool: Optional[float], cumulative: Optional[float]):
    if pool is None:
        return None
    return from_db_decimal(pool) - (from_db_decimal(cumulative) or 0)


class OpportunityStore:
    """
    SQLite store for opportunities. Rows come back with lookup names and the
    owning organization's fields denormalized; collections are loaded per page.
    """

    def __init__(self, db: Database):
        self._db = db

    def _to_params(self, opp: Opportunity) -> tuple[Any, ...]:
        values: dict[str, Any] = {
            "id": str(opp.id),
            "title": opp.title,
            "description": opp.description,
            "type_id": str(opp.type_id),
            "organization_id": str(opp.organization_id),
            "summary": opp.summary,
            "instructions": opp.instructions,
            "url": opp.url,
            "zlto_reward": to_db_decimal(opp.zlto_reward),
            "yoma_reward": to_db_decimal(opp.yoma_reward),
            "zlto_reward_pool": to_db_decimal(opp.zlto_reward_pool),
            "yoma_reward_pool": to_db_decimal(opp.yoma_reward_pool),
            "zlto_reward_cumulative": to_db_decimal(opp.zlto_reward_cumulative),
            "yoma_reward_cumulative": to_db_decimal(opp.yoma_reward_cumulative),
            "verification_enabled": int(opp.verification_enabled),
            "verification_method": opp.verification_method.value if opp.verification_method else None,
            "difficulty_id": str(opp.difficulty_id),
            "commitment_interval_id": str(opp.commitment_interval_id),
            "commitment_interval_count": opp.commitment_interval_count,
            "participant_limit": opp.participant_limit,
            "participant_count": opp.participant_count,
            "status_id": str(opp.status_id),
            # keywords can not contain commas
            "keywords": ",".join(opp.keywords) if opp.keywords else None,
            "date_start": to_db_time(opp.date_start),
            "date_end": to_db_time(opp.date_end),
            "credential_issuance_enabled": int(opp.credential_issuance_enabled),
            "ssi_schema_name": opp.ssi_schema_name,
            "featured": to_db_bool(opp.featured),
            "engagement_type_id": str(opp.engagement_type_id) if opp.engagement_type_id else None,
            "share_with_partners": to_db_bool(opp.share_with_partners),
            "hidden": to_db_bool(opp.hidden),
            "external_id": opp.external_id,
            "date_created": to_db_time(opp.date_created),
            "created_by_user_id": str(opp.created_by_user_id) if opp.created_by_user_id else None,
            "date_modified": to_db_time(opp.date_modified),
            "modified_by_user_id": str(opp.modified_by_user_id) if opp.modified_by_user_id else None,
        }
        return tuple(values[c] for c in _COLUMNS)

    def _row_to_opportunity(self, row: sqlite3.Row) -> Opportunity:
        return Opportunity(
            id=row["id"],
            title=row["title"],
            description=row["description"],
            type_id=row["type_id"],
            type=row["type_name"],
            organization_id=row["organization_id"],
            organization_name=row["organization_name"],
            organization_logo_storage_type=row["organization_logo_storage_type"],
            organization_logo_key=row["organization_logo_key"],
            organization_status_id=row["organization_status_id"],
            organization_status=row["organization_status_name"],
            organization_zlto_reward_balance=_balance(
                row["organization_zlto_reward_pool"], row["organization_zlto_reward_cumulative"]
            ),
            organization_yoma_reward_balance=_balance(
                row["organization_yoma_reward_pool"], row["organization_yoma_reward_cumulative"]
            ),
            summary=row["summary"],
            instructions=row["instructions"],
            url=row["url"],
            zlto_reward=from_db_decimal(row["zlto_reward"]),
            yoma_reward=from_db_decimal(row["yoma_reward"]),
            zlto_reward_pool=from_db_decimal(row["zlto_reward_pool"]),
            yoma_reward_pool=from_db_decimal(row["yoma_reward_pool"]),
            zlto_reward_cumulative=from_db_decimal(row["zlto_reward_cumulative"]),
            yoma_reward_cumulative=from_db_decimal(row["yoma_reward_cumulative"]),
            verification_enabled=bool(row["verification_enabled"]),
            verification_method=row["verification_method"],
            difficulty_id=row["difficulty_id"],
            difficulty=row["difficulty_name"],
            commitment_interval_id=row["commitment_interval_id"],
            commitment_interval=row["commitment_interval_name"],
            commitment_interval_count=row["commitment_interval_count"],
            participant_limit=row["participant_limit"],
            participant_count=row["participant_count"],
            status_id=row["status_id"],
            status=row["status_name"],
            keywords=row["keywords"].split(",") if row["keywords"] else None,
            date_start=from_db_time(row["date_start"]),
            date_end=from_db_time(row["date_end"]),
            credential_issuance_enabled=bool(row["credential_issuance_enabled"]),
            ssi_schema_name=row["ssi_schema_name"],
            featured=from_db_bool(row["featured"]),
            engagement_type_id=row["engagement_type_id"],
            engagement_type=row["engagement_type_name"],
            share_with_partners=from_db_bool(row["share_with_partners"]),
            hidden=from_db_bool(row["hidden"]),
            external_id=row["external_id"],
            date_created=from_db_time(row["date_created"]),
            created_by_user_id=row["created_by_user_id"],
            date_modified=from_db_time(row["date_modified"]),
            modified_by_user_id=row["modified_by_user_id"],
        )

    def _load_children(self, conn: sqlite3.Connection, opportunities: list[Opportunity]) -> None:
        """Populate the lookup collections of each opportunity in place."""
        if not opportunities:
            return
        ids = [str(o.id) for o in opportunities]
        placeholders = ", ".join("?" for _ in ids)
        by_id = {str(o.id): o for o in opportunities}

        for name, (table, column) in ASSOCIATIONS.items():
            extra = ", j.description AS override" if name == "verification_types" else ""
            rows = conn.execute(
                f"""
                SELECT j.opportunity_id, l.id, l.name, l.data{extra}
                FROM {table} j JOIN lookups l ON l.id = j.{column}
                WHERE j.opportunity_id IN ({placeholders})
                ORDER BY l.name
                """,
                tuple(ids),
            ).fetchall()
            grouped: dict[str, list] = defaultdict(list)
            for r in rows:
                data = json.loads(r["data"] or "{}")
                if name == "verification_types":
                    grouped[r["opportunity_id"]].append(
                        OpportunityVerificationTypeItem(
                            id=r["id"],
                            type=r["name"],
                            display_name=data.get("display_name", r["name"]),
                            description=r["override"] or data.get("description"),
                        )
                    )
                else:
                    grouped[r["opportunity_id"]].append(LookupItem(id=r["id"], name=r["name"], data=data))
            for opp_id, opp in by_id.items():
                setattr(opp, name, grouped.get(opp_id, []))

    def insert(self, opp: Opportunity) -> None:
        columns = ", ".join(_COLUMNS)
        placeholders = ", ".join("?" for _ in _COLUMNS)
        with self._db.transaction() as conn:
            conn.execute(f"INSERT INTO opportunities ({columns}) VALUES ({placeholders})", self._to_params(opp))

    def update(self, opp: Opportunity) -> None:
        """Persist all scalar columns. Collections are managed through the association methods."""
        assignments = ", ".join(f"{c} = ?" for c in _COLUMNS if c != "id")
        params = self._to_params(opp)
        with self._db.transaction() as conn:
            conn.execute(
                f"UPDATE opportunities SET {assignments} WHERE id = ?",
                params[1:] + (params[0],),
            )

    def get(self, opp_id: UUID, include_children: bool = True) -> Optional[Opportunity]:
        with self._db.connection() as conn:
            row = conn.execute(f"{_SELECT} WHERE o.id = ?", (str(opp_id),)).fetchone()
            if not row:
                return None
            opp = self._row_to_opportunity(row)
            if include_children:
                self._load_children(conn, [opp])
        return opp

    def get_by_title(self, title: str, include_children: bool = False) -> Optional[Opportunity]:
        """Case-insensitive title lookup."""
        with self._db.connection() as conn:
            row = conn.execute(f"{_SELECT} WHERE o.title = ? COLLATE NOCASE", (title.strip(),)).fetchone()
            if not row:
                return None
            opp = self._row_to_opportunity(row)
            if include_children:
                self._load_children(conn, [opp])
        return opp

    def count(self, query: OpportunityQuery) -> int:
        predicate = query.predicate
        with self._db.connection() as conn:
            row = conn.execute(
                f"SELECT COUNT(*) AS n FROM {OPPORTUNITY_FROM} WHERE {predicate.sql}",
                predicate.params,
            ).fetchone()
        return int(row["n"])

    def list(
        self,
        query: OpportunityQuery,
        *,
        skip: Optional[int] = None,
        take: Optional[int] = None,
        include_children: bool = True,
    ) -> list[Opportunity]:
        predicate = query.predicate
        order_sql, order_params = query.order_clause()
        sql = f"{_SELECT} WHERE {predicate.sql} {order_sql}"
        params: tuple[Any, ...] = predicate.params + order_params
        if take is not None:
            sql += " LIMIT ? OFFSET ?"
            params += (take, skip or 0)
        elif skip:
            sql += " LIMIT -1 OFFSET ?"
            params += (skip,)
        with self._db.connection() as conn:
            rows = conn.execute(sql, params).fetchall()
            items = [self._row_to_opportunity(r) for r in rows]
            if include_children:
                self._load_children(conn, items)
        return items

    def facet_counts(
        self,
        query: OpportunityQuery,
        association: str,
    ) -> dict[str, int]:
        """Number of matching opportunities per associated lookup id."""
        table, column = ASSOCIATIONS[association]
        predicate = query.predicate
        with self._db.connection() as conn:
            rows = conn.execute(
                f"""
                SELECT j.{column} AS item_id, COUNT(DISTINCT o.id) AS n
                FROM {OPPORTUNITY_FROM}
                JOIN {table} j ON j.opportunity_id = o.id
                WHERE {predicate.sql}
                GROUP BY j.{column}
                """,
                predicate.params,
            ).fetchall()
        return {r["item_id"]: int(r["n"]) for r in rows}

    def column_counts(self, query: OpportunityQuery, expression: str) -> list[tuple[Any, int]]:
        """(value, count) for a column or expression over matching opportunities."""
        predicate = query.predicate
        with self._db.connection() as conn:
            rows = conn.execute(
                f"""
                SELECT {expression} AS value, COUNT(*) AS n
                FROM {OPPORTUNITY_FROM}
                WHERE {predicate.sql}
                GROUP BY {expression}
                """,
                predicate.params,
            ).fetchall()
        return [(r["value"], int(r["n"])) for r in rows]

    def scalar(self, query: OpportunityQuery, expression: str) -> Any:
        """Single aggregate (e.g. MIN/MAX) over matching opportunities."""
        predicate = query.predicate
        with self._db.connection() as conn:
            row = conn.execute(
                f"SELECT {expression} AS value FROM {OPPORTUNITY_FROM} WHERE {predicate.sql}",
                predicate.params,
            ).fetchone()
        return row["value"] if row else None

    def has_association(self, association: str, opp_id: UUID, item_id: UUID) -> bool:
        table, column = ASSOCIATIONS[association]
        with self._db.connection() as conn:
            row = conn.execute(
                f"SELECT 1 FROM {table} WHERE opportunity_id = ? AND {column} = ?",
                (str(opp_id), str(item_id)),
            ).fetchone()
        return row is not None

    def add_association(
        self,
        association: str,
        opp_id: UUID,
        item_id: UUID,
        description: Optional[str] = None,
    ) -> None:
        table, column = ASSOCIATIONS[association]
        now = to_db_time(datetime.now(timezone.utc))
        with self._db.transaction() as conn:
            if association == "verification_types":
                conn.execute(
                    f"""
                    INSERT INTO {table} (id, opportunity_id, {column}, description, date_created, date_modified)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (str(uuid.uuid4()), str(opp_id), str(item_id), description, now, now),
                )
            else:
                conn.execute(
                    f"INSERT INTO {table} (id, opportunity_id, {column}, date_created) VALUES (?, ?, ?, ?)",
                    (str(uuid.uuid4()), str(opp_id), str(item_id), now),
                )

    def update_verification_type_description(
        self, opp_id: UUID, verification_type_id: UUID, description: Optional[str]
    ) -> None:
        now = to_db_time(datetime.now(timezone.utc))
        with self._db.transaction() as conn:
            conn.execute(
                """
                UPDATE opportunity_verification_types SET description = ?, date_modified = ?
                WHERE opportunity_id = ? AND verification_type_id = ?
                """,
                (description, now, str(opp_id), str(verification_type_id)),
            )

    def remove_association(self, association: str, opp_id: UUID, item_id: UUID) -> bool:
        """Delete the join row. Returns False when it did not exist."""
        table, column = ASSOCIATIONS[association]
        with self._db.transaction() as conn:
            cursor = conn.execute(
                f"DELETE FROM {table} WHERE opportunity_id = ? AND {column} = ?",
                (str(opp_id), str(item_id)),
            )
        return cursor.rowcount > 0
