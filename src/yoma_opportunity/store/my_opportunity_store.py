"""SQLite store for user actions against opportunities (viewed, saved, verification)."""

import uuid
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from yoma_opportunity.store.database import Database, to_db_time


class MyOpportunityStore:
    def __init__(self, db: Database):
        self._db = db

    def insert(
        self,
        user_id: UUID,
        opportunity_id: UUID,
        action_id: UUID,
        verification_status_id: Optional[UUID] = None,
        date_completed: Optional[datetime] = None,
    ) -> UUID:
        new_id = uuid.uuid4()
        now = to_db_time(datetime.now(timezone.utc))
        with self._db.transaction() as conn:
            conn.execute(
                """
                INSERT INTO my_opportunities (
                    id, user_id, opportunity_id, action_id, verification_status_id,
                    date_completed, date_created, date_modified
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    str(new_id),
                    str(user_id),
                    str(opportunity_id),
                    str(action_id),
                    str(verification_status_id) if verification_status_id else None,
                    to_db_time(date_completed),
                    now,
                    now,
                ),
            )
        return new_id

    def count_by_opportunity(
        self,
        opportunity_ids: list[UUID],
        action_id: UUID,
        verification_status_id: Optional[UUID] = None,
    ) -> dict[str, int]:
        """Rows per opportunity for the given action (and verification status)."""
        if not opportunity_ids:
            return {}
        placeholders = ", ".join("?" for _ in opportunity_ids)
        sql = f"""
            SELECT opportunity_id, COUNT(*) AS n FROM my_opportunities
            WHERE opportunity_id IN ({placeholders}) AND action_id = ?
        """
        params: tuple = tuple(str(i) for i in opportunity_ids) + (str(action_id),)
        if verification_status_id is not None:
            sql += " AND verification_status_id = ?"
            params += (str(verification_status_id),)
        sql += " GROUP BY opportunity_id"
        with self._db.connection() as conn:
            rows = conn.execute(sql, params).fetchall()
        return {r["opportunity_id"]: int(r["n"]) for r in rows}

    def aggregate_by_opportunity(
        self,
        action_id: UUID,
        opportunity_status_ids: list[UUID],
        organization_status_id: UUID,
        verification_status_id: Optional[UUID] = None,
    ) -> list[tuple[str, int]]:
        """
        (opportunity id, count) for opportunities in the given statuses under an
        organization in the given status, most frequent first.
        """
        if not opportunity_status_ids:
            return []
        placeholders = ", ".join("?" for _ in opportunity_status_ids)
        sql = f"""
            SELECT m.opportunity_id, COUNT(*) AS n
            FROM my_opportunities m
            JOIN opportunities o ON o.id = m.opportunity_id
            JOIN organizations org ON org.id = o.organization_id
            WHERE m.action_id = ? AND o.status_id IN ({placeholders}) AND org.status_id = ?
        """
        params: tuple = (str(action_id),) + tuple(str(i) for i in opportunity_status_ids) + (str(organization_status_id),)
        if verification_status_id is not None:
            sql += " AND m.verification_status_id = ?"
            params += (str(verification_status_id),)
        sql += " GROUP BY m.opportunity_id ORDER BY n DESC, m.opportunity_id"
        with self._db.connection() as conn:
            rows = conn.execute(sql, params).fetchall()
        return [(r["opportunity_id"], int(r["n"])) for r in rows]
