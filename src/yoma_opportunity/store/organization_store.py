"""SQLite stores for organizations, users and organization administrators."""

import sqlite3
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional
from uuid import UUID

from yoma_opportunity.models.organization import Organization, UserInfo
from yoma_opportunity.store.database import (
    Database,
    from_db_decimal,
    from_db_time,
    to_db_decimal,
    to_db_time,
)

_ORGANIZATION_SELECT = """
    SELECT org.*, s.name AS status_name
    FROM organizations org
    JOIN lookups s ON s.id = org.status_id
"""


class OrganizationStore:
    """Organizations with their reward pools."""

    def __init__(self, db: Database):
        self._db = db

    def _row_to_organization(self, row: sqlite3.Row) -> Organization:
        return Organization(
            id=row["id"],
            name=row["name"],
            status_id=row["status_id"],
            status=row["status_name"],
            logo_storage_type=row["logo_storage_type"],
            logo_key=row["logo_key"],
            zlto_reward_pool=from_db_decimal(row["zlto_reward_pool"]),
            yoma_reward_pool=from_db_decimal(row["yoma_reward_pool"]),
            zlto_reward_cumulative=from_db_decimal(row["zlto_reward_cumulative"]),
            yoma_reward_cumulative=from_db_decimal(row["yoma_reward_cumulative"]),
            date_created=from_db_time(row["date_created"]),
            date_modified=from_db_time(row["date_modified"]),
        )

    def insert(self, org: Organization) -> None:
        with self._db.transaction() as conn:
            conn.execute(
                """
                INSERT INTO organizations (
                    id, name, status_id, logo_storage_type, logo_key,
                    zlto_reward_pool, yoma_reward_pool, zlto_reward_cumulative, yoma_reward_cumulative,
                    date_created, date_modified
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    str(org.id),
                    org.name,
                    str(org.status_id),
                    org.logo_storage_type,
                    org.logo_key,
                    to_db_decimal(org.zlto_reward_pool),
                    to_db_decimal(org.yoma_reward_pool),
                    to_db_decimal(org.zlto_reward_cumulative),
                    to_db_decimal(org.yoma_reward_cumulative),
                    to_db_time(org.date_created),
                    to_db_time(org.date_modified),
                ),
            )

    def get(self, org_id: UUID) -> Optional[Organization]:
        with self._db.connection() as conn:
            row = conn.execute(f"{_ORGANIZATION_SELECT} WHERE org.id = ?", (str(org_id),)).fetchone()
        return self._row_to_organization(row) if row else None

    def get_by_name(self, name: str) -> Optional[Organization]:
        """Case-insensitive name lookup."""
        with self._db.connection() as conn:
            row = conn.execute(
                f"{_ORGANIZATION_SELECT} WHERE org.name = ? COLLATE NOCASE", (name.strip(),)
            ).fetchone()
        return self._row_to_organization(row) if row else None

    def list_by_ids(self, org_ids: list[UUID]) -> list[Organization]:
        if not org_ids:
            return []
        placeholders = ", ".join("?" for _ in org_ids)
        with self._db.connection() as conn:
            rows = conn.execute(
                f"{_ORGANIZATION_SELECT} WHERE org.id IN ({placeholders}) ORDER BY org.name",
                tuple(str(i) for i in org_ids),
            ).fetchall()
        return [self._row_to_organization(r) for r in rows]

    def update_status(self, org_id: UUID, status_id: UUID) -> None:
        now = to_db_time(datetime.now(timezone.utc))
        with self._db.transaction() as conn:
            conn.execute(
                "UPDATE organizations SET status_id = ?, date_modified = ? WHERE id = ?",
                (str(status_id), now, str(org_id)),
            )

    def update_reward_cumulatives(
        self,
        org_id: UUID,
        zlto_reward_cumulative: Optional[Decimal],
        yoma_reward_cumulative: Optional[Decimal],
    ) -> None:
        now = to_db_time(datetime.now(timezone.utc))
        with self._db.transaction() as conn:
            conn.execute(
                """
                UPDATE organizations SET zlto_reward_cumulative = ?, yoma_reward_cumulative = ?, date_modified = ?
                WHERE id = ?
                """,
                (to_db_decimal(zlto_reward_cumulative), to_db_decimal(yoma_reward_cumulative), now, str(org_id)),
            )

    def add_admin(self, org_id: UUID, user_id: UUID) -> None:
        now = to_db_time(datetime.now(timezone.utc))
        with self._db.transaction() as conn:
            conn.execute(
                "INSERT OR IGNORE INTO organization_admins (organization_id, user_id, date_created) VALUES (?, ?, ?)",
                (str(org_id), str(user_id), now),
            )

    def is_admin(self, org_id: UUID, user_id: UUID) -> bool:
        with self._db.connection() as conn:
            row = conn.execute(
                "SELECT 1 FROM organization_admins WHERE organization_id = ? AND user_id = ?",
                (str(org_id), str(user_id)),
            ).fetchone()
        return row is not None

    def list_administered_by(self, user_id: UUID) -> list[Organization]:
        """Organizations the user administers."""
        with self._db.connection() as conn:
            rows = conn.execute(
                f"""
                {_ORGANIZATION_SELECT}
                JOIN organization_admins a ON a.organization_id = org.id
                WHERE a.user_id = ?
                ORDER BY org.name
                """,
                (str(user_id),),
            ).fetchall()
        return [self._row_to_organization(r) for r in rows]


class UserStore:
    """Users and their organization admin memberships."""

    def __init__(self, db: Database):
        self._db = db

    def _row_to_user(self, row: sqlite3.Row) -> UserInfo:
        return UserInfo(
            id=row["id"],
            email=row["email"],
            display_name=row["display_name"],
            country_id=row["country_id"],
            is_admin=bool(row["is_admin"]),
        )

    def insert(self, user: UserInfo) -> None:
        now = to_db_time(datetime.now(timezone.utc))
        with self._db.transaction() as conn:
            conn.execute(
                "INSERT INTO users (id, email, display_name, country_id, is_admin, date_created) VALUES (?, ?, ?, ?, ?, ?)",
                (
                    str(user.id),
                    user.email,
                    user.display_name,
                    str(user.country_id) if user.country_id else None,
                    int(user.is_admin),
                    now,
                ),
            )

    def get(self, user_id: UUID) -> Optional[UserInfo]:
        with self._db.connection() as conn:
            row = conn.execute("SELECT * FROM users WHERE id = ?", (str(user_id),)).fetchone()
        return self._row_to_user(row) if row else None

    def get_by_email(self, email: str) -> Optional[UserInfo]:
        with self._db.connection() as conn:
            row = conn.execute("SELECT * FROM users WHERE email = ?", (email,)).fetchone()
        return self._row_to_user(row) if row else None

    def list_platform_admins(self) -> list[UserInfo]:
        with self._db.connection() as conn:
            rows = conn.execute("SELECT * FROM users WHERE is_admin = 1 ORDER BY email").fetchall()
        return [self._row_to_user(r) for r in rows]

    def list_organization_admins(self, org_id: UUID) -> list[UserInfo]:
        with self._db.connection() as conn:
            rows = conn.execute(
                """
                SELECT u.* FROM users u
                JOIN organization_admins a ON a.user_id = u.id
                WHERE a.organization_id = ?
                ORDER BY u.email
                """,
                (str(org_id),),
            ).fetchall()
        return [self._row_to_user(r) for r in rows]
