"""Reference tables (statuses, categories, countries, ...) in a single lookups table."""

import json
import sqlite3
import uuid
from typing import Any, Optional

from yoma_opportunity.models.lookup import ENUM_LOOKUPS, LookupItem, LookupKind, VerificationType
from yoma_opportunity.store.database import Database

_VERIFICATION_TYPE_DATA: dict[str, dict[str, str]] = {
    VerificationType.FILE_UPLOAD.value: {"display_name": "File Upload", "description": "A certificate or document proving completion"},
    VerificationType.PICTURE.value: {"display_name": "Picture", "description": "A picture taken while completing the opportunity"},
    VerificationType.LOCATION.value: {"display_name": "Location", "description": "The location where the opportunity was completed"},
    VerificationType.VOICE_NOTE.value: {"display_name": "Voice Note", "description": "A voice note describing the experience"},
}


class LookupStore:
    """SQLite store for lookup items keyed by (kind, name)."""

    def __init__(self, db: Database):
        self._db = db

    def _row_to_item(self, row: sqlite3.Row) -> LookupItem:
        return LookupItem(id=row["id"], name=row["name"], data=json.loads(row["data"] or "{}"))

    def seed_defaults(self) -> int:
        """Insert enumerated lookups that are missing. Returns number inserted."""
        inserted = 0
        with self._db.transaction() as conn:
            for kind, enum_cls in ENUM_LOOKUPS.items():
                for member in enum_cls:
                    data = _VERIFICATION_TYPE_DATA.get(member.value, {}) if kind == LookupKind.VERIFICATION_TYPE else {}
                    cursor = conn.execute(
                        "INSERT OR IGNORE INTO lookups (id, kind, name, data) VALUES (?, ?, ?, ?)",
                        (str(uuid.uuid4()), kind.value, member.value, json.dumps(data)),
                    )
                    inserted += cursor.rowcount
        return inserted

    def add(self, kind: LookupKind, name: str, data: Optional[dict[str, Any]] = None) -> LookupItem:
        """Insert a lookup item, or return the existing one with the same name."""
        with self._db.transaction() as conn:
            conn.execute(
                "INSERT OR IGNORE INTO lookups (id, kind, name, data) VALUES (?, ?, ?, ?)",
                (str(uuid.uuid4()), kind.value, name, json.dumps(data or {})),
            )
            row = conn.execute(
                "SELECT * FROM lookups WHERE kind = ? AND name = ?",
                (kind.value, name),
            ).fetchone()
        return self._row_to_item(row)

    def list(self, kind: LookupKind) -> list[LookupItem]:
        with self._db.connection() as conn:
            rows = conn.execute(
                "SELECT * FROM lookups WHERE kind = ? ORDER BY name",
                (kind.value,),
            ).fetchall()
        return [self._row_to_item(r) for r in rows]
