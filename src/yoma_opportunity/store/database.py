"""SQLite connection handling with nested transaction scopes."""

import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path
from typing import Iterator, Optional


def to_db_time(value: Optional[datetime]) -> Optional[str]:
    """Serialize to UTC ISO text so lexical order matches time order. Naive values are taken as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def from_db_time(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def to_db_decimal(value: Optional[Decimal]) -> Optional[float]:
    return float(value) if value is not None else None


def from_db_decimal(value: Optional[float]) -> Optional[Decimal]:
    return Decimal(str(value)) if value is not None else None


def to_db_bool(value: Optional[bool]) -> Optional[int]:
    return int(value) if value is not None else None


def from_db_bool(value: Optional[int]) -> Optional[bool]:
    return bool(value) if value is not None else None


class Database:
    """
    Shared SQLite database for all stores.

    transaction() joins the calling thread's enclosing scope when there is one;
    transaction(requires_new=True) always opens an independent connection that
    commits on its own. connection() hands out the current scope's connection,
    or a short-lived one for reads outside any scope.
    """

    def __init__(self, db_path: str | Path = "yoma_opportunity.db", *, timeout: float = 30.0):
        self._db_path = Path(db_path)
        self._timeout = timeout
        self._local = threading.local()
        self._ensure_schema()

    @property
    def path(self) -> Path:
        return self._db_path

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path, timeout=self._timeout)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    def _ensure_schema(self) -> None:
        schema_path = Path(__file__).parent / "schema.sql"
        conn = self._connect()
        try:
            conn.executescript(schema_path.read_text())
            conn.commit()
        finally:
            conn.close()

    def _scopes(self) -> list[sqlite3.Connection]:
        scopes = getattr(self._local, "scopes", None)
        if scopes is None:
            scopes = self._local.scopes = []
        return scopes

    @property
    def in_transaction(self) -> bool:
        return bool(self._scopes())

    @contextmanager
    def transaction(self, requires_new: bool = False) -> Iterator[sqlite3.Connection]:
        """Commit on success, roll back on error. Joined scopes defer to the outermost one."""
        scopes = self._scopes()
        if scopes and not requires_new:
            yield scopes[-1]
            return

        conn = self._connect()
        scopes.append(conn)
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            scopes.pop()
            conn.close()

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        scopes = self._scopes()
        if scopes:
            yield scopes[-1]
            return

        conn = self._connect()
        try:
            yield conn
        finally:
            conn.close()
