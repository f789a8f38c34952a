"""SQLite-backed contact records used by the CRUD capabilities."""

from __future__ import annotations

import sqlite3
from typing import Literal

import structlog

from .models import Contact

logger = structlog.get_logger(__name__)

ContactField = Literal["name", "email", "company", "notes"]
CONTACT_FIELDS: tuple[str, ...] = ("name", "email", "company", "notes")

SEED_CONTACTS: list[tuple[str, str, str, str]] = [
    ("Alice Johnson", "alice@acme.com", "Acme Corp", "Key account, prefers email"),
    ("Bob Smith", "bob@globex.com", "Globex Inc", "Referred by Alice"),
    ("Carol White", "carol@initech.com", "Initech", "Interested in enterprise plan"),
]

_SCHEMA = """
CREATE TABLE IF NOT EXISTS contacts (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    email TEXT NOT NULL,
    company TEXT NOT NULL DEFAULT '',
    notes TEXT NOT NULL DEFAULT '',
    created_at TEXT NOT NULL DEFAULT (datetime('now'))
)
"""


def _to_contact(row: sqlite3.Row) -> Contact:
    return Contact(**dict(row))


class ContactStore:
    def __init__(self, path: str = ":memory:") -> None:
        self._conn = sqlite3.connect(path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        if path != ":memory:":
            self._conn.execute("PRAGMA journal_mode = WAL")
        self._conn.execute(_SCHEMA)
        (count,) = self._conn.execute("SELECT COUNT(*) FROM contacts").fetchone()
        if count == 0:
            self._seed()
        self._conn.commit()
        logger.debug("contact_store_opened", path=path, seeded=count == 0)

    def _seed(self) -> None:
        self._conn.executemany(
            "INSERT INTO contacts (name, email, company, notes) VALUES (?, ?, ?, ?)",
            SEED_CONTACTS,
        )

    def list_all(self) -> list[Contact]:
        rows = self._conn.execute("SELECT * FROM contacts ORDER BY id").fetchall()
        return [_to_contact(row) for row in rows]

    def search(self, query: str) -> list[Contact]:
        pattern = f"%{query}%"
        rows = self._conn.execute(
            "SELECT * FROM contacts WHERE name LIKE ? OR email LIKE ? OR company LIKE ? "
            "OR notes LIKE ? ORDER BY id",
            (pattern, pattern, pattern, pattern),
        ).fetchall()
        return [_to_contact(row) for row in rows]

    def get(self, contact_id: int) -> Contact | None:
        row = self._conn.execute("SELECT * FROM contacts WHERE id = ?", (contact_id,)).fetchone()
        return _to_contact(row) if row is not None else None

    def create(self, name: str, email: str, company: str = "", notes: str = "") -> Contact:
        cursor = self._conn.execute(
            "INSERT INTO contacts (name, email, company, notes) VALUES (?, ?, ?, ?)",
            (name, email, company, notes),
        )
        self._conn.commit()
        contact = self.get(int(cursor.lastrowid or 0))
        assert contact is not None
        return contact

    def update_field(self, contact_id: int, field: ContactField, value: str) -> Contact | None:
        if field not in CONTACT_FIELDS:
            raise ValueError(f"Unknown contact field: {field}")
        if self.get(contact_id) is None:
            return None
        # field is restricted to CONTACT_FIELDS above
        self._conn.execute(f"UPDATE contacts SET {field} = ? WHERE id = ?", (value, contact_id))
        self._conn.commit()
        return self.get(contact_id)

    def delete(self, contact_id: int) -> bool:
        cursor = self._conn.execute("DELETE FROM contacts WHERE id = ?", (contact_id,))
        self._conn.commit()
        return cursor.rowcount > 0

    def reset(self) -> None:
        self._conn.execute("DELETE FROM contacts")
        self._conn.execute("DELETE FROM sqlite_sequence WHERE name = 'contacts'")
        self._seed()
        self._conn.commit()
        logger.info("contact_store_reset")

    def close(self) -> None:
        self._conn.close()
