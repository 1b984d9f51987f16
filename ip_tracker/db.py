"""SQLite key-value persistence for settings and session snapshots."""

import json
import logging
import sqlite3
import threading
from datetime import datetime
from pathlib import Path

from .store import SessionStore

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS records (
    collection TEXT NOT NULL,
    org_id TEXT NOT NULL,
    payload TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    PRIMARY KEY (collection, org_id)
);

CREATE INDEX IF NOT EXISTS idx_records_org_id ON records(org_id);
"""


class Database:
    """Stores one JSON document per (collection, organization) pair.

    Satisfies the settings repository interface the session store expects.
    """

    def __init__(self, db_path: str = "data/ip-tracker.db"):
        self.db_path = db_path
        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(db_path, check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        # Background check jobs and request threads share this connection
        self._lock = threading.Lock()

    def init_db(self):
        """Create tables and indexes."""
        self.conn.executescript(SCHEMA)
        self.conn.commit()

    def close(self):
        self.conn.close()

    def __enter__(self):
        self.init_db()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def get(self, collection: str, org_id: str) -> dict | None:
        with self._lock:
            cur = self.conn.execute(
                "SELECT payload FROM records WHERE collection = ? AND org_id = ?",
                (collection, org_id),
            )
            row = cur.fetchone()
        return json.loads(row["payload"]) if row else None

    def upsert(self, collection: str, org_id: str, value: dict):
        """Insert or replace the document for a collection and organization."""
        with self._lock:
            self.conn.execute(
                """INSERT INTO records (collection, org_id, payload, updated_at)
                   VALUES (?, ?, ?, ?)
                   ON CONFLICT(collection, org_id)
                   DO UPDATE SET payload = excluded.payload, updated_at = excluded.updated_at""",
                (collection, org_id, json.dumps(value), datetime.now().isoformat()),
            )
            self.conn.commit()

    def delete(self, collection: str, org_id: str) -> bool:
        """Delete a document. Returns True if one existed."""
        with self._lock:
            cur = self.conn.execute(
                "DELETE FROM records WHERE collection = ? AND org_id = ?",
                (collection, org_id),
            )
            self.conn.commit()
        return cur.rowcount > 0

    def list_org_ids(self) -> list[str]:
        with self._lock:
            cur = self.conn.execute("SELECT DISTINCT org_id FROM records ORDER BY org_id")
            return [row["org_id"] for row in cur.fetchall()]

    def get_updated_at(self, collection: str, org_id: str) -> datetime | None:
        with self._lock:
            cur = self.conn.execute(
                "SELECT updated_at FROM records WHERE collection = ? AND org_id = ?",
                (collection, org_id),
            )
            row = cur.fetchone()
        return datetime.fromisoformat(row["updated_at"]) if row else None


def save_session(db: Database, store: SessionStore, org_id: str | None = None):
    """Persist every entity collection of a store, one document each."""
    org_id = org_id or store.org_id
    snapshot = store.snapshot()
    for collection, records in snapshot.items():
        db.upsert(collection, org_id, {"items": records})
    logger.info(f"Saved session for {org_id}: " + ", ".join(f"{len(v)} {k}" for k, v in snapshot.items()))


def load_session(db: Database, store: SessionStore, org_id: str | None = None) -> bool:
    """Load persisted collections and settings into a store.

    Returns:
        True if any collection was found for the organization.
    """
    org_id = org_id or store.org_id
    snapshot = {}
    for collection in SessionStore.COLLECTIONS:
        stored = db.get(collection, org_id)
        if stored is not None:
            snapshot[collection] = stored.get("items", [])
    if snapshot:
        store.restore(snapshot)
        logger.info(f"Loaded session for {org_id} ({len(snapshot)} collections)")
    store.load_settings()
    return bool(snapshot)
