"""
SQLite grant store.

Handles:
- Schema creation
- Idempotent upsert (INSERT ... ON CONFLICT) preserving first_seen_at
- Interactions, sent-alert ledger and crawl log tables
"""

import json
import sqlite3
import threading
from contextlib import contextmanager
from datetime import date, datetime
from pathlib import Path
from typing import Iterable, Iterator, Optional

import structlog

from grant_tracker.core.errors import StoreError
from grant_tracker.core.models import (
    CrawlOutcome,
    FunderType,
    InteractionAction,
    NormalizedGrant,
    StoredGrantRecord,
)
from .base import (
    ActiveGrantFilter,
    CrawlLogEntry,
    GrantStore,
    InactiveCriteria,
    Interaction,
    sort_for_listing,
    unique_by_external_id,
    utcnow,
)

logger = structlog.get_logger(__name__)


SCHEMA = """
CREATE TABLE IF NOT EXISTS grants (
    external_id TEXT PRIMARY KEY,
    source TEXT NOT NULL,
    title TEXT NOT NULL,
    funder TEXT,
    funder_type TEXT NOT NULL DEFAULT 'other',
    description TEXT,
    amount_min INTEGER,
    amount_max INTEGER,
    deadline TEXT,
    is_rolling INTEGER NOT NULL DEFAULT 0,
    is_local INTEGER NOT NULL DEFAULT 0,
    sectors_json TEXT NOT NULL DEFAULT '[]',
    eligibility_json TEXT NOT NULL DEFAULT '[]',
    apply_url TEXT,
    raw_json TEXT NOT NULL DEFAULT '{}',
    first_seen_at TEXT NOT NULL,
    last_seen_at TEXT NOT NULL,
    is_active INTEGER NOT NULL DEFAULT 1
);
CREATE INDEX IF NOT EXISTS idx_grants_source ON grants(source);
CREATE INDEX IF NOT EXISTS idx_grants_active_deadline ON grants(is_active, deadline);

CREATE TABLE IF NOT EXISTS grant_interactions (
    org_id TEXT NOT NULL,
    grant_id TEXT NOT NULL,
    action TEXT NOT NULL,
    created_at TEXT NOT NULL,
    PRIMARY KEY (org_id, grant_id, action)
);
CREATE INDEX IF NOT EXISTS idx_interactions_grant ON grant_interactions(grant_id, action);

CREATE TABLE IF NOT EXISTS sent_grant_alerts (
    org_id TEXT NOT NULL,
    grant_id TEXT NOT NULL,
    sent_at TEXT NOT NULL,
    PRIMARY KEY (org_id, grant_id)
);

CREATE TABLE IF NOT EXISTS crawl_logs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    source TEXT NOT NULL,
    batch INTEGER,
    fetched INTEGER NOT NULL DEFAULT 0,
    upserted INTEGER NOT NULL DEFAULT 0,
    error_kind TEXT,
    error TEXT,
    ran_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_crawl_logs_ran_at ON crawl_logs(ran_at);
"""

UPSERT_SQL = """
INSERT INTO grants (
    external_id, source, title, funder, funder_type, description,
    amount_min, amount_max, deadline, is_rolling, is_local,
    sectors_json, eligibility_json, apply_url, raw_json,
    first_seen_at, last_seen_at, is_active
)
VALUES (
    :external_id, :source, :title, :funder, :funder_type, :description,
    :amount_min, :amount_max, :deadline, :is_rolling, :is_local,
    :sectors_json, :eligibility_json, :apply_url, :raw_json,
    :now, :now, 1
)
ON CONFLICT(external_id) DO UPDATE SET
    source=excluded.source,
    title=excluded.title,
    funder=excluded.funder,
    funder_type=excluded.funder_type,
    description=excluded.description,
    amount_min=excluded.amount_min,
    amount_max=excluded.amount_max,
    deadline=excluded.deadline,
    is_rolling=excluded.is_rolling,
    is_local=excluded.is_local,
    sectors_json=excluded.sectors_json,
    eligibility_json=excluded.eligibility_json,
    apply_url=excluded.apply_url,
    raw_json=excluded.raw_json,
    last_seen_at=excluded.last_seen_at,
    is_active=1;
"""


class SQLiteGrantStore(GrantStore):
    """
    Persistent grant store on SQLite.

    One connection is shared across threads behind a lock, which also
    makes ":memory:" databases usable from asyncio.to_thread workers.

    Usage:
        store = SQLiteGrantStore("grants.db")
        store.upsert(grants)
        record = store.get_grant("gov_uk_community-ownership-fund")
    """

    def __init__(self, path: str = "grants.db"):
        """
        Initialize store.

        Args:
            path: Path to SQLite database file, or ":memory:"
        """
        self.path = path
        if path != ":memory:":
            Path(path).parent.mkdir(parents=True, exist_ok=True)

        self._lock = threading.Lock()
        self._conn = sqlite3.connect(path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row

        with self.get_connection() as conn:
            conn.executescript(SCHEMA)

        logger.info("store_initialized", path=path)

    @contextmanager
    def get_connection(self) -> Iterator[sqlite3.Connection]:
        """
        Locked connection; commits on success, rolls back on error.

        Raises:
            StoreError: On any sqlite3 error
        """
        with self._lock:
            try:
                yield self._conn
                self._conn.commit()
            except sqlite3.Error as e:
                self._conn.rollback()
                raise StoreError(f"SQLite error: {e}") from e
            except BaseException:
                self._conn.rollback()
                raise

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    # Grants

    def upsert(self, grants: list[NormalizedGrant], now: Optional[datetime] = None) -> int:
        if not grants:
            return 0
        now_iso = (now or utcnow()).isoformat()
        rows = [self._grant_params(grant, now_iso) for grant in unique_by_external_id(grants)]

        with self.get_connection() as conn:
            conn.executemany(UPSERT_SQL, rows)

        logger.debug("grants_upserted", count=len(rows))
        return len(rows)

    def mark_inactive(self, criteria: InactiveCriteria) -> list[str]:
        if criteria.deadline_before is None and criteria.external_ids is None:
            return []

        clauses = ["is_active = 1"]
        params: list = []
        if criteria.deadline_before is not None:
            clauses.append("is_rolling = 0 AND deadline IS NOT NULL AND deadline < ?")
            params.append(criteria.deadline_before.isoformat())
        if criteria.external_ids is not None:
            ids = sorted(criteria.external_ids)
            if not ids:
                return []
            clauses.append(f"external_id IN ({', '.join('?' for _ in ids)})")
            params.extend(ids)
        where = " AND ".join(clauses)

        with self.get_connection() as conn:
            affected = [
                row["external_id"]
                for row in conn.execute(f"SELECT external_id FROM grants WHERE {where}", params)
            ]
            if affected:
                conn.execute(f"UPDATE grants SET is_active = 0 WHERE {where}", params)

        return sorted(affected)

    def read_active_grants(self, grant_filter: Optional[ActiveGrantFilter] = None) -> list[StoredGrantRecord]:
        grant_filter = grant_filter or ActiveGrantFilter()
        query = "SELECT * FROM grants WHERE is_active = 1"
        params: list = []
        if grant_filter.sources is not None:
            sources = sorted(grant_filter.sources)
            query += f" AND source IN ({', '.join('?' for _ in sources)})"
            params.extend(sources)

        with self.get_connection() as conn:
            rows = conn.execute(query, params).fetchall()

        records = [r for r in (self._row_to_record(row) for row in rows) if grant_filter.matches(r)]
        records = sort_for_listing(records)
        if grant_filter.limit is not None:
            records = records[: grant_filter.limit]
        return records

    def get_grant(self, external_id: str) -> Optional[StoredGrantRecord]:
        with self.get_connection() as conn:
            row = conn.execute(
                "SELECT * FROM grants WHERE external_id = ? LIMIT 1", (external_id,)
            ).fetchone()
        return self._row_to_record(row) if row else None

    # Interactions

    def record_interaction(
        self, org_id: str, grant_id: str, action: InteractionAction, now: Optional[datetime] = None
    ) -> bool:
        action = InteractionAction(action)
        with self.get_connection() as conn:
            cursor = conn.execute(
                """
                INSERT INTO grant_interactions (org_id, grant_id, action, created_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(org_id, grant_id, action) DO NOTHING
                """,
                (org_id, grant_id, action.value, (now or utcnow()).isoformat()),
            )
            return cursor.rowcount > 0

    def remove_interaction(self, org_id: str, grant_id: str, action: InteractionAction) -> bool:
        with self.get_connection() as conn:
            cursor = conn.execute(
                "DELETE FROM grant_interactions WHERE org_id = ? AND grant_id = ? AND action = ?",
                (org_id, grant_id, InteractionAction(action).value),
            )
            return cursor.rowcount > 0

    def get_interactions(
        self, org_id: str, actions: Optional[Iterable[InteractionAction]] = None
    ) -> list[Interaction]:
        query = "SELECT * FROM grant_interactions WHERE org_id = ?"
        params: list = [org_id]
        if actions is not None:
            values = sorted({InteractionAction(a).value for a in actions})
            if not values:
                return []
            query += f" AND action IN ({', '.join('?' for _ in values)})"
            params.extend(values)
        query += " ORDER BY created_at DESC, grant_id DESC, action DESC"

        with self.get_connection() as conn:
            rows = conn.execute(query, params).fetchall()

        return [
            Interaction(
                org_id=row["org_id"],
                grant_id=row["grant_id"],
                action=InteractionAction(row["action"]),
                created_at=datetime.fromisoformat(row["created_at"]),
            )
            for row in rows
        ]

    def count_flags(self, grant_id: str) -> int:
        with self.get_connection() as conn:
            row = conn.execute(
                "SELECT COUNT(DISTINCT org_id) AS n FROM grant_interactions WHERE grant_id = ? AND action = ?",
                (grant_id, InteractionAction.FLAGGED.value),
            ).fetchone()
        return int(row["n"])

    # Sent alerts

    def sent_alert_ids(self, org_id: str) -> set[str]:
        with self.get_connection() as conn:
            rows = conn.execute(
                "SELECT grant_id FROM sent_grant_alerts WHERE org_id = ?", (org_id,)
            ).fetchall()
        return {row["grant_id"] for row in rows}

    def mark_alerts_sent(self, org_id: str, grant_ids: Iterable[str], now: Optional[datetime] = None) -> int:
        now_iso = (now or utcnow()).isoformat()
        added = 0
        with self.get_connection() as conn:
            for grant_id in dict.fromkeys(grant_ids):
                cursor = conn.execute(
                    """
                    INSERT INTO sent_grant_alerts (org_id, grant_id, sent_at)
                    VALUES (?, ?, ?)
                    ON CONFLICT(org_id, grant_id) DO NOTHING
                    """,
                    (org_id, grant_id, now_iso),
                )
                added += cursor.rowcount
        return added

    # Crawl log

    def record_crawl_outcomes(
        self, outcomes: list[CrawlOutcome], batch: Optional[int] = None, now: Optional[datetime] = None
    ) -> None:
        now = now or utcnow()
        entries = [CrawlLogEntry.from_outcome(o, batch, now) for o in outcomes]
        with self.get_connection() as conn:
            conn.executemany(
                """
                INSERT INTO crawl_logs (source, batch, fetched, upserted, error_kind, error, ran_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                [
                    (e.source, e.batch, e.fetched, e.upserted, e.error_kind, e.error, e.ran_at.isoformat())
                    for e in entries
                ],
            )

    def recent_crawl_logs(self, limit: int = 50) -> list[CrawlLogEntry]:
        with self.get_connection() as conn:
            rows = conn.execute(
                "SELECT * FROM crawl_logs ORDER BY ran_at DESC, id DESC LIMIT ?", (limit,)
            ).fetchall()
        return [
            CrawlLogEntry(
                source=row["source"],
                batch=row["batch"],
                fetched=row["fetched"],
                upserted=row["upserted"],
                error_kind=row["error_kind"],
                error=row["error"],
                ran_at=datetime.fromisoformat(row["ran_at"]),
            )
            for row in rows
        ]

    # Row mapping

    @staticmethod
    def _grant_params(grant: NormalizedGrant, now_iso: str) -> dict:
        return {
            "external_id": grant.external_id,
            "source": grant.source,
            "title": grant.title,
            "funder": grant.funder,
            "funder_type": FunderType.coerce(grant.funder_type).value,
            "description": grant.description or "",
            "amount_min": grant.amount_min,
            "amount_max": grant.amount_max,
            "deadline": grant.deadline.isoformat() if grant.deadline else None,
            "is_rolling": 1 if grant.is_rolling else 0,
            "is_local": 1 if grant.is_local else 0,
            "sectors_json": json.dumps(list(grant.sectors)),
            "eligibility_json": json.dumps(list(grant.eligibility_criteria)),
            "apply_url": grant.apply_url,
            "raw_json": json.dumps(grant.raw_source_payload or {}, default=str),
            "now": now_iso,
        }

    @staticmethod
    def _row_to_record(row: sqlite3.Row) -> StoredGrantRecord:
        return StoredGrantRecord(
            external_id=row["external_id"],
            source=row["source"],
            title=row["title"],
            funder=row["funder"],
            funder_type=FunderType.coerce(row["funder_type"]),
            description=row["description"] or "",
            amount_min=row["amount_min"],
            amount_max=row["amount_max"],
            deadline=date.fromisoformat(row["deadline"]) if row["deadline"] else None,
            is_rolling=bool(row["is_rolling"]),
            is_local=bool(row["is_local"]),
            sectors=json.loads(row["sectors_json"] or "[]"),
            eligibility_criteria=json.loads(row["eligibility_json"] or "[]"),
            apply_url=row["apply_url"],
            raw_source_payload=json.loads(row["raw_json"] or "{}"),
            first_seen_at=datetime.fromisoformat(row["first_seen_at"]),
            last_seen_at=datetime.fromisoformat(row["last_seen_at"]),
            is_active=bool(row["is_active"]),
        )
