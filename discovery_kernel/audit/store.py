"""
Turn Audit Store — append-only, hash-chained record of answered turns.

Every RESPONDED turn produces one TurnRecord.

Behavioral Contract:
- Append-only. No record is ever modified or deleted.
- Each record is hashed and chained to the previous record (tamper-evident).
- Every record answers: what was asked, how was it read, what came back,
  and which collaborators were degraded.
- Queryable by session and recency.
"""

import hashlib
import json
import sqlite3
from typing import List, Optional

from discovery_kernel.models.audit import TurnRecord


def _compute_signature(record: TurnRecord) -> str:
    record_dict = record.model_dump(mode="json")
    # Zero out signature before hashing (it's what we're computing)
    record_dict["signature"] = ""
    record_bytes = json.dumps(record_dict, sort_keys=True, default=str).encode()
    return hashlib.sha256(record_bytes).hexdigest()


class TurnAuditStore:
    """
    Append-only turn audit store.
    Prototype: SQLite. Production: a managed database with retention policy.
    """

    def __init__(self, db_path: str = ":memory:"):
        self.db_path = db_path
        self._conn = sqlite3.connect(db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._init_schema()

    def _init_schema(self) -> None:
        """Create the turns table if it doesn't exist."""
        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS turns (
                id TEXT PRIMARY KEY,
                session_id TEXT NOT NULL,
                turn_number INTEGER NOT NULL,
                intent_category TEXT NOT NULL,
                needs_clarification INTEGER NOT NULL DEFAULT 0,
                alternatives_used INTEGER NOT NULL DEFAULT 0,
                no_match_reason TEXT,
                recorded_at TEXT NOT NULL,
                signature TEXT NOT NULL,
                prior_record_hash TEXT,
                record_json TEXT NOT NULL
            )
        """)
        self._conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_turns_session_id ON turns(session_id)
        """)
        self._conn.commit()

    def append(self, record: TurnRecord) -> TurnRecord:
        """Append a turn record, chaining it to the previous one."""
        record.prior_record_hash = self._get_latest_hash()
        record.signature = _compute_signature(record)

        self._conn.execute(
            """
            INSERT INTO turns (
                id, session_id, turn_number, intent_category,
                needs_clarification, alternatives_used, no_match_reason,
                recorded_at, signature, prior_record_hash, record_json
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                record.id,
                record.session_id,
                record.turn_number,
                record.intent_category,
                int(record.needs_clarification),
                int(record.alternatives_used),
                record.no_match_reason,
                record.recorded_at.isoformat(),
                record.signature,
                record.prior_record_hash,
                record.model_dump_json(),
            ),
        )
        self._conn.commit()
        return record

    def _get_latest_hash(self) -> Optional[str]:
        row = self._conn.execute(
            "SELECT signature FROM turns ORDER BY rowid DESC LIMIT 1"
        ).fetchone()
        return row["signature"] if row else None

    def _deserialize(self, row: sqlite3.Row) -> TurnRecord:
        return TurnRecord.model_validate_json(row["record_json"])

    def get_by_id(self, record_id: str) -> Optional[TurnRecord]:
        row = self._conn.execute(
            "SELECT record_json FROM turns WHERE id = ?", (record_id,)
        ).fetchone()
        return self._deserialize(row) if row else None

    def query_by_session(self, session_id: str) -> List[TurnRecord]:
        """All turns of one session, oldest first."""
        rows = self._conn.execute(
            "SELECT record_json FROM turns WHERE session_id = ? ORDER BY rowid",
            (session_id,),
        ).fetchall()
        return [self._deserialize(r) for r in rows]

    def query_recent(self, limit: int = 50) -> List[TurnRecord]:
        """The most recent turns, oldest first."""
        rows = self._conn.execute(
            "SELECT record_json FROM turns ORDER BY rowid DESC LIMIT ?",
            (limit,),
        ).fetchall()
        return [self._deserialize(r) for r in reversed(rows)]

    def query_unanswered(self) -> List[TurnRecord]:
        """Turns that ended with no match at all."""
        rows = self._conn.execute(
            "SELECT record_json FROM turns WHERE no_match_reason IS NOT NULL ORDER BY rowid"
        ).fetchall()
        return [self._deserialize(r) for r in rows]

    def verify_chain_integrity(self) -> bool:
        """Verify no records have been tampered with."""
        rows = self._conn.execute(
            "SELECT record_json, signature FROM turns ORDER BY rowid"
        ).fetchall()

        for i, row in enumerate(rows):
            record = self._deserialize(row)
            if record.signature != row["signature"]:
                return False
            if _compute_signature(record) != record.signature:
                return False
            expected_prior = rows[i - 1]["signature"] if i > 0 else None
            if record.prior_record_hash != expected_prior:
                return False

        return True

    def count(self) -> int:
        row = self._conn.execute("SELECT COUNT(*) as cnt FROM turns").fetchone()
        return row["cnt"]

    def close(self) -> None:
        self._conn.close()
