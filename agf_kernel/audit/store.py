"""
Audit Store — append-only, hash-chained ledger of governance decisions.

Every recorded decision produces one AuditRecord.

Behavioral Contract:
- Append-only. No record is ever modified or deleted.
- Each record is hashed and chained to the previous record (tamper-evident ledger).
- Every record carries the snapshot version the decision was evaluated against.
- Queryable by decision id, request id, decision kind and recency.
"""

import hashlib
import json
import sqlite3
import threading
from datetime import datetime
from typing import List, Optional, Protocol
from uuid import uuid4

from agf_kernel.models.audit import AuditRecord
from agf_kernel.models.decision import GovernanceDecision


class AuditSink(Protocol):
    """Append-only destination for decisions."""

    def record(self, decision: GovernanceDecision, snapshot_version: int) -> AuditRecord: ...


def _sign(record: AuditRecord) -> str:
    record_dict = record.model_dump(mode="json")
    # Zero out signature before hashing (it's what we're computing)
    record_dict["signature"] = ""
    record_bytes = json.dumps(record_dict, sort_keys=True, default=str).encode()
    return hashlib.sha256(record_bytes).hexdigest()


class AuditStore:
    """
    Append-only decision audit store.
    SQLite-backed; one connection shared across threads behind a lock.
    """

    def __init__(self, db_path: str = ":memory:"):
        self.db_path = db_path
        self._conn = sqlite3.connect(db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.Lock()
        self._init_schema()

    def _init_schema(self) -> None:
        """Create the audit table if it doesn't exist."""
        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS audit (
                id TEXT PRIMARY KEY,
                decision_id TEXT NOT NULL,
                request_id TEXT NOT NULL,
                decision TEXT NOT NULL,
                confidence REAL NOT NULL,
                snapshot_version INTEGER NOT NULL,
                resource TEXT,
                action TEXT,
                recorded_at TEXT NOT NULL,
                signature TEXT NOT NULL,
                prior_record_hash TEXT,
                record_json TEXT NOT NULL
            )
        """)
        self._conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_audit_decision_id ON audit(decision_id)
        """)
        self._conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_audit_decision ON audit(decision)
        """)
        self._conn.commit()

    def record(self, decision: GovernanceDecision, snapshot_version: int) -> AuditRecord:
        """
        Append a decision. Computes the record hash and chains it to the
        previous record.
        """
        with self._lock:
            record = AuditRecord(
                id=f"aud_{uuid4().hex[:12]}",
                decision=decision,
                snapshot_version=snapshot_version,
                recorded_at=datetime.utcnow(),
                prior_record_hash=self._get_latest_hash(),
            )
            record.signature = _sign(record)

            self._conn.execute(
                """
                INSERT INTO audit (
                    id, decision_id, request_id, decision, confidence,
                    snapshot_version, resource, action, recorded_at,
                    signature, prior_record_hash, record_json
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    record.id,
                    decision.id,
                    decision.request_id,
                    decision.decision.value,
                    decision.confidence,
                    snapshot_version,
                    decision.resource,
                    decision.action,
                    record.recorded_at.isoformat(),
                    record.signature,
                    record.prior_record_hash,
                    record.model_dump_json(),
                ),
            )
            self._conn.commit()
            return record

    def _get_latest_hash(self) -> Optional[str]:
        """Get the signature of the most recent record."""
        row = self._conn.execute(
            "SELECT signature FROM audit ORDER BY rowid DESC LIMIT 1"
        ).fetchone()
        return row["signature"] if row else None

    def _deserialize(self, row: sqlite3.Row) -> AuditRecord:
        return AuditRecord.model_validate_json(row["record_json"])

    def _fetch(self, sql: str, params: tuple = ()) -> List[sqlite3.Row]:
        with self._lock:
            return self._conn.execute(sql, params).fetchall()

    def get_by_decision(self, decision_id: str) -> Optional[AuditRecord]:
        rows = self._fetch(
            "SELECT record_json FROM audit WHERE decision_id = ?", (decision_id,)
        )
        return self._deserialize(rows[0]) if rows else None

    def query_by_request(self, request_id: str) -> List[AuditRecord]:
        rows = self._fetch(
            "SELECT record_json FROM audit WHERE request_id = ? ORDER BY rowid",
            (request_id,),
        )
        return [self._deserialize(r) for r in rows]

    def query_by_kind(self, kind: str) -> List[AuditRecord]:
        """All decisions of one kind (allow/deny/review/escalate)."""
        rows = self._fetch(
            "SELECT record_json FROM audit WHERE decision = ? ORDER BY rowid",
            (kind,),
        )
        return [self._deserialize(r) for r in rows]

    def query_recent(self, limit: int = 50) -> List[AuditRecord]:
        """Get the most recent audit records, oldest first."""
        rows = self._fetch(
            "SELECT record_json FROM audit ORDER BY rowid DESC LIMIT ?",
            (limit,),
        )
        return [self._deserialize(r) for r in reversed(rows)]

    def verify_chain_integrity(self) -> bool:
        """Verify no records have been tampered with."""
        rows = self._fetch("SELECT record_json, signature FROM audit ORDER BY rowid")

        for i, row in enumerate(rows):
            record = self._deserialize(row)
            if record.signature != row["signature"] or record.signature != _sign(record):
                return False
            expected_prior = rows[i - 1]["signature"] if i > 0 else None
            if record.prior_record_hash != expected_prior:
                return False

        return True

    def count(self) -> int:
        """Total number of audit records."""
        rows = self._fetch("SELECT COUNT(*) as cnt FROM audit")
        return rows[0]["cnt"]

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            self._conn.close()
