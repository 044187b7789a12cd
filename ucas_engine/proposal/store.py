"""
Proposal Store: durable, status-guarded record of proposals.

Behavioral Contract:
- A proposal row is written once; afterwards only status and updated_at change.
- Status changes go through compare_and_set_status, which only succeeds when
  the stored status still equals the expected one. Two concurrent decisions
  on the same proposal cannot both win.
- Timestamps are stored as UTC ISO-8601 strings, so lexical comparison in SQL
  is chronological comparison.
"""

import sqlite3
import threading
from datetime import datetime, timezone
from typing import List, Optional

from ucas_engine.models.proposal import Proposal, ProposalStatus
from ucas_engine.models.scenario import SimulationResult


def _ts(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


class ProposalStore:
    """
    Proposal persistence.
    Prototype: SQLite. Production: any store with a conditional update.
    """

    def __init__(self, db_path: str = ":memory:"):
        self.db_path = db_path
        self._conn = sqlite3.connect(db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.Lock()
        self._init_schema()

    def _init_schema(self) -> None:
        """Create the proposals table if it doesn't exist."""
        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS proposals (
                id TEXT PRIMARY KEY,
                status TEXT NOT NULL,
                scenario_id TEXT NOT NULL,
                scenario_json TEXT,
                note TEXT,
                ttl_days INTEGER NOT NULL,
                created_at TEXT NOT NULL,
                expires_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)
        self._conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_proposals_status_expires
            ON proposals(status, expires_at)
        """)
        self._conn.commit()

    def create(self, proposal: Proposal) -> Proposal:
        scenario_json = proposal.scenario.model_dump_json() if proposal.scenario else None
        with self._lock:
            self._conn.execute(
                """
                INSERT INTO proposals (
                    id, status, scenario_id, scenario_json, note, ttl_days,
                    created_at, expires_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    proposal.id,
                    proposal.status.value,
                    proposal.scenario_id,
                    scenario_json,
                    proposal.note,
                    proposal.ttl_days,
                    _ts(proposal.created_at),
                    _ts(proposal.expires_at),
                    _ts(proposal.updated_at),
                ),
            )
            self._conn.commit()
        return proposal

    def _deserialize(self, row: sqlite3.Row) -> Proposal:
        """Deserialize a row back into a Proposal."""
        scenario = (
            SimulationResult.model_validate_json(row["scenario_json"])
            if row["scenario_json"]
            else None
        )
        return Proposal(
            id=row["id"],
            status=ProposalStatus(row["status"]),
            scenario_id=row["scenario_id"],
            scenario=scenario,
            note=row["note"],
            ttl_days=row["ttl_days"],
            created_at=datetime.fromisoformat(row["created_at"]),
            expires_at=datetime.fromisoformat(row["expires_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )

    def get(self, proposal_id: str) -> Optional[Proposal]:
        with self._lock:
            row = self._conn.execute(
                "SELECT * FROM proposals WHERE id = ?", (proposal_id,)
            ).fetchone()
        return self._deserialize(row) if row else None

    def list(self, status: Optional[ProposalStatus] = None) -> List[Proposal]:
        """All proposals, oldest first, optionally filtered by status."""
        with self._lock:
            if status is not None:
                rows = self._conn.execute(
                    "SELECT * FROM proposals WHERE status = ? ORDER BY created_at, rowid",
                    (ProposalStatus(status).value,),
                ).fetchall()
            else:
                rows = self._conn.execute(
                    "SELECT * FROM proposals ORDER BY created_at, rowid"
                ).fetchall()
        return [self._deserialize(r) for r in rows]

    def compare_and_set_status(
        self,
        proposal_id: str,
        expected: ProposalStatus,
        new: ProposalStatus,
        now: datetime,
    ) -> bool:
        """Set status to new only if it is still expected. True if this call won."""
        with self._lock:
            cursor = self._conn.execute(
                "UPDATE proposals SET status = ?, updated_at = ? WHERE id = ? AND status = ?",
                (ProposalStatus(new).value, _ts(now), proposal_id, ProposalStatus(expected).value),
            )
            self._conn.commit()
            return cursor.rowcount == 1

    def query_past_due_pending(self, now: datetime) -> List[Proposal]:
        """PENDING proposals whose expires_at is at or before now."""
        with self._lock:
            rows = self._conn.execute(
                "SELECT * FROM proposals WHERE status = ? AND expires_at <= ? "
                "ORDER BY expires_at, rowid",
                (ProposalStatus.PENDING.value, _ts(now)),
            ).fetchall()
        return [self._deserialize(r) for r in rows]

    def count(self) -> int:
        """Total number of proposals."""
        with self._lock:
            row = self._conn.execute("SELECT COUNT(*) as cnt FROM proposals").fetchone()
        return row["cnt"]

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()
