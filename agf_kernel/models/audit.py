"""Audit Record — one append-only ledger entry per governance decision."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from agf_kernel.models.decision import GovernanceDecision


class AuditRecord(BaseModel):
    """
    The System of Record entry for a decision.
    Answers: what was decided, against which snapshot version, and when.
    """

    id: str
    decision: GovernanceDecision
    snapshot_version: int
    recorded_at: datetime

    # INTEGRITY
    signature: str = ""
    prior_record_hash: Optional[str] = None
