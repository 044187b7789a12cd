"""Proposal: a persisted, human-decidable wrapper around a scenario."""

from datetime import datetime
from enum import Enum
from typing import Optional

from ucas_engine.models.base import CamelModel
from ucas_engine.models.scenario import SimulationResult


class ProposalStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    EXPIRED = "EXPIRED"

    @property
    def is_terminal(self) -> bool:
        return self is not ProposalStatus.PENDING


class Proposal(CamelModel):
    """
    A saved simulation result awaiting a human decision.

    expires_at is fixed at creation. status only moves PENDING -> terminal.
    """

    id: str
    status: ProposalStatus = ProposalStatus.PENDING
    scenario_id: str
    scenario: Optional[SimulationResult] = None   # Snapshot at creation
    note: Optional[str] = None
    ttl_days: int
    created_at: datetime
    expires_at: datetime
    updated_at: datetime

    def is_past_due(self, now: datetime) -> bool:
        """True when still PENDING but past its expiry time."""
        return self.status == ProposalStatus.PENDING and self.expires_at <= now
