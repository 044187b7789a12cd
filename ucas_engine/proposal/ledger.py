"""
Proposal Ledger: the approve / reject / expire state machine.

    PENDING ──approve──▶ APPROVED
       │    ──reject───▶ REJECTED
       └────(expires_at passed)──▶ EXPIRED

Behavioral Contract:
- Only PENDING proposals change; every terminal state is final.
- Every transition is a compare-and-swap on the stored status. Of two
  concurrent decisions on one proposal exactly one wins; the loser gets
  ConcurrentModification carrying the status it lost to.
- A PENDING proposal past its expires_at is EXPIRED. Reads expire it eagerly
  and the ExpirySweeper expires it in bulk; both use Proposal.is_past_due.
- expires_at = created_at + ttl_days, fixed at creation.
"""

import uuid
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional

import structlog

from ucas_engine.errors import (
    ConcurrentModification,
    InvalidRequest,
    InvalidStateTransition,
    ProposalNotFound,
)
from ucas_engine.models.proposal import Proposal, ProposalStatus
from ucas_engine.models.scenario import SimulationResult
from ucas_engine.proposal.store import ProposalStore

logger = structlog.get_logger()

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _validate_ttl(ttl_days) -> int:
    if isinstance(ttl_days, bool) or not isinstance(ttl_days, int):
        raise InvalidRequest(f"ttlDays must be an integer, got {ttl_days!r}")
    if ttl_days <= 0:
        raise InvalidRequest(f"ttlDays must be positive, got {ttl_days}")
    return ttl_days


class ProposalLedger:
    """Creates proposals and enforces their lifecycle."""

    def __init__(self, store: Optional[ProposalStore] = None, clock: Optional[Clock] = None):
        self.store = store or ProposalStore()
        self.clock = clock or utc_now

    def create(
        self,
        scenario: SimulationResult,
        note: Optional[str] = None,
        ttl_days: int = 7,
    ) -> Proposal:
        ttl_days = _validate_ttl(ttl_days)
        if not scenario.scenario_id:
            scenario = scenario.with_id()

        now = self.clock()
        proposal = Proposal(
            id=str(uuid.uuid4()),
            status=ProposalStatus.PENDING,
            scenario_id=scenario.scenario_id,
            scenario=scenario,
            note=note,
            ttl_days=ttl_days,
            created_at=now,
            expires_at=now + timedelta(days=ttl_days),
            updated_at=now,
        )
        self.store.create(proposal)
        logger.info(
            "proposal_created",
            proposal_id=proposal.id,
            scenario_id=proposal.scenario_id,
            ttl_days=ttl_days,
            expires_at=proposal.expires_at.isoformat(),
        )
        return proposal

    def get(self, proposal_id: str) -> Proposal:
        proposal = self.store.get(proposal_id)
        if proposal is None:
            raise ProposalNotFound(proposal_id)
        return self._expire_if_past_due(proposal, self.clock())

    def list(self, status: Optional[ProposalStatus] = None) -> List[Proposal]:
        """All proposals (oldest first), with past-due ones already expired."""
        self.expire_overdue()
        return self.store.list(status)

    def approve(self, proposal_id: str) -> Proposal:
        return self._decide(proposal_id, ProposalStatus.APPROVED)

    def reject(self, proposal_id: str) -> Proposal:
        return self._decide(proposal_id, ProposalStatus.REJECTED)

    def expire_overdue(self, now: Optional[datetime] = None) -> List[Proposal]:
        """Move every past-due PENDING proposal to EXPIRED. Returns those this call expired."""
        now = now or self.clock()
        expired: List[Proposal] = []
        for proposal in self.store.query_past_due_pending(now):
            if self.store.compare_and_set_status(
                proposal.id, ProposalStatus.PENDING, ProposalStatus.EXPIRED, now
            ):
                logger.info("proposal_expired", proposal_id=proposal.id, trigger="sweep")
                expired.append(proposal.model_copy(
                    update={"status": ProposalStatus.EXPIRED, "updated_at": now}
                ))
        return expired

    def _expire_if_past_due(self, proposal: Proposal, now: datetime) -> Proposal:
        if not proposal.is_past_due(now):
            return proposal
        if self.store.compare_and_set_status(
            proposal.id, ProposalStatus.PENDING, ProposalStatus.EXPIRED, now
        ):
            logger.info("proposal_expired", proposal_id=proposal.id, trigger="read")
        # Either we expired it or someone else moved it first; the store is the truth
        return self.store.get(proposal.id)

    def _decide(self, proposal_id: str, target: ProposalStatus) -> Proposal:
        proposal = self.get(proposal_id)
        if proposal.status != ProposalStatus.PENDING:
            raise InvalidStateTransition(proposal_id, proposal.status.value, target.value)

        now = self.clock()
        if not self.store.compare_and_set_status(
            proposal_id, ProposalStatus.PENDING, target, now
        ):
            current = self.store.get(proposal_id)
            current_status = current.status.value if current else "UNKNOWN"
            logger.warning(
                "proposal_transition_conflict",
                proposal_id=proposal_id,
                target=target.value,
                current_status=current_status,
            )
            raise ConcurrentModification(proposal_id, current_status)

        logger.info("proposal_decided", proposal_id=proposal_id, status=target.value)
        return self.store.get(proposal_id)
