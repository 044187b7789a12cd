"""
Expiry Sweeper: periodically expires past-due PENDING proposals.

Runs on a cron schedule (ProposalConfig.sweep_schedule). Reads already
expire proposals eagerly; the sweep makes sure proposals nobody reads
still reach EXPIRED.
"""

import asyncio
from datetime import datetime
from typing import List, Optional

import structlog
from croniter import croniter

from ucas_engine.proposal.ledger import ProposalLedger

logger = structlog.get_logger()


class ExpirySweeper:
    def __init__(self, ledger: ProposalLedger, schedule: str = "*/15 * * * *"):
        if not croniter.is_valid(schedule):
            raise ValueError(f"Invalid cron expression: {schedule!r}")
        self.ledger = ledger
        self.schedule = schedule
        self._running = False
        self.last_run_at: Optional[datetime] = None
        self.last_expired: List[str] = []

    @property
    def status(self) -> str:
        """Current sweeper status."""
        return "running" if self._running else "stopped"

    def next_run_after(self, now: datetime) -> datetime:
        return croniter(self.schedule, now).get_next(datetime)

    def sweep_once(self, now: Optional[datetime] = None) -> List[str]:
        """Run one sweep. Returns the ids expired by this pass."""
        now = now or self.ledger.clock()
        expired = [p.id for p in self.ledger.expire_overdue(now)]
        self.last_run_at = now
        self.last_expired = expired
        logger.info("expiry_sweep_completed", expired=len(expired))
        return expired

    async def run_async(self, stop_event: Optional[asyncio.Event] = None) -> None:
        """Sweep at every cron fire time until stop_event is set."""
        self._running = True
        if stop_event is None:
            stop_event = asyncio.Event()

        try:
            while not stop_event.is_set():
                now = self.ledger.clock()
                delay = max(0.0, (self.next_run_after(now) - now).total_seconds())
                try:
                    await asyncio.wait_for(stop_event.wait(), timeout=delay)
                except asyncio.TimeoutError:
                    try:
                        self.sweep_once()
                    except Exception:  # Retried at the next fire time
                        logger.exception("expiry_sweep_failed")
        finally:
            self._running = False
