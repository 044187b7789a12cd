"""Tests for the Expiry Sweeper."""

import asyncio
import sqlite3
from datetime import datetime, timedelta, timezone

import pytest

from ucas_engine.models.proposal import ProposalStatus
from ucas_engine.models.scenario import ActionType, SimulationResult
from ucas_engine.proposal.ledger import ProposalLedger
from ucas_engine.proposal.store import ProposalStore
from ucas_engine.proposal.sweeper import ExpirySweeper


class FakeClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class _FlakyLedger(ProposalLedger):
    """Fails its first bulk expiry, then behaves."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.calls = 0

    def expire_overdue(self, now=None):
        self.calls += 1
        if self.calls == 1:
            raise sqlite3.OperationalError("database is locked")
        return super().expire_overdue(now)


def _make_scenario() -> SimulationResult:
    return SimulationResult(
        action_type=ActionType.RIGHTSIZING,
        resource_id="i-1",
        scenario_name="Rightsizing: i-1",
        current_cost=72.0,
        new_cost=36.0,
        savings=36.0,
        risk_score=0.42,
        priority_score=6.96,
        confidence=0.58,
        description="Resize m5.xlarge to m5.large",
    ).with_id()


class TestExpirySweeper:
    def setup_method(self):
        self.clock = FakeClock(datetime(2026, 3, 1, 10, 7, tzinfo=timezone.utc))
        self.ledger = ProposalLedger(ProposalStore(), clock=self.clock)

    def test_invalid_schedule(self):
        with pytest.raises(ValueError):
            ExpirySweeper(self.ledger, schedule="every quarter hour")

    def test_next_run(self):
        sweeper = ExpirySweeper(self.ledger, schedule="*/15 * * * *")
        assert sweeper.next_run_after(self.clock.now) == datetime(
            2026, 3, 1, 10, 15, tzinfo=timezone.utc
        )

    def test_sweep_once(self):
        due = self.ledger.create(_make_scenario(), ttl_days=1)
        fresh = self.ledger.create(_make_scenario(), ttl_days=5)
        sweeper = ExpirySweeper(self.ledger)

        assert sweeper.sweep_once() == []
        self.clock.advance(days=2)
        assert sweeper.sweep_once() == [due.id]
        assert sweeper.last_run_at == self.clock.now
        assert sweeper.last_expired == [due.id]

        assert self.ledger.store.get(due.id).status == ProposalStatus.EXPIRED
        assert self.ledger.store.get(fresh.id).status == ProposalStatus.PENDING

    def test_run_async_stops_on_event(self):
        sweeper = ExpirySweeper(self.ledger)

        async def run():
            stop = asyncio.Event()
            task = asyncio.create_task(sweeper.run_async(stop))
            await asyncio.sleep(0)
            assert sweeper.status == "running"
            stop.set()
            await asyncio.wait_for(task, timeout=1.0)

        asyncio.run(run())
        assert sweeper.status == "stopped"

    def test_run_async_sweeps_on_schedule(self):
        self.ledger.create(_make_scenario(), ttl_days=1)
        # Just before a minute boundary, so the next fire time is ~50ms away
        self.clock.now = datetime(2026, 3, 3, 10, 7, 59, 950000, tzinfo=timezone.utc)
        sweeper = ExpirySweeper(self.ledger, schedule="* * * * *")

        async def run():
            stop = asyncio.Event()
            task = asyncio.create_task(sweeper.run_async(stop))
            await asyncio.sleep(0.3)
            stop.set()
            await asyncio.wait_for(task, timeout=1.0)

        asyncio.run(run())
        assert sweeper.last_run_at is not None
        assert len(self.ledger.list(ProposalStatus.EXPIRED)) == 1

    def test_failed_sweep_does_not_stop_the_schedule(self):
        ledger = _FlakyLedger(ProposalStore(), clock=self.clock)
        ledger.create(_make_scenario(), ttl_days=1)
        self.clock.now = datetime(2026, 3, 3, 10, 7, 59, 950000, tzinfo=timezone.utc)
        sweeper = ExpirySweeper(ledger, schedule="* * * * *")

        async def run():
            stop = asyncio.Event()
            task = asyncio.create_task(sweeper.run_async(stop))
            await asyncio.sleep(0.3)
            assert sweeper.status == "running"
            stop.set()
            await asyncio.wait_for(task, timeout=1.0)

        asyncio.run(run())
        assert ledger.calls >= 2
        assert len(ledger.list(ProposalStatus.EXPIRED)) == 1
