"""
UCAS API: FastAPI endpoints.

Exposes the engine via a REST API for:
- Cost action simulation
- Proposal lifecycle (create, approve, reject, expire)
- Dashboard recommendations
"""

import asyncio
import os
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

import structlog
from fastapi import FastAPI, HTTPException

from ucas_engine.config import UcasConfig, load_config
from ucas_engine.errors import (
    ConcurrentModification,
    InvalidRequest,
    InvalidStateTransition,
    ProposalNotFound,
    ScenarioNotFound,
    UcasError,
)
from ucas_engine.models.base import CamelModel
from ucas_engine.models.proposal import Proposal, ProposalStatus
from ucas_engine.models.scenario import SimulationResult
from ucas_engine.proposal.ledger import ProposalLedger
from ucas_engine.proposal.store import ProposalStore
from ucas_engine.proposal.sweeper import ExpirySweeper
from ucas_engine.recommendation.ranker import RecommendationRanker
from ucas_engine.recommendation.rules import RuleCatalog
from ucas_engine.simulation.coordinator import SimulationCoordinator
from ucas_engine.simulation.resolvers import InMemoryResourceCatalog, ResolverRegistry
from ucas_engine.telemetry.logging import setup_logging

logger = structlog.get_logger()


# --- Request Models ---

class SimulateRequest(CamelModel):
    resource_ids: List[str] = []
    action: str = ""
    params: Optional[Dict[str, Any]] = None


class ProposalCreateRequest(CamelModel):
    scenario_id: str
    note: Optional[str] = None
    ttl_days: Any = None                         # Checked by the ledger, not coerced
    scenario: Optional[SimulationResult] = None   # Snapshot, if the caller kept one


# --- Error mapping ---

def _to_http(error: UcasError) -> HTTPException:
    if isinstance(error, InvalidRequest):
        return HTTPException(400, str(error))
    if isinstance(error, (ProposalNotFound, ScenarioNotFound)):
        return HTTPException(404, str(error))
    if isinstance(error, (InvalidStateTransition, ConcurrentModification)):
        return HTTPException(
            409, {"message": str(error), "currentStatus": error.current_status}
        )
    return HTTPException(500, str(error))


def _view(proposal: Proposal) -> dict:
    return proposal.model_dump(mode="json", by_alias=True)


# --- Application Factory ---

def create_app(
    config: Optional[UcasConfig] = None,
    catalog: Optional[InMemoryResourceCatalog] = None,
    ledger: Optional[ProposalLedger] = None,
    rules: Optional[RuleCatalog] = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""

    cfg = config or load_config(os.environ.get("UCAS_CONFIG_FILE"))

    # Initialize components
    inventory = catalog or InMemoryResourceCatalog()
    resolvers = ResolverRegistry([inventory], default_provider=cfg.simulation.default_provider)
    coordinator = SimulationCoordinator(resolvers, config=cfg.simulation)
    proposals = ledger or ProposalLedger(ProposalStore(cfg.proposals.db_path))
    rule_catalog = rules or RuleCatalog.load(cfg.recommendations.rules_dir)
    ranker = RecommendationRanker(
        coordinator, inventory, rule_catalog, limit=cfg.recommendations.limit
    )
    sweeper = ExpirySweeper(proposals, cfg.proposals.sweep_schedule)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging(cfg.logging)
        stop_event = asyncio.Event()
        task = None
        if cfg.proposals.sweep_enabled:
            task = asyncio.create_task(sweeper.run_async(stop_event))
            logger.info("expiry_sweeper_started", schedule=sweeper.schedule)
        try:
            yield
        finally:
            stop_event.set()
            if task is not None:
                await task

    app = FastAPI(
        title="UCAS API",
        description="Cost action simulation and proposal lifecycle",
        version="0.1.0",
        lifespan=lifespan,
    )

    # Store components on app state for access in endpoints and tests
    app.state.config = cfg
    app.state.catalog = inventory
    app.state.coordinator = coordinator
    app.state.ledger = proposals
    app.state.rules = rule_catalog
    app.state.ranker = ranker
    app.state.sweeper = sweeper

    # === SIMULATION ===

    @app.post("/simulate")
    def simulate(req: SimulateRequest):
        try:
            response = coordinator.simulate(req.resource_ids, req.action, req.params)
        except UcasError as e:
            raise _to_http(e)
        return response.model_dump(mode="json", by_alias=True)

    # === PROPOSALS ===

    @app.post("/proposals")
    def create_proposal(req: ProposalCreateRequest):
        try:
            if req.scenario is not None:
                scenario = req.scenario.with_id()
                if scenario.scenario_id != req.scenario_id:
                    raise InvalidRequest(
                        f"scenarioId {req.scenario_id} does not match the embedded scenario"
                    )
            else:
                scenario = coordinator.find_scenario(req.scenario_id)
                if scenario is None:
                    raise ScenarioNotFound(req.scenario_id)
            proposal = proposals.create(scenario, note=req.note, ttl_days=req.ttl_days)
        except UcasError as e:
            raise _to_http(e)
        return _view(proposal)

    @app.get("/proposals")
    def list_proposals(status: Optional[ProposalStatus] = None):
        return [_view(p) for p in proposals.list(status)]

    @app.post("/proposals/expire")
    def expire_proposals():
        """Run one expiry sweep now."""
        return {"expired": sweeper.sweep_once()}

    @app.get("/proposals/{proposal_id}")
    def get_proposal(proposal_id: str):
        try:
            return _view(proposals.get(proposal_id))
        except UcasError as e:
            raise _to_http(e)

    @app.post("/proposals/{proposal_id}/approve")
    def approve_proposal(proposal_id: str):
        try:
            return _view(proposals.approve(proposal_id))
        except UcasError as e:
            raise _to_http(e)

    @app.post("/proposals/{proposal_id}/reject")
    def reject_proposal(proposal_id: str):
        try:
            return _view(proposals.reject(proposal_id))
        except UcasError as e:
            raise _to_http(e)

    # === RECOMMENDATIONS ===

    @app.get("/recommendations")
    def get_recommendations():
        """Top scenarios across all actions and current resources."""
        return [r.model_dump(mode="json", by_alias=True) for r in ranker.top_recommendations()]

    # === HEALTH ===

    @app.get("/health")
    def health():
        return {
            "status": "ok",
            "sweeper": sweeper.status,
            "rules": len(rule_catalog),
            "resources": len(inventory.list_resource_ids()),
        }

    return app


# Default application instance
app = create_app()
