"""
Recommendation Ranker: "what should I do next?"

Evaluates every action type over the current inventory and keeps the
highest priority scenarios. Each resource contributes at most one scenario
per action: where an action offers alternatives (commitment levels) the one
evaluated with the rule's params wins, otherwise the best scored one.
Equal scores keep their evaluation order (action order, then inventory
order), so output is deterministic for a fixed input set.
"""

from typing import Any, Dict, List, Optional

import structlog

from ucas_engine.errors import InvalidRequest
from ucas_engine.models.scenario import ActionType, Recommendation, SimulationResult
from ucas_engine.recommendation.rules import RuleCatalog
from ucas_engine.simulation.coordinator import SimulationCoordinator
from ucas_engine.simulation.resolvers import ResourceInventory

logger = structlog.get_logger()

MONTHS_PER_YEAR = 12


class RecommendationRanker:
    def __init__(
        self,
        coordinator: SimulationCoordinator,
        inventory: ResourceInventory,
        catalog: Optional[RuleCatalog] = None,
        limit: int = 3,
    ):
        self.coordinator = coordinator
        self.inventory = inventory
        self.catalog = catalog or RuleCatalog.load()
        self.limit = limit

    def candidates(self) -> List[SimulationResult]:
        """All scenarios for all action types over the current inventory."""
        resource_ids = self.inventory.list_resource_ids()
        if not resource_ids:
            logger.info("recommendations_no_resources")
            return []

        scenarios: List[SimulationResult] = []
        for action in ActionType:
            try:
                response = self.coordinator.simulate(
                    resource_ids, action, self.catalog.default_params(action)
                )
            except InvalidRequest as e:
                logger.warning("recommendation_action_skipped", action=action.value, error=str(e))
                continue
            scenarios.extend(self._one_per_resource(action, response.scenarios))
        return scenarios

    def _one_per_resource(
        self, action: ActionType, scenarios: List[SimulationResult]
    ) -> List[SimulationResult]:
        wanted = self.catalog.default_params(action)
        chosen: Dict[str, SimulationResult] = {}
        for scenario in scenarios:
            best = chosen.get(scenario.resource_id)
            if best is None or _preference(scenario, wanted) > _preference(best, wanted):
                chosen[scenario.resource_id] = scenario
        return list(chosen.values())

    def top_recommendations(self) -> List[Recommendation]:
        ranked = sorted(self.candidates(), key=lambda s: s.priority_score, reverse=True)
        top = ranked[: self.limit]
        logger.info("recommendations_ranked", candidates=len(ranked), returned=len(top))
        return [self._to_recommendation(s) for s in top]

    def _to_recommendation(self, scenario: SimulationResult) -> Recommendation:
        action = ActionType(scenario.action_type)
        annual = scenario.savings * MONTHS_PER_YEAR
        return Recommendation(
            title=f"{action.label} on {scenario.resource_id}: save about {annual:,.2f} per year",
            description=self.catalog.basis(action, scenario.savings, scenario.applied_params),
            estimated_savings=annual,
            action_type=action.value,
            approval_required=self.catalog.approval_required(action),
            scenario=scenario,
        )


def _preference(scenario: SimulationResult, wanted: Dict[str, Any]) -> tuple:
    """Scenarios evaluated with the rule's params first, then by priority."""
    applied = scenario.applied_params
    matches = all(applied[key] == value for key, value in wanted.items() if key in applied)
    return (matches, scenario.priority_score)
