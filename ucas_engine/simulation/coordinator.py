"""
Simulation Coordinator: the entry point for "what if" questions.

Behavioral Contract:
- Validates the request before any external lookup
- Resolves every requested id through the ResolverRegistry, concurrently,
  with a per-resolution timeout
- A resource that cannot be resolved is dropped and logged; the call
  itself never fails because of one resource
- Scenarios come back in request order regardless of completion order
- total_resources counts ids requested, not ids resolved
"""

import threading
from collections import OrderedDict
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Any, Dict, List, Optional, Sequence, Union

import structlog
from pydantic import BaseModel, ValidationError

from ucas_engine.config import SimulationConfig
from ucas_engine.errors import InvalidRequest, ResourceResolutionError
from ucas_engine.models.resource import ResolvedResource
from ucas_engine.models.scenario import (
    ActionType,
    ScenarioParams,
    SimulateResponse,
    SimulationResult,
    parse_params,
)
from ucas_engine.scenario.builder import ScenarioBuilder
from ucas_engine.simulation.resolvers import ResolverRegistry, provider_for

logger = structlog.get_logger()


class ScenarioCache:
    """Bounded LRU of recently produced scenarios, keyed by scenario_id."""

    def __init__(self, max_size: int = 1024):
        self.max_size = max_size
        self._items: "OrderedDict[str, SimulationResult]" = OrderedDict()
        self._lock = threading.Lock()

    def put(self, scenario: SimulationResult) -> None:
        with self._lock:
            self._items[scenario.scenario_id] = scenario
            self._items.move_to_end(scenario.scenario_id)
            while len(self._items) > self.max_size:
                self._items.popitem(last=False)

    def get(self, scenario_id: str) -> Optional[SimulationResult]:
        with self._lock:
            scenario = self._items.get(scenario_id)
            if scenario is not None:
                self._items.move_to_end(scenario_id)
            return scenario

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)


def _parse_action(action: Union[ActionType, str, None]) -> ActionType:
    if isinstance(action, ActionType):
        return action
    try:
        return ActionType(action)
    except ValueError:
        known = ", ".join(a.value for a in ActionType)
        raise InvalidRequest(f"Unknown action type {action!r}; expected one of: {known}")


class SimulationCoordinator:
    """Resolves resources and fans them out to the ScenarioBuilder."""

    def __init__(
        self,
        resolvers: ResolverRegistry,
        builder: Optional[ScenarioBuilder] = None,
        config: Optional[SimulationConfig] = None,
        cache: Optional[ScenarioCache] = None,
    ):
        self.resolvers = resolvers
        self.builder = builder or ScenarioBuilder()
        self.config = config or SimulationConfig()
        self.cache = cache or ScenarioCache(self.config.scenario_cache_size)

    def simulate(
        self,
        resource_ids: Sequence[str],
        action: Union[ActionType, str],
        params: Union[ScenarioParams, Dict[str, Any], None] = None,
    ) -> SimulateResponse:
        """Run one action over a batch of resources."""
        resource_ids = list(resource_ids or [])
        if not resource_ids:
            raise InvalidRequest("resourceIds must not be empty")
        if any(not isinstance(rid, str) or not rid.strip() for rid in resource_ids):
            raise InvalidRequest("resourceIds must be non-blank strings")
        action_type = _parse_action(action)
        scenario_params = self._parse_params(action_type, params)

        scenarios: List[SimulationResult] = []
        resolved_count = 0
        for resolved in self._resolve_all(resource_ids):
            if resolved is None:
                continue
            resolved_count += 1
            scenarios.extend(self.builder.build(action_type, resolved, scenario_params))

        for scenario in scenarios:
            self.cache.put(scenario)

        logger.info(
            "simulation_completed",
            action=action_type.value,
            requested=len(resource_ids),
            resolved=resolved_count,
            scenarios=len(scenarios),
        )
        return SimulateResponse(
            scenarios=scenarios,
            action_type=action_type.value,
            total_resources=len(resource_ids),
        )

    def find_scenario(self, scenario_id: str) -> Optional[SimulationResult]:
        """A scenario produced by a recent simulate() call, if still cached."""
        return self.cache.get(scenario_id)

    def _parse_params(
        self,
        action: ActionType,
        params: Union[ScenarioParams, Dict[str, Any], None],
    ) -> ScenarioParams:
        if isinstance(params, BaseModel):
            if getattr(params, "action", None) != action.value:
                raise InvalidRequest(f"Params do not match action '{action.value}'")
            return params
        try:
            return parse_params(action, params)
        except ValidationError as e:
            raise InvalidRequest(f"Invalid params for '{action.value}': {e}") from e

    def _resolve_one(self, resource_id: str) -> Optional[ResolvedResource]:
        try:
            return self.resolvers.resolve(resource_id)
        except ResourceResolutionError as e:
            reason = e.reason
        except Exception as e:  # upstream client failures of any kind
            reason = f"upstream error: {e}"
        logger.warning(
            "resource_resolution_failed",
            resource_id=resource_id,
            provider=provider_for(resource_id, self.resolvers.default_provider),
            reason=reason,
        )
        return None

    def _resolve_all(self, resource_ids: List[str]) -> List[Optional[ResolvedResource]]:
        """Resolve concurrently; results line up with resource_ids."""
        workers = min(self.config.max_workers, len(resource_ids))
        executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="ucas-resolve")
        try:
            futures = [executor.submit(self._resolve_one, rid) for rid in resource_ids]
            results: List[Optional[ResolvedResource]] = []
            for rid, future in zip(resource_ids, futures):
                try:
                    results.append(future.result(timeout=self.config.resolve_timeout_seconds))
                except FutureTimeoutError:
                    future.cancel()
                    logger.warning(
                        "resource_resolution_failed",
                        resource_id=rid,
                        provider=provider_for(rid, self.resolvers.default_provider),
                        reason=f"timed out after {self.config.resolve_timeout_seconds}s",
                    )
                    results.append(None)
            return results
        finally:
            # Do not wait on resolutions that already timed out
            executor.shutdown(wait=False, cancel_futures=True)
