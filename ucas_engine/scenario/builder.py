"""
Scenario Builder: turns one resolved resource into candidate outcomes.

Each action type has its own builder function holding the decision policy
for that action (which resources qualify, which price applies, how risky
and how hard the change is). All arithmetic goes through the cost model.

Behavioral Contract:
- Accepts one ResolvedResource, an ActionType and that action's params
- Returns zero or more SimulationResults, in a stable order
- A resource with no pricing or no usage metrics yields no scenarios
- Rightsizing never proposes anything for a resource at or above the
  utilization ceiling
- Storage lifecycle only applies to resources billed per GB
- Cleanup always yields an empty list
"""

from datetime import datetime
from typing import Callable, Dict, List, Optional

import structlog
import yaml

from ucas_engine.cost import model as cost_model
from ucas_engine.errors import InvalidRequest
from ucas_engine.models.resource import PricingInfo, ResolvedResource, ResourceInfo, UsageMetrics
from ucas_engine.models.scenario import (
    ActionType,
    CleanupParams,
    CommitmentParams,
    OffHoursParams,
    RightsizingParams,
    ScenarioParams,
    SimulationResult,
    StorageParams,
    parse_params,
)

logger = structlog.get_logger()

RIGHTSIZING_UTILIZATION_CEILING = 0.4
COMMIT_LEVELS = (0.5, 0.7, 0.9)
DEFAULT_COMMITMENT_DISCOUNT = 0.5           # Commit price as a fraction of on-demand
DEFAULT_DAILY_OFF_HOURS = 12.0
SCALE_TO_ZERO_RISK_FACTOR = 0.8
STORAGE_RISK = 0.2
DEFAULT_STORAGE_SIZE_GB = 100.0
STORAGE_UNITS = frozenset({"GB", "GB-month"})

# Target tier price as a fraction of the current tier price
TIER_PRICE_RATIOS = {
    "hot": 1.0,
    "cool": 0.6,
    "cold": 0.5,
    "archive": 0.2,
}

DIFFICULTY = {
    ActionType.OFFHOURS: 2,
    ActionType.COMMITMENT: 3,
    ActionType.STORAGE: 1,
    ActionType.RIGHTSIZING: 3,
}

DEFAULT_AVAILABILITY = {
    ActionType.OFFHOURS: "medium",
    ActionType.COMMITMENT: "low",
    ActionType.RIGHTSIZING: "medium",
}

# One size down within the same family
SIZE_STEP_DOWN = {
    "t3.large": "t3.medium",
    "t3.medium": "t3.small",
    "t3.small": "t3.micro",
    "t2.medium": "t2.small",
    "t2.small": "t2.micro",
    "m5.2xlarge": "m5.xlarge",
    "m5.xlarge": "m5.large",
    "m6i.2xlarge": "m6i.xlarge",
    "m6i.xlarge": "m6i.large",
    "m7i.2xlarge": "m7i.xlarge",
    "m7i.xlarge": "m7i.large",
    "c5.2xlarge": "c5.xlarge",
    "c5.xlarge": "c5.large",
    "c6i.xlarge": "c6i.large",
    "r5.xlarge": "r5.large",
    "r6i.xlarge": "r6i.large",
    "e2-standard-4": "e2-standard-2",
    "e2-medium": "e2-small",
    "e2-small": "e2-micro",
    "Standard_D4s_v3": "Standard_D2s_v3",
    "Standard_B2ms": "Standard_B2s",
}


def daily_off_hours(stop_at: str, start_at: str) -> float:
    """Hours per day between stop_at and the next start_at (HH:MM, wraps midnight)."""
    try:
        stop = datetime.strptime(stop_at, "%H:%M")
        start = datetime.strptime(start_at, "%H:%M")
    except (TypeError, ValueError):
        logger.warning(
            "unparseable_schedule_times",
            stop_at=stop_at,
            start_at=start_at,
            fallback_hours=DEFAULT_DAILY_OFF_HOURS,
        )
        return DEFAULT_DAILY_OFF_HOURS

    minutes = ((start - stop).total_seconds() // 60) % (24 * 60)
    return minutes / 60.0


def _availability_policy(resource: ResourceInfo, action: ActionType) -> str:
    return resource.tags.get("availability") or DEFAULT_AVAILABILITY.get(action, "medium")


def _current_compute_cost(pricing: PricingInfo) -> float:
    return cost_model.monthly_cost(pricing.unit_price, 1.0, pricing.unit)


def _render_patch(body: dict) -> str:
    return yaml.safe_dump(body, sort_keys=False, default_flow_style=False)


def _make_result(
    action: ActionType,
    resource: ResourceInfo,
    name: str,
    current_cost: float,
    new_cost: float,
    risk: float,
    description: str,
    patch: Optional[str] = None,
    applied_params: Optional[dict] = None,
) -> SimulationResult:
    amount = cost_model.savings(current_cost, new_cost)
    return SimulationResult(
        action_type=action,
        resource_id=resource.id,
        scenario_name=name,
        current_cost=current_cost,
        new_cost=new_cost,
        savings=amount,
        risk_score=risk,
        priority_score=cost_model.priority_score(amount, risk, DIFFICULTY.get(action, 1)),
        confidence=1.0 - risk,
        patch=patch,
        applied_params=applied_params or {},
        description=description,
    ).with_id()


# --- Per-action policies ---

def _build_off_hours(
    resource: ResourceInfo,
    metrics: UsageMetrics,
    pricing: PricingInfo,
    params: OffHoursParams,
) -> List[SimulationResult]:
    """Stop the resource during predictable idle hours."""
    if resource.tags.get("owner", None) == "":
        # Unowned resources are never scheduled off
        return []

    off_hours = daily_off_hours(params.stop_at, params.start_at)
    current = _current_compute_cost(pricing)
    new = max(0.0, current - cost_model.off_hours_savings(pricing.unit_price, off_hours))

    risk = cost_model.risk_score(metrics, _availability_policy(resource, ActionType.OFFHOURS))
    if params.scale_to_zero_supported:
        risk *= SCALE_TO_ZERO_RISK_FACTOR

    weekdays = ", ".join(params.weekdays)
    patch = _render_patch({
        "schedule": {
            "resource": resource.id,
            "timezone": params.timezone,
            "weekdays": list(params.weekdays),
            "stop_at": params.stop_at,
            "start_at": params.start_at,
            "scale_to_zero": params.scale_to_zero_supported,
        }
    })
    return [_make_result(
        ActionType.OFFHOURS,
        resource,
        name=f"Off-hours schedule: {resource.id}",
        current_cost=current,
        new_cost=new,
        risk=risk,
        description=(
            f"Stop {resource.id} on {weekdays} from {params.stop_at} to "
            f"{params.start_at} ({params.timezone}), {off_hours:g}h off per day, "
            f"saving about {cost_model.savings(current, new):.2f} per month."
        ),
        patch=patch,
    )]


def _build_commitment(
    resource: ResourceInfo,
    metrics: UsageMetrics,
    pricing: PricingInfo,
    params: CommitmentParams,
) -> List[SimulationResult]:
    """One scenario per commit level; the caller picks."""
    if not pricing.commitment_applicable:
        logger.debug("commitment_not_applicable", resource_id=resource.id)
        return []

    commit_price = pricing.commitment_price
    if commit_price is None:
        commit_price = pricing.unit_price * DEFAULT_COMMITMENT_DISCOUNT
    current = _current_compute_cost(pricing)
    risk = cost_model.risk_score(metrics, _availability_policy(resource, ActionType.COMMITMENT))
    kind = pricing.commitment_type or "commitment"

    results = []
    for level in COMMIT_LEVELS:
        amount = cost_model.commitment_savings(
            pricing.unit_price, commit_price, level, 1.0, pricing.unit
        )
        pct = int(round(level * 100))
        results.append(_make_result(
            ActionType.COMMITMENT,
            resource,
            name=f"Commitment {pct}% ({params.commit_years}y): {resource.id}",
            current_cost=current,
            new_cost=current - amount,
            risk=risk,
            description=(
                f"{params.commit_years}-year {kind} covering {pct}% of usage, "
                f"saving about {amount:.2f} per month."
            ),
            applied_params={"commit_level": level, "commit_years": params.commit_years},
        ))
    return results


def _build_storage(
    resource: ResourceInfo,
    metrics: UsageMetrics,
    pricing: PricingInfo,
    params: StorageParams,
) -> List[SimulationResult]:
    """Move cold data to a cheaper tier. Only storage-priced resources qualify."""
    if pricing.unit not in STORAGE_UNITS:
        logger.debug("storage_not_applicable", resource_id=resource.id, unit=pricing.unit)
        return []

    size_gb = params.size_gb if params.size_gb is not None else DEFAULT_STORAGE_SIZE_GB

    target_price = params.target_tier_price
    if target_price is None:
        ratio = TIER_PRICE_RATIOS.get(params.target_tier.lower())
        if ratio is None:
            logger.warning("unknown_storage_tier", tier=params.target_tier, fallback="cold")
            ratio = TIER_PRICE_RATIOS["cold"]
        target_price = pricing.unit_price * ratio

    current = cost_model.monthly_cost(pricing.unit_price, size_gb, "GB-month")
    new = cost_model.monthly_cost(target_price, size_gb, "GB-month")
    source_tier = resource.tags.get("storage_tier", "Standard")
    amount = cost_model.storage_lifecycle_savings(pricing.unit_price, target_price, size_gb)

    return [_make_result(
        ActionType.STORAGE,
        resource,
        name=f"Storage lifecycle {source_tier} -> {params.target_tier}: {resource.id}",
        current_cost=current,
        new_cost=new,
        risk=STORAGE_RISK,
        description=(
            f"Move {size_gb:g} GB not accessed for {params.retention_days} days "
            f"to the {params.target_tier} tier, saving about {amount:.2f} per month."
        ),
    )]


def _build_rightsizing(
    resource: ResourceInfo,
    metrics: UsageMetrics,
    pricing: PricingInfo,
    params: RightsizingParams,
) -> List[SimulationResult]:
    """Downsize over-provisioned compute. Busy resources are not candidates."""
    avg = metrics.avg
    if avg is None or avg >= RIGHTSIZING_UTILIZATION_CEILING:
        return []

    target = params.target_size or SIZE_STEP_DOWN.get(resource.instance_type or "")
    current = _current_compute_cost(pricing)
    rate = min(0.5, 0.3 + (RIGHTSIZING_UTILIZATION_CEILING - avg))
    new = current * (1.0 - rate)
    risk = cost_model.risk_score(metrics, _availability_policy(resource, ActionType.RIGHTSIZING))

    target_label = target or "one size smaller"
    patch_body = {"resource": resource.id, "from": resource.instance_type, "to": target}
    for key in ("target_vcpu", "target_ram", "target_iops"):
        value = getattr(params, key)
        if value is not None:
            patch_body[key] = value

    return [_make_result(
        ActionType.RIGHTSIZING,
        resource,
        name=f"Rightsizing: {resource.id}",
        current_cost=current,
        new_cost=new,
        risk=risk,
        description=(
            f"Average utilization is {avg:.1%}; resize {resource.instance_type or resource.id} "
            f"to {target_label}, saving about {cost_model.savings(current, new):.2f} per month."
        ),
        patch=_render_patch({"resize": patch_body}),
    )]


def _build_cleanup(
    resource: ResourceInfo,
    metrics: UsageMetrics,
    pricing: PricingInfo,
    params: CleanupParams,
) -> List[SimulationResult]:
    # No savings model for zombie removal yet; callers get an empty list.
    return []


class ScenarioBuilder:
    """Dispatches a resolved resource to the policy for the requested action."""

    def __init__(self):
        self._builders: Dict[ActionType, Callable[..., List[SimulationResult]]] = {}
        self._register_default_builders()

    def _register_default_builders(self) -> None:
        self._builders[ActionType.OFFHOURS] = _build_off_hours
        self._builders[ActionType.COMMITMENT] = _build_commitment
        self._builders[ActionType.STORAGE] = _build_storage
        self._builders[ActionType.RIGHTSIZING] = _build_rightsizing
        self._builders[ActionType.CLEANUP] = _build_cleanup

        missing = set(ActionType) - set(self._builders)
        if missing:
            raise RuntimeError(f"No scenario builder for: {sorted(m.value for m in missing)}")

    def build(
        self,
        action: ActionType,
        resolved: ResolvedResource,
        params: Optional[ScenarioParams] = None,
    ) -> List[SimulationResult]:
        """Produce the scenarios for one resource. Never raises on missing data."""
        action = ActionType(action)
        if params is None:
            params = parse_params(action)
        elif params.action != action.value:
            raise InvalidRequest(
                f"Params for '{params.action}' cannot drive a '{action.value}' simulation"
            )

        pricing = resolved.pricing
        if pricing is None or pricing.unit_price is None or resolved.metrics is None:
            logger.debug(
                "resource_missing_cost_inputs",
                resource_id=resolved.resource.id,
                has_pricing=pricing is not None,
                has_metrics=resolved.metrics is not None,
            )
            return []

        return self._builders[action](resolved.resource, resolved.metrics, pricing, params)
