"""Action types, scenario parameters and simulation results."""

import hashlib
import json
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import ConfigDict, Field, TypeAdapter, model_validator

from ucas_engine.models.base import CamelModel


class ActionType(str, Enum):
    OFFHOURS = "offhours"
    COMMITMENT = "commitment"
    STORAGE = "storage"
    RIGHTSIZING = "rightsizing"
    CLEANUP = "cleanup"

    @property
    def label(self) -> str:
        return _ACTION_LABELS[self]


_ACTION_LABELS = {
    ActionType.OFFHOURS: "Off-hours scheduling",
    ActionType.COMMITMENT: "Commitment discount",
    ActionType.STORAGE: "Storage lifecycle",
    ActionType.RIGHTSIZING: "Rightsizing",
    ActionType.CLEANUP: "Zombie cleanup",
}


# --- Scenario parameters: one variant per action, shared "custom" bag ---

class _ParamsBase(CamelModel):
    model_config = ConfigDict(frozen=True)

    custom: Dict[str, Any] = {}             # Provider-specific tuning


class OffHoursParams(_ParamsBase):
    action: Literal["offhours"] = "offhours"
    weekdays: List[str] = ["Mon-Fri"]
    stop_at: str = "20:00"                  # HH:MM, local to timezone
    start_at: str = "08:30"
    timezone: str = "Asia/Seoul"
    scale_to_zero_supported: bool = True


class CommitmentParams(_ParamsBase):
    action: Literal["commitment"] = "commitment"
    commit_level: float = Field(default=0.7, gt=0, le=1)
    commit_years: int = Field(default=1, ge=1)


class StorageParams(_ParamsBase):
    action: Literal["storage"] = "storage"
    target_tier: str = "Cold"
    retention_days: int = Field(default=90, ge=1)
    size_gb: Optional[float] = Field(default=None, ge=0)
    target_tier_price: Optional[float] = Field(default=None, ge=0)

    @model_validator(mode="before")
    @classmethod
    def _size_from_custom(cls, data: Any) -> Any:
        # custom["size_gb"] stands in for size_gb and is validated like it
        if not isinstance(data, dict):
            return data
        custom = data.get("custom")
        explicit = data.get("size_gb", data.get("sizeGb"))
        if explicit is None and isinstance(custom, dict) and "size_gb" in custom:
            data = {**data, "size_gb": custom["size_gb"]}
        return data


class RightsizingParams(_ParamsBase):
    action: Literal["rightsizing"] = "rightsizing"
    target_size: Optional[str] = None       # Instance type / spec
    target_vcpu: Optional[int] = None
    target_ram: Optional[int] = None
    target_iops: Optional[int] = None


class CleanupParams(_ParamsBase):
    action: Literal["cleanup"] = "cleanup"
    unused_days: int = Field(default=30, ge=1)


ScenarioParams = Annotated[
    Union[OffHoursParams, CommitmentParams, StorageParams, RightsizingParams, CleanupParams],
    Field(discriminator="action"),
]

_PARAMS_ADAPTER = TypeAdapter(ScenarioParams)


def parse_params(action: ActionType, raw: Optional[Dict[str, Any]] = None) -> ScenarioParams:
    """
    Build the params variant for an action from an untagged mapping.

    Keys may be snake_case or camelCase. Omitted keys take the action's
    documented defaults. Raises pydantic.ValidationError on bad values.
    """
    data = dict(raw or {})
    data["action"] = ActionType(action).value
    return _PARAMS_ADAPTER.validate_python(data)


# --- Results ---

class SimulationResult(CamelModel):
    """One candidate outcome for a resource and action. A value, never mutated."""

    model_config = ConfigDict(frozen=True)

    scenario_id: str = ""                   # Content hash, see with_id()
    action_type: ActionType
    resource_id: str
    scenario_name: str
    current_cost: float
    new_cost: float
    savings: float = Field(ge=0)
    risk_score: float = Field(ge=0, le=1)
    priority_score: float
    confidence: float = Field(ge=0, le=1)
    patch: Optional[str] = None             # Applyable YAML patch
    applied_params: Dict[str, Any] = {}     # Params this variant was evaluated with
    description: str

    def with_id(self) -> "SimulationResult":
        """Return a copy whose scenario_id is the hash of its content."""
        body = self.model_dump(mode="json", exclude={"scenario_id"})
        digest = hashlib.sha256(
            json.dumps(body, sort_keys=True, default=str).encode()
        ).hexdigest()
        return self.model_copy(update={"scenario_id": f"scn_{digest[:16]}"})


class SimulateResponse(CamelModel):
    scenarios: List[SimulationResult]
    action_type: str
    total_resources: int


class Recommendation(CamelModel):
    """A dashboard entry: one of the top scenarios across all actions."""

    title: str
    description: str
    estimated_savings: float                # Annualized (monthly savings x 12)
    action_type: str
    approval_required: bool = True
    scenario: SimulationResult
