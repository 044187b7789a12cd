"""UCAS engine data models."""

from ucas_engine.models.proposal import Proposal, ProposalStatus
from ucas_engine.models.resource import (
    PricingInfo,
    ResolvedResource,
    ResourceInfo,
    UsageMetrics,
)
from ucas_engine.models.scenario import (
    ActionType,
    CleanupParams,
    CommitmentParams,
    OffHoursParams,
    Recommendation,
    RightsizingParams,
    ScenarioParams,
    SimulateResponse,
    SimulationResult,
    StorageParams,
    parse_params,
)

__all__ = [
    "ActionType",
    "CleanupParams",
    "CommitmentParams",
    "OffHoursParams",
    "PricingInfo",
    "Proposal",
    "ProposalStatus",
    "Recommendation",
    "ResolvedResource",
    "ResourceInfo",
    "RightsizingParams",
    "ScenarioParams",
    "SimulateResponse",
    "SimulationResult",
    "StorageParams",
    "UsageMetrics",
    "parse_params",
]
