"""
Error taxonomy for the simulation engine and proposal ledger.

Validation, not-found and conflict errors propagate to the API boundary.
ResourceResolutionError never leaves the SimulationCoordinator: a resource
that cannot be resolved is dropped from the result set and logged.
"""

from typing import Optional


class UcasError(Exception):
    """Base class for all engine errors."""
    pass


class InvalidRequest(UcasError):
    """Rejected before any work: empty resource list, unknown action, bad ttl."""
    pass


class ResourceResolutionError(UcasError):
    """A resource id could not be resolved (not found, upstream error, timeout)."""

    def __init__(self, resource_id: str, reason: str):
        super().__init__(f"Could not resolve resource {resource_id}: {reason}")
        self.resource_id = resource_id
        self.reason = reason


class ScenarioNotFound(UcasError):
    """A proposal referenced a scenario id the engine has no snapshot for."""

    def __init__(self, scenario_id: str):
        super().__init__(f"Scenario not found: {scenario_id}")
        self.scenario_id = scenario_id


class ProposalNotFound(UcasError):
    def __init__(self, proposal_id: str):
        super().__init__(f"Proposal not found: {proposal_id}")
        self.proposal_id = proposal_id


class InvalidStateTransition(UcasError):
    """The proposal is not PENDING. Carries the status the caller should refresh to."""

    def __init__(self, proposal_id: str, current_status: str, target_status: Optional[str] = None):
        message = f"Proposal {proposal_id} is {current_status}, only PENDING proposals can change"
        if target_status:
            message += f" (requested {target_status})"
        super().__init__(message)
        self.proposal_id = proposal_id
        self.current_status = current_status
        self.target_status = target_status


class ConcurrentModification(UcasError):
    """A compare-and-swap on the proposal status lost the race."""

    def __init__(self, proposal_id: str, current_status: str):
        super().__init__(
            f"Proposal {proposal_id} was modified concurrently, now {current_status}"
        )
        self.proposal_id = proposal_id
        self.current_status = current_status
