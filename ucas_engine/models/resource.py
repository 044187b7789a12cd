"""Resource snapshots: what the engine knows about a billable unit."""

from typing import Dict, Optional

from pydantic import ConfigDict, Field

from ucas_engine.models.base import CamelModel


class ResourceInfo(CamelModel):
    """Identifies a billable unit. Immutable snapshot per simulation call."""

    model_config = ConfigDict(frozen=True)

    id: str
    csp: str                                # "AWS" | "AZURE" | "GCP" | "NCP"
    service: str                            # e.g. "EC2", "S3", "GCE"
    region: Optional[str] = None
    project: Optional[str] = None           # Project / workspace
    tags: Dict[str, str] = {}
    instance_type: Optional[str] = None     # e.g. "m5.xlarge"


class UsageMetrics(CamelModel):
    """Observed behaviour over a lookback window. Ratios are in [0, 1]."""

    model_config = ConfigDict(frozen=True)

    avg: Optional[float] = Field(default=None, ge=0)
    p95: Optional[float] = Field(default=None, ge=0)
    p99: Optional[float] = Field(default=None, ge=0)
    idle_ratio: Optional[float] = Field(default=None, ge=0, le=1)
    schedule_pattern: Optional[str] = None  # "weekdays" | "24/7" | "business-hours"
    uptime_days: Optional[int] = None
    network_in: Optional[float] = None      # MB
    network_out: Optional[float] = None     # MB


class PricingInfo(CamelModel):
    """Billing terms for a resource."""

    model_config = ConfigDict(frozen=True)

    unit: str                               # "hour" | "GB" | "request" | "GB-month" | "slot"
    unit_price: Optional[float] = None
    commitment_applicable: bool = False
    commitment_price: Optional[float] = None
    commitment_type: Optional[str] = None   # "SP" | "RI" | "CUD" | "SavingsPlan"


class ResolvedResource(CamelModel):
    """What a ResourceResolver hands back for one id."""

    model_config = ConfigDict(frozen=True)

    resource: ResourceInfo
    metrics: Optional[UsageMetrics] = None
    pricing: Optional[PricingInfo] = None
