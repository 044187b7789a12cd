"""
Resource resolvers: the boundary to per-provider inventory, metrics and
pricing clients.

A resolver answers one question: given a resource id, what are its
ResourceInfo, UsageMetrics and PricingInfo? Live provider clients live
outside this package; they plug in by implementing ResourceResolver.
"""

import threading
from typing import Dict, List, Optional, Protocol, Tuple

from ucas_engine.errors import ResourceResolutionError
from ucas_engine.models.resource import PricingInfo, ResolvedResource, ResourceInfo, UsageMetrics

ANY_PROVIDER = "ANY"

# Id prefix -> provider. First match wins.
PROVIDER_PREFIXES: List[Tuple[str, str]] = [
    ("arn:aws:", "AWS"),
    ("i-", "AWS"),
    ("vol-", "AWS"),
    ("/subscriptions/", "AZURE"),
    ("projects/", "GCP"),
    ("ncp-", "NCP"),
]


def provider_for(resource_id: str, default: str = "AWS") -> str:
    """Guess the provider that owns an id from its shape."""
    for prefix, provider in PROVIDER_PREFIXES:
        if resource_id.startswith(prefix):
            return provider
    return default.upper()


class ResourceResolver(Protocol):
    csp: str

    def supports(self, resource_id: str) -> bool:
        ...

    def resolve(self, resource_id: str) -> ResolvedResource:
        """Raise ResourceResolutionError when the id cannot be resolved."""
        ...


class ResourceInventory(Protocol):
    def list_resource_ids(self) -> List[str]:
        """Ids of the resources currently worth evaluating, in a stable order."""
        ...


class InMemoryResourceCatalog:
    """
    Resolver and inventory over pre-registered snapshots.
    Backs the default application and tests; production wires provider clients.
    """

    def __init__(self, csp: str = ANY_PROVIDER):
        self.csp = csp
        self._resources: Dict[str, ResolvedResource] = {}
        self._active: Dict[str, bool] = {}
        self._lock = threading.Lock()

    def register(
        self,
        resource: ResourceInfo,
        metrics: Optional[UsageMetrics] = None,
        pricing: Optional[PricingInfo] = None,
        active: bool = True,
    ) -> ResolvedResource:
        """Insert or replace the snapshot for resource.id."""
        resolved = ResolvedResource(resource=resource, metrics=metrics, pricing=pricing)
        with self._lock:
            self._resources[resource.id] = resolved
            self._active[resource.id] = active
        return resolved

    def remove(self, resource_id: str) -> bool:
        with self._lock:
            self._active.pop(resource_id, None)
            return self._resources.pop(resource_id, None) is not None

    def supports(self, resource_id: str) -> bool:
        with self._lock:
            return resource_id in self._resources

    def resolve(self, resource_id: str) -> ResolvedResource:
        with self._lock:
            resolved = self._resources.get(resource_id)
        if resolved is None:
            raise ResourceResolutionError(resource_id, "not found")
        return resolved

    def list_resource_ids(self) -> List[str]:
        with self._lock:
            return [rid for rid, active in self._active.items() if active]


class ResolverRegistry:
    """Routes each id to the resolver for its provider."""

    def __init__(
        self,
        resolvers: Optional[List[ResourceResolver]] = None,
        default_provider: str = "AWS",
    ):
        self._resolvers: List[ResourceResolver] = list(resolvers or [])
        self.default_provider = default_provider

    def register(self, resolver: ResourceResolver) -> None:
        self._resolvers.append(resolver)

    def resolver_for(self, resource_id: str) -> Optional[ResourceResolver]:
        """Provider-specific resolvers first, then catch-all ones."""
        provider = provider_for(resource_id, self.default_provider)
        for resolver in self._resolvers:
            if resolver.csp.upper() == provider and resolver.supports(resource_id):
                return resolver
        for resolver in self._resolvers:
            if resolver.csp.upper() == ANY_PROVIDER and resolver.supports(resource_id):
                return resolver
        return None

    def resolve(self, resource_id: str) -> ResolvedResource:
        resolver = self.resolver_for(resource_id)
        if resolver is None:
            raise ResourceResolutionError(resource_id, "no resolver supports this id")
        return resolver.resolve(resource_id)
