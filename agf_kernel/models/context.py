"""Context Model — decision requests and the posture bundles derived from their context."""

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class DecisionRequest(BaseModel):
    """
    A request to act on a resource, e.g. "deploy service X" or "access field Y".

    `context` describes the situation (project_type, region, ...) and feeds the
    Context Analyzer. `observations` carries the measured values that policies
    compare against their thresholds. Both are captured once per request.
    """

    model_config = ConfigDict(frozen=True)

    resource: str = Field(min_length=1)
    action: str = Field(min_length=1)
    user_id: Optional[str] = None
    context: Dict[str, Any] = {}
    observations: Dict[str, Any] = {}


class PostureBundle(BaseModel):
    """Security/performance expectations for a context. Read-only once built."""

    model_config = ConfigDict(frozen=True)

    profile: Optional[str] = None           # Name of the matching domain profile
    domains: Dict[str, Dict[str, Any]] = {}

    @property
    def is_empty(self) -> bool:
        return not any(self.domains.values())

    def expectation(self, domain: str, key: str, default: Any = None) -> Any:
        return self.domains.get(domain, {}).get(key, default)

    def lookup(self, dotted_key: str) -> Optional[Any]:
        """Resolve "performance.latency_p95_ms" style keys."""
        domain, _, key = dotted_key.partition(".")
        if not key:
            return None
        return self.expectation(domain, key)

    def flatten(self) -> Dict[str, Any]:
        return {
            f"{domain}.{key}": value
            for domain, values in self.domains.items()
            for key, value in values.items()
        }
