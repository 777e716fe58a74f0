"""
Context Analyzer — maps a situational descriptor to a posture bundle.

Behavioral Contract:
- Pure and total: every context yields a PostureBundle, possibly empty
- Table-driven: profiles are matched in order, first match wins
- An unmatched context means "no additional posture constraints", not a failure
- New domain profiles are new table rows, never new control flow
"""

import copy
import logging
from typing import Any, Dict, Iterable, List, NamedTuple, Optional, Tuple

from agf_kernel.models.context import PostureBundle

logger = logging.getLogger("agf_kernel.context")


class PostureProfile(NamedTuple):
    """One row of the profile table: context signature → posture data."""

    name: str
    signature: Dict[str, Any]               # attribute → required value (or list of accepted values)
    domains: Dict[str, Dict[str, Any]]


DEFAULT_PROFILES: Tuple[PostureProfile, ...] = (
    PostureProfile(
        name="fintech",
        signature={"project_type": "fintech"},
        domains={
            "security": {
                "owasp": ["Injection", "Broken Access Control"],
                "encryption": "AES-256",
            },
            "performance": {"latency_p95_ms": 200},
        },
    ),
    PostureProfile(
        name="healthcare",
        signature={"project_type": "healthcare"},
        domains={
            "security": {
                "encryption": "AES-256",
                "audit_trail": "hipaa",
            },
            "performance": {"latency_p95_ms": 500},
        },
    ),
    PostureProfile(
        name="public_sector",
        signature={"project_type": "public_sector"},
        domains={
            "security": {"encryption": "AES-256", "data_residency": "in_country"},
        },
    ),
    PostureProfile(
        name="ecommerce",
        signature={"project_type": "ecommerce"},
        domains={
            "security": {"encryption": "TLS-1.3"},
            "performance": {"latency_p95_ms": 300, "availability": 99.9},
        },
    ),
)


def _signature_matches(signature: Dict[str, Any], context: Dict[str, Any]) -> bool:
    if not signature:
        return False
    for attribute, expected in signature.items():
        if attribute not in context:
            return False
        actual = context[attribute]
        if isinstance(expected, (list, tuple, set, frozenset)):
            if actual not in expected:
                return False
        elif actual != expected:
            return False
    return True


class ContextAnalyzer:
    """Resolves posture bundles from a closed, ordered table of domain profiles."""

    def __init__(self, profiles: Optional[Iterable[PostureProfile]] = None):
        # Caller-supplied profiles take precedence over the defaults
        extra = tuple(profiles) if profiles else ()
        self._profiles: Tuple[PostureProfile, ...] = extra + DEFAULT_PROFILES

    @property
    def profiles(self) -> List[PostureProfile]:
        return list(self._profiles)

    def analyze(self, context: Dict[str, Any]) -> PostureBundle:
        """Return the posture bundle of the first matching profile, or an empty one."""
        for profile in self._profiles:
            if _signature_matches(profile.signature, context):
                logger.debug("Context matched profile %s", profile.name)
                return PostureBundle(
                    profile=profile.name,
                    domains=copy.deepcopy(profile.domains),
                )
        return PostureBundle()
