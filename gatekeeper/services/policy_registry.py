"""Static registry of per-action rate limit policies.

The registry is built once at process start from configuration and is
read-only afterwards. An action type missing from the registry is not an
error: it means the action is deliberately not rate limited.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping

from gatekeeper.core.config import PolicyConfig, RateLimitSettings, settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Policy:
    """Rate limit policy for one action type.

    Attributes:
        action_type: Throttled operation this policy applies to.
        window_seconds: Fixed window length in seconds.
        max_count: Ceiling for verified subjects.
        unverified_max_count: Ceiling for unverified subjects (<= max_count).
    """

    action_type: str
    window_seconds: int
    max_count: int
    unverified_max_count: int

    def __post_init__(self) -> None:
        if not self.action_type:
            raise ValueError("action_type must be a non-empty string")
        if self.window_seconds < 1:
            raise ValueError("window_seconds must be >= 1")
        if self.max_count < 1:
            raise ValueError("max_count must be >= 1")
        if self.unverified_max_count < 1:
            raise ValueError("unverified_max_count must be >= 1")
        if self.unverified_max_count > self.max_count:
            raise ValueError("unverified_max_count must be <= max_count")

    @classmethod
    def from_config(cls, action_type: str, config: PolicyConfig) -> "Policy":
        unverified = config.unverified_max_count
        return cls(
            action_type=action_type,
            window_seconds=config.window_seconds,
            max_count=config.max_count,
            unverified_max_count=config.max_count if unverified is None else unverified,
        )


class PolicyRegistry:
    """Read-only mapping from action type to Policy."""

    def __init__(self, policies: Mapping[str, Policy]) -> None:
        for action_type, policy in policies.items():
            if policy.action_type != action_type:
                raise ValueError(
                    f"Policy registered under '{action_type}' belongs to '{policy.action_type}'"
                )
        self._policies: Mapping[str, Policy] = MappingProxyType(dict(policies))

    @classmethod
    def from_settings(cls, rate_limit_settings: RateLimitSettings | None = None) -> "PolicyRegistry":
        """Build the registry from configured policies.

        Args:
            rate_limit_settings: Optional settings; defaults to the global settings.
        """
        cfg = rate_limit_settings or settings.rate_limit
        registry = cls(
            {
                action_type: Policy.from_config(action_type, policy_config)
                for action_type, policy_config in cfg.policies.items()
            }
        )
        logger.info(
            "policy_registry.loaded",
            extra={"action_types": sorted(registry.action_types())},
        )
        return registry

    def lookup(self, action_type: str) -> Policy | None:
        """Return the policy for ``action_type`` or None when not configured."""
        return self._policies.get(action_type)

    def action_types(self) -> frozenset[str]:
        return frozenset(self._policies)

    def policies(self) -> list[Policy]:
        return [self._policies[name] for name in sorted(self._policies)]

    def __contains__(self, action_type: object) -> bool:
        return action_type in self._policies

    def __len__(self) -> int:
        return len(self._policies)
