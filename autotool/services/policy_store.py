from __future__ import annotations

import time
from typing import Iterable, Protocol, Sequence, runtime_checkable

from ..core.config import Settings
from ..core.logging import get_logger
from ..schemas.tools import ToolPolicy

logger = get_logger(name=__name__)


DEFAULT_TOOL_POLICIES: tuple[ToolPolicy, ...] = (
    ToolPolicy(
        tool_id="web_search",
        order=0,
        description="Search the web for real-time information",
    ),
    ToolPolicy(
        tool_id="file_search",
        order=1,
        description="Search through uploaded files and documents",
    ),
    ToolPolicy(
        tool_id="image_generation",
        order=2,
        description="Generate images using AI models",
    ),
    ToolPolicy(
        tool_id="code_interpreter",
        order=3,
        description="Execute code and analyze data",
    ),
    ToolPolicy(
        tool_id="artifacts",
        order=4,
        description="Display code output and visual artifacts",
    ),
    ToolPolicy(
        tool_id="mcp_servers",
        order=5,
        description="Connect to Model Context Protocol servers",
    ),
)


@runtime_checkable
class ToolPolicyStore(Protocol):
    async def list_policies(self) -> Sequence[ToolPolicy]:
        ...


class InMemoryToolPolicyStore:
    """Policy records keyed by tool id; seeded with the platform defaults."""

    def __init__(self, policies: Iterable[ToolPolicy] | None = None) -> None:
        seed = DEFAULT_TOOL_POLICIES if policies is None else policies
        self._policies: dict[str, ToolPolicy] = {policy.tool_id: policy for policy in seed}

    def upsert(self, policy: ToolPolicy) -> None:
        self._policies[policy.tool_id] = policy

    def remove(self, tool_id: str) -> None:
        self._policies.pop(tool_id, None)

    async def list_policies(self) -> Sequence[ToolPolicy]:
        return tuple(sorted(self._policies.values(), key=lambda policy: (policy.order, policy.tool_id)))


class CachedToolPolicyStore:
    """Read-through TTL cache in front of a policy store.

    The cached value is an immutable tuple, so concurrent readers share it without locks.
    Errors from the wrapped store propagate; callers decide how to degrade.
    """

    def __init__(self, store: ToolPolicyStore, *, ttl_seconds: float = 300.0) -> None:
        self._store = store
        self._ttl_seconds = max(0.0, float(ttl_seconds))
        self._cached: tuple[ToolPolicy, ...] | None = None
        self._expires_at: float = 0.0

    @classmethod
    def from_settings(cls, store: ToolPolicyStore, settings: Settings) -> "CachedToolPolicyStore":
        return cls(store, ttl_seconds=settings.policy_cache.ttl_seconds)

    async def list_policies(self) -> Sequence[ToolPolicy]:
        now = self._monotonic()
        if self._cached is not None and now < self._expires_at:
            return self._cached
        policies = tuple(await self._store.list_policies())
        self._cached = policies
        self._expires_at = now + self._ttl_seconds
        logger.debug("tool_policy_cache_refreshed", count=len(policies), ttl_seconds=self._ttl_seconds)
        return policies

    def invalidate(self) -> None:
        self._cached = None
        self._expires_at = 0.0

    def _monotonic(self) -> float:
        return time.monotonic()


__all__ = [
    "CachedToolPolicyStore",
    "DEFAULT_TOOL_POLICIES",
    "InMemoryToolPolicyStore",
    "ToolPolicyStore",
]
