from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Iterable, Mapping, Sequence

from ..core.config import Settings
from ..core.logging import get_logger
from ..schemas.tools import ToolPolicy
from ..services.policy_store import ToolPolicyStore
from ..tools.catalog import catalog_tool_ids
from ..tools.exceptions import PolicyLookupError
from .fallbacks import FailureKind, record_failure

logger = get_logger(name=__name__)

DEFAULT_ROLE_ALIASES: Mapping[str, str] = MappingProxyType({"ORG_ADMIN": "USER"})


def _freeze(records: Iterable[ToolPolicy]) -> Mapping[str, ToolPolicy]:
    return MappingProxyType({record.tool_id: record for record in records})


@dataclass(frozen=True)
class PolicySnapshot:
    """Read-only view of the administrator tool policy for one request."""

    records: Mapping[str, ToolPolicy] = field(default_factory=lambda: MappingProxyType({}))
    role_aliases: Mapping[str, str] = field(default_factory=lambda: DEFAULT_ROLE_ALIASES)
    degraded: bool = False

    @classmethod
    def from_policies(
        cls,
        policies: Iterable[ToolPolicy],
        *,
        role_aliases: Mapping[str, str] | None = None,
    ) -> "PolicySnapshot":
        aliases = DEFAULT_ROLE_ALIASES if role_aliases is None else MappingProxyType(dict(role_aliases))
        return cls(records=_freeze(policies), role_aliases=aliases)

    @classmethod
    def allow_all(cls, *, role_aliases: Mapping[str, str] | None = None) -> "PolicySnapshot":
        aliases = DEFAULT_ROLE_ALIASES if role_aliases is None else MappingProxyType(dict(role_aliases))
        return cls(role_aliases=aliases, degraded=True)

    def effective_role(self, role: str) -> str:
        return self.role_aliases.get(role, role)

    def is_allowed(self, tool: str, role: str) -> bool:
        record = self.records.get(tool)
        if record is None:
            # Tools without a policy record stay available to every role.
            return True
        return record.permits(self.effective_role(role))

    def filter_pool(self, tool_pool: Sequence[str], role: str) -> tuple[str, ...]:
        return tuple(tool for tool in tool_pool if self.is_allowed(tool, role))

    def partition(self, tool_pool: Sequence[str], role: str) -> tuple[list[str], list[str]]:
        allowed: list[str] = []
        removed: list[str] = []
        for tool in tool_pool:
            if self.is_allowed(tool, role):
                allowed.append(tool)
            else:
                removed.append(tool)
        return allowed, removed


class PolicyGate:
    """Loads the policy snapshot for a request, failing open when the store is unreachable."""

    def __init__(self, store: ToolPolicyStore, *, role_aliases: Mapping[str, str] | None = None) -> None:
        self._store = store
        self._role_aliases = dict(DEFAULT_ROLE_ALIASES if role_aliases is None else role_aliases)

    @classmethod
    def from_settings(cls, store: ToolPolicyStore, settings: Settings) -> "PolicyGate":
        return cls(store, role_aliases=settings.tool_selection.role_aliases)

    async def snapshot(self) -> PolicySnapshot:
        try:
            policies = await self._store.list_policies()
        except Exception as exc:
            error = PolicyLookupError(f"tool policy store unavailable: {exc}")
            record_failure(FailureKind.POLICY_LOOKUP_FAILURE, stage="policy_gate", error=error)
            return PolicySnapshot.allow_all(role_aliases=self._role_aliases)
        return PolicySnapshot.from_policies(policies, role_aliases=self._role_aliases)

    async def filter_pool(self, tool_pool: Sequence[str], role: str) -> tuple[str, ...]:
        snapshot = await self.snapshot()
        allowed, removed = snapshot.partition(tool_pool, role)
        if removed:
            logger.debug(
                "policy_gate_removed_tools",
                role=role,
                effective_role=snapshot.effective_role(role),
                removed=removed,
            )
        return tuple(allowed)

    async def enabled_tools_for_role(self, role: str) -> list[ToolPolicy]:
        """Catalog tools the role may use, in administrator order."""
        snapshot = await self.snapshot()
        effective = snapshot.effective_role(role)
        enabled: list[ToolPolicy] = []
        for tool in catalog_tool_ids():
            if not snapshot.is_allowed(tool, role):
                continue
            record = snapshot.records.get(tool)
            if record is None:
                record = ToolPolicy(tool_id=tool, order=len(snapshot.records) + len(enabled))
            enabled.append(record)
        enabled.sort(key=lambda policy: (policy.order, policy.tool_id))
        logger.debug("policy_gate_enabled_tools", role=role, effective_role=effective, count=len(enabled))
        return enabled


__all__ = ["DEFAULT_ROLE_ALIASES", "PolicyGate", "PolicySnapshot"]
