from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import TYPE_CHECKING

from ..schemas.agents import AgentRecord

if TYPE_CHECKING:
    from ..schemas.requests import ChatRequest, RequestToolState


class DescriptorSource(str, Enum):
    INLINE = "inline"
    PERSISTED = "persisted"
    CONVERSATION = "conversation"
    EPHEMERAL = "ephemeral"


class PipelineState(str, Enum):
    START = "start"
    RESOLVED = "resolved"
    POLICY_CHECKED = "policy_checked"
    FAST_MATCHED = "fast_matched"
    CLASSIFIER_INVOKED = "classifier_invoked"
    RECONCILED = "reconciled"
    DONE = "done"
    UNFILTERED = "unfiltered"


@dataclass(frozen=True)
class AgentDescriptor:
    id: str
    display_name: str
    auto_select_enabled: bool
    tool_pool: tuple[str, ...]
    current_tools: tuple[str, ...]
    source: DescriptorSource
    record: AgentRecord | None = None

    @property
    def is_virtual(self) -> bool:
        return self.source is DescriptorSource.EPHEMERAL

    def with_current_tools(self, tools: tuple[str, ...]) -> "AgentDescriptor":
        pool = set(self.tool_pool)
        return replace(self, current_tools=tuple(tool for tool in tools if tool in pool))


@dataclass(frozen=True)
class DetectionResult:
    matched_by_fast_path: bool
    selected_tools: tuple[str, ...] = ()
    matched_rules: tuple[str, ...] = ()

    @classmethod
    def no_match(cls) -> "DetectionResult":
        return cls(matched_by_fast_path=False)


@dataclass(frozen=True)
class SelectionOutcome:
    """Result of one pipeline run; ``request`` is the outgoing (possibly rewritten) request."""

    request: "ChatRequest"
    state: PipelineState
    tool_state: "RequestToolState | None" = None
    descriptor: AgentDescriptor | None = None
    detection: DetectionResult | None = None
    trace: tuple[PipelineState, ...] = field(default_factory=tuple)

    @property
    def filtered(self) -> bool:
        return self.state is PipelineState.DONE


__all__ = [
    "AgentDescriptor",
    "DescriptorSource",
    "DetectionResult",
    "PipelineState",
    "SelectionOutcome",
]
