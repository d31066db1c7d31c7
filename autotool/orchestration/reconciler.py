from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from ..core.logging import get_logger
from ..schemas.agents import AgentRecord
from ..schemas.requests import ChatRequest, EphemeralAgentFlags, RequestToolState
from .state import AgentDescriptor, DetectionResult

logger = get_logger(name=__name__)


@dataclass(frozen=True)
class Reconciliation:
    """New request-side values produced for one turn; nothing here aliases the input request."""

    agent: AgentRecord
    tool_state: RequestToolState
    descriptor: AgentDescriptor
    ephemeral_agent: EphemeralAgentFlags | None = None


def _virtual_record(descriptor: AgentDescriptor, final_tools: tuple[str, ...]) -> AgentRecord:
    return AgentRecord(
        id=descriptor.id,
        name=descriptor.display_name,
        tools=list(final_tools),
        available_tools=list(descriptor.tool_pool),
        auto_tool_filter=True,
    )


def reconcile(descriptor: AgentDescriptor, detection: DetectionResult, request: ChatRequest) -> Reconciliation:
    pool = set(descriptor.tool_pool)
    final_tools = tuple(tool for tool in detection.selected_tools if tool in pool)
    updated = descriptor.with_current_tools(final_tools)

    ephemeral_agent: EphemeralAgentFlags | None = None
    if descriptor.is_virtual:
        agent = _virtual_record(descriptor, final_tools)
        flags = request.ephemeral_agent or EphemeralAgentFlags()
        ephemeral_agent = flags.with_only(final_tools)
    else:
        source = descriptor.record or request.agent
        if source is None:
            agent = AgentRecord(id=descriptor.id, name=descriptor.display_name, tools=list(final_tools))
        else:
            agent = source.model_copy(update={"tools": list(final_tools)}, deep=True)

    tool_state = RequestToolState(
        auto_filter_applied=True,
        original_pool=descriptor.tool_pool,
        final_tools=final_tools,
    )
    logger.debug(
        "tool_selection_reconciled",
        agent_id=descriptor.id,
        source=descriptor.source.value,
        original_pool=list(descriptor.tool_pool),
        final_tools=list(final_tools),
    )
    return Reconciliation(agent=agent, tool_state=tool_state, descriptor=updated, ephemeral_agent=ephemeral_agent)


def apply_reconciliation(request: ChatRequest, reconciliation: Reconciliation) -> ChatRequest:
    """Merge reconciled values onto a copy of ``request``; the only place the outgoing request is built."""
    update: dict[str, Any] = {"agent": reconciliation.agent}
    if reconciliation.ephemeral_agent is not None:
        update["ephemeral_agent"] = reconciliation.ephemeral_agent
    return request.model_copy(update=update)


__all__ = ["Reconciliation", "apply_reconciliation", "reconcile"]
