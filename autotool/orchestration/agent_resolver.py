from __future__ import annotations

from ..core.logging import get_logger
from ..schemas.agents import AgentRecord
from ..schemas.requests import ChatRequest
from ..services.stores import AgentStore, ConversationStore
from ..tools.catalog import catalog_tool_ids, ordered_unique
from ..tools.exceptions import AgentResolutionError
from .fallbacks import FailureKind, record_failure
from .state import AgentDescriptor, DescriptorSource

logger = get_logger(name=__name__)

EPHEMERAL_AGENT_ID = "ephemeral"
EPHEMERAL_AGENT_NAME = "Ephemeral Agent (Smart Tool Selection)"


def descriptor_from_record(record: AgentRecord, source: DescriptorSource) -> AgentDescriptor:
    return AgentDescriptor(
        id=record.id,
        display_name=record.name or record.id,
        auto_select_enabled=record.auto_tool_filter,
        tool_pool=ordered_unique(record.tool_pool()),
        current_tools=ordered_unique(record.tools),
        source=source,
        record=record,
    )


def virtual_descriptor() -> AgentDescriptor:
    """Descriptor for requests without a stored agent; the pool is the whole catalog."""
    pool = catalog_tool_ids()
    return AgentDescriptor(
        id=EPHEMERAL_AGENT_ID,
        display_name=EPHEMERAL_AGENT_NAME,
        auto_select_enabled=True,
        tool_pool=pool,
        current_tools=pool,
        source=DescriptorSource.EPHEMERAL,
    )


class AgentResolver:
    """Finds the agent a chat request addresses.

    Rules are tried in order and the first hit wins: inline agent, explicit agent id,
    the agent bound to the conversation, then a virtual agent for ephemeral requests.
    Lookup errors are logged and treated as a miss for that rule only.
    """

    def __init__(self, agent_store: AgentStore, conversation_store: ConversationStore) -> None:
        self._agents = agent_store
        self._conversations = conversation_store

    async def resolve(self, request: ChatRequest) -> AgentDescriptor | None:
        if request.agent is not None:
            return descriptor_from_record(request.agent, DescriptorSource.INLINE)

        if request.agent_id:
            record = await self._lookup_agent(request.agent_id)
            if record is not None:
                return descriptor_from_record(record, DescriptorSource.PERSISTED)

        if not request.agent_id and request.ephemeral_agent is None and request.conversation_id:
            record = await self._lookup_conversation_agent(request.conversation_id)
            if record is not None:
                return descriptor_from_record(record, DescriptorSource.CONVERSATION)

        if request.ephemeral_agent is not None:
            return virtual_descriptor()

        record_failure(
            FailureKind.RESOLUTION_MISS,
            stage="agent_resolver",
            agent_id=request.agent_id,
            conversation_id=request.conversation_id,
        )
        return None

    async def _lookup_agent(self, agent_id: str) -> AgentRecord | None:
        try:
            record = await self._agents.get_agent_by_id(agent_id)
            return _as_record(record)
        except Exception as exc:
            error = AgentResolutionError(f"agent lookup failed for {agent_id!r}: {exc}")
            record_failure(FailureKind.RESOLUTION_MISS, stage="agent_lookup", error=error, agent_id=agent_id)
            return None

    async def _lookup_conversation_agent(self, conversation_id: str) -> AgentRecord | None:
        try:
            conversation = await self._conversations.get_conversation_by_id(conversation_id)
        except Exception as exc:
            error = AgentResolutionError(f"conversation lookup failed for {conversation_id!r}: {exc}")
            record_failure(
                FailureKind.RESOLUTION_MISS,
                stage="conversation_lookup",
                error=error,
                conversation_id=conversation_id,
            )
            return None
        if conversation is None or not conversation.bound_agent_id:
            logger.debug("conversation_without_agent", conversation_id=conversation_id)
            return None
        return await self._lookup_agent(conversation.bound_agent_id)


def _as_record(record: object) -> AgentRecord | None:
    if record is None or isinstance(record, AgentRecord):
        return record
    # Stores may hand back plain mappings; anything that fails validation raises here.
    return AgentRecord.model_validate(record)


__all__ = [
    "AgentResolver",
    "EPHEMERAL_AGENT_ID",
    "EPHEMERAL_AGENT_NAME",
    "descriptor_from_record",
    "virtual_descriptor",
]
