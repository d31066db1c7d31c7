from __future__ import annotations

from typing import Iterable, Protocol, runtime_checkable

from ..core.config import Settings
from ..core.logging import get_logger
from ..schemas.agents import AgentRecord, ConversationRecord

logger = get_logger(name=__name__)


@runtime_checkable
class AgentStore(Protocol):
    async def get_agent_by_id(self, agent_id: str) -> AgentRecord | None:
        ...


@runtime_checkable
class ConversationStore(Protocol):
    async def get_conversation_by_id(self, conversation_id: str) -> ConversationRecord | None:
        ...


class InMemoryAgentStore:
    """Dictionary-backed agent store used for local runs and tests."""

    def __init__(self, agents: Iterable[AgentRecord] = ()) -> None:
        self._agents: dict[str, AgentRecord] = {}
        for agent in agents:
            self.put(agent)

    @classmethod
    def from_settings(cls, settings: Settings) -> "InMemoryAgentStore":
        agents = [AgentRecord.model_validate(entry.model_dump()) for entry in settings.default_agents]
        logger.debug("agent_store_seeded", agents=[agent.id for agent in agents])
        return cls(agents)

    def put(self, agent: AgentRecord) -> None:
        self._agents[agent.id] = agent

    def clear(self) -> None:
        self._agents.clear()

    async def get_agent_by_id(self, agent_id: str) -> AgentRecord | None:
        agent = self._agents.get(agent_id)
        if agent is None:
            return None
        return agent.model_copy(deep=True)


class InMemoryConversationStore:
    def __init__(self, conversations: Iterable[ConversationRecord] = ()) -> None:
        self._conversations: dict[str, ConversationRecord] = {}
        for conversation in conversations:
            self.put(conversation)

    def put(self, conversation: ConversationRecord) -> None:
        self._conversations[conversation.conversation_id] = conversation

    def clear(self) -> None:
        self._conversations.clear()

    async def get_conversation_by_id(self, conversation_id: str) -> ConversationRecord | None:
        return self._conversations.get(conversation_id)


__all__ = [
    "AgentStore",
    "ConversationStore",
    "InMemoryAgentStore",
    "InMemoryConversationStore",
]
