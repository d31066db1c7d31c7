from __future__ import annotations

import asyncio
from typing import Any, Iterable, Sequence

from autotool.core.config import Settings
from autotool.orchestration.fast_matcher import FastMatcher
from autotool.orchestration.pipeline import AutoToolSelectionPipeline
from autotool.orchestration.policy_gate import PolicyGate
from autotool.schemas.agents import AgentRecord, ConversationRecord
from autotool.schemas.tools import ToolPolicy
from autotool.services.intent_classifier import IntentClassifier


class StubAgentStore:
    """Agent store double that can be told to fail."""

    def __init__(self, agents: Iterable[AgentRecord] = (), *, error: Exception | None = None) -> None:
        self.agents: dict[str, AgentRecord] = {agent.id: agent for agent in agents}
        self.error = error
        self.lookups: list[str] = []

    async def get_agent_by_id(self, agent_id: str) -> AgentRecord | None:
        self.lookups.append(agent_id)
        if self.error is not None:
            raise self.error
        return self.agents.get(agent_id)


class StubConversationStore:
    def __init__(self, conversations: Iterable[ConversationRecord] = (), *, error: Exception | None = None) -> None:
        self.conversations = {conversation.conversation_id: conversation for conversation in conversations}
        self.error = error
        self.lookups: list[str] = []

    async def get_conversation_by_id(self, conversation_id: str) -> ConversationRecord | None:
        self.lookups.append(conversation_id)
        if self.error is not None:
            raise self.error
        return self.conversations.get(conversation_id)


class StubPolicyStore:
    def __init__(self, policies: Iterable[ToolPolicy] = (), *, error: Exception | None = None) -> None:
        self.policies = tuple(policies)
        self.error = error
        self.calls = 0

    async def list_policies(self) -> Sequence[ToolPolicy]:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.policies


class StubClassifierEndpoint:
    """Returns a canned completion, optionally after a delay or by raising."""

    def __init__(self, response: str = "[]", *, delay: float = 0.0, error: Exception | None = None) -> None:
        self.response = response
        self.delay = delay
        self.error = error
        self.prompts: list[str] = []
        self.users: list[str | None] = []
        self.cancelled = False

    @property
    def calls(self) -> int:
        return len(self.prompts)

    async def complete(self, prompt: str, *, user: str | None = None) -> str:
        self.prompts.append(prompt)
        self.users.append(user)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        if self.error is not None:
            raise self.error
        return self.response


class ExplodingMatcher(FastMatcher):
    def match(self, message: Any, candidate_pool: Sequence[str]):  # noqa: ARG002
        raise RuntimeError("matcher exploded")


def build_pipeline(
    settings: Settings,
    *,
    agents: Iterable[AgentRecord] = (),
    conversations: Iterable[ConversationRecord] = (),
    policies: Iterable[ToolPolicy] = (),
    agent_store: StubAgentStore | None = None,
    policy_store: StubPolicyStore | None = None,
    endpoint: StubClassifierEndpoint | None = None,
    timeout_seconds: float = 1.0,
    matcher: FastMatcher | None = None,
) -> AutoToolSelectionPipeline:
    classifier = IntentClassifier(
        endpoint or StubClassifierEndpoint(),
        timeout_seconds=timeout_seconds,
        history_window=settings.tool_selection.history_window,
    )
    return AutoToolSelectionPipeline(
        agent_store=agent_store or StubAgentStore(agents),
        conversation_store=StubConversationStore(conversations),
        policy_gate=PolicyGate.from_settings(policy_store or StubPolicyStore(policies), settings),
        classifier=classifier,
        matcher=matcher,
        settings=settings,
    )
