from __future__ import annotations

from collections.abc import AsyncIterator

from fastapi import Depends

from .core.config import Settings, get_settings
from .orchestration.pipeline import AutoToolSelectionPipeline
from .orchestration.policy_gate import PolicyGate
from .services.policy_store import InMemoryToolPolicyStore
from .services.stores import InMemoryAgentStore, InMemoryConversationStore


_agent_store_singleton: InMemoryAgentStore | None = None
_conversation_store_singleton: InMemoryConversationStore | None = None
_policy_store_singleton: InMemoryToolPolicyStore | None = None
_pipeline_singleton: AutoToolSelectionPipeline | None = None


def get_agent_store_singleton(settings: Settings) -> InMemoryAgentStore:
    global _agent_store_singleton
    if _agent_store_singleton is None:
        _agent_store_singleton = InMemoryAgentStore.from_settings(settings)
    return _agent_store_singleton


def get_conversation_store_singleton() -> InMemoryConversationStore:
    global _conversation_store_singleton
    if _conversation_store_singleton is None:
        _conversation_store_singleton = InMemoryConversationStore()
    return _conversation_store_singleton


def get_policy_store_singleton() -> InMemoryToolPolicyStore:
    global _policy_store_singleton
    if _policy_store_singleton is None:
        _policy_store_singleton = InMemoryToolPolicyStore()
    return _policy_store_singleton


def get_pipeline_singleton(settings: Settings) -> AutoToolSelectionPipeline:
    global _pipeline_singleton
    if _pipeline_singleton is None:
        _pipeline_singleton = AutoToolSelectionPipeline.from_settings(
            settings,
            agent_store=get_agent_store_singleton(settings),
            conversation_store=get_conversation_store_singleton(),
            policy_store=get_policy_store_singleton(),
        )
    return _pipeline_singleton


async def get_app_settings() -> AsyncIterator[Settings]:
    yield get_settings()


async def get_pipeline(
    settings: Settings = Depends(get_app_settings),
) -> AsyncIterator[AutoToolSelectionPipeline]:
    yield get_pipeline_singleton(settings)


async def get_policy_gate(
    pipeline: AutoToolSelectionPipeline = Depends(get_pipeline),
) -> AsyncIterator[PolicyGate]:
    yield pipeline.policy_gate
