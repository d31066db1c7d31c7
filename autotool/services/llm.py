from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar, Protocol, Sequence, runtime_checkable

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage
from langchain_ollama import ChatOllama

from ..core.config import Settings
from ..core.logging import get_logger

logger = get_logger(name=__name__)


@runtime_checkable
class ClassifierEndpoint(Protocol):
    """Single completion call used by the intent classifier."""

    async def complete(self, prompt: str, *, user: str | None = None) -> str:
        ...


def _build_base_url(host: str, port: int) -> str:
    if ":" in host.rsplit("/", maxsplit=1)[-1]:
        return host.rstrip("/")
    return f"{host.rstrip('/')}:{port}"


def _messages_from_text(prompt: str, system_prompt: str | None = None) -> Sequence[BaseMessage]:
    messages: list[BaseMessage] = []
    if system_prompt:
        messages.append(SystemMessage(content=system_prompt))
    messages.append(HumanMessage(content=prompt))
    return messages


@dataclass
class LLMService:
    """Thin LangChain client for the intent classification model served by Ollama.

    The call is issued exactly once; timeouts and error handling belong to the caller
    so that a cancelled request also cancels the in-flight completion.
    """

    settings: Settings
    _client: Any
    model: str
    system_prompt: str | None = None
    _client_cache: ClassVar[dict[str, Any]] = {}

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        model: str | None = None,
        client: Any | None = None,
    ) -> "LLMService":
        model_name = model or settings.tool_selection.classifier_model or settings.ollama.model
        if client is None:
            cache_key = f"{settings.ollama.host}:{settings.ollama.port}:{model_name}"
            cached = cls._client_cache.get(cache_key)
            if cached is None:
                base_url = _build_base_url(settings.ollama.host, settings.ollama.port)
                cached = ChatOllama(
                    model=model_name,
                    base_url=base_url,
                    temperature=settings.tool_selection.classifier_temperature,
                    num_predict=settings.tool_selection.classifier_max_tokens,
                )
                cls._client_cache[cache_key] = cached
            client = cached
        return cls(settings=settings, _client=client, model=model_name)

    async def complete(self, prompt: str, *, user: str | None = None) -> str:
        messages = _messages_from_text(prompt, self.system_prompt)
        logger.debug("llm_completion_started", model=self.model, user=user, prompt_chars=len(prompt))
        result = await self._client.ainvoke(messages)
        return _extract_content(result)


def _extract_content(result: Any) -> str:
    if isinstance(result, AIMessage) or hasattr(result, "content"):
        content = result.content
        if isinstance(content, list):
            return " ".join(
                item.get("text", "") if isinstance(item, dict) else str(item)
                for item in content
            )
        return str(content)
    return str(result)


__all__ = ["ClassifierEndpoint", "LLMService"]
