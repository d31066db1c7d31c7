"""Model-backed tool detection for messages the fast path cannot decide."""

from __future__ import annotations

import asyncio
import json
import re
import time
from dataclasses import dataclass
from typing import Any, Sequence

from ..core import metrics
from ..core.config import Settings
from ..core.logging import get_logger
from ..orchestration.fallbacks import FailureKind, record_failure
from ..schemas.requests import HistoryMessage
from ..tools.catalog import category_for, ordered_unique
from ..tools.exceptions import ClassifierResponseError, ClassifierTimeoutError
from .llm import ClassifierEndpoint, LLMService

logger = get_logger(name=__name__)

INTENT_PROMPT_TEMPLATE = """You are a tool selection assistant. Your only job is to read the user's message and return a JSON array of the tool ids it needs.

Available tools:
{tools}

Conversation history (most recent first):
{history}

Current user message:
"{message}"

Rules:
1. Prefer a single tool. Return several tools only when the message explicitly asks for several actions.
2. Image, picture or visual generation requests need one image generation tool.
3. Web search, research or latest-information requests need web_search.
4. Requests to run code or analyse data need one code execution tool.
5. Requests about uploaded files or documents need file_search.
6. General conversation and questions you can answer directly need no tools: return [].
7. Only return tool ids from the available tools list.

Respond with the JSON array only, for example ["web_search"] or []."""

_FENCE_RE = re.compile(r"```(?:json)?\n?")
_ARRAY_RE = re.compile(r"\[.*?\]", re.DOTALL)


@dataclass(frozen=True)
class ClassificationContext:
    user_id: str | None = None
    request_id: str | None = None


def describe_tools(candidate_pool: Sequence[str]) -> str:
    lines = []
    for tool in candidate_pool:
        category = category_for(tool)
        label = f" ({category.value})" if category is not None else ""
        lines.append(f"- {tool}{label}")
    return "\n".join(lines)


def describe_history(history: Sequence[HistoryMessage | dict[str, Any]], window: int) -> str:
    if window <= 0:
        return "No previous messages"
    recent = list(history)[-window:]
    lines = []
    for entry in reversed(recent):
        message = entry if isinstance(entry, HistoryMessage) else HistoryMessage.model_validate(entry)
        role = (message.role or "user").upper()
        lines.append(f'{role}: "{message.body}"')
    return "\n".join(lines) or "No previous messages"


def build_prompt(
    message: str,
    history: Sequence[HistoryMessage | dict[str, Any]],
    candidate_pool: Sequence[str],
    *,
    history_window: int = 4,
) -> str:
    return INTENT_PROMPT_TEMPLATE.format(
        tools=describe_tools(candidate_pool),
        history=describe_history(history, history_window),
        message=message,
    )


def parse_tool_list(raw: str, candidate_pool: Sequence[str]) -> tuple[str, ...]:
    """Extract the JSON array from a model response and keep only pool members.

    Raises ``ClassifierResponseError`` when no array can be recovered.
    """
    content = _FENCE_RE.sub("", raw.strip()).replace("```", "")
    match = _ARRAY_RE.search(content)
    if match is None:
        raise ClassifierResponseError("classifier response contains no JSON array")
    try:
        parsed = json.loads(match.group(0))
    except json.JSONDecodeError as exc:
        raise ClassifierResponseError(f"classifier array is not valid JSON: {exc.msg}") from exc
    if not isinstance(parsed, list):
        raise ClassifierResponseError("classifier response is not an array")

    proposed = {item for item in parsed if isinstance(item, str)}
    return ordered_unique(tool for tool in candidate_pool if tool in proposed)


class IntentClassifier:
    """Asks the classification model which pool tools a message needs.

    Every failure (timeout, transport error, unusable output) degrades to an empty
    selection. Cancellation of the calling task is not intercepted.
    """

    def __init__(
        self,
        endpoint: ClassifierEndpoint,
        *,
        timeout_seconds: float = 10.0,
        history_window: int = 4,
    ) -> None:
        self._endpoint = endpoint
        self._timeout_seconds = timeout_seconds
        self._history_window = history_window

    @classmethod
    def from_settings(cls, settings: Settings, *, endpoint: ClassifierEndpoint | None = None) -> "IntentClassifier":
        return cls(
            endpoint or LLMService.from_settings(settings),
            timeout_seconds=settings.tool_selection.classifier_timeout_seconds,
            history_window=settings.tool_selection.history_window,
        )

    async def classify(
        self,
        message: str,
        history: Sequence[HistoryMessage | dict[str, Any]],
        candidate_pool: Sequence[str],
        context: ClassificationContext | None = None,
    ) -> tuple[str, ...]:
        if not candidate_pool:
            return ()
        context = context or ClassificationContext()
        prompt = build_prompt(message, history, candidate_pool, history_window=self._history_window)
        started = time.perf_counter()
        try:
            raw = await asyncio.wait_for(
                self._endpoint.complete(prompt, user=context.user_id),
                timeout=self._timeout_seconds,
            )
            selected = parse_tool_list(raw, candidate_pool)
        except asyncio.TimeoutError:
            metrics.observe_classifier_call(outcome="timeout", latency=time.perf_counter() - started)
            error = ClassifierTimeoutError(f"classifier exceeded {self._timeout_seconds}s")
            record_failure(
                FailureKind.CLASSIFIER_FAILURE,
                stage="intent_classifier",
                error=error,
                request_id=context.request_id,
            )
            return ()
        except ClassifierResponseError as exc:
            metrics.observe_classifier_call(outcome="invalid_response", latency=time.perf_counter() - started)
            record_failure(
                FailureKind.CLASSIFIER_FAILURE,
                stage="intent_classifier",
                error=exc,
                request_id=context.request_id,
            )
            return ()
        except Exception as exc:
            metrics.observe_classifier_call(outcome="error", latency=time.perf_counter() - started)
            record_failure(
                FailureKind.CLASSIFIER_FAILURE,
                stage="intent_classifier",
                error=exc,
                request_id=context.request_id,
            )
            return ()

        metrics.observe_classifier_call(outcome="success", latency=time.perf_counter() - started)
        logger.info(
            "intent_classifier_selected_tools",
            request_id=context.request_id,
            selected_tools=list(selected),
            candidate_pool=list(candidate_pool),
        )
        return selected


__all__ = [
    "ClassificationContext",
    "INTENT_PROMPT_TEMPLATE",
    "IntentClassifier",
    "build_prompt",
    "describe_history",
    "describe_tools",
    "parse_tool_list",
]
