"""Per-request automatic tool selection.

``AutoToolSelectionPipeline.run`` walks a fixed sequence of stages:

    start -> resolved -> policy_checked -> fast_matched -> (classifier_invoked) -> reconciled -> done

and stops in ``unfiltered`` whenever selection cannot apply (no agent, automatic
selection switched off, no usable message text, nothing allowed by policy) or any
stage raises. An unfiltered run hands back the caller's request object untouched.
"""

from __future__ import annotations

import time
from typing import Sequence

from ..core import metrics
from ..core.config import Settings, get_settings
from ..core.logging import get_logger
from ..schemas.requests import ChatRequest
from ..services.intent_classifier import ClassificationContext, IntentClassifier
from ..services.llm import ClassifierEndpoint
from ..services.policy_store import CachedToolPolicyStore, InMemoryToolPolicyStore, ToolPolicyStore
from ..services.stores import AgentStore, ConversationStore, InMemoryAgentStore, InMemoryConversationStore
from .agent_resolver import AgentResolver
from .fallbacks import FailureKind, record_failure
from .fast_matcher import FastMatcher
from .policy_gate import PolicyGate
from .reconciler import apply_reconciliation, reconcile
from .state import AgentDescriptor, DetectionResult, PipelineState, SelectionOutcome

logger = get_logger(name=__name__)


class AutoToolSelectionPipeline:
    def __init__(
        self,
        *,
        agent_store: AgentStore,
        conversation_store: ConversationStore,
        policy_gate: PolicyGate,
        classifier: IntentClassifier,
        matcher: FastMatcher | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._resolver = AgentResolver(agent_store, conversation_store)
        self._policy_gate = policy_gate
        self._classifier = classifier
        self._matcher = matcher or FastMatcher()

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        agent_store: AgentStore | None = None,
        conversation_store: ConversationStore | None = None,
        policy_store: ToolPolicyStore | None = None,
        endpoint: ClassifierEndpoint | None = None,
    ) -> "AutoToolSelectionPipeline":
        store = CachedToolPolicyStore.from_settings(policy_store or InMemoryToolPolicyStore(), settings)
        return cls(
            agent_store=agent_store or InMemoryAgentStore.from_settings(settings),
            conversation_store=conversation_store or InMemoryConversationStore(),
            policy_gate=PolicyGate.from_settings(store, settings),
            classifier=IntentClassifier.from_settings(settings, endpoint=endpoint),
            settings=settings,
        )

    @property
    def policy_gate(self) -> PolicyGate:
        return self._policy_gate

    async def run(
        self,
        request: ChatRequest,
        *,
        role: str | None = None,
        user_id: str | None = None,
        request_id: str | None = None,
    ) -> SelectionOutcome:
        role = role or self._settings.tool_selection.default_role
        started = time.perf_counter()
        trace: list[PipelineState] = [PipelineState.START]
        descriptor: AgentDescriptor | None = None

        def unfiltered(reason: str) -> SelectionOutcome:
            trace.append(PipelineState.UNFILTERED)
            metrics.record_selection_run(state=PipelineState.UNFILTERED.value, latency=time.perf_counter() - started)
            logger.info(
                "tool_selection_unfiltered",
                reason=reason,
                role=role,
                request_id=request_id,
                agent_id=descriptor.id if descriptor else None,
            )
            return SelectionOutcome(
                request=request,
                state=PipelineState.UNFILTERED,
                descriptor=descriptor,
                trace=tuple(trace),
            )

        if not self._settings.tool_selection.enabled:
            return unfiltered("disabled")

        try:
            descriptor = await self._resolver.resolve(request)
            if descriptor is None:
                return unfiltered("no_agent")
            trace.append(PipelineState.RESOLVED)

            if not descriptor.auto_select_enabled:
                return unfiltered("auto_select_disabled")
            message = request.message_text()
            if message is None:
                return unfiltered("no_message_text")

            allowed = await self._policy_gate.filter_pool(descriptor.tool_pool, role)
            trace.append(PipelineState.POLICY_CHECKED)
            if not allowed:
                return unfiltered("empty_allowed_pool")

            detection = self._matcher.match(message, allowed)
            trace.append(PipelineState.FAST_MATCHED)
            if detection.matched_by_fast_path:
                metrics.record_detection(source="fast_path", tools=detection.selected_tools)
                logger.info(
                    "tool_selection_fast_path",
                    agent_id=descriptor.id,
                    rules=list(detection.matched_rules),
                    selected_tools=list(detection.selected_tools),
                )
            else:
                detection = await self._classify(message, request, allowed, user_id, request_id)
                trace.append(PipelineState.CLASSIFIER_INVOKED)

            reconciliation = reconcile(descriptor, detection, request)
            trace.append(PipelineState.RECONCILED)
            outgoing = apply_reconciliation(request, reconciliation)
        except Exception as exc:
            record_failure(
                FailureKind.UNEXPECTED,
                stage=trace[-1].value,
                error=exc,
                request_id=request_id,
            )
            return unfiltered("unexpected_error")

        trace.append(PipelineState.DONE)
        latency = time.perf_counter() - started
        metrics.record_selection_run(state=PipelineState.DONE.value, latency=latency)
        logger.info(
            "tool_selection_complete",
            agent_id=descriptor.id,
            source=descriptor.source.value,
            role=role,
            request_id=request_id,
            matched_by_fast_path=detection.matched_by_fast_path,
            original_pool=list(descriptor.tool_pool),
            allowed_pool=list(allowed),
            final_tools=list(reconciliation.tool_state.final_tools),
            latency_ms=round(latency * 1000, 2),
        )
        return SelectionOutcome(
            request=outgoing,
            state=PipelineState.DONE,
            tool_state=reconciliation.tool_state,
            descriptor=reconciliation.descriptor,
            detection=detection,
            trace=tuple(trace),
        )

    async def _classify(
        self,
        message: str,
        request: ChatRequest,
        allowed: Sequence[str],
        user_id: str | None,
        request_id: str | None,
    ) -> DetectionResult:
        context = ClassificationContext(user_id=user_id, request_id=request_id)
        selected = await self._classifier.classify(message, request.messages, allowed, context)
        metrics.record_detection(source="classifier", tools=selected)
        return DetectionResult(matched_by_fast_path=False, selected_tools=selected)


__all__ = ["AutoToolSelectionPipeline"]
