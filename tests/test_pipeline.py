from __future__ import annotations

import asyncio

import pytest
from prometheus_client import REGISTRY

from autotool.orchestration.state import PipelineState
from autotool.schemas.agents import AgentRecord
from autotool.schemas.requests import ChatRequest
from autotool.schemas.tools import ToolPolicy
from autotool.tools.catalog import catalog_tool_ids
from tests.helpers.stubs import (
    ExplodingMatcher,
    StubAgentStore,
    StubClassifierEndpoint,
    StubPolicyStore,
    build_pipeline,
)


def _agent(tools: list[str], *, auto: bool = True) -> AgentRecord:
    return AgentRecord(id="agent_1", name="Helper", tools=tools, auto_tool_filter=auto)


def _runs(state: str) -> float:
    return REGISTRY.get_sample_value("autotool_selection_runs_total", {"state": state}) or 0.0


@pytest.mark.asyncio
async def test_fast_path_selects_image_tool_without_classifier(settings) -> None:
    endpoint = StubClassifierEndpoint('["web_search"]')
    pipeline = build_pipeline(settings, agents=[_agent(["image_generation", "web_search"])], endpoint=endpoint)
    request = ChatRequest(text="draw a cat sitting on a windowsill", agent_id="agent_1")

    outcome = await pipeline.run(request, role="USER")

    assert outcome.state is PipelineState.DONE
    assert outcome.detection.matched_by_fast_path is True
    assert outcome.filtered is True
    assert outcome.tool_state.final_tools == ("image_generation",)
    assert outcome.request.agent.tools == ["image_generation"]
    assert endpoint.calls == 0
    assert PipelineState.CLASSIFIER_INVOKED not in outcome.trace


@pytest.mark.asyncio
async def test_classifier_fallback_selects_web_search(settings) -> None:
    endpoint = StubClassifierEndpoint('["web_search"]')
    pipeline = build_pipeline(
        settings,
        agents=[_agent(["image_generation", "web_search", "code_interpreter"])],
        endpoint=endpoint,
    )
    request = ChatRequest(text="what's the weather like in general terms", agent_id="agent_1")

    outcome = await pipeline.run(request, role="USER", user_id="user-9")

    assert endpoint.calls == 1
    assert endpoint.users == ["user-9"]
    assert outcome.detection.matched_by_fast_path is False
    assert outcome.tool_state.final_tools == ("web_search",)
    assert outcome.trace == (
        PipelineState.START,
        PipelineState.RESOLVED,
        PipelineState.POLICY_CHECKED,
        PipelineState.FAST_MATCHED,
        PipelineState.CLASSIFIER_INVOKED,
        PipelineState.RECONCILED,
        PipelineState.DONE,
    )


@pytest.mark.asyncio
async def test_classifier_timeout_results_in_empty_selection(settings) -> None:
    endpoint = StubClassifierEndpoint('["web_search"]', delay=5.0)
    pipeline = build_pipeline(
        settings,
        agents=[_agent(["image_generation", "web_search", "code_interpreter"])],
        endpoint=endpoint,
        timeout_seconds=0.01,
    )
    request = ChatRequest(text="what's the weather like in general terms", agent_id="agent_1")

    outcome = await pipeline.run(request, role="USER")

    assert outcome.state is PipelineState.DONE
    assert outcome.tool_state.auto_filter_applied is True
    assert outcome.tool_state.final_tools == ()
    assert outcome.request.agent.tools == []


@pytest.mark.asyncio
async def test_ephemeral_request_resets_flags(settings) -> None:
    pipeline = build_pipeline(settings)
    request = ChatRequest.model_validate(
        {
            "text": "generate an image of a lighthouse at dusk",
            "ephemeralAgent": {"web_search": True, "dalle": True, "artifacts": True},
        }
    )

    outcome = await pipeline.run(request, role="USER")
    flags = outcome.request.ephemeral_agent.as_flags()

    assert outcome.tool_state.original_pool == catalog_tool_ids()
    assert outcome.tool_state.final_tools == ("image_generation",)
    assert flags["image_generation"] is True
    assert all(flags[tool] is False for tool in catalog_tool_ids() if tool != "image_generation")
    assert flags["artifacts"] is True
    assert request.ephemeral_agent.as_flags()["dalle"] is True


@pytest.mark.asyncio
async def test_ephemeral_request_resets_execute_code_flag(settings) -> None:
    pipeline = build_pipeline(settings)
    request = ChatRequest.model_validate(
        {"text": "draw a cat", "ephemeralAgent": {"execute_code": True, "web_search": True}}
    )

    outcome = await pipeline.run(request, role="USER")
    flags = outcome.request.ephemeral_agent.as_flags()

    assert outcome.tool_state.final_tools == ("image_generation",)
    assert flags["execute_code"] is False
    assert flags["web_search"] is False
    assert "execute_code" not in outcome.request.ephemeral_agent.extras


@pytest.mark.asyncio
async def test_single_provider_pool_resolves_on_fast_path(settings) -> None:
    endpoint = StubClassifierEndpoint("[]")
    pipeline = build_pipeline(settings, agents=[_agent(["nano-banana"])], endpoint=endpoint)
    request = ChatRequest(text="draw a cat sitting on a windowsill", agent_id="agent_1")

    outcome = await pipeline.run(request, role="USER")

    assert outcome.detection.matched_by_fast_path is True
    assert outcome.tool_state.final_tools == ("nano-banana",)
    assert endpoint.calls == 0


@pytest.mark.asyncio
async def test_org_admin_uses_user_policy_view(settings) -> None:
    policies = [
        ToolPolicy(tool_id="web_search", allowed_roles=frozenset({"USER", "ADMIN"})),
        ToolPolicy(tool_id="code_interpreter", allowed_roles=frozenset({"ADMIN"})),
    ]
    endpoint = StubClassifierEndpoint('["web_search", "code_interpreter"]')
    pipeline = build_pipeline(
        settings,
        agents=[_agent(["web_search", "code_interpreter"])],
        policies=policies,
        endpoint=endpoint,
    )
    request = ChatRequest(text="tell me something useful", agent_id="agent_1")

    outcome = await pipeline.run(request, role="ORG_ADMIN")

    assert outcome.tool_state.final_tools == ("web_search",)
    assert "- code_interpreter" not in endpoint.prompts[0]

    admin_outcome = await pipeline.run(request, role="ADMIN")
    assert admin_outcome.tool_state.final_tools == ("web_search", "code_interpreter")


@pytest.mark.asyncio
async def test_agent_store_failure_passes_request_through(settings) -> None:
    before = _runs("unfiltered")
    pipeline = build_pipeline(settings, agent_store=StubAgentStore(error=ConnectionError("store unreachable")))
    request = ChatRequest.model_validate(
        {"text": "draw a cat", "agent_id": "agent_1", "agent_tools_hint": ["web_search"]}
    )

    outcome = await pipeline.run(request, role="USER")

    assert outcome.state is PipelineState.UNFILTERED
    assert outcome.request is request
    assert outcome.tool_state is None
    assert outcome.filtered is False
    assert _runs("unfiltered") == pytest.approx(before + 1.0)


@pytest.mark.asyncio
@pytest.mark.parametrize("text", [None, "", "   ", {"parts": ["draw"]}])
async def test_non_text_message_is_unfiltered(settings, text) -> None:
    pipeline = build_pipeline(settings, agents=[_agent(["image_generation"])])
    outcome = await pipeline.run(ChatRequest(text=text, agent_id="agent_1"), role="USER")

    assert outcome.state is PipelineState.UNFILTERED
    assert outcome.trace[-2] is PipelineState.RESOLVED


@pytest.mark.asyncio
async def test_agent_without_auto_selection_is_unfiltered(settings) -> None:
    endpoint = StubClassifierEndpoint('["web_search"]')
    pipeline = build_pipeline(settings, agents=[_agent(["web_search"], auto=False)], endpoint=endpoint)

    outcome = await pipeline.run(ChatRequest(text="search the news", agent_id="agent_1"), role="USER")

    assert outcome.state is PipelineState.UNFILTERED
    assert endpoint.calls == 0


@pytest.mark.asyncio
async def test_empty_allowed_pool_is_unfiltered(settings) -> None:
    policies = [ToolPolicy(tool_id="web_search", enabled=False)]
    pipeline = build_pipeline(settings, agents=[_agent(["web_search"])], policies=policies)

    outcome = await pipeline.run(ChatRequest(text="search the news", agent_id="agent_1"), role="USER")

    assert outcome.state is PipelineState.UNFILTERED
    assert outcome.trace[-2] is PipelineState.POLICY_CHECKED


@pytest.mark.asyncio
async def test_policy_store_outage_allows_every_pool_tool(settings) -> None:
    pipeline = build_pipeline(
        settings,
        agents=[_agent(["web_search", "code_interpreter"])],
        policy_store=StubPolicyStore(error=ConnectionError("policy store down")),
        endpoint=StubClassifierEndpoint('["code_interpreter"]'),
    )

    outcome = await pipeline.run(ChatRequest(text="help me out", agent_id="agent_1"), role="GUEST")

    assert outcome.state is PipelineState.DONE
    assert outcome.tool_state.final_tools == ("code_interpreter",)


@pytest.mark.asyncio
async def test_unexpected_errors_fail_open(settings) -> None:
    labels = {"kind": "unexpected", "stage": "policy_checked"}
    before = REGISTRY.get_sample_value("autotool_selection_failures_total", labels) or 0.0
    pipeline = build_pipeline(settings, agents=[_agent(["web_search"])], matcher=ExplodingMatcher())
    request = ChatRequest(text="search the news", agent_id="agent_1")

    outcome = await pipeline.run(request, role="USER")

    assert outcome.state is PipelineState.UNFILTERED
    assert outcome.request is request
    after = REGISTRY.get_sample_value("autotool_selection_failures_total", labels)
    assert after == pytest.approx(before + 1.0)


@pytest.mark.asyncio
async def test_disabled_selection_short_circuits(settings) -> None:
    settings.tool_selection.enabled = False
    agents = StubAgentStore([_agent(["web_search"])])
    pipeline = build_pipeline(settings, agent_store=agents)

    outcome = await pipeline.run(ChatRequest(text="search the news", agent_id="agent_1"), role="USER")

    assert outcome.state is PipelineState.UNFILTERED
    assert agents.lookups == []


@pytest.mark.asyncio
async def test_identical_input_gives_identical_final_tools(settings) -> None:
    pipeline = build_pipeline(
        settings,
        agents=[_agent(["code_interpreter", "web_search", "image_generation"])],
        endpoint=StubClassifierEndpoint('["web_search", "code_interpreter"]'),
    )
    request = ChatRequest(text="tell me about rivers", agent_id="agent_1")

    first = await pipeline.run(request, role="USER")
    second = await pipeline.run(request, role="USER")

    assert first.tool_state.final_tools == second.tool_state.final_tools == ("code_interpreter", "web_search")


@pytest.mark.asyncio
async def test_input_request_is_never_mutated(settings) -> None:
    pipeline = build_pipeline(settings, agents=[_agent(["image_generation", "web_search"])])
    request = ChatRequest.model_validate(
        {"text": "draw a fox", "agent": {"id": "inline", "tools": ["web_search", "image_generation"], "autoToolFilter": True}}
    )
    snapshot = request.model_dump()

    outcome = await pipeline.run(request, role="USER")

    assert outcome.request.agent.tools == ["image_generation"]
    assert request.model_dump() == snapshot


@pytest.mark.asyncio
async def test_cancellation_is_not_swallowed(settings) -> None:
    endpoint = StubClassifierEndpoint('["web_search"]', delay=5.0)
    pipeline = build_pipeline(settings, agents=[_agent(["web_search"])], endpoint=endpoint, timeout_seconds=10.0)

    task = asyncio.create_task(pipeline.run(ChatRequest(text="tell me a story", agent_id="agent_1"), role="USER"))
    while endpoint.calls == 0:
        await asyncio.sleep(0)
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task
    assert endpoint.cancelled is True
