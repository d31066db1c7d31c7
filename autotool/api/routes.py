from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Header, Query

from ..core.config import Settings
from ..core.logging import get_logger
from ..dependencies import get_app_settings, get_pipeline, get_policy_gate
from ..orchestration.pipeline import AutoToolSelectionPipeline
from ..orchestration.policy_gate import PolicyGate
from ..schemas.requests import ChatRequest, ToolSelectionResponse
from ..schemas.tools import EnabledToolModel, EnabledToolsResponse

router = APIRouter()
logger = get_logger(name=__name__)


@router.post(
    "/tool-selection",
    response_model=ToolSelectionResponse,
    response_model_by_alias=True,
    tags=["tool-selection"],
)
async def select_tools(
    payload: ChatRequest,
    x_user_role: str | None = Header(default=None),
    x_user_id: str | None = Header(default=None),
    settings: Settings = Depends(get_app_settings),
    pipeline: AutoToolSelectionPipeline = Depends(get_pipeline),
) -> ToolSelectionResponse:
    request_id = str(uuid.uuid4())
    role = x_user_role or settings.tool_selection.default_role
    logger.debug("tool_selection_request_received", request_id=request_id, role=role, user_id=x_user_id)
    outcome = await pipeline.run(payload, role=role, user_id=x_user_id, request_id=request_id)
    return ToolSelectionResponse(
        request=outcome.request.model_dump(by_alias=True, exclude_none=True),
        tool_state=outcome.tool_state,
        state=outcome.state.value,
        matched_by_fast_path=outcome.detection.matched_by_fast_path if outcome.detection else None,
    )


@router.get(
    "/tool-selection/policies",
    response_model=EnabledToolsResponse,
    tags=["tool-selection"],
)
async def list_enabled_tools(
    role: str | None = Query(default=None),
    settings: Settings = Depends(get_app_settings),
    gate: PolicyGate = Depends(get_policy_gate),
) -> EnabledToolsResponse:
    role = role or settings.tool_selection.default_role
    snapshot = await gate.snapshot()
    policies = await gate.enabled_tools_for_role(role)
    return EnabledToolsResponse(
        role=role,
        effective_role=snapshot.effective_role(role),
        tools=[
            EnabledToolModel(tool_id=policy.tool_id, order=policy.order, description=policy.description)
            for policy in policies
        ],
    )
