"""Automatic per-request tool selection for conversational agents."""

from .orchestration.pipeline import AutoToolSelectionPipeline
from .orchestration.state import PipelineState, SelectionOutcome
from .schemas.requests import ChatRequest, EphemeralAgentFlags, RequestToolState

__all__ = [
    "AutoToolSelectionPipeline",
    "ChatRequest",
    "EphemeralAgentFlags",
    "PipelineState",
    "RequestToolState",
    "SelectionOutcome",
]
