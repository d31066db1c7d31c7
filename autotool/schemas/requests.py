from __future__ import annotations

from typing import Any, Iterable, Mapping

from pydantic import BaseModel, ConfigDict, Field, model_serializer, model_validator

from ..tools.catalog import TOOL_CATALOG, ToolIdentifier
from .agents import AgentRecord


class HistoryMessage(BaseModel):
    model_config = ConfigDict(extra="allow")

    role: str | None = None
    content: Any = None
    text: str | None = None

    @property
    def body(self) -> str:
        value = self.content if self.content not in (None, "") else self.text
        if value is None:
            return ""
        return value if isinstance(value, str) else str(value)


class EphemeralAgentFlags(BaseModel):
    """Typed view of the per-conversation tool enablement map.

    On the wire the map is flat (``{"web_search": true, "artifacts": false, "mcp": []}``);
    catalog tools land in ``tools``, every other key is carried in ``extras``. An
    ``artifacts`` that is not a bool or an ``mcp`` that is not a list is kept in
    ``extras`` as sent.
    """

    tools: dict[ToolIdentifier, bool] = Field(default_factory=dict)
    artifacts: bool | None = None
    mcp: list[Any] | None = None
    extras: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _split_flat_flags(cls, data: Any) -> Any:
        if isinstance(data, Mapping) and not isinstance(data.get("tools"), Mapping):
            return cls._split(data)
        return data

    @model_serializer(mode="plain")
    def _serialize_flat(self) -> dict[str, Any]:
        return self.as_flags()

    @classmethod
    def from_flags(cls, flags: Mapping[str, Any]) -> "EphemeralAgentFlags":
        return cls.model_validate(cls._split(flags))

    @staticmethod
    def _split(flags: Mapping[str, Any]) -> dict[str, Any]:
        catalog = {tool.value: tool for tool in TOOL_CATALOG}
        tools: dict[ToolIdentifier, bool] = {}
        extras: dict[str, Any] = {}
        payload: dict[str, Any] = {}
        for key, value in flags.items():
            if key in catalog:
                tools[catalog[key]] = bool(value)
            elif key == "artifacts" and isinstance(value, bool):
                payload["artifacts"] = value
            elif key == "mcp" and isinstance(value, list):
                payload["mcp"] = list(value)
            else:
                extras[str(key)] = value
        payload["tools"] = tools
        payload["extras"] = extras
        return payload

    def enabled_tools(self) -> tuple[str, ...]:
        return tuple(tool.value for tool in TOOL_CATALOG if self.tools.get(tool))

    def with_only(self, selected: Iterable[str]) -> "EphemeralAgentFlags":
        """Reset every catalog flag to False, then enable exactly ``selected``."""
        chosen = set(selected)
        flags = {tool: False for tool in TOOL_CATALOG}
        for tool in TOOL_CATALOG:
            if tool.value in chosen:
                flags[tool] = True
        return self.model_copy(update={"tools": flags})

    def as_flags(self) -> dict[str, Any]:
        flat: dict[str, Any] = {tool.value: self.tools[tool] for tool in TOOL_CATALOG if tool in self.tools}
        if self.artifacts is not None:
            flat["artifacts"] = self.artifacts
        if self.mcp is not None:
            flat["mcp"] = list(self.mcp)
        for key, value in self.extras.items():
            if key not in flat:
                flat[key] = value
        return flat


class ChatRequest(BaseModel):
    """Fields of an inbound chat turn that automatic tool selection reads or rewrites."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    text: Any = None
    messages: list[HistoryMessage] = Field(default_factory=list)
    agent: AgentRecord | None = None
    agent_id: str | None = None
    conversation_id: str | None = Field(default=None, alias="conversationId")
    ephemeral_agent: EphemeralAgentFlags | None = Field(default=None, alias="ephemeralAgent")

    def message_text(self) -> str | None:
        if isinstance(self.text, str) and self.text.strip():
            return self.text
        return None


class RequestToolState(BaseModel):
    """Selection metadata published for logging and telemetry consumers."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    auto_filter_applied: bool = Field(..., alias="autoFilterApplied")
    original_pool: tuple[str, ...] = Field(default_factory=tuple, alias="originalPool")
    final_tools: tuple[str, ...] = Field(default_factory=tuple, alias="finalTools")


class ToolSelectionResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    request: dict[str, Any]
    tool_state: RequestToolState | None = Field(default=None, alias="toolState")
    state: str
    matched_by_fast_path: bool | None = Field(default=None, alias="matchedByFastPath")


__all__ = [
    "ChatRequest",
    "EphemeralAgentFlags",
    "HistoryMessage",
    "RequestToolState",
    "ToolSelectionResponse",
]
