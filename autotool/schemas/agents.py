from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class AgentRecord(BaseModel):
    """Agent as stored by the agent store or embedded in a chat request.

    Only the fields automatic tool selection reads are declared; everything else
    (model, instructions, provider, ...) is kept as extra data and survives an
    immutable update of ``tools`` untouched.
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: str = Field(..., min_length=1)
    name: str = ""
    tools: list[str] = Field(default_factory=list)
    available_tools: list[str] | None = Field(default=None, alias="availableTools")
    auto_tool_filter: bool = Field(default=False, alias="autoToolFilter")

    def tool_pool(self) -> list[str]:
        # An explicit pool wins over the static tool list.
        if self.available_tools is not None:
            return list(self.available_tools)
        return list(self.tools)


class ConversationRecord(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    conversation_id: str = Field(..., alias="conversationId", min_length=1)
    bound_agent_id: str | None = Field(default=None, alias="agent_id")
