from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class ToolPolicy(BaseModel):
    """Administrator visibility policy for one tool."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    tool_id: str = Field(..., alias="toolId", min_length=1)
    enabled: bool = True
    allowed_roles: frozenset[str] = Field(
        default_factory=lambda: frozenset({"USER", "ADMIN"}),
        alias="allowedRoles",
    )
    order: int = 0
    description: str = ""

    def permits(self, role: str) -> bool:
        return self.enabled and role in self.allowed_roles


class EnabledToolModel(BaseModel):
    tool_id: str
    order: int
    description: str = ""


class EnabledToolsResponse(BaseModel):
    role: str
    effective_role: str
    tools: list[EnabledToolModel] = Field(default_factory=list)
