from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class OllamaSettings(BaseModel):
    host: str = Field("http://localhost", description="Base URL where Ollama is running.")
    port: int = Field(11434, ge=1, le=65535)
    model: str = Field("llama3.2:1b", description="Default model served via Ollama.")


class ToolSelectionSettings(BaseModel):
    enabled: bool = Field(True, description="Toggle automatic tool selection on or off.")
    classifier_model: str | None = Field(
        None,
        description="Model used for intent classification; falls back to the Ollama default model.",
    )
    classifier_timeout_seconds: float = Field(10.0, gt=0.0, description="Upper bound for one classifier call.")
    classifier_temperature: float = Field(0.1, ge=0.0, le=1.0)
    classifier_max_tokens: int = Field(100, ge=8, description="Maximum tokens expected from the classifier.")
    history_window: int = Field(4, ge=0, description="Number of prior messages included in the classifier prompt.")
    default_role: str = Field("USER", min_length=1)
    role_aliases: dict[str, str] = Field(
        default_factory=lambda: {"ORG_ADMIN": "USER"},
        description="Roles that are evaluated against another role's tool policy view.",
    )


class PolicyCacheSettings(BaseModel):
    ttl_seconds: float = Field(300.0, ge=0.0, description="Lifetime of the cached tool policy snapshot.")


class ObservabilitySettings(BaseModel):
    prometheus_enabled: bool = Field(True)
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"


class DefaultAgentSettings(BaseModel):
    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    tools: list[str] = Field(default_factory=list)
    available_tools: list[str] | None = None
    auto_tool_filter: bool = False


class Settings(BaseSettings):
    environment: Literal["local", "test", "production"] = Field("local")
    api_v1_prefix: str = Field("/api/v1")

    ollama: OllamaSettings = Field(default_factory=OllamaSettings)  # type: ignore[arg-type]
    tool_selection: ToolSelectionSettings = Field(default_factory=ToolSelectionSettings)  # type: ignore[arg-type]
    policy_cache: PolicyCacheSettings = Field(default_factory=PolicyCacheSettings)  # type: ignore[arg-type]
    observability: ObservabilitySettings = Field(default_factory=ObservabilitySettings)  # type: ignore[arg-type]
    default_agents: list[DefaultAgentSettings] = Field(
        default_factory=lambda: [
            DefaultAgentSettings(
                id="agent_default_image",
                name="Image Creator",
                tools=["nano-banana"],
            )
        ],
        description="Agents seeded into the in-memory agent store.",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        env_prefix="AUTOTOOL_",
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Process-wide settings, read once from the environment and `.env`."""
    return Settings()  # type: ignore[call-arg]
