from __future__ import annotations

from enum import Enum
from typing import Iterable, Mapping

__all__ = [
    "ToolCategory",
    "ToolIdentifier",
    "TOOL_CATALOG",
    "TOOL_CATEGORIES",
    "catalog_tool_ids",
    "category_for",
    "ordered_unique",
]


class ToolIdentifier(str, Enum):
    """Closed set of platform tools that automatic selection knows about."""

    WEB_SEARCH = "web_search"
    IMAGE_GENERATION = "image_generation"
    CODE_INTERPRETER = "code_interpreter"
    EXECUTE_CODE = "execute_code"
    FILE_SEARCH = "file_search"
    NANO_BANANA = "nano-banana"
    FLUX = "flux"
    DALLE = "dalle"


class ToolCategory(str, Enum):
    IMAGE_GENERATION = "image generation"
    WEB_SEARCH = "web search"
    CODE_EXECUTION = "code execution"
    FILE_SEARCH = "file search"


# Catalog order is the order of the reset-then-set flag map and of the virtual agent's pool.
TOOL_CATALOG: tuple[ToolIdentifier, ...] = tuple(ToolIdentifier)

# Tools inside a category are listed highest priority first.
TOOL_CATEGORIES: Mapping[ToolCategory, tuple[ToolIdentifier, ...]] = {
    ToolCategory.IMAGE_GENERATION: (
        ToolIdentifier.IMAGE_GENERATION,
        ToolIdentifier.NANO_BANANA,
        ToolIdentifier.FLUX,
        ToolIdentifier.DALLE,
    ),
    ToolCategory.WEB_SEARCH: (ToolIdentifier.WEB_SEARCH,),
    ToolCategory.CODE_EXECUTION: (ToolIdentifier.EXECUTE_CODE, ToolIdentifier.CODE_INTERPRETER),
    ToolCategory.FILE_SEARCH: (ToolIdentifier.FILE_SEARCH,),
}


def catalog_tool_ids() -> tuple[str, ...]:
    """Return the full platform catalog as plain tool id strings."""
    return tuple(tool.value for tool in TOOL_CATALOG)


def category_for(tool: str) -> ToolCategory | None:
    for category, members in TOOL_CATEGORIES.items():
        if any(member.value == tool for member in members):
            return category
    return None


def ordered_unique(tools: Iterable[str]) -> tuple[str, ...]:
    """Deduplicate tool ids while keeping first-seen order."""
    seen: set[str] = set()
    ordered: list[str] = []
    for tool in tools:
        identifier = tool.value if isinstance(tool, ToolIdentifier) else str(tool)
        identifier = identifier.strip()
        if not identifier or identifier in seen:
            continue
        seen.add(identifier)
        ordered.append(identifier)
    return tuple(ordered)
