from __future__ import annotations


class ToolSelectionError(RuntimeError):
    """Base class for automatic tool selection failures."""


class AgentResolutionError(ToolSelectionError):
    """Raised when an agent or conversation lookup fails."""


class PolicyLookupError(ToolSelectionError):
    """Raised when the tool policy store cannot be read."""


class ClassifierError(ToolSelectionError):
    """Raised when the intent classifier call fails or returns unusable output."""


class ClassifierTimeoutError(ClassifierError):
    """Raised when the intent classifier exceeds its configured timeout."""


class ClassifierResponseError(ClassifierError):
    """Raised when the classifier output does not contain a JSON array of tool ids."""
