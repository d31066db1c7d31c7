from __future__ import annotations

from enum import Enum
from typing import Mapping

from ..core import metrics
from ..core.logging import get_logger

logger = get_logger(name=__name__)


class FailureKind(str, Enum):
    RESOLUTION_MISS = "resolution_miss"
    CLASSIFIER_FAILURE = "classifier_failure"
    POLICY_LOOKUP_FAILURE = "policy_lookup_failure"
    UNEXPECTED = "unexpected"


class Fallback(str, Enum):
    UNFILTERED = "unfiltered"
    EMPTY_SELECTION = "empty_selection"
    ALLOW_ALL = "allow_all"


# Every degraded path of the pipeline is declared here and nowhere else.
FAILURE_FALLBACKS: Mapping[FailureKind, Fallback] = {
    FailureKind.RESOLUTION_MISS: Fallback.UNFILTERED,
    FailureKind.CLASSIFIER_FAILURE: Fallback.EMPTY_SELECTION,
    FailureKind.POLICY_LOOKUP_FAILURE: Fallback.ALLOW_ALL,
    FailureKind.UNEXPECTED: Fallback.UNFILTERED,
}


def fallback_for(kind: FailureKind) -> Fallback:
    return FAILURE_FALLBACKS[kind]


def record_failure(kind: FailureKind, *, stage: str, error: BaseException | None = None, **context: object) -> Fallback:
    """Log and count a failure, then return the fallback declared for it."""
    fallback = fallback_for(kind)
    metrics.increment_selection_failure(kind=kind.value, stage=stage)
    payload = {
        "kind": kind.value,
        "stage": stage,
        "fallback": fallback.value,
        **context,
    }
    if error is not None:
        payload["error"] = str(error) or error.__class__.__name__
        payload["error_type"] = error.__class__.__name__
    if kind is FailureKind.UNEXPECTED:
        logger.error("tool_selection_failure", exc_info=error, **payload)
    elif kind is FailureKind.RESOLUTION_MISS and error is None:
        logger.debug("tool_selection_failure", **payload)
    else:
        logger.warning("tool_selection_failure", **payload)
    return fallback


__all__ = [
    "FAILURE_FALLBACKS",
    "Fallback",
    "FailureKind",
    "fallback_for",
    "record_failure",
]
