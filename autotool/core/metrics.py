from __future__ import annotations

from prometheus_client import Counter, Histogram

SELECTION_RUNS_TOTAL = Counter(
    "autotool_selection_runs_total",
    "Tool selection pipeline runs grouped by terminal state",
    labelnames=("state",),
)

SELECTION_LATENCY_SECONDS = Histogram(
    "autotool_selection_latency_seconds",
    "End-to-end latency of the tool selection pipeline",
    labelnames=("state",),
    buckets=(0.001, 0.005, 0.01, 0.05, 0.1, 0.25, 0.5, 1, 2, 5, 10, float("inf")),
)

SELECTION_DETECTION_TOTAL = Counter(
    "autotool_selection_detection_total",
    "Tool detections grouped by the stage that produced them",
    labelnames=("source",),
)

SELECTED_TOOL_TOTAL = Counter(
    "autotool_selected_tool_total",
    "Count of tools granted to a turn by automatic selection",
    labelnames=("tool",),
)

CLASSIFIER_LATENCY_SECONDS = Histogram(
    "autotool_classifier_latency_seconds",
    "Latency of intent classifier calls",
    labelnames=("outcome",),
    buckets=(0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, float("inf")),
)

SELECTION_FAILURES_TOTAL = Counter(
    "autotool_selection_failures_total",
    "Tool selection failures grouped by failure kind and pipeline stage",
    labelnames=("kind", "stage"),
)


def record_selection_run(*, state: str, latency: float) -> None:
    SELECTION_RUNS_TOTAL.labels(state=state).inc()
    SELECTION_LATENCY_SECONDS.labels(state=state).observe(max(0.0, latency))


def record_detection(*, source: str, tools: tuple[str, ...] | list[str]) -> None:
    SELECTION_DETECTION_TOTAL.labels(source=source).inc()
    for tool in tools:
        SELECTED_TOOL_TOTAL.labels(tool=str(tool)).inc()


def observe_classifier_call(*, outcome: str, latency: float) -> None:
    CLASSIFIER_LATENCY_SECONDS.labels(outcome=outcome).observe(max(0.0, latency))


def increment_selection_failure(*, kind: str, stage: str) -> None:
    SELECTION_FAILURES_TOTAL.labels(kind=kind, stage=stage).inc()
