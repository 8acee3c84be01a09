import logging

from prometheus_client import Counter, Histogram, REGISTRY

logger = logging.getLogger(__name__)


# we check if they are already registered to avoid errors during hot reloads or test runs
def get_or_create_metric(name, documentation, metric_type, **kwargs):
    try:
        return metric_type(name, documentation, **kwargs)
    except ValueError:
        # If it already exists, retrieve it from the registry
        return REGISTRY._names_to_collectors[name]


PIPELINE_RUNS_TOTAL = get_or_create_metric(
    "taskflow_pipeline_runs",
    "Pipeline runs by outcome",
    Counter,
    labelnames=["outcome"],
)

NEEDS_CONFIRMATION_TOTAL = get_or_create_metric(
    "taskflow_needs_confirmation",
    "Results returned to the caller for confirmation",
    Counter,
)

STAGE_LATENCY_SECONDS = get_or_create_metric(
    "taskflow_stage_latency_seconds",
    "Stage latency",
    Histogram,
    labelnames=["stage"],
)

STAGE_FALLBACK_TOTAL = get_or_create_metric(
    "taskflow_stage_fallback",
    "Stage-local fallbacks",
    Counter,
    labelnames=["stage", "reason"],
)

LLM_REQUESTS_TOTAL = get_or_create_metric(
    "taskflow_llm_requests",
    "Completion service calls",
    Counter,
    labelnames=["provider", "status"],
)


def record(metric, *, amount: float = 1.0, observe: bool = False, **labels) -> None:
    """Best-effort metric update; metrics never change pipeline behavior."""
    try:
        target = metric.labels(**labels) if labels else metric
        if observe:
            target.observe(amount)
        else:
            target.inc(amount)
    except Exception as e:
        logger.debug("Metric update failed for %s: %s", getattr(metric, "_name", metric), e)
