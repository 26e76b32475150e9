from prometheus_client import Counter, REGISTRY


def safe_counter(name, documentation, **kwargs):
    """Avoid duplicate metric registration when modules are re-imported (pytest, reload)."""
    try:
        return Counter(name, documentation, **kwargs)
    except ValueError:
        return REGISTRY._names_to_collectors[name]


jobs_processed_total = safe_counter(
    "dialectic_jobs_processed_total",
    "Number of generation jobs processed by a worker",
    labelnames=["job_type", "outcome"],
)

child_jobs_enqueued_total = safe_counter(
    "dialectic_child_jobs_enqueued_total",
    "Number of child jobs inserted by the planner",
    labelnames=["job_type"],
)

compression_passes_total = safe_counter(
    "dialectic_compression_passes_total",
    "Number of documents replaced by a summary to fit a context window",
)

context_window_failures_total = safe_counter(
    "dialectic_context_window_failures_total",
    "Number of EXECUTE attempts that could not be compressed under the window",
)

rag_summaries_total = safe_counter(
    "dialectic_rag_summaries_total",
    "Number of single-document summaries requested from the context service",
    labelnames=["outcome"],
)

notifications_total = safe_counter(
    "dialectic_notifications_total",
    "Number of lifecycle notifications by delivery outcome",
    labelnames=["event_type", "outcome"],
)

documents_rendered_total = safe_counter(
    "dialectic_documents_rendered_total",
    "Number of documents rendered to the object store",
)
