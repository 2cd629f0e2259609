from __future__ import annotations

from prometheus_client import Counter

# Domain counters; HTTP-level metrics live in branchops.api.observability.metrics

DISPATCH_TRANSITIONS_TOTAL = Counter(
    "branchops_dispatch_transitions_total",
    "Branch dispatch status transitions",
    ["src", "dst"],
)

IMPORT_ROWS_TOTAL = Counter(
    "branchops_import_rows_total",
    "Rows processed by tabular importers",
    ["importer", "outcome"],
)

AI_REQUESTS_TOTAL = Counter(
    "branchops_ai_requests_total",
    "LLM gateway calls",
    ["task", "outcome"],
)

SYNC_ROWS_TOTAL = Counter(
    "branchops_sync_rows_total",
    "Rows loaded by the SharePoint sync",
    ["kind", "status"],
)


def inc_import(importer: str, outcome: str, value: int = 1) -> None:
    if value:
        IMPORT_ROWS_TOTAL.labels(importer=importer, outcome=outcome).inc(value)
