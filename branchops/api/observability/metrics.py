from __future__ import annotations

import re

from prometheus_client import Counter, Histogram


def normalize_path(path: str) -> str:
    """Reduce high-cardinality paths for metrics labels."""
    p = path or "/"

    # ints
    p = re.sub(r"/\d+(?=/|$)", "/:id", p)
    # dispatch ids embed the delivery date and a timestamp
    p = re.sub(r"/dispatch-[0-9-]+", "/:dispatch", p)
    # schedule ids
    p = re.sub(r"/week-\d{4}-\d{2}-\d{2}", "/:schedule", p)

    # slug keyed resources
    p = re.sub(r"^(/api/v1/(?:branches|recipes|recipe-instructions|roles))/[^/]+$", r"\1/:slug", p)
    p = re.sub(r"^(/api/v1/dispatch/:dispatch/branches)/[^/]+", r"\1/:branch", p)

    return p


HTTP_REQUESTS_TOTAL = Counter(
    "branchops_http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
)

HTTP_REQUEST_DURATION_SECONDS = Histogram(
    "branchops_http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path"],
)

AUTHZ_DECISIONS_TOTAL = Counter(
    "branchops_authz_decisions_total",
    "Authorization decisions",
    ["decision", "role", "method", "path"],
)
