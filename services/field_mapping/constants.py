"""
Constants shared across field mapping analysis modules.
"""

import re
from typing import Set

# === HTTP Methods ===

# Methods whose inferred values are substituted into the request body
BODY_METHODS: Set[str] = {"POST", "PUT", "PATCH"}

DEFAULT_METHOD = "GET"


# === Header Configuration ===

# Headers managed by the HTTP client; never replayed from a captured template
SKIP_REPLAY_HEADERS: Set[str] = {
    "content-length", "host", "connection", "accept-encoding",
    "transfer-encoding", "keep-alive", "upgrade", "te", "trailer",
    "proxy-connection", "cookie",
    # Pseudo-headers
    ":authority", ":method", ":path", ":scheme",
}


# === Path Expressions ===

# Splits "items[0].name" / "items.0.name" into ["items", "0", "name"]
PATH_TOKEN_RE = re.compile(r"[^.\[\]]+")


# === Analysis Defaults ===

DEFAULT_MAX_CONCURRENCY = 5

# Log tags attached to analysis records (filterable in AnalysisLogSink)
TAG_MAPPING = "mapping-analysis"
TAG_MATCH = "analysis-match"
TAG_MISMATCH = "analysis-mismatch"
TAG_ERROR = "analysis-error"
TAG_URL = "url-building"
TAG_LIFECYCLE = "analysis-lifecycle"
TAG_PERFORMANCE = "performance"
