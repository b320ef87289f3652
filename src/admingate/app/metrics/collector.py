"""Prometheus metrics definitions for the admin security core."""

from prometheus_client import Counter, Histogram

# =============================================================================
# Histogram Buckets
# =============================================================================

# FAST: DB queries, password hashing, request handling (0.5ms ~ 5s)
_BUCKETS_FAST = (
    0.0005, 0.001, 0.002, 0.005, 0.01,
    0.02, 0.05, 0.1, 0.2, 0.5,
    1, 2, 5,
)

# =============================================================================
# HTTP
# =============================================================================

HTTP_REQUESTS_TOTAL = Counter(
    "admingate_http_requests_total",
    "HTTP requests by method, endpoint and status",
    ["method", "endpoint", "status"],
)

HTTP_REQUEST_DURATION = Histogram(
    "admingate_http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint"],
    buckets=_BUCKETS_FAST,
)

# =============================================================================
# Auth / Gate
# =============================================================================

# result: success, invalid_credentials, locked, bad_request
LOGIN_ATTEMPTS_TOTAL = Counter(
    "admingate_login_attempts_total",
    "Login attempts by result",
    ["result"],
)

# decision: GateDecision value, route_class: page/api
GATE_DECISIONS_TOTAL = Counter(
    "admingate_gate_decisions_total",
    "Edge gate decisions",
    ["decision", "route_class"],
)

LOCKOUTS_TOTAL = Counter(
    "admingate_lockouts_total",
    "Client IPs locked out after too many failed logins",
)

# =============================================================================
# Audit / Enrichment
# =============================================================================

AUDIT_WRITE_FAILURES_TOTAL = Counter(
    "admingate_audit_write_failures_total",
    "Audit rows that could not be written (swallowed)",
    ["table"],
)

# provider: primary/fallback, result: success/empty/error
GEOIP_LOOKUPS_TOTAL = Counter(
    "admingate_geoip_lookups_total",
    "IP geolocation lookups",
    ["provider", "result"],
)

# =============================================================================
# Storage
# =============================================================================

STORAGE_RETRIES_TOTAL = Counter(
    "admingate_storage_retries_total",
    "Write retries after transient storage errors",
)

STORAGE_FAILURES_TOTAL = Counter(
    "admingate_storage_failures_total",
    "Storage failures surfaced as 503",
)
