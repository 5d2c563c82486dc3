"""Prometheus metrics."""

from prometheus_client import Counter

# Request gate
gate_decisions = Counter(
    "tenantgate_gate_decisions_total",
    "Request gate decisions",
    ["surface", "outcome"],
)

# Mobile key authentication
mobile_auth_attempts = Counter(
    "tenantgate_mobile_auth_total",
    "Mobile API key authentication attempts",
    ["outcome"],
)

# Provisioning
provision_redemptions = Counter(
    "tenantgate_provision_redemptions_total",
    "Provision token redemption attempts",
    ["outcome"],
)

provision_tokens_issued = Counter(
    "tenantgate_provision_tokens_issued_total",
    "Provision tokens issued",
)

# Admin login
login_attempts = Counter(
    "tenantgate_login_attempts_total",
    "Admin login attempts",
    ["outcome"],
)

# Rate limiting
rate_limited = Counter(
    "tenantgate_rate_limited_total",
    "Requests rejected by the rate limiter",
    ["scope"],
)
