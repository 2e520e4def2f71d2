"""
Prometheus metrics (module scope, registered once).
"""

from prometheus_client import Counter, Histogram

WEBHOOK_OUTCOMES = Counter(
    "voice_bridge_webhook_responses_total",
    "Webhook responses by outcome",
    labelnames=("outcome",),  # audio | text | fallback | unauthorized
)

ROUTING_FAILURES = Counter(
    "voice_bridge_routing_failures_total",
    "Routing stage failures by error kind",
    labelnames=("kind",),
)

SYNTHESIS_FAILURES = Counter(
    "voice_bridge_synthesis_failures_total",
    "Speech synthesis failures by reason",
    labelnames=("reason",),
)

PROVIDER_CALLS = Counter(
    "voice_bridge_provider_calls_total",
    "Text-generation backend calls by provider and result",
    labelnames=("provider", "result"),  # ok | http_error | invalid_json | timeout | transport_error
)

STAGE_SECONDS = Histogram(
    "voice_bridge_stage_seconds",
    "Wall-clock duration of request stages",
    buckets=(0.1, 0.25, 0.5, 1.0, 2.0, 3.0, 5.0, 8.0, 10.0),
    labelnames=("stage",),  # routing | synthesis | total
)

REQUEST_SPEND_CENTS = Histogram(
    "voice_bridge_request_spend_cents",
    "Estimated spend per webhook request (cents)",
    buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 5.0, 10.0, 50.0),
)
