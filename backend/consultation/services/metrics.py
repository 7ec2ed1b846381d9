"""Prometheus metrics instrumentation for the consultation backend.

Exposes metrics for monitoring gateway traffic, message volume and
settlements. Metrics are served in the Prometheus text format at
`GET /metrics`.

Metrics exported:
- gateway_active_connections: Gauge of live WebSocket connections
- gateway_events_total: Counter of handled client events by outcome
- gateway_event_latency_seconds: Histogram of handler time per event
- messages_sent_total: Counter of persisted messages by type
- conversation_transitions_total: Counter of lifecycle transitions
- settlements_total / credits_settled_total: Billing counters

Usage:
    from consultation.services.metrics import messages_sent

    messages_sent.labels(message_type='text').inc()
"""

from prometheus_client import Histogram, Counter, Gauge, CONTENT_TYPE_LATEST, generate_latest

# Live connections held by the registry
active_connections_gauge = Gauge(
    'gateway_active_connections',
    'Number of currently registered WebSocket connections'
)

# Client events handled by the gateway
gateway_events = Counter(
    'gateway_events_total',
    'Client events handled by the real-time gateway',
    labelnames=['event', 'status']  # status: success, error
)

gateway_event_latency = Histogram(
    'gateway_event_latency_seconds',
    'Time spent handling one client event',
    labelnames=['event']
)

messages_sent = Counter(
    'messages_sent_total',
    'Messages persisted, by message type',
    labelnames=['message_type']
)

conversation_transitions = Counter(
    'conversation_transitions_total',
    'Conversation lifecycle transitions, by target status',
    labelnames=['status']
)

settlements = Counter(
    'settlements_total',
    'Ended conversations settled, by whether anything was billed',
    labelnames=['billed']  # billed: yes, no
)

credits_settled = Counter(
    'credits_settled_total',
    'Credits moved by settlement',
    labelnames=['direction']  # direction: debited, credited
)


def render_latest():
    """Current metrics in the Prometheus exposition format."""
    return generate_latest(), CONTENT_TYPE_LATEST
