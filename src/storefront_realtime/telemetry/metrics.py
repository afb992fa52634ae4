"""Prometheus metrics for the realtime layer."""

from prometheus_client import Counter, Gauge

ws_connections_active = Gauge(
    "storefront_ws_connections_active", "Number of live realtime connections", ["role"]
)
ws_connections_total = Counter(
    "storefront_ws_connections_total", "Realtime connection attempts", ["outcome"]
)
ws_events_received = Counter(
    "storefront_ws_events_received_total", "Inbound realtime events", ["event_type", "outcome"]
)
ws_deliveries = Counter(
    "storefront_ws_deliveries_total", "Outbound frames written to live connections", ["event_type"]
)
ws_delivery_failures = Counter(
    "storefront_ws_delivery_failures_total", "Outbound frames that could not be written", ["event_type"]
)
chat_messages_persisted = Counter(
    "storefront_chat_messages_persisted_total", "Chat messages accepted by the store", ["direction"]
)
notices_broadcast = Counter(
    "storefront_notices_broadcast_total", "Notices fanned out to live connections"
)
