"""
Prometheus 指标定义（进程级单例，由 /metrics 暴露）
"""
from prometheus_client import Counter, Histogram


CALLBACK_SIGNATURE_FAILURES = Counter(
    "flow_callback_signature_failures_total",
    "Confirmation callbacks rejected because of an invalid signature",
)
CALLBACK_DUPLICATES = Counter(
    "flow_callback_duplicates_total",
    "Confirmation callbacks or polls for orders that were already settled",
)
ORDER_TRANSITIONS = Counter(
    "orders_transitions_total",
    "Order status transitions committed",
    ["status"],
)
NOTIFICATIONS = Counter(
    "notifications_total",
    "Notification emails by recipient and result",
    ["recipient", "result"],
)
GATEWAY_CALLS = Counter(
    "gateway_calls_total",
    "Payment gateway calls by operation and outcome",
    ["operation", "outcome"],
)
GATEWAY_LATENCY = Histogram(
    "gateway_call_latency_ms",
    "Payment gateway call latency ms",
    ["operation"],
    buckets=(50, 100, 250, 500, 1000, 2500, 5000, 10000),
)
