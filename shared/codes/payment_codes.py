"""
Payment specific codes and gateway status mapping.
"""
from __future__ import annotations

from enum import IntEnum


class PaymentCode(IntEnum):
    # Gateway/Network errors (6xxxx)
    GATEWAY_REJECTED = 60000
    GATEWAY_UNAVAILABLE = 60001


class FlowPaymentStatus(IntEnum):
    """Status codes returned by Flow's payment/getStatus."""

    PENDING = 1
    PAID = 2
    REJECTED = 3
    CANCELLED = 4


# Flow status -> internal order status; statuses not listed keep the order pending
GATEWAY_STATUS_TO_ORDER = {
    FlowPaymentStatus.PAID: "confirmed",
    FlowPaymentStatus.REJECTED: "rejected",
    FlowPaymentStatus.CANCELLED: "rejected",
}
