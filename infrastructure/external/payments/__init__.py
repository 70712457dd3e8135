"""
Factory for payment gateway clients.
"""
from __future__ import annotations

from typing import Optional

import httpx

from core.config import FlowSettings
from application.ports.payment_gateway import PaymentGateway


def get_payment_gateway(
    config: FlowSettings,
    provider: Optional[str] = None,
    *,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> PaymentGateway:
    name = (provider or "flow").lower()
    if name in {"flow", "flow.cl"}:
        from .flow_client import FlowClient
        return FlowClient(config, transport=transport)
    raise ValueError(f"Unsupported payment provider: {name}")
