"""
Payment gateway port (application/ports) exposing a replaceable protocol.

Application depends on this Protocol; infrastructure implements adapters.
"""
from __future__ import annotations

from typing import Protocol, runtime_checkable

from application.dtos.payments import CreatePayment, PaymentCreated, PaymentStatus


@runtime_checkable
class PaymentGateway(Protocol):
    """Gateway protocol for the hosted-checkout payment provider.

    Implementations raise GatewayUnavailableError for transient failures and
    GatewayRejectedError when the provider refuses the request.
    """

    provider: str

    async def create_payment(self, req: CreatePayment) -> PaymentCreated: ...

    async def get_status(self, token: str) -> PaymentStatus: ...

    def verify_callback(self, token: str, signature: str) -> bool:
        """Constant-time check of the signature sent with a confirmation callback."""
        ...

    async def aclose(self) -> None: ...
