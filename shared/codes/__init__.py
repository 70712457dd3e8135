"""
Shared business codes used across layers (Domain/Core/API).

Payment gateway codes and the Flow status mapping live in
`shared.codes.payment_codes`.
"""
from enum import IntEnum


class BusinessCode(IntEnum):
    """Business status codes carried in the error envelope."""

    # Parameter errors (1xxxx)
    PARAM_VALIDATION_ERROR = 10003

    # Business errors (2xxxx)
    NOT_FOUND = 20006  # Generic resource not found
    ORDER_NOT_FOUND = 20101
    ORDER_CONFLICT = 20102
    SLOT_UNAVAILABLE = 20201

    # Authorization errors (3xxxx)
    UNAUTHORIZED = 30001
    FORBIDDEN = 30002
    SIGNATURE_INVALID = 30003

    # System errors (4xxxx)
    SYSTEM_ERROR = 40000
    SERVICE_UNAVAILABLE = 40003
    UPSTREAM_ERROR = 40004
    UPSTREAM_TIMEOUT = 40005

    # Rate limiting (5xxxx)
    TOO_MANY_REQUESTS = 50001


__all__ = ["BusinessCode"]
