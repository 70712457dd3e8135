"""
Flow request signing.

Flow signs a parameter map by sorting the keys, concatenating ``key + value``
pairs without separators and computing a lowercase hex HMAC-SHA256 over the
result with the merchant secret. The signature travels in the ``s`` field.

Value conversion is fixed so both sides produce identical bytes:

- ``str`` as-is, ``None`` as the empty string
- ``bool`` as ``"true"`` / ``"false"``
- ``int`` as decimal digits
- ``Decimal`` in plain notation (``Decimal("50000")`` -> ``"50000"``)
- ``float`` as decimal digits when integral, ``repr`` otherwise
"""
from __future__ import annotations

import hashlib
import hmac
from decimal import Decimal
from typing import Any, Mapping, Optional

SIGNATURE_FIELD = "s"


def _format_value(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, Decimal):
        if value == value.to_integral_value():
            return str(int(value))
        return format(value.normalize(), "f")
    if isinstance(value, float):
        if value.is_integer():
            return str(int(value))
        return repr(value)
    return str(value)


def canonicalize(params: Mapping[str, Any]) -> str:
    """Build the string to sign: keys in byte order, ``key+value`` joined."""
    keys = sorted(params.keys(), key=lambda k: k.encode("utf-8"))
    return "".join(f"{key}{_format_value(params[key])}" for key in keys)


def sign(params: Mapping[str, Any], secret: str) -> str:
    """Return the lowercase hex HMAC-SHA256 of the canonical string."""
    message = canonicalize(params).encode("utf-8")
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def sign_params(params: Mapping[str, Any], secret: str) -> dict[str, Any]:
    """Return a copy of ``params`` with the ``s`` field appended."""
    unsigned = {k: v for k, v in params.items() if k != SIGNATURE_FIELD}
    return {**unsigned, SIGNATURE_FIELD: sign(unsigned, secret)}


def verify(params: Mapping[str, Any], signature: Optional[str], secret: str) -> bool:
    """Constant-time check of ``signature`` against ``params`` (``s`` excluded)."""
    if not signature or not isinstance(signature, str):
        return False
    unsigned = {k: v for k, v in params.items() if k != SIGNATURE_FIELD}
    expected = sign(unsigned, secret)
    return hmac.compare_digest(expected.encode("ascii"), signature.encode("utf-8"))
