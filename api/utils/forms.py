"""Request payload helpers shared by the form-posting routes."""
from __future__ import annotations

import ipaddress
import json
from typing import Any, Iterable, Optional
from urllib.parse import parse_qs

from fastapi import Request

from domain.common.exceptions import DomainValidationException


def first_value(value: Any) -> Optional[str]:
    """Collapse a form value (possibly a list) to a stripped string or None."""
    if isinstance(value, (list, tuple)):
        value = value[0] if value else None
    if value is None:
        return None
    return str(value).strip() or None


async def read_payload(request: Request) -> dict[str, Any]:
    """Parse a JSON or url-encoded body into a flat dict.

    Flow posts ``application/x-www-form-urlencoded``; the site posts JSON.
    """
    body = await request.body()
    if not body:
        return {}
    content_type = (request.headers.get("content-type") or "").lower()
    if "application/json" in content_type:
        try:
            data = json.loads(body)
        except ValueError:
            raise DomainValidationException("Malformed JSON body") from None
        if not isinstance(data, dict):
            raise DomainValidationException("JSON body must be an object")
        return data
    text = body.decode("utf-8", errors="replace")
    return {k: v[0] if len(v) == 1 else v for k, v in parse_qs(text, keep_blank_values=True).items()}


def ip_allowed(remote_ip: Optional[str], allowlist: Optional[Iterable[str]]) -> bool:
    """Empty allowlist admits everyone; entries are addresses or CIDR blocks."""
    entries = [e.strip() for e in (allowlist or []) if e and e.strip()]
    if not entries:
        return True
    if not remote_ip:
        return False
    try:
        address = ipaddress.ip_address(remote_ip)
    except ValueError:
        return False
    for entry in entries:
        try:
            if address in ipaddress.ip_network(entry, strict=False):
                return True
        except ValueError:
            continue
    return False
