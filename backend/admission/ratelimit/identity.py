from typing import Any, Dict, Mapping, Optional, Sequence, Union

from fastapi import Request

# Checked in order; the first non-empty value wins.
FORWARDING_HEADERS: Sequence[str] = (
    "x-forwarded-for",
    "x-real-ip",
    "x-client-ip",
    "cf-connecting-ip",
)

HeaderValue = Union[str, Sequence[str]]


def _first_address(value: HeaderValue) -> Optional[str]:
    if isinstance(value, str):
        candidate = value.split(",")[0].strip()
    elif value:
        candidate = str(value[0]).strip()
    else:
        return None
    return candidate or None


def resolve_identity(headers: Mapping[str, Any], remote_addr: Optional[str] = None) -> Optional[str]:
    """
    Precedence:
    1) forwarding headers, first comma-separated address of the first one present
    2) transport-level remote address
    """
    lowered: Dict[str, Any] = {}
    # Repeated header lines: the first one wins, as with Headers.get.
    for key, value in headers.items():
        lowered.setdefault(str(key).lower(), value)
    for header in FORWARDING_HEADERS:
        value = lowered.get(header)
        if not value:
            continue
        candidate = _first_address(value)
        if candidate:
            return candidate
    return remote_addr or None


def resolve_request_identity(req: Request) -> Optional[str]:
    client = getattr(req, "client", None)
    remote_addr = getattr(client, "host", None) if client else None
    return resolve_identity(req.headers, remote_addr)
