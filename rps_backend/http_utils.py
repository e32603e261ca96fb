"""Helpers shared by the HTTP and websocket routers."""
from __future__ import annotations

from typing import Optional

from starlette.requests import HTTPConnection


def _first_header_value(conn: HTTPConnection, name: str) -> Optional[str]:
    value = conn.headers.get(name)
    if not value:
        return None
    first = value.split(",")[0].strip()
    return first or None


def client_address(conn: HTTPConnection) -> Optional[str]:
    """Best guess at the client's IP, honouring common proxy headers."""
    for header in ("x-forwarded-for", "fly-client-ip"):
        address = _first_header_value(conn, header)
        if address:
            return address
    return conn.client.host if conn.client else None


def resolve_base_url(conn: HTTPConnection) -> str:
    """Determine the best base URL for shareable game links."""

    origin = conn.headers.get("origin")
    if origin:
        return origin.rstrip("/")

    forwarded_host = _first_header_value(conn, "x-forwarded-host")
    if forwarded_host:
        scheme = _first_header_value(conn, "x-forwarded-proto") or conn.url.scheme
        return f"{scheme}://{forwarded_host}".rstrip("/")

    host = conn.headers.get("host")
    if host:
        return f"{conn.url.scheme}://{host}".rstrip("/")

    return str(conn.base_url).rstrip("/")


__all__ = ["client_address", "resolve_base_url"]
