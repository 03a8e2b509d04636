"""
Client identification for rate limiting and privacy-preserving storage.

The connecting client's address is read from the trusted edge-proxy header
(``settings.CLIENT_IP_HEADER``, ``CF-Connecting-IP`` by default). Addresses
are only ever persisted as a salted SHA-256 digest.

WARNING: Do NOT point CLIENT_IP_HEADER at X-Forwarded-For or X-Real-IP.
Clients can set those freely and would be able to pick their own rate-limit
bucket.
"""

import hashlib
from typing import Optional

from fastapi import Request

from assessments.core.config import settings

# Shared bucket for requests that carry no usable address at all
UNKNOWN_CLIENT = "unknown"


def get_client_ip(request: Request, header_name: Optional[str] = None) -> str:
    """
    Extract the client IP address from a request.

    Order of precedence:
    1. The configured edge-proxy header (first value if comma-separated)
    2. The direct peer address (local development, no proxy)
    3. ``UNKNOWN_CLIENT``

    Args:
        request: FastAPI request object
        header_name: Header to trust; defaults to settings.CLIENT_IP_HEADER

    Returns:
        Client IP address as string, or "unknown" if unavailable
    """
    header_value = request.headers.get(header_name or settings.CLIENT_IP_HEADER)
    if header_value:
        ip = header_value.split(",")[0].strip()
        if ip:
            return ip

    if request.client and request.client.host:
        return request.client.host

    return UNKNOWN_CLIENT


def hash_ip(ip_address: str, salt: Optional[str] = None) -> str:
    """
    One-way hash of an IP address for storage.

    Args:
        ip_address: Cleartext address
        salt: Salt prepended before hashing; defaults to settings.IP_HASH_SALT

    Returns:
        Hex-encoded SHA-256 digest
    """
    salt = settings.IP_HASH_SALT if salt is None else salt
    return hashlib.sha256(f"{salt}{ip_address}".encode("utf-8")).hexdigest()
