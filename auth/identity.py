# auth/identity.py
"""
Caller identity for metering.

- authenticated: the account id the identity provider vouched for, as-is
- anonymous: first globally routable IP from the trusted proxy headers,
  then the socket peer address, then a request-metadata fingerprint,
  then the shared "unknown" bucket

Fingerprints and the unknown bucket are low-trust and trivially shared or
spoofed. They degrade the request instead of failing it.
"""
import hashlib
import ipaddress
import logging
from typing import Optional

from flask import current_app, has_app_context

from domain.caller import (
    CallerKey,
    SOURCE_FINGERPRINT,
    SOURCE_HEADER,
    SOURCE_REMOTE_ADDR,
    SOURCE_UNKNOWN,
    UNKNOWN_BUCKET,
)

logger = logging.getLogger(__name__)

DEFAULT_IP_HEADERS = ("X-Forwarded-For", "X-Real-IP", "Client-IP")


def _parse_ip(raw: str):
    raw = (raw or "").strip().strip('"')
    if not raw:
        return None
    # "[::1]:443" / "1.2.3.4:8080"
    if raw.startswith("[") and "]" in raw:
        raw = raw[1:raw.index("]")]
    elif raw.count(":") == 1:
        raw = raw.split(":", 1)[0]
    try:
        return ipaddress.ip_address(raw)
    except ValueError:
        return None


def first_public_ip(header_value: str) -> Optional[str]:
    """First globally routable address in a comma separated header value."""
    for part in (header_value or "").split(","):
        ip = _parse_ip(part)
        if ip is not None and ip.is_global:
            return str(ip)
    return None


def fingerprint(headers) -> Optional[str]:
    ua = (headers.get("User-Agent") or "").strip()
    lang = (headers.get("Accept-Language") or "").strip()
    if not ua and not lang:
        return None
    digest = hashlib.sha256(f"{ua}|{lang}".encode("utf-8")).hexdigest()[:16]
    return f"fp_{digest}"


def _ip_headers():
    if has_app_context():
        configured = current_app.config.get("TRUSTED_IP_HEADERS")
        if configured:
            return tuple(configured)
    return DEFAULT_IP_HEADERS


def resolve_anonymous(headers, remote_addr: Optional[str], ip_headers=None) -> CallerKey:
    for name in ip_headers or _ip_headers():
        ip = first_public_ip(headers.get(name) or "")
        if ip:
            return CallerKey.anonymous(ip, SOURCE_HEADER)

    peer = _parse_ip(remote_addr or "")
    if peer is not None:
        # private/loopback allowed here so local dev still gets a stable key
        return CallerKey.anonymous(str(peer), SOURCE_REMOTE_ADDR)

    fp = fingerprint(headers)
    if fp:
        logger.info("[IDENTITY] no client ip, using fingerprint %s", fp)
        return CallerKey.anonymous(fp, SOURCE_FINGERPRINT)

    logger.warning("[IDENTITY] no identity derivable, using shared '%s' bucket", UNKNOWN_BUCKET)
    return CallerKey.anonymous(UNKNOWN_BUCKET, SOURCE_UNKNOWN)


def resolve_caller(request, user_id: Optional[str] = None) -> CallerKey:
    """
    user_id is the identity provider's verdict (see auth.entitlements);
    it is trusted as ground truth when present.
    """
    if user_id:
        return CallerKey.account(user_id)
    return resolve_anonymous(request.headers, request.remote_addr)
