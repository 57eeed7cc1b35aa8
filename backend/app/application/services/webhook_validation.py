import ipaddress
import logging
import re
import socket
from collections.abc import Iterable
from typing import Any
from urllib.parse import urlparse

from app.core.config import settings
from app.domain.models.webhook import WebhookEventType

logger = logging.getLogger(__name__)

LOCALHOST_NAMES = {"localhost"}
SUBSCRIBABLE_EVENT_TYPES = {event.value for event in WebhookEventType}
HEADER_NAME_PATTERN = re.compile(r"[!#$%&'*+.^_`|~0-9A-Za-z-]+")


class WebhookValidationError(ValueError):
    pass


def _is_ip_blocked(ip: ipaddress.IPv4Address | ipaddress.IPv6Address) -> bool:
    return (
        ip.is_private
        or ip.is_reserved
        or ip.is_loopback
        or ip.is_link_local
        or ip.is_multicast
        or ip.is_unspecified
    )


def _resolve_host(host: str, port: int) -> list[ipaddress.IPv4Address | ipaddress.IPv6Address]:
    try:
        infos = socket.getaddrinfo(host, port, type=socket.SOCK_STREAM)
    except OSError as exc:
        # An unresolvable host cannot be shown to be private; delivery will fail on its own.
        logger.info("webhook_url_dns_unresolved host=%s error=%s", host, exc)
        return []
    addresses = []
    for info in infos:
        try:
            addresses.append(ipaddress.ip_address(info[4][0]))
        except ValueError:
            continue
    return addresses


def validate_webhook_url(
    url: str,
    *,
    allow_http: bool | None = None,
    resolve_dns: bool | None = None,
) -> str:
    """Reject URLs that are malformed, not HTTPS or aimed at internal networks.

    Plain http is accepted for localhost, or anywhere when ``allow_http`` is
    on. Localhost targets skip the private-network check.
    """
    allow_http = settings.webhooks_allow_http if allow_http is None else allow_http
    resolve_dns = settings.webhooks_resolve_dns if resolve_dns is None else resolve_dns

    raw = (url or "").strip()
    if not raw:
        raise WebhookValidationError("URL is required")
    try:
        parsed = urlparse(raw)
        port = parsed.port
    except ValueError as exc:
        raise WebhookValidationError("URL is not valid") from exc
    scheme = (parsed.scheme or "").lower()
    host = (parsed.hostname or "").lower()
    if scheme not in {"http", "https"} or not host:
        raise WebhookValidationError("URL is not valid")
    if parsed.username or parsed.password:
        raise WebhookValidationError("URL must not include credentials")

    try:
        literal = ipaddress.ip_address(host)
    except ValueError:
        literal = None
    is_localhost = host in LOCALHOST_NAMES or (literal is not None and literal.is_loopback)
    if scheme != "https" and not (is_localhost or allow_http):
        raise WebhookValidationError("URL must use HTTPS (except localhost)")
    if is_localhost:
        return raw

    if literal is not None:
        addresses = [literal]
    else:
        addresses = _resolve_host(host, port or (443 if scheme == "https" else 80)) if resolve_dns else []
    if any(_is_ip_blocked(address) for address in addresses):
        raise WebhookValidationError("URL cannot target private IP ranges")
    return raw


def validate_event_types(event_types: Iterable[Any] | None) -> list[str]:
    values = list(event_types or [])
    if not values:
        raise WebhookValidationError("At least one event type must be specified")
    normalized: list[str] = []
    for value in values:
        if not isinstance(value, str) or value not in SUBSCRIBABLE_EVENT_TYPES:
            raise WebhookValidationError(f"Unknown event type '{value}'")
        if value not in normalized:
            normalized.append(value)
    return normalized


def validate_headers(headers: Any) -> dict[str, str]:
    if headers is None:
        return {}
    if not isinstance(headers, dict):
        raise WebhookValidationError("Headers must be a JSON object")
    normalized: dict[str, str] = {}
    for key, value in headers.items():
        if not isinstance(key, str) or not HEADER_NAME_PATTERN.fullmatch(key.strip()):
            raise WebhookValidationError("Header names must be non-empty HTTP tokens")
        if not isinstance(value, str):
            raise WebhookValidationError(f"Header '{key}' must have a string value")
        if "\n" in value or "\r" in value:
            raise WebhookValidationError(f"Header '{key}' contains a line break")
        if not value.isascii():
            raise WebhookValidationError(f"Header '{key}' must contain only ASCII characters")
        normalized[key.strip()] = value
    return normalized
