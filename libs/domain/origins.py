# libs/domain/origins.py
from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Final
from urllib.parse import urlsplit

# conferencing hosts collected without an explicit opt-in
TARGET_DOMAINS: Final[tuple[str, ...]] = (
    "teams.microsoft.com",
    "meet.google.com",
    "awsapps.com",
    "my.connect.aws",
    "mypurecloud.com",
    "genesys.com",
    "mypurecloud.com.au",
    "mypurecloud.ie",
    "mypurecloud.de",
    "mypurecloud.jp",
    "usw2.pure.cloud",
    "cac1.pure.cloud",
    "euw1.pure.cloud",
)

_HOST_RE: Final = re.compile(r"^(?:https?://)?([^/]+)")


def extract_hostname(url: str | None) -> str:
    if not url:
        return ""
    if "://" not in url:
        return url.lower()
    try:
        host = urlsplit(url).hostname
    except ValueError:
        host = None
    if host:
        return host.lower()
    m = _HOST_RE.match(url)
    return (m.group(1) if m else url).lower()


def extract_origin(url: str | None) -> str | None:
    """scheme://host[:port], or None when `url` has no usable origin."""
    if not url or not isinstance(url, str):
        return None
    try:
        parts = urlsplit(url)
        port = parts.port
    except ValueError:
        return None
    if not parts.scheme or not parts.hostname:
        return None
    origin = f"{parts.scheme}://{parts.hostname}"
    default_port = {"http": 80, "https": 443}.get(parts.scheme)
    if port is not None and port != default_port:
        origin += f":{port}"
    return origin


def is_target_domain(url: str | None) -> bool:
    if not url or not isinstance(url, str):
        return False
    hostname = extract_hostname(url)
    return any(domain in hostname for domain in TARGET_DOMAINS)


def should_auto_enable(origin: str, enabled_origins: Mapping[str, bool] | None = None) -> bool:
    """Targets are on unless switched off; everything else needs an explicit True."""
    enabled_origins = enabled_origins or {}
    if not is_target_domain(origin):
        return enabled_origins.get(origin) is True

    hostname = extract_hostname(origin)
    if enabled_origins.get(origin) is False or enabled_origins.get(hostname) is False:
        return False
    return not any(
        domain in hostname and enabled_origins.get(domain) is False for domain in TARGET_DOMAINS
    )


def domain_status(origin: str, enabled_origins: Mapping[str, bool] | None = None) -> str:
    explicit = (enabled_origins or {}).get(origin)
    if explicit is False:
        return "Disabled"
    if explicit is True:
        return "Enabled"
    if is_target_domain(origin):
        return "Auto-enabled"
    return "Manual"
