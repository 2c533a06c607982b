"""Sharing a client configuration as a mieru:// URL."""

from __future__ import annotations

import base64
from urllib.parse import urlsplit

from mieru.appctl.model import ClientConfig, ConfigError

_PREFIX = "mieru://"


def client_config_to_url(config: ClientConfig | None) -> str:
    """Return a URL that carries the whole client configuration."""
    if config is None:
        raise ConfigError("client config is None")
    return _PREFIX + base64.b64encode(config.to_bytes()).decode("ascii")


def url_to_client_config(url: str) -> ClientConfig:
    """Rebuild a client configuration from a URL made by client_config_to_url."""
    try:
        parts = urlsplit(url)
    except ValueError as exc:
        raise ConfigError(f"unable to parse URL: {exc}") from exc
    if parts.scheme != "mieru":
        raise ConfigError(f"unrecognized URL scheme {parts.scheme!r}")
    if not url.split(":", 1)[1].startswith("/"):
        raise ConfigError("URL is opaque")
    try:
        data = base64.b64decode(url[len(_PREFIX):], validate=True)
    except ValueError as exc:
        raise ConfigError(f"unable to decode base64 data: {exc}") from exc
    return ClientConfig.from_bytes(data)