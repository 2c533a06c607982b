"""Validation and merging rules for the client configuration."""

from __future__ import annotations

import ipaddress

from mieru.appctl.model import (
    ClientConfig,
    ClientProfile,
    ConfigError,
    LoggingLevel,
    User,
)
from mieru.appctl.portbinding import flat_port_bindings

MIN_MTU = 1280
MAX_MTU = 1500


def _check_ip_address(text: str) -> None:
    try:
        if "%" in text:
            raise ValueError(text)
        ipaddress.ip_address(text)
    except ValueError:
        raise ConfigError(f"failed to parse IP address {text!r}") from None


def _check_profile(profile: ClientProfile) -> None:
    if not profile.profile_name:
        raise ConfigError("profile name is not set")
    user = profile.user or User()
    if not user.name:
        raise ConfigError("user name is not set")
    if not user.password and not user.hashed_password:
        raise ConfigError("user password is not set")
    if user.quotas:
        raise ConfigError("user quota is not supported by proxy client")
    if not profile.servers:
        raise ConfigError("servers are not set")
    for server in profile.servers:
        if not server.ip_address and not server.domain_name:
            raise ConfigError("neither server IP address nor domain name is set")
        if server.ip_address:
            _check_ip_address(server.ip_address)
        if not server.port_bindings:
            raise ConfigError("server port binding is not set")
        flat_port_bindings(server.port_bindings)
    mtu = profile.mtu or 0
    if mtu and not MIN_MTU <= mtu <= MAX_MTU:
        raise ConfigError(
            f"MTU value {mtu} is out of range, valid range is [{MIN_MTU}, {MAX_MTU}]"
        )


def validate_client_config_patch(patch: ClientConfig) -> None:
    """Raise ConfigError unless every profile in the patch is complete and valid.

    Each profile needs a name, a user with a name and a password or hashed
    password and no quota, at least one server with a parsable address and
    valid port bindings, and an MTU in [1280, 1500] if one is set.
    """
    for profile in patch.profiles:
        _check_profile(profile)


def validate_full_client_config(config: ClientConfig) -> None:
    """Raise ConfigError unless the configuration is complete and consistent.

    Beyond the patch rules it needs at least one profile, an active profile
    that exists, valid and distinct RPC, socks5 and HTTP proxy ports.
    """
    validate_client_config_patch(config)
    if not config.profiles:
        raise ConfigError("profiles are not set")
    if not config.active_profile:
        raise ConfigError("active profile is not set")
    if not any(p.profile_name == config.active_profile for p in config.profiles):
        raise ConfigError("active profile is not found in the profile list")
    rpc_port = config.rpc_port or 0
    socks5_port = config.socks5_port or 0
    # An RPC port of 0 disables RPC.
    if not 0 <= rpc_port <= 65535:
        raise ConfigError(f"RPC port number {rpc_port} is invalid")
    if not 1 <= socks5_port <= 65535:
        raise ConfigError(f"socks5 port number {socks5_port} is invalid")
    if rpc_port == socks5_port:
        raise ConfigError(f"RPC port number {rpc_port} is the same as socks5 port number")
    if config.http_proxy_port is not None:
        http_port = config.http_proxy_port
        if not 1 <= http_port <= 65535:
            raise ConfigError(f"HTTP proxy port number {http_port} is invalid")
        if http_port == rpc_port:
            raise ConfigError(
                f"HTTP proxy port number {http_port} is the same as RPC port number"
            )
        if http_port == socks5_port:
            raise ConfigError(
                f"HTTP proxy port number {http_port} is the same as socks5 port number"
            )


def get_active_profile_from_config(config: ClientConfig | None, name: str) -> ClientProfile:
    """Return the profile with the given name."""
    if config is None:
        raise ConfigError("client config is None")
    for profile in config.profiles:
        if profile.profile_name == name:
            return profile
    raise ConfigError(f"profile {name!r} is not found")


def merge_client_config_by_profile(dst: ClientConfig, src: ClientConfig) -> ClientConfig:
    """Merge src into dst in place and return dst.

    Profiles in src are added to dst or replace those of the same name; the
    result is sorted by profile name. Fields set in src override dst.
    """
    merged = {p.profile_name or "": p for p in dst.profiles}
    merged.update({p.profile_name or "": p for p in src.profiles})
    profiles = [merged[name] for name in sorted(merged)]

    def pick(name: str):
        value = getattr(src, name)
        return value if value is not None else getattr(dst, name)

    active_profile = pick("active_profile") or ""
    socks5_port = pick("socks5_port") or 0
    logging_level = pick("logging_level")
    if logging_level is None:
        logging_level = LoggingLevel.DEFAULT
    rpc_port = pick("rpc_port")
    advanced_settings = pick("advanced_settings")
    socks5_listen_lan = pick("socks5_listen_lan")
    http_proxy_port = pick("http_proxy_port")
    http_proxy_listen_lan = pick("http_proxy_listen_lan")

    dst.active_profile = active_profile
    dst.profiles = profiles
    dst.socks5_port = socks5_port
    dst.logging_level = logging_level
    dst.rpc_port = rpc_port
    dst.advanced_settings = advanced_settings
    dst.socks5_listen_lan = socks5_listen_lan
    dst.http_proxy_port = http_proxy_port
    dst.http_proxy_listen_lan = http_proxy_listen_lan
    return dst