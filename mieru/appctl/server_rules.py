"""Validation and merging rules for the server configuration."""

from __future__ import annotations

from mieru.appctl.model import (
    ConfigError,
    Egress,
    EgressAction,
    LoggingLevel,
    ProxyProtocol,
    ServerConfig,
)
from mieru.appctl.portbinding import flat_port_bindings
from mieru.appctl.state import AppStatus

MIN_MTU = 1280
MAX_MTU = 1500


def _check_egress(egress: Egress) -> None:
    used_names: set[str] = set()
    for proxy in egress.proxies:
        if not proxy.name:
            raise ConfigError("egress proxy name is empty")
        if proxy.name in used_names:
            raise ConfigError(f"found duplicate egress proxy name {proxy.name!r}")
        used_names.add(proxy.name)
        if not proxy.protocol or proxy.protocol == ProxyProtocol.UNKNOWN_PROXY_PROTOCOL:
            raise ConfigError("egress proxy protocol is not set")
        if not proxy.host:
            raise ConfigError("egress proxy host is not set")
        port = proxy.port or 0
        if not 1 <= port <= 65535:
            raise ConfigError(f"egress proxy port number {port} is invalid")
    if len(egress.rules) > 1:
        raise ConfigError(
            f"found {len(egress.rules)} egress rules, maximum number of supported rules is 1"
        )
    for rule in egress.rules:
        if rule.ip_ranges != ["*"]:
            raise ConfigError('egress rule: the only supported IP range value is "*"')
        if rule.domain_names != ["*"]:
            raise ConfigError('egress rule: the only supported domain name value is "*"')
        action = EgressAction.PROXY if rule.action is None else rule.action
        if action != EgressAction.PROXY:
            raise ConfigError('egress rule: the only supported action is "PROXY"')
        if not rule.proxy_name:
            raise ConfigError("egress rule: proxy name is not set")
        if rule.proxy_name not in used_names:
            raise ConfigError(f"egress rule: proxy {rule.proxy_name!r} is not defined")


def validate_server_config_patch(patch: ServerConfig) -> None:
    """Raise ConfigError unless the patch is valid.

    Port bindings must be valid, users need a name and a password or hashed
    password with positive quotas, the MTU if set lies in [1280, 1500], and
    egress proxies and the single allowed egress rule must be well formed.
    """
    flat_port_bindings(patch.port_bindings)
    for user in patch.users:
        if not user.name:
            raise ConfigError("user name is not set")
        if not user.password and not user.hashed_password:
            raise ConfigError("user password is not set")
        for quota in user.quotas:
            days = quota.days or 0
            if days <= 0:
                raise ConfigError(f"quota: number of days {days} is invalid")
            megabytes = quota.megabytes or 0
            if megabytes <= 0:
                raise ConfigError(f"quota: traffic volume in megabyte {megabytes} is invalid")
    mtu = patch.mtu or 0
    if mtu and not MIN_MTU <= mtu <= MAX_MTU:
        raise ConfigError(
            f"MTU value {mtu} is out of range, valid range is [{MIN_MTU}, {MAX_MTU}]"
        )
    _check_egress(patch.egress or Egress())


def validate_full_server_config(config: ServerConfig) -> None:
    """Raise ConfigError unless the configuration is valid, non-empty and has port bindings.

    A configuration without users is accepted, though the server then serves no one.
    """
    validate_server_config_patch(config)
    if config == ServerConfig():
        raise ConfigError("server config is empty")
    if not config.port_bindings:
        raise ConfigError("server port binding is not set")


def merge_server_config(dst: ServerConfig, src: ServerConfig) -> ServerConfig:
    """Merge src into dst in place and return dst.

    Port bindings in src replace those of dst; users in src are added or
    replace users of the same name, sorted by name; other set fields override.
    """
    port_bindings = src.port_bindings if src.port_bindings else dst.port_bindings
    merged = {u.name or "": u for u in dst.users}
    merged.update({u.name or "": u for u in src.users})
    users = [merged[name] for name in sorted(merged)]

    def pick(name: str):
        value = getattr(src, name)
        return value if value is not None else getattr(dst, name)

    advanced_settings = pick("advanced_settings")
    logging_level = pick("logging_level")
    if logging_level is None:
        logging_level = LoggingLevel.DEFAULT
    mtu = pick("mtu") or 0
    egress = pick("egress")

    dst.port_bindings = list(port_bindings)
    dst.users = users
    dst.advanced_settings = advanced_settings
    dst.logging_level = logging_level
    dst.mtu = mtu
    dst.egress = egress
    return dst


def is_server_daemon_running(app_status: AppStatus | None) -> AppStatus:
    """Return the status if it shows the server daemon is running, else raise."""
    if app_status is None:
        raise ValueError("app status is None")
    status = AppStatus(app_status)
    if status == AppStatus.UNKNOWN:
        raise RuntimeError(f'mita server status is "{status.name}"')
    return status


def is_server_proxy_running(app_status: AppStatus | None) -> AppStatus:
    """Return the status if it shows the proxy function is running, else raise."""
    status = is_server_daemon_running(app_status)
    if status != AppStatus.RUNNING:
        raise RuntimeError(f'mita server status is "{status.name}"')
    return status