"""Expansion and validation of port bindings."""

from __future__ import annotations

import re
from collections.abc import Iterable

from mieru.appctl.model import ConfigError, PortBinding, TransportProtocol

_PORT_RANGE = re.compile(r"([0-9]+)-([0-9]+)")


def _check_port(port: int) -> None:
    if not 1 <= port <= 65535:
        raise ConfigError(f"port number {port} is invalid")


def _ports_of(binding: PortBinding) -> Iterable[int]:
    if binding.port:
        _check_port(binding.port)
        return (binding.port,)
    text = binding.port_range or ""
    match = _PORT_RANGE.fullmatch(text)
    if match is None:
        raise ConfigError(f"unable to parse port range {text!r}")
    small, big = int(match.group(1)), int(match.group(2))
    _check_port(small)
    _check_port(big)
    if small > big:
        raise ConfigError(
            f"begin of port range {small} is bigger than end of port range {big}"
        )
    return range(small, big + 1)


def flat_port_bindings(bindings: Iterable[PortBinding] | None) -> list[PortBinding]:
    """Validate port bindings and expand port ranges into single ports.

    The result lists every TCP port in ascending order, then every UDP port.
    """
    tcp: set[int] = set()
    udp: set[int] = set()
    for binding in bindings or ():
        protocol = binding.protocol
        if not protocol:
            raise ConfigError("protocol is not set")
        ports = _ports_of(binding)
        if protocol == TransportProtocol.TCP:
            tcp.update(ports)
        elif protocol == TransportProtocol.UDP:
            udp.update(ports)
        else:
            raise ConfigError(f"unknown protocol {protocol}")
    return [
        PortBinding(port=port, protocol=TransportProtocol.TCP) for port in sorted(tcp)
    ] + [PortBinding(port=port, protocol=TransportProtocol.UDP) for port in sorted(udp)]