"""Desired-state data structures.

These frozen dataclasses are what the reconciler consumes.  They are built by
the agent's YAML loader but carry their own validation so that any producer
(tests, a future API) gets the same guarantees: addresses are real IPv4/IPv6
literals, prefix lengths fit the address family and tunnel names are unique
within one :class:`DesiredState`.

Nexthop device names are deliberately *not* checked against the tunnel list.
An ECMP group that points at an unknown device is a runtime failure reported
by the kernel, not a validation failure.
"""

from __future__ import annotations

import ipaddress
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional, Sequence

from .exceptions import ConfigError

# Linux IFNAMSIZ minus the trailing NUL.
MAX_IFNAME_LEN = 15

DEFAULT_ROUTE = "default"
DEFAULT_LOG_FILE = Path("/var/log/krouter.log")

# iproute2 rejects nexthop weights outside this range.
MIN_WEIGHT = 1
MAX_WEIGHT = 256


class AddressFamily(Enum):
    IPV4 = 4
    IPV6 = 6

    @property
    def max_prefixlen(self) -> int:
        return 32 if self is AddressFamily.IPV4 else 128


def _parse_address(value: str, what: str) -> ipaddress.IPv4Address | ipaddress.IPv6Address:
    try:
        return ipaddress.ip_address(str(value).strip())
    except ValueError:
        raise ConfigError(f"{what} '{value}' is not a valid IP address") from None


def _parse_prefix(value: str, what: str) -> ipaddress.IPv4Network | ipaddress.IPv6Network:
    text = str(value).strip()
    if "/" not in text:
        raise ConfigError(f"{what} '{value}' must be in CIDR notation")
    try:
        # ``ip route add 10.0.0.1/24`` is accepted by the kernel, so be as lenient.
        return ipaddress.ip_network(text, strict=False)
    except ValueError:
        raise ConfigError(f"{what} '{value}' is not a valid CIDR prefix") from None


def parse_prefix_length(value, family: AddressFamily) -> int:
    """Turn ``30``, ``"30"`` or ``"255.255.255.252"`` into a prefix length."""

    text = str(value).strip()
    if family is AddressFamily.IPV4 and "." in text:
        try:
            return ipaddress.IPv4Network(f"0.0.0.0/{text}").prefixlen
        except ValueError:
            raise ConfigError(f"subnet mask '{value}' is not a valid netmask") from None
    try:
        length = int(text)
    except ValueError:
        raise ConfigError(f"subnet mask '{value}' is not a prefix length") from None
    if not 0 <= length <= family.max_prefixlen:
        raise ConfigError(
            f"prefix length {length} out of range for IPv{family.value} "
            f"(0-{family.max_prefixlen})"
        )
    return length


def _check_ifname(name: str, what: str) -> str:
    name = str(name).strip()
    if not name:
        raise ConfigError(f"{what} must not be empty")
    if (
        len(name) > MAX_IFNAME_LEN
        or "/" in name
        or any(c.isspace() or not c.isprintable() for c in name)
    ):
        raise ConfigError(f"{what} '{name}' is not a valid interface name")
    return name


@dataclass(frozen=True)
class TunnelSpec:
    """A point-to-point GRE tunnel and the address assigned inside it."""

    name: str
    local_ip: str
    remote_ip: str
    tunnel_ip: str
    prefix_length: int

    def __post_init__(self) -> None:
        _check_ifname(self.name, "tunnel name")
        local = _parse_address(self.local_ip, f"tunnel {self.name} local_ip")
        remote = _parse_address(self.remote_ip, f"tunnel {self.name} remote_ip")
        if local.version != remote.version:
            raise ConfigError(
                f"tunnel {self.name} endpoints mix IPv{local.version} and IPv{remote.version}"
            )
        interior = _parse_address(self.tunnel_ip, f"tunnel {self.name} tunnel_ip")
        family = AddressFamily(interior.version)
        if not 0 <= self.prefix_length <= family.max_prefixlen:
            raise ConfigError(
                f"tunnel {self.name} prefix length {self.prefix_length} out of range"
            )

    @property
    def family(self) -> AddressFamily:
        """Address family of the outer (endpoint) addresses."""

        return AddressFamily(ipaddress.ip_address(self.local_ip).version)

    @property
    def mode(self) -> str:
        return "gre" if self.family is AddressFamily.IPV4 else "ip6gre"

    @property
    def interface_address(self) -> str:
        return f"{self.tunnel_ip}/{self.prefix_length}"


@dataclass(frozen=True)
class StaticRouteSpec:
    destination: str
    gateway: str

    def __post_init__(self) -> None:
        dest = _parse_prefix(self.destination, "static route destination")
        gw = _parse_address(self.gateway, f"gateway for {self.destination}")
        if dest.version != gw.version:
            raise ConfigError(
                f"static route {self.destination} uses an IPv{gw.version} gateway"
            )

    @property
    def family(self) -> AddressFamily:
        return AddressFamily(ipaddress.ip_address(self.gateway).version)

    def __str__(self) -> str:
        return f"{self.destination} via {self.gateway}"


@dataclass(frozen=True)
class Nexthop:
    dev: str
    via: str
    weight: int = 1

    def __post_init__(self) -> None:
        _check_ifname(self.dev, "nexthop dev")
        _parse_address(self.via, f"nexthop via on {self.dev}")
        if isinstance(self.weight, bool) or not isinstance(self.weight, int):
            raise ConfigError(f"nexthop weight '{self.weight}' must be an integer")
        if not MIN_WEIGHT <= self.weight <= MAX_WEIGHT:
            raise ConfigError(
                f"nexthop weight {self.weight} out of range ({MIN_WEIGHT}-{MAX_WEIGHT})"
            )


@dataclass(frozen=True)
class ECMPRouteSpec:
    """A multipath route: one selector, one table, nexthops in order."""

    route: str
    table: str
    nexthops: Sequence[Nexthop]

    def __post_init__(self) -> None:
        if self.route != DEFAULT_ROUTE:
            _parse_prefix(self.route, "ECMP route")
        if not str(self.table).strip():
            raise ConfigError(f"ECMP route {self.route} has an empty table")
        if not self.nexthops:
            raise ConfigError(f"ECMP route {self.route} has no nexthops")
        # Freeze the caller's list; the route must stay immutable.
        object.__setattr__(self, "nexthops", tuple(self.nexthops))
        object.__setattr__(self, "table", str(self.table).strip())

    @property
    def family(self) -> AddressFamily:
        return AddressFamily(ipaddress.ip_address(self.nexthops[0].via).version)

    def __str__(self) -> str:
        return f"{self.route} table {self.table}"


@dataclass(frozen=True)
class LoggingSettings:
    info: bool = True
    error: bool = True
    debug: bool = False


@dataclass(frozen=True)
class ProgramSettings:
    log_file_path: Optional[Path] = DEFAULT_LOG_FILE
    logging: LoggingSettings = field(default_factory=LoggingSettings)


@dataclass(frozen=True)
class DesiredState:
    """Everything one reconciliation pass should converge to."""

    settings: ProgramSettings = field(default_factory=ProgramSettings)
    tunnels: Sequence[TunnelSpec] = ()
    static_routes: Sequence[StaticRouteSpec] = ()
    ecmp_routes: Sequence[ECMPRouteSpec] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "tunnels", tuple(self.tunnels))
        object.__setattr__(self, "static_routes", tuple(self.static_routes))
        object.__setattr__(self, "ecmp_routes", tuple(self.ecmp_routes))

        seen = set()
        for tunnel in self.tunnels:
            if tunnel.name in seen:
                raise ConfigError(f"duplicate tunnel name '{tunnel.name}'")
            seen.add(tunnel.name)

    @property
    def is_empty(self) -> bool:
        return not (self.tunnels or self.static_routes or self.ecmp_routes)
