from dataclasses import FrozenInstanceError

import pytest

from krouter.config import (
    AddressFamily,
    DesiredState,
    ECMPRouteSpec,
    Nexthop,
    StaticRouteSpec,
    TunnelSpec,
    parse_prefix_length,
)
from krouter.exceptions import ConfigError


def test_tunnel_mode_follows_endpoint_family():
    v4 = TunnelSpec("gre1", "192.0.2.10", "198.51.100.20", "10.0.40.6", 30)
    v6 = TunnelSpec("gre6", "2001:db8::1", "2001:db8::2", "fd00::1", 64)

    assert v4.mode == "gre"
    assert v4.interface_address == "10.0.40.6/30"
    assert v6.family is AddressFamily.IPV6
    assert v6.mode == "ip6gre"


@pytest.mark.parametrize(
    "kwargs",
    [
        dict(local_ip="not-an-ip"),
        dict(remote_ip="2001:db8::2"),
        dict(tunnel_ip="10.0.40.300"),
        dict(prefix_length=33),
        dict(name="a-name-that-is-far-too-long"),
        dict(name=""),
        dict(name="bad\x00"),
        dict(name="gre\x1b1"),
    ],
)
def test_tunnel_validation(kwargs):
    base = dict(
        name="gre1",
        local_ip="192.0.2.10",
        remote_ip="198.51.100.20",
        tunnel_ip="10.0.40.6",
        prefix_length=30,
    )
    base.update(kwargs)
    with pytest.raises(ConfigError):
        TunnelSpec(**base)


def test_duplicate_tunnel_names_rejected():
    tunnel = TunnelSpec("gre1", "192.0.2.10", "198.51.100.20", "10.0.40.6", 30)
    with pytest.raises(ConfigError, match="duplicate tunnel name 'gre1'"):
        DesiredState(tunnels=[tunnel, tunnel])


def test_prefix_length_accepts_netmask():
    assert parse_prefix_length("255.255.255.252", AddressFamily.IPV4) == 30
    assert parse_prefix_length(24, AddressFamily.IPV4) == 24
    assert parse_prefix_length("64", AddressFamily.IPV6) == 64
    with pytest.raises(ConfigError):
        parse_prefix_length("255.0.255.0", AddressFamily.IPV4)
    with pytest.raises(ConfigError):
        parse_prefix_length(129, AddressFamily.IPV6)


def test_static_route_validation():
    assert str(StaticRouteSpec("10.1.0.0/24", "10.0.40.5")) == "10.1.0.0/24 via 10.0.40.5"
    with pytest.raises(ConfigError):
        StaticRouteSpec("10.1.0.0", "10.0.40.5")
    with pytest.raises(ConfigError):
        StaticRouteSpec("10.1.0.0/24", "fe80::1")


def test_ecmp_route_validation():
    hop = Nexthop(dev="gre1", via="10.0.40.5", weight=2)
    group = ECMPRouteSpec(route="default", table=" GRE ", nexthops=[hop])

    assert group.table == "GRE"
    assert isinstance(group.nexthops, tuple)
    with pytest.raises(ConfigError):
        ECMPRouteSpec(route="default", table="GRE", nexthops=[])
    with pytest.raises(ConfigError):
        ECMPRouteSpec(route="somewhere", table="GRE", nexthops=[hop])
    with pytest.raises(ConfigError):
        Nexthop(dev="gre1", via="10.0.40.5", weight=0)
    with pytest.raises(ConfigError):
        Nexthop(dev="gre1", via="10.0.40.5", weight=True)


def test_desired_state_is_immutable(example_state):
    assert isinstance(example_state.tunnels, tuple)
    assert example_state.tunnels[1].remote_ip == "203.0.113.30"
    with pytest.raises(FrozenInstanceError):
        example_state.tunnels = ()
