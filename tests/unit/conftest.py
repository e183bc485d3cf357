from pathlib import Path

import pytest

from krouter.config import (
    AddressFamily,
    DesiredState,
    ECMPRouteSpec,
    Nexthop,
    StaticRouteSpec,
    TunnelSpec,
)
from krouter.exceptions import NetworkCommandError
from krouter.netctl import CommandResult, NetworkControl, build_ecmp_command

MUTATING = {"create_or_replace_tunnel", "add_static_route", "add_ecmp_route"}

EXAMPLE_CONFIG = """
program_settings:
  log_file_path: {log_file}
  logging:
    info: true
    error: true
    debug: false
gre_tunnels:
  - name: gre1
    local_ip: 192.0.2.10
    remote_ip: 198.51.100.20
    tunnel_ip: 10.0.40.6
    subnet_mask: 30
  - name: gre2
    local_ip: 192.0.2.10
    remote_ip: 203.0.113.30
    tunnel_ip: 10.0.41.6
    subnet_mask: 30
static_routes:
  - destination: 172.16.0.0/16
    gateway: 10.0.40.5
ecmp_routes:
  - route: default
    table: GRE
    nexthops:
      - dev: gre1
        via: 10.0.40.5
        weight: 1
      - dev: gre2
        via: 10.0.41.5
        weight: 1
"""


class FakeNetworkControl(NetworkControl):
    """In-memory kernel that records every call made to it."""

    def __init__(self):
        self.tunnels = {}
        self.routes = set()
        self.ecmp = {}
        self.calls = []
        self.fail = set()
        self.crash = {}

    def _maybe_fail(self, op, key):
        if (op, key) in self.crash:
            raise self.crash[(op, key)]
        if (op, key) in self.fail:
            raise NetworkCommandError(
                CommandResult(("ip", op, key), 2, stderr="RTNETLINK answers: simulated")
            )

    def mutations(self):
        return [call for call in self.calls if call[0] in MUTATING]

    def tunnel_exists(self, name):
        self.calls.append(("tunnel_exists", name))
        return name in self.tunnels

    def create_or_replace_tunnel(self, spec):
        self.calls.append(("create_or_replace_tunnel", spec.name))
        self.tunnels.pop(spec.name, None)
        self._maybe_fail("create_or_replace_tunnel", spec.name)
        self.tunnels[spec.name] = spec
        return CommandResult(("ip", "tunnel", "add", spec.name), 0)

    def route_exists(self, destination, gateway):
        self.calls.append(("route_exists", f"{destination} via {gateway}"))
        self._maybe_fail("route_exists", f"{destination} via {gateway}")
        return (destination, gateway) in self.routes

    def add_static_route(self, spec):
        self.calls.append(("add_static_route", str(spec)))
        self._maybe_fail("add_static_route", str(spec))
        self.routes.add((spec.destination, spec.gateway))
        return CommandResult(("ip", "route", "add", spec.destination, "via", spec.gateway), 0)

    def ecmp_route_exists(self, route, table, family=AddressFamily.IPV4):
        self.calls.append(("ecmp_route_exists", f"{route} table {table}"))
        return (route, table) in self.ecmp

    def add_ecmp_route(self, spec):
        self.calls.append(("add_ecmp_route", str(spec)))
        self._maybe_fail("add_ecmp_route", str(spec))
        self.ecmp[(spec.route, spec.table)] = spec
        return CommandResult(tuple(build_ecmp_command(spec)), 0)


@pytest.fixture
def netctl():
    return FakeNetworkControl()


@pytest.fixture
def example_state():
    return DesiredState(
        tunnels=[
            TunnelSpec("gre1", "192.0.2.10", "198.51.100.20", "10.0.40.6", 30),
            TunnelSpec("gre2", "192.0.2.10", "203.0.113.30", "10.0.41.6", 30),
        ],
        static_routes=[StaticRouteSpec("172.16.0.0/16", "10.0.40.5")],
        ecmp_routes=[
            ECMPRouteSpec(
                route="default",
                table="GRE",
                nexthops=[
                    Nexthop(dev="gre1", via="10.0.40.5", weight=1),
                    Nexthop(dev="gre2", via="10.0.41.5", weight=1),
                ],
            )
        ],
    )


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    path = tmp_path / "config.yml"
    path.write_text(EXAMPLE_CONFIG.format(log_file=tmp_path / "krouter.log"))
    return path
