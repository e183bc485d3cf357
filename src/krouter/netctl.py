"""Network control interface.

The reconciler talks to the kernel only through :class:`NetworkControl`,
which speaks in intents (does this tunnel exist, add this route) rather than
command lines.  :class:`IPRouteNetworkControl` is the production backend and
drives iproute2 via ``subprocess``.

The ``*_exists`` probes are best-effort presence checks, not transactional
reads.  Something else on the host can change state between a probe and the
following add; the add then fails and the failure is reported like any other.
"""

from __future__ import annotations

import logging
import subprocess
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

from .config import AddressFamily, ECMPRouteSpec, StaticRouteSpec, TunnelSpec
from .exceptions import NetworkCommandError

LOG = logging.getLogger(__name__)


@dataclass(frozen=True)
class CommandResult:
    """Outcome of one external command."""

    args: Sequence[str]
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def command(self) -> str:
        return " ".join(self.args)

    def describe(self) -> str:
        if self.ok:
            return self.command
        reason = self.stderr.strip() or self.stdout.strip() or "no output"
        return f"'{self.command}' exited with {self.returncode}: {reason}"

    def check(self) -> "CommandResult":
        if not self.ok:
            raise NetworkCommandError(self)
        return self


CommandRunner = Callable[[Sequence[str]], CommandResult]


def run_command(args: Sequence[str]) -> CommandResult:
    """Run ``args`` synchronously and capture its output.

    There is no timeout: a wedged ``ip`` process blocks the caller.
    """

    LOG.debug("Executing: %s", " ".join(args))
    try:
        proc = subprocess.run(
            list(args), check=False, text=True, errors="replace", capture_output=True
        )
    except OSError as exc:
        # Missing binary or permission problem; surface it like a failed command.
        return CommandResult(args=tuple(args), returncode=127, stderr=str(exc))
    except ValueError as exc:
        # An argument the OS refuses to exec, such as one with an embedded NUL.
        return CommandResult(args=tuple(args), returncode=126, stderr=str(exc))
    return CommandResult(
        args=tuple(args),
        returncode=proc.returncode,
        stdout=proc.stdout,
        stderr=proc.stderr,
    )


class NetworkControl(ABC):
    """Capability-level view of the host's network configuration."""

    @abstractmethod
    def tunnel_exists(self, name: str) -> bool:
        """Return ``True`` if an interface called ``name`` is present."""

    @abstractmethod
    def create_or_replace_tunnel(self, spec: TunnelSpec) -> CommandResult:
        """Tear down any tunnel called ``spec.name`` and build it from scratch.

        Failing to delete the old tunnel is logged and ignored.  Failing to
        create the tunnel, assign its address or bring it up raises
        :class:`~krouter.exceptions.NetworkCommandError`.
        """

    @abstractmethod
    def route_exists(self, destination: str, gateway: str) -> bool:
        """Coarse presence probe for a static route."""

    @abstractmethod
    def add_static_route(self, spec: StaticRouteSpec) -> CommandResult:
        """Install ``spec``; raises on failure."""

    @abstractmethod
    def ecmp_route_exists(
        self, route: str, table: str, family: AddressFamily = AddressFamily.IPV4
    ) -> bool:
        """Return ``True`` if ``route`` shows up in ``table``."""

    @abstractmethod
    def add_ecmp_route(self, spec: ECMPRouteSpec) -> CommandResult:
        """Install the multipath route described by ``spec``; raises on failure."""


def _family_flag(family: AddressFamily) -> List[str]:
    return ["-6"] if family is AddressFamily.IPV6 else []


def build_ecmp_command(spec: ECMPRouteSpec, ip_binary: str = "ip") -> List[str]:
    """Return the argv that installs ``spec`` with every nexthop attached."""

    args = [ip_binary, *_family_flag(spec.family)]
    args += [
        "route", "add", spec.route,
        "proto", "static",
        "scope", "global",
        "table", spec.table,
    ]
    for hop in spec.nexthops:
        args += ["nexthop", "dev", hop.dev, "via", hop.via, "weight", str(hop.weight)]
    return args


class IPRouteNetworkControl(NetworkControl):
    """:class:`NetworkControl` backed by the iproute2 ``ip`` utility."""

    def __init__(
        self,
        runner: Optional[CommandRunner] = None,
        *,
        ip_binary: str = "ip",
    ) -> None:
        self._run = runner or run_command
        self._ip = ip_binary

    def _show(self, *args: str) -> str:
        result = self._run([self._ip, *args])
        if not result.ok:
            LOG.debug("probe %s", result.describe())
            return ""
        return result.stdout

    # ------------------------------------------------------------------
    # Tunnels
    # ------------------------------------------------------------------
    def tunnel_exists(self, name: str) -> bool:
        return self._run([self._ip, "link", "show", "dev", name]).ok

    def delete_tunnel(self, name: str) -> CommandResult:
        return self._run([self._ip, "link", "delete", "dev", name])

    def create_or_replace_tunnel(self, spec: TunnelSpec) -> CommandResult:
        if self.tunnel_exists(spec.name):
            deleted = self.delete_tunnel(spec.name)
            if not deleted.ok:
                LOG.warning("Failed to delete tunnel %s: %s", spec.name, deleted.describe())

        created = self._run(
            [
                self._ip, *_family_flag(spec.family),
                "tunnel", "add", spec.name,
                "mode", spec.mode,
                "local", spec.local_ip,
                "remote", spec.remote_ip,
            ]
        ).check()
        self._run(
            [self._ip, "addr", "add", spec.interface_address, "dev", spec.name]
        ).check()
        self._run([self._ip, "link", "set", spec.name, "up"]).check()
        return created

    # ------------------------------------------------------------------
    # Static routes
    # ------------------------------------------------------------------
    def route_exists(self, destination: str, gateway: str) -> bool:
        # Both strings only have to appear somewhere in the table, not on the
        # same line; an unrelated route sharing a substring counts as present.
        family = AddressFamily.IPV6 if ":" in gateway else AddressFamily.IPV4
        output = self._show(*_family_flag(family), "route", "show")
        return destination in output and gateway in output

    def add_static_route(self, spec: StaticRouteSpec) -> CommandResult:
        return self._run(
            [
                self._ip, *_family_flag(spec.family),
                "route", "add", spec.destination, "via", spec.gateway,
            ]
        ).check()

    # ------------------------------------------------------------------
    # ECMP routes
    # ------------------------------------------------------------------
    def ecmp_route_exists(
        self, route: str, table: str, family: AddressFamily = AddressFamily.IPV4
    ) -> bool:
        output = self._show(*_family_flag(family), "route", "show", "table", table)
        return any(route in line for line in output.splitlines())

    def add_ecmp_route(self, spec: ECMPRouteSpec) -> CommandResult:
        return self._run(build_ecmp_command(spec, self._ip)).check()
