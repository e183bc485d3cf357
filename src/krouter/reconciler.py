"""Reconciliation engine.

One call to :meth:`Reconciler.reconcile` is one pass: tunnels first, then
static routes, then ECMP groups, because both kinds of route may point at a
tunnel interface created in the first phase.  Every item is handled on its
own; a failure is logged and recorded in the :class:`ReconcileReport` and the
pass moves on to the next item.  Nothing is rolled back.

Tunnels are always torn down and recreated.  Routes are only added when the
network backend does not already report them, so a second pass over a
converged host issues no route mutations at all.

The engine keeps no state between passes; observed kernel state is probed
afresh through the :class:`~krouter.netctl.NetworkControl` every time.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List

from .config import DesiredState, ECMPRouteSpec, StaticRouteSpec, TunnelSpec
from .exceptions import NetworkCommandError
from .netctl import NetworkControl

LOG = logging.getLogger(__name__)


class Phase(Enum):
    TUNNEL = "tunnel"
    STATIC_ROUTE = "static_route"
    ECMP_ROUTE = "ecmp_route"


_FAILURE_VERBS = {
    Phase.TUNNEL: "configure tunnel",
    Phase.STATIC_ROUTE: "add static route",
    Phase.ECMP_ROUTE: "add ECMP route",
}


class Action(Enum):
    APPLIED = "applied"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class ItemOutcome:
    phase: Phase
    item: str
    action: Action
    detail: str = ""


@dataclass
class ReconcileReport:
    """Ordered record of what a pass did to each item."""

    outcomes: List[ItemOutcome] = field(default_factory=list)

    def add(self, phase: Phase, item: str, action: Action, detail: str = "") -> ItemOutcome:
        outcome = ItemOutcome(phase, item, action, detail)
        self.outcomes.append(outcome)
        return outcome

    def _with(self, action: Action) -> List[ItemOutcome]:
        return [o for o in self.outcomes if o.action is action]

    @property
    def applied(self) -> List[ItemOutcome]:
        return self._with(Action.APPLIED)

    @property
    def skipped(self) -> List[ItemOutcome]:
        return self._with(Action.SKIPPED)

    @property
    def failed(self) -> List[ItemOutcome]:
        return self._with(Action.FAILED)

    @property
    def ok(self) -> bool:
        """``True`` when every item converged during this pass."""

        return not self.failed

    def for_phase(self, phase: Phase) -> List[ItemOutcome]:
        return [o for o in self.outcomes if o.phase is phase]

    def summary(self) -> str:
        return (
            f"{len(self.applied)} applied, {len(self.skipped)} already present, "
            f"{len(self.failed)} failed"
        )


class Reconciler:
    """Converge the host towards a :class:`~krouter.config.DesiredState`."""

    def __init__(self, netctl: NetworkControl) -> None:
        self._netctl = netctl

    def reconcile(self, desired: DesiredState) -> ReconcileReport:
        report = ReconcileReport()
        LOG.debug(
            "Reconciling %d tunnels, %d static routes, %d ECMP routes",
            len(desired.tunnels),
            len(desired.static_routes),
            len(desired.ecmp_routes),
        )
        self._apply_phase(Phase.TUNNEL, desired.tunnels, self._ensure_tunnel, report)
        self._apply_phase(
            Phase.STATIC_ROUTE, desired.static_routes, self._ensure_static_route, report
        )
        self._apply_phase(
            Phase.ECMP_ROUTE, desired.ecmp_routes, self._ensure_ecmp_route, report
        )
        LOG.info("Reconciliation finished: %s", report.summary())
        return report

    def _apply_phase(self, phase: Phase, items, handler: Callable, report: ReconcileReport) -> None:
        for spec in items:
            try:
                handler(spec, report)
            except NetworkCommandError as exc:
                LOG.error("Failed to %s %s: %s", _FAILURE_VERBS[phase], _label(spec), exc)
                report.add(phase, _label(spec), Action.FAILED, str(exc))
            except Exception as exc:
                LOG.exception(
                    "Unexpected error trying to %s %s", _FAILURE_VERBS[phase], _label(spec)
                )
                report.add(phase, _label(spec), Action.FAILED, f"{type(exc).__name__}: {exc}")

    # ------------------------------------------------------------------
    # Per-item handlers
    # ------------------------------------------------------------------
    def _ensure_tunnel(self, spec: TunnelSpec, report: ReconcileReport) -> None:
        self._netctl.create_or_replace_tunnel(spec)
        LOG.info("Configured tunnel: %s", spec.name)
        report.add(Phase.TUNNEL, spec.name, Action.APPLIED)

    def _ensure_static_route(self, spec: StaticRouteSpec, report: ReconcileReport) -> None:
        if self._netctl.route_exists(spec.destination, spec.gateway):
            LOG.debug("Static route %s already present", spec)
            report.add(Phase.STATIC_ROUTE, str(spec), Action.SKIPPED)
            return
        self._netctl.add_static_route(spec)
        LOG.info("Added static route: %s", spec)
        report.add(Phase.STATIC_ROUTE, str(spec), Action.APPLIED)

    def _ensure_ecmp_route(self, spec: ECMPRouteSpec, report: ReconcileReport) -> None:
        if self._netctl.ecmp_route_exists(spec.route, spec.table, spec.family):
            LOG.debug("ECMP route %s already present", spec)
            report.add(Phase.ECMP_ROUTE, str(spec), Action.SKIPPED)
            return
        result = self._netctl.add_ecmp_route(spec)
        LOG.info("Added ECMP route: %s", result.command)
        report.add(Phase.ECMP_ROUTE, str(spec), Action.APPLIED, result.command)


def _label(spec) -> str:
    return spec.name if isinstance(spec, TunnelSpec) else str(spec)
