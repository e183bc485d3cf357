"""Declarative GRE tunnel and route reconciler.

The library side of krouter.  A :class:`~krouter.config.DesiredState` describes
the tunnels, static routes and ECMP groups a host should carry; the
:class:`~krouter.reconciler.Reconciler` converges live kernel state towards it
through a :class:`~krouter.netctl.NetworkControl` implementation.  Change
detection for the configuration source lives in :mod:`krouter.fingerprint`.

Nothing in here owns process-wide state, so every piece can be exercised in
unit tests with a fake network backend.
"""

from .config import DesiredState  # noqa: F401
from .reconciler import ReconcileReport, Reconciler  # noqa: F401

__all__ = ["DesiredState", "ReconcileReport", "Reconciler"]
