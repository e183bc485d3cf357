"""Watch loop: turn config-file events into reconciliation passes."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from queue import Empty, Queue
from threading import Event, Thread
from typing import Callable, Optional, Union

from krouter.config import DesiredState, ProgramSettings
from krouter.exceptions import ConfigError, ConfigSourceError
from krouter.fingerprint import ChangeDetector
from krouter.reconciler import ReconcileReport, Reconciler

from .config import parse_config
from .events import ConfigWritten, WatchError

LOG = logging.getLogger(__name__)

Loader = Callable[[bytes], DesiredState]
SettingsHook = Callable[[ProgramSettings], None]


@dataclass
class AgentContext:
    """State that survives between passes, owned by one :class:`WatchLoop`."""

    config_path: Path
    detector: ChangeDetector = field(default_factory=ChangeDetector)
    desired: Optional[DesiredState] = None
    passes: int = 0


class WatchLoop(Thread):
    """Single consumer of watcher events.

    Passes run one at a time on this thread; events that arrive while a pass
    is running wait in the queue.  Apart from :meth:`initial_pass`, every
    failure is logged and the loop keeps waiting, leaving whatever kernel
    state the last successful pass produced in place.
    """

    def __init__(
        self,
        context: AgentContext,
        reconciler: Reconciler,
        events: "Queue[Union[ConfigWritten, WatchError]]",
        stop_event: Event,
        *,
        loader: Loader = parse_config,
        on_settings_change: Optional[SettingsHook] = None,
        poll_timeout: float = 0.5,
    ) -> None:
        super().__init__(name="krouter-watch-loop", daemon=True)
        self.context = context
        self._reconciler = reconciler
        self._events = events
        self._stop_event = stop_event
        self._loader = loader
        self._on_settings_change = on_settings_change
        self._poll_timeout = poll_timeout

    def initial_pass(self) -> ReconcileReport:
        """Load and apply the configuration once; errors propagate."""

        snapshot = self.context.detector.snapshot(self.context.config_path)
        desired = self._loader(snapshot.data)
        self.context.detector.record(snapshot)
        return self._apply(desired)

    def run(self) -> None:
        while not self._stop_event.is_set():
            try:
                event = self._events.get(timeout=self._poll_timeout)
            except Empty:
                continue
            try:
                self.handle(event)
            except Exception:  # pragma: no cover - logged, loop keeps going
                LOG.exception("unexpected error while handling %s", event)
            finally:
                self._events.task_done()

    def handle(self, event: Union[ConfigWritten, WatchError]) -> Optional[ReconcileReport]:
        if isinstance(event, WatchError):
            LOG.error("Error watching %s: %s", event.path, event.message)
            return None
        if not isinstance(event, ConfigWritten):
            raise TypeError(f"Unsupported event type: {type(event)!r}")
        if Path(event.path) != self.context.config_path:
            LOG.debug("ignoring write to unrelated path %s", event.path)
            return None
        return self.refresh()

    def refresh(self) -> Optional[ReconcileReport]:
        """Reconcile again if the config bytes changed since the last load."""

        detector = self.context.detector
        try:
            snapshot = detector.snapshot(self.context.config_path)
        except ConfigSourceError as exc:
            LOG.error("Error reading file: %s", exc)
            return None

        if not detector.is_new(snapshot):
            LOG.debug("config %s unchanged (%s)", snapshot.path, snapshot.digest)
            return None

        try:
            desired = self._loader(snapshot.data)
        except ConfigError as exc:
            LOG.error("Error loading config: %s", exc)
            return None

        detector.record(snapshot)
        LOG.info("Configuration %s changed, reconciling", snapshot.path)
        return self._apply(desired)

    def _apply(self, desired: DesiredState) -> ReconcileReport:
        previous = self.context.desired
        if self._on_settings_change and (
            previous is None or previous.settings != desired.settings
        ):
            self._on_settings_change(desired.settings)

        self.context.desired = desired
        report = self._reconciler.reconcile(desired)
        self.context.passes += 1
        return report
