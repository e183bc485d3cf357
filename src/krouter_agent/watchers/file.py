"""Polling watcher for the krouter configuration file."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from queue import Queue
from threading import Event, Thread
from typing import Optional, Tuple, Union

from krouter.fingerprint import fingerprint

from ..events import ConfigWritten, WatchError

LOG = logging.getLogger(__name__)

Signature = Tuple[int, int, int, str]


def _signature(path: Path) -> Signature:
    # Coarse mtimes miss a same-size rewrite within one tick; the digest does not.
    st = os.stat(path)
    return st.st_mtime_ns, st.st_size, st.st_ino, fingerprint(path.read_bytes())


class ConfigFileWatcher(Thread):
    """Poll ``path`` and queue a :class:`ConfigWritten` for every write.

    Editors that save by renaming a temporary file over the original change
    the inode rather than the mtime of the old file; watching the path's stat
    signature and content digest catches both, as well as in-place edits that
    leave size and mtime untouched.  A missing file is reported once as a
    :class:`WatchError` and watching continues until it reappears.
    """

    def __init__(
        self,
        path: Path,
        events: "Queue[Union[ConfigWritten, WatchError]]",
        interval: float,
        stop_event: Event,
    ) -> None:
        super().__init__(name="krouter-config-watcher", daemon=True)
        self._path = Path(path)
        self._events = events
        self._interval = interval
        self._stop_event = stop_event
        self._signature: Optional[Signature] = None
        self._failing = False

    def prime(self) -> None:
        """Remember the current signature so the next poll starts from it."""

        try:
            self._signature = _signature(self._path)
        except OSError:
            self._signature = None

    def run(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.poll()
            except Exception:  # pragma: no cover - logged below
                LOG.exception("config watcher encountered an error")
            self._stop_event.wait(self._interval)

    def poll(self) -> bool:
        """Check the file once; return ``True`` if an event was queued."""

        try:
            signature = _signature(self._path)
        except OSError as exc:
            if not self._failing:
                LOG.warning("cannot watch %s: %s", self._path, exc)
                self._events.put(WatchError(self._path, str(exc)))
                self._failing = True
            return False

        if self._failing:
            LOG.info("config file %s is readable again", self._path)
            self._failing = False

        if signature == self._signature:
            return False

        LOG.debug("config file %s written (signature %s)", self._path, signature)
        self._signature = signature
        self._events.put(ConfigWritten(self._path))
        return True
