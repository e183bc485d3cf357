"""Event primitives passed from the file watcher to the watch loop."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class ConfigWritten:
    """The watched configuration file was written or replaced.

    The event carries no content; the consumer re-reads the file and decides
    from its fingerprint whether anything actually changed.
    """

    path: Path


@dataclass(frozen=True)
class WatchError:
    """The watcher could not observe ``path``."""

    path: Path
    message: str
