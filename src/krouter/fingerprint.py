"""Content fingerprints used to gate re-reconciliation."""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .exceptions import ConfigSourceError

LOG = logging.getLogger(__name__)

DEFAULT_ALGORITHM = "md5"


def fingerprint(data: bytes, algorithm: str = DEFAULT_ALGORITHM) -> str:
    """Return the hex digest of ``data``.

    MD5 is plenty for telling two edits of a config file apart; nothing here
    relies on collision resistance against an adversary.
    """

    return hashlib.new(algorithm, data).hexdigest()


@dataclass(frozen=True)
class Snapshot:
    """The bytes read from a configuration source and their fingerprint."""

    path: Path
    data: bytes
    digest: str


class ChangeDetector:
    """Remember the fingerprint of the last successfully loaded config.

    The stored fingerprint starts out empty, so the very first check always
    reports a change.  Callers :meth:`record` a snapshot only once it has been
    parsed, which means a broken edit is re-examined on the next write instead
    of being remembered as applied.
    """

    def __init__(self, algorithm: str = DEFAULT_ALGORITHM) -> None:
        hashlib.new(algorithm)  # fail early on an unknown algorithm
        self._algorithm = algorithm
        self._current: Optional[str] = None

    @property
    def current(self) -> Optional[str]:
        return self._current

    def snapshot(self, path: Path) -> Snapshot:
        path = Path(path)
        try:
            data = path.read_bytes()
        except OSError as exc:
            raise ConfigSourceError(
                f"cannot read configuration source {path}: {exc}"
            ) from exc
        return Snapshot(path=path, data=data, digest=fingerprint(data, self._algorithm))

    def is_new(self, snapshot: Snapshot) -> bool:
        return snapshot.digest != self._current

    def has_changed(self, path: Path) -> bool:
        """Return ``True`` if the bytes at ``path`` differ from the recorded ones."""

        return self.is_new(self.snapshot(path))

    def record(self, snapshot: Snapshot) -> None:
        LOG.debug("recorded fingerprint %s for %s", snapshot.digest, snapshot.path)
        self._current = snapshot.digest

    def reset(self) -> None:
        self._current = None
