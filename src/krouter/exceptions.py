"""Exception hierarchy shared by the library and the agent."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover
    from .netctl import CommandResult


class KrouterError(Exception):
    """Base class for every error raised by krouter."""


class ConfigError(KrouterError, ValueError):
    """The desired-state document is malformed or fails validation."""


class ConfigSourceError(KrouterError, OSError):
    """The configuration source could not be read."""


class NetworkCommandError(KrouterError):
    """A mutating network command exited unsuccessfully."""

    def __init__(self, result: "CommandResult") -> None:
        super().__init__(result.describe())
        self.result = result
