"""Watcher implementations used by the krouter agent."""

from .file import ConfigFileWatcher  # noqa: F401

__all__ = ["ConfigFileWatcher"]
