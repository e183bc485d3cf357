"""krouter agent runtime helpers."""

from .config import load_config, parse_config  # noqa: F401

__all__ = [
    "load_config",
    "parse_config",
]
