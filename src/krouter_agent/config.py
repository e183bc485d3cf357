"""YAML configuration loader for the krouter agent."""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, List, Union

import yaml

from krouter.config import (
    AddressFamily,
    DesiredState,
    ECMPRouteSpec,
    LoggingSettings,
    Nexthop,
    ProgramSettings,
    StaticRouteSpec,
    TunnelSpec,
    parse_prefix_length,
)
from krouter.exceptions import ConfigError

DEFAULT_CONFIG_PATH = Path("/etc/krouter/config.yml")


def _require(entry: dict, key: str, where: str):
    value = entry.get(key)
    if value is None or value == "":
        raise ConfigError(f"{where} missing '{key}'")
    return value


def _section(data: dict, key: str) -> List[dict]:
    entries = data.get(key)
    if entries is None:
        return []
    if not isinstance(entries, list):
        raise ConfigError(f"'{key}' section must be a list")
    for entry in entries:
        if not isinstance(entry, dict):
            raise ConfigError(f"entries in '{key}' must be mappings")
    return entries


def _parse_settings(section) -> ProgramSettings:
    if section is None:
        return ProgramSettings()
    if not isinstance(section, dict):
        raise ConfigError("'program_settings' must be a mapping")

    logging_section = section.get("logging") or {}
    if not isinstance(logging_section, dict):
        raise ConfigError("'program_settings.logging' must be a mapping")
    defaults = LoggingSettings()
    flags = LoggingSettings(
        info=bool(logging_section.get("info", defaults.info)),
        error=bool(logging_section.get("error", defaults.error)),
        debug=bool(logging_section.get("debug", defaults.debug)),
    )

    log_file = section.get("log_file_path")
    if log_file is None:
        return ProgramSettings(logging=flags)
    if not isinstance(log_file, str):
        raise ConfigError(
            f"'program_settings.log_file_path' must be a string, not {log_file!r}"
        )
    return ProgramSettings(log_file_path=Path(log_file) if log_file else None, logging=flags)


def _parse_tunnel(entry: dict) -> TunnelSpec:
    name = str(_require(entry, "name", "gre tunnel"))
    where = f"gre tunnel '{name}'"
    tunnel_ip = str(_require(entry, "tunnel_ip", where))
    family = AddressFamily.IPV6 if ":" in tunnel_ip else AddressFamily.IPV4
    return TunnelSpec(
        name=name,
        local_ip=str(_require(entry, "local_ip", where)),
        remote_ip=str(_require(entry, "remote_ip", where)),
        tunnel_ip=tunnel_ip,
        prefix_length=parse_prefix_length(_require(entry, "subnet_mask", where), family),
    )


def _parse_static_route(entry: dict) -> StaticRouteSpec:
    return StaticRouteSpec(
        destination=str(_require(entry, "destination", "static route")),
        gateway=str(_require(entry, "gateway", "static route")),
    )


def _parse_nexthop(entry, where: str) -> Nexthop:
    if not isinstance(entry, dict):
        raise ConfigError(f"nexthops of {where} must be mappings")
    weight = entry.get("weight", 1)
    if isinstance(weight, str) and weight.strip().isdecimal():
        weight = int(weight)
    if isinstance(weight, bool) or not isinstance(weight, int):
        raise ConfigError(f"{where} has a non-integer weight '{weight}'")
    return Nexthop(
        dev=str(_require(entry, "dev", f"nexthop of {where}")),
        via=str(_require(entry, "via", f"nexthop of {where}")),
        weight=weight,
    )


def _parse_ecmp_route(entry: dict) -> ECMPRouteSpec:
    route = str(_require(entry, "route", "ECMP route"))
    where = f"ECMP route '{route}'"
    nexthops_raw: Iterable = entry.get("nexthops") or []
    if not isinstance(nexthops_raw, list):
        raise ConfigError(f"'nexthops' of {where} must be a list")
    return ECMPRouteSpec(
        route=route,
        table=str(_require(entry, "table", where)),
        nexthops=[_parse_nexthop(hop, where) for hop in nexthops_raw],
    )


def parse_config(source: Union[bytes, str]) -> DesiredState:
    """Build a :class:`DesiredState` from the text of a config document."""

    try:
        data = yaml.safe_load(source)
    except yaml.YAMLError as exc:
        raise ConfigError(f"configuration is not valid YAML: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError("krouter configuration must be a mapping")

    return DesiredState(
        settings=_parse_settings(data.get("program_settings")),
        tunnels=[_parse_tunnel(t) for t in _section(data, "gre_tunnels")],
        static_routes=[_parse_static_route(r) for r in _section(data, "static_routes")],
        ecmp_routes=[_parse_ecmp_route(r) for r in _section(data, "ecmp_routes")],
    )


def load_config(path: Path) -> DesiredState:
    return parse_config(Path(path).read_bytes())
