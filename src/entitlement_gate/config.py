"""Config file loading and auto-discovery for entitlement-gate.

Searches for ``entitlement-gate.yaml`` in the current directory and parent
directories, parses it, and resolves relative paths against the config
file's location. Environment variables prefixed ``ENTITLEMENT_GATE_``
override file values.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any

import yaml

CONFIG_FILENAME = "entitlement-gate.yaml"
ENV_PREFIX = "ENTITLEMENT_GATE_"

DEFAULT_UNREAD_INTERVAL = 15.0
DEFAULT_MAINTENANCE_INTERVAL = 120.0


@dataclass(frozen=True)
class GateConfig:
    """Parsed entitlement-gate configuration."""

    config_path: Path | None = None
    api_base_url: str | None = None
    token: str | None = None
    unread_interval: float = DEFAULT_UNREAD_INTERVAL
    maintenance_interval: float = DEFAULT_MAINTENANCE_INTERVAL
    request_timeout: float = 10.0
    page_policy: str | None = None
    log_level: str = "WARNING"

    def with_env_overrides(self, environ: dict[str, str] | None = None) -> GateConfig:
        """Return a copy with ``ENTITLEMENT_GATE_*`` variables applied."""
        env = os.environ if environ is None else environ
        changes: dict[str, Any] = {}
        for fld in fields(self):
            if fld.name == "config_path":
                continue
            val = env.get(f"{ENV_PREFIX}{fld.name.upper()}")
            if val is None:
                continue
            if fld.type == "float":
                changes[fld.name] = float(val)
            else:
                changes[fld.name] = val
        return replace(self, **changes) if changes else self


def find_config(start: Path | None = None) -> Path | None:
    """Walk from *start* (default ``cwd()``) up to the filesystem root.

    Returns the first ``entitlement-gate.yaml`` found, or ``None``.
    """
    current = (start or Path.cwd()).resolve()
    while True:
        candidate = current / CONFIG_FILENAME
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:
            return None
        current = parent


def load_config(
    path: str | Path | None = None,
    *,
    auto_discover: bool = True,
) -> GateConfig:
    """Load an entitlement-gate config file.

    Resolution order:

    1. Explicit *path* (error if it doesn't exist).
    2. Auto-discover by walking parent directories.
    3. Return an empty ``GateConfig`` (all defaults).
    """
    config_path: Path | None = None

    if path is not None:
        config_path = Path(path).resolve()
        if not config_path.is_file():
            msg = f"Config file not found: {config_path}"
            raise FileNotFoundError(msg)
    elif auto_discover:
        config_path = find_config()

    if config_path is None:
        return GateConfig()

    return _parse_config(config_path)


def _parse_config(config_path: Path) -> GateConfig:
    """Read and parse a YAML config file, resolving relative paths."""
    text = config_path.read_text(encoding="utf-8")
    data = yaml.safe_load(text) or {}

    if not isinstance(data, dict):
        msg = f"Expected a YAML mapping in {config_path}, got {type(data).__name__}"
        raise ValueError(msg)

    base = config_path.parent
    page_policy = data.get("page_policy")
    polling = data.get("polling") or {}

    return GateConfig(
        config_path=config_path,
        api_base_url=data.get("api_base_url"),
        token=data.get("token"),
        unread_interval=float(polling.get("unread_seconds", DEFAULT_UNREAD_INTERVAL)),
        maintenance_interval=float(
            polling.get("maintenance_seconds", DEFAULT_MAINTENANCE_INTERVAL),
        ),
        request_timeout=float(data.get("request_timeout", 10.0)),
        page_policy=str((base / page_policy).resolve()) if page_policy else None,
        log_level=str(data.get("log_level", "WARNING")).upper(),
    )
