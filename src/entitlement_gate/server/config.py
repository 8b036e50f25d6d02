"""Maintenance service configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass

ENV_PREFIX = "ENTITLEMENT_GATE_SERVER_"


@dataclass
class ServerConfig:
    """Settings for the maintenance service.

    All fields can be overridden via environment variables prefixed with
    ``ENTITLEMENT_GATE_SERVER_`` (e.g., ``ENTITLEMENT_GATE_SERVER_PORT=9000``).
    """

    host: str = "127.0.0.1"
    port: int = 8430
    signing_key: str = ""
    token_ttl_seconds: int = 8 * 3600
    dev_mode: bool = False

    @classmethod
    def from_env(cls) -> ServerConfig:
        """Create config from environment variables."""
        kwargs: dict[str, str | int | bool] = {}
        for fld in cls.__dataclass_fields__:
            env_key = f"{ENV_PREFIX}{fld.upper()}"
            val = os.environ.get(env_key)
            if val is None:
                continue
            fld_type = cls.__dataclass_fields__[fld].type
            if fld_type == "int":
                kwargs[fld] = int(val)
            elif fld_type == "bool":
                kwargs[fld] = val.lower() in ("1", "true", "yes")
            else:
                kwargs[fld] = val
        return cls(**kwargs)
