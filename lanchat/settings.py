"""Host and port settings with an optional configuration file."""

from __future__ import annotations

import json
import tomllib
from dataclasses import dataclass
from os import PathLike
from pathlib import Path
from typing import Any

DEFAULT_CONFIG_NAME = "Config"
_EXTENSIONS = (".toml", ".json")


@dataclass(frozen=True)
class Endpoint:
    """A host and TCP port."""

    host: str
    port: int

    def address(self) -> str:
        """Return ``host:port``."""
        return f"{self.host}:{self.port}"


def load_endpoint(
    default_host: str,
    default_port: int,
    path: str | PathLike[str] | None = None,
) -> Endpoint:
    """Build an endpoint from defaults, overridden by a config file if one exists.

    ``path`` names the file with or without its extension; ``Config`` in the
    current directory is used when it is omitted. A missing file is not an error.
    """
    values: dict[str, Any] = {"host": default_host, "port": default_port}
    base = Path(path) if path is not None else Path(DEFAULT_CONFIG_NAME)
    source = _locate(base)
    if source is not None:
        values.update({str(k).lower(): v for k, v in _read(source).items()})
    return Endpoint(_host(values["host"]), _port(values["port"]))


def _locate(base: Path) -> Path | None:
    if base.suffix in _EXTENSIONS and base.is_file():
        return base
    for ext in _EXTENSIONS:
        candidate = base.with_name(base.name + ext)
        if candidate.is_file():
            return candidate
    return None


def _read(source: Path) -> dict[str, Any]:
    text = source.read_text(encoding="utf-8")
    if source.suffix == ".toml":
        return tomllib.loads(text)
    data = json.loads(text)
    if not isinstance(data, dict):
        raise ValueError(f"{source}: expected a JSON object")
    return data


def _host(value: Any) -> str:
    if not isinstance(value, str):
        raise ValueError(f"host must be a string, not {value!r}")
    return value


def _port(value: Any) -> int:
    if isinstance(value, bool):
        raise ValueError(f"invalid port {value!r}")
    if isinstance(value, str) and value.strip().isdigit():
        value = int(value.strip())
    if not isinstance(value, int) or not 0 <= value <= 0xFFFF:
        raise ValueError(f"invalid port {value!r}")
    return value