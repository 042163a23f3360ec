from __future__ import annotations
from .schemas import Config
from pathlib import Path

from pydantic import ValidationError

from hcanalysis.errors import ConfigurationError

try:
    import tomllib  # py311+
except ModuleNotFoundError:  # pragma: no cover
    import tomli as tomllib  # py<=310


def load_config(path: str | Path) -> Config:
    p = Path(path)
    try:
        data = tomllib.loads(p.read_text())
    except OSError as exc:
        raise ConfigurationError(f"Cannot read config {p}: {exc}") from exc
    except tomllib.TOMLDecodeError as exc:
        raise ConfigurationError(f"Invalid TOML in {p}: {exc}") from exc
    try:
        return Config(**data)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid configuration in {p}:\n{exc}") from exc


def snapshot_config_toml(path: str | Path) -> str:
    """Return the raw TOML text for embedding in HDF5 metadata."""
    return Path(path).read_text()
