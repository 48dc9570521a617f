"""Configuration and input file I/O helpers (internal)."""

import json
from pathlib import Path
from typing import Any, Dict, Union

from circomkit.errors import InvalidConfig, InvalidSignals
from circomkit.kernel.config import CircomkitConfig, CircuitConfig, parse_circuits
from circomkit.kernel.field import Prime
from circomkit.kernel.signals import SignalMap, parse_signals

DEFAULT_CONFIG_NAME = "circomkit.json"


def _read_json(path: Path, what: str) -> Any:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise InvalidConfig(f"Cannot read {what} {path}: {e}") from e
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        raise InvalidConfig(f"Invalid JSON in {what} {path}: {e}") from e


def load_config(path: Union[str, Path]) -> CircomkitConfig:
    """Load ``circomkit.json``; unknown keys are ignored."""
    path = Path(path)
    data = _read_json(path, "config file")
    if not isinstance(data, dict):
        raise InvalidConfig(f"Config file {path} must contain a JSON object")
    return CircomkitConfig.from_dict(data)


def load_default_config(cwd: Union[str, Path, None] = None) -> CircomkitConfig:
    """Load ``circomkit.json`` from ``cwd`` if present, defaults otherwise."""
    path = Path(cwd or Path.cwd()) / DEFAULT_CONFIG_NAME
    if path.is_file():
        return load_config(path)
    return CircomkitConfig()


def load_circuits(path: Union[str, Path]) -> Dict[str, CircuitConfig]:
    """Load ``circuits.json``; a missing file yields no circuits."""
    path = Path(path)
    if not path.exists():
        return {}
    return parse_circuits(_read_json(path, "circuits file"))


def read_inputs(path: Union[str, Path], prime: Prime = Prime.BN128) -> SignalMap:
    """Read an input file (signal -> int, decimal string or nested arrays)."""
    path = Path(path)
    data = _read_json(path, "input file")
    if not isinstance(data, dict):
        raise InvalidSignals(f"Input file {path} must contain a JSON object")
    return parse_signals(data, prime)
