"""Signal maps: parsing, flattening and comparison of named field values.

A SignalMap maps a signal name to a FieldValue, or to (nested) lists of them
for array signals. Symbol tables (``.sym``) map witness indices back to
fully-qualified signal names such as ``main.out[1]``.
"""

import hashlib
from typing import Any, Dict, List, Mapping, Sequence, Union

from circomkit.errors import InvalidSignals
from circomkit.kernel.field import FieldValue, Prime, coerce
from circomkit.kernel.hash_utils import hash_canonical

SignalValue = Union[FieldValue, List["SignalValue"]]
SignalMap = Dict[str, SignalValue]

MAIN_PREFIX = "main."


def _parse_value(raw: Any, prime: Prime, path: str) -> SignalValue:
    if isinstance(raw, (list, tuple)):
        return [_parse_value(item, prime, f"{path}[{i}]") for i, item in enumerate(raw)]
    if raw is None or isinstance(raw, (bool, float)):
        raise InvalidSignals(f"Signal {path}: {raw!r} is not an integer or decimal string")
    try:
        return coerce(raw, prime)
    except InvalidSignals as e:
        raise InvalidSignals(f"Signal {path}: {e}") from e


def parse_signals(raw: Mapping[str, Any], prime: Prime = Prime.BN128) -> SignalMap:
    """Convert a JSON-like mapping into a SignalMap under ``prime``."""
    if not isinstance(raw, Mapping):
        raise InvalidSignals(f"Signals must be an object, got {type(raw).__name__}")
    return {str(name): _parse_value(value, prime, str(name)) for name, value in raw.items()}


def _to_json(value: SignalValue) -> Any:
    if isinstance(value, list):
        return [_to_json(v) for v in value]
    return value.to_decimal()


def signals_to_json(signals: Mapping[str, SignalValue]) -> Dict[str, Any]:
    """Render a SignalMap with decimal strings, the form the witness calculator reads."""
    return {name: _to_json(value) for name, value in signals.items()}


def flatten_signals(signals: Mapping[str, SignalValue]) -> Dict[str, FieldValue]:
    """Flatten array signals into indexed names (``out[0][1]``)."""
    flat: Dict[str, FieldValue] = {}

    def walk(name: str, value: SignalValue) -> None:
        if isinstance(value, list):
            for i, item in enumerate(value):
                walk(f"{name}[{i}]", item)
        else:
            flat[name] = value

    for name, value in signals.items():
        walk(name, value)
    return flat


def inputs_digest(signals: Mapping[str, SignalValue]) -> str:
    """Content digest of an input map; key order does not matter."""
    return hash_canonical(signals_to_json(signals))


def parse_symbols(text: str) -> Dict[str, int]:
    """Parse a circom ``.sym`` table into signal name -> witness index.

    Each line is ``label_index,witness_index,component_index,name``. Signals
    optimized away have witness index -1 and are skipped.
    """
    symbols: Dict[str, int] = {}
    for lineno, line in enumerate(text.splitlines(), start=1):
        line = line.strip()
        if not line:
            continue
        parts = line.split(",", 3)
        if len(parts) != 4:
            raise InvalidSignals(f"Malformed symbol line {lineno}: {line!r}")
        try:
            witness_index = int(parts[1])
        except ValueError as e:
            raise InvalidSignals(f"Malformed symbol line {lineno}: {line!r}") from e
        if witness_index < 0:
            continue
        symbols[parts[3]] = witness_index
    return symbols


def _is_interface(name: str) -> bool:
    return name.startswith(MAIN_PREFIX) and "." not in name[len(MAIN_PREFIX):]


def interface_signals(symbols: Mapping[str, int], values: List[FieldValue]) -> Dict[str, FieldValue]:
    """Signals of the main component (inputs and outputs), prefix stripped."""
    out: Dict[str, FieldValue] = {}
    for name, index in sorted(symbols.items(), key=lambda kv: kv[1]):
        if _is_interface(name) and index < len(values):
            out[name[len(MAIN_PREFIX):]] = values[index]
    return out


def public_names(symbols: Mapping[str, int], n_public: int) -> List[str]:
    """Names of the public signals, in witness order (indices 1..n_public)."""
    by_index: Dict[int, str] = {}
    for name, index in symbols.items():
        if 1 <= index <= n_public and _is_interface(name):
            by_index.setdefault(index, name[len(MAIN_PREFIX):])
    names = []
    for index in range(1, n_public + 1):
        names.append(by_index.get(index, f"public[{index - 1}]"))
    return names


def _flat_expected(expected: Mapping[str, Any], prime: Prime) -> Dict[str, FieldValue]:
    return flatten_signals(parse_signals(expected, prime))


def compare_signals(
    actual: Mapping[str, FieldValue],
    expected: Mapping[str, Any],
    prime: Prime = Prime.BN128,
) -> List[str]:
    """Compare flattened ``actual`` signals against ``expected``.

    Only keys present in ``expected`` are checked. Returns one message per
    mismatch; an empty list means every expected signal matched.
    """
    problems: List[str] = []
    for name, want in sorted(_flat_expected(expected, prime).items()):
        got = actual.get(name)
        if got is None:
            problems.append(f"{name}: missing (expected {want})")
        elif got != want:
            problems.append(f"{name}: expected {want}, got {got}")
    return problems


def signal_array(values: Sequence[Any], prime: Prime = Prime.BN128) -> List[SignalValue]:
    """A (possibly nested) array signal from ints or decimal strings."""
    return [_parse_value(v, prime, f"[{i}]") for i, v in enumerate(values)]


def hash_to_field(message: bytes, prime: Prime = Prime.BN128) -> FieldValue:
    """sha256 of ``message`` read big-endian and reduced into the field."""
    return FieldValue.from_bytes(hashlib.sha256(message).digest(), prime, byteorder="big")


class SignalBuilder:
    """Assembles a SignalMap one signal at a time.

    Example::

        inputs = SignalBuilder().add("a", 3).add_array("in", [1, 2, 3]).build()
    """

    def __init__(self, prime: Prime = Prime.BN128):
        self.prime = Prime(prime)
        self._signals: SignalMap = {}

    def add(self, name: str, value: Any) -> "SignalBuilder":
        self._signals[name] = _parse_value(value, self.prime, name)
        return self

    def add_array(self, name: str, values: Sequence[Any]) -> "SignalBuilder":
        self._signals[name] = [_parse_value(v, self.prime, f"{name}[{i}]") for i, v in enumerate(values)]
        return self

    def add_2d_array(self, name: str, rows: Sequence[Sequence[Any]]) -> "SignalBuilder":
        self._signals[name] = [
            [_parse_value(v, self.prime, f"{name}[{i}][{j}]") for j, v in enumerate(row)]
            for i, row in enumerate(rows)
        ]
        return self

    def build(self) -> SignalMap:
        return dict(self._signals)
