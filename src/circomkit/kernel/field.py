"""Field values: integers bound to the prime of the active curve.

Every signal exchanged with the toolchain is a FieldValue. The numeric value
is reduced modulo its prime at construction, so comparison and rendering
always see the canonical representative in ``[0, p)``.

Values under different primes never compare equal silently: equality raises
FieldMismatch instead.
"""

from enum import Enum
from typing import Union

from py_ecc import bls12_381, bn128

from circomkit.errors import FieldMismatch, InvalidSignals


GOLDILOCKS_MODULUS = 2**64 - 2**32 + 1


class Prime(str, Enum):
    """Prime fields supported by the circom compiler."""

    BN128 = "bn128"
    BLS12381 = "bls12381"
    GOLDILOCKS = "goldilocks"

    @property
    def modulus(self) -> int:
        return _MODULI[self]

    @property
    def byte_length(self) -> int:
        """Bytes per element in iden3 binary containers (multiple of 8)."""
        return ((self.modulus.bit_length() + 63) // 64) * 8

    @classmethod
    def from_modulus(cls, modulus: int) -> "Prime":
        for prime, value in _MODULI.items():
            if value == modulus:
                return prime
        raise FieldMismatch(f"modulus {modulus}", "supported primes")


_MODULI = {
    Prime.BN128: bn128.curve_order,
    Prime.BLS12381: bls12_381.curve_order,
    Prime.GOLDILOCKS: GOLDILOCKS_MODULUS,
}


class FieldValue:
    """An element of the scalar field selected by ``prime``."""

    __slots__ = ("_value", "_prime")

    def __init__(self, value: int, prime: Prime = Prime.BN128):
        if isinstance(value, bool) or not isinstance(value, int):
            raise InvalidSignals(
                f"FieldValue requires an int, got {type(value).__name__}"
            )
        prime = Prime(prime)
        self._prime = prime
        self._value = value % prime.modulus

    @classmethod
    def from_decimal(cls, text: str, prime: Prime = Prime.BN128) -> "FieldValue":
        """Parse a (possibly negative) decimal string; negatives wrap to ``p - |x|``."""
        stripped = text.strip()
        digits = stripped[1:] if stripped[:1] in ("-", "+") else stripped
        if not digits or not digits.isascii() or not digits.isdigit():
            raise InvalidSignals(f"Not a decimal integer: {text!r}")
        return cls(int(stripped), prime)

    @classmethod
    def from_bytes(
        cls, data: bytes, prime: Prime = Prime.BN128, byteorder: str = "little"
    ) -> "FieldValue":
        """Decode raw bytes (little-endian by default, as in iden3 containers)."""
        return cls(int.from_bytes(data, byteorder), prime)

    @property
    def value(self) -> int:
        return self._value

    @property
    def prime(self) -> Prime:
        return self._prime

    def reduce(self) -> "FieldValue":
        # Already canonical; a copy keeps callers from depending on identity.
        return FieldValue(self._value, self._prime)

    def to_decimal(self) -> str:
        return str(self._value)

    def to_bytes(self, byteorder: str = "little") -> bytes:
        return self._value.to_bytes(self._prime.byte_length, byteorder)

    def _coerce_other(self, other) -> "FieldValue":
        if isinstance(other, FieldValue):
            if other._prime is not self._prime:
                raise FieldMismatch(self._prime.value, other._prime.value)
            return other
        return coerce(other, self._prime)

    def __eq__(self, other) -> bool:
        if not isinstance(other, (FieldValue, int, str)) or isinstance(other, bool):
            return NotImplemented
        try:
            return self._value == self._coerce_other(other)._value
        except InvalidSignals:
            return False

    def __hash__(self) -> int:
        return hash((self._prime.value, self._value))

    def __int__(self) -> int:
        return self._value

    def __str__(self) -> str:
        return self.to_decimal()

    def __repr__(self) -> str:
        return f"FieldValue({self._value}, {self._prime.value})"


def coerce(value: Union["FieldValue", int, str], prime: Prime) -> FieldValue:
    """Convert an int, decimal string or FieldValue into a FieldValue under ``prime``.

    Floats and booleans are rejected rather than truncated.
    """
    if isinstance(value, FieldValue):
        if value.prime is not Prime(prime):
            raise FieldMismatch(value.prime.value, Prime(prime).value)
        return value
    if isinstance(value, bool):
        raise InvalidSignals(f"Booleans are not field elements: {value!r}")
    if isinstance(value, int):
        return FieldValue(value, prime)
    if isinstance(value, str):
        return FieldValue.from_decimal(value, prime)
    raise InvalidSignals(
        f"Unsupported signal value type {type(value).__name__}: {value!r}"
    )
