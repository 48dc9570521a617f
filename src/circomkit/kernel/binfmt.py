"""Readers for the iden3 binary containers produced by circom and snarkjs.

All three formats share one framing::

    magic (4 bytes) | version u32 | n_sections u32
    repeated: section_type u32 | section_size u64 | payload

Integers are little-endian. Field elements are ``n8`` bytes, little-endian.
These readers take raw bytes and never touch the filesystem.
"""

import struct
from typing import Dict, List, Tuple

from circomkit.errors import BinaryFormatError
from circomkit.kernel.artifacts import CircuitInfo
from circomkit.kernel.field import FieldValue, Prime

R1CS_MAGIC = b"r1cs"
WTNS_MAGIC = b"wtns"
PTAU_MAGIC = b"ptau"

R1CS_HEADER_SECTION = 1
WTNS_HEADER_SECTION = 1
WTNS_DATA_SECTION = 2
PTAU_HEADER_SECTION = 1


class _Reader:
    """Cursor over a bytes buffer raising BinaryFormatError on truncation."""

    def __init__(self, data: bytes, kind: str):
        self.data = data
        self.kind = kind
        self.pos = 0

    def take(self, n: int) -> bytes:
        end = self.pos + n
        if n < 0 or end > len(self.data):
            raise BinaryFormatError(
                f"Truncated {self.kind} data: need {n} bytes at offset {self.pos}, "
                f"have {len(self.data) - self.pos}"
            )
        chunk = self.data[self.pos:end]
        self.pos = end
        return chunk

    def u32(self) -> int:
        return struct.unpack("<I", self.take(4))[0]

    def u64(self) -> int:
        return struct.unpack("<Q", self.take(8))[0]

    def field_int(self, n8: int) -> int:
        return int.from_bytes(self.take(n8), "little")


def _sections(data: bytes, magic: bytes) -> Tuple[int, Dict[int, Tuple[int, int]]]:
    """Return the container version and a map section_type -> (offset, size).

    Sections that extend beyond the end of ``data`` are still listed; callers
    that read them get a BinaryFormatError for truncation.
    """
    kind = magic.decode("ascii")
    reader = _Reader(data, kind)
    found = reader.take(4)
    if found != magic:
        raise BinaryFormatError(f"Not a {kind} file: bad magic {found!r}")
    version = reader.u32()
    n_sections = reader.u32()
    sections: Dict[int, Tuple[int, int]] = {}
    for _ in range(n_sections):
        if len(data) - reader.pos < 12:
            break
        section_type = reader.u32()
        size = reader.u64()
        # First occurrence wins; later duplicates are ignored.
        sections.setdefault(section_type, (reader.pos, size))
        if reader.pos + size > len(data):
            break
        reader.pos += size
    return version, sections


def _section(data: bytes, magic: bytes, section_type: int) -> _Reader:
    _, sections = _sections(data, magic)
    kind = magic.decode("ascii")
    if section_type not in sections:
        raise BinaryFormatError(f"{kind} data has no section {section_type}")
    offset, size = sections[section_type]
    if offset + size > len(data):
        raise BinaryFormatError(f"Truncated {kind} data: section {section_type} incomplete")
    reader = _Reader(data[offset:offset + size], kind)
    return reader


def _read_prime(reader: _Reader) -> Tuple[int, Prime]:
    n8 = reader.u32()
    if n8 == 0 or n8 % 8:
        raise BinaryFormatError(f"Invalid field size n8={n8}")
    modulus = reader.field_int(n8)
    try:
        prime = Prime.from_modulus(modulus)
    except ValueError as e:
        raise BinaryFormatError(f"Unsupported prime in {reader.kind} header") from e
    return n8, prime


def read_r1cs_header(data: bytes) -> CircuitInfo:
    """Parse the header section of an r1cs file.

    ``data`` may be a prefix of the file as long as it covers the header;
    constraint and wire-map sections are not decoded.
    """
    reader = _section(data, R1CS_MAGIC, R1CS_HEADER_SECTION)
    _, prime = _read_prime(reader)
    n_wires = reader.u32()
    n_pub_out = reader.u32()
    n_pub_in = reader.u32()
    n_prv_in = reader.u32()
    n_labels = reader.u64()
    n_constraints = reader.u32()
    return CircuitInfo(
        prime=prime,
        constraints=n_constraints,
        wires=n_wires,
        public_outputs=n_pub_out,
        public_inputs=n_pub_in,
        private_inputs=n_prv_in,
        labels=n_labels,
    )


def read_wtns(data: bytes) -> Tuple[Prime, List[FieldValue]]:
    """Parse a witness file into its prime and the ordered witness vector."""
    header = _section(data, WTNS_MAGIC, WTNS_HEADER_SECTION)
    n8, prime = _read_prime(header)
    n_witness = header.u32()

    body = _section(data, WTNS_MAGIC, WTNS_DATA_SECTION)
    if len(body.data) != n8 * n_witness:
        raise BinaryFormatError(
            f"wtns data section holds {len(body.data)} bytes, expected {n8 * n_witness}"
        )
    values = [FieldValue(body.field_int(n8), prime) for _ in range(n_witness)]
    return prime, values


def read_ptau_header(data: bytes) -> Tuple[Prime, int, int]:
    """Parse a ptau header: (prime, power, ceremony_power)."""
    reader = _section(data, PTAU_MAGIC, PTAU_HEADER_SECTION)
    _, prime = _read_prime(reader)
    power = reader.u32()
    ceremony_power = reader.u32()
    return prime, power, ceremony_power


# Writers are used by test doubles and fixtures; circom and snarkjs produce the real files.

def _container(magic: bytes, sections: List[Tuple[int, bytes]], version: int = 1) -> bytes:
    out = [magic, struct.pack("<II", version, len(sections))]
    for section_type, payload in sections:
        out.append(struct.pack("<IQ", section_type, len(payload)))
        out.append(payload)
    return b"".join(out)


def _prime_bytes(prime: Prime) -> bytes:
    return struct.pack("<I", prime.byte_length) + prime.modulus.to_bytes(prime.byte_length, "little")


def write_r1cs_header(info: CircuitInfo) -> bytes:
    prime = Prime(info.prime)
    header = _prime_bytes(prime) + struct.pack(
        "<IIIIQI",
        info.wires,
        info.public_outputs,
        info.public_inputs,
        info.private_inputs,
        info.labels,
        info.constraints,
    )
    # Empty constraints (2) and wire-to-label map (3) sections keep the layout recognizable.
    return _container(R1CS_MAGIC, [(R1CS_HEADER_SECTION, header), (2, b""), (3, b"")])


def write_wtns(values: List[FieldValue], prime: Prime = Prime.BN128) -> bytes:
    prime = Prime(prime)
    header = _prime_bytes(prime) + struct.pack("<I", len(values))
    body = b"".join(v.to_bytes() for v in values)
    return _container(WTNS_MAGIC, [(WTNS_HEADER_SECTION, header), (WTNS_DATA_SECTION, body)], version=2)


def write_ptau_header(power: int, ceremony_power: int = 28, prime: Prime = Prime.BN128) -> bytes:
    header = _prime_bytes(Prime(prime)) + struct.pack("<II", power, ceremony_power)
    return _container(PTAU_MAGIC, [(PTAU_HEADER_SECTION, header)])
