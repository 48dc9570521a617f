"""Tests for the iden3 binary container readers."""

import struct

import pytest

from circomkit.errors import BinaryFormatError
from circomkit.kernel.artifacts import CircuitInfo
from circomkit.kernel.binfmt import (
    read_ptau_header,
    read_r1cs_header,
    read_wtns,
    write_ptau_header,
    write_r1cs_header,
    write_wtns,
)
from circomkit.kernel.field import FieldValue, Prime


INFO = CircuitInfo(
    prime=Prime.BN128,
    constraints=1234,
    wires=1300,
    public_outputs=2,
    public_inputs=1,
    private_inputs=3,
    labels=1500,
)


def test_r1cs_header():
    info = read_r1cs_header(write_r1cs_header(INFO))
    assert info == INFO
    assert info.public_signals == 3


def test_r1cs_header_from_prefix():
    """Only the header section needs to be present."""
    data = write_r1cs_header(INFO) + b"\x00" * 64
    assert read_r1cs_header(data[:200]).constraints == 1234


def test_r1cs_header_goldilocks():
    info = INFO.model_copy(update={"prime": Prime.GOLDILOCKS})
    assert read_r1cs_header(write_r1cs_header(info)).prime is Prime.GOLDILOCKS


def test_r1cs_header_section_not_first():
    header = write_r1cs_header(INFO)
    # Re-frame with an extra section (type 2) before the header section.
    body = header[12:]
    extra = struct.pack("<IQ", 2, 4) + b"abcd"
    data = b"r1cs" + struct.pack("<II", 1, 4) + extra + body
    assert read_r1cs_header(data) == INFO


def test_bad_magic():
    with pytest.raises(BinaryFormatError, match="bad magic"):
        read_r1cs_header(b"wtns" + b"\x00" * 40)


def test_truncated_header():
    data = write_r1cs_header(INFO)
    with pytest.raises(BinaryFormatError):
        read_r1cs_header(data[:30])


def test_empty_input():
    with pytest.raises(BinaryFormatError):
        read_r1cs_header(b"")


def test_missing_header_section():
    data = b"r1cs" + struct.pack("<II", 1, 1) + struct.pack("<IQ", 2, 0)
    with pytest.raises(BinaryFormatError, match="no section 1"):
        read_r1cs_header(data)


def test_unknown_prime():
    data = b"r1cs" + struct.pack("<II", 1, 1)
    payload = struct.pack("<I", 8) + (97).to_bytes(8, "little") + struct.pack("<IIIIQI", 1, 0, 0, 0, 0, 0)
    data += struct.pack("<IQ", 1, len(payload)) + payload
    with pytest.raises(BinaryFormatError, match="Unsupported prime"):
        read_r1cs_header(data)


def test_wtns():
    values = [FieldValue(v) for v in (1, 42, 6, 7, Prime.BN128.modulus - 1)]
    prime, read = read_wtns(write_wtns(values))
    assert prime is Prime.BN128
    assert read == values


def test_wtns_data_size_mismatch():
    data = bytearray(write_wtns([FieldValue(1), FieldValue(2)]))
    with pytest.raises(BinaryFormatError):
        read_wtns(bytes(data[:-8]))


def test_ptau_header():
    prime, power, ceremony = read_ptau_header(write_ptau_header(12))
    assert (prime, power, ceremony) == (Prime.BN128, 12, 28)


def test_ptau_rejects_r1cs():
    with pytest.raises(BinaryFormatError):
        read_ptau_header(write_r1cs_header(INFO))
