"""Tests for signal maps and symbol tables."""

import hashlib

import pytest

from circomkit.errors import InvalidSignals
from circomkit.kernel.field import FieldValue, Prime
from circomkit.kernel.signals import (
    SignalBuilder,
    compare_signals,
    flatten_signals,
    hash_to_field,
    inputs_digest,
    interface_signals,
    parse_signals,
    parse_symbols,
    public_names,
    signal_array,
    signals_to_json,
)


SYM = """0,1,0,main.out
1,2,0,main.in[0]
2,3,0,main.in[1]
3,4,0,main.inner[0]
4,-1,1,main.mul.a
5,5,1,main.mul.b
"""


def test_parse_signals_nested():
    signals = parse_signals({"a": 3, "b": "4", "c": [[1, "2"], [3, -1]]})
    assert signals["a"] == 3
    assert signals["b"] == FieldValue(4)
    assert signals["c"][1][1].value == Prime.BN128.modulus - 1


@pytest.mark.parametrize("bad", [1.5, True, None, {"x": 1}, "0x1"])
def test_parse_signals_rejects(bad):
    with pytest.raises(InvalidSignals):
        parse_signals({"a": bad})


def test_parse_signals_error_names_signal():
    with pytest.raises(InvalidSignals, match=r"c\[1\]"):
        parse_signals({"c": [1, 2.5]})


def test_parse_signals_requires_mapping():
    with pytest.raises(InvalidSignals):
        parse_signals([1, 2])


def test_signals_to_json_uses_reduced_decimals():
    signals = parse_signals({"a": -1, "b": [1, 2]})
    assert signals_to_json(signals) == {"a": str(Prime.BN128.modulus - 1), "b": ["1", "2"]}


def test_flatten_signals():
    flat = flatten_signals(parse_signals({"out": [[1, 2], [3, 4]], "x": 5}))
    assert list(flat) == ["out[0][0]", "out[0][1]", "out[1][0]", "out[1][1]", "x"]
    assert flat["out[1][0]"] == 3


def test_inputs_digest_order_independent_and_reduced():
    assert inputs_digest(parse_signals({"a": 1, "b": 2})) == inputs_digest(parse_signals({"b": "2", "a": 1}))
    assert inputs_digest(parse_signals({"a": -1})) == inputs_digest(parse_signals({"a": Prime.BN128.modulus - 1}))
    assert inputs_digest(parse_signals({"a": 1})) != inputs_digest(parse_signals({"a": 2}))


def test_parse_symbols_skips_removed_signals():
    symbols = parse_symbols(SYM)
    assert symbols["main.out"] == 1
    assert symbols["main.inner[0]"] == 4
    assert "main.mul.a" not in symbols
    assert symbols["main.mul.b"] == 5


def test_parse_symbols_rejects_malformed():
    with pytest.raises(InvalidSignals):
        parse_symbols("1,2,main.out\n")
    with pytest.raises(InvalidSignals):
        parse_symbols("1,x,0,main.out\n")


def test_interface_signals_only_main_component():
    values = [FieldValue(v) for v in (1, 42, 6, 7, 42, 99)]
    signals = interface_signals(parse_symbols(SYM), values)
    assert signals == {"out": 42, "in[0]": 6, "in[1]": 7, "inner[0]": 42}
    assert "mul.b" not in signals


def test_public_names_in_witness_order():
    assert public_names(parse_symbols(SYM), 3) == ["out", "in[0]", "in[1]"]


def test_public_names_placeholder_for_unknown_index():
    assert public_names({"main.out": 1}, 2) == ["out", "public[1]"]


def test_compare_signals_only_checks_expected_keys():
    actual = {"out": FieldValue(42), "in[0]": FieldValue(6)}
    assert compare_signals(actual, {"out": 42}) == []
    assert compare_signals(actual, {"out": "42"}) == []
    assert compare_signals(actual, {"out": 42 + Prime.BN128.modulus}) == []


def test_compare_signals_reports_mismatch_and_missing():
    actual = {"out": FieldValue(42)}
    problems = compare_signals(actual, {"out": 41, "other": [1]})
    assert problems == ["other[0]: missing (expected 1)", "out: expected 41, got 42"]


def test_signal_builder():
    signals = (
        SignalBuilder()
        .add("a", 3)
        .add("b", "-1")
        .add_array("arr", [1, "2", 3])
        .add_2d_array("grid", [[1, 2], [3, 4]])
        .build()
    )
    assert signals_to_json(signals) == {
        "a": "3",
        "b": str(Prime.BN128.modulus - 1),
        "arr": ["1", "2", "3"],
        "grid": [["1", "2"], ["3", "4"]],
    }
    assert inputs_digest(signals) == inputs_digest(parse_signals(signals_to_json(signals)))


def test_signal_builder_names_bad_element():
    with pytest.raises(InvalidSignals, match=r"grid\[1\]\[0\]"):
        SignalBuilder().add_2d_array("grid", [[1], [1.5]])


def test_signal_builder_uses_its_prime():
    signals = SignalBuilder(Prime.GOLDILOCKS).add("x", -1).build()
    assert signals["x"].prime is Prime.GOLDILOCKS
    assert signals["x"] == Prime.GOLDILOCKS.modulus - 1


def test_signal_array_nested():
    arr = signal_array([1, [2, "3"]])
    assert arr[0] == 1
    assert [v.value for v in arr[1]] == [2, 3]


def test_hash_to_field_is_reduced_sha256():
    digest = hashlib.sha256(b"hello").digest()
    value = hash_to_field(b"hello")
    assert value == int.from_bytes(digest, "big") % Prime.BN128.modulus
    assert hash_to_field(b"hello", Prime.GOLDILOCKS).prime is Prime.GOLDILOCKS
