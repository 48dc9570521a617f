"""End-to-end runs against real circom, node and snarkjs.

Gated: run with ``pytest --run-toolchain``. Setup downloads the smallest
Hermez ceremony file on first use.
"""

import asyncio
import shutil

import pytest

from circomkit import Circomkit, CircomkitConfig, CircuitConfig
from circomkit.testers import ProofTester, WitnessTester

pytestmark = pytest.mark.toolchain

MULTIPLIER = """pragma circom 2.1.9;

template Multiplier(N) {
    signal input in[N];
    signal output out;
    signal inner[N - 1];

    inner[0] <== in[0] * in[1];
    for (var i = 2; i < N; i++) {
        inner[i - 1] <== inner[i - 2] * in[i];
    }
    out <== inner[N - 2];
}
"""


@pytest.fixture
def kit(tmp_path):
    for tool in ("circom", "node", "snarkjs"):
        if shutil.which(tool) is None:
            pytest.skip(f"{tool} not on PATH")
    (tmp_path / "circuits").mkdir()
    (tmp_path / "circuits" / "multiplier.circom").write_text(MULTIPLIER, encoding="utf-8")
    kit = Circomkit(CircomkitConfig(), root=tmp_path)
    kit.add_circuit(
        CircuitConfig.builder("multiplier_3").file("multiplier.circom").template("Multiplier").params(3).build()
    )
    return kit


def test_witness(kit):
    tester = WitnessTester(kit, kit.get_circuit("multiplier_3"))
    asyncio.run(tester.expect_constraint_count(2))
    asyncio.run(tester.expect_pass({"in": [2, 3, 7]}, {"out": 42}))
    asyncio.run(tester.expect_fail({"in": [2, 3]}))


def test_proof_round_trip(kit):
    tester = ProofTester(kit, kit.get_circuit("multiplier_3"))
    result = asyncio.run(tester.expect_valid_proof({"in": [2, 3, 7]}))
    assert result.public_signals == {"out": "42"}
    asyncio.run(tester.expect_tampered_fails({"in": [2, 3, 7]}))


def test_second_run_is_cached(kit):
    first = asyncio.run(kit.run("multiplier_3", {"in": [2, 3, 7]}))
    second = asyncio.run(kit.run("multiplier_3", {"in": [2, 3, 7]}))
    assert first.valid and second.valid
    assert second.witness.cached
