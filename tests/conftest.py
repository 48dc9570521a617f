"""Pytest configuration for tests.

No sys.path hacks - tests should import from installed circomkit package.

Pipeline and harness tests run against FakeToolchain, a test double of
circom, node and snarkjs that writes well-formed r1cs, wtns and sym files and
records every invocation.
"""

import asyncio
import hashlib
import json
import re
from pathlib import Path
from typing import List, Optional

import pytest

from circomkit._internal.ptau_fetch import PtauResolver, write_checksum_record
from circomkit.api import Circomkit
from circomkit.errors import CompilationError, ProveError, SetupError, WitnessError
from circomkit.kernel.artifacts import CircuitInfo
from circomkit.kernel.binfmt import read_r1cs_header, read_wtns, write_ptau_header, write_r1cs_header, write_wtns
from circomkit.kernel.config import CircomkitConfig, CircuitConfig
from circomkit.kernel.field import FieldValue, Prime


def pytest_addoption(parser):
    """Add gated toolchain test option."""
    parser.addoption(
        "--run-toolchain",
        action="store_true",
        default=False,
        help="Run integration tests against real circom/node/snarkjs (gated)."
    )


def pytest_collection_modifyitems(config, items):
    """Skip toolchain-marked tests unless --run-toolchain is set."""
    if config.getoption("--run-toolchain"):
        return
    skip_toolchain = pytest.mark.skip(reason="toolchain tests gated; pass --run-toolchain")
    for item in items:
        if "toolchain" in item.keywords:
            item.add_marker(skip_toolchain)


MULTIPLIER_SOURCE = """pragma circom 2.1.9;

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

MAIN_RE = re.compile(
    r"component main(?:\s*\{public \[(?P<public>[^\]]*)\]\})? = (?P<template>\w+)\((?P<params>[^)]*)\);"
)


def _sha(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


class FakeToolchain:
    """Stands in for the external toolchain.

    Understands one template, ``Multiplier(N)``: ``out = in[0] * ... * in[N-1]``
    with ``N - 1`` constraints. Any other template fails to compile. The
    compiled "wasm" is a JSON description the fake witness calculator reads.

    Attributes:
        calls: Names of invoked operations, in order
        gate: When set, compile waits for this event before writing output
        r1cs_prime: Prime written into r1cs headers (default: the requested one)
    """

    def __init__(self):
        self.calls: List[str] = []
        self.gate: Optional[asyncio.Event] = None
        self.r1cs_prime: Optional[Prime] = None
        self.compile_started: Optional[asyncio.Event] = None

    def count(self, name: str) -> int:
        return self.calls.count(name)

    async def compile(self, main: Path, out_dir: Path, prime: Prime, optimization: int):
        self.calls.append("compile")
        if self.compile_started is not None:
            self.compile_started.set()
        if self.gate is not None:
            await self.gate.wait()
        await asyncio.sleep(0)

        match = MAIN_RE.search(Path(main).read_text(encoding="utf-8"))
        if match is None or match.group("template") != "Multiplier":
            raise CompilationError(
                "circom compilation failed (exit 1)",
                diagnostic="error[P1012]: unknown template",
                command=["circom", str(main)],
                exit_code=1,
            )
        n = int(match.group("params"))
        public = [s.strip() for s in (match.group("public") or "").split(",") if s.strip()]
        # Like circom, outputs are named after the main file.
        name = Path(main).stem
        n_public_in = n if "in" in public else 0
        info = CircuitInfo(
            prime=self.r1cs_prime or prime,
            constraints=n - 1,
            wires=1 + 1 + n + (n - 1),
            public_outputs=1,
            public_inputs=n_public_in,
            private_inputs=n - n_public_in,
            labels=1 + 1 + n + (n - 1),
        )
        out_dir = Path(out_dir)
        (out_dir / f"{name}.r1cs").write_bytes(write_r1cs_header(info))
        js = out_dir / f"{name}_js"
        js.mkdir(parents=True, exist_ok=True)
        (js / "generate_witness.js").write_text("// generated\n", encoding="utf-8")
        (js / f"{name}.wasm").write_text(
            json.dumps({"n": n, "prime": Prime(prime).value, "optimization": optimization}),
            encoding="utf-8",
        )
        lines = ["0,1,0,main.out"]
        for i in range(n):
            lines.append(f"{1 + i},{2 + i},0,main.in[{i}]")
        for i in range(n - 1):
            lines.append(f"{1 + n + i},{2 + n + i},0,main.inner[{i}]")
        lines.append(f"{2 * n + 1},-1,1,main.mul.a")
        (out_dir / f"{name}.sym").write_text("\n".join(lines) + "\n", encoding="utf-8")

    async def calculate_witness(self, wasm: Path, inputs: Path, out: Path):
        self.calls.append("witness")
        await asyncio.sleep(0)
        meta = json.loads(Path(wasm).read_text(encoding="utf-8"))
        prime = Prime(meta["prime"])
        signals = json.loads(Path(inputs).read_text(encoding="utf-8"))
        values = signals.get("in")
        if not isinstance(values, list) or len(values) != meta["n"]:
            raise WitnessError(
                "witness calculation failed (exit 1)",
                diagnostic="Error: Not enough values for input signal in",
                exit_code=1,
            )
        ins = [FieldValue.from_decimal(str(v), prime) for v in values]
        inner = [ins[0].value * ins[1].value % prime.modulus]
        for v in ins[2:]:
            inner.append(inner[-1] * v.value % prime.modulus)
        witness = [1, inner[-1]] + [v.value for v in ins] + inner
        Path(out).write_bytes(write_wtns([FieldValue(w, prime) for w in witness], prime))

    async def setup(self, protocol: str, r1cs: Path, ptau: Path, zkey: Path):
        self.calls.append("setup")
        if not Path(ptau).is_file():
            raise SetupError("setup failed (exit 1)", diagnostic=f"ptau not found: {ptau}", exit_code=1)
        info = read_r1cs_header(Path(r1cs).read_bytes())
        Path(zkey).write_text(
            json.dumps({
                "protocol": protocol,
                "n_public": info.public_signals,
                "r1cs": _sha(Path(r1cs).read_bytes()),
            }),
            encoding="utf-8",
        )

    async def export_verification_key(self, zkey: Path, vkey: Path):
        self.calls.append("export_vkey")
        key = json.loads(Path(zkey).read_text(encoding="utf-8"))
        Path(vkey).write_text(
            json.dumps({"protocol": key["protocol"], "zkey": _sha(Path(zkey).read_bytes())}),
            encoding="utf-8",
        )

    async def prove(self, protocol: str, zkey: Path, wtns: Path, proof: Path, public: Path):
        self.calls.append("prove")
        key = json.loads(Path(zkey).read_text(encoding="utf-8"))
        if key["protocol"] != protocol:
            raise ProveError("prove failed (exit 1)", diagnostic="protocol mismatch", exit_code=1)
        _, values = read_wtns(Path(wtns).read_bytes())
        public_values = [v.to_decimal() for v in values[1:1 + key["n_public"]]]
        Path(public).write_text(json.dumps(public_values), encoding="utf-8")
        commitment = _sha(json.dumps([public_values, _sha(Path(zkey).read_bytes())]).encode())
        Path(proof).write_text(json.dumps({"protocol": protocol, "commitment": commitment}), encoding="utf-8")

    async def verify(self, protocol: str, vkey: Path, public: Path, proof: Path) -> bool:
        self.calls.append("verify")
        vk = json.loads(Path(vkey).read_text(encoding="utf-8"))
        try:
            claimed = json.loads(Path(proof).read_text(encoding="utf-8"))
            public_values = json.loads(Path(public).read_text(encoding="utf-8"))
        except ValueError:
            return False
        if not isinstance(claimed, dict):
            return False
        commitment = _sha(json.dumps([public_values, vk["zkey"]]).encode())
        return claimed.get("commitment") == commitment and claimed.get("protocol") == protocol

    async def export_solidity_verifier(self, zkey: Path, out: Path):
        self.calls.append("contract")
        Path(out).write_text("// SPDX-License-Identifier: GPL-3.0\ncontract Groth16Verifier {}\n", encoding="utf-8")

    async def export_calldata(self, public: Path, proof: Path) -> str:
        self.calls.append("calldata")
        values = json.loads(Path(public).read_text(encoding="utf-8"))
        return json.dumps(["0x" + format(int(v), "064x") for v in values])


@pytest.fixture
def fake_toolchain():
    return FakeToolchain()


@pytest.fixture
def multiplier_circuit():
    return CircuitConfig.builder("multiplier_3").file("multiplier.circom").template("Multiplier").params(3).build()


@pytest.fixture
def project(tmp_path, fake_toolchain, multiplier_circuit):
    """A Circomkit project in tmp_path with a Multiplier circuit and a local ptau file."""
    circuits = tmp_path / "circuits"
    circuits.mkdir()
    (circuits / "multiplier.circom").write_text(MULTIPLIER_SOURCE, encoding="utf-8")

    ptau_dir = tmp_path / "ptau"
    ptau_dir.mkdir()
    ptau = ptau_dir / "powersOfTau28_hez_final_08.ptau"
    ptau.write_bytes(write_ptau_header(8))
    write_checksum_record(ptau)

    kit = Circomkit(
        CircomkitConfig(),
        root=tmp_path,
        toolchain=fake_toolchain,
        resolver=PtauResolver(retries=1, backoff=0),
    )
    kit.add_circuit(multiplier_circuit)
    return kit
