"""Proof expectations: prove, verify and tamper checks for one circuit."""

import os
from pathlib import Path
from typing import Any, Callable, Mapping, Optional, Union

from circomkit.api import Circomkit
from circomkit.contracts import ProofTestResult
from circomkit.errors import CircomkitError, ExpectationFailed, InvalidSignals, ProveError, WitnessError
from circomkit.kernel.artifacts import Artifacts, Proof
from circomkit.kernel.config import CircuitConfig
from circomkit.pipeline import Pipeline

Tamper = Callable[[Proof], Proof]


def flip_public_bit(proof: Proof, name: Optional[str] = None, bit: int = 0) -> Proof:
    """Invert ``bit`` of public signal ``name`` (default: the first one)."""
    if not proof.public:
        raise InvalidSignals("Proof has no public signals to modify")
    if name is None:
        name = next(iter(proof.public))
    if name not in proof.public:
        raise InvalidSignals(f"Unknown public signal: {name}")
    return proof.with_public(name, proof.public[name].value ^ (1 << bit))


def flip_proof_bit(proof: Proof, index: int) -> Proof:
    """Invert bit ``index`` of the proof blob."""
    return proof.with_flipped_bit(index)


class ProofTester:
    """Proves and verifies one circuit.

    ``ptau`` pins the ceremony file; without it the recommended file is
    resolved (and downloaded if missing) during setup.
    """

    def __init__(
        self,
        kit: Circomkit,
        circuit: CircuitConfig,
        ptau: Union[str, os.PathLike, Path, None] = None,
    ):
        self.kit = kit
        self.circuit = circuit
        self.ptau = ptau

    def pipeline(self) -> Pipeline:
        return self.kit.pipeline(self.circuit, self.ptau)

    async def setup(self) -> Artifacts:
        return await self.pipeline().setup()

    async def prove(self, inputs: Mapping[str, Any]) -> Proof:
        return await self.pipeline().prove(inputs)

    async def verify(self, proof: Proof) -> bool:
        return await self.pipeline().verify(proof)

    async def prove_and_verify(self, inputs: Mapping[str, Any]) -> ProofTestResult:
        pipeline = self.pipeline()
        proof = await pipeline.prove(inputs)
        valid = await pipeline.verify(proof)
        return ProofTestResult(
            valid=valid,
            protocol=proof.protocol,
            public_signals={k: v.to_decimal() for k, v in proof.public.items()},
            error=None if valid else "verifier rejected the proof",
        )

    async def expect_valid_proof(self, inputs: Mapping[str, Any]) -> ProofTestResult:
        result = await self.prove_and_verify(inputs)
        if not result.valid:
            raise ExpectationFailed("Proof was generated but verification failed")
        return result

    async def expect_invalid_inputs(self, inputs: Mapping[str, Any]) -> CircomkitError:
        """Expect proving to fail for ``inputs``; returns the error."""
        try:
            await self.prove(inputs)
        except (WitnessError, ProveError) as e:
            return e
        raise ExpectationFailed("Expected proof generation to fail for invalid inputs, but it succeeded")

    async def expect_tampered_fails(
        self, inputs: Mapping[str, Any], tamper: Optional[Tamper] = None
    ) -> Proof:
        """Prove ``inputs``, tamper with the proof and expect verification to reject it."""
        proof = await self.prove(inputs)
        tampered = (tamper or flip_public_bit)(proof)
        if await self.verify(tampered):
            raise ExpectationFailed("Expected verification to fail for a tampered proof, but it passed")
        return tampered

    async def export_solidity_verifier(self) -> Path:
        return await self.pipeline().export_verifier()

    async def calldata(self, proof_or_inputs: Union[Proof, Mapping[str, Any]]) -> str:
        if isinstance(proof_or_inputs, Proof):
            proof = proof_or_inputs
        else:
            proof = await self.prove(proof_or_inputs)
        return await self.pipeline().calldata(proof)
