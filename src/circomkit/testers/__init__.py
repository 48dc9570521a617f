"""Test harness for circuits: witness expectations and proof round-trips."""

from circomkit.testers.proof import ProofTester, flip_proof_bit, flip_public_bit
from circomkit.testers.witness import WitnessTester

__all__ = [
    "WitnessTester",
    "ProofTester",
    "flip_public_bit",
    "flip_proof_bit",
]
