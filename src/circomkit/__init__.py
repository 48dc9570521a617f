"""circomkit: cached build, witness and proof pipeline for Circom circuits."""

from importlib.metadata import version, PackageNotFoundError

try:
    __version__ = version("circomkit")
except PackageNotFoundError:
    __version__ = "dev"

# Public API exports
from circomkit.api import Circomkit, fingerprint
from circomkit.codes import ErrorCode, Stage
from circomkit.contracts import ProofTestResult, WitnessTestResult
from circomkit.errors import CircomkitError
from circomkit.kernel.artifacts import Artifacts, CircuitInfo, Proof
from circomkit.kernel.config import CircomkitConfig, CircuitConfig, Protocol
from circomkit.kernel.field import FieldValue, Prime
from circomkit.kernel.signals import SignalBuilder, hash_to_field, signal_array
from circomkit.pipeline import Pipeline, RunResult, WitnessResult

__all__ = [
    "__version__",
    "Circomkit",
    "fingerprint",
    "Pipeline",
    "RunResult",
    "WitnessResult",
    "CircomkitConfig",
    "CircuitConfig",
    "Protocol",
    "FieldValue",
    "Prime",
    "SignalBuilder",
    "signal_array",
    "hash_to_field",
    "Artifacts",
    "CircuitInfo",
    "Proof",
    "CircomkitError",
    "ErrorCode",
    "Stage",
    "WitnessTestResult",
    "ProofTestResult",
]
