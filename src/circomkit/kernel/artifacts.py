"""Artifact records: what a build slot holds and which fingerprint produced it.

Records are pydantic models so they serialize to the slot marker unchanged.
Paths inside a record are POSIX paths relative to the slot directory; the
slot directory itself is attached at load time and never serialized.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from circomkit.errors import InvalidSignals
from circomkit.kernel.field import FieldValue, Prime, coerce

ARTIFACTS_FORMAT = "circomkit.artifacts"
ARTIFACTS_VERSION = 1


class ArtifactKind(str, Enum):
    R1CS = "r1cs"
    WASM = "wasm"
    SYM = "sym"
    PKEY = "pkey"
    VKEY = "vkey"


COMPILE_KINDS = (ArtifactKind.R1CS, ArtifactKind.WASM, ArtifactKind.SYM)
KEY_KINDS = (ArtifactKind.PKEY, ArtifactKind.VKEY)


class ArtifactRef(BaseModel):
    """A file inside a slot, pinned by size and content hash."""

    path: str
    size: int = Field(..., ge=0)
    sha256: str

    model_config = ConfigDict(extra="forbid", frozen=True)

    @field_validator("path")
    @classmethod
    def validate_path(cls, v: str) -> str:
        if v.startswith("/") or "\\" in v or ".." in v.split("/"):
            raise ValueError(f"Artifact path must be relative to its slot: {v!r}")
        return v


class CircuitInfo(BaseModel):
    """Counts from the r1cs header."""

    prime: Prime
    constraints: int = Field(..., ge=0)
    wires: int = Field(..., ge=0)
    public_outputs: int = Field(0, ge=0)
    public_inputs: int = Field(0, ge=0)
    private_inputs: int = Field(0, ge=0)
    labels: int = Field(0, ge=0)

    model_config = ConfigDict(extra="forbid", frozen=True)

    @property
    def public_signals(self) -> int:
        """Number of public signals as snarkjs orders them (outputs, then public inputs)."""
        return self.public_outputs + self.public_inputs


class WitnessRecord(BaseModel):
    """A witness computed for one input digest, with its named outputs."""

    file: ArtifactRef
    outputs: Dict[str, str] = Field(default_factory=dict)

    model_config = ConfigDict(extra="forbid", frozen=True)


class ProofRecord(BaseModel):
    """A proof computed for one input digest under one protocol.

    ``public_names`` is ordered like the values in the public file.
    """

    protocol: str
    proof: ArtifactRef
    public: ArtifactRef
    public_names: List[str] = Field(default_factory=list)

    model_config = ConfigDict(extra="forbid", frozen=True)


class Artifacts(BaseModel):
    """Everything a slot holds for one fingerprint.

    ``sequence`` is assigned by the store on every record; only the latest
    sequence for a fingerprint is current.
    """

    format: str = ARTIFACTS_FORMAT
    version: int = ARTIFACTS_VERSION
    fingerprint: str
    sequence: int = Field(0, ge=0)
    circuit: str
    directory: str = Field("", exclude=True)
    files: Dict[ArtifactKind, ArtifactRef] = Field(default_factory=dict)
    protocol: Optional[str] = None
    ptau: Optional[str] = None
    info: Optional[CircuitInfo] = None
    witnesses: Dict[str, WitnessRecord] = Field(default_factory=dict)
    proofs: Dict[str, ProofRecord] = Field(default_factory=dict)
    verdicts: Dict[str, bool] = Field(default_factory=dict)

    model_config = ConfigDict(extra="forbid", frozen=True)

    @field_validator("fingerprint")
    @classmethod
    def validate_fingerprint(cls, v: str) -> str:
        prefix = "sha256:"
        digest = v[len(prefix):]
        if not v.startswith(prefix) or len(digest) != 64 or any(c not in "0123456789abcdef" for c in digest):
            raise ValueError(f"Invalid fingerprint: {v!r}")
        return v

    def has(self, kind: ArtifactKind) -> bool:
        return kind in self.files

    def has_all(self, kinds: Iterable[ArtifactKind]) -> bool:
        return all(k in self.files for k in kinds)

    def path(self, kind: ArtifactKind) -> str:
        """Slot-relative path of ``kind``; KeyError if absent."""
        return self.files[kind].path

    def has_keys_for(self, protocol: str) -> bool:
        return self.protocol == protocol and self.has_all(KEY_KINDS)

    def payload(self) -> dict:
        """JSON form written to the slot marker."""
        return self.model_dump(mode="json")


@dataclass(frozen=True)
class Proof:
    """An opaque proof blob with its ordered public signals.

    ``data`` is the proof file exactly as the toolchain wrote it; ``public``
    preserves the order the verifier expects.
    """

    protocol: str
    prime: Prime
    data: bytes
    public: Dict[str, FieldValue] = field(default_factory=dict)

    def public_values(self) -> List[FieldValue]:
        return list(self.public.values())

    def public_json(self) -> List[str]:
        """Public signals as the decimal-string array snarkjs reads."""
        return [v.to_decimal() for v in self.public.values()]

    def with_public(self, name: str, value) -> "Proof":
        """Return a copy with one public signal replaced (order kept)."""
        if name not in self.public:
            raise InvalidSignals(f"Unknown public signal: {name}")
        public = dict(self.public)
        public[name] = coerce(value, self.prime)
        return Proof(self.protocol, self.prime, self.data, public)

    def with_flipped_bit(self, index: int) -> "Proof":
        """Return a copy with bit ``index`` of the proof blob inverted."""
        if not self.data:
            raise InvalidSignals("Proof has no data to modify")
        index = index % (len(self.data) * 8)
        blob = bytearray(self.data)
        blob[index // 8] ^= 1 << (index % 8)
        return Proof(self.protocol, self.prime, bytes(blob), dict(self.public))
