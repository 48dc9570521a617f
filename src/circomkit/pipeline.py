"""Pipeline orchestrator: compile, witness, setup, prove and verify one circuit.

A Pipeline drives a single circuit through the state machine in
``circomkit.kernel.state``. Every transition:

1. pins the build fingerprint (first transition only),
2. takes the store lock for the fingerprint and its slot,
3. consults the store and skips the external tool when a current record
   already satisfies the stage,
4. otherwise runs the tool into a staging directory, validates its output,
   promotes it and records the result.

Any error inside a transition moves the pipeline to FAILED; file and decode
errors on artifacts are raised as the stage's StageError.
Cancellation kills the running tool and leaves both the state and the store
as they were.
"""

import asyncio
import json
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, AsyncIterator, Dict, Iterable, List, Mapping, Optional, Type, Union

from circomkit._internal.canonical_json import canonical_dumps
from circomkit._internal.ptau_fetch import PtauResolver
from circomkit._internal.store import ArtifactStore, ref_for
from circomkit._internal.toolchain import Toolchain
from circomkit.codes import Stage
from circomkit.errors import (
    STAGE_ERRORS,
    BinaryFormatError,
    CacheCorruption,
    CircomkitError,
    CompilationError,
    FieldMismatch,
    FingerprintChanged,
    InvalidSignals,
    ProveError,
    SetupError,
    SourceUnreadable,
    StageError,
    VerifyError,
    WitnessError,
)
from circomkit.kernel.artifacts import (
    COMPILE_KINDS,
    KEY_KINDS,
    ArtifactKind,
    Artifacts,
    CircuitInfo,
    Proof,
    ProofRecord,
    WitnessRecord,
)
from circomkit.kernel.binfmt import read_r1cs_header, read_wtns
from circomkit.kernel.config import CircomkitConfig, CircuitConfig
from circomkit.kernel.field import FieldValue
from circomkit.kernel.hash_utils import compute_fingerprint, hash_bytes, hash_canonical
from circomkit.kernel.ptau import recommended
from circomkit.kernel.signals import (
    SignalMap,
    inputs_digest,
    interface_signals,
    parse_signals,
    parse_symbols,
    public_names,
    signals_to_json,
)
from circomkit.kernel.state import PipelineState, StateMachine

logger = logging.getLogger(__name__)

R1CS_PREFIX = 4096
MAIN_COMPONENT = "main.circom"


@dataclass(frozen=True)
class WitnessResult:
    """A computed witness and the main component's signals it contains."""

    path: Path
    digest: str
    signals: Dict[str, FieldValue]
    cached: bool = False


@dataclass(frozen=True)
class RunResult:
    state: PipelineState
    fingerprint: str
    artifacts: Optional[Artifacts] = None
    witness: Optional[WitnessResult] = None
    proof: Optional[Proof] = None
    valid: Optional[bool] = None


def _short(digest: str) -> str:
    return digest.split(":", 1)[-1][:16]


def read_circuit_info(path: Path) -> CircuitInfo:
    """Read the r1cs header, falling back to the whole file if the prefix is short."""
    with open(path, "rb") as f:
        prefix = f.read(R1CS_PREFIX)
    try:
        return read_r1cs_header(prefix)
    except BinaryFormatError:
        return read_r1cs_header(path.read_bytes())


class Pipeline:
    """Build and test pipeline for one circuit under one configuration.

    Args:
        config: Process-wide settings
        circuit: The circuit to build
        source_path: Circuit source file (its bytes feed the fingerprint)
        store: Artifact store for the build root
        toolchain: External tool runner
        resolver: PTAU resolver, used when ``ptau`` is not given
        ptau: Explicit PTAU file for setup
        ptau_dir: Where resolved PTAU files live
    """

    def __init__(
        self,
        config: CircomkitConfig,
        circuit: CircuitConfig,
        source_path: Union[str, Path],
        store: ArtifactStore,
        toolchain: Toolchain,
        resolver: Optional[PtauResolver] = None,
        ptau: Union[str, Path, None] = None,
        ptau_dir: Union[str, Path, None] = None,
    ):
        self.config = config
        self.circuit = circuit
        self.source_path = Path(source_path)
        self.store = store
        self.toolchain = toolchain
        self.resolver = resolver
        self.ptau = Path(ptau) if ptau else None
        self.ptau_dir = Path(ptau_dir if ptau_dir is not None else config.dir_ptau)
        self.slot = store.slot(circuit.name)
        self._machine = StateMachine()
        self._fingerprint: Optional[str] = None
        self._artifacts: Optional[Artifacts] = None
        self._last_witness: Optional[WitnessResult] = None

    @property
    def state(self) -> PipelineState:
        return self._machine.state

    @property
    def failed_stage(self) -> Optional[Stage]:
        return self._machine.failed_stage

    @property
    def artifacts(self) -> Optional[Artifacts]:
        """The last record this pipeline read or wrote."""
        return self._artifacts

    @property
    def protocol(self) -> str:
        return self.config.protocol.value

    # ------------------------------------------------------------------
    # Fingerprint
    # ------------------------------------------------------------------

    def compute_fingerprint(self) -> str:
        try:
            source = self.source_path.read_bytes()
        except OSError as e:
            raise SourceUnreadable(self.source_path, e.strerror or str(e)) from e
        return compute_fingerprint(
            source,
            self.circuit.template,
            self.circuit.params,
            self.circuit.public,
            self.config.prime.value,
            self.config.optimization,
        )

    @property
    def fingerprint(self) -> str:
        """Fingerprint pinned at the first transition."""
        if self._fingerprint is None:
            self._fingerprint = self.compute_fingerprint()
        return self._fingerprint

    def _check_source(self, fingerprint: str) -> None:
        """Raise FingerprintChanged if the source no longer matches the pinned fingerprint."""
        current = self.compute_fingerprint()
        if current != fingerprint:
            raise FingerprintChanged(
                f"{self.source_path} changed during the run ({fingerprint} -> {current})"
            )

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def _transition(self, stage: Stage) -> AsyncIterator[str]:
        self._machine.begin(stage)
        try:
            fingerprint = self.fingerprint
            async with self.store.acquire(fingerprint, self.circuit.name):
                yield fingerprint
        except CircomkitError:
            self._machine.fail(stage)
            logger.debug("%s: %s failed", self.circuit.name, stage.value)
            raise
        except (OSError, ValueError) as e:
            self._machine.fail(stage)
            logger.debug("%s: %s failed on artifact I/O", self.circuit.name, stage.value)
            raise STAGE_ERRORS[stage](f"{self.circuit.name}: {stage.value} failed: {e}") from e
        except Exception:
            self._machine.fail(stage)
            raise
        except BaseException:
            # Cancellation and interrupts leave the state as it was.
            self._machine.abort()
            raise
        else:
            self._machine.complete()

    def _lookup(self, fingerprint: str, check_files: bool = True) -> Optional[Artifacts]:
        artifacts = self.store.lookup(fingerprint, self.circuit.name, check_files=check_files)
        if artifacts is None:
            return None
        if artifacts.circuit != self.circuit.name:
            raise CacheCorruption(self.slot, f"record belongs to circuit '{artifacts.circuit}'")
        if check_files:
            self._artifacts = artifacts
        return artifacts

    def _require(
        self, fingerprint: str, kinds: Iterable[ArtifactKind], error: Type[StageError]
    ) -> Artifacts:
        kinds = tuple(kinds)
        artifacts = self._lookup(fingerprint)
        if artifacts is None or not artifacts.has_all(kinds):
            missing = [k.value for k in kinds if artifacts is None or not artifacts.has(k)]
            raise error(f"{self.circuit.name}: missing {', '.join(missing)}")
        return artifacts

    def _file(self, artifacts: Artifacts, kind: ArtifactKind) -> Path:
        return self.slot / artifacts.path(kind)

    def _record(self, fingerprint: str, artifacts: Artifacts) -> Artifacts:
        self._artifacts = self.store.record(fingerprint, artifacts)
        return self._artifacts

    def _signals(self, inputs: Union[SignalMap, Mapping[str, Any]], error: Type[StageError]) -> SignalMap:
        try:
            return parse_signals(inputs, self.config.prime)
        except (InvalidSignals, FieldMismatch) as e:
            raise error(f"Invalid inputs for {self.circuit.name}: {e}") from e

    # ------------------------------------------------------------------
    # compile
    # ------------------------------------------------------------------

    async def compile(self) -> Artifacts:
        async with self._transition(Stage.COMPILE) as fingerprint:
            artifacts = await self._compile(fingerprint)
        return artifacts

    async def _compile(self, fingerprint: str) -> Artifacts:
        name = self.circuit.name
        cached = self._lookup(fingerprint)
        if cached is not None and cached.has_all(COMPILE_KINDS) and cached.info is not None:
            logger.info("compile: %s is up to date", name)
            return cached

        self._check_source(fingerprint)
        with self.store.staging(self.slot) as staging:
            # circom names its outputs after the main file.
            main = staging / f"{name}.circom"
            main.write_text(
                self.circuit.main_component(self.source_path.resolve().as_posix()),
                encoding="utf-8",
            )
            out = staging / "out"
            out.mkdir()
            logger.info("compile: %s", name)
            await self.toolchain.compile(main, out, self.config.prime, self.config.optimization)

            outputs = {
                ArtifactKind.R1CS: (out / f"{name}.r1cs", f"{name}.r1cs"),
                ArtifactKind.WASM: (out / f"{name}_js" / f"{name}.wasm", f"{name}_js/{name}.wasm"),
                ArtifactKind.SYM: (out / f"{name}.sym", f"{name}.sym"),
            }
            missing = [rel for path, rel in outputs.values() if not path.is_file()]
            if missing:
                raise CompilationError(f"circom did not produce {', '.join(missing)}")

            info = read_circuit_info(outputs[ArtifactKind.R1CS][0])
            if info.prime != self.config.prime:
                raise FieldMismatch(info.prime.value, self.config.prime.value)
            refs = {kind: ref_for(path, rel) for kind, (path, rel) in outputs.items()}

            self._check_source(fingerprint)
            self.store.release_slot(self.slot, keep=fingerprint, preserve=[staging])
            previous = self._lookup(fingerprint, check_files=False)
            self.store.promote(outputs[ArtifactKind.R1CS][0], self.slot, outputs[ArtifactKind.R1CS][1])
            self.store.promote(out / f"{name}_js", self.slot, f"{name}_js")
            self.store.promote(outputs[ArtifactKind.SYM][0], self.slot, outputs[ArtifactKind.SYM][1])
            self.store.promote(main, self.slot, MAIN_COMPONENT)

        base = previous or Artifacts(fingerprint=fingerprint, circuit=name)
        files = {**base.files, **refs}
        update: Dict[str, Any] = {"files": files, "info": info}
        old_r1cs = base.files.get(ArtifactKind.R1CS)
        if old_r1cs is None or old_r1cs.sha256 != refs[ArtifactKind.R1CS].sha256:
            # Keys, witnesses and proofs belong to the old constraint system.
            update.update(
                files={k: v for k, v in files.items() if k not in KEY_KINDS},
                protocol=None,
                ptau=None,
                witnesses={},
                proofs={},
                verdicts={},
            )
        logger.info("compile: %s has %d constraints", name, info.constraints)
        return self._record(fingerprint, base.model_copy(update=update))

    # ------------------------------------------------------------------
    # witness
    # ------------------------------------------------------------------

    async def witness(self, inputs: Mapping[str, Any]) -> WitnessResult:
        if self.state is PipelineState.UNCOMPILED:
            await self.compile()
        async with self._transition(Stage.WITNESS) as fingerprint:
            result = await self._witness(fingerprint, self._signals(inputs, WitnessError))
        return result

    async def _witness(self, fingerprint: str, inputs: SignalMap) -> WitnessResult:
        artifacts = self._require(fingerprint, COMPILE_KINDS, WitnessError)
        digest = inputs_digest(inputs)
        prime = self.config.prime

        cached = artifacts.witnesses.get(digest)
        if cached is not None:
            logger.info("witness: %s cached for %s", self.circuit.name, _short(digest))
            signals = {k: FieldValue.from_decimal(v, prime) for k, v in cached.outputs.items()}
            result = WitnessResult(self.slot / cached.file.path, digest, signals, cached=True)
            self._last_witness = result
            return result

        self._check_source(fingerprint)
        relative = f"witness-{_short(digest)}.wtns"
        with self.store.staging(self.slot) as staging:
            input_file = staging / "input.json"
            input_file.write_text(canonical_dumps(signals_to_json(inputs)), encoding="utf-8")
            out = staging / "witness.wtns"
            logger.info("witness: %s for %s", self.circuit.name, _short(digest))
            await self.toolchain.calculate_witness(
                self._file(artifacts, ArtifactKind.WASM), input_file, out
            )
            if not out.is_file():
                raise WitnessError("witness calculator did not produce a witness file")
            try:
                wtns_prime, values = read_wtns(out.read_bytes())
            except BinaryFormatError as e:
                raise WitnessError(f"unreadable witness file: {e}") from e
            if wtns_prime != prime:
                raise FieldMismatch(wtns_prime.value, prime.value)
            symbols = parse_symbols(self._file(artifacts, ArtifactKind.SYM).read_text(encoding="utf-8"))
            signals = interface_signals(symbols, values)
            ref = ref_for(out, relative)
            path = self.store.promote(out, self.slot, relative)

        record = WitnessRecord(file=ref, outputs={k: v.to_decimal() for k, v in signals.items()})
        self._record(
            fingerprint,
            artifacts.model_copy(update={"witnesses": {**artifacts.witnesses, digest: record}}),
        )
        result = WitnessResult(path, digest, signals)
        self._last_witness = result
        return result

    # ------------------------------------------------------------------
    # setup
    # ------------------------------------------------------------------

    async def setup(self) -> Artifacts:
        if self.state is PipelineState.UNCOMPILED:
            await self.compile()
        async with self._transition(Stage.SETUP) as fingerprint:
            artifacts = await self._setup(fingerprint)
        return artifacts

    async def _resolve_ptau(self, info: Optional[CircuitInfo]) -> Path:
        if self.ptau is not None:
            if not self.ptau.is_file():
                raise SetupError(f"PTAU file not found: {self.ptau}")
            return self.ptau
        if self.resolver is None:
            raise SetupError("No PTAU file given and no resolver configured")
        if info is None:
            raise SetupError(f"{self.circuit.name}: circuit info unavailable")
        ptau_info = recommended(info.constraints, self.config.ptau_url)
        logger.info("setup: %s needs %s", self.circuit.name, ptau_info.filename)
        return await asyncio.to_thread(self.resolver.resolve, ptau_info, self.ptau_dir)

    async def _setup(self, fingerprint: str) -> Artifacts:
        name = self.circuit.name
        protocol = self.protocol
        artifacts = self._require(fingerprint, (ArtifactKind.R1CS,), SetupError)
        if artifacts.has_keys_for(protocol):
            logger.info("setup: %s keys are up to date", name)
            return artifacts

        vkey_rel = f"{protocol}_vkey.json"
        if artifacts.protocol == protocol and artifacts.has(ArtifactKind.PKEY):
            self._check_source(fingerprint)
            with self.store.staging(self.slot) as staging:
                vkey = staging / vkey_rel
                logger.info("setup: re-exporting verification key for %s", name)
                await self.toolchain.export_verification_key(self._file(artifacts, ArtifactKind.PKEY), vkey)
                if not vkey.is_file():
                    raise SetupError("snarkjs did not produce a verification key")
                ref = ref_for(vkey, vkey_rel)
                self.store.promote(vkey, self.slot, vkey_rel)
            files = {**artifacts.files, ArtifactKind.VKEY: ref}
            return self._record(fingerprint, artifacts.model_copy(update={"files": files}))

        self._check_source(fingerprint)
        ptau = await self._resolve_ptau(artifacts.info)
        pkey_rel = f"{protocol}_pkey.zkey"
        with self.store.staging(self.slot) as staging:
            pkey = staging / pkey_rel
            vkey = staging / vkey_rel
            logger.info("setup: %s %s", protocol, name)
            await self.toolchain.setup(protocol, self._file(artifacts, ArtifactKind.R1CS), ptau, pkey)
            if not pkey.is_file():
                raise SetupError("snarkjs did not produce a proving key")
            await self.toolchain.export_verification_key(pkey, vkey)
            if not vkey.is_file():
                raise SetupError("snarkjs did not produce a verification key")
            refs = {ArtifactKind.PKEY: ref_for(pkey, pkey_rel), ArtifactKind.VKEY: ref_for(vkey, vkey_rel)}
            for kind in KEY_KINDS:
                old = artifacts.files.get(kind)
                if old is not None and old.path != refs[kind].path:
                    (self.slot / old.path).unlink(missing_ok=True)
            self.store.promote(pkey, self.slot, pkey_rel)
            self.store.promote(vkey, self.slot, vkey_rel)

        update = {
            "files": {**artifacts.files, **refs},
            "protocol": protocol,
            "ptau": ptau.name,
            "proofs": {},
            "verdicts": {},
        }
        return self._record(fingerprint, artifacts.model_copy(update=update))

    # ------------------------------------------------------------------
    # prove
    # ------------------------------------------------------------------

    async def _ensure_keys(self) -> None:
        if self.state in (
            PipelineState.UNCOMPILED,
            PipelineState.COMPILED,
            PipelineState.WITNESS_GENERATED,
        ):
            await self.setup()

    async def prove(self, inputs: Optional[Mapping[str, Any]] = None) -> Proof:
        """Prove ``inputs``; without inputs, the last witness of this pipeline is used."""
        await self._ensure_keys()
        async with self._transition(Stage.PROVE) as fingerprint:
            if inputs is not None:
                signals = self._signals(inputs, WitnessError)
                digest = inputs_digest(signals)
            elif self._last_witness is not None:
                signals = None
                digest = self._last_witness.digest
            else:
                raise ProveError(f"{self.circuit.name}: no inputs and no witness to prove")
            proof = await self._prove(fingerprint, digest, signals)
        return proof

    def _load_proof(self, record: ProofRecord) -> Proof:
        data = (self.slot / record.proof.path).read_bytes()
        values = json.loads((self.slot / record.public.path).read_text(encoding="utf-8"))
        return self._make_proof(record.protocol, data, record.public_names, values)

    def _make_proof(self, protocol: str, data: bytes, names: List[str], values: List[Any]) -> Proof:
        if not isinstance(values, list) or len(values) != len(names):
            raise ProveError(f"public signals do not match the {len(names)} expected")
        try:
            public = {n: FieldValue.from_decimal(str(v), self.config.prime) for n, v in zip(names, values)}
        except InvalidSignals as e:
            raise ProveError(f"unreadable public signals: {e}") from e
        return Proof(protocol=protocol, prime=self.config.prime, data=data, public=public)

    async def _prove(self, fingerprint: str, digest: str, inputs: Optional[SignalMap]) -> Proof:
        name = self.circuit.name
        protocol = self.protocol
        artifacts = self._require(fingerprint, COMPILE_KINDS, ProveError)
        if not artifacts.has_keys_for(protocol):
            raise ProveError(f"{name}: no {protocol} proving key; run setup")

        cached = artifacts.proofs.get(digest)
        if cached is not None and cached.protocol == protocol:
            logger.info("prove: %s cached for %s", name, _short(digest))
            return self._load_proof(cached)

        witness = artifacts.witnesses.get(digest)
        if witness is None:
            if inputs is None:
                raise ProveError(f"{name}: witness {_short(digest)} is no longer available")
            await self._witness(fingerprint, inputs)
            artifacts = self._require(fingerprint, COMPILE_KINDS, ProveError)
            witness = artifacts.witnesses[digest]

        self._check_source(fingerprint)
        proof_rel = f"proof-{_short(digest)}.json"
        public_rel = f"public-{_short(digest)}.json"
        with self.store.staging(self.slot) as staging:
            proof_file = staging / proof_rel
            public_file = staging / public_rel
            logger.info("prove: %s %s for %s", protocol, name, _short(digest))
            await self.toolchain.prove(
                protocol,
                self._file(artifacts, ArtifactKind.PKEY),
                self.slot / witness.file.path,
                proof_file,
                public_file,
            )
            if not proof_file.is_file() or not public_file.is_file():
                raise ProveError("snarkjs did not produce a proof and public signals")
            try:
                values = json.loads(public_file.read_text(encoding="utf-8"))
            except ValueError as e:
                raise ProveError(f"unreadable public signals: {e}") from e
            symbols = parse_symbols(self._file(artifacts, ArtifactKind.SYM).read_text(encoding="utf-8"))
            names = public_names(symbols, len(values) if isinstance(values, list) else 0)
            proof = self._make_proof(protocol, proof_file.read_bytes(), names, values)
            record = ProofRecord(
                protocol=protocol,
                proof=ref_for(proof_file, proof_rel),
                public=ref_for(public_file, public_rel),
                public_names=names,
            )
            self.store.promote(proof_file, self.slot, proof_rel)
            self.store.promote(public_file, self.slot, public_rel)

        self._record(fingerprint, artifacts.model_copy(update={"proofs": {**artifacts.proofs, digest: record}}))
        return proof

    # ------------------------------------------------------------------
    # verify
    # ------------------------------------------------------------------

    async def verify(self, proof: Proof) -> bool:
        await self._ensure_keys()
        async with self._transition(Stage.VERIFY) as fingerprint:
            valid = await self._verify(fingerprint, proof)
        return valid

    async def _verify(self, fingerprint: str, proof: Proof) -> bool:
        name = self.circuit.name
        protocol = self.protocol
        if proof.prime != self.config.prime:
            raise FieldMismatch(proof.prime.value, self.config.prime.value)
        if proof.protocol != protocol:
            raise VerifyError(f"proof was produced with {proof.protocol}, keys are {protocol}")
        artifacts = self._lookup(fingerprint)
        if artifacts is None or not artifacts.has_keys_for(protocol):
            raise VerifyError(f"{name}: no {protocol} verification key; run setup")

        public = proof.public_json()
        key = hash_canonical({
            "protocol": protocol,
            "vkey": artifacts.files[ArtifactKind.VKEY].sha256,
            "proof": hash_bytes(proof.data),
            "public": public,
        })
        if key in artifacts.verdicts:
            logger.info("verify: %s cached verdict", name)
            return artifacts.verdicts[key]

        self._check_source(fingerprint)
        with self.store.staging(self.slot) as staging:
            proof_file = staging / "proof.json"
            public_file = staging / "public.json"
            proof_file.write_bytes(proof.data)
            public_file.write_text(json.dumps(public), encoding="utf-8")
            logger.info("verify: %s %s", protocol, name)
            valid = await self.toolchain.verify(
                protocol, self._file(artifacts, ArtifactKind.VKEY), public_file, proof_file
            )

        self._record(fingerprint, artifacts.model_copy(update={"verdicts": {**artifacts.verdicts, key: valid}}))
        return valid

    # ------------------------------------------------------------------
    # Whole runs and exports
    # ------------------------------------------------------------------

    async def run(self, inputs: Optional[Mapping[str, Any]] = None, until: Stage = Stage.VERIFY) -> RunResult:
        """Run every stage up to and including ``until``.

        Inputs are needed for witness, prove and verify; without them the run
        stops after setup.
        """
        until = Stage(until)
        order = list(Stage)
        wanted = order[: order.index(until) + 1]
        result: Dict[str, Any] = {}

        await self.compile()
        if Stage.WITNESS in wanted and inputs is not None:
            result["witness"] = await self.witness(inputs)
        if Stage.SETUP in wanted:
            await self.setup()
        if Stage.PROVE in wanted and inputs is not None:
            result["proof"] = await self.prove(inputs)
        if Stage.VERIFY in wanted and "proof" in result:
            result["valid"] = await self.verify(result["proof"])
        return RunResult(
            state=self.state,
            fingerprint=self.fingerprint,
            artifacts=self._artifacts,
            **result,
        )

    async def info(self) -> CircuitInfo:
        if self.state is PipelineState.UNCOMPILED:
            await self.compile()
        artifacts = self._artifacts
        if artifacts is None or artifacts.info is None:
            raise CompilationError(f"{self.circuit.name}: no circuit info recorded")
        return artifacts.info

    async def export_verifier(self) -> Path:
        """Export a Solidity verifier for the current keys."""
        await self._ensure_keys()
        fingerprint = self.fingerprint
        async with self.store.acquire(fingerprint, self.circuit.name):
            artifacts = self._require(fingerprint, (ArtifactKind.PKEY,), SetupError)
            target = self.slot / f"{self.protocol}_verifier.sol"
            with self.store.staging(self.slot) as staging:
                out = staging / target.name
                await self.toolchain.export_solidity_verifier(self._file(artifacts, ArtifactKind.PKEY), out)
                if not out.is_file():
                    raise SetupError("snarkjs did not produce a verifier contract")
                self.store.promote(out, self.slot, target.name)
        logger.info("Exported %s", target)
        return target

    async def calldata(self, proof: Proof) -> str:
        """Solidity calldata for ``proof``."""
        fingerprint = self.fingerprint
        async with self.store.acquire(fingerprint, self.circuit.name):
            with self.store.staging(self.slot) as staging:
                proof_file = staging / "proof.json"
                public_file = staging / "public.json"
                proof_file.write_bytes(proof.data)
                public_file.write_text(json.dumps(proof.public_json()), encoding="utf-8")
                return await self.toolchain.export_calldata(public_file, proof_file)
