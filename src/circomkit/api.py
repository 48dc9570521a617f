"""Public API for circomkit.

``Circomkit`` binds one configuration to a project directory and hands out
a Pipeline per circuit. Directory settings are resolved against the project
root, so the same configuration works from any working directory.
"""

import asyncio
import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

from circomkit._internal.io.config import (
    DEFAULT_CONFIG_NAME,
    load_circuits,
    load_config,
    read_inputs,
)
from circomkit._internal.ptau_fetch import PtauResolver
from circomkit._internal.store import ArtifactStore
from circomkit._internal.toolchain import Toolchain
from circomkit.errors import InvalidConfig, SourceUnreadable
from circomkit.kernel.artifacts import Artifacts, CircuitInfo, Proof
from circomkit.kernel.config import CircomkitConfig, CircuitConfig
from circomkit.kernel.field import Prime
from circomkit.kernel.hash_utils import compute_fingerprint
from circomkit.kernel.ptau import recommended
from circomkit.kernel.signals import SignalMap
from circomkit.pipeline import Pipeline, RunResult, WitnessResult

CircuitRef = Union[str, CircuitConfig]


def _normalize_path(path: Union[str, os.PathLike, Path]) -> Path:
    """Normalize path input to Path object."""
    return Path(path) if not isinstance(path, Path) else path


def fingerprint(
    circuit: CircuitConfig,
    prime: Union[Prime, str],
    optimization: int,
    source_path: Union[str, os.PathLike, Path],
) -> str:
    """Fingerprint ``circuit`` built from the source at ``source_path``.

    Raises:
        SourceUnreadable: If the source cannot be read
    """
    path = _normalize_path(source_path)
    try:
        source = path.read_bytes()
    except OSError as e:
        raise SourceUnreadable(path, e.strerror or str(e)) from e
    return compute_fingerprint(
        source, circuit.template, circuit.params, circuit.public, Prime(prime).value, optimization
    )


class Circomkit:
    """Project-level entry point.

    Args:
        config: Settings; defaults apply when omitted
        root: Project directory that relative ``dir*`` settings are resolved against
        toolchain: External tool runner (defaults to the configured binaries)
        resolver: PTAU resolver (defaults to one using the configured timeout and retries)
    """

    def __init__(
        self,
        config: Optional[CircomkitConfig] = None,
        root: Union[str, os.PathLike, Path, None] = None,
        toolchain: Optional[Toolchain] = None,
        resolver: Optional[PtauResolver] = None,
    ):
        self.config = config or CircomkitConfig()
        self.root = _normalize_path(root) if root is not None else Path.cwd()
        self.toolchain = toolchain or Toolchain.from_config(self.config)
        self.resolver = resolver or PtauResolver(
            timeout=self.config.ptau_timeout, retries=self.config.ptau_retries
        )
        self.store = ArtifactStore(self._dir(self.config.dir_build))
        self.circuits: Dict[str, CircuitConfig] = {}

    @classmethod
    def from_config_file(
        cls, path: Union[str, os.PathLike, Path, None] = None, **kwargs: Any
    ) -> "Circomkit":
        """Load ``circomkit.json`` (default: in the current directory) and its circuits."""
        if path is None:
            path = Path.cwd() / DEFAULT_CONFIG_NAME
            config = load_config(path) if path.is_file() else CircomkitConfig()
        else:
            path = _normalize_path(path)
            config = load_config(path)
        kit = cls(config, root=kwargs.pop("root", path.parent), **kwargs)
        kit.load_circuits()
        return kit

    def _dir(self, directory: str) -> Path:
        path = Path(directory)
        return path if path.is_absolute() else self.root / path

    # ------------------------------------------------------------------
    # Circuits
    # ------------------------------------------------------------------

    def load_circuits(self) -> Dict[str, CircuitConfig]:
        self.circuits.update(load_circuits(self._dir(self.config.circuits)))
        return self.circuits

    def add_circuit(self, circuit: CircuitConfig) -> None:
        self.circuits[circuit.name] = circuit

    def get_circuit(self, name: str) -> CircuitConfig:
        try:
            return self.circuits[name]
        except KeyError:
            raise InvalidConfig(f"Unknown circuit '{name}'") from None

    def _circuit(self, circuit: CircuitRef) -> CircuitConfig:
        if isinstance(circuit, CircuitConfig):
            return circuit
        return self.get_circuit(circuit)

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------

    def source_path(self, circuit: CircuitRef) -> Path:
        circuit = self._circuit(circuit)
        if circuit.absolute_file:
            return Path(circuit.absolute_file)
        return self._dir(self.config.dir_circuits) / circuit.file

    def input_path(self, circuit: CircuitRef, input_name: str) -> Path:
        circuit = self._circuit(circuit)
        return self._dir(self.config.dir_inputs) / circuit.name / f"{input_name}.json"

    def build_path(self, circuit: CircuitRef) -> Path:
        return self.store.slot(self._circuit(circuit).name)

    def ptau_dir(self) -> Path:
        return self._dir(self.config.dir_ptau)

    def fingerprint(self, circuit: CircuitRef) -> str:
        circuit = self._circuit(circuit)
        return fingerprint(circuit, self.config.prime, self.config.optimization, self.source_path(circuit))

    def read_inputs(self, circuit: CircuitRef, input_name: str) -> SignalMap:
        return read_inputs(self.input_path(circuit, input_name), self.config.prime)

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def pipeline(self, circuit: CircuitRef, ptau: Union[str, os.PathLike, Path, None] = None) -> Pipeline:
        circuit = self._circuit(circuit)
        return Pipeline(
            self.config,
            circuit,
            self.source_path(circuit),
            self.store,
            self.toolchain,
            resolver=self.resolver,
            ptau=ptau,
            ptau_dir=self.ptau_dir(),
        )

    async def compile(self, circuit: CircuitRef) -> Artifacts:
        return await self.pipeline(circuit).compile()

    async def witness(self, circuit: CircuitRef, inputs: Mapping[str, Any]) -> WitnessResult:
        return await self.pipeline(circuit).witness(inputs)

    async def setup(self, circuit: CircuitRef, ptau: Union[str, os.PathLike, Path, None] = None) -> Artifacts:
        return await self.pipeline(circuit, ptau).setup()

    async def prove(
        self,
        circuit: CircuitRef,
        inputs: Mapping[str, Any],
        ptau: Union[str, os.PathLike, Path, None] = None,
    ) -> Proof:
        return await self.pipeline(circuit, ptau).prove(inputs)

    async def verify(
        self, circuit: CircuitRef, proof: Proof, ptau: Union[str, os.PathLike, Path, None] = None
    ) -> bool:
        return await self.pipeline(circuit, ptau).verify(proof)

    async def run(self, circuit: CircuitRef, inputs: Optional[Mapping[str, Any]] = None, **kwargs: Any) -> RunResult:
        ptau = kwargs.pop("ptau", None)
        return await self.pipeline(circuit, ptau).run(inputs, **kwargs)

    async def info(self, circuit: CircuitRef) -> CircuitInfo:
        return await self.pipeline(circuit).info()

    async def export_verifier(self, circuit: CircuitRef, ptau: Union[str, os.PathLike, Path, None] = None) -> Path:
        return await self.pipeline(circuit, ptau).export_verifier()

    async def calldata(self, circuit: CircuitRef, proof: Proof) -> str:
        return await self.pipeline(circuit).calldata(proof)

    async def ptau(self, circuit: CircuitRef) -> Path:
        """Download (or reuse) the ceremony file sized for ``circuit``."""
        info = await self.info(circuit)
        ptau_info = recommended(info.constraints, self.config.ptau_url)
        return await asyncio.to_thread(self.resolver.resolve, ptau_info, self.ptau_dir())

    def clean(self, circuit: CircuitRef) -> None:
        self.store.clean(self._circuit(circuit).name)

    def clean_all(self) -> None:
        self.store.clean_all()
