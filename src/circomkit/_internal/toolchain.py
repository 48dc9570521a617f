"""Asynchronous wrappers around the external circom, node and snarkjs processes.

Each method builds one command line, awaits the process and maps failure to
the stage error of the caller. Tool output is kept verbatim as the error's
diagnostic and is never parsed for control flow.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence, Tuple, Type

from circomkit.errors import (
    CompilationError,
    ProveError,
    SetupError,
    StageError,
    ToolNotFound,
    VerifyError,
    WitnessError,
)
from circomkit.kernel.config import CircomkitConfig
from circomkit.kernel.field import Prime

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ToolRun:
    """Outcome of one external process."""

    argv: Tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str

    @property
    def diagnostic(self) -> str:
        return (self.stderr or self.stdout).strip()


class Toolchain:
    """Runs the external toolchain; one instance per configuration."""

    def __init__(
        self,
        circom: str = "circom",
        snarkjs: str = "snarkjs",
        node: str = "node",
        include: Sequence[str] = (),
        verbose: bool = False,
    ):
        self.circom = circom
        self.snarkjs = snarkjs
        self.node = node
        self.include = tuple(str(p) for p in include)
        self.verbose = verbose

    @classmethod
    def from_config(cls, config: CircomkitConfig) -> "Toolchain":
        return cls(
            circom=config.circom_command(),
            snarkjs=config.snarkjs_command(),
            node=config.node_command(),
            include=config.include,
            verbose=config.verbose,
        )

    async def _run(self, argv: List[str], cwd: Optional[Path] = None) -> ToolRun:
        argv = [str(a) for a in argv]
        logger.info("Running: %s", " ".join(argv))
        start = time.monotonic()
        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                cwd=str(cwd) if cwd else None,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except (FileNotFoundError, PermissionError) as e:
            raise ToolNotFound(argv[0]) from e
        try:
            stdout, stderr = await proc.communicate()
        except asyncio.CancelledError:
            if proc.returncode is None:
                proc.kill()
                await proc.wait()
            logger.info("Cancelled: %s", argv[0])
            raise
        run = ToolRun(
            argv=tuple(argv),
            returncode=proc.returncode,
            stdout=stdout.decode("utf-8", errors="replace"),
            stderr=stderr.decode("utf-8", errors="replace"),
        )
        logger.debug("%s exited %d in %.2fs", argv[0], run.returncode, time.monotonic() - start)
        if self.verbose and run.stdout.strip():
            logger.info("%s", run.stdout.strip())
        return run

    async def _check(self, argv: List[str], error: Type[StageError], what: str) -> ToolRun:
        run = await self._run(argv)
        if run.returncode != 0:
            raise error(
                f"{what} failed (exit {run.returncode})",
                diagnostic=run.diagnostic,
                command=run.argv,
                exit_code=run.returncode,
            )
        return run

    async def compile(self, main: Path, out_dir: Path, prime: Prime, optimization: int) -> ToolRun:
        argv = [
            self.circom, main,
            "--r1cs", "--wasm", "--sym",
            "-o", out_dir,
            "-p", Prime(prime).value,
            f"--O{optimization}",
        ]
        for path in self.include:
            argv += ["-l", path]
        return await self._check(argv, CompilationError, "circom compilation")

    async def calculate_witness(self, wasm: Path, inputs: Path, out: Path) -> ToolRun:
        script = Path(wasm).parent / "generate_witness.js"
        return await self._check(
            [self.node, script, wasm, inputs, out], WitnessError, "witness calculation"
        )

    async def setup(self, protocol: str, r1cs: Path, ptau: Path, zkey: Path) -> ToolRun:
        return await self._check(
            [self.snarkjs, protocol, "setup", r1cs, ptau, zkey], SetupError, f"{protocol} setup"
        )

    async def export_verification_key(self, zkey: Path, vkey: Path) -> ToolRun:
        return await self._check(
            [self.snarkjs, "zkey", "export", "verificationkey", zkey, vkey],
            SetupError,
            "verification key export",
        )

    async def prove(self, protocol: str, zkey: Path, wtns: Path, proof: Path, public: Path) -> ToolRun:
        return await self._check(
            [self.snarkjs, protocol, "prove", zkey, wtns, proof, public], ProveError, f"{protocol} prove"
        )

    async def verify(self, protocol: str, vkey: Path, public: Path, proof: Path) -> bool:
        """Exit status 0 means valid; any other exit status means invalid."""
        try:
            run = await self._run([self.snarkjs, protocol, "verify", vkey, public, proof])
        except ToolNotFound as e:
            raise VerifyError(str(e), command=[self.snarkjs, protocol, "verify"]) from e
        if run.returncode < 0:
            raise VerifyError(
                f"{protocol} verify terminated by signal {-run.returncode}",
                diagnostic=run.diagnostic,
                command=run.argv,
                exit_code=run.returncode,
            )
        if run.returncode != 0:
            logger.info("Verification rejected (exit %d)", run.returncode)
        return run.returncode == 0

    async def export_solidity_verifier(self, zkey: Path, out: Path) -> ToolRun:
        return await self._check(
            [self.snarkjs, "zkey", "export", "solidityverifier", zkey, out],
            SetupError,
            "solidity verifier export",
        )

    async def export_calldata(self, public: Path, proof: Path) -> str:
        run = await self._check(
            [self.snarkjs, "zkey", "export", "soliditycalldata", public, proof],
            ProveError,
            "calldata export",
        )
        return run.stdout.strip()
