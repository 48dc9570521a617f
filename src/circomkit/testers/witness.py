"""Witness expectations for circuit tests.

Each expectation builds a fresh Pipeline, so compilation and witnesses are
served from the artifact store whenever the fingerprint is unchanged.
"""

import logging
import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Sequence, Union

from circomkit.api import Circomkit
from circomkit.contracts import WitnessTestResult
from circomkit.errors import ExpectationFailed, WitnessError
from circomkit.kernel.config import CircomkitConfig, CircuitConfig
from circomkit.kernel.field import FieldValue
from circomkit.kernel.signals import compare_signals, flatten_signals, parse_signals
from circomkit.pipeline import Pipeline

logger = logging.getLogger(__name__)


class WitnessTester:
    """Checks witnesses of one circuit against expectations."""

    def __init__(self, kit: Circomkit, circuit: CircuitConfig):
        self.kit = kit
        self.circuit = circuit

    @classmethod
    def from_file(
        cls,
        name: str,
        file: Union[str, os.PathLike, Path],
        template: str,
        params: Sequence[int] = (),
        public: Sequence[str] = (),
        config: Optional[CircomkitConfig] = None,
        **kwargs: Any,
    ) -> "WitnessTester":
        """Build a tester for ``template`` in ``file`` (resolved against the working directory)."""
        circuit = (
            CircuitConfig.builder(name)
            .absolute_file(str(Path(file).resolve()))
            .template(template)
            .params(*params)
            .public(*public)
            .build()
        )
        return cls(Circomkit(config, **kwargs), circuit)

    def pipeline(self) -> Pipeline:
        return self.kit.pipeline(self.circuit)

    async def compute(self, inputs: Mapping[str, Any]) -> Dict[str, FieldValue]:
        """Signals of the main component for ``inputs``, flattened (``out[0]``)."""
        result = await self.pipeline().witness(inputs)
        return result.signals

    async def expect_pass(
        self, inputs: Mapping[str, Any], expected: Optional[Mapping[str, Any]] = None
    ) -> Dict[str, FieldValue]:
        try:
            signals = await self.compute(inputs)
        except WitnessError as e:
            raise ExpectationFailed(f"Expected witness calculation to pass: {e}") from e
        if expected is not None:
            problems = compare_signals(signals, expected, self.kit.config.prime)
            if problems:
                raise ExpectationFailed("Output mismatch: " + "; ".join(problems))
        return signals

    async def expect_output(
        self, inputs: Mapping[str, Any], expected: Mapping[str, Any]
    ) -> Dict[str, FieldValue]:
        return await self.expect_pass(inputs, expected)

    async def test_output(
        self, inputs: Mapping[str, Any], expected: Mapping[str, Any]
    ) -> WitnessTestResult:
        """Like ``expect_output`` but reports instead of raising."""
        prime = self.kit.config.prime
        want = {k: v.to_decimal() for k, v in flatten_signals(parse_signals(expected, prime)).items()}
        try:
            signals = await self.compute(inputs)
        except WitnessError as e:
            return WitnessTestResult(passed=False, outputs={}, expected=want, errors=[str(e)])
        problems = compare_signals(signals, expected, prime)
        return WitnessTestResult(
            passed=not problems,
            outputs={k: v.to_decimal() for k, v in signals.items()},
            expected=want,
            errors=problems,
        )

    async def expect_fail(self, inputs: Mapping[str, Any]) -> WitnessError:
        """Expect witness calculation to be rejected; returns the error."""
        try:
            await self.compute(inputs)
        except WitnessError as e:
            logger.debug("Witness rejected as expected: %s", e.message)
            return e
        raise ExpectationFailed("Expected witness calculation to fail, but it succeeded")

    async def expect_constraint_count(self, expected: int) -> None:
        info = await self.pipeline().info()
        if info.constraints != expected:
            raise ExpectationFailed(
                f"Expected {expected} constraints, circuit has {info.constraints}"
            )
