"""Exception hierarchy for circomkit.

Every error carries a stable ``code`` (see ``circomkit.codes.ErrorCode``).
Stage errors additionally carry the external tool's diagnostic text verbatim;
it is reported, never parsed.
"""

from typing import Optional, Sequence

from circomkit.codes import ErrorCode, Stage


class CircomkitError(Exception):
    """Base class for all circomkit errors."""

    code: ErrorCode = ErrorCode.INTERNAL


class InvalidConfig(CircomkitError, ValueError):
    """Configuration file or builder value is invalid."""

    code = ErrorCode.INVALID_CONFIG


class InvalidSignals(CircomkitError, ValueError):
    """A signal map contains a value that is not a field element."""

    code = ErrorCode.INVALID_SIGNALS


class FieldMismatch(CircomkitError, ValueError):
    """Two field values (or a value and an artifact) live under different primes."""

    code = ErrorCode.FIELD_MISMATCH

    def __init__(self, left, right):
        self.left = left
        self.right = right
        super().__init__(f"Field mismatch: {left} vs {right}")


class SourceUnreadable(CircomkitError):
    """The circuit source file could not be read for fingerprinting."""

    code = ErrorCode.SOURCE_UNREADABLE

    def __init__(self, path, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Circuit source unreadable: {path} ({reason})")


class FingerprintChanged(CircomkitError):
    """The circuit source changed while a pipeline run was in progress."""

    code = ErrorCode.FINGERPRINT_CHANGED


class CacheCorruption(CircomkitError):
    """An on-disk record does not match its own fingerprint marker."""

    code = ErrorCode.CACHE_CORRUPTION

    def __init__(self, path, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Cache corruption at {path}: {reason}")


class BinaryFormatError(CircomkitError, ValueError):
    """An r1cs, wtns or ptau container is malformed or truncated."""

    code = ErrorCode.BINARY_FORMAT


class ToolNotFound(CircomkitError):
    """An external tool is not installed or not on PATH."""

    code = ErrorCode.TOOL_NOT_FOUND

    def __init__(self, tool: str):
        self.tool = tool
        super().__init__(f"External tool not found: {tool}. Please ensure it is installed and in PATH")


class StageError(CircomkitError):
    """A pipeline stage failed.

    Attributes:
        stage: The stage that failed
        diagnostic: Raw stderr (or stdout) of the external tool, verbatim
        command: The argv that was executed, if any
        exit_code: Exit status of the external tool, if it ran
    """

    stage: Stage

    def __init__(
        self,
        message: str,
        diagnostic: str = "",
        command: Optional[Sequence[str]] = None,
        exit_code: Optional[int] = None,
    ):
        self.message = message
        self.diagnostic = diagnostic
        self.command = list(command) if command else None
        self.exit_code = exit_code
        text = message
        if diagnostic:
            text = f"{message}\n{diagnostic}"
        super().__init__(text)


class CompilationError(StageError):
    code = ErrorCode.COMPILATION_ERROR
    stage = Stage.COMPILE


class WitnessError(StageError):
    code = ErrorCode.WITNESS_ERROR
    stage = Stage.WITNESS


class SetupError(StageError):
    code = ErrorCode.SETUP_ERROR
    stage = Stage.SETUP


class ProveError(StageError):
    code = ErrorCode.PROVE_ERROR
    stage = Stage.PROVE


class VerifyError(StageError):
    code = ErrorCode.VERIFY_ERROR
    stage = Stage.VERIFY


STAGE_ERRORS = {
    Stage.COMPILE: CompilationError,
    Stage.WITNESS: WitnessError,
    Stage.SETUP: SetupError,
    Stage.PROVE: ProveError,
    Stage.VERIFY: VerifyError,
}


class InvalidTransition(CircomkitError):
    """A stage was requested from a state that does not allow it."""

    code = ErrorCode.INVALID_TRANSITION


class PtauIntegrityFailure(CircomkitError):
    """A PTAU file failed length, header or checksum verification."""

    code = ErrorCode.PTAU_INTEGRITY_FAILURE


class PtauDownloadError(CircomkitError):
    """A PTAU transfer failed or timed out."""

    code = ErrorCode.PTAU_DOWNLOAD_ERROR


class PtauUnavailable(CircomkitError):
    """No published ceremony file is large enough for the circuit."""

    code = ErrorCode.PTAU_UNAVAILABLE


class ExpectationFailed(CircomkitError, AssertionError):
    """A test harness expectation did not hold."""

    code = ErrorCode.EXPECTATION_FAILED
