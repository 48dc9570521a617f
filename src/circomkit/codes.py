"""Code constants shared by errors, the pipeline and the CLI.

These constants prevent stringly-typed stage names and error codes and ensure
client code matches on the values the pipeline actually emits.
"""

from enum import Enum


class Stage(str, Enum):
    """One transition of the build/test pipeline."""

    COMPILE = "compile"
    WITNESS = "witness"
    SETUP = "setup"
    PROVE = "prove"
    VERIFY = "verify"


class ErrorCode(str, Enum):
    """Stable error codes carried by every CircomkitError."""

    INTERNAL = "INTERNAL"
    INVALID_CONFIG = "INVALID_CONFIG"
    INVALID_SIGNALS = "INVALID_SIGNALS"

    # Field model
    FIELD_MISMATCH = "FIELD_MISMATCH"

    # Fingerprinting and cache
    SOURCE_UNREADABLE = "SOURCE_UNREADABLE"
    FINGERPRINT_CHANGED = "FINGERPRINT_CHANGED"
    CACHE_CORRUPTION = "CACHE_CORRUPTION"
    BINARY_FORMAT = "BINARY_FORMAT"

    # Pipeline stages (one per stage)
    COMPILATION_ERROR = "COMPILATION_ERROR"
    WITNESS_ERROR = "WITNESS_ERROR"
    SETUP_ERROR = "SETUP_ERROR"
    PROVE_ERROR = "PROVE_ERROR"
    VERIFY_ERROR = "VERIFY_ERROR"
    INVALID_TRANSITION = "INVALID_TRANSITION"
    TOOL_NOT_FOUND = "TOOL_NOT_FOUND"

    # Trusted setup files
    PTAU_INTEGRITY_FAILURE = "PTAU_INTEGRITY_FAILURE"
    PTAU_DOWNLOAD_ERROR = "PTAU_DOWNLOAD_ERROR"
    PTAU_UNAVAILABLE = "PTAU_UNAVAILABLE"

    # Test harness
    EXPECTATION_FAILED = "EXPECTATION_FAILED"
