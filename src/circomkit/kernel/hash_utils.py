"""Hash utilities with explicit canonicalization rules for stable fingerprints.

This module provides canonicalization and hashing functions that guarantee
stable, deterministic output across machines, Python versions and paths.

Key rules:
- Object keys sorted recursively
- Arrays preserve order
- Floats BANNED (hard validation error)
- Strings normalized to NFC
- Non-JSON types forbidden
"""

import hashlib
import json
import unicodedata
from typing import Any, Iterable, Union

FINGERPRINT_FORMAT = "circomkit.fingerprint/1"


class CanonicalizationError(ValueError):
    """Raised when an object cannot be canonicalized."""
    pass


def _normalize_string(s: str) -> str:
    """Normalize string to NFC (Unicode Normalization Form Canonical Composition)."""
    return unicodedata.normalize('NFC', s)


def _canonicalize_value(obj: Any, path: str = "") -> Any:
    """Validate and canonicalize a single value.

    Raises CanonicalizationError if non-JSON types (or floats) are found.
    """
    if obj is None or isinstance(obj, bool):
        return obj
    elif isinstance(obj, int):
        return obj
    elif isinstance(obj, float):
        # BAN FLOATS - parameters and signals are integers
        raise CanonicalizationError(
            f"Floats are not allowed (at {path or '<root>'}). Use integers or decimal strings."
        )
    elif isinstance(obj, str):
        return _normalize_string(obj)
    elif isinstance(obj, dict):
        result = {}
        for key, value in obj.items():
            if not isinstance(key, str):
                raise CanonicalizationError(
                    f"Dictionary keys must be strings at {path or '<root>'}, got {type(key).__name__}"
                )
            result[_normalize_string(key)] = _canonicalize_value(
                value, f"{path}.{key}" if path else key
            )
        return result
    elif isinstance(obj, (list, tuple)):
        return [
            _canonicalize_value(item, f"{path}[{i}]" if path else f"[{i}]")
            for i, item in enumerate(obj)
        ]
    else:
        raise CanonicalizationError(
            f"Non-JSON type at {path or '<root>'}: {type(obj).__name__}. "
            f"Only None, bool, int, str, dict, and list are allowed."
        )


def canonicalize_json(obj: Any) -> str:
    """Canonicalize a JSON-serializable object to a stable string representation.

    Args:
        obj: The object to canonicalize (tuples are treated as lists)

    Returns:
        Canonical JSON string

    Raises:
        CanonicalizationError: If object contains floats or non-JSON types
    """
    canonicalized = _canonicalize_value(obj)
    return json.dumps(canonicalized, sort_keys=True, ensure_ascii=False, separators=(',', ':'))


def hash_bytes(content: Union[str, bytes]) -> str:
    """Compute SHA256 hash of raw content.

    Returns:
        SHA256 hash as hex string (prefixed with "sha256:")
    """
    if isinstance(content, str):
        content = content.encode('utf-8')
    return f"sha256:{hashlib.sha256(content).hexdigest()}"


def hash_canonical(obj: Any) -> str:
    """Compute SHA256 hash of the canonical JSON form of ``obj``."""
    return hash_bytes(canonicalize_json(obj))


def compute_fingerprint(
    source: bytes,
    template: str,
    params: Iterable[int],
    public: Iterable[str],
    prime: str,
    optimization: int,
) -> str:
    """Compute the build fingerprint of a circuit configuration.

    The source file contributes its bytes only (never its path). Parameters
    are rendered as decimal strings in declared order; the canonical JSON
    framing keeps ``[1, 23]`` and ``[12, 3]`` apart.

    Args:
        source: Circuit source file bytes
        template: Template name instantiated as the main component
        params: Template parameters in declared order
        public: Public input names in declared order
        prime: Prime identifier (e.g. "bn128")
        optimization: Compiler optimization level

    Returns:
        Fingerprint as hex string (prefixed with "sha256:")
    """
    body = {
        "format": FINGERPRINT_FORMAT,
        "source": hash_bytes(source),
        "template": template,
        "params": [str(int(p)) for p in params],
        "public": list(public),
        "prime": prime,
        "optimization": str(int(optimization)),
    }
    return hash_canonical(body)
