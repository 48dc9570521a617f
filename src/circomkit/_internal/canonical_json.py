"""Centralized canonical JSON serialization.

This module provides the byte-stable JSON used for slot markers, witness
inputs and public signal files, so that digests recorded on one platform
match the bytes read back on another.
"""

import json
import os
import tempfile
from pathlib import Path
from typing import Any, Union


def canonical_dumps(obj: Any) -> str:
    """
    Canonical JSON serialization for byte-stable records.

    Rules:
    - UTF-8 encoding
    - Sorted keys
    - Stable separators (",", ":")
    - Deterministic list ordering (lists must already be ordered before calling)
    - No trailing whitespace

    Args:
        obj: Python object to serialize

    Returns:
        Canonical JSON string (UTF-8 encoded)
    """
    return json.dumps(
        obj,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False  # UTF-8 encoding
    )


def write_json_atomic(path: Union[str, Path], obj: Any) -> Path:
    """Write ``obj`` as canonical JSON; readers see either the old or the new file."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(canonical_dumps(obj))
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise
    return path
