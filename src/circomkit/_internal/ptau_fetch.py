"""Download and verification of powers-of-tau files.

A resolved file is accepted when its header reports the requested power and
its blake2b-512 digest matches the published checksum, or, when none is
published, the digest recorded in ``<file>.b2sum`` at download time.
"""

import hashlib
import json
import logging
import os
import threading
import time
from pathlib import Path
from typing import Dict, List, Optional, Union
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from circomkit.errors import BinaryFormatError, PtauDownloadError, PtauIntegrityFailure
from circomkit.kernel.binfmt import read_ptau_header
from circomkit.kernel.ptau import PtauInfo

logger = logging.getLogger(__name__)

SIDECAR_SUFFIX = ".b2sum"
PART_SUFFIX = ".part"
USER_AGENT = "circomkit-ptau/1.0"
HEADER_PREFIX = 4096
_CHUNK = 1 << 20


def blake2b_file(path: Union[str, Path]) -> str:
    h = hashlib.blake2b(digest_size=64)
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(_CHUNK), b""):
            h.update(chunk)
    return h.hexdigest()


def _read_prefix(path: Path, n: int = HEADER_PREFIX) -> bytes:
    with open(path, "rb") as f:
        return f.read(n)


def write_checksum_record(path: Union[str, Path], digest: Optional[str] = None) -> str:
    """Record size, mtime and blake2b of ``path`` in its ``.b2sum`` sidecar."""
    path = Path(path)
    digest = digest or blake2b_file(path)
    stat = path.stat()
    record = {"size": stat.st_size, "mtime_ns": stat.st_mtime_ns, "blake2b": digest}
    Path(f"{path}{SIDECAR_SUFFIX}").write_text(json.dumps(record, sort_keys=True), encoding="utf-8")
    return digest


def _content_length(header: Optional[str], info: PtauInfo) -> Optional[int]:
    """Declared transfer length; a missing or malformed header means unknown."""
    if not header:
        return info.size
    try:
        length = int(header)
    except ValueError:
        logger.warning("Ignoring malformed Content-Length %r for %s", header, info.filename)
        return info.size
    return length if length >= 0 else info.size


def list_ptau_files(directory: Union[str, Path]) -> List[Path]:
    """Completed ``.ptau`` files in ``directory``, sorted by name."""
    directory = Path(directory)
    if not directory.is_dir():
        return []
    return sorted(p for p in directory.glob("*.ptau") if p.is_file())


class PtauResolver:
    """Resolves PtauInfo to a verified local file, downloading when needed.

    Args:
        timeout: Upper bound in seconds for one whole transfer
        retries: Attempts per resolve before giving up
        backoff: Base delay in seconds; attempt ``n`` waits ``backoff * 2**(n-1)``
    """

    def __init__(self, timeout: float = 600, retries: int = 3, backoff: float = 1.0):
        self.timeout = timeout
        self.retries = max(1, retries)
        self.backoff = backoff
        self._guard = threading.Lock()
        self._file_locks: Dict[Path, threading.Lock] = {}

    def _lock_for(self, path: Path) -> threading.Lock:
        with self._guard:
            lock = self._file_locks.get(path)
            if lock is None:
                lock = self._file_locks[path] = threading.Lock()
            return lock

    def resolve(self, info: PtauInfo, directory: Union[str, Path]) -> Path:
        """Return the path of a verified copy of ``info`` inside ``directory``."""
        directory = Path(directory)
        target = (directory / info.filename).resolve()
        with self._lock_for(target):
            if target.exists():
                problem = self._check_existing(target, info)
                if problem is None:
                    logger.debug("Using cached %s", target)
                    return target
                logger.warning("Re-downloading %s: %s", target.name, problem)
                target.unlink()
                Path(f"{target}{SIDECAR_SUFFIX}").unlink(missing_ok=True)
            directory.mkdir(parents=True, exist_ok=True)
            return self._download(info, target)

    # ------------------------------------------------------------------

    def _check_header(self, path: Path, info: PtauInfo) -> Optional[str]:
        try:
            _, power, _ = read_ptau_header(_read_prefix(path))
        except BinaryFormatError as e:
            return f"invalid header ({e})"
        if power != info.power:
            return f"header power {power}, expected {info.power}"
        return None

    def _check_existing(self, path: Path, info: PtauInfo) -> Optional[str]:
        """Return a description of what is wrong with ``path``, or None if it is usable."""
        size = path.stat().st_size
        if info.size is not None and size != info.size:
            return f"size {size}, expected {info.size}"
        problem = self._check_header(path, info)
        if problem:
            return problem
        if info.checksum:
            digest = blake2b_file(path)
            if digest != info.checksum.lower():
                return "checksum mismatch"
            return None
        return self._check_sidecar(path)

    def _check_sidecar(self, path: Path) -> Optional[str]:
        sidecar = Path(f"{path}{SIDECAR_SUFFIX}")
        try:
            recorded = json.loads(sidecar.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return "no recorded checksum"
        except (OSError, ValueError) as e:
            return f"unreadable checksum record ({e})"
        stat = path.stat()
        if recorded.get("size") != stat.st_size:
            return "size differs from recorded download"
        if recorded.get("mtime_ns") == stat.st_mtime_ns:
            return None
        if blake2b_file(path) != recorded.get("blake2b"):
            return "checksum differs from recorded download"
        return None

    def _download(self, info: PtauInfo, target: Path) -> Path:
        part = Path(f"{target}{PART_SUFFIX}")
        if not info.checksum:
            logger.warning("No published checksum for %s; accepting it on header and length", info.filename)
        attempt = 0
        while True:
            attempt += 1
            try:
                digest = self._transfer(info, part)
                problem = self._check_header(part, info)
                if problem:
                    raise PtauIntegrityFailure(f"{info.filename}: {problem}")
                if info.checksum and digest != info.checksum.lower():
                    raise PtauIntegrityFailure(f"{info.filename}: checksum mismatch")
                os.replace(part, target)
                write_checksum_record(target, digest)
                logger.info("Downloaded %s (%d bytes)", target, target.stat().st_size)
                return target
            except (PtauIntegrityFailure, PtauDownloadError) as e:
                logger.warning("PTAU attempt %d/%d failed: %s", attempt, self.retries, e)
                if attempt >= self.retries:
                    raise
                time.sleep(self.backoff * 2 ** (attempt - 1))
            finally:
                part.unlink(missing_ok=True)

    def _transfer(self, info: PtauInfo, part: Path) -> str:
        """Stream ``info.url`` into ``part``; returns the blake2b digest of what was written."""
        logger.info("Downloading %s", info.url)
        deadline = time.monotonic() + self.timeout
        h = hashlib.blake2b(digest_size=64)
        written = 0
        try:
            request = Request(info.url, headers={"User-Agent": USER_AGENT})
            with urlopen(request, timeout=self.timeout) as resp, open(part, "wb") as out:
                expected = _content_length(resp.headers.get("Content-Length"), info)
                while True:
                    if time.monotonic() > deadline:
                        raise PtauDownloadError(f"{info.filename}: timed out after {self.timeout}s")
                    chunk = resp.read(_CHUNK)
                    if not chunk:
                        break
                    out.write(chunk)
                    h.update(chunk)
                    written += len(chunk)
        except (HTTPError, URLError, TimeoutError, OSError) as e:
            raise PtauDownloadError(f"{info.filename}: {e}") from e

        if expected is not None and written != expected:
            raise PtauIntegrityFailure(f"{info.filename}: received {written} bytes, expected {expected}")
        if info.size is not None and written != info.size:
            raise PtauIntegrityFailure(f"{info.filename}: received {written} bytes, expected {info.size}")
        return h.hexdigest()
