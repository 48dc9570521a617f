"""Durable artifact store keyed by build slot and fingerprint.

Layout under the build root::

    <root>/<circuit>/                       one slot per circuit name
    <root>/<circuit>/.circomkit-artifacts.json   marker: record + digest
    <root>/<circuit>/.staging-XXXX/         tool output before promotion

The marker is the only durable index. ``scan()`` rebuilds the in-memory
index (slot -> fingerprint) from markers, so circuits sharing a fingerprint
keep separate records. A marker whose digest does not match its content is
removed and treated as a miss. Files are pinned by size (and sha256 on a
deep lookup); a missing file drops only its own entry from the record that
``lookup`` returns.
"""

import asyncio
import hashlib
import json
import logging
import os
import shutil
import tempfile
from contextlib import asynccontextmanager, contextmanager
from pathlib import Path
from typing import AsyncIterator, Dict, Iterable, Iterator, List, Optional, Tuple, Union

from pydantic import ValidationError

from circomkit._internal.canonical_json import write_json_atomic
from circomkit.errors import CacheCorruption
from circomkit.kernel.artifacts import ArtifactRef, Artifacts
from circomkit.kernel.hash_utils import CanonicalizationError, hash_canonical

logger = logging.getLogger(__name__)

MARKER_NAME = ".circomkit-artifacts.json"
STAGING_PREFIX = ".staging-"
_CHUNK = 1 << 20


def sha256_file(path: Union[str, Path]) -> str:
    h = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(_CHUNK), b""):
            h.update(chunk)
    return f"sha256:{h.hexdigest()}"


def ref_for(path: Union[str, Path], relative: str) -> ArtifactRef:
    """Describe ``path`` as it will be known once promoted to ``relative``."""
    path = Path(path)
    return ArtifactRef(path=relative, size=path.stat().st_size, sha256=sha256_file(path))


class ArtifactStore:
    """Per-slot, fingerprint-checked records of build outputs under one build root."""

    def __init__(self, root: Union[str, Path]):
        self.root = Path(root)
        # slot name -> (fingerprint, sequence) of the record its marker holds
        self._index: Dict[str, Tuple[str, int]] = {}
        self._sequence = 0
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = {}
        self.scan()

    # ------------------------------------------------------------------
    # Index
    # ------------------------------------------------------------------

    def slot(self, name: str) -> Path:
        return self.root / name

    def scan(self) -> None:
        """Rebuild the index from the markers under the build root."""
        self._index.clear()
        if not self.root.is_dir():
            return
        for marker in sorted(self.root.glob(f"*/{MARKER_NAME}")):
            slot = marker.parent
            try:
                artifacts = self._read_marker(slot)
            except CacheCorruption as e:
                logger.warning("Discarding corrupt artifact record: %s", e)
                marker.unlink(missing_ok=True)
                continue
            self._sequence = max(self._sequence, artifacts.sequence)
            self._index[slot.name] = (artifacts.fingerprint, artifacts.sequence)
        logger.debug("Indexed %d artifact record(s) under %s", len(self._index), self.root)

    def slots(self) -> Dict[str, str]:
        """Map of slot name -> fingerprint of the record it holds."""
        return {slot: fp for slot, (fp, _) in self._index.items()}

    def _slots_for(self, fingerprint: str) -> List[str]:
        """Slots indexed under ``fingerprint``, newest record first."""
        found = [(seq, slot) for slot, (fp, seq) in self._index.items() if fp == fingerprint]
        return [slot for _, slot in sorted(found, reverse=True)]

    def _read_marker(self, slot: Path) -> Artifacts:
        path = slot / MARKER_NAME
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            raise
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            raise CacheCorruption(path, f"unreadable marker ({e})") from e

        if not isinstance(raw, dict) or not {"artifacts", "digest"} <= raw.keys():
            raise CacheCorruption(path, "marker lacks record or digest")
        try:
            digest = hash_canonical(raw["artifacts"])
        except CanonicalizationError as e:
            raise CacheCorruption(path, str(e)) from e
        if digest != raw["digest"]:
            raise CacheCorruption(path, "digest does not match record")
        try:
            artifacts = Artifacts.model_validate(raw["artifacts"])
        except ValidationError as e:
            raise CacheCorruption(path, f"invalid record ({e.error_count()} error(s))") from e
        if artifacts.circuit != slot.name:
            raise CacheCorruption(path, f"record names circuit '{artifacts.circuit}'")
        return artifacts.model_copy(update={"directory": str(slot)})

    def _discard_marker(self, slot: Path) -> None:
        (slot / MARKER_NAME).unlink(missing_ok=True)
        self._index.pop(slot.name, None)

    # ------------------------------------------------------------------
    # Records
    # ------------------------------------------------------------------

    def lookup(
        self,
        fingerprint: str,
        slot: Optional[str] = None,
        deep: bool = False,
        check_files: bool = True,
    ) -> Optional[Artifacts]:
        """Return the current record for ``fingerprint``, or None.

        With ``slot`` only that slot's record is considered; otherwise the
        newest slot holding ``fingerprint`` is used. Entries whose files are
        missing or changed size are left out of the returned record; with
        ``deep=True`` content hashes are checked too. ``check_files=False``
        returns the record as written.
        """
        candidates = [slot] if slot is not None else self._slots_for(fingerprint)
        for name in candidates:
            artifacts = self._read_current(fingerprint, name)
            if artifacts is not None:
                return artifacts if not check_files else self._prune(artifacts, deep)
        logger.debug("Cache miss for %s", fingerprint)
        return None

    def _read_current(self, fingerprint: str, name: str) -> Optional[Artifacts]:
        entry = self._index.get(name)
        if entry is None or entry[0] != fingerprint:
            return None
        slot = self.slot(name)
        try:
            artifacts = self._read_marker(slot)
        except FileNotFoundError:
            logger.info("Artifact record for %s disappeared from %s", fingerprint, slot)
            self._index.pop(name, None)
            return None
        except CacheCorruption as e:
            logger.warning("Discarding corrupt artifact record: %s", e)
            self._discard_marker(slot)
            return None

        self._index[name] = (artifacts.fingerprint, artifacts.sequence)
        if artifacts.fingerprint != fingerprint:
            logger.info("Slot %s now belongs to %s", name, artifacts.fingerprint)
            return None
        if artifacts.sequence < entry[1]:
            logger.warning("Stale artifact record for %s (sequence %d < %d)",
                           fingerprint, artifacts.sequence, entry[1])
            self._index[name] = entry
            return None
        self._sequence = max(self._sequence, artifacts.sequence)
        return artifacts

    def _intact(self, slot: Path, ref: ArtifactRef, deep: bool) -> bool:
        path = slot / ref.path
        try:
            if path.stat().st_size != ref.size:
                return False
        except OSError:
            return False
        return not deep or sha256_file(path) == ref.sha256

    def _prune(self, artifacts: Artifacts, deep: bool) -> Artifacts:
        slot = Path(artifacts.directory)
        files = {}
        for kind, ref in artifacts.files.items():
            if self._intact(slot, ref, deep):
                files[kind] = ref
            else:
                logger.info("Artifact %s of %s is missing or changed", kind.value, artifacts.circuit)
        witnesses = {
            digest: w for digest, w in artifacts.witnesses.items()
            if self._intact(slot, w.file, deep)
        }
        proofs = {
            digest: p for digest, p in artifacts.proofs.items()
            if self._intact(slot, p.proof, deep) and self._intact(slot, p.public, deep)
        }
        if (len(files), len(witnesses), len(proofs)) == (
            len(artifacts.files), len(artifacts.witnesses), len(artifacts.proofs)
        ):
            return artifacts
        return artifacts.model_copy(update={"files": files, "witnesses": witnesses, "proofs": proofs})

    def record(self, fingerprint: str, artifacts: Artifacts) -> Artifacts:
        """Persist ``artifacts`` as the latest record for ``fingerprint``.

        The record goes to the slot named by ``artifacts.circuit`` and its
        marker is replaced atomically. Whatever fingerprint owned that slot
        before is dropped from the index.
        """
        slot = self.slot(artifacts.circuit)
        self._sequence += 1
        payload = artifacts.payload()
        payload.update(fingerprint=fingerprint, sequence=self._sequence)
        recorded = Artifacts.model_validate(payload)
        payload = recorded.payload()
        write_json_atomic(slot / MARKER_NAME, {"artifacts": payload, "digest": hash_canonical(payload)})

        previous = self._index.get(slot.name)
        if previous is not None and previous[0] != fingerprint:
            logger.info("Fingerprint %s no longer owns slot %s", previous[0], slot.name)
        self._index[slot.name] = (fingerprint, recorded.sequence)
        logger.debug("Recorded %s for %s at sequence %d", slot.name, fingerprint, recorded.sequence)
        return recorded.model_copy(update={"directory": str(slot)})

    def invalidate(self, fingerprint: str, slot: Optional[str] = None) -> None:
        """Forget ``fingerprint`` (in ``slot`` only, if given).

        Markers are removed; files are left for ``clean``.
        """
        names = [slot] if slot is not None else self._slots_for(fingerprint)
        for name in names:
            entry = self._index.get(name)
            if entry is None or entry[0] != fingerprint:
                continue
            del self._index[name]
            path = self.slot(name)
            try:
                owner = self._read_marker(path).fingerprint
            except (FileNotFoundError, CacheCorruption):
                owner = fingerprint
            if owner == fingerprint:
                (path / MARKER_NAME).unlink(missing_ok=True)
            logger.info("Invalidated %s in %s", fingerprint, name)

    def is_current(self, artifacts: Artifacts) -> bool:
        return self._index.get(artifacts.circuit) == (artifacts.fingerprint, artifacts.sequence)

    def release_slot(self, slot: Path, keep: str, preserve: Iterable[Path] = ()) -> None:
        """Empty ``slot`` if it holds outputs of a fingerprint other than ``keep``.

        Paths in ``preserve`` (staging directories in use) are left alone.
        """
        try:
            owner = self._read_marker(slot).fingerprint
        except FileNotFoundError:
            owner = None
        except CacheCorruption as e:
            logger.warning("Discarding corrupt artifact record: %s", e)
            owner = ""
        if owner == keep:
            return
        if owner:
            logger.info("Replacing %s in slot %s", owner, slot.name)
        self._discard_marker(slot)
        keep_paths = {Path(p).resolve() for p in preserve}
        if not slot.is_dir():
            return
        for child in slot.iterdir():
            if child.resolve() in keep_paths or child.name.startswith(STAGING_PREFIX):
                continue
            if child.is_dir() and not child.is_symlink():
                shutil.rmtree(child)
            else:
                child.unlink()

    # ------------------------------------------------------------------
    # Concurrency
    # ------------------------------------------------------------------

    def _checkout(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._lock_users[key] = self._lock_users.get(key, 0) + 1
        return lock

    def _checkin(self, key: str) -> None:
        users = self._lock_users[key] - 1
        if users:
            self._lock_users[key] = users
        else:
            del self._lock_users[key]
            del self._locks[key]

    @asynccontextmanager
    async def acquire(self, fingerprint: str, slot: str) -> AsyncIterator[None]:
        """Serialize runs per slot and per fingerprint.

        Locks are always taken slot first, then fingerprint. They are
        released on success, failure and cancellation alike.
        """
        keys = (f"slot:{slot}", f"fingerprint:{fingerprint}")
        slot_lock, fp_lock = (self._checkout(k) for k in keys)
        try:
            async with slot_lock:
                async with fp_lock:
                    yield
        finally:
            for key in keys:
                self._checkin(key)

    # ------------------------------------------------------------------
    # Files
    # ------------------------------------------------------------------

    @contextmanager
    def staging(self, slot: Path) -> Iterator[Path]:
        """A scratch directory inside ``slot``, removed on exit."""
        slot.mkdir(parents=True, exist_ok=True)
        path = Path(tempfile.mkdtemp(dir=slot, prefix=STAGING_PREFIX))
        try:
            yield path
        finally:
            shutil.rmtree(path, ignore_errors=True)

    def promote(self, staged: Path, slot: Path, relative: str) -> Path:
        """Move a staged file or directory to ``slot/relative``, replacing what was there."""
        dest = slot / relative
        dest.parent.mkdir(parents=True, exist_ok=True)
        if dest.is_dir() and not dest.is_symlink():
            shutil.rmtree(dest)
        os.replace(staged, dest)
        return dest

    def clean(self, name: str) -> None:
        slot = self.slot(name)
        self._discard_marker(slot)
        if slot.exists():
            shutil.rmtree(slot)
            logger.info("Removed %s", slot)

    def clean_all(self) -> None:
        self._index.clear()
        if self.root.exists():
            shutil.rmtree(self.root)
            logger.info("Removed %s", self.root)
