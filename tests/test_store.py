"""Tests for the fingerprint-keyed artifact store."""

import asyncio
import json

import pytest

from circomkit._internal.store import MARKER_NAME, STAGING_PREFIX, ArtifactStore, ref_for, sha256_file
from circomkit.kernel.artifacts import ArtifactKind, Artifacts, ProofRecord, WitnessRecord
from circomkit.kernel.hash_utils import hash_bytes

FP_A = hash_bytes(b"a")
FP_B = hash_bytes(b"b")


def _write(slot, relative, content=b"data"):
    path = slot / relative
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(content)
    return path


def _record(store, fp, circuit="mul", **files):
    slot = store.slot(circuit)
    refs = {}
    for kind, (relative, content) in files.items():
        refs[ArtifactKind(kind)] = ref_for(_write(slot, relative, content), relative)
    return store.record(fp, Artifacts(fingerprint=fp, circuit=circuit, files=refs))


@pytest.fixture
def store(tmp_path):
    return ArtifactStore(tmp_path / "build")


def test_sha256_file_is_prefixed(tmp_path):
    path = _write(tmp_path, "x", b"abc")
    assert sha256_file(path) == hash_bytes(b"abc")


def test_lookup_miss(store):
    assert store.lookup(FP_A) is None


def test_record_and_lookup(store):
    recorded = _record(store, FP_A, r1cs=("mul.r1cs", b"r1cs"))
    assert recorded.sequence == 1
    found = store.lookup(FP_A)
    assert found is not None
    assert found.fingerprint == FP_A
    assert found.has(ArtifactKind.R1CS)
    assert found.directory == str(store.slot("mul"))
    assert store.is_current(found)


def test_sequence_increases(store):
    first = _record(store, FP_A, r1cs=("mul.r1cs", b"1"))
    second = _record(store, FP_A, r1cs=("mul.r1cs", b"2"))
    assert second.sequence > first.sequence
    assert not store.is_current(first)
    assert store.is_current(second)


def test_records_survive_restart(store):
    _record(store, FP_A, r1cs=("mul.r1cs", b"r1cs"))
    reopened = ArtifactStore(store.root)
    assert reopened.slots() == {"mul": FP_A}
    assert reopened.lookup(FP_A).has(ArtifactKind.R1CS)
    assert _record(reopened, FP_A).sequence == 2


def test_marker_holds_digest(store):
    _record(store, FP_A)
    raw = json.loads((store.slot("mul") / MARKER_NAME).read_text(encoding="utf-8"))
    assert set(raw) == {"artifacts", "digest"}
    assert "directory" not in raw["artifacts"]


def test_corrupt_marker_is_a_miss(store):
    _record(store, FP_A, r1cs=("mul.r1cs", b"r1cs"))
    marker = store.slot("mul") / MARKER_NAME
    raw = json.loads(marker.read_text(encoding="utf-8"))
    raw["artifacts"]["circuit"] = "other"
    marker.write_text(json.dumps(raw), encoding="utf-8")
    assert store.lookup(FP_A) is None
    assert not marker.exists()


def test_garbage_marker_discarded_on_scan(store):
    _record(store, FP_A)
    (store.slot("mul") / MARKER_NAME).write_text("{truncated", encoding="utf-8")
    reopened = ArtifactStore(store.root)
    assert reopened.slots() == {}
    assert not (store.slot("mul") / MARKER_NAME).exists()


def test_missing_file_drops_only_its_entry(store):
    _record(store, FP_A, r1cs=("mul.r1cs", b"r1cs"), wasm=("mul_js/mul.wasm", b"wasm"))
    (store.slot("mul") / "mul_js" / "mul.wasm").unlink()
    found = store.lookup(FP_A)
    assert found.has(ArtifactKind.R1CS)
    assert not found.has(ArtifactKind.WASM)
    assert store.lookup(FP_A, check_files=False).has(ArtifactKind.WASM)


def test_size_change_detected(store):
    _record(store, FP_A, r1cs=("mul.r1cs", b"r1cs"))
    (store.slot("mul") / "mul.r1cs").write_bytes(b"longer content")
    assert not store.lookup(FP_A).has(ArtifactKind.R1CS)


def test_deep_lookup_checks_content(store):
    _record(store, FP_A, r1cs=("mul.r1cs", b"aaaa"))
    (store.slot("mul") / "mul.r1cs").write_bytes(b"bbbb")
    assert store.lookup(FP_A).has(ArtifactKind.R1CS)
    assert not store.lookup(FP_A, deep=True).has(ArtifactKind.R1CS)


def test_missing_witness_and_proof_pruned(store):
    slot = store.slot("mul")
    w = ref_for(_write(slot, "witness-1.wtns"), "witness-1.wtns")
    p = ref_for(_write(slot, "proof-1.json"), "proof-1.json")
    pub = ref_for(_write(slot, "public-1.json"), "public-1.json")
    store.record(FP_A, Artifacts(
        fingerprint=FP_A,
        circuit="mul",
        witnesses={"d": WitnessRecord(file=w)},
        proofs={"d": ProofRecord(protocol="groth16", proof=p, public=pub)},
    ))
    (slot / "public-1.json").unlink()
    found = store.lookup(FP_A)
    assert "d" in found.witnesses
    assert found.proofs == {}


def test_new_fingerprint_takes_over_slot(store):
    _record(store, FP_A)
    _record(store, FP_B)
    assert store.slots() == {"mul": FP_B}
    assert store.lookup(FP_A) is None
    assert store.lookup(FP_B) is not None


def test_same_fingerprint_in_two_slots(store):
    _record(store, FP_A, circuit="one", r1cs=("one.r1cs", b"1"))
    _record(store, FP_A, circuit="two", r1cs=("two.r1cs", b"2"))
    assert store.slots() == {"one": FP_A, "two": FP_A}
    one = store.lookup(FP_A, "one")
    assert one.circuit == "one"
    assert one.directory == str(store.slot("one"))
    assert one.path(ArtifactKind.R1CS) == "one.r1cs"
    assert store.lookup(FP_A, "two").circuit == "two"
    assert store.lookup(FP_A).circuit == "two"
    assert store.lookup(FP_A, "three") is None
    assert store.is_current(one)

    store.invalidate(FP_A, "one")
    assert store.lookup(FP_A, "one") is None
    assert store.slots() == {"two": FP_A}
    assert ArtifactStore(store.root).slots() == {"two": FP_A}


def test_lookup_notices_slot_reused_by_other_store(store):
    _record(store, FP_A)
    other = ArtifactStore(store.root)
    _record(other, FP_B)
    assert store.lookup(FP_A) is None
    assert store.slots() == {"mul": FP_B}


def test_invalidate(store):
    _record(store, FP_A, r1cs=("mul.r1cs", b"r1cs"))
    store.invalidate(FP_A)
    assert store.lookup(FP_A) is None
    assert not (store.slot("mul") / MARKER_NAME).exists()
    assert (store.slot("mul") / "mul.r1cs").exists()
    store.invalidate(FP_A)


def test_release_slot_empties_foreign_outputs(store):
    _record(store, FP_A, r1cs=("mul.r1cs", b"r1cs"))
    slot = store.slot("mul")
    with store.staging(slot) as staged:
        store.release_slot(slot, keep=FP_B, preserve=[staged])
        assert staged.exists()
        assert sorted(p.name for p in slot.iterdir()) == [staged.name]
    assert store.slots() == {}


def test_release_slot_keeps_own_outputs(store):
    _record(store, FP_A, r1cs=("mul.r1cs", b"r1cs"))
    slot = store.slot("mul")
    store.release_slot(slot, keep=FP_A)
    assert (slot / "mul.r1cs").exists()
    assert store.lookup(FP_A) is not None


def test_staging_removed_on_error(store):
    slot = store.slot("mul")
    with pytest.raises(RuntimeError):
        with store.staging(slot) as staged:
            (staged / "partial").write_bytes(b"x")
            raise RuntimeError("tool crashed")
    assert not staged.exists()
    assert not any(p.name.startswith(STAGING_PREFIX) for p in slot.iterdir())


def test_promote_replaces_directory(store):
    slot = store.slot("mul")
    _write(slot, "mul_js/old.wasm")
    with store.staging(slot) as staged:
        _write(staged, "mul_js/new.wasm")
        store.promote(staged / "mul_js", slot, "mul_js")
    assert [p.name for p in (slot / "mul_js").iterdir()] == ["new.wasm"]


def test_clean(store):
    _record(store, FP_A, r1cs=("mul.r1cs", b"r1cs"))
    _record(store, FP_B, circuit="add")
    store.clean("mul")
    assert not store.slot("mul").exists()
    assert store.slots() == {"add": FP_B}
    store.clean("never-built")
    store.clean_all()
    assert not store.root.exists()
    assert store.slots() == {}


def test_acquire_serializes_same_slot(store):
    events = []

    async def job(name, fp):
        async with store.acquire(fp, "mul"):
            events.append(f"{name}-start")
            await asyncio.sleep(0.01)
            events.append(f"{name}-end")

    async def main():
        await asyncio.gather(job("a", FP_A), job("b", FP_B))

    asyncio.run(main())
    assert events == ["a-start", "a-end", "b-start", "b-end"]
    assert store._locks == {}


def test_acquire_allows_different_slots(store):
    events = []

    async def job(name, fp, slot):
        async with store.acquire(fp, slot):
            events.append(f"{name}-start")
            await asyncio.sleep(0.01)
            events.append(f"{name}-end")

    async def main():
        await asyncio.gather(job("a", FP_A, "one"), job("b", FP_B, "two"))

    asyncio.run(main())
    assert events[:2] == ["a-start", "b-start"]


def test_acquire_released_on_cancellation(store):
    async def main():
        entered = asyncio.Event()

        async def hold():
            async with store.acquire(FP_A, "mul"):
                entered.set()
                await asyncio.sleep(10)

        task = asyncio.create_task(hold())
        await entered.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        async with store.acquire(FP_A, "mul"):
            return True

    assert asyncio.run(main())
    assert store._locks == {}
