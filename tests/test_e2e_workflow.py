"""
End-to-end runs of the lock -> scan -> diff -> promote pipeline.
"""

import hashlib
import os
import time

import pytest

from rotguard import check as check_mod
from rotguard.check import accept_scan, merge_generations, run_check
from rotguard.errors import LockContentionError, ManifestIOError
from rotguard.manifest import ManifestEntry, ManifestStore
from rotguard.utils import LOCK_NAME

DAY = 86400
WEEK = 7 * DAY


@pytest.fixture
def workspace(tmp_path, make_file):
    root = tmp_path / "data"
    var_dir = tmp_path / "var"
    var_dir.mkdir()
    make_file(root / "a", "x", age=10 * DAY)
    make_file(root / "b", "y", age=3600)
    return root, var_dir


def _sha(text):
    return hashlib.sha256(text.encode()).hexdigest()


def _path(root, name):
    return os.path.join(os.path.abspath(root), name)


def test_corruption_scenario(workspace):
    root, var_dir = workspace
    store = ManifestStore(var_dir)
    a_mtime = int(os.stat(root / "a").st_mtime)
    store.write("current", [ManifestEntry(_path(root, "a"), a_mtime, _sha("z"))])

    report = run_check(root, var_dir, WEEK, show_progress=False)

    assert [entry.path for entry in store.read("scan")] == [_path(root, "a")]
    assert [f.path for f in report.outcome.findings] == [_path(root, "a")]
    finding = report.outcome.findings[0]
    assert finding.baseline_checksum == _sha("z")
    assert finding.scan_checksum == _sha("x")
    assert report.had_baseline
    assert not report.promoted
    assert store.read("current")[0].checksum == _sha("z")
    assert not (var_dir / LOCK_NAME).exists()


def test_unchanged_tree_twice_is_clean(workspace):
    root, var_dir = workspace
    store = ManifestStore(var_dir)

    first = run_check(root, var_dir, WEEK, show_progress=False)
    assert first.outcome.clean
    assert not first.had_baseline
    assert first.promoted
    assert store.read("current") == store.read("scan")

    second = run_check(root, var_dir, WEEK, show_progress=False)
    assert second.outcome.clean
    assert second.had_baseline
    assert store.read("old") == store.read("current")


def test_touched_file_is_not_reported(workspace, make_file):
    root, var_dir = workspace
    run_check(root, var_dir, WEEK, show_progress=False)

    make_file(root / "a", "rewritten", age=9 * DAY)
    report = run_check(root, var_dir, WEEK, show_progress=False)

    assert report.outcome.clean


def test_silent_change_is_reported(workspace):
    root, var_dir = workspace
    run_check(root, var_dir, WEEK, show_progress=False)

    st = os.stat(root / "a")
    (root / "a").write_text("q")
    os.utime(root / "a", (st.st_atime, st.st_mtime))
    report = run_check(root, var_dir, WEEK, show_progress=False)

    assert report.outcome.mismatches == {_path(root, "a")}


def test_no_promote_keeps_baseline_absent(workspace):
    root, var_dir = workspace
    report = run_check(root, var_dir, WEEK, promote=False, show_progress=False)
    assert report.outcome.clean
    assert not report.promoted
    assert not ManifestStore(var_dir).exists("current")


def test_accept_promotes_after_findings(workspace):
    root, var_dir = workspace
    store = ManifestStore(var_dir)
    a_mtime = int(os.stat(root / "a").st_mtime)
    store.write("current", [ManifestEntry(_path(root, "a"), a_mtime, _sha("z"))])
    run_check(root, var_dir, WEEK, show_progress=False)

    accept_scan(var_dir)

    assert store.read("current")[0].checksum == _sha("x")
    assert store.read("old")[0].checksum == _sha("z")
    assert not (var_dir / LOCK_NAME).exists()


def test_fresh_lock_blocks_check(workspace):
    root, var_dir = workspace
    lock = var_dir / LOCK_NAME
    lock.write_text("999999\n")

    with pytest.raises(LockContentionError):
        run_check(root, var_dir, WEEK, show_progress=False)

    assert lock.read_text() == "999999\n"
    assert not ManifestStore(var_dir).exists("scan")


def test_stale_lock_is_reclaimed(workspace):
    root, var_dir = workspace
    lock = var_dir / LOCK_NAME
    lock.write_text("999999\n")
    stamp = time.time() - 1000
    os.utime(lock, (stamp, stamp))

    report = run_check(root, var_dir, WEEK, show_progress=False)

    assert report.outcome.clean
    assert not lock.exists()


def test_lock_released_when_scan_fails(workspace, monkeypatch):
    root, var_dir = workspace

    def broken(*args, **kwargs):
        raise ManifestIOError("disk full")

    monkeypatch.setattr(check_mod, "scan_path", broken)
    with pytest.raises(ManifestIOError):
        run_check(root, var_dir, WEEK, show_progress=False)
    assert not (var_dir / LOCK_NAME).exists()


def test_name_with_newline_does_not_break_check(workspace, make_file):
    root, var_dir = workspace
    make_file(root / "bad\nname", "n", age=10 * DAY)

    first = run_check(root, var_dir, WEEK, show_progress=False)
    second = run_check(root, var_dir, WEEK, show_progress=False)

    assert first.promoted and second.outcome.clean
    assert [w.path for w in second.scan.warnings] == [_path(root, "bad\nname")]
    assert [e.path for e in ManifestStore(var_dir).read("current")] == [_path(root, "a")]


def test_subtree_check_keeps_rest_of_baseline(tmp_path, make_file):
    root = tmp_path / "data"
    var_dir = tmp_path / "var"
    var_dir.mkdir()
    make_file(root / "a" / "f", "f", age=10 * DAY)
    make_file(root / "b" / "g", "g", age=10 * DAY)
    store = ManifestStore(var_dir)

    run_check(root, var_dir, WEEK, show_progress=False)
    report = run_check(root / "a", var_dir, WEEK, show_progress=False)

    assert report.promoted
    assert sorted(e.path for e in store.read("current")) == [
        _path(root, "a/f"), _path(root, "b/g"),
    ]
    assert [e.path for e in store.read("scan")] == [_path(root, "a/f")]


def test_merge_generations_drops_deleted_files(tmp_path):
    kept = tmp_path / "kept"
    kept.write_text("k")
    scan_entries = [ManifestEntry(str(tmp_path / "scanned"), 5, _sha("new"))]
    current_entries = [
        ManifestEntry(str(tmp_path / "scanned"), 5, _sha("old")),
        ManifestEntry(str(kept), 3, _sha("k")),
        ManifestEntry(str(tmp_path / "deleted"), 2, _sha("d")),
    ]

    merged = merge_generations(scan_entries, current_entries)

    assert merged == [
        ManifestEntry(str(tmp_path / "scanned"), 5, _sha("new")),
        ManifestEntry(str(kept), 3, _sha("k")),
    ]
