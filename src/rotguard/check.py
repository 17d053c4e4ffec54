# src/rotguard/check.py
# Lock -> walk -> diff -> promote -> unlock

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from rotguard.diff import CompareResult, compare
from rotguard.errors import LockIOError, ManifestIOError
from rotguard.lock import LockManager
from rotguard.manifest import ManifestEntry, ManifestStore
from rotguard.scan import ScanResult, scan_path
from rotguard.tree import build_tree
from rotguard.utils import LOCK_NAME

logger = logging.getLogger("rotguard.check")


@dataclass
class CheckReport:
    root: Path
    var_dir: Path
    age_seconds: int
    scan: ScanResult
    outcome: CompareResult
    had_baseline: bool
    promoted: bool = False


def _release_quietly(manager: LockManager, handle) -> None:
    # used while another error is already propagating
    try:
        manager.release(handle)
    except LockIOError as e:
        logger.error(f"❌ {e}")


def merge_generations(scan_entries: List[ManifestEntry],
                      current_entries: List[ManifestEntry]) -> List[ManifestEntry]:
    """
    Scan entries plus every baseline entry the scan did not reach.

    A baseline file is carried forward only while something still exists at
    its path: outside the scanned root, too recent this time, unreadable, or
    under a directory that could not be listed. Deleted files drop out.
    """
    seen = {entry.path for entry in scan_entries}
    carried = [
        entry for entry in current_entries
        if entry.path not in seen and os.path.lexists(entry.path)
    ]
    return list(scan_entries) + carried


def _promote(store: ManifestStore, scan_entries=None, current_entries=None) -> int:
    """Write the merged result to 'new' and make it the baseline."""
    if scan_entries is None:
        scan_entries = store.read("scan")
    if current_entries is None:
        current_entries = store.read("current")
    count = store.write("new", merge_generations(scan_entries, current_entries))
    store.rotate(source="new")
    return count


def run_check(root: Path, var_dir: Path, age_seconds: int, promote: bool = True,
              show_progress: Optional[bool] = None, lock_manager: Optional[LockManager] = None,
              now: Optional[float] = None) -> CheckReport:
    """
    Run one guarded scan of ROOT and compare it against the stored baseline.

    The lock is taken before anything is read and released before the
    report is returned. When the compare is clean and PROMOTE is set, the
    scan merged with the baseline entries it did not reach becomes the new
    'current' generation and the previous one is kept as 'old'.
    """
    var_dir = Path(var_dir)
    store = ManifestStore(var_dir)
    manager = lock_manager or LockManager(var_dir / LOCK_NAME)

    handle = manager.acquire()
    try:
        had_baseline = store.exists("current")
        scan_result = scan_path(root, age_seconds, store, now=now, show_progress=show_progress)
        scan_entries = store.read("scan")
        current_entries = store.read("current")
        scan_tree = build_tree(scan_entries)
        current_tree = build_tree(current_entries)
        outcome = compare(scan_tree, current_tree)

        report = CheckReport(
            root=Path(root),
            var_dir=var_dir,
            age_seconds=age_seconds,
            scan=scan_result,
            outcome=outcome,
            had_baseline=had_baseline,
        )
        if promote and outcome.clean:
            _promote(store, scan_entries, current_entries)
            report.promoted = True
        elif not outcome.clean:
            logger.warning(
                f"⚠️ {len(outcome.findings)} mismatch(es); baseline left unchanged "
                f"(run 'rotguard accept' after review)"
            )
    except BaseException:
        _release_quietly(manager, handle)
        raise
    manager.release(handle)
    return report


def accept_scan(var_dir: Path, lock_manager: Optional[LockManager] = None) -> None:
    """Promote the last scan (merged with the baseline) regardless of findings."""
    var_dir = Path(var_dir)
    store = ManifestStore(var_dir)
    manager = lock_manager or LockManager(var_dir / LOCK_NAME)
    with manager.acquire():
        if not store.exists("scan"):
            raise ManifestIOError(f"No scan manifest to promote: {store.path_for('scan')}")
        _promote(store)
