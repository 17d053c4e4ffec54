"""
diff.py — Compare a fresh scan tree against the accepted baseline

A file is corrupt when its mtime is unchanged but its checksum is not.
A changed mtime is treated as a legitimate write and never reported.
"""

import copy
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Set

from rotguard.tree import ROOT, Leaf, join_segments

logger = logging.getLogger("rotguard.diff")


@dataclass(frozen=True)
class CorruptionFinding:
    path: str
    mtime: int
    baseline_checksum: str
    scan_checksum: str


@dataclass
class CompareResult:
    findings: List[CorruptionFinding] = field(default_factory=list)
    pruned: Set[str] = field(default_factory=set)
    collisions: List[str] = field(default_factory=list)

    @property
    def clean(self) -> bool:
        return not self.findings

    @property
    def mismatches(self) -> Set[str]:
        return {finding.path for finding in self.findings}


def _compare_level(scan_node: dict, current_node: Optional[dict], segments: List[str],
                   result: CompareResult) -> None:
    directories = set()

    for name in sorted(scan_node):
        child = scan_node[name]
        if not isinstance(child, dict):
            continue
        child_segments = segments + [name]
        current_child = current_node.get(name) if current_node is not None else None
        if isinstance(current_child, Leaf):
            path = join_segments(child_segments)
            logger.warning(f"⚠️ {path} is a directory in the scan but a file in the baseline; skipping")
            result.collisions.append(path)
            directories.add(name)
            continue

        _compare_level(child, current_child, child_segments, result)

        directories.add(name)
        if name == ROOT and not segments:
            continue
        result.pruned.add(join_segments(child_segments))
        if current_node is not None:
            current_node.pop(name, None)

    for name in sorted(scan_node):
        leaf = scan_node[name]
        if name in directories or isinstance(leaf, dict):
            continue
        base = current_node.get(name) if current_node is not None else None
        if base is None:
            continue
        path = join_segments(segments + [name])
        if isinstance(base, dict):
            logger.warning(f"⚠️ {path} is a file in the scan but a directory in the baseline; skipping")
            result.collisions.append(path)
            continue
        if base.mtime != leaf.mtime:
            continue
        if base.checksum != leaf.checksum:
            result.findings.append(CorruptionFinding(
                path=path,
                mtime=leaf.mtime,
                baseline_checksum=base.checksum,
                scan_checksum=leaf.checksum,
            ))


def compare(scan_tree: dict, current_tree: dict) -> CompareResult:
    """
    Walk SCAN_TREE and CURRENT_TREE together, depth first.

    CURRENT_TREE is not modified: the walk prunes a private copy, and every
    directory it supersedes (all but the root) is listed in ``pruned``.
    """
    result = CompareResult()
    _compare_level(scan_tree, copy.deepcopy(current_tree), [], result)
    result.findings.sort(key=lambda finding: finding.path)
    return result
