"""Build nested directory trees from flat manifest entries."""

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, Iterator, List, Tuple, Union

from rotguard.manifest import ManifestEntry

logger = logging.getLogger("rotguard.tree")

# Every absolute path hangs off this single key.
ROOT = "/"


@dataclass(frozen=True)
class Leaf:
    mtime: int
    checksum: str


Node = Union[Dict[str, "Node"], Leaf]


def split_path(path: str) -> List[str]:
    """'/a/b/c' -> ['/', 'a', 'b', 'c']"""
    return [ROOT] + [part for part in path.split("/") if part]


def join_segments(segments: List[str]) -> str:
    return "/" + "/".join(segments[1:])


def insert_entry(tree: dict, entry: ManifestEntry) -> bool:
    """
    Insert ENTRY into TREE in place.

    Returns False (and leaves TREE untouched) when the path collides with an
    existing node of the other kind.
    """
    segments = split_path(entry.path)
    if len(segments) < 2:
        logger.warning(f"⚠️ Skipping manifest entry without a file name: {entry.path!r}")
        return False

    node = tree
    for depth, name in enumerate(segments[:-1]):
        child = node.get(name)
        if child is None:
            child = node[name] = {}
        elif isinstance(child, Leaf):
            logger.warning(
                f"⚠️ Path collision: {join_segments(segments[:depth + 1])} is a file, "
                f"skipping {entry.path}"
            )
            return False
        node = child

    name = segments[-1]
    if isinstance(node.get(name), dict):
        logger.warning(f"⚠️ Path collision: {entry.path} is a directory, skipping file entry")
        return False
    node[name] = Leaf(mtime=entry.mtime, checksum=entry.checksum)
    return True


def build_tree(entries: Iterable[ManifestEntry]) -> dict:
    """Turn a flat sequence of entries into nested dicts rooted at ROOT."""
    tree: dict = {ROOT: {}}
    for entry in entries:
        insert_entry(tree, entry)
    return tree


def iter_leaves(tree: dict) -> Iterator[Tuple[str, Leaf]]:
    """Yield (path, Leaf) for every file in TREE, in sorted path order."""
    stack = [([name], tree[name]) for name in sorted(tree, reverse=True)]
    while stack:
        segments, node = stack.pop()
        if isinstance(node, Leaf):
            yield join_segments(segments), node
            continue
        for name in sorted(node, reverse=True):
            stack.append((segments + [name], node[name]))
