"""Scanners over the files of git trees and the changes between them."""

from __future__ import annotations

import hashlib
import logging
import re
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass

from lookout.data import Change, File, FnScanner

logger = logging.getLogger(__name__)

MODE_DIR = 0o040000
MODE_REGULAR = 0o100644
MODE_DEPRECATED = 0o100664
MODE_EXECUTABLE = 0o100755
MODE_SYMLINK = 0o120000
MODE_SUBMODULE = 0o160000

_FILE_MODES = frozenset({MODE_REGULAR, MODE_DEPRECATED, MODE_EXECUTABLE, MODE_SYMLINK})


def _blob_hash(content: bytes) -> str:
    header = f"blob {len(content)}\0".encode()
    return hashlib.sha1(header + content).hexdigest()


@dataclass(frozen=True)
class TreeEntry:
    """An entry of a tree: a path, its mode, its contents and its blob hash.

    The hash of a file entry defaults to the git blob hash of its contents.
    """

    path: str
    content: bytes = b""
    mode: int = MODE_REGULAR
    hash: str = ""

    def __post_init__(self) -> None:
        if not self.hash and self.is_file:
            object.__setattr__(self, "hash", _blob_hash(self.content))

    @property
    def is_file(self) -> bool:
        return self.mode in _FILE_MODES


class Tree:
    """A snapshot of a repository's files keyed by their full path.

    ``entries`` is an iterable of TreeEntry, or a mapping of path to contents.
    """

    def __init__(self, entries: Iterable[TreeEntry] | Mapping[str, bytes]) -> None:
        if isinstance(entries, Mapping):
            entries = [TreeEntry(path, content) for path, content in entries.items()]
        self._entries = {entry.path: entry for entry in entries}

    def walk(self) -> Iterator[TreeEntry]:
        """Yield every entry in tree order."""
        for path in sorted(self._entries):
            yield self._entries[path]

    def file(self, path: str) -> TreeEntry:
        """Return the file entry at ``path``; raise FileNotFoundError if there is none."""
        entry = self._entries.get(path)
        if entry is None or not entry.is_file:
            raise FileNotFoundError(f"file not found: {path}")
        return entry

    def _get(self, path: str) -> TreeEntry | None:
        return self._entries.get(path)

    def _paths(self) -> set[str]:
        return set(self._entries)


def diff_tree(
    base: Tree | None, head: Tree | None
) -> list[tuple[TreeEntry | None, TreeEntry | None]]:
    """Return (from, to) pairs for every path inserted, deleted or modified.

    A missing tree counts as an empty one.
    """
    base_paths = base._paths() if base is not None else set()
    head_paths = head._paths() if head is not None else set()

    changes: list[tuple[TreeEntry | None, TreeEntry | None]] = []
    for path in sorted(base_paths | head_paths):
        from_entry = base._get(path) if base is not None else None
        to_entry = head._get(path) if head is not None else None
        if (
            from_entry is not None
            and to_entry is not None
            and from_entry.hash == to_entry.hash
            and from_entry.mode == to_entry.mode
        ):
            continue
        changes.append((from_entry, to_entry))
    return changes


def _entry_to_file(entry: TreeEntry | None) -> File | None:
    if entry is None:
        return None
    return File(path=entry.path, mode=entry.mode, hash=entry.hash)


class _TreeScanner:
    """Scans the files of a tree; ``changes()`` scans them as insertions.

    Once closed, the scanner stops walking the tree.
    """

    def __init__(self, tree: Tree) -> None:
        self._tree = tree
        self._closed = False

    def __iter__(self) -> Iterator[File]:
        for entry in self._tree.walk():
            if self._closed:
                return
            if entry.is_file:
                yield File(path=entry.path, mode=entry.mode, hash=entry.hash)

    def changes(self) -> Iterator[Change]:
        return (Change(head=f) for f in self)

    def close(self) -> None:
        self._closed = True


def tree_scanner(tree: Tree) -> _TreeScanner:
    """Return a scanner over the files of ``tree``."""
    return _TreeScanner(tree)


def diff_tree_scanner(base: Tree | None, head: Tree | None) -> Iterator[Change]:
    """Yield the changes between two trees; the diff is computed on first use."""
    for from_entry, to_entry in diff_tree(base, head):
        yield Change(base=_entry_to_file(from_entry), head=_entry_to_file(to_entry))


class _RegexpFilter:
    def __init__(self, include: str, exclude: str) -> None:
        self._include_raw = include
        self._exclude_raw = exclude
        self._include: re.Pattern[str] | None = None
        self._exclude: re.Pattern[str] | None = None

    def on_start(self) -> None:
        self._include = re.compile(self._include_raw) if self._include_raw else None
        self._exclude = re.compile(self._exclude_raw) if self._exclude_raw else None

    def skip(self, f: File | None) -> bool:
        if f is None:
            return False
        if self._include is not None and not self._include.search(f.path):
            return True
        return self._exclude is not None and self._exclude.search(f.path) is not None


def change_filter_scanner(
    scanner: Iterable[Change], include: str, exclude: str
) -> FnScanner[Change]:
    """Keep changes whose resulting (or deleted) path matches include and not exclude."""
    path_filter = _RegexpFilter(include, exclude)
    return FnScanner(
        scanner,
        lambda ch: path_filter.skip(ch.base if ch.head is None else ch.head),
        path_filter.on_start,
    )


def file_filter_scanner(
    scanner: Iterable[File], include: str, exclude: str
) -> FnScanner[File]:
    """Keep files whose path matches include and not exclude."""
    path_filter = _RegexpFilter(include, exclude)
    return FnScanner(scanner, path_filter.skip, path_filter.on_start)


class _BlobAdder:
    def __init__(self, tree: Tree | None) -> None:
        self._tree = tree

    def add(self, f: File | None) -> bool:
        if f is None or not f.hash:
            return False
        try:
            if self._tree is None:
                raise FileNotFoundError(f"file not found: {f.path}")
            entry = self._tree.file(f.path)
        except FileNotFoundError as err:
            logger.warning("skipping - cannot get file: path=%s err=%s", f.path, err)
            return True
        f.content = entry.content
        return False


def file_blob_scanner(scanner: Iterable[File], tree: Tree) -> FnScanner[File]:
    """Fill in the contents of each file from ``tree``; files not found are skipped."""
    return FnScanner(scanner, _BlobAdder(tree).add)


def change_blob_scanner(
    scanner: Iterable[Change], base: Tree | None, head: Tree | None
) -> FnScanner[Change]:
    """Fill in the contents of both sides of each change from the two trees."""
    base_adder = _BlobAdder(base)
    head_adder = _BlobAdder(head)

    def add(change: Change) -> bool:
        if base_adder.add(change.base):
            return True
        return head_adder.add(change.head)

    return FnScanner(scanner, add)