"""Data service that reads changes and files from git commits."""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from typing import Any

from lookout.data import ChangesRequest, FilesRequest, ReferencePointer
from lookout.gitscan import (
    Tree,
    change_blob_scanner,
    change_filter_scanner,
    diff_tree_scanner,
    file_blob_scanner,
    file_filter_scanner,
    tree_scanner,
)

logger = logging.getLogger(__name__)


class RefValidationError(ValueError):
    """A reference lacks information needed to load its repository."""

    def __init__(self, ref: ReferencePointer, missing: str) -> None:
        super().__init__(f"reference {ref} does not have a {missing}")
        self.ref = ref
        self.missing = missing


@dataclass(frozen=True)
class Commit:
    """A commit: its hash, the tree it points to and its parents' hashes."""

    hash: str
    tree: Tree
    parents: tuple[str, ...] = ()


def validate_references(validate_ref_name: bool, *refs: ReferencePointer | None) -> None:
    """Raise RefValidationError if a reference misses what is needed to load it.

    Missing references are ignored; the reference name is checked only on request.
    """
    logger.debug("validating refs: %s, validate_ref_name: %s", refs, validate_ref_name)
    for ref in refs:
        if ref is None:
            continue
        if not ref.hash:
            raise RefValidationError(ref, "Hash")
        if not ref.internal_repository_url:
            raise RefValidationError(ref, "InternalRepositoryURL")
        if validate_ref_name and not ref.reference_name:
            raise RefValidationError(ref, "ReferenceName")


class StorerCommitLoader:
    """Loads commits from a storer mapping commit hashes to commits."""

    def __init__(self, storer: Mapping[str, Commit]) -> None:
        self.storer = storer

    def load_commits(self, *rps: ReferencePointer) -> list[Commit]:
        """Return the commit of each reference, in order."""
        commits = []
        for rp in rps:
            try:
                commits.append(self.storer[rp.hash])
            except KeyError:
                raise LookupError(f"commit {rp.hash} not found") from None
        return commits


class LibraryCommitLoader:
    """Syncs a repository from a library and loads commits from it.

    ``library`` provides ``get_or_init(repository_info)`` returning a repository
    with a ``storer``; ``syncer`` provides ``sync(*reference_pointers)``.
    """

    def __init__(self, library: Any, syncer: Any) -> None:
        self.library = library
        self.syncer = syncer

    def load_commits(self, *rps: ReferencePointer) -> list[Commit]:
        """Sync the references' repository and return their commits, in order."""
        if not rps:
            return []

        first = rps[0]
        if any(rp.internal_repository_url != first.internal_repository_url for rp in rps[1:]):
            raise ValueError("loading commits from multiple repositories is not supported")

        self.syncer.sync(*rps)
        repo = self.library.get_or_init(first.repository())
        return StorerCommitLoader(repo.storer).load_commits(*rps)


class GitService:
    """Serves changes and files of git revisions loaded by a commit loader."""

    def __init__(self, loader: Any) -> None:
        self._loader = loader

    def get_changes(self, req: ChangesRequest) -> Any:
        """Return a scanner over the changes between the request's base and head."""
        validate_references(True, req.base, req.head)
        if req.head is None:
            raise ValueError("changes request requires a head reference")

        base, head = self._load_trees(req.base, req.head)

        scanner: Any
        if base is None:
            scanner = tree_scanner(head).changes()
        else:
            scanner = diff_tree_scanner(base, head)

        if req.include_pattern or req.exclude_pattern:
            scanner = change_filter_scanner(scanner, req.include_pattern, req.exclude_pattern)
        if req.want_contents:
            scanner = change_blob_scanner(scanner, base, head)
        return scanner

    def get_files(self, req: FilesRequest) -> Any:
        """Return a scanner over the files of the request's revision."""
        validate_references(False, req.revision)
        if req.revision is None:
            raise ValueError("files request requires a revision")

        _, tree = self._load_trees(None, req.revision)

        scanner: Any = tree_scanner(tree)
        if req.include_pattern or req.exclude_pattern:
            scanner = file_filter_scanner(scanner, req.include_pattern, req.exclude_pattern)
        if req.want_contents:
            scanner = file_blob_scanner(scanner, tree)
        return scanner

    def _load_trees(
        self, base: ReferencePointer | None, head: ReferencePointer
    ) -> tuple[Tree | None, Tree]:
        rps = [rp for rp in (base, head) if rp is not None]
        logger.debug("load trees for references: %s", rps)
        trees: Iterator[Tree] = (c.tree for c in self._loader.load_commits(*rps))
        base_tree = next(trees) if base is not None else None
        return base_tree, next(trees)