"""Data service that removes file contents the caller did not ask for."""

from __future__ import annotations

from typing import Any

from lookout.data import Change, ChangesRequest, File, FilesRequest, FnScanner


def _purge_change(change: Change) -> bool:
    for f in (change.base, change.head):
        if f is not None:
            f.content = None
    return False


def _purge_file(f: File) -> bool:
    f.content = None
    return False


class PurgeService:
    """Drops file contents when an underlying service turned them on by itself."""

    def __init__(self, changes: Any, files: Any) -> None:
        self._changes = changes
        self._files = files

    def get_changes(self, req: ChangesRequest) -> Any:
        """Return the underlying changes, purged of contents not requested."""
        want_contents = req.want_contents
        scanner = self._changes.get_changes(req)
        if want_contents == req.want_contents:
            return scanner
        if want_contents:
            return FnScanner(scanner, lambda change: False)
        return FnScanner(scanner, _purge_change)

    def get_files(self, req: FilesRequest) -> Any:
        """Return the underlying files, purged of contents not requested."""
        want_contents = req.want_contents
        scanner = self._files.get_files(req)
        if want_contents == req.want_contents:
            return scanner
        if want_contents:
            return FnScanner(scanner, lambda f: False)
        return FnScanner(scanner, _purge_file)