"""Data service that adds parsed UASTs to files using a parsing client."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from lookout.data import Change, ChangesRequest, File, FilesRequest, FnScanner

logger = logging.getLogger(__name__)

STATUS_OK = "ok"
STATUS_ERROR = "error"
STATUS_FATAL = "fatal"


@dataclass
class ParseRequest:
    """Request sent to the parsing client."""

    filename: str
    content: str
    encoding: str = "utf8"
    language: str = ""


@dataclass
class ParseResponse:
    """Reply of the parsing client; ``uast`` is only meaningful when status is ok."""

    status: str = STATUS_OK
    uast: Any = None


class _UastAdder:
    def __init__(self, client: Any, parse_timeout: float) -> None:
        self._client = client
        self._timeout = parse_timeout if parse_timeout > 0 else None

    def _parse(self, f: File) -> Any:
        if not f.path:
            return None
        req = ParseRequest(
            filename=f.path,
            content=(f.content or b"").decode("utf-8", errors="replace"),
            language=f.language.lower(),
        )
        resp = self._client.parse(req, timeout=self._timeout)
        if resp.status != STATUS_OK:
            return None
        return resp.uast

    def process_file(self, f: File | None) -> bool:
        if f is not None:
            logger.debug("parsing uast for file: %s", f.path)
            f.uast = self._parse(f)
        return False

    def process_change(self, change: Change) -> bool:
        self.process_file(change.base)
        self.process_file(change.head)
        return False


class BblfshService:
    """Adds UASTs to the responses of other data services.

    ``client`` must provide ``parse(request, timeout=None) -> ParseResponse``.
    A ``parse_timeout`` of zero means no timeout.
    """

    def __init__(
        self, changes: Any, files: Any, client: Any, parse_timeout: float = 0.0
    ) -> None:
        self._changes = changes
        self._files = files
        self._adder = _UastAdder(client, parse_timeout)

    def get_changes(self, req: ChangesRequest) -> Any:
        """Return the changes of the request, with UASTs when requested."""
        if req.want_uast:
            req.want_contents = True
            req.want_language = True

        scanner = self._changes.get_changes(req)
        if not req.want_uast:
            return scanner
        return FnScanner(scanner, self._adder.process_change)

    def get_files(self, req: FilesRequest) -> Any:
        """Return the files of the request, with UASTs when requested."""
        if req.want_uast:
            req.want_contents = True
            req.want_language = True

        scanner = self._files.get_files(req)
        if not req.want_uast:
            return scanner
        return FnScanner(scanner, self._adder.process_file)