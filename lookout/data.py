"""Core data types shared by the data services: references, files, changes and scanners."""

from __future__ import annotations

from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar
from urllib.parse import urlsplit

T = TypeVar("T")


@dataclass(frozen=True)
class RepositoryInfo:
    """Identity of a repository derived from its clone URL."""

    clone_url: str
    host: str = ""
    full_name: str = ""
    owner: str = ""
    name: str = ""


def parse_repository_info(url: str) -> RepositoryInfo:
    """Parse a repository URL into a RepositoryInfo."""
    parts = urlsplit(url)
    if not parts.scheme:
        raise ValueError(f"invalid repository URL {url!r}: missing scheme")

    full_name = parts.path.strip("/")
    if full_name.endswith(".git"):
        full_name = full_name[: -len(".git")]
    owner, _, name = full_name.rpartition("/")
    host = parts.netloc.rpartition("@")[2]

    return RepositoryInfo(
        clone_url=url,
        host=host,
        full_name=full_name,
        owner=owner,
        name=name,
    )


@dataclass
class ReferencePointer:
    """A pointer to a git reference and the commit it resolves to."""

    internal_repository_url: str = ""
    reference_name: str = ""
    hash: str = ""

    def repository(self) -> RepositoryInfo:
        """Return the repository this reference belongs to."""
        return parse_repository_info(self.internal_repository_url)


@dataclass
class File:
    """A file of a revision, optionally with contents, language and UAST."""

    path: str = ""
    mode: int = 0
    hash: str = ""
    content: bytes | None = None
    language: str = ""
    uast: Any = None


@dataclass
class Change:
    """A change between two revisions; either side may be missing."""

    base: File | None = None
    head: File | None = None


@dataclass
class ChangesRequest:
    """Request for the changes between two revisions."""

    base: ReferencePointer | None = None
    head: ReferencePointer | None = None
    include_pattern: str = ""
    exclude_pattern: str = ""
    exclude_vendored: bool = False
    want_contents: bool = False
    want_language: bool = False
    want_uast: bool = False
    include_languages: list[str] = field(default_factory=list)


@dataclass
class FilesRequest:
    """Request for the files of a revision."""

    revision: ReferencePointer | None = None
    include_pattern: str = ""
    exclude_pattern: str = ""
    exclude_vendored: bool = False
    want_contents: bool = False
    want_language: bool = False
    want_uast: bool = False
    include_languages: list[str] = field(default_factory=list)


def close_scanner(scanner: object) -> None:
    """Close a scanner if it supports closing."""
    close = getattr(scanner, "close", None)
    if close is not None:
        close()


class FnScanner(Generic[T]):
    """Wraps a scanner, dropping every item for which ``fn`` returns True.

    ``fn`` may also modify the items it sees. ``on_start`` runs once before
    the first item is read; any exception it raises ends the scan.
    """

    def __init__(
        self,
        scanner: Iterable[T],
        fn: Callable[[T], bool],
        on_start: Callable[[], None] | None = None,
    ) -> None:
        self._scanner = scanner
        self._fn = fn
        self._on_start = on_start

    def __iter__(self) -> Iterator[T]:
        if self._on_start is not None:
            self._on_start()
        for item in self._scanner:
            if not self._fn(item):
                yield item

    def close(self) -> None:
        close_scanner(self._scanner)

    def __enter__(self) -> FnScanner[T]:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()