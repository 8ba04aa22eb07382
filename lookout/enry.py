"""Data service that adds language information and filters vendored files."""

from __future__ import annotations

import re
from collections.abc import Iterable
from pathlib import PurePosixPath
from typing import Any

from lookout.data import Change, ChangesRequest, File, FilesRequest, FnScanner

_VENDOR_PATTERNS = [
    r"(^|/)cache/",
    r"^[Dd]ependencies/",
    r"(^|/)dist/",
    r"^deps/",
    r"(^|/)configure$",
    r"(^|/)config\.guess$",
    r"(^|/)config\.sub$",
    r"(^|/)node_modules/",
    r"(^|/)bower_components/",
    r"(^|/)\.yarn/",
    r"(^|/)[Vv]+endor/",
    r"(^|/)Godeps/_workspace/",
    r"(^|/)_esy$",
    r"(^|/)third[-_]?party/",
    r"(^|/)3rd[-_]?party/",
    r"(^|/)vendors?/",
    r"(^|/)extern(al)?/",
    r"(^|/)\.git/",
    r"(^|/)\.svn/",
    r"(^|/)\.hg/",
    r"(^|/)Pods/",
    r"(^|/)Carthage/",
    r"(^|/)\.venv/",
    r"(^|/)venv/",
    r"(^|/)site-packages/",
    r"(^|/)jquery([^.]*)\.js$",
    r"(^|/)jquery\-\d\.\d+(\.\d+)?\.js$",
    r"(^|/)bootstrap([^/.]*)(\.min)?\.(js|css)$",
    r"(^|/)\.DS_Store$",
    r"\.d\.ts$",
    r"\.min\.(js|css)$",
]

_VENDOR_RE = re.compile("|".join(f"(?:{p})" for p in _VENDOR_PATTERNS))

_LANGUAGES_BY_FILENAME = {
    "Makefile": "Makefile",
    "GNUmakefile": "Makefile",
    "makefile": "Makefile",
    "Dockerfile": "Dockerfile",
    "CMakeLists.txt": "CMake",
    "Gemfile": "Ruby",
    "Rakefile": "Ruby",
    "Vagrantfile": "Ruby",
    "BUILD": "Starlark",
    "Jenkinsfile": "Groovy",
}

_LANGUAGES_BY_EXTENSION = {
    ".go": "Go",
    ".py": "Python",
    ".pyi": "Python",
    ".js": "JavaScript",
    ".mjs": "JavaScript",
    ".cjs": "JavaScript",
    ".jsx": "JavaScript",
    ".ts": "TypeScript",
    ".tsx": "TSX",
    ".java": "Java",
    ".kt": "Kotlin",
    ".scala": "Scala",
    ".c": "C",
    ".h": "C",
    ".cc": "C++",
    ".cpp": "C++",
    ".cxx": "C++",
    ".hpp": "C++",
    ".hh": "C++",
    ".cs": "C#",
    ".rb": "Ruby",
    ".php": "PHP",
    ".rs": "Rust",
    ".swift": "Swift",
    ".m": "Objective-C",
    ".sh": "Shell",
    ".bash": "Shell",
    ".zsh": "Shell",
    ".pl": "Perl",
    ".pm": "Perl",
    ".lua": "Lua",
    ".r": "R",
    ".hs": "Haskell",
    ".ex": "Elixir",
    ".exs": "Elixir",
    ".erl": "Erlang",
    ".clj": "Clojure",
    ".groovy": "Groovy",
    ".dart": "Dart",
    ".html": "HTML",
    ".htm": "HTML",
    ".css": "CSS",
    ".scss": "SCSS",
    ".less": "Less",
    ".json": "JSON",
    ".yml": "YAML",
    ".yaml": "YAML",
    ".xml": "XML",
    ".md": "Markdown",
    ".markdown": "Markdown",
    ".rst": "reStructuredText",
    ".sql": "SQL",
    ".toml": "TOML",
    ".proto": "Protocol Buffer",
    ".vue": "Vue",
    ".tf": "HCL",
    ".bzl": "Starlark",
    ".mk": "Makefile",
}

_LANGUAGES_BY_INTERPRETER = {
    "python": "Python",
    "python2": "Python",
    "python3": "Python",
    "node": "JavaScript",
    "nodejs": "JavaScript",
    "sh": "Shell",
    "bash": "Shell",
    "zsh": "Shell",
    "ruby": "Ruby",
    "perl": "Perl",
    "php": "PHP",
    "lua": "Lua",
    "Rscript": "R",
}


def is_vendor(path: str) -> bool:
    """Report whether a path belongs to vendored or generated third-party code."""
    return _VENDOR_RE.search(path) is not None


def _language_from_shebang(content: bytes) -> str:
    if not content.startswith(b"#!"):
        return ""
    first_line = content.splitlines()[0][2:].decode("utf-8", errors="replace")
    words = first_line.split()
    if not words:
        return ""
    interpreter = PurePosixPath(words[0]).name
    if interpreter == "env":
        args = [w for w in words[1:] if not w.startswith("-")]
        if not args:
            return ""
        interpreter = args[0]
    interpreter = re.sub(r"[\d.]+$", "", interpreter) or interpreter
    return _LANGUAGES_BY_INTERPRETER.get(interpreter, "")


def get_language(path: str, content: bytes | None = None) -> str:
    """Detect the language of a file from its name and contents; "" if unknown."""
    name = PurePosixPath(path).name
    if name in _LANGUAGES_BY_FILENAME:
        return _LANGUAGES_BY_FILENAME[name]

    language = _LANGUAGES_BY_EXTENSION.get(PurePosixPath(name).suffix.lower(), "")
    if language:
        return language

    if content:
        return _language_from_shebang(content)
    return ""


def _changed_file(change: Change) -> File | None:
    return change.base if change.head is None else change.head


def _filter_vendor(f: File | None) -> bool:
    if f is None:
        return False
    return is_vendor(f.path)


def change_exclude_vendor_scanner(scanner: Iterable[Change]) -> FnScanner[Change]:
    """Drop changes whose resulting file (or deleted file) is vendored."""
    return FnScanner(scanner, lambda change: _filter_vendor(_changed_file(change)))


def file_exclude_vendor_scanner(scanner: Iterable[File]) -> FnScanner[File]:
    """Drop vendored files."""
    return FnScanner(scanner, _filter_vendor)


def _set_language(f: File | None) -> bool:
    if f is not None:
        f.language = get_language(f.path, f.content)
    return False


def _set_change_language(change: Change) -> bool:
    _set_language(change.base)
    _set_language(change.head)
    return False


def change_language_scanner(scanner: Iterable[Change]) -> FnScanner[Change]:
    """Fill in the language of both sides of each change."""
    return FnScanner(scanner, _set_change_language)


def file_language_scanner(scanner: Iterable[File]) -> FnScanner[File]:
    """Fill in the language of each file."""
    return FnScanner(scanner, _set_language)


class _LanguageFilter:
    def __init__(self, langs: Iterable[str], detect: bool) -> None:
        self._allow = {lang.lower() for lang in langs}
        self._detect = detect

    def skip(self, f: File | None) -> bool:
        if f is None:
            return True
        lang = get_language(f.path, f.content) if self._detect else f.language
        return lang.lower() not in self._allow


def change_filter_language_scanner(
    scanner: Iterable[Change], langs: Iterable[str], detect_lang: bool
) -> FnScanner[Change]:
    """Keep only changes whose resulting (or deleted) file is in one of ``langs``."""
    language_filter = _LanguageFilter(langs, detect_lang)
    return FnScanner(scanner, lambda change: language_filter.skip(_changed_file(change)))


def file_filter_language_scanner(
    scanner: Iterable[File], langs: Iterable[str], detect_lang: bool
) -> FnScanner[File]:
    """Keep only files in one of ``langs``."""
    return FnScanner(scanner, _LanguageFilter(langs, detect_lang).skip)


class EnryService:
    """Adds language detection and vendor filtering on top of other data services."""

    def __init__(self, changes: Any, files: Any) -> None:
        self._changes = changes
        self._files = files

    def get_changes(self, req: ChangesRequest) -> Any:
        """Return the changes of the request, with languages and filters applied."""
        if req.want_language:
            req.want_contents = True

        scanner = self._changes.get_changes(req)
        if req.exclude_vendored:
            scanner = change_exclude_vendor_scanner(scanner)
        if req.want_language:
            scanner = change_language_scanner(scanner)
        if req.include_languages:
            scanner = change_filter_language_scanner(
                scanner, req.include_languages, not req.want_language
            )
        return scanner

    def get_files(self, req: FilesRequest) -> Any:
        """Return the files of the request, with languages and filters applied."""
        if req.want_language:
            req.want_contents = True

        scanner = self._files.get_files(req)
        if req.exclude_vendored:
            scanner = file_exclude_vendor_scanner(scanner)
        if req.want_language:
            scanner = file_language_scanner(scanner)
        if req.include_languages:
            scanner = file_filter_language_scanner(
                scanner, req.include_languages, not req.want_language
            )
        return scanner