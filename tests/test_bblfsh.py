import pytest

from lookout.bblfsh import (
    STATUS_FATAL,
    STATUS_OK,
    BblfshService,
    ParseResponse,
)
from lookout.data import (
    Change,
    ChangesRequest,
    File,
    FilesRequest,
    ReferencePointer,
)


class _ListScanner:
    def __init__(self, items):
        self.items = list(items)
        self.closed = False

    def __iter__(self):
        return iter(self.items)

    def close(self):
        self.closed = True


class _FakeChanges:
    def __init__(self, changes):
        self.scanner = _ListScanner(changes)
        self.requests = []

    def get_changes(self, req):
        self.requests.append(req)
        return self.scanner


class _FakeFiles:
    def __init__(self, files):
        self.scanner = _ListScanner(files)
        self.requests = []

    def get_files(self, req):
        self.requests.append(req)
        return self.scanner


class _FakeParser:
    def __init__(self, nodes=None, error=None):
        self.nodes = nodes
        self.error = error
        self.requests = []
        self.timeouts = []

    def parse(self, request, timeout=None):
        self.requests.append(request)
        self.timeouts.append(timeout)
        if self.error is not None:
            raise self.error
        if self.nodes is None or request.filename not in self.nodes:
            return ParseResponse(status=STATUS_FATAL)
        return ParseResponse(status=STATUS_OK, uast=self.nodes[request.filename])


def test_changes():
    underlying = _FakeChanges(
        [
            Change(head=File(path="f1new", content=b"f1 new")),
            Change(
                base=File(path="f2old", content=b"f2 old"),
                head=File(path="f2new", content=b"f2 new"),
            ),
        ]
    )
    nodes = {
        "f1new": {"internal_type": "f1 new"},
        "f2old": {"internal_type": "f2 old"},
        "f2new": {"internal_type": "f2 new"},
    }
    srv = BblfshService(underlying, None, _FakeParser(nodes), 0)
    req = ChangesRequest(
        base=ReferencePointer(internal_repository_url="repo://myrepo", hash="foo"),
        head=ReferencePointer(internal_repository_url="repo://myrepo", hash="bar"),
        want_uast=True,
    )

    scan = srv.get_changes(req)
    changes = list(scan)
    assert len(changes) == 2

    got = {}
    for ch in changes:
        for f in (ch.base, ch.head):
            if f is not None:
                got[f.path] = f.uast
    assert got == nodes

    scan.close()
    assert underlying.scanner.closed is True


def test_files():
    underlying = _FakeFiles(
        [
            File(path="f1new", content=b"f1 new"),
            File(path="f2new", content=b"f2 new"),
        ]
    )
    nodes = {"f1new": {"internal_type": "f1 new"}, "f2new": {"internal_type": "f2 new"}}
    srv = BblfshService(None, underlying, _FakeParser(nodes), 0)
    req = FilesRequest(
        revision=ReferencePointer(internal_repository_url="repo://myrepo", hash="foo"),
        want_uast=True,
    )

    scan = srv.get_files(req)
    files = list(scan)
    assert len(files) == 2
    assert {f.path: f.uast for f in files} == nodes

    scan.close()
    assert underlying.scanner.closed is True


def test_want_uast_forces_contents_and_language():
    underlying = _FakeFiles([])
    srv = BblfshService(None, underlying, _FakeParser({}), 0)
    req = FilesRequest(want_uast=True)
    list(srv.get_files(req))
    assert req.want_contents is True
    assert req.want_language is True
    assert underlying.requests == [req]


def test_without_uast_returns_underlying():
    underlying = _FakeChanges([Change(head=File(path="a"))])
    parser = _FakeParser({"a": "node"})
    srv = BblfshService(underlying, None, parser, 0)
    scan = srv.get_changes(ChangesRequest())
    assert scan is underlying.scanner
    assert parser.requests == []


def test_failed_parse_gives_no_uast():
    underlying = _FakeFiles([File(path="unknown", content=b"x")])
    srv = BblfshService(None, underlying, _FakeParser({}), 0)
    files = list(srv.get_files(FilesRequest(want_uast=True)))
    assert files[0].uast is None


def test_empty_path_is_not_parsed():
    parser = _FakeParser({"": "node"})
    underlying = _FakeFiles([File(path="", content=b"x")])
    srv = BblfshService(None, underlying, parser, 0)
    files = list(srv.get_files(FilesRequest(want_uast=True)))
    assert files[0].uast is None
    assert parser.requests == []


def test_request_fields_and_timeout():
    parser = _FakeParser({"main.go": "node"})
    underlying = _FakeFiles([File(path="main.go", content=b"package main", language="Go")])
    srv = BblfshService(None, underlying, parser, 2.5)
    list(srv.get_files(FilesRequest(want_uast=True)))

    request = parser.requests[0]
    assert request.filename == "main.go"
    assert request.content == "package main"
    assert request.language == "go"
    assert parser.timeouts == [2.5]


def test_zero_timeout_means_none():
    parser = _FakeParser({"a": "node"})
    srv = BblfshService(None, _FakeFiles([File(path="a")]), parser, 0)
    list(srv.get_files(FilesRequest(want_uast=True)))
    assert parser.timeouts == [None]


def test_parse_error_stops_scan():
    parser = _FakeParser(error=ConnectionError("unavailable"))
    underlying = _FakeChanges([Change(head=File(path="a")), Change(head=File(path="b"))])
    srv = BblfshService(underlying, None, parser, 0)
    with pytest.raises(ConnectionError, match="unavailable"):
        list(srv.get_changes(ChangesRequest(want_uast=True)))
    assert len(parser.requests) == 1