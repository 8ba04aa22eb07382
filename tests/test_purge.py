from lookout.data import (
    Change,
    ChangesRequest,
    File,
    FilesRequest,
    ReferencePointer,
)
from lookout.purge import PurgeService


class _ListScanner:
    def __init__(self, items):
        self.items = list(items)
        self.closed = False

    def __iter__(self):
        return iter(self.items)

    def close(self):
        self.closed = True


class _FakeChanges:
    def __init__(self, changes, modify_req=None):
        self.scanner = _ListScanner(changes)
        self.modify_req = modify_req
        self.requests = []

    def get_changes(self, req):
        self.requests.append(req)
        if self.modify_req is not None:
            self.modify_req(req)
        return self.scanner


class _FakeFiles:
    def __init__(self, files, modify_req=None):
        self.scanner = _ListScanner(files)
        self.modify_req = modify_req
        self.requests = []

    def get_files(self, req):
        self.requests.append(req)
        if self.modify_req is not None:
            self.modify_req(req)
        return self.scanner


def _want_contents(req):
    req.want_contents = True


def _changes():
    return [
        Change(head=File(path="f1new.go", content=b"f1 new")),
        Change(
            base=File(path="f2old.py", content=b"f2 old"),
            head=File(path="f2new.js", content=b"f2 new"),
        ),
    ]


def _files():
    return [
        File(path="f1new.go", content=b"f1 new"),
        File(path="f2new.js", content=b"f2 new"),
    ]


def test_changes_purged():
    underlying = _FakeChanges(_changes(), modify_req=_want_contents)
    srv = PurgeService(underlying, None)
    req = ChangesRequest(
        base=ReferencePointer(internal_repository_url="repo://myrepo", hash="foo"),
        head=ReferencePointer(internal_repository_url="repo://myrepo", hash="bar"),
    )

    scan = srv.get_changes(req)
    changes = list(scan)

    assert underlying.requests == [req]
    assert len(changes) == 2
    assert changes[0].head.content is None
    assert changes[1].base.content is None
    assert changes[1].head.content is None

    scan.close()
    assert underlying.scanner.closed is True


def test_files_purged():
    underlying = _FakeFiles(_files(), modify_req=_want_contents)
    srv = PurgeService(None, underlying)
    req = FilesRequest(
        revision=ReferencePointer(internal_repository_url="repo://myrepo", hash="foo"),
        want_language=True,
    )

    scan = srv.get_files(req)
    files = list(scan)

    assert len(files) == 2
    assert files[0].content is None
    assert files[1].content is None

    scan.close()
    assert underlying.scanner.closed is True


def test_changes_untouched_when_request_not_modified():
    underlying = _FakeChanges(_changes())
    srv = PurgeService(underlying, None)
    scan = srv.get_changes(ChangesRequest(want_contents=True))
    assert scan is underlying.scanner
    assert [c.head.content for c in scan] == [b"f1 new", b"f2 new"]


def test_files_untouched_when_request_not_modified():
    underlying = _FakeFiles(_files())
    srv = PurgeService(None, underlying)
    scan = srv.get_files(FilesRequest())
    assert scan is underlying.scanner
    assert [f.content for f in scan] == [b"f1 new", b"f2 new"]