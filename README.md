# lookout

A library for assembling automated code review. It walks the files of
in-memory git trees and the diffs between them, enriches files with
language and parsed-syntax information, and dispatches review and push
events to a set of analyzers, posting back the comments they produce.

## Installation

```
pip install .
```

To run the test suite:

```
pip install ".[test]"
pytest
```

## Data types

`lookout.data` holds the types every service shares: `ReferencePointer`
(repository URL, reference name, commit hash), `RepositoryInfo` and
`parse_repository_info`, `File`, `Change` (a `base` and a `head` file, either
of which may be `None`), `ChangesRequest`, `FilesRequest`, and `FnScanner`, an
iterable wrapper that drops items for which a function returns true and can
be closed or used as a context manager.

## Data services

All data services have the same two methods, `get_changes(req)` and
`get_files(req)`, which take a `ChangesRequest` or `FilesRequest` and return
an iterable of `Change` or `File` objects. Services wrap one another, so a
pipeline is built by stacking them:

- `lookout.gitservice.GitService` reads trees from commits loaded through a
  commit loader, applies include and exclude regular expressions to paths
  and loads file contents on request. References are checked first with
  `validate_references`, which raises `RefValidationError`.
- `lookout.enry.EnryService` detects file languages, drops vendored files
  (`exclude_vendored`) and keeps only the languages in `include_languages`.
  Detection uses `get_language(path, content)`, which looks at the file name,
  the extension and a shebang line; `is_vendor(path)` decides what counts as
  vendored.
- `lookout.bblfsh.BblfshService` attaches a parsed syntax tree to each file
  when `want_uast` is set. It calls a client you supply, which must offer
  `parse(request, timeout=None)` taking a `ParseRequest` and returning a
  `ParseResponse`.
- `lookout.purge.PurgeService` strips file contents that an inner service
  turned on although the caller did not ask for them.

Trees and commits are plain Python objects: a `lookout.gitscan.Tree` is built
from `TreeEntry` objects or from a mapping of path to bytes, and a
`lookout.gitservice.Commit` pairs a hash with a tree. `StorerCommitLoader`
takes a mapping of commit hash to `Commit`.

```python
from lookout.data import ChangesRequest, ReferencePointer
from lookout.enry import EnryService
from lookout.gitscan import Tree
from lookout.gitservice import Commit, GitService, StorerCommitLoader

old = Commit("a" * 40, Tree({"main.go": b"package main\n"}))
new = Commit(
    "b" * 40,
    Tree({"main.go": b"package main\n\nfunc main() {}\n", "app.py": b"print(1)\n"}),
    parents=(old.hash,),
)
storer = {commit.hash: commit for commit in (old, new)}

git = GitService(StorerCommitLoader(storer))
service = EnryService(git, git)

req = ChangesRequest(
    base=ReferencePointer("file:///repo", "refs/heads/main", old.hash),
    head=ReferencePointer("file:///repo", "refs/heads/main", new.hash),
    want_language=True,
)
with service.get_changes(req) as scanner:
    for change in scanner:
        if change.head is not None:
            print(change.head.path, change.head.language)
```

Lower-level building blocks live in `lookout.gitscan`: `diff_tree`,
`tree_scanner`, `diff_tree_scanner`, `change_filter_scanner`,
`file_filter_scanner`, `file_blob_scanner` and `change_blob_scanner`.

`LibraryCommitLoader(library, syncer)` loads commits after syncing a
repository. It expects a `library` object with `get_or_init(repository_info)`
returning something with a `storer` mapping, and a `syncer` object with
`sync(*reference_pointers)`; it refuses references to more than one
repository.

## Server

`lookout.server.Server` receives `ReviewEvent` and `PushEvent` objects. For
each event it reads the repository's `.lookout.yml` through the file getter
and the organization's default configuration through the organization
operator, merges them with each analyzer's own settings (`merge_configs`,
`merge_settings`), calls every enabled analyzer concurrently, drops duplicate
comments and comments already posted, and hands the rest to a poster. It
reports `AnalysisStatus` values to the poster as it goes.

The objects it works with are duck-typed:

- an analyzer client offers `notify_review_event(event)` and
  `notify_push_event(event)`, each returning a list of `Comment`;
- a poster offers `post(event, comments, safe)` and `status(event, status)`;
- the optional event operator offers `save(event)` returning an
  `EventStatus` and `update_status(event, status)`;
- the optional comment operator offers `posted(event, comment)` and
  `save(event, comment, analyzer_name)`;
- the optional organization operator offers `config(provider, org_id)`
  returning YAML text.

`LogPoster` is a poster that only writes comments and statuses to a logger.

```python
import logging

from lookout.server import Analyzer, AnalyzerConfig, LogPoster, Server

server = Server(
    poster=LogPoster(logging.getLogger("review")),
    file_getter=git,
    analyzers={"style": Analyzer(client=style_client, config=AnalyzerConfig(name="style"))},
    review_timeout=60.0,
    push_timeout=60.0,
)
server.handle_event(event)
```

A timeout of zero means no timeout; an analyzer that does not reply in time
is logged as failed. Without `exit_on_error`, failures while handling an
event are logged and the event is marked failed; with it, they are raised.

## What this package does not do

- It does not read git repositories from disk or fetch them from remotes:
  trees and commits are supplied as Python objects, and the library and
  syncer used by `LibraryCommitLoader` must be provided by the caller.
- It contains no parser: `BblfshService` needs an external parse client.
- It has no storage of its own for events, comments or organization
  settings; without operators nothing is persisted and every event is
  treated as new.
- It does not talk to code hosting providers and has no command-line
  program or long-running daemon; events must be delivered by the caller.