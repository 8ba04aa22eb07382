"""Server that runs analyzers on repository events and posts their comments."""

from __future__ import annotations

import enum
import logging
from collections.abc import Callable, Iterable, Mapping
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from concurrent.futures import TimeoutError as FuturesTimeoutError
from dataclasses import dataclass, field, replace
from typing import Any

import yaml

from lookout.data import FilesRequest, ReferencePointer, close_scanner

logger = logging.getLogger(__name__)

CONFIG_FILE_PATTERN = r"^\.lookout\.yml$"

_REVIEW_TIMEOUT_HINT = "timeout exceeded, try increasing analyzer_review in config.yml"
_PUSH_TIMEOUT_HINT = "timeout exceeded, try increasing analyzer_push in config.yml"


class AnalysisStatus(enum.Enum):
    """Status of an analysis as reported to the provider."""

    PENDING = "pending"
    ERROR = "error"
    SUCCESS = "success"


class EventStatus(enum.Enum):
    """Processing status of an event as persisted by an event operator."""

    NEW = "new"
    POSTING = "posting"
    PROCESSED = "processed"
    FAILED = "failed"


@dataclass
class Comment:
    """A comment produced by an analyzer; no file means a global comment."""

    file: str = ""
    line: int = 0
    text: str = ""
    confidence: int = 0


@dataclass
class AnalyzerConfig:
    """Configuration of one analyzer."""

    name: str = ""
    addr: str = ""
    disabled: bool = False
    feedback: str = ""
    settings: dict[str, Any] | None = None


@dataclass
class Analyzer:
    """An analyzer client with its server-side configuration.

    The client provides ``notify_review_event(event)`` and
    ``notify_push_event(event)``, each returning a list of Comment.
    """

    client: Any
    config: AnalyzerConfig = field(default_factory=AnalyzerConfig)


@dataclass
class AnalyzerComments:
    """The comments one analyzer produced, with that analyzer's configuration."""

    config: AnalyzerConfig
    comments: list[Comment] = field(default_factory=list)


@dataclass
class _Event:
    provider: str = ""
    internal_id: str = ""
    base: ReferencePointer = field(default_factory=ReferencePointer)
    head: ReferencePointer = field(default_factory=ReferencePointer)
    configuration: dict[str, Any] = field(default_factory=dict)

    @property
    def id(self) -> str:
        """Identifier of the event; it changes whenever the revision changes."""
        kind = type(self).__name__
        return f"{kind}:{self.provider}:{self.internal_id}:{self.base.hash}:{self.head.hash}"

    @property
    def organization_id(self) -> str:
        try:
            return self.head.repository().owner
        except ValueError:
            return ""

    def validate(self) -> None:
        """Raise ValueError if the event lacks what is needed to analyze it."""
        if not self.head.internal_repository_url:
            raise ValueError("event head does not have an internal repository URL")
        if not self.head.hash:
            raise ValueError("event head does not have a hash")


@dataclass
class ReviewEvent(_Event):
    """A pull request was opened or updated."""

    source: ReferencePointer | None = None
    is_mergeable: bool = False


@dataclass
class PushEvent(_Event):
    """Commits were pushed to a reference."""


def _merge_maps(base: Mapping[str, Any] | None, local: Mapping[str, Any] | None) -> dict[str, Any]:
    merged = dict(base or {})
    for key, value in (local or {}).items():
        current = merged.get(key)
        if isinstance(value, Mapping) and isinstance(current, Mapping):
            merged[key] = _merge_maps(current, value)
        else:
            merged[key] = value
    return merged


def merge_configs(
    base: dict[str, AnalyzerConfig] | None, local: dict[str, AnalyzerConfig] | None
) -> dict[str, AnalyzerConfig] | None:
    """Merge analyzer configurations; local settings deep-override base ones.

    For analyzers present in both, only the settings are merged and every
    other field is taken from ``base``.
    """
    if local is None:
        return base
    if base is None:
        return local

    merged = dict(base)
    for name, conf in local.items():
        current = merged.get(name)
        if current is None:
            merged[name] = conf
        else:
            merged[name] = replace(current, settings=_merge_maps(current.settings, conf.settings))
    return merged


def merge_settings(
    base: dict[str, Any] | None, local: dict[str, Any] | None
) -> dict[str, Any] | None:
    """Deep-merge analyzer settings; nested mappings merge, other values are replaced."""
    if local is None:
        return base
    if base is None:
        return local
    return _merge_maps(base, local)


def _analyzer_config_from_yaml(entry: Any) -> AnalyzerConfig:
    if not isinstance(entry, Mapping):
        raise ValueError(f"can't parse configuration file: invalid analyzer entry {entry!r}")
    settings = entry.get("settings")
    if settings is not None and not isinstance(settings, Mapping):
        raise ValueError("can't parse configuration file: analyzer settings must be a mapping")
    return AnalyzerConfig(
        name=str(entry.get("name") or ""),
        addr=str(entry.get("addr") or ""),
        disabled=bool(entry.get("disabled", False)),
        feedback=str(entry.get("feedback") or ""),
        settings=dict(settings) if settings is not None else None,
    )


def _dedup(groups: Iterable[AnalyzerComments]) -> list[AnalyzerComments]:
    result = []
    for group in groups:
        seen: set[tuple[str, int, str]] = set()
        kept = []
        for comment in group.comments:
            key = (comment.file, comment.line, comment.text)
            if key in seen:
                continue
            seen.add(key)
            kept.append(comment)
        result.append(AnalyzerComments(group.config, kept))
    return result


Send = Callable[[Any, "dict[str, Any] | None"], list[Comment]]


class Server:
    """Glue between providers, the data service and analyzers.

    The event, comment and organization operators may be left as None, in
    which case nothing is persisted. A timeout of zero means no timeout. With
    ``exit_on_error`` set, a failing analyzer or posting call makes event
    handling raise.
    """

    def __init__(
        self,
        poster: Any,
        file_getter: Any,
        analyzers: Mapping[str, Analyzer],
        event_op: Any = None,
        comment_op: Any = None,
        organization_op: Any = None,
        review_timeout: float = 0.0,
        push_timeout: float = 0.0,
        exit_on_error: bool = False,
    ) -> None:
        self._poster = poster
        self._file_getter = file_getter
        self._analyzers = dict(analyzers)
        self._event_op = event_op
        self._comment_op = comment_op
        self._organization_op = organization_op
        self._review_timeout = review_timeout
        self._push_timeout = push_timeout
        self._exit_on_error = exit_on_error

    def handle_event(self, event: Any) -> None:
        """Process an event by calling the analyzers and posting their results."""
        status = EventStatus.NEW
        if self._event_op is not None:
            try:
                status = self._event_op.save(event)
            except Exception:
                logger.exception("can't save event to database")
                raise

        if status == EventStatus.PROCESSED:
            logger.debug("event successfully processed, skipping...")
            return
        if status == EventStatus.FAILED:
            logger.debug("event processing failed, skipping...")
            return

        # posting started before but never finished: analyze again, post only new comments
        safe_posting = status == EventStatus.POSTING

        error: Exception | None = None
        try:
            if isinstance(event, ReviewEvent):
                self.handle_review(event, safe_posting)
            elif isinstance(event, PushEvent):
                self.handle_push(event, safe_posting)
            else:
                logger.debug("ignoring unsupported event: %s", event)
        except Exception as err:
            logger.error("event processing failed: %s", err)
            error = err

        final = EventStatus.PROCESSED if error is None else EventStatus.FAILED
        if self._event_op is not None:
            try:
                self._event_op.update_status(event, final)
            except Exception as err:
                logger.error("can't update status in database: %s", err)

        if self._exit_on_error and error is not None:
            raise error

    def handle_review(self, event: ReviewEvent, safe_posting: bool = False) -> None:
        """Send a review event to all analyzers concurrently and post the results."""
        logger.info("processing pull request: provider=%s", event.provider)

        def send(client: Any, settings: dict[str, Any] | None) -> list[Comment]:
            return client.notify_review_event(self._with_settings(event, settings))

        self._handle(event, safe_posting, send, self._review_timeout, _REVIEW_TIMEOUT_HINT)

    def handle_push(self, event: PushEvent, safe_posting: bool = False) -> None:
        """Send a push event to all analyzers concurrently and post the results."""
        logger.info("processing push: provider=%s", event.provider)

        def send(client: Any, settings: dict[str, Any] | None) -> list[Comment]:
            return client.notify_push_event(self._with_settings(event, settings))

        self._handle(event, safe_posting, send, self._push_timeout, _PUSH_TIMEOUT_HINT)

    @staticmethod
    def _with_settings(event: Any, settings: dict[str, Any] | None) -> Any:
        if settings is None:
            return replace(event)
        return replace(event, configuration=dict(settings))

    def _handle(
        self, event: Any, safe_posting: bool, send: Send, timeout: float, timeout_hint: str
    ) -> None:
        event.validate()
        repo_conf = self._get_config(event)
        org_conf = self._get_org_config(event)
        conf = merge_configs(org_conf, repo_conf) or {}

        self._status(event, AnalysisStatus.PENDING)
        comments = self._concurrent_request(conf, send, timeout, timeout_hint)

        try:
            self._post(event, comments, safe_posting)
        except Exception as err:
            self._status(event, AnalysisStatus.ERROR)
            raise RuntimeError(f"posting analysis failed: {err}") from err
        self._status(event, AnalysisStatus.SUCCESS)

    def _get_config(self, event: Any) -> dict[str, AnalyzerConfig] | None:
        logger.debug("getting .lookout.yml")
        request = FilesRequest(
            revision=event.head, include_pattern=CONFIG_FILE_PATTERN, want_contents=True
        )
        try:
            scanner = self._file_getter.get_files(request)
        except Exception as err:
            raise RuntimeError(f"Can't get .lookout.yml in revision {event.head}: {err}") from err
        try:
            first = next(iter(scanner), None)
        finally:
            close_scanner(scanner)

        content = first.content if first is not None else None
        if not content:
            logger.info("repository config is not found")
            return None

        try:
            return self._parse_config(content, "repository .lookout.yml")
        except ValueError as err:
            raise ValueError(
                f"failed to get the local .lookout.yml file from the repository: {err}"
            ) from err

    def _get_org_config(self, event: Any) -> dict[str, AnalyzerConfig]:
        content = ""
        if self._organization_op is not None:
            try:
                content = self._organization_op.config(event.provider, event.organization_id)
            except Exception as err:
                raise RuntimeError(
                    f"could not load default configuration for organization from the DB: {err}"
                ) from err

        try:
            return self._parse_config(content or "", "organization default")
        except ValueError as err:
            raise ValueError(
                f"failed to get the organization default configuration from the DB: {err}"
            ) from err

    def _parse_config(self, content: bytes | str, source: str) -> dict[str, AnalyzerConfig]:
        try:
            data = yaml.safe_load(content)
        except yaml.YAMLError as err:
            raise ValueError(f"can't parse configuration file: {err}") from err
        if data is None:
            data = {}
        if not isinstance(data, Mapping):
            raise ValueError("can't parse configuration file: top level must be a mapping")
        entries = data.get("analyzers") or []
        if not isinstance(entries, list):
            raise ValueError("can't parse configuration file: analyzers must be a list")

        result = {name: analyzer.config for name, analyzer in self._analyzers.items()}
        for entry in entries:
            conf = _analyzer_config_from_yaml(entry)
            if conf.name not in self._analyzers:
                logger.warning(
                    "analyzer '%s' required by configuration file (%s) isn't enabled on server",
                    conf.name,
                    source,
                )
                continue
            result[conf.name] = conf
        return result

    def _concurrent_request(
        self,
        conf: Mapping[str, AnalyzerConfig],
        send: Send,
        timeout: float,
        timeout_hint: str,
    ) -> list[AnalyzerComments]:
        executor = ThreadPoolExecutor(max_workers=max(1, len(self._analyzers)))
        try:
            jobs: dict[Future[list[Comment]], tuple[str, Analyzer]] = {}
            for name, analyzer in self._analyzers.items():
                local = conf.get(name)
                if analyzer.config.disabled or (local is not None and local.disabled):
                    logger.info("analyzer %s disabled by local repository configuration", name)
                    continue
                settings = merge_settings(
                    analyzer.config.settings, local.settings if local is not None else None
                )
                jobs[executor.submit(send, analyzer.client, settings)] = (name, analyzer)

            results: list[AnalyzerComments] = []
            pending = set(jobs)
            try:
                for future in as_completed(jobs, timeout=timeout if timeout > 0 else None):
                    pending.discard(future)
                    name, analyzer = jobs[future]
                    error = future.exception()
                    if error is not None:
                        self._analysis_failed(name, error, timeout_hint)
                        continue
                    comments = list(future.result() or [])
                    if not comments:
                        logger.info("no comments were produced: analyzer=%s", name)
                        continue
                    results.append(AnalyzerComments(config=analyzer.config, comments=comments))
            except FuturesTimeoutError:
                for future in pending:
                    name, _ = jobs[future]
                    self._analysis_failed(
                        name,
                        TimeoutError(f"analyzer {name} did not reply within {timeout}s"),
                        timeout_hint,
                    )
            return results
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

    def _analysis_failed(self, name: str, error: BaseException, timeout_hint: str) -> None:
        message = "analysis failed"
        if isinstance(error, TimeoutError):
            message = f"{message}: {timeout_hint}"
        logger.error("%s: analyzer=%s: %s", message, name, error)
        if self._exit_on_error:
            raise error

    def _already_posted(self, event: Any, comment: Comment) -> bool:
        if self._comment_op is None:
            return False
        try:
            return bool(self._comment_op.posted(event, comment))
        except Exception as err:
            logger.error("comment posted check failed: %s", err)
            raise

    def _post(self, event: Any, groups: list[AnalyzerComments], safe: bool) -> None:
        to_post = []
        for group in _dedup(groups):
            fresh = [c for c in group.comments if not self._already_posted(event, c)]
            if fresh:
                to_post.append(AnalyzerComments(group.config, fresh))

        if not to_post:
            return

        # mark posting as started so an interrupted run can be resumed safely
        if self._event_op is not None:
            self._event_op.update_status(event, EventStatus.POSTING)

        logger.info("posting analysis: comments=%d", sum(len(g.comments) for g in to_post))
        self._poster.post(event, to_post, safe)

        if self._comment_op is None:
            return
        for group in to_post:
            for comment in group.comments:
                try:
                    self._comment_op.save(event, comment, group.config.name)
                except Exception as err:
                    logger.error("can't save comment: %s", err)

    def _status(self, event: Any, status: AnalysisStatus) -> None:
        try:
            self._poster.status(event, status)
        except Exception as err:
            logger.error("posting status failed: status=%s: %s", status.value, err)


class LogPoster:
    """Poster that writes comments and statuses to a logger."""

    def __init__(self, logger: logging.Logger) -> None:
        self.logger = logger

    def post(self, event: Any, comments: Iterable[AnalyzerComments], safe: bool = False) -> None:
        """Log every comment as a global, file or line comment."""
        for group in comments:
            for comment in group.comments:
                if not comment.file:
                    self.logger.info("global comment: text=%s", comment.text)
                elif comment.line == 0:
                    self.logger.info("file comment: text=%s file=%s", comment.text, comment.file)
                else:
                    self.logger.info(
                        "line comment: text=%s file=%s line=%d",
                        comment.text,
                        comment.file,
                        comment.line,
                    )

    def status(self, event: Any, status: AnalysisStatus) -> None:
        """Log the analysis status."""
        self.logger.info("status: %s", status.value)