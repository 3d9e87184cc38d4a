"""Concurrent, memoized dependency crawler.

Each module reached during a crawl goes through three steps:

1. its raw content is loaded and passed through the transform pipeline,
2. dependency identifiers are extracted from the transformed text,
3. every identifier is resolved against the module's directory and
   filtered.

The resulting dependency list is filed as an :class:`EdgeRecord` and every
dependency is crawled in turn. The memo keyed by module identity makes sure
the three steps run at most once per module, however many referrers reach
it and however concurrently they do so.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Set, Tuple

from ..ast.parser import detect_language, extract_identifiers
from ..config import TraceConfig
from ..errors import (
    ContentLoadError,
    CrawlFailed,
    CrawlIssue,
    ResolutionFailure,
    TransformError,
)
from ..graph.edges import EdgeCache, EdgeRecord, Roots
from ..graph.guard import DuplicateGuard
from ..lineup import SourceFile, load_source
from ..pipeline.transform import TransformPipeline
from ..resolve.resolver import resolve_identifier

logger = logging.getLogger(__name__)

ExtractFunc = Callable[[str], Sequence[str]]
ResolveFunc = Callable[[str, str], str]
EdgeListener = Callable[[EdgeRecord], None]
IssueListener = Callable[[CrawlIssue], None]


@dataclass(slots=True)
class CrawlResult:
    """Everything a finished crawl produced."""

    cache: EdgeCache
    roots: Roots
    issues: List[CrawlIssue] = field(default_factory=list)
    edges: List[EdgeRecord] = field(default_factory=list)
    abandoned: Set[str] = field(default_factory=set)


class CrawlSession:
    """Mutable state shared by all branches of a single crawl."""

    def __init__(self, *, dedupe_edges: bool = True, max_concurrency: int = 32) -> None:
        # module -> future resolved with its dependencies, or None if abandoned
        self.memo: Dict[str, asyncio.Future] = {}
        self.cache = EdgeCache()
        self.guard = DuplicateGuard() if dedupe_edges else None
        self.edges: List[EdgeRecord] = []
        self.issues: List[CrawlIssue] = []
        self.crawled_entries: Set[str] = set()
        self.abandoned: Set[str] = set()
        self.limit = asyncio.Semaphore(max_concurrency)

    def claim(self, module: str) -> Tuple[asyncio.Future, bool]:
        """Return the memo future for ``module`` and whether the caller owns it."""
        future = self.memo.get(module)
        if future is not None:
            return future, False
        future = asyncio.get_running_loop().create_future()
        self.memo[module] = future
        return future, True


def _settle(future: asyncio.Future, value: Optional[List[str]]) -> None:
    if not future.done():
        future.set_result(value)


def _first_error(group: BaseExceptionGroup) -> BaseException:
    error: BaseException = group
    while isinstance(error, BaseExceptionGroup):
        error = error.exceptions[0]
    return error


class Crawler:
    """Discovers the dependency closure of a set of entry modules.

    Parameters
    ----------
    config:
        Trace options; validated on construction.
    pipeline:
        Transform pipeline, built from ``config`` when omitted.
    extract:
        ``(text) -> identifiers`` collaborator. Defaults to the tree-sitter
        ``require`` extractor, using the grammar matching each module.
    resolve:
        ``(identifier, base_dir) -> path`` collaborator raising
        :class:`ResolutionFailure`. Defaults to Node-style resolution.
        Extraction and resolution run in worker threads.
    on_edge, on_error:
        Optional listeners for edge records and crawl issues.
    """

    def __init__(
        self,
        config: TraceConfig | None = None,
        *,
        pipeline: TransformPipeline | None = None,
        extract: ExtractFunc | None = None,
        resolve: ResolveFunc | None = None,
        on_edge: EdgeListener | None = None,
        on_error: IssueListener | None = None,
    ) -> None:
        self.config = config or TraceConfig()
        self.config.validate()
        self.pipeline = pipeline or TransformPipeline.from_config(self.config)
        self._extract = extract
        self._resolve = resolve
        self.on_edge = on_edge
        self.on_error = on_error

    def extract(self, text: str, module: str) -> List[str]:
        if self._extract is not None:
            return list(self._extract(text))
        return extract_identifiers(text, detect_language(module) or self.config.language)

    def resolve(self, identifier: str, base_dir: str) -> str:
        if self._resolve is not None:
            return self._resolve(identifier, base_dir)
        return resolve_identifier(
            identifier,
            base_dir,
            self.config.resolver,
            vendor_dir=self.config.vendor_dir,
        )

    def is_vendored(self, path: str) -> bool:
        return self.config.vendor_dir in Path(path).parts

    def verify(self, module: str, identifiers: Sequence[str]) -> Tuple[List[str], List[ResolutionFailure]]:
        """Resolve and filter the raw identifiers found in ``module``.

        Returns the deduplicated dependency list, in source order, and the
        resolution failures that were skipped.
        """

        config = self.config
        base_dir = str(Path(module).parent)
        dependencies: List[str] = []
        failures: List[ResolutionFailure] = []

        for identifier in identifiers:
            if config.pre_filter is not None and not config.pre_filter(identifier):
                continue
            try:
                path = self.resolve(identifier, base_dir)
            except ResolutionFailure as e:
                failures.append(e)
                continue
            if config.post_filter is not None and not config.post_filter(path):
                continue
            if config.ignore_vendored_dependencies and self.is_vendored(path):
                continue
            if config.identifier_mapper is not None:
                path = config.identifier_mapper(path)
            dependencies.append(path)

        return list(dict.fromkeys(dependencies)), failures

    async def crawl(self, entries: Sequence[SourceFile | str | Path]) -> CrawlResult:
        """Crawl the closure of ``entries`` and return the filled edge cache.

        Raises
        ------
        CrawlFailed
            When entries were given but none of them could be crawled.
        """

        session = CrawlSession(
            dedupe_edges=self.config.dedupe_edges,
            max_concurrency=self.config.max_concurrency,
        )
        sources = [
            entry if isinstance(entry, SourceFile) else SourceFile.from_path(entry)
            for entry in entries
        ]

        try:
            async with asyncio.TaskGroup() as group:
                for source in sources:
                    group.create_task(self._visit(session, source.path, None, source.contents))
        except BaseExceptionGroup as e:
            raise _first_error(e)

        roots = Roots()
        for source in sources:
            if source.path in session.crawled_entries:
                roots.add(source.path)

        if sources and not roots:
            raise CrawlFailed(session.issues)

        logger.info(
            "Crawled %d module(s) from %d root(s), %d issue(s)",
            len(session.cache),
            len(roots),
            len(session.issues),
        )
        return CrawlResult(
            cache=session.cache,
            roots=roots,
            issues=session.issues,
            edges=session.edges,
            abandoned=session.abandoned,
        )

    async def _visit(
        self,
        session: CrawlSession,
        module: str,
        parent: Optional[str],
        contents: Optional[bytes] = None,
    ) -> None:
        future, owner = session.claim(module)
        if not owner:
            dependencies = await asyncio.shield(future)
            logger.debug("Already crawled %s (reached from %s)", module, parent)
            if parent is None and dependencies is not None:
                session.crawled_entries.add(module)
            return

        try:
            dependencies = await self._investigate(session, module, parent, contents)
        except (ContentLoadError, TransformError) as e:
            _settle(future, None)
            session.abandoned.add(module)
            logger.warning("Abandoned %s: %s", module, e)
            self._report(session, CrawlIssue.from_error(module, e, parent))
            return
        except BaseException:
            future.cancel()
            raise

        _settle(future, dependencies)
        if parent is None:
            session.crawled_entries.add(module)
        self._file(session, EdgeRecord(subject=module, dependencies=tuple(dependencies), parent=parent))

        if dependencies:
            async with asyncio.TaskGroup() as group:
                for dependency in dependencies:
                    group.create_task(self._visit(session, dependency, module))

    async def _investigate(
        self,
        session: CrawlSession,
        module: str,
        parent: Optional[str],
        contents: Optional[bytes],
    ) -> List[str]:
        logger.debug("Crawling %s (from %s)", module, parent)
        if contents is None:
            async with session.limit:
                contents = await load_source(module)

        transformed = await self.pipeline.run(contents, module)
        try:
            text = transformed.decode("utf-8")
        except UnicodeDecodeError as e:
            raise TransformError("decode", module, str(e)) from e

        async with session.limit:
            identifiers = await asyncio.to_thread(self.extract, text, module)
            dependencies, failures = await asyncio.to_thread(self.verify, module, identifiers)

        for failure in failures:
            logger.debug("Dropped dependency of %s: %s", module, failure)
            if self.config.strict_resolution:
                self._report(session, CrawlIssue.from_error(module, failure, parent))
        return dependencies

    def _file(self, session: CrawlSession, edge: EdgeRecord) -> None:
        if session.guard is not None:
            if session.guard.seen(edge.subject, edge.dependencies):
                return
            session.guard.remember(edge.subject, edge.dependencies)
        session.cache.record(edge)
        session.edges.append(edge)
        if self.on_edge is not None:
            self.on_edge(edge)

    def _report(self, session: CrawlSession, issue: CrawlIssue) -> None:
        session.issues.append(issue)
        if self.on_error is not None:
            self.on_error(issue)


async def crawl(
    entries: Sequence[SourceFile | str | Path],
    config: TraceConfig | None = None,
    **kwargs,
) -> CrawlResult:
    """Convenience wrapper around :meth:`Crawler.crawl`."""
    return await Crawler(config, **kwargs).crawl(entries)
