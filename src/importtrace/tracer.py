"""Top-level API: glob the entry modules, crawl them, and assemble the tree.

Example
-------
>>> tracer = DependencyTracer(TraceConfig(entry_glob="src/**/*.js"))
>>> tracer.report(lambda case_file: print(case_file))
>>> report = tracer.investigate()
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence, Tuple

from .config import TraceConfig
from .crawl.crawler import Crawler, CrawlResult, ExtractFunc, ResolveFunc
from .errors import CrawlIssue
from .graph.assembler import GraphAssembler, Tree
from .graph.edges import EdgeRecord
from .lineup import SourceFile, list_entry_files
from .pipeline.transform import TransformPipeline
from .report import CallbackSink, Sink

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class TraceReport:
    """Outcome of one investigation."""

    case_file: Tree
    roots: List[str]
    issues: List[CrawlIssue] = field(default_factory=list)
    cycles: List[Tuple[str, str]] = field(default_factory=list)
    edges: List[EdgeRecord] = field(default_factory=list)
    module_count: int = 0


class DependencyTracer:
    """Wires entry discovery, crawling, assembly and sinks together.

    ``case_file`` and ``is_complete`` reflect the last finished
    investigation; ``on_complete`` listeners are called with its report.
    """

    def __init__(
        self,
        config: TraceConfig | None = None,
        *,
        extract: ExtractFunc | None = None,
        resolve: ResolveFunc | None = None,
        sinks: Sequence[Sink] = (),
    ) -> None:
        self.config = config or TraceConfig()
        self.config.validate()
        self.pipeline = TransformPipeline.from_config(self.config)
        self.extract = extract
        self.resolve = resolve
        self.sinks: List[Sink] = list(sinks)
        self.edge_listeners: List[Callable[[EdgeRecord], None]] = []
        self.complete_listeners: List[Callable[[TraceReport], None]] = []
        self.case_file: Tree = {}
        self.is_complete = False

    def report(self, callback: Callable[[Tree], None]) -> CallbackSink:
        """Register ``callback`` to receive the finished case file."""
        sink = CallbackSink(callback)
        self.sinks.append(sink)
        return sink

    def on_edge(self, listener: Callable[[EdgeRecord], None]) -> None:
        self.edge_listeners.append(listener)

    def on_complete(self, listener: Callable[[TraceReport], None]) -> None:
        self.complete_listeners.append(listener)

    def lineup(self) -> List[SourceFile]:
        """List the entry modules selected by ``config.entry_glob``."""
        exclude = (self.config.vendor_dir,) if self.config.ignore_vendored_dependencies else ()
        return list_entry_files(
            self.config.entry_glob,
            cwd=self.config.resolved_cwd(),
            exclude_dirs=exclude,
        )

    def _emit_edge(self, edge: EdgeRecord) -> None:
        for listener in self.edge_listeners:
            listener(edge)

    async def crawl(self, entries: Sequence[SourceFile]) -> CrawlResult:
        crawler = Crawler(
            self.config,
            pipeline=self.pipeline,
            extract=self.extract,
            resolve=self.resolve,
            on_edge=self._emit_edge,
        )
        return await crawler.crawl(entries)

    async def investigate_async(self, entries: Optional[Sequence[SourceFile]] = None) -> TraceReport:
        """Trace ``entries`` (the globbed lineup by default) into a report."""

        self.is_complete = False
        if entries is None:
            entries = self.lineup()
        logger.info("Tracing %d entry module(s)", len(entries))

        result = await self.crawl(entries)
        assembler = GraphAssembler(result.cache, result.abandoned)
        case_file = assembler.assemble(result.roots)

        for sink in self.sinks:
            sink.write(case_file)

        report = TraceReport(
            case_file=case_file,
            roots=result.roots.as_list(),
            issues=list(result.issues),
            cycles=list(assembler.cycles),
            edges=list(result.edges),
            module_count=len(result.cache),
        )
        self.case_file = case_file
        self.is_complete = True
        for listener in self.complete_listeners:
            listener(report)
        return report

    def investigate(self, entries: Optional[Sequence[SourceFile]] = None) -> TraceReport:
        """Blocking variant of :meth:`investigate_async`."""
        return asyncio.run(self.investigate_async(entries))
