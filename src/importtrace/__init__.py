"""importtrace package.

Crawls the ``require``/``import`` graph of JavaScript and TypeScript entry
modules and assembles it into a nested dependency tree.
"""

from .config import ResolverOptions, TraceConfig, load_config
from .crawl import Crawler, CrawlResult
from .errors import (
    ConfigurationError,
    ContentLoadError,
    CrawlFailed,
    CrawlIssue,
    ResolutionFailure,
    TraceError,
    TransformError,
)
from .graph import DuplicateGuard, EdgeCache, EdgeRecord, GraphAssembler, Roots, assemble
from .lineup import SourceFile, list_entry_files
from .pipeline import InlineStage, NamedStage, TransformPipeline
from .tracer import DependencyTracer, TraceReport

__all__ = [
    "ConfigurationError",
    "ContentLoadError",
    "CrawlFailed",
    "CrawlIssue",
    "CrawlResult",
    "Crawler",
    "DependencyTracer",
    "DuplicateGuard",
    "EdgeCache",
    "EdgeRecord",
    "GraphAssembler",
    "InlineStage",
    "NamedStage",
    "ResolutionFailure",
    "ResolverOptions",
    "Roots",
    "SourceFile",
    "TraceConfig",
    "TraceError",
    "TraceReport",
    "TransformError",
    "TransformPipeline",
    "assemble",
    "list_entry_files",
    "load_config",
]
