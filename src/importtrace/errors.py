"""Exceptions and failure records raised while tracing module dependencies."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional


class TraceError(Exception):
    """Base class for every error raised by importtrace."""


class ConfigurationError(TraceError):
    """Malformed tracer, pipeline, or resolver configuration.

    Always fatal: it is raised before any module is crawled.
    """


class ContentLoadError(TraceError):
    """The raw content of a scheduled module could not be read."""

    def __init__(self, module: str, reason: str) -> None:
        super().__init__(f"Could not load {module}: {reason}")
        self.module = module
        self.reason = reason


class TransformError(TraceError):
    """A transform stage failed on a module."""

    def __init__(self, stage: str, module: str, reason: str) -> None:
        super().__init__(f"Transform stage '{stage}' failed on {module}: {reason}")
        self.stage = stage
        self.module = module
        self.reason = reason


class ResolutionFailure(TraceError):
    """A dependency identifier could not be mapped to a module path."""

    def __init__(self, identifier: str, base_dir: str, reason: str = "not found") -> None:
        super().__init__(f"Cannot resolve '{identifier}' from {base_dir}: {reason}")
        self.identifier = identifier
        self.base_dir = base_dir
        self.reason = reason


@dataclass(slots=True)
class CrawlIssue:
    """A per-module failure observed during a crawl.

    ``kind`` is the name of the exception class that abandoned (or, for
    resolution failures in strict mode, degraded) the module's branch.
    """

    module: str
    kind: str
    message: str
    parent: Optional[str] = None

    @classmethod
    def from_error(cls, module: str, error: TraceError, parent: Optional[str] = None) -> "CrawlIssue":
        return cls(module=module, kind=type(error).__name__, message=str(error), parent=parent)


class CrawlFailed(TraceError):
    """Entry modules were supplied but none of them could be crawled."""

    def __init__(self, issues: List[CrawlIssue]) -> None:
        super().__init__(f"No entry module could be crawled ({len(issues)} issue(s))")
        self.issues = issues
