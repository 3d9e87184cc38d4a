"""Command line interface for tracing module dependency trees."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Iterable

from .config import SUPPORTED_LANGUAGES, TraceConfig, load_config
from .errors import ConfigurationError, CrawlFailed
from .report import JsonSink, YamlSink
from .tracer import DependencyTracer


def _resolve_config(args: argparse.Namespace) -> TraceConfig:
    config = load_config(args.config) if args.config is not None else TraceConfig()
    config.entry_glob = args.pattern
    if args.cwd is not None:
        config.cwd = args.cwd
    if args.include_vendored:
        config.ignore_vendored_dependencies = False
    if args.no_compile_modules:
        config.compile_module_syntax = False
    if args.transform:
        config.transform_stages = list(config.transform_stages) + list(args.transform)
    if args.extension:
        config.resolver.extensions = tuple(args.extension)
    if args.language is not None:
        config.language = args.language
    if args.strict:
        config.strict_resolution = True
    config.validate()
    return config


def _trace(args: argparse.Namespace) -> int:
    try:
        config = _resolve_config(args)
        tracer = DependencyTracer(config)
    except ConfigurationError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    sink_cls = YamlSink if args.format == "yaml" else JsonSink
    tracer.sinks.append(sink_cls(args.output if args.output is not None else sys.stdout))

    try:
        report = tracer.investigate()
    except CrawlFailed as e:
        print(f"Error: {e}", file=sys.stderr)
        for issue in e.issues:
            print(f"  {issue.kind}: {issue.message}", file=sys.stderr)
        return 1
    except ConfigurationError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    summary = sys.stderr if args.output is None else sys.stdout
    print("Trace summary:", file=summary)
    print(f"  Roots              : {len(report.roots)}", file=summary)
    print(f"  Modules            : {report.module_count}", file=summary)
    print(f"  Cycles             : {len(report.cycles)}", file=summary)
    abandoned = [issue for issue in report.issues if issue.kind != "ResolutionFailure"]
    print(f"  Abandoned branches : {len(abandoned)}", file=summary)
    print(f"  Issues             : {len(report.issues)}", file=summary)
    for issue in report.issues:
        print(f"    {issue.kind}: {issue.message}", file=summary)
    if args.output is not None:
        print(f"Wrote dependency tree to {args.output}", file=summary)
    return 0


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--verbose",
        "-v",
        action="count",
        default=0,
        help="Log crawl progress (repeat for debug output)",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    trace_parser = subparsers.add_parser("trace", help="Trace the dependency tree of entry modules")
    trace_parser.add_argument("pattern", help="Glob selecting the entry modules, e.g. 'src/**/*.js'")
    trace_parser.add_argument("--cwd", type=Path, help="Directory the glob is evaluated from")
    trace_parser.add_argument("--config", type=Path, help="YAML or JSON configuration file")
    trace_parser.add_argument(
        "--format",
        choices=("json", "yaml"),
        default="json",
        help="Output format of the dependency tree",
    )
    trace_parser.add_argument("--output", "-o", type=Path, help="Write the tree to this file")
    trace_parser.add_argument(
        "--include-vendored",
        action="store_true",
        help="Follow dependencies that resolve into node_modules",
    )
    trace_parser.add_argument(
        "--no-compile-modules",
        action="store_true",
        help="Do not rewrite import/export statements before extraction",
    )
    trace_parser.add_argument(
        "--transform",
        action="append",
        metavar="STAGE",
        help="Transform stage (built-in name or module:attr); repeatable",
    )
    trace_parser.add_argument(
        "--extension",
        action="append",
        metavar="EXT",
        help="Extension tried during resolution, in order; repeatable",
    )
    trace_parser.add_argument("--language", choices=SUPPORTED_LANGUAGES, help="Fallback grammar")
    trace_parser.add_argument(
        "--strict",
        action="store_true",
        help="Report unresolvable identifiers",
    )
    trace_parser.set_defaults(func=_trace)

    return parser


def main(argv: Iterable[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)
    if args.verbose:
        logging.basicConfig(
            level=logging.DEBUG if args.verbose > 1 else logging.INFO,
            format="%(levelname)s %(name)s: %(message)s",
        )
    return args.func(args)


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    raise SystemExit(main())
