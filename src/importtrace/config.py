"""Configuration for a dependency trace."""

from __future__ import annotations

import importlib
import json
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

import yaml

from .errors import ConfigurationError

SUPPORTED_LANGUAGES = ("javascript", "typescript", "tsx")

_HOOK_FIELDS = ("pre_filter", "post_filter", "identifier_mapper")


def import_object(identifier: str) -> Any:
    """Import ``module:attr`` (or dotted ``module.attr``) and return the attribute."""

    if ":" in identifier:
        module_name, _, attr_path = identifier.partition(":")
    else:
        module_name, _, attr_path = identifier.rpartition(".")
    if not module_name or not attr_path:
        raise ConfigurationError(f"'{identifier}' is not an importable 'module:attr' reference")

    try:
        target: Any = importlib.import_module(module_name)
    except ImportError as e:
        raise ConfigurationError(f"Cannot import module '{module_name}': {e}") from e

    for attr in attr_path.split("."):
        try:
            target = getattr(target, attr)
        except AttributeError as e:
            raise ConfigurationError(f"'{module_name}' has no attribute '{attr_path}'") from e
    return target


@dataclass(slots=True)
class ResolverOptions:
    """Options handed to the module resolver.

    Attributes
    ----------
    extensions:
        File extensions tried, in order, when an identifier names a file
        without its extension.
    package_filter:
        Optional hook ``(package_json: dict, package_dir: Path) -> dict``
        applied to every ``package.json`` before its ``main`` is read.
    """

    extensions: Sequence[str] = (".js", ".jsx")
    package_filter: Optional[Callable[[dict, Path], dict]] = None


@dataclass(slots=True)
class TraceConfig:
    """Options recognised by the tracer.

    Attributes
    ----------
    entry_glob:
        Glob pattern, relative to ``cwd``, selecting the entry modules.
    cwd:
        Directory the glob is evaluated from. Defaults to the process
        working directory.
    ignore_vendored_dependencies:
        Drop resolved dependencies that live under ``vendor_dir``.
    vendor_dir:
        Directory name that marks third-party modules.
    pre_filter:
        Predicate on raw identifiers; identifiers it rejects are never resolved.
    post_filter:
        Predicate on resolved paths.
    identifier_mapper:
        Function applied to every kept resolved path.
    resolver:
        :class:`ResolverOptions` for the default resolver.
    transform_stages:
        Ordered stage references: built-in names, ``module:attr`` strings,
        callables, or ``{"stage": ..., "options": {...}}`` mappings.
    compile_module_syntax:
        Rewrite ``import``/``export ... from`` statements into ``require``
        calls before the configured stages run.
    language:
        Grammar used for parsing (``javascript``, ``typescript`` or ``tsx``).
    strict_resolution:
        Report unresolvable identifiers as crawl issues.
    dedupe_edges:
        Keep a :class:`~importtrace.graph.guard.DuplicateGuard` in front of
        the edge cache.
    max_concurrency:
        Upper bound on concurrently running loads and resolutions.
    """

    entry_glob: str = "**/*.js"
    cwd: Path | None = None
    ignore_vendored_dependencies: bool = True
    vendor_dir: str = "node_modules"
    pre_filter: Optional[Callable[[str], bool]] = None
    post_filter: Optional[Callable[[str], bool]] = None
    identifier_mapper: Optional[Callable[[str], str]] = None
    resolver: ResolverOptions = field(default_factory=ResolverOptions)
    transform_stages: List[Any] = field(default_factory=list)
    compile_module_syntax: bool = True
    language: str = "javascript"
    strict_resolution: bool = False
    dedupe_edges: bool = True
    max_concurrency: int = 32

    def resolved_cwd(self) -> Path:
        """Return the absolute directory entry globs are evaluated from."""

        return (self.cwd or Path.cwd()).resolve()

    def validate(self) -> None:
        """Raise :class:`ConfigurationError` when an option is unusable."""

        if not isinstance(self.entry_glob, str) or not self.entry_glob:
            raise ConfigurationError("entry_glob must be a non-empty glob pattern")
        if not self.vendor_dir:
            raise ConfigurationError("vendor_dir must not be empty")
        if self.language not in SUPPORTED_LANGUAGES:
            raise ConfigurationError(
                f"Unsupported language '{self.language}'; expected one of {', '.join(SUPPORTED_LANGUAGES)}"
            )
        if not isinstance(self.max_concurrency, int) or self.max_concurrency < 1:
            raise ConfigurationError("max_concurrency must be a positive integer")
        for name in _HOOK_FIELDS:
            hook = getattr(self, name)
            if hook is not None and not callable(hook):
                raise ConfigurationError(f"{name} must be callable")
        if isinstance(self.resolver.extensions, str) or not all(
            isinstance(ext, str) and ext.startswith(".") for ext in self.resolver.extensions
        ):
            raise ConfigurationError("resolver.extensions must be a list of '.ext' strings")
        if self.resolver.package_filter is not None and not callable(self.resolver.package_filter):
            raise ConfigurationError("resolver.package_filter must be callable")
        if not isinstance(self.transform_stages, (list, tuple)):
            raise ConfigurationError("transform_stages must be a list")


def _read_mapping(path: Path) -> Dict[str, Any]:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigurationError(f"Cannot read config file {path}: {e}") from e

    try:
        if path.suffix.lower() == ".json":
            data = json.loads(text)
        else:
            data = yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Invalid config file {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {path} must contain a mapping")
    return data


def _resolve_hook(name: str, value: Any) -> Any:
    if isinstance(value, str):
        return import_object(value)
    if value is not None and not callable(value):
        raise ConfigurationError(f"{name} must be a callable or a 'module:attr' string")
    return value


def config_from_mapping(data: Mapping[str, Any], *, base_dir: Path | None = None) -> TraceConfig:
    """Build a :class:`TraceConfig` from plain data.

    ``cwd`` values are interpreted relative to ``base_dir`` when given.
    """

    known = {f.name for f in fields(TraceConfig)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigurationError(f"Unknown configuration key(s): {', '.join(unknown)}")

    values = dict(data)
    for name in _HOOK_FIELDS:
        if name in values:
            values[name] = _resolve_hook(name, values[name])

    if values.get("cwd") is not None:
        cwd = Path(values["cwd"])
        if base_dir is not None and not cwd.is_absolute():
            cwd = base_dir / cwd
        values["cwd"] = cwd

    resolver = values.get("resolver")
    if resolver is None:
        values["resolver"] = ResolverOptions()
    elif isinstance(resolver, Mapping):
        extra = sorted(set(resolver) - {"extensions", "package_filter"})
        if extra:
            raise ConfigurationError(f"Unknown resolver option(s): {', '.join(extra)}")
        options = ResolverOptions()
        if "extensions" in resolver:
            options.extensions = tuple(resolver["extensions"] or ())
        options.package_filter = _resolve_hook("resolver.package_filter", resolver.get("package_filter"))
        values["resolver"] = options
    elif not isinstance(resolver, ResolverOptions):
        raise ConfigurationError("resolver must be a mapping")

    if "transform_stages" in values and values["transform_stages"] is None:
        values["transform_stages"] = []

    config = TraceConfig(**values)
    config.validate()
    return config


def load_config(path: Path) -> TraceConfig:
    """Load a YAML (or ``.json``) configuration file."""

    path = Path(path)
    return config_from_mapping(_read_mapping(path), base_dir=path.resolve().parent)
