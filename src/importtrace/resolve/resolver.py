"""Node-style module resolution.

Maps a ``require`` identifier plus the directory of the requiring module to
the canonical absolute path of the file it loads:

1. Core modules (``fs``, ``node:path``...) have no file and fail.
2. Relative (``./``, ``../``) and absolute identifiers are tried as a file,
   then as a directory.
3. Bare identifiers are looked up in ``node_modules`` of the base directory
   and each of its ancestors.

A directory loads the ``main`` entry of its ``package.json`` when present,
otherwise its ``index`` file.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Iterable, Optional

from ..config import ResolverOptions
from ..errors import ResolutionFailure

CORE_MODULES = frozenset(
    {
        "assert", "async_hooks", "buffer", "child_process", "cluster", "console",
        "constants", "crypto", "dgram", "diagnostics_channel", "dns", "domain",
        "events", "fs", "http", "http2", "https", "inspector", "module", "net",
        "os", "path", "perf_hooks", "process", "punycode", "querystring",
        "readline", "repl", "stream", "string_decoder", "sys", "timers", "tls",
        "trace_events", "tty", "url", "util", "v8", "vm", "wasi",
        "worker_threads", "zlib",
    }
)


def is_core_module(identifier: str) -> bool:
    if identifier.startswith("node:"):
        return True
    return identifier.split("/", 1)[0] in CORE_MODULES


def _is_path_like(identifier: str) -> bool:
    return identifier in (".", "..") or identifier.startswith(("./", "../", "/"))


def _load_as_file(candidate: Path, extensions: Iterable[str]) -> Optional[Path]:
    if candidate.is_file():
        return candidate
    if not candidate.name:
        return None
    for ext in extensions:
        with_ext = candidate.with_name(candidate.name + ext)
        if with_ext.is_file():
            return with_ext
    return None


def _read_package(package_dir: Path, options: ResolverOptions) -> dict:
    manifest = package_dir / "package.json"
    if not manifest.is_file():
        return {}
    try:
        package = json.loads(manifest.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ResolutionFailure(str(package_dir), str(package_dir), f"unreadable package.json: {e}") from e
    if not isinstance(package, dict):
        return {}
    if options.package_filter is not None:
        package = options.package_filter(package, package_dir)
    return package


def _load_as_directory(candidate: Path, options: ResolverOptions) -> Optional[Path]:
    if not candidate.is_dir():
        return None

    main = _read_package(candidate, options).get("main")
    if isinstance(main, str) and main:
        target = candidate / main
        found = _load_as_file(target, options.extensions) or _load_index(target, options.extensions)
        if found is not None:
            return found

    return _load_index(candidate, options.extensions)


def _load_index(directory: Path, extensions: Iterable[str]) -> Optional[Path]:
    if not directory.is_dir():
        return None
    for ext in extensions:
        index = directory / f"index{ext}"
        if index.is_file():
            return index
    return None


def _node_modules_dirs(base_dir: Path, vendor_dir: str) -> Iterable[Path]:
    for directory in (base_dir, *base_dir.parents):
        if directory.name == vendor_dir:
            continue
        yield directory / vendor_dir


def resolve_identifier(
    identifier: str,
    base_dir: str | Path,
    options: ResolverOptions | None = None,
    *,
    vendor_dir: str = "node_modules",
) -> str:
    """Resolve ``identifier`` from ``base_dir`` to a canonical absolute path.

    Raises
    ------
    ResolutionFailure
        When the identifier names a core module or no matching file exists.
    """

    options = options or ResolverOptions()
    base = Path(base_dir)

    if not identifier:
        raise ResolutionFailure(identifier, str(base), "empty identifier")
    if is_core_module(identifier):
        raise ResolutionFailure(identifier, str(base), "core module")

    if _is_path_like(identifier):
        candidates = [Path(os.path.normpath(base / identifier))]
    else:
        candidates = [modules / identifier for modules in _node_modules_dirs(base, vendor_dir)]

    for candidate in candidates:
        found = _load_as_file(candidate, options.extensions) or _load_as_directory(candidate, options)
        if found is not None:
            return str(found.resolve())

    raise ResolutionFailure(identifier, str(base))
