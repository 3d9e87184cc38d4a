"""Entry module discovery and module content loading."""

from __future__ import annotations

import asyncio
import glob
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional

from .errors import ContentLoadError

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class SourceFile:
    """A module handed to the crawler.

    ``contents`` is ``None`` when the file still has to be read; the crawler
    loads it on demand and reports a :class:`ContentLoadError` on failure.
    """

    path: str
    contents: Optional[bytes] = None

    @classmethod
    def from_path(cls, path: str | Path, contents: bytes | None = None) -> "SourceFile":
        return cls(path=str(Path(path).resolve()), contents=contents)


def iter_entry_paths(
    pattern: str,
    *,
    cwd: Path | None = None,
    exclude_dirs: Iterable[str] = (),
) -> List[Path]:
    """Return the files matching ``pattern`` under ``cwd``, sorted.

    Paths containing one of ``exclude_dirs`` as a component are skipped.
    """

    root = (cwd or Path.cwd()).resolve()
    excluded = set(exclude_dirs)
    matches = []
    for match in glob.glob(pattern, root_dir=root, recursive=True):
        path = (root / match).resolve()
        if not path.is_file():
            continue
        if excluded and excluded.intersection(path.parts):
            continue
        matches.append(path)
    return sorted(set(matches))


def list_entry_files(
    pattern: str,
    *,
    cwd: Path | None = None,
    exclude_dirs: Iterable[str] = (),
) -> List[SourceFile]:
    """Glob the entry modules and read their contents."""

    entries = []
    for path in iter_entry_paths(pattern, cwd=cwd, exclude_dirs=exclude_dirs):
        try:
            contents: Optional[bytes] = path.read_bytes()
        except OSError as e:
            logger.warning("Could not read entry %s: %s", path, e)
            contents = None
        entries.append(SourceFile(path=str(path), contents=contents))
    return entries


async def load_source(path: str) -> bytes:
    """Read a module's raw content without blocking the event loop."""

    try:
        return await asyncio.to_thread(Path(path).read_bytes)
    except OSError as e:
        raise ContentLoadError(path, e.strerror or str(e)) from e
