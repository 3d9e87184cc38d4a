"""Build the nested dependency tree from the flat edge cache."""

from __future__ import annotations

import logging
from typing import AbstractSet, Dict, Iterable, List, Tuple

from .edges import EdgeCache

logger = logging.getLogger(__name__)

Tree = Dict[str, "Tree"]


class GraphAssembler:
    """Expands every root into an independent nested mapping.

    Shared dependencies are expanded once per referrer, so two roots that
    depend on the same module get value-equal but distinct subtrees.
    A dependency that is already on the current expansion path closes a
    cycle; it is emitted as an empty mapping and the offending
    ``(referrer, dependency)`` pair is listed in :attr:`cycles`.

    Modules in ``skip`` (branches abandoned during the crawl) are left out
    of the tree entirely.
    """

    def __init__(self, cache: EdgeCache, skip: AbstractSet[str] = frozenset()) -> None:
        self.cache = cache
        self.skip = skip
        self.cycles: List[Tuple[str, str]] = []

    def build(self, module: str) -> Tree:
        return self._expand(module, [module])

    def _expand(self, module: str, path: List[str]) -> Tree:
        subtree: Tree = {}
        for dependency in self.cache.get(module):
            if dependency in self.skip:
                continue
            if dependency in path:
                logger.debug("Cycle %s -> %s left unexpanded", module, dependency)
                if (module, dependency) not in self.cycles:
                    self.cycles.append((module, dependency))
                subtree[dependency] = {}
                continue
            path.append(dependency)
            subtree[dependency] = self._expand(dependency, path)
            path.pop()
        return subtree

    def assemble(self, roots: Iterable[str]) -> Tree:
        case_file: Tree = {}
        for root in roots:
            case_file[root] = self.build(root)
        return case_file


def assemble(cache: EdgeCache, roots: Iterable[str], skip: AbstractSet[str] = frozenset()) -> Tree:
    """Return the case file for ``roots``: one expanded subtree per root."""
    return GraphAssembler(cache, skip).assemble(roots)
