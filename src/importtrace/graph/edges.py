"""Flat adjacency store filled in while modules are crawled."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Tuple


@dataclass(frozen=True, slots=True)
class EdgeRecord:
    """One subject module and the modules it directly depends on.

    ``parent`` is ``None`` only for entry modules.
    """

    subject: str
    dependencies: Tuple[str, ...]
    parent: Optional[str] = None

    @property
    def is_root(self) -> bool:
        return self.parent is None


@dataclass(slots=True)
class Roots:
    """Ordered, duplicate-free entry module identities."""

    _order: List[str] = field(default_factory=list)

    def add(self, module: str) -> bool:
        if module in self._order:
            return False
        self._order.append(module)
        return True

    def __iter__(self) -> Iterator[str]:
        return iter(self._order)

    def __len__(self) -> int:
        return len(self._order)

    def __contains__(self, module: object) -> bool:
        return module in self._order

    def as_list(self) -> List[str]:
        return list(self._order)


@dataclass(slots=True)
class EdgeCache:
    """Mapping from module identity to its direct dependencies.

    Every module named as a dependency is registered as a key too, so the
    assembler never meets an unknown node. The store is only touched from
    the event loop thread and none of its methods suspend, so concurrent
    crawl branches cannot interleave inside a call.
    """

    edges: Dict[str, List[str]] = field(default_factory=dict)

    def record(self, edge: EdgeRecord) -> None:
        dependencies = self.get(edge.subject)
        for dependency in edge.dependencies:
            self.get(dependency)
            if dependency not in dependencies:
                dependencies.append(dependency)

    def get(self, module: str) -> List[str]:
        """Return the dependency list of ``module``, registering it if unseen."""
        if module not in self.edges:
            self.edges[module] = []
        return self.edges[module]

    def contains(self, module: str) -> bool:
        return module in self.edges

    __contains__ = contains

    def __len__(self) -> int:
        return len(self.edges)

    def modules(self) -> List[str]:
        return list(self.edges)

    def as_dict(self) -> Dict[str, List[str]]:
        return {module: list(deps) for module, deps in self.edges.items()}
