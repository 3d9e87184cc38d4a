"""Secondary cache of already filed (subject, dependencies) pairs."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Set, Tuple


@dataclass(slots=True)
class DuplicateGuard:
    """Remembers which dependency batches were filed for a subject.

    The crawler's memo already guarantees a single edge record per module;
    the guard only catches a subject re-offered with an identical batch.
    """

    _seen: Set[Tuple[str, Tuple[str, ...]]] = field(default_factory=set)

    def seen(self, subject: str, dependencies: Iterable[str]) -> bool:
        return (subject, tuple(dependencies)) in self._seen

    def remember(self, subject: str, dependencies: Iterable[str]) -> "DuplicateGuard":
        self._seen.add((subject, tuple(dependencies)))
        return self

    def __len__(self) -> int:
        return len(self._seen)
