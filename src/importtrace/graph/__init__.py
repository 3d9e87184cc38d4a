"""Edge bookkeeping and tree assembly."""

from .assembler import GraphAssembler, Tree, assemble
from .edges import EdgeCache, EdgeRecord, Roots
from .guard import DuplicateGuard

__all__ = [
    "DuplicateGuard",
    "EdgeCache",
    "EdgeRecord",
    "GraphAssembler",
    "Roots",
    "Tree",
    "assemble",
]
