"""Sinks receiving the finished case file."""

from __future__ import annotations

import json
from pathlib import Path
from typing import IO, Callable, Protocol

import yaml

from .graph.assembler import Tree


class Sink(Protocol):
    def write(self, case_file: Tree) -> None:
        ...


class CallbackSink:
    """Hands the case file to a callback."""

    def __init__(self, callback: Callable[[Tree], None]) -> None:
        self.callback = callback

    def write(self, case_file: Tree) -> None:
        self.callback(case_file)


class _SerializingSink:
    def __init__(self, target: Path | str | IO[str]) -> None:
        self.target = target

    def dumps(self, case_file: Tree) -> str:
        raise NotImplementedError

    def write(self, case_file: Tree) -> None:
        text = self.dumps(case_file)
        if isinstance(self.target, (str, Path)):
            path = Path(self.target)
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, "w", encoding="utf-8") as f:
                f.write(text)
        else:
            self.target.write(text)


class JsonSink(_SerializingSink):
    """Writes the case file as indented JSON to a path or text stream."""

    def __init__(self, target: Path | str | IO[str], indent: int = 2) -> None:
        super().__init__(target)
        self.indent = indent

    def dumps(self, case_file: Tree) -> str:
        return json.dumps(case_file, indent=self.indent) + "\n"


class YamlSink(_SerializingSink):
    """Writes the case file as block-style YAML, keeping key order."""

    def dumps(self, case_file: Tree) -> str:
        return yaml.safe_dump(case_file, default_flow_style=False, sort_keys=False)
