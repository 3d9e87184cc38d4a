"""Text transforms applied to module content before extraction.

A stage is any callable ``(text, options) -> text`` (or an awaitable of
text). Stages are referenced either by name (a built-in such as
``compile-modules`` or an importable ``module:attr``) or inline by handing
the callable itself. References are resolved once, when the pipeline is
built, and the resulting stages are reused for every module.

A reference that resolves to a class is instantiated once with the stage
options as keyword arguments; the instance is then called per module.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Sequence, Union

from ..ast.parser import detect_language, lower_module_syntax
from ..config import TraceConfig, import_object
from ..errors import ConfigurationError, TransformError

logger = logging.getLogger(__name__)

StageFunc = Callable[[str, Mapping[str, Any]], Union[str, bytes, Awaitable[Union[str, bytes]]]]


@dataclass(frozen=True, slots=True)
class NamedStage:
    """A stage referenced by built-in name or ``module:attr`` identifier."""

    identifier: str
    options: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class InlineStage:
    """A stage handed over directly as a callable."""

    transform: Any
    options: Mapping[str, Any] = field(default_factory=dict)
    name: str | None = None


StageRef = Union[NamedStage, InlineStage]


def compile_modules(text: str, options: Mapping[str, Any]) -> str:
    """Built-in stage rewriting ES module syntax into ``require`` calls."""
    return lower_module_syntax(text, options.get("language", "javascript"))


class RegexReplace:
    """Built-in stage substituting every match of ``pattern``."""

    def __init__(self, pattern: str, replacement: str = "", count: int = 0, flags: int = 0) -> None:
        try:
            self.regex = re.compile(pattern, flags)
        except re.error as e:
            raise ConfigurationError(f"Invalid regex-replace pattern {pattern!r}: {e}") from e
        self.replacement = replacement
        self.count = count

    def __call__(self, text: str, options: Mapping[str, Any]) -> str:
        return self.regex.sub(self.replacement, text, count=self.count)


BUILTIN_STAGES: Dict[str, Any] = {
    "compile-modules": compile_modules,
    "regex-replace": RegexReplace,
}


def stage_ref(value: Any) -> StageRef:
    """Coerce a configured stage entry into a :data:`StageRef`."""

    if isinstance(value, (NamedStage, InlineStage)):
        return value
    if isinstance(value, str):
        return NamedStage(value)
    if isinstance(value, Mapping):
        target = value.get("stage")
        options = value.get("options") or {}
        if not isinstance(options, Mapping):
            raise ConfigurationError(f"Options for stage {target!r} must be a mapping")
        if isinstance(target, str):
            return NamedStage(target, dict(options))
        if callable(target):
            return InlineStage(target, dict(options))
        raise ConfigurationError(f"Stage entry {dict(value)!r} needs a 'stage' name or callable")
    if callable(value):
        return InlineStage(value)
    raise ConfigurationError(f"Cannot use {value!r} as a transform stage")


@dataclass(slots=True)
class TransformStage:
    """A resolved stage, ready to be applied to module text."""

    name: str
    func: StageFunc
    options: Mapping[str, Any]

    @classmethod
    def from_ref(cls, ref: StageRef) -> "TransformStage":
        if isinstance(ref, NamedStage):
            handle = BUILTIN_STAGES.get(ref.identifier)
            if handle is None:
                handle = import_object(ref.identifier)
            name = ref.identifier
        else:
            handle = ref.transform
            name = ref.name or getattr(handle, "__name__", repr(handle))

        options = dict(ref.options)
        if inspect.isclass(handle):
            try:
                handle = handle(**options)
            except ConfigurationError:
                raise
            except TypeError as e:
                raise ConfigurationError(f"Cannot create stage '{name}': {e}") from e
        if not callable(handle):
            raise ConfigurationError(f"Stage '{name}' is not callable")
        return cls(name=name, func=handle, options=options)

    async def apply(self, text: str, module: str) -> str:
        try:
            result = self.func(text, self.options)
            if inspect.isawaitable(result):
                result = await result
        except TransformError:
            raise
        except Exception as e:
            raise TransformError(self.name, module, str(e) or type(e).__name__) from e

        if isinstance(result, bytes):
            try:
                result = result.decode("utf-8")
            except UnicodeDecodeError as e:
                raise TransformError(self.name, module, f"produced undecodable bytes: {e}") from e
        if not isinstance(result, str):
            raise TransformError(self.name, module, f"returned {type(result).__name__}, expected text")
        return result


class TransformPipeline:
    """Applies the configured stages, in order, to raw module content."""

    def __init__(
        self,
        stages: Sequence[TransformStage] = (),
        *,
        compile_module_syntax: bool = False,
        language: str = "javascript",
    ) -> None:
        self.stages: List[TransformStage] = list(stages)
        self.compile_module_syntax = compile_module_syntax
        self.language = language

    @classmethod
    def from_refs(cls, refs: Sequence[Any], **kwargs: Any) -> "TransformPipeline":
        return cls([TransformStage.from_ref(stage_ref(ref)) for ref in refs], **kwargs)

    @classmethod
    def from_config(cls, config: TraceConfig) -> "TransformPipeline":
        return cls.from_refs(
            config.transform_stages,
            compile_module_syntax=config.compile_module_syntax,
            language=config.language,
        )

    @property
    def is_noop(self) -> bool:
        return not self.stages and not self.compile_module_syntax

    async def run(self, raw: bytes, module: str) -> bytes:
        """Return ``raw`` after every stage has been applied.

        Raises :class:`TransformError` naming the failing stage and module.
        """

        if self.is_noop:
            return raw

        try:
            text = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise TransformError("decode", module, str(e)) from e

        if self.compile_module_syntax:
            language = detect_language(module) or self.language
            try:
                text = await asyncio.to_thread(lower_module_syntax, text, language)
            except Exception as e:
                raise TransformError("compile-modules", module, str(e) or type(e).__name__) from e

        for stage in self.stages:
            text = await stage.apply(text, module)
            logger.debug("Applied stage %s to %s", stage.name, module)

        return text.encode("utf-8")
