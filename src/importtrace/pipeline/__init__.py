"""Transform pipeline applied to module content."""

from .transform import (
    BUILTIN_STAGES,
    InlineStage,
    NamedStage,
    StageRef,
    TransformPipeline,
    TransformStage,
    stage_ref,
)

__all__ = [
    "BUILTIN_STAGES",
    "InlineStage",
    "NamedStage",
    "StageRef",
    "TransformPipeline",
    "TransformStage",
    "stage_ref",
]
