"""
Transform stages.

Stage types are referenced by name from the pipeline file::

    stages:
      - type: sass
        output_style: compressed
      - type: write
        dest: app/css
"""

from typing import Any

from assetflow_engine.stages.base import BaseStage
from assetflow_engine.stages.files import CleanStage, ConcatStage, FilterStage, NewerStage, WriteStage
from assetflow_engine.stages.fonts import FontConvertStage
from assetflow_engine.stages.html import FileIncludeStage
from assetflow_engine.stages.images import ImageVariantsStage
from assetflow_engine.stages.scripts import JsMinifyStage
from assetflow_engine.stages.styles import CssMinifyStage, SassStage

STAGE_TYPES: dict[str, type[BaseStage]] = {
    "clean": CleanStage,
    "concat": ConcatStage,
    "css_minify": CssMinifyStage,
    "filter": FilterStage,
    "fonts": FontConvertStage,
    "images": ImageVariantsStage,
    "include": FileIncludeStage,
    "js_minify": JsMinifyStage,
    "newer": NewerStage,
    "sass": SassStage,
    "write": WriteStage,
}


def build_stage(stage_type: str, options: dict[str, Any] | None = None) -> BaseStage:
    """
    Instantiate a stage by type name.

    Raises:
        KeyError: unknown stage type
        TypeError/ValueError: invalid options
    """
    return STAGE_TYPES[stage_type](**(options or {}))


__all__ = [
    "STAGE_TYPES",
    "BaseStage",
    "CleanStage",
    "ConcatStage",
    "CssMinifyStage",
    "FileIncludeStage",
    "FilterStage",
    "FontConvertStage",
    "ImageVariantsStage",
    "JsMinifyStage",
    "NewerStage",
    "SassStage",
    "WriteStage",
    "build_stage",
]
