"""Stylesheet stages: Sass compilation (libsass) and CSS minification (rcssmin)."""

import rcssmin
import sass

from assetflow_engine.pipeline.domain.models import Asset, StageContext
from assetflow_engine.stages.base import BaseStage

SASS_SUFFIXES = (".scss", ".sass")
OUTPUT_STYLES = ("nested", "expanded", "compact", "compressed")


class SassStage(BaseStage):
    """
    Compile ``.scss``/``.sass`` assets to ``.css``.

    Other assets pass through unchanged; partials (``_name.scss``) are
    dropped since they are only meant to be imported.

    With ``source_map`` each stylesheet read from disk is followed by a
    ``<name>.css.map`` asset (sources embedded) and ends with a
    ``sourceMappingURL`` comment.
    """

    name = "sass"

    def __init__(
        self,
        output_style: str = "expanded",
        include_paths: list[str] | None = None,
        source_map: bool = False,
    ):
        if output_style not in OUTPUT_STYLES:
            raise ValueError(f"output_style must be one of {', '.join(OUTPUT_STYLES)}")
        self.output_style = output_style
        self.include_paths = list(include_paths or [])
        self.source_map = source_map

    def run(self, assets: list[Asset], context: StageContext) -> list[Asset]:
        include_paths = [str(context.resolve(path)) for path in self.include_paths]
        result = []
        for asset in assets:
            if asset.suffix not in SASS_SUFFIXES:
                result.append(asset)
                continue
            if asset.path.name.startswith("_"):
                continue

            paths = include_paths
            if asset.source is not None:
                paths = [str(asset.source.parent), *include_paths]
            try:
                if self.source_map and asset.source is not None:
                    css, source_map = sass.compile(
                        filename=str(asset.source),
                        output_style=self.output_style,
                        include_paths=paths,
                        source_map_filename=str(asset.source.with_suffix(".css.map")),
                        output_filename_hint=str(asset.source.with_suffix(".css")),
                        source_map_contents=True,
                    )
                else:
                    css = sass.compile(
                        string=asset.text,
                        indented=asset.suffix == ".sass",
                        output_style=self.output_style,
                        include_paths=paths,
                    )
                    source_map = None
            except sass.CompileError as e:
                raise self.fail(str(e), file=str(asset.path)) from e
            result.append(asset.with_content(css, suffix=".css"))
            if source_map is not None:
                result.append(asset.with_content(source_map, suffix=".css.map"))
        return result


class CssMinifyStage(BaseStage):
    """Minify ``.css`` assets."""

    name = "css_minify"

    def __init__(self, keep_bang_comments: bool = False):
        self.keep_bang_comments = keep_bang_comments

    def run(self, assets: list[Asset], context: StageContext) -> list[Asset]:
        return [
            asset.with_content(rcssmin.cssmin(asset.text, keep_bang_comments=self.keep_bang_comments))
            if asset.suffix == ".css"
            else asset
            for asset in assets
        ]
