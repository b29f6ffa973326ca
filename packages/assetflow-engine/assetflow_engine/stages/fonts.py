"""Web font conversion (fontTools): TTF/OTF → WOFF/WOFF2."""

import io

from fontTools.ttLib import TTFont, TTLibError

from assetflow_engine.pipeline.domain.models import Asset, StageContext
from assetflow_engine.stages.base import BaseStage

FONT_SUFFIXES = (".ttf", ".otf")
FLAVORS = ("woff", "woff2")


class FontConvertStage(BaseStage):
    """Emit a web font per requested flavor; optionally keep the source font."""

    name = "fonts"

    def __init__(self, formats: list[str] | None = None, keep_source: bool = False):
        formats = formats or list(FLAVORS)
        unknown = [fmt for fmt in formats if fmt not in FLAVORS]
        if unknown:
            raise ValueError(f"Unsupported font formats: {', '.join(unknown)}")
        self.formats = formats
        self.keep_source = keep_source

    def run(self, assets: list[Asset], context: StageContext) -> list[Asset]:
        result = []
        for asset in assets:
            if asset.suffix not in FONT_SUFFIXES:
                result.append(asset)
                continue
            if self.keep_source:
                result.append(asset)
            for flavor in self.formats:
                result.append(asset.with_content(self._convert(asset, flavor), suffix=f".{flavor}"))
        return result

    def _convert(self, asset: Asset, flavor: str) -> bytes:
        try:
            font = TTFont(io.BytesIO(asset.content))
            font.flavor = flavor
            buffer = io.BytesIO()
            font.save(buffer)
        except (TTLibError, ImportError) as e:
            # woff2 needs the brotli module
            raise self.fail(f"Cannot convert {asset.path} to {flavor}: {e}") from e
        return buffer.getvalue()
