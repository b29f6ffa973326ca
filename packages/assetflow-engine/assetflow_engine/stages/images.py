"""Image variants (Pillow): raster sources → AVIF/WebP, vector and WebP pass through."""

import io

from PIL import Image, UnidentifiedImageError

from assetflow_engine.pipeline.domain.models import Asset, StageContext
from assetflow_engine.stages.base import BaseStage, normalize_suffixes

RASTER_SUFFIXES = (".jpg", ".jpeg", ".png")
FORMATS = {"webp": "WEBP", "avif": "AVIF"}


class ImageVariantsStage(BaseStage):
    """
    Emit one converted asset per requested format for each raster image.

    Assets whose suffix is in ``passthrough`` are emitted unchanged; anything
    else is dropped.
    """

    name = "images"

    def __init__(
        self,
        formats: list[str] | None = None,
        quality: int = 80,
        passthrough: list[str] | None = None,
    ):
        formats = formats or ["avif", "webp"]
        unknown = [fmt for fmt in formats if fmt.lower() not in FORMATS]
        if unknown:
            raise ValueError(f"Unsupported image formats: {', '.join(unknown)}")
        if not 1 <= quality <= 100:
            raise ValueError("quality must be between 1 and 100")
        self.formats = [fmt.lower() for fmt in formats]
        self.quality = quality
        self.passthrough = normalize_suffixes(passthrough if passthrough is not None else [".svg", ".webp"])

    def run(self, assets: list[Asset], context: StageContext) -> list[Asset]:
        Image.init()
        missing = [fmt for fmt in self.formats if FORMATS[fmt] not in Image.SAVE]
        if missing:
            raise self.fail(f"Pillow build lacks encoder for: {', '.join(missing)}")

        result = []
        for asset in assets:
            if asset.suffix in self.passthrough:
                result.append(asset)
            elif asset.suffix in RASTER_SUFFIXES:
                result.extend(self._convert(asset))
        return result

    def _convert(self, asset: Asset) -> list[Asset]:
        try:
            with Image.open(io.BytesIO(asset.content)) as image:
                image.load()
                if image.mode not in ("RGB", "RGBA"):
                    image = image.convert("RGBA" if "A" in image.getbands() or "transparency" in image.info else "RGB")
                variants = []
                for fmt in self.formats:
                    buffer = io.BytesIO()
                    image.save(buffer, format=FORMATS[fmt], quality=self.quality)
                    variants.append(asset.with_content(buffer.getvalue(), suffix=f".{fmt}"))
                return variants
        except (UnidentifiedImageError, OSError) as e:
            raise self.fail(f"Cannot convert {asset.path}: {e}") from e
