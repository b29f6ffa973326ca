"""Generic file stages: concat, filter, newer, clean, write."""

from dataclasses import replace
from pathlib import PurePosixPath

from assetflow_engine.pipeline.domain.models import Asset, StageContext
from assetflow_engine.pipeline.infrastructure.glob_matcher import expand
from assetflow_engine.stages.base import BaseStage, normalize_suffixes
from assetflow_shared.infra.observability import get_logger

logger = get_logger(__name__)


class ConcatStage(BaseStage):
    """Join all assets, in order, into one file. Source maps pass through after it."""

    name = "concat"

    def __init__(self, filename: str, separator: str = "\n"):
        self.filename = filename
        self.separator = separator.encode("utf-8")

    def run(self, assets: list[Asset], context: StageContext) -> list[Asset]:
        maps = [asset for asset in assets if asset.suffix == ".map"]
        parts = [asset for asset in assets if asset.suffix != ".map"]
        if not parts:
            return maps
        content = self.separator.join(asset.content.rstrip(b"\n") for asset in parts) + b"\n"
        return [Asset(path=PurePosixPath(self.filename), content=content), *maps]


class FilterStage(BaseStage):
    """Keep only assets with one of the given suffixes."""

    name = "filter"

    def __init__(self, extensions: list[str]):
        self.extensions = normalize_suffixes(extensions)

    def run(self, assets: list[Asset], context: StageContext) -> list[Asset]:
        return [asset for asset in assets if asset.suffix in self.extensions]


class NewerStage(BaseStage):
    """
    Pass only assets newer than their destination.

    With ``suffixes`` the destination is looked up under each replacement
    suffix (``a.png`` → ``a.webp``/``a.avif``); the asset passes if any of
    them is missing or older than the source.
    """

    name = "newer"

    def __init__(self, dest: str, suffixes: list[str] | None = None):
        self.dest = dest
        self.suffixes = sorted(normalize_suffixes(suffixes)) if suffixes else []

    def run(self, assets: list[Asset], context: StageContext) -> list[Asset]:
        dest_dir = context.resolve(self.dest)
        kept = []
        for asset in assets:
            if asset.source is None:
                kept.append(asset)
                continue
            candidates = [asset.path]
            if self.suffixes and asset.suffix not in self.suffixes:
                candidates = [asset.path.with_suffix(suffix) for suffix in self.suffixes]
            source_mtime = asset.source.stat().st_mtime
            for candidate in candidates:
                target = dest_dir / candidate
                if not target.exists() or target.stat().st_mtime < source_mtime:
                    kept.append(asset)
                    break
        logger.debug("newer_filtered", total=len(assets), kept=len(kept))
        return kept


class CleanStage(BaseStage):
    """Delete files matching globs under the root. Assets pass through."""

    name = "clean"

    def __init__(self, patterns: list[str]):
        self.patterns = list(patterns)

    def run(self, assets: list[Asset], context: StageContext) -> list[Asset]:
        removed = 0
        for _, path in expand(context.root, self.patterns):
            path.unlink(missing_ok=True)
            removed += 1
        logger.debug("files_cleaned", removed=removed, patterns=self.patterns)
        return assets


class WriteStage(BaseStage):
    """Write assets under a destination directory."""

    name = "write"

    def __init__(self, dest: str):
        self.dest = dest

    def run(self, assets: list[Asset], context: StageContext) -> list[Asset]:
        dest_dir = context.resolve(self.dest).resolve()
        written = []
        for asset in assets:
            target = (dest_dir / asset.path).resolve()
            if not target.is_relative_to(dest_dir):
                raise self.fail(f"Refusing to write outside {self.dest}: {asset.path}")
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(asset.content)
            written.append(replace(asset, written_to=target))
        return written
