"""JavaScript minification (rjsmin)."""

import rjsmin

from assetflow_engine.pipeline.domain.models import Asset, StageContext
from assetflow_engine.stages.base import BaseStage


class JsMinifyStage(BaseStage):
    name = "js_minify"

    def __init__(self, keep_bang_comments: bool = False):
        self.keep_bang_comments = keep_bang_comments

    def run(self, assets: list[Asset], context: StageContext) -> list[Asset]:
        return [
            asset.with_content(rjsmin.jsmin(asset.text, keep_bang_comments=self.keep_bang_comments))
            if asset.suffix in (".js", ".mjs")
            else asset
            for asset in assets
        ]
