"""HTML partial includes: ``@@include('components/header.html', {"title": "Home"})``."""

import json
import re
from pathlib import Path
from typing import Any

from assetflow_engine.pipeline.domain.models import Asset, StageContext
from assetflow_engine.stages.base import BaseStage

MAX_DEPTH = 16


class FileIncludeStage(BaseStage):
    """
    Expand include directives and ``@@var`` placeholders.

    Include paths resolve against ``basepath`` (relative to the project root)
    or, without one, against the including file's directory. Parameters passed
    to an include are visible inside it on top of the stage ``context``.
    """

    name = "include"

    def __init__(self, prefix: str = "@@", basepath: str | None = None, context: dict[str, Any] | None = None):
        self.prefix = prefix
        self.basepath = basepath
        self.context = dict(context or {})
        p = re.escape(prefix)
        self._include_re = re.compile(
            p + r"include\(\s*(['\"])(?P<path>.+?)\1\s*(?:,\s*(?P<params>\{.*?\}))?\s*\)",
            re.DOTALL,
        )
        self._var_re = re.compile(p + r"(?P<var>[A-Za-z_]\w*(?:\.[A-Za-z_]\w*)*)")

    def run(self, assets: list[Asset], context: StageContext) -> list[Asset]:
        result = []
        for asset in assets:
            current_dir = asset.source.parent if asset.source else context.root
            html = self._render(asset.text, current_dir, self.context, context, depth=0)
            result.append(asset.with_content(html))
        return result

    def _resolve(self, include: str, current_dir: Path, context: StageContext) -> Path:
        if self.basepath is not None:
            return context.resolve(self.basepath) / include
        return current_dir / include

    def _render(self, text: str, current_dir: Path, variables: dict, context: StageContext, depth: int) -> str:
        if depth > MAX_DEPTH:
            raise self.fail(f"Include depth exceeds {MAX_DEPTH} (recursive include?)")

        def include(match: re.Match) -> str:
            path = self._resolve(match.group("path"), current_dir, context)
            params = dict(variables)
            if match.group("params"):
                try:
                    params.update(json.loads(match.group("params")))
                except json.JSONDecodeError as e:
                    raise self.fail(f"Invalid include parameters for {match.group('path')}: {e}") from e
            try:
                partial = path.read_text(encoding="utf-8")
            except OSError as e:
                raise self.fail(f"Cannot include {match.group('path')}: {e}") from e
            return self._render(partial, path.parent, params, context, depth + 1)

        text = self._include_re.sub(include, text)

        def substitute(match: re.Match) -> str:
            value = _lookup(variables, match.group("var"))
            return match.group(0) if value is None else str(value)

        return self._var_re.sub(substitute, text)


def _lookup(variables: dict, dotted: str) -> Any:
    value: Any = variables
    for key in dotted.split("."):
        if not isinstance(value, dict) or key not in value:
            return None
        value = value[key]
    return value
