"""Domain model tests."""

from datetime import timedelta
from pathlib import PurePosixPath

import pytest

from assetflow_engine.pipeline.domain import Asset, BuildMode, PipelineRun, PipelineSpec, RunState, TransformStage
from assetflow_engine.pipeline.domain.models import utcnow
from assetflow_engine.stages import SassStage, WriteStage


class TestBuildMode:
    def test_from_string(self):
        assert BuildMode.from_string("Production") is BuildMode.PRODUCTION

    def test_invalid(self):
        with pytest.raises(ValueError, match="Valid: development, production"):
            BuildMode.from_string("staging")


def test_terminal_run_states():
    assert [state for state in RunState if state.is_terminal] == [
        RunState.SUCCEEDED,
        RunState.FAILED,
        RunState.SKIPPED,
    ]


class TestPipelineSpec:
    def test_specs_with_different_stages_compare_equal(self):
        """Stages are opaque; identity is the declaration."""
        a = PipelineSpec("styles", ("app/scss/*.scss",), stages=(SassStage(),))
        b = PipelineSpec("styles", ("app/scss/*.scss",), stages=(SassStage(output_style="compressed"),))

        assert a == b
        assert len({a, b}) == 1

    def test_negative_debounce(self):
        with pytest.raises(ValueError):
            PipelineSpec("styles", ("a",), debounce_ms=-1)

    def test_stage_names(self):
        spec = PipelineSpec("styles", ("a",), stages=(SassStage(), WriteStage("out")))

        assert spec.stage_names == ["sass", "write"]

    def test_stages_satisfy_protocol(self):
        assert isinstance(SassStage(), TransformStage)


class TestAsset:
    def test_with_content_replaces_suffix(self):
        asset = Asset(path=PurePosixPath("scss/main.scss"), content=b"a{}")

        css = asset.with_content("a{}", suffix=".css")

        assert css.path == PurePosixPath("scss/main.css")
        assert css.content == b"a{}"
        assert asset.path.suffix == ".scss"

    def test_suffix_is_lowercase(self):
        assert Asset(path=PurePosixPath("IMG.PNG"), content=b"").suffix == ".png"


def test_pipeline_run_duration_and_dict():
    started = utcnow()
    run = PipelineRun(
        pipeline=PipelineSpec("scripts", ("a",)),
        inputs=("app/js/a.js",),
        state=RunState.SUCCEEDED,
        started_at=started,
        finished_at=started + timedelta(milliseconds=250),
    )

    data = run.to_dict()

    assert run.duration_ms == pytest.approx(250.0)
    assert data["pipeline"] == "scripts"
    assert data["state"] == "succeeded"
    assert data["inputs"] == ["app/js/a.js"]
    assert len(data["run_id"]) == 12
    assert PipelineRun(pipeline=PipelineSpec("x", ("a",))).duration_ms is None
