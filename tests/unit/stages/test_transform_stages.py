"""
Content transform stages

include (HTML partials), sass, css_minify, js_minify, images, fonts
"""

import io
import json
from pathlib import PurePosixPath

import pytest
from PIL import Image

from assetflow_engine.pipeline.domain.models import Asset, StageContext
from assetflow_engine.stages import (
    CssMinifyStage,
    FileIncludeStage,
    FontConvertStage,
    ImageVariantsStage,
    JsMinifyStage,
    SassStage,
)
from assetflow_shared.common.exceptions import TransformError


def asset(path, content, source=None):
    if isinstance(content, str):
        content = content.encode("utf-8")
    return Asset(path=PurePosixPath(path), content=content, source=source)


@pytest.fixture
def context(project):
    return StageContext(root=project, pipeline="test")


# ==============================================================================
# HTML includes
# ==============================================================================


class TestFileInclude:
    def test_include_with_parameters(self, write_file, context):
        write_file("app/html/components/header.html", "<h1>@@title</h1>")
        page = write_file("app/html/index.html", "@@include('components/header.html', {\"title\": \"Home\"})\n<p/>")

        result = FileIncludeStage().run([asset("index.html", page.read_text(), source=page)], context)

        assert result[0].text == "<h1>Home</h1>\n<p/>"

    def test_nested_includes_and_basepath(self, write_file, context):
        write_file("app/html/partials/layout.html", '<main>@@include("partials/nav.html")</main>')
        write_file("app/html/partials/nav.html", "<nav>@@site.name</nav>")

        stage = FileIncludeStage(basepath="app/html", context={"site": {"name": "Demo"}})
        result = stage.run([asset("index.html", "@@include('partials/layout.html')")], context)

        assert result[0].text == "<main><nav>Demo</nav></main>"

    def test_unknown_variables_are_left_untouched(self, context):
        result = FileIncludeStage().run([asset("index.html", "mail me @@nobody.")], context)

        assert result[0].text == "mail me @@nobody."

    def test_missing_partial(self, project, context):
        with pytest.raises(TransformError) as exc_info:
            FileIncludeStage(basepath=".").run([asset("index.html", "@@include('nope.html')")], context)

        assert exc_info.value.stage == "include"

    def test_recursive_include(self, write_file, context):
        write_file("loop.html", "@@include('loop.html')")

        with pytest.raises(TransformError, match="depth"):
            FileIncludeStage(basepath=".").run([asset("index.html", "@@include('loop.html')")], context)


# ==============================================================================
# Styles and scripts
# ==============================================================================


class TestSass:
    def test_compiles_scss_with_imports_from_source_dir(self, write_file, context):
        write_file("app/scss/_vars.scss", "$gutter: 12px;")
        main = write_file("app/scss/main.scss", '@import "vars";\n.btn { padding: $gutter; }')

        result = SassStage().run([asset("main.scss", main.read_text(), source=main)], context)

        assert [str(a.path) for a in result] == ["main.css"]
        assert "padding: 12px" in result[0].text

    def test_source_map_follows_stylesheet(self, write_file, context):
        write_file("app/scss/_vars.scss", "$gutter: 12px;")
        main = write_file("app/scss/main.scss", '@import "vars";\n.btn { padding: $gutter; }')

        result = SassStage(source_map=True).run([asset("main.scss", main.read_text(), source=main)], context)

        assert [str(a.path) for a in result] == ["main.css", "main.css.map"]
        assert "sourceMappingURL=main.css.map" in result[0].text
        source_map = json.loads(result[1].text)
        assert any(source.endswith("main.scss") for source in source_map["sources"])
        assert any(".btn" in content for content in source_map["sourcesContent"])
        assert not main.with_suffix(".css.map").exists()

    def test_partials_are_dropped_and_other_assets_pass(self, context):
        assets = [asset("_vars.scss", "$a: 1;"), asset("vendor.css", "a{}")]

        result = SassStage().run(assets, context)

        assert [str(a.path) for a in result] == ["vendor.css"]

    def test_compressed_output(self, context):
        result = SassStage(output_style="compressed").run([asset("a.scss", "a { b { color: red; } }")], context)

        assert result[0].text.strip() == "a b{color:red}"

    def test_compile_error(self, context):
        with pytest.raises(TransformError) as exc_info:
            SassStage().run([asset("main.scss", ".btn { color: $missing; }")], context)

        assert exc_info.value.stage == "sass"
        assert "missing" in exc_info.value.message

    def test_invalid_output_style(self):
        with pytest.raises(ValueError):
            SassStage(output_style="tiny")


def test_css_minify(context):
    result = CssMinifyStage().run([asset("a.css", "a {\n  color : red ;\n}\n/* note */\n"), asset("a.js", "x")], context)

    assert "color:red" in result[0].text
    assert "note" not in result[0].text
    assert "\n" not in result[0].text.strip()
    assert result[1].text == "x"


def test_js_minify(context):
    source = "// helper\nfunction add ( first , second ) {\n  return first + second ;\n}\n"

    result = JsMinifyStage().run([asset("main.js", source), asset("main.css", "a { }")], context)

    assert "helper" not in result[0].text
    assert "return first+second" in result[0].text
    assert len(result[0].content) < len(source)
    assert result[1].text == "a { }"


# ==============================================================================
# Images and fonts
# ==============================================================================


def png_bytes(mode="RGB", size=(4, 4)):
    buffer = io.BytesIO()
    Image.new(mode, size, color=0).save(buffer, format="PNG")
    return buffer.getvalue()


class TestImageVariants:
    @pytest.fixture(autouse=True)
    def require_webp(self):
        Image.init()
        if "WEBP" not in Image.SAVE:
            pytest.skip("Pillow built without WebP support")

    def test_raster_to_webp(self, context):
        assets = [
            asset("icons/a.png", png_bytes()),
            asset("b.png", png_bytes("P")),
            asset("logo.svg", "<svg/>"),
            asset("anim.gif", b"GIF89a"),
        ]

        result = ImageVariantsStage(formats=["webp"]).run(assets, context)

        assert [str(a.path) for a in result] == ["icons/a.webp", "b.webp", "logo.svg"]
        with Image.open(io.BytesIO(result[0].content)) as image:
            assert image.format == "WEBP"
            assert image.size == (4, 4)

    def test_broken_image(self, context):
        with pytest.raises(TransformError) as exc_info:
            ImageVariantsStage(formats=["webp"]).run([asset("broken.jpg", b"not an image")], context)

        assert exc_info.value.stage == "images"

    def test_options_are_validated(self):
        with pytest.raises(ValueError):
            ImageVariantsStage(formats=["bmp"])
        with pytest.raises(ValueError):
            ImageVariantsStage(quality=0)


def ttf_bytes():
    from fontTools.fontBuilder import FontBuilder
    from fontTools.pens.ttGlyphPen import TTGlyphPen

    builder = FontBuilder(1000, isTTF=True)
    builder.setupGlyphOrder([".notdef"])
    builder.setupCharacterMap({})
    builder.setupGlyf({".notdef": TTGlyphPen(None).glyph()})
    builder.setupHorizontalMetrics({".notdef": (500, 0)})
    builder.setupHorizontalHeader(ascent=800, descent=-200)
    builder.setupNameTable({"familyName": "Assetflow Test", "styleName": "Regular"})
    builder.setupOS2()
    builder.setupPost()
    buffer = io.BytesIO()
    builder.save(buffer)
    return buffer.getvalue()


class TestFontConvert:
    def test_ttf_to_woff(self, context):
        result = FontConvertStage(formats=["woff"]).run([asset("Inter.ttf", ttf_bytes()), asset("x.txt", "x")], context)

        assert [str(a.path) for a in result] == ["Inter.woff", "x.txt"]
        assert result[0].content[:4] == b"wOFF"

    def test_keep_source(self, context):
        result = FontConvertStage(formats=["woff"], keep_source=True).run([asset("Inter.ttf", ttf_bytes())], context)

        assert [str(a.path) for a in result] == ["Inter.ttf", "Inter.woff"]

    def test_broken_font(self, context):
        with pytest.raises(TransformError) as exc_info:
            FontConvertStage(formats=["woff"]).run([asset("bad.ttf", b"nope")], context)

        assert exc_info.value.stage == "fonts"

    def test_unknown_format(self):
        with pytest.raises(ValueError):
            FontConvertStage(formats=["eot"])
