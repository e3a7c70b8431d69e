"""Tests for annotated screenshot rendering."""

import base64
import io
import json
from pathlib import Path
from typing import Any

import pytest
from PIL import Image, ImageDraw

from silveraudit.annotate import (
    annotate_audit,
    badge_radius,
    create_all_highlighted_images,
    decode_screenshot,
    extract_boxes,
    render_annotated_image,
)
from silveraudit.categories import AnnotatedAudit
from silveraudit.geometry import BoundingBox, Rect


def striped_image() -> Image.Image:
    """400x300 white page with a striped block at (50, 50)-(150, 110)."""
    img = Image.new("RGB", (400, 300), color="white")
    draw = ImageDraw.Draw(img)
    for y in range(50, 110, 4):
        draw.rectangle([50, y, 149, y + 1], fill="black")
    return img


def data_url(img: Image.Image) -> str:
    buffer = io.BytesIO()
    img.save(buffer, format="PNG")
    return "data:image/png;base64," + base64.b64encode(buffer.getvalue()).decode()


def node_item(left: float, top: float, width: float, height: float, label: str) -> dict[str, Any]:
    return {
        "node": {
            "nodeLabel": label,
            "boundingRect": {"left": left, "top": top, "width": width, "height": height},
        }
    }


@pytest.fixture
def report() -> dict[str, Any]:
    """Lighthouse-shaped report with findings for three annotated audits."""
    return {
        "finalUrl": "https://example.com/about",
        "fullPageScreenshot": {"screenshot": {"data": data_url(striped_image())}},
        "audits": {
            "color-contrast": {
                "details": {
                    "items": [
                        node_item(50, 50, 100, 60, "Low contrast text"),
                        node_item(250, 200, 50, 50, "Blank area"),
                        {"node": {"nodeLabel": "no rect"}},
                    ]
                }
            },
            "text-font-audit": {
                "details": {
                    "items": [
                        {"rect": {"left": 40, "top": 40, "width": 120, "height": 80}, "textSnippet": "wrapper"},
                        {"rect": {"left": 50, "top": 50, "width": 100, "height": 60}, "textSnippet": "small"},
                    ]
                }
            },
            "layout-brittle-audit": {
                "details": {"items": [node_item(250, 200, 50, 50, "Fixed height box")]}
            },
            "target-size": {"details": {"items": []}},
        },
    }


class TestBadgeRadius:
    """Tests for badge sizing."""

    @pytest.mark.parametrize(
        ("height", "expected"),
        [(5, 10), (20, 16), (100, 20)],
    )
    def test_clamped_to_range(self, height: float, expected: int) -> None:
        """Test 80% of the height clamped to [10, 20]."""
        assert badge_radius(height) == expected

    def test_scale_factor_scales_bounds(self) -> None:
        """Test that both bounds follow the scale factor."""
        assert badge_radius(1, scale_factor=2.0) == 20
        assert badge_radius(500, scale_factor=2.0) == 40

    def test_custom_minimum(self) -> None:
        """Test a smaller minimum badge for dense audits."""
        assert badge_radius(5, min_badge=8) == 8


class TestExtractBoxes:
    """Tests for extract_boxes."""

    def test_items_without_rect_are_skipped(self, report: dict[str, Any]) -> None:
        """Test that only items carrying a rectangle become boxes."""
        boxes = extract_boxes(report, AnnotatedAudit.COLOR_CONTRAST)
        assert [box.label for box in boxes] == ["Low contrast text", "Blank area"]
        assert boxes[0].rect == Rect(50, 50, 100, 60)
        assert boxes[0].metadata["color"] == "yellow"

    def test_text_font_uses_top_level_rect(self, report: dict[str, Any]) -> None:
        """Test the text-font audit reads ``rect`` and ``textSnippet``."""
        boxes = extract_boxes(report, AnnotatedAudit.TEXT_FONT)
        assert [box.label for box in boxes] == ["wrapper", "small"]

    def test_missing_audit(self) -> None:
        """Test that an absent audit yields no boxes."""
        assert extract_boxes({"audits": {}}, AnnotatedAudit.TARGET_SIZE) == []


class TestDecodeScreenshot:
    """Tests for decode_screenshot."""

    def test_decodes_data_url(self, report: dict[str, Any]) -> None:
        """Test that the data URL prefix is stripped and the PNG decoded."""
        image = decode_screenshot(report)
        assert image is not None
        assert image.size == (400, 300)
        assert image.mode == "RGB"

    def test_missing_screenshot(self) -> None:
        """Test that a report without a screenshot gives None."""
        assert decode_screenshot({}) is None

    def test_corrupt_screenshot(self) -> None:
        """Test that undecodable data gives None instead of raising."""
        report = {"fullPageScreenshot": {"screenshot": {"data": "data:image/png;base64,aGVsbG8="}}}
        assert decode_screenshot(report) is None


class TestRenderAnnotatedImage:
    """Tests for render_annotated_image."""

    def test_writes_png_with_outline(self, tmp_path: Path) -> None:
        """Test that the box outline is drawn in the requested color."""
        image = Image.new("RGB", (200, 200), color="white")
        box = BoundingBox(rect=Rect(60, 60, 80, 80), metadata={"label": "x"})
        output = tmp_path / "nested" / "out.png"

        result = render_annotated_image(image, [box], output, color="red")

        assert result == output
        assert output.exists()
        with Image.open(output) as rendered:
            assert rendered.format == "PNG"
            assert rendered.size == (200, 200)
            assert rendered.convert("RGB").getpixel((140, 100)) == (255, 0, 0)

    def test_source_image_untouched(self, tmp_path: Path) -> None:
        """Test that drawing happens on a copy."""
        image = Image.new("RGB", (100, 100), color="white")
        box = BoundingBox(rect=Rect(10, 10, 50, 50))
        render_annotated_image(image, [box], tmp_path / "out.png", color="blue")
        assert image.getpixel((10, 30)) == (255, 255, 255)


class TestAnnotateAudit:
    """Tests for per-audit filtering and drawing."""

    def test_visibility_filter_drops_blank_boxes(self, report: dict[str, Any], tmp_path: Path) -> None:
        """Test that boxes over flat regions are not drawn."""
        screenshot = decode_screenshot(report)
        assert screenshot is not None

        result = annotate_audit(report, screenshot, AnnotatedAudit.COLOR_CONTRAST, tmp_path / "cc.png")

        assert [box.label for box in result.drawn] == ["Low contrast text"]
        assert [box.label for box in result.visually_empty] == ["Blank area"]
        assert result.image_path == tmp_path / "cc.png"
        assert result.image_path.exists()

    def test_containment_filter_drops_wrapper(self, report: dict[str, Any], tmp_path: Path) -> None:
        """Test that the text-font audit drops the containing box."""
        screenshot = decode_screenshot(report)
        assert screenshot is not None

        result = annotate_audit(report, screenshot, AnnotatedAudit.TEXT_FONT, tmp_path / "tf.png")

        assert [box.label for box in result.containers] == ["wrapper"]
        assert [box.label for box in result.drawn] == ["small"]

    def test_layout_brittle_skips_visibility_filter(self, report: dict[str, Any], tmp_path: Path) -> None:
        """Test that layout-brittle boxes are drawn even over blank areas."""
        screenshot = decode_screenshot(report)
        assert screenshot is not None

        result = annotate_audit(report, screenshot, AnnotatedAudit.LAYOUT_BRITTLE, tmp_path / "lb.png")

        assert len(result.drawn) == 1
        assert result.visually_empty == []
        assert result.image_path is not None

    def test_no_image_when_nothing_survives(self, report: dict[str, Any], tmp_path: Path) -> None:
        """Test that an audit with no findings writes no file."""
        screenshot = decode_screenshot(report)
        assert screenshot is not None

        result = annotate_audit(report, screenshot, AnnotatedAudit.TARGET_SIZE, tmp_path / "ts.png")

        assert result.image_path is None
        assert not (tmp_path / "ts.png").exists()


class TestCreateAllHighlightedImages:
    """Tests for rendering every annotated audit of a report file."""

    def test_renders_audits_with_findings(self, report: dict[str, Any], tmp_path: Path) -> None:
        """Test the image map and file naming."""
        report_path = tmp_path / "report-example-com-1.json"
        report_path.write_text(json.dumps(report), encoding="utf-8")
        output_dir = tmp_path / "images"

        artifacts = create_all_highlighted_images(report_path, output_dir)

        assert set(artifacts) == {"color-contrast", "text-font-audit", "layout-brittle-audit"}
        assert artifacts["color-contrast"] == output_dir / "report-example-com-1-color-contrast.png"
        assert artifacts["text-font-audit"].name == "report-example-com-1-text-font.png"
        assert all(path.exists() for path in artifacts.values())

    def test_report_without_screenshot(self, tmp_path: Path) -> None:
        """Test that a report without a screenshot produces no images."""
        report_path = tmp_path / "report.json"
        report_path.write_text(json.dumps({"audits": {}}), encoding="utf-8")

        assert create_all_highlighted_images(report_path, tmp_path / "images") == {}
