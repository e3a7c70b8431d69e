"""Annotated screenshots for flagged audit findings.

For each of the five annotated audits the renderer extracts bounding boxes
from the Lighthouse report, filters them (see ``geometry``) and draws the
survivors onto the report's full-page screenshot: an outlined rectangle with
a drop shadow, and a numbered badge on the box's top-left corner. Numbers
follow list order after filtering, starting at 1.
"""

import base64
import binascii
import io
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from PIL import Image, ImageDraw, ImageFont

from .categories import AnnotatedAudit, AnnotationProfile, dig
from .geometry import BoundingBox, Rect, filter_containing_boxes, partition_visible
from .logging import log_extra

SHADOW_COLOR = (0, 0, 0, 128)
MAX_BADGE = 20
BOX_THICKNESS = 3

# Image map for one report: audit id -> annotated PNG
ReportArtifactSet = dict[str, Path]


@dataclass
class AnnotationResult:
    """What happened to one audit's findings."""

    audit: AnnotatedAudit
    image_path: Path | None
    drawn: list[BoundingBox] = field(default_factory=list)
    containers: list[BoundingBox] = field(default_factory=list)
    visually_empty: list[BoundingBox] = field(default_factory=list)


def decode_screenshot(report: dict[str, Any]) -> Image.Image | None:
    """Decode ``fullPageScreenshot.screenshot.data`` (a base64 data URL)."""
    data = dig(report, "fullPageScreenshot.screenshot.data")
    if not isinstance(data, str) or not data:
        return None
    try:
        raw = base64.b64decode(data.split(",")[-1])
        image = Image.open(io.BytesIO(raw))
        image.load()
    except (binascii.Error, OSError, ValueError) as e:
        log_extra("Screenshot could not be decoded", logging.WARNING, error=str(e))
        return None
    return image.convert("RGB")


def extract_boxes(report: dict[str, Any], audit: AnnotatedAudit) -> list[BoundingBox]:
    """Pull one box per details item that carries a rectangle."""
    profile = audit.profile
    items = dig(report, f"audits.{profile.audit_id}.details.items")
    if not isinstance(items, list):
        return []

    boxes: list[BoundingBox] = []
    for item in items:
        rect = Rect.from_mapping(dig(item, profile.rect_path))
        if rect is None:
            continue
        label = next(
            (value for path in profile.label_paths if (value := dig(item, path))),
            "",
        )
        explanation = dig(item, profile.explanation_path) if profile.explanation_path else None
        boxes.append(
            BoundingBox(
                rect=rect,
                metadata={"label": label, "explanation": explanation, "color": profile.color},
            )
        )
    return boxes


def badge_radius(
    scaled_height: float,
    scale_factor: float = 1.0,
    min_badge: int = 10,
    max_badge: int = MAX_BADGE,
) -> int:
    """Badge radius: 80% of the box height, clamped to the scaled [min, max]."""
    minimum = round(min_badge * scale_factor)
    maximum = round(max_badge * scale_factor)
    ideal = round(scaled_height * 0.8)
    return max(minimum, min(ideal, maximum))


def _badge_font(size: int) -> ImageFont.FreeTypeFont | ImageFont.ImageFont:
    try:
        return ImageFont.truetype("DejaVuSans-Bold.ttf", size)
    except OSError:
        return ImageFont.load_default(size=size)


def render_annotated_image(
    image: Image.Image,
    boxes: list[BoundingBox],
    output_path: Path,
    color: str,
    scale_factor: float = 1.0,
    min_badge: int = 10,
    box_thickness: int = BOX_THICKNESS,
) -> Path:
    """Draw numbered boxes onto a copy of ``image`` and save it as PNG."""
    base = image.convert("RGBA")
    if scale_factor != 1.0:
        size = (round(base.width * scale_factor), round(base.height * scale_factor))
        base = base.resize(size, Image.Resampling.LANCZOS)

    overlay = Image.new("RGBA", base.size, (0, 0, 0, 0))
    draw = ImageDraw.Draw(overlay)
    thickness = max(1, round(box_thickness * scale_factor))

    for number, box in enumerate(boxes, start=1):
        x = round(box.rect.left * scale_factor)
        y = round(box.rect.top * scale_factor)
        w = round(box.rect.width * scale_factor)
        h = round(box.rect.height * scale_factor)

        draw.rectangle([x + 1, y + 1, x + 1 + w, y + 1 + h], outline=SHADOW_COLOR, width=thickness)
        draw.rectangle([x, y, x + w, y + h], outline=color, width=thickness)

        radius = badge_radius(h, scale_factor, min_badge)
        shadow = radius + 1
        draw.ellipse([x - shadow, y - shadow, x + shadow, y + shadow], fill=SHADOW_COLOR)
        draw.ellipse([x - radius, y - radius, x + radius, y + radius], fill=color)
        draw.text(
            (x, y),
            str(number),
            fill="white",
            font=_badge_font(round(radius * 1.2)),
            anchor="mm",
        )

    result = Image.alpha_composite(base, overlay).convert("RGB")
    output_path.parent.mkdir(parents=True, exist_ok=True)
    result.save(output_path, format="PNG")
    return output_path


def _log_bucket(message: str, audit: AnnotatedAudit, boxes: list[BoundingBox]) -> None:
    if boxes:
        log_extra(
            message,
            audit=audit.audit_id,
            count=len(boxes),
            labels=" | ".join(box.label for box in boxes)[:500],
        )


def annotate_audit(
    report: dict[str, Any],
    screenshot: Image.Image,
    audit: AnnotatedAudit,
    output_path: Path,
) -> AnnotationResult:
    """Extract, filter and draw one audit's findings.

    No image is written when nothing survives filtering; that is a
    legitimate "no issues found" outcome.
    """
    profile: AnnotationProfile = audit.profile
    boxes = extract_boxes(report, audit)
    result = AnnotationResult(audit=audit, image_path=None)

    if profile.containment_filter:
        boxes, result.containers = filter_containing_boxes(boxes)
    if profile.visibility_filter:
        boxes, result.visually_empty = partition_visible(screenshot, boxes)
    result.drawn = boxes

    _log_bucket("Skipped container boxes", audit, result.containers)
    _log_bucket("Skipped visually empty boxes", audit, result.visually_empty)

    if not boxes:
        log_extra("No elements left to highlight", audit=audit.audit_id)
        return result

    for number, box in enumerate(boxes, start=1):
        log_extra(
            "Highlighted box",
            logging.DEBUG,
            audit=audit.audit_id,
            box=number,
            label=box.label,
        )

    result.image_path = render_annotated_image(
        screenshot,
        boxes,
        output_path,
        color=profile.color,
        scale_factor=profile.scale_factor,
        min_badge=profile.min_badge,
    )
    log_extra(
        "Annotated image saved",
        audit=audit.audit_id,
        boxes=len(boxes),
        path=str(output_path),
    )
    return result


def create_all_highlighted_images(report_path: Path, output_dir: Path) -> ReportArtifactSet:
    """Render every annotated audit of one report into ``output_dir``.

    Images are named ``<report stem>-<suffix>.png``. Audits that produce no
    image are absent from the returned mapping.
    """
    report = json.loads(report_path.read_text(encoding="utf-8"))
    screenshot = decode_screenshot(report)
    if screenshot is None:
        log_extra("Report has no full-page screenshot", logging.ERROR, report=str(report_path))
        return {}

    output_dir.mkdir(parents=True, exist_ok=True)
    artifacts: ReportArtifactSet = {}
    for audit in AnnotatedAudit:
        output_path = output_dir / f"{report_path.stem}-{audit.profile.suffix}.png"
        result = annotate_audit(report, screenshot, audit, output_path)
        if result.image_path is not None:
            artifacts[audit.audit_id] = result.image_path
    return artifacts
