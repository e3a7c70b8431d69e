"""Box geometry filtering for flagged page elements.

Two independent stages decide which findings are worth drawing:

- containment elimination: when one flagged box wraps another, the outer
  (strictly larger) box is dropped and the inner, more specific one kept;
- visual distinctness: a box whose screenshot region is flat (no channel
  varies by more than ``VISIBILITY_THRESHOLD``) is treated as empty space.
"""

import io
import logging
import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from PIL import Image, ImageStat

from .logging import log_extra

VISIBILITY_THRESHOLD = 5.0
MIN_SAMPLE_SIZE = 2


@dataclass(frozen=True)
class Rect:
    """An axis-aligned rectangle in screenshot pixels."""

    left: float
    top: float
    width: float
    height: float

    @property
    def right(self) -> float:
        return self.left + self.width

    @property
    def bottom(self) -> float:
        return self.top + self.height

    def covers(self, other: "Rect") -> bool:
        """True if this rectangle encloses ``other`` (edges may touch)."""
        return (
            self.left <= other.left
            and self.top <= other.top
            and self.right >= other.right
            and self.bottom >= other.bottom
        )

    def contains(self, other: "Rect") -> bool:
        """Covers ``other`` and is strictly larger in at least one dimension."""
        return self.covers(other) and (self.width > other.width or self.height > other.height)

    @classmethod
    def from_mapping(cls, data: Any) -> "Rect | None":
        """Build from a Lighthouse ``{left, top, width, height}`` dict."""
        if not isinstance(data, dict):
            return None
        try:
            return cls(
                left=float(data["left"]),
                top=float(data["top"]),
                width=float(data["width"]),
                height=float(data["height"]),
            )
        except (KeyError, TypeError, ValueError):
            return None


@dataclass
class BoundingBox:
    """One flagged element: where it is and what it is."""

    rect: Rect
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def label(self) -> str:
        text = str(self.metadata.get("label") or "")
        return " ".join(text.split())


def filter_containing_boxes(
    boxes: list[BoundingBox],
) -> tuple[list[BoundingBox], list[BoundingBox]]:
    """Drop every box that strictly contains another box.

    Returns:
        ``(kept, removed)``, both in input order. Boxes with identical
        rectangles never contain each other, so duplicates are all kept.
    """
    to_remove: set[int] = set()
    for i, outer in enumerate(boxes):
        for j, inner in enumerate(boxes):
            if i != j and outer.rect.contains(inner.rect):
                to_remove.add(i)
                break

    kept = [box for i, box in enumerate(boxes) if i not in to_remove]
    removed = [box for i, box in enumerate(boxes) if i in to_remove]
    return kept, removed


ImageSource = Image.Image | Path | bytes


def _open(source: ImageSource) -> Image.Image:
    if isinstance(source, Image.Image):
        return source
    if isinstance(source, bytes):
        return Image.open(io.BytesIO(source))
    return Image.open(source)


def is_visually_distinct(
    source: ImageSource,
    rect: Rect,
    threshold: float = VISIBILITY_THRESHOLD,
) -> bool:
    """Decide whether a rectangle of the screenshot shows anything.

    The region is cropped at ``floor(left), floor(top)`` with
    ``ceil(width) x ceil(height)``. Regions smaller than 2x2, regions that
    fall outside the image and anything that cannot be decoded are reported
    as not distinct.
    """
    if rect.width < MIN_SAMPLE_SIZE or rect.height < MIN_SAMPLE_SIZE:
        return False

    left = math.floor(rect.left)
    top = math.floor(rect.top)
    width = math.ceil(rect.width)
    height = math.ceil(rect.height)

    try:
        image = _open(source)
        if left < 0 or top < 0 or left + width > image.width or top + height > image.height:
            raise ValueError("region outside image bounds")
        region = image.crop((left, top, left + width, top + height))
        stddev = ImageStat.Stat(region).stddev
    except (OSError, ValueError) as e:
        log_extra(
            "Could not analyze region",
            logging.WARNING,
            left=rect.left,
            top=rect.top,
            error=str(e),
        )
        return False

    return any(channel > threshold for channel in stddev)


def partition_visible(
    source: ImageSource,
    boxes: list[BoundingBox],
    threshold: float = VISIBILITY_THRESHOLD,
) -> tuple[list[BoundingBox], list[BoundingBox]]:
    """Split boxes into ``(distinct, visually_empty)`` preserving order."""
    try:
        image = _open(source)
    except OSError as e:
        log_extra("Screenshot could not be decoded", logging.WARNING, error=str(e))
        return [], list(boxes)

    distinct: list[BoundingBox] = []
    empty: list[BoundingBox] = []
    for box in boxes:
        if is_visually_distinct(image, box.rect, threshold):
            distinct.append(box)
        else:
            empty.append(box)
    return distinct, empty
