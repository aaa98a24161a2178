"""Conversion between pixel boxes and normalized YOLO boxes.

A YOLO box stores the box center and size as fractions of the image
dimensions. A pixel box stores the top-left corner and size in pixels.
The two conversions are exact inverses up to float rounding and apply no
clamping; callers clamp where their interaction model requires it.
"""

import math

from yolo_annotator.models.annotations import BoundingBox, ClassValue, PixelBox

LABEL_PRECISION = 6


def _check_dimensions(image_width: float, image_height: float) -> None:
    if image_width <= 0 or image_height <= 0:
        raise ValueError(
            f"Image dimensions must be positive, got {image_width}x{image_height}"
        )


def to_pixel(box: BoundingBox, image_width: float, image_height: float) -> PixelBox:
    """Convert a normalized box into pixel space."""
    _check_dimensions(image_width, image_height)
    return PixelBox(
        x=(box.x_center - box.width / 2) * image_width,
        y=(box.y_center - box.height / 2) * image_height,
        width=box.width * image_width,
        height=box.height * image_height,
    )


def to_normalized(
    box: PixelBox, image_width: float, image_height: float
) -> BoundingBox:
    """Convert a pixel box into normalized YOLO coordinates."""
    _check_dimensions(image_width, image_height)
    return BoundingBox(
        x_center=(box.x + box.width / 2) / image_width,
        y_center=(box.y + box.height / 2) / image_height,
        width=box.width / image_width,
        height=box.height / image_height,
    )


def format_label_line(class_id: ClassValue, box: BoundingBox) -> str:
    """Render one YOLO label line with six-decimal geometry.

    Example:
        >>> format_label_line(2, BoundingBox(x_center=0.5, y_center=0.25, width=0.1, height=0.2))
        '2 0.500000 0.250000 0.100000 0.200000'
    """
    p = LABEL_PRECISION
    return (
        f"{class_id} {box.x_center:.{p}f} {box.y_center:.{p}f} "
        f"{box.width:.{p}f} {box.height:.{p}f}"
    )


def parse_label_line(line: str) -> tuple[ClassValue, BoundingBox] | None:
    """Parse a YOLO label line into a class id and a normalized box.

    A line is valid only with exactly five whitespace-separated finite
    numeric tokens. The class value comes back as an int when it is
    integral and as a float otherwise; no range check is applied.

    Returns:
        ``(class_id, box)`` or None when the line is not a valid label.
    """
    tokens = line.split()
    if len(tokens) != 5:
        return None

    try:
        values = [float(token) for token in tokens]
    except ValueError:
        return None

    if not all(math.isfinite(value) for value in values):
        return None

    class_value, x_center, y_center, width, height = values
    box = BoundingBox(x_center=x_center, y_center=y_center, width=width, height=height)
    if class_value.is_integer():
        return int(class_value), box
    return class_value, box
