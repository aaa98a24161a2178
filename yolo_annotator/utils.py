"""Shared utility functions for the annotation tool."""

from pathlib import Path

from yolo_annotator.config import IMAGE_EXTENSIONS

HUE_STEP_DEGREES = 137.5


def sanitize_filename(filename: str) -> str:
    """Sanitize a filename to prevent path traversal attacks.

    Extracts just the filename component, removing any directory paths
    that could be used for path traversal (e.g., "../", "/etc/").

    Args:
        filename: The raw filename that may contain path components.

    Returns:
        The sanitized filename with only the base name component.

    Example:
        >>> sanitize_filename("../../../etc/passwd")
        'passwd'
        >>> sanitize_filename("image.png")
        'image.png'
    """
    return Path(filename.replace("\\", "/")).name


def validate_path_in_directory(path: Path, directory: Path) -> bool:
    """Validate that a path is contained within the expected directory.

    Args:
        path: The path to validate.
        directory: The directory that should contain the path.

    Returns:
        True if the path is safely within the directory, False otherwise.

    Example:
        >>> base = Path("/data/images")
        >>> validate_path_in_directory(base / "photo.jpg", base)
        True
        >>> validate_path_in_directory(base / "../etc/passwd", base)
        False
    """
    try:
        resolved_path = path.resolve()
        resolved_dir = directory.resolve()
        return resolved_path.is_relative_to(resolved_dir)
    except (ValueError, OSError):
        return False


def is_image_filename(filename: str) -> bool:
    """Check whether a filename carries an accepted image extension."""
    return Path(filename).suffix.lower() in IMAGE_EXTENSIONS


def label_filename_for(image_name: str) -> str:
    """Name of the label file paired with an image file.

    Only an accepted image extension is replaced; any other name just gets
    ``.txt`` appended.

    Example:
        >>> label_filename_for("cat.JPG")
        'cat.txt'
        >>> label_filename_for("scan.tiff")
        'scan.tiff.txt'
    """
    path = Path(image_name)
    if path.suffix.lower() in IMAGE_EXTENSIONS:
        return f"{path.stem}.txt"
    return f"{image_name}.txt"


def class_hue(index: int) -> float:
    """Hue in degrees for the class at ``index`` (golden-angle spacing)."""
    return (index * HUE_STEP_DEGREES) % 360


def class_color(index: int) -> str:
    """Deterministic HSL display color for the class at ``index``.

    Example:
        >>> class_color(0)
        'hsl(0, 70%, 50%)'
        >>> class_color(1)
        'hsl(137.5, 70%, 50%)'
    """
    return f"hsl({class_hue(index):g}, 70%, 50%)"
