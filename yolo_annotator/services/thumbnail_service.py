"""Service for rendering and caching image thumbnails."""

from pathlib import Path

from PIL import Image

from yolo_annotator.exceptions import InvalidInputError, NotFoundError
from yolo_annotator.logger import get_logger
from yolo_annotator.services.annotation_service import AnnotationService

logger = get_logger(__name__)

THUMBNAIL_SIZES: dict[str, int] = {
    "small": 150,
    "medium": 300,
    "large": 600,
}
THUMBNAIL_QUALITY = 85


class ThumbnailService:
    """Renders JPEG thumbnails on first request and reuses them afterwards."""

    def __init__(self, annotation_service: AnnotationService, cache_dir: Path) -> None:
        self.annotation_service = annotation_service
        self.cache_dir = cache_dir

    def get_thumbnail(self, image_id: int, size: str) -> Path:
        """Return the cached thumbnail of an image, rendering it if needed.

        The image is scaled to fit inside a square of the named size, keeping
        its aspect ratio and never enlarging.

        Raises:
            InvalidInputError: If ``size`` is not a known thumbnail size.
            NotFoundError: If the image or its file doesn't exist.
        """
        bound = THUMBNAIL_SIZES.get(size)
        if bound is None:
            raise InvalidInputError(
                "Invalid size. Use small, medium, or large",
                {"size": size},
            )

        image = self.annotation_service.get_image(image_id)
        if image is None:
            raise NotFoundError("Image", image_id)
        source = self.annotation_service.get_image_path(image)
        if source is None:
            raise NotFoundError("Image file", image_id)

        target_dir = self.cache_dir / size
        target = target_dir / f"{image.id}_{Path(image.filename).stem}.jpg"
        if target.exists():
            return target

        target_dir.mkdir(parents=True, exist_ok=True)
        with Image.open(source) as img:
            img.thumbnail((bound, bound))
            if img.mode != "RGB":
                img = img.convert("RGB")
            img.save(target, "JPEG", quality=THUMBNAIL_QUALITY)
        logger.debug("Rendered %s thumbnail for image %d", size, image.id)
        return target
