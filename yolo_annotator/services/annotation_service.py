"""Service for managing images and their bounding-box annotations."""

import shutil
import uuid
from collections.abc import Iterable
from datetime import datetime
from io import BytesIO
from pathlib import Path

from PIL import Image

from yolo_annotator.config import DEFAULT_MAX_UPLOAD_BYTES
from yolo_annotator.exceptions import InvalidInputError, NotFoundError
from yolo_annotator.logger import get_logger
from yolo_annotator.models.annotations import (
    Annotation,
    AnnotationCreate,
    AnnotationUpdate,
    BoundingBox,
    ClassValue,
    ImageMetadata,
    ImageRecord,
)
from yolo_annotator.services.project_service import (
    PROJECT_META_FILENAME,
    RECORDS_DIRNAME,
    UPLOADS_DIRNAME,
)
from yolo_annotator.services.records import (
    STORE_LOCK,
    IdSequence,
    load_model,
    save_model,
)
from yolo_annotator.utils import is_image_filename, sanitize_filename

logger = get_logger(__name__)


def read_image_size(source: Path | bytes) -> tuple[int, int]:
    """Read pixel dimensions of an image file or in-memory image.

    Raises:
        InvalidInputError: If the data is not a readable image.
    """
    try:
        if isinstance(source, bytes):
            with Image.open(BytesIO(source)) as img:
                img.verify()  # Verify it's a valid image
            with Image.open(BytesIO(source)) as img:  # Re-open after verify
                width, height = img.size
        else:
            with Image.open(source) as img:
                width, height = img.size
    except Exception as err:
        raise InvalidInputError(f"Invalid image file: {err}") from err
    if width <= 0 or height <= 0:
        raise InvalidInputError("Could not determine image dimensions")
    return width, height


class AnnotationService:
    """Handles image and annotation storage operations."""

    def __init__(
        self,
        base_dir: Path,
        thumbnails_dir: Path | None = None,
        max_upload_bytes: int = DEFAULT_MAX_UPLOAD_BYTES,
    ) -> None:
        """Initialize the annotation service.

        Args:
            base_dir: Directory holding one sub-directory per project.
            thumbnails_dir: Thumbnail cache to clean when images are deleted.
            max_upload_bytes: Per-file ceiling for uploaded images.
        """
        self.base_dir = base_dir
        self.thumbnails_dir = thumbnails_dir
        self.max_upload_bytes = max_upload_bytes
        self.sequence = IdSequence(base_dir)
        self.base_dir.mkdir(parents=True, exist_ok=True)

    def _project_dir(self, project_id: int) -> Path:
        return self.base_dir / f"project_{project_id}"

    def _records_dir(self, project_id: int) -> Path:
        return self._project_dir(project_id) / RECORDS_DIRNAME

    def uploads_dir(self, project_id: int) -> Path:
        """Directory holding the image files of a project."""
        return self._project_dir(project_id) / UPLOADS_DIRNAME

    def _record_path(self, project_id: int, image_id: int) -> Path:
        return self._records_dir(project_id) / f"{image_id}.json"

    def _require_project(self, project_id: int) -> None:
        if not (self._project_dir(project_id) / PROJECT_META_FILENAME).exists():
            raise NotFoundError("Project", project_id)

    def _is_live_record(self, path: Path) -> bool:
        """Check that a record belongs to a project that still exists."""
        return (path.parent.parent / PROJECT_META_FILENAME).exists()

    def _find_record_path(self, image_id: int) -> Path | None:
        for path in self.base_dir.glob(f"project_*/{RECORDS_DIRNAME}/{image_id}.json"):
            if self._is_live_record(path):
                return path
        return None

    def _load_metadata(self, image_id: int) -> ImageMetadata | None:
        """Load the record of an image with its annotations."""
        path = self._find_record_path(image_id)
        if path is None:
            return None
        return load_model(path, ImageMetadata)

    def _save_metadata(self, metadata: ImageMetadata) -> None:
        """Save an image record with its annotations."""
        image = metadata.image
        save_model(self._record_path(image.project_id, image.id), metadata)

    def _iter_metadata(self) -> Iterable[ImageMetadata]:
        for path in sorted(self.base_dir.glob(f"project_*/{RECORDS_DIRNAME}/*.json")):
            if not self._is_live_record(path):
                continue
            metadata = load_model(path, ImageMetadata)
            if metadata is not None:
                yield metadata

    def _find_annotation(self, annotation_id: int) -> tuple[ImageMetadata, int] | None:
        """Locate an annotation; returns its image record and list index."""
        for metadata in self._iter_metadata():
            for i, ann in enumerate(metadata.annotations):
                if ann.id == annotation_id:
                    return metadata, i
        return None

    # Images

    def list_images(self, project_id: int) -> list[ImageRecord]:
        """List the images of a project, newest first.

        Raises:
            NotFoundError: If the project doesn't exist.
        """
        self._require_project(project_id)
        records_dir = self._records_dir(project_id)
        images = []
        if records_dir.exists():
            for path in records_dir.glob("*.json"):
                metadata = load_model(path, ImageMetadata)
                if metadata is not None:
                    images.append(metadata.image)
        images.sort(key=lambda img: (img.uploaded_at, img.id), reverse=True)
        return images

    def get_image(self, image_id: int) -> ImageRecord | None:
        """Get an image record by ID."""
        metadata = self._load_metadata(image_id)
        if metadata is None:
            return None
        return metadata.image

    def get_image_path(self, image: ImageRecord) -> Path | None:
        """Get the backing file of an image, if it is present on disk."""
        path = self.uploads_dir(image.project_id) / image.filename
        if path.exists() and path.is_file():
            return path
        return None

    def create_image(
        self,
        project_id: int,
        filename: str,
        original_name: str,
        width: int,
        height: int,
    ) -> ImageRecord:
        """Create the record of an image whose file is already stored.

        Raises:
            NotFoundError: If the project doesn't exist.
        """
        with STORE_LOCK:
            self._require_project(project_id)
            image = ImageRecord(
                id=self.sequence.next("images"),
                project_id=project_id,
                filename=filename,
                original_name=original_name,
                width=width,
                height=height,
                uploaded_at=datetime.now().isoformat(),
            )
            self._records_dir(project_id).mkdir(parents=True, exist_ok=True)
            self._save_metadata(ImageMetadata(image=image, annotations=[]))
        return image

    def _stored_name(self, original_name: str) -> str:
        """Fresh opaque file name keeping the original extension."""
        return f"{uuid.uuid4()}{Path(original_name).suffix}"

    def upload_image(
        self, project_id: int, original_name: str, content: bytes
    ) -> ImageRecord:
        """Validate and store an uploaded image.

        Args:
            project_id: Project receiving the image.
            original_name: Client-side filename.
            content: Image file bytes.

        Returns:
            The created image record.

        Raises:
            NotFoundError: If the project doesn't exist.
            InvalidInputError: If the file type, size or content is rejected.
        """
        self._require_project(project_id)
        safe_name = sanitize_filename(original_name)
        if not is_image_filename(safe_name):
            raise InvalidInputError("Only JPG, JPEG, and PNG files are allowed")
        if len(content) > self.max_upload_bytes:
            raise InvalidInputError(
                f"File exceeds the {self.max_upload_bytes} byte upload limit"
            )

        width, height = read_image_size(content)

        uploads_dir = self.uploads_dir(project_id)
        uploads_dir.mkdir(parents=True, exist_ok=True)
        stored_name = self._stored_name(safe_name)
        (uploads_dir / stored_name).write_bytes(content)

        return self._record_stored_file(
            project_id, uploads_dir / stored_name, safe_name, width, height
        )

    def import_image_file(self, project_id: int, source: Path) -> ImageRecord:
        """Copy an image file into project storage and record it.

        Raises:
            NotFoundError: If the project doesn't exist.
            InvalidInputError: If the image dimensions cannot be read.
        """
        self._require_project(project_id)
        width, height = read_image_size(source)

        uploads_dir = self.uploads_dir(project_id)
        uploads_dir.mkdir(parents=True, exist_ok=True)
        stored_name = self._stored_name(source.name)
        shutil.copyfile(source, uploads_dir / stored_name)

        return self._record_stored_file(
            project_id, uploads_dir / stored_name, source.name, width, height
        )

    def _record_stored_file(
        self,
        project_id: int,
        path: Path,
        original_name: str,
        width: int,
        height: int,
    ) -> ImageRecord:
        """Create the record of a freshly stored file, removing the file on failure."""
        try:
            return self.create_image(
                project_id, path.name, original_name, width, height
            )
        except Exception:
            try:
                path.unlink(missing_ok=True)
            except OSError:
                logger.warning("Could not remove file %s", path, exc_info=True)
            raise

    def delete_image(self, image_id: int) -> bool:
        """Delete an image together with its annotations.

        The record removal is authoritative; the image file and cached
        thumbnails are removed best-effort.
        """
        with STORE_LOCK:
            record_path = self._find_record_path(image_id)
            if record_path is None:
                return False
            metadata = load_model(record_path, ImageMetadata)
            record_path.unlink()

        if metadata is not None:
            self._remove_backing_files(metadata.image)
            logger.info(
                "Deleted image %d with %d annotations",
                image_id,
                len(metadata.annotations),
            )
        return True

    def _remove_backing_files(self, image: ImageRecord) -> None:
        paths = [self.uploads_dir(image.project_id) / image.filename]
        if self.thumbnails_dir is not None and self.thumbnails_dir.exists():
            paths.extend(self.thumbnails_dir.glob(f"*/{image.id}_*"))
        for path in paths:
            try:
                path.unlink(missing_ok=True)
            except OSError:
                logger.warning("Could not remove file %s", path, exc_info=True)

    # Annotations

    def list_annotations(self, image_id: int) -> list[Annotation]:
        """Get all annotations of an image, in creation order.

        Raises:
            NotFoundError: If the image doesn't exist.
        """
        metadata = self._load_metadata(image_id)
        if metadata is None:
            raise NotFoundError("Image", image_id)
        return metadata.annotations

    def get_annotation(self, annotation_id: int) -> Annotation | None:
        """Get an annotation by ID."""
        found = self._find_annotation(annotation_id)
        if found is None:
            return None
        metadata, index = found
        return metadata.annotations[index]

    def create_annotation(
        self, image_id: int, annotation: AnnotationCreate
    ) -> Annotation:
        """Add a validated annotation to an image.

        Raises:
            NotFoundError: If the image doesn't exist.
        """
        box = BoundingBox(
            x_center=annotation.x_center,
            y_center=annotation.y_center,
            width=annotation.width,
            height=annotation.height,
        )
        return self.add_raw_annotations(image_id, [(annotation.class_id, box)])[0]

    def add_raw_annotations(
        self, image_id: int, entries: Iterable[tuple[ClassValue, BoundingBox]]
    ) -> list[Annotation]:
        """Add annotations without range checks, as dataset import does.

        Raises:
            NotFoundError: If the image doesn't exist.
        """
        with STORE_LOCK:
            metadata = self._load_metadata(image_id)
            if metadata is None:
                raise NotFoundError("Image", image_id)

            created = []
            now = datetime.now().isoformat()
            for class_id, box in entries:
                created.append(
                    Annotation(
                        id=self.sequence.next("annotations"),
                        image_id=image_id,
                        class_id=class_id,
                        created_at=now,
                        **box.model_dump(),
                    )
                )
            if created:
                metadata.annotations.extend(created)
                self._save_metadata(metadata)
        return created

    def update_annotation(
        self, annotation_id: int, update: AnnotationUpdate
    ) -> Annotation | None:
        """Replace class and geometry of an existing annotation."""
        with STORE_LOCK:
            found = self._find_annotation(annotation_id)
            if found is None:
                return None
            metadata, index = found
            updated = metadata.annotations[index].model_copy(
                update=update.model_dump()
            )
            metadata.annotations[index] = updated
            self._save_metadata(metadata)
        return updated

    def delete_annotation(self, annotation_id: int) -> bool:
        """Delete an annotation."""
        with STORE_LOCK:
            found = self._find_annotation(annotation_id)
            if found is None:
                return False
            metadata, index = found
            del metadata.annotations[index]
            self._save_metadata(metadata)
        return True

    def delete_annotations_for_image(self, image_id: int) -> int:
        """Clear all annotations of an image, returning how many were removed."""
        with STORE_LOCK:
            metadata = self._load_metadata(image_id)
            if metadata is None:
                return 0
            count = len(metadata.annotations)
            metadata.annotations = []
            self._save_metadata(metadata)
        return count
