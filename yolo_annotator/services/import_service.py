"""Service for importing YOLO datasets into a project."""

import shutil
import tempfile
import zipfile
from pathlib import Path

from yolo_annotator.exceptions import DatasetError, InvalidInputError, NotFoundError
from yolo_annotator.geometry import parse_label_line
from yolo_annotator.logger import get_logger
from yolo_annotator.models.annotations import BoundingBox, ClassValue
from yolo_annotator.models.datasets import ImportResults
from yolo_annotator.services.annotation_service import AnnotationService
from yolo_annotator.services.project_service import ProjectService
from yolo_annotator.utils import (
    is_image_filename,
    label_filename_for,
    validate_path_in_directory,
)

logger = get_logger(__name__)

CLASS_FILE_NAMES = frozenset({"classes.txt", "names.txt"})


class DatasetLayout:
    """Locations found inside an extracted dataset."""

    def __init__(
        self,
        images_dir: Path | None = None,
        labels_dir: Path | None = None,
        classes_file: Path | None = None,
    ) -> None:
        self.images_dir = images_dir
        self.labels_dir = labels_dir
        self.classes_file = classes_file


def extract_archive(archive_path: Path, target_dir: Path) -> None:
    """Extract a ZIP archive, refusing members that escape ``target_dir``.

    Raises:
        DatasetError: If the archive is not a valid ZIP file or is unsafe.
    """
    try:
        with zipfile.ZipFile(archive_path) as zipf:
            for member in zipf.namelist():
                if not validate_path_in_directory(target_dir / member, target_dir):
                    raise DatasetError(
                        "Archive contains an unsafe path", {"member": member}
                    )
            zipf.extractall(target_dir)
    except zipfile.BadZipFile as err:
        raise DatasetError("Uploaded file is not a valid ZIP archive") from err


def _descend_into_train(directory: Path) -> Path:
    nested = directory / "train"
    if nested.is_dir():
        return nested
    return directory


def detect_layout(root: Path) -> DatasetLayout:
    """Find the images dir, labels dir and class list by name heuristics.

    Entries are visited sorted by name; when several directories match the
    same role the last one wins.
    """
    layout = DatasetLayout()
    for entry in sorted(root.iterdir(), key=lambda p: p.name):
        lower = entry.name.lower()
        if entry.is_dir():
            if "image" in lower or lower == "train":
                layout.images_dir = entry
            elif "label" in lower or "annotation" in lower:
                layout.labels_dir = entry
        elif entry.is_file() and lower in CLASS_FILE_NAMES:
            layout.classes_file = entry

    if layout.images_dir is not None:
        layout.images_dir = _descend_into_train(layout.images_dir)
    if layout.labels_dir is not None:
        layout.labels_dir = _descend_into_train(layout.labels_dir)
    return layout


def read_class_names(classes_file: Path | None) -> list[str]:
    """Read newline-separated class names, dropping blank lines."""
    if classes_file is None:
        return []
    text = classes_file.read_text(encoding="utf-8", errors="replace")
    return [line.strip() for line in text.splitlines() if line.strip()]


def read_label_file(label_path: Path) -> list[tuple[ClassValue, BoundingBox]]:
    """Parse a YOLO label file; malformed lines are skipped."""
    entries = []
    text = label_path.read_text(encoding="utf-8", errors="replace")
    for line in text.splitlines():
        if not line.strip():
            continue
        parsed = parse_label_line(line)
        if parsed is not None:
            entries.append(parsed)
    return entries


class ImportService:
    """Handles importing YOLO datasets from ZIP archives."""

    def __init__(
        self,
        project_service: ProjectService,
        annotation_service: AnnotationService,
    ) -> None:
        """Initialize the import service.

        Args:
            project_service: Service for checking projects exist.
            annotation_service: Service that stores images and annotations.
        """
        self.project_service = project_service
        self.annotation_service = annotation_service

    def import_yolo_zip(
        self, project_id: int, archive_path: Path, remove_archive: bool = True
    ) -> ImportResults:
        """Import a zipped YOLO dataset into a project.

        The scratch extraction directory is always removed; the archive is
        removed too unless ``remove_archive`` is False.

        Args:
            project_id: Project receiving the images.
            archive_path: Path to the uploaded ZIP archive.
            remove_archive: Whether to delete the archive afterwards.

        Returns:
            Counters and per-file errors of the import.

        Raises:
            NotFoundError: If the project doesn't exist.
            DatasetError: If the archive is unusable as a dataset.
        """
        try:
            if self.project_service.get_project(project_id) is None:
                raise NotFoundError("Project", project_id)

            work_dir = Path(tempfile.mkdtemp(prefix=f"yolo_import_{project_id}_"))
            try:
                extract_archive(archive_path, work_dir)
                return self.import_yolo_dir(project_id, work_dir)
            finally:
                shutil.rmtree(work_dir, ignore_errors=True)
        finally:
            if remove_archive:
                archive_path.unlink(missing_ok=True)

    def import_yolo_dir(self, project_id: int, dataset_dir: Path) -> ImportResults:
        """Import an extracted YOLO dataset directory into a project.

        Raises:
            NotFoundError: If the project doesn't exist.
            DatasetError: If no images/labels directory or no images are found.
        """
        layout = detect_layout(dataset_dir)
        if layout.images_dir is None:
            raise DatasetError("No images directory found in dataset")
        if layout.labels_dir is None:
            raise DatasetError("No labels directory found in dataset")

        results = ImportResults(
            classes_found=len(read_class_names(layout.classes_file))
        )

        image_files = sorted(
            (
                path
                for path in layout.images_dir.iterdir()
                if path.is_file() and is_image_filename(path.name)
            ),
            key=lambda p: p.name,
        )
        if not image_files:
            raise DatasetError("No valid image files found in dataset")

        for image_file in image_files:
            try:
                image = self.annotation_service.import_image_file(
                    project_id, image_file
                )
            except InvalidInputError as err:
                results.errors.append(
                    f"Could not read dimensions of {image_file.name}: {err}"
                )
                continue
            except OSError as err:
                logger.warning("Error importing %s", image_file.name, exc_info=True)
                results.errors.append(f"Error processing {image_file.name}: {err}")
                continue
            results.images_imported += 1

            label_path = layout.labels_dir / label_filename_for(image_file.name)
            if not label_path.is_file():
                continue
            try:
                entries = read_label_file(label_path)
                created = self.annotation_service.add_raw_annotations(image.id, entries)
            except OSError as err:
                logger.warning(
                    "Error reading labels %s", label_path.name, exc_info=True
                )
                results.errors.append(f"Error processing {image_file.name}: {err}")
                continue
            results.annotations_imported += len(created)

        logger.info(
            "Imported into project %d: %d images, %d annotations, %d errors",
            project_id,
            results.images_imported,
            results.annotations_imported,
            len(results.errors),
        )
        return results
