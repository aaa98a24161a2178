"""Service for exporting a project as a YOLO dataset."""

import shutil
import tempfile
import zipfile
from pathlib import Path

from yolo_annotator.exceptions import DatasetError, NotFoundError
from yolo_annotator.geometry import format_label_line
from yolo_annotator.logger import get_logger
from yolo_annotator.models.datasets import ExportSummary
from yolo_annotator.services.annotation_service import AnnotationService
from yolo_annotator.services.project_service import Project, ProjectService
from yolo_annotator.utils import label_filename_for, sanitize_filename

logger = get_logger(__name__)

IMAGES_SUBDIR = Path("images") / "train"
LABELS_SUBDIR = Path("labels") / "train"


def create_data_yaml(class_names: list[str]) -> str:
    """Create YOLO data.yaml content.

    The export has no separate validation split, so ``val`` points at the
    training images.
    """
    quoted = ", ".join("'" + name.replace("'", "''") + "'" for name in class_names)
    lines = [
        "# YOLO dataset configuration",
        "train: images/train",
        "val: images/train",
        f"nc: {len(class_names)}",
        f"names: [{quoted}]",
    ]
    return "\n".join(lines) + "\n"


def export_archive_name(project: Project) -> str:
    """Download name of a project's dataset archive."""
    return f"{project.name}_yolo_dataset.zip"


class ExportService:
    """Handles exporting projects to the YOLO directory layout."""

    def __init__(
        self,
        project_service: ProjectService,
        annotation_service: AnnotationService,
    ) -> None:
        """Initialize the export service.

        Args:
            project_service: Service for reading projects and class lists.
            annotation_service: Service for accessing images and annotations.
        """
        self.project_service = project_service
        self.annotation_service = annotation_service

    def _get_project(self, project_id: int) -> Project:
        project = self.project_service.get_project(project_id)
        if project is None:
            raise NotFoundError("Project", project_id)
        return project

    def export_yolo(self, project_id: int, output_dir: Path) -> ExportSummary:
        """Export a project in YOLO format.

        Creates the directory structure:
        output_dir/
        ├── data.yaml
        ├── classes.txt
        ├── train.txt
        ├── images/train/
        └── labels/train/

        Images whose file is missing, or that fail to copy, are logged and
        skipped.

        Args:
            project_id: Project to export.
            output_dir: Directory to export to.

        Returns:
            Summary of what was written.

        Raises:
            NotFoundError: If the project doesn't exist.
            DatasetError: If the project has no images or none could be exported.
        """
        project = self._get_project(project_id)
        images = self.annotation_service.list_images(project_id)
        if not images:
            raise DatasetError("No images in project")

        images_dir = output_dir / IMAGES_SUBDIR
        labels_dir = output_dir / LABELS_SUBDIR
        images_dir.mkdir(parents=True, exist_ok=True)
        labels_dir.mkdir(parents=True, exist_ok=True)

        summary = ExportSummary(output_dir=output_dir)
        # Insertion-ordered set: duplicate original names overwrite on disk
        train_paths: dict[str, None] = {}

        for image in images:
            source_path = self.annotation_service.get_image_path(image)
            if source_path is None:
                logger.warning(
                    "Source image not found for image %d (%s), skipping",
                    image.id,
                    image.filename,
                )
                summary.skipped_images.append(image.id)
                continue

            target_name = sanitize_filename(image.original_name)
            try:
                annotations = self.annotation_service.list_annotations(image.id)
                shutil.copyfile(source_path, images_dir / target_name)
                label_lines = [
                    format_label_line(ann.class_id, ann.box) for ann in annotations
                ]
                (labels_dir / label_filename_for(target_name)).write_text(
                    "\n".join(label_lines), encoding="utf-8"
                )
            except (OSError, NotFoundError):
                logger.error("Error exporting image %d", image.id, exc_info=True)
                continue

            train_paths[f"{IMAGES_SUBDIR.as_posix()}/{target_name}"] = None
            summary.annotation_count += len(annotations)

        if not train_paths:
            raise DatasetError("No images could be exported")

        summary.exported_images = list(train_paths)
        class_names = [cls.name for cls in project.classes]
        (output_dir / "train.txt").write_text(
            "\n".join(summary.exported_images), encoding="utf-8"
        )
        (output_dir / "classes.txt").write_text(
            "\n".join(class_names), encoding="utf-8"
        )
        (output_dir / "data.yaml").write_text(
            create_data_yaml(class_names), encoding="utf-8"
        )

        logger.info(
            "Exported project %d: %d images, %d annotations, %d skipped",
            project_id,
            len(summary.exported_images),
            summary.annotation_count,
            len(summary.skipped_images),
        )
        return summary

    def export_yolo_zip(self, project_id: int) -> Path:
        """Export a project as a ZIP archive in a fresh scratch directory.

        The caller owns the scratch directory (the archive's parent) and must
        remove it once the archive has been delivered.

        Returns:
            Path to the created ZIP file.

        Raises:
            NotFoundError: If the project doesn't exist.
            DatasetError: If nothing could be exported.
        """
        project = self._get_project(project_id)
        work_dir = Path(tempfile.mkdtemp(prefix=f"yolo_export_{project_id}_"))
        try:
            export_dir = work_dir / "dataset"
            self.export_yolo(project_id, export_dir)

            zip_path = work_dir / sanitize_filename(export_archive_name(project))
            with zipfile.ZipFile(zip_path, "w", zipfile.ZIP_DEFLATED) as zipf:
                for file_path in sorted(export_dir.rglob("*")):
                    if file_path.is_file():
                        arcname = file_path.relative_to(export_dir)
                        zipf.write(file_path, arcname.as_posix())
        except BaseException:
            shutil.rmtree(work_dir, ignore_errors=True)
            raise

        return zip_path
