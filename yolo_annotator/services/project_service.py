"""Service for managing annotation projects and their class lists."""

import shutil
from datetime import datetime
from pathlib import Path

from pydantic import BaseModel, Field

from yolo_annotator.exceptions import ConflictError, InvalidInputError
from yolo_annotator.logger import get_logger
from yolo_annotator.models.annotations import ImageMetadata
from yolo_annotator.services.records import (
    STORE_LOCK,
    IdSequence,
    load_model,
    save_model,
)
from yolo_annotator.utils import class_color

logger = get_logger(__name__)

PROJECT_META_FILENAME = "project.json"
RECORDS_DIRNAME = "records"
UPLOADS_DIRNAME = "uploads"


class ClassDefinition(BaseModel):
    """An object class; its id is its position in the project's class list."""

    id: int = Field(..., ge=0)
    name: str
    color: str


class Project(BaseModel):
    """Represents an annotation project."""

    id: int = Field(..., description="Store-assigned project id")
    name: str = Field(..., description="Unique project name")
    created_at: str = Field(..., description="ISO format creation timestamp")
    classes: list[ClassDefinition] = Field(default_factory=list)
    image_count: int = Field(default=0, description="Number of images in project")
    annotation_count: int = Field(default=0, description="Total number of annotations")


class ProjectCreate(BaseModel):
    """Request model for creating a project."""

    name: str = Field(..., min_length=1, max_length=100, description="Project name")
    classes: list[str] = Field(default_factory=list, description="Class names")


class ClassListUpdate(BaseModel):
    """Request model replacing a project's whole class list."""

    classes: list[str]


def build_class_definitions(names: list[str]) -> list[ClassDefinition]:
    """Number classes by position and derive their display colors."""
    return [
        ClassDefinition(id=index, name=name, color=class_color(index))
        for index, name in enumerate(names)
    ]


class ProjectService:
    """Handles project storage and management."""

    def __init__(self, base_dir: Path) -> None:
        """Initialize the project service.

        Args:
            base_dir: Base directory for storing all projects.
        """
        self.base_dir = base_dir
        self.sequence = IdSequence(base_dir)
        self._ensure_directories()

    def _ensure_directories(self) -> None:
        """Create base projects directory if it doesn't exist."""
        self.base_dir.mkdir(parents=True, exist_ok=True)

    def _get_project_dir(self, project_id: int) -> Path:
        """Get the directory path for a project."""
        return self.base_dir / f"project_{project_id}"

    def _get_project_meta_path(self, project_id: int) -> Path:
        """Get the path to the project metadata file."""
        return self._get_project_dir(project_id) / PROJECT_META_FILENAME

    def _load_project_meta(self, project_id: int) -> Project | None:
        """Load project metadata from JSON file."""
        return load_model(self._get_project_meta_path(project_id), Project)

    def _save_project_meta(self, project: Project) -> None:
        """Save project metadata to JSON file."""
        stored = project.model_copy(update={"image_count": 0, "annotation_count": 0})
        save_model(self._get_project_meta_path(project.id), stored)

    def _iter_projects(self) -> list[Project]:
        projects = []
        for meta_path in self.base_dir.glob(f"project_*/{PROJECT_META_FILENAME}"):
            project = load_model(meta_path, Project)
            if project is not None:
                projects.append(project)
        return projects

    def _count_project_stats(self, project_id: int) -> tuple[int, int]:
        """Count images and annotations in a project.

        Returns:
            Tuple of (image_count, annotation_count).
        """
        records_dir = self._get_project_dir(project_id) / RECORDS_DIRNAME
        image_count = 0
        annotation_count = 0
        if records_dir.exists():
            for record_path in records_dir.glob("*.json"):
                metadata = load_model(record_path, ImageMetadata)
                if metadata is None:
                    continue
                image_count += 1
                annotation_count += len(metadata.annotations)
        return image_count, annotation_count

    def _with_stats(self, project: Project) -> Project:
        image_count, annotation_count = self._count_project_stats(project.id)
        project.image_count = image_count
        project.annotation_count = annotation_count
        return project

    def list_projects(self) -> list[Project]:
        """List all projects, newest first."""
        projects = [self._with_stats(p) for p in self._iter_projects()]
        projects.sort(key=lambda p: (p.created_at, p.id), reverse=True)
        return projects

    def create_project(self, create: ProjectCreate) -> Project:
        """Create a new project.

        Args:
            create: Project creation request.

        Returns:
            The created project.

        Raises:
            InvalidInputError: If the name is blank.
            ConflictError: If a project with the same name exists.
        """
        name = create.name.strip()
        if not name:
            raise InvalidInputError("Project name cannot be empty")

        with STORE_LOCK:
            if any(p.name == name for p in self._iter_projects()):
                raise ConflictError(
                    "Project name already exists", {"name": name}
                )

            project_id = self.sequence.next("projects")
            project_dir = self._get_project_dir(project_id)
            project_dir.mkdir(parents=True, exist_ok=True)
            (project_dir / RECORDS_DIRNAME).mkdir(exist_ok=True)
            (project_dir / UPLOADS_DIRNAME).mkdir(exist_ok=True)

            project = Project(
                id=project_id,
                name=name,
                created_at=datetime.now().isoformat(),
                classes=build_class_definitions(create.classes),
            )
            self._save_project_meta(project)

        logger.info("Created project %d (%s)", project.id, project.name)
        return project

    def get_project(self, project_id: int) -> Project | None:
        """Get a project by ID."""
        project = self._load_project_meta(project_id)
        if project is None:
            return None
        return self._with_stats(project)

    def update_classes(
        self, project_id: int, names: list[str]
    ) -> list[ClassDefinition] | None:
        """Replace the whole class list of a project.

        Every class is renumbered by its new position. Existing annotations
        keep their numeric class ids.

        Returns:
            The new class definitions, or None if the project is missing.
        """
        with STORE_LOCK:
            project = self._load_project_meta(project_id)
            if project is None:
                return None
            project.classes = build_class_definitions(names)
            self._save_project_meta(project)
        return project.classes

    def delete_project(self, project_id: int) -> bool:
        """Delete a project with its images and annotations.

        Removing the project record is authoritative; failing to remove the
        remaining files is logged and does not fail the deletion.

        Returns:
            True if deleted, False if not found.
        """
        with STORE_LOCK:
            meta_path = self._get_project_meta_path(project_id)
            if not meta_path.exists():
                return False
            meta_path.unlink()

        project_dir = self._get_project_dir(project_id)
        try:
            shutil.rmtree(project_dir)
        except OSError:
            logger.warning(
                "Could not remove files of deleted project %d at %s",
                project_id,
                project_dir,
                exc_info=True,
            )
        logger.info("Deleted project %d", project_id)
        return True
