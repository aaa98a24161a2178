"""FastAPI routes for the annotation API."""

import shutil
import tempfile
import threading
from pathlib import Path
from typing import Annotated

from fastapi import APIRouter, Depends, File, HTTPException, Request, UploadFile
from fastapi.responses import FileResponse
from slowapi import Limiter
from slowapi.util import get_remote_address
from starlette.background import BackgroundTask

from yolo_annotator import __version__
from yolo_annotator.config import (
    get_export_cleanup_delay,
    get_max_upload_bytes,
    get_projects_dir,
    get_thumbnails_dir,
    get_upload_rate_limit,
)
from yolo_annotator.exceptions import (
    AnnotatorError,
    ConflictError,
    InvalidInputError,
    NotFoundError,
)
from yolo_annotator.logger import get_logger
from yolo_annotator.models.annotations import (
    Annotation,
    AnnotationCreate,
    AnnotationUpdate,
    ImageRecord,
)
from yolo_annotator.models.datasets import ImportResponse
from yolo_annotator.services.annotation_service import AnnotationService
from yolo_annotator.services.export_service import ExportService, export_archive_name
from yolo_annotator.services.import_service import ImportService
from yolo_annotator.services.project_service import (
    ClassDefinition,
    ClassListUpdate,
    Project,
    ProjectCreate,
    ProjectService,
)
from yolo_annotator.services.thumbnail_service import ThumbnailService

logger = get_logger(__name__)

router = APIRouter()

# Rate limiter for upload protection
# Default: 1000 uploads per minute per IP (configurable via env)
_upload_rate_limit = get_upload_rate_limit()
limiter = Limiter(key_func=get_remote_address)

THUMBNAIL_CACHE_CONTROL = "public, max-age=31536000"


def _http_error(err: AnnotatorError) -> HTTPException:
    """Map a domain error to the matching HTTP error."""
    if isinstance(err, NotFoundError):
        return HTTPException(status_code=404, detail=err.message)
    if isinstance(err, ConflictError):
        return HTTPException(status_code=409, detail=err.message)
    if isinstance(err, InvalidInputError):
        return HTTPException(status_code=400, detail=err.message)
    return HTTPException(status_code=500, detail=err.message)


def get_project_service() -> ProjectService:
    """Dependency for project service."""
    return ProjectService(get_projects_dir())


def get_annotation_service() -> AnnotationService:
    """Dependency for image and annotation storage."""
    return AnnotationService(
        get_projects_dir(),
        thumbnails_dir=get_thumbnails_dir(),
        max_upload_bytes=get_max_upload_bytes(),
    )


def get_export_service(
    project_service: Annotated[ProjectService, Depends(get_project_service)],
    annotation_service: Annotated[AnnotationService, Depends(get_annotation_service)],
) -> ExportService:
    """Dependency for export service."""
    return ExportService(project_service, annotation_service)


def get_import_service(
    project_service: Annotated[ProjectService, Depends(get_project_service)],
    annotation_service: Annotated[AnnotationService, Depends(get_annotation_service)],
) -> ImportService:
    """Dependency for import service."""
    return ImportService(project_service, annotation_service)


def get_thumbnail_service(
    annotation_service: Annotated[AnnotationService, Depends(get_annotation_service)],
) -> ThumbnailService:
    """Dependency for thumbnail service."""
    return ThumbnailService(annotation_service, get_thumbnails_dir())


# Health check endpoint
@router.get("/health")
def health_check() -> dict[str, str]:
    """Health check endpoint for API availability."""
    return {
        "status": "ok",
        "message": "YOLO Annotation Tool API",
        "version": __version__,
    }


# Project endpoints
@router.get("/projects", response_model=list[Project])
def list_projects(
    service: Annotated[ProjectService, Depends(get_project_service)],
) -> list[Project]:
    """List all projects, newest first."""
    return service.list_projects()


@router.post("/projects", response_model=Project, status_code=201)
def create_project(
    create: ProjectCreate,
    service: Annotated[ProjectService, Depends(get_project_service)],
) -> Project:
    """Create a new project."""
    try:
        return service.create_project(create)
    except AnnotatorError as e:
        raise _http_error(e) from e


@router.get("/projects/{project_id}", response_model=Project)
def get_project(
    project_id: int,
    service: Annotated[ProjectService, Depends(get_project_service)],
) -> Project:
    """Get a project with its classes and statistics."""
    project = service.get_project(project_id)
    if project is None:
        raise HTTPException(status_code=404, detail="Project not found")
    return project


@router.put(
    "/projects/{project_id}/classes",
    response_model=dict[str, list[ClassDefinition]],
)
def update_project_classes(
    project_id: int,
    update: ClassListUpdate,
    service: Annotated[ProjectService, Depends(get_project_service)],
) -> dict[str, list[ClassDefinition]]:
    """Replace the class list of a project."""
    classes = service.update_classes(project_id, update.classes)
    if classes is None:
        raise HTTPException(status_code=404, detail="Project not found")
    return {"class_definitions": classes}


@router.delete("/projects/{project_id}")
def delete_project(
    project_id: int,
    service: Annotated[ProjectService, Depends(get_project_service)],
) -> dict[str, str]:
    """Delete a project and all its data."""
    success = service.delete_project(project_id)
    if not success:
        raise HTTPException(status_code=404, detail="Project not found")
    return {"message": "Project deleted successfully"}


# Image endpoints
@router.get("/images/project/{project_id}", response_model=list[ImageRecord])
def list_images(
    project_id: int,
    service: Annotated[AnnotationService, Depends(get_annotation_service)],
) -> list[ImageRecord]:
    """List the images of a project, newest first."""
    try:
        return service.list_images(project_id)
    except NotFoundError as e:
        raise _http_error(e) from e


@router.post(
    "/images/project/{project_id}/upload",
    response_model=list[ImageRecord],
    status_code=201,
)
@limiter.limit(_upload_rate_limit)
async def upload_images(
    request: Request,
    project_id: int,
    service: Annotated[AnnotationService, Depends(get_annotation_service)],
    images: Annotated[list[UploadFile] | None, File()] = None,
) -> list[ImageRecord]:
    """Upload images to a project.

    Files that are not valid JPG/PNG images are skipped. Rate limited to
    prevent abuse (default: 1000/minute per IP).
    """
    if not images:
        raise HTTPException(status_code=400, detail="No files uploaded")

    created: list[ImageRecord] = []
    for upload in images:
        content = await upload.read()
        try:
            created.append(
                service.upload_image(project_id, upload.filename or "", content)
            )
        except NotFoundError as e:
            raise _http_error(e) from e
        except InvalidInputError as e:
            logger.warning("Skipping upload %r: %s", upload.filename, e.message)

    if not created:
        raise HTTPException(status_code=400, detail="No valid images uploaded")
    return created


@router.get("/images/{image_id}", response_model=ImageRecord)
def get_image(
    image_id: int,
    service: Annotated[AnnotationService, Depends(get_annotation_service)],
) -> ImageRecord:
    """Get an image record."""
    image = service.get_image(image_id)
    if image is None:
        raise HTTPException(status_code=404, detail="Image not found")
    return image


@router.get("/images/{image_id}/file")
def get_image_file(
    image_id: int,
    service: Annotated[AnnotationService, Depends(get_annotation_service)],
) -> FileResponse:
    """Get the stored image file."""
    image = service.get_image(image_id)
    if image is None:
        raise HTTPException(status_code=404, detail="Image not found")
    path = service.get_image_path(image)
    if path is None:
        raise HTTPException(status_code=404, detail="Image file not found")
    return FileResponse(path)


@router.delete("/images/{image_id}")
def delete_image(
    image_id: int,
    service: Annotated[AnnotationService, Depends(get_annotation_service)],
) -> dict[str, str]:
    """Delete an image and its annotations."""
    success = service.delete_image(image_id)
    if not success:
        raise HTTPException(status_code=404, detail="Image not found")
    return {"message": "Image deleted successfully"}


@router.get("/thumbnails/{image_id}/{size}")
def get_thumbnail(
    image_id: int,
    size: str,
    service: Annotated[ThumbnailService, Depends(get_thumbnail_service)],
) -> FileResponse:
    """Get a cached JPEG thumbnail (small, medium or large)."""
    try:
        path = service.get_thumbnail(image_id, size)
    except AnnotatorError as e:
        raise _http_error(e) from e
    return FileResponse(
        path,
        media_type="image/jpeg",
        headers={"Cache-Control": THUMBNAIL_CACHE_CONTROL},
    )


# Annotation endpoints
@router.get("/annotations/image/{image_id}", response_model=list[Annotation])
def list_annotations(
    image_id: int,
    service: Annotated[AnnotationService, Depends(get_annotation_service)],
) -> list[Annotation]:
    """Get all annotations of an image."""
    try:
        return service.list_annotations(image_id)
    except NotFoundError as e:
        raise _http_error(e) from e


@router.post(
    "/annotations/image/{image_id}", response_model=Annotation, status_code=201
)
def create_annotation(
    image_id: int,
    annotation: AnnotationCreate,
    service: Annotated[AnnotationService, Depends(get_annotation_service)],
) -> Annotation:
    """Add a new annotation to an image."""
    try:
        return service.create_annotation(image_id, annotation)
    except NotFoundError as e:
        raise _http_error(e) from e


@router.get("/annotations/{annotation_id}", response_model=Annotation)
def get_annotation(
    annotation_id: int,
    service: Annotated[AnnotationService, Depends(get_annotation_service)],
) -> Annotation:
    """Get an annotation."""
    annotation = service.get_annotation(annotation_id)
    if annotation is None:
        raise HTTPException(status_code=404, detail="Annotation not found")
    return annotation


@router.put("/annotations/{annotation_id}", response_model=Annotation)
def update_annotation(
    annotation_id: int,
    update: AnnotationUpdate,
    service: Annotated[AnnotationService, Depends(get_annotation_service)],
) -> Annotation:
    """Replace class and geometry of an annotation."""
    result = service.update_annotation(annotation_id, update)
    if result is None:
        raise HTTPException(status_code=404, detail="Annotation not found")
    return result


@router.delete("/annotations/{annotation_id}")
def delete_annotation(
    annotation_id: int,
    service: Annotated[AnnotationService, Depends(get_annotation_service)],
) -> dict[str, str]:
    """Delete an annotation."""
    success = service.delete_annotation(annotation_id)
    if not success:
        raise HTTPException(status_code=404, detail="Annotation not found")
    return {"message": "Annotation deleted successfully"}


# Dataset import/export endpoints
def _schedule_cleanup(directory: Path, delay: float) -> None:
    """Remove an export scratch directory after a delay."""
    timer = threading.Timer(
        delay, shutil.rmtree, args=(directory,), kwargs={"ignore_errors": True}
    )
    timer.daemon = True
    timer.start()


@router.post("/projects/{project_id}/import-yolo", response_model=ImportResponse)
@limiter.limit(_upload_rate_limit)
def import_yolo(
    request: Request,
    project_id: int,
    dataset: Annotated[UploadFile, File(...)],
    service: Annotated[ImportService, Depends(get_import_service)],
) -> ImportResponse:
    """Import a zipped YOLO dataset into a project."""
    with tempfile.NamedTemporaryFile(
        prefix="yolo_upload_", suffix=".zip", delete=False
    ) as tmp:
        shutil.copyfileobj(dataset.file, tmp)
        archive_path = Path(tmp.name)

    try:
        results = service.import_yolo_zip(project_id, archive_path)
    except AnnotatorError as e:
        raise _http_error(e) from e
    except Exception as e:
        logger.exception("Failed to import dataset into project %d", project_id)
        raise HTTPException(status_code=500, detail="Failed to import dataset") from e
    return ImportResponse(results=results)


@router.get("/projects/{project_id}/export-yolo")
def export_yolo(
    project_id: int,
    service: Annotated[ExportService, Depends(get_export_service)],
) -> FileResponse:
    """Export a project as a zipped YOLO dataset."""
    try:
        project = service.project_service.get_project(project_id)
        if project is None:
            raise NotFoundError("Project", project_id)
        zip_path = service.export_yolo_zip(project_id)
    except AnnotatorError as e:
        raise _http_error(e) from e
    except Exception as e:
        logger.exception("Failed to export project %d", project_id)
        raise HTTPException(status_code=500, detail="Failed to export dataset") from e

    return FileResponse(
        zip_path,
        media_type="application/zip",
        filename=export_archive_name(project),
        background=BackgroundTask(
            _schedule_cleanup, zip_path.parent, get_export_cleanup_delay()
        ),
    )
