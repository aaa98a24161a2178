"""Services for the annotation tool."""

from yolo_annotator.services.annotation_service import AnnotationService
from yolo_annotator.services.export_service import ExportService
from yolo_annotator.services.import_service import ImportService
from yolo_annotator.services.project_service import ProjectService
from yolo_annotator.services.thumbnail_service import ThumbnailService

__all__ = [
    "AnnotationService",
    "ExportService",
    "ImportService",
    "ProjectService",
    "ThumbnailService",
]
