"""Data models for the annotation tool."""

from yolo_annotator.models.annotations import (
    Annotation,
    AnnotationCreate,
    AnnotationUpdate,
    BoundingBox,
    ClassValue,
    ImageMetadata,
    ImageRecord,
    PixelBox,
)
from yolo_annotator.models.datasets import ExportSummary, ImportResponse, ImportResults

__all__ = [
    "Annotation",
    "AnnotationCreate",
    "AnnotationUpdate",
    "BoundingBox",
    "ClassValue",
    "ExportSummary",
    "ImageMetadata",
    "ImageRecord",
    "ImportResponse",
    "ImportResults",
    "PixelBox",
]
