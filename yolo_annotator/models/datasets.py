"""Pydantic models describing dataset import and export outcomes."""

from pathlib import Path

from pydantic import BaseModel, Field


class ImportResults(BaseModel):
    """Counters accumulated while importing a YOLO dataset."""

    images_imported: int = 0
    annotations_imported: int = 0
    classes_found: int = 0
    errors: list[str] = Field(default_factory=list)


class ImportResponse(BaseModel):
    """Body returned by the import endpoint."""

    success: bool = True
    message: str = "YOLO dataset imported successfully"
    results: ImportResults


class ExportSummary(BaseModel):
    """What an export wrote to disk."""

    output_dir: Path
    exported_images: list[str] = Field(
        default_factory=list, description="Unique images/train/<name> paths"
    )
    skipped_images: list[int] = Field(
        default_factory=list, description="Ids of images whose file was missing"
    )
    annotation_count: int = 0
