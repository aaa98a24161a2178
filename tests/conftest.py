"""Shared test configuration and fixtures."""

import io
import os
from pathlib import Path

import pytest
from PIL import Image

from yolo_annotator.services.annotation_service import AnnotationService
from yolo_annotator.services.project_service import ProjectService

# Set high rate limit before importing app to avoid rate limiting in tests
# This must be done before any imports that load the routes module
os.environ.setdefault("YOLO_ANNOTATOR_UPLOAD_RATE_LIMIT", "10000/minute")


def make_image_bytes(
    width: int = 100, height: int = 80, fmt: str = "PNG", color: str = "red"
) -> bytes:
    """Encode a solid-color test image."""
    img = Image.new("RGB", (width, height), color=color)
    buffer = io.BytesIO()
    img.save(buffer, format=fmt)
    return buffer.getvalue()


@pytest.fixture
def sample_image() -> bytes:
    """Create a sample 100x80 PNG image."""
    return make_image_bytes()


@pytest.fixture
def projects_dir(tmp_path: Path) -> Path:
    """Create a temporary projects directory."""
    path = tmp_path / "data" / "projects"
    path.mkdir(parents=True)
    return path


@pytest.fixture
def project_service(projects_dir: Path) -> ProjectService:
    """Create a project service with a temp directory."""
    return ProjectService(projects_dir)


@pytest.fixture
def annotation_service(projects_dir: Path) -> AnnotationService:
    """Create an annotation service sharing the project store."""
    return AnnotationService(
        projects_dir, thumbnails_dir=projects_dir.parent / "thumbnails"
    )
