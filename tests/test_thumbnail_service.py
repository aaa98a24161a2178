"""Tests for the thumbnail service."""

from pathlib import Path

import pytest
from conftest import make_image_bytes
from PIL import Image

from yolo_annotator.exceptions import InvalidInputError, NotFoundError
from yolo_annotator.services.annotation_service import AnnotationService
from yolo_annotator.services.project_service import ProjectCreate, ProjectService
from yolo_annotator.services.thumbnail_service import ThumbnailService


@pytest.fixture
def thumbnail_service(annotation_service: AnnotationService) -> ThumbnailService:
    """Create a thumbnail service with a temp cache."""
    assert annotation_service.thumbnails_dir is not None
    return ThumbnailService(annotation_service, annotation_service.thumbnails_dir)


@pytest.fixture
def project_id(project_service: ProjectService) -> int:
    """Create a project and return its id."""
    return project_service.create_project(ProjectCreate(name="Thumbs")).id


class TestThumbnailService:
    """Tests for ThumbnailService class."""

    def test_fits_inside_bound(
        self,
        thumbnail_service: ThumbnailService,
        annotation_service: AnnotationService,
        project_id: int,
    ) -> None:
        """Test that a large image is scaled to fit, keeping aspect ratio."""
        image = annotation_service.upload_image(
            project_id, "wide.png", make_image_bytes(1200, 600)
        )
        path = thumbnail_service.get_thumbnail(image.id, "small")
        with Image.open(path) as thumb:
            assert thumb.format == "JPEG"
            assert thumb.size == (150, 75)

    def test_no_enlargement(
        self,
        thumbnail_service: ThumbnailService,
        annotation_service: AnnotationService,
        project_id: int,
    ) -> None:
        """Test that small images keep their size."""
        image = annotation_service.upload_image(
            project_id, "tiny.png", make_image_bytes(40, 20)
        )
        path = thumbnail_service.get_thumbnail(image.id, "large")
        with Image.open(path) as thumb:
            assert thumb.size == (40, 20)

    def test_cached(
        self,
        thumbnail_service: ThumbnailService,
        annotation_service: AnnotationService,
        project_id: int,
    ) -> None:
        """Test that a thumbnail is rendered once and reused."""
        image = annotation_service.upload_image(
            project_id, "a.png", make_image_bytes(400, 400)
        )
        first = thumbnail_service.get_thumbnail(image.id, "medium")
        mtime = first.stat().st_mtime_ns
        second = thumbnail_service.get_thumbnail(image.id, "medium")
        assert first == second
        assert second.stat().st_mtime_ns == mtime

    def test_rgba_converted(
        self,
        thumbnail_service: ThumbnailService,
        annotation_service: AnnotationService,
        project_id: int,
        tmp_path: Path,
    ) -> None:
        """Test that images with alpha can be thumbnailed as JPEG."""
        source = tmp_path / "alpha.png"
        Image.new("RGBA", (300, 300), (0, 0, 255, 128)).save(source)
        image = annotation_service.import_image_file(project_id, source)
        path = thumbnail_service.get_thumbnail(image.id, "small")
        with Image.open(path) as thumb:
            assert thumb.mode == "RGB"

    def test_invalid_size(
        self,
        thumbnail_service: ThumbnailService,
        annotation_service: AnnotationService,
        project_id: int,
        sample_image: bytes,
    ) -> None:
        """Test that unknown size names are rejected."""
        image = annotation_service.upload_image(project_id, "a.png", sample_image)
        with pytest.raises(InvalidInputError):
            thumbnail_service.get_thumbnail(image.id, "huge")

    def test_missing_image(self, thumbnail_service: ThumbnailService) -> None:
        """Test thumbnails of unknown images."""
        with pytest.raises(NotFoundError):
            thumbnail_service.get_thumbnail(999, "small")

    def test_missing_file(
        self,
        thumbnail_service: ThumbnailService,
        annotation_service: AnnotationService,
        project_id: int,
        sample_image: bytes,
    ) -> None:
        """Test thumbnails of images whose file vanished."""
        image = annotation_service.upload_image(project_id, "a.png", sample_image)
        path = annotation_service.get_image_path(image)
        assert path is not None
        path.unlink()
        with pytest.raises(NotFoundError):
            thumbnail_service.get_thumbnail(image.id, "small")
