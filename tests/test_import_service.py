"""Tests for the YOLO import service."""

import shutil
import zipfile
from pathlib import Path

import pytest
from conftest import make_image_bytes

from yolo_annotator.exceptions import DatasetError, NotFoundError
from yolo_annotator.models.annotations import AnnotationCreate
from yolo_annotator.services.annotation_service import AnnotationService
from yolo_annotator.services.export_service import ExportService
from yolo_annotator.services.import_service import (
    ImportService,
    detect_layout,
    read_class_names,
)
from yolo_annotator.services.project_service import (
    Project,
    ProjectCreate,
    ProjectService,
)


def write_zip(path: Path, files: dict[str, bytes | str]) -> Path:
    """Write a ZIP archive from a name -> content mapping."""
    with zipfile.ZipFile(path, "w") as zipf:
        for name, content in files.items():
            zipf.writestr(name, content)
    return path


@pytest.fixture
def import_service(
    project_service: ProjectService, annotation_service: AnnotationService
) -> ImportService:
    """Create an import service over the temp store."""
    return ImportService(project_service, annotation_service)


@pytest.fixture
def project(project_service: ProjectService) -> Project:
    """Create an empty target project."""
    return project_service.create_project(ProjectCreate(name="Target"))


class TestDetectLayout:
    """Tests for dataset directory detection."""

    def test_standard_layout(self, tmp_path: Path) -> None:
        """Test images/labels with nested train directories."""
        (tmp_path / "images" / "train").mkdir(parents=True)
        (tmp_path / "labels" / "train").mkdir(parents=True)
        (tmp_path / "classes.txt").write_text("a\nb")

        layout = detect_layout(tmp_path)
        assert layout.images_dir == tmp_path / "images" / "train"
        assert layout.labels_dir == tmp_path / "labels" / "train"
        assert layout.classes_file == tmp_path / "classes.txt"

    def test_flat_layout_and_aliases(self, tmp_path: Path) -> None:
        """Test train/ as images and annotations/ as labels."""
        (tmp_path / "train").mkdir()
        (tmp_path / "Annotations").mkdir()
        (tmp_path / "NAMES.TXT").write_text("a")

        layout = detect_layout(tmp_path)
        assert layout.images_dir == tmp_path / "train"
        assert layout.labels_dir == tmp_path / "Annotations"
        assert layout.classes_file == tmp_path / "NAMES.TXT"

    def test_files_do_not_match_directories(self, tmp_path: Path) -> None:
        """Test that a file named like a directory is ignored."""
        (tmp_path / "images.txt").write_text("x")
        layout = detect_layout(tmp_path)
        assert layout.images_dir is None

    def test_read_class_names_drops_blanks(self, tmp_path: Path) -> None:
        """Test parsing a class list."""
        path = tmp_path / "classes.txt"
        path.write_text("cat\n\n  dog  \n\n")
        assert read_class_names(path) == ["cat", "dog"]
        assert read_class_names(None) == []


class TestImportYolo:
    """Tests for importing zipped datasets."""

    def test_import_standard_dataset(
        self,
        import_service: ImportService,
        annotation_service: AnnotationService,
        project: Project,
        tmp_path: Path,
    ) -> None:
        """Test a dataset with two images and labels."""
        archive = write_zip(
            tmp_path / "ds.zip",
            {
                "images/train/a.jpg": make_image_bytes(64, 48, "JPEG"),
                "images/train/b.png": make_image_bytes(32, 32),
                "labels/train/a.txt": "0 0.5 0.5 0.2 0.2\n1 0.1 0.1 0.05 0.05\n",
                "labels/train/b.txt": "",
                "classes.txt": "cat\ndog\nbird\n",
            },
        )

        results = import_service.import_yolo_zip(project.id, archive)

        assert results.images_imported == 2
        assert results.annotations_imported == 2
        assert results.classes_found == 3
        assert results.errors == []
        assert not archive.exists()

        images = {img.original_name: img for img in annotation_service.list_images(project.id)}
        assert set(images) == {"a.jpg", "b.png"}
        assert (images["a.jpg"].width, images["a.jpg"].height) == (64, 48)
        annotations = annotation_service.list_annotations(images["a.jpg"].id)
        assert [a.class_id for a in annotations] == [0, 1]
        assert annotations[1].width == 0.05

    def test_malformed_lines_skipped(
        self,
        import_service: ImportService,
        annotation_service: AnnotationService,
        project: Project,
        tmp_path: Path,
    ) -> None:
        """Test that a 4-token line is skipped and the rest imported."""
        archive = write_zip(
            tmp_path / "ds.zip",
            {
                "images/a.png": make_image_bytes(),
                "labels/a.txt": "0 0.5 0.5 0.2\n1 0.5 0.5 0.2 0.2\n\n",
            },
        )

        results = import_service.import_yolo_zip(project.id, archive)
        assert results.images_imported == 1
        assert results.annotations_imported == 1
        image = annotation_service.list_images(project.id)[0]
        annotations = annotation_service.list_annotations(image.id)
        assert len(annotations) == 1
        assert annotations[0].class_id == 1

    def test_out_of_range_values_kept(
        self,
        import_service: ImportService,
        annotation_service: AnnotationService,
        project: Project,
        tmp_path: Path,
    ) -> None:
        """Test that imported geometry is not range checked."""
        archive = write_zip(
            tmp_path / "ds.zip",
            {
                "images/a.png": make_image_bytes(),
                "labels/a.txt": "9 1.5 0.5 0.2 0.2",
            },
        )
        import_service.import_yolo_zip(project.id, archive)
        image = annotation_service.list_images(project.id)[0]
        annotation = annotation_service.list_annotations(image.id)[0]
        assert annotation.class_id == 9
        assert annotation.x_center == 1.5

    def test_fractional_class_kept(
        self,
        import_service: ImportService,
        annotation_service: AnnotationService,
        project: Project,
        tmp_path: Path,
    ) -> None:
        """Test that a numeric but non-integral class value is imported."""
        archive = write_zip(
            tmp_path / "ds.zip",
            {
                "images/a.png": make_image_bytes(),
                "labels/a.txt": "1.5 0.5 0.5 0.2 0.2\n",
            },
        )
        results = import_service.import_yolo_zip(project.id, archive)
        assert results.annotations_imported == 1
        assert results.errors == []
        image = annotation_service.list_images(project.id)[0]
        annotation = annotation_service.list_annotations(image.id)[0]
        assert annotation.class_id == 1.5
        assert annotation_service.get_annotation(annotation.id) == annotation

    def test_unreadable_image_is_reported(
        self,
        import_service: ImportService,
        project: Project,
        tmp_path: Path,
    ) -> None:
        """Test that a corrupt image is skipped with an error entry."""
        archive = write_zip(
            tmp_path / "ds.zip",
            {
                "images/good.png": make_image_bytes(),
                "images/bad.png": b"not an image",
                "labels/good.txt": "0 0.5 0.5 0.2 0.2",
            },
        )
        results = import_service.import_yolo_zip(project.id, archive)
        assert results.images_imported == 1
        assert len(results.errors) == 1
        assert "bad.png" in results.errors[0]

    def test_image_without_label_file(
        self,
        import_service: ImportService,
        project: Project,
        tmp_path: Path,
    ) -> None:
        """Test that images without labels import with no annotations."""
        archive = write_zip(
            tmp_path / "ds.zip",
            {"images/a.png": make_image_bytes(), "labels/other.txt": ""},
        )
        results = import_service.import_yolo_zip(project.id, archive)
        assert results.images_imported == 1
        assert results.annotations_imported == 0

    @pytest.mark.parametrize(
        "files,message",
        [
            ({"labels/a.txt": ""}, "No images directory found in dataset"),
            ({"images/a.png": b""}, "No labels directory found in dataset"),
            (
                {"images/readme.md": "x", "labels/a.txt": ""},
                "No valid image files found in dataset",
            ),
        ],
    )
    def test_rejected_datasets(
        self,
        import_service: ImportService,
        project: Project,
        tmp_path: Path,
        files: dict[str, bytes | str],
        message: str,
    ) -> None:
        """Test whole-dataset rejections."""
        archive = write_zip(tmp_path / "ds.zip", files)
        with pytest.raises(DatasetError, match=message):
            import_service.import_yolo_zip(project.id, archive)
        assert not archive.exists()

    def test_not_a_zip(
        self, import_service: ImportService, project: Project, tmp_path: Path
    ) -> None:
        """Test that a non-ZIP upload is rejected."""
        archive = tmp_path / "ds.zip"
        archive.write_bytes(b"plain text")
        with pytest.raises(DatasetError):
            import_service.import_yolo_zip(project.id, archive)

    def test_unknown_project(self, import_service: ImportService, tmp_path: Path) -> None:
        """Test importing into a missing project removes the upload."""
        archive = write_zip(tmp_path / "ds.zip", {"images/a.png": make_image_bytes()})
        with pytest.raises(NotFoundError):
            import_service.import_yolo_zip(99, archive)
        assert not archive.exists()

    def test_keep_archive(
        self, import_service: ImportService, project: Project, tmp_path: Path
    ) -> None:
        """Test that the archive can be kept for CLI imports."""
        archive = write_zip(
            tmp_path / "ds.zip",
            {"images/a.png": make_image_bytes(), "labels/a.txt": ""},
        )
        import_service.import_yolo_zip(project.id, archive, remove_archive=False)
        assert archive.exists()


class TestExportImportRoundTrip:
    """Tests that an exported dataset imports back unchanged."""

    def test_round_trip(
        self,
        project_service: ProjectService,
        annotation_service: AnnotationService,
        import_service: ImportService,
        tmp_path: Path,
    ) -> None:
        """Test exporting a project and importing it into a new one."""
        source = project_service.create_project(
            ProjectCreate(name="Source", classes=["cat", "dog"])
        )
        boxes = {
            "a.png": [(0, 0.5, 0.5, 0.25, 0.125), (1, 0.123456, 0.654321, 0.1, 0.2)],
            "b.jpg": [(1, 0.9, 0.1, 0.05, 0.05)],
        }
        for name, entries in boxes.items():
            fmt = "JPEG" if name.endswith(".jpg") else "PNG"
            image = annotation_service.upload_image(
                source.id, name, make_image_bytes(50, 40, fmt)
            )
            for class_id, xc, yc, w, h in entries:
                annotation_service.create_annotation(
                    image.id,
                    AnnotationCreate(
                        class_id=class_id, x_center=xc, y_center=yc, width=w, height=h
                    ),
                )

        export_service = ExportService(project_service, annotation_service)
        zip_path = export_service.export_yolo_zip(source.id)
        target = project_service.create_project(ProjectCreate(name="Copy"))
        try:
            results = import_service.import_yolo_zip(target.id, zip_path)
        finally:
            shutil.rmtree(zip_path.parent, ignore_errors=True)

        assert results.images_imported == 2
        assert results.annotations_imported == 3
        assert results.classes_found == 2

        imported = {
            img.original_name: annotation_service.list_annotations(img.id)
            for img in annotation_service.list_images(target.id)
        }
        assert set(imported) == set(boxes)
        for name, entries in boxes.items():
            got = [
                (a.class_id, a.x_center, a.y_center, a.width, a.height)
                for a in imported[name]
            ]
            assert len(got) == len(entries)
            for actual, expected in zip(got, entries):
                assert actual[0] == expected[0]
                assert actual[1:] == pytest.approx(expected[1:], abs=1e-6)
