"""Tests for utility functions."""

from pathlib import Path

import pytest

from yolo_annotator.utils import (
    class_color,
    class_hue,
    is_image_filename,
    label_filename_for,
    sanitize_filename,
    validate_path_in_directory,
)


class TestSanitizeFilename:
    """Tests for sanitize_filename function."""

    def test_simple_filename(self) -> None:
        """Test that simple filenames pass through unchanged."""
        assert sanitize_filename("image.png") == "image.png"

    def test_path_traversal_unix(self) -> None:
        """Test that Unix path traversal is stripped."""
        assert sanitize_filename("../../../etc/passwd") == "passwd"

    def test_path_traversal_windows(self) -> None:
        """Test that Windows path traversal is stripped."""
        assert sanitize_filename("..\\..\\windows\\system32\\config") == "config"

    def test_filename_with_spaces(self) -> None:
        """Test that filenames with spaces are preserved."""
        assert sanitize_filename("my image.png") == "my image.png"


class TestValidatePathInDirectory:
    """Tests for validate_path_in_directory function."""

    def test_valid_path(self, tmp_path: Path) -> None:
        """Test that a path within directory is valid."""
        assert validate_path_in_directory(tmp_path / "images" / "a.png", tmp_path)

    def test_path_traversal_rejected(self, tmp_path: Path) -> None:
        """Test that path traversal outside directory is rejected."""
        assert not validate_path_in_directory(tmp_path / ".." / "etc", tmp_path)


class TestImageFilenames:
    """Tests for image extension checks and label names."""

    @pytest.mark.parametrize("name", ["a.jpg", "b.JPEG", "c.Png", "dir/d.png"])
    def test_accepted_extensions(self, name: str) -> None:
        """Test that JPG, JPEG and PNG are accepted in any case."""
        assert is_image_filename(name)

    @pytest.mark.parametrize("name", ["a.gif", "b.bmp", "notes.txt", "noext"])
    def test_rejected_extensions(self, name: str) -> None:
        """Test that other file types are rejected."""
        assert not is_image_filename(name)

    def test_label_filename_replaces_image_extension(self) -> None:
        """Test label names for image files."""
        assert label_filename_for("cat.jpg") == "cat.txt"
        assert label_filename_for("dog.JPEG") == "dog.txt"
        assert label_filename_for("a.b.png") == "a.b.txt"

    def test_label_filename_for_other_names(self) -> None:
        """Test that unknown extensions keep the full name."""
        assert label_filename_for("scan.tiff") == "scan.tiff.txt"


class TestClassColors:
    """Tests for deterministic class colors."""

    def test_first_colors(self) -> None:
        """Test the first few colors of the golden-angle sequence."""
        assert class_color(0) == "hsl(0, 70%, 50%)"
        assert class_color(1) == "hsl(137.5, 70%, 50%)"
        assert class_color(2) == "hsl(275, 70%, 50%)"
        assert class_color(3) == "hsl(52.5, 70%, 50%)"

    def test_hue_in_range(self) -> None:
        """Test that hues always lie in [0, 360)."""
        for index in range(500):
            assert 0 <= class_hue(index) < 360

    def test_color_depends_only_on_index(self) -> None:
        """Test that colors are stable across calls."""
        assert [class_color(i) for i in range(10)] == [
            class_color(i) for i in range(10)
        ]
