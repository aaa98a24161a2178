"""YOLO dataset annotation tool."""

__version__ = "0.3.0"
