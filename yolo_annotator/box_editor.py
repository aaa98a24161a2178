"""Interactive bounding-box editing in image-pixel space.

The editor turns a stream of pointer events (press, move, release) into
drawn, moved or resized boxes. Drag state lives only in the editor; a
result is handed to the commit sink once, on release, never on
intermediate moves.

Pointer coordinates are image pixels: the caller has already removed any
zoom and pan applied by its view.
"""

from collections.abc import Callable, Sequence
from enum import Enum

from pydantic import BaseModel, ValidationError

from yolo_annotator.exceptions import AnnotatorError, InvalidInputError
from yolo_annotator.geometry import to_normalized, to_pixel
from yolo_annotator.logger import get_logger
from yolo_annotator.models.annotations import (
    Annotation,
    AnnotationCreate,
    AnnotationUpdate,
    BoundingBox,
    ClassValue,
    PixelBox,
)
from yolo_annotator.services.annotation_service import AnnotationService

logger = get_logger(__name__)

HANDLE_SIZE = 8.0
MIN_DRAW_SIZE = 10.0
MIN_BOX_SIZE = 10.0


class EditMode(str, Enum):
    """States of the editor."""

    IDLE = "idle"
    DRAWING = "drawing"
    MOVING = "moving"
    RESIZING = "resizing"


class ResizeHandle(str, Enum):
    """Resize handles around the selected box, in hit-test order."""

    NW = "nw"
    NE = "ne"
    SW = "sw"
    SE = "se"
    N = "n"
    S = "s"
    E = "e"
    W = "w"


class CommitKind(str, Enum):
    """What a finished gesture asks the store to do."""

    CREATE = "create"
    UPDATE = "update"


class EditCommit(BaseModel):
    """Result of a finished gesture, ready to persist."""

    kind: CommitKind
    annotation_id: int | None = None
    class_id: ClassValue
    pixel_box: PixelBox
    box: BoundingBox
    annotation: Annotation | None = None


CommitSink = Callable[[EditCommit], Annotation | None]


def handle_anchors(box: PixelBox) -> dict[ResizeHandle, tuple[float, float]]:
    """Anchor point of every resize handle of a pixel box."""
    left, top = box.x, box.y
    right, bottom = box.x + box.width, box.y + box.height
    mid_x, mid_y = box.x + box.width / 2, box.y + box.height / 2
    return {
        ResizeHandle.NW: (left, top),
        ResizeHandle.NE: (right, top),
        ResizeHandle.SW: (left, bottom),
        ResizeHandle.SE: (right, bottom),
        ResizeHandle.N: (mid_x, top),
        ResizeHandle.S: (mid_x, bottom),
        ResizeHandle.E: (right, mid_y),
        ResizeHandle.W: (left, mid_y),
    }


def handle_at(
    box: PixelBox, x: float, y: float, handle_size: float = HANDLE_SIZE
) -> ResizeHandle | None:
    """Return the handle whose square hit zone contains the point, if any."""
    half = handle_size / 2
    for handle, (anchor_x, anchor_y) in handle_anchors(box).items():
        if abs(x - anchor_x) <= half and abs(y - anchor_y) <= half:
            return handle
    return None


def contains(box: PixelBox, x: float, y: float) -> bool:
    """Check whether a point lies inside a box, edges included."""
    return box.x <= x <= box.x + box.width and box.y <= y <= box.y + box.height


def resize_box(
    original: PixelBox,
    handle: ResizeHandle,
    dx: float,
    dy: float,
    min_size: float = MIN_BOX_SIZE,
) -> PixelBox:
    """Apply a handle drag to a box.

    Each dimension is floored at ``min_size``; the edge opposite the dragged
    one stays where it was.
    """
    x, y = original.x, original.y
    width, height = original.width, original.height
    right = original.x + original.width
    bottom = original.y + original.height

    if handle in (ResizeHandle.NW, ResizeHandle.SW, ResizeHandle.W):
        width = max(min_size, original.width - dx)
        x = right - width
    elif handle in (ResizeHandle.NE, ResizeHandle.SE, ResizeHandle.E):
        width = max(min_size, original.width + dx)

    if handle in (ResizeHandle.NW, ResizeHandle.NE, ResizeHandle.N):
        height = max(min_size, original.height - dy)
        y = bottom - height
    elif handle in (ResizeHandle.SW, ResizeHandle.SE, ResizeHandle.S):
        height = max(min_size, original.height + dy)

    return PixelBox(x=x, y=y, width=width, height=height)


def clamp_origin(box: PixelBox, image_width: float, image_height: float) -> PixelBox:
    """Shift a box so its origin lies in [0, W - w] x [0, H - h]."""
    x = max(0.0, min(image_width - box.width, box.x))
    y = max(0.0, min(image_height - box.height, box.y))
    return PixelBox(x=x, y=y, width=box.width, height=box.height)


class BoxEditor:
    """Pointer-driven draw, move and resize of the boxes on one image."""

    def __init__(
        self,
        image_width: int,
        image_height: int,
        annotations: Sequence[Annotation] = (),
        active_class_id: int = 0,
        on_commit: CommitSink | None = None,
        handle_size: float = HANDLE_SIZE,
    ) -> None:
        """Initialize the editor.

        Args:
            image_width: Image width in pixels.
            image_height: Image height in pixels.
            annotations: Existing annotations of the image, in hit-test order.
            active_class_id: Class assigned to newly drawn boxes.
            on_commit: Called once per finished gesture; may return the
                persisted annotation, which replaces the editor's copy.
            handle_size: Side of the square hit zone around each handle.
        """
        if image_width <= 0 or image_height <= 0:
            raise ValueError("Image dimensions must be positive")
        self.image_width = image_width
        self.image_height = image_height
        self.active_class_id = active_class_id
        self.on_commit = on_commit
        self.handle_size = handle_size

        self._annotations: list[Annotation] = list(annotations)
        self._selected_id: int | None = None
        self._mode = EditMode.IDLE
        self._handle: ResizeHandle | None = None
        self._start: tuple[float, float] = (0.0, 0.0)
        self._original: PixelBox | None = None
        self._current: PixelBox | None = None

    @property
    def mode(self) -> EditMode:
        return self._mode

    @property
    def handle(self) -> ResizeHandle | None:
        """Handle being dragged while resizing."""
        return self._handle

    @property
    def annotations(self) -> list[Annotation]:
        return list(self._annotations)

    @property
    def selected(self) -> Annotation | None:
        return self._find(self._selected_id)

    @property
    def preview(self) -> PixelBox | None:
        """Box being drawn or dragged, for rendering; None when idle."""
        return self._current

    def set_annotations(self, annotations: Sequence[Annotation]) -> None:
        """Replace the boxes on the canvas, dropping a stale selection."""
        self._annotations = list(annotations)
        if self._find(self._selected_id) is None:
            self._selected_id = None

    def select(self, annotation_id: int | None) -> None:
        """Select an annotation by id, or clear the selection."""
        if annotation_id is not None and self._find(annotation_id) is None:
            raise KeyError(annotation_id)
        self._selected_id = annotation_id

    def pixel_box(self, annotation: Annotation) -> PixelBox:
        """Pixel-space box of an annotation on this image."""
        return to_pixel(annotation.box, self.image_width, self.image_height)

    def press(self, x: float, y: float) -> EditMode:
        """Start a gesture at a point and return the new mode."""
        if self._mode is not EditMode.IDLE:
            self.cancel()
        x, y = self._clamp_point(x, y)

        selected = self.selected
        if selected is not None:
            box = self.pixel_box(selected)
            handle = handle_at(box, x, y, self.handle_size)
            if handle is not None:
                self._begin(EditMode.RESIZING, x, y, box)
                self._handle = handle
                return self._mode
            if contains(box, x, y):
                self._begin(EditMode.MOVING, x, y, box)
                return self._mode

        for annotation in self._annotations:
            if contains(self.pixel_box(annotation), x, y):
                self._selected_id = annotation.id
                return self._mode

        self._selected_id = None
        self._begin(EditMode.DRAWING, x, y, PixelBox(x=x, y=y, width=0, height=0))
        return self._mode

    def move(self, x: float, y: float) -> PixelBox | None:
        """Update the gesture with the current pointer position."""
        if self._mode is EditMode.IDLE or self._original is None:
            return None
        x, y = self._clamp_point(x, y)
        start_x, start_y = self._start
        dx, dy = x - start_x, y - start_y

        if self._mode is EditMode.DRAWING:
            self._current = PixelBox(
                x=min(start_x, x),
                y=min(start_y, y),
                width=abs(dx),
                height=abs(dy),
            )
        elif self._mode is EditMode.MOVING:
            moved = PixelBox(
                x=self._original.x + dx,
                y=self._original.y + dy,
                width=self._original.width,
                height=self._original.height,
            )
            self._current = clamp_origin(moved, self.image_width, self.image_height)
        elif self._handle is not None:
            resized = resize_box(self._original, self._handle, dx, dy)
            self._current = clamp_origin(resized, self.image_width, self.image_height)

        return self._current

    def release(self) -> EditCommit | None:
        """Finish the gesture, returning its commit.

        Returns None when there is nothing to save or the commit sink
        rejected the result; the editor's annotations are then unchanged.
        """
        mode, current = self._mode, self._current
        selected = self.selected
        self._reset()

        if mode is EditMode.DRAWING and current is not None:
            if current.width > MIN_DRAW_SIZE and current.height > MIN_DRAW_SIZE:
                return self._commit(
                    CommitKind.CREATE, None, self.active_class_id, current
                )
            return None

        editing = mode in (EditMode.MOVING, EditMode.RESIZING)
        if editing and selected is not None and current is not None:
            return self._commit(
                CommitKind.UPDATE, selected.id, selected.class_id, current
            )

        return None

    def cancel(self) -> None:
        """Abandon the current gesture without committing."""
        self._reset()

    def _begin(self, mode: EditMode, x: float, y: float, box: PixelBox) -> None:
        self._mode = mode
        self._start = (x, y)
        self._original = box
        self._current = box

    def _reset(self) -> None:
        self._mode = EditMode.IDLE
        self._handle = None
        self._original = None
        self._current = None

    def _commit(
        self,
        kind: CommitKind,
        annotation_id: int | None,
        class_id: ClassValue,
        box: PixelBox,
    ) -> EditCommit | None:
        commit = EditCommit(
            kind=kind,
            annotation_id=annotation_id,
            class_id=class_id,
            pixel_box=box,
            box=to_normalized(box, self.image_width, self.image_height),
        )
        if self.on_commit is not None:
            try:
                commit.annotation = self.on_commit(commit)
            except AnnotatorError as err:
                logger.warning(
                    "Discarded %s of annotation %s: %s", kind.value, annotation_id, err
                )
                return None
        self._apply(commit)
        return commit

    def _apply(self, commit: EditCommit) -> None:
        """Reflect a commit in the editor's own copy of the annotations."""
        if commit.kind is CommitKind.CREATE:
            if commit.annotation is not None:
                self._annotations.append(commit.annotation)
            return

        for i, annotation in enumerate(self._annotations):
            if annotation.id == commit.annotation_id:
                self._annotations[i] = commit.annotation or annotation.model_copy(
                    update=commit.box.model_dump()
                )
                return

    def _find(self, annotation_id: int | None) -> Annotation | None:
        if annotation_id is None:
            return None
        for annotation in self._annotations:
            if annotation.id == annotation_id:
                return annotation
        return None

    def _clamp_point(self, x: float, y: float) -> tuple[float, float]:
        return (
            max(0.0, min(float(self.image_width), x)),
            max(0.0, min(float(self.image_height), y)),
        )


class AnnotationCommitter:
    """Commit sink that persists editor results for one image."""

    def __init__(self, service: AnnotationService, image_id: int) -> None:
        self.service = service
        self.image_id = image_id

    def __call__(self, commit: EditCommit) -> Annotation | None:
        """Persist a commit.

        Raises:
            InvalidInputError: If the class or geometry fails request validation.
        """
        try:
            if commit.kind is CommitKind.CREATE:
                create = AnnotationCreate.from_box(commit.class_id, commit.box)
                return self.service.create_annotation(self.image_id, create)
            if commit.annotation_id is None:
                raise ValueError("Update commit without an annotation id")
            update = AnnotationUpdate(
                class_id=commit.class_id, **commit.box.model_dump()
            )
        except ValidationError as err:
            raise InvalidInputError(
                "Edited box is not a valid annotation",
                {"errors": err.errors(include_url=False)},
            ) from err
        return self.service.update_annotation(commit.annotation_id, update)
