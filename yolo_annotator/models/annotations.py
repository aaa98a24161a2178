"""Pydantic models for images, annotations and box geometry."""

from pydantic import BaseModel, Field

# Label files may carry a non-integral class value; import keeps it as written.
ClassValue = int | float


class BoundingBox(BaseModel):
    """A box in normalized YOLO coordinates (center, size), fractions of the image."""

    x_center: float = Field(..., description="Center X coordinate (normalized)")
    y_center: float = Field(..., description="Center Y coordinate (normalized)")
    width: float = Field(..., description="Box width (normalized)")
    height: float = Field(..., description="Box height (normalized)")


class PixelBox(BaseModel):
    """A box in image pixels, anchored at its top-left corner."""

    x: float
    y: float
    width: float
    height: float


class Annotation(BaseModel):
    """A stored bounding-box annotation.

    Geometry and class are not range-checked here: dataset import keeps
    whatever values the label file carried.
    """

    id: int = Field(..., description="Store-assigned annotation id")
    image_id: int
    class_id: ClassValue
    x_center: float
    y_center: float
    width: float
    height: float
    created_at: str = Field(..., description="ISO format creation timestamp")

    @property
    def box(self) -> BoundingBox:
        """Geometry of this annotation."""
        return BoundingBox(
            x_center=self.x_center,
            y_center=self.y_center,
            width=self.width,
            height=self.height,
        )


class AnnotationCreate(BaseModel):
    """Request model for creating an annotation.

    All fields are required numbers; geometry must lie in [0, 1].
    """

    class_id: int = Field(..., ge=0, strict=True, description="Class position")
    x_center: float = Field(..., ge=0, le=1, strict=True)
    y_center: float = Field(..., ge=0, le=1, strict=True)
    width: float = Field(..., ge=0, le=1, strict=True)
    height: float = Field(..., ge=0, le=1, strict=True)

    @classmethod
    def from_box(cls, class_id: ClassValue, box: BoundingBox) -> "AnnotationCreate":
        """Build a request from a class id and a normalized box."""
        return cls(class_id=class_id, **box.model_dump())


class AnnotationUpdate(AnnotationCreate):
    """Request model for updating an annotation (full-field replace)."""


class ImageRecord(BaseModel):
    """An image owned by a project."""

    id: int
    project_id: int
    filename: str = Field(..., description="Stored file name (opaque)")
    original_name: str
    width: int = Field(..., gt=0)
    height: int = Field(..., gt=0)
    uploaded_at: str = Field(..., description="ISO format upload timestamp")


class ImageMetadata(BaseModel):
    """Persisted record of an image together with its annotations."""

    image: ImageRecord
    annotations: list[Annotation] = Field(default_factory=list)
