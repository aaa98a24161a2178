"""FastAPI application entry point for the annotation tool."""

import os
from typing import cast

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from starlette.types import ExceptionHandler

from yolo_annotator import __version__
from yolo_annotator.api.routes import limiter, router
from yolo_annotator.config import get_data_dir, get_log_level, get_projects_dir
from yolo_annotator.logger import get_logger, set_log_level

set_log_level(get_log_level())
logger = get_logger(__name__)

# Create FastAPI app
app = FastAPI(
    title="YOLO Annotation Tool",
    description="Create projects, upload images and annotate YOLO bounding boxes",
    version=__version__,
)

# Add rate limiter state and exception handler
app.state.limiter = limiter
app.add_exception_handler(
    RateLimitExceeded, cast(ExceptionHandler, _rate_limit_exceeded_handler)
)

# Configure CORS for frontend development
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:5173",  # Vite dev server
        "http://localhost:3000",
        "http://127.0.0.1:5173",
        "http://127.0.0.1:3000",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API routes
app.include_router(router, prefix="/api")

# Ensure data directories exist
get_projects_dir().mkdir(parents=True, exist_ok=True)
logger.info("Serving data from %s", get_data_dir())


def main() -> None:
    """Run the development server."""
    import uvicorn

    host = os.getenv("HOST", "127.0.0.1")
    port = int(os.getenv("PORT", "8000"))

    uvicorn.run(
        "yolo_annotator.main:app",
        host=host,
        port=port,
        reload=True,
    )


if __name__ == "__main__":
    main()
