"""Command-line interface for yolo-annotator."""

import os
import shutil
import sys
import threading
import time
import urllib.error
import urllib.request
import webbrowser
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from yolo_annotator import __version__
from yolo_annotator.config import get_data_dir, get_projects_dir, get_thumbnails_dir
from yolo_annotator.exceptions import AnnotatorError
from yolo_annotator.logger import set_log_level
from yolo_annotator.services.annotation_service import AnnotationService
from yolo_annotator.services.export_service import ExportService
from yolo_annotator.services.import_service import ImportService
from yolo_annotator.services.project_service import ProjectService

app = typer.Typer(
    name="yolo-annotator",
    help="Annotate images with YOLO bounding boxes.",
    add_completion=False,
    no_args_is_help=True,
)
console = Console()


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"[bold blue]yolo-annotator[/bold blue] version {__version__}")
        raise typer.Exit()


@app.callback()
def main_callback(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-v",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
    log_level: Annotated[
        str | None,
        typer.Option("--log-level", help="Log level (DEBUG, INFO, WARNING...)."),
    ] = None,
) -> None:
    """yolo-annotator - YOLO bounding box annotation tool."""
    if log_level:
        os.environ["YOLO_ANNOTATOR_LOG_LEVEL"] = log_level.upper()
        set_log_level(log_level)


def _configure_environment(data_dir: Path | None) -> dict[str, str]:
    """Build environment variables for server startup."""
    env = os.environ.copy()
    if data_dir:
        env["YOLO_ANNOTATOR_DATA_DIR"] = str(data_dir.resolve())
    return env


def _wait_for_server_ready(url: str, timeout_seconds: float = 12.0) -> bool:
    """Poll health endpoint until server responds or timeout is reached."""
    health_url = f"{url}/api/health"
    deadline = time.monotonic() + timeout_seconds
    while time.monotonic() < deadline:
        try:
            with urllib.request.urlopen(health_url, timeout=0.5):
                return True
        except (urllib.error.URLError, TimeoutError, OSError):
            time.sleep(0.1)
    return False


def _open_browser_after_ready(server_url: str) -> None:
    """Open the API docs once the server is healthy, with fallback after timeout."""
    _wait_for_server_ready(server_url)
    webbrowser.open(f"{server_url}/docs")


def _resolve_probe_host(host: str) -> str:
    """Resolve a connectable probe host from a bind host."""
    if host == "0.0.0.0":
        return "127.0.0.1"
    if host in {"::", "[::]"}:
        return "::1"
    return host


def _services(
    data_dir: Path | None,
) -> tuple[ProjectService, AnnotationService]:
    """Build store services for a data directory (defaults to configuration)."""
    if data_dir:
        os.environ["YOLO_ANNOTATOR_DATA_DIR"] = str(data_dir.resolve())
    projects_dir = get_projects_dir()
    project_service = ProjectService(projects_dir)
    annotation_service = AnnotationService(
        projects_dir, thumbnails_dir=get_thumbnails_dir()
    )
    return project_service, annotation_service


DataDirOption = Annotated[
    Path | None,
    typer.Option(
        "--data-dir",
        "-d",
        help="Directory for storing data (defaults to ./data).",
    ),
]


@app.command()
def start(
    host: Annotated[
        str,
        typer.Option("--host", "-h", help="Host to bind the server to."),
    ] = "127.0.0.1",
    port: Annotated[
        int,
        typer.Option("--port", "-p", help="Port to bind the server to."),
    ] = 8000,
    no_browser: Annotated[
        bool,
        typer.Option("--no-browser", help="Don't open browser automatically."),
    ] = False,
    reload: Annotated[
        bool,
        typer.Option("--reload", "-r", help="Enable auto-reload for development."),
    ] = False,
    data_dir: DataDirOption = None,
) -> None:
    """Start the annotation API server."""
    env = _configure_environment(data_dir)
    os.environ.update(env)

    probe_url = f"http://{_resolve_probe_host(host)}:{port}"
    console.print(
        Panel(
            f"[bold green]Starting yolo-annotator[/bold green]\n\n"
            f"[bold]URL:[/bold] http://{host}:{port}\n"
            f"[bold]Data:[/bold] {get_data_dir()}\n\n"
            "[dim]Press Ctrl+C to stop[/dim]",
            title="🏷️  yolo-annotator",
            border_style="green",
        )
    )

    if not no_browser:
        threading.Thread(
            target=_open_browser_after_ready,
            args=(probe_url,),
            daemon=True,
        ).start()

    import uvicorn

    uvicorn.run(
        "yolo_annotator.main:app",
        host=host,
        port=port,
        reload=reload,
    )


@app.command()
def info() -> None:
    """Show information about the current installation."""
    data_dir = get_data_dir()
    data_status = "Found" if data_dir.exists() else "Not created yet"
    console.print(
        Panel(
            f"[bold blue]yolo-annotator[/bold blue] v{__version__}\n\n"
            f"[bold]Python:[/bold] {sys.version}\n"
            f"[bold]Data directory:[/bold] {data_dir} ({data_status})",
            title="ℹ️  Installation Info",
            border_style="blue",
        )
    )


@app.command()
def projects(data_dir: DataDirOption = None) -> None:
    """List projects with their image and annotation counts."""
    project_service, _ = _services(data_dir)
    items = project_service.list_projects()
    if not items:
        console.print("[yellow]No projects found.[/yellow]")
        return

    table = Table(title="Projects")
    table.add_column("ID", style="cyan", justify="right")
    table.add_column("Name", style="bold")
    table.add_column("Classes")
    table.add_column("Images", justify="right")
    table.add_column("Annotations", justify="right")
    table.add_column("Created")
    for project in items:
        table.add_row(
            str(project.id),
            project.name,
            ", ".join(cls.name for cls in project.classes),
            str(project.image_count),
            str(project.annotation_count),
            project.created_at,
        )
    console.print(table)


@app.command("export")
def export_dataset(
    project_id: Annotated[int, typer.Argument(help="Project to export.")],
    output: Annotated[Path, typer.Argument(help="Destination ZIP file.")],
    data_dir: DataDirOption = None,
) -> None:
    """Export a project as a zipped YOLO dataset."""
    project_service, annotation_service = _services(data_dir)
    service = ExportService(project_service, annotation_service)
    try:
        zip_path = service.export_yolo_zip(project_id)
    except AnnotatorError as e:
        console.print(f"[red]Error:[/red] {e.message}")
        raise typer.Exit(1) from e

    try:
        output.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(zip_path, output)
    finally:
        shutil.rmtree(zip_path.parent, ignore_errors=True)
    console.print(f"[green]✓[/green] Exported project {project_id} to {output}")


@app.command("import")
def import_dataset(
    project_id: Annotated[int, typer.Argument(help="Project to import into.")],
    archive: Annotated[
        Path,
        typer.Argument(exists=True, dir_okay=False, help="YOLO dataset ZIP file."),
    ],
    data_dir: DataDirOption = None,
) -> None:
    """Import a zipped YOLO dataset into a project."""
    project_service, annotation_service = _services(data_dir)
    service = ImportService(project_service, annotation_service)
    try:
        results = service.import_yolo_zip(project_id, archive, remove_archive=False)
    except AnnotatorError as e:
        console.print(f"[red]Error:[/red] {e.message}")
        raise typer.Exit(1) from e

    console.print(
        f"[green]✓[/green] Imported {results.images_imported} images and "
        f"{results.annotations_imported} annotations "
        f"({results.classes_found} classes found)"
    )
    for error in results.errors:
        console.print(f"[yellow]Warning:[/yellow] {error}")


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
