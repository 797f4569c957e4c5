"""
CLI for the gutter preview resolver.

Commands:
- serve: Start the MCP server
- resolve: Resolve the image references in a file
- info: Show configuration and storage status
- clean: Delete materialized images from the storage directory
"""

import asyncio
from pathlib import Path

import typer
from loguru import logger
from rich.console import Console
from rich.table import Table

from .config import settings
from .images.cache import STORAGE_PREFIX
from .logging import setup_logging

app = typer.Typer(
    name="gutter-preview",
    help="Resolve image references in source text to local thumbnails",
)
console = Console()


def parse_aliases(entries: list[str]) -> dict[str, list[str]]:
    """Parse repeated KEY=TARGET options into an alias table."""
    table: dict[str, list[str]] = {}
    for entry in entries:
        if "=" not in entry:
            raise typer.BadParameter(f"Alias '{entry}' must have the form KEY=TARGET")
        key, target = entry.split("=", 1)
        table.setdefault(key.strip(), []).append(target.strip())
    return table


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """Gutter Preview - image reference resolution for editor thumbnails."""
    log_level = "DEBUG" if verbose or settings.debug else settings.log_level
    setup_logging(level=log_level, json_output=settings.log_json)
    logger.debug("CLI initialized with log level: {}", log_level)


@app.command()
def serve(
    host: str = typer.Option(settings.host, "--host", "-h", help="Host to bind to"),
    port: int = typer.Option(settings.port, "--port", "-p", help="Port to bind to"),
    stdio: bool = typer.Option(False, "--stdio", help="Serve over stdio instead of HTTP"),
):
    """Start the MCP server."""
    from .server import mcp, shutdown

    if stdio:
        logger.info("Starting MCP server on stdio")
    else:
        logger.info("Starting MCP server on {}:{}", host, port)
        console.print("[bold blue]Starting Gutter Preview MCP Server[/]")
        console.print(f"MCP endpoint: http://{host}:{port}/mcp")
        console.print(f"Storage: {settings.storage_path}")
        console.print()

    try:
        if stdio:
            mcp.run(transport="stdio")
        else:
            mcp.run(transport="http", host=host, port=port, path="/mcp")
    finally:
        shutdown()


@app.command()
def resolve(
    file: Path = typer.Argument(..., help="Document to scan"),
    workspace: Path | None = typer.Option(
        None, "--workspace", "-w", help="Workspace root (default: the file's directory)"
    ),
    source_folder: list[str] | None = typer.Option(
        None, "--source-folder", "-s", help="Additional source folder (repeatable)"
    ),
    alias: list[str] | None = typer.Option(
        None, "--alias", "-a", help="Path alias KEY=TARGET (repeatable)"
    ),
    color: str = typer.Option("", "--color", "-c", help="Accent color injected into SVGs"),
    language: str = typer.Option("", "--language", "-l", help="Language of the document"),
    start: int = typer.Option(0, "--start", help="First line to scan (zero-based)"),
    end: int | None = typer.Option(None, "--end", help="Line after the last one to scan"),
):
    """Resolve the image references in a file and list them."""
    if not file.is_file():
        logger.error("File not found: {}", file)
        console.print(f"[red]Error: file not found: {file}[/]")
        raise typer.Exit(1)

    try:
        aliases = parse_aliases(alias or [])
    except typer.BadParameter as e:
        console.print(f"[red]Error: {e}[/]")
        raise typer.Exit(1)

    file = file.resolve()
    text = file.read_text(encoding="utf-8", errors="replace")
    line_count = len(text.splitlines())
    last = line_count if end is None else min(end, line_count)

    async def run_resolve():
        from .images import ResourceCache
        from .resolution import ImageResolver, ResolveRequest

        cache = ResourceCache(
            storage_dir=settings.storage_dir,
            timeout=settings.fetch_timeout,
            max_download_bytes=settings.max_download_bytes,
            watch_interval=settings.watch_interval,
        )
        resolver = ImageResolver(
            cache,
            max_line_length=settings.max_line_length,
            url_detection_patterns=settings.url_detection_patterns,
        )
        request = ResolveRequest(
            document_uri=file.as_uri(),
            document_text=text,
            file_name=str(file),
            visible_line_indices=list(range(max(start, 0), last)),
            workspace_folder=str((workspace or file.parent).resolve()),
            additional_source_folders=source_folder or [],
            current_accent_color=color,
            path_alias_table=aliases,
            language_id=language,
        )
        return await resolver.resolve(request)

    response = asyncio.run(run_resolve())

    if not response.images:
        console.print("[yellow]No images found[/]")
        return

    table = Table(title=f"Images in {file.name}")
    table.add_column("Line", style="cyan", justify="right")
    table.add_column("Columns", style="cyan")
    table.add_column("Reference", style="green")
    table.add_column("Local file")
    for image in sorted(response.images, key=lambda i: (i.range.start.line, i.range.start.character)):
        original = image.original_image_path
        table.add_row(
            str(image.range.start.line + 1),
            f"{image.range.start.character}-{image.range.end.character}",
            original if len(original) <= 80 else original[:77] + "...",
            image.image_path if len(image.image_path) <= 80 else "(inline data)",
        )
    console.print(table)


@app.command()
def info():
    """Show configuration and storage status."""
    logger.debug("Displaying configuration and status")
    console.print("[bold blue]Gutter Preview Configuration[/]")

    table = Table(title="Settings")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("Storage Path", settings.storage_path)
    table.add_row("Fetch Timeout", f"{settings.fetch_timeout}s")
    table.add_row("Max Download Size", f"{settings.max_download_bytes} bytes")
    table.add_row("Max Line Length", str(settings.max_line_length))
    table.add_row("Watch Interval", f"{settings.watch_interval}s")
    table.add_row(
        "URL Detection Patterns",
        ", ".join(settings.url_detection_patterns) or "none",
    )
    table.add_row("Server Host", settings.host)
    table.add_row("Server Port", str(settings.port))

    console.print(table)

    console.print("\n[bold]Storage Status[/]")
    if settings.storage_dir.exists():
        files = list(settings.storage_dir.glob(f"{STORAGE_PREFIX}*"))
        size = sum(f.stat().st_size for f in files if f.is_file())
        logger.debug("Storage status: {} files, {} bytes", len(files), size)
        console.print(f"Materialized files: {len(files)}")
        console.print(f"Total size: {size} bytes")
    else:
        console.print("Storage directory not created yet")


@app.command()
def clean():
    """Delete every materialized image from the storage directory."""
    if not settings.storage_dir.exists():
        console.print("Storage directory not created yet")
        return

    removed = 0
    for path in settings.storage_dir.glob(f"{STORAGE_PREFIX}*"):
        try:
            path.unlink()
            removed += 1
        except OSError as e:
            logger.warning("Could not delete {}: {}", path, e)
            console.print(f"[yellow]Could not delete {path}: {e}[/]")

    logger.info("Removed {} files from {}", removed, settings.storage_dir)
    console.print(f"[green]Removed {removed} files[/]")


if __name__ == "__main__":
    app()
