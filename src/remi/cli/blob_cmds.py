"""Blob commands: ls, cat, put, rm, exists, stat.

Usage:
    remi ls --prefix docs/ --ext md --exclude "draft-*"
    remi cat docs/readme.md
    remi put ./readme.md docs/readme.md --content-type text/markdown
    remi rm docs/
"""

from __future__ import annotations

import shutil
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

import orjson
import typer
from rich.console import Console
from rich.table import Table

from remi.config import Settings
from remi.errors import RemiError
from remi.storage.base import Blob, ListBlobsRequest, StorageService, UploadRequest
from remi.storage.content_type import DEFAULT_CONTENT_TYPE, UNKNOWN_CONTENT_TYPE
from remi.storage.factory import create_storage_service


@contextmanager
def _service() -> Iterator[StorageService]:
    """Yield an initialized service; config and storage errors exit with code 2."""
    try:
        with create_storage_service(Settings()) as service:
            yield service
    except (RemiError, ValueError) as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=2) from exc


def _blob_to_dict(blob: Blob) -> dict[str, Any]:
    return {
        "name": blob.name,
        "path": blob.path,
        "size": blob.size,
        "content_type": blob.content_type,
        "etag": blob.etag,
        "created_at": blob.created_at,
        "last_modified_at": blob.last_modified_at,
    }


def _echo_json(data: Any) -> None:
    typer.echo(orjson.dumps(data, option=orjson.OPT_INDENT_2).decode())


def list_blobs(
    prefix: str | None = typer.Option(None, "--prefix", "-p", help="Only list keys under prefix"),
    extensions: list[str] = typer.Option(
        [], "--ext", "-e", help="Allowed extension (can be specified multiple times)"
    ),
    exclude: list[str] = typer.Option(
        [], "--exclude", "-x", help="Key, name or glob to skip (can be specified multiple times)"
    ),
    output_format: str = typer.Option("text", "--format", "-f", help="Output format: text, json"),
) -> None:
    """List blobs in the configured storage."""
    request = ListBlobsRequest.build(prefix=prefix, extensions=extensions, exclude=exclude)
    with _service() as service:
        blobs = service.blobs(request)

    if output_format == "json":
        _echo_json([_blob_to_dict(blob) for blob in blobs])
        return

    table = Table("Path", "Size", "Content-Type", "ETag")
    for blob in blobs:
        table.add_row(blob.path, str(blob.size), blob.content_type, blob.etag or "")
    Console().print(table)


def cat(key: str = typer.Argument(..., help="Key of the blob to print")) -> None:
    """Write a blob's content to stdout."""
    with _service() as service:
        stream = service.open(key)
        if stream is None:
            typer.echo(f"Error: {key} was not found", err=True)
            raise typer.Exit(code=1)
        with stream:
            shutil.copyfileobj(stream, sys.stdout.buffer)
        sys.stdout.buffer.flush()


def put(
    source: Path = typer.Argument(
        ...,
        help="Local file to upload",
        exists=True,
        file_okay=True,
        dir_okay=False,
        readable=True,
    ),
    key: str = typer.Argument(..., help="Destination key"),
    content_type: str | None = typer.Option(
        None, "--content-type", "-t", help="Content-Type (detected from the file when omitted)"
    ),
) -> None:
    """Upload a local file."""
    with _service() as service:
        with source.open("rb") as f:
            if content_type is None:
                detected = service.get_content_type_of(f)
                if detected == UNKNOWN_CONTENT_TYPE:
                    detected = DEFAULT_CONTENT_TYPE
                content_type = detected
            service.upload(UploadRequest(key, f, content_type))
    typer.echo(f"Uploaded {source} to {key} ({content_type})")


def rm(key: str = typer.Argument(..., help="Key (or directory) to delete")) -> None:
    """Delete a blob, or everything under a directory."""
    with _service() as service:
        deleted = service.delete(key)
    if not deleted:
        typer.echo(f"{key} was not found")
        raise typer.Exit(code=1)
    typer.echo(f"Deleted {key}")


def exists(key: str = typer.Argument(..., help="Key to check")) -> None:
    """Exit with 0 if the blob exists, 1 otherwise."""
    with _service() as service:
        found = service.exists(key)
    typer.echo("true" if found else "false")
    if not found:
        raise typer.Exit(code=1)


def stat(key: str = typer.Argument(..., help="Key to describe")) -> None:
    """Print a blob's metadata as JSON."""
    with _service() as service:
        blob = service.blob(key)
        if blob is None:
            typer.echo(f"Error: {key} was not found", err=True)
            raise typer.Exit(code=1)
        with blob:
            _echo_json(_blob_to_dict(blob))


def register(app: typer.Typer) -> None:
    app.command("ls")(list_blobs)
    app.command("cat")(cat)
    app.command("put")(put)
    app.command("rm")(rm)
    app.command("exists")(exists)
    app.command("stat")(stat)
