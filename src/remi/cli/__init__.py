"""CLI commands for remi.

Provides command-line access to the configured storage backend using Typer:
- remi ls: List blobs
- remi cat: Print a blob's content
- remi put: Upload a local file
- remi rm: Delete a blob or a directory
- remi exists: Check whether a blob exists
- remi stat: Show a blob's metadata

The backend is selected through REMI_* environment variables (see
``remi.config.Settings``).

Usage:
    remi --help
    remi ls --prefix images/ --ext png
    remi put ./photo.png images/photo.png
"""

import typer

from remi.cli.blob_cmds import register
from remi.config import Settings
from remi.observability.logging import configure_logging

app = typer.Typer(
    name="remi",
    help="Remi: one contract for blobs on the filesystem, S3, Azure and GCS",
    no_args_is_help=True,
)

register(app)


@app.callback()
def callback(
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Log storage operations to stderr",
    ),
) -> None:
    """Remi: one contract for blobs on the filesystem, S3, Azure and GCS."""
    config = Settings()
    configure_logging(
        json_format=config.log_json,
        level="DEBUG" if verbose else config.log_level,
    )


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
