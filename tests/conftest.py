"""Global pytest configuration and fixtures."""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest

from remi.storage.content_type import UNKNOWN_CONTENT_TYPE
from remi.storage.local import FilesystemStorageService


class FakeContentTypeResolver:
    """Classifies UTF-8 text as text/plain and everything else as binary."""

    def __init__(self) -> None:
        self.calls = 0

    def resolve(self, data: bytes) -> str:
        self.calls += 1
        if not data:
            return UNKNOWN_CONTENT_TYPE
        try:
            data.decode("utf-8")
        except UnicodeDecodeError:
            return "application/octet-stream"
        return "text/plain"


@pytest.fixture
def resolver() -> FakeContentTypeResolver:
    return FakeContentTypeResolver()


@pytest.fixture
def fs_service(
    tmp_path: Path, resolver: FakeContentTypeResolver
) -> Iterator[FilesystemStorageService]:
    """An initialized filesystem service rooted in a temporary directory."""
    service = FilesystemStorageService(str(tmp_path / "blobs"), content_type_resolver=resolver)
    service.init()
    yield service
    service.close()
