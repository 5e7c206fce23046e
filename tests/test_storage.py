"""Tests for local attachment storage."""

import pytest

from app.core.exceptions import UploadError
from app.data.storage import LocalFileStorage


@pytest.fixture
def storage(tmp_path):
    return LocalFileStorage(tmp_path, "/api/v1/upload/files/", max_file_size=16)


def test_save_writes_file_and_returns_public_url(storage, tmp_path):
    uploaded = storage.save(b"hello", "c1/abc.txt")

    assert (tmp_path / "c1" / "abc.txt").read_bytes() == b"hello"
    assert uploaded.url == "/api/v1/upload/files/c1/abc.txt"
    assert uploaded.mime_type == "text/plain"


def test_explicit_content_type_wins(storage):
    assert storage.save(b"x", "c1/blob", "image/png").mime_type == "image/png"


@pytest.mark.parametrize("destination", ["../escape.txt", "/etc/passwd", "c1/../../x", ""])
def test_rejects_paths_outside_root(storage, destination):
    with pytest.raises(UploadError):
        storage.save(b"x", destination)


def test_rejects_oversized_files(storage):
    with pytest.raises(UploadError):
        storage.save(b"x" * 17, "c1/big.bin")
