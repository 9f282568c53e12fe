"""Shared pytest fixtures for all tests."""

import io

import pytest
from fastapi.testclient import TestClient

from fileserver.context import TransferContext
from fileserver.main import create_app


class FakeUpload:
    """
    Minimal stand-in for a multipart part (filename + async read).
    """

    def __init__(self, filename, content: bytes):
        self.filename = filename
        self._buffer = io.BytesIO(content)

    async def read(self, size: int = -1) -> bytes:
        return self._buffer.read(size)


@pytest.fixture
def shared_root(tmp_path):
    """
    Create an empty shared root directory.

    Args:
        tmp_path: pytest tmp_path fixture

    Returns:
        Path to the shared root
    """
    root = tmp_path / 'shared'
    root.mkdir()
    return root


@pytest.fixture
def upload_temp(tmp_path):
    """
    Create an empty upload staging directory.
    """
    staging = tmp_path / 'uploads'
    staging.mkdir()
    return staging


@pytest.fixture
def context(shared_root, upload_temp):
    """
    TransferContext over the temporary directories.
    """
    return TransferContext(shared_root=str(shared_root), upload_temp=str(upload_temp))


@pytest.fixture
def app(shared_root, upload_temp):
    """
    FastAPI app serving the temporary shared root.
    """
    return create_app(shared_root=str(shared_root), upload_temp=str(upload_temp))


@pytest.fixture
def client(app):
    """
    Test client with startup/shutdown events run.
    """
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def sample_tree(shared_root):
    """
    Populate the shared root with a small tree:

        notes.txt        (11 bytes)
        docs/a.txt       (5 bytes)
        docs/sub/b.txt   (7 bytes)
        empty/
    """
    (shared_root / 'notes.txt').write_bytes(b'hello notes')
    (shared_root / 'docs' / 'sub').mkdir(parents=True)
    (shared_root / 'docs' / 'a.txt').write_bytes(b'aaaaa')
    (shared_root / 'docs' / 'sub' / 'b.txt').write_bytes(b'bbbbbbb')
    (shared_root / 'empty').mkdir()
    return shared_root


@pytest.fixture
def make_upload():
    """
    Factory for FakeUpload parts.
    """
    return FakeUpload
