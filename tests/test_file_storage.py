"""
Tests: local file storage.
"""

import pytest

from portal.services.file_storage import LocalFileStorage, file_extension, guess_mime_type


@pytest.fixture()
def storage(tmp_path):
    return LocalFileStorage(str(tmp_path / "files"))


def test_same_name_never_collides(storage):
    a = storage.store(b"one", "plan.pdf")
    b = storage.store(b"two", "plan.pdf")
    assert a.handle != b.handle
    assert a.handle.endswith(".pdf")
    assert storage.fetch(a.handle) == b"one"
    assert storage.fetch(b.handle) == b"two"


def test_store_reports_metadata(storage):
    stored = storage.store(b"12345", "Budget 2024.XLSX")
    assert stored.original_name == "Budget 2024.XLSX"
    assert stored.size == 5
    assert stored.handle.endswith(".xlsx")
    assert storage.store(b"x", "notes.pdf", mime_type="application/x-custom").mime_type == "application/x-custom"


def test_delete_and_missing_files(storage):
    stored = storage.store(b"data", "a.pdf")
    storage.delete(stored.handle)
    assert not storage.exists(stored.handle)
    storage.delete(stored.handle)
    with pytest.raises(FileNotFoundError):
        storage.fetch(stored.handle)


def test_handles_cannot_escape_root(storage):
    with pytest.raises(ValueError):
        storage.fetch("../secrets.txt")
    with pytest.raises(ValueError):
        storage.delete("")


def test_extension_and_mime_helpers():
    assert file_extension("report.Final.DOCX") == "docx"
    assert file_extension("README") == ""
    assert file_extension(None) == ""
    assert guess_mime_type("a.pdf") == "application/pdf"
    assert guess_mime_type("blob") == "application/octet-stream"
