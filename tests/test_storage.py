import re

import pytest

from symptom_diary.storage import ObjectStorage, StorageError, build_object_path


@pytest.fixture
def storage(tmp_path):
    return ObjectStorage(str(tmp_path), "http://files.test/")


def test_build_object_path_embeds_identity():
    path = build_object_path("user-1", "Holiday.Photo.JPG")
    assert re.fullmatch(r"user-1/\d+\.jpg", path)


def test_build_object_path_rejects_unknown_extension():
    with pytest.raises(StorageError, match="Unsupported file type"):
        build_object_path("user-1", "notes.exe")
    with pytest.raises(StorageError):
        build_object_path("user-1", "no_extension")


def test_upload_returns_public_url_and_is_readable(storage):
    url = storage.upload("user-1", "user-1/1.png", b"png-bytes")
    assert url == "http://files.test/storage/symptom-photos/user-1/1.png"
    assert storage.read("user-1/1.png") == b"png-bytes"


def test_upload_into_someone_elses_folder_denied(storage):
    with pytest.raises(StorageError) as e:
        storage.upload("user-2", "user-1/1.png", b"x")
    assert e.value.status == 403


def test_upload_does_not_overwrite(storage):
    storage.upload("user-1", "user-1/1.png", b"a")
    with pytest.raises(StorageError) as e:
        storage.upload("user-1", "user-1/1.png", b"b")
    assert e.value.status == 409


def test_replace_and_remove_by_owner_only(storage):
    storage.upload("user-1", "user-1/1.png", b"a")
    with pytest.raises(StorageError):
        storage.replace("user-2", "user-1/1.png", b"b")
    with pytest.raises(StorageError):
        storage.remove("user-2", "user-1/1.png")

    storage.replace("user-1", "user-1/1.png", b"b")
    assert storage.read("user-1/1.png") == b"b"
    storage.remove("user-1", "user-1/1.png")
    with pytest.raises(StorageError) as e:
        storage.read("user-1/1.png")
    assert e.value.status == 404


@pytest.mark.parametrize("path", ["../etc/passwd", "/user-1/1.png", "user-1//1.png", "user-1", "user-1/../x.png"])
def test_invalid_paths_rejected(storage, path):
    with pytest.raises(StorageError):
        storage.upload("user-1", path, b"x")
