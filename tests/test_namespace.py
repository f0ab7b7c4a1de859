import pytest

from s3vault.errors import InvalidName, ObjectNotFound, ValidationError
from s3vault.namespace import (
    FOLDER_CONTENT_TYPE,
    ListingFilter,
    create_folder,
    folder_path,
    list_entries,
    mime_type_for,
    open_object,
    path_to_prefix,
)
from s3vault.storage import MAX_KEYS_PER_LISTING

from conftest import FakeStorage


def names(entries):
    return [(e.name, e.is_folder) for e in entries]


def test_listing_under_prefix(fake_storage):
    entries = list_entries(fake_storage, "docs/")

    assert names(entries) == [("sub", True), ("a.txt", False)]
    folder, file = entries
    assert folder.key == "docs/sub/"
    assert folder.size == 0
    assert folder.mime_type == "folder"
    assert file.key == "docs/a.txt"
    assert file.mime_type == "text/plain"
    assert file.size == 5


def test_listing_requests_one_delimited_page(fake_storage):
    list_entries(fake_storage, "docs/")
    assert fake_storage.calls == [("list_prefix", "docs/", "/", MAX_KEYS_PER_LISTING)]


def test_listing_root(fake_storage):
    entries = list_entries(fake_storage, "")
    assert names(entries) == [("docs", True), ("photo.jpg", False), ("report.pdf", False)]


def test_listing_empty_response():
    class Empty(FakeStorage):
        def list_prefix(self, prefix="", delimiter="/", max_keys=1000):
            return {"KeyCount": 0}

    assert list_entries(Empty(), "nothing/") == []


def test_image_filter(fake_storage):
    entries = list_entries(fake_storage, "", ListingFilter(type="images"))
    assert names(entries) == [("docs", True), ("photo.jpg", False)]


def test_documents_filter(fake_storage):
    entries = list_entries(fake_storage, "", ListingFilter(type="documents"))
    assert names(entries) == [("docs", True), ("report.pdf", False)]


def test_search_is_case_insensitive(fake_storage):
    entries = list_entries(fake_storage, "", ListingFilter(search="REP"))
    assert names(entries) == [("docs", True), ("report.pdf", False)]


def test_non_matching_filters_return_nothing_but_folders(fake_storage):
    entries = list_entries(fake_storage, "", ListingFilter(type="images", search="rep"))
    assert [e for e in entries if not e.is_folder] == []

    flat = FakeStorage({"report.pdf": b"", "photo.jpg": b""})
    assert list_entries(flat, "", ListingFilter(type="images", search="rep")) == []


def test_unknown_filter_type_keeps_everything(fake_storage):
    entries = list_entries(fake_storage, "", ListingFilter(type="videos"))
    assert len(entries) == 3


@pytest.mark.parametrize("filename,expected", [
    ("photo.JPG", "image/jpeg"),
    ("scan.png", "image/png"),
    ("deck.pptx", "application/vnd.openxmlformats-officedocument.presentationml.presentation"),
    ("archive.tar.zip", "application/zip"),
    ("README", "application/octet-stream"),
    ("data.bin", "application/octet-stream"),
])
def test_mime_table(filename, expected):
    assert mime_type_for(filename) == expected


@pytest.mark.parametrize("path,prefix", [
    ("", ""),
    (None, ""),
    ("docs", "docs/"),
    ("docs/sub/", "docs/sub/"),
])
def test_path_to_prefix(path, prefix):
    assert path_to_prefix(path) == prefix


@pytest.mark.parametrize("name", ["My Folder-1_ok", "a", "2024 Q1"])
def test_valid_folder_names(name):
    storage = FakeStorage()
    assert create_folder(storage, "", name) == f"{name}/"


@pytest.mark.parametrize("name", ["bad/name", "bad*name", "", "dots.not.allowed", "tab\tname", "trailing\n"])
def test_invalid_folder_names(name):
    storage = FakeStorage()
    with pytest.raises(InvalidName):
        create_folder(storage, "", name)
    assert storage.objects == {}


def test_create_folder_writes_marker():
    storage = FakeStorage()
    key = create_folder(storage, "docs", "new")
    assert key == "docs/new/"
    assert storage.objects["docs/new/"] == b""
    assert storage.content_types["docs/new/"] == FOLDER_CONTENT_TYPE


def test_create_folder_is_idempotent(fake_storage):
    create_folder(fake_storage, "docs", "sub")
    create_folder(fake_storage, "docs", "sub")
    assert names(list_entries(fake_storage, "docs/")) == [("sub", True), ("a.txt", False)]


def test_created_folder_shows_up_empty():
    storage = FakeStorage()
    create_folder(storage, "", "empty")
    assert names(list_entries(storage, "")) == [("empty", True)]
    assert list_entries(storage, "empty/") == []


@pytest.mark.parametrize("parent,expected", [
    ("", "x/"),
    (None, "x/"),
    ("a/b", "a/b/x/"),
    ("a/b/", "a/b/x/"),
])
def test_folder_path(parent, expected):
    assert folder_path(parent, "x") == expected


def test_open_object(fake_storage):
    obj = open_object(fake_storage, "docs/a.txt")
    assert obj.filename == "a.txt"
    assert obj.content_type == "text/plain"
    assert obj.content_length == 5
    assert b"".join(obj.chunks) == b"hello"


def test_open_object_prefers_backend_content_type():
    storage = FakeStorage({"x.bin": b"1"})
    storage.content_types["x.bin"] = "application/json"
    assert open_object(storage, "x.bin").content_type == "application/json"


def test_open_missing_object(fake_storage):
    with pytest.raises(ObjectNotFound):
        open_object(fake_storage, "nope.txt")


def test_open_object_requires_key(fake_storage):
    with pytest.raises(ValidationError):
        open_object(fake_storage, "")
