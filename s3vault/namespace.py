"""Hierarchical folder view over a flat S3 key space.

Folders are never stored as entities: a folder is either a common prefix in a
delimited listing or a zero-byte marker object whose key ends in ``/``.
"""
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterator, List, Optional

from .errors import InvalidName, ValidationError
from .storage import DELIMITER, MAX_KEYS_PER_LISTING, iter_body

FOLDER_CONTENT_TYPE = "application/x-directory"
DEFAULT_MIME = "application/octet-stream"
FOLDER_NAME_RE = re.compile(r"^[A-Za-z0-9_\- ]+$")

MIME_TYPES = {
    # images
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "gif": "image/gif",
    "webp": "image/webp",
    "svg": "image/svg+xml",
    # documents
    "pdf": "application/pdf",
    "doc": "application/msword",
    "docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "xls": "application/vnd.ms-excel",
    "xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "ppt": "application/vnd.ms-powerpoint",
    "pptx": "application/vnd.openxmlformats-officedocument.presentationml.presentation",
    "txt": "text/plain",
    # archives
    "zip": "application/zip",
    "rar": "application/x-rar-compressed",
}


@dataclass
class ObjectEntry:
    key: str
    name: str
    size: int
    last_modified: datetime
    mime_type: str
    is_folder: bool


@dataclass
class ListingFilter:
    type: str = "all"
    search: str = ""

    def __post_init__(self):
        # unrecognised types filter nothing, like "all"
        self.type = (self.type or "all").lower()
        self.search = self.search or ""

    def matches(self, entry: ObjectEntry) -> bool:
        if entry.is_folder:
            return True
        is_image = entry.mime_type.startswith("image/")
        if self.type == "images" and not is_image:
            return False
        if self.type == "documents" and is_image:
            return False
        if self.search and self.search.lower() not in entry.name.lower():
            return False
        return True


@dataclass
class ObjectDownload:
    key: str
    filename: str
    content_type: str
    content_length: Optional[int]
    chunks: Iterator[bytes]


def mime_type_for(filename: str) -> str:
    extension = filename.rsplit(".", 1)[-1].lower()
    return MIME_TYPES.get(extension, DEFAULT_MIME)


def path_to_prefix(path: Optional[str]) -> str:
    """``"docs/sub"`` -> ``"docs/sub/"``; empty path is the bucket root."""
    path = (path or "").strip(DELIMITER)
    return path + DELIMITER if path else ""


def list_entries(session, prefix: str = "", listing_filter: Optional[ListingFilter] = None) -> List[ObjectEntry]:
    """List the immediate children of ``prefix``, folders first.

    Only the first ``MAX_KEYS_PER_LISTING`` keys the backend returns are
    considered; continuation pages are not requested.
    """
    listing_filter = listing_filter or ListingFilter()
    resp = session.list_prefix(prefix, delimiter=DELIMITER, max_keys=MAX_KEYS_PER_LISTING)
    now = datetime.now(timezone.utc)

    folders = []
    for common in resp.get("CommonPrefixes") or []:
        folder_key = common.get("Prefix")
        if not folder_key:
            continue
        name = folder_key[len(prefix):] if folder_key.startswith(prefix) else folder_key
        name = name.rstrip(DELIMITER)
        if not name:
            continue
        folders.append(ObjectEntry(
            key=folder_key,
            name=name,
            size=0,
            last_modified=now,
            mime_type="folder",
            is_folder=True,
        ))

    files = []
    for obj in resp.get("Contents") or []:
        key = obj.get("Key")
        # folder markers, including the one for the prefix itself
        if not key or key == prefix or key.endswith(DELIMITER):
            continue
        name = key[len(prefix):] if key.startswith(prefix) else key
        entry = ObjectEntry(
            key=key,
            name=name,
            size=obj.get("Size") or 0,
            last_modified=obj.get("LastModified") or now,
            mime_type=mime_type_for(name),
            is_folder=False,
        )
        if listing_filter.matches(entry):
            files.append(entry)

    return folders + files


def folder_path(parent_path: Optional[str], folder_name: str) -> str:
    parent = (parent_path or "").strip(DELIMITER)
    if parent:
        return f"{parent}{DELIMITER}{folder_name}{DELIMITER}"
    return f"{folder_name}{DELIMITER}"


def create_folder(session, parent_path: Optional[str], folder_name: str) -> str:
    """Write the zero-byte marker for a folder and return its key.

    Creating a folder that already exists overwrites the empty marker.
    """
    if not folder_name:
        raise InvalidName("Folder name is required")
    if not FOLDER_NAME_RE.fullmatch(folder_name):
        raise InvalidName()

    key = folder_path(parent_path, folder_name)
    session.put_empty(key, content_type=FOLDER_CONTENT_TYPE)
    return key


def open_object(session, key: str) -> ObjectDownload:
    if not key:
        raise ValidationError("File key is required")

    resp = session.get(key)
    filename = key.rstrip(DELIMITER).split(DELIMITER)[-1] or "download"
    content_type = resp.get("ContentType")
    if not content_type or content_type == DEFAULT_MIME:
        content_type = mime_type_for(filename)
    return ObjectDownload(
        key=key,
        filename=filename,
        content_type=content_type,
        content_length=resp.get("ContentLength"),
        chunks=iter_body(resp["Body"]),
    )
