from __future__ import annotations

from pathlib import Path


class StoreError(Exception):
    """Base class for errors raised by the library store."""


class NotFound(StoreError):
    def __init__(self, kind: str, id: int):
        super().__init__(f"{kind} with id {id} not found")
        self.kind = kind
        self.id = id


class DuplicateFolder(StoreError):
    """The folder already belongs to a course; augment that course instead."""

    def __init__(self, folder_path: str, course_id: int):
        super().__init__(f"folder {folder_path!r} already imported as course {course_id}")
        self.folder_path = folder_path
        self.course_id = course_id


class DuplicateFilePath(StoreError):
    def __init__(self, file_path: str):
        super().__init__(f"video file {file_path!r} is already in the library")
        self.file_path = file_path


class EmptyImport(StoreError):
    def __init__(self, folder_path: str):
        super().__init__(f"no video files supplied for {folder_path!r}")
        self.folder_path = folder_path


class PersistenceFailure(StoreError):
    def __init__(self, path: Path):
        super().__init__(f"could not write library snapshot to {path}")
        self.path = path


class StoreClosed(StoreError):
    def __init__(self):
        super().__init__("library store is closed")
