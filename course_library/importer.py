from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable, Union

from .errors import EmptyImport
from .models import CourseUpdate, CourseWithAggregates, VideoFileInfo
from .store import LibraryStore


log = logging.getLogger(__name__)


@dataclass
class ImportResult:
    course: CourseWithAggregates
    added: int = 0
    created: bool = False


def import_course(
    store: LibraryStore,
    name: str,
    folder_path: str,
    files: Iterable[Union[VideoFileInfo, dict[str, Any]]],
) -> ImportResult:
    """Import a folder the importer has already crawled.

    A folder that is already in the library is augmented with the files it
    does not know yet; otherwise a new course is created. Files are taken as
    given: nothing here touches the filesystem.
    """
    name = (name or "").strip()
    folder_path = (folder_path or "").strip()
    if not name:
        raise ValueError("course name is required")
    if not folder_path:
        raise ValueError("folder path is required")

    infos = [f if isinstance(f, VideoFileInfo) else VideoFileInfo.model_validate(f) for f in files]

    existing = store.get_course_by_path(folder_path)
    if existing:
        added = store.import_videos(existing.id, infos)
        store.update_course(existing.id, CourseUpdate())
        log.info("updated course %r with %d new videos", existing.name, added)
        return ImportResult(course=store.get_course_with_aggregates(existing.id), added=added)

    if not infos:
        raise EmptyImport(folder_path)

    course = store.create_course(name, folder_path)
    added = store.import_videos(course.id, infos)
    log.info("created course %r (%s) with %d videos", name, folder_path, added)
    return ImportResult(course=store.get_course_with_aggregates(course.id), added=added, created=True)
