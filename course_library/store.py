from __future__ import annotations

import functools
import logging
import threading
import time
from pathlib import Path
from typing import Any, Callable, Iterable, Optional, TypeVar, Union

from pydantic import BaseModel, ValidationError

from .config import Settings
from .errors import DuplicateFilePath, DuplicateFolder, NotFound, PersistenceFailure, StoreClosed
from .learning import day_key, week_start_key
from .models import (
    Course,
    CourseUpdate,
    CourseWithAggregates,
    DailyLearningTime,
    LibrarySnapshot,
    Video,
    VideoFileInfo,
    VideoProgress,
    VideoUpdate,
    utcnow,
)
from .persistence import FlushScheduler, SnapshotFile
from .progress import (
    COMPLETION_THRESHOLD,
    apply_heartbeat,
    mark_completed,
    mark_incomplete,
    new_manual_completion,
)
from .resume import select_resume_video
from .utils import sort_videos


log = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

# Course fields that may be explicitly cleared by an update.
_NULLABLE_COURSE_FIELDS = {"last_accessed_at", "last_watched_video_id"}
# Video fields that may be explicitly cleared by an update.
_NULLABLE_VIDEO_FIELDS = {"width", "height", "codec", "bitrate", "frame_rate", "subtitle_path", "subtitle_language"}


def _parse_records(data: dict[str, Any], key: str, model: type[M]) -> list[M]:
    raw = data.get(key)
    if not isinstance(raw, list):
        return []
    out: list[M] = []
    for item in raw:
        try:
            out.append(model.model_validate(item))
        except ValidationError as e:
            log.warning("dropping invalid %s record: %s", key, e.errors(include_url=False))
    return out


def _mutation(method):
    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        if self._closed:
            raise StoreClosed()
        return method(self, *args, **kwargs)

    return wrapper


class LibraryStore:
    """Owner of every course, video, progress and learning-time record.

    All reads are served from memory. Each successful mutation asks the
    flush scheduler to write the whole snapshot back; :meth:`close` does a
    final synchronous write.

    Returned records are copies, so changing them does not change the store.
    """

    def __init__(
        self,
        storage: SnapshotFile,
        *,
        flush_delay: float = 1.0,
        completion_threshold: float = COMPLETION_THRESHOLD,
        clock: Callable[[], Any] = utcnow,
        timer_factory: Callable[..., Any] = threading.Timer,
    ):
        self._storage = storage
        self._threshold = completion_threshold
        self._clock = clock
        self._lock = threading.RLock()
        # serializes snapshot+write pairs so an older snapshot never lands last
        self._flush_lock = threading.Lock()

        self._courses: dict[int, Course] = {}
        self._videos: dict[int, Video] = {}
        # keyed by video id: at most one record per video
        self._progress: dict[int, VideoProgress] = {}
        # keyed by day key
        self._daily: dict[str, DailyLearningTime] = {}
        self._next_id = 0
        self._closed = False

        self._load()
        self._scheduler = FlushScheduler(self.flush, flush_delay, timer_factory)

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs: Any) -> "LibraryStore":
        return cls(
            SnapshotFile(settings.data_path),
            flush_delay=settings.flush_delay,
            completion_threshold=settings.completion_threshold,
            **kwargs,
        )

    @property
    def path(self) -> Path:
        return self._storage.path

    @property
    def scheduler(self) -> FlushScheduler:
        return self._scheduler

    # ------------------------------------------------------------------
    # loading / persistence

    def _load(self) -> None:
        data = self._storage.read() or {}

        for c in _parse_records(data, "courses", Course):
            if c.id in self._courses or any(o.folder_path == c.folder_path for o in self._courses.values()):
                log.warning("dropping duplicate course %s (%s)", c.id, c.folder_path)
                continue
            self._courses[c.id] = c

        paths: set[str] = set()
        for v in _parse_records(data, "videos", Video):
            if v.course_id not in self._courses:
                log.warning("dropping orphan video %s (course %s is gone)", v.id, v.course_id)
                continue
            if v.id in self._videos or v.file_path in paths:
                log.warning("dropping duplicate video %s (%s)", v.id, v.file_path)
                continue
            paths.add(v.file_path)
            self._videos[v.id] = v

        for p in _parse_records(data, "videoProgress", VideoProgress):
            if p.video_id not in self._videos:
                log.warning("dropping orphan progress %s (video %s is gone)", p.id, p.video_id)
                continue
            other = self._progress.get(p.video_id)
            if other is not None and _watched_order(other) >= _watched_order(p):
                continue
            self._progress[p.video_id] = p

        for d in _parse_records(data, "dailyLearningTime", DailyLearningTime):
            if d.date in self._daily:
                log.warning("dropping duplicate learning time row for %s", d.date)
                continue
            self._daily[d.date] = d

        # Dropped records count too: their ids may still be referenced elsewhere.
        ids = [
            item["id"]
            for key in ("courses", "videos", "videoProgress", "dailyLearningTime")
            for item in (data.get(key) if isinstance(data.get(key), list) else [])
            if isinstance(item, dict) and isinstance(item.get("id"), int)
        ]
        # The millisecond clock also covers ids handed out after the last flush.
        self._next_id = time.time_ns() // 1_000_000
        if ids:
            self._next_id = max(self._next_id, max(ids) + 1)
        next_id = data.get("nextId")
        if isinstance(next_id, int):
            self._next_id = max(self._next_id, next_id)

        log.info(
            "loaded library from %s: %d courses, %d videos, %d progress, %d days",
            self._storage.path,
            len(self._courses),
            len(self._videos),
            len(self._progress),
            len(self._daily),
        )

    def _allocate_id(self) -> int:
        new_id = self._next_id
        self._next_id += 1
        return new_id

    def _changed(self) -> None:
        self._scheduler.request()

    def snapshot(self) -> LibrarySnapshot:
        with self._lock:
            return LibrarySnapshot(
                courses=[c.model_copy() for c in self._courses.values()],
                videos=[v.model_copy() for v in self._videos.values()],
                video_progress=[p.model_copy() for p in self._progress.values()],
                daily_learning_time=[d.model_copy() for d in self._daily.values()],
                next_id=self._next_id,
            )

    def flush(self) -> None:
        """Write the current snapshot synchronously."""
        with self._flush_lock:
            with self._lock:
                payload = self.snapshot().model_dump_json(by_alias=True, indent=2)
            self._storage.write(payload)

    def close(self) -> None:
        """Final synchronous flush; the store rejects changes afterwards."""
        with self._lock:
            self._closed = True
        self._scheduler.close()
        try:
            self.flush()
        except PersistenceFailure:
            log.exception("final library flush failed, unsaved changes are lost")
            raise

    # ------------------------------------------------------------------
    # courses

    def _require_course(self, id: int) -> Course:
        course = self._courses.get(id)
        if course is None:
            raise NotFound("Course", id)
        return course

    def _course_by_path(self, folder_path: str) -> Optional[Course]:
        for c in self._courses.values():
            if c.folder_path == folder_path:
                return c
        return None

    @_mutation
    def create_course(self, name: str, folder_path: str) -> Course:
        with self._lock:
            existing = self._course_by_path(folder_path)
            if existing is not None:
                raise DuplicateFolder(folder_path, existing.id)

            now = self._clock()
            course = Course(
                id=self._allocate_id(),
                name=name,
                folder_path=folder_path,
                created_at=now,
                updated_at=now,
            )
            self._courses[course.id] = course
            self._changed()
            return course.model_copy()

    def get_course(self, id: int) -> Optional[Course]:
        with self._lock:
            course = self._courses.get(id)
            return course.model_copy() if course else None

    def get_course_by_path(self, folder_path: str) -> Optional[Course]:
        with self._lock:
            course = self._course_by_path(folder_path)
            return course.model_copy() if course else None

    def get_all_courses(self) -> list[Course]:
        with self._lock:
            return [c.model_copy() for c in self._courses.values()]

    @_mutation
    def update_course(self, id: int, updates: Union[CourseUpdate, dict[str, Any]]) -> Course:
        if not isinstance(updates, CourseUpdate):
            updates = CourseUpdate.model_validate(updates)
        fields = {
            k: v
            for k, v in updates.model_dump(exclude_unset=True).items()
            if v is not None or k in _NULLABLE_COURSE_FIELDS
        }

        with self._lock:
            course = self._require_course(id)
            new_path = fields.get("folder_path")
            if new_path is not None:
                other = self._course_by_path(new_path)
                if other is not None and other.id != id:
                    raise DuplicateFolder(new_path, other.id)

            for k, v in fields.items():
                setattr(course, k, v)
            course.updated_at = self._clock()
            self._changed()
            return course.model_copy()

    @_mutation
    def touch_course(self, id: int) -> Course:
        """Record that the course was just opened."""
        with self._lock:
            course = self._require_course(id)
            course.last_accessed_at = self._clock()
            self._changed()
            return course.model_copy()

    @_mutation
    def set_current_video(self, course_id: int, video_id: int) -> Course:
        with self._lock:
            self._require_course(course_id)
            video = self._videos.get(video_id)
            if video is None or video.course_id != course_id:
                raise NotFound("Video", video_id)
            return self.update_course(course_id, CourseUpdate(last_watched_video_id=video_id))

    def get_last_watched_video(self, course_id: int) -> Optional[Video]:
        with self._lock:
            course = self._require_course(course_id)
            if course.last_watched_video_id is None:
                return None
            video = self._videos.get(course.last_watched_video_id)
            if video is None or video.course_id != course_id:
                return None
            return video.model_copy()

    @_mutation
    def delete_course(self, id: int) -> None:
        with self._lock:
            self._require_course(id)
            del self._courses[id]
            video_ids = [v.id for v in self._videos.values() if v.course_id == id]
            for vid in video_ids:
                del self._videos[vid]
            for vid in video_ids:
                self._progress.pop(vid, None)
            self._changed()
        log.info("deleted course %s with %d videos", id, len(video_ids))

    # ------------------------------------------------------------------
    # videos

    def _require_video(self, id: int) -> Video:
        video = self._videos.get(id)
        if video is None:
            raise NotFound("Video", id)
        return video

    def _add_video(self, course_id: int, info: VideoFileInfo) -> Video:
        now = self._clock()
        video = Video(
            id=self._allocate_id(),
            course_id=course_id,
            created_at=now,
            updated_at=now,
            **info.model_dump(),
        )
        self._videos[video.id] = video
        return video

    @_mutation
    def create_video(self, course_id: int, info: Union[VideoFileInfo, dict[str, Any]]) -> Video:
        if not isinstance(info, VideoFileInfo):
            info = VideoFileInfo.model_validate(info)
        with self._lock:
            self._require_course(course_id)
            if any(v.file_path == info.file_path for v in self._videos.values()):
                raise DuplicateFilePath(info.file_path)
            video = self._add_video(course_id, info)
            self._changed()
            return video.model_copy()

    @_mutation
    def import_videos(
        self, course_id: int, files: Iterable[Union[VideoFileInfo, dict[str, Any]]]
    ) -> int:
        """Add the files not yet in the library; returns how many were added."""
        infos = [f if isinstance(f, VideoFileInfo) else VideoFileInfo.model_validate(f) for f in files]
        with self._lock:
            self._require_course(course_id)
            known = {v.file_path for v in self._videos.values()}
            added = 0
            for info in infos:
                if info.file_path in known:
                    continue
                self._add_video(course_id, info)
                known.add(info.file_path)
                added += 1
            if added:
                self._changed()
        log.info("imported %d new videos into course %s", added, course_id)
        return added

    def get_video(self, id: int) -> Optional[Video]:
        with self._lock:
            video = self._videos.get(id)
            return video.model_copy() if video else None

    def get_videos_by_course(self, course_id: int) -> list[Video]:
        with self._lock:
            return [
                v.model_copy()
                for v in sort_videos(v for v in self._videos.values() if v.course_id == course_id)
            ]

    @_mutation
    def update_video(self, id: int, updates: Union[VideoUpdate, dict[str, Any]]) -> Video:
        if not isinstance(updates, VideoUpdate):
            updates = VideoUpdate.model_validate(updates)
        fields = {
            k: v
            for k, v in updates.model_dump(exclude_unset=True).items()
            if v is not None or k in _NULLABLE_VIDEO_FIELDS
        }
        with self._lock:
            video = self._require_video(id)
            for k, v in fields.items():
                setattr(video, k, v)
            video.updated_at = self._clock()
            self._changed()
            return video.model_copy()

    @_mutation
    def delete_video(self, id: int) -> None:
        with self._lock:
            self._require_video(id)
            del self._videos[id]
            self._progress.pop(id, None)
            self._changed()

    # ------------------------------------------------------------------
    # progress

    @_mutation
    def upsert_video_progress(
        self,
        video_id: int,
        current_time: float,
        duration: float,
        progress_percentage: float = 0.0,
    ) -> VideoProgress:
        with self._lock:
            self._require_video(video_id)
            progress = self._progress.get(video_id)
            if progress is None:
                progress = VideoProgress(id=self._allocate_id(), video_id=video_id)
                self._progress[video_id] = progress
            apply_heartbeat(
                progress,
                current_time,
                duration,
                progress_percentage,
                now=self._clock(),
                threshold=self._threshold,
            )
            self._changed()
            return progress.model_copy()

    def get_video_progress(self, video_id: int) -> Optional[VideoProgress]:
        with self._lock:
            progress = self._progress.get(video_id)
            return progress.model_copy() if progress else None

    def get_all_video_progress(self) -> list[VideoProgress]:
        with self._lock:
            return [p.model_copy() for p in self._progress.values()]

    @_mutation
    def reset_video_progress(self, video_id: int) -> None:
        with self._lock:
            self._require_video(video_id)
            if self._progress.pop(video_id, None) is not None:
                self._changed()

    @_mutation
    def reset_course_progress(self, course_id: int) -> int:
        with self._lock:
            self._require_course(course_id)
            removed = 0
            for v in self._videos.values():
                if v.course_id == course_id and self._progress.pop(v.id, None) is not None:
                    removed += 1
            if removed:
                self._changed()
            return removed

    @_mutation
    def mark_video_completed(self, video_id: int) -> VideoProgress:
        with self._lock:
            video = self._require_video(video_id)
            now = self._clock()
            progress = self._progress.get(video_id)
            if progress is None:
                progress = new_manual_completion(self._allocate_id(), video_id, video.duration, now=now)
                self._progress[video_id] = progress
            else:
                mark_completed(progress, now=now)
            self._changed()
            return progress.model_copy()

    @_mutation
    def mark_video_incomplete(self, video_id: int) -> Optional[VideoProgress]:
        """Clear completion; a video without progress is already incomplete."""
        with self._lock:
            self._require_video(video_id)
            progress = self._progress.get(video_id)
            if progress is None:
                return None
            mark_incomplete(progress, now=self._clock())
            self._changed()
            return progress.model_copy()

    # ------------------------------------------------------------------
    # course summaries

    def _aggregate(self, course: Course) -> CourseWithAggregates:
        videos = sort_videos(v for v in self._videos.values() if v.course_id == course.id)
        progress = [self._progress[v.id] for v in videos if v.id in self._progress]
        completed = sum(1 for p in progress if p.completed)
        total = sum(p.progress_percentage for p in progress) / len(progress) if progress else 0.0
        return CourseWithAggregates(
            **course.model_dump(),
            videos=[v.model_copy() for v in videos],
            total_videos=len(videos),
            completed_videos=completed,
            total_progress=round(total, 2),
        )

    def get_course_with_aggregates(self, id: int) -> Optional[CourseWithAggregates]:
        with self._lock:
            course = self._courses.get(id)
            return self._aggregate(course) if course else None

    def get_all_courses_with_aggregates(self) -> list[CourseWithAggregates]:
        with self._lock:
            out = [self._aggregate(c) for c in self._courses.values()]
        out.sort(key=lambda c: c.last_accessed_at or c.created_at, reverse=True)
        return out

    def resume_video(self, course_id: int) -> Optional[Video]:
        with self._lock:
            self._require_course(course_id)
            videos = sort_videos(v for v in self._videos.values() if v.course_id == course_id)
            chosen = select_resume_video(videos, self._progress)
            return chosen.model_copy() if chosen else None

    # ------------------------------------------------------------------
    # learning time

    @_mutation
    def add_learning_time(self, seconds: float) -> DailyLearningTime:
        if seconds < 0:
            raise ValueError("learning time cannot be negative")
        with self._lock:
            now = self._clock()
            key = day_key(now)
            row = self._daily.get(key)
            if row is None:
                row = DailyLearningTime(
                    id=self._allocate_id(),
                    date=key,
                    total_time_spent=seconds,
                    sessions_count=1,
                    created_at=now,
                    updated_at=now,
                )
                self._daily[key] = row
            else:
                row.total_time_spent += seconds
                row.sessions_count += 1
                row.updated_at = now
            self._changed()
            log.debug("learning time for %s: %ss over %d sessions", key, row.total_time_spent, row.sessions_count)
            return row.model_copy()

    def get_daily_learning_time(self, date: str) -> Optional[DailyLearningTime]:
        with self._lock:
            row = self._daily.get(date)
            return row.model_copy() if row else None

    def get_weekly_learning_time(self) -> list[DailyLearningTime]:
        with self._lock:
            start = week_start_key(self._clock())
            rows = [d.model_copy() for d in self._daily.values() if d.date >= start]
        rows.sort(key=lambda d: d.date)
        return rows

    def get_total_learning_time(self) -> float:
        with self._lock:
            return sum(d.total_time_spent for d in self._daily.values())


def _watched_order(p: VideoProgress):
    # Records never watched sort before any watched one.
    return (p.last_watched_at is not None, p.last_watched_at or 0, p.id)
