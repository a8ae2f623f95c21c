from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CamelModel(BaseModel):
    """snake_case in Python, camelCase on disk and over HTTP."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    @field_validator("*", mode="after")
    @classmethod
    def assume_utc(cls, value):
        # Older snapshots may carry naive timestamps.
        if isinstance(value, datetime) and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


class Course(CamelModel):
    id: int
    name: str

    # Absolute path to the imported folder (unique, dedupe key for re-import)
    folder_path: str

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    last_accessed_at: Optional[datetime] = None

    # Weak reference, may dangle after the video is deleted
    last_watched_video_id: Optional[int] = None


class MediaInfo(CamelModel):
    width: Optional[int] = None
    height: Optional[int] = None
    codec: Optional[str] = None
    bitrate: Optional[int] = None
    frame_rate: Optional[float] = None


class VideoFileInfo(MediaInfo):
    """One discovered file, as handed over by the folder importer."""

    file_name: str
    file_path: str
    duration: float = Field(default=0.0, ge=0.0)
    file_size: int = Field(default=0, ge=0)


class Video(MediaInfo):
    id: int
    course_id: int

    file_name: str
    # Absolute path to the video file (unique across the library)
    file_path: str

    # Seconds; 0 until playback reports the real value
    duration: float = 0.0
    file_size: int = 0

    subtitle_path: Optional[str] = None
    has_subtitles: bool = False
    subtitle_language: Optional[str] = None

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class VideoProgress(CamelModel):
    id: int
    video_id: int

    current_time: float = 0.0
    duration: float = 0.0
    progress_percentage: float = 0.0
    last_watched_at: Optional[datetime] = None

    completed: bool = False
    # Set by an explicit "mark completed", survives heartbeats
    manually_completed: bool = False


class DailyLearningTime(CamelModel):
    id: int

    # YYYY-MM-DD
    date: str

    total_time_spent: float = 0.0
    sessions_count: int = 0

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class CourseUpdate(CamelModel):
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = None
    folder_path: Optional[str] = None
    last_accessed_at: Optional[datetime] = None
    last_watched_video_id: Optional[int] = None


class VideoUpdate(MediaInfo):
    model_config = ConfigDict(extra="forbid")

    file_name: Optional[str] = None
    duration: Optional[float] = Field(default=None, ge=0.0)
    file_size: Optional[int] = Field(default=None, ge=0)

    subtitle_path: Optional[str] = None
    has_subtitles: Optional[bool] = None
    subtitle_language: Optional[str] = None


class CourseWithAggregates(Course):
    videos: list[Video] = Field(default_factory=list)
    total_videos: int = 0
    completed_videos: int = 0
    total_progress: float = 0.0


class LibrarySnapshot(CamelModel):
    """The persisted document: four top-level arrays plus the id high-water mark."""

    courses: list[Course] = Field(default_factory=list)
    videos: list[Video] = Field(default_factory=list)
    video_progress: list[VideoProgress] = Field(default_factory=list)
    daily_learning_time: list[DailyLearningTime] = Field(default_factory=list)

    # Next id to hand out; ids of records deleted before a flush stay burnt.
    next_id: Optional[int] = None
