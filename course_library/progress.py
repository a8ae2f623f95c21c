"""Watch-progress and completion rules.

A video has no progress record until it is first played or marked
completed. ``completed`` turns on once the watched percentage reaches the
completion threshold and from then on only an explicit "mark incomplete"
clears it. ``manually_completed`` records that the user ticked the video
off by hand.
"""
from __future__ import annotations

from datetime import datetime

from .models import VideoProgress


COMPLETION_THRESHOLD = 90.0


def compute_percentage(current_time: float, duration: float, reported: float = 0.0) -> float:
    """Percentage watched, derived from position/duration when duration is known.

    Before playback has reported a duration the caller's own percentage is
    the best we have.
    """
    if duration > 0:
        pct = current_time / duration * 100.0
    else:
        pct = reported
    return max(0.0, min(100.0, pct))


def apply_heartbeat(
    progress: VideoProgress,
    current_time: float,
    duration: float,
    reported_percentage: float,
    *,
    now: datetime,
    threshold: float = COMPLETION_THRESHOLD,
) -> VideoProgress:
    current_time = max(0.0, current_time)
    duration = max(0.0, duration)
    pct = compute_percentage(current_time, duration, reported_percentage)

    progress.current_time = current_time
    progress.duration = duration
    progress.progress_percentage = pct
    progress.last_watched_at = now
    # Heartbeats may set completion but never clear it.
    progress.completed = progress.completed or progress.manually_completed or pct >= threshold
    return progress


def new_manual_completion(id: int, video_id: int, duration: float, *, now: datetime) -> VideoProgress:
    return VideoProgress(
        id=id,
        video_id=video_id,
        current_time=duration,
        duration=duration,
        progress_percentage=100.0,
        last_watched_at=now,
        completed=True,
        manually_completed=True,
    )


def mark_completed(progress: VideoProgress, *, now: datetime) -> VideoProgress:
    progress.completed = True
    progress.manually_completed = True
    progress.last_watched_at = now
    return progress


def mark_incomplete(progress: VideoProgress, *, now: datetime) -> VideoProgress:
    # Position is kept so the video resumes where it was left.
    progress.completed = False
    progress.manually_completed = False
    progress.last_watched_at = now
    return progress
