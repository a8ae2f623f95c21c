from __future__ import annotations

from typing import Mapping, Optional, Sequence

from .models import Video, VideoProgress


def _is_complete(video: Video, progress: Mapping[int, VideoProgress]) -> bool:
    p = progress.get(video.id)
    return bool(p and p.completed)


def select_resume_video(
    videos: Sequence[Video], progress: Mapping[int, VideoProgress]
) -> Optional[Video]:
    """Pick the video to open when a course is shown.

    ``videos`` must already be in display order; ``progress`` maps video id
    to its progress record (records for other courses are ignored). Pure:
    the same stored state always yields the same video.
    """
    if not videos:
        return None

    touched = [(i, progress[v.id]) for i, v in enumerate(videos) if v.id in progress]
    if not touched:
        return videos[0]

    watched = [(i, p) for i, p in touched if p.last_watched_at is not None]
    if not watched:
        for v in videos:
            if not _is_complete(v, progress):
                return v
        return videos[0]

    # Latest watch wins; ties go to the later video in order.
    last_idx, last = max(watched, key=lambda item: (item[1].last_watched_at, item[0]))
    if not last.completed:
        return videos[last_idx]

    for v in videos[last_idx + 1:]:
        if not _is_complete(v, progress):
            return v
    return videos[last_idx]
