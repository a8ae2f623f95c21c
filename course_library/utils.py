from __future__ import annotations

import re
from typing import Iterable

from .models import Video


_DIGITS = re.compile(r"(\d+)")


def natural_key(s: str):
    """Sort key that treats digit runs as integers ("2" < "10").

    re.split with a capture group alternates text and digit chunks, so odd
    positions always hold digits and two keys never compare int to str.
    """
    return [int(t) if i % 2 else t.casefold() for i, t in enumerate(_DIGITS.split(s))]


def video_sort_key(video: Video):
    # Identical names fall back to import order.
    return (natural_key(video.file_name), video.created_at, video.id)


def sort_videos(videos: Iterable[Video]) -> list[Video]:
    return sorted(videos, key=video_sort_key)
