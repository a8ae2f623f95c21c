from datetime import datetime, timedelta, timezone

from course_library.models import Video
from course_library.utils import natural_key, sort_videos


def _video(id, name, created=None):
    created = created or datetime(2026, 1, 1, tzinfo=timezone.utc)
    return Video(id=id, course_id=1, file_name=name, file_path=f"/c/{id}/{name}", created_at=created)


def names(videos):
    return [v.file_name for v in videos]


def test_digit_runs_compare_numerically():
    videos = [_video(1, "Lesson 10.mp4"), _video(2, "Lesson 2.mp4"), _video(3, "Lesson 1.mp4")]
    assert names(sort_videos(videos)) == ["Lesson 1.mp4", "Lesson 2.mp4", "Lesson 10.mp4"]


def test_text_compares_lexicographically_ignoring_case():
    videos = [_video(1, "Outro.mp4"), _video(2, "intro.mp4"), _video(3, "Middle.mp4")]
    assert names(sort_videos(videos)) == ["intro.mp4", "Middle.mp4", "Outro.mp4"]


def test_mixed_prefixes():
    videos = [
        _video(1, "clip 10.mp4"),
        _video(2, "Chapter 2 - b.mp4"),
        _video(3, "clip 2.mp4"),
        _video(4, "Chapter 2 - a.mp4"),
        _video(5, "Chapter 11.mp4"),
    ]
    assert names(sort_videos(videos)) == [
        "Chapter 2 - a.mp4",
        "Chapter 2 - b.mp4",
        "Chapter 11.mp4",
        "clip 2.mp4",
        "clip 10.mp4",
    ]


def test_equal_names_fall_back_to_creation_time():
    base = datetime(2026, 1, 1, tzinfo=timezone.utc)
    later = _video(1, "part 01.mp4", base + timedelta(minutes=5))
    earlier = _video(2, "Part 1.mp4", base)
    assert [v.id for v in sort_videos([later, earlier])] == [2, 1]


def test_sort_is_stable_across_calls():
    videos = [_video(i, f"{n}.mp4") for i, n in enumerate(["b2", "a10", "a2", "b1", "a"])]
    first = sort_videos(videos)
    assert sort_videos(list(reversed(videos))) == first
    assert sort_videos(first) == first


def test_natural_key_never_mixes_types():
    # Superscript two is not a decimal digit and stays in the text chunk.
    assert natural_key("a²") == ["a²"]
    assert natural_key("007 Bond") == ["", 7, " bond"]
