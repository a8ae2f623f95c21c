import pytest
from fastapi.testclient import TestClient

from course_library.db import get_store
from course_library.main import app

from .conftest import file_info


@pytest.fixture
def client(store, monkeypatch):
    monkeypatch.setenv("COURSE_LIBRARY_MIN_SESSION_SECONDS", "5")
    app.dependency_overrides[get_store] = lambda: store
    yield TestClient(app)
    app.dependency_overrides.pop(get_store, None)


def _import(client, files, name="Python", folder="/courses/python"):
    return client.post("/api/courses", json={"name": name, "folderPath": folder, "files": files})


@pytest.fixture
def course(client):
    files = [file_info(n) for n in ("Lesson 10.mp4", "Lesson 2.mp4", "Lesson 1.mp4")]
    r = _import(client, files)
    assert r.status_code == 201
    return r.json()["course"]


def test_import_creates_course(course):
    assert course["totalVideos"] == 3
    assert [v["fileName"] for v in course["videos"]] == ["Lesson 1.mp4", "Lesson 2.mp4", "Lesson 10.mp4"]
    assert course["folderPath"] == "/courses/python"


def test_reimport_augments(client, course):
    files = [file_info(n) for n in ("Lesson 1.mp4", "Lesson 3.mp4")]
    r = _import(client, files)
    assert r.status_code == 200
    body = r.json()
    assert body["created"] is False
    assert body["added"] == 1
    assert body["course"]["id"] == course["id"]
    assert len(client.get("/api/courses").json()) == 1


def test_import_needs_files(client):
    assert _import(client, [], folder="/courses/empty").status_code == 422
    assert _import(client, [file_info("a.mp4")], name="  ").status_code == 422


def test_unknown_course(client):
    assert client.get("/api/courses/999").status_code == 404
    assert client.get("/api/courses/999/resume").status_code == 404
    assert client.delete("/api/courses/999").status_code == 404


def test_rename_and_folder_conflict(client, course):
    r = client.patch(f"/api/courses/{course['id']}", json={"name": "Python 3"})
    assert r.status_code == 200
    assert r.json()["name"] == "Python 3"

    _import(client, [file_info("a.mp4", "/courses/go")], name="Go", folder="/courses/go")
    r = client.patch(f"/api/courses/{course['id']}", json={"folderPath": "/courses/go"})
    assert r.status_code == 409


def test_progress_flow_and_resume(client, course):
    v1, v2, v3 = course["videos"]
    assert client.get(f"/api/courses/{course['id']}/resume").json()["id"] == v1["id"]
    assert client.get(f"/api/progress/{v1['id']}").json() is None

    r = client.post(f"/api/progress/{v1['id']}", json={"currentTime": 590, "duration": 600, "progressPercentage": 98})
    assert r.status_code == 200
    assert r.json()["completed"] is True
    assert client.get(f"/api/courses/{course['id']}/resume").json()["id"] == v2["id"]

    r = client.post(f"/api/progress/{v2['id']}/complete")
    assert r.json()["manuallyCompleted"] is True
    r = client.post(f"/api/progress/{v2['id']}", json={"currentTime": 60, "duration": 600, "progressPercentage": 10})
    assert r.json()["completed"] is True

    r = client.post(f"/api/progress/{v2['id']}/incomplete")
    assert r.json()["completed"] is False
    assert r.json()["currentTime"] == 60

    summary = client.get(f"/api/courses/{course['id']}").json()
    assert summary["completedVideos"] == 1

    assert client.delete(f"/api/progress/{v1['id']}").status_code == 204
    assert client.get(f"/api/progress/{v1['id']}").json() is None


def test_progress_for_unknown_video(client):
    assert client.post("/api/progress/4242", json={"currentTime": 1, "duration": 2}).status_code == 404
    assert client.get("/api/progress/4242").status_code == 404


def test_current_video_and_access(client, course):
    v = course["videos"][1]
    r = client.put(f"/api/courses/{course['id']}/current-video", json={"videoId": v["id"]})
    assert r.json()["lastWatchedVideoId"] == v["id"]
    r = client.post(f"/api/courses/{course['id']}/access")
    assert r.json()["lastAccessedAt"] is not None


def test_video_update_and_delete(client, course, store):
    v = course["videos"][0]
    r = client.patch(f"/api/videos/{v['id']}", json={"subtitlePath": "/subs/a.vtt", "subtitleLanguage": "en"})
    assert r.status_code == 200
    assert r.json()["subtitleLanguage"] == "en"
    assert client.patch(f"/api/videos/{v['id']}", json={"courseId": 1}).status_code == 422

    client.post(f"/api/progress/{v['id']}", json={"currentTime": 5, "duration": 600})
    assert client.delete(f"/api/videos/{v['id']}").status_code == 204
    assert store.get_video_progress(v["id"]) is None
    assert len(client.get(f"/api/courses/{course['id']}/videos").json()) == 2


def test_delete_course_and_reset(client, course, store):
    for v in course["videos"]:
        client.post(f"/api/progress/{v['id']}/complete")
    r = client.post(f"/api/courses/{course['id']}/reset-progress")
    assert r.json() == {"ok": True, "removed": 3}

    client.post(f"/api/progress/{course['videos'][0]['id']}", json={"currentTime": 5, "duration": 600})
    assert client.delete(f"/api/courses/{course['id']}").status_code == 204
    assert client.get("/api/courses").json() == []
    assert store.get_all_video_progress() == []


def test_learning_time(client):
    r = client.post("/api/learning-time", json={"seconds": 3})
    assert r.json() == {"recorded": False, "day": None}

    r = client.post("/api/learning-time", json={"seconds": 120})
    day = r.json()["day"]
    assert day["sessionsCount"] == 1
    client.post("/api/learning-time", json={"seconds": 30})

    daily = client.get(f"/api/learning-time/daily/{day['date']}").json()
    assert daily["totalTimeSpent"] == 150
    assert daily["sessionsCount"] == 2
    assert [d["date"] for d in client.get("/api/learning-time/weekly").json()] == [day["date"]]
    assert client.get("/api/learning-time/total").json() == {"totalTimeSpent": 150}
    assert client.get("/api/learning-time/daily/2020-01-01").json() is None
    assert client.get("/api/learning-time/daily/not-a-date").status_code == 422


def test_null_fields_do_not_break_a_video(client, course):
    v = course["videos"][0]
    r = client.patch(f"/api/videos/{v['id']}", json={"fileName": None, "duration": None})
    assert r.status_code == 200
    assert r.json()["fileName"] == v["fileName"]

    assert client.get(f"/api/courses/{course['id']}/videos").status_code == 200
    assert client.post(f"/api/progress/{v['id']}/complete").status_code == 200


def test_closed_store_answers_503(client, course, store):
    store.close()
    r = client.post(f"/api/progress/{course['videos'][0]['id']}", json={"currentTime": 1, "duration": 600})
    assert r.status_code == 503
    assert client.get(f"/api/courses/{course['id']}").status_code == 200
