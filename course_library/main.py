from __future__ import annotations

import logging

from fastapi import Depends, FastAPI, HTTPException, Request, Response
from fastapi.responses import JSONResponse
from pydantic import Field

from .config import get_settings
from .db import close_store, get_store, init_store
from .errors import DuplicateFilePath, DuplicateFolder, EmptyImport, NotFound, StoreClosed
from .importer import import_course
from .models import CamelModel, CourseUpdate, VideoFileInfo, VideoUpdate
from .stats import build_stats_router
from .store import LibraryStore


app = FastAPI(title="Course-Library")


log = logging.getLogger(__name__)


@app.on_event("startup")
def on_startup() -> None:
    store = init_store()
    log.info("course library ready (data=%s)", store.path)


@app.on_event("shutdown")
def on_shutdown() -> None:
    # Final synchronous flush; a failure here is logged by the store.
    close_store()


@app.exception_handler(NotFound)
async def not_found_handler(request: Request, exc: NotFound):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(DuplicateFolder)
@app.exception_handler(DuplicateFilePath)
async def conflict_handler(request: Request, exc: Exception):
    return JSONResponse(status_code=409, content={"detail": str(exc)})


@app.exception_handler(EmptyImport)
async def empty_import_handler(request: Request, exc: EmptyImport):
    return JSONResponse(status_code=422, content={"detail": str(exc)})


@app.exception_handler(StoreClosed)
async def store_closed_handler(request: Request, exc: StoreClosed):
    return JSONResponse(status_code=503, content={"detail": str(exc)})


def min_session_seconds() -> float:
    return get_settings().min_session_seconds


# Learning-time routes (session close, dashboard reads)
app.include_router(build_stats_router(get_store_dep=get_store, min_session_func=min_session_seconds))


class ImportIn(CamelModel):
    name: str
    folder_path: str
    files: list[VideoFileInfo] = Field(default_factory=list)


class CurrentVideoIn(CamelModel):
    video_id: int


class ProgressIn(CamelModel):
    current_time: float = Field(default=0.0, ge=0.0)
    duration: float = Field(default=0.0, ge=0.0)
    progress_percentage: float = Field(default=0.0, ge=0.0, le=100.0)


@app.get("/api/courses")
def list_courses(store: LibraryStore = Depends(get_store)):
    """Courses with their aggregates, most recently opened first."""
    return store.get_all_courses_with_aggregates()


@app.post("/api/courses")
def create_or_update_course(payload: ImportIn, response: Response, store: LibraryStore = Depends(get_store)):
    try:
        result = import_course(store, payload.name, payload.folder_path, payload.files)
    except ValueError as e:
        raise HTTPException(422, str(e))
    response.status_code = 201 if result.created else 200
    return {"course": result.course, "added": result.added, "created": result.created}


@app.get("/api/courses/{course_id}")
def course_detail(course_id: int, store: LibraryStore = Depends(get_store)):
    course = store.get_course_with_aggregates(course_id)
    if not course:
        raise HTTPException(404, "Course not found")
    return course


@app.patch("/api/courses/{course_id}")
def update_course(course_id: int, payload: CourseUpdate, store: LibraryStore = Depends(get_store)):
    return store.update_course(course_id, payload)


@app.delete("/api/courses/{course_id}", status_code=204)
def delete_course(course_id: int, store: LibraryStore = Depends(get_store)):
    store.delete_course(course_id)
    return Response(status_code=204)


@app.post("/api/courses/{course_id}/access")
def touch_course(course_id: int, store: LibraryStore = Depends(get_store)):
    return store.touch_course(course_id)


@app.put("/api/courses/{course_id}/current-video")
def set_current_video(course_id: int, payload: CurrentVideoIn, store: LibraryStore = Depends(get_store)):
    return store.set_current_video(course_id, payload.video_id)


@app.get("/api/courses/{course_id}/videos")
def course_videos(course_id: int, store: LibraryStore = Depends(get_store)):
    return store.get_videos_by_course(course_id)


@app.get("/api/courses/{course_id}/resume")
def resume(course_id: int, store: LibraryStore = Depends(get_store)):
    """Video to open when the course is shown; null for an empty course."""
    return store.resume_video(course_id)


@app.post("/api/courses/{course_id}/reset-progress")
def reset_course_progress(course_id: int, store: LibraryStore = Depends(get_store)):
    removed = store.reset_course_progress(course_id)
    return {"ok": True, "removed": removed}


@app.patch("/api/videos/{video_id}")
def update_video(video_id: int, payload: VideoUpdate, store: LibraryStore = Depends(get_store)):
    return store.update_video(video_id, payload)


@app.delete("/api/videos/{video_id}", status_code=204)
def delete_video(video_id: int, store: LibraryStore = Depends(get_store)):
    store.delete_video(video_id)
    return Response(status_code=204)


@app.get("/api/progress/{video_id}")
def get_progress(video_id: int, store: LibraryStore = Depends(get_store)):
    if store.get_video(video_id) is None:
        raise HTTPException(404, "Video not found")
    return store.get_video_progress(video_id)


@app.post("/api/progress/{video_id}")
def upsert_progress(video_id: int, payload: ProgressIn, store: LibraryStore = Depends(get_store)):
    return store.upsert_video_progress(
        video_id, payload.current_time, payload.duration, payload.progress_percentage
    )


@app.delete("/api/progress/{video_id}", status_code=204)
def reset_progress(video_id: int, store: LibraryStore = Depends(get_store)):
    store.reset_video_progress(video_id)
    return Response(status_code=204)


@app.post("/api/progress/{video_id}/complete")
def mark_completed(video_id: int, store: LibraryStore = Depends(get_store)):
    return store.mark_video_completed(video_id)


@app.post("/api/progress/{video_id}/incomplete")
def mark_incomplete(video_id: int, store: LibraryStore = Depends(get_store)):
    return store.mark_video_incomplete(video_id)
