from __future__ import annotations

from collections.abc import Callable
from datetime import date

from fastapi import APIRouter, Depends
from pydantic import Field

from .models import CamelModel
from .store import LibraryStore


class LearningTimeIn(CamelModel):
    seconds: float = Field(ge=0.0)


def build_stats_router(
    *,
    get_store_dep: Callable[[], LibraryStore],
    min_session_func: Callable[[], float],
) -> APIRouter:
    """Learning-time routes.

    - Session close from the player (short sessions are dropped here)
    - Daily / weekly / total reads for the dashboard

    Kept as a router factory so the main app can inject dependencies cleanly.
    """

    r = APIRouter(prefix="/api/learning-time")

    @r.post("")
    def add_learning_time(payload: LearningTimeIn, store: LibraryStore = Depends(get_store_dep)):
        # Accidental clicks and seeks are not study sessions.
        if payload.seconds < min_session_func():
            return {"recorded": False, "day": None}
        row = store.add_learning_time(payload.seconds)
        return {"recorded": True, "day": row}

    @r.get("/daily/{day}")
    def daily(day: date, store: LibraryStore = Depends(get_store_dep)):
        return store.get_daily_learning_time(day.isoformat())

    @r.get("/weekly")
    def weekly(store: LibraryStore = Depends(get_store_dep)):
        return store.get_weekly_learning_time()

    @r.get("/total")
    def total(store: LibraryStore = Depends(get_store_dep)):
        return {"totalTimeSpent": store.get_total_learning_time()}

    return r
