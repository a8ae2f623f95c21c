"""Write-back of the library snapshot to disk.

The store keeps everything in memory and asks :class:`FlushScheduler` for a
flush after each mutation. Requests arriving while a flush is already
waiting are absorbed by it; requests arriving while a write is in flight
mark the scheduler dirty and one more flush follows. Playback heartbeats
therefore cost at most one write per ``delay`` seconds.
"""
from __future__ import annotations

import enum
import json
import logging
import os
import threading
from pathlib import Path
from typing import Any, Callable, Optional

from .errors import PersistenceFailure


log = logging.getLogger(__name__)


class SnapshotFile:
    """JSON document on disk, replaced atomically on every write."""

    def __init__(self, path: Path):
        self.path = Path(path)
        self._write_lock = threading.Lock()

    def read(self) -> Optional[dict[str, Any]]:
        """Parsed document, or None for a missing or unreadable file."""
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            log.info("no library snapshot at %s, starting empty", self.path)
            return None
        except OSError:
            log.warning("cannot read library snapshot %s, starting empty", self.path, exc_info=True)
            return None

        try:
            data = json.loads(raw)
        except ValueError:
            log.warning("library snapshot %s is corrupt, starting empty", self.path)
            return None
        if not isinstance(data, dict):
            log.warning("library snapshot %s is not an object, starting empty", self.path)
            return None
        return data

    def write(self, payload: str) -> None:
        tmp = self.path.with_name(self.path.name + ".tmp")
        with self._write_lock:
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                with open(tmp, "w", encoding="utf-8") as f:
                    f.write(payload)
                    f.flush()
                    os.fsync(f.fileno())
                os.replace(tmp, self.path)
            except OSError as e:
                tmp.unlink(missing_ok=True)
                raise PersistenceFailure(self.path) from e


class State(enum.Enum):
    IDLE = "idle"
    SCHEDULED = "scheduled"
    FLUSHING = "flushing"


class FlushScheduler:
    def __init__(
        self,
        flush: Callable[[], None],
        delay: float = 1.0,
        timer_factory: Callable[..., Any] = threading.Timer,
    ):
        self._flush = flush
        self._delay = delay
        self._timer_factory = timer_factory

        self._lock = threading.Lock()
        self._state = State.IDLE
        self._dirty = False
        self._timer: Any = None
        self._closed = False

    @property
    def state(self) -> State:
        return self._state

    @property
    def dirty(self) -> bool:
        return self._dirty

    def request(self) -> None:
        with self._lock:
            if self._closed:
                return
            if self._state is State.SCHEDULED:
                # The pending flush has not read the store yet.
                return
            if self._state is State.FLUSHING:
                self._dirty = True
                return
            self._schedule()

    def _schedule(self) -> None:
        timer = self._timer_factory(self._delay, self._run)
        timer.daemon = True
        self._timer = timer
        self._state = State.SCHEDULED
        timer.start()

    def _run(self) -> None:
        with self._lock:
            if self._closed or self._state is not State.SCHEDULED:
                return
            self._state = State.FLUSHING
            self._timer = None

        try:
            self._flush()
        except Exception:
            # Memory stays authoritative; the next change retries.
            log.exception("scheduled library flush failed")

        with self._lock:
            if self._dirty and not self._closed:
                self._dirty = False
                self._schedule()
            else:
                self._dirty = False
                self._state = State.IDLE

    def close(self) -> None:
        """Stop scheduling; the owner performs the final write itself."""
        with self._lock:
            self._closed = True
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            self._dirty = False
            self._state = State.IDLE
