"""
Live focus timer.

A LiveTimer belongs to exactly one client connection. Time accrues only while
running, in whole seconds. Committing builds one Session and hands it to a
submit callable (normally the store's merge operation).
"""

import math
import time
from enum import Enum
from typing import Callable, Dict, List, Optional

from focuslog import config
from focuslog.models.entry import TIMER_TAG, Session
from focuslog.utils.dates import today_iso

AD_HOC_TRACK = 'Sudden'
AD_HOC_TOPIC = 'Ad-Hoc Task'
DEFAULT_TOPIC = 'Focus Session'


class TimerState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"


class TimerError(Exception):
    """Base class for rejected timer operations."""


class InvalidTimerState(TimerError):
    pass


class SessionTooShort(TimerError):
    def __init__(self, elapsed: int, minimum: int):
        super().__init__(f"Session too short to log (min {minimum}s, got {elapsed}s)")
        self.elapsed = elapsed
        self.minimum = minimum


def format_elapsed(total_seconds: int) -> str:
    """HH:MM:SS"""
    hours = total_seconds // 3600
    minutes = (total_seconds % 3600) // 60
    seconds = total_seconds % 60
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}"


class LiveTimer:
    """Stopwatch with pause/resume/discard/commit semantics."""

    def __init__(self, clock: Callable[[], float] = time.monotonic,
                 min_commit_seconds: Optional[int] = None):
        self._clock = clock
        self.min_commit_seconds = (config.MIN_COMMIT_SECONDS
                                   if min_commit_seconds is None else min_commit_seconds)
        self._reset()

    def _reset(self):
        self.state = TimerState.IDLE
        self.track: Optional[str] = None
        self.topic: str = ''
        self._accumulated = 0.0
        self._running_since: Optional[float] = None

    def elapsed_seconds(self) -> int:
        elapsed = self._accumulated
        if self.state == TimerState.RUNNING and self._running_since is not None:
            elapsed += self._clock() - self._running_since
        return int(math.floor(elapsed))

    def start(self, track: str, topic: Optional[str] = None):
        """Start a fresh session on a track. Allowed only when idle."""
        if self.state != TimerState.IDLE:
            raise InvalidTimerState(f"Cannot start while {self.state.value}")
        if not track or not isinstance(track, str):
            raise InvalidTimerState("A track name is required to start")
        if topic is not None and not isinstance(topic, str):
            raise InvalidTimerState("Topic must be text")
        self.track = track
        if track == AD_HOC_TRACK:
            self.topic = AD_HOC_TOPIC
        else:
            self.topic = topic or ''
        self._accumulated = 0.0
        self._running_since = self._clock()
        self.state = TimerState.RUNNING

    def pause(self):
        if self.state != TimerState.RUNNING:
            raise InvalidTimerState(f"Cannot pause while {self.state.value}")
        self._accumulated += self._clock() - self._running_since
        self._running_since = None
        self.state = TimerState.PAUSED

    def resume(self):
        if self.state != TimerState.PAUSED:
            raise InvalidTimerState(f"Cannot resume while {self.state.value}")
        self._running_since = self._clock()
        self.state = TimerState.RUNNING

    def discard(self):
        """Drop the current session without touching the store."""
        self._reset()

    def build_session(self) -> Session:
        seconds = self.elapsed_seconds()
        return Session(
            category=self.track,
            sub_category=self.topic or DEFAULT_TOPIC,
            tags=[TIMER_TAG],
            focused=seconds / 3600,
            assigned=0.0,
        )

    def commit(self, submit: Callable[[str, List[Session]], object]):
        """
        Submit the elapsed time as one session for today.

        Raises SessionTooShort (state unchanged) below the minimum. The timer
        only goes back to idle once submit returns, so a failed submit can be
        retried.
        """
        if self.state == TimerState.IDLE:
            raise InvalidTimerState("No active session to commit")
        elapsed = self.elapsed_seconds()
        if elapsed < self.min_commit_seconds:
            raise SessionTooShort(elapsed, self.min_commit_seconds)

        session = self.build_session()
        result = submit(today_iso(), [session])
        self._reset()
        return result

    def status(self) -> Dict:
        elapsed = self.elapsed_seconds()
        return {
            'state': self.state.value,
            'track': self.track,
            'topic': self.topic,
            'elapsed_seconds': elapsed,
            'elapsed': format_elapsed(elapsed),
        }
