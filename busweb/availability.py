"""Periodic seat-availability sync.

Keeps one screen's view of reserved seats fresh: fetches a snapshot when the
screen mounts, again every ``interval`` seconds, and whenever the user asks
for a refresh. Responses that arrive out of order or after the screen went
away are dropped.
"""

import threading
import time
from enum import Enum
from typing import Callable, Optional

from loguru import logger

from .client import ApiError, error_message
from .services import SeatAvailabilitySnapshot

DEFAULT_SYNC_INTERVAL = 15.0
SYNC_ERROR_MESSAGE = "Unable to update seat availability. Please try again."


class SyncState(str, Enum):
    IDLE = "idle"
    SYNCING = "syncing"
    SYNCED = "synced"
    ERROR = "error"


class AvailabilitySync:
    def __init__(
        self,
        fetch: Callable[[], SeatAvailabilitySnapshot],
        on_snapshot: Callable[[SeatAvailabilitySnapshot], None],
        interval: float = DEFAULT_SYNC_INTERVAL,
        timer_factory: Callable[..., threading.Timer] = threading.Timer,
        clock: Callable[[], float] = time.time,
        before_tick: Optional[Callable[[], None]] = None,
    ):
        self._fetch = fetch
        self._on_snapshot = on_snapshot
        self.interval = interval
        self._timer_factory = timer_factory
        self._clock = clock
        # runs ahead of every timed refresh; may stop the loop
        self.before_tick = before_tick

        self._lock = threading.RLock()
        self._timer: Optional[threading.Timer] = None
        self._alive = False
        self._issued_seq = 0
        self._applied_seq = 0
        self._pending_manual = set()

        self.state = SyncState.IDLE
        self.snapshot: Optional[SeatAvailabilitySnapshot] = None
        self.error: Optional[str] = None
        self.last_synced_at: Optional[float] = None

    @property
    def alive(self) -> bool:
        return self._alive

    @property
    def loading(self) -> bool:
        return bool(self._pending_manual)

    def start(self) -> None:
        with self._lock:
            if self._alive:
                return
            self._alive = True
        self.refresh(manual=True)
        self._schedule()

    def stop(self) -> None:
        with self._lock:
            self._alive = False
            self._pending_manual.clear()
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None

    def refresh(self, manual: bool = True) -> bool:
        """Fetch a snapshot now. Returns True when it was applied."""
        seq = self.begin(manual=manual)
        if seq is None:
            return False
        try:
            snapshot = self._fetch()
        except ApiError as exc:
            return self.fail(seq, exc)
        return self.complete(seq, snapshot)

    def begin(self, manual: bool = False) -> Optional[int]:
        with self._lock:
            if not self._alive:
                return None
            self._issued_seq += 1
            self.state = SyncState.SYNCING
            if manual:
                self._pending_manual.add(self._issued_seq)
            return self._issued_seq

    def complete(self, seq: int, snapshot: SeatAvailabilitySnapshot) -> bool:
        with self._lock:
            self._pending_manual.discard(seq)
            if not self._alive:
                logger.debug(f"availability response #{seq} arrived after teardown, dropped")
                return False
            if seq <= self._applied_seq:
                logger.debug(f"availability response #{seq} is older than #{self._applied_seq}, dropped")
                return False
            self._applied_seq = seq
            self.snapshot = snapshot
            self.state = SyncState.SYNCED
            self.error = None
            self.last_synced_at = self._clock()
            self._on_snapshot(snapshot)
            return True

    def fail(self, seq: int, exc: Exception) -> bool:
        with self._lock:
            self._pending_manual.discard(seq)
            if not self._alive or seq <= self._applied_seq:
                return False
            logger.warning(f"seat availability sync #{seq} failed: {error_message(exc)}")
            self.state = SyncState.ERROR
            self.error = SYNC_ERROR_MESSAGE
            return False

    def status(self) -> dict:
        with self._lock:
            if self.last_synced_at is None:
                label = "Fetching seat data..."
            else:
                label = "Updated at " + time.strftime("%H:%M:%S", time.localtime(self.last_synced_at))
            return {
                "state": self.state.value,
                "loading": self.loading,
                "error": self.error,
                "lastSyncedAt": self.last_synced_at,
                "label": label,
            }

    def _schedule(self) -> None:
        with self._lock:
            if not self._alive:
                return
            self._timer = self._timer_factory(self.interval, self._tick)
            self._timer.daemon = True
            self._timer.start()

    def _tick(self) -> None:
        try:
            if self.before_tick is not None:
                self.before_tick()
            self.refresh(manual=False)
        except Exception:
            if self._alive:
                logger.exception("seat availability tick failed")
            else:
                logger.debug("seat availability tick cut short by teardown")
        finally:
            self._schedule()
