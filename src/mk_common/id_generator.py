"""Snowflake-style ID generator for business IDs (listings, bids, reservations, orders).

IDs are decimal strings that sort by creation time, so cursor pagination can use
`id < :cursor` directly. One generator per process; `WORKER_ID` distinguishes
processes sharing a database.
"""

import threading
import time

from config.settings import settings


class SnowflakeIdGenerator:
    """Layout (63 bits used):
      - 41 bits: milliseconds since _EPOCH_MS
      - 10 bits: worker_id (0-1023)
      - 12 bits: per-millisecond sequence (0-4095)
    """

    _EPOCH_MS = 1_735_689_600_000  # 2025-01-01T00:00:00Z
    _WORKER_BITS = 10
    _SEQUENCE_BITS = 12
    _MAX_SEQUENCE = (1 << _SEQUENCE_BITS) - 1

    def __init__(self, worker_id: int = 0) -> None:
        if not (0 <= worker_id < (1 << self._WORKER_BITS)):
            raise ValueError(f"worker_id must be 0-{(1 << self._WORKER_BITS) - 1}")
        self._worker_id = worker_id
        self._sequence = 0
        self._last_ms = -1
        self._lock = threading.Lock()

    def next_id(self) -> str:
        with self._lock:
            now_ms = self._clock_ms()
            if now_ms < self._last_ms:
                # Clock stepped backwards: keep issuing from the last seen millisecond.
                now_ms = self._last_ms
            if now_ms == self._last_ms:
                self._sequence = (self._sequence + 1) & self._MAX_SEQUENCE
                if self._sequence == 0:
                    now_ms = self._spin_until_after(now_ms)
            else:
                self._sequence = 0
            self._last_ms = now_ms
            value = (
                ((now_ms - self._EPOCH_MS) << (self._WORKER_BITS + self._SEQUENCE_BITS))
                | (self._worker_id << self._SEQUENCE_BITS)
                | self._sequence
            )
            return str(value)

    def _clock_ms(self) -> int:
        return time.time_ns() // 1_000_000

    def _spin_until_after(self, last_ms: int) -> int:
        now_ms = self._clock_ms()
        while now_ms <= last_ms:
            now_ms = self._clock_ms()
        return now_ms


_default_generator = SnowflakeIdGenerator(settings.WORKER_ID)


def generate_id() -> str:
    """Generate a unique time-ordered string ID from the process-wide generator."""
    return _default_generator.next_id()


def generate_order_number(order_id: str) -> str:
    """Human-facing order number shown to buyers and sellers."""
    return f"ORD-{order_id}"
