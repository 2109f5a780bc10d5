"""
The collection cycle: load the counter state, classify the log lines appended since the
last cycle, persist the new counters and position, and render all metrics.

Cycles are serialized. Within a process a ``threading.Lock`` orders concurrent callers,
and across processes an exclusive ``flock`` on a lock file next to the state file does.
Both are held from loading the state until it has been committed.
"""
import fcntl
import logging
import threading
import time
from collections import Counter
from datetime import datetime, timezone
from pathlib import Path
from typing import IO, List, Optional

import attrs

from postfix_exporter.catalog import CounterKey
from postfix_exporter.classifier import classify
from postfix_exporter.config import ExporterConfiguration
from postfix_exporter.exposition import Sample, counter_samples, render
from postfix_exporter.gauges import gauge_samples
from postfix_exporter.position import LogSource, TrackerMode, track
from postfix_exporter.store import CounterState, CounterStore

__all__ = [
    "CollectionLock",
    "CycleResult",
    "Collector",
]

logger = logging.getLogger(__name__)


@attrs.define
class CollectionLock:
    path: Path = attrs.field(converter=Path)
    _thread_lock: threading.Lock = attrs.field(factory=threading.Lock, init=False, repr=False)
    _fp: Optional[IO] = attrs.field(default=None, init=False, repr=False)

    def __enter__(self) -> "CollectionLock":
        self._thread_lock.acquire()
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self._fp = self.path.open("a")
            fcntl.flock(self._fp.fileno(), fcntl.LOCK_EX)
        except BaseException:
            if self._fp is not None:
                self._fp.close()
                self._fp = None
            self._thread_lock.release()
            raise
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        try:
            fcntl.flock(self._fp.fileno(), fcntl.LOCK_UN)
            self._fp.close()
        finally:
            self._fp = None
            self._thread_lock.release()


@attrs.frozen
class CycleResult:
    state: CounterState
    increments: "Counter[CounterKey]"
    mode: Optional[TrackerMode]
    lines: int

    @property
    def source_available(self) -> bool:
        return self.mode is not None


@attrs.define
class Collector:
    config: ExporterConfiguration
    source: LogSource = attrs.field(init=False)
    store: CounterStore = attrs.field(init=False)
    lock: CollectionLock = attrs.field(init=False)

    def __attrs_post_init__(self):
        self.source = LogSource(self.config.log_path)
        self.store = CounterStore(self.config.state_file)
        self.lock = CollectionLock(self.config.lock_file)

    def run_cycle(self) -> CycleResult:
        """
        Classify the new log lines and persist the updated counters.

        When the log source is unavailable nothing is persisted and the counters keep
        their previous values.

        Raises
        ------
        StateWriteFailed
            If the counters could not be persisted

        """
        t0 = time.perf_counter()
        with self.lock:
            state = self.store.load()
            logger.debug("collect.start", extra={"state_file": str(self.store.path), "fresh": state.fresh})

            tracked = track(self.source, state.position, state.fresh, self.config.log_lines)
            if not tracked.available:
                return CycleResult(state=state, increments=Counter(), mode=None, lines=0)

            increments = classify(tracked.lines)
            self.store.apply(increments)
            self.store.commit(tracked.position)
            state = self.store.state

        logger.info(
            "collect.done",
            extra={
                "mode": tracked.mode.value,
                "lines": len(tracked.lines),
                "events": sum(increments.values()),
                "byte_offset": tracked.position.byte_offset,
                "elapsed_ms": int((time.perf_counter() - t0) * 1000),
            },
        )
        return CycleResult(state=state, increments=increments, mode=tracked.mode, lines=len(tracked.lines))

    def samples(self, state: CounterState) -> List[Sample]:
        return gauge_samples(self.config.queue_dir) + counter_samples(state.counters)

    def collect(self, timestamp: bool = False) -> str:
        """
        Run one cycle and render every metric.

        ``StateWriteFailed`` propagates, so nothing is rendered for a failed cycle.
        """
        result = self.run_cycle()
        header = None
        if timestamp:
            generated = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
            header = ["Postfix Mail Server Metrics", f"Generated at {generated}"]
        return render(self.samples(result.state), self.config.metrics_prefix, header=header)
