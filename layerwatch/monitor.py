from __future__ import annotations

import logging
import signal
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional

from .config import MonitorSettings
from .decoder import decode_frame
from .models import ParsedPacket
from .sinks import CsvRecordSink
from .sources import FrameSource, FrameStatus
from .stats import CounterSnapshot, StatsAggregator


logger = logging.getLogger(__name__)

Renderer = Callable[[CounterSnapshot, float, Optional[CounterSnapshot]], None]


@dataclass(frozen=True)
class SessionResult:
    source_name: str
    frames_read: int
    packets_decoded: int
    frames_skipped: int
    duration_seconds: float
    snapshot: CounterSnapshot
    stop_reason: str
    rows_written: dict[str, int] = field(default_factory=dict)
    errors: list[str] = field(default_factory=list)


class Monitor:
    """Pulls frames from a source and runs decode, count and emit on each.

    Rendering is interleaved on the same thread: after every read, including
    reads that time out, the elapsed time since the last render is checked.
    """

    def __init__(
        self,
        source: FrameSource,
        sink: CsvRecordSink,
        stats: Optional[StatsAggregator] = None,
        settings: Optional[MonitorSettings] = None,
        *,
        renderer: Optional[Renderer] = None,
        clock: Callable[[], float] = time.monotonic,
        source_name: str = "capture",
    ) -> None:
        self.source = source
        self.sink = sink
        self.stats = stats if stats is not None else StatsAggregator()
        self.settings = settings if settings is not None else MonitorSettings()
        self.renderer = renderer
        self.clock = clock
        self.source_name = source_name
        self.frames_read = 0
        self.packets_decoded = 0
        self.frames_skipped = 0
        self.stop_reason = "running"
        self._stop_event = threading.Event()
        self._shutdown_done = False
        self._previous: Optional[CounterSnapshot] = None

    @property
    def stopping(self) -> bool:
        return self._stop_event.is_set()

    def stop(self, reason: str = "stopped") -> None:
        if not self._stop_event.is_set():
            self.stop_reason = reason
            self._stop_event.set()

    def install_signal_handlers(self) -> Callable[[], None]:
        """Route SIGINT/SIGTERM to :meth:`stop`; returns a callable restoring the old handlers."""
        previous: dict[int, object] = {}

        def _handler(signum, _frame) -> None:
            name = signal.Signals(signum).name
            logger.info("Received %s, shutting down", name)
            self.stop(f"signal {name}")

        for signum in (signal.SIGINT, signal.SIGTERM):
            try:
                previous[signum] = signal.signal(signum, _handler)
            except (ValueError, OSError) as exc:
                logger.debug("Cannot install handler for %s: %s", signum, exc)

        def _restore() -> None:
            for signum, handler in previous.items():
                signal.signal(signum, handler)

        return _restore

    def process_frame(self, frame: bytes, timestamp: Optional[datetime] = None) -> Optional[ParsedPacket]:
        packet = decode_frame(frame, timestamp)
        if packet is None:
            self.frames_skipped += 1
            return None
        self.packets_decoded += 1
        self.stats.record(packet)
        self.sink.emit(packet)
        return packet

    def _maybe_render(self, now: float, start: float, last_render: float) -> float:
        if self.renderer is None or now - last_render < self.settings.render_interval:
            return last_render
        snapshot = self.stats.snapshot()
        self.renderer(snapshot, now - start, self._previous)
        self._previous = snapshot
        return now

    def run(self) -> SessionResult:
        start = self.clock()
        last_render = start
        logger.info("Capture started on %s", self.source_name)
        try:
            while not self._stop_event.is_set():
                result = self.source.next(self.settings.read_timeout)
                if result is FrameStatus.END_OF_STREAM:
                    self.stop("end of stream")
                    break
                if isinstance(result, (bytes, bytearray)):
                    self.frames_read += 1
                    self.process_frame(bytes(result))
                last_render = self._maybe_render(self.clock(), start, last_render)
        finally:
            self.shutdown()
        duration = max(0.0, self.clock() - start)
        logger.info(
            "Capture finished (%s): %d frames, %d packets decoded",
            self.stop_reason,
            self.frames_read,
            self.packets_decoded,
        )
        return SessionResult(
            source_name=self.source_name,
            frames_read=self.frames_read,
            packets_decoded=self.packets_decoded,
            frames_skipped=self.frames_skipped,
            duration_seconds=duration,
            snapshot=self.stats.snapshot(),
            stop_reason=self.stop_reason,
            rows_written=self.sink.rows_written(),
            errors=list(self.sink.errors),
        )

    def shutdown(self) -> None:
        if self._shutdown_done:
            return
        self._shutdown_done = True
        if self.stop_reason == "running":
            self.stop_reason = "aborted"
        try:
            self.sink.close()
        finally:
            self.source.close()
