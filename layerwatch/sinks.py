from __future__ import annotations

import csv
import io
import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional, TextIO

from .models import ParsedPacket, Transport
from .utils import format_record_ts, record_error


logger = logging.getLogger(__name__)

NETWORK_STREAM = "network"
TRANSPORT_STREAM = "transport"
APPLICATION_STREAM = "application"
STREAMS = (NETWORK_STREAM, TRANSPORT_STREAM, APPLICATION_STREAM)

DEFAULT_FILENAMES = {
    NETWORK_STREAM: "network_layer.csv",
    TRANSPORT_STREAM: "transport_layer.csv",
    APPLICATION_STREAM: "application_layer.csv",
}

HEADERS = {
    NETWORK_STREAM: ["timestamp", "protocol", "src_ip", "dst_ip", "proto_num", "extra_info", "total_bytes"],
    TRANSPORT_STREAM: ["timestamp", "protocol", "src_ip", "src_port", "dst_ip", "dst_port", "total_bytes"],
    APPLICATION_STREAM: ["timestamp", "protocol", "info"],
}

NO_PORT_TEXT = "-"


def csv_field(value: Any) -> Any:
    # Inner double quotes become single quotes; no RFC 4180 escaping.
    if isinstance(value, str):
        return value.replace('"', "'")
    return value


def format_row(values: list[Any]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_NONNUMERIC, lineterminator="\n")
    writer.writerow([csv_field(value) for value in values])
    return buffer.getvalue()


def _port_text(packet: ParsedPacket, port: int) -> Any:
    return port if packet.has_ports else NO_PORT_TEXT


def network_row(packet: ParsedPacket) -> list[Any]:
    if packet.transport in (Transport.ICMP, Transport.ICMPV6):
        if packet.icmp_type_code is not None:
            icmp_type, icmp_code = packet.icmp_type_code
            extra = f"type={icmp_type} code={icmp_code}"
        else:
            extra = packet.transport.value if packet.transport is Transport.ICMPV6 else ""
        return [format_record_ts(packet.timestamp), "ICMP", packet.src, packet.dst, "", extra, packet.total_bytes]
    return [
        format_record_ts(packet.timestamp),
        packet.network.value,
        packet.src,
        packet.dst,
        packet.protocol_number,
        "",
        packet.total_bytes,
    ]


def transport_row(packet: ParsedPacket) -> Optional[list[Any]]:
    if packet.transport is Transport.NONE:
        return None
    return [
        format_record_ts(packet.timestamp),
        packet.transport.value,
        packet.src,
        _port_text(packet, packet.sport),
        packet.dst,
        _port_text(packet, packet.dport),
        packet.total_bytes,
    ]


def application_row(packet: ParsedPacket) -> Optional[list[Any]]:
    if packet.application is None or not packet.has_ports:
        return None
    summary = f"{packet.src}:{packet.sport} -> {packet.dst}:{packet.dport}"
    return [format_record_ts(packet.timestamp), packet.application.value, summary]


@dataclass
class _Stream:
    name: str
    path: Path
    handle: Optional[TextIO]
    lock: threading.Lock
    rows: int = 0


class CsvRecordSink:
    """Three append-only CSV streams, one per protocol layer.

    Each row goes out with a single write and flush, so an interrupted session
    never leaves half a row behind. Write failures are logged and the row is
    dropped.
    """

    def __init__(
        self,
        output_dir: Path,
        *,
        reset: bool = True,
        filenames: Optional[dict[str, str]] = None,
    ) -> None:
        self.output_dir = Path(output_dir)
        self.reset = reset
        names = dict(DEFAULT_FILENAMES)
        if filenames:
            names.update({key: value for key, value in filenames.items() if key in names and value})
        self.paths = {stream: self.output_dir / names[stream] for stream in STREAMS}
        self.errors: list[str] = []
        self.dropped = 0
        self._streams: dict[str, _Stream] = {}
        self._closed = False

    def __enter__(self) -> "CsvRecordSink":
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def open(self) -> None:
        self.output_dir.mkdir(parents=True, exist_ok=True)
        for stream in STREAMS:
            if stream not in self._streams:
                self._streams[stream] = self._open_stream(stream)

    def _open_stream(self, stream: str) -> _Stream:
        path = self.paths[stream]
        fresh = self.reset or not path.exists() or path.stat().st_size == 0
        handle = path.open("w" if self.reset else "a", encoding="utf-8", newline="")
        if fresh:
            handle.write(",".join(HEADERS[stream]) + "\n")
            handle.flush()
        return _Stream(name=stream, path=path, handle=handle, lock=threading.Lock())

    def append(self, stream: str, values: list[Any]) -> bool:
        entry = self._streams.get(stream)
        if entry is None or entry.handle is None:
            self.dropped += 1
            logger.error("Dropping %s record: stream is not open", stream)
            return False
        line = format_row(values)
        with entry.lock:
            try:
                entry.handle.write(line)
                entry.handle.flush()
            except (OSError, ValueError) as exc:
                self.dropped += 1
                record_error(self.errors, f"{stream} write", exc)
                logger.error("Dropping %s record for %s: %s", stream, entry.path, exc)
                return False
            entry.rows += 1
        return True

    def emit(self, packet: ParsedPacket) -> int:
        written = 0
        rows = (
            (NETWORK_STREAM, network_row(packet)),
            (TRANSPORT_STREAM, transport_row(packet)),
            (APPLICATION_STREAM, application_row(packet)),
        )
        for stream, values in rows:
            if values is not None and self.append(stream, values):
                written += 1
        return written

    def rows_written(self) -> dict[str, int]:
        return {name: entry.rows for name, entry in self._streams.items()}

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        for entry in self._streams.values():
            with entry.lock:
                if entry.handle is None:
                    continue
                try:
                    entry.handle.close()
                except OSError as exc:
                    record_error(self.errors, f"{entry.name} close", exc)
                    logger.error("Failed to close %s: %s", entry.path, exc)
                entry.handle = None
