"""Frame sources.

Every backend exposes ``next(timeout)`` and ``close()``. ``next`` returns the
raw frame bytes, :data:`FrameStatus.NO_FRAME` when nothing usable arrived
within the timeout, or :data:`FrameStatus.END_OF_STREAM` once the source is
exhausted.
"""

from __future__ import annotations

import logging
import select
import struct
import subprocess
from enum import Enum
from pathlib import Path
from typing import BinaryIO, Callable, Optional, Protocol, Sequence, Union

from .errors import CaptureBackendError, InterfaceNotFoundError

try:
    from scapy.config import conf  # type: ignore
    from scapy.interfaces import get_if_list  # type: ignore
    from scapy.utils import RawPcapReader, RawPcapNgReader  # type: ignore
except Exception:  # pragma: no cover
    conf = None  # type: ignore
    get_if_list = None  # type: ignore
    RawPcapReader = None  # type: ignore
    RawPcapNgReader = None  # type: ignore


logger = logging.getLogger(__name__)

MAX_FRAME_SIZE = 20000
PCAPNG_MAGIC = b"\x0a\x0d\x0d\x0a"
PCAP_EXTENSIONS = {".pcap", ".pcapng", ".cap"}

_LENGTH_PREFIX = struct.Struct("!i")
_DISCARD_CHUNK = 65536


class FrameStatus(Enum):
    NO_FRAME = "no-frame"
    END_OF_STREAM = "end-of-stream"


FrameResult = Union[bytes, FrameStatus]


class FrameSource(Protocol):
    def next(self, timeout: Optional[float] = None) -> FrameResult:
        ...

    def close(self) -> None:
        ...


class LengthPrefixedReader:
    """Reads ``<i32 big-endian length><payload>`` records from a byte stream.

    A length of zero or less, or one above ``max_frame_size``, marks a
    malformed record: ``max(0, length)`` bytes are skipped and the read reports
    no frame. The stream stays usable afterwards.

    The timeout only bounds the wait for the start of a record. Once the
    stream is readable the whole record is read, blocking if the writer sent
    it in pieces, so a frame is never split across two calls.
    """

    def __init__(self, stream: BinaryIO, *, max_frame_size: int = MAX_FRAME_SIZE) -> None:
        self._stream = stream
        self.max_frame_size = max_frame_size
        self.malformed = 0
        self._fileno = _fileno_or_none(stream)
        self._eof = False

    def next(self, timeout: Optional[float] = None) -> FrameResult:
        if self._eof:
            return FrameStatus.END_OF_STREAM
        if timeout is not None and self._fileno is not None:
            ready, _, _ = select.select([self._fileno], [], [], max(0.0, timeout))
            if not ready:
                return FrameStatus.NO_FRAME

        prefix = self._read_exact(_LENGTH_PREFIX.size)
        if prefix is None:
            return self._end()
        (length,) = _LENGTH_PREFIX.unpack(prefix)

        if length <= 0 or length > self.max_frame_size:
            self.malformed += 1
            logger.debug("Skipping malformed frame with declared length %d", length)
            if not self._discard(max(0, length)):
                return self._end()
            return FrameStatus.NO_FRAME

        payload = self._read_exact(length)
        if payload is None:
            return self._end()
        return payload

    def close(self) -> None:
        self._eof = True
        self._stream.close()

    def _end(self) -> FrameStatus:
        self._eof = True
        return FrameStatus.END_OF_STREAM

    def _read_exact(self, size: int) -> Optional[bytes]:
        chunks = bytearray()
        while len(chunks) < size:
            chunk = self._stream.read(size - len(chunks))
            if not chunk:
                if chunks:
                    logger.debug("Stream ended inside a record (%d of %d bytes)", len(chunks), size)
                return None
            chunks.extend(chunk)
        return bytes(chunks)

    def _discard(self, size: int) -> bool:
        remaining = size
        while remaining > 0:
            chunk = self._read_exact(min(remaining, _DISCARD_CHUNK))
            if chunk is None:
                return False
            remaining -= len(chunk)
        return True


class SubprocessFrameSource:
    """Runs an external capture helper and reads its length-prefixed stdout."""

    def __init__(
        self,
        command: Sequence[str],
        *,
        max_frame_size: int = MAX_FRAME_SIZE,
        popen: Callable[..., subprocess.Popen] = subprocess.Popen,
    ) -> None:
        self.command = list(command)
        try:
            # Unbuffered so select() on the pipe reflects what is left to read.
            self._process = popen(self.command, stdout=subprocess.PIPE, bufsize=0)
        except (OSError, ValueError) as exc:
            raise CaptureBackendError(f"Unable to start capture helper {self.command[0]!r}: {exc}") from exc
        if self._process.stdout is None:
            raise CaptureBackendError("Capture helper has no stdout pipe.")
        self._reader = LengthPrefixedReader(self._process.stdout, max_frame_size=max_frame_size)
        self._closed = False
        logger.info("Started capture helper: %s (pid %s)", " ".join(self.command), self._process.pid)

    @property
    def malformed(self) -> int:
        return self._reader.malformed

    def next(self, timeout: Optional[float] = None) -> FrameResult:
        if self._closed:
            return FrameStatus.END_OF_STREAM
        return self._reader.next(timeout)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._process.poll() is None:
            self._process.terminate()
            try:
                self._process.wait(timeout=2)
            except subprocess.TimeoutExpired:
                logger.warning("Capture helper did not exit; killing pid %s", self._process.pid)
                self._process.kill()
                self._process.wait()
        self._reader.close()


class LiveFrameSource:
    """Listens on an interface through a scapy level-2 socket."""

    def __init__(self, iface: str, *, socket_factory: Optional[Callable[..., object]] = None) -> None:
        if socket_factory is None:
            if conf is None:
                raise CaptureBackendError("Scapy is unavailable; install scapy for live capture.")
            socket_factory = conf.L2listen
        self.iface = iface
        try:
            self._socket = socket_factory(iface=iface)
        except PermissionError as exc:
            raise CaptureBackendError(f"Permission denied opening {iface}; run with elevated privileges.") from exc
        except OSError as exc:
            raise CaptureBackendError(f"Unable to open {iface}: {exc}") from exc
        self._closed = False

    def next(self, timeout: Optional[float] = None) -> FrameResult:
        if self._closed:
            return FrameStatus.END_OF_STREAM
        ready = self._socket.select([self._socket], timeout)
        if not ready:
            return FrameStatus.NO_FRAME
        packet = self._socket.recv()
        if packet is None:
            return FrameStatus.NO_FRAME
        return bytes(packet)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._socket.close()


class PcapReplaySource:
    """Replays raw frames from a pcap/pcapng capture file."""

    def __init__(self, path: Path) -> None:
        if RawPcapReader is None:
            raise CaptureBackendError("Scapy is unavailable; install scapy to replay capture files.")
        self.path = path
        reader_cls = RawPcapNgReader if detect_file_type(path) == "pcapng" else RawPcapReader
        try:
            self._reader = reader_cls(str(path))
        except (OSError, ValueError) as exc:
            raise CaptureBackendError(f"Unable to open capture file {path}: {exc}") from exc
        self._closed = False

    def next(self, timeout: Optional[float] = None) -> FrameResult:
        if self._closed:
            return FrameStatus.END_OF_STREAM
        try:
            data, _meta = next(self._reader)
        except (StopIteration, EOFError):
            return FrameStatus.END_OF_STREAM
        return bytes(data)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._reader.close()


def detect_file_type(path: Path) -> str:
    try:
        with path.open("rb") as handle:
            header = handle.read(4)
        if header == PCAPNG_MAGIC:
            return "pcapng"
    except OSError:
        pass
    return "pcap"


def is_supported_capture(path: Path) -> bool:
    return path.is_file() and path.suffix.lower() in PCAP_EXTENSIONS


def list_interfaces() -> list[str]:
    if get_if_list is None:
        return []
    try:
        return sorted(get_if_list())
    except OSError as exc:
        logger.warning("Unable to enumerate interfaces: %s", exc)
        return []


def resolve_interface(name: str, available: Optional[Sequence[str]] = None) -> str:
    names = list(available) if available is not None else list_interfaces()
    if name not in names:
        raise InterfaceNotFoundError(name, names)
    return name


def _fileno_or_none(stream: object) -> Optional[int]:
    fileno = getattr(stream, "fileno", None)
    if fileno is None:
        return None
    try:
        return int(fileno())
    except (OSError, ValueError):
        return None
