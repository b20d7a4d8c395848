"""SCTP data streams: availability checks, accepting connections and moving data."""

from __future__ import annotations

import logging
import socket
from dataclasses import dataclass, field

from .errors import ErrorCode, PerfError

log = logging.getLogger(__name__)

#: Control-channel state sent to a peer whose cookie is not recognised.
ACCESS_DENIED = -1

IPERF_SCTP_CLIENT = False
IPERF_SCTP_SERVER = True


@dataclass
class SctpSettings:
    """Parameters for setting up SCTP listeners and connections."""

    domain: int = socket.AF_UNSPEC
    server_hostname: str | None = None
    server_port: int = 5201
    bind_address: str | None = None
    bind_dev: str | None = None
    bind_port: int = 0
    socket_bufsize: int = 0
    no_delay: bool = False
    mss: int = 0
    num_ostreams: int = 0
    xbind_addrs: list[str] = field(default_factory=list)
    listener: socket.socket | None = field(default=None, compare=False, repr=False)


@dataclass
class StreamCounters:
    """Byte totals for one stream, overall and for the current interval."""

    bytes_received: int = 0
    bytes_received_this_interval: int = 0
    bytes_sent: int = 0
    bytes_sent_this_interval: int = 0


def sctp_available() -> bool:
    """Return whether this host can open SCTP sockets."""
    proto = getattr(socket, "IPPROTO_SCTP", None)
    if proto is None:
        return False
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM, proto):
            pass
    except OSError:
        return False
    return True


def sctp_init() -> None:
    """Check that SCTP can be used; raise ``PerfError(NO_SCTP)`` otherwise."""
    if not sctp_available():
        raise PerfError(ErrorCode.NO_SCTP)


def _read_into(sock: socket.socket, view: memoryview) -> int:
    """Fill ``view`` from ``sock`` until full, end of stream or no more data."""
    got = 0
    while got < len(view):
        try:
            n = sock.recv_into(view[got:])
        except BlockingIOError:
            break
        if n == 0:
            break
        got += n
    return got


def _write_all(sock: socket.socket, data: bytes | bytearray | memoryview) -> int:
    """Write ``data`` to ``sock`` until done or the socket would block."""
    view = memoryview(data)
    sent = 0
    while sent < len(view):
        try:
            n = sock.send(view[sent:])
        except BlockingIOError:
            break
        if n == 0:
            break
        sent += n
    return sent


def sctp_accept(listener: socket.socket, cookie: bytes) -> socket.socket | None:
    """Accept a stream connection and verify the peer's cookie.

    Returns the connected socket, or None when the cookie does not match;
    in that case the peer is sent ACCESS_DENIED and the socket is closed.
    """
    try:
        conn, _addr = listener.accept()
    except OSError as exc:
        raise PerfError(ErrorCode.STREAM_CONNECT, exc.errno) from exc

    buf = bytearray(len(cookie))
    try:
        got = _read_into(conn, memoryview(buf))
    except OSError as exc:
        conn.close()
        raise PerfError(ErrorCode.RECV_COOKIE, exc.errno) from exc

    if bytes(buf[:got]) != bytes(cookie):
        try:
            _write_all(conn, ACCESS_DENIED.to_bytes(1, "big", signed=True))
        except OSError as exc:
            conn.close()
            raise PerfError(ErrorCode.SEND_MESSAGE, exc.errno) from exc
        conn.close()
        return None
    return conn


class SctpStream:
    """One data stream that reads and writes fixed-size blocks."""

    def __init__(self, sock: socket.socket, blksize: int, running: bool = True) -> None:
        if blksize <= 0:
            raise ValueError("block size must be positive")
        self.sock = sock
        self.blksize = blksize
        self.running = running
        self.buffer = bytearray(blksize)
        self.counters = StreamCounters()

    def recv(self) -> int:
        """Read up to one block; return the byte count (0 at end of stream).

        Bytes are only counted while the test is running.
        """
        try:
            n = _read_into(self.sock, memoryview(self.buffer)[: self.blksize])
        except OSError as exc:
            raise PerfError(ErrorCode.STREAM_READ, exc.errno) from exc
        if self.running:
            self.counters.bytes_received += n
            self.counters.bytes_received_this_interval += n
        else:
            log.debug("Late receive of %d bytes while not running", n)
        return n

    def send(self, payload: bytes | bytearray | None = None) -> int:
        """Write one block (the stream buffer unless ``payload`` is given)."""
        data = self.buffer[: self.blksize] if payload is None else payload
        try:
            n = _write_all(self.sock, data)
        except OSError as exc:
            raise PerfError(ErrorCode.STREAM_WRITE, exc.errno) from exc
        self.counters.bytes_sent += n
        self.counters.bytes_sent_this_interval += n
        return n

    def close(self) -> None:
        """Close the underlying socket."""
        self.sock.close()

    def __enter__(self) -> SctpStream:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()