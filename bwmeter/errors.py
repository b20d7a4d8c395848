"""Error codes, their messages, and error reporting helpers."""

from __future__ import annotations

import enum
import json
import os
import socket
import sys
import time
from dataclasses import dataclass
from typing import IO, Any, MutableMapping

from .usage import PROGRAM_NAME

_MAX_ERRSTR = 255


class ErrorCode(enum.IntEnum):
    """Failure reasons reported by the tool."""

    NONE = 0
    SERV_CLIENT = enum.auto()
    NO_ROLE = enum.auto()
    SERVER_ONLY = enum.auto()
    CLIENT_ONLY = enum.auto()
    DURATION = enum.auto()
    NUM_STREAMS = enum.auto()
    BLOCK_SIZE = enum.auto()
    BUF_SIZE = enum.auto()
    INTERVAL = enum.auto()
    BIND = enum.auto()
    UDP_BLOCK_SIZE = enum.auto()
    BAD_TOS = enum.auto()
    SET_CLIENT_AUTH = enum.auto()
    SET_SERVER_AUTH = enum.auto()
    BAD_FORMAT = enum.auto()
    BAD_PORT = enum.auto()
    MSS = enum.auto()
    NO_SENDFILE = enum.auto()
    OMIT = enum.auto()
    UNIMP = enum.auto()
    FILE = enum.auto()
    BURST = enum.auto()
    END_CONDITIONS = enum.auto()
    LOGFILE = enum.auto()
    NO_SCTP = enum.auto()
    NEW_TEST = enum.auto()
    INIT_TEST = enum.auto()
    AUTH_TEST = enum.auto()
    LISTEN = enum.auto()
    CONNECT = enum.auto()
    ACCEPT = enum.auto()
    SEND_COOKIE = enum.auto()
    RECV_COOKIE = enum.auto()
    CTRL_WRITE = enum.auto()
    CTRL_READ = enum.auto()
    CTRL_CLOSE = enum.auto()
    MESSAGE = enum.auto()
    SEND_MESSAGE = enum.auto()
    RECV_MESSAGE = enum.auto()
    SEND_PARAMS = enum.auto()
    RECV_PARAMS = enum.auto()
    PACKAGE_RESULTS = enum.auto()
    SEND_RESULTS = enum.auto()
    RECV_RESULTS = enum.auto()
    SELECT = enum.auto()
    CLIENT_TERM = enum.auto()
    SERVER_TERM = enum.auto()
    ACCESS_DENIED = enum.auto()
    SET_NODELAY = enum.auto()
    SET_MSS = enum.auto()
    SET_BUF = enum.auto()
    SET_TOS = enum.auto()
    SET_COS = enum.auto()
    SET_FLOW = enum.auto()
    REUSE_ADDR = enum.auto()
    NONBLOCKING = enum.auto()
    SET_WINDOW_SIZE = enum.auto()
    PROTOCOL = enum.auto()
    AFFINITY = enum.auto()
    RCV_TIMEOUT = enum.auto()
    RVRS_ONLY_RCV_TIMEOUT = enum.auto()
    DAEMON = enum.auto()
    CREATE_STREAM = enum.auto()
    INIT_STREAM = enum.auto()
    STREAM_LISTEN = enum.auto()
    STREAM_CONNECT = enum.auto()
    STREAM_ACCEPT = enum.auto()
    STREAM_WRITE = enum.auto()
    STREAM_READ = enum.auto()
    STREAM_CLOSE = enum.auto()
    STREAM_ID = enum.auto()
    NEW_TIMER = enum.auto()
    UPDATE_TIMER = enum.auto()
    SET_CONGESTION = enum.auto()
    PIDFILE = enum.auto()
    V6_ONLY = enum.auto()
    SET_SCTP_DISABLE_FRAG = enum.auto()
    SET_SCTP_NSTREAM = enum.auto()
    SET_SCTP_BINDX = enum.auto()
    SET_PACING = enum.auto()
    SET_BUF2 = enum.auto()
    REVERSE_BIDIR = enum.auto()
    TOTAL_RATE = enum.auto()
    SKEW_THRESHOLD = enum.auto()
    IDLE_TIMEOUT = enum.auto()
    BIND_DEV = enum.auto()
    BIND_DEV_NO_SUPPORT = enum.auto()
    HOST_DEV = enum.auto()
    NO_MSG = enum.auto()
    SET_DONT_FRAGMENT = enum.auto()


@dataclass(frozen=True)
class Limits:
    """Configured bounds quoted in error messages."""

    max_time: int = 86400
    max_streams: int = 128
    max_blocksize: int = 1024 * 1024
    max_tcp_buffer: int = 512 * 1024 * 1024
    min_interval: float = 0.1
    max_interval: float = 60.0
    min_udp_blocksize: int = 16
    max_udp_blocksize: int = 65507
    max_mss: int = 9216
    max_burst: int = 1000


# code -> (message template, append OS error, append resolver error)
_MESSAGES: dict[ErrorCode, tuple[str, bool, bool]] = {
    ErrorCode.NONE: ("no error", False, False),
    ErrorCode.SERV_CLIENT: ("cannot be both server and client", False, False),
    ErrorCode.NO_ROLE: ("must either be a client (-c) or server (-s)", False, False),
    ErrorCode.SERVER_ONLY: ("some option you are trying to set is server only", False, False),
    ErrorCode.CLIENT_ONLY: ("some option you are trying to set is client only", False, False),
    ErrorCode.DURATION: ("test duration too long (maximum = {l.max_time} seconds)", False, False),
    ErrorCode.NUM_STREAMS: (
        "number of parallel streams too large (maximum = {l.max_streams})", False, False),
    ErrorCode.BLOCK_SIZE: (
        "block size too large (maximum = {l.max_blocksize} bytes)", False, False),
    ErrorCode.BUF_SIZE: (
        "socket buffer size too large (maximum = {l.max_tcp_buffer} bytes)", False, False),
    ErrorCode.INTERVAL: (
        "invalid report interval (min = {l.min_interval:g}, max = {l.max_interval:g} seconds)",
        False, False),
    ErrorCode.BIND: ("--bind must be specified to use --cport", False, False),
    ErrorCode.UDP_BLOCK_SIZE: (
        "block size invalid (minimum = {l.min_udp_blocksize} bytes, "
        "maximum = {l.max_udp_blocksize} bytes)", False, False),
    ErrorCode.BAD_TOS: ("bad TOS value (must be between 0 and 255 inclusive)", False, False),
    ErrorCode.SET_CLIENT_AUTH: (
        "you must specify a username, password, and path to a valid RSA public key",
        False, False),
    ErrorCode.SET_SERVER_AUTH: (
        "you must specify a path to a valid RSA private key and a user credential file",
        False, False),
    ErrorCode.BAD_FORMAT: (
        "bad format specifier (valid formats are in the set [kmgtKMGT])", False, False),
    ErrorCode.BAD_PORT: ("port number must be between 1 and 65535 inclusive", False, False),
    ErrorCode.MSS: ("TCP MSS too large (maximum = {l.max_mss} bytes)", False, False),
    ErrorCode.NO_SENDFILE: ("this OS does not support sendfile", False, False),
    ErrorCode.OMIT: ("bogus value for --omit", False, False),
    ErrorCode.UNIMP: ("an option you are trying to set is not implemented yet", False, False),
    ErrorCode.FILE: ("unable to open -F file", True, False),
    ErrorCode.BURST: ("invalid burst count (maximum = {l.max_burst})", False, False),
    ErrorCode.END_CONDITIONS: (
        "only one test end condition (-t, -n, -k) may be specified", False, False),
    ErrorCode.LOGFILE: ("unable to open log file", True, False),
    ErrorCode.NO_SCTP: ("no SCTP support available", False, False),
    ErrorCode.NEW_TEST: ("unable to create a new test", True, False),
    ErrorCode.INIT_TEST: ("test initialization failed", True, False),
    ErrorCode.AUTH_TEST: ("test authorization failed", False, False),
    ErrorCode.LISTEN: ("unable to start listener for connections", True, True),
    ErrorCode.CONNECT: ("unable to connect to server", True, True),
    ErrorCode.ACCEPT: ("unable to accept connection from client", True, True),
    ErrorCode.SEND_COOKIE: ("unable to send cookie to server", True, False),
    ErrorCode.RECV_COOKIE: ("unable to receive cookie at server", True, False),
    ErrorCode.CTRL_WRITE: ("unable to write to the control socket", True, False),
    ErrorCode.CTRL_READ: ("unable to read from the control socket", True, False),
    ErrorCode.CTRL_CLOSE: ("control socket has closed unexpectedly", False, False),
    ErrorCode.MESSAGE: ("received an unknown control message", False, False),
    ErrorCode.SEND_MESSAGE: ("unable to send control message", True, False),
    ErrorCode.RECV_MESSAGE: ("unable to receive control message", True, False),
    ErrorCode.SEND_PARAMS: ("unable to send parameters to server", True, False),
    ErrorCode.RECV_PARAMS: ("unable to receive parameters from client", True, False),
    ErrorCode.PACKAGE_RESULTS: ("unable to package results", True, False),
    ErrorCode.SEND_RESULTS: ("unable to send results", True, False),
    ErrorCode.RECV_RESULTS: ("unable to receive results", True, False),
    ErrorCode.SELECT: ("select failed", True, False),
    ErrorCode.CLIENT_TERM: ("the client has terminated", False, False),
    ErrorCode.SERVER_TERM: ("the server has terminated", False, False),
    ErrorCode.ACCESS_DENIED: (
        "the server is busy running a test. try again later", False, False),
    ErrorCode.SET_NODELAY: ("unable to set TCP/SCTP NODELAY", True, False),
    ErrorCode.SET_MSS: ("unable to set TCP/SCTP MSS", True, False),
    ErrorCode.SET_BUF: ("unable to set socket buffer size", True, False),
    ErrorCode.SET_TOS: ("unable to set IP TOS", True, False),
    ErrorCode.SET_COS: ("unable to set IPv6 traffic class", True, False),
    ErrorCode.SET_FLOW: ("unable to set IPv6 flow label", False, False),
    ErrorCode.REUSE_ADDR: ("unable to reuse address on socket", True, False),
    ErrorCode.NONBLOCKING: ("unable to set socket to non-blocking", True, False),
    ErrorCode.SET_WINDOW_SIZE: ("unable to set socket window size", True, False),
    ErrorCode.PROTOCOL: ("protocol does not exist", False, False),
    ErrorCode.AFFINITY: ("unable to set CPU affinity", True, False),
    ErrorCode.RCV_TIMEOUT: (
        "receive timeout value is incorrect or not in range", True, False),
    ErrorCode.RVRS_ONLY_RCV_TIMEOUT: (
        "client receive timeout is valid only in receiving mode", True, False),
    ErrorCode.DAEMON: ("unable to become a daemon", True, False),
    ErrorCode.CREATE_STREAM: ("unable to create a new stream", True, True),
    ErrorCode.INIT_STREAM: ("unable to initialize stream", True, True),
    ErrorCode.STREAM_LISTEN: ("unable to start stream listener", True, True),
    ErrorCode.STREAM_CONNECT: ("unable to connect stream", True, True),
    ErrorCode.STREAM_ACCEPT: ("unable to accept stream connection", True, False),
    ErrorCode.STREAM_WRITE: ("unable to write to stream socket", True, False),
    ErrorCode.STREAM_READ: ("unable to read from stream socket", True, False),
    ErrorCode.STREAM_CLOSE: ("stream socket has closed unexpectedly", False, False),
    ErrorCode.STREAM_ID: ("stream has an invalid id", False, False),
    ErrorCode.NEW_TIMER: ("unable to create new timer", True, False),
    ErrorCode.UPDATE_TIMER: ("unable to update timer", True, False),
    ErrorCode.SET_CONGESTION: (
        "unable to set TCP_CONGESTION: "
        "Supplied congestion control algorithm not supported on this host", False, False),
    ErrorCode.PIDFILE: ("unable to write PID file", True, False),
    ErrorCode.V6_ONLY: ("Unable to set/reset IPV6_V6ONLY", True, False),
    ErrorCode.SET_SCTP_DISABLE_FRAG: ("unable to set SCTP_DISABLE_FRAGMENTS", True, False),
    ErrorCode.SET_SCTP_NSTREAM: ("unable to set SCTP_INIT num of SCTP streams\n", True, False),
    ErrorCode.SET_PACING: ("unable to set socket pacing", True, False),
    ErrorCode.SET_BUF2: ("socket buffer size not set correctly", False, False),
    ErrorCode.REVERSE_BIDIR: ("cannot be both reverse and bidirectional", False, False),
    ErrorCode.TOTAL_RATE: (
        "total required bandwidth is larger than server limit", False, False),
    ErrorCode.SKEW_THRESHOLD: ("skew threshold must be a positive number", False, False),
    ErrorCode.IDLE_TIMEOUT: (
        "idle timeout parameter is not positive or larger than allowed limit", False, False),
    ErrorCode.BIND_DEV: (
        "Unable to bind-to-device (check perror, maybe permissions?)", False, False),
    ErrorCode.BIND_DEV_NO_SUPPORT: (
        "`<ip>%<dev>` is not supported as system does not support bind to device",
        False, False),
    ErrorCode.HOST_DEV: (
        "host device name (ip%<dev>) is supported (and required) only for "
        "IPv6 link-local address", False, False),
    ErrorCode.NO_MSG: ("idle timeout for receiving data", False, False),
    ErrorCode.SET_DONT_FRAGMENT: ("unable to set IP Do-Not-Fragment flag", False, False),
}


def _gai_text(gai_error: socket.gaierror | str) -> str:
    if isinstance(gai_error, socket.gaierror):
        return gai_error.strerror or str(gai_error)
    return str(gai_error)


def strerror(
    code: int,
    os_errno: int | None = None,
    gai_error: socket.gaierror | str | None = None,
    limits: Limits | None = None,
) -> str:
    """Describe ``code``, appending the OS or resolver error where it applies."""
    lim = limits if limits is not None else Limits()
    try:
        known = ErrorCode(code)
    except ValueError:
        known = None
    if known is not None and known in _MESSAGES:
        template, perr, herr = _MESSAGES[known]
        text = template.format(l=lim)
    else:
        text, perr, herr = f"int_errno={int(code)}", True, False

    if herr or perr:
        text += ": "
    if os_errno and perr:
        text += os.strerror(os_errno)
    elif herr and gai_error:
        text += _gai_text(gai_error)
    return text[:_MAX_ERRSTR]


class PerfError(Exception):
    """An error carrying one of the tool's error codes."""

    def __init__(
        self,
        code: int,
        os_errno: int | None = None,
        gai_error: socket.gaierror | str | None = None,
        limits: Limits | None = None,
    ) -> None:
        super().__init__(code)
        self.code = code
        self.os_errno = os_errno
        self.gai_error = gai_error
        self.limits = limits

    def __str__(self) -> str:
        return strerror(self.code, self.os_errno, self.gai_error, self.limits)


def _destination(out: IO[str] | None) -> IO[str]:
    if out is None or out is sys.stdout:
        return sys.stderr
    return out


def _emit(message: str, out: IO[str] | None, stamp: str | None) -> None:
    dest = _destination(out)
    if stamp:
        dest.write(stamp)
    dest.write(f"{PROGRAM_NAME}: {message}\n")


def report_error(
    message: str,
    out: IO[str] | None = None,
    timestamp_format: str | None = None,
    json_top: MutableMapping[str, Any] | None = None,
) -> None:
    """Record ``message`` in the JSON result or print it to the error stream.

    Output meant for standard output goes to standard error instead.
    """
    if json_top is not None:
        json_top["error"] = message
        return
    stamp = time.strftime(timestamp_format) if timestamp_format else None
    _emit(message, out, stamp)


def exit_with_error(
    message: str,
    out: IO[str] | None = None,
    timestamp: bool = False,
    json_top: MutableMapping[str, Any] | None = None,
    pidfile: str | os.PathLike[str] | None = None,
) -> None:
    """Report ``message``, remove the PID file and exit with status 1."""
    if json_top is not None:
        json_top["error"] = message
        dest = out if out is not None else sys.stdout
        dest.write(json.dumps(json_top, indent=4) + "\n")
        dest.flush()
    else:
        stamp = time.strftime("%c ") if timestamp else None
        _emit(message, out, stamp)
    if pidfile is not None:
        try:
            os.unlink(pidfile)
        except FileNotFoundError:
            pass
    raise SystemExit(1)