"""Report, settings and warning message templates, and a printf-style formatter.

Templates use C printf conversions (including length modifiers such as
``%llu``, ``%ld``, ``%qd`` and ``%I64d``); :func:`format_message` accepts them
as written.
"""

from __future__ import annotations

import re
import sys
from functools import lru_cache

from .usage import PROGRAM_NAME

# ---------------------------------------------------------------------------
# settings
# ---------------------------------------------------------------------------

SEPARATOR_LINE = "------------------------------------------------------------\n"

SERVER_PORT = "Server listening on %s port %d\n"
CLIENT_PORT = "Client connecting to %s, %s port %d\n"
BIND_ADDRESS = "Binding to local address %s\n"
BIND_DEV = "Binding to local network device %s\n"
BIND_PORT = "Binding to local port %s\n"
MULTICAST_TTL = "Setting multicast TTL to %d\n"
JOIN_MULTICAST = "Joining multicast group  %s\n"
CLIENT_DATAGRAM_SIZE = "Sending %d byte datagrams\n"
SERVER_DATAGRAM_SIZE = "Receiving %d byte datagrams\n"
TCP_WINDOW_SIZE = "TCP window size"
UDP_BUFFER_SIZE = "UDP buffer size"
WINDOW_DEFAULT = "(default)"
WAIT_SERVER_THREADS = (
    "Waiting for server threads to complete. Interrupt again to force quit.\n"
)
TEST_START_TIME = (
    "Starting Test: protocol: %s, %d streams, %d byte blocks, "
    "omitting %d seconds, %d second test, tos %d\n"
)
TEST_START_BYTES = (
    "Starting Test: protocol: %s, %d streams, %d byte blocks, "
    "omitting %d seconds, %llu bytes to send, tos %d\n"
)
TEST_START_BLOCKS = (
    "Starting Test: protocol: %s, %d streams, %d byte blocks, "
    "omitting %d seconds, %d blocks to send, tos %d\n"
)

# ---------------------------------------------------------------------------
# reports
# ---------------------------------------------------------------------------

REPORT_TIME = "Time: %s\n"
REPORT_CONNECTING = "Connecting to host %s, port %d\n"
REPORT_AUTHENTICATION_SUCCEEDED = "Authentication succeeded for user '%s' ts %ld\n"
REPORT_AUTHENTICATION_FAILED = "Authentication failed for user '%s' ts %ld\n"
REPORT_REVERSE = "Reverse mode, remote host %s is sending\n"
REPORT_ACCEPTED = "Accepted connection from %s, port %d\n"
REPORT_COOKIE = "      Cookie: %s\n"
REPORT_CONNECTED = "[%3d] local %s port %d connected to %s port %d\n"
REPORT_WINDOW = "TCP window size: %s\n"
REPORT_AUTOTUNE = "Using TCP Autotuning\n"
REPORT_OMIT_DONE = "Finished omit period, starting real test\n"
REPORT_DISKFILE = "        Sent %s / %s (%d%%) of %s\n"
REPORT_DONE = f"{PROGRAM_NAME} Done.\n"
REPORT_READ_LENGTHS = "[%3d] Read lengths occurring in more than 5%% of reads:\n"
REPORT_READ_LENGTH_TIMES = "[%3d] %5d bytes read %5d times (%.3g%%)\n"

REPORT_BW_HEADER = "[ ID] Interval           Transfer     Bitrate\n"
REPORT_BW_HEADER_BIDIR = "[ ID][Role] Interval           Transfer     Bitrate\n"
REPORT_BW_RETRANS_HEADER = (
    "[ ID] Interval           Transfer     Bitrate         Retr\n"
)
REPORT_BW_RETRANS_HEADER_BIDIR = (
    "[ ID][Role] Interval           Transfer     Bitrate         Retr\n"
)
REPORT_BW_RETRANS_CWND_HEADER = (
    "[ ID] Interval           Transfer     Bitrate         Retr  Cwnd\n"
)
REPORT_BW_RETRANS_CWND_HEADER_BIDIR = (
    "[ ID][Role] Interval           Transfer     Bitrate         Retr  Cwnd\n"
)
REPORT_BW_UDP_HEADER = (
    "[ ID] Interval           Transfer     Bitrate         Jitter    "
    "Lost/Total Datagrams\n"
)
REPORT_BW_UDP_HEADER_BIDIR = (
    "[ ID][Role] Interval           Transfer     Bitrate         Jitter    "
    "Lost/Total Datagrams\n"
)
REPORT_BW_UDP_SENDER_HEADER = (
    "[ ID] Interval           Transfer     Bitrate         Total Datagrams\n"
)
REPORT_BW_UDP_SENDER_HEADER_BIDIR = (
    "[ ID][Role] Interval           Transfer     Bitrate         Total Datagrams\n"
)

REPORT_BW_FORMAT = "[%3d]%s %6.2f-%-6.2f sec  %ss  %ss/sec                  %s\n"
REPORT_BW_RETRANS_FORMAT = (
    "[%3d]%s %6.2f-%-6.2f sec  %ss  %ss/sec  %3u             %s\n"
)
REPORT_BW_RETRANS_CWND_FORMAT = (
    "[%3d]%s %6.2f-%-6.2f sec  %ss  %ss/sec  %3u   %ss       %s\n"
)
REPORT_BW_UDP_FORMAT = (
    "[%3d]%s %6.2f-%-6.2f sec  %ss  %ss/sec  %5.3f ms  %d/%d (%.2g%%)  %s\n"
)
REPORT_BW_UDP_SENDER_FORMAT = "[%3d]%s %6.2f-%-6.2f sec  %ss  %ss/sec %s %d  %s\n"

REPORT_SUMMARY = "Test Complete. Summary Results:\n"
REPORT_SUM_BW_FORMAT = "[SUM]%s %6.2f-%-6.2f sec  %ss  %ss/sec                  %s\n"
REPORT_SUM_BW_RETRANS_FORMAT = (
    "[SUM]%s %6.2f-%-6.2f sec  %ss  %ss/sec  %3d             %s\n"
)
REPORT_SUM_BW_UDP_FORMAT = (
    "[SUM]%s %6.2f-%-6.2f sec  %ss  %ss/sec  %5.3f ms  %d/%d (%.2g%%)  %s\n"
)
REPORT_SUM_BW_UDP_SENDER_FORMAT = "[SUM]%s %6.2f-%-6.2f sec  %ss  %ss/sec %s %d  %s\n"

REPORT_OMITTED = "(omitted)"
REPORT_BW_SEPARATOR = "- - - - - - - - - - - - - - - - - - - - - - - - -\n"
REPORT_OUTOFORDER = "[%3d]%s %4.1f-%4.1f sec  %d datagrams received out-of-order\n"
REPORT_SUM_OUTOFORDER = "[SUM]%s %4.1f-%4.1f sec  %d datagrams received out-of-order\n"
REPORT_PEER = "[%3d] local %s port %u connected with %s port %u\n"
REPORT_MSS_UNSUPPORTED = (
    "[%3d] MSS and MTU size unknown (TCP_MAXSEG not supported by OS?)\n"
)
REPORT_MSS = "[%3d] MSS size %d bytes (MTU %d bytes, %s)\n"
REPORT_DATAGRAMS = "[%3d] Sent %d datagrams\n"
REPORT_SUM_DATAGRAMS = "[SUM] Sent %d datagrams\n"
SERVER_REPORTING = "[%3d] Server Report:\n"
REPORT_CSV_PEER = "%s,%u,%s,%u"

REPORT_CPU = (
    "CPU Utilization: %s/%s %.1f%% (%.1f%%u/%.1f%%s), "
    "%s/%s %.1f%% (%.1f%%u/%.1f%%s)\n"
)
REPORT_LOCAL = "local"
REPORT_REMOTE = "remote"
REPORT_SENDER = "sender"
REPORT_RECEIVER = "receiver"
REPORT_SENDER_NOT_AVAILABLE_FORMAT = "[%3d] (sender statistics not available)\n"
REPORT_SENDER_NOT_AVAILABLE_SUMMARY_FORMAT = (
    "[%3s] (sender statistics not available)\n"
)
REPORT_RECEIVER_NOT_AVAILABLE_FORMAT = "[%3d] (receiver statistics not available)\n"
REPORT_RECEIVER_NOT_AVAILABLE_SUMMARY_FORMAT = (
    "[%3s] (receiver statistics not available)\n"
)

REPORT_TCP_INFO_LINUX = (
    "event=TCP_Info CWND=%u SND_SSTHRESH=%u RCV_SSTHRESH=%u UNACKED=%u SACK=%u "
    "LOST=%u RETRANS=%u FACK=%u RTT=%u REORDERING=%u\n"
)
REPORT_TCP_INFO_BSD = "event=TCP_Info CWND=%u RCV_WIND=%u SND_SSTHRESH=%u RTT=%u\n"


def _tcp_info_template(platform: str) -> str | None:
    if platform.startswith("linux"):
        return REPORT_TCP_INFO_LINUX
    if platform.startswith(("freebsd", "netbsd")):
        return REPORT_TCP_INFO_BSD
    return None


REPORT_TCP_INFO: str | None = _tcp_info_template(sys.platform)

REPORT_CSV_BW_FORMAT = "%s,%s,%d,%.1f-%.1f,%lld,%lld\n"
REPORT_CSV_BW_UDP_FORMAT = "%s,%s,%d,%.1f-%.1f,%lld,%lld,%.3f,%d,%d,%.3f,%d\n"

# ---------------------------------------------------------------------------
# warnings
# ---------------------------------------------------------------------------

WARN_WINDOW_REQUESTED = " (WARNING: requested %s)"
WARN_WINDOW_SMALL = (
    "WARNING: TCP window size set to %d bytes. A small window size\n"
    "will give poor performance. See the documentation.\n"
)
WARN_DELAY_LARGE = "WARNING: delay too large, reducing from %.1f to 1.0 seconds.\n"
WARN_NO_PATHMTU = "WARNING: Path MTU Discovery may not be enabled.\n"
WARN_NO_ACK = "[%3d] WARNING: did not receive ack of last datagram after %d tries.\n"
WARN_ACK_FAILED = "[%3d] WARNING: ack of last datagram failed after %d tries.\n"
WARN_FILEOPEN_FAILED = (
    "WARNING: Unable to open file stream for transfer\n"
    "Using default data stream. \n"
)
UNABLE_TO_CHANGE_WIN = "WARNING: Unable to change the window size\n"
OPT_ESTIMATE = "Optimal Estimate\n"
REPORT_INTERVAL_SMALL = (
    "WARNING: interval too small, increasing from %3.2f to 0.5 seconds.\n"
)
WARN_INVALID_SERVER_OPTION = "WARNING: option -%c is not valid for server mode\n"
WARN_INVALID_CLIENT_OPTION = "WARNING: option -%c is not valid for client mode\n"
WARN_INVALID_COMPATIBILITY_OPTION = (
    "WARNING: option -%c is not valid in compatibility mode\n"
)
WARN_IMPLIED_UDP = "WARNING: option -%c implies udp testing\n"
WARN_IMPLIED_COMPATIBILITY = "WARNING: option -%c has implied compatibility mode\n"
WARN_BUFFER_TOO_SMALL = (
    "WARNING: the UDP buffer was increased to %d for proper operation\n"
)
WARN_INVALID_SINGLE_THREADED = (
    "WARNING: option -%c is not valid in single threaded versions\n"
)
WARN_INVALID_REPORT_STYLE = (
    'WARNING: unknown reporting style "%s", switching to default\n'
)
WARN_INVALID_REPORT = (
    'WARNING: unknown reporting type "%c", ignored\n valid options are:\n'
    "\t exclude: C(connection) D(data) M(multicast) S(settings) V(server) report\n\n"
)

# ---------------------------------------------------------------------------
# formatting
# ---------------------------------------------------------------------------

_CONVERSION = re.compile(
    r"%(?P<flags>[-+ #0]*)"
    r"(?P<width>\*|\d+)?"
    r"(?P<precision>\.(?:\*|\d*))?"
    r"(?P<length>hh|h|ll|l|L|q|j|z|t|I64)?"
    r"(?P<conv>[diouxXeEfFgGcs%])"
)


def _to_python(match: re.Match[str]) -> str:
    conv = match["conv"]
    if conv == "%":
        return "%%"
    if conv in "iu":
        conv = "d"
    return "%" + match["flags"] + (match["width"] or "") + (match["precision"] or "") + conv


@lru_cache(maxsize=256)
def _convert(template: str) -> str:
    return _CONVERSION.sub(_to_python, template)


def format_message(template: str, *args: object) -> str:
    """Expand a printf-style template with ``args``.

    C length modifiers are accepted and ignored. Raises ``TypeError`` when the
    arguments do not match the conversions and ``ValueError`` for a malformed
    template.
    """
    return _convert(template) % args