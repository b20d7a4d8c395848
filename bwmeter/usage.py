"""Usage text for the command-line interface."""

from __future__ import annotations

from dataclasses import dataclass

PROGRAM_NAME = "bwmeter"

_OPTION_WIDTH = 26
_INDENT = "  "
_CONTINUATION = " " * (len(_INDENT) + _OPTION_WIDTH)


@dataclass(frozen=True)
class UsageDefaults:
    """Default values quoted in the long usage text."""

    rcv_timeout_ms: int = 120000
    udp_rate_mbit: int = 1
    pacing_timer_us: int = 1000
    duration_secs: int = 10
    tcp_blksize_kb: int = 128
    udp_blksize: int = 1460


@dataclass(frozen=True)
class Features:
    """Optional capabilities that decide which options are documented."""

    cpu_affinity: bool = False
    bind_to_device: bool = False
    ssl: bool = False
    sctp: bool = False
    max_pacing_rate: bool = False
    tcp_congestion: bool = False
    flowlabel: bool = False
    dont_fragment: bool = False
    homepage: str | None = None
    bug_report: str | None = None


def _opt(column: str, first: str, *more: str) -> list[str]:
    """Lay out one option: its switch column, then its description lines."""
    if len(column) < _OPTION_WIDTH:
        head = f"{_INDENT}{column:<{_OPTION_WIDTH}}{first}"
    else:
        head = f"{_INDENT}{column} {first}"
    return [head, *(_CONTINUATION + text for text in more)]


def usage_short() -> str:
    """Return the brief usage message shown on bad invocation."""
    return (
        f"Usage: {PROGRAM_NAME} [-s|-c host] [options]\n"
        f"Try `{PROGRAM_NAME} --help' for more information.\n"
    )


def _server_or_client(d: UsageDefaults, f: Features) -> list[str]:
    lines = ["Server or Client:"]
    lines += _opt("-p, --port      #", "server port to listen on/connect to")
    lines += _opt("-f, --format   [kmgtKMGT]", "format to report: Kbits, Mbits, Gbits, Tbits")
    lines += _opt("-i, --interval  #", "seconds between periodic throughput reports")
    lines += _opt("-I, --pidfile file", "write PID file")
    lines += _opt("-F, --file name", "xmit/recv the specified file")
    if f.cpu_affinity:
        lines += _opt("-A, --affinity n/n,m", "set CPU affinity")
    bind_what = "bind to the interface associated with the address <host>"
    if f.bind_to_device:
        lines += _opt("-B, --bind <host>[%<dev>]", bind_what,
                      "(optional <dev> equivalent to `--bind-dev <dev>`)")
        lines += _opt("--bind-dev <dev>", "bind to the network interface with SO_BINDTODEVICE")
    else:
        lines += _opt("-B, --bind      <host>", bind_what)
    lines += _opt("-V, --verbose", "more detailed output")
    lines += _opt("-J, --json", "output in JSON format")
    lines += _opt("--logfile f", "send output to a log file")
    lines += _opt("--forceflush", "force flushing output at every interval")
    lines += _opt("--timestamps<=format>", "emit a timestamp at the start of each output line",
                  '(optional "=" and format string as per strftime(3))')
    lines += _opt("--rcv-timeout #", "idle timeout for receiving data",
                  f"(default {d.rcv_timeout_ms} ms)")
    lines += _opt("-d, --debug", "emit debugging output")
    lines += _opt("-v, --version", "show version information and quit")
    lines += _opt("-h, --help", "show this message and quit")
    return lines


def _server_specific(f: Features) -> list[str]:
    lines = ["Server specific:"]
    lines += _opt("-s, --server", "run in server mode")
    lines += _opt("-D, --daemon", "run the server as a daemon")
    lines += _opt("-1, --one-off", "handle one client connection then exit")
    lines += _opt("--server-bitrate-limit #[KMG][/#]  ",
                  "server's total bit rate limit (default 0 = no limit)",
                  "(optional slash and number of secs interval for averaging",
                  "total data rate.  Default is 5 seconds)")
    lines += _opt("--idle-timeout #", "restart idle server after # seconds in case it",
                  "got stuck (default - no timeout)")
    if f.ssl:
        lines += _opt("--rsa-private-key-path", "path to the RSA private key used to decrypt",
                      "authentication credentials")
        lines += _opt("--authorized-users-path", "path to the configuration file containing user",
                      "credentials")
        lines += _opt("--time-skew-threshold", "time skew threshold (in seconds) between the server",
                      "and client during the authentication process")
    return lines


def _client_specific(d: UsageDefaults, f: Features) -> list[str]:
    lines = ["Client specific:"]
    lines += _opt("-c, --client <host>[%<dev>]", "run in client mode, connecting to <host>",
                  "  (option <dev> equivalent to `--bind-dev <dev>`)")
    if f.sctp:
        lines += _opt("--sctp", "use SCTP rather than TCP")
        lines += _opt("-X, --xbind <name>", "bind SCTP association to links")
        lines += _opt("--nstreams      #", "number of SCTP streams")
    lines += _opt("-u, --udp", "use UDP rather than TCP")
    lines += _opt("--connect-timeout #", "timeout for control connection setup (ms)")
    lines += _opt("-b, --bitrate #[KMG][/#]", "target bitrate in bits/sec (0 for unlimited)",
                  f"(default {d.udp_rate_mbit} Mbit/sec for UDP, unlimited for TCP)",
                  "(optional slash and packet count for burst mode)")
    lines += _opt("--pacing-timer #[KMG]",
                  f"set the timing for pacing, in microseconds (default {d.pacing_timer_us})")
    if f.max_pacing_rate:
        lines += _opt("--fq-rate #[KMG]", "enable fair-queuing based socket pacing in",
                      "bits/sec (Linux only)")
    lines += _opt("-t, --time      #",
                  f"time in seconds to transmit for (default {d.duration_secs} secs)")
    lines += _opt("-n, --bytes     #[KMG]", "number of bytes to transmit (instead of -t)")
    lines += _opt("-k, --blockcount #[KMG]",
                  "number of blocks (packets) to transmit (instead of -t or -n)")
    lines += _opt("-l, --length    #[KMG]", "length of buffer to read or write",
                  f"(default {d.tcp_blksize_kb} KB for TCP, dynamic or {d.udp_blksize} for UDP)")
    lines += _opt("--cport         <port>",
                  "bind to a specific client port (TCP and UDP, default: ephemeral port)")
    lines += _opt("-P, --parallel  #", "number of parallel client streams to run")
    lines += _opt("-R, --reverse", "run in reverse mode (server sends, client receives)")
    lines += _opt("--bidir", "run in bidirectional mode.",
                  "Client and server send and receive data.")
    lines += _opt("-w, --window    #[KMG]", "set send/receive socket buffer sizes",
                  "(indirectly sets TCP window size)")
    if f.tcp_congestion:
        lines += _opt("-C, --congestion <algo>",
                      "set TCP congestion control algorithm (Linux and FreeBSD only)")
    lines += _opt("-M, --set-mss   #", "set TCP/SCTP maximum segment size (MTU - 40 bytes)")
    lines += _opt("-N, --no-delay", "set TCP/SCTP no delay, disabling Nagle's Algorithm")
    lines += _opt("-4, --version4", "only use IPv4")
    lines += _opt("-6, --version6", "only use IPv6")
    lines += _opt("-S, --tos N", "set the IP type of service, 0-255.",
                  "The usual prefixes for octal and hex can be used,",
                  "i.e. 52, 064 and 0x34 all specify the same value.")
    lines += _opt("--dscp N or --dscp val", "set the IP dscp value, either 0-63 or symbolic.",
                  "Numeric values can be specified in decimal,",
                  "octal and hex (see --tos above).")
    if f.flowlabel:
        lines += _opt("-L, --flowlabel N", "set the IPv6 flow label (only supported on Linux)")
    lines += _opt("-Z, --zerocopy", "use a 'zero copy' method of sending data")
    lines += _opt("-O, --omit N", "omit the first n seconds")
    lines += _opt("-T, --title str", "prefix every output line with this string")
    lines += _opt("--extra-data str", "data string to include in client and server JSON")
    lines += _opt("--get-server-output", "get results from server")
    lines += _opt("--udp-counters-64bit", "use 64-bit counters in UDP test packets")
    lines += _opt("--repeating-payload", "use repeating pattern in payload, instead of",
                  "randomized payload (like in older releases)")
    if f.dont_fragment:
        lines += _opt("--dont-fragment", "set IPv4 Don't Fragment flag")
    if f.ssl:
        lines += _opt("--username", "username for authentication")
        lines += _opt("--rsa-public-key-path", "path to the RSA public key used to encrypt",
                      "authentication credentials")
    return lines


def usage_long(defaults: UsageDefaults | None = None, features: Features | None = None) -> str:
    """Return the full help text, with defaults filled in and options per feature."""
    d = defaults if defaults is not None else UsageDefaults()
    f = features if features is not None else Features()
    lines = [
        f"Usage: {PROGRAM_NAME} [-s|-c host] [options]",
        f"       {PROGRAM_NAME} [-h|--help] [-v|--version]",
        "",
        *_server_or_client(d, f),
        *_server_specific(f),
        *_client_specific(d, f),
        "",
        "[KMG] indicates options that support a K/M/G suffix for kilo-, mega-, or giga-",
        "",
    ]
    if f.homepage:
        lines.append(f"{PROGRAM_NAME} homepage at: {f.homepage}")
    if f.bug_report:
        lines.append(f"Report bugs to:     {f.bug_report}")
    return "\n".join(lines) + "\n"