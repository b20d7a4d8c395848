# bwmeter

Pieces of a network bandwidth tester, usable on their own.

## Modules

- `bwmeter.usage` builds the command-line help text. `usage_short()` returns
  the brief message shown on a bad invocation; `usage_long(defaults, features)`
  returns the full help. `UsageDefaults` holds the default values quoted in the
  text (receive timeout, UDP rate, pacing timer, duration, block sizes) and
  `Features` selects which optional options are listed (CPU affinity, bind to
  device, SSL authentication, SCTP, fair-queue pacing, congestion control, flow
  label, don't-fragment) and an optional homepage and bug-report line. Both
  arguments may be `None` to take the defaults.
- `bwmeter.messages` holds the settings, report and warning message templates
  as module constants (for example `SERVER_PORT`, `REPORT_BW_FORMAT`,
  `REPORT_CPU`, `WARN_WINDOW_SMALL`), with `REPORT_TCP_INFO` chosen for the
  running platform (`None` where there is none). `format_message(template, *args)`
  expands a printf-style template; C length modifiers such as `%llu` or `%ld`
  are accepted and ignored.
- `bwmeter.errors` defines the `ErrorCode` enumeration, the `Limits` quoted in
  error texts, and the `PerfError` exception, whose string form is the error
  text. `strerror(code, os_errno, gai_error, limits)` turns a code into a
  message, appending the OS or resolver error where the code calls for it;
  unknown codes read `int_errno=<n>`. `report_error(...)` writes
  `bwmeter: <message>` to a stream (standard error instead of standard output),
  optionally timestamped, or stores it under `"error"` in a JSON result
  mapping. `exit_with_error(...)` does the same, prints the JSON result if one
  is given, removes a PID file and raises `SystemExit(1)`.
- `bwmeter.sctp` checks for SCTP support (`sctp_available()`, `sctp_init()`),
  accepts stream connections and verifies the peer's cookie (`sctp_accept`),
  and moves fixed-size blocks over a connection with `SctpStream`, whose
  `StreamCounters` count bytes sent and received. `SctpSettings` holds the
  addresses, ports and socket options used to set streams up.
- `bwmeter.sctp_socket` opens the listener (`sctp_listen(settings)`), connects
  and sends the cookie (`sctp_connect(settings, cookie)`), and binds a socket
  to several local addresses (`sctp_bindx(sock, settings, is_server)`).

Failures are raised as `PerfError` carrying the matching `ErrorCode`.

## Installing

```
pip install .
```

To run the tests:

```
pip install .[test]
pytest
```

## Example

```python
from bwmeter.errors import ErrorCode, PerfError, strerror
from bwmeter.messages import REPORT_CONNECTED, format_message
from bwmeter.usage import usage_short

print(usage_short())
print(strerror(ErrorCode.BAD_PORT))
print(format_message(REPORT_CONNECTED, 5, "10.0.0.1", 40000, "10.0.0.2", 5201), end="")

try:
    raise PerfError(ErrorCode.CONNECT)
except PerfError as exc:
    print(exc)
```

SCTP needs kernel support. `sctp_available()` reports whether the running
system offers it; where it does not, the SCTP calls raise `PerfError` with
`ErrorCode.NO_SCTP`.

## What this package does not do

There is no command to run and no complete client or server: the package does
not parse command-line options, run the control-channel protocol, time a test,
collect TCP or UDP statistics, or print interval reports. It supplies the help
text, message templates, error handling and SCTP stream plumbing that such a
program would be built from.