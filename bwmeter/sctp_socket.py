"""Creating SCTP listeners and connections, and binding to several local addresses."""

from __future__ import annotations

import errno
import socket
import struct
import sys
from contextlib import contextmanager
from typing import Any, Iterator

from .errors import ErrorCode, PerfError
from .sctp import SctpSettings

# Socket option numbers at the IPPROTO_SCTP level (kernel values).
SCTP_INITMSG = 2
SCTP_NODELAY = 3
SCTP_DISABLE_FRAGMENTS = 8
SCTP_MAXSEG = 13
SCTP_SOCKOPT_BINDX_ADD = 100
SCTP_FUTURE_ASSOC = 0

#: Accepted range for an explicitly requested segment size.
MSS_RANGE = range(512, 131072 + 1)

IFNAMSIZ = 16
_INT_MAX = 2**31 - 1


def _require_sctp() -> int:
    """Return the SCTP protocol number, or raise ``PerfError(NO_SCTP)``."""
    proto = getattr(socket, "IPPROTO_SCTP", None)
    if proto is None:
        raise PerfError(ErrorCode.NO_SCTP)
    return proto


@contextmanager
def _closing_on_error(sock: socket.socket) -> Iterator[socket.socket]:
    try:
        yield sock
    except BaseException:
        sock.close()
        raise


def _setopt(sock: socket.socket, level: int, option: int, value: Any, code: ErrorCode) -> None:
    try:
        sock.setsockopt(level, option, value)
    except OSError as exc:
        raise PerfError(code, exc.errno) from exc


def _set_buffers(sock: socket.socket, size: int) -> None:
    if size:
        _setopt(sock, socket.SOL_SOCKET, socket.SO_RCVBUF, size, ErrorCode.SET_BUF)
        _setopt(sock, socket.SOL_SOCKET, socket.SO_SNDBUF, size, ErrorCode.SET_BUF)


def _bind_device(sock: socket.socket, device: str | None) -> None:
    if not device:
        return
    option = getattr(socket, "SO_BINDTODEVICE", None)
    if option is None:
        raise PerfError(ErrorCode.BIND_DEV)
    name = device.encode().ljust(IFNAMSIZ, b"\0")[:IFNAMSIZ]
    _setopt(sock, socket.SOL_SOCKET, option, name, ErrorCode.BIND_DEV)


def _pack_sockaddr(family: int, addr: tuple) -> bytes:
    """Pack a resolved address in the kernel's sockaddr layout."""
    if family == socket.AF_INET:
        return (
            struct.pack("=H", family)
            + struct.pack("!H", addr[1])
            + socket.inet_pton(socket.AF_INET, addr[0])
            + bytes(8)
        )
    if family == socket.AF_INET6:
        host = addr[0].split("%", 1)[0]
        flowinfo = addr[2] if len(addr) > 2 else 0
        scope_id = addr[3] if len(addr) > 3 else 0
        return (
            struct.pack("=H", family)
            + struct.pack("!HI", addr[1], flowinfo)
            + socket.inet_pton(socket.AF_INET6, host)
            + struct.pack("=I", scope_id)
        )
    raise PerfError(ErrorCode.SET_SCTP_BINDX)


def _resolve_bindx(name: str, servname: str | None, family: int, flags: int) -> list:
    try:
        return socket.getaddrinfo(name, servname, family, socket.SOCK_STREAM, 0, flags)
    except socket.gaierror as exc:
        raise PerfError(ErrorCode.SET_SCTP_BINDX, gai_error=exc) from exc


def sctp_bindx(sock: socket.socket, settings: SctpSettings, is_server: bool) -> None:
    """Bind ``sock`` to every address in ``settings.xbind_addrs``.

    A client binds the first address with a plain bind and adds the rest;
    a server adds them all on the server port.
    """
    proto = _require_sctp()
    names = list(settings.xbind_addrs)
    if not names:
        return

    domain = settings.domain
    family = socket.AF_INET6 if domain == socket.AF_UNSPEC else domain
    flags = 0
    servname: str | None = None
    if is_server:
        flags |= socket.AI_PASSIVE
        servname = str(settings.server_port)
    else:
        first, *names = names
        infos = _resolve_bindx(first, servname, family, flags)
        first_family, first_addr = infos[0][0], infos[0][4]
        if domain != socket.AF_UNSPEC and domain != first_family:
            raise PerfError(ErrorCode.SET_SCTP_BINDX)
        try:
            sock.bind(first_addr)
        except OSError as exc:
            raise PerfError(ErrorCode.SET_SCTP_BINDX, exc.errno) from exc
        if not names:
            return
        if first_family not in (socket.AF_INET, socket.AF_INET6):
            raise PerfError(ErrorCode.SET_SCTP_BINDX)
        servname = str(first_addr[1])

    packed = [
        _pack_sockaddr(fam, addr)
        for name in names
        for fam, _type, _proto, _canon, addr in _resolve_bindx(name, servname, family, flags)
        if domain == socket.AF_UNSPEC or domain == fam
    ]
    try:
        sock.setsockopt(proto, SCTP_SOCKOPT_BINDX_ADD, b"".join(packed))
    except OSError as exc:
        sock.close()
        raise PerfError(ErrorCode.SET_SCTP_BINDX, exc.errno) from exc


def sctp_listen(settings: SctpSettings) -> socket.socket:
    """Open the SCTP stream listener and store it in ``settings.listener``."""
    proto = _require_sctp()
    if settings.listener is not None:
        settings.listener.close()
        settings.listener = None

    domain = settings.domain
    if domain == socket.AF_UNSPEC and not settings.bind_address:
        family = socket.AF_INET6
    else:
        family = domain
    try:
        infos = socket.getaddrinfo(
            settings.bind_address,
            str(settings.server_port),
            family,
            socket.SOCK_STREAM,
            0,
            socket.AI_PASSIVE,
        )
    except socket.gaierror as exc:
        raise PerfError(ErrorCode.STREAM_LISTEN, gai_error=exc) from exc
    res_family, res_addr = infos[0][0], infos[0][4]

    try:
        sock = socket.socket(res_family, socket.SOCK_STREAM, proto)
    except OSError as exc:
        raise PerfError(ErrorCode.STREAM_LISTEN, exc.errno) from exc

    with _closing_on_error(sock):
        _set_buffers(sock, settings.socket_bufsize)
        _bind_device(sock, settings.bind_dev)

        v6only = getattr(socket, "IPV6_V6ONLY", None)
        if (
            v6only is not None
            and not sys.platform.startswith("openbsd")
            and res_family == socket.AF_INET6
            and domain in (socket.AF_UNSPEC, socket.AF_INET6)
        ):
            value = 0 if domain == socket.AF_UNSPEC else 1
            _setopt(sock, socket.IPPROTO_IPV6, v6only, value, ErrorCode.PROTOCOL)

        _setopt(sock, socket.SOL_SOCKET, socket.SO_REUSEADDR, 1, ErrorCode.REUSE_ADDR)

        if settings.xbind_addrs:
            sctp_bindx(sock, settings, True)
        else:
            try:
                sock.bind(res_addr)
            except OSError as exc:
                raise PerfError(ErrorCode.STREAM_LISTEN, exc.errno) from exc

        try:
            sock.listen(_INT_MAX)
        except OSError as exc:
            raise PerfError(ErrorCode.STREAM_LISTEN, exc.errno) from exc

    settings.listener = sock
    return sock


def _any_address(family: int, port: int) -> tuple:
    if family == socket.AF_INET:
        return ("0.0.0.0", port)
    if family == socket.AF_INET6:
        return ("::", port, 0, 0)
    raise PerfError(ErrorCode.PROTOCOL)


def sctp_connect(settings: SctpSettings, cookie: bytes) -> socket.socket:
    """Connect an SCTP stream to the server and send ``cookie`` over it."""
    proto = _require_sctp()
    domain = settings.domain

    local = None
    if settings.bind_address:
        try:
            local = socket.getaddrinfo(settings.bind_address, None, domain, socket.SOCK_STREAM)[0]
        except socket.gaierror as exc:
            raise PerfError(ErrorCode.STREAM_CONNECT, gai_error=exc) from exc

    try:
        server = socket.getaddrinfo(
            settings.server_hostname, str(settings.server_port), domain, socket.SOCK_STREAM
        )[0]
    except socket.gaierror as exc:
        raise PerfError(ErrorCode.STREAM_CONNECT, gai_error=exc) from exc
    server_family, server_addr = server[0], server[4]

    try:
        sock = socket.socket(server_family, socket.SOCK_STREAM, proto)
    except OSError as exc:
        raise PerfError(ErrorCode.STREAM_CONNECT, exc.errno) from exc

    with _closing_on_error(sock):
        _set_buffers(sock, settings.socket_bufsize)
        _bind_device(sock, settings.bind_dev)

        local_addr = None
        if local is not None:
            host, _port, *rest = local[4]
            local_addr = (host, settings.bind_port, *rest)
        elif settings.bind_port:
            local_addr = _any_address(server_family, settings.bind_port)
        if local_addr is not None:
            try:
                sock.bind(local_addr)
            except OSError as exc:
                raise PerfError(ErrorCode.STREAM_CONNECT, exc.errno) from exc

        if settings.no_delay:
            _setopt(sock, proto, SCTP_NODELAY, 1, ErrorCode.SET_NODELAY)

        if settings.mss in MSS_RANGE:
            value = struct.pack("=iI", SCTP_FUTURE_ASSOC, settings.mss)
            _setopt(sock, proto, SCTP_MAXSEG, value, ErrorCode.SET_MSS)

        if settings.num_ostreams > 0:
            initmsg = struct.pack("=HHHH", settings.num_ostreams, 0, 0, 0)
            _setopt(sock, proto, SCTP_INITMSG, initmsg, ErrorCode.SET_SCTP_NSTREAM)

        if settings.xbind_addrs:
            sctp_bindx(sock, settings, False)

        try:
            sock.connect(server_addr)
        except OSError as exc:
            if exc.errno != errno.EINPROGRESS:
                raise PerfError(ErrorCode.STREAM_CONNECT, exc.errno) from exc

        try:
            sock.sendall(cookie)
        except OSError as exc:
            raise PerfError(ErrorCode.SEND_COOKIE, exc.errno) from exc

        try:
            sock.setsockopt(proto, SCTP_DISABLE_FRAGMENTS, 0)
        except OSError as exc:
            if exc.errno != errno.ENOPROTOOPT:
                raise PerfError(ErrorCode.SET_SCTP_DISABLE_FRAG, exc.errno) from exc

    return sock