import errno
import socket
import struct
from unittest import mock

import pytest

from bwmeter.errors import ErrorCode, PerfError
from bwmeter.sctp import SctpSettings
from bwmeter.sctp_socket import (
    SCTP_DISABLE_FRAGMENTS,
    SCTP_INITMSG,
    SCTP_MAXSEG,
    SCTP_NODELAY,
    SCTP_SOCKOPT_BINDX_ADD,
    sctp_bindx,
    sctp_connect,
    sctp_listen,
)

PROTO = 132


@pytest.fixture
def sctp_proto():
    with mock.patch.object(socket, "IPPROTO_SCTP", PROTO, create=True):
        yield PROTO


@pytest.fixture
def fake():
    return mock.MagicMock(spec=socket.socket)


def _info(family, addr):
    return [(family, socket.SOCK_STREAM, 0, "", addr)]


def _v4(host, port=5201):
    return _info(socket.AF_INET, (host, port))


@pytest.mark.parametrize(
    "call",
    [
        lambda: sctp_listen(SctpSettings()),
        lambda: sctp_connect(SctpSettings(), b"cookie"),
        lambda: sctp_bindx(mock.MagicMock(), SctpSettings(xbind_addrs=["a"]), True),
    ],
)
def test_no_sctp_support(call):
    with mock.patch.object(socket, "IPPROTO_SCTP", None, create=True):
        with pytest.raises(PerfError) as info:
            call()
    assert info.value.code == ErrorCode.NO_SCTP


def test_listen_resolve_failure_uses_ipv6_wildcard(sctp_proto):
    gai = socket.gaierror(-2, "Name or service not known")
    with mock.patch("socket.getaddrinfo", side_effect=gai) as resolver:
        with pytest.raises(PerfError) as info:
            sctp_listen(SctpSettings())
    assert info.value.code == ErrorCode.STREAM_LISTEN
    assert info.value.gai_error is gai
    assert resolver.call_args.args[2] == socket.AF_INET6
    assert str(info.value) == "unable to start stream listener: Name or service not known"


def test_listen_closes_previous_listener(sctp_proto):
    previous = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    settings = SctpSettings(listener=previous)
    with mock.patch("socket.getaddrinfo", side_effect=socket.gaierror(-2, "fail")):
        with pytest.raises(PerfError):
            sctp_listen(settings)
    assert previous.fileno() == -1


def test_listen_success(sctp_proto, fake):
    settings = SctpSettings(domain=socket.AF_INET, bind_address="127.0.0.1", socket_bufsize=4096)
    with mock.patch("socket.getaddrinfo", return_value=_v4("127.0.0.1")), \
            mock.patch("socket.socket", return_value=fake) as factory:
        result = sctp_listen(settings)
    assert result is fake
    assert settings.listener is fake
    assert factory.call_args.args == (socket.AF_INET, socket.SOCK_STREAM, PROTO)
    fake.bind.assert_called_once_with(("127.0.0.1", 5201))
    fake.listen.assert_called_once()
    calls = fake.setsockopt.call_args_list
    assert mock.call(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1) in calls
    assert mock.call(socket.SOL_SOCKET, socket.SO_RCVBUF, 4096) in calls
    assert mock.call(socket.SOL_SOCKET, socket.SO_SNDBUF, 4096) in calls


def test_listen_unspec_clears_v6only(sctp_proto, fake):
    info6 = _info(socket.AF_INET6, ("::", 5201, 0, 0))
    settings = SctpSettings()
    with mock.patch("socket.getaddrinfo", return_value=info6), \
            mock.patch("socket.socket", return_value=fake):
        result = sctp_listen(settings)
    assert result is fake
    assert settings.listener is fake
    assert mock.call(socket.IPPROTO_IPV6, socket.IPV6_V6ONLY, 0) in fake.setsockopt.call_args_list


def test_listen_reuseaddr_failure_closes(sctp_proto, fake):
    def setopt(level, option, value):
        if option == socket.SO_REUSEADDR:
            raise OSError(errno.EINVAL, "bad")

    fake.setsockopt.side_effect = setopt
    with mock.patch("socket.getaddrinfo", return_value=_v4("127.0.0.1")), \
            mock.patch("socket.socket", return_value=fake):
        with pytest.raises(PerfError) as info:
            sctp_listen(SctpSettings(domain=socket.AF_INET))
    assert info.value.code == ErrorCode.REUSE_ADDR
    assert info.value.os_errno == errno.EINVAL
    fake.close.assert_called()


def test_connect_bind_address_resolve_failure(sctp_proto):
    with mock.patch("socket.getaddrinfo", side_effect=socket.gaierror(-2, "fail")):
        with pytest.raises(PerfError) as info:
            sctp_connect(SctpSettings(bind_address="nowhere.example.com"), b"cookie")
    assert info.value.code == ErrorCode.STREAM_CONNECT


def test_connect_socket_creation_failure(sctp_proto):
    with mock.patch("socket.getaddrinfo", return_value=_v4("127.0.0.1")), \
            mock.patch("socket.socket", side_effect=OSError(errno.EPROTONOSUPPORT, "no")):
        with pytest.raises(PerfError) as info:
            sctp_connect(SctpSettings(server_hostname="127.0.0.1"), b"cookie")
    assert info.value.code == ErrorCode.STREAM_CONNECT
    assert info.value.os_errno == errno.EPROTONOSUPPORT


def test_connect_success_sets_options(sctp_proto, fake):
    cookie = b"c" * 37
    settings = SctpSettings(
        domain=socket.AF_INET,
        server_hostname="127.0.0.1",
        socket_bufsize=65536,
        no_delay=True,
        mss=1400,
        num_ostreams=4,
    )
    with mock.patch("socket.getaddrinfo", return_value=_v4("127.0.0.1")), \
            mock.patch("socket.socket", return_value=fake):
        result = sctp_connect(settings, cookie)
    assert result is fake
    fake.connect.assert_called_once_with(("127.0.0.1", 5201))
    fake.sendall.assert_called_once_with(cookie)
    fake.bind.assert_not_called()
    fake.close.assert_not_called()
    calls = fake.setsockopt.call_args_list
    assert mock.call(socket.SOL_SOCKET, socket.SO_RCVBUF, 65536) in calls
    assert mock.call(PROTO, SCTP_NODELAY, 1) in calls
    assert mock.call(PROTO, SCTP_MAXSEG, struct.pack("=iI", 0, 1400)) in calls
    assert mock.call(PROTO, SCTP_INITMSG, struct.pack("=HHHH", 4, 0, 0, 0)) in calls
    assert mock.call(PROTO, SCTP_DISABLE_FRAGMENTS, 0) in calls


def test_connect_mss_out_of_range_not_set(sctp_proto, fake):
    with mock.patch("socket.getaddrinfo", return_value=_v4("127.0.0.1")), \
            mock.patch("socket.socket", return_value=fake):
        result = sctp_connect(SctpSettings(mss=100), b"cookie")
    assert result is fake
    options = [c.args[1] for c in fake.setsockopt.call_args_list]
    assert SCTP_MAXSEG not in options
    assert SCTP_DISABLE_FRAGMENTS in options


def test_connect_mss_failure(sctp_proto, fake):
    def setopt(level, option, value):
        if option == SCTP_MAXSEG:
            raise OSError(errno.EINVAL, "bad")

    fake.setsockopt.side_effect = setopt
    with mock.patch("socket.getaddrinfo", return_value=_v4("127.0.0.1")), \
            mock.patch("socket.socket", return_value=fake):
        with pytest.raises(PerfError) as info:
            sctp_connect(SctpSettings(mss=1400), b"cookie")
    assert info.value.code == ErrorCode.SET_MSS
    fake.close.assert_called()


def test_connect_cport_binds_wildcard(sctp_proto, fake):
    with mock.patch("socket.getaddrinfo", return_value=_v4("127.0.0.1")), \
            mock.patch("socket.socket", return_value=fake):
        result = sctp_connect(SctpSettings(bind_port=6000), b"cookie")
    assert result is fake
    assert fake.bind.call_args_list == [mock.call(("0.0.0.0", 6000))]


def test_connect_in_progress_is_not_an_error(sctp_proto, fake):
    fake.connect.side_effect = BlockingIOError(errno.EINPROGRESS, "in progress")
    with mock.patch("socket.getaddrinfo", return_value=_v4("127.0.0.1")), \
            mock.patch("socket.socket", return_value=fake):
        result = sctp_connect(SctpSettings(), b"cookie")
    assert result is fake
    fake.sendall.assert_called_once_with(b"cookie")


def test_connect_refused(sctp_proto, fake):
    fake.connect.side_effect = ConnectionRefusedError(errno.ECONNREFUSED, "refused")
    with mock.patch("socket.getaddrinfo", return_value=_v4("127.0.0.1")), \
            mock.patch("socket.socket", return_value=fake):
        with pytest.raises(PerfError) as info:
            sctp_connect(SctpSettings(), b"cookie")
    assert info.value.code == ErrorCode.STREAM_CONNECT
    assert info.value.os_errno == errno.ECONNREFUSED
    fake.close.assert_called()


def test_connect_ignores_unsupported_disable_fragments(sctp_proto, fake):
    def setopt(level, option, value):
        if option == SCTP_DISABLE_FRAGMENTS:
            raise OSError(errno.ENOPROTOOPT, "unsupported")

    fake.setsockopt.side_effect = setopt
    with mock.patch("socket.getaddrinfo", return_value=_v4("127.0.0.1")), \
            mock.patch("socket.socket", return_value=fake):
        result = sctp_connect(SctpSettings(), b"cookie")
    assert result is fake
    fake.close.assert_not_called()


def test_connect_cookie_send_failure(sctp_proto, fake):
    fake.sendall.side_effect = BrokenPipeError(errno.EPIPE, "pipe")
    with mock.patch("socket.getaddrinfo", return_value=_v4("127.0.0.1")), \
            mock.patch("socket.socket", return_value=fake):
        with pytest.raises(PerfError) as info:
            sctp_connect(SctpSettings(), b"cookie")
    assert info.value.code == ErrorCode.SEND_COOKIE


def test_bindx_empty_does_nothing(sctp_proto, fake):
    assert sctp_bindx(fake, SctpSettings(), True) is None
    assert fake.method_calls == []


def test_bindx_server_adds_all_addresses(sctp_proto, fake):
    table = {"10.0.0.1": _v4("10.0.0.1"), "10.0.0.2": _v4("10.0.0.2")}
    settings = SctpSettings(domain=socket.AF_INET, xbind_addrs=["10.0.0.1", "10.0.0.2"])
    with mock.patch("socket.getaddrinfo", side_effect=lambda name, *a, **k: table[name]):
        sctp_bindx(fake, settings, True)
    fake.bind.assert_not_called()
    fake.setsockopt.assert_called_once()
    level, option, buf = fake.setsockopt.call_args.args
    assert (level, option) == (PROTO, SCTP_SOCKOPT_BINDX_ADD)
    assert len(buf) == 32
    assert socket.inet_aton("10.0.0.1") in buf
    assert socket.inet_aton("10.0.0.2") in buf
    assert settings.xbind_addrs == ["10.0.0.1", "10.0.0.2"]


def test_bindx_client_single_address_binds_only(sctp_proto, fake):
    settings = SctpSettings(domain=socket.AF_INET, xbind_addrs=["10.0.0.1"])
    with mock.patch("socket.getaddrinfo", return_value=_v4("10.0.0.1", 0)):
        sctp_bindx(fake, settings, False)
    fake.bind.assert_called_once_with(("10.0.0.1", 0))
    fake.setsockopt.assert_not_called()


def test_bindx_client_adds_remaining(sctp_proto, fake):
    table = {"10.0.0.1": _v4("10.0.0.1", 0), "10.0.0.2": _v4("10.0.0.2", 0)}
    settings = SctpSettings(domain=socket.AF_INET, xbind_addrs=["10.0.0.1", "10.0.0.2"])
    with mock.patch("socket.getaddrinfo", side_effect=lambda name, *a, **k: table[name]):
        sctp_bindx(fake, settings, False)
    fake.bind.assert_called_once_with(("10.0.0.1", 0))
    buf = fake.setsockopt.call_args.args[2]
    assert len(buf) == 16
    assert socket.inet_aton("10.0.0.2") in buf
    assert socket.inet_aton("10.0.0.1") not in buf


def test_bindx_client_family_mismatch(sctp_proto, fake):
    settings = SctpSettings(domain=socket.AF_INET6, xbind_addrs=["10.0.0.1"])
    with mock.patch("socket.getaddrinfo", return_value=_v4("10.0.0.1", 0)):
        with pytest.raises(PerfError) as info:
            sctp_bindx(fake, settings, False)
    assert info.value.code == ErrorCode.SET_SCTP_BINDX
    fake.bind.assert_not_called()


def test_bindx_resolve_failure(sctp_proto, fake):
    gai = socket.gaierror(-2, "fail")
    settings = SctpSettings(domain=socket.AF_INET, xbind_addrs=["nowhere.example.com"])
    with mock.patch("socket.getaddrinfo", side_effect=gai):
        with pytest.raises(PerfError) as info:
            sctp_bindx(fake, settings, True)
    assert info.value.code == ErrorCode.SET_SCTP_BINDX
    assert info.value.gai_error is gai


def test_bindx_setsockopt_failure_closes(sctp_proto, fake):
    fake.setsockopt.side_effect = OSError(errno.EADDRNOTAVAIL, "unavailable")
    settings = SctpSettings(domain=socket.AF_INET, xbind_addrs=["10.0.0.1"])
    with mock.patch("socket.getaddrinfo", return_value=_v4("10.0.0.1")):
        with pytest.raises(PerfError) as info:
            sctp_bindx(fake, settings, True)
    assert info.value.code == ErrorCode.SET_SCTP_BINDX
    assert info.value.os_errno == errno.EADDRNOTAVAIL
    fake.close.assert_called_once()