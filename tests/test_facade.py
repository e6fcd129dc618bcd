from brotherlink.alarms import AlarmBuilder
from brotherlink.transports import Brother, BrotherFtp, BrotherHttp, BrotherTcp


class StubTransport:
    def __init__(self, name, result=True, error=None, acquisition_error=False):
        self.name = name
        self.machine_type = ""
        self.result = result
        self.error = error
        self.acquisition_error = acquisition_error
        self.calls = []

    def start(self):
        self.calls.append("start")
        if self.error is not None:
            raise self.error
        return self.result

    def finish(self):
        self.calls.append("finish")
        if self.error is not None:
            raise self.error

    def close(self):
        self.calls.append("close")


def make_brother(tcp=None, ftp=None, http=None):
    order = []
    transports = {
        "tcp": tcp or StubTransport("tcp"),
        "ftp": ftp or StubTransport("ftp"),
        "http": http or StubTransport("http"),
    }
    for name, transport in transports.items():
        original = transport.start

        def start(original=original, name=name):
            order.append(name)
            return original()

        transport.start = start
    brother = Brother(transports["tcp"], transports["ftp"], transports["http"])
    return brother, order


def test_start_order_and_result():
    brother, order = make_brother(
        tcp=StubTransport("tcp", result=False),
        ftp=StubTransport("ftp", result=False),
        http=StubTransport("http", result=True),
    )
    assert brother.start() is True
    assert order == ["ftp", "tcp", "http"]


def test_start_swallows_transport_exceptions(caplog):
    brother, order = make_brother(
        ftp=StubTransport("ftp", error=RuntimeError("boom")),
        tcp=StubTransport("tcp", result=False),
        http=StubTransport("http", result=False),
    )
    assert brother.start() is False
    assert order == ["ftp", "tcp", "http"]
    assert "start of ftp failed" in caplog.text


def test_finish_calls_every_transport_even_after_a_failure():
    tcp = StubTransport("tcp", error=RuntimeError("boom"))
    brother, _ = make_brother(tcp=tcp)
    brother.finish()
    assert tcp.calls == ["finish"]
    assert brother.ftp.calls == ["finish"]
    assert brother.http.calls == ["finish"]


def test_acquisition_error_is_any_transport():
    brother, _ = make_brother()
    assert brother.acquisition_error is False
    brother.http.acquisition_error = True
    assert brother.acquisition_error is True


def test_settings_are_propagated():
    builder = AlarmBuilder()
    brother = Brother(alarm_builder=builder)
    assert isinstance(brother.tcp, BrotherTcp)
    assert isinstance(brother.ftp, BrotherFtp)
    assert isinstance(brother.http, BrotherHttp)
    assert brother.tcp.alarm_builder is builder and brother.ftp.alarm_builder is builder

    brother.host = "10.0.0.9"
    brother.machine_type = "C"
    brother.tcp_port = 10001
    brother.tcp_timeout_s = 0.5
    brother.ftp_login = "user"
    brother.ftp_password = "pw"
    brother.ftp_timeout_s = 0.4
    brother.http_timeout_s = 0.3

    assert (brother.tcp.host, brother.ftp.host, brother.http.host) == ("10.0.0.9",) * 3
    assert brother.tcp.machine_type == brother.ftp.machine_type == brother.machine_type == "C"
    assert brother.tcp.port == 10001 and brother.tcp_port == 10001
    assert brother.tcp.timeout_s == 0.5
    assert (brother.ftp.login, brother.ftp.password, brother.ftp.timeout_s) == ("user", "pw", 0.4)
    assert brother.http.timeout_s == 0.3


def test_default_transports_without_host_do_not_start():
    brother = Brother(http=BrotherHttp(enabled=False))
    assert brother.start() is False
    assert brother.acquisition_error is False


def test_getters_delegate():
    class FakeTcp(StubTransport):
        def get_string(self, param):
            return f"tcp:{param}"

    class FakeFtp(StubTransport):
        def get_int(self, param):
            return 42

    brother, _ = make_brother(tcp=FakeTcp("tcp"), ftp=FakeFtp("ftp"))
    assert brother.get_tcp_string("A|B|C") == "tcp:A|B|C"
    assert brother.get_ftp_int("MEM.NC|A01|0") == 42
