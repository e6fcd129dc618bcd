import ftplib
import socket

import pytest

from brotherlink.errors import (
    BackoffError,
    InvalidBooleanError,
    InvalidParameterError,
    KeyNotFoundError,
    PreviouslyFailedError,
    TransportError,
    TransportTimeoutError,
)
from brotherlink.model import ToolUnit
from brotherlink.transports.ftp import BrotherFtp


MEM = "A01,1234,ON\r\nA02,2.5\r\nB01,1,,3\r\nE01,1234,,5678\r\n"


class FakeFTP:
    def __init__(self, files=None):
        self.files = dict(files or {})
        self.connected_to = None
        self.logged_in = None
        self.retrieved = []
        self.quit_called = False
        self.closed = False
        self.retr_error = None
        self.connect_error = None
        self.login_error = None

    def connect(self, host, timeout=None):
        if self.connect_error is not None:
            raise self.connect_error
        self.connected_to = (host, timeout)

    def login(self, user, passwd):
        if self.login_error is not None:
            raise self.login_error
        self.logged_in = (user, passwd)

    def retrbinary(self, cmd, callback):
        self.retrieved.append(cmd)
        if self.retr_error is not None:
            raise self.retr_error
        name = cmd.split(" ", 1)[1]
        if name not in self.files:
            raise ftplib.error_perm("550 No such file")
        data = self.files[name].encode("utf-8")
        callback(data[:7])
        callback(data[7:])

    def quit(self):
        self.quit_called = True

    def close(self):
        self.closed = True


class FtpFactory:
    def __init__(self, *sessions):
        self.sessions = list(sessions)
        self.timeouts = []

    def __call__(self, timeout=None):
        self.timeouts.append(timeout)
        return self.sessions.pop(0)


def make_ftp(files, clock, **kwargs):
    fake = FakeFTP(files)
    factory = FtpFactory(fake)
    ftp = BrotherFtp("10.0.0.5", "user", "secret", ftp_factory=factory, clock=clock, **kwargs)
    assert ftp.start()
    return ftp, fake, factory


def test_start_requires_login(clock):
    factory = FtpFactory()
    ftp = BrotherFtp("10.0.0.5", ftp_factory=factory, clock=clock)
    assert ftp.start() is False
    assert factory.timeouts == []


def test_start_connects_and_logs_in(clock):
    ftp, fake, factory = make_ftp({}, clock, timeout_s=0.5)
    assert factory.timeouts == [0.5]
    assert fake.connected_to == ("10.0.0.5", 0.5)
    assert fake.logged_in == ("user", "secret")
    assert ftp.connected


def test_typed_getters_read_each_file_once(clock):
    ftp, fake, _ = make_ftp({"MEM.NC": MEM}, clock)
    assert ftp.get_string("MEM.NC|A01|0") == "1234"
    assert ftp.get_int("MEM.NC|A01|0") == 1234
    assert ftp.get_bool("MEM.NC|A01|1") is True
    assert ftp.get_double("MEM.NC|A02|0") == 2.5
    assert ftp.get_string_list("MEM.NC|B01") == ["1", "", "3"]
    assert ftp.get_int_list("MEM.NC|B01") == [1, 3]
    assert fake.retrieved == ["RETR MEM.NC"]
    assert not ftp.acquisition_error

    with pytest.raises(InvalidBooleanError):
        ftp.get_bool("MEM.NC|A02|0")
    with pytest.raises(KeyNotFoundError):
        ftp.get_string("MEM.NC|Z01|0")
    with pytest.raises(InvalidParameterError):
        ftp.get_string("MEM.NC|A01")


def test_missing_file_fails_for_the_cycle_only(clock):
    ftp, fake, _ = make_ftp({}, clock)
    with pytest.raises(TransportError) as excinfo:
        ftp.get_string("NOPE.NC|A01|0")
    assert not excinfo.value.connectivity
    with pytest.raises(PreviouslyFailedError):
        ftp.get_string("NOPE.NC|A01|0")
    assert fake.retrieved == ["RETR NOPE.NC"]
    assert not ftp.cache.is_blocked()
    assert ftp.connected
    assert ftp.acquisition_error


def test_timeout_triggers_backoff(clock):
    ftp, fake, factory = make_ftp({"MEM.NC": MEM}, clock)
    fake.retr_error = socket.timeout("timed out")
    with pytest.raises(TransportTimeoutError):
        ftp.get_string("MEM.NC|A01|0")
    assert fake.closed
    assert ftp.cache.is_blocked()

    ftp.finish()
    assert ftp.start() is False
    with pytest.raises(BackoffError):
        ftp.get_string("MEM.NC|A01|0")

    clock.advance(60)
    second = FakeFTP({"MEM.NC": MEM})
    factory.sessions.append(second)
    assert ftp.start()
    assert ftp.get_string("MEM.NC|A01|0") == "1234"


def test_connection_loss_triggers_backoff(clock):
    ftp, fake, _ = make_ftp({"MEM.NC": MEM}, clock)
    fake.retr_error = ConnectionResetError("reset")
    with pytest.raises(TransportError) as excinfo:
        ftp.get_string("MEM.NC|A01|0")
    assert excinfo.value.connectivity
    assert ftp.cache.is_blocked()


def test_unreachable_host_starts_backoff(clock):
    fake = FakeFTP()
    fake.connect_error = OSError("unreachable")
    ftp = BrotherFtp("10.0.0.5", "user", "secret", ftp_factory=FtpFactory(fake), clock=clock)
    assert ftp.start() is False
    assert ftp.cache.is_blocked()
    assert ftp.session is None


def test_refused_login_does_not_start_backoff(clock):
    fake = FakeFTP()
    fake.login_error = ftplib.error_perm("530 Login incorrect")
    ftp = BrotherFtp("10.0.0.5", "user", "bad", ftp_factory=FtpFactory(fake), clock=clock)
    assert ftp.start() is False
    assert not ftp.cache.is_blocked()


def test_changing_credentials_drops_the_session(clock):
    ftp, fake, _ = make_ftp({}, clock)
    ftp.login = "user"
    ftp.password = "secret"
    ftp.host = "10.0.0.5"
    assert ftp.session is fake and not fake.closed

    ftp.password = "other"
    assert fake.closed
    assert ftp.session is None
    assert not ftp.connected


def test_finish_quits_the_session(clock):
    ftp, fake, _ = make_ftp({}, clock)
    ftp.finish()
    assert fake.quit_called
    assert not ftp.connected
    # Reconnects on the next cycle with the same session object.
    assert ftp.start()
    assert ftp.session is fake


def test_batch_getters_use_nc_files(clock):
    files = {
        "ALARM.NC": "A01,030017,\r\n",
        "MAINTC.NC": "M01,10,Check ATC,1,1000,999,2000\r\n",
        "MCRNM1.NC": "C500,12.5\r\nC501,\r\n",
        "TOLNM1.NC": "T01,0,0,0,0,3,500,400,10,'TAP',0\r\n",
    }
    ftp, fake, _ = make_ftp(files, clock, machine_type="C")
    (alarm,) = ftp.get_alarms()
    assert alarm.properties["key"] == "SV0017"
    (notice,) = ftp.get_maintenance_notice()
    assert notice.properties["type"] == "Tool change times (No. of times)"
    assert ftp.get_macro_set_metric(",C500,C501") == {"C500": 12.5}
    data = ftp.get_tool_life_data("TOLNM1.NC")
    assert data[0].life_descriptions[0].unit is ToolUnit.NUMBER_OF_TIMES
    assert sorted(fake.retrieved) == ["RETR ALARM.NC", "RETR MAINTC.NC", "RETR MCRNM1.NC", "RETR TOLNM1.NC"]


def test_alarms_generation_b_over_ftp(clock):
    ftp, fake, _ = make_ftp({"MEM.NC": MEM}, clock, machine_type="B")
    assert [a.number for a in ftp.get_alarms()] == ["1234", "5678"]


def test_empty_file_name_is_rejected(clock):
    ftp, _, _ = make_ftp({}, clock)
    with pytest.raises(InvalidParameterError):
        ftp.get_symbol_table("")


def test_login_less_start_clears_the_previous_cycle(clock):
    ftp, _, _ = make_ftp({}, clock)
    with pytest.raises(TransportError):
        ftp.get_string("NOPE.NC|A01|0")
    assert ftp.acquisition_error
    ftp.finish()

    ftp.login = ""
    assert ftp.start() is False
    assert ftp.acquisition_error is False
