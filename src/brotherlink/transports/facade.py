# transports/facade.py
from __future__ import annotations

import logging
from typing import Dict, List, Optional

from ..alarms import AlarmBuilder
from ..model import CncAlarm, ToolLifeData
from .ftp import BrotherFtp
from .http import BrotherHttp
from .tcp import BrotherTcp

log = logging.getLogger(__name__)


class Brother:
    """
    One Brother controller seen through its three transports.

    Host and machine type are shared; every cycle tries FTP, TCP and HTTP and the
    cycle is usable as soon as one of them started.
    """

    def __init__(
        self,
        tcp: Optional[BrotherTcp] = None,
        ftp: Optional[BrotherFtp] = None,
        http: Optional[BrotherHttp] = None,
        *,
        alarm_builder: Optional[AlarmBuilder] = None,
    ) -> None:
        """
        Args:
            tcp: TCP query engine; a default one is created when omitted.
            ftp: FTP file transport; a default one is created when omitted.
            http: HTTP page transport; a default one is created when omitted.
            alarm_builder: Shared by the TCP and FTP transports when given.
        """
        self.tcp = tcp or BrotherTcp()
        self.ftp = ftp or BrotherFtp()
        self.http = http or BrotherHttp()
        if alarm_builder is not None:
            self.tcp.alarm_builder = alarm_builder
            self.ftp.alarm_builder = alarm_builder
        self._machine_type = self.tcp.machine_type

    # ---------------- shared settings ----------------
    @property
    def host(self) -> str:
        return self.ftp.host

    @host.setter
    def host(self, value: str) -> None:
        self.ftp.host = value
        self.tcp.host = value
        self.http.host = value

    @property
    def machine_type(self) -> str:
        return self._machine_type

    @machine_type.setter
    def machine_type(self, value: str) -> None:
        self._machine_type = value
        self.tcp.machine_type = value
        self.ftp.machine_type = value

    @property
    def tcp_port(self) -> int:
        return self.tcp.port

    @tcp_port.setter
    def tcp_port(self, value: int) -> None:
        self.tcp.port = value

    @property
    def tcp_timeout_s(self) -> float:
        return self.tcp.timeout_s

    @tcp_timeout_s.setter
    def tcp_timeout_s(self, value: float) -> None:
        self.tcp.timeout_s = value

    @property
    def ftp_login(self) -> str:
        return self.ftp.login

    @ftp_login.setter
    def ftp_login(self, value: str) -> None:
        self.ftp.login = value

    @property
    def ftp_password(self) -> str:
        return self.ftp.password

    @ftp_password.setter
    def ftp_password(self, value: str) -> None:
        self.ftp.password = value

    @property
    def ftp_timeout_s(self) -> float:
        return self.ftp.timeout_s

    @ftp_timeout_s.setter
    def ftp_timeout_s(self, value: float) -> None:
        self.ftp.timeout_s = value

    @property
    def http_timeout_s(self) -> float:
        return self.http.timeout_s

    @http_timeout_s.setter
    def http_timeout_s(self, value: float) -> None:
        self.http.timeout_s = value

    @property
    def acquisition_error(self) -> bool:
        """True when any transport was asked for data and could read nothing."""
        return self.tcp.acquisition_error or self.ftp.acquisition_error or self.http.acquisition_error

    # ---------------- cycle ----------------
    def start(self) -> bool:
        log.info("Start")
        results = []
        for transport in (self.ftp, self.tcp, self.http):
            try:
                results.append(transport.start())
            except Exception:
                log.exception("Start: start of %s failed", transport.name)
                results.append(False)
        return any(results)

    def finish(self) -> None:
        for transport in (self.tcp, self.ftp, self.http):
            try:
                transport.finish()
            except Exception:
                log.exception("Finish: finish of %s failed", transport.name)

    def close(self) -> None:
        for transport in (self.tcp, self.ftp, self.http):
            transport.close()

    # ---------------- TCP ----------------
    def get_tcp_string(self, param: str) -> str:
        return self.tcp.get_string(param)

    def get_tcp_int(self, param: str) -> int:
        return self.tcp.get_int(param)

    def get_tcp_double(self, param: str) -> float:
        return self.tcp.get_double(param)

    def get_tcp_bool(self, param: str) -> bool:
        return self.tcp.get_bool(param)

    def get_tcp_program_name(self, param: str) -> str:
        return self.tcp.get_program_name(param)

    def get_tcp_program_name_from_file(self, param: str = "") -> str:
        return self.tcp.get_program_name_from_file(param)

    def get_tcp_string_list_from_file(self, param: str) -> List[str]:
        return self.tcp.get_string_list_from_file(param)

    def get_tcp_int_list_from_file(self, param: str) -> List[int]:
        return self.tcp.get_int_list_from_file(param)

    def get_tcp_string_from_file(self, param: str) -> str:
        return self.tcp.get_string_from_file(param)

    def get_tcp_int_from_file(self, param: str) -> int:
        return self.tcp.get_int_from_file(param)

    def get_tcp_double_from_file(self, param: str) -> float:
        return self.tcp.get_double_from_file(param)

    def get_tcp_bool_from_file(self, param: str) -> bool:
        return self.tcp.get_bool_from_file(param)

    def get_tcp_maintenance_notice(self) -> List[CncAlarm]:
        return self.tcp.get_maintenance_notice()

    def get_tcp_alarms(self) -> List[CncAlarm]:
        return self.tcp.get_alarms()

    def get_tcp_macro_set_metric(self, param: str) -> Dict[str, float]:
        return self.tcp.get_macro_set_metric(param)

    def get_tcp_macro_set_inches(self, param: str) -> Dict[str, float]:
        return self.tcp.get_macro_set_inches(param)

    def get_tcp_tool_life_data(self, param: str) -> ToolLifeData:
        return self.tcp.get_tool_life_data(param)

    # ---------------- FTP ----------------
    def get_ftp_string(self, param: str) -> str:
        return self.ftp.get_string(param)

    def get_ftp_int(self, param: str) -> int:
        return self.ftp.get_int(param)

    def get_ftp_double(self, param: str) -> float:
        return self.ftp.get_double(param)

    def get_ftp_bool(self, param: str) -> bool:
        return self.ftp.get_bool(param)

    def get_ftp_string_list(self, param: str) -> List[str]:
        return self.ftp.get_string_list(param)

    def get_ftp_int_list(self, param: str) -> List[int]:
        return self.ftp.get_int_list(param)

    def get_ftp_maintenance_notice(self) -> List[CncAlarm]:
        return self.ftp.get_maintenance_notice()

    def get_ftp_alarms(self) -> List[CncAlarm]:
        return self.ftp.get_alarms()

    def get_ftp_macro_set_metric(self, param: str) -> Dict[str, float]:
        return self.ftp.get_macro_set_metric(param)

    def get_ftp_macro_set_inches(self, param: str) -> Dict[str, float]:
        return self.ftp.get_macro_set_inches(param)

    def get_ftp_tool_life_data(self, param: str) -> ToolLifeData:
        return self.ftp.get_tool_life_data(param)

    # ---------------- HTTP ----------------
    def complete_with_http_alarms(self, alarms: List[CncAlarm]) -> List[CncAlarm]:
        return self.http.complete_with_http_alarms(alarms)
