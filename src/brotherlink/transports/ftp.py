# transports/ftp.py
from __future__ import annotations

import ftplib
import logging
import socket
import time
from typing import Callable, List, Optional

from ..alarms import AlarmBuilder
from ..cache import DEFAULT_COOLDOWN_S
from ..errors import InvalidParameterError, TransportError, TransportTimeoutError
from ..symbol_table import SymbolTable
from .base import FileTransport

log = logging.getLogger(__name__)


class BrotherFtp(FileTransport):
    """
    Read whole machine files (``MEM.NC``, ``ALARM.NC``, ``TOLNM1.NC``...) from the
    controller's FTP server and decode them as symbol tables.

    The session is created lazily, connected at ``start()`` and disconnected at
    ``finish()``. Changing host, login or password drops it.
    """

    name = "BrotherFtp"
    FILE_SUFFIX = ".NC"
    DEFAULT_TIMEOUT_S = 0.2

    def __init__(
        self,
        host: str = "",
        login: str = "",
        password: str = "",
        *,
        timeout_s: float = DEFAULT_TIMEOUT_S,
        machine_type: str = "",
        alarm_builder: Optional[AlarmBuilder] = None,
        cooldown_s: float = DEFAULT_COOLDOWN_S,
        clock: Callable[[], float] = time.monotonic,
        ftp_factory=ftplib.FTP,
    ) -> None:
        """
        Args:
            host: Controller hostname or IP.
            login: FTP user; the transport stays idle without it.
            password: FTP password.
            timeout_s: Per-operation read timeout.
            machine_type: "B" or "C" machine generation.
            alarm_builder: Builder used by the alarm getters.
            cooldown_s: Backoff after a connectivity failure.
            clock: Monotonic time source for the backoff deadline.
            ftp_factory: ``ftplib.FTP`` compatible factory, called with ``timeout=`` (tests).
        """
        super().__init__(machine_type=machine_type, alarm_builder=alarm_builder, cooldown_s=cooldown_s, clock=clock)
        self._host = host
        self._login = login
        self._password = password
        self.timeout_s = timeout_s
        self._ftp_factory = ftp_factory
        self.session: Optional[ftplib.FTP] = None
        self._connected = False

    # ---------------- credentials ----------------
    @property
    def host(self) -> str:
        return self._host

    @host.setter
    def host(self, value: str) -> None:
        if value != self._host:
            self._drop_session()
            self._host = value

    @property
    def login(self) -> str:
        return self._login

    @login.setter
    def login(self, value: str) -> None:
        if value != self._login:
            self._drop_session()
            self._login = value

    @property
    def password(self) -> str:
        return self._password

    @password.setter
    def password(self, value: str) -> None:
        if value != self._password:
            self._drop_session()
            self._password = value

    # ---------------- cycle ----------------
    @property
    def connected(self) -> bool:
        return self.session is not None and self._connected

    def start(self) -> bool:
        """
        Reset the cycle cache and connect the FTP session if needed.

        Returns:
            False without login, during backoff or when the connection fails.
        """
        self.cache.start_cycle()

        if not self._login:
            log.warning("Start: cannot initialize a FTP connection with no login")
            return False

        if self.connected:
            return True
        if self.cache.is_blocked():
            log.info("Start: backoff active, no FTP connection to %s", self._host)
            return False

        if self.session is None:
            log.debug("Start: create the FTP session for %s", self._host)
            self.session = self._ftp_factory(timeout=self.timeout_s)
        try:
            self.session.connect(self._host, timeout=self.timeout_s)
            self.session.login(self._login, self._password)
        except (OSError, EOFError) as exc:
            log.error("Start: cannot connect to ftp://%s: %s", self._host, exc)
            self._drop_session()
            self.cache.trigger_backoff()
            return False
        except ftplib.Error as exc:
            log.error("Start: FTP login to %s refused: %s", self._host, exc)
            self._drop_session()
            return False
        self._connected = True
        return True

    def finish(self) -> None:
        if not self.connected:
            return
        try:
            self.session.quit()
        except ftplib.all_errors as exc:
            log.debug("Finish: quit failed (%s), close the session", exc)
            self.session.close()
        self._connected = False

    def close(self) -> None:
        self._drop_session()

    def _drop_session(self) -> None:
        if self.session is not None:
            try:
                self.session.close()
            except OSError:
                log.debug("Close of the FTP session failed", exc_info=True)
        self.session = None
        self._connected = False

    # ---------------- files ----------------
    def get_symbol_table(self, file_name: str) -> SymbolTable:
        """
        Download and parse a file, at most once per cycle.

        Raises:
            InvalidParameterError: On an empty file name.
            TransportTimeoutError: On a timeout (starts the backoff).
            TransportError: On any other FTP failure; connection losses start the backoff.
        """
        if not file_name:
            log.error("GetSymbolTable: invalid file name")
            raise InvalidParameterError("Empty file name")
        return self.cache.resolve(file_name, lambda: self._download(file_name))

    def _download(self, file_name: str) -> SymbolTable:
        if not self.connected:
            log.error("Download: FTP session is not connected")
            raise TransportError("FTP session not connected", connectivity=True)

        log.info("Download: read ftp://%s/%s", self._host, file_name)
        chunks: List[bytes] = []
        try:
            self.session.retrbinary(f"RETR {file_name}", chunks.append)
        except socket.timeout as exc:
            log.error("Download: timeout when trying to read %s of machine %s", file_name, self._host)
            self._drop_session()
            raise TransportTimeoutError(f"Timeout reading {file_name}", cause=exc) from exc
        except (OSError, EOFError) as exc:
            log.error("Download: connection lost when trying to read %s of machine %s: %s", file_name, self._host, exc)
            self._drop_session()
            raise TransportError(f"Connection lost reading {file_name}", connectivity=True, cause=exc) from exc
        except ftplib.Error as exc:
            log.error("Download: FTP error when trying to read %s of machine %s: %s", file_name, self._host, exc)
            raise TransportError(f"FTP error reading {file_name}: {exc}", cause=exc) from exc

        content = b"".join(chunks).decode("utf-8", errors="replace")
        log.info("Download: %s successfully read", file_name)
        return SymbolTable.parse(content, source=file_name)

    # FTP flavoured names of the file getters
    get_string = FileTransport.get_string_from_file
    get_int = FileTransport.get_int_from_file
    get_double = FileTransport.get_double_from_file
    get_bool = FileTransport.get_bool_from_file
    get_string_list = FileTransport.get_string_list_from_file
    get_int_list = FileTransport.get_int_list_from_file
