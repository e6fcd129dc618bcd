# transports/http.py
from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

import requests

from ..cache import DEFAULT_COOLDOWN_S
from ..errors import InvalidParameterError, TransportError, TransportTimeoutError
from ..model import CncAlarm
from .base import Transport

log = logging.getLogger(__name__)

ALARM_LOG_PAGE = "alarm_log"
_CELL = r"[^<]*<[^>]*>([^<]*)</td>"
ALARM_ROW_RE = re.compile(r'alarm_level_(\d+)">' + _CELL * 4)


@dataclass
class HttpAlarmData:
    """One row of the ``alarm_log`` page."""

    message: str
    level: str
    program: str
    block_number: str


def parse_alarm_log(page: str) -> Dict[str, HttpAlarmData]:
    """
    Extract the alarm rows of the ``alarm_log`` page.

    Returns:
        Alarm key (e.g. ``SV0017``) → row data; a later row replaces an earlier one.
    """
    result: Dict[str, HttpAlarmData] = {}
    for match in ALARM_ROW_RE.finditer(page):
        key = match.group(2).strip(" ")
        result[key] = HttpAlarmData(
            message=match.group(3).strip(" "),
            level=match.group(1),
            program=match.group(4).strip(" "),
            block_number=match.group(5).strip(" "),
        )
        log.info("Found the alarm %s with attributes %s", key, result[key])
    return result


class BrotherHttp(Transport):
    """Scrape the controller's embedded web pages, mainly to complete alarm details."""

    name = "BrotherHttp"
    DEFAULT_TIMEOUT_S = 0.2

    def __init__(
        self,
        host: str = "",
        *,
        timeout_s: float = DEFAULT_TIMEOUT_S,
        enabled: bool = True,
        cooldown_s: float = DEFAULT_COOLDOWN_S,
        clock: Callable[[], float] = time.monotonic,
        session_factory=requests.Session,
    ) -> None:
        super().__init__(cooldown_s=cooldown_s, clock=clock)
        self.host = host
        self.timeout_s = timeout_s
        self.enabled = enabled
        self._session_factory = session_factory
        self.session: Optional[requests.Session] = None
        self._alarm_data: Optional[Dict[str, HttpAlarmData]] = None

    def start(self) -> bool:
        self.cache.start_cycle()
        self._alarm_data = None
        if not self.enabled:
            return False
        if self.session is None:
            self.session = self._session_factory()
        return True

    def close(self) -> None:
        if self.session is not None:
            self.session.close()
            self.session = None

    def read_page(self, path: str) -> str:
        """
        Download ``http://{host}/{path}``, at most once per cycle.

        Raises:
            InvalidParameterError: On an empty path.
            TransportTimeoutError: On a timeout (starts the backoff).
            TransportError: On any other HTTP failure; connection failures start the backoff.
        """
        if not path:
            log.error("ReadPage: empty path")
            raise InvalidParameterError("Empty path")
        return self.cache.resolve(path, lambda: self._download(path))

    get_page = read_page

    def _download(self, path: str) -> str:
        if self.session is None:
            raise TransportError("HTTP transport not started", connectivity=True)
        url = f"http://{self.host}/{path}"
        log.info("ReadPage: reading %s", url)
        try:
            response = self.session.get(url, timeout=self.timeout_s)
            response.raise_for_status()
        except requests.Timeout as exc:
            log.error("ReadPage: timeout when trying to read %s of machine %s", path, self.host)
            raise TransportTimeoutError(f"Timeout reading {url}", cause=exc) from exc
        except requests.ConnectionError as exc:
            log.error("ReadPage: cannot connect to %s: %s", self.host, exc)
            raise TransportError(f"Cannot connect to {url}", connectivity=True, cause=exc) from exc
        except requests.RequestException as exc:
            log.error("ReadPage: error when trying to read %s of machine %s: %s", path, self.host, exc)
            raise TransportError(f"HTTP error reading {url}: {exc}", cause=exc) from exc
        log.info("ReadPage: %s successfully read", url)
        return response.text

    def get_http_alarms(self) -> Dict[str, HttpAlarmData]:
        """Rows of the ``alarm_log`` page, parsed once per cycle."""
        if self._alarm_data is None:
            self._alarm_data = parse_alarm_log(self.read_page(ALARM_LOG_PAGE))
        return self._alarm_data

    def complete_with_http_alarms(self, alarms: List[CncAlarm]) -> List[CncAlarm]:
        """
        Add message, level, program and block number from the ``alarm_log`` page to
        the alarms whose ``key`` property matches a row.

        Returns:
            The same list, completed in place.
        """
        if not alarms:
            log.debug("CompleteWithHttpAlarms: no alarm => nothing to do")
            return alarms

        http_alarms = self.get_http_alarms()
        for alarm in alarms:
            key = alarm.properties.get("key")
            if key is None or key not in http_alarms:
                continue
            data = http_alarms[key]
            log.debug("CompleteWithHttpAlarms: complete %s with %s", key, data)
            alarm.message = data.message
            alarm.properties["level"] = data.level
            alarm.properties["program"] = data.program
            alarm.properties["block number"] = data.block_number
        return alarms
