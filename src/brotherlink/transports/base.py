# transports/base.py
from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from typing import Callable, Dict, List, Optional

from ..alarms import AlarmBuilder
from ..cache import DEFAULT_COOLDOWN_S, ResponseCache
from ..errors import InvalidBooleanError, InvalidParameterError, UnsupportedMachineTypeError
from ..model import CncAlarm, ToolLifeData
from ..symbol_table import SymbolTable
from ..tool_life import MIN_TOOL_FIELDS, ToolLifeBuilder

log = logging.getLogger(__name__)

MAINTENANCE_FIELDS = 6


def parse_bool(text: str) -> bool:
    """
    Convert a controller boolean token.

    Raises:
        InvalidBooleanError: For anything but 0/OFF/1/ON.
    """
    if text in ("0", "OFF"):
        return False
    if text in ("1", "ON"):
        return True
    raise InvalidBooleanError(f"Cannot convert {text!r} into a boolean")


def parse_list_string(param: str) -> List[str]:
    """
    Split a list whose first character is the separator, e.g. ``",C500,C673"``.

    Returns:
        Non-empty items in order.
    """
    if not param:
        return []
    separator, body = param[0], param[1:]
    return [item for item in body.split(separator) if item]


def split_file_param(param: str, expected: int) -> List[str]:
    """
    Split a ``file|symbol[|position]`` parameter.

    Raises:
        InvalidParameterError: On a wrong element count or an empty file/symbol.
    """
    parts = (param or "").split("|")
    if len(parts) != expected:
        raise InvalidParameterError(f"Invalid param {param!r}: {expected} elements expected")
    if not parts[0]:
        raise InvalidParameterError(f"File name is empty in {param!r}")
    if not parts[1]:
        raise InvalidParameterError(f"Symbol is empty in {param!r}")
    return parts


class Transport(ABC):
    """
    One way of reading a controller (TCP, FTP or HTTP), driven by the host once per
    acquisition cycle: ``start()``, typed getters, ``finish()``.
    """

    name = "transport"

    def __init__(self, *, cooldown_s: float = DEFAULT_COOLDOWN_S, clock: Callable[[], float] = time.monotonic) -> None:
        self.cache = ResponseCache(self.name, cooldown_s=cooldown_s, clock=clock)

    @abstractmethod
    def start(self) -> bool:
        """Begin a cycle; returns False when the transport cannot be used."""

    def finish(self) -> None:
        """End a cycle."""

    def close(self) -> None:
        """Release the underlying connection."""

    @property
    def acquisition_error(self) -> bool:
        """True once something was requested this cycle and nothing could be read."""
        return self.cache.requested and not self.cache.succeeded


class FileTransport(Transport):
    """
    Shared getters over symbol-table files, whatever transport fetches the files.

    Subclasses provide ``get_symbol_table`` and the file naming of their transport.
    """

    FILE_SUFFIX = ""
    MEMORY_FILE = "MEM"
    ALARM_FILE = "ALARM"
    MAINTENANCE_FILE = "MAINTC"
    ALARM_B_SYMBOL = "E01"

    def __init__(
        self,
        *,
        machine_type: str = "",
        alarm_builder: Optional[AlarmBuilder] = None,
        cooldown_s: float = DEFAULT_COOLDOWN_S,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        super().__init__(cooldown_s=cooldown_s, clock=clock)
        self.machine_type = machine_type
        self.alarm_builder = alarm_builder or AlarmBuilder()
        self.tool_life_builder = ToolLifeBuilder()

    @abstractmethod
    def get_symbol_table(self, file_name: str) -> SymbolTable:
        """Read and parse a whole file (cached for the cycle)."""

    def _file(self, base_name: str) -> str:
        return base_name + self.FILE_SUFFIX

    def _macro_file(self, unit_letter: str) -> str:
        return self._file(f"MCRN{unit_letter}1")

    def _macro_symbol(self, macro_name: str) -> str:
        return macro_name

    # ---------------- file|symbol[|position] getters ----------------
    def get_string_list_from_file(self, param: str) -> List[str]:
        """
        Args:
            param: ``{file}|{symbol}``.

        Returns:
            Every field of the symbol row.
        """
        try:
            file_name, symbol = split_file_param(param, 2)
            return self.get_symbol_table(file_name).get_list(symbol)
        except Exception as exc:
            log.error("%s get_string_list_from_file: param=%s, %s", self.name, param, exc)
            raise

    def get_int_list_from_file(self, param: str) -> List[int]:
        """Row fields as integers, empty fields skipped."""
        return [int(value) for value in self.get_string_list_from_file(param) if value]

    def get_string_from_file(self, param: str) -> str:
        """
        Args:
            param: ``{file}|{symbol}|{position}``.
        """
        try:
            file_name, symbol, position_text = split_file_param(param, 3)
            try:
                position = int(position_text)
            except ValueError:
                raise InvalidParameterError(f"{position_text!r} is not a number in {param!r}") from None
            value = self.get_symbol_table(file_name).get_field(symbol, position)
        except Exception as exc:
            log.error("%s get_string_from_file: param=%s, %s", self.name, param, exc)
            raise
        log.debug("%s get_string_from_file: return %s for %s", self.name, value, param)
        return value

    def get_int_from_file(self, param: str) -> int:
        return int(self.get_string_from_file(param))

    def get_double_from_file(self, param: str) -> float:
        return float(self.get_string_from_file(param))

    def get_bool_from_file(self, param: str) -> bool:
        return parse_bool(self.get_string_from_file(param))

    # ---------------- batch consumers ----------------
    def get_maintenance_notice(self) -> List[CncAlarm]:
        """Maintenance notices of the ``MAINTC`` file; rows without 6 fields are skipped."""
        table = self.get_symbol_table(self._file(self.MAINTENANCE_FILE))
        result: List[CncAlarm] = []
        for symbol, fields in table.items():
            if len(fields) != MAINTENANCE_FIELDS:
                log.warning(
                    "Wrong number of parts for %s: %d instead of %d", symbol, len(fields), MAINTENANCE_FIELDS
                )
                continue
            alarm = self.alarm_builder.build_maintenance_alarm(*fields)
            if alarm is not None:
                result.append(alarm)
        return result

    def get_alarms(self) -> List[CncAlarm]:
        """
        Current alarms, decoded according to the machine generation.

        Raises:
            UnsupportedMachineTypeError: When the machine type is neither B nor C.
        """
        result: List[CncAlarm] = []
        if self.machine_type == "B":
            param = f"{self._file(self.MEMORY_FILE)}|{self.ALARM_B_SYMBOL}"
            for text in self.get_string_list_from_file(param):
                alarm = self.alarm_builder.build_alarm_b(text)
                if alarm is not None:
                    result.append(alarm)
        elif self.machine_type == "C":
            table = self.get_symbol_table(self._file(self.ALARM_FILE))
            for fields in table.values():
                for text in fields:
                    try:
                        alarm = self.alarm_builder.build_alarm_c(text)
                    except Exception:
                        log.exception("Skip alarm %r", text)
                        continue
                    if alarm is not None:
                        result.append(alarm)
        else:
            log.error("%s: machine type %r is not supported", self.name, self.machine_type)
            raise UnsupportedMachineTypeError(f"Machine type {self.machine_type!r} is not supported")
        return result

    def get_macro_set_metric(self, param: str) -> Dict[str, float]:
        """
        Args:
            param: Separator-prefixed macro list, e.g. ``",C500,C673"``.
        """
        return self._get_macro_set("M", parse_list_string(param))

    def get_macro_set_inches(self, param: str) -> Dict[str, float]:
        return self._get_macro_set("I", parse_list_string(param))

    def _get_macro_set(self, unit_letter: str, macro_names: List[str]) -> Dict[str, float]:
        table = self.get_symbol_table(self._macro_file(unit_letter))
        result: Dict[str, float] = {}
        for macro_name in macro_names:
            symbol = self._macro_symbol(macro_name)
            if symbol not in table:
                continue
            fields = table[symbol]
            if not fields or not fields[0]:
                log.warning("Macro %s is empty", symbol)
                continue
            try:
                result[macro_name] = float(fields[0])
            except ValueError:
                log.warning("Value %r of macro %s cannot be parsed as a number", fields[0], symbol)
        return result

    def get_tool_life_data(self, file_name: str) -> ToolLifeData:
        """
        Args:
            file_name: Tool file (``TOLNM1`` metric or ``TOLNI1`` inches, with the
                transport's extension if any).
        """
        data = ToolLifeData()
        table = self.get_symbol_table(file_name)
        for symbol, fields in table.items():
            if len(fields) >= MIN_TOOL_FIELDS:
                self.tool_life_builder.add_tool_life(data, symbol, fields)
        return data
