from __future__ import annotations

import logging
from pathlib import Path
from types import MappingProxyType
from typing import Dict, Mapping, Optional

from .model import ALARM_SOURCE, ALARM_TYPE, MAINTENANCE_TYPE, CncAlarm

log = logging.getLogger(__name__)

MAINTENANCE_KINDS: Mapping[int, str] = MappingProxyType(
    {
        1: "Spindle speed (x 1000 revs.)",
        2: "X-axis travel distance (m or 100 inch)",
        3: "Y-axis travel distance (m or 100 inch)",
        4: "Z-axis travel distance (m or 100 inch)",
        5: "axis 4 speed (rotation)",
        6: "axis 5 speed (rotation)",
        7: "axis 6 speed (rotation)",
        8: "axis 7 speed (rotation)",
        9: "axis 8 speed (rotation)",
        10: "Tool change times (No. of times)",
        11: "Magazine turn pitches (Pitch)",
        12: "Center-through-coolant ON time (Hours, minutes, seconds)",
        13: "Center-through-coolant ON times (No. of times)",
        14: "Outer/Front door closings (No. of times)",
        15: "Side door closings (No. of times)",
        16: "Inner door closings (No. of times)",
        17: "Servo ON times (No. of times)",
        18: "Power ON times (No. of times)",
        19: "Power ON time (Hours, minutes, seconds)",
        20: "P1 axis travel amount",
        21: "P2 axis travel amount",
        22: "P3 axis travel amount",
        23: "P4 axis travel amount",
    }
)
MAINTENANCE_MAX_KIND = 23

# Generation C alarm categories, keyed by the first two characters of the alarm text.
ALARM_CATEGORIES: Mapping[str, str] = MappingProxyType(
    {
        "01": "EX",
        "02": "EC",
        "03": "SV",
        "04": "NC",
        "05": "IO",
        "06": "SP",
        "07": "SM",
        "08": "SL",
        "09": "CM",
        "10": "ES",
        "11": "FC",
    }
)
INFORMATION_CATEGORY = "90"
UNKNOWN_CATEGORY = "unknown"


def _normalize_code(code: str) -> str:
    return code.lower().lstrip("0 ")


class AlarmTranslator:
    """
    Read-only alarm code → message/type/attributes lookup.

    Built from tab-separated lines ``code<TAB>message[<TAB>type=...][<TAB>key=value...]``.
    Codes are compared in lower case without leading zeros or spaces.
    """

    def __init__(
        self,
        messages: Mapping[str, str],
        types: Optional[Mapping[str, str]] = None,
        attributes: Optional[Mapping[str, Mapping[str, str]]] = None,
    ) -> None:
        self._messages = MappingProxyType(dict(messages))
        self._types = MappingProxyType(dict(types or {}))
        self._attributes = MappingProxyType({k: MappingProxyType(dict(v)) for k, v in (attributes or {}).items()})

    @classmethod
    def from_content(cls, content: str) -> "AlarmTranslator":
        messages: Dict[str, str] = {}
        types: Dict[str, str] = {}
        attributes: Dict[str, Dict[str, str]] = {}
        for line in content.splitlines():
            elements = [element for element in line.split("\t") if element]
            if len(elements) < 2:
                if line.strip():
                    log.warning("Bad alarm translation entry %r", line)
                continue
            code = _normalize_code(elements[0])
            if code in messages:
                log.info("Alarm translation %r changes from %r to %r", code, messages[code], elements[1])
            messages[code] = elements[1]
            for element in elements[2:]:
                name, sep, value = element.partition("=")
                if not sep:
                    log.warning("Cannot process alarm attribute %r", element)
                    continue
                if name.lower() == "type":
                    types[code] = value
                else:
                    attributes.setdefault(code, {})[name] = value
        log.debug("Parsed %d alarm translations", len(messages))
        return cls(messages, types, attributes)

    @classmethod
    def from_path(cls, path: Path) -> "AlarmTranslator":
        return cls.from_content(Path(path).read_text(encoding="utf-8"))

    def __len__(self) -> int:
        return len(self._messages)

    def translate(self, alarm: CncAlarm) -> None:
        """Fill message, type and properties of ``alarm`` when its code is known."""
        code = _normalize_code(alarm.number)
        message = self._messages.get(code)
        if not message:
            return
        alarm.message = message
        if self._types.get(code):
            alarm.type = self._types[code]
        alarm.properties.update(self._attributes.get(code, {}))


class AlarmBuilder:
    """Turn controller alarm texts into ``CncAlarm`` records."""

    def __init__(self, translator: Optional[AlarmTranslator] = None) -> None:
        """
        Args:
            translator: Optional lookup applied to generation B alarm codes.
        """
        self.translator = translator

    def build_maintenance_alarm(
        self,
        type_code: str,
        message: str,
        function: str,
        notification: str,
        current: str,
        end: str,
    ) -> Optional[CncAlarm]:
        """
        Build a maintenance notice from one ``MAINTC`` row.

        Args:
            type_code: Kind of monitored quantity, 0 (none) to 23.
            message: Text of the notice.
            function: Raw function field.
            notification: Raw notification threshold.
            current: Raw current value.
            end: Raw end value.

        Returns:
            The notice, or None for kind 0 and invalid kinds.
        """
        try:
            kind = int(type_code)
        except (TypeError, ValueError):
            log.error("Invalid maintenance type %r", type_code)
            return None
        if kind < 0 or kind > MAINTENANCE_MAX_KIND:
            log.error("Invalid maintenance type %r", type_code)
            return None
        if kind == 0:
            return None

        alarm = CncAlarm(ALARM_SOURCE, MAINTENANCE_TYPE, str(kind), message=message)
        if kind in MAINTENANCE_KINDS:
            alarm.properties["type"] = MAINTENANCE_KINDS[kind]
        alarm.properties["function"] = function
        alarm.properties["notification"] = notification
        alarm.properties["current"] = current
        alarm.properties["end"] = end
        return alarm

    def build_alarm_b(self, text: Optional[str]) -> Optional[CncAlarm]:
        """Generation B: the raw text is the alarm code."""
        if not text:
            return None
        alarm = CncAlarm(ALARM_SOURCE, ALARM_TYPE, text)
        if self.translator is not None:
            self.translator.translate(alarm)
        return alarm

    def build_alarm_c(self, text: Optional[str]) -> Optional[CncAlarm]:
        """
        Generation C: ``TTNNNN`` or ``TTNNNNAAAA`` (category, number, auxiliary number).

        Returns:
            The alarm, or None for empty texts and information markers (category 90).
        """
        if not text:
            return None
        if len(text) not in (6, 10):
            log.error("Invalid alarm length in %r", text)

        category = text[0:2].strip(" ")
        if category == INFORMATION_CATEGORY:
            return None
        abbreviation = ALARM_CATEGORIES.get(category, UNKNOWN_CATEGORY)

        number = text[2:6].strip(" ")
        alarm = CncAlarm(ALARM_SOURCE, ALARM_TYPE, number)
        alarm.properties["type"] = f"{abbreviation} ({category})"
        if len(text) == 10:
            alarm.properties["auxiliary number"] = text[6:10].strip(" ")
        alarm.properties["key"] = abbreviation + number
        return alarm
