from __future__ import annotations

import logging
from typing import Optional, Sequence

from .model import LifeDirection, ToolEntry, ToolLifeData, ToolLifeDescription, ToolUnit

log = logging.getLogger(__name__)

MIN_TOOL_FIELDS = 10

# Field 4 of a tool row: life unit code -> (unit, multiplier to the stored unit)
LIFE_UNITS = {
    "2": (ToolUnit.TIME_SECONDS, 60.0),  # minutes
    "3": (ToolUnit.NUMBER_OF_TIMES, 1.0),
}
NO_LIFE_CODES = {"", "0", "1"}


def _field(fields: Sequence[str], index: int) -> str:
    return fields[index] if index < len(fields) else ""


class ToolLifeBuilder:
    """Turn ``T``-rows of a tool file (``TOLNM1``/``TOLNI1``) into tool-life records."""

    def add_tool_life(self, data: ToolLifeData, symbol: str, fields: Sequence[str]) -> Optional[ToolEntry]:
        """
        Add one tool to ``data``.

        Args:
            data: Record set to extend.
            symbol: Row key, ``T`` followed by the 2-digit tool number.
            fields: Row values: length compensation, length wear, cutter compensation,
                cutter wear, life unit, max, warning, current, tool name, ...

        Returns:
            The added tool, or None when the row is not a tool row.
        """
        if not symbol.startswith("T"):
            return None
        try:
            tool_number = int(symbol[1:3])
        except ValueError:
            log.error("Couldn't parse tool number %r", symbol)
            return None

        tool = data.add_tool(
            ToolEntry(
                tool_id=symbol,
                tool_number=str(tool_number),
                magazine_number=0,
                pot_number=tool_number,
            )
        )

        unit_code = _field(fields, 4)
        if unit_code in LIFE_UNITS:
            unit, multiplier = LIFE_UNITS[unit_code]
            description = self._build_description(
                _field(fields, 5), _field(fields, 6), _field(fields, 7), unit, multiplier
            )
            if description is not None:
                tool.life_descriptions.append(description)
        elif unit_code not in NO_LIFE_CODES:
            log.error("Unknown tool life unit %r for %s", unit_code, symbol)

        tool.properties["LengthCompensation"] = _field(fields, 0)
        tool.properties["CutterCompensation"] = _field(fields, 2)
        tool_name = _field(fields, 8).strip(" '")
        if tool_name:
            tool.properties["ToolName"] = tool_name
        return tool

    @staticmethod
    def _build_description(
        max_text: str,
        warning_text: str,
        current_text: str,
        unit: ToolUnit,
        multiplier: float,
    ) -> Optional[ToolLifeDescription]:
        current = -1.0
        if current_text:
            try:
                current = multiplier * float(current_text)
            except ValueError:
                log.error("Cannot parse current %r as a number; no tool life description", current_text)
                return None

        warning = -1.0
        if warning_text:
            try:
                warning = multiplier * float(warning_text)
            except ValueError:
                log.error("Cannot parse warning %r as a number", warning_text)

        limit = -1.0
        if max_text:
            try:
                limit = multiplier * float(max_text)
            except ValueError:
                log.error("Cannot parse max %r as a number", max_text)

        return ToolLifeDescription(
            unit=unit,
            direction=LifeDirection.DOWN,
            value=current,
            warning_offset=warning if warning > 0 else None,
            limit=limit if limit > 0 else None,
        )
