# model.py
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Dict, List, Optional


class ToolUnit(Enum):
    TIME_SECONDS = auto()
    NUMBER_OF_TIMES = auto()


class LifeDirection(Enum):
    UP = auto()
    DOWN = auto()


ALARM_SOURCE = "Brother"
ALARM_TYPE = "Alarm"
MAINTENANCE_TYPE = "Maintenance notice"


@dataclass
class CncAlarm:
    """One alarm or maintenance notice reported by the controller."""

    source: str
    type: str  # "Alarm" or "Maintenance notice"
    number: str  # alarm code
    message: str = ""
    properties: Dict[str, str] = field(default_factory=dict)


@dataclass
class ToolLifeDescription:
    """Current/limit/warning life data of one tool in a given unit."""

    unit: ToolUnit
    direction: LifeDirection
    value: float  # current value, -1 when unknown
    warning_offset: Optional[float] = None
    limit: Optional[float] = None


@dataclass
class ToolEntry:
    tool_id: str  # symbol key, e.g. T01
    tool_number: str
    magazine_number: Optional[int] = None
    pot_number: Optional[int] = None
    life_descriptions: List[ToolLifeDescription] = field(default_factory=list)
    properties: Dict[str, str] = field(default_factory=dict)


@dataclass
class ToolLifeData:
    """Ordered tool-life records of one controller."""

    tools: List[ToolEntry] = field(default_factory=list)

    def add_tool(self, tool: ToolEntry) -> ToolEntry:
        self.tools.append(tool)
        return tool

    def __len__(self) -> int:
        return len(self.tools)

    def __getitem__(self, index: int) -> ToolEntry:
        return self.tools[index]
