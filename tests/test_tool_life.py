import pytest

from brotherlink.model import LifeDirection, ToolLifeData, ToolUnit
from brotherlink.symbol_table import SymbolTable
from brotherlink.tool_life import ToolLifeBuilder


def _fields(row: str):
    table = SymbolTable.parse(row)
    symbol = next(iter(table))
    return symbol, table[symbol]


def test_minutes_are_stored_as_seconds():
    data = ToolLifeData()
    symbol, fields = _fields("T01,0,0,0,0,2,120,100,80,'DRILL',0")
    tool = ToolLifeBuilder().add_tool_life(data, symbol, fields)

    assert len(data) == 1 and data[0] is tool
    assert tool.tool_id == "T01"
    assert tool.tool_number == "1"
    assert tool.magazine_number == 0
    assert tool.pot_number == 1
    assert tool.properties["ToolName"] == "DRILL"
    assert tool.properties["LengthCompensation"] == "0"
    assert tool.properties["CutterCompensation"] == "0"

    (life,) = tool.life_descriptions
    assert life.unit is ToolUnit.TIME_SECONDS
    assert life.direction is LifeDirection.DOWN
    assert life.value == pytest.approx(80 * 60)
    assert life.warning_offset == pytest.approx(100 * 60)
    assert life.limit == pytest.approx(120 * 60)


def test_count_based_life():
    data = ToolLifeData()
    symbol, fields = _fields("T12,1.5,0,3.2,0,3,500,0,42, FACE MILL ,0")
    tool = ToolLifeBuilder().add_tool_life(data, symbol, fields)

    assert tool.tool_number == "12"
    assert tool.properties["LengthCompensation"] == "1.5"
    assert tool.properties["CutterCompensation"] == "3.2"
    assert tool.properties["ToolName"] == "FACE MILL"
    (life,) = tool.life_descriptions
    assert life.unit is ToolUnit.NUMBER_OF_TIMES
    assert life.value == 42
    assert life.limit == 500
    assert life.warning_offset is None


@pytest.mark.parametrize("unit_code", ["", "0", "1", "7"])
def test_rows_without_life_tracking_keep_the_tool(unit_code):
    data = ToolLifeData()
    symbol, fields = _fields(f"T03,0,0,0,0,{unit_code},10,5,1,'',0")
    tool = ToolLifeBuilder().add_tool_life(data, symbol, fields)
    assert tool is not None
    assert tool.life_descriptions == []
    assert "ToolName" not in tool.properties


def test_bad_current_value_drops_only_the_description(caplog):
    data = ToolLifeData()
    symbol, fields = _fields("T04,0,0,0,0,2,120,100,abc,'TAP',0")
    tool = ToolLifeBuilder().add_tool_life(data, symbol, fields)
    assert tool.life_descriptions == []
    assert tool.properties["ToolName"] == "TAP"
    assert "abc" in caplog.text


def test_bad_max_value_is_skipped():
    data = ToolLifeData()
    symbol, fields = _fields("T05,0,0,0,0,3,x,5,1,'',0")
    (life,) = ToolLifeBuilder().add_tool_life(data, symbol, fields).life_descriptions
    assert life.limit is None
    assert life.warning_offset == 5
    assert life.value == 1


@pytest.mark.parametrize("symbol", ["A01", "TXY", "T"])
def test_non_tool_rows_are_ignored(symbol):
    data = ToolLifeData()
    assert ToolLifeBuilder().add_tool_life(data, symbol, ["0"] * 10) is None
    assert len(data) == 0
