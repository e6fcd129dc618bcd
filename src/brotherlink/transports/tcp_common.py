from __future__ import annotations

import logging
from typing import List

from ..errors import CompletionCodeError, FramingError

log = logging.getLogger(__name__)

DELIMITER = "%"
CR = "\r"
LF = "\n"
HEADER_LENGTH = 19  # '%' + 'C' + 3 + 4 + 8 + 2-digit completion code
COMPLETION_CODE_OFFSET = 17

COMPLETION_CODES: dict[int, str] = {
    0: "Normally ended",
    1: "Invalid data is received",
    2: "Illegal slave command header",
    4: "Illegal slave command check sum",
    5: "Currently in editing or operation mode, so processing is not possible.",
    6: "Editing error occurred during file operation.",
    7: "The specified data does not exist.",
    8: "Slave command data name is incorrect.",
    9: "The specified data cannot be saved or deleted.",
    10: "Data protection enabled",
    11: "Remote operation not permitted",
    13: "The item of the received data is not within the allowed range or the number of items doesn't match.",
    14: "Data version error",
    15: "During special startup",
    16: "Cannot read the specified data.",
    17: "Output of drawing data was attempted during drawing.",
    18: "The folder already exists when creating the folder.",
    19: "Designation of data size is abnormal.",
    20: "Binary data storage error.",
    30: "The value is outside the specified range.",
    31: "Cannot update the value.",
    32: "A change is required while the value is already being edited.",
    33: "When changing the ATC tool, the tool is not registered in the specified group.",
    34: (
        "When changing the ATC tool, changing a magazine item (group / main tool / drawing color) "
        "without a tool number assigned was attempted."
    ),
    35: "When changing the ATC tool, the pot adjacent to the specified pot contains a large tool.",
    36: "Changing the ATC tool was attempted during memory operation.",
    37: "Changing the ATC tool was attempted during MDI operation.",
    38: "Unspecified error occurred during ATC tool change.",
    39: "When changing the ATC tool, registering the unregistered tool in the tool list was attempted.",
    40: "Conflict occurred due to communication using other port.",
    41: "Check sum error occurred in the specified data.",
    42: "Parity error occurred in the specified data.",
    43: "The specified data is too large to be stored.",
    44: "The specified data cannot be stored because programs #8000 to #8999 are write-protected.",
    45: "Machine unit system is different.",
    46: "The tool that is unable to change group/main tool/tool type/drawing color in ATC tool change is set.",
    60: "Mode change not permitted",
    61: "Mode change not permitted signal is on.",
    62: "MDI operation mode",
    63: "During tool change",
    64: "During automatic centering",
    65: "During automatic workpiece measurement",
    66: "Automatic door operation not possible",
    67: "Operation not possible",
    68: "No program",
    69: "Not in memory operation mode (or edit-during-operation mode)",
    70: "The outer door is open.",
    71: "The door is open.",
    72: "The side door is open.",
    73: "Resetting",
    74: "Servo control is on.",
    75: "[FEED HOLD] switch is held down.",
    76: "Zero return was not conducted.",
    77: "Restarting / repeating the program OR sequence search in progress",
    78: "Pallet position error",
    79: "Performing tool breakage detection",
    80: "Program number error OR Different from pallet program",
    81: "Outer pallet A and B-axes operating",
    82: "No quick table",
    83: "[PALLET] key is set to [OFF].",
    84: "Production counter ended",
    85: "Executing external output command",
    86: "Memory operation mode",
    87: "External input not available",
    88: "In handle mode",
    89: "XY-axes lock signal is on.",
    90: "Z-axis lock signal is on.",
    91: "*-axis lock signal is on.",
    92: "Pot is not at the top end.",
    93: "Zero return command error",
    94: "Indexing not permitted signal is on.",
    95: "Pallet start reversed",
    96: "Outer pallet operating",
    97: "Communicating",
    98: "NC or conversation mode is not selected correctly.",
    99: "Reservation",
}


def describe_completion_code(code: int) -> str:
    """
    Map a completion code to its description.

    Args:
        code: Completion code reported in the response header.

    Returns:
        Description, or "Unknown" for unmapped codes.
    """
    return COMPLETION_CODES.get(code, "Unknown")


def render_control_chars(text: str) -> str:
    """Render CR/LF visibly for log messages."""
    return text.replace(CR, "{CR}").replace(LF, "{LF}")


def compute_checksum(body: str) -> str:
    """
    Compute the frame checksum.

    Args:
        body: Every character of the frame before the checksum line
            (without the leading '%', with the CR/LF already written).

    Returns:
        Sum of the character codes modulo 16, as two zero-padded digits.
    """
    return f"{sum(ord(c) for c in body) % 16:02d}"


def build_packet(command: str, function: str, message: str, data: str = "") -> str:
    """
    Build a complete '%'-delimited command frame.

    Frame: ``%C{command:3}{function:4}{message:8}00{CR}[{LF}{data}{CR}]{LF}{checksum}%``

    Args:
        command: Command type, up to 3 characters (e.g. ``LOD``).
        function: Function, up to 4 characters.
        message: Message, up to 8 characters.
        data: Optional data block.

    Returns:
        Frame ready to be encoded in ASCII.
    """
    body = f"C{command:<3}{function:<4}{message:<8}00{CR}"
    if data:
        body += f"{LF}{data}{CR}"
    packet = body + LF + compute_checksum(body)
    log.debug("Full packet is %%%s%%", render_control_chars(packet))
    return DELIMITER + packet + DELIMITER


def verify_packet(packet: str) -> bool:
    """
    Check that a frame built by ``build_packet`` carries a matching checksum.

    Args:
        packet: Full frame including both delimiters.

    Returns:
        True when the trailing two digits equal the checksum of the body.
    """
    if len(packet) < 2 or not packet.startswith(DELIMITER) or not packet.endswith(DELIMITER):
        return False
    inner = packet[1:-1]
    body, sep, checksum = inner.rpartition(LF)
    if not sep:
        return False
    return compute_checksum(body) == checksum


def extract_frame(buffer: str) -> str:
    """
    Extract the last complete frame from the accumulated bytes.

    The buffer can still hold the tail of a previous answer: the frame is delimited by
    the last '%' and the '%' immediately preceding it.

    Args:
        buffer: Everything read from the socket for one query.

    Returns:
        The frame, delimiters included.

    Raises:
        FramingError: If fewer than two '%' were received.
    """
    last_pos = buffer.rfind(DELIMITER)
    first_pos = buffer.find(DELIMITER)
    if first_pos == last_pos:
        log.error("Machine answer with wrong '%%' number: %s", render_control_chars(buffer))
        raise FramingError(f"Expected a '%'-delimited frame, got {buffer!r}")

    while True:
        next_pos = buffer.find(DELIMITER, first_pos + 1)
        if next_pos == last_pos:
            break
        first_pos = next_pos

    if first_pos != 0 or last_pos != len(buffer) - 1:
        log.warning("Machine answer with too many '%%': %s", render_control_chars(buffer))
        buffer = buffer[first_pos:last_pos + 1]
        log.info("Result after extraction is %s", render_control_chars(buffer))
    return buffer


def parse_response(frame: str) -> List[str]:
    """
    Validate a response frame and return its data lines.

    Args:
        frame: Frame returned by ``extract_frame``.

    Returns:
        Data lines (header and checksum line excluded), trimmed of spaces.

    Raises:
        FramingError: On an empty frame, a header that is not 19 characters long
            or a non-numeric completion code.
        CompletionCodeError: When the completion code is not 0.
    """
    if not frame:
        log.error("Empty response")
        raise FramingError("Empty response")

    parts = frame.replace(CR, "").split(LF)
    header = parts[0]
    if len(header) != HEADER_LENGTH:
        log.error("Invalid length of the first element %r (should be %d)", header, HEADER_LENGTH)
        raise FramingError(f"Invalid header {header!r}")

    code_text = header[COMPLETION_CODE_OFFSET:]
    try:
        code = int(code_text)
    except ValueError:
        log.error("Invalid completion code %r in %r", code_text, header)
        raise FramingError(f"Invalid completion code {code_text!r}") from None

    if code != 0:
        description = describe_completion_code(code)
        log.error("Completion code %d: %s", code, description)
        raise CompletionCodeError(code, description)

    return [line.strip(" ") for line in parts[1:-1]]
