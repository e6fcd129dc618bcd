# transports/tcp.py
from __future__ import annotations

import logging
import socket
import time
from typing import Callable, Dict, List, Optional, Tuple

from ..alarms import AlarmBuilder
from ..cache import DEFAULT_COOLDOWN_S
from ..errors import (
    EmptyResponseError,
    InvalidParameterError,
    NotConnectedError,
    PositionOutOfRangeError,
    SubstringOutOfRangeError,
    TransportError,
    TransportTimeoutError,
)
from ..symbol_table import SymbolTable
from .base import FileTransport, parse_bool, parse_list_string
from .tcp_common import DELIMITER, build_packet, extract_frame, parse_response, render_control_chars

log = logging.getLogger(__name__)

LOAD_COMMAND = "LOD"
SAVE_COMMAND = "SAV"
DEFAULT_PROGRAM_NAME_PARAM = "MEM|A01|0"
DEFAULT_HEADER_LINES = 10


def parse_query_param(param: str) -> Tuple[str, str, str, str, int, int]:
    """
    Parse ``cmd|func|msg[|data][~pos-len]``.

    Returns:
        (command, function, message, data, substring position, substring length);
        a length of 0 means no extraction.

    Raises:
        InvalidParameterError: On a malformed parameter.
    """
    if not param:
        raise InvalidParameterError("Empty parameter")
    position = length = 0
    query, tilde, extraction = param.rpartition("~")
    if not tilde:
        query = param
    else:
        bounds = extraction.split("-")
        if len(bounds) != 2:
            raise InvalidParameterError(f"Invalid substring instruction {extraction!r} in {param!r}")
        try:
            position, length = int(bounds[0]), int(bounds[1])
        except ValueError:
            raise InvalidParameterError(f"Substring instruction is not an integer in {param!r}") from None
        if position < 0 or length < 0:
            raise InvalidParameterError(f"Negative substring instruction in {param!r}")

    parts = query.split("|")
    if len(parts) not in (3, 4):
        raise InvalidParameterError(f"Invalid number of elements in {param!r}")
    _check_header_fields(parts[0], parts[1], parts[2])
    data = parts[3] if len(parts) == 4 else ""
    return parts[0], parts[1], parts[2], data, position, length


def _check_header_fields(command: str, function: str, message: str) -> None:
    if len(command) > 3 or len(function) > 4 or len(message) > 8:
        raise InvalidParameterError(
            f"Invalid length in one element: command={command!r} function={function!r} message={message!r}"
        )


def _format_number(value: float) -> str:
    text = repr(float(value))
    return text[:-2] if text.endswith(".0") else text


class BrotherTcp(FileTransport):
    """
    Query engine for the framed TCP protocol (port 10000).

    Each query is a ``%...%`` text frame; the answer is accumulated until it ends with
    '%' and no byte arrives for the poll interval, or until the idle timeout expires.
    Answers are memoized per exact packet for the current cycle.
    """

    name = "BrotherTcp"
    DEFAULT_PORT = 10000
    DEFAULT_TIMEOUT_S = 0.2
    POLL_INTERVAL_S = 0.01
    RECV_SIZE = 8192
    # total wait of one answer, in idle timeouts
    MAX_WAIT_FACTOR = 5

    def __init__(
        self,
        host: str = "",
        port: int = DEFAULT_PORT,
        *,
        timeout_s: float = DEFAULT_TIMEOUT_S,
        machine_type: str = "",
        reset_each_cycle: bool = False,
        alarm_builder: Optional[AlarmBuilder] = None,
        cooldown_s: float = DEFAULT_COOLDOWN_S,
        clock: Callable[[], float] = time.monotonic,
        connection_factory=socket.create_connection,
    ) -> None:
        """
        Create a TCP query engine.

        Args:
            host: Controller hostname or IP.
            port: TCP port (default 10000).
            timeout_s: Idle timeout while waiting for an answer.
            machine_type: "B" or "C" machine generation.
            reset_each_cycle: Close the socket at every ``finish()``.
            alarm_builder: Builder used by the alarm getters.
            cooldown_s: Backoff after a connectivity failure.
            clock: Monotonic time source for the backoff deadline.
            connection_factory: ``socket.create_connection`` compatible factory (tests).
        """
        super().__init__(machine_type=machine_type, alarm_builder=alarm_builder, cooldown_s=cooldown_s, clock=clock)
        self.host = host
        self.port = port
        self.timeout_s = timeout_s
        self.reset_each_cycle = reset_each_cycle
        self._connection_factory = connection_factory
        self.sock: Optional[socket.socket] = None
        self._connected = False
        self.program_name: Optional[str] = None
        self._program_header: Optional[List[str]] = None
        self._program_header_name: Optional[str] = None

    # ---------------- connection ----------------
    @property
    def connected(self) -> bool:
        return self.sock is not None and self._connected

    def start(self) -> bool:
        """
        Reset the cycle cache and make sure a connection is open.

        Returns:
            False without a host, during backoff or when the connection fails.

        Raises:
            Exception: Anything other than a socket error while connecting.
        """
        self.cache.start_cycle()

        if not self.host:
            log.info("Start: no host or ip => do nothing")
            return False

        if self.sock is not None and not self._connected:
            log.info("Start: not connected to %s:%d => reset tcp client", self.host, self.port)
            self._close_socket()

        if self.sock is None:
            if self.cache.is_blocked():
                log.info("Start: backoff active, no connection attempt to %s:%d", self.host, self.port)
                return False
            log.debug("Start: create tcp client %s:%d", self.host, self.port)
            try:
                self.sock = self._connection_factory((self.host, self.port), self.timeout_s)
            except OSError as exc:
                log.error("Start: cannot open a connection to %s:%d: %s", self.host, self.port, exc)
                self.cache.trigger_backoff()
                return False
            self._connected = True
        return True

    def finish(self) -> None:
        if self.reset_each_cycle and self.sock is not None:
            self._close_socket()

    def close(self) -> None:
        self._close_socket()

    def _close_socket(self) -> None:
        if self.sock is not None:
            try:
                self.sock.close()
            except OSError:
                log.debug("Close of tcp client failed", exc_info=True)
        self.sock = None
        self._connected = False

    def _drop_connection(self) -> None:
        self._connected = False
        self._close_socket()

    # ---------------- raw I/O ----------------
    def query(self, packet: str) -> str:
        """
        Send one packet and return the '%'-delimited answer frame.

        Raises:
            NotConnectedError: Without an open connection.
            TransportTimeoutError: When nothing at all was received before the timeout.
            TransportError: When the connection broke (the socket is closed).
            FramingError: When the bytes received do not hold two '%'.
        """
        if not self.connected:
            log.error("Query: not connected")
            raise NotConnectedError(f"Not connected to {self.host}:{self.port}")

        log.debug("Query: sending the ASCII packet %s", render_control_chars(packet))
        started = time.monotonic()
        try:
            self.sock.settimeout(self.timeout_s)
            self.sock.sendall(packet.encode("ascii"))
            buffer, peer_closed = self._receive()
        except socket.timeout as exc:
            self._drop_connection()
            raise TransportTimeoutError(f"Timeout writing to {self.host}:{self.port}", cause=exc) from exc
        except OSError as exc:
            log.error("Query: socket error with %s:%d: %s", self.host, self.port, exc)
            self._drop_connection()
            raise TransportError(f"Socket error with {self.host}:{self.port}: {exc}", connectivity=True, cause=exc) from exc

        if peer_closed:
            log.info("Query: %s:%d closed the connection after its answer", self.host, self.port)
            self._drop_connection()
        elapsed_ms = (time.monotonic() - started) * 1000.0
        if not buffer:
            log.error("Query: no answer from %s:%d after %.0fms", self.host, self.port, elapsed_ms)
            self._drop_connection()
            raise TransportTimeoutError(f"No answer from {self.host}:{self.port}")
        log.debug("Query: after %.0fms came the machine answer %s", elapsed_ms, render_control_chars(buffer))
        return extract_frame(buffer)

    def _receive(self) -> Tuple[str, bool]:
        """
        Accumulate the answer with a deadline-bounded blocking read.

        The idle deadline is pushed back on every received chunk, but the whole answer
        never waits more than ``MAX_WAIT_FACTOR`` idle timeouts. Once the buffer ends
        with '%', only a short grace read collects trailing bytes.

        Returns:
            The received text and whether the controller closed the connection after
            a complete frame.

        Raises:
            ConnectionResetError: When the connection is closed before a complete frame.
        """
        buffer = ""
        now = time.monotonic()
        idle_deadline = now + self.timeout_s
        total_deadline = now + self.MAX_WAIT_FACTOR * self.timeout_s
        while True:
            now = time.monotonic()
            if now >= total_deadline:
                if not buffer.endswith(DELIMITER):
                    log.warning("Query: answer of %s:%d still incomplete after %.0fms", self.host, self.port,
                                self.MAX_WAIT_FACTOR * self.timeout_s * 1000.0)
                break
            if buffer.endswith(DELIMITER):
                wait = min(self.POLL_INTERVAL_S, total_deadline - now)
            else:
                wait = min(idle_deadline, total_deadline) - now
                if wait <= 0:
                    break
            self.sock.settimeout(wait)
            try:
                chunk = self.sock.recv(self.RECV_SIZE)
            except socket.timeout:
                break
            if not chunk:
                if buffer.endswith(DELIMITER):
                    return buffer, True
                raise ConnectionResetError("Connection closed by the controller")
            buffer += chunk.decode("ascii", errors="replace")
            idle_deadline = time.monotonic() + self.timeout_s
        return buffer, False

    # ---------------- lines ----------------
    def get_lines(self, command: str, function: str, message: str, data: str = "") -> List[str]:
        """
        Response lines of a query, memoized per exact packet for the cycle.

        Raises:
            InvalidParameterError: On header fields longer than 3/4/8 characters.
        """
        _check_header_fields(command, function, message)
        packet = build_packet(command, function, message, data)

        def load() -> Tuple[str, ...]:
            lines = tuple(parse_response(self.query(packet)))
            log.info("GetLines: successful query with '%s|%s|%s|%s'", command, function, message, data)
            return lines

        return list(self.cache.resolve(packet, load))

    def get_line(self, command: str, function: str, message: str, data: str = "", line_number: int = 0) -> str:
        lines = self.get_lines(command, function, message, data)
        if not lines:
            log.error("GetString: empty response")
            raise EmptyResponseError(f"Empty response to {command}|{function}|{message}")
        if line_number < 0 or line_number >= len(lines):
            raise PositionOutOfRangeError(f"Invalid line number {line_number}, {len(lines)} lines available")
        return lines[line_number]

    def get_filtered(self, command: str, function: str, message: str, needle: str) -> str:
        """First response line containing ``needle``."""
        for line in self.get_lines(command, function, message):
            if needle in line:
                return line
        raise EmptyResponseError(f"No line containing {needle!r} in {command}|{function}|{message}")

    # ---------------- typed getters ----------------
    def get_string(self, param: str) -> str:
        """
        Read the first response line.

        Args:
            param: ``cmd|func|msg[|data]`` possibly followed by ``~pos-len`` to extract
                a substring.
        """
        try:
            command, function, message, data, position, length = parse_query_param(param)
            result = self.get_line(command, function, message, data)
            if length:
                if position + length > len(result):
                    raise SubstringOutOfRangeError(
                        f"Couldn't extract a substring of {result!r}: position={position} length={length}"
                    )
                result = result[position:position + length]
            return result
        except Exception as exc:
            log.error("GetString: param=%s, %s", param, exc)
            raise

    def get_int(self, param: str) -> int:
        return int(self.get_string(param))

    def get_double(self, param: str) -> float:
        return float(self.get_string(param))

    def get_bool(self, param: str) -> bool:
        value = self.get_string(param)
        try:
            return parse_bool(value)
        except ValueError:
            log.error("GetBool: invalid boolean value %r for %s", value, param)
            raise

    # ---------------- files through LOD ----------------
    def get_symbol_table(self, file_name: str) -> SymbolTable:
        """Load a whole file with the ``LOD`` command and parse it."""
        _check_header_fields(LOAD_COMMAND, "", file_name)
        packet = build_packet(LOAD_COMMAND, "", file_name)
        return self.cache.resolve(
            ("table", packet),
            lambda: SymbolTable.from_lines(self.get_lines(LOAD_COMMAND, "", file_name), source=file_name),
        )

    def _macro_file(self, unit_letter: str) -> str:
        macro_type = "S" if self.machine_type == "C" else "N"
        return f"MCR{macro_type}{unit_letter}1"

    def _macro_symbol(self, macro_name: str) -> str:
        # Symbols of the macro files are prefixed by "C", e.g. "C800" for macro 800.
        return "C" + macro_name

    def get_cnc_variable_set(self, param: str) -> Dict[str, float]:
        """Macro variables in the current unit system; ``param`` is a separator-prefixed list."""
        names = list(dict.fromkeys(parse_list_string(param)))
        return self._get_macro_set("D", names)

    # ---------------- program ----------------
    def get_program_name(self, param: str) -> str:
        """Typed string getter that also remembers the program name."""
        self.program_name = self.get_string(param)
        return self.program_name

    def get_program_name_from_file(self, param: str = "") -> str:
        self.program_name = self.get_string_from_file(param or DEFAULT_PROGRAM_NAME_PARAM)
        return self.program_name

    def get_program_content_lines(self) -> List[str]:
        if not self.program_name:
            log.error("GetProgramContentLines: program name is unknown")
            raise InvalidParameterError("Unknown program name")
        return self.get_lines(LOAD_COMMAND, "", f"O{self.program_name}")

    def get_program_content(self) -> str:
        return "\n".join(self.get_program_content_lines())

    def get_program_header(self, param: str = "") -> List[str]:
        """
        First lines of the current program, cached while the program name stays the same.

        Args:
            param: Number of lines; 10 when empty.
        """
        if (
            self._program_header is not None
            and self._program_header_name is not None
            and self.program_name
            and self._program_header_name.lower() == self.program_name.lower()
        ):
            log.debug("GetProgramHeader: header in cache for program %s", self.program_name)
            return list(self._program_header)

        line_count = int(param) if param else DEFAULT_HEADER_LINES
        self._program_header_name = None
        self._program_header = self.get_program_content_lines()[:line_count]
        self._program_header_name = self.program_name
        return list(self._program_header)

    # ---------------- writes ----------------
    def set_data(self, command: str, function: str, message: str, data: str) -> List[str]:
        """
        Send a write command. Writes are never memoized but honour the backoff.
        """
        _check_header_fields(command, function, message)
        packet = build_packet(command, function, message, data)
        lines = self.cache.call(lambda: parse_response(self.query(packet)))
        if not lines:
            log.warning("SetData: no response line for %s|%s|%s", command, function, message)
        return lines

    def save_data(self, name: str, data: str) -> None:
        """Save data with the ``SAV`` command."""
        try:
            self.set_data(SAVE_COMMAND, "", name, data)
        except Exception as exc:
            log.error("SaveData: %s=%s, %s", name, data, exc)
            raise

    def set_macro_variable(self, variable_name: str, value: float, unit: str = "D") -> None:
        """
        Args:
            variable_name: Macro number, e.g. ``"500"``.
            value: New value.
            unit: M for metric, I for inch, D for the current unit system.
        """
        self.save_data(self._macro_file(unit), f"C{variable_name},{_format_number(value)}")

    def set_variable(self, param: str, value: float) -> None:
        """
        Args:
            param: Variable name optionally prefixed by the unit letter M, I or D.
        """
        if param and param[0] in "MID":
            self.set_macro_variable(param[1:], value, param[0])
        else:
            self.set_macro_variable(param, value, "D")

    def set_tool_offset(self, tool_number: int, offset_kind: int, value: float) -> None:
        """
        Write a tool offset (``WRT|TOFS``, message = 2-digit tool number + offset kind digit).
        """
        self.set_data("WRT", "TOFS", f"{tool_number:02d}{offset_kind}", _format_number(value))

    def set_tool_offset_param(self, param: str, value: float) -> None:
        """
        Args:
            param: ``{tool number}#{offset kind}``. The offset kind is the digit sent
                on the wire; letter names such as ``L`` or ``DW`` are not accepted.

        Raises:
            InvalidParameterError: Without ``#`` or with a non-numeric tool or kind.
        """
        tool, sep, kind = param.partition("#")
        if not sep:
            raise InvalidParameterError(f"Invalid tool offset {param!r}")
        try:
            self.set_tool_offset(int(tool), int(kind), value)
        except ValueError:
            raise InvalidParameterError(f"Invalid tool offset {param!r}") from None
