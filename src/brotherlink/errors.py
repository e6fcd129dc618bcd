from __future__ import annotations

from typing import Optional


class CncError(Exception):
    """Base class for every acquisition failure raised by the drivers."""


class NotConnectedError(CncError):
    """The transport has no usable connection."""


class InvalidParameterError(CncError, ValueError):
    """A getter parameter string does not follow its grammar."""


class FramingError(CncError):
    """A TCP response is missing its '%' delimiters or has a malformed header."""


class CompletionCodeError(CncError):
    """
    The controller answered with a nonzero completion code.

    Attributes:
        code: Completion code reported by the controller.
        description: Human description of the code.
    """

    def __init__(self, code: int, description: str) -> None:
        super().__init__(f"Completion code {code}: {description}")
        self.code = code
        self.description = description


class KeyNotFoundError(CncError, LookupError):
    """A symbol is absent from a symbol table."""


class PositionOutOfRangeError(CncError, IndexError):
    """A field or line position is beyond the available values."""


class SubstringOutOfRangeError(CncError, IndexError):
    """A ~pos-len extraction exceeds the length of the value."""


class InvalidBooleanError(CncError, ValueError):
    """A value is not one of the accepted boolean tokens."""


class EmptyResponseError(CncError):
    """The controller acknowledged a query but returned no line."""


class UnsupportedMachineTypeError(CncError):
    """The configured machine generation is neither B nor C."""


class PreviouslyFailedError(CncError):
    """The same query already failed during the current cycle."""


class BackoffError(CncError):
    """
    The transport is quarantined after a connectivity failure.

    Attributes:
        until: Clock value at which queries are allowed again.
    """

    def __init__(self, message: str, until: float) -> None:
        super().__init__(message)
        self.until = until


class TransportError(CncError):
    """
    Socket, FTP or HTTP layer failure.

    Attributes:
        connectivity: True when the failure means the controller is unreachable
            or unresponsive; such failures start the backoff quarantine.
    """

    def __init__(self, message: str, *, connectivity: bool = False, cause: Optional[BaseException] = None) -> None:
        super().__init__(message)
        self.connectivity = connectivity
        self.cause = cause


class TransportTimeoutError(TransportError):
    """No answer came before the configured timeout."""

    def __init__(self, message: str, *, cause: Optional[BaseException] = None) -> None:
        super().__init__(message, connectivity=True, cause=cause)
