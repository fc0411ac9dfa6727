from __future__ import annotations
import enum
from dataclasses import dataclass, field
from typing import Any, Optional

SOCKETIO_ERROR_DOMAIN = "SOCKETIO"
SOCKETIO_ERROR_CODE_UNABLE_TO_CREATE_SOCKET = 1
SOCKETIO_ERROR_CODE_UNABLE_TO_CONNECT = 2
SOCKETIO_ERROR_CODE_ERROR_WRITING = 3
SOCKETIO_ERROR_CODE_ERROR_READING = 4

IO_ERROR_DOMAIN = "AiOS_IO"
IO_ERROR_CODE_BADFORMAT = 1
IO_ERROR_CODE_NOT_CONNECTED = 2


class ErrorKind(enum.Enum):
    BAD_FORMAT = "bad format"
    SOCKET_CREATE = "unable to create socket"
    CONNECT = "unable to connect"
    WRITE = "error writing"
    READ = "error reading"
    NOT_CONNECTED = "not connected"


_CODES = {
    ErrorKind.BAD_FORMAT: (IO_ERROR_DOMAIN, IO_ERROR_CODE_BADFORMAT),
    ErrorKind.NOT_CONNECTED: (IO_ERROR_DOMAIN, IO_ERROR_CODE_NOT_CONNECTED),
    ErrorKind.SOCKET_CREATE: (SOCKETIO_ERROR_DOMAIN, SOCKETIO_ERROR_CODE_UNABLE_TO_CREATE_SOCKET),
    ErrorKind.CONNECT: (SOCKETIO_ERROR_DOMAIN, SOCKETIO_ERROR_CODE_UNABLE_TO_CONNECT),
    ErrorKind.WRITE: (SOCKETIO_ERROR_DOMAIN, SOCKETIO_ERROR_CODE_ERROR_WRITING),
    ErrorKind.READ: (SOCKETIO_ERROR_DOMAIN, SOCKETIO_ERROR_CODE_ERROR_READING),
}


@dataclass(frozen=True)
class IOFailure:
    """Structured error value returned by every fallible I/O operation.

    ``domain`` and ``code`` identify the failure numerically for callers that
    branch on it; ``message`` is meant for display.
    """

    kind: ErrorKind
    domain: str
    code: int
    message: str = ""
    timed_out: bool = False

    @classmethod
    def of(cls, kind: ErrorKind, message: str = "", timed_out: bool = False) -> "IOFailure":
        domain, code = _CODES[kind]
        return cls(kind=kind, domain=domain, code=code, message=message, timed_out=timed_out)

    @property
    def description(self) -> str:
        text = self.message or self.kind.value
        return f"{text} ({self.domain} error {self.code})"

    def __str__(self) -> str:
        return self.description


@dataclass
class Result:
    """Success flag plus value, or the failure that stopped the operation.

    ``value`` may carry partial data alongside an ``error`` (bytes read before
    a timeout, for instance) so the caller can decide whether to salvage it.
    """

    value: Any = None
    error: Optional[IOFailure] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def __bool__(self) -> bool:
        return self.ok

    @classmethod
    def fail(cls, kind: ErrorKind, message: str = "", value: Any = None, timed_out: bool = False) -> "Result":
        return cls(value=value, error=IOFailure.of(kind, message, timed_out=timed_out))


@dataclass
class BlocksResult(Result):
    """Outcome of reading several definite-length blocks."""

    value: list = field(default_factory=list)

    @property
    def blocks(self) -> list[bytes]:
        return self.value

    @property
    def blocks_read(self) -> int:
        return len(self.value)

    @property
    def sizes(self) -> list[int]:
        return [len(b) for b in self.value]


def not_connected(operation: str) -> Result:
    return Result.fail(ErrorKind.NOT_CONNECTED, f"cannot {operation}: instrument is not connected")
