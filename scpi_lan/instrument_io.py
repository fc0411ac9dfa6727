from __future__ import annotations
import time
from typing import Callable, Optional

from .config import InstrumentConfig
from .errors import BlocksResult, ErrorKind, Result, not_connected
from .logging_io import LoggingSocketIO
from .socket_io import SocketIO

# Bytes tolerated between consecutive definite-length blocks.
BLOCK_SEPARATORS = (b"\r", b"\n", b",", b";", b" ")
MAX_BLOCK_SEPARATORS = 16


class InstrumentIO:
    """SCPI-style command/response client for one LAN instrument.

    Text goes out terminated with :attr:`newline_token`, responses come back
    one terminated line at a time, and binary payloads are read either as a
    fixed byte count or as IEEE 488.2 definite-length blocks
    (``#<N><N digits of length><payload>``).

    Every operation returns a :class:`~scpi_lan.errors.Result`. Transport
    failures are forwarded unchanged; the only failure added here is
    ``NOT_CONNECTED``. A transport error that closed the socket (reset, EOF)
    also clears :attr:`is_connected`; a timeout leaves the session open so
    the caller can retry.

    The client is not thread safe: issue one operation at a time.
    """

    def __init__(
        self,
        connect_timeout: float = 5.0,
        print_timeout: float = 5.0,
        scan_timeout: float = 5.0,
        newline_token: str = "\n",
        device_clear_port: int = 5000,
        encoding: str = "utf-8",
        log_file=None,
        socket_factory: Callable[[], SocketIO] = SocketIO,
    ):
        self.connect_timeout = connect_timeout
        self.print_timeout = print_timeout
        self.scan_timeout = scan_timeout
        self.newline_token = newline_token
        self.device_clear_port = device_clear_port
        self.encoding = encoding
        self.log_file = log_file
        self._socket_factory = socket_factory
        self._socket_io = self._new_socket("primary")
        self.is_connected = False
        # Remembered from the last successful open; kept across close() and
        # cleared only when the next open starts.
        self.address: Optional[str] = None
        self.port: Optional[int] = None

    @classmethod
    def from_config(cls, config: InstrumentConfig, log_file=None, **kwargs) -> "InstrumentIO":
        return cls(
            connect_timeout=config.connect_timeout,
            print_timeout=config.print_timeout,
            scan_timeout=config.scan_timeout,
            newline_token=config.newline_token,
            device_clear_port=config.device_clear_port,
            encoding=config.encoding,
            log_file=log_file,
            **kwargs,
        )

    def _new_socket(self, role: str):
        sio = self._socket_factory()
        if self.log_file is not None:
            return LoggingSocketIO(sio, role=role, log_file=self.log_file)
        return sio

    def _track(self, result: Result) -> Result:
        if not result.ok and not self._socket_io.is_open:
            self.is_connected = False
        return result

    # -- session ----------------------------------------------------------

    def open(self, address: str, port: int) -> Result:
        if not isinstance(address, str) or not address.strip():
            return Result.fail(ErrorKind.BAD_FORMAT, f"invalid instrument address {address!r}")
        if isinstance(port, bool) or not isinstance(port, int) or not 0 < port < 65536:
            return Result.fail(ErrorKind.BAD_FORMAT, f"invalid instrument port {port!r}")
        if self.is_connected:
            self.close()
        address = address.strip()
        self.address = self.port = None
        result = self._socket_io.open(address, port, self.connect_timeout)
        if result:
            self.address, self.port = address, port
            self.is_connected = True
        return result

    def close(self) -> Result:
        try:
            return self._socket_io.close()
        finally:
            self.is_connected = False

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    # -- output -----------------------------------------------------------

    def print(self, message: str, append_newline: bool = True) -> Result:
        if not self.is_connected:
            return not_connected("print")
        if append_newline:
            message += self.newline_token
        return self._track(self._socket_io.write_buffer(message.encode(self.encoding), self.print_timeout))

    def print_buffer(self, buffer: bytes, size: Optional[int] = None) -> Result:
        """Send raw bytes as-is, without a terminator."""
        if not self.is_connected:
            return not_connected("print")
        return self._track(self._socket_io.write_buffer(buffer, self.print_timeout, size))

    # -- input ------------------------------------------------------------

    def scan(self, trim_newline: bool = True) -> Result:
        if not self.is_connected:
            return not_connected("scan")
        return self._track(
            self._socket_io.read_line(self.newline_token, self.scan_timeout, trim=trim_newline, encoding=self.encoding)
        )

    def scan_buffer(self, size_to_read: int) -> Result:
        if not self.is_connected:
            return not_connected("scan")
        return self._track(self._socket_io.read_buffer(size_to_read, self.scan_timeout))

    def scan_binary_definite_size_blocks(self, blocks_count: int) -> BlocksResult:
        """Read ``blocks_count`` consecutive ``#<N><length><payload>`` blocks.

        Reading stops at the first failure; the blocks completed so far are
        returned with the error. The whole call shares one ``scan_timeout``
        budget.
        """
        if blocks_count < 0:
            raise ValueError("blocks_count must not be negative")
        if not self.is_connected:
            return BlocksResult(value=[], error=not_connected("scan").error)
        deadline = time.monotonic() + self.scan_timeout
        blocks: list[bytes] = []
        for index in range(blocks_count):
            result = self._scan_block(index, deadline)
            if not result:
                return BlocksResult(value=blocks, error=result.error)
            blocks.append(result.value)
        if blocks:
            self._discard_pending_terminator()
        return BlocksResult(value=blocks)

    def _read(self, size: int, deadline: float) -> Result:
        remaining = max(0.0, deadline - time.monotonic())
        return self._track(self._socket_io.read_buffer(size, remaining))

    def _scan_block(self, index: int, deadline: float) -> Result:
        for _ in range(MAX_BLOCK_SEPARATORS + 1):
            result = self._read(1, deadline)
            if not result:
                return result
            if result.value not in BLOCK_SEPARATORS:
                break
        else:
            return Result.fail(ErrorKind.BAD_FORMAT, f"block {index}: no block header found")
        if result.value != b"#":
            return Result.fail(ErrorKind.BAD_FORMAT, f"block {index}: expected '#', got {result.value!r}")

        result = self._read(1, deadline)
        if not result:
            return result
        ndigits = result.value
        if ndigits == b"0":
            return Result.fail(ErrorKind.BAD_FORMAT, f"block {index}: indefinite-length block is not supported")
        if not ndigits.isdigit():
            return Result.fail(ErrorKind.BAD_FORMAT, f"block {index}: bad length digit count {ndigits!r}")

        result = self._read(int(ndigits), deadline)
        if not result:
            return result
        if not result.value.isdigit():
            return Result.fail(ErrorKind.BAD_FORMAT, f"block {index}: bad block length {result.value!r}")
        return self._read(int(result.value), deadline)

    def _discard_pending_terminator(self) -> None:
        # Instruments usually end a block response with the newline token;
        # drop it only when it is already waiting, never block for it.
        token = self.newline_token.encode(self.encoding)
        pending = self._track(self._socket_io.peek(len(token), 0))
        if pending and pending.value == token:
            self._socket_io.read_buffer(len(token), 0)

    # -- composite --------------------------------------------------------

    def query(self, query: str) -> Result:
        result = self.print(query, append_newline=True)
        if not result:
            return result
        return self.scan(trim_newline=True)

    def query_device_clear_port(self, query: str = "SYST:COMM:TCPIP:CONT?") -> Result:
        """Ask the instrument for its control port and use it for device clear."""
        result = self.query(query)
        if not result:
            return result
        try:
            port = int(result.value.strip())
        except ValueError:
            return Result.fail(ErrorKind.BAD_FORMAT, f"unexpected control port reply {result.value!r}")
        if not 0 < port < 65536:
            return Result.fail(ErrorKind.BAD_FORMAT, f"control port {port} out of range")
        self.device_clear_port = port
        return Result(value=port)

    def device_clear(self) -> Result:
        """Connect to the control port and hang up straight away.

        Uses its own short-lived socket; the primary session is untouched.
        Only valid while connected: a cold clear means reopening first.
        """
        if not self.is_connected or self.address is None:
            return not_connected("device clear")
        sio = self._new_socket("device-clear")
        try:
            opened = sio.open(self.address, self.device_clear_port, self.connect_timeout)
        finally:
            closed = sio.close()
        return opened if not opened else closed

    def __repr__(self) -> str:
        state = "connected" if self.is_connected else "disconnected"
        return f"<InstrumentIO {self.address}:{self.port} {state}>"
