from __future__ import annotations
import errno
import os
import selectors
import socket
import time
from typing import Optional, Union

from .errors import ErrorKind, Result

Buffer = Union[bytes, bytearray, memoryview]

_CONNECT_PENDING = {
    errno.EINPROGRESS,
    errno.EALREADY,
    errno.EWOULDBLOCK,
    errno.EAGAIN,
    getattr(errno, "WSAEWOULDBLOCK", errno.EWOULDBLOCK),
}


class SocketIO:
    """Timeout-bounded TCP transport.

    The socket is kept non-blocking once connected and every operation waits
    for readiness with a :mod:`selectors` selector against a single monotonic
    deadline, so no call blocks longer than the timeout it was given, however
    many partial sends or receives it takes. A timeout of ``0`` means one
    non-blocking attempt and no waiting.

    Name resolution in :meth:`open` is the one step outside the budget:
    ``getaddrinfo`` cannot be interrupted, so resolving a host name may take
    longer than ``timeout``. IP literals resolve without any lookup.

    Expected failures (refused connects, timeouts, peer resets) come back as
    failed :class:`Result` values. Hard errors and EOF also close the socket,
    which callers can observe through :attr:`is_open`; timeouts leave it open.
    """

    chunk_size = 65536
    peek_size = 4096
    max_line_length = 1 << 20

    def __init__(self):
        self._sock: Optional[socket.socket] = None
        self.remote: Optional[tuple[str, int]] = None

    @property
    def is_open(self) -> bool:
        return self._sock is not None

    # -- connection -----------------------------------------------------

    def open(self, address: str, port: int, timeout: float) -> Result:
        """Connect within ``timeout`` seconds, DNS lookup excepted."""
        if self._sock is not None:
            self.close()
        try:
            infos = socket.getaddrinfo(address, port, type=socket.SOCK_STREAM)
        except (OSError, UnicodeError) as exc:
            return Result.fail(ErrorKind.CONNECT, f"unable to resolve {address}:{port}: {exc}")

        deadline = time.monotonic() + timeout
        failure = Result.fail(ErrorKind.CONNECT, f"no usable address for {address}:{port}")
        for family, socktype, proto, _, sockaddr in infos:
            try:
                sock = socket.socket(family, socktype, proto)
            except OSError as exc:
                return Result.fail(ErrorKind.SOCKET_CREATE, f"unable to create socket: {exc}")
            failure = self._connect(sock, sockaddr, deadline)
            if failure.ok:
                self._sock = sock
                self.remote = (address, port)
                return Result()
            sock.close()
            if failure.error.timed_out:
                break
        return failure

    def _connect(self, sock: socket.socket, sockaddr, deadline: float) -> Result:
        try:
            sock.setblocking(False)
            err = sock.connect_ex(sockaddr)
        except OSError as exc:
            return Result.fail(ErrorKind.CONNECT, f"unable to connect to {sockaddr[0]}:{sockaddr[1]}: {exc}")
        if err == 0:
            return Result()
        if err not in _CONNECT_PENDING:
            return Result.fail(ErrorKind.CONNECT, f"unable to connect to {sockaddr[0]}:{sockaddr[1]}: {os.strerror(err)}")
        return self._wait_for_connect(sock, self._remaining(deadline))

    def close(self) -> Result:
        if self._sock is None:
            return Result()
        sock, self._sock = self._sock, None
        try:
            sock.close()
        except OSError as exc:
            return Result.fail(ErrorKind.CONNECT, f"error closing socket: {exc}")
        return Result()

    def _abort(self) -> None:
        # Fatal I/O error: drop the descriptor so it is never reused.
        if self._sock is not None:
            try:
                self._sock.close()
            except OSError:
                pass
            self._sock = None

    # -- writing ----------------------------------------------------------

    def write_buffer(self, buffer: Buffer, timeout: float, size: Optional[int] = None) -> Result:
        """Send ``buffer[:size]`` completely. ``value`` is the number of bytes sent."""
        data = memoryview(buffer).cast("B")
        if size is not None:
            if size < 0:
                raise ValueError("size must not be negative")
            data = data[:size]
        total = len(data)
        if total == 0:
            return Result(value=0)
        if self._sock is None:
            return Result.fail(ErrorKind.WRITE, "socket is not open", value=0)

        deadline = time.monotonic() + timeout
        sent = 0
        while sent < total:
            try:
                if not self._wait_for_send(self._remaining(deadline)):
                    return self._write_timeout(timeout, sent, total)
                sent += self._sock.send(data[sent:])
            except (BlockingIOError, InterruptedError):
                pass
            except OSError as exc:
                self._abort()
                return Result.fail(ErrorKind.WRITE, f"error writing: {exc}", value=sent)
            if sent < total and time.monotonic() >= deadline:
                return self._write_timeout(timeout, sent, total)
        return Result(value=sent)

    def write_string(self, text: str, timeout: float, encoding: str = "utf-8") -> Result:
        return self.write_buffer(text.encode(encoding), timeout)

    @staticmethod
    def _write_timeout(timeout: float, sent: int, total: int) -> Result:
        return Result.fail(
            ErrorKind.WRITE,
            f"write timed out after {timeout:g}s ({sent} of {total} bytes sent)",
            value=sent,
            timed_out=True,
        )

    # -- reading ----------------------------------------------------------

    def read_buffer(self, size_to_read: int, timeout: float) -> Result:
        """Read exactly ``size_to_read`` bytes; ``value`` holds whatever arrived."""
        if size_to_read < 0:
            raise ValueError("size_to_read must not be negative")
        if size_to_read == 0:
            return Result(value=b"")
        if self._sock is None:
            return Result.fail(ErrorKind.READ, "socket is not open", value=b"")

        deadline = time.monotonic() + timeout
        buf = bytearray()
        while len(buf) < size_to_read:
            try:
                if not self._wait_for_recv(self._remaining(deadline)):
                    return self._read_timeout(timeout, bytes(buf), f"{len(buf)} of {size_to_read} bytes read")
                chunk = self._sock.recv(min(self.chunk_size, size_to_read - len(buf)))
            except (BlockingIOError, InterruptedError):
                chunk = None
            except OSError as exc:
                self._abort()
                return Result.fail(ErrorKind.READ, f"error reading: {exc}", value=bytes(buf))
            if chunk is not None:
                if not chunk:
                    self._abort()
                    return Result.fail(ErrorKind.READ, "connection closed by peer", value=bytes(buf))
                buf += chunk
            if len(buf) < size_to_read and time.monotonic() >= deadline:
                return self._read_timeout(timeout, bytes(buf), f"{len(buf)} of {size_to_read} bytes read")
        return Result(value=bytes(buf))

    def read_line(
        self,
        newline_token: str,
        timeout: float,
        trim: bool = False,
        encoding: str = "utf-8",
        max_line_length: Optional[int] = None,
    ) -> Result:
        """Read up to and including the next ``newline_token``.

        Pending bytes are peeked first and only the line itself is consumed,
        so anything the peer sent after the terminator stays queued for the
        next read.
        """
        token = newline_token.encode(encoding)
        if not token:
            raise ValueError("newline_token must not be empty")
        limit = self.max_line_length if max_line_length is None else max_line_length
        if self._sock is None:
            return Result.fail(ErrorKind.READ, "socket is not open", value="")

        def text(data: bytes) -> str:
            return data.decode(encoding, errors="replace")

        deadline = time.monotonic() + timeout
        buf = bytearray()
        keep = len(token) - 1
        while True:
            try:
                if not self._wait_for_recv(self._remaining(deadline)):
                    return self._read_timeout(timeout, text(buf), "no line terminator received")
                peeked = self._sock.recv(self.peek_size, socket.MSG_PEEK)
                if not peeked:
                    self._abort()
                    return Result.fail(ErrorKind.READ, "connection closed by peer", value=text(buf))
                tail = bytes(buf[-keep:]) if keep else b""
                idx = (tail + peeked).find(token)
                take = len(peeked) if idx < 0 else idx + len(token) - len(tail)
                buf += self._consume(take)
            except (BlockingIOError, InterruptedError):
                idx = -1
            except OSError as exc:
                self._abort()
                return Result.fail(ErrorKind.READ, f"error reading: {exc}", value=text(buf))
            if idx >= 0:
                line = bytes(buf)
                if trim:
                    line = line[: -len(token)]
                return Result(value=text(line))
            if len(buf) > limit:
                return Result.fail(ErrorKind.READ, f"line exceeds {limit} bytes without terminator", value=text(buf))
            if time.monotonic() >= deadline:
                return self._read_timeout(timeout, text(buf), "no line terminator received")

    def peek(self, size: int, timeout: float) -> Result:
        """Return up to ``size`` pending bytes without consuming them.

        An empty ``value`` on success means nothing is pending; a peer that
        has hung up is a READ failure.
        """
        if size == 0:
            return Result(value=b"")
        if self._sock is None:
            return Result.fail(ErrorKind.READ, "socket is not open", value=b"")
        try:
            if not self._wait_for_recv(timeout):
                return Result(value=b"")
            pending = self._sock.recv(size, socket.MSG_PEEK)
            if not pending:
                self._abort()
                return Result.fail(ErrorKind.READ, "connection closed by peer", value=b"")
            return Result(value=pending)
        except (BlockingIOError, InterruptedError):
            return Result(value=b"")
        except OSError as exc:
            self._abort()
            return Result.fail(ErrorKind.READ, f"error reading: {exc}", value=b"")

    def _consume(self, size: int) -> bytes:
        # Only called for bytes already seen with MSG_PEEK, so recv cannot block.
        data = bytearray()
        while len(data) < size:
            chunk = self._sock.recv(size - len(data))
            if not chunk:
                raise ConnectionResetError("connection closed while consuming buffered data")
            data += chunk
        return bytes(data)

    @staticmethod
    def _read_timeout(timeout: float, partial, detail: str) -> Result:
        return Result.fail(ErrorKind.READ, f"read timed out after {timeout:g}s ({detail})", value=partial, timed_out=True)

    # -- readiness waits --------------------------------------------------

    @staticmethod
    def _remaining(deadline: float) -> float:
        return max(0.0, deadline - time.monotonic())

    @staticmethod
    def _wait(sock: socket.socket, events: int, timeout: float) -> bool:
        # DefaultSelector has no FD_SETSIZE limit, unlike select.select.
        with selectors.DefaultSelector() as sel:
            sel.register(sock, events)
            return bool(sel.select(timeout))

    @classmethod
    def _wait_for_connect(cls, sock: socket.socket, timeout: float) -> Result:
        try:
            ready = cls._wait(sock, selectors.EVENT_WRITE, timeout)
        except (OSError, ValueError) as exc:
            return Result.fail(ErrorKind.CONNECT, f"error waiting for connection: {exc}")
        if not ready:
            return Result.fail(ErrorKind.CONNECT, f"connect timed out after {timeout:g}s", timed_out=True)
        err = sock.getsockopt(socket.SOL_SOCKET, socket.SO_ERROR)
        if err:
            return Result.fail(ErrorKind.CONNECT, f"unable to connect: {os.strerror(err)}")
        return Result()

    def _wait_for_send(self, timeout: float) -> bool:
        return self._wait(self._sock, selectors.EVENT_WRITE, timeout)

    def _wait_for_recv(self, timeout: float) -> bool:
        return self._wait(self._sock, selectors.EVENT_READ, timeout)

    def __repr__(self) -> str:
        where = f"{self.remote[0]}:{self.remote[1]}" if self.remote else "-"
        state = "open" if self.is_open else "closed"
        return f"<SocketIO {where} {state}>"
