from __future__ import annotations
import csv
import json
import time
from typing import Optional

from .errors import Result
from .socket_io import SocketIO


class LoggingSocketIO:
    """Transparent logging wrapper around a SocketIO.

    Writes newline-delimited JSON records to the provided file-like object.
    Records include timestamp seconds, role, op (open/close/write/read),
    remote, data and the outcome of the call.
    """

    def __init__(self, inner: SocketIO, role: str, log_file):
        self.inner = inner
        self.role = role
        self.log_file = log_file

    @property
    def remote(self) -> str:
        if self.inner.remote:
            host, port = self.inner.remote
            return f"{host}:{port}"
        return "unknown"

    def _log(self, op: str, data, result: Optional[Result] = None, extra: Optional[dict] = None) -> None:
        try:
            if isinstance(data, (bytes, bytearray)):
                data = data.decode("latin-1")
            rec = {"ts": time.time(), "role": self.role, "op": op, "remote": self.remote, "data": data}
            if result is not None:
                rec["ok"] = result.ok
                if result.error is not None:
                    rec["error"] = result.error.description
            if extra:
                rec.update(extra)
            self.log_file.write(json.dumps(rec, separators=(",", ":")) + "\n")
            try:
                self.log_file.flush()
            except Exception:
                pass
        except Exception:
            # Never let logging break I/O
            pass

    # Delegate attribute access for non-logged APIs (e.g., is_open, peek)
    def __getattr__(self, item):
        return getattr(self.inner, item)

    def open(self, address: str, port: int, timeout: float) -> Result:
        result = self.inner.open(address, port, timeout)
        self._log("open", "", result, {"remote": f"{address}:{port}"})
        return result

    def close(self) -> Result:
        remote = self.remote
        result = self.inner.close()
        self._log("close", "", result, {"remote": remote})
        return result

    def write_buffer(self, buffer, timeout: float, size: Optional[int] = None) -> Result:
        result = self.inner.write_buffer(buffer, timeout, size)
        data = bytes(buffer[:size] if size is not None else buffer)
        self._log("write", data, result)
        return result

    def write_string(self, text: str, timeout: float, encoding: str = "utf-8") -> Result:
        return self.write_buffer(text.encode(encoding), timeout)

    def read_buffer(self, size_to_read: int, timeout: float) -> Result:
        result = self.inner.read_buffer(size_to_read, timeout)
        self._log("read", result.value or b"", result, {"size": len(result.value or b"")})
        return result

    def read_line(self, newline_token: str, timeout: float, trim: bool = False, encoding: str = "utf-8",
                  max_line_length: Optional[int] = None) -> Result:
        result = self.inner.read_line(newline_token, timeout, trim, encoding, max_line_length)
        self._log("read", result.value or "", result)
        return result


def write_parquet(rows: list[dict], out_path: str) -> None:
    import pyarrow as pa, pyarrow.parquet as pq
    if not rows:
        pq.write_table(pa.table({}), out_path); return
    cols = sorted({k for r in rows for k in r.keys()})
    arrays = {c: [r.get(c, None) for r in rows] for c in cols}
    table = pa.table(arrays)
    pq.write_table(table, out_path, compression="zstd")


def write_csv(rows: list[dict], out_path: str) -> None:
    cols = list(rows[0].keys()) if rows else []
    with open(out_path, "w", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=cols)
        writer.writeheader()
        writer.writerows(rows)


def write_rows(rows: list[dict], out_path: str) -> None:
    if out_path.lower().endswith((".parquet", ".pq")):
        write_parquet(rows, out_path)
    else:
        write_csv(rows, out_path)
