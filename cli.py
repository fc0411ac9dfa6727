from __future__ import annotations
import argparse, time
from scpi_lan.config import InstrumentConfig, load_config
from scpi_lan.errors import Result
from scpi_lan.instrument import Instrument
from scpi_lan.instrument_io import InstrumentIO
from scpi_lan.logging_io import write_rows


def parse_host_port(s: str, default_port: int = 5025):
    if ":" in s:
        host, port = s.rsplit(":", 1)
        return host, int(port)
    return s, default_port


def _check(result: Result, what: str) -> Result:
    if not result:
        raise SystemExit(f"{what} failed: {result.error}")
    return result


def _settings(args) -> tuple[InstrumentConfig, str, int]:
    cfg = load_config(args.config) if args.config else InstrumentConfig()
    if args.timeout is not None:
        cfg = cfg.with_overrides(connect_timeout=args.timeout, print_timeout=args.timeout, scan_timeout=args.timeout)
    if args.newline is not None:
        cfg = cfg.with_overrides(newline_token=args.newline.encode().decode("unicode_escape"))
    if args.target:
        host, port = parse_host_port(args.target, cfg.port)
    elif cfg.address:
        host, port = cfg.address, cfg.port
    else:
        raise SystemExit("Missing instrument address. Provide --target host[:port] or an address in --config.")
    return cfg, host, port


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="scpi-lan")
    p.add_argument("-t", "--target", help="Instrument host[:port] (default port 5025)")
    p.add_argument("--config", help="YAML file with instrument settings")
    p.add_argument("--timeout", type=float, help="Connect/print/scan timeout in seconds")
    p.add_argument("--newline", help=r"Response terminator, escapes allowed (default \n)")
    p.add_argument("--debug-log", help="Path to write socket I/O log (NDJSON)")
    sub = p.add_subparsers(dest="cmd", required=True)

    sub.add_parser("idn", help="Print the *IDN? response")

    qp = sub.add_parser("query", help="Send a command; print the response when it is a query")
    qp.add_argument("command")

    cp = sub.add_parser("clear", help="Send a device clear on the control port")
    cp.add_argument("--port", type=int, help="Control port to use instead of the configured one")
    cp.add_argument("--query-port", action="store_true", help="Ask the instrument for its control port first")

    bp = sub.add_parser("blocks", help="Send a query answered with definite-length binary blocks")
    bp.add_argument("command")
    bp.add_argument("--count", type=int, default=1, help="Number of blocks to read")
    bp.add_argument("--out", help="Write each payload to <OUT><n>.bin")

    pp = sub.add_parser("poll", help="Repeat a query and record the responses")
    pp.add_argument("command")
    pp.add_argument("--count", type=int, default=10, help="Number of queries")
    pp.add_argument("--interval", type=float, default=1.0, help="Delay between queries (seconds)")
    pp.add_argument("--out", required=True, help="Output file (.csv, or .parquet/.pq)")
    return p


def main(argv=None):
    args = build_parser().parse_args(argv)
    cfg, host, port = _settings(args)

    # Open debug log once if requested
    log_fp = open(args.debug_log, "a") if args.debug_log else None
    io = InstrumentIO.from_config(cfg, log_file=log_fp)
    try:
        _check(io.open(host, port), f"Connecting to {host}:{port}")

        if args.cmd == "idn":
            print(_check(Instrument(io).idn(), "*IDN?").value)
            return

        if args.cmd == "query":
            if "?" in args.command:
                print(_check(io.query(args.command), args.command).value)
            else:
                _check(io.print(args.command), args.command)
            return

        if args.cmd == "clear":
            if args.query_port:
                _check(io.query_device_clear_port(), "Control port query")
            if args.port is not None:
                io.device_clear_port = args.port
            _check(io.device_clear(), "Device clear")
            print(f"Device clear sent to {host}:{io.device_clear_port}")
            return

        if args.cmd == "blocks":
            _check(io.print(args.command), args.command)
            res = io.scan_binary_definite_size_blocks(args.count)
            for i, size in enumerate(res.sizes):
                print(f"block {i}: {size} bytes")
                if args.out:
                    with open(f"{args.out}{i}.bin", "wb") as fp:
                        fp.write(res.blocks[i])
            _check(res, f"Reading block {res.blocks_read}")
            return

        if args.cmd == "poll":
            rows: list[dict] = []
            t0 = time.time()
            for n in range(max(args.count, 1)):
                res = io.query(args.command)
                rows.append({
                    "t_s": time.time() - t0,
                    "response": res.value if res else None,
                    "ok": res.ok,
                    "error": None if res else res.error.description,
                })
                if n + 1 < args.count:
                    time.sleep(max(args.interval, 0.0))
            write_rows(rows, args.out)
            failed = sum(1 for r in rows if not r["ok"])
            print(f"{len(rows)} queries, {failed} failed, written to {args.out}")
            return
    finally:
        io.close()
        if log_fp:
            log_fp.close()


if __name__ == "__main__":
    main()
