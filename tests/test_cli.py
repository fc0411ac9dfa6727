"""Tests for the command-line front end."""

import csv
import json

import pytest

from cli import main, parse_host_port

from conftest import wait_for


def target(server):
    return f"{server.host}:{server.port}"


def test_parse_host_port():
    assert parse_host_port("10.0.0.5") == ("10.0.0.5", 5025)
    assert parse_host_port("10.0.0.5:5555") == ("10.0.0.5", 5555)


def test_idn(idn_server, capsys):
    main(["-t", target(idn_server), "idn"])
    assert capsys.readouterr().out.strip() == "AGILENT,TEST,0,1.0"


def test_query_and_command(idn_server, capsys):
    main(["-t", target(idn_server), "query", "SYST:ERR?"])
    assert capsys.readouterr().out.strip() == '+0,"No error"'

    main(["-t", target(idn_server), "query", "*RST"])
    assert capsys.readouterr().out == ""
    assert wait_for(lambda: "*RST" in idn_server.commands)


def test_connect_failure_exits(closed_port):
    with pytest.raises(SystemExit) as exc:
        main(["-t", f"127.0.0.1:{closed_port}", "--timeout", "1", "idn"])
    assert "SOCKETIO" in str(exc.value)


def test_missing_target_exits():
    with pytest.raises(SystemExit):
        main(["idn"])


def test_clear(idn_server, mock_instrument, capsys):
    clear_port = mock_instrument()
    main(["-t", target(idn_server), "clear", "--port", str(clear_port.port)])
    assert "Device clear sent" in capsys.readouterr().out
    assert wait_for(lambda: clear_port.connections == 1)


def test_blocks(mock_instrument, tmp_path, capsys):
    server = mock_instrument(lambda cmd: b"#14abcd#11z\n")
    main(["-t", target(server), "blocks", "CURV?", "--count", "2", "--out", str(tmp_path / "blk")])
    out = capsys.readouterr().out
    assert "block 0: 4 bytes" in out
    assert "block 1: 1 bytes" in out
    assert (tmp_path / "blk0.bin").read_bytes() == b"abcd"


def test_poll_writes_csv(idn_server, tmp_path, capsys):
    out = tmp_path / "idn.csv"
    main(["-t", target(idn_server), "poll", "*IDN?", "--count", "3", "--interval", "0", "--out", str(out)])

    with open(out, newline="") as f:
        rows = list(csv.DictReader(f))
    assert len(rows) == 3
    assert all(r["response"] == "AGILENT,TEST,0,1.0" for r in rows)
    assert "3 queries, 0 failed" in capsys.readouterr().out


def test_config_and_debug_log(idn_server, tmp_path, capsys):
    cfg = tmp_path / "bench.yaml"
    cfg.write_text(f"address: {idn_server.host}\nport: {idn_server.port}\nscan_timeout: 1\n")
    log = tmp_path / "io.ndjson"

    main(["--config", str(cfg), "--debug-log", str(log), "idn"])
    assert capsys.readouterr().out.strip() == "AGILENT,TEST,0,1.0"
    ops = [json.loads(line)["op"] for line in log.read_text().splitlines()]
    assert ops == ["open", "write", "read", "close"]


def test_poll_writes_parquet(idn_server, tmp_path, capsys):
    pq = pytest.importorskip("pyarrow.parquet")
    out = tmp_path / "idn.parquet"
    main(["-t", target(idn_server), "poll", "*IDN?", "--count", "2", "--interval", "0", "--out", str(out)])

    table = pq.read_table(str(out))
    assert table.num_rows == 2
    assert table.column("response").to_pylist() == ["AGILENT,TEST,0,1.0"] * 2
