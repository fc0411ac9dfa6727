"""Tests for YAML instrument settings."""

import pytest

from scpi_lan.config import InstrumentConfig, config_from_dict, load_config
from scpi_lan.instrument_io import InstrumentIO


def test_defaults():
    cfg = InstrumentConfig()
    assert cfg.port == 5025
    assert cfg.newline_token == "\n"
    assert cfg.scan_timeout == 5.0


def test_load_top_level_mapping(tmp_path):
    path = tmp_path / "bench.yaml"
    path.write_text("address: 192.168.1.20\nport: 5025\nscan_timeout: 2\ndevice_clear_port: 5005\n")

    cfg = load_config(str(path))
    assert cfg.address == "192.168.1.20"
    assert cfg.scan_timeout == 2.0
    assert isinstance(cfg.scan_timeout, float)
    assert cfg.device_clear_port == 5005


def test_load_instrument_section(tmp_path):
    path = tmp_path / "bench.yaml"
    path.write_text('instrument:\n  address: scope.lab\n  newline_token: "\\r\\n"\n')

    cfg = load_config(str(path))
    assert cfg.address == "scope.lab"
    assert cfg.newline_token == "\r\n"


def test_empty_file_gives_defaults(tmp_path):
    path = tmp_path / "empty.yaml"
    path.write_text("")
    assert load_config(str(path)) == InstrumentConfig()


@pytest.mark.parametrize("data", [
    {"adress": "typo"},
    {"scan_timeout": -1},
    {"newline_token": ""},
])
def test_invalid_settings(data):
    with pytest.raises(ValueError):
        config_from_dict(data)


def test_non_mapping_rejected(tmp_path):
    path = tmp_path / "list.yaml"
    path.write_text("- a\n- b\n")
    with pytest.raises(ValueError):
        load_config(str(path))


def test_client_from_config():
    cfg = InstrumentConfig(scan_timeout=1.5, newline_token="\r\n", device_clear_port=5005)
    client = InstrumentIO.from_config(cfg)
    assert client.scan_timeout == 1.5
    assert client.newline_token == "\r\n"
    assert client.device_clear_port == 5005
    assert not client.is_connected


def test_overrides_skip_none():
    cfg = InstrumentConfig().with_overrides(scan_timeout=0.5, address=None)
    assert cfg.scan_timeout == 0.5
    assert cfg.address is None
