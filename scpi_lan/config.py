from __future__ import annotations
import yaml
from dataclasses import dataclass, fields, replace
from typing import Any, Optional


@dataclass
class InstrumentConfig:
    """Connection settings for one instrument.

    Timeouts are in seconds. ``device_clear_port`` is the control port an
    instrument listens on for the out-of-band clear.
    """

    address: Optional[str] = None
    port: int = 5025
    connect_timeout: float = 5.0
    print_timeout: float = 5.0
    scan_timeout: float = 5.0
    newline_token: str = "\n"
    device_clear_port: int = 5000
    encoding: str = "utf-8"

    def with_overrides(self, **overrides: Any) -> "InstrumentConfig":
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})


def config_from_dict(data: dict) -> InstrumentConfig:
    if "instrument" in data and isinstance(data["instrument"], dict):
        data = data["instrument"]
    known = {f.name for f in fields(InstrumentConfig)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ValueError(f"unknown instrument settings: {', '.join(unknown)}")
    cfg = InstrumentConfig(**data)
    for name in ("connect_timeout", "print_timeout", "scan_timeout"):
        value = float(getattr(cfg, name))
        if value < 0:
            raise ValueError(f"{name} must not be negative")
        setattr(cfg, name, value)
    cfg.port = int(cfg.port)
    cfg.device_clear_port = int(cfg.device_clear_port)
    if not cfg.newline_token:
        raise ValueError("newline_token must not be empty")
    return cfg


def load_config(path: str) -> InstrumentConfig:
    with open(path, "r") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: expected a mapping of instrument settings")
    return config_from_dict(data)
