from __future__ import annotations
from .errors import Result
from .instrument_io import InstrumentIO

class Instrument:
    """IEEE 488.2 common commands over an InstrumentIO session."""
    def __init__(self, io: InstrumentIO): self.io = io
    def idn(self) -> Result: return self.io.query("*IDN?")
    def reset(self) -> Result: return self.io.print("*RST")
    def clear_status(self) -> Result: return self.io.print("*CLS")
    def error(self) -> Result: return self.io.query("SYST:ERR?")
    def wait_complete(self) -> Result: return self.io.query("*OPC?")
    def device_clear(self) -> Result: return self.io.device_clear()
