"""Handing the stage 2 loader and the payload to the device."""

from __future__ import annotations

from collections import deque
from typing import Protocol

from .protocol import ProtocolError

PROMPT = b"fernly>"

# How much of the device's echo of the "loadjmp" line is read back.
_ECHO_READ_SIZE = 128


class Port(Protocol):
    """The subset of a serial port used here."""

    def read(self, size: int) -> bytes: ...

    def write(self, data: bytes) -> int | None: ...

    def flush(self) -> None: ...


def _write_all(port: Port, data: bytes) -> int:
    written = port.write(data)
    if written is not None and written != len(data):
        raise ProtocolError(f"shortened write (want: {len(data)} got: {written})")
    return len(data)


def wait_banner(port: Port, banner: bytes | str) -> None:
    """Read from *port* until the most recent bytes equal *banner*."""
    target = banner.encode("latin-1") if isinstance(banner, str) else bytes(banner)
    if not target:
        raise ValueError("banner must not be empty")
    window: deque[int] = deque(maxlen=len(target))
    while True:
        byte = port.read(1)
        if len(byte) != 1:
            raise ProtocolError(f"port closed while waiting for {target!r}")
        window.append(byte[0])
        if len(window) == len(target) and bytes(window) == target:
            return


def write_stage2(port: Port, data: bytes) -> int:
    """Send the little-endian length of *data* followed by *data* itself."""
    payload = bytes(data)
    _write_all(port, len(payload).to_bytes(4, "little"))
    written = _write_all(port, payload)
    port.flush()
    return written


def write_stage3(port: Port, data: bytes) -> int:
    """Ask the stage 2 shell to load *data* at 0 and jump there, then send it."""
    payload = bytes(data)
    command = f"loadjmp 0 {len(payload)}\n".encode("ascii")
    _write_all(port, command)
    port.read(_ECHO_READ_SIZE)
    written = _write_all(port, payload)
    port.flush()
    return written