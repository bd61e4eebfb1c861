"""Client side of the boot ROM download protocol spoken over a serial port."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import IntEnum
from typing import Protocol

from .hexdump import format_hex
from .image import FileInfo, checksum16

log = logging.getLogger(__name__)

BANNER = bytes([0xA0, 0x0A, 0x50, 0x05])
BANNER_RESPONSE = bytes([0x5F, 0xF5, 0xAF, 0xFA])

# Number of bytes in the signature hash announced with a data upload.
SIGNATURE_LEN = 2

# Addresses in this range are usually occupied by the boot ROM itself.
_SUSPECT_LOW = 0x70000000
_SUSPECT_HIGH = 0x70006598

PATTERN_BASE = 0x70000000


class ProtocolError(Exception):
    """The device did not answer the way the protocol requires."""


class Command(IntEnum):
    """Command bytes understood by the boot ROM."""

    OLD_WRITE16 = 0xA1
    OLD_READ16 = 0xA2
    CHECKSUM16 = 0xA4
    REMAP_BEFORE_JUMP_TO_DA = 0xA7
    JUMP_TO_DA = 0xA8
    SEND_DA = 0xAD
    JUMP_TO_MAUI = 0xB7
    GET_VERSION = 0xB8
    CLOSE_USB_AND_RESET = 0xB9
    NEW_READ16 = 0xD0
    NEW_READ32 = 0xD1
    NEW_WRITE16 = 0xD2
    NEW_WRITE32 = 0xD4
    JUMP = 0xD5
    JUMP_TO_BL = 0xD6
    SEND_DATA = 0xD7
    GET_SEC_CONF = 0xD8
    SEND_BOOTLOADER = 0xD9
    ENABLE_UART = 0xDC
    SEND_CERT = 0xE0
    GET_ME = 0xE1
    SEND_AUTH = 0xE2
    SLA_FLOW = 0xE3
    SEND_ROOT_CERT = 0xE5
    DO_SECURITY = 0xFE
    FIRMWARE_VERSION = 0xFF


class Port(Protocol):
    """The subset of a serial port used here."""

    def read(self, size: int) -> bytes: ...

    def write(self, data: bytes) -> int | None: ...


@dataclass(frozen=True)
class TransferResult:
    """Checksums reported by the device and computed locally for an upload."""

    device_checksum: int
    computed_checksum: int

    @property
    def matches(self) -> bool:
        return self.device_checksum == self.computed_checksum


class BootRom:
    """Talks to the boot ROM on the other end of *port*."""

    def __init__(self, port: Port) -> None:
        self.port = port

    # -- raw transport -------------------------------------------------

    def _write(self, data: bytes) -> None:
        written = self.port.write(data)
        if written is not None and written != len(data):
            raise ProtocolError(
                f"wanted to write {len(data)} bytes, but wrote {written}"
            )

    def _read(self, size: int) -> bytes:
        data = bytes(self.port.read(size))
        if len(data) != size:
            raise ProtocolError(f"wanted to read {size} bytes, but read {len(data)}")
        return data

    def txrx(self, data: bytes) -> None:
        """Send *data* and require the device to echo it back."""
        data = bytes(data)
        self._write(data)
        response = self._read(len(data))
        if response != data:
            raise ProtocolError(
                "response differs from command: expected "
                f"{data.hex(' ')}, received {response.hex(' ')}"
            )

    def send_cmd(self, cmd: int) -> None:
        self.txrx(bytes([cmd & 0xFF]))

    def send_int16(self, word: int) -> None:
        self.txrx((word & 0xFFFF).to_bytes(2, "big"))

    def send_int32(self, word: int) -> None:
        self.txrx((word & 0xFFFFFFFF).to_bytes(4, "big"))

    def send_int8_no_response(self, byte: int) -> None:
        self._write(bytes([byte & 0xFF]))

    def send_int16_no_response(self, word: int) -> None:
        self._write((word & 0xFFFF).to_bytes(2, "big"))

    def send_int32_no_response(self, word: int) -> None:
        self._write((word & 0xFFFFFFFF).to_bytes(4, "big"))

    def get_int8(self) -> int:
        return self._read(1)[0]

    def get_int16(self) -> int:
        return int.from_bytes(self._read(2), "big")

    def get_int32(self) -> int:
        return int.from_bytes(self._read(4), "big")

    # -- session setup -------------------------------------------------

    def hello(self) -> None:
        """Exchange the start-up banner with the boot ROM."""
        for index, (out, wanted) in enumerate(zip(BANNER, BANNER_RESPONSE)):
            self._write(bytes([out]))
            got = self._read(1)[0]
            if got != wanted:
                raise ProtocolError(
                    f"invalid banner response for character {index}: "
                    f"0x{got:02x} (wanted 0x{wanted:02x})"
                )

    def security_version(self) -> int:
        self._write(bytes([Command.FIRMWARE_VERSION]))
        return self._read(1)[0]

    def do_security(self) -> None:
        self.send_cmd(Command.DO_SECURITY)

    def _read_sized_block(self, cmd: Command) -> bytes:
        self.send_cmd(cmd)
        size = self.get_int32()
        data = self._read(size)
        self.get_int16()  # trailing status word, always ignored
        return data

    def read_me(self) -> bytes:
        """Return the ME block reported by the device."""
        return self._read_sized_block(Command.GET_ME)

    def read_sec_conf(self) -> bytes:
        """Return the security configuration block (may be empty)."""
        return self._read_sized_block(Command.GET_SEC_CONF)

    # -- legacy 16-bit memory access -----------------------------------

    def memory_read(self, addr: int, count: int) -> bytes:
        """Read *count* bytes from *addr*, swapping each 16-bit pair."""
        self.send_cmd(Command.OLD_READ16)
        self.send_int32(addr)
        self.send_int32(count // 2)
        raw = bytearray(self._read(count))
        even = len(raw) - len(raw) % 2
        raw[0:even:2], raw[1:even:2] = raw[1:even:2], raw[0:even:2]
        return bytes(raw)

    def memory_write(self, addr: int, data: bytes) -> None:
        """Write *data* to *addr*; only whole 4-byte groups are transferred."""
        buf = bytes(data)
        if len(buf) % 2:
            buf += b"\x00"
        self.send_cmd(Command.OLD_WRITE16)
        self.send_int32(addr)
        self.send_int32(len(buf) // 2)
        for start in range(0, len(buf) - 3, 4):
            chunk = buf[start : start + 4]
            for pair in (chunk[2:4], chunk[0:2]):
                log.debug("Writing data: 0x%04x", int.from_bytes(pair, "big"))
                self.txrx(pair[::-1])

    def write_reg16(self, addr: int, val: int) -> None:
        self.send_cmd(Command.OLD_WRITE16)
        self.send_int32(addr)
        self.send_int32(1)
        self.send_int16(val)

    def write_reg32(self, addr: int, val: int) -> None:
        self.send_cmd(Command.OLD_WRITE16)
        self.send_int32(addr)
        self.send_int32(2)
        self.send_int16(val >> 16)
        self.send_int16(val)

    def read_reg16(self, addr: int) -> int:
        return int.from_bytes(self.memory_read(addr, 2), "little")

    def read_reg32(self, addr: int) -> int:
        return int.from_bytes(self.memory_read(addr, 4), "little")

    # -- newer register access -----------------------------------------

    def _expect_status(self, what: str, wanted: int, problems: list[str]) -> None:
        status = self.get_int16()
        if status != wanted:
            problems.append(f"response {what} was not {wanted}, was 0x{status:04x}")

    def read16(self, addr: int) -> int:
        self.send_cmd(Command.NEW_READ16)
        self.send_int32(addr)
        self.send_int32(1)
        problems: list[str] = []
        self._expect_status("read16 (1)", 0, problems)
        value = self.get_int16()
        self._expect_status("read16 (3)", 0, problems)
        for problem in problems:
            log.warning("%s", problem)
        return value

    def read32(self, addr: int) -> int:
        self.send_cmd(Command.NEW_READ32)
        self.send_int32(addr)
        self.send_int32(1)
        problems: list[str] = []
        self._expect_status("read32 (1)", 0, problems)
        value = self.get_int32()
        self._expect_status("read32 (3)", 0, problems)
        for problem in problems:
            log.warning("%s", problem)
        return value

    def write16(self, addr: int, val: int) -> None:
        self.send_cmd(Command.NEW_WRITE16)
        self.send_int32(addr)
        self.send_int32(1)
        problems: list[str] = []
        self._expect_status("write16 (1)", 1, problems)
        self.send_int16(val)
        self._expect_status("write16 (2)", 1, problems)
        if problems:
            raise ProtocolError("; ".join(problems))

    def write32(self, addr: int, val: int) -> None:
        self.send_cmd(Command.NEW_WRITE32)
        self.send_int32(addr)
        self.send_int32(1)
        problems: list[str] = []
        self._expect_status("write32 (1)", 1, problems)
        self.send_int32(val)
        self._expect_status("write32 (2)", 1, problems)
        if problems:
            raise ProtocolError("; ".join(problems))

    # -- code upload and execution -------------------------------------

    def jump(self, addr: int) -> None:
        """Start execution at *addr*."""
        self.send_cmd(Command.JUMP)
        self.send_int32(addr)
        status = self.get_int16()
        if status:
            raise ProtocolError(f"error while jumping: 0x{status:04x}")

    def send_data(self, addr: int, data: bytes) -> TransferResult:
        """Upload *data* to *addr* and compare the device's checksum."""
        if not data:
            raise ValueError("nothing to send")
        if _SUSPECT_LOW <= addr < _SUSPECT_HIGH:
            log.warning("address 0x%08x is probably invalid", addr)
        payload = bytearray(data)
        self.send_cmd(Command.SEND_DATA)
        self.send_int32(addr)
        self.send_int32(len(payload))
        self.send_int32(SIGNATURE_LEN)
        first = self.get_int16()
        if first:
            log.warning("first response is 0x%04x, not 0", first)
        payload[-1] ^= 0xFF
        self._write(bytes(payload))
        result = TransferResult(self.get_int16(), checksum16(payload))
        final = self.get_int16()
        if final:
            log.warning("final response is 0x%04x, not 0", final)
        return result

    def send_bootloader(
        self, addr: int, stack: int, unk: int, data: bytes
    ) -> TransferResult:
        """Upload a bootloader image with its file header to *addr*."""
        payload = bytes(data)
        info = FileInfo.parse(payload)
        log.info("%s", info.describe())
        if info.sig_len:
            log.info("Hash:\n%s", format_hex(payload[len(payload) - info.sig_len :]))

        self.send_cmd(Command.SEND_BOOTLOADER)
        self.send_int32(addr)
        self.send_int32(len(payload))
        self.send_int32(stack)
        self.send_int32(unk)
        problems: list[str] = []
        status = self.get_int16()
        if status:
            problems.append(f"response 0xd9 (1) was not 0, was 0x{status:04x}")
        self._write(payload)
        result = TransferResult(self.get_int16(), checksum16(payload))
        status = self.get_int16()
        if status:
            problems.append(f"response 0xd9 (2) was not 0, was 0x{status:04x}")
        status = self.get_int32()
        if status:
            problems.append(f"response 0xd9 (4) was not 0, was 0x{status:08x}")
        if problems:
            raise ProtocolError("; ".join(problems))
        return result

    def write_pattern(self) -> None:
        """Fill the first 16 bytes of SRAM with an incrementing pattern."""
        for i in range(0, 16, 2):
            self.write_reg16(PATTERN_BASE + i, i | ((i + 1) << 8))