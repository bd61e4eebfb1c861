"""Parsing of the general file header found at the start of boot images."""

from __future__ import annotations

import struct
from dataclasses import dataclass

_FILE_INFO = struct.Struct("<IHH12sIHBBIIIIIII")


@dataclass(frozen=True)
class FileInfo:
    """The FILE_INFO header that leads a bootloader image."""

    magic_ver: int
    size: int
    type: int
    id: bytes
    file_ver: int
    file_type: int
    flash_dev: int
    sig_type: int
    load_addr: int
    file_len: int
    max_size: int
    content_offset: int
    sig_len: int
    jump_offset: int
    attr: int

    HEADER_SIZE = _FILE_INFO.size

    @classmethod
    def parse(cls, data: bytes) -> "FileInfo":
        """Decode the header from the start of *data*."""
        if len(data) < _FILE_INFO.size:
            raise ValueError(
                f"image too short for file header: {len(data)} < {_FILE_INFO.size}"
            )
        return cls(*_FILE_INFO.unpack_from(data, 0))

    def describe(self) -> str:
        """Return a human readable summary of the header."""
        ident = self.id.rstrip(b"\x00").decode("latin-1")
        lines = [
            f"Id: {ident}",
            f"Version: {self.file_ver}",
            f"Type: {self.file_type}",
            f"Flash device: {self.flash_dev}",
            f"File size: {self.file_len}",
            f"Max size: {self.max_size}",
            f"Signature type: {self.sig_type}",
            f"Signature length: {self.sig_len}",
            f"Load address: 0x{self.load_addr:08x}",
            f"Content offset: {self.content_offset}",
            f"Jump offset: {self.jump_offset}",
            f"Attributes: {self.attr}",
        ]
        return "\n".join(lines) + "\n"


def checksum16(data: bytes) -> int:
    """XOR of all little-endian 16-bit words; an odd tail is zero-padded."""
    buf = bytes(data)
    if len(buf) % 2:
        buf += b"\x00"
    result = 0
    for (word,) in struct.iter_unpack("<H", buf):
        result ^= word
    return result