"""Canonical hex+ASCII dump of byte blocks."""

from __future__ import annotations

from collections.abc import Iterator

_BYTES_PER_LINE = 16


def _printable(byte: int) -> str:
    return chr(byte) if 0x20 <= byte <= 0x7E else "."


def hex_lines(block: bytes, start: int = 0) -> Iterator[str]:
    """Yield dump lines for *block*, labelling offsets from *start*."""
    data = bytes(block)
    for offset in range(0, len(data), _BYTES_PER_LINE):
        chunk = data[offset : offset + _BYTES_PER_LINE]
        parts = [f"{(start + offset) & 0xFFFFFFFF:08x}"]
        for index in range(_BYTES_PER_LINE):
            if index == 8:
                parts.append(" ")
            parts.append(" ")
            parts.append(f"{chunk[index]:02x}" if index < len(chunk) else "  ")
        text = "".join(_printable(b) for b in chunk)
        parts.append(f"  |{text}|")
        yield "".join(parts)


def format_hex(block: bytes, start: int = 0) -> str:
    """Return the whole dump of *block* as text, one newline per line."""
    return "".join(line + "\n" for line in hex_lines(block, start))