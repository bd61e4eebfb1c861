"""A 240x320 RGB565 bitmap showing which keypad keys are still untested."""

from __future__ import annotations

import struct
from array import array

_KEY_BITS = {"L": 10, "R": 11, "U": 12, "D": 13, "A": 14, "B": 15, "*": 16, "#": 17}

_BUTTONS = (
    (64, 32, "A"),
    (192, 32, "B"),
    (128, 64 + 8, "U"),
    (64, 80 + 8, "L"),
    (192, 80 + 8, "R"),
    (128, 96 + 8, "D"),
    (64, 128 + 16, "1"),
    (128, 128 + 16, "2"),
    (196, 128 + 16, "3"),
    (64, 176 + 16, "4"),
    (128, 176 + 16, "5"),
    (196, 176 + 16, "6"),
    (64, 224 + 16, "7"),
    (128, 224 + 16, "8"),
    (196, 224 + 16, "9"),
    (64, 272 + 16, "*"),
    (128, 272 + 16, "0"),
    (196, 272 + 16, "#"),
)

BUTTON_RADIUS = 16


def key_mask(char: str | int) -> int:
    """Return the bit that stands for keypad key *char*, or 0 if unknown."""
    if isinstance(char, int):
        char = chr(char)
    if "0" <= char <= "9" and len(char) == 1:
        return 1 << (ord(char) - ord("0"))
    bit = _KEY_BITS.get(char)
    return 0 if bit is None else 1 << bit


class KeypadScreen:
    """Frame buffer with simple circle drawing for the keypad test."""

    WIDTH = 240
    HEIGHT = 320

    def __init__(self) -> None:
        self.pixels = array("H", bytes(2 * self.WIDTH * self.HEIGHT))

    def put_pixel(self, x: int, y: int, color: int) -> None:
        """Set one pixel; coordinates beyond the screen are ignored."""
        if x < 0 or y < 0 or x > self.WIDTH or y > self.HEIGHT:
            return
        index = y * self.WIDTH + x
        if index < len(self.pixels):
            self.pixels[index] = color & 0xFFFF

    def draw_circle(self, x: int, y: int, radius: int, color: int) -> None:
        """Draw a circle outline with Bresenham's algorithm."""
        a = 1
        b = radius
        p = 4 - radius
        put = self.put_pixel
        put(x, y + b, color)
        put(x, y - b, color)
        put(x + b, y, color)
        put(x - b, y, color)
        while True:
            put(x + a, y + b, color)
            put(x + a, y - b, color)
            put(x + b, y + a, color)
            put(x - b, y + a, color)
            put(x - a, y + b, color)
            put(x - a, y - b, color)
            put(x + b, y - a, color)
            put(x - b, y - a, color)
            if p < 0:
                p += 3 + 2 * a
                a += 1
            else:
                p += 5 + 2 * (a - b)
                a += 1
                b -= 1
            if not a < b:
                break
        put(x + a, y + b, color)
        put(x + a, y - b, color)
        put(x - a, y + b, color)
        put(x - a, y - b, color)

    def draw_filled_circle(self, x: int, y: int, radius: int, color: int) -> None:
        """Fill a disc by drawing concentric outlines."""
        for r in range(radius):
            self.draw_circle(x, y, r, color)

    def draw_button(
        self, x: int, y: int, color: int, keymask: int, key: str | int
    ) -> None:
        """Draw a filled circle if *key* is in *keymask*, else an outline."""
        if keymask & key_mask(key):
            self.draw_filled_circle(x, y, BUTTON_RADIUS, color)
        else:
            self.draw_circle(x, y, BUTTON_RADIUS, color)

    def render(self, keymask: int) -> None:
        """Clear the screen and draw every keypad button."""
        self.pixels = array("H", bytes(2 * self.WIDTH * self.HEIGHT))
        for x, y, key in _BUTTONS:
            self.draw_button(x, y, 0xFFFF, keymask, key)

    def to_bytes(self) -> bytes:
        """Return the frame buffer as little-endian 16-bit pixels."""
        return struct.pack(f"<{len(self.pixels)}H", *self.pixels)