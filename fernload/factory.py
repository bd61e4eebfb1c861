"""Factory self-test that drives the LED, LCD and keypad via the stage 2 shell."""

from __future__ import annotations

from .screen import KeypadScreen, key_mask
from .stages import PROMPT, Port, wait_banner

ALL_KEYS_MASK = 0x3FFFF
FRAMEBUFFER_ADDR = 0x40000

_DRAIN_SIZE = 128


def _send_line(port: Port, text: str) -> None:
    """Wait for the shell prompt, send *text* and swallow its echo."""
    wait_banner(port, PROMPT)
    line = text.encode("ascii")
    port.write(line)
    port.read(len(line))


def _skip_line(port: Port) -> None:
    while True:
        byte = port.read(1)
        if len(byte) != 1 or byte == b"\n":
            return


def _test_begin(message: str) -> None:
    print(f"    {message}: ", end="", flush=True)


def _test_end() -> None:
    print("Ok", flush=True)


def draw_bitmap_to_screen(port: Port, bitmap: bytes) -> None:
    """Load *bitmap* into the frame buffer and push one frame to the LCD."""
    data = bytes(bitmap)
    wait_banner(port, PROMPT)
    command = f"load 0x{FRAMEBUFFER_ADDR:x} {len(data)}\n".encode("ascii")
    port.write(command)
    port.read(len(command))
    port.write(data)
    _send_line(port, "lcd run\n")


def run_factory_test(port: Port) -> bool:
    """Light the LED and wait until every keypad key has been pressed.

    Returns False if the port stops delivering key presses.
    """
    print()

    _test_begin("Turn on LED")
    _send_line(port, "led 1\n")
    _test_end()

    _test_begin("Keypad")
    screen = KeypadScreen()
    keymask = ALL_KEYS_MASK
    needs_rerun = True
    light_on = True

    screen.render(keymask)
    draw_bitmap_to_screen(port, screen.to_bytes())
    while keymask:
        if needs_rerun:
            _send_line(port, "keypad 1\n")
            for _ in range(3):
                _skip_line(port)
            needs_rerun = False

        key = port.read(1)
        if len(key) != 1:
            print("Failed: Unable to read from port", flush=True)
            return False

        code = key[0]
        print(f"\nGot key: {code} ({chr(code)})", end="", flush=True)
        keymask &= ~key_mask(code)
        print(f"Keymask: 0x{keymask:5x}")

        if keymask:
            needs_rerun = True
        else:
            port.write(b"\n")

        screen.render(keymask)
        draw_bitmap_to_screen(port, screen.to_bytes())

        if light_on:
            _send_line(port, "led 0\n")
            light_on = False

    port.write(b"\n")
    port.read(_DRAIN_SIZE)
    _test_end()
    return True