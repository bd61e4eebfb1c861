"""Command line tool that boots a device through its boot ROM over serial."""

from __future__ import annotations

import argparse
import os
import select
import sys
import time
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from pathlib import Path

import serial

from .factory import run_factory_test
from .hexdump import format_hex
from .protocol import BootRom, Command, ProtocolError
from .stages import PROMPT, wait_banner, write_stage2, write_stage3

BAUDRATE = 115200
USB_LOADER_ADDR = 0x7000C000
CONFIG_OFFSET = 0x80000000

_INFO_REGISTERS = (
    ("Getting hardware version", CONFIG_OFFSET),
    ("Getting chip ID", CONFIG_OFFSET + 8),
    ("Getting boot config (low)", 0xA0000000 + 0x10),
    ("Getting boot config (high)", 0xA0000000 + 0x14),
    ("Getting hardware subcode", CONFIG_OFFSET + 12),
    ("Getting hardware version (again)", CONFIG_OFFSET),
    ("Getting chip firmware version", CONFIG_OFFSET + 4),
)

_RTC_POWER_UP = 0xA0710000


def build_parser() -> argparse.ArgumentParser:
    """Return the argument parser for the loader command."""
    parser = argparse.ArgumentParser(
        prog="fernload",
        add_help=False,
        description=(
            "Load the stage 1 USB loader, the stage 2 bootloader and an "
            "optional payload onto a device in boot ROM mode. The boot shell "
            "allows you to interact directly with the stage 2 bootloader; "
            "without -s the program exits after loading."
        ),
    )
    parser.add_argument("-l", dest="logfile", metavar="LOGFILE",
                        help="log boot output to the specified file")
    parser.add_argument("-w", dest="wait", action="store_true",
                        help="wait for serial port to appear")
    parser.add_argument("-s", dest="shell", action="store_true",
                        help="enter boot shell")
    parser.add_argument("-t", dest="factory_test", action="store_true",
                        help="run factory test")
    parser.add_argument("-h", dest="help", action="store_true",
                        help="print this help")
    parser.add_argument("serial_port", nargs="?")
    parser.add_argument("stage1", nargs="?", help="stage 1 bootloader")
    parser.add_argument("stage2", nargs="?", help="stage 2 bootloader")
    parser.add_argument("payload", nargs="?", help="payload")
    return parser


def _begin(message: str) -> None:
    print(f"{message}... ", end="", flush=True)


def _end(text: str = "Ok") -> None:
    print(text, flush=True)


@contextmanager
def _lenient() -> Iterator[None]:
    """Report a protocol problem in a step without stopping the boot."""
    try:
        yield
    except ProtocolError as exc:
        print(f"failed: {exc}", flush=True)


def _open_port(path: str, wait: bool) -> serial.Serial:
    if wait:
        print("Waiting for serial port to connect: .", end="", flush=True)
    while True:
        try:
            port = serial.Serial(path, BAUDRATE)
        except serial.SerialException:
            if not wait:
                raise
            print(".", end="", flush=True)
            time.sleep(1)
            continue
        break
    if wait:
        print()
    return port


def _probe(rom: BootRom) -> None:
    for label, addr in _INFO_REGISTERS:
        _begin(label)
        with _lenient():
            _end(f"0x{rom.read_reg16(addr):04x}")

    _begin("Getting security version")
    with _lenient():
        _end(f"v {rom.security_version()}")

    _begin("Enabling security (?!)")
    with _lenient():
        rom.do_security()
        _end()

    _begin("Reading ME")
    with _lenient():
        print(format_hex(rom.read_me()), end="", flush=True)

    _begin("Disabling WDT")
    with _lenient():
        rom.write16(0xA0030000, 0x2200)
        _end()

    for label, addr in (
        ("Reading RTC Baseband Power Up (0xa0710000)", _RTC_POWER_UP),
        ("Reading RTC Power Key 1 (0xa0710050)", 0xA0710050),
        ("Reading RTC Power Key 2 (0xa0710054)", 0xA0710054),
    ):
        _begin(label)
        with _lenient():
            _end(f"0x{rom.read16(addr):04x}")

    for label, addr, value in (
        ("Setting seconds", 0xA0710010, 0),
        ("Disabling alarm IRQs", 0xA0710008, 0),
        ("Disabling RTC IRQ interval", 0xA071000C, 0),
        ("Enabling transfers from core to RTC", 0xA0710074, 1),
    ):
        _begin(label)
        with _lenient():
            rom.write16(addr, value)
            _end()

    _begin("Reading RTC Baseband Power Up (0xa0710000)")
    with _lenient():
        _end(f"0x{rom.read16(_RTC_POWER_UP):04x}")

    _begin("Getting security configuration")
    with _lenient():
        conf = rom.read_sec_conf()
        print(format_hex(conf) if conf else "None.\n", end="", flush=True)


def _remap_psram(rom: BootRom) -> None:
    _begin("Getting PSRAM mapping")
    with _lenient():
        _end(f"0x{rom.read32(0xA0510000):04x}")

    _begin("Disabling PSRAM -> ROM remapping")
    with _lenient():
        rom.write32(0xA0510000, 2)
        time.sleep(0.02)
        _end()

    for label in ("Checking PSRAM mapping", "Checking on PSRAM mapping again"):
        _begin(label)
        with _lenient():
            _end(f"0x{rom.read32(0xA0510000):04x}")

    _begin("Updating PSRAM mapping again for some reason")
    with _lenient():
        rom.write32(0xA0510000, 2)
        time.sleep(0.05)
        _end()

    _begin("Reading some fuses")
    with _lenient():
        rom.send_cmd(Command.GET_SEC_CONF)
        _end(f"0x{rom.get_int32():08x}")
        rom.get_int16()


def _shell(port: serial.Serial, logfile: str | None) -> None:
    import termios
    import tty

    term_fd = sys.stdout.fileno()
    stdin_fd = sys.stdin.fileno()
    saved = termios.tcgetattr(term_fd)
    log = None
    if logfile:
        try:
            log = open(logfile, "ab", buffering=0)
        except OSError as exc:
            print(f"Warning: could not open logfile: {exc}", file=sys.stderr)
    try:
        tty.setraw(term_fd, termios.TCSANOW)
        while True:
            ready, _, _ = select.select([port, stdin_fd], [], [])
            if port in ready:
                data = port.read(1)
                if len(data) != 1:
                    break
                if data == b"\x7f":
                    os.write(term_fd, b" \b")
                else:
                    os.write(term_fd, data)
                    if log is not None:
                        log.write(data)
            if stdin_fd in ready:
                data = os.read(stdin_fd, 1)
                if len(data) != 1:
                    break
                port.write(data)
    finally:
        termios.tcsetattr(term_fd, termios.TCSANOW, saved)
        if log is not None:
            log.close()


def _boot(port, args: argparse.Namespace, stage1: bytes, stage2: bytes,
          payload: bytes | None) -> int:
    rom = BootRom(port)

    _begin("Initiating communication")
    rom.hello()
    _end()

    _probe(rom)
    _remap_psram(rom)

    _begin("Enabling UART")
    rom.send_cmd(Command.ENABLE_UART)
    rom.send_int32(BAUDRATE)
    status = rom.get_int16()
    if status:
        raise ProtocolError(f"enabling UART failed: 0x{status:04x}")
    _end(f"0x{status:04x}")

    _begin("Loading Fernly USB loader")
    result = rom.send_data(USB_LOADER_ADDR, stage1)
    if result.matches:
        print(f"checksum matches 0x{result.device_checksum:04x} ", end="")
    else:
        print(f"device checksum 0x{result.device_checksum:04x}, but we "
              f"calculated 0x{result.computed_checksum:04x} ", end="")
    _end()

    _begin("Executing Fernly USB loader")
    rom.jump(USB_LOADER_ADDR)
    _end()

    _begin("Waiting for Fernly USB loader banner")
    wait_banner(port, b">")
    _end()

    _begin("Writing stage 2")
    print(f"{len(stage2)} bytes... ", end="", flush=True)
    written = write_stage2(port, stage2)
    print(f"{written:6d} / {len(stage2):6d} ", end="")
    _end()

    if args.factory_test:
        _begin("Starting factory test")
        run_factory_test(port)
        _end()
        return 0

    if payload is not None:
        _begin("Entering download mode")
        wait_banner(port, PROMPT)
        _end()

        _begin("Writing payload")
        print(f"{len(payload)} bytes... ", end="", flush=True)
        written = write_stage3(port, payload)
        print(f"{written:6d} / {len(payload):6d} ", end="")
        _end()

    if args.shell:
        _shell(port, args.logfile)
    else:
        _begin("Waiting for ready prompt")
        wait_banner(port, PROMPT)
        _end()
    return 0


def _read_file(path: str, what: str) -> bytes | None:
    try:
        return Path(path).read_bytes()
    except OSError as exc:
        print(f"Unable to open {what}: {exc}", file=sys.stderr)
        return None


def main(argv: Sequence[str] | None = None) -> int:
    """Run the loader; returns the process exit status."""
    parser = build_parser()
    try:
        args = parser.parse_args(argv)
    except SystemExit:
        return 1
    if args.help:
        parser.print_help()
        return 1
    if args.stage2 is None:
        return 1

    stage1 = _read_file(args.stage1, "stage 1 bootloader")
    if stage1 is None:
        return 1
    stage2 = _read_file(args.stage2, "firmware file")
    if stage2 is None:
        return 1
    payload = None
    if args.payload is not None:
        payload = _read_file(args.payload, "payload file")
        if payload is None:
            return 1

    try:
        port = _open_port(args.serial_port, args.wait)
    except serial.SerialException as exc:
        print(f"Unable to open serial port: {exc}", file=sys.stderr)
        return 1

    try:
        return _boot(port, args, stage1, stage2, payload)
    except (ProtocolError, ValueError) as exc:
        print(f"\nError: {exc}", file=sys.stderr)
        return 1
    finally:
        port.close()


if __name__ == "__main__":
    sys.exit(main())