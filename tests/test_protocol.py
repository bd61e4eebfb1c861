import struct

import pytest

from fernload.image import checksum16
from fernload.protocol import (
    BANNER,
    BANNER_RESPONSE,
    BootRom,
    Command,
    ProtocolError,
    TransferResult,
)


class FakePort:
    def __init__(self, rx=b""):
        self.rx = bytearray(rx)
        self.tx = bytearray()

    def write(self, data):
        self.tx += data
        return len(data)

    def read(self, size):
        out = bytes(self.rx[:size])
        del self.rx[:size]
        return out


def i32(value):
    return value.to_bytes(4, "big")


def i16(value):
    return value.to_bytes(2, "big")


def echo_header(cmd, *words):
    return bytes([cmd]) + b"".join(i32(w) for w in words)


def test_send_cmd_echo():
    port = FakePort(b"\xa1")
    BootRom(port).send_cmd(Command.OLD_WRITE16)
    assert port.tx == b"\xa1"
    assert port.rx == b""


def test_txrx_mismatch_raises():
    port = FakePort(b"\x00")
    with pytest.raises(ProtocolError):
        BootRom(port).send_cmd(0xA1)


def test_short_read_raises():
    port = FakePort(b"\x12")
    with pytest.raises(ProtocolError):
        BootRom(port).get_int16()


def test_send_int16_and_int32_big_endian():
    port = FakePort(b"\x12\x34\x01\x02\x03\x04")
    rom = BootRom(port)
    rom.send_int16(0x1234)
    rom.send_int32(0x01020304)
    assert port.tx == b"\x12\x34\x01\x02\x03\x04"


def test_no_response_writes_do_not_read():
    port = FakePort(b"\xff")
    rom = BootRom(port)
    rom.send_int8_no_response(0x05)
    rom.send_int16_no_response(0xABCD)
    rom.send_int32_no_response(0x01020304)
    assert port.tx == b"\x05\xab\xcd\x01\x02\x03\x04"
    assert port.rx == b"\xff"


def test_get_ints_big_endian():
    port = FakePort(b"\x07\x12\x34\x01\x02\x03\x04")
    rom = BootRom(port)
    assert rom.get_int8() == 0x07
    assert rom.get_int16() == 0x1234
    assert rom.get_int32() == 0x01020304


def test_hello_exchanges_banner():
    port = FakePort(BANNER_RESPONSE)
    BootRom(port).hello()
    assert bytes(port.tx) == bytes([0xA0, 0x0A, 0x50, 0x05])


def test_hello_bad_response_raises():
    port = FakePort(b"\x5f\x00\xaf\xfa")
    with pytest.raises(ProtocolError):
        BootRom(port).hello()
    assert bytes(port.tx) == BANNER[:2]


def test_security_version():
    port = FakePort(b"\x03")
    assert BootRom(port).security_version() == 3
    assert port.tx == b"\xff"


def test_do_security():
    port = FakePort(b"\xfe")
    BootRom(port).do_security()
    assert port.tx == b"\xfe"


def test_read_me_returns_block():
    block = bytes(range(22))
    port = FakePort(b"\xe1" + i32(len(block)) + block + i16(0))
    assert BootRom(port).read_me() == block
    assert port.rx == b""


def test_read_sec_conf_empty():
    port = FakePort(b"\xd8" + i32(0) + i16(0))
    assert BootRom(port).read_sec_conf() == b""


def test_memory_read_swaps_pairs():
    rx = echo_header(0xA2, 0x80000000, 2) + b"\x01\x02\x03\x04"
    port = FakePort(rx)
    assert BootRom(port).memory_read(0x80000000, 4) == b"\x02\x01\x04\x03"
    assert port.tx == echo_header(0xA2, 0x80000000, 2)


def test_read_reg16_value():
    rx = echo_header(0xA2, 0x80000000, 1) + b"\x12\x34"
    assert BootRom(FakePort(rx)).read_reg16(0x80000000) == 0x1234


def test_read_reg32_matches_memory_read():
    wire = b"\x01\x02\x03\x04"
    rx = echo_header(0xA2, 0x10, 2) + wire
    value = BootRom(FakePort(rx)).read_reg32(0x10)
    swapped = BootRom(FakePort(rx)).memory_read(0x10, 4)
    assert value.to_bytes(4, "little") == swapped


def test_memory_write_doubly_swapped():
    header = echo_header(0xA1, 0x100, 2)
    payload = b"\x04\x03\x02\x01"
    port = FakePort(header + payload)
    BootRom(port).memory_write(0x100, b"\x01\x02\x03\x04")
    assert port.tx == header + payload


def test_memory_write_short_tail_sends_only_header():
    header = echo_header(0xA1, 0x100, 1)
    port = FakePort(header)
    BootRom(port).memory_write(0x100, b"\x01")
    assert port.tx == header


def test_write_reg32_splits_words():
    expected = echo_header(0xA1, 0x20, 2) + b"\xaa\xbb\xcc\xdd"
    port = FakePort(expected)
    BootRom(port).write_reg32(0x20, 0xAABBCCDD)
    assert port.tx == expected


def test_read16_returns_value():
    rx = echo_header(0xD0, 0xA0710000, 1) + i16(0) + i16(0xBEEF) + i16(0)
    assert BootRom(FakePort(rx)).read16(0xA0710000) == 0xBEEF


def test_read32_returns_value():
    rx = echo_header(0xD1, 0xA0510000, 1) + i16(0) + i32(0x12345678) + i16(0)
    assert BootRom(FakePort(rx)).read32(0xA0510000) == 0x12345678


def test_write16_success():
    rx = echo_header(0xD2, 0xA0030000, 1) + i16(1) + i16(0x2200) + i16(1)
    port = FakePort(rx)
    BootRom(port).write16(0xA0030000, 0x2200)
    assert port.tx == echo_header(0xD2, 0xA0030000, 1) + i16(0x2200)


def test_write16_bad_status_raises_after_full_exchange():
    rx = echo_header(0xD2, 0xA0030000, 1) + i16(0) + i16(0x2200) + i16(1)
    port = FakePort(rx)
    with pytest.raises(ProtocolError):
        BootRom(port).write16(0xA0030000, 0x2200)
    assert port.rx == b""


def test_write32_success():
    rx = echo_header(0xD4, 0xA0510000, 1) + i16(1) + i32(2) + i16(1)
    port = FakePort(rx)
    BootRom(port).write32(0xA0510000, 2)
    assert port.rx == b""


def test_jump_error_status_raises():
    rx = echo_header(0xD5, 0x7000C000) + i16(3)
    with pytest.raises(ProtocolError):
        BootRom(FakePort(rx)).jump(0x7000C000)


def test_jump_ok():
    rx = echo_header(0xD5, 0x7000C000) + i16(0)
    port = FakePort(rx)
    BootRom(port).jump(0x7000C000)
    assert port.tx == echo_header(0xD5, 0x7000C000)


def test_send_data_inverts_last_byte_and_checks():
    data = b"\x01\x02\x03\x04"
    sent = b"\x01\x02\x03\xfb"
    header = echo_header(0xD7, 0x7000C000, len(data), 2)
    rx = header + i16(0) + i16(checksum16(sent)) + i16(0)
    port = FakePort(rx)
    result = BootRom(port).send_data(0x7000C000, data)
    assert port.tx == header + sent
    assert result.matches
    assert result.computed_checksum == checksum16(sent)


def test_send_data_reports_mismatch():
    data = b"\x10\x20"
    header = echo_header(0xD7, 0x7000C000, 2, 2)
    rx = header + i16(0) + i16(0) + i16(0)
    result = BootRom(FakePort(rx)).send_data(0x7000C000, data)
    assert result == TransferResult(0, checksum16(b"\x10\xdf"))
    assert not result.matches


def test_send_data_empty_rejected():
    with pytest.raises(ValueError):
        BootRom(FakePort()).send_data(0x7000C000, b"")


def _bootloader_image():
    header = struct.pack(
        "<IHH12sIHBBIIIIIII",
        0x014D4D4D, 56, 0, b"FILE_INFO", 1, 0, 0, 1,
        0x70006000, 60, 0x1000, 56, 4, 56, 0,
    )
    return header + b"\xde\xad\xbe\xef"


def test_send_bootloader_success():
    image = _bootloader_image()
    header = echo_header(0xD9, 0x70006000, len(image), 0x7000A000, 0)
    rx = header + i16(0) + i16(checksum16(image)) + i16(0) + i32(0)
    port = FakePort(rx)
    result = BootRom(port).send_bootloader(0x70006000, 0x7000A000, 0, image)
    assert port.tx == header + image
    assert result.matches


def test_send_bootloader_bad_status_raises():
    image = _bootloader_image()
    header = echo_header(0xD9, 0x70006000, len(image), 0, 0)
    rx = header + i16(0) + i16(0) + i16(0) + i32(5)
    with pytest.raises(ProtocolError):
        BootRom(FakePort(rx)).send_bootloader(0x70006000, 0, 0, image)


def test_send_bootloader_too_short_image():
    with pytest.raises(ValueError):
        BootRom(FakePort()).send_bootloader(0, 0, 0, b"\x00" * 8)


def test_write_pattern():
    expected = b"".join(
        echo_header(0xA1, 0x70000000 + i, 1) + i16(i | ((i + 1) << 8))
        for i in range(0, 16, 2)
    )
    port = FakePort(expected)
    BootRom(port).write_pattern()
    assert port.tx == expected
    assert port.tx[9:11] == b"\x01\x00"