# fernload

Load code onto a Fernvale board through its boot ROM over a serial
line, and optionally drop into an interactive shell or run the factory
test.

The `fernload` command says hello to the boot ROM and reads out some
chip information. It turns off the watchdog, sets up the RTC and the
PSRAM mapping, and enables the UART. Then it uploads a small stage 1
loader to `0x7000c000` and jumps to it. Next it pushes the stage 2
firmware across the serial line. An optional payload can follow; the
stage 2 shell loads it at address 0 and jumps to it.

## Installation

```
pip install .
```

## Usage

```
fernload [-l LOGFILE] [-w] [-s] [-t] SERIAL_PORT STAGE1 STAGE2 [PAYLOAD]
```

| Option         | Meaning                                                        |
|----------------|----------------------------------------------------------------|
| `-l LOGFILE`   | In shell mode, append the bytes received from the board to `LOGFILE` |
| `-w`           | Wait, retrying once a second, for the serial port to appear    |
| `-s`           | Enter the interactive boot shell after loading                 |
| `-t`           | Run the factory test (LED, LCD, keypad) after stage 2          |
| `-h`           | Print help and exit                                            |

The serial port is opened at 115200 baud.

Example:

```
fernload -s /dev/ttyACM0 build/usb-loader.bin build/firmware.bin
```

If you leave out `-s`, the program exits once the board shows its
`fernly>` prompt. With `-s`, the terminal is switched to raw mode and
keystrokes go straight to the board. The session ends when either side
stops delivering data. The shell needs a POSIX terminal.

The factory test turns on the LED and draws the keypad on the LCD. You
then press every key in turn. A key turns from filled to an outline
once it has been seen. The test ends when all 18 keys have been pressed.

The exit status is 0 on success and 1 on a usage error. It is also 1
when a file or the port cannot be opened, or when the boot ROM answers
wrongly.

## Library use

The pieces can also be used from Python:

- `fernload.protocol.BootRom` wraps any object with `read(size)` and
  `write(data)`, such as a `serial.Serial`. It speaks the boot ROM
  protocol through methods such as `hello()`, `read16()`, `read32()`,
  `write16()`, `write32()`, `memory_read()`, `send_data()`,
  `send_bootloader()` and `jump()`. Failures raise
  `fernload.protocol.ProtocolError`. The command bytes are listed in
  `fernload.protocol.Command`.
- `fernload.image.FileInfo.parse()` decodes the file-info header at the
  start of a boot image. `FileInfo.describe()` summarises it.
  `checksum16()` computes the XOR-of-16-bit-words checksum that the boot
  ROM reports.
- `fernload.stages` holds `wait_banner()`, `write_stage2()` and
  `write_stage3()` for talking to the stage 1 loader and the stage 2
  shell.
- `fernload.factory.run_factory_test()` runs the factory test on an open
  port.
- `fernload.hexdump.format_hex()` and `hex_lines()` give an offset, hex
  and ASCII dump.
- `fernload.screen.KeypadScreen` draws the 240x320 RGB565 keypad screen
  that the factory test shows, and `key_mask()` maps a key to its bit.

## What it does not do

- `fernload` does not reset or power-cycle the board. Put the board into
  boot ROM mode yourself before running it.
- It does not build the stage 1 loader, the stage 2 firmware or the
  payload. It only sends files that you give it.