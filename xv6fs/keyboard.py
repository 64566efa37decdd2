"""PC keyboard scan code decoding."""

from __future__ import annotations

from collections.abc import Iterable

KBSTATP = 0x64
KBS_DIB = 0x01
KBDATAP = 0x60

NO = 0

SHIFT = 1 << 0
CTL = 1 << 1
ALT = 1 << 2
CAPSLOCK = 1 << 3
NUMLOCK = 1 << 4
SCROLLLOCK = 1 << 5
E0ESC = 1 << 6

KEY_HOME = 0xE0
KEY_END = 0xE1
KEY_UP = 0xE2
KEY_DN = 0xE3
KEY_LF = 0xE4
KEY_RT = 0xE5
KEY_PGUP = 0xE6
KEY_PGDN = 0xE7
KEY_INS = 0xE8
KEY_DEL = 0xE9


def _c(x: str) -> int:
    return (ord(x) - ord("@")) & 0xFF


_SHIFTCODE = {0x1D: CTL, 0x2A: SHIFT, 0x36: SHIFT, 0x38: ALT, 0x9D: CTL, 0xB8: ALT}
_TOGGLECODE = {0x3A: CAPSLOCK, 0x45: NUMLOCK, 0x46: SCROLLLOCK}

_EXTENDED = {
    0xC8: KEY_UP, 0xD0: KEY_DN,
    0xC9: KEY_PGUP, 0xD1: KEY_PGDN,
    0xCB: KEY_LF, 0xCD: KEY_RT,
    0x97: KEY_HOME, 0xCF: KEY_END,
    0xD2: KEY_INS, 0xD3: KEY_DEL,
}

_KEYPAD = "\0\0\0\0\0\0\0789-456+1230.\0\0\0\0"


def _table(base: list[int], extras: dict[int, int]) -> tuple[int, ...]:
    table = base + [NO] * (256 - len(base))
    for code, value in {**extras, **_EXTENDED}.items():
        table[code] = value
    return tuple(table)


_NORMALMAP = _table(
    [ord(ch) for ch in (
        "\0\x1b1234567890-=\b\t"
        "qwertyuiop[]\n\0as"
        "dfghjkl;'`\0\\zxcv"
        "bnm,./\0*\0 \0\0\0\0\0\0"
        + _KEYPAD
    )],
    {0x9C: ord("\n"), 0xB5: ord("/")},
)

_SHIFTMAP = _table(
    [ord(ch) for ch in (
        "\0\x1b!@#$%^&*()_+\b\t"
        "QWERTYUIOP{}\n\0AS"
        'DFGHJKL:"~\0|ZXCV'
        "BNM<>?\0*\0 \0\0\0\0\0\0"
        + _KEYPAD
    )],
    {0x9C: ord("\n"), 0xB5: ord("/")},
)

_CTLMAP = _table(
    [NO] * 16
    + [_c(x) for x in "QWERTYUI"]
    + [_c("O"), _c("P"), NO, NO, ord("\r"), NO, _c("A"), _c("S")]
    + [_c(x) for x in "DFGHJKL"] + [NO]
    + [NO, NO, NO, _c("\\"), _c("Z"), _c("X"), _c("C"), _c("V")]
    + [_c("B"), _c("N"), _c("M"), NO, NO, _c("/"), NO, NO],
    {0x9C: ord("\r"), 0xB5: _c("/")},
)

_CHARCODE = (_NORMALMAP, _SHIFTMAP, _CTLMAP, _CTLMAP)


class Keyboard:
    """Tracks modifier state and turns scan codes into character codes."""

    def __init__(self) -> None:
        self.shift = 0

    def decode(self, data: int) -> int:
        """Decode one scan code; 0 when it produces no character."""
        if not 0 <= data <= 0xFF:
            raise ValueError(f"scan code out of range: {data}")
        if data == 0xE0:
            self.shift |= E0ESC
            return 0
        if data & 0x80:
            # Key released.
            data = data if self.shift & E0ESC else data & 0x7F
            self.shift &= ~(_SHIFTCODE.get(data, 0) | E0ESC)
            return 0
        if self.shift & E0ESC:
            # Previous code was an E0 escape.
            data |= 0x80
            self.shift &= ~E0ESC

        self.shift |= _SHIFTCODE.get(data, 0)
        self.shift ^= _TOGGLECODE.get(data, 0)
        c = _CHARCODE[self.shift & (CTL | SHIFT)][data]
        if self.shift & CAPSLOCK:
            if ord("a") <= c <= ord("z"):
                c += ord("A") - ord("a")
            elif ord("A") <= c <= ord("Z"):
                c += ord("a") - ord("A")
        return c

    def feed(self, scancodes: Iterable[int]) -> list[int]:
        """Decode a sequence of scan codes, keeping only produced characters."""
        return [c for c in (self.decode(code) for code in scancodes) if c]