"""Console line discipline: edited input lines and echoed output."""

from __future__ import annotations

import sys
import threading
from collections.abc import Callable, Iterable
from typing import Any

from .formatting import format_int
from .layout import FsPanic

BACKSPACE = 0x100
INPUT_BUF = 128

LOWER_DIGITS = "0123456789abcdef"


def ctrl(x: str) -> int:
    """Control-x."""
    return ord(x) - ord("@")


def format_cprintf(fmt: str, *args: Any) -> str:
    """Render ``fmt``; only %d, %x, %p, %s and %% are understood."""
    if fmt is None:
        raise FsPanic("null fmt")
    pending = iter(args)

    def next_arg() -> Any:
        try:
            return next(pending)
        except StopIteration:
            raise TypeError("not enough arguments for format string") from None

    out: list[str] = []
    chars = iter(fmt)
    for c in chars:
        if c == "\0":
            break
        if c != "%":
            out.append(c)
            continue
        spec = next(chars, "\0")
        if spec == "\0":
            break
        if spec == "d":
            out.append(format_int(next_arg(), 10, True, LOWER_DIGITS))
        elif spec in ("x", "p"):
            out.append(format_int(next_arg(), 16, False, LOWER_DIGITS))
        elif spec == "s":
            s = next_arg()
            out.append("(null)" if s is None else str(s).split("\0", 1)[0])
        elif spec == "%":
            out.append("%")
        else:
            out.append("%" + spec)
    return "".join(out)


class Console:
    """Collects typed characters into lines and echoes them to ``output``."""

    def __init__(
        self,
        output: Callable[[str], Any] | None = None,
        procdump: Callable[[], Any] | None = None,
    ) -> None:
        self._output = output if output is not None else sys.stdout.write
        self._procdump = procdump
        self._cond = threading.Condition()
        self._buf = [0] * INPUT_BUF
        self.r = 0  # read index
        self.w = 0  # write index
        self.e = 0  # edit index

    def putc(self, c: int | str) -> None:
        """Echo one character; BACKSPACE erases the previous one."""
        code = ord(c) if isinstance(c, str) else c
        if code == BACKSPACE:
            self._output("\b \b")
        else:
            self._output(chr(code & 0xFF))

    def interrupt(self, chars: Iterable[int | str]) -> None:
        """Handle typed characters, as from a keyboard or serial interrupt."""
        doprocdump = False
        with self._cond:
            for ch in chars:
                c = ord(ch) if isinstance(ch, str) else ch
                if c < 0:
                    break
                if c == ctrl("P"):
                    doprocdump = True
                elif c == ctrl("U"):
                    while self.e != self.w and self._buf[(self.e - 1) % INPUT_BUF] != ord("\n"):
                        self.e -= 1
                        self.putc(BACKSPACE)
                elif c in (ctrl("H"), 0x7F):
                    if self.e != self.w:
                        self.e -= 1
                        self.putc(BACKSPACE)
                elif c != 0 and self.e - self.r < INPUT_BUF:
                    if c == ord("\r"):
                        c = ord("\n")
                    self._buf[self.e % INPUT_BUF] = c
                    self.e += 1
                    self.putc(c)
                    if c in (ord("\n"), ctrl("D")) or self.e == self.r + INPUT_BUF:
                        self.w = self.e
                        self._cond.notify_all()
        if doprocdump and self._procdump is not None:
            self._procdump()

    def read(self, n: int) -> str:
        """Read up to ``n`` characters, stopping after a newline or at ^D."""
        target = n
        out: list[str] = []
        with self._cond:
            while n > 0:
                while self.r == self.w:
                    self._cond.wait()
                c = self._buf[self.r % INPUT_BUF]
                self.r += 1
                if c == ctrl("D"):
                    if n < target:
                        # Keep ^D so the next read returns nothing.
                        self.r -= 1
                    break
                out.append(chr(c & 0xFF))
                n -= 1
                if c == ord("\n"):
                    break
        return "".join(out)

    def write(self, data: str | bytes) -> int:
        """Echo ``data`` to the output."""
        with self._cond:
            for c in data:
                self.putc(c)
        return len(data)