"""A minimal printf supporting %d, %x, %p, %s, %c and %%."""

from __future__ import annotations

from typing import Any

UPPER_DIGITS = "0123456789ABCDEF"


def format_int(value: int, base: int, signed: bool, digits: str = UPPER_DIGITS) -> str:
    """Format ``value`` as a 32-bit integer in ``base``."""
    x = value & 0xFFFFFFFF
    negative = signed and x >= 0x80000000
    if negative:
        x = 0x100000000 - x
    out = []
    while True:
        x, rem = divmod(x, base)
        out.append(digits[rem])
        if x == 0:
            break
    if negative:
        out.append("-")
    return "".join(reversed(out))


def format_printf(fmt: str, *args: Any) -> str:
    """Render ``fmt`` with ``args``; unknown conversions are printed as-is."""
    fmt = fmt.split("\0", 1)[0]
    pending = iter(args)

    def next_arg() -> Any:
        try:
            return next(pending)
        except StopIteration:
            raise TypeError("not enough arguments for format string") from None

    out: list[str] = []
    chars = iter(fmt)
    for c in chars:
        if c != "%":
            out.append(c)
            continue
        spec = next(chars, None)
        if spec is None:
            break
        if spec == "d":
            out.append(format_int(next_arg(), 10, True))
        elif spec in ("x", "p"):
            out.append(format_int(next_arg(), 16, False))
        elif spec == "s":
            s = next_arg()
            out.append("(null)" if s is None else str(s).split("\0", 1)[0])
        elif spec == "c":
            ch = next_arg()
            out.append(ch[:1] if isinstance(ch, str) else chr(ch & 0xFF))
        elif spec == "%":
            out.append("%")
        else:
            out.append("%" + spec)
    return "".join(out)