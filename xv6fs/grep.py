"""A small grep supporting only the ^ . * $ operators."""

from __future__ import annotations

import sys
from collections.abc import Iterable, Iterator


def _matchhere(re: str, ri: int, text: str, ti: int) -> bool:
    while True:
        if ri == len(re):
            return True
        if ri + 1 < len(re) and re[ri + 1] == "*":
            return _matchstar(re[ri], re, ri + 2, text, ti)
        if re[ri] == "$" and ri + 1 == len(re):
            return ti == len(text)
        if ti < len(text) and (re[ri] == "." or re[ri] == text[ti]):
            ri += 1
            ti += 1
            continue
        return False


def _matchstar(c: str, re: str, ri: int, text: str, ti: int) -> bool:
    while True:
        if _matchhere(re, ri, text, ti):
            return True
        if ti < len(text) and (text[ti] == c or c == "."):
            ti += 1
        else:
            return False


def match(pattern: str, text: str) -> bool:
    """Return whether ``pattern`` matches anywhere in ``text``."""
    if pattern.startswith("^"):
        return _matchhere(pattern, 1, text, 0)
    return any(_matchhere(pattern, 0, text, start) for start in range(len(text) + 1))


def grep(pattern: str, stream: Iterable[str]) -> Iterator[str]:
    """Yield the newline-terminated lines of ``stream`` that match ``pattern``."""
    for line in stream:
        if line.endswith("\n") and match(pattern, line[:-1]):
            yield line


def main(argv: list[str] | None = None) -> int:
    args = sys.argv[1:] if argv is None else list(argv)
    if not args:
        print("usage: grep pattern [file ...]", file=sys.stderr)
        return 1
    pattern, paths = args[0], args[1:]

    if not paths:
        sys.stdout.writelines(grep(pattern, sys.stdin))
        return 0

    for path in paths:
        try:
            stream = open(path, encoding="utf-8", errors="surrogateescape", newline="\n")
        except OSError:
            print(f"grep: cannot open {path}")
            return 1
        with stream:
            sys.stdout.writelines(grep(pattern, stream))
    return 0


if __name__ == "__main__":
    sys.exit(main())