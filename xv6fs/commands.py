"""The echo, cat and ls commands, working on a file system image."""

from __future__ import annotations

import sys
from pathlib import Path

from .file import File, FileTable
from .fs import FileSystem, open_image
from .layout import DIRSIZ, Dirent, FileType, FsPanic, Stat

_CHUNK = 512
_PATH_MAX = 512


class CommandError(Exception):
    """A command could not complete; the message is what it reports."""


def fmtname(path: str) -> str:
    """The final element of ``path``, blank-padded to DIRSIZ."""
    name = path.rsplit("/", 1)[-1]
    if len(name) >= DIRSIZ:
        return name
    return name.ljust(DIRSIZ)


def echo(args: list[str]) -> str:
    """The arguments separated by spaces and ended by a newline."""
    if not args:
        return ""
    return " ".join(args) + "\n"


def _open(table: FileTable, path: str) -> File:
    fs = table.fs
    with fs.log.transaction():
        ip = fs.namei(path)
    return table.open_inode(ip, True, False)


def _stat(fs: FileSystem, path: str) -> Stat:
    with fs.log.transaction():
        ip = fs.namei(path)
        fs.ilock(ip)
        try:
            return fs.stati(ip)
        finally:
            fs.iunlockput(ip)


def cat(fs: FileSystem, paths: list[str]) -> bytes:
    """The contents of the named files, one after another."""
    table = FileTable(fs)
    out = bytearray()
    for path in paths:
        try:
            f = _open(table, path)
        except (OSError, FsPanic) as exc:
            raise CommandError(f"cat: cannot open {path}") from exc
        try:
            while chunk := table.read(f, _CHUNK):
                out += chunk
        finally:
            table.close(f)
    return bytes(out)


def _line(name: str, st: Stat) -> str:
    return f"{fmtname(name)} {int(st.type)} {st.ino} {st.size}"


def ls(fs: FileSystem, path: str) -> list[str]:
    """Lines describing ``path``, or each entry when it is a directory."""
    table = FileTable(fs)
    try:
        f = _open(table, path)
    except (OSError, FsPanic) as exc:
        raise CommandError(f"ls: cannot open {path}") from exc
    lines: list[str] = []
    try:
        st = table.stat(f)
        if st.type == FileType.FILE:
            lines.append(_line(path, st))
        elif st.type == FileType.DIR:
            if len(path) + 1 + DIRSIZ + 1 > _PATH_MAX:
                lines.append("ls: path too long")
                return lines
            while len(raw := table.read(f, Dirent.SIZE)) == Dirent.SIZE:
                de = Dirent.unpack(raw)
                if de.inum == 0:
                    continue
                child = f"{path}/{de.name}"
                try:
                    lines.append(_line(child, _stat(fs, child)))
                except (OSError, FsPanic):
                    lines.append(f"ls: cannot stat {child}")
    finally:
        table.close(f)
    return lines


_USAGE = "usage: commands image (echo|cat|ls) [args...]"


def main(argv: list[str] | None = None) -> int:
    args = sys.argv[1:] if argv is None else list(argv)
    if len(args) < 2:
        print(_USAGE, file=sys.stderr)
        return 1
    image_path, command, rest = args[0], args[1], args[2:]

    if command == "echo":
        sys.stdout.write(echo(rest))
        return 0
    if command not in ("cat", "ls"):
        print(_USAGE, file=sys.stderr)
        return 1

    try:
        fs = open_image(Path(image_path).read_bytes())
    except OSError as exc:
        print(f"{image_path}: {exc.strerror}", file=sys.stderr)
        return 1

    if command == "cat":
        if not rest:
            data = sys.stdin.buffer.read()
            sys.stdout.buffer.write(data)
            sys.stdout.buffer.flush()
            return 0
        for path in rest:
            try:
                data = cat(fs, [path])
            except CommandError as exc:
                print(exc)
                return 1
            sys.stdout.flush()
            sys.stdout.buffer.write(data)
            sys.stdout.buffer.flush()
        return 0

    status = 0
    for path in rest or ["."]:
        try:
            for line in ls(fs, path):
                print(line)
        except CommandError as exc:
            print(exc, file=sys.stderr)
            status = 1
    return status


if __name__ == "__main__":
    sys.exit(main())