"""Open file objects, the system-wide file table and pipes."""

from __future__ import annotations

import errno
import threading
from dataclasses import dataclass
from enum import Enum

from .fs import FileSystem, Inode
from .layout import BSIZE, MAXOPBLOCKS, NFILE, FileType, FsPanic, Stat

PIPESIZE = 512

# Largest write done in one log transaction: the inode, an indirect block,
# allocation blocks and two blocks of slop for unaligned writes.
_MAX_WRITE = ((MAXOPBLOCKS - 1 - 1 - 2) // 2) * BSIZE


class FileKind(Enum):
    NONE = 0
    PIPE = 1
    INODE = 2


class Pipe:
    """A bounded byte channel with one reading end and one writing end."""

    def __init__(self) -> None:
        self._cond = threading.Condition()
        self._data = bytearray()
        self.nread = 0
        self.nwrite = 0
        self.readopen = True
        self.writeopen = True

    def write(self, data: bytes) -> int:
        """Write all of ``data``, waiting for room while the reader is open."""
        data = bytes(data)
        pos = 0
        with self._cond:
            while pos < len(data):
                while len(self._data) == PIPESIZE:
                    if not self.readopen:
                        raise BrokenPipeError(errno.EPIPE, "pipe has no reader")
                    self._cond.notify_all()
                    self._cond.wait()
                take = min(PIPESIZE - len(self._data), len(data) - pos)
                self._data += data[pos:pos + take]
                self.nwrite += take
                pos += take
            self._cond.notify_all()
        return len(data)

    def read(self, n: int) -> bytes:
        """Read up to ``n`` bytes; empty once the writer is closed and drained."""
        if n < 0:
            raise ValueError("read size must not be negative")
        with self._cond:
            while not self._data and self.writeopen:
                self._cond.wait()
            chunk = bytes(self._data[:n])
            del self._data[:len(chunk)]
            self.nread += len(chunk)
            self._cond.notify_all()
        return chunk

    def close(self, writable: bool) -> None:
        """Close the writing end if ``writable``, otherwise the reading end."""
        with self._cond:
            if writable:
                self.writeopen = False
            else:
                self.readopen = False
            self._cond.notify_all()

    @property
    def closed(self) -> bool:
        return not self.readopen and not self.writeopen


@dataclass(eq=False)
class File:
    """An entry of the file table."""

    kind: FileKind = FileKind.NONE
    ref: int = 0
    readable: bool = False
    writable: bool = False
    pipe: Pipe | None = None
    ip: Inode | None = None
    off: int = 0


class FileTable:
    """A fixed-size table of open files shared by the whole system."""

    def __init__(self, fs: FileSystem, nfile: int = NFILE) -> None:
        if nfile < 1:
            raise ValueError("file table needs at least one entry")
        self.fs = fs
        self._lock = threading.Lock()
        self.files = [File() for _ in range(nfile)]

    def alloc(self) -> File:
        """Take a free entry, with one reference."""
        with self._lock:
            for f in self.files:
                if f.ref == 0:
                    f.ref = 1
                    return f
        raise OSError(errno.ENFILE, "file table full")

    def dup(self, f: File) -> File:
        with self._lock:
            if f.ref < 1:
                raise FsPanic("filedup")
            f.ref += 1
        return f

    def close(self, f: File) -> None:
        """Drop a reference; the last one releases the pipe end or inode."""
        with self._lock:
            if f.ref < 1:
                raise FsPanic("fileclose")
            f.ref -= 1
            if f.ref > 0:
                return
            kind, pipe, ip, writable = f.kind, f.pipe, f.ip, f.writable
            f.kind = FileKind.NONE
            f.pipe = None
            f.ip = None
            f.off = 0
            f.readable = f.writable = False

        if kind is FileKind.PIPE and pipe is not None:
            pipe.close(writable)
        elif kind is FileKind.INODE and ip is not None:
            with self.fs.log.transaction():
                self.fs.iput(ip)

    def stat(self, f: File) -> Stat:
        if f.kind is not FileKind.INODE or f.ip is None:
            raise OSError(errno.EINVAL, "file has no inode")
        self.fs.ilock(f.ip)
        try:
            return self.fs.stati(f.ip)
        finally:
            self.fs.iunlock(f.ip)

    def read(self, f: File, n: int) -> bytes:
        """Read up to ``n`` bytes from ``f`` at its offset."""
        if not f.readable:
            raise OSError(errno.EBADF, "file not open for reading")
        if f.kind is FileKind.PIPE and f.pipe is not None:
            return f.pipe.read(n)
        if f.kind is FileKind.INODE and f.ip is not None:
            self.fs.ilock(f.ip)
            try:
                data = self.fs.readi(f.ip, f.off, n)
                f.off += len(data)
            finally:
                self.fs.iunlock(f.ip)
            return data
        raise FsPanic("fileread")

    def write(self, f: File, data: bytes) -> int:
        """Write ``data`` to ``f`` at its offset, a few blocks per transaction."""
        if not f.writable:
            raise OSError(errno.EBADF, "file not open for writing")
        data = bytes(data)
        if f.kind is FileKind.PIPE and f.pipe is not None:
            return f.pipe.write(data)
        if f.kind is FileKind.INODE and f.ip is not None:
            written = 0
            while written < len(data):
                chunk = data[written:written + _MAX_WRITE]
                with self.fs.log.transaction():
                    self.fs.ilock(f.ip)
                    try:
                        r = self.fs.writei(f.ip, chunk, f.off)
                        if r > 0:
                            f.off += r
                    finally:
                        self.fs.iunlock(f.ip)
                if r != len(chunk):
                    raise FsPanic("short filewrite")
                written += r
            return len(data)
        raise FsPanic("filewrite")

    def open_inode(self, ip: Inode, readable: bool, writable: bool) -> File:
        """Make a file for ``ip``, taking over the caller's reference to it."""
        f = self.alloc()
        f.kind = FileKind.INODE
        f.ip = ip
        f.off = 0
        f.readable = bool(readable)
        f.writable = bool(writable)
        return f

    def make_pipe(self) -> tuple[File, File]:
        """Create a pipe: the reading file and the writing file."""
        rf = self.alloc()
        try:
            wf = self.alloc()
        except OSError:
            self.close(rf)
            raise
        pipe = Pipe()
        rf.kind, rf.readable, rf.writable, rf.pipe = FileKind.PIPE, True, False, pipe
        wf.kind, wf.readable, wf.writable, wf.pipe = FileKind.PIPE, False, True, pipe
        return rf, wf


def is_regular(f: File) -> bool:
    """Whether ``f`` refers to a regular file's inode."""
    return f.kind is FileKind.INODE and f.ip is not None and f.ip.type == FileType.FILE