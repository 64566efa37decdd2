"""Disk block buffers and an in-memory disk that serves them."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from enum import IntFlag

from .layout import BSIZE, ROOTDEV, FsPanic


class BufFlag(IntFlag):
    """State of a buffer relative to the disk."""

    VALID = 0x2  # data has been read from disk
    DIRTY = 0x4  # data needs to be written to disk


class _SleepLock:
    """A lock held by one thread at a time that knows its holder."""

    def __init__(self, name: str) -> None:
        self.name = name
        self._lock = threading.Lock()
        self._owner: int | None = None

    def acquire(self) -> None:
        if self._owner == threading.get_ident():
            raise FsPanic(f"acquiresleep: {self.name} already held")
        self._lock.acquire()
        self._owner = threading.get_ident()

    def release(self) -> None:
        if not self.holding():
            raise FsPanic(f"releasesleep: {self.name} not held")
        self._owner = None
        self._lock.release()

    def holding(self) -> bool:
        return self._owner == threading.get_ident()


@dataclass(eq=False)
class Buffer:
    """A cached copy of one disk block."""

    dev: int = 0
    blockno: int = 0
    flags: BufFlag = BufFlag(0)
    refcnt: int = 0
    data: bytearray = field(default_factory=lambda: bytearray(BSIZE), repr=False)
    lock: _SleepLock = field(default_factory=lambda: _SleepLock("buffer"), repr=False)

    @property
    def valid(self) -> bool:
        return bool(self.flags & BufFlag.VALID)

    @property
    def dirty(self) -> bool:
        return bool(self.flags & BufFlag.DIRTY)


class MemDisk:
    """A disk whose blocks live in memory."""

    def __init__(self, image: bytes, dev: int = ROOTDEV) -> None:
        self._image = bytearray(image)
        self.dev = dev
        self.disksize = len(self._image) // BSIZE

    def rw(self, buf: Buffer) -> None:
        """Write ``buf`` if dirty, otherwise read it; then mark it valid."""
        if not buf.lock.holding():
            raise FsPanic("iderw: buf not locked")
        if buf.flags & (BufFlag.VALID | BufFlag.DIRTY) == BufFlag.VALID:
            raise FsPanic("iderw: nothing to do")
        if buf.dev != self.dev:
            raise FsPanic(f"iderw: request not for disk {self.dev}")
        if not 0 <= buf.blockno < self.disksize:
            raise FsPanic("iderw: block out of range")
        if len(buf.data) != BSIZE:
            raise ValueError(f"buffer data must be {BSIZE} bytes")

        start = buf.blockno * BSIZE
        if buf.flags & BufFlag.DIRTY:
            buf.flags &= ~BufFlag.DIRTY
            self._image[start:start + BSIZE] = buf.data
        else:
            buf.data[:] = self._image[start:start + BSIZE]
        buf.flags |= BufFlag.VALID

    def to_bytes(self) -> bytes:
        """Return the current disk contents."""
        return bytes(self._image)