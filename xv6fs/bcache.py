"""Buffer cache: an LRU set of locked, shared copies of disk blocks."""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager

from .disk import Buffer, BufFlag, MemDisk
from .layout import NBUF, FsPanic


class BufferCache:
    """Caches disk blocks; only one holder may use a buffer at a time."""

    def __init__(self, disk: MemDisk, nbuf: int = NBUF) -> None:
        if nbuf < 1:
            raise ValueError("buffer cache needs at least one buffer")
        self.disk = disk
        self._lock = threading.Lock()
        # Most recently used first.
        self._lru: list[Buffer] = [Buffer() for _ in range(nbuf)]

    def _bget(self, dev: int, blockno: int) -> Buffer:
        with self._lock:
            found = next(
                (b for b in self._lru if b.dev == dev and b.blockno == blockno), None
            )
            if found is not None:
                found.refcnt += 1
            else:
                # A dirty buffer is pinned by the log even with no references.
                found = next(
                    (b for b in reversed(self._lru)
                     if b.refcnt == 0 and not b.flags & BufFlag.DIRTY),
                    None,
                )
                if found is None:
                    raise FsPanic("bget: no buffers")
                found.dev = dev
                found.blockno = blockno
                found.flags = BufFlag(0)
                found.refcnt = 1
        found.lock.acquire()
        return found

    def bread(self, dev: int, blockno: int) -> Buffer:
        """Return a locked buffer holding the contents of the block."""
        buf = self._bget(dev, blockno)
        if not buf.flags & BufFlag.VALID:
            self.disk.rw(buf)
        return buf

    def bwrite(self, buf: Buffer) -> None:
        """Write a locked buffer's contents to disk."""
        if not buf.lock.holding():
            raise FsPanic("bwrite")
        buf.flags |= BufFlag.DIRTY
        self.disk.rw(buf)

    def brelse(self, buf: Buffer) -> None:
        """Release a locked buffer; when unreferenced it becomes most recent."""
        if not buf.lock.holding():
            raise FsPanic("brelse")
        buf.lock.release()
        with self._lock:
            buf.refcnt -= 1
            if buf.refcnt == 0:
                self._lru.remove(buf)
                self._lru.insert(0, buf)

    @contextmanager
    def block(self, dev: int, blockno: int) -> Iterator[Buffer]:
        """Hold a block's buffer for the duration of a ``with`` block."""
        buf = self.bread(dev, blockno)
        try:
            yield buf
        finally:
            self.brelse(buf)