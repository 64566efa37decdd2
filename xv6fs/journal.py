"""Write-ahead redo log grouping file system operations into transactions."""

from __future__ import annotations

import struct
import threading
from collections.abc import Iterator
from contextlib import contextmanager

from .bcache import BufferCache
from .disk import Buffer, BufFlag
from .layout import BSIZE, LOGSIZE, MAXOPBLOCKS, FsPanic, Superblock

# Header block: number of logged blocks, then their home block numbers.
_HEADER = struct.Struct(f"<i{LOGSIZE}i")


class Log:
    """The on-disk log; commits when no operation is outstanding."""

    def __init__(self, cache: BufferCache, dev: int, sb: Superblock) -> None:
        if _HEADER.size >= BSIZE:
            raise FsPanic("initlog: too big logheader")
        self.cache = cache
        self.dev = dev
        self.start = sb.logstart
        self.size = sb.nlog
        self.outstanding = 0
        self.committing = False
        self.blocks: list[int] = []
        self._cond = threading.Condition()
        self.recover()

    def _read_head(self) -> None:
        with self.cache.block(self.dev, self.start) as buf:
            n, *blocks = _HEADER.unpack_from(buf.data)
        if not 0 <= n <= LOGSIZE:
            raise FsPanic("log header corrupt")
        self.blocks = blocks[:n]

    def _write_head(self) -> None:
        with self.cache.block(self.dev, self.start) as buf:
            fields = list(_HEADER.unpack_from(buf.data))
            fields[0] = len(self.blocks)
            fields[1:1 + len(self.blocks)] = self.blocks
            _HEADER.pack_into(buf.data, 0, *fields)
            self.cache.bwrite(buf)

    def _install_trans(self) -> None:
        for tail, home in enumerate(self.blocks):
            with self.cache.block(self.dev, self.start + tail + 1) as lbuf, \
                    self.cache.block(self.dev, home) as dbuf:
                dbuf.data[:] = lbuf.data
                self.cache.bwrite(dbuf)

    def _write_log(self) -> None:
        for tail, home in enumerate(self.blocks):
            with self.cache.block(self.dev, self.start + tail + 1) as to, \
                    self.cache.block(self.dev, home) as src:
                to.data[:] = src.data
                self.cache.bwrite(to)

    def _commit(self) -> None:
        if self.blocks:
            self._write_log()
            self._write_head()  # the real commit point
            self._install_trans()
            self.blocks = []
            self._write_head()

    def recover(self) -> None:
        """Install any committed transaction found on disk, then clear the log."""
        self._read_head()
        self._install_trans()
        self.blocks = []
        self._write_head()

    def begin_op(self) -> None:
        """Start an operation, waiting while a commit runs or space is short."""
        with self._cond:
            while self.committing or (
                len(self.blocks) + (self.outstanding + 1) * MAXOPBLOCKS > LOGSIZE
            ):
                self._cond.wait()
            self.outstanding += 1

    def end_op(self) -> None:
        """Finish an operation; the last one to finish commits."""
        with self._cond:
            if self.outstanding < 1:
                raise FsPanic("end_op without begin_op")
            self.outstanding -= 1
            if self.committing:
                raise FsPanic("log.committing")
            do_commit = self.outstanding == 0
            if do_commit:
                self.committing = True
            else:
                self._cond.notify_all()

        if do_commit:
            try:
                self._commit()
            finally:
                with self._cond:
                    self.committing = False
                    self._cond.notify_all()

    def log_write(self, buf: Buffer) -> None:
        """Record a modified buffer in the current transaction and pin it."""
        if len(self.blocks) >= LOGSIZE or len(self.blocks) >= self.size - 1:
            raise FsPanic("too big a transaction")
        if self.outstanding < 1:
            raise FsPanic("log_write outside of trans")
        with self._cond:
            if buf.blockno not in self.blocks:
                self.blocks.append(buf.blockno)
            buf.flags |= BufFlag.DIRTY

    @contextmanager
    def transaction(self) -> Iterator["Log"]:
        """Run the body of a ``with`` block as one operation."""
        self.begin_op()
        try:
            yield self
        finally:
            self.end_op()