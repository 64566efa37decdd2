"""Physical page allocator with per-page reference counts."""

from __future__ import annotations

import threading

from .layout import FsPanic

PGSIZE = 4096
PGSHIFT = 12

_UINT_MASK = 0xFFFFFFFF


def pgroundup(addr: int) -> int:
    """Round ``addr`` up to a page boundary."""
    return (addr + PGSIZE - 1) & ~(PGSIZE - 1)


class PageAllocator:
    """Hands out 4096-byte physical pages between ``kernel_end`` and ``phystop``.

    Every page has a reference count. Freeing a page whose count is above
    zero only decrements the count; a page goes back on the free list once
    it is freed with a count of zero.
    """

    def __init__(self, kernel_end: int, phystop: int) -> None:
        if kernel_end < 0 or phystop <= kernel_end:
            raise ValueError("physical memory range is empty")
        self.kernel_end = kernel_end
        self.phystop = phystop
        self._lock = threading.Lock()
        self._freelist: list[int] = []  # top of the list is the last element
        self._refcount = [0] * (phystop >> PGSHIFT)

    @property
    def free_pages(self) -> int:
        """Number of pages on the free list."""
        with self._lock:
            return len(self._freelist)

    def free_range(self, start: int, end: int) -> None:
        """Put every whole page in [start, end) on the free list."""
        p = pgroundup(start)
        while p + PGSIZE <= end:
            self._refcount[p >> PGSHIFT] = 0
            self.kfree(p)
            p += PGSIZE

    def kfree(self, addr: int) -> None:
        """Drop a reference to the page at ``addr``; free it at count zero."""
        if addr % PGSIZE or addr < self.kernel_end or addr >= self.phystop:
            raise FsPanic("kfree")
        index = addr >> PGSHIFT
        with self._lock:
            if self._refcount[index] <= 0:
                self._refcount[index] = 0
                self._freelist.append(addr)
            else:
                self._refcount[index] -= 1

    def kalloc(self) -> int:
        """Take a page off the free list, with a reference count of one."""
        with self._lock:
            if not self._freelist:
                raise MemoryError("out of physical pages")
            addr = self._freelist.pop()
            self._refcount[addr >> PGSHIFT] = 1
            return addr

    def _check(self, pa: int) -> int:
        if pa < self.kernel_end or pa >= self.phystop:
            raise FsPanic("invalid access")
        return pa >> PGSHIFT

    def add_ref(self, pa: int) -> None:
        """Add a reference to the page holding ``pa``."""
        index = self._check(pa)
        with self._lock:
            self._refcount[index] = (self._refcount[index] + 1) & _UINT_MASK

    def minus_ref(self, pa: int) -> None:
        """Remove a reference from the page holding ``pa``."""
        index = self._check(pa)
        with self._lock:
            self._refcount[index] = (self._refcount[index] - 1) & _UINT_MASK

    def get_ref(self, pa: int) -> int:
        """Reference count of the page holding ``pa``."""
        index = self._check(pa)
        with self._lock:
            return self._refcount[index]