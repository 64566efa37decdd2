"""Inodes, directories and path names on top of the log and buffer cache."""

from __future__ import annotations

import errno
import struct
import threading
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Protocol

from .bcache import BufferCache
from .disk import MemDisk, _SleepLock
from .journal import Log
from .layout import (
    BPB,
    BSIZE,
    DIRSIZ,
    IPB,
    MAXFILE,
    NDEV,
    NDIRECT,
    NINDIRECT,
    NINODE,
    ROOTDEV,
    ROOTINO,
    Dinode,
    Dirent,
    FileType,
    FsPanic,
    Stat,
    Superblock,
    bblock,
    iblock,
)

_ADDR = struct.Struct("<I")
_INDIRECT = struct.Struct(f"<{NINDIRECT}I")


class _Device(Protocol):
    def read(self, ip: "Inode", n: int) -> bytes: ...

    def write(self, ip: "Inode", data: bytes) -> int: ...


@dataclass(eq=False)
class Inode:
    """In-memory copy of an inode, plus cache bookkeeping."""

    dev: int = 0
    inum: int = 0
    ref: int = 0
    valid: bool = False
    type: int = 0
    major: int = 0
    minor: int = 0
    nlink: int = 0
    size: int = 0
    addrs: list[int] = field(default_factory=lambda: [0] * (NDIRECT + 1))
    lock: _SleepLock = field(default_factory=lambda: _SleepLock("inode"), repr=False)


def readsb(cache: BufferCache, dev: int) -> Superblock:
    """Read the superblock of device ``dev``."""
    with cache.block(dev, 1) as bp:
        return Superblock.unpack(bytes(bp.data))


def _name_bytes(s: str) -> bytes:
    return s.encode("utf-8", "surrogateescape").split(b"\0", 1)[0][:DIRSIZ]


def namecmp(s: str, t: str) -> int:
    """Compare two directory names over at most DIRSIZ bytes."""
    a, b = _name_bytes(s), _name_bytes(t)
    return (a > b) - (a < b)


def skipelem(path: str) -> tuple[str, str] | None:
    """Split off the first path element: ``(name, rest)``, or None if there is none."""
    stripped = path.lstrip("/")
    if not stripped:
        return None
    elem, _, rest = stripped.partition("/")
    return elem[:DIRSIZ], rest.lstrip("/")


class FileSystem:
    """Inode cache and file system operations on one device."""

    def __init__(
        self,
        cache: BufferCache,
        log: Log,
        dev: int = ROOTDEV,
        devsw: Mapping[int, _Device] | None = None,
    ) -> None:
        self.cache = cache
        self.log = log
        self.dev = dev
        self.devsw: dict[int, _Device] = dict(devsw or {})
        self.sb = readsb(cache, dev)
        self._lock = threading.Lock()
        self._icache = [Inode() for _ in range(NINODE)]

    # Blocks.

    def _bzero(self, bno: int) -> None:
        with self.cache.block(self.dev, bno) as bp:
            bp.data[:] = bytes(BSIZE)
            self.log.log_write(bp)

    def _balloc(self) -> int:
        for b in range(0, self.sb.size, BPB):
            found = None
            with self.cache.block(self.dev, bblock(b, self.sb)) as bp:
                for bi in range(min(BPB, self.sb.size - b)):
                    m = 1 << (bi % 8)
                    if not bp.data[bi // 8] & m:
                        bp.data[bi // 8] |= m
                        self.log.log_write(bp)
                        found = b + bi
                        break
            if found is not None:
                self._bzero(found)
                return found
        raise FsPanic("balloc: out of blocks")

    def _bfree(self, b: int) -> None:
        with self.cache.block(self.dev, bblock(b, self.sb)) as bp:
            bi = b % BPB
            m = 1 << (bi % 8)
            if not bp.data[bi // 8] & m:
                raise FsPanic("freeing free block")
            bp.data[bi // 8] &= ~m & 0xFF
            self.log.log_write(bp)

    # Inodes.

    @staticmethod
    def _slot(inum: int) -> slice:
        start = (inum % IPB) * Dinode.SIZE
        return slice(start, start + Dinode.SIZE)

    def ialloc(self, type_: int) -> Inode:
        """Allocate a free on-disk inode of the given type; return it unlocked."""
        for inum in range(1, self.sb.ninodes):
            with self.cache.block(self.dev, iblock(inum, self.sb)) as bp:
                slot = self._slot(inum)
                if Dinode.unpack(bytes(bp.data[slot])).type == 0:
                    bp.data[slot] = Dinode(type=int(type_), nlink=0).pack()
                    self.log.log_write(bp)
                    free = True
                else:
                    free = False
            if free:
                return self.iget(inum)
        raise FsPanic("ialloc: no inodes")

    def iupdate(self, ip: Inode) -> None:
        """Copy an in-memory inode to disk; the caller holds its lock."""
        with self.cache.block(ip.dev, iblock(ip.inum, self.sb)) as bp:
            bp.data[self._slot(ip.inum)] = Dinode(
                ip.type, ip.major, ip.minor, ip.nlink, ip.size, list(ip.addrs)
            ).pack()
            self.log.log_write(bp)

    def iget(self, inum: int) -> Inode:
        """Return the cached inode for ``inum``, neither locked nor read."""
        with self._lock:
            empty = None
            for ip in self._icache:
                if ip.ref > 0 and ip.dev == self.dev and ip.inum == inum:
                    ip.ref += 1
                    return ip
                if empty is None and ip.ref == 0:
                    empty = ip
            if empty is None:
                raise FsPanic("iget: no inodes")
            empty.dev = self.dev
            empty.inum = inum
            empty.ref = 1
            empty.valid = False
            return empty

    def idup(self, ip: Inode) -> Inode:
        with self._lock:
            ip.ref += 1
        return ip

    def ilock(self, ip: Inode) -> None:
        """Lock an inode, reading it from disk if needed."""
        if ip is None or ip.ref < 1:
            raise FsPanic("ilock")
        ip.lock.acquire()
        if not ip.valid:
            with self.cache.block(ip.dev, iblock(ip.inum, self.sb)) as bp:
                din = Dinode.unpack(bytes(bp.data[self._slot(ip.inum)]))
            ip.type, ip.major, ip.minor = din.type, din.major, din.minor
            ip.nlink, ip.size, ip.addrs = din.nlink, din.size, list(din.addrs)
            ip.valid = True
            if ip.type == 0:
                ip.lock.release()
                raise FsPanic("ilock: no type")

    def iunlock(self, ip: Inode) -> None:
        if ip is None or not ip.lock.holding() or ip.ref < 1:
            raise FsPanic("iunlock")
        ip.lock.release()

    def iput(self, ip: Inode) -> None:
        """Drop a reference; free the inode on disk if nothing refers to it."""
        ip.lock.acquire()
        try:
            if ip.valid and ip.nlink == 0:
                with self._lock:
                    r = ip.ref
                if r == 1:
                    self._itrunc(ip)
                    ip.type = 0
                    self.iupdate(ip)
                    ip.valid = False
        finally:
            ip.lock.release()
        with self._lock:
            ip.ref -= 1

    def iunlockput(self, ip: Inode) -> None:
        self.iunlock(ip)
        self.iput(ip)

    # Inode content.

    def _bmap(self, ip: Inode, bn: int) -> int:
        if bn < NDIRECT:
            if ip.addrs[bn] == 0:
                ip.addrs[bn] = self._balloc()
            return ip.addrs[bn]
        bn -= NDIRECT
        if bn < NINDIRECT:
            if ip.addrs[NDIRECT] == 0:
                ip.addrs[NDIRECT] = self._balloc()
            with self.cache.block(ip.dev, ip.addrs[NDIRECT]) as bp:
                (addr,) = _ADDR.unpack_from(bp.data, 4 * bn)
                if addr == 0:
                    addr = self._balloc()
                    _ADDR.pack_into(bp.data, 4 * bn, addr)
                    self.log.log_write(bp)
            return addr
        raise FsPanic("bmap: out of range")

    def _itrunc(self, ip: Inode) -> None:
        for i, addr in enumerate(ip.addrs[:NDIRECT]):
            if addr:
                self._bfree(addr)
                ip.addrs[i] = 0
        if ip.addrs[NDIRECT]:
            with self.cache.block(ip.dev, ip.addrs[NDIRECT]) as bp:
                for addr in _INDIRECT.unpack_from(bp.data):
                    if addr:
                        self._bfree(addr)
            self._bfree(ip.addrs[NDIRECT])
            ip.addrs[NDIRECT] = 0
        ip.size = 0
        self.iupdate(ip)

    def stati(self, ip: Inode) -> Stat:
        return Stat(type=ip.type, dev=ip.dev, ino=ip.inum, nlink=ip.nlink, size=ip.size)

    def _device(self, ip: Inode) -> _Device:
        device = self.devsw.get(ip.major) if 0 <= ip.major < NDEV else None
        if device is None:
            raise OSError(errno.ENXIO, f"no device with major number {ip.major}")
        return device

    def readi(self, ip: Inode, off: int, n: int) -> bytes:
        """Read up to ``n`` bytes at ``off``; the caller holds the lock."""
        if ip.type == FileType.DEV:
            return self._device(ip).read(ip, n)
        if n < 0 or off < 0 or off > ip.size:
            raise ValueError(f"read at {off} beyond end of inode {ip.inum}")
        n = min(n, ip.size - off)
        out = bytearray()
        while len(out) < n:
            with self.cache.block(ip.dev, self._bmap(ip, off // BSIZE)) as bp:
                start = off % BSIZE
                m = min(n - len(out), BSIZE - start)
                out += bp.data[start:start + m]
            off += m
        return bytes(out)

    def writei(self, ip: Inode, data: bytes, off: int) -> int:
        """Write ``data`` at ``off``; the caller holds the lock."""
        data = bytes(data)
        if ip.type == FileType.DEV:
            return self._device(ip).write(ip, data)
        n = len(data)
        if off < 0 or off > ip.size:
            raise ValueError(f"write at {off} beyond end of inode {ip.inum}")
        if off + n > MAXFILE * BSIZE:
            raise ValueError("write would exceed the maximum file size")
        tot = 0
        while tot < n:
            with self.cache.block(ip.dev, self._bmap(ip, off // BSIZE)) as bp:
                start = off % BSIZE
                m = min(n - tot, BSIZE - start)
                bp.data[start:start + m] = data[tot:tot + m]
                self.log.log_write(bp)
            tot += m
            off += m
        if n > 0 and off > ip.size:
            ip.size = off
            self.iupdate(ip)
        return n

    # Directories.

    def dirlookup(self, dp: Inode, name: str) -> tuple[Inode, int] | None:
        """Find ``name`` in directory ``dp``: the inode and entry offset, or None."""
        if dp.type != FileType.DIR:
            raise FsPanic("dirlookup not DIR")
        for off in range(0, dp.size, Dirent.SIZE):
            raw = self.readi(dp, off, Dirent.SIZE)
            if len(raw) != Dirent.SIZE:
                raise FsPanic("dirlookup read")
            de = Dirent.unpack(raw)
            if de.inum != 0 and namecmp(name, de.name) == 0:
                return self.iget(de.inum), off
        return None

    def dirlink(self, dp: Inode, name: str, inum: int) -> None:
        """Add an entry (name, inum) to directory ``dp``."""
        found = self.dirlookup(dp, name)
        if found is not None:
            self.iput(found[0])
            raise FileExistsError(errno.EEXIST, "directory entry exists", name)
        off = dp.size
        for pos in range(0, dp.size, Dirent.SIZE):
            raw = self.readi(dp, pos, Dirent.SIZE)
            if len(raw) != Dirent.SIZE:
                raise FsPanic("dirlink read")
            if Dirent.unpack(raw).inum == 0:
                off = pos
                break
        if self.writei(dp, Dirent(inum, name).pack(), off) != Dirent.SIZE:
            raise FsPanic("dirlink")

    # Paths.

    def _namex(self, path: str, parent: bool, cwd: Inode | None) -> tuple[Inode, str]:
        if path.startswith("/") or cwd is None:
            ip = self.iget(ROOTINO)
        else:
            ip = self.idup(cwd)
        name = ""
        while (elem := skipelem(path)) is not None:
            name, path = elem
            self.ilock(ip)
            if ip.type != FileType.DIR:
                self.iunlockput(ip)
                raise NotADirectoryError(errno.ENOTDIR, "not a directory", name)
            if parent and path == "":
                self.iunlock(ip)
                return ip, name
            found = self.dirlookup(ip, name)
            self.iunlockput(ip)
            if found is None:
                raise FileNotFoundError(errno.ENOENT, "no such file or directory", name)
            ip = found[0]
        if parent:
            self.iput(ip)
            raise FileNotFoundError(errno.ENOENT, "path has no final element", path)
        return ip, name

    def namei(self, path: str, cwd: Inode | None = None) -> Inode:
        """Return the unlocked inode named by ``path``."""
        return self._namex(path, False, cwd)[0]

    def nameiparent(self, path: str, cwd: Inode | None = None) -> tuple[Inode, str]:
        """Return the parent directory of ``path`` and its final element."""
        return self._namex(path, True, cwd)


def open_image(image: bytes) -> FileSystem:
    """Mount an image held in memory, recovering its log."""
    disk = MemDisk(image, ROOTDEV)
    cache = BufferCache(disk)
    sb = readsb(cache, ROOTDEV)
    log = Log(cache, ROOTDEV, sb)
    return FileSystem(cache, log, ROOTDEV)