"""Build a file system image holding a set of files in its root directory."""

from __future__ import annotations

import struct
import sys
from collections.abc import Iterable
from pathlib import Path

from .layout import (
    BPB,
    BSIZE,
    FSSIZE,
    LOGSIZE,
    IPB,
    MAXFILE,
    NDIRECT,
    NINDIRECT,
    ROOTINO,
    Dinode,
    Dirent,
    FileType,
    FsPanic,
    Superblock,
    iblock,
)

NINODES = 200

NBITMAP = FSSIZE // BPB + 1
NINODEBLOCKS = NINODES // IPB + 1
NLOG = LOGSIZE
NMETA = 2 + NLOG + NINODEBLOCKS + NBITMAP
NBLOCKS = FSSIZE - NMETA

_INDIRECT = struct.Struct(f"<{NINDIRECT}I")


class ImageBuilder:
    """An in-memory disk image with a root directory, ready for files."""

    def __init__(self) -> None:
        self._image = bytearray(FSSIZE * BSIZE)
        self._finished = False
        self.sb = Superblock(
            size=FSSIZE,
            nblocks=NBLOCKS,
            ninodes=NINODES,
            nlog=NLOG,
            logstart=2,
            inodestart=2 + NLOG,
            bmapstart=2 + NLOG + NINODEBLOCKS,
        )
        self.freeinode = 1
        self.freeblock = NMETA
        self._wsect(1, self.sb.pack())

        self.rootino = self.ialloc(FileType.DIR)
        if self.rootino != ROOTINO:
            raise FsPanic("root inode is not ROOTINO")
        self.iappend(self.rootino, Dirent(self.rootino, ".").pack())
        self.iappend(self.rootino, Dirent(self.rootino, "..").pack())

    def _rsect(self, sec: int) -> bytes:
        if not 0 <= sec < FSSIZE:
            raise FsPanic(f"sector {sec} out of range")
        return bytes(self._image[sec * BSIZE:(sec + 1) * BSIZE])

    def _wsect(self, sec: int, data: bytes) -> None:
        if not 0 <= sec < FSSIZE:
            raise FsPanic(f"sector {sec} out of range")
        self._image[sec * BSIZE:(sec + 1) * BSIZE] = bytes(data).ljust(BSIZE, b"\0")[:BSIZE]

    def _take_block(self) -> int:
        block = self.freeblock
        if block >= FSSIZE:
            raise FsPanic("out of blocks")
        self.freeblock += 1
        return block

    def _check_open(self) -> None:
        if self._finished:
            raise RuntimeError("image already finished")

    def ialloc(self, type_: int) -> int:
        """Allocate the next inode with the given type and one link."""
        inum = self.freeinode
        if inum >= NINODES:
            raise FsPanic("out of inodes")
        self.freeinode += 1
        self.write_inode(inum, Dinode(type=int(type_), nlink=1, size=0))
        return inum

    def read_inode(self, inum: int) -> Dinode:
        start = (inum % IPB) * Dinode.SIZE
        return Dinode.unpack(self._rsect(iblock(inum, self.sb))[start:start + Dinode.SIZE])

    def write_inode(self, inum: int, dinode: Dinode) -> None:
        bn = iblock(inum, self.sb)
        block = bytearray(self._rsect(bn))
        start = (inum % IPB) * Dinode.SIZE
        block[start:start + Dinode.SIZE] = dinode.pack()
        self._wsect(bn, block)

    def iappend(self, inum: int, data: bytes) -> None:
        """Append ``data`` to the contents of inode ``inum``."""
        din = self.read_inode(inum)
        off = din.size
        pos = 0
        while pos < len(data):
            fbn = off // BSIZE
            if fbn >= MAXFILE:
                raise FsPanic("file too large")
            if fbn < NDIRECT:
                if din.addrs[fbn] == 0:
                    din.addrs[fbn] = self._take_block()
                block_no = din.addrs[fbn]
            else:
                if din.addrs[NDIRECT] == 0:
                    din.addrs[NDIRECT] = self._take_block()
                indirect = list(_INDIRECT.unpack(self._rsect(din.addrs[NDIRECT])))
                if indirect[fbn - NDIRECT] == 0:
                    indirect[fbn - NDIRECT] = self._take_block()
                    self._wsect(din.addrs[NDIRECT], _INDIRECT.pack(*indirect))
                block_no = indirect[fbn - NDIRECT]
            n1 = min(len(data) - pos, (fbn + 1) * BSIZE - off)
            block = bytearray(self._rsect(block_no))
            start = off - fbn * BSIZE
            block[start:start + n1] = data[pos:pos + n1]
            self._wsect(block_no, block)
            pos += n1
            off += n1
        din.size = off
        self.write_inode(inum, din)

    def add_file(self, name: str, data: bytes) -> int:
        """Add a regular file to the root directory; a leading '_' is dropped."""
        self._check_open()
        if "/" in name:
            raise ValueError(f"file name must not contain '/': {name!r}")
        if name.startswith("_"):
            name = name[1:]
        inum = self.ialloc(FileType.FILE)
        self.iappend(self.rootino, Dirent(inum, name).pack())
        self.iappend(inum, data)
        return inum

    def finish(self) -> bytes:
        """Round the root directory size up, write the bitmap, return the image."""
        self._check_open()
        root = self.read_inode(self.rootino)
        root.size = (root.size // BSIZE + 1) * BSIZE
        self.write_inode(self.rootino, root)

        used = self.freeblock
        if used >= BPB:
            raise FsPanic("too many blocks for one bitmap block")
        bitmap = bytearray(BSIZE)
        for b in range(used):
            bitmap[b // 8] |= 1 << (b % 8)
        self._wsect(self.sb.bmapstart, bitmap)
        self._finished = True
        return bytes(self._image)


def build_image(files: Iterable[tuple[str, bytes]]) -> bytes:
    """Build an image from (name, contents) pairs."""
    builder = ImageBuilder()
    for name, data in files:
        builder.add_file(name, data)
    return builder.finish()


def main(argv: list[str] | None = None) -> int:
    args = sys.argv[1:] if argv is None else list(argv)
    if not args:
        print("Usage: mkfs fs.img files...", file=sys.stderr)
        return 1

    builder = ImageBuilder()
    print(
        f"nmeta {NMETA} (boot, super, log blocks {NLOG} inode blocks {NINODEBLOCKS}, "
        f"bitmap blocks {NBITMAP}) blocks {NBLOCKS} total {FSSIZE}"
    )
    for path in args[1:]:
        try:
            data = Path(path).read_bytes()
        except OSError as exc:
            print(f"{path}: {exc.strerror}", file=sys.stderr)
            return 1
        try:
            builder.add_file(path, data)
        except (ValueError, FsPanic) as exc:
            print(f"mkfs: {exc}", file=sys.stderr)
            return 1

    try:
        image = builder.finish()
    except FsPanic as exc:
        print(f"mkfs: {exc}", file=sys.stderr)
        return 1
    print(f"balloc: first {builder.freeblock} blocks have been allocated")
    print(f"balloc: write bitmap block at sector {builder.sb.bmapstart}")

    try:
        Path(args[0]).write_bytes(image)
    except OSError as exc:
        print(f"{args[0]}: {exc.strerror}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())