import pytest

from xv6fs.fs import FileSystem, namecmp, open_image, readsb, skipelem
from xv6fs.layout import (
    BSIZE,
    NDIRECT,
    NINODE,
    ROOTDEV,
    ROOTINO,
    Dirent,
    FileType,
    FsPanic,
)
from xv6fs.mkfs import ImageBuilder, build_image

README = b"hello xv6\n"
CAT = bytes(range(256)) * 6


@pytest.fixture
def fs():
    return open_image(build_image([("README", README), ("_cat", CAT)]))


def read_all(fs, ip):
    fs.ilock(ip)
    try:
        return fs.readi(ip, 0, ip.size)
    finally:
        fs.iunlock(ip)


def create(fs, name, data):
    with fs.log.transaction():
        root = fs.namei("/")
        ip = fs.ialloc(FileType.FILE)
        fs.ilock(ip)
        ip.nlink = 1
        fs.iupdate(ip)
        fs.writei(ip, data, 0)
        fs.iunlock(ip)
        fs.ilock(root)
        fs.dirlink(root, name, ip.inum)
        fs.iunlockput(root)
        inum = ip.inum
        fs.iput(ip)
    return inum


class EchoDevice:
    def __init__(self):
        self.written = []

    def read(self, ip, n):
        return b"k" * n

    def write(self, ip, data):
        self.written.append(data)
        return len(data)


def test_skipelem_documented_examples():
    assert skipelem("a/bb/c") == ("a", "bb/c")
    assert skipelem("///a//bb") == ("a", "bb")
    assert skipelem("a") == ("a", "")
    assert skipelem("") is None
    assert skipelem("////") is None


def test_skipelem_truncates_long_names():
    long_name = "abcdefghijklmnopq"
    assert skipelem(long_name + "/x") == (long_name[:14], "x")


def test_namecmp():
    assert namecmp("README", "README") == 0
    assert namecmp("abcdefghijklmnXX", "abcdefghijklmnYY") == 0
    assert namecmp("a", "b") < 0
    assert namecmp("b", "a") > 0


def test_readsb_matches_builder(fs):
    assert readsb(fs.cache, ROOTDEV) == ImageBuilder().sb


def test_namei_reads_file(fs):
    ip = fs.namei("/README")
    assert read_all(fs, ip) == README
    fs.ilock(ip)
    assert fs.readi(ip, 6, 100) == README[6:]
    fs.iunlock(ip)


def test_leading_underscore_dropped(fs):
    ip = fs.namei("/cat")
    assert read_all(fs, ip) == CAT
    assert ip.size == len(CAT)


def test_namei_errors(fs):
    with pytest.raises(FileNotFoundError):
        fs.namei("/missing")
    with pytest.raises(NotADirectoryError):
        fs.namei("/README/x")


def test_nameiparent(fs):
    parent, name = fs.nameiparent("/README")
    assert parent.inum == ROOTINO
    assert name == "README"
    with pytest.raises(FileNotFoundError):
        fs.nameiparent("/")


def test_relative_lookup(fs):
    root = fs.namei("/")
    ip = fs.namei("README", cwd=root)
    assert read_all(fs, ip) == README
    parent, name = fs.nameiparent("README", cwd=root)
    assert parent is root
    assert name == "README"


def test_stati_root(fs):
    root = fs.namei("/")
    fs.ilock(root)
    st = fs.stati(root)
    fs.iunlock(root)
    assert st.type == FileType.DIR
    assert st.ino == ROOTINO
    assert st.dev == ROOTDEV
    assert st.size % BSIZE == 0


def test_dirlookup_dot_entries(fs):
    root = fs.namei("/")
    fs.ilock(root)
    dot, off = fs.dirlookup(root, ".")
    dotdot, off2 = fs.dirlookup(root, "..")
    missing = fs.dirlookup(root, "nothing")
    fs.iunlock(root)
    assert dot is root
    assert off == 0
    assert dotdot.inum == ROOTINO
    assert off2 == Dirent.SIZE
    assert missing is None


def test_dirlookup_requires_directory(fs):
    ip = fs.namei("/README")
    fs.ilock(ip)
    with pytest.raises(FsPanic):
        fs.dirlookup(ip, "x")
    fs.iunlock(ip)


def test_iget_caches_same_object(fs):
    a = fs.namei("/README")
    b = fs.namei("/README")
    assert a is b
    assert a.ref == 2
    c = fs.idup(a)
    assert c is a
    assert a.ref == 3


def test_iget_exhaustion(fs):
    held = [fs.iget(i) for i in range(1, NINODE + 1)]
    assert fs.iget(1) is held[0]
    with pytest.raises(FsPanic):
        fs.iget(NINODE + 1)


def test_lock_checks(fs):
    ip = fs.iget(ROOTINO)
    with pytest.raises(FsPanic):
        fs.iunlock(ip)
    fs.iput(ip)
    with pytest.raises(FsPanic):
        fs.ilock(ip)


def test_create_and_persist(fs):
    data = b"new contents"
    inum = create(fs, "notes", data)
    ip = fs.namei("/notes")
    assert ip.inum == inum
    assert read_all(fs, ip) == data

    reopened = open_image(fs.cache.disk.to_bytes())
    again = reopened.namei("/notes")
    assert read_all(reopened, again) == data
    assert reopened.namei("/README") is not None
    assert read_all(reopened, reopened.namei("/README")) == README


def test_dirlink_duplicate(fs):
    with fs.log.transaction():
        root = fs.namei("/")
        fs.ilock(root)
        with pytest.raises(FileExistsError):
            fs.dirlink(root, "README", ROOTINO)
        fs.iunlockput(root)


def test_readi_writei_bounds(fs):
    ip = fs.namei("/README")
    fs.ilock(ip)
    with pytest.raises(ValueError):
        fs.readi(ip, ip.size + 1, 1)
    assert fs.readi(ip, ip.size, 10) == b""
    with pytest.raises(ValueError):
        fs.writei(ip, b"x", ip.size + 1)
    fs.iunlock(ip)


def test_large_file_uses_indirect_block(fs):
    data = bytes((i * 7) % 251 for i in range((NDIRECT + 2) * BSIZE))
    inum = create(fs, "big", data)
    ip = fs.namei("/big")
    assert ip.inum == inum
    assert read_all(fs, ip) == data
    assert ip.size == len(data)
    assert ip.addrs[NDIRECT] != 0


def test_overwrite_in_place(fs):
    create(fs, "f", b"aaaaaa")
    ip = fs.namei("/f")
    with fs.log.transaction():
        fs.ilock(ip)
        assert fs.writei(ip, b"bb", 2) == 2
        fs.iunlock(ip)
    assert read_all(fs, ip) == b"aabbaa"


def test_unlinked_inode_is_freed_and_reused(fs):
    with fs.log.transaction():
        ip = fs.ialloc(FileType.FILE)
        fs.ilock(ip)
        fs.writei(ip, b"abc", 0)
        first_block = ip.addrs[0]
        fs.iunlock(ip)
        first = ip.inum
        fs.iput(ip)
    with fs.log.transaction():
        ip2 = fs.ialloc(FileType.FILE)
        fs.ilock(ip2)
        fs.writei(ip2, b"xyz", 0)
        assert ip2.addrs[0] == first_block
        fs.iunlock(ip2)
    assert ip2.inum == first
    fs.ilock(ip2)
    assert fs.readi(ip2, 0, 3) == b"xyz"
    fs.iunlock(ip2)


def test_device_inode(fs):
    device = EchoDevice()
    devfs = FileSystem(fs.cache, fs.log, ROOTDEV, {1: device})
    with devfs.log.transaction():
        ip = devfs.ialloc(FileType.DEV)
        devfs.ilock(ip)
        ip.major = 1
        devfs.iupdate(ip)
        assert devfs.readi(ip, 0, 4) == b"kkkk"
        assert devfs.writei(ip, b"out", 0) == 3
        ip.major = 2
        with pytest.raises(OSError):
            devfs.readi(ip, 0, 1)
        devfs.iunlock(ip)
    assert device.written == [b"out"]