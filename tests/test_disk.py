import pytest

from xv6fs.disk import Buffer, BufFlag, MemDisk
from xv6fs.layout import BSIZE, ROOTDEV, FsPanic


def _image():
    return bytes(range(256)) * 8


def _locked(dev=ROOTDEV, blockno=0):
    buf = Buffer(dev=dev, blockno=blockno)
    buf.lock.acquire()
    return buf


def test_disksize_counts_whole_blocks():
    disk = MemDisk(_image() + b"xx")
    assert disk.disksize == 4


def test_read_fills_buffer_and_marks_valid():
    image = _image()
    disk = MemDisk(image)
    buf = _locked(blockno=2)
    disk.rw(buf)
    assert bytes(buf.data) == image[2 * BSIZE:3 * BSIZE]
    assert buf.valid
    assert not buf.dirty


def test_write_updates_image_and_clears_dirty():
    image = _image()
    disk = MemDisk(image)
    buf = _locked(blockno=1)
    buf.data[:] = b"\x07" * BSIZE
    buf.flags = BufFlag.DIRTY
    disk.rw(buf)
    out = disk.to_bytes()
    assert out[BSIZE:2 * BSIZE] == b"\x07" * BSIZE
    assert out[:BSIZE] == image[:BSIZE]
    assert buf.flags == BufFlag.VALID


def test_image_is_copied():
    image = bytearray(_image())
    disk = MemDisk(image)
    image[0] = 99
    assert disk.to_bytes() == _image()


def test_unlocked_buffer_panics():
    disk = MemDisk(_image())
    with pytest.raises(FsPanic, match="not locked"):
        disk.rw(Buffer(dev=ROOTDEV, blockno=0))


def test_valid_clean_buffer_panics():
    disk = MemDisk(_image())
    buf = _locked()
    buf.flags = BufFlag.VALID
    with pytest.raises(FsPanic, match="nothing to do"):
        disk.rw(buf)


def test_wrong_device_panics():
    disk = MemDisk(_image())
    with pytest.raises(FsPanic, match="not for disk"):
        disk.rw(_locked(dev=ROOTDEV + 1))


def test_block_out_of_range_panics():
    disk = MemDisk(_image())
    with pytest.raises(FsPanic, match="out of range"):
        disk.rw(_locked(blockno=disk.disksize))


def test_sleeplock_detects_reacquire_and_foreign_release():
    buf = Buffer()
    buf.lock.acquire()
    assert buf.lock.holding()
    with pytest.raises(FsPanic):
        buf.lock.acquire()
    buf.lock.release()
    assert not buf.lock.holding()
    with pytest.raises(FsPanic):
        buf.lock.release()