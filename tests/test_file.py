import threading

import pytest

from xv6fs.file import PIPESIZE, FileKind, FileTable, is_regular
from xv6fs.fs import open_image
from xv6fs.layout import FileType, FsPanic
from xv6fs.mkfs import build_image

CONTENT = b"hello world\n"


@pytest.fixture
def table():
    fs = open_image(build_image([("hello.txt", CONTENT)]))
    return FileTable(fs)


def open_hello(table, readable=True, writable=False):
    ip = table.fs.namei("/hello.txt")
    return table.open_inode(ip, readable, writable)


def test_read_advances_offset(table):
    f = open_hello(table)
    assert table.read(f, 5) == CONTENT[:5]
    assert f.off == 5
    assert table.read(f, 100) == CONTENT[5:]
    assert table.read(f, 10) == b""


def test_stat_of_inode(table):
    f = open_hello(table)
    st = table.stat(f)
    assert st.size == len(CONTENT)
    assert st.type == FileType.FILE
    assert is_regular(f)


def test_write_then_read_back(table):
    w = open_hello(table, readable=False, writable=True)
    assert table.write(w, b"HELLO") == 5
    r = open_hello(table)
    assert table.read(r, 100) == b"HELLO" + CONTENT[5:]


def test_large_write_spans_transactions(table):
    data = bytes(range(256)) * 12
    w = open_hello(table, readable=False, writable=True)
    assert table.write(w, data) == len(data)
    table.close(w)
    r = open_hello(table)
    assert table.read(r, len(data) + 100) == data
    assert table.stat(r).size == len(data)


def test_read_on_write_only_file_fails(table):
    w = open_hello(table, readable=False, writable=True)
    with pytest.raises(OSError):
        table.read(w, 1)


def test_write_on_read_only_file_fails(table):
    r = open_hello(table)
    with pytest.raises(OSError):
        table.write(r, b"x")


def test_table_full():
    fs = open_image(build_image([]))
    small = FileTable(fs, 2)
    small.alloc()
    small.alloc()
    with pytest.raises(OSError):
        small.alloc()


def test_dup_and_close_reference_counts(table):
    f = open_hello(table)
    table.dup(f)
    assert f.ref == 2
    table.close(f)
    assert f.ref == 1
    assert f.kind is FileKind.INODE
    table.close(f)
    assert f.ref == 0
    assert f.kind is FileKind.NONE
    with pytest.raises(FsPanic):
        table.close(f)
    with pytest.raises(FsPanic):
        table.dup(f)


def test_closed_entry_is_reused(table):
    f = open_hello(table)
    table.close(f)
    assert table.alloc() is f


def test_pipe_round_trip(table):
    rf, wf = table.make_pipe()
    assert table.write(wf, b"through the pipe") == 16
    assert table.read(rf, 7) == b"through"
    assert table.read(rf, 100) == b" the pipe"


def test_pipe_eof_after_writer_closes(table):
    rf, wf = table.make_pipe()
    table.write(wf, b"last")
    table.close(wf)
    assert table.read(rf, 10) == b"last"
    assert table.read(rf, 10) == b""


def test_pipe_write_without_reader_fails_when_full(table):
    rf, wf = table.make_pipe()
    table.close(rf)
    with pytest.raises(BrokenPipeError):
        table.write(wf, b"x" * (PIPESIZE + 1))


def test_pipe_stat_fails(table):
    rf, _ = table.make_pipe()
    with pytest.raises(OSError):
        table.stat(rf)


def test_pipe_reader_waits_for_writer(table):
    rf, wf = table.make_pipe()
    result = []

    def reader_body():
        result.append(table.read(rf, 10))

    reader = threading.Thread(target=reader_body)
    reader.start()
    assert table.write(wf, b"late") == 4
    reader.join(timeout=5)
    assert not reader.is_alive()
    assert result == [b"late"]
    assert rf.pipe.nread == rf.pipe.nwrite == 4
    assert table.write(wf, b"more") == 4
    assert table.read(rf, 10) == b"more"


def test_pipe_writer_waits_for_room(table):
    rf, wf = table.make_pipe()
    data = bytes(range(256)) * 5
    writer = threading.Thread(target=lambda: table.write(wf, data))
    writer.start()
    received = bytearray()
    while len(received) < len(data):
        received += table.read(rf, 100)
    writer.join(timeout=5)
    assert bytes(received) == data
    assert rf.pipe.nread == rf.pipe.nwrite == len(data)


def test_pipe_closes_both_ends(table):
    rf, wf = table.make_pipe()
    pipe = rf.pipe
    table.close(rf)
    assert not pipe.closed
    table.close(wf)
    assert pipe.closed