# xv6fs

xv6fs works with images of a small Unix-style file system: 512-byte
blocks, a superblock, a write-ahead log, an inode table, a free-block
bitmap and data blocks. In pure Python it can:

- build an image from files (`xv6fs.mkfs`);
- mount an image held in memory, with a block cache, a redo log and an
  inode layer (`xv6fs.disk`, `xv6fs.bcache`, `xv6fs.journal`, `xv6fs.fs`);
- open files and pipes through a file table (`xv6fs.file`);
- list and read files in an image (`xv6fs.commands`) and search text
  with a tiny pattern matcher (`xv6fs.grep`).

It also has a console line editor (`xv6fs.console.Console`), a PC
keyboard scan code decoder (`xv6fs.keyboard.Keyboard`), a
reference-counted page allocator (`xv6fs.pagealloc.PageAllocator`) and a
small printf (`xv6fs.formatting.format_printf`).

## Installation

```
pip install .
```

## Command line

Build an image from host files. Every file goes into the root directory;
a leading `_` is removed from each name as it is stored, and names may
not contain `/`:

```
xv6-mkfs fs.img README _cat _ls
```

Print the lines that match a pattern. Only `^`, `.`, `*` and `$` are
special; with no files, standard input is searched:

```
xv6-grep 'ab*c$' notes.txt
```

Look at an image. `ls` with no path lists the root directory; each line
shows the name padded to 14 characters, the type (1 directory, 2 file,
3 device), the inode number and the size:

```
xv6-tool fs.img ls /
xv6-tool fs.img cat /README
xv6-tool fs.img echo hello world
```

## Library use

```python
from xv6fs.mkfs import build_image
from xv6fs.fs import open_image
from xv6fs.commands import ls, cat

image = build_image([("README", b"hello\n")])
fs = open_image(image)
print(ls(fs, "/"))
print(cat(fs, ["/README"]))
```

`build_image` takes `(name, contents)` pairs and returns the image as
bytes; `ImageBuilder` does the same one file at a time. `open_image`
mounts the image, replays any committed log transaction, and returns a
`FileSystem` whose methods (`namei`, `nameiparent`, `ialloc`, `ilock`,
`readi`, `writei`, `dirlookup`, `dirlink`, `iput`, ...) work on the
format described in `xv6fs.layout`. Changes must be made inside a log
transaction:

```python
from xv6fs.layout import FileType

with fs.log.transaction():
    ip = fs.ialloc(FileType.FILE)
    fs.ilock(ip)
    ip.nlink = 1
    fs.iupdate(ip)
    fs.writei(ip, b"new contents\n", 0)
    fs.iunlock(ip)
    root = fs.namei("/")
    fs.ilock(root)
    fs.dirlink(root, "notes", ip.inum)
    fs.iunlockput(root)
    fs.iput(ip)

new_image = fs.cache.disk.to_bytes()
```

Conditions under which a kernel would panic raise
`xv6fs.layout.FsPanic`; missing paths, full tables and similar errors
raise the matching `OSError` subclasses.

## What it does not do

- There is no kernel, process table, scheduler or program loader: the
  tools run on the host, and nothing runs programs stored in an image.
- The command-line tools only read images. There are no commands to
  create directories, make links, remove files or write into an existing
  image; such changes are possible only through the `FileSystem` API,
  and the result has to be saved by the caller (`to_bytes()` above).
- Disks are memory only; there is no driver for a real block device.

## Tests

```
pip install .[test]
pytest
```