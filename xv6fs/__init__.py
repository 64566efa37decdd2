"""Build, mount and inspect small Unix-style file system images."""

__version__ = "0.1.0"
__all__ = [
    "layout",
    "mkfs",
    "grep",
    "formatting",
    "disk",
    "bcache",
    "journal",
    "fs",
    "file",
    "console",
    "keyboard",
    "pagealloc",
    "commands",
]