[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "xv6fs"
version = "0.1.0"
description = "Build, mount and inspect small Unix-style file system images in pure Python"
requires-python = ">=3.10"
dependencies = []
keywords = ["filesystem", "disk image", "mkfs", "inode", "journal", "buffer cache", "grep"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Education",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Filesystems",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
xv6-mkfs = "xv6fs.mkfs:main"
xv6-grep = "xv6fs.grep:main"
xv6-tool = "xv6fs.commands:main"

[tool.hatch.build.targets.wheel]
packages = ["xv6fs"]

[tool.pytest.ini_options]
addopts = "-ra"
