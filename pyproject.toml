[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "squashback"
version = "0.13.0"
description = "Read the superblock, inodes and tables of SquashFS 4.0 images, including vendor variants"
requires-python = ">=3.10"
dependencies = []
keywords = ["squashfs", "filesystem", "firmware", "image", "inode"]
classifiers = [
    "Development Status :: 4 - Beta",
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

[tool.hatch.build.targets.wheel]
packages = ["squashback"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
