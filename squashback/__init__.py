"""Read the superblock, inodes and tables of SquashFS 4.0 images."""

__version__ = "0.13.0"