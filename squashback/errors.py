"""Exceptions raised while reading or building squashfs images."""


class SquashfsError(Exception):
    """Base class for every error raised by this package."""


class IncompleteDataError(SquashfsError):
    """The input ended before a complete structure could be parsed."""

    def __init__(self, message="not enough data to parse structure"):
        super().__init__(message)


class CorruptedImageError(SquashfsError):
    """The image is corrupted or is not a valid squashfs image."""

    def __init__(self, message="corrupted or invalid squashfs"):
        super().__init__(message)


class InvalidKindError(SquashfsError, ValueError):
    """An unknown image kind was requested."""

    def __init__(self, message="not a valid kind"):
        super().__init__(message)


class UnexpectedInodeError(SquashfsError):
    """An inode of the wrong type was found where another was required."""

    def __init__(self, inner):
        self.inner = inner
        super().__init__(f"unexpected inode: {inner!r}")


class UnsupportedInodeError(SquashfsError):
    """An inode type that is recognised but not supported."""

    def __init__(self, inner):
        self.inner = inner
        super().__init__(f"unsupported inode: {inner!r}")


class EntryNotFoundError(SquashfsError, LookupError):
    """A requested file or entry does not exist."""

    def __init__(self, message="file not found"):
        super().__init__(message)


class FieldAssertionError(SquashfsError):
    """A parsed field failed a consistency check."""