"""Errors raised while correlating test files and writing rows.

Each error is scoped to the smallest unit that can be skipped: one file,
one row, or (for ``ArchiveReadError``) the rest of one task.
"""


class EtlError(Exception):
    """Base class for correlator and pipeline failures."""


class FilenameError(EtlError, ValueError):
    """A test filename does not match the expected grammar."""


class SizeLimitError(EtlError):
    """A snapshot log is larger than the configured cap; its row is skipped."""

    def __init__(self, filename: str, size: int, limit: int):
        super().__init__(f"Oversize snaplog {filename}: {size} bytes (limit {limit})")
        self.filename = filename
        self.size = size
        self.limit = limit


class UnknownSuffixError(EtlError):
    """A file in the archive cannot be routed; only that file is skipped."""

    def __init__(self, filename: str, suffix: str):
        super().__init__(f"Unknown test suffix {suffix!r}: {filename}")
        self.filename = filename
        self.suffix = suffix


class InsertError(EtlError):
    """The row sink failed to store a row or batch."""


class ArchiveReadError(EtlError):
    """Reading the archive failed; the rest of the task is abandoned."""


class EndOfArchive(Exception):
    """Raised by an archive source when no files remain."""
