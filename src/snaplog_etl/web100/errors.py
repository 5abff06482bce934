"""Exception types raised by the snapshot-log decoder.

Every failure in the decoder is raised as a ``SnaplogError`` subclass so a
caller can skip one field, one file or one row without catching unrelated
errors.
"""


class SnaplogError(Exception):
    """Base class for all decoder failures."""


class FormatError(SnaplogError, ValueError):
    """Malformed variable schema or snapshot-log header.

    Fatal to the decode that raised it, never to the process.
    """


class BoundsError(SnaplogError, IndexError):
    """A field window or snapshot index falls outside the available bytes."""


class SnapshotContinuityWarning(SnaplogError):
    """Consecutive snapshots broke a continuity expectation.

    Advisory only: callers log and count it, then keep using the data.

    Attributes
    ----------
    index : int
        Index of the first snapshot found in violation.
    """

    def __init__(self, message: str, index: int):
        super().__init__(message)
        self.index = index
