"""web100 snapshot-log decoding.

- variables: text variable-definition schema
- codec: per-type binary decode rules
- snaplog: snapshot-log header, records and snapshots
- values: the value sink decoded fields are written into
"""

from snaplog_etl.web100.errors import (
    SnaplogError,
    FormatError,
    BoundsError,
    SnapshotContinuityWarning,
)
from snaplog_etl.web100.codec import VarType
from snaplog_etl.web100.variables import FieldDescriptor, VariableSchema
from snaplog_etl.web100.snaplog import LogHeader, SnapshotLog, Snapshot
from snaplog_etl.web100.values import ValueMap

__all__ = [
    "SnaplogError",
    "FormatError",
    "BoundsError",
    "SnapshotContinuityWarning",
    "VarType",
    "FieldDescriptor",
    "VariableSchema",
    "LogHeader",
    "SnapshotLog",
    "Snapshot",
    "ValueMap",
]
