"""Binary web100 snapshot logs.

A snapshot log is a header followed by fixed-size records, each one a
point-in-time capture of TCP connection state variables. All integers are
little-endian::

    offset  size  field
    0       8     magic b"WEB100SL"
    8       2     format_version (uint16)
    10      2     flags (uint16, reserved)
    12      8     log_time (int64, epoch seconds)
    20      4     field_count (uint32)
    24      4     record_length (uint32)
    28      4     connection_spec_length (uint32)
    32      n     connection_spec blob
    32+n    ...   records, record_length bytes each

Every record starts with the marker ``b"SNAP"`` and a uint32 sequence
counter. Variable offsets in a ``VariableSchema`` are relative to the start
of the record.

The log never copies record bytes: ``Snapshot`` objects are ``memoryview``
windows into the buffer owned by their ``SnapshotLog``.
"""

import logging
import struct
from dataclasses import dataclass
from typing import List, Tuple

import numpy as np

from snaplog_etl.web100 import codec
from snaplog_etl.web100.codec import VarType
from snaplog_etl.web100.errors import BoundsError, FormatError, SnaplogError, SnapshotContinuityWarning
from snaplog_etl.web100.values import ValueMap
from snaplog_etl.web100.variables import FieldDescriptor, VariableSchema

__all__ = [
    'LogHeader',
    'SnapshotLog',
    'Snapshot',
    'CONNECTION_SPEC_SCHEMA',
    'HEADER_STRUCT',
    'RECORD_PREFIX',
    'MAGIC',
    'RECORD_MARKER',
]

logger = logging.getLogger(__name__)

MAGIC = b"WEB100SL"
SUPPORTED_VERSIONS = (1,)
HEADER_STRUCT = struct.Struct("<8sHHqIII")
RECORD_MARKER = b"SNAP"
RECORD_PREFIX = struct.Struct("<4sI")

# Layout of the connection-spec blob carried in the header.
CONNECTION_SPEC_SCHEMA = VariableSchema(
    [
        FieldDescriptor("local_ip", VarType.INET_ADDRESS_IPV4, 0, 4),
        FieldDescriptor("local_port", VarType.INET_PORT_NUMBER, 4, 2),
        FieldDescriptor("remote_ip", VarType.INET_ADDRESS_IPV4, 6, 4),
        FieldDescriptor("remote_port", VarType.INET_PORT_NUMBER, 10, 2),
        FieldDescriptor("local_af", VarType.INTEGER32, 12, 4),
    ],
    version="connection-spec",
)


@dataclass(frozen=True)
class LogHeader:
    """Parsed snapshot-log header."""
    format_version: int
    log_time: int
    field_count: int
    record_length: int
    connection_spec: bytes
    header_length: int


class SnapshotLog:
    """A parsed snapshot log with indexed access to its records.

    Use :meth:`parse` to build one from raw bytes.

    Parameters
    ----------
    raw : bytes-like
        The full log buffer. Owned by this object.
    header : LogHeader
        Header parsed from ``raw``.
    """

    def __init__(self, raw, header: LogHeader):
        self._raw = memoryview(raw).cast("B")
        self.header = header
        body_length = len(self._raw) - header.header_length
        self.snapshot_count = body_length // header.record_length

    @classmethod
    def parse(cls, raw) -> "SnapshotLog":
        """Parse the header of ``raw`` and validate the record layout.

        Raises
        ------
        FormatError
            If the header is short or structurally invalid, or the body
            length is not a whole number of records.
        """
        total = len(raw)
        if total < HEADER_STRUCT.size:
            raise FormatError(f"Snapshot log truncated: {total} bytes, header needs {HEADER_STRUCT.size}")

        (magic, version, _flags, log_time, field_count,
         record_length, spec_length) = HEADER_STRUCT.unpack_from(raw, 0)

        if magic != MAGIC:
            raise FormatError(f"Bad snapshot log magic: {magic!r}")
        if version not in SUPPORTED_VERSIONS:
            raise FormatError(f"Unsupported snapshot log version: {version}")
        if field_count == 0:
            raise FormatError("Snapshot log declares zero fields")
        if record_length < RECORD_PREFIX.size:
            raise FormatError(
                f"Record length {record_length} shorter than record prefix ({RECORD_PREFIX.size})"
            )

        header_length = HEADER_STRUCT.size + spec_length
        if header_length > total:
            raise FormatError(
                f"Connection spec ({spec_length} bytes) runs past end of log ({total} bytes)"
            )

        body_length = total - header_length
        if body_length % record_length != 0:
            raise FormatError(
                f"Snapshot data length {body_length} is not a multiple of record length {record_length}"
            )

        header = LogHeader(
            format_version=version,
            log_time=log_time,
            field_count=field_count,
            record_length=record_length,
            connection_spec=bytes(raw[HEADER_STRUCT.size:header_length]),
            header_length=header_length,
        )
        return cls(raw, header)

    @property
    def field_count(self) -> int:
        return self.header.field_count

    @property
    def record_length(self) -> int:
        return self.header.record_length

    @property
    def log_time(self) -> int:
        return self.header.log_time

    @property
    def version(self) -> int:
        return self.header.format_version

    def __len__(self) -> int:
        return self.snapshot_count

    def snapshot(self, index: int) -> "Snapshot":
        """Return a view of record ``index``.

        Raises
        ------
        BoundsError
            Unless ``0 <= index < snapshot_count``.
        """
        if not 0 <= index < self.snapshot_count:
            raise BoundsError(
                f"Snapshot index {index} out of range (log has {self.snapshot_count})"
            )
        offset = self.header.header_length + index * self.header.record_length
        return Snapshot(self, index, offset, self.header.record_length)

    def _record_bytes(self, offset: int, length: int) -> memoryview:
        return self._raw[offset:offset + length]

    def validate_snapshots(self) -> None:
        """Check record markers and sequence continuity across all records.

        Raises
        ------
        SnapshotContinuityWarning
            For the first record that lacks the record marker or whose
            sequence counter is lower than its predecessor's.
        """
        n = self.snapshot_count
        if n == 0:
            return

        records = np.frombuffer(
            self._raw, dtype=np.uint8,
            count=n * self.record_length,
            offset=self.header.header_length,
        ).reshape(n, self.record_length)

        marker = np.frombuffer(RECORD_MARKER, dtype=np.uint8)
        bad_marker = np.flatnonzero(~np.all(records[:, :4] == marker, axis=1))

        sequence = records[:, 4:8].copy().view("<u4").ravel().astype(np.int64)
        decreasing = np.flatnonzero(np.diff(sequence) < 0) + 1

        first_marker = int(bad_marker[0]) if bad_marker.size else n
        first_drop = int(decreasing[0]) if decreasing.size else n
        if first_marker == n and first_drop == n:
            return

        if first_marker <= first_drop:
            raise SnapshotContinuityWarning(
                f"snapshot {first_marker}: missing record marker", first_marker
            )
        raise SnapshotContinuityWarning(
            f"snapshot {first_drop}: sequence {sequence[first_drop]} "
            f"follows {sequence[first_drop - 1]}",
            first_drop,
        )

    def connection_spec_values(self, sink: ValueMap) -> List[Tuple[str, SnaplogError]]:
        """Decode the header's connection spec into ``sink``.

        The blob is decoded field by field, independently of the records:
        a field that cannot be decoded or that runs past a short blob is
        left out of ``sink`` and returned as ``(name, error)``.
        """
        blob = memoryview(self.header.connection_spec)
        skipped = []
        for desc in CONNECTION_SPEC_SCHEMA.resolved():
            try:
                codec.save(desc, blob, sink)
            except (FormatError, BoundsError) as e:
                skipped.append((desc.effective_name, e))
        return skipped


class Snapshot:
    """View of a single record inside a :class:`SnapshotLog`.

    Holds a reference to its log, so the underlying buffer stays alive for
    as long as the snapshot does.
    """

    def __init__(self, log: SnapshotLog, index: int, offset: int, length: int):
        self.log = log
        self.index = index
        self.offset = offset
        self.length = length

    @property
    def record(self) -> memoryview:
        return self.log._record_bytes(self.offset, self.length)

    @property
    def sequence(self) -> int:
        _marker, seq = RECORD_PREFIX.unpack_from(self.record, 0)
        return seq

    def values(self, schema: VariableSchema, sink: ValueMap) -> List[Tuple[str, FormatError]]:
        """Decode every schema variable in this record into ``sink``.

        Returns
        -------
        list of (str, FormatError)
            Variables whose bytes could not be decoded. They are left out of
            ``sink``; every other variable is still decoded.

        Raises
        ------
        BoundsError
            If a descriptor window falls outside the record.
        """
        record = self.record
        skipped = []
        for desc in schema.resolved():
            try:
                codec.save(desc, record, sink)
            except FormatError as e:
                skipped.append((desc.effective_name, e))
        return skipped

    def connection_spec_values(self, sink: ValueMap) -> List[Tuple[str, SnaplogError]]:
        """Decode the owning log's connection spec into ``sink``."""
        return self.log.connection_spec_values(sink)

    def __repr__(self) -> str:
        return f"Snapshot(index={self.index}, offset={self.offset}, length={self.length})"
