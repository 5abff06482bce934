"""NDT test correlator.

An NDT test leaves up to three files in an archive: a client-to-server
snaplog, a server-to-client snaplog and a ``.meta`` sidecar. The archive
lists them grouped by test but in no particular order within the group, so
the correlator buffers each test's files, keyed by the filename timestamp,
and builds one row per snaplog as soon as that snaplog's meta is known.

When a new timestamp arrives the previous test is closed out: snaplogs
that never saw a meta file are still turned into rows, flagged
``anomalies.no_meta``. ``flush()`` closes out the last test of a task the
same way.

One correlator belongs to one task and is used by one thread at a time.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, List, Optional, Tuple

from snaplog_etl.contracts import ContractViolation, FailurePolicy, assert_output_row
from snaplog_etl.errors import FilenameError, InsertError, SizeLimitError, UnknownSuffixError
from snaplog_etl.metrics import ParserMetrics
from snaplog_etl.parser.filename import TestInfo, parse_test_filename, same_logical_file
from snaplog_etl.parser.fixups import fix_values
from snaplog_etl.parser.meta import MetaRecord, parse_meta, placeholder_meta
from snaplog_etl.schemas.param import CorrelatorConfig
from snaplog_etl.web100 import (
    BoundsError,
    FormatError,
    SnapshotContinuityWarning,
    SnapshotLog,
    ValueMap,
    VariableSchema,
)

__all__ = [
    'TestCorrelator',
    'FileRecord',
    'TestContext',
    'Rejection',
    'CLIENT_TO_SERVER',
    'SERVER_TO_CLIENT',
]

logger = logging.getLogger(__name__)

# connection_spec.data_direction values
CLIENT_TO_SERVER = 0
SERVER_TO_CLIENT = 1

DATA_SUFFIXES = {
    "c2s_snaplog": "c2s",
    "s2c_snaplog": "s2c",
}
DIRECTIONS = {
    "c2s": CLIENT_TO_SERVER,
    "s2c": SERVER_TO_CLIENT,
}
META_SUFFIX = "meta"
IGNORED_SUFFIXES = frozenset({"c2s_ndttrace", "s2c_ndttrace", "cputime"})

_KIB = 1024
_MIB = 1024 * 1024


def _size_label(size: int) -> str:
    if size and size % _MIB == 0:
        return f"{size // _MIB}MB"
    if size and size % _KIB == 0:
        return f"{size // _KIB}KB"
    return f"{size}B"


def _size_reason(limit: int) -> str:
    return f">{_size_label(limit)}"


def _iso(ts: datetime) -> str:
    return ts.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class FileRecord:
    """A buffered snaplog waiting for (or already through) processing."""
    filename: str
    info: TestInfo
    payload: bytes
    processed: bool = False


@dataclass
class TestContext:
    """Files buffered for the test currently being assembled."""
    __test__ = False  # keep pytest from collecting this class

    timestamp: Optional[str] = None
    c2s: Optional[FileRecord] = None
    s2c: Optional[FileRecord] = None
    meta: Optional[MetaRecord] = None

    def slot(self, direction: str) -> Optional[FileRecord]:
        return self.c2s if direction == "c2s" else self.s2c

    def set_slot(self, direction: str, record: FileRecord) -> None:
        if direction == "c2s":
            self.c2s = record
        else:
            self.s2c = record

    def data_files(self) -> List[Tuple[str, FileRecord]]:
        """Buffered snaplogs as (direction, record), s2c first."""
        return [(d, r) for d, r in (("s2c", self.s2c), ("c2s", self.c2s)) if r is not None]

    def pending(self) -> List[Tuple[str, FileRecord]]:
        return [(d, r) for d, r in self.data_files() if not r.processed]


@dataclass
class Rejection:
    """A snaplog that produced no row, and why."""
    test_name: str
    direction: str
    reason: str
    error: Exception = field(repr=False)


class TestCorrelator:
    """Groups NDT test files by timestamp and emits one row per snaplog.

    Parameters
    ----------
    schema : VariableSchema
        Shared, read-only variable schema.
    sink : RowSink
        Receives finished rows through ``insert_row(row)``.
    table : str, optional
        Table label used in metrics. Defaults to ``config.table``.
    config : CorrelatorConfig or InternalCorrelatorConfig, optional
        Size thresholds, snapshot cap and contract policy.
    metrics : ParserMetrics, optional
        Shared counters. A private instance is created if omitted.
    clock : callable, optional
        Returns the current UTC datetime; used for ``parse_time``.

    Attributes
    ----------
    rows_emitted : int
        Rows accepted by the sink.
    rejections : list of Rejection
        Snaplogs that were skipped, with the error that caused it.
    """
    __test__ = False  # keep pytest from collecting this class

    def __init__(
        self,
        schema: VariableSchema,
        sink,
        table: Optional[str] = None,
        config=None,
        metrics: Optional[ParserMetrics] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.schema = schema
        self.sink = sink
        self.config = config if config is not None else CorrelatorConfig()
        self.table = table or self.config.table
        self.metrics = metrics if metrics is not None else ParserMetrics()
        self._clock = clock or _utcnow

        self.context = TestContext()
        self.rows_emitted = 0
        self.rejections: List[Rejection] = []
        self._task_filename = ""
        self._checked_record_lengths = set()

    @property
    def timestamp(self) -> Optional[str]:
        """Time token of the test currently buffered."""
        return self.context.timestamp

    # ------------------------------------------------------------------
    # File routing
    # ------------------------------------------------------------------

    def parse_and_insert(self, task_filename: str, test_name: str, content: bytes) -> None:
        """Route one archive file and emit any rows it completes.

        Parameters
        ----------
        task_filename : str
            Archive the file came from; copied into every row.
        test_name : str
            Filename of the test file inside the archive.
        content : bytes
            Decompressed file contents.

        Raises
        ------
        UnknownSuffixError
            If the file has a suffix the correlator does not know. Only
            this file is affected; buffered state is kept.
        """
        self._task_filename = task_filename
        try:
            info = parse_test_filename(test_name)
        except FilenameError as e:
            self.metrics.count_test(self.table, "unknown", "bad filename")
            logger.warning("Skipping %s in %s: %s", test_name, task_filename, e)
            return

        if info.time != self.context.timestamp:
            self._handle_anomalies(task_filename)
            self.context = TestContext(timestamp=info.time)

        direction = DATA_SUFFIXES.get(info.suffix)
        if direction is not None:
            self._buffer_data_file(task_filename, direction, FileRecord(test_name, info, content))
        elif info.suffix == META_SUFFIX:
            if self.context.meta is not None:
                self.metrics.count_test(self.table, "meta", "timestamp collision")
                logger.warning("Collision: %s and %s", self.context.meta.test_name, test_name)
            self.context.meta = parse_meta(test_name, content)
            for pending_direction, record in self.context.pending():
                self.process_test(task_filename, record, pending_direction)
        elif info.suffix in IGNORED_SUFFIXES:
            pass
        else:
            self.metrics.count_test(self.table, "unknown", info.suffix)
            raise UnknownSuffixError(test_name, info.suffix)

    def _buffer_data_file(self, task_filename: str, direction: str, record: FileRecord) -> None:
        current = self.context.slot(direction)
        if current is not None:
            if same_logical_file(current.filename, record.filename):
                if current.filename >= record.filename:
                    logger.debug("Keeping %s over copy %s", current.filename, record.filename)
                    return
                record.processed = current.processed
            else:
                self.metrics.count_test(self.table, direction, "timestamp collision")
                logger.warning("Collision: %s and %s", current.filename, record.filename)

        self.context.set_slot(direction, record)
        if self.context.meta is not None and not record.processed:
            self.process_test(task_filename, record, direction)

    def _handle_anomalies(self, task_filename: str) -> None:
        # Close out a test whose files did not all arrive.
        ctx = self.context
        if ctx.timestamp is None:
            return

        data = ctx.data_files()
        if ctx.meta is None:
            ctx.meta = placeholder_meta()
            if not data:
                self.metrics.count_test(self.table, "test", "no meta,c2s,s2c")
            for direction, record in data:
                self.metrics.count_test(self.table, direction, "no meta")
                logger.debug("No meta: %s %s", task_filename, record.filename)
                if not record.processed:
                    self.process_test(task_filename, record, direction)
        elif not data:
            self.metrics.count_test(self.table, "meta", "no tests")
            logger.info("No tests: %s %s", task_filename, ctx.meta.test_name)
        else:
            for direction, record in ctx.pending():
                self.process_test(task_filename, record, direction)

    def flush(self, task_filename: Optional[str] = None) -> None:
        """Close out the buffered test at the end of a task."""
        self._handle_anomalies(task_filename or self._task_filename)
        self.context = TestContext()

    # ------------------------------------------------------------------
    # Row construction
    # ------------------------------------------------------------------

    def process_test(self, task_filename: str, record: FileRecord, direction: str) -> bool:
        """Build and insert the row for one snaplog.

        Does nothing until a meta record (real or placeholder) is buffered.
        A record is processed at most once, whatever the outcome.

        Returns
        -------
        bool
            True if the sink accepted a row.

        Raises
        ------
        ContractViolation
            If the row breaks its contract and the policy is fail_fast.
        """
        meta = self.context.meta
        if meta is None:
            return False
        record.processed = True

        try:
            self._check_size(record, direction)
            row = self._build_row(task_filename, record, direction, meta)
        except SizeLimitError as e:
            logger.warning("Ignoring oversize snaplog: %d, %s", e.size, record.filename)
            self._reject(record, direction, _size_reason(self.config.max_payload_bytes), e)
            return False
        except (FormatError, BoundsError) as e:
            kind = type(e).__name__
            self.metrics.count_test(self.table, direction, kind)
            self.metrics.count_error(self.table, kind)
            logger.warning("%s processing %s from %s: %s", kind, record.filename, task_filename, e)
            self._reject(record, direction, kind, e)
            return False

        try:
            assert_output_row(row)
        except ContractViolation as e:
            if self.config.contract_policy == FailurePolicy.FAIL_FAST.value:
                raise
            self.metrics.count_test(self.table, direction, "contract")
            logger.error("Dropping row for %s: %s", record.filename, e)
            self._reject(record, direction, "contract", e)
            return False

        try:
            self.sink.insert_row(row)
        except InsertError as e:
            self.metrics.count_test(self.table, direction, "insert-err")
            logger.error("insert-err: %s", e)
            self._reject(record, direction, "insert-err", e)
            return False

        self.rows_emitted += 1
        self.metrics.count_test(self.table, direction, "ok")
        return True

    def _reject(self, record: FileRecord, direction: str, reason: str, error: Exception) -> None:
        self.rejections.append(Rejection(record.filename, direction, reason, error))

    def _check_size(self, record: FileRecord, direction: str) -> None:
        size = len(record.payload)
        cfg = self.config
        if size > cfg.max_payload_bytes:
            reason = _size_reason(cfg.max_payload_bytes)
            self.metrics.count_funny(self.table, direction, reason)
            self.metrics.count_test(self.table, direction, reason)
            self.metrics.observe_size("huge", size)
            raise SizeLimitError(record.filename, size, cfg.max_payload_bytes)
        self.metrics.observe_size("normal", size)

        if size < cfg.small_payload_bytes:
            self.metrics.count_funny(self.table, direction, f"<{_size_label(cfg.small_payload_bytes)}")
            logger.info("Note: small rawSnapLog: %d, %s", size, record.filename)
        if size in cfg.suspicious_payload_sizes:
            self.metrics.count_funny(self.table, direction, _size_label(size))

    def _build_row(self, task_filename: str, record: FileRecord, direction: str,
                   meta: MetaRecord) -> ValueMap:
        log = SnapshotLog.parse(record.payload)
        if log.snapshot_count == 0:
            raise FormatError(f"{record.filename}: snapshot log has no snapshots")
        if log.record_length not in self._checked_record_lengths:
            self.schema.check_layout(log.record_length)
            self._checked_record_lengths.add(log.record_length)

        warning = None
        try:
            log.validate_snapshots()
        except SnapshotContinuityWarning as w:
            warning = str(w)
            self.metrics.count_funny(self.table, direction, "continuity")
            logger.info("Snapshot continuity in %s: %s", record.filename, w)

        max_snapshots = self.config.max_snapshots
        snap = log.snapshot(min(log.snapshot_count, max_snapshots) - 1)

        snap_values = ValueMap()
        skipped = snap.values(self.schema, snap_values)
        log_conn_spec = ValueMap()
        skipped += snap.connection_spec_values(log_conn_spec)
        for name, error in skipped:
            self.metrics.count_funny(self.table, direction, "field")
            logger.warning("Skipping field %s in %s: %s", name, record.filename, error)

        row = ValueMap()
        row.set_string("test_id", record.filename)
        row.set_string("task_filename", task_filename)
        row.set_string("log_time", _iso(record.info.timestamp))
        row.set_string("parse_time", _iso(self._clock()))

        entry = row.get_map(["web100_log_entry"])
        entry.set_int64("version", log.version)
        entry.set_int64("log_time", log.log_time)
        entry["connection_spec"] = log_conn_spec
        entry["snap"] = snap_values

        conn_spec = row.get_map(["connection_spec"])
        meta.populate_conn_spec(conn_spec)
        conn_spec.set_int64("data_direction", DIRECTIONS[direction])

        anomalies = ValueMap()
        if meta.is_placeholder:
            anomalies.set_bool("no_meta", True)
        if log.snapshot_count > max_snapshots:
            anomalies.set_int64("num_snaps", log.snapshot_count)
        if warning is not None:
            anomalies.set_string("snapshot_warning", warning)
        if anomalies:
            row["anomalies"] = anomalies

        fix_values(row)
        return row
