"""Row sinks.

The correlator hands every finished row to a sink through
``insert_row(row)``. Rows are nested mappings; sinks that store tables
flatten them with ``pandas.json_normalize`` into dotted column names
(``connection_spec.server_ip``, ``web100_log_entry.snap.CurCwnd``).
"""

import logging
import sqlite3
import threading
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Protocol

import pandas as pd

from snaplog_etl.errors import InsertError

__all__ = ['RowSink', 'SQLiteRowSink', 'MemoryRowSink', 'flatten_rows', 'open_sink']

logger = logging.getLogger(__name__)


class RowSink(Protocol):
    """Anything the correlator can write rows to."""

    def insert_row(self, row: Mapping) -> None:
        ...

    def flush(self, task_filename: Optional[str] = None) -> None:
        ...


def flatten_rows(rows: List[Mapping]) -> pd.DataFrame:
    """Flatten nested rows into one DataFrame with dotted column names."""
    if not rows:
        return pd.DataFrame()
    return pd.json_normalize(rows, sep=".")


def _sql_type(series: pd.Series) -> str:
    if pd.api.types.is_bool_dtype(series) or pd.api.types.is_integer_dtype(series):
        return "INTEGER"
    if pd.api.types.is_float_dtype(series):
        return "REAL"
    return "TEXT"


class SQLiteRowSink:
    """Batches rows into a SQLite table.

    Rows are buffered and written ``batch_size`` at a time with
    ``DataFrame.to_sql``. The table is created by the first batch; columns
    that appear in later batches are added with ``ALTER TABLE``, and
    columns missing from a batch are stored as NULL.

    Thread-safe: all workers share one sink and writes are serialized by
    an internal lock. Each task has its own buffer, so a worker flushing
    its task never writes or discards rows of another task.

    Parameters
    ----------
    db_path : Path or str
        SQLite database file. Created if it doesn't exist.
    table : str
        Table name (e.g., ndt).
    batch_size : int, optional
        Rows buffered before a write (default 500).

    Example usage::

        sink = SQLiteRowSink(output_dirs["warehouse"] / "ndt_rows.db", "ndt")
        correlator = TestCorrelator(schema, sink)
        ...
        sink.flush()
        sink.export_parquet(output_dirs["warehouse"] / "ndt_rows.parquet")
        sink.close()
    """

    def __init__(self, db_path, table: str, batch_size: int = 500):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.table = table
        self.batch_size = batch_size

        self.output_lock = threading.Lock()
        self._buffers: Dict[Optional[str], List[Mapping]] = {}
        self._lost: Dict[Optional[str], str] = {}
        self.rows_written = 0

        self.db_conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
        logger.info("Row sink initialized: %s (table %s)", self.db_path, self.table)

    def insert_row(self, row: Mapping) -> None:
        """Buffer one row, writing its task's batch when it is full.

        Rows are buffered per ``task_filename``, so a failed write only
        loses rows of the task that owns the batch.

        Raises
        ------
        InsertError
            If writing the batch fails. The batch is discarded and the next
            ``flush`` of the same task raises too, because rows accepted
            earlier in that batch are gone.
        """
        task = row.get("task_filename")
        with self.output_lock:
            buffer = self._buffers.setdefault(task, [])
            buffer.append(row)
            if len(buffer) >= self.batch_size:
                try:
                    self._write_buffer(task)
                except InsertError as e:
                    lost = len(buffer) - 1
                    if lost:
                        self._lost[task] = f"{lost} buffered rows lost: {e}"
                    raise

    def flush(self, task_filename: Optional[str] = None) -> None:
        """Write buffered rows of one task, or of every task when None.

        Raises
        ------
        InsertError
            If a write fails, or an earlier batch of the task was lost.
            When flushing every task, the remaining tasks are still written
            before the first error is raised.
        """
        with self.output_lock:
            if task_filename is None:
                tasks = list(dict.fromkeys([*self._buffers, *self._lost]))
            else:
                tasks = [task_filename]
            errors = []
            for task in tasks:
                lost = self._lost.pop(task, None)
                if lost is not None:
                    errors.append(InsertError(f"{task}: {lost}"))
                try:
                    self._write_buffer(task)
                except InsertError as e:
                    errors.append(e)
            if errors:
                raise errors[0]

    def _get_table_columns(self) -> list:
        cursor = self.db_conn.execute(f'PRAGMA table_info("{self.table}")')
        return [row[1] for row in cursor.fetchall()]

    def _align_dataframe_to_schema(self, df: pd.DataFrame) -> pd.DataFrame:
        """Add new columns to the table and missing columns to ``df``."""
        existing_cols = self._get_table_columns()
        if not existing_cols:
            return df

        new_cols = [c for c in df.columns if c not in existing_cols]
        for col in new_cols:
            self.db_conn.execute(
                f'ALTER TABLE "{self.table}" ADD COLUMN "{col}" {_sql_type(df[col])}'
            )
        if new_cols:
            logger.debug("Added %d columns to %s: %s", len(new_cols), self.table, new_cols[:5])

        return df.reindex(columns=existing_cols + new_cols)

    def _write_buffer(self, task: Optional[str]) -> None:
        rows = self._buffers.pop(task, None)
        if not rows:
            return

        try:
            df = self._align_dataframe_to_schema(flatten_rows(rows))
            df.to_sql(self.table, self.db_conn, if_exists='append', index=False)
            self.db_conn.commit()
        except (sqlite3.Error, pd.errors.DatabaseError, ValueError) as e:
            self.db_conn.rollback()
            raise InsertError(f"Failed to insert {len(rows)} rows into {self.table}: {e}") from e

        self.rows_written += len(rows)
        logger.debug("Wrote %d rows to %s", len(rows), self.table)

    def get_results(self) -> pd.DataFrame:
        """Return every stored row as a DataFrame (empty before the first write)."""
        with self.output_lock:
            if not self._get_table_columns():
                return pd.DataFrame()
            return pd.read_sql(f'SELECT * FROM "{self.table}"', self.db_conn)

    def export_parquet(self, filepath, compression: str = "snappy") -> int:
        """Export the table to a Parquet file.

        Parameters
        ----------
        filepath : Path or str
            Output Parquet file.
        compression : str, optional
            'snappy', 'gzip', 'lz4' or 'none'.

        Returns
        -------
        int
            Rows exported. Nothing is written when the table is empty.
        """
        filepath = Path(filepath)
        filepath.parent.mkdir(parents=True, exist_ok=True)

        self.flush()
        df = self.get_results()
        if df.empty:
            logger.warning("No rows to export")
            return 0

        df.to_parquet(filepath, engine='pyarrow',
                      compression=None if compression == "none" else compression,
                      index=False)
        logger.info("Exported %d rows to: %s", len(df), filepath)
        return len(df)

    def close(self) -> None:
        """Flush and close the connection. Safe to call multiple times."""
        if self.db_conn is None:
            return
        try:
            self.flush()
        finally:
            self.db_conn.close()
            self.db_conn = None
            logger.info("Row sink closed: %s", self.db_path)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


class MemoryRowSink:
    """Keeps rows in a list. Used by tests and dry runs.

    Parameters
    ----------
    fail_on : callable, optional
        Predicate on a row; when it returns True the insert raises
        InsertError instead of storing the row.
    """

    def __init__(self, fail_on=None):
        self.rows: List[Mapping] = []
        self._fail_on = fail_on
        self._lock = threading.Lock()

    def insert_row(self, row: Mapping) -> None:
        if self._fail_on is not None and self._fail_on(row):
            raise InsertError(f"Rejected row {row.get('test_id')!r}")
        with self._lock:
            self.rows.append(row)

    def flush(self, task_filename: Optional[str] = None) -> None:
        pass

    def get_results(self) -> pd.DataFrame:
        with self._lock:
            return flatten_rows(list(self.rows))

    def close(self) -> None:
        pass

    def __len__(self) -> int:
        return len(self.rows)


def open_sink(db_path: Optional[Path], table: str, batch_size: int = 500):
    """SQLite sink at ``db_path``, or an in-memory sink when it is None."""
    if db_path is None:
        return MemoryRowSink()
    return SQLiteRowSink(db_path, table, batch_size=batch_size)
