"""SQLite-based task processing state tracker.

Tracks archives (tasks) through pipeline stages (discovered, parsed,
exported). Enables idempotent processing with stop/restart, progress
tracking, and failure recovery.
"""

import sqlite3
import logging
from pathlib import Path
from datetime import datetime, timezone
from typing import Optional, Dict, List
import threading

logger = logging.getLogger(__name__)

STAGES = ('discovered', 'parsed', 'exported')


class TaskTracker:
    """Tracks task processing state and progress through pipeline stages.

    A task is one archive of NDT test files. Each archive moves through
    discovery → parsing → export. Completed archives are skipped when the
    pipeline restarts over the same input directory.

    **Pipeline Stages:**

    1. **Discovered**: Archive found by the scanner and queued
    2. **Parsed**: Every file in the archive went through the correlator
    3. **Exported**: The task's rows were committed by the row sink

    **Database Schema:**

    SQLite table `task_processing`:

    - task_id: Archive filename (e.g., 20170509T000000Z-mlab1-sea01-ndt-0000.tgz)
    - table_name: Warehouse table the rows go to (e.g., ndt)
    - Status: pending, processing, completed, failed
    - Timestamps: When each stage completed (ISO format)
    - archive_path, file_size_mb
    - Counts: num_files, num_rows, num_errors; error_message

    **Thread Safety:**

    All methods are thread-safe via internal locking.

    **Typical Usage:**

        tracker = TaskTracker(db_path)

        if tracker.should_process(task_id, "parsed"):
            ...
            tracker.mark_stage_complete(task_id, "parsed", num_files=120, num_rows=80)

        stats = tracker.get_statistics()
        tracker.close()
    """

    def __init__(self, db_path: Path | str):
        """Initialize tracker.

        Parameters
        ----------
        db_path : Path or str
            Path to SQLite database file. Created if it doesn't exist.
            Typically: output_dirs/state/{table}_task_tracker.db
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._conn = None
        self._lock = threading.Lock()

        self._init_database()
        logger.info("Task tracker initialized: %s", self.db_path)

    def _get_connection(self) -> sqlite3.Connection:
        """Get the shared database connection."""
        if self._conn is None:
            self._conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
        return self._conn

    def _init_database(self):
        """Create database schema if it doesn't exist."""
        conn = self._get_connection()

        with self._lock:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS task_processing (
                    task_id TEXT PRIMARY KEY,
                    table_name TEXT NOT NULL,
                    archive_path TEXT,

                    discovered_at TEXT,
                    parsed_at TEXT,
                    exported_at TEXT,

                    status TEXT DEFAULT 'pending',
                    error_message TEXT,

                    file_size_mb REAL,
                    num_files INTEGER,
                    num_rows INTEGER,
                    num_errors INTEGER,

                    created_at TEXT DEFAULT CURRENT_TIMESTAMP,
                    updated_at TEXT DEFAULT CURRENT_TIMESTAMP
                )
            """)

            conn.execute("CREATE INDEX IF NOT EXISTS idx_table_name ON task_processing(table_name)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_status ON task_processing(status)")

            conn.commit()

    def register_task(self, task_id: str, table_name: str,
                      archive_path: Optional[Path] = None) -> bool:
        """Register a newly discovered archive.

        Parameters
        ----------
        task_id : str
            Unique task identifier, normally the archive filename.
        table_name : str
            Destination table (e.g., ndt).
        archive_path : Path, optional
            Archive location on disk; used to record its size.

        Returns
        -------
        bool
            True if newly registered, False if already in the database.
            False is not an error: the task may be mid-processing or done.
        """
        conn = self._get_connection()

        with self._lock:
            cursor = conn.execute("SELECT task_id FROM task_processing WHERE task_id = ?", (task_id,))
            if cursor.fetchone():
                return False

            file_size_mb = None
            if archive_path and Path(archive_path).exists():
                file_size_mb = Path(archive_path).stat().st_size / (1024 * 1024)

            conn.execute("""
                INSERT INTO task_processing
                (task_id, table_name, archive_path, file_size_mb, discovered_at, status)
                VALUES (?, ?, ?, ?, ?, 'pending')
            """, (
                task_id,
                table_name,
                str(archive_path) if archive_path else None,
                file_size_mb,
                datetime.now(timezone.utc).isoformat()
            ))
            conn.commit()

            logger.debug("Registered task: %s", task_id)
            return True

    def mark_stage_complete(self, task_id: str, stage: str,
                            num_files: Optional[int] = None,
                            num_rows: Optional[int] = None,
                            num_errors: Optional[int] = None,
                            error: Optional[str] = None):
        """Mark a pipeline stage as complete or failed for a task.

        Parameters
        ----------
        task_id : str
            Task identifier (registered via register_task).
        stage : str
            Pipeline stage: 'discovered', 'parsed', 'exported'.
        num_files, num_rows, num_errors : int, optional
            Counts reported by the task; only non-None values are written.
        error : str, optional
            Error message if the stage failed. Status becomes 'failed'.

        Raises
        ------
        ValueError
            If stage is not one of the valid pipeline stages.
        """
        if stage not in STAGES:
            raise ValueError(f"Invalid stage: {stage}. Must be one of {list(STAGES)}")

        if error:
            new_status = 'failed'
        elif stage == 'exported':
            new_status = 'completed'
        else:
            new_status = 'processing'

        now = datetime.now(timezone.utc).isoformat()
        assignments = [f"{stage}_at = ?", "status = ?", "error_message = ?", "updated_at = ?"]
        params: list = [now, new_status, error, now]
        for column, value in (("num_files", num_files), ("num_rows", num_rows),
                              ("num_errors", num_errors)):
            if value is not None:
                assignments.append(f"{column} = ?")
                params.append(value)
        params.append(task_id)

        conn = self._get_connection()
        with self._lock:
            conn.execute(
                f"UPDATE task_processing SET {', '.join(assignments)} WHERE task_id = ?",
                params,
            )
            conn.commit()

        logger.debug("Marked %s complete: %s", stage, task_id)

    def get_task_status(self, task_id: str) -> Optional[Dict]:
        """Get the full processing record for a task, or None if unknown."""
        conn = self._get_connection()

        with self._lock:
            cursor = conn.execute("SELECT * FROM task_processing WHERE task_id = ?", (task_id,))
            row = cursor.fetchone()
            return dict(row) if row else None

    def get_pending_tasks(self, stage: Optional[str] = None,
                          limit: Optional[int] = None) -> List[Dict]:
        """Get tasks awaiting processing.

        Parameters
        ----------
        stage : str, optional
            'parsed' for discovered but unparsed tasks, 'exported' for parsed
            but unexported ones. If None, any task not completed or failed.
        limit : int, optional
            Max tasks to return.

        Returns
        -------
        list of dict
            Matching records, oldest discovery first.
        """
        if stage == 'parsed':
            condition = "parsed_at IS NULL AND status != 'failed'"
        elif stage == 'exported':
            condition = "parsed_at IS NOT NULL AND exported_at IS NULL AND status != 'failed'"
        else:
            condition = "status != 'completed' AND status != 'failed'"

        query = f"SELECT * FROM task_processing WHERE {condition} ORDER BY discovered_at"
        params = []
        if limit:
            query += " LIMIT ?"
            params.append(limit)

        conn = self._get_connection()
        with self._lock:
            cursor = conn.execute(query, params)
            return [dict(row) for row in cursor.fetchall()]

    def get_statistics(self, table_name: Optional[str] = None) -> Dict:
        """Get summary statistics for processing progress.

        Returns
        -------
        dict
            `total`, per-stage counts, per-status counts, `total_rows` and
            `total_errors`. Used by the orchestrator's periodic status log.
        """
        where_clause = "WHERE table_name = ?" if table_name else ""
        params = (table_name,) if table_name else ()

        conn = self._get_connection()
        with self._lock:
            cursor = conn.execute(f"""
                SELECT
                    COUNT(*) as total,
                    COUNT(discovered_at) as discovered,
                    COUNT(parsed_at) as parsed,
                    COUNT(exported_at) as exported,
                    SUM(CASE WHEN status = 'completed' THEN 1 ELSE 0 END) as completed,
                    SUM(CASE WHEN status = 'failed' THEN 1 ELSE 0 END) as failed,
                    SUM(CASE WHEN status = 'processing' THEN 1 ELSE 0 END) as processing,
                    SUM(CASE WHEN status = 'pending' THEN 1 ELSE 0 END) as pending,
                    SUM(num_rows) as total_rows,
                    SUM(num_errors) as total_errors
                FROM task_processing
                {where_clause}
            """, params)
            row = cursor.fetchone()
            return dict(row) if row else {}

    def should_process(self, task_id: str, stage: str = 'exported') -> bool:
        """True unless ``stage`` already completed for this task."""
        status = self.get_task_status(task_id)
        if not status:
            return True
        return status.get(f"{stage}_at") is None

    def reset_failed(self, table_name: Optional[str] = None):
        """Reset failed tasks to pending so the next run retries them.

        Stage timestamps are cleared as well, so the whole archive is parsed
        again.
        """
        now = datetime.now(timezone.utc).isoformat()
        query = """
            UPDATE task_processing
            SET status = 'pending', error_message = NULL,
                parsed_at = NULL, exported_at = NULL, updated_at = ?
            WHERE status = 'failed'
        """
        params: list = [now]
        if table_name:
            query += " AND table_name = ?"
            params.append(table_name)

        conn = self._get_connection()
        with self._lock:
            conn.execute(query, params)
            conn.commit()

        logger.info("Reset failed tasks to pending")

    def cleanup_deleted_tasks(self, table_name: Optional[str] = None):
        """Remove records for archives no longer on disk."""
        conn = self._get_connection()

        with self._lock:
            if table_name:
                cursor = conn.execute(
                    "SELECT task_id, archive_path FROM task_processing WHERE table_name = ?",
                    (table_name,),
                )
            else:
                cursor = conn.execute("SELECT task_id, archive_path FROM task_processing")

            deleted = [
                row['task_id'] for row in cursor.fetchall()
                if row['archive_path'] and not Path(row['archive_path']).exists()
            ]

            if deleted:
                placeholders = ','.join('?' * len(deleted))
                conn.execute(f"DELETE FROM task_processing WHERE task_id IN ({placeholders})", deleted)
                conn.commit()
                logger.info("Cleaned up %d deleted task(s)", len(deleted))

    def close(self):
        """Close database connection. Safe to call multiple times."""
        if self._conn:
            self._conn.close()
            self._conn = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
