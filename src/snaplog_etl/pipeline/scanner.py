"""Archive discovery.

Scans an input directory for NDT archives and queues each one for
processing, either once (batch mode) or on a polling interval (watch
mode). Already exported archives are skipped using the task tracker, so a
restart over the same directory only picks up new or failed work.
"""

import threading
import time
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from snaplog_etl.schemas.internal import InternalScannerConfig

__all__ = ['ArchiveScanner']

logger = logging.getLogger(__name__)


class ArchiveScanner(threading.Thread):
    """Finds archives under ``input_dir`` and queues them for processors.

    **Batch Mode:** Scans once, queues everything found, then marks the
    scan complete and exits. The orchestrator drains the queue and stops.

    **Watch Mode:** Rescans every ``poll_interval_sec`` seconds until
    stopped. Useful when a collector keeps dropping new archives into the
    directory.

    **Matching:** Regular files matching any of ``patterns`` (default
    ``*.tgz``, ``*.tar.gz``, ``*.tar``) anywhere below ``input_dir``, and at
    least ``min_file_size`` bytes. Smaller files are usually partial copies
    and are picked up on a later scan once complete.

    **Deduplication:** Keeps a set of queued paths, so each archive is
    queued at most once per run. Archives the tracker reports as exported
    are not queued at all.

    **Queue Communication:** Puts one dict per archive on ``result_queue``::

        {"path": Path(...), "task_id": "20170509T000000Z-mlab1-sea01-ndt-0000.tgz"}

    Example usage (typically called by orchestrator)::

        scanner = ArchiveScanner(config.scanner, result_queue=task_queue,
                                 tracker=tracker, table="ndt", mode="batch")
        scanner.start()
        ...
        scanner.stop()
        scanner.join(timeout=10)
    """

    def __init__(self, config: "InternalScannerConfig", result_queue=None,
                 tracker=None, table: str = "ndt", mode: str = "batch",
                 clock=None, sleeper=None):
        """Initialize scanner.

        Parameters
        ----------
        config : InternalScannerConfig
            ``input_dir``, ``patterns``, ``poll_interval_sec``, ``min_file_size``.
        result_queue : queue.Queue, optional
            Queue the discovered archives go to. If None, archives are only
            registered with the tracker (discovery-only mode).
        tracker : TaskTracker, optional
            Records discovered tasks and reports which are already done.
        table : str, optional
            Table name recorded with each task.
        mode : str, optional
            'batch' or 'watch'.
        clock : callable, optional
            Returns the current datetime (for testing).
        sleeper : callable, optional
            Sleep function (for testing). Defaults to ``time.sleep``.
        """
        super().__init__(daemon=True)

        self.config = config
        self.input_dir = Path(config.input_dir) if config.input_dir else None
        self.patterns = list(config.patterns)
        self.poll_interval = config.poll_interval_sec
        self.min_file_size = config.min_file_size

        self.result_queue = result_queue
        self.tracker = tracker
        self.table = table
        self.mode = mode

        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._sleep = sleeper or time.sleep

        self._stop_event = threading.Event()
        self._known_files = set()
        self._known_files_lock = threading.Lock()

        self._scan_complete = threading.Event()
        self._found = 0
        self._queued = 0
        self._skipped = 0
        self.last_scan_time: Optional[datetime] = None

        self.name = f"Scanner-{self.table}"

    # ========================================================================
    # Thread control
    # ========================================================================

    def stop(self):
        """Signal the scanner to stop after the current scan."""
        self._stop_event.set()

    def stopped(self) -> bool:
        return self._stop_event.is_set()

    def is_batch_mode(self) -> bool:
        return self.mode == "batch"

    def is_scan_complete(self) -> bool:
        """True once a batch scan has queued everything it found.

        Always False in watch mode.
        """
        return self._scan_complete.is_set()

    def get_progress(self) -> tuple:
        """Return ``(queued, found, skipped)`` totals for this run.

        ``skipped`` counts archives the tracker already had as exported.
        """
        return self._queued, self._found, self._skipped

    def run(self):
        """Main thread loop; started by ``start()``.

        Scan failures are logged and the loop continues (watch mode) or the
        scan is marked complete so the orchestrator can finish (batch mode).
        """
        logger.info("Starting %s in %s mode on %s", self.name, self.mode, self.input_dir)

        while not self.stopped():
            try:
                self.scan_task()
            except OSError:
                logger.exception("Scan of %s failed", self.input_dir)

            if self.is_batch_mode():
                self._scan_complete.set()
                logger.info("✅ Batch scan complete: %d queued, %d already done",
                            self._queued, self._skipped)
                break

            self._interruptible_sleep(self.poll_interval)

        logger.info("Stopped %s", self.name)

    def _interruptible_sleep(self, seconds: int):
        """Sleep that can be interrupted by stop event."""
        for _ in range(max(1, seconds // 2)):
            if self.stopped():
                break
            self._sleep(2)

    # ========================================================================
    # Scanning
    # ========================================================================

    def scan_task(self) -> List[Path]:
        """Run one scan and queue new archives.

        Returns
        -------
        list of Path
            Archives queued by this scan.

        Raises
        ------
        OSError
            If the input directory cannot be listed.
        """
        self.last_scan_time = self._clock()
        archives = self._find_archives()
        logger.info("Found %d archives in %s", len(archives), self.input_dir)

        queued = []
        for path in archives:
            if self.stopped():
                break
            if self._queue_archive(path):
                queued.append(path)

        if queued:
            logger.info("Queued %d new archives", len(queued))
        return queued

    def _find_archives(self) -> List[Path]:
        """Matching archives below input_dir, sorted by name."""
        if self.input_dir is None:
            raise OSError("No input directory configured")
        if not self.input_dir.is_dir():
            raise FileNotFoundError(f"Input directory not found: {self.input_dir}")

        found = set()
        for pattern in self.patterns:
            for path in self.input_dir.rglob(pattern):
                if self._file_ready(path):
                    found.add(path.resolve())
        return sorted(found, key=lambda p: (p.name, str(p)))

    def _file_ready(self, path: Path) -> bool:
        """Check that a regular file exists and is big enough."""
        try:
            return path.is_file() and path.stat().st_size >= self.min_file_size
        except OSError:
            return False

    def _queue_archive(self, path: Path) -> bool:
        """Register and queue one archive. Returns True if it was queued."""
        with self._known_files_lock:
            if path in self._known_files:
                return False
            self._known_files.add(path)
            self._found += 1

        task_id = path.name
        if self.tracker is not None:
            self.tracker.register_task(task_id, self.table, path)
            if not self.tracker.should_process(task_id, "exported"):
                logger.debug("Already exported, skipping: %s", task_id)
                self._skipped += 1
                return False
            self.tracker.mark_stage_complete(task_id, "discovered")

        if self.result_queue is None:
            return False

        self.result_queue.put({"path": path, "task_id": task_id})
        self._queued += 1
        return True
