"""Task processing worker.

Takes archives off the scanner queue and runs each one through a fresh
TestCorrelator, writing rows to the shared sink and recording every
stage in the task tracker.
"""

import logging
import queue
import threading
from pathlib import Path
from typing import List, Optional, TYPE_CHECKING

from snaplog_etl.contracts import ContractViolation
from snaplog_etl.errors import ArchiveReadError, InsertError
from snaplog_etl.metrics import ParserMetrics
from snaplog_etl.parser.correlator import TestCorrelator
from snaplog_etl.pipeline.task import Task, TaskResult, open_source

if TYPE_CHECKING:
    from snaplog_etl.schemas import InternalConfig
    from snaplog_etl.web100 import VariableSchema

__all__ = ['TaskProcessor']

logger = logging.getLogger(__name__)


class TaskProcessor(threading.Thread):
    """Processes archives from the input queue, one task at a time.

    This worker thread runs in the background, receiving archives from the
    scanner queue. Several processors can share one queue; each task is
    handled start to finish by a single processor with its own correlator.

    **Processing Steps:**

    For each archive, the processor:

    1. **Checks the tracker**: archives already exported are skipped.
    2. **Parses**: opens the archive and feeds every file to a new
       TestCorrelator through a Task. Marks the task ``parsed`` with its
       file, row and error counts.
    3. **Exports**: flushes the task's buffered rows from the
       shared row sink, then marks the task ``exported``.

    A corrupt archive marks the task failed at the ``parsed`` stage; rows
    the correlator already produced are kept. A sink failure marks it failed
    at ``exported``.

    **Contract Violations:**

    A row that breaks the output contract under the ``fail_fast`` policy
    is a bug, not bad data. The processor logs it at CRITICAL, marks the
    task failed and stops itself.

    Example usage (typically called by orchestrator)::

        processor = TaskProcessor(
            input_queue=task_queue,
            schema=VariableSchema.load_default(),
            sink=sink,
            config=config,
            metrics=metrics,
            tracker=tracker,
        )
        processor.start()
        ...
        processor.stop()
    """

    def __init__(self, input_queue: queue.Queue, schema: "VariableSchema", sink,
                 config: "InternalConfig",
                 metrics: Optional[ParserMetrics] = None,
                 tracker=None,
                 name: str = "TaskProcessor"):
        """Initialize processor.

        Parameters
        ----------
        input_queue : queue.Queue
            Archives from the scanner: dicts with ``path`` and ``task_id``,
            or bare paths.
        schema : VariableSchema
            Shared, read-only variable schema.
        sink : RowSink
            Shared row sink.
        config : InternalConfig
            Fully validated runtime configuration.
        metrics : ParserMetrics, optional
            Shared counters. A private instance is created if omitted.
        tracker : TaskTracker, optional
            Skips finished archives and records stage progress.
        name : str, optional
            Thread name for logging (default: "TaskProcessor").
        """
        super().__init__(daemon=True, name=name)

        self.input_queue = input_queue
        self.schema = schema
        self.sink = sink
        self.config = config
        self.metrics = metrics if metrics is not None else ParserMetrics()
        self.tracker = tracker
        self._stop_event = threading.Event()

        self.results: List[TaskResult] = []
        self.tasks_completed = 0
        self.tasks_failed = 0

    def stop(self):
        """Signal the processor to stop after the current task."""
        self._stop_event.set()

    def stopped(self):
        return self._stop_event.is_set()

    def process_task(self, item) -> bool:
        """Process one archive: parse → export.

        Parameters
        ----------
        item : dict or Path or str
            Queue item from the scanner, or an archive path.

        Returns
        -------
        bool
            True if the task was exported (or had been already).
        """
        if isinstance(item, dict):
            path = Path(item["path"])
            task_id = item.get("task_id") or path.name
        else:
            path = Path(item)
            task_id = path.name

        tracker = self.tracker
        if tracker and not tracker.should_process(task_id, "exported"):
            logger.info("Skipping already exported: %s", task_id)
            return True

        logger.info("Processing: %s", task_id)
        table = self.config.correlator.table

        try:
            correlator = TestCorrelator(self.schema, self.sink,
                                        config=self.config.correlator,
                                        metrics=self.metrics)
            try:
                with open_source(path) as source:
                    result = Task(source, correlator, task_id).process_all_tests()
            except ArchiveReadError as e:
                logger.error("Cannot read %s: %s", task_id, e)
                self.metrics.count_error(table, "archive read")
                self._fail(task_id, "parsed", str(e))
                return False

            self.results.append(result)
            if result.aborted:
                self._fail(task_id, "parsed", result.error, result)
                return False

            if tracker:
                tracker.mark_stage_complete(task_id, "parsed", num_files=result.files,
                                            num_rows=result.rows, num_errors=result.errors)

            try:
                self.sink.flush(task_id)
            except InsertError as e:
                logger.error("Export failed for %s: %s", task_id, e)
                self.metrics.count_error(table, "insert-err")
                self._fail(task_id, "exported", str(e), result)
                return False

            if tracker:
                tracker.mark_stage_complete(task_id, "exported")
            self.tasks_completed += 1
            return True

        except ContractViolation as e:
            logger.critical("💥 CRITICAL: Row contract violated in %s: %s", task_id, e)
            logger.critical("This indicates a bug in row construction. Stopping processor.")
            self.stop()
            self._fail(task_id, "parsed", f"Contract violation: {e}")
            return False

    def _fail(self, task_id: str, stage: str, error: str,
              result: Optional[TaskResult] = None):
        self.tasks_failed += 1
        if not self.tracker:
            return
        if result is None:
            self.tracker.mark_stage_complete(task_id, stage, error=error)
        else:
            self.tracker.mark_stage_complete(task_id, stage, num_files=result.files,
                                             num_rows=result.rows,
                                             num_errors=result.errors, error=error)

    def run(self):
        """Main processor loop (runs in thread).

        Reads archives from input_queue until stopped. Unexpected errors in
        one task are logged and the loop moves on to the next.
        """
        logger.info("%s started, waiting for archives...", self.name)

        while not self.stopped():
            try:
                item = self.input_queue.get(timeout=1)
            except queue.Empty:
                continue

            try:
                self.process_task(item)
            except Exception:
                logger.exception("Failed to process task: %s", item)
                self.tasks_failed += 1
            finally:
                # Always mark task as done to prevent queue from blocking
                self.input_queue.task_done()

        logger.info("%s stopped (%d completed, %d failed)",
                    self.name, self.tasks_completed, self.tasks_failed)
