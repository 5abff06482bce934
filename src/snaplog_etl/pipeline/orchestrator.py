"""Multi-threaded pipeline orchestration.

Coordinates the archive scanner and a pool of task processors through one
queue. Manages lifecycle, monitoring, and graceful shutdown.
"""

import queue
import time
import logging
from pathlib import Path
from typing import Optional, TYPE_CHECKING

from snaplog_etl.metrics import ParserMetrics
from snaplog_etl.pipeline.file_tracker import TaskTracker
from snaplog_etl.pipeline.processor import TaskProcessor
from snaplog_etl.pipeline.scanner import ArchiveScanner
from snaplog_etl.pipeline.sink import open_sink
from snaplog_etl.setup_directories import (
    get_log_path,
    get_tracker_path,
    get_warehouse_path,
    setup_output_directories,
)
from snaplog_etl.web100 import VariableSchema

if TYPE_CHECKING:
    from snaplog_etl.schemas import InternalConfig

__all__ = ['PipelineOrchestrator']

logger = logging.getLogger(__name__)


class PipelineOrchestrator:
    """Manages the multi-threaded snaplog ETL pipeline.

    This is the main entry point for running ``snaplog_etl``. It wires the
    shared pieces (variable schema, metrics, task tracker, row sink) and
    coordinates the worker threads:

    1. **Scanner Thread**: finds archives in the input directory and queues
       them.
    2. **Processor Threads** (``processor.num_workers``): each takes one
       archive at a time and runs it through its own TestCorrelator.

    **Modes:**

    - **Batch**: scan once, process everything found, then stop.
    - **Watch**: keep polling the input directory until interrupted or
      ``max_runtime`` is reached.

    **Outputs** (under ``base_dir``):

    - warehouse/{table}_rows.db and, if enabled, {table}_rows.parquet
    - state/{table}_task_tracker.db
    - logs/pipeline_{table}.log

    Example usage::

        config = resolve_config(ParamConfig(), {"INPUT_DIR": "/data/ndt"})
        orch = PipelineOrchestrator(config)
        orch.start()
    """

    def __init__(self, config: "InternalConfig", dry_run: bool = False,
                 poll_seconds: float = 1.0, status_interval: float = 30.0):
        """Initialize orchestrator.

        Parameters
        ----------
        config : InternalConfig
            Fully validated runtime configuration. If ``output_dirs`` is
            empty, directories are created under ``base_dir``.
        dry_run : bool, optional
            Keep rows in memory instead of writing the warehouse database.
        poll_seconds : float, optional
            How often the main loop checks for completion.
        status_interval : float, optional
            Seconds between status log lines.
        """
        self.config = config
        self.dry_run = dry_run
        self.poll_seconds = poll_seconds
        self.status_interval = status_interval
        self.table = config.correlator.table

        if config.output_dirs:
            self.output_dirs = {k: Path(v) for k, v in config.output_dirs.items()}
        else:
            self.output_dirs = setup_output_directories(config.base_dir)

        self.task_queue = queue.Queue(maxsize=config.processor.max_queue_size)
        self.metrics = ParserMetrics()

        # Created in start()
        self.schema = None
        self.sink = None
        self.tracker = None
        self.scanner = None
        self.processors = []

        self._stop_event = False
        self._start_time = None
        self._max_duration = None
        self._last_status = 0.0

    def _setup_logging(self):
        """Configure root logger with file and console handlers."""
        log_level = getattr(logging, self.config.logging.level, logging.INFO)
        log_path = get_log_path(self.output_dirs, self.table)

        formatter = logging.Formatter(
            fmt='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )

        root = logging.getLogger()
        root.setLevel(log_level)
        for handler in root.handlers[:]:
            root.removeHandler(handler)

        fh = logging.FileHandler(log_path)
        fh.setLevel(log_level)
        fh.setFormatter(formatter)
        root.addHandler(fh)

        ch = logging.StreamHandler()
        ch.setLevel(log_level)
        ch.setFormatter(formatter)
        root.addHandler(ch)

        logger.info("Logging: level=%s, file=%s", self.config.logging.level, log_path)

    def _setup_components(self):
        """Load the schema and open the tracker and row sink."""
        schema_path = self.config.decoder.schema_path
        if schema_path:
            self.schema = VariableSchema.load(schema_path)
        else:
            self.schema = VariableSchema.load_default()
        logger.info("Variable schema: %d variables (%s)",
                    len(self.schema), schema_path or "bundled tcp-kis.txt")

        tracker_path = get_tracker_path(self.output_dirs, self.table)
        self.tracker = TaskTracker(tracker_path)
        logger.info("Task tracker: %s", tracker_path)

        db_path = None
        if not self.dry_run:
            db_filename = self.config.sink.db_filename_pattern.format(table=self.table)
            db_path = get_warehouse_path(self.output_dirs, db_filename)
        self.sink = open_sink(db_path, self.table, batch_size=self.config.sink.batch_size)

    def start(self, max_runtime: Optional[int] = None):
        """Start the pipeline and run until completion or user interrupt.

        Blocking call. Starts the scanner and processors, then monitors
        them, logging status every ``status_interval`` seconds.

        Parameters
        ----------
        max_runtime : int, optional
            Maximum runtime in minutes (watch mode only). If None, runs
            until KeyboardInterrupt (Ctrl+C). Batch mode ends when every
            discovered archive has been processed.
        """
        self._setup_logging()
        self._setup_components()

        logger.info("=" * 60)
        logger.info("Starting Snaplog ETL Pipeline")
        logger.info("=" * 60)

        self._start_time = time.time()
        self._max_duration = max_runtime * 60 if max_runtime else None

        if self._max_duration:
            logger.info("Max runtime: %d minutes", max_runtime)

        self.scanner = ArchiveScanner(
            self.config.scanner,
            result_queue=self.task_queue,
            tracker=self.tracker,
            table=self.table,
            mode=self.config.mode,
        )
        self.scanner.start()
        logger.info("✓ Scanner started")

        for i in range(self.config.processor.num_workers):
            processor = TaskProcessor(
                input_queue=self.task_queue,
                schema=self.schema,
                sink=self.sink,
                config=self.config,
                metrics=self.metrics,
                tracker=self.tracker,
                name=f"TaskProcessor-{i}",
            )
            processor.start()
            self.processors.append(processor)
        logger.info("✓ %d processors started", len(self.processors))

        logger.info("Pipeline running in %s mode. Press Ctrl+C to stop.",
                    self.config.mode.upper())

        try:
            self._main_loop()
        except KeyboardInterrupt:
            logger.info("Shutdown signal received (Ctrl+C)")
        finally:
            self.stop()

    def _main_loop(self):
        """Main monitoring loop."""
        self._last_status = time.time()
        while True:
            if self.config.mode == "batch":
                if self._check_batch_complete():
                    break
            elif self._max_duration:
                if time.time() - self._start_time > self._max_duration:
                    logger.info("Max duration reached")
                    break

            if not any(p.is_alive() for p in self.processors):
                logger.error("All processors have stopped")
                break

            time.sleep(self.poll_seconds)
            if time.time() - self._last_status >= self.status_interval:
                self._log_status()
                self._last_status = time.time()

    def _check_batch_complete(self) -> bool:
        """Check if the batch scan has been fully processed. Returns True to exit."""
        scanner_done = self.scanner.is_scan_complete() or not self.scanner.is_alive()
        if not scanner_done:
            return False

        queued, found, skipped = self.scanner.get_progress()
        logger.info("📦 Scanner complete: %d queued, %d found, %d already done",
                    queued, found, skipped)
        self.scanner.join(timeout=5)

        self._drain_queue(self.task_queue, "task")

        # Processors finish the task in hand before exiting
        for processor in self.processors:
            processor.stop()
        for processor in self.processors:
            processor.join(timeout=300)
            if processor.is_alive():
                logger.warning("%s did not stop cleanly", processor.name)

        logger.info("✅ Batch complete")
        return True

    def _drain_queue(self, q: queue.Queue, name: str, timeout: int = 300):
        """Wait for queue to drain with timeout."""
        wait_count = 0
        start_time = time.time()
        last_size = q.qsize()

        while q.qsize() > 0:
            if not any(p.is_alive() for p in self.processors):
                logger.warning("No processors alive, abandoning %d queued tasks", q.qsize())
                break

            current_size = q.qsize()
            if current_size == last_size:
                wait_count += 1
            else:
                wait_count = 0
                last_size = current_size

            logger.info("⏳ Waiting for %s queue: %d remaining", name, current_size)
            time.sleep(self.poll_seconds)

            if wait_count * self.poll_seconds > timeout or (time.time() - start_time) > timeout:
                logger.warning("%s queue drain timeout (%d/%d seconds)",
                               name, int(time.time() - start_time), timeout)
                break

    def stop(self):
        """Stop the pipeline gracefully and finalize all results.

        Called automatically when start() exits. Safe to call multiple times.

        1. Signals the scanner and processors to stop and waits for them
        2. Flushes the sink and exports Parquet if configured
        3. Logs metrics and tracker statistics
        4. Closes the sink and tracker
        """
        if self._stop_event:
            return

        self._stop_event = True
        logger.info("Stopping pipeline...")

        threads = [("Scanner", self.scanner)] + [(p.name, p) for p in self.processors]
        for name, thread in threads:
            if thread and thread.is_alive():
                logger.info("Stopping %s...", name)
                thread.stop()
                thread.join(timeout=5)
                if thread.is_alive():
                    logger.warning("%s did not stop cleanly", name)

        if self.sink is not None:
            try:
                self.sink.flush()
                if self.config.sink.export_parquet and not self.dry_run:
                    parquet_name = Path(self.sink.db_path).with_suffix(".parquet").name
                    self.sink.export_parquet(
                        get_warehouse_path(self.output_dirs, parquet_name),
                        compression=self.config.sink.compression,
                    )
                df = self.sink.get_results()
                logger.info("Final results: %d rows", len(df))
            finally:
                self.sink.close()

        elapsed = time.time() - self._start_time if self._start_time else 0
        logger.info("=" * 60)
        logger.info("Pipeline stopped. Runtime: %.1f seconds", elapsed)

        self._log_metrics()

        if self.tracker:
            stats = self.tracker.get_statistics(self.table)
            logger.info("Statistics: total=%d, completed=%d, failed=%d, rows=%d, errors=%d",
                        stats.get('total') or 0, stats.get('completed') or 0,
                        stats.get('failed') or 0, stats.get('total_rows') or 0,
                        stats.get('total_errors') or 0)
            self.tracker.close()

        logger.info("=" * 60)

    def _log_metrics(self):
        """Log non-zero counters from the shared metrics."""
        for counter, values in self.metrics.snapshot().items():
            for labels, count in sorted(values.items()):
                logger.info("  %s%s = %d", counter, list(labels), count)

    def _log_status(self):
        """Log current pipeline status."""
        queued, found, skipped = self.scanner.get_progress() if self.scanner else (0, 0, 0)
        alive = sum(1 for p in self.processors if p.is_alive())
        logger.info(
            "Status: S=%s P=%d/%d Q=%d [%d/%d queued, %d skipped] ok=%d",
            "✓" if self.scanner and self.scanner.is_alive() else "✗",
            alive, len(self.processors),
            self.task_queue.qsize(),
            queued, found, skipped,
            self.metrics.test_total("ok"),
        )
