"""Pipeline modules.

- task: archive sources and the per-archive Task
- sink: row sinks (SQLite warehouse, in-memory)
- scanner: archive discovery thread
- processor: task processor thread
- file_tracker: SQLite-based task tracking
- orchestrator: Main pipeline controller
"""

from snaplog_etl.pipeline.task import Task, TaskResult, TarArchiveSource, DirectorySource, open_source
from snaplog_etl.pipeline.sink import SQLiteRowSink, MemoryRowSink, open_sink
from snaplog_etl.pipeline.file_tracker import TaskTracker
from snaplog_etl.pipeline.scanner import ArchiveScanner
from snaplog_etl.pipeline.processor import TaskProcessor
from snaplog_etl.pipeline.orchestrator import PipelineOrchestrator

__all__ = [
    "Task",
    "TaskResult",
    "TarArchiveSource",
    "DirectorySource",
    "open_source",
    "SQLiteRowSink",
    "MemoryRowSink",
    "open_sink",
    "TaskTracker",
    "ArchiveScanner",
    "TaskProcessor",
    "PipelineOrchestrator",
]
