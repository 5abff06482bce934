"""Archive sources and the per-archive Task.

A task is one archive of test files. ``Task`` pairs an archive source with
a correlator: it pulls files out of the source in listing order and hands
each one to the correlator, then flushes the correlator at the end.
"""

import gzip
import logging
import tarfile
import zlib
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Optional, Tuple

from snaplog_etl.errors import ArchiveReadError, EndOfArchive, UnknownSuffixError

__all__ = [
    'TarArchiveSource',
    'DirectorySource',
    'open_source',
    'Task',
    'TaskResult',
]

logger = logging.getLogger(__name__)

# Decompression failures that make the rest of an archive unreadable.
_READ_ERRORS = (tarfile.TarError, OSError, EOFError, zlib.error)


def _maybe_gunzip(name: str, data: bytes) -> bytes:
    if name.lower().endswith(".gz"):
        return gzip.decompress(data)
    return data


class TarArchiveSource:
    """Reads test files out of a ``.tar``, ``.tgz`` or ``.tar.gz`` archive.

    Only regular files are returned; directories and links are skipped.
    Members ending in ``.gz`` are returned gunzipped, under their original
    name.

    Parameters
    ----------
    path : Path or str
        Archive on disk.

    Raises
    ------
    ArchiveReadError
        If the archive cannot be opened.
    """

    def __init__(self, path):
        self.path = Path(path)
        try:
            self._tar = tarfile.open(self.path, mode="r:*")
        except _READ_ERRORS as e:
            raise ArchiveReadError(f"Cannot open archive {self.path}: {e}") from e

    def next_file(self) -> Tuple[str, bytes]:
        """Return ``(name, data)`` for the next regular file.

        Raises
        ------
        EndOfArchive
            When no files remain.
        ArchiveReadError
            If the archive or a member is corrupt.
        """
        try:
            while True:
                member = self._tar.next()
                if member is None:
                    raise EndOfArchive(str(self.path))
                if not member.isreg():
                    continue
                fileobj = self._tar.extractfile(member)
                if fileobj is None:
                    continue
                with fileobj:
                    data = fileobj.read()
                return member.name, _maybe_gunzip(member.name, data)
        except _READ_ERRORS as e:
            raise ArchiveReadError(f"Error reading {self.path}: {e}") from e

    def close(self):
        self._tar.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


class DirectorySource:
    """Reads test files from an unpacked archive directory.

    Files are returned in sorted relative-path order, which matches the
    order the archiver writes them in.
    """

    def __init__(self, path):
        self.path = Path(path)
        if not self.path.is_dir():
            raise ArchiveReadError(f"Not a directory: {self.path}")
        self._files: Iterator[Path] = iter(
            sorted(p for p in self.path.rglob("*") if p.is_file())
        )

    def next_file(self) -> Tuple[str, bytes]:
        try:
            path = next(self._files)
        except StopIteration:
            raise EndOfArchive(str(self.path)) from None
        name = path.relative_to(self.path).as_posix()
        try:
            return name, _maybe_gunzip(name, path.read_bytes())
        except _READ_ERRORS as e:
            raise ArchiveReadError(f"Error reading {path}: {e}") from e

    def close(self):
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


def open_source(path):
    """Open an archive file or an unpacked directory as a source."""
    path = Path(path)
    if path.is_dir():
        return DirectorySource(path)
    return TarArchiveSource(path)


@dataclass
class TaskResult:
    """Outcome of processing one archive."""
    task_filename: str
    files: int = 0
    rows: int = 0
    errors: int = 0
    aborted: bool = False
    error: Optional[str] = None


class Task:
    """One archive's worth of work: a source feeding a correlator.

    Parameters
    ----------
    source : TarArchiveSource or DirectorySource
        Anything with ``next_file() -> (name, data)``.
    correlator : TestCorrelator
        Owned by this task for its whole run.
    task_filename : str, optional
        Name recorded in every row. Defaults to the source path's name.
    """

    def __init__(self, source, correlator, task_filename: Optional[str] = None):
        self.source = source
        self.correlator = correlator
        if task_filename is None:
            task_filename = Path(getattr(source, "path", "")).name
        self.task_filename = task_filename

    def process_all_tests(self) -> TaskResult:
        """Feed every file in the source to the correlator.

        A file with an unknown suffix is counted and skipped. A read error
        aborts the rest of the archive; files already buffered in the
        correlator are still flushed.
        """
        result = TaskResult(self.task_filename)
        while True:
            try:
                name, data = self.source.next_file()
            except EndOfArchive:
                break
            except ArchiveReadError as e:
                logger.error("Aborting %s after %d files: %s", self.task_filename, result.files, e)
                self.correlator.metrics.count_error(self.correlator.table, "archive read")
                result.aborted = True
                result.error = str(e)
                break

            result.files += 1
            try:
                self.correlator.parse_and_insert(self.task_filename, name, data)
            except UnknownSuffixError as e:
                logger.warning("%s: %s", self.task_filename, e)
                result.errors += 1

        self.correlator.flush(self.task_filename)
        result.rows = self.correlator.rows_emitted
        result.errors += len(self.correlator.rejections)
        logger.info("Task %s: %d files, %d rows, %d errors%s",
                    self.task_filename, result.files, result.rows, result.errors,
                    " (aborted)" if result.aborted else "")
        return result
