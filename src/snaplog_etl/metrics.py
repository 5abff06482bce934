"""In-process counters for the parsing pipeline.

Counters are write-mostly and shared by every worker thread. Exposition is
left to the caller: the orchestrator logs :meth:`ParserMetrics.snapshot`
when the pipeline stops.
"""

import threading
from collections import Counter
from typing import Dict, Tuple

__all__ = ['ParserMetrics']


class ParserMetrics:
    """Labelled counters for test, anomaly and error accounting.

    **Counters:**

    - ``test_count``: (table, direction, status), one per file outcome,
      e.g. ``("ndt", "c2s", "ok")`` or ``("ndt", "meta", "no tests")``
    - ``funny_tests``: (table, direction, kind), suspicious but accepted
      payloads such as ``"<16KB"``
    - ``error_count``: (table, kind), decode and task level failures
    - ``file_size``: (bucket,) count and byte total of observed payloads

    All methods are thread-safe.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self.test_count: Counter = Counter()
        self.funny_tests: Counter = Counter()
        self.error_count: Counter = Counter()
        self.file_size: Counter = Counter()
        self.file_bytes: Counter = Counter()

    def count_test(self, table: str, direction: str, status: str) -> None:
        with self._lock:
            self.test_count[(table, direction, status)] += 1

    def count_funny(self, table: str, direction: str, kind: str) -> None:
        with self._lock:
            self.funny_tests[(table, direction, kind)] += 1

    def count_error(self, table: str, kind: str) -> None:
        with self._lock:
            self.error_count[(table, kind)] += 1

    def observe_size(self, bucket: str, size: int) -> None:
        with self._lock:
            self.file_size[(bucket,)] += 1
            self.file_bytes[(bucket,)] += size

    def test_total(self, status: str) -> int:
        """Sum of ``test_count`` across tables and directions for ``status``."""
        with self._lock:
            return sum(v for k, v in self.test_count.items() if k[2] == status)

    def snapshot(self) -> Dict[str, Dict[Tuple[str, ...], int]]:
        """Copy of every counter, safe to log or serialize."""
        with self._lock:
            return {
                "test_count": dict(self.test_count),
                "funny_tests": dict(self.funny_tests),
                "error_count": dict(self.error_count),
                "file_size": dict(self.file_size),
                "file_bytes": dict(self.file_bytes),
            }
