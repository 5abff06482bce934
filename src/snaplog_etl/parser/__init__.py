"""NDT test-file parsing.

- filename: test filename grammar
- meta: ``.meta`` sidecar decoding
- fixups: post-decode row fixups
- correlator: per-task grouping of test files into rows
"""

from snaplog_etl.parser.filename import TestInfo, parse_test_filename
from snaplog_etl.parser.meta import MetaRecord, parse_meta
from snaplog_etl.parser.fixups import fix_values
from snaplog_etl.parser.correlator import (
    TestCorrelator,
    FileRecord,
    TestContext,
    Rejection,
    CLIENT_TO_SERVER,
    SERVER_TO_CLIENT,
)

__all__ = [
    "TestInfo",
    "parse_test_filename",
    "MetaRecord",
    "parse_meta",
    "fix_values",
    "TestCorrelator",
    "FileRecord",
    "TestContext",
    "Rejection",
    "CLIENT_TO_SERVER",
    "SERVER_TO_CLIENT",
]
