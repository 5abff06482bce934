"""NDT test filename grammar.

Every file in an NDT archive is named after the moment its test started::

    [yyyy/mm/dd/]yyyymmddThh:mm:ss.fffffffffZ_<address>.<suffix>[.gz]

All files belonging to one test share the ``time`` token, which is how the
correlator groups them.
"""

import re
from dataclasses import dataclass
from datetime import datetime, timezone

from snaplog_etl.errors import FilenameError

__all__ = ['TestInfo', 'parse_test_filename', 'same_logical_file']

_DATE_DIR = r"(?P<dir>\d{4}/\d{2}/\d{2}/)?"
_DATE = r"(?P<date>\d{8})"
_TIME = r"(?P<time>[012]\d:[0-6]\d:\d{2}\.\d{1,10})"
_ADDRESS = r"(?P<address>.*)"
_SUFFIX = r"(?P<suffix>[a-z2].*)"

# The .gz form is tried first so the suffix group never swallows ".gz".
_GZ_PATTERN = re.compile(
    "^" + _DATE_DIR + _DATE + "T" + _TIME + "Z_" + _ADDRESS + r"\." + _SUFFIX + r"\.gz$"
)
_PLAIN_PATTERN = re.compile(
    "^" + _DATE_DIR + _DATE + "T" + _TIME + "Z_" + _ADDRESS + r"\." + _SUFFIX + "$"
)

_DATE_TOKEN = re.compile(_DATE)
_TIME_TOKEN = re.compile("T" + _TIME + "Z_")
_SUFFIX_TOKEN = re.compile(r"\." + _SUFFIX + "$")


@dataclass(frozen=True)
class TestInfo:
    """Fields parsed from a valid test filename."""
    __test__ = False  # keep pytest from collecting this class

    date_dir: str
    date: str
    time: str
    address: str
    suffix: str
    compressed: bool
    timestamp: datetime


def _parse_timestamp(date: str, time: str) -> datetime:
    whole, _, fraction = time.partition(".")
    # datetime has microsecond resolution; extra digits are truncated.
    micros = int((fraction + "000000")[:6])
    parsed = datetime.strptime(date + whole, "%Y%m%d%H:%M:%S")
    return parsed.replace(microsecond=micros, tzinfo=timezone.utc)


def parse_test_filename(path: str) -> TestInfo:
    """Parse an NDT test filename.

    Parameters
    ----------
    path : str
        Filename as it appears in the archive, optionally with its leading
        date directory.

    Returns
    -------
    TestInfo

    Raises
    ------
    FilenameError
        If the name does not match. The message names the first token
        that is missing.

    Examples
    --------
    >>> info = parse_test_filename("20170509T13:45:13.590210000Z_eb.measurementlab.net:44160.s2c_snaplog.gz")
    >>> info.suffix, info.compressed
    ('s2c_snaplog', True)
    """
    match = _GZ_PATTERN.match(path)
    compressed = match is not None
    if match is None:
        match = _PLAIN_PATTERN.match(path)

    if match is None:
        if not _DATE_TOKEN.search(path):
            raise FilenameError(f"Path should contain yyyymmddT: {path}")
        if not _TIME_TOKEN.search(path):
            raise FilenameError(f"Path should contain Thh:mm:ss.ff...Z_: {path}")
        if not _SUFFIX_TOKEN.search(path):
            raise FilenameError(f"Path should end in \\.[a-z2].*: {path}")
        raise FilenameError(f"Invalid test path: {path}")

    try:
        timestamp = _parse_timestamp(match.group("date"), match.group("time"))
    except ValueError as e:
        raise FilenameError(f"Invalid test path: {path} ({e})") from e

    return TestInfo(
        date_dir=match.group("dir") or "",
        date=match.group("date"),
        time=match.group("time"),
        address=match.group("address"),
        suffix=match.group("suffix"),
        compressed=compressed,
        timestamp=timestamp,
    )


def same_logical_file(a: str, b: str) -> bool:
    """True if ``a`` and ``b`` differ at most by a trailing ``.gz``."""
    return a.removesuffix(".gz") == b.removesuffix(".gz")
