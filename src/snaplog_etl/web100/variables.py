"""Variable-definition schema for web100 snapshot records.

The schema is a line-oriented text table. The first non-empty line starts
with the marker token ``web100_vars``; anything after the marker is the
schema version. Every other line describes one variable::

    web100_vars 2.5.27
    # name            type  offset  length
    LocalAddress       2     8       4
    CurCwnd            3     60      4
    CurCwndV2=CurCwnd  3     64      4

A name written as ``canonical=legacy`` is legacy-tagged: values are stored
under the legacy name, and a legacy-tagged descriptor dominates a canonical
descriptor with the same effective name.
"""

import logging
from dataclasses import dataclass
from importlib import resources
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

from snaplog_etl.web100.codec import WIDTHS, VarType
from snaplog_etl.web100.errors import FormatError

__all__ = ['FieldDescriptor', 'VariableSchema', 'SCHEMA_MARKER', 'DEFAULT_SCHEMA_ASSET']

logger = logging.getLogger(__name__)

SCHEMA_MARKER = "web100_vars"
DEFAULT_SCHEMA_ASSET = "tcp-kis.txt"


@dataclass(frozen=True)
class FieldDescriptor:
    """One variable in a snapshot record."""
    name: str
    type_code: VarType
    offset: int
    length: int
    legacy_name: Optional[str] = None

    @property
    def effective_name(self) -> str:
        return self.legacy_name or self.name

    @property
    def is_legacy(self) -> bool:
        return self.legacy_name is not None


def _parse_int(token: str, what: str, lineno: int) -> int:
    try:
        value = int(token, 10)
    except ValueError:
        raise FormatError(f"line {lineno}: {what} is not a number: {token!r}") from None
    if value < 0:
        raise FormatError(f"line {lineno}: {what} is negative: {value}")
    return value


def _parse_descriptor(line: str, lineno: int) -> FieldDescriptor:
    tokens = line.split()
    if len(tokens) != 4:
        raise FormatError(
            f"line {lineno}: expected 'name type offset length', got {len(tokens)} tokens"
        )
    name_token, type_token, offset_token, length_token = tokens

    name, sep, legacy = name_token.partition("=")
    if not name or (sep and not legacy):
        raise FormatError(f"line {lineno}: bad variable name {name_token!r}")

    type_number = _parse_int(type_token, "type", lineno)
    try:
        type_code = VarType(type_number)
    except ValueError:
        raise FormatError(f"line {lineno}: unknown type code {type_number}") from None

    offset = _parse_int(offset_token, "offset", lineno)
    length = _parse_int(length_token, "length", lineno)

    width = WIDTHS[type_code]
    if width is not None and length != width:
        raise FormatError(
            f"line {lineno}: {name} is {type_code.name}, length must be {width}, got {length}"
        )

    return FieldDescriptor(name, type_code, offset, length, legacy or None)


class VariableSchema:
    """Ordered, immutable set of field descriptors.

    Built once per process and shared read-only between worker threads.

    Parameters
    ----------
    descriptors : iterable of FieldDescriptor
        Descriptors in file order.
    version : str, optional
        Version text from the marker line.
    """

    def __init__(self, descriptors: Iterable[FieldDescriptor], version: str = ""):
        self._descriptors: Tuple[FieldDescriptor, ...] = tuple(descriptors)
        self.version = version
        self._resolved = self._resolve(self._descriptors)

    @staticmethod
    def _resolve(descriptors: Tuple[FieldDescriptor, ...]) -> Tuple[FieldDescriptor, ...]:
        # Legacy-tagged beats canonical; otherwise the later line wins.
        winners: Dict[str, FieldDescriptor] = {}
        order: List[str] = []
        for desc in descriptors:
            key = desc.effective_name
            current = winners.get(key)
            if current is None:
                order.append(key)
                winners[key] = desc
            elif desc.is_legacy or not current.is_legacy:
                winners[key] = desc
        return tuple(winners[key] for key in order)

    @classmethod
    def parse(cls, text: str) -> "VariableSchema":
        """Parse schema text.

        Raises
        ------
        FormatError
            If the marker line is missing or any descriptor line is invalid.
            No partial schema is ever returned.
        """
        version = None
        descriptors = []
        for lineno, raw in enumerate(text.splitlines(), start=1):
            line = raw.strip()
            if not line:
                continue
            if version is None:
                tokens = line.split()
                if tokens[0] != SCHEMA_MARKER:
                    raise FormatError(
                        f"line {lineno}: schema must start with '{SCHEMA_MARKER}', got {tokens[0]!r}"
                    )
                version = " ".join(tokens[1:])
                continue
            if line.startswith("#"):
                continue
            descriptors.append(_parse_descriptor(line, lineno))

        if version is None:
            raise FormatError(f"Empty schema: missing '{SCHEMA_MARKER}' marker line")
        return cls(descriptors, version)

    @classmethod
    def load(cls, path) -> "VariableSchema":
        """Parse the schema file at ``path``."""
        path = Path(path)
        schema = cls.parse(path.read_text(encoding="ascii"))
        logger.info("Loaded variable schema %s (version %s, %d variables)",
                    path, schema.version or "-", len(schema))
        return schema

    @classmethod
    def load_default(cls) -> "VariableSchema":
        """Parse the schema asset bundled with the package."""
        text = resources.files("snaplog_etl.web100").joinpath(DEFAULT_SCHEMA_ASSET).read_text(
            encoding="ascii"
        )
        return cls.parse(text)

    @property
    def descriptors(self) -> Tuple[FieldDescriptor, ...]:
        """All descriptors, in file order, duplicates included."""
        return self._descriptors

    def resolved(self) -> Tuple[FieldDescriptor, ...]:
        """One dominant descriptor per effective name."""
        return self._resolved

    def check_layout(self, record_length: int) -> None:
        """Verify every descriptor fits a record of ``record_length`` bytes."""
        for desc in self._descriptors:
            if desc.offset + desc.length > record_length:
                raise FormatError(
                    f"{desc.name} at [{desc.offset}, {desc.offset + desc.length}) "
                    f"exceeds record length {record_length}"
                )

    def __len__(self) -> int:
        return len(self._resolved)

    def __iter__(self):
        return iter(self._resolved)

    def __repr__(self) -> str:
        return f"VariableSchema(version={self.version!r}, variables={len(self)})"
