"""NDT ``.meta`` sidecar files.

The sidecar is plain text written by the NDT server, one ``key: value`` per
line. After a ``* Additional data:`` line, the client-reported keys use a
dotted form (``client.os.name``). Only the connection identity fields are
carried into rows; everything else stays in ``MetaRecord.fields``.
"""

import ipaddress
import logging
from dataclasses import dataclass, field
from typing import Dict, Optional

from snaplog_etl.web100.values import ValueMap

__all__ = ['MetaRecord', 'parse_meta', 'placeholder_meta', 'AF_INET', 'AF_INET6']

logger = logging.getLogger(__name__)

# Linux address family numbers, as reported in connection_spec.*_af.
AF_INET = 2
AF_INET6 = 10

ADDITIONAL_DATA_MARKER = "* Additional data:"

# meta key -> connection_spec field
_STRING_FIELDS = {
    "server hostname": "server_hostname",
    "client hostname": "client_hostname",
    "client OS name": "client_os",
    "client_browser name": "client_browser",
    "client_application": "client_application",
    "client.os.name": "client_os",
    "client.browser.name": "client_browser",
    "client.application": "client_application",
}

# meta key -> (ip field, af field)
_ADDRESS_FIELDS = {
    "server IP address": ("server_ip", "server_af"),
    "client IP address": ("client_ip", "client_af"),
}


def _address_family(text: str) -> Optional[int]:
    try:
        addr = ipaddress.ip_address(text)
    except ValueError:
        return None
    return AF_INET if addr.version == 4 else AF_INET6


@dataclass
class MetaRecord:
    """Decoded meta sidecar.

    A record with an empty ``test_name`` is a placeholder standing in for a
    meta file that never arrived.
    """
    test_name: str = ""
    fields: Dict[str, str] = field(default_factory=dict)

    @property
    def is_placeholder(self) -> bool:
        return not self.test_name

    def populate_conn_spec(self, conn_spec: ValueMap) -> None:
        """Write the recognised meta fields into a row's ``connection_spec``."""
        for key, (ip_name, af_name) in _ADDRESS_FIELDS.items():
            text = self.fields.get(key)
            if not text:
                continue
            conn_spec.set_string(ip_name, text)
            af = _address_family(text)
            if af is not None:
                conn_spec.set_int64(af_name, af)
            else:
                logger.debug("Unparseable address %r in %s", text, self.test_name)

        for key, name in _STRING_FIELDS.items():
            text = self.fields.get(key)
            if text:
                conn_spec.set_string(name, text)


def parse_meta(test_name: str, content: bytes) -> MetaRecord:
    """Decode a meta sidecar.

    Lines without a colon are ignored; later duplicates of a key win.
    """
    text = content.decode("utf-8", errors="replace")
    fields: Dict[str, str] = {}
    extended = False
    for line in text.splitlines():
        if line.startswith(ADDITIONAL_DATA_MARKER):
            extended = True
            continue
        key, sep, value = line.partition(":")
        if not sep:
            continue
        key = key.strip()
        if not key:
            continue
        if extended and " " in key:
            # Extended keys are dotted identifiers; anything else is noise.
            logger.debug("Ignoring extended meta line %r in %s", line, test_name)
            continue
        fields[key] = value.strip()
    return MetaRecord(test_name=test_name, fields=fields)


def placeholder_meta() -> MetaRecord:
    """Empty stand-in used when a test's meta file is missing."""
    return MetaRecord()
