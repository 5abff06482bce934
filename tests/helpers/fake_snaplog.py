"""Builders for synthetic snapshot logs, meta files and test archives."""

import gzip
import io
import ipaddress
import struct
import tarfile

from snaplog_etl.web100 import VariableSchema, VarType
from snaplog_etl.web100.snaplog import HEADER_STRUCT, MAGIC, RECORD_MARKER, RECORD_PREFIX

LOG_TIME = 1494337513
TEST_DATE = "20170509"
TEST_TIME = "13:45:13.590210000"
TEST_ADDRESS = "eb.measurementlab.net:44160"
SERVER_IP = "10.0.0.1"
CLIENT_IP = "192.168.1.2"

_SIGNED = {VarType.INTEGER, VarType.INTEGER32}


def inet_address(text: str) -> bytes:
    """17-byte INET_ADDRESS: 16 address bytes then a type byte (1 v4, 2 v6)."""
    addr = ipaddress.ip_address(text)
    if addr.version == 4:
        return addr.packed + bytes(12) + b"\x01"
    return addr.packed + b"\x02"


def encode_value(desc, value) -> bytes:
    t = desc.type_code
    if t in _SIGNED:
        return int(value).to_bytes(desc.length, "little", signed=True)
    if t == VarType.OCTET:
        return b"\x01" if value else b"\x00"
    if t == VarType.STR32:
        return value.encode("ascii").ljust(32, b"\x00")[:32]
    if t == VarType.INET_ADDRESS_IPV4:
        return ipaddress.IPv4Address(value).packed
    if t == VarType.INET_ADDRESS_IPV6:
        return ipaddress.IPv6Address(value).packed + b"\x02"
    if t == VarType.INET_ADDRESS:
        return inet_address(value)
    if t == VarType.SENTINEL:
        return bytes(desc.length)
    return int(value).to_bytes(desc.length, "little", signed=False)


def record_length_for(schema: VariableSchema) -> int:
    return max(d.offset + d.length for d in schema.descriptors)


def make_record(schema: VariableSchema, values: dict, sequence: int,
                record_length: int = None, marker: bytes = RECORD_MARKER) -> bytes:
    """One record with ``values`` (keyed by descriptor name) written in."""
    record_length = record_length or record_length_for(schema)
    record = bytearray(record_length)
    RECORD_PREFIX.pack_into(record, 0, marker, sequence)
    by_name = {}
    for desc in schema.descriptors:
        by_name.setdefault(desc.effective_name, desc)
        by_name[desc.name] = desc
    for name, value in values.items():
        desc = by_name[name]
        record[desc.offset:desc.offset + desc.length] = encode_value(desc, value)
    return bytes(record)


def connection_spec_blob(local_ip=SERVER_IP, local_port=3010,
                         remote_ip=CLIENT_IP, remote_port=50000, local_af=2) -> bytes:
    return (ipaddress.IPv4Address(local_ip).packed + struct.pack("<H", local_port)
            + ipaddress.IPv4Address(remote_ip).packed + struct.pack("<H", remote_port)
            + struct.pack("<i", local_af))


def clear_address_type(raw: bytes, offset: int = 25) -> bytes:
    """Zero the type byte of the INET_ADDRESS at record ``offset`` (default
    RemAddress) in the first record, leaving an undecodable address."""
    header_length = HEADER_STRUCT.size + HEADER_STRUCT.unpack_from(raw, 0)[-1]
    corrupt = bytearray(raw)
    corrupt[header_length + offset + 16] = 0
    return bytes(corrupt)


def snap_values(i: int = 0, **overrides) -> dict:
    """Realistic values for the bundled schema's identity and timing fields."""
    values = {
        "LocalAddress": SERVER_IP,
        "RemAddress": CLIENT_IP,
        "LocalAddressType": 1,
        "LocalPort": 3010,
        "RemPort": 50000,
        "StartTimeStamp": LOG_TIME,
        "StartTimeUsec": 590210,
        "Duration": 10_000_000 + i,
        "CurCwnd": 14480 + i,
    }
    values.update(overrides)
    return values


def make_snaplog(snapshots=3, schema: VariableSchema = None, log_time: int = LOG_TIME,
                 record_length: int = None, connection_spec: bytes = None,
                 version: int = 1, field_count: int = None, sequences=None) -> bytes:
    """Build a complete snapshot log.

    Parameters
    ----------
    snapshots : int or list of dict
        Number of records (filled from ``snap_values``) or the value dict of
        each record.
    sequences : list of int, optional
        Sequence counters; defaults to 0, 1, 2, ...
    """
    schema = schema or VariableSchema.load_default()
    record_length = record_length or record_length_for(schema)
    if isinstance(snapshots, int):
        snapshots = [snap_values(i) for i in range(snapshots)]
    if sequences is None:
        sequences = range(len(snapshots))
    if connection_spec is None:
        connection_spec = connection_spec_blob()
    if field_count is None:
        field_count = len(schema.descriptors)

    header = HEADER_STRUCT.pack(MAGIC, version, 0, log_time, field_count,
                                record_length, len(connection_spec))
    records = b"".join(
        make_record(schema, values, seq, record_length)
        for values, seq in zip(snapshots, sequences)
    )
    return header + connection_spec + records


def make_meta(server_ip=SERVER_IP, client_ip=CLIENT_IP, extra_lines=()) -> bytes:
    lines = [
        "date/time: 20170509T13:45:13.590210000Z",
        "c2s_snaplog file: 20170509T13:45:13.590210000Z_eb.measurementlab.net:44160.c2s_snaplog",
        "s2c_snaplog file: 20170509T13:45:13.590210000Z_eb.measurementlab.net:44160.s2c_snaplog",
        f"server IP address: {server_ip}",
        "server hostname: mlab1.sea01.measurement-lab.org",
        "server kernel version: 2.6.32-431.29.2.el6.x86_64",
        f"client IP address: {client_ip}",
        "client hostname: eb.measurementlab.net",
        "client OS name: Linux",
        "client_browser name: ",
        "client_application: ",
        "Summary data: 0,0,0,0",
    ]
    lines.extend(extra_lines)
    return ("\n".join(lines) + "\n").encode("utf-8")


def make_name(suffix: str, time: str = TEST_TIME, date: str = TEST_DATE,
              address: str = TEST_ADDRESS, gz: bool = False,
              date_dir: str = "2017/05/09/") -> str:
    name = f"{date_dir}{date}T{time}Z_{address}.{suffix}"
    return name + ".gz" if gz else name


def make_tar(path, members, compress: bool = True):
    """Write ``members`` (list of (name, bytes)) to a tar archive at ``path``.

    Members whose name ends in ``.gz`` are gzipped before being added.
    """
    mode = "w:gz" if compress else "w"
    with tarfile.open(path, mode) as tar:
        for name, data in members:
            if name.endswith(".gz"):
                data = gzip.compress(data)
            info = tarfile.TarInfo(name)
            info.size = len(data)
            tar.addfile(info, io.BytesIO(data))
    return path


def full_test_members(time: str = TEST_TIME, gz: bool = True, snapshots=3):
    """Meta plus both snaplogs of one test, in archive order."""
    return [
        (make_name("c2s_snaplog", time=time, gz=gz), make_snaplog(snapshots)),
        (make_name("meta", time=time), make_meta()),
        (make_name("s2c_snaplog", time=time, gz=gz), make_snaplog(snapshots)),
    ]
