import pytest

from snaplog_etl.web100 import (
    BoundsError,
    FormatError,
    SnapshotContinuityWarning,
    SnapshotLog,
    ValueMap,
    VariableSchema,
)
from snaplog_etl.web100.snaplog import HEADER_STRUCT

from tests.helpers.fake_snaplog import (
    CLIENT_IP,
    LOG_TIME,
    SERVER_IP,
    clear_address_type,
    connection_spec_blob,
    make_snaplog,
    snap_values,
)

pytestmark = pytest.mark.unit


class TestParse:

    @pytest.mark.parametrize("count", [0, 1, 5])
    def test_snapshot_count(self, count):
        raw = make_snaplog(count)
        log = SnapshotLog.parse(raw)
        header_length = HEADER_STRUCT.size + len(connection_spec_blob())

        assert log.snapshot_count == (len(raw) - header_length) // 506 == count
        assert len(log) == count
        assert log.log_time == LOG_TIME
        assert log.version == 1

    def test_partial_record_fails(self):
        with pytest.raises(FormatError, match="not a multiple"):
            SnapshotLog.parse(make_snaplog(2) + b"\x00" * 10)

    def test_truncated_header(self):
        with pytest.raises(FormatError, match="truncated"):
            SnapshotLog.parse(b"WEB100SL")

    def test_bad_magic(self):
        raw = b"NOTWEB10" + make_snaplog(1)[8:]
        with pytest.raises(FormatError, match="magic"):
            SnapshotLog.parse(raw)

    def test_unsupported_version(self):
        with pytest.raises(FormatError, match="version"):
            SnapshotLog.parse(make_snaplog(1, version=9))

    def test_zero_fields(self):
        with pytest.raises(FormatError, match="zero fields"):
            SnapshotLog.parse(make_snaplog(1, field_count=0))

    def test_connection_spec_past_end(self):
        raw = make_snaplog(0)
        raw = raw[:HEADER_STRUCT.size]  # declared spec length, no spec bytes
        with pytest.raises(FormatError, match="past end"):
            SnapshotLog.parse(raw)


class TestSnapshots:

    def test_snapshot_out_of_range(self):
        log = SnapshotLog.parse(make_snaplog(2))
        with pytest.raises(BoundsError):
            log.snapshot(2)
        with pytest.raises(BoundsError):
            log.snapshot(-1)

    def test_values_of_last_snapshot(self, schema):
        log = SnapshotLog.parse(make_snaplog(3))
        snap = log.snapshot(2)
        values = ValueMap()

        snap.values(schema, values)

        assert snap.sequence == 2
        assert values["CurCwnd"] == 14482
        assert values["LocalAddress"] == SERVER_IP
        assert values["RemAddress"] == CLIENT_IP
        assert values["LocalAddressType"] == 1
        assert "X_Rcvbuf" in values

    def test_connection_spec_values(self):
        log = SnapshotLog.parse(make_snaplog(1, connection_spec=connection_spec_blob(local_af=10)))
        spec = ValueMap()

        log.snapshot(0).connection_spec_values(spec)

        assert spec == {
            "local_ip": SERVER_IP, "local_port": 3010,
            "remote_ip": CLIENT_IP, "remote_port": 50000, "local_af": 10,
        }

    def test_legacy_descriptor_window_wins(self):
        schema = VariableSchema.parse(
            "web100_vars\nX_Rcvbuf 4 8 4\nRcvbuf=X_Rcvbuf 4 12 4\n"
        )
        record_values = {"X_Rcvbuf": 1111}
        raw = make_snaplog([record_values], schema=schema)
        # Write the canonical window by hand; the legacy window holds 2222.
        raw = bytearray(raw)
        body = len(raw) - 16
        raw[body + 8:body + 12] = (1111).to_bytes(4, "little")
        raw[body + 12:body + 16] = (2222).to_bytes(4, "little")
        values = ValueMap()

        SnapshotLog.parse(bytes(raw)).snapshot(0).values(schema, values)

        assert values == {"X_Rcvbuf": 2222}


class TestContinuity:

    def test_clean_log_passes(self):
        SnapshotLog.parse(make_snaplog(4)).validate_snapshots()

    def test_sequence_drop(self):
        log = SnapshotLog.parse(make_snaplog(4, sequences=[0, 1, 0, 3]))
        with pytest.raises(SnapshotContinuityWarning) as info:
            log.validate_snapshots()
        assert info.value.index == 2

    def test_missing_marker(self):
        raw = bytearray(make_snaplog(3))
        header_length = HEADER_STRUCT.size + len(connection_spec_blob())
        raw[header_length + 506:header_length + 510] = b"JUNK"
        log = SnapshotLog.parse(bytes(raw))

        with pytest.raises(SnapshotContinuityWarning, match="marker") as info:
            log.validate_snapshots()
        assert info.value.index == 1

    def test_values_still_readable_after_warning(self, schema):
        log = SnapshotLog.parse(make_snaplog([snap_values(0), snap_values(1)], sequences=[5, 1]))
        with pytest.raises(SnapshotContinuityWarning):
            log.validate_snapshots()

        values = ValueMap()
        log.snapshot(1).values(schema, values)
        assert values["CurCwnd"] == 14481


class TestFieldFailures:

    def test_undecodable_field_is_skipped(self, schema):
        values = ValueMap()
        snap = SnapshotLog.parse(clear_address_type(make_snaplog(1))).snapshot(0)

        skipped = snap.values(schema, values)

        assert [name for name, _ in skipped] == ["RemAddress"]
        assert isinstance(skipped[0][1], FormatError)
        assert "RemAddress" not in values
        assert values["LocalAddress"] == SERVER_IP
        assert values["CurCwnd"] == 14480

    def test_clean_record_skips_nothing(self, schema):
        snap = SnapshotLog.parse(make_snaplog(1)).snapshot(0)
        assert snap.values(schema, ValueMap()) == []

    def test_window_outside_record_still_fatal(self):
        schema = VariableSchema.parse("web100_vars\nCurCwnd 5 8 4\n")
        log = SnapshotLog.parse(make_snaplog([{"CurCwnd": 1}], schema=schema))
        wide = VariableSchema.parse("web100_vars\nCurCwnd 5 8 4\nDuration 5 10 4\n")

        with pytest.raises(BoundsError):
            log.snapshot(0).values(wide, ValueMap())

    def test_short_connection_spec_keeps_decodable_fields(self):
        log = SnapshotLog.parse(make_snaplog(1, connection_spec=connection_spec_blob()[:6]))
        spec = ValueMap()

        skipped = log.snapshot(0).connection_spec_values(spec)

        assert spec == {"local_ip": SERVER_IP, "local_port": 3010}
        assert {name for name, _ in skipped} == {"remote_ip", "remote_port", "local_af"}
