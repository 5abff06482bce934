import pytest

from snaplog_etl.parser.fixups import fix_values
from snaplog_etl.web100 import ValueMap

pytestmark = pytest.mark.unit


def make_row(snap=None, log_spec=None, conn_spec=None):
    row = ValueMap()
    entry = row.get_map(["web100_log_entry"])
    entry["connection_spec"] = ValueMap(log_spec or {})
    entry["snap"] = ValueMap(snap or {})
    row["connection_spec"] = ValueMap(conn_spec or {})
    return row


def test_snap_addresses_replace_log_header():
    row = make_row(
        snap={"LocalAddress": "10.0.0.9", "RemAddress": "192.0.2.7", "LocalAddressType": 1},
        log_spec={"local_ip": "10.0.0.1", "remote_ip": "192.0.2.1", "local_af": 2},
    )
    fix_values(row)
    spec = row["web100_log_entry"]["connection_spec"]

    assert spec == {"local_ip": "10.0.0.9", "remote_ip": "192.0.2.7", "local_af": 1}


def test_missing_snap_values_keep_log_header():
    row = make_row(log_spec={"local_ip": "10.0.0.1", "remote_ip": "192.0.2.1", "local_af": 2})
    fix_values(row)
    assert row["web100_log_entry"]["connection_spec"]["local_ip"] == "10.0.0.1"


def test_backfills_unset_server_and_client():
    row = make_row(snap={"LocalAddress": "10.0.0.9", "RemAddress": "192.0.2.7",
                         "LocalAddressType": 1})
    fix_values(row)

    assert row["connection_spec"] == {
        "server_ip": "10.0.0.9",
        "server_af": 1,
        "client_ip": "192.0.2.7",
        # client_af comes from local_af, not a remote address type
        "client_af": 1,
    }


def test_meta_values_are_not_overwritten():
    row = make_row(
        snap={"LocalAddress": "10.0.0.9", "RemAddress": "192.0.2.7", "LocalAddressType": 1},
        conn_spec={"server_ip": "10.0.0.1", "server_af": 2, "client_ip": "2001:db8::1",
                   "client_af": 10},
    )
    fix_values(row)

    assert row["connection_spec"] == {"server_ip": "10.0.0.1", "server_af": 2,
                                      "client_ip": "2001:db8::1", "client_af": 10}


def test_start_timestamp_folded_to_microseconds():
    row = make_row(snap={"StartTimeStamp": 1494337513, "StartTimeUsec": 590210})
    fix_values(row)
    assert row["web100_log_entry"]["snap"]["StartTimeStamp"] == 1494337513590210


def test_start_timestamp_without_usec():
    row = make_row(snap={"StartTimeStamp": 1494337513})
    fix_values(row)
    assert row["web100_log_entry"]["snap"]["StartTimeStamp"] == 1494337513000000


def test_no_start_timestamp_is_noop():
    row = make_row(snap={"CurCwnd": 10})
    fix_values(row)
    assert row["web100_log_entry"]["snap"] == {"CurCwnd": 10}
