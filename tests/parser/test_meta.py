import pytest

from snaplog_etl.parser.meta import AF_INET, AF_INET6, parse_meta, placeholder_meta
from snaplog_etl.web100 import ValueMap

from tests.helpers.fake_snaplog import CLIENT_IP, SERVER_IP, make_meta

pytestmark = pytest.mark.unit

META_NAME = "20170509T13:45:13.590210000Z_eb.measurementlab.net:44160.meta"


def test_populates_addresses_and_families():
    meta = parse_meta(META_NAME, make_meta(client_ip="2001:db8::1"))
    spec = ValueMap()

    meta.populate_conn_spec(spec)

    assert spec["server_ip"] == SERVER_IP
    assert spec["server_af"] == AF_INET
    assert spec["client_ip"] == "2001:db8::1"
    assert spec["client_af"] == AF_INET6
    assert spec["server_hostname"] == "mlab1.sea01.measurement-lab.org"
    assert spec["client_hostname"] == "eb.measurementlab.net"
    assert spec["client_os"] == "Linux"


def test_empty_values_not_copied():
    meta = parse_meta(META_NAME, make_meta())
    spec = ValueMap()
    meta.populate_conn_spec(spec)

    assert "client_browser" not in spec
    assert "client_application" not in spec


def test_unparseable_ip_leaves_af_unset():
    meta = parse_meta(META_NAME, make_meta(client_ip="not-an-ip"))
    spec = ValueMap()
    meta.populate_conn_spec(spec)

    assert spec["client_ip"] == "not-an-ip"
    assert "client_af" not in spec
    assert spec["server_af"] == AF_INET


def test_additional_data_uses_dotted_keys():
    meta = parse_meta(META_NAME, make_meta(extra_lines=[
        "* Additional data:",
        "client.os.name: Windows 10",
        "client.browser.name: Firefox",
        "client.application: ndt-js",
        "free text: ignored",
    ]))
    spec = ValueMap()
    meta.populate_conn_spec(spec)

    assert meta.fields["client.os.name"] == "Windows 10"
    assert "free text" not in meta.fields
    assert spec["client_os"] == "Windows 10"
    assert spec["client_browser"] == "Firefox"
    assert spec["client_application"] == "ndt-js"


def test_lines_without_colon_ignored():
    meta = parse_meta(META_NAME, b"just words\nserver IP address: 10.1.1.1\n")
    assert meta.fields == {"server IP address": "10.1.1.1"}


def test_invalid_utf8_replaced():
    meta = parse_meta(META_NAME, b"client hostname: caf\xe9\n")
    assert meta.fields["client hostname"] == "caf\ufffd"


def test_placeholder():
    meta = placeholder_meta()
    spec = ValueMap()
    meta.populate_conn_spec(spec)

    assert meta.is_placeholder
    assert not parse_meta(META_NAME, make_meta()).is_placeholder
    assert spec == {}


def test_client_ip_default_fixture_value():
    meta = parse_meta(META_NAME, make_meta())
    assert meta.fields["client IP address"] == CLIENT_IP
