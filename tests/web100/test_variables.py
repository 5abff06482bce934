import pytest

from snaplog_etl.web100 import FormatError, VariableSchema, VarType

pytestmark = pytest.mark.unit


SIMPLE = """\
web100_vars 2.5.27
# name    type  offset  length
LocalAddress   9   8   17
CurCwnd        3   25  4
Duration       7   29  8
"""


class TestParse:

    def test_marker_version_and_order(self):
        schema = VariableSchema.parse(SIMPLE)

        assert schema.version == "2.5.27"
        assert [d.name for d in schema] == ["LocalAddress", "CurCwnd", "Duration"]
        assert schema.descriptors[1].type_code == VarType.COUNTER32
        assert schema.descriptors[1].offset == 25

    def test_missing_marker_line_fails(self):
        with pytest.raises(FormatError, match="web100_vars"):
            VariableSchema.parse("CurCwnd 3 25 4\n")

    def test_empty_text_fails(self):
        with pytest.raises(FormatError, match="Empty schema"):
            VariableSchema.parse("\n\n")

    def test_blank_and_comment_lines_skipped(self):
        schema = VariableSchema.parse("\nweb100_vars\n\n# c\nCurCwnd 3 8 4\n")
        assert len(schema) == 1
        assert schema.version == ""

    @pytest.mark.parametrize("line, message", [
        ("CurCwnd 3 8", "tokens"),
        ("CurCwnd x 8 4", "type is not a number"),
        ("CurCwnd 99 8 4", "unknown type code"),
        ("CurCwnd 3 -8 4", "negative"),
        ("CurCwnd 3 8 8", "length must be 4"),
        ("CurCwnd= 3 8 4", "bad variable name"),
    ])
    def test_bad_descriptor_lines(self, line, message):
        with pytest.raises(FormatError, match=message):
            VariableSchema.parse(f"web100_vars\n{line}\n")

    def test_sentinel_accepts_any_length(self):
        schema = VariableSchema.parse("web100_vars\n_pad 13 8 3\n")
        assert schema.descriptors[0].length == 3


class TestLegacyNames:

    def test_legacy_tag_sets_effective_name(self):
        schema = VariableSchema.parse("web100_vars\nRcvbuf=X_Rcvbuf 4 8 4\n")
        desc = schema.descriptors[0]

        assert desc.name == "Rcvbuf"
        assert desc.legacy_name == "X_Rcvbuf"
        assert desc.effective_name == "X_Rcvbuf"
        assert desc.is_legacy

    @pytest.mark.parametrize("text", [
        "web100_vars\nX_Rcvbuf 4 8 4\nRcvbuf=X_Rcvbuf 4 12 4\n",
        "web100_vars\nRcvbuf=X_Rcvbuf 4 12 4\nX_Rcvbuf 4 8 4\n",
    ])
    def test_legacy_dominates_canonical_in_either_order(self, text):
        schema = VariableSchema.parse(text)
        resolved = schema.resolved()

        assert len(resolved) == 1
        assert resolved[0].offset == 12
        assert len(schema.descriptors) == 2

    def test_later_canonical_line_wins(self):
        schema = VariableSchema.parse("web100_vars\nCurCwnd 3 8 4\nCurCwnd 3 12 4\n")
        assert [d.offset for d in schema.resolved()] == [12]


class TestBundledSchema:

    def test_load_default(self, schema):
        names = {d.effective_name for d in schema}

        assert {"LocalAddress", "RemAddress", "LocalAddressType",
                "StartTimeStamp", "StartTimeUsec", "CurCwnd"} <= names
        assert "X_Rcvbuf" in names and "Rcvbuf" not in names

    def test_layout_fits_record(self, schema):
        schema.check_layout(506)
        with pytest.raises(FormatError, match="exceeds record length"):
            schema.check_layout(400)

    def test_load_from_path(self, tmp_path):
        path = tmp_path / "vars.txt"
        path.write_text(SIMPLE)
        assert len(VariableSchema.load(path)) == 3
