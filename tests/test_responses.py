"""Tests for identity and node reply parsing."""

from fast_pinball_flasher.models import ProtocolKind
from fast_pinball_flasher.protocol.responses import (
    NodeInfo,
    find_identity_lines,
    is_node_not_found,
    parse_id_response,
    parse_node_record,
    parse_protocol,
    strip_major_zeros,
    strip_version_suffix,
)


class TestParseProtocol:

    def test_exp(self):
        assert parse_protocol("ID:EXP FP-EXP-0091 0.48") is ProtocolKind.EXP

    def test_net_case_insensitive_with_noise(self):
        assert parse_protocol("junk\rID:net FP-CPU-2000 2.28") is ProtocolKind.NET

    def test_comma_after_token(self):
        assert parse_protocol("ID:EXP, FP-EXP-0091 v0.48") is ProtocolKind.EXP

    def test_unknown_token(self):
        assert parse_protocol("ID:XYZ FOO 1.0") is None

    def test_no_marker(self):
        assert parse_protocol("hello") is None
        assert parse_protocol("") is None


class TestParseIdResponse:

    def test_comma_tolerant(self):
        assert parse_id_response("ID:EXP, FP-EXP-0091 v0.48") == ("EXP", "FP-EXP-0091", "v0.48")

    def test_plain(self):
        assert parse_id_response("ID:NET FP-CPU-2000 02.28") == ("NET", "FP-CPU-2000", "02.28")

    def test_too_few_tokens(self):
        assert parse_id_response("ID:EXP FP-EXP-0091") is None

    def test_no_marker(self):
        assert parse_id_response("EXP FP-EXP-0091 0.48") is None


class TestParseNodeRecord:

    def test_extra_fields_preserved(self):
        info = parse_node_record("garbage NN:01,Old,1.0\rNN:03,Node3,2.10,5,6\r")
        assert info == NodeInfo(node_id="03", node_name="Node3", firmware="2.10", extra_fields=["5", "6"])

    def test_uses_last_marker(self):
        info = parse_node_record("NN:00,First,1.00\rNN:01,Second,1.01\r")
        assert info.node_id == "01"
        assert info.node_name == "Second"

    def test_fields_trimmed(self):
        info = parse_node_record("NN: 02 , FP-I/O-3208 , 01.05 \r\n")
        assert (info.node_id, info.node_name, info.firmware) == ("02", "FP-I/O-3208", "01.05")
        assert info.extra_fields == []

    def test_too_few_fields(self):
        assert parse_node_record("NN:03,Node3") is None

    def test_no_marker(self):
        assert parse_node_record("!Node Not Found!") is None


def test_node_not_found_detection() -> None:
    """Empty replies and the controller's not-found text both end enumeration."""
    assert is_node_not_found("!Node Not Found!\r")
    assert is_node_not_found("   ")
    assert not is_node_not_found("NN:00,Node,1.00")


def test_find_identity_lines_in_order() -> None:
    """Only lines starting with the prefix are returned, stripped, in order."""
    text = "!BL2040:02\r\n  ID:EXP A 1.00 \r\nID:NET B 2.00\r\nID:EXP C 3.00\n"
    assert find_identity_lines(text, "ID:EXP") == ["ID:EXP A 1.00", "ID:EXP C 3.00"]


def test_version_post_processing() -> None:
    """Trailing junk and NET major zeros are removed."""
    assert strip_version_suffix("0.48\x00") == "0.48"
    assert strip_version_suffix("0.48abc") == "0.48"
    assert strip_major_zeros("02.28") == "2.28"
    assert strip_major_zeros("00.10") == "0.10"


def test_version_suffix_keeps_only_ascii_digits() -> None:
    """Unicode digits after the version are junk like any other suffix."""
    assert strip_version_suffix("0.48²") == "0.48"
    assert strip_version_suffix("0.48٣") == "0.48"
