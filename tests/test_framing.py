"""Tests for response framing, strict parsing and command encoding."""

import pytest

from onstep_drivers.protocol.framing import (
    CMD_MAX_LEN,
    RB_MAX_LEN,
    encode_command,
    format_sexagesimal,
    frame_response,
    parse_float,
    parse_int,
    parse_sexagesimal,
)
from onstep_drivers.utils.exceptions import ProtocolError


def test_frame_terminated_reply():
    """Payload is the text before '#', byte count includes the terminator."""
    framed = frame_response(b"On-Step#")
    assert framed.payload == "On-Step"
    assert framed.byte_count == 8
    assert framed.terminated
    assert not framed.overflow


def test_frame_stops_at_first_terminator():
    framed = frame_response(b"12#34#")
    assert framed.payload == "12"


def test_frame_is_idempotent():
    """Re-framing a payload plus terminator gives the same payload."""
    for payload in ("", "0", "i,OPEN", "+045*30", "12.5"):
        first = frame_response(payload.encode() + b"#")
        second = frame_response(first.payload.encode() + b"#")
        assert first.payload == second.payload == payload


def test_frame_short_read_without_terminator():
    framed = frame_response(b"1")
    assert framed.payload == "1"
    assert framed.byte_count == 1
    assert not framed.terminated
    assert not framed.overflow


def test_frame_overflow_truncates_to_63():
    """A full buffer with no terminator is cut to RB_MAX_LEN - 1 and flagged."""
    framed = frame_response(b"A" * RB_MAX_LEN)
    assert len(framed.payload) == RB_MAX_LEN - 1
    assert framed.overflow
    assert framed.byte_count == RB_MAX_LEN


def test_frame_never_exceeds_buffer():
    framed = frame_response(b"B" * 500)
    assert framed.byte_count == RB_MAX_LEN
    assert len(framed.payload) == 63


def test_parse_int_accepts_signed_integers():
    assert parse_int("42") == 42
    assert parse_int("-7") == -7
    assert parse_int("+3") == 3
    assert parse_int(" 10 ") == 10


@pytest.mark.parametrize("text", ["", "ERR", "12abc", "4.5", "N/A", "0x10"])
def test_parse_int_rejects_garbage(text):
    assert parse_int(text) is None


def test_parse_float_accepts_decimals():
    assert parse_float("21.5") == 21.5
    assert parse_float("-0.3") == -0.3
    assert parse_float("1013") == 1013.0
    assert parse_float("1e3") == 1000.0


@pytest.mark.parametrize("text", ["nan", "inf", "-inf", "N/A", "ERR", "12abc", "", "1.2.3"])
def test_parse_float_rejects_non_finite_and_garbage(text):
    assert parse_float(text) is None


@pytest.mark.parametrize("value", [-999.99999, -1.5, 0.0, 0.00001, 12.34567, 999.99999])
def test_temperature_coefficient_format_round_trip(value):
    """Values written with %+3.5f parse back within 1e-5."""
    assert parse_float(f"{value:+3.5f}") == pytest.approx(value, abs=1e-5)


def test_encode_plain_command():
    assert encode_command(":GVP#") == b":GVP#"


def test_encode_parameterized_commands():
    assert encode_command(":SH{0:.0f}#", 21) == b":SH21#"
    assert encode_command(":FC{0:+3.5f}#", 1.5) == b":FC+1.50000#"
    assert encode_command(":FS{0:06d}#", 2500) == b":FS002500#"


@pytest.mark.parametrize("command", ["GVP#", ":GVP", ":A#B#", ":" + "A" * CMD_MAX_LEN + "#", ":FGé#"])
def test_encode_rejects_malformed_commands(command):
    with pytest.raises(ProtocolError):
        encode_command(command)


def test_encode_rejects_missing_parameters():
    with pytest.raises(ProtocolError):
        encode_command(":SH{0:.0f}#", "warm")


def test_parse_sexagesimal_forms():
    assert parse_sexagesimal("+045*30") == pytest.approx(45.5)
    assert parse_sexagesimal("045:30:00") == pytest.approx(45.5)
    assert parse_sexagesimal("-010*15:36") == pytest.approx(-(10 + 15 / 60 + 36 / 3600))
    assert parse_sexagesimal("+000*00") == 0.0


@pytest.mark.parametrize("text", ["", "abc", "045*75", "045:30:61", "45.5"])
def test_parse_sexagesimal_rejects_invalid(text):
    assert parse_sexagesimal(text) is None


def test_format_sexagesimal():
    assert format_sexagesimal(45.5) == "045:30:00"
    assert format_sexagesimal(-10.25) == "-010:15:00"
    assert format_sexagesimal(0) == "000:00:00"


def test_sexagesimal_round_trip_to_the_second():
    angle = 123.456
    assert parse_sexagesimal(format_sexagesimal(angle)) == pytest.approx(angle, abs=1 / 3600)
