"""Tests for the calibration parameter codec and tables."""

import pytest

from kelly_ets_mcp.models.controller import ControllerModel
from kelly_ets_mcp.protocol.commands import DATA_BUFFER_SIZE
from kelly_ets_mcp.models.parameters import (
    ParamSize,
    ParamType,
    SafetyLevel,
    find_parameter,
    get_parameters,
    read_param,
    write_param,
)


def test_read_bit():
    data = bytearray(4)
    data[2] = 0b0000_0100
    assert read_param(data, 2, ParamSize.BIT, 2, ParamType.UNSIGNED) == "1"
    assert read_param(data, 2, ParamSize.BIT, 1, ParamType.UNSIGNED) == "0"


def test_write_bit_leaves_other_bits():
    data = bytearray([0b1010_0000])
    assert write_param(data, 0, ParamSize.BIT, 0, ParamType.UNSIGNED, "1")
    assert data[0] == 0b1010_0001
    assert write_param(data, 0, ParamSize.BIT, 5, ParamType.UNSIGNED, "0")
    assert data[0] == 0b1000_0001


def test_write_bit_rejects_other_text():
    data = bytearray(1)
    assert not write_param(data, 0, ParamSize.BIT, 0, ParamType.UNSIGNED, "2")
    assert data[0] == 0


def test_byte_roundtrip():
    data = bytearray(4)
    assert write_param(data, 1, ParamSize.BYTE, 0, ParamType.UNSIGNED, "200")
    assert data[1] == 200
    assert read_param(data, 1, ParamSize.BYTE, 0, ParamType.UNSIGNED) == "200"


def test_word_is_big_endian():
    data = bytearray(4)
    write_param(data, 0, ParamSize.WORD, 1, ParamType.UNSIGNED, "6000")
    assert data[:2] == b"\x17\x70"
    assert read_param(data, 0, ParamSize.WORD, 1, ParamType.UNSIGNED) == "6000"


def test_unsigned_out_of_range_raises():
    data = bytearray(4)
    with pytest.raises(ValueError):
        write_param(data, 0, ParamSize.BYTE, 0, ParamType.UNSIGNED, "256")
    with pytest.raises(ValueError):
        write_param(data, 0, ParamSize.WORD, 1, ParamType.UNSIGNED, "-1")


def test_unsigned_non_integer_raises():
    with pytest.raises(ValueError):
        write_param(bytearray(1), 0, ParamSize.BYTE, 0, ParamType.UNSIGNED, "abc")


def test_hex_lowercase():
    data = bytearray(b"\x01\xAB\x00\xFF")
    assert read_param(data, 0, ParamSize.WORD, 3, ParamType.HEX) == "01ab00ff"


def test_hex_write_length_checked():
    data = bytearray(2)
    assert not write_param(data, 0, ParamSize.WORD, 1, ParamType.HEX, "abc")
    assert not write_param(data, 0, ParamSize.WORD, 1, ParamType.HEX, "zz00")
    assert data == bytearray(2)
    assert write_param(data, 0, ParamSize.WORD, 1, ParamType.HEX, "BEEF")
    assert data == b"\xBE\xEF"


def test_ascii_roundtrip():
    data = bytearray(8)
    assert write_param(data, 0, ParamSize.WORD, 3, ParamType.ASCII, "Bike")
    assert read_param(data, 0, ParamSize.WORD, 3, ParamType.ASCII) == "Bike"


def test_ascii_wrong_length():
    data = bytearray(8)
    assert not write_param(data, 0, ParamSize.WORD, 3, ParamType.ASCII, "Bicycle")
    assert data == bytearray(8)


def test_signed_roundtrip():
    data = bytearray(1)
    assert write_param(data, 0, ParamSize.BYTE, 0, ParamType.SIGNED, "-5")
    assert data[0] == 0xFB
    assert read_param(data, 0, ParamSize.BYTE, 0, ParamType.SIGNED) == "-5"


def test_signed_range():
    with pytest.raises(ValueError):
        write_param(bytearray(1), 0, ParamSize.BYTE, 0, ParamType.SIGNED, "128")


@pytest.mark.parametrize(
    "size, position, type, value",
    [
        (ParamSize.BIT, 3, ParamType.UNSIGNED, "1"),
        (ParamSize.BIT, 3, ParamType.UNSIGNED, "0"),
        (ParamSize.BIT, 0, ParamType.HEX, "a5"),
        (ParamSize.BIT, 0, ParamType.ASCII, "K"),
        (ParamSize.BIT, 0, ParamType.SIGNED, "-7"),
        (ParamSize.BYTE, 0, ParamType.UNSIGNED, "200"),
        (ParamSize.BYTE, 0, ParamType.HEX, "0f"),
        (ParamSize.BYTE, 0, ParamType.ASCII, "Z"),
        (ParamSize.BYTE, 0, ParamType.SIGNED, "-128"),
        (ParamSize.BYTE, 0, ParamType.SIGNED, "127"),
        (ParamSize.WORD, 1, ParamType.UNSIGNED, "65535"),
        (ParamSize.WORD, 3, ParamType.UNSIGNED, "305419896"),
        (ParamSize.WORD, 3, ParamType.HEX, "deadbeef"),
        (ParamSize.WORD, 7, ParamType.ASCII, "KLS7218S"),
        (ParamSize.WORD, 1, ParamType.SIGNED, "-1"),
    ],
)
def test_read_returns_written_value(size, position, type, value):
    data = bytearray(8)
    assert write_param(data, 0, size, position, type, value)
    assert read_param(data, 0, size, position, type) == value


@pytest.mark.parametrize(
    "size, position, type, value",
    [
        (ParamSize.BIT, 2, ParamType.UNSIGNED, "2"),
        (ParamSize.BIT, 2, ParamType.UNSIGNED, ""),
        (ParamSize.BYTE, 0, ParamType.HEX, "f"),
        (ParamSize.BYTE, 0, ParamType.HEX, "g0"),
        (ParamSize.WORD, 1, ParamType.HEX, "beef00"),
        (ParamSize.BYTE, 0, ParamType.ASCII, "\u03a9"),
        (ParamSize.WORD, 3, ParamType.ASCII, "Bik"),
    ],
)
def test_rejected_write_leaves_image_untouched(size, position, type, value):
    data = bytearray(8)
    assert not write_param(data, 0, size, position, type, value)
    assert data == bytearray(8)

def test_kbls_0109_extends_0106():
    older = get_parameters(ControllerModel.KBLS_0106)
    newer = get_parameters(ControllerModel.KBLS_0109)
    assert len(newer) > len(older)
    assert newer[: len(older)] == older


def test_parameters_fit_image():
    for param in get_parameters(ControllerModel.KBLS_0109):
        length = param.position + 1 if param.size == ParamSize.WORD else 1
        assert param.offset + length <= DATA_BUFFER_SIZE
        if param.size == ParamSize.BIT:
            assert 0 <= param.position <= 7


def test_find_parameter_ignores_case():
    param = find_parameter(ControllerModel.KBLS_0106, "tps dead low")
    assert param is not None
    assert param.offset == 96


def test_find_parameter_model_specific():
    assert find_parameter(ControllerModel.KBLS_0106, "High Temp Cut") is None
    assert find_parameter(ControllerModel.KBLS_0109, "High Temp Cut") is not None


def test_read_only_parameters_not_editable():
    for param in get_parameters(ControllerModel.KBLS_0109):
        if param.safety == SafetyLevel.READ_ONLY:
            assert not param.editable


def test_parameter_page():
    param = find_parameter(ControllerModel.KBLS_0109, "Motor Poles")
    assert param.page == 2
