"""
Tests for projections of decoded values.

Covers:
- Text from script tables and built-in encodings
- Endianness and signedness applied to integers
- Values/Bit Values labels, pointer bases
- Tile and color conversion
- YAML and JSON documents
"""

import json

import pytest
import yaml

from gameyaml.decoder import decode, decode_entry
from gameyaml.errors import UnsupportedEncoding
from gameyaml.model import Endian, Field, FieldKind, GameData
from gameyaml.projection import (
    color_values, dump_json, dump_yaml, format_number, integer_value, tile_pixels,
    to_document, to_json, to_text,
)


def integer(size='1', **kwargs):
    return Field(kind=FieldKind.INTEGER, size=size, **kwargs)


class TestText:
    """Plain-text projection."""

    def test_script_table(self, game, image):
        assert to_text(decode_entry(image, game, "NAME")) == "A<wait>[07]B"

    def test_explicit_charset(self, game):
        text = Field(kind=FieldKind.SCRIPT, size='3', char_set='ASCII')
        assert to_text(decode(b"abc", text, game)) == "abc"

    def test_utf8_without_game(self):
        text = Field(kind=FieldKind.SCRIPT, size='2', char_set='utf-8')
        assert to_text(decode("é".encode("utf-8"), text)) == "é"

    def test_invalid_bytes_replaced(self):
        text = Field(kind=FieldKind.SCRIPT, size='2', char_set='ASCII')
        assert to_text(decode(b"a\xff", text)) == "a�"

    def test_default_script_not_a_table(self):
        game = GameData(title="T", country="USA", default_script="ASCII")
        text = Field(kind=FieldKind.SCRIPT, size='2')
        assert to_text(decode(b"OK", text, game)) == "OK"

    def test_unsupported_encoding(self):
        text = Field(kind=FieldKind.SCRIPT, size='1', char_set='Shift-JIS')
        with pytest.raises(UnsupportedEncoding, match="Shift-JIS"):
            to_text(decode(b"a", text))

    def test_no_charset_at_all(self):
        with pytest.raises(UnsupportedEncoding):
            to_text(decode(b"a", Field(kind=FieldKind.SCRIPT, size='1')))

    def test_integer_text_uses_base(self, game, image):
        header = decode_entry(image, game, "HEADER")
        assert to_text(header["MAGIC"]) == "0x1234"
        assert to_text(header["COUNT"]) == "2"

    @pytest.mark.parametrize("kind", [FieldKind.STRUCT, FieldKind.TILE, FieldKind.UNDEFINED])
    def test_other_kinds_have_no_text(self, kind):
        fld = Field(kind=kind, size='1') if kind != FieldKind.STRUCT else Field(kind=kind)
        with pytest.raises(TypeError):
            to_text(decode(b"\x00", fld))


class TestIntegers:
    """Endianness and sign applied at projection time."""

    def test_little_endian(self):
        assert integer_value(decode(b"\x01\x02", integer('2'))) == 0x0201

    def test_big_endian(self):
        value = decode(b"\x01\x02", integer('2', endianness=Endian.BIG))
        assert value.payload == 0x0201
        assert integer_value(value) == 0x0102

    def test_signed(self):
        assert integer_value(decode(b"\xff\xff", integer('2', is_signed=True))) == -1
        assert integer_value(decode(b"\x7f", integer('1', is_signed=True))) == 127

    def test_signed_big_endian(self):
        value = decode(b"\xff\xfe", integer('2', is_signed=True, endianness=Endian.BIG))
        assert integer_value(value) == -2

    @pytest.mark.parametrize("number,base,expected", [
        (255, 16, "0xFF"),
        (8, 8, "0o10"),
        (5, 2, "0b101"),
        (-16, 16, "-0x10"),
        (42, 10, "42"),
    ])
    def test_format_number(self, number, base, expected):
        assert format_number(number, base) == expected


class TestDocuments:
    """Structured projections."""

    def test_fixture_entries(self, game, image):
        assert to_document(decode_entry(image, game, "HEADER")) == {"MAGIC": 0x1234, "COUNT": 2}
        assert to_document(decode_entry(image, game, "LEVEL")) == "Hard"
        assert to_document(decode_entry(image, game, "NAME")) == "A<wait>[07]B"
        assert to_document(decode_entry(image, game, "PALETTE")) == [[255, 255, 255]]

    def test_value_without_label_stays_number(self):
        fld = integer(values={0: "Off"})
        assert to_document(decode(b"\x07", fld)) == 7

    def test_bit_values(self):
        fld = Field(kind=FieldKind.BITFIELD, size='1', bit_values=["RUN", "JUMP", "DUCK"])
        assert to_document(decode(b"\x05", fld)) == ["RUN", "DUCK"]

    def test_integer_bit_values(self):
        fld = integer(bit_values=["A", "B"])
        assert to_document(decode(b"\x02", fld)) == ["B"]

    def test_bitfield_without_names(self):
        assert to_document(decode(b"\x05", Field(kind=FieldKind.BITFIELD, size='1'))) == 5

    def test_pointer_base(self):
        fld = Field(kind=FieldKind.POINTER, size='2', pointer_base=0xC00000)
        assert to_document(decode(b"\x34\x12", fld)) == 0xC01234

    def test_array(self):
        fld = Field(kind=FieldKind.ARRAY, size='3', item_type=integer())
        assert to_document(decode(b"\x01\x02\x03", fld)) == [1, 2, 3]

    def test_raw_bytes(self):
        fld = Field(kind=FieldKind.ASSEMBLY, size='3')
        assert to_document(decode(b"\xa9\x00\x60", fld)) == [0xA9, 0x00, 0x60]

    def test_dump_yaml_keeps_order(self, game, image):
        text = dump_yaml(decode_entry(image, game, "HEADER"))
        assert text.index("MAGIC") < text.index("COUNT")
        assert yaml.safe_load(text) == {"MAGIC": 0x1234, "COUNT": 2}

    def test_json_colors(self, game, image):
        value = decode_entry(image, game, "PALETTE")
        assert to_json(value) == ["#FFFFFF"]
        assert json.loads(dump_json(value)) == ["#FFFFFF"]

    def test_json_struct(self, game, image):
        value = decode_entry(image, game, "HEADER")
        assert json.loads(dump_json(value)) == {"MAGIC": 0x1234, "COUNT": 2}


class TestTiles:
    """Planar and linear tile formats."""

    def test_1bpp(self):
        rows = tile_pixels(bytes([0x80] + [0] * 7), '1bpp')
        assert rows[0] == [1, 0, 0, 0, 0, 0, 0, 0]
        assert len(rows) == 8

    def test_2bpp(self):
        # row 0: plane 0 = 0xFF, plane 1 = 0x0F
        rows = tile_pixels(bytes([0xFF, 0x0F] + [0] * 14))
        assert rows[0] == [1, 1, 1, 1, 3, 3, 3, 3]
        assert rows[1] == [0] * 8

    def test_4bpp(self):
        data = bytearray(32)
        data[16] = 0x80  # plane 2, row 0
        data[17] = 0x80  # plane 3, row 0
        assert tile_pixels(bytes(data), '4bpp')[0][0] == 12

    def test_8bpp(self):
        data = bytes(range(64))
        rows = tile_pixels(data, '8bpp')
        assert rows[1] == list(range(8, 16))

    def test_tiles_stack_vertically(self):
        assert len(tile_pixels(bytes(32), '2bpp')) == 16

    def test_partial_tile(self):
        with pytest.raises(ValueError, match="whole number"):
            tile_pixels(bytes(10), '2bpp')

    def test_unknown_format(self):
        with pytest.raises(ValueError, match="Unsupported tile format"):
            tile_pixels(bytes(16), '3bpp')

    def test_tile_document(self):
        fld = Field(kind=FieldKind.TILE, size='8', format='1bpp')
        assert to_document(decode(b"\xff" * 8, fld)) == [[1] * 8] * 8


class TestColors:

    def test_bgr555(self):
        # red = 31, green = 0, blue = 0
        assert color_values(b"\x1f\x00") == [[255, 0, 0]]
        # blue = 31
        assert color_values(b"\x00\x7c") == [[0, 0, 255]]

    def test_rgb888(self):
        assert color_values(b"\x10\x20\x30", 'RGB888') == [[0x10, 0x20, 0x30]]

    def test_odd_length(self):
        with pytest.raises(ValueError):
            color_values(b"\x00")

    def test_unknown_format(self):
        with pytest.raises(ValueError, match="Unsupported color format"):
            color_values(b"\x00\x00", 'CMYK')
