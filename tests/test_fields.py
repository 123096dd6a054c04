"""
Tests for fixed-width field extraction and octal decoding.
"""
import pytest

from tarstream.fields import (FieldError, TarError, decode_string, extract,
                              literal, parse_long_octal, parse_octal)


class TestExtract:
    """Slicing fields out of a block"""

    def test_extract_in_declared_order(self):
        """Fields are consecutive slices in layout order."""
        fields = extract(b"aaBBBc", (("a", 2), ("b", 3), ("c", 1)))

        assert list(fields) == ["a", "b", "c"]
        assert fields == {"a": b"aa", "b": b"BBB", "c": b"c"}

    def test_extract_from_offset(self):
        """An offset skips the start of the block."""
        fields = extract(b"xxxxyyzz", (("y", 2), ("z", 2)), 4)
        assert fields == {"y": b"yy", "z": b"zz"}

    def test_decode_string_stops_at_nul(self):
        assert decode_string(b"name\0garbage\0\0") == "name"

    def test_decode_string_full_width(self):
        assert decode_string(b"x" * 100) == "x" * 100

    def test_decode_string_keeps_undecodable_bytes(self):
        """Bytes that are not valid in the encoding survive a round trip."""
        name = decode_string(b"caf\xe9\0")
        assert name.encode("utf-8", "surrogateescape") == b"caf\xe9"

    def test_literal_strips_padding(self):
        assert literal(b"ustar \0") == b"ustar"
        assert literal(b"\0\0\0\0") == b""


class TestParseOctal:
    """Plain octal fields"""

    @pytest.mark.parametrize("raw, value", [
        (b"0000644\0", 0o644),
        (b"0000755 ", 0o755),
        (b" 1750\0\0\0", 1000),
        (b"", 0),
        (b"\0\0\0\0\0\0\0\0", 0),
        (b"       \0", 0),
    ])
    def test_parse_octal(self, raw, value):
        assert parse_octal(raw) == value

    @pytest.mark.parametrize("raw", [b"0000089\0", b"12a\0", b"\x80\0\0\0\0\0\0\x01"])
    def test_parse_octal_rejects_garbage(self, raw):
        with pytest.raises(FieldError):
            parse_octal(raw)

    def test_field_error_is_tar_error(self):
        assert issubclass(FieldError, TarError)


class TestParseLongOctal:
    """Octal fields decoded in 24-bit chunks when they are too wide"""

    @pytest.mark.parametrize("raw, value", [
        (b"00000001750\0", 1000),
        (b"00000000000\0", 0),
        (b"0\0", 0),
        (b"", 0),
        (b"%011o\0" % 1700000000, 1700000000),
    ])
    def test_short_values(self, raw, value):
        assert parse_long_octal(raw) == value

    def test_eleven_digits_with_small_leading_digit(self):
        """11 digits starting with 1-3 stay within 33 bits."""
        assert parse_long_octal(b"37777777777\0") == 2 ** 32 - 1
        assert parse_long_octal(b"10000000000\0") == 2 ** 30

    def test_eleven_digits_with_large_leading_digit(self):
        """77777777777 is one 8-digit chunk plus a 3-digit remainder."""
        assert parse_long_octal(b"77777777777\0") == 2 ** 33 - 1

    @pytest.mark.parametrize("digits", [
        "100000000000",              # 12 digits: one chunk plus 4 left over
        "777777777777",              # size field without a terminator
        "1234567012345670",          # exactly two chunks
        "123456701234567012345670",  # exactly three chunks
        "7654321076543210765",       # two chunks plus 3 left over
    ])
    def test_wide_values_match_plain_octal(self, digits):
        """Chunked decoding agrees with reading the digits as one number,
        aligned to 8 digits or not."""
        assert parse_long_octal(digits.encode()) == int(digits, 8)

    def test_aligned_and_ragged_agree(self):
        """The same value padded to a multiple of 8 digits or left ragged
        decodes identically."""
        value = 0o1234567012345
        ragged = b"%o" % value
        aligned = b"%016o" % value

        assert len(ragged) % 8 != 0
        assert parse_long_octal(ragged) == parse_long_octal(aligned) == value

    def test_size_beyond_eight_gigabytes(self):
        """A 12-digit size field with no terminator."""
        size = 2 ** 35 + 12345
        assert parse_long_octal(b"%012o" % size) == size

    def test_base256_is_not_accepted(self):
        """GNU base-256 numbers are not part of this encoding."""
        with pytest.raises(FieldError):
            parse_long_octal(b"\x80\0\0\0\0\0\0\0\0\0\x10\0")
