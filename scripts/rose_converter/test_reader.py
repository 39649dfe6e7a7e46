#!/usr/bin/env python3
import struct
import unittest

from rose_converter.errors import TruncatedError
from rose_converter.reader import ByteReader


class ByteReaderTests(unittest.TestCase):
    def test_primitives_are_little_endian(self) -> None:
        reader = ByteReader(struct.pack("<BHIhif", 7, 513, 70000, -2, -70000, 1.5))
        self.assertEqual(reader.read_u8(), 7)
        self.assertEqual(reader.read_u16(), 513)
        self.assertEqual(reader.read_u32(), 70000)
        self.assertEqual(reader.read_i16(), -2)
        self.assertEqual(reader.read_i32(), -70000)
        self.assertEqual(reader.read_f32(), 1.5)
        self.assertTrue(reader.at_end())

    def test_read_past_end_reports_offset_and_file(self) -> None:
        reader = ByteReader(b"\x01\x02\x03", file="X.BIN")
        reader.read_u16()
        with self.assertRaises(TruncatedError) as ctx:
            reader.read_u32()
        self.assertEqual(ctx.exception.file, "X.BIN")
        self.assertEqual(ctx.exception.offset, 2)

    def test_seek_outside_buffer_is_truncation(self) -> None:
        reader = ByteReader(b"\x00" * 4)
        with self.assertRaises(TruncatedError):
            reader.seek(5)

    def test_token_string_strips_surrounding_whitespace(self) -> None:
        for raw in (b"token\x00", b"  token\x00", b"\t token \r\n\x00", b"token   \x00"):
            reader = ByteReader(raw + b"\x7f")
            self.assertEqual(reader.read_token_string(), "token")
            self.assertEqual(reader.read_u8(), 0x7F)

    def test_token_string_consumes_rest_through_nul(self) -> None:
        reader = ByteReader(b"first second\x00\x05")
        self.assertEqual(reader.read_token_string(), "first")
        self.assertEqual(reader.read_u8(), 5)

    def test_token_string_quotes_keep_whitespace(self) -> None:
        reader = ByteReader(b'"with space"\x00')
        self.assertEqual(reader.read_token_string(), "with space")

    def test_token_string_ends_at_buffer_end(self) -> None:
        reader = ByteReader(b"EOF")
        self.assertEqual(reader.read_token_string(), "EOF")
        self.assertTrue(reader.at_end())

    def test_token_string_keeps_latin1_bytes(self) -> None:
        reader = ByteReader(b"\xe9t\xe9\x00")
        self.assertEqual(reader.read_token_string(), "été")

    def test_length_prefixed_strings(self) -> None:
        data = b"\x03abc" + struct.pack("<H", 2) + b"de" + struct.pack("<h", -1)
        reader = ByteReader(data)
        self.assertEqual(reader.read_byte_string(), "abc")
        self.assertEqual(reader.read_short_string(), "de")
        self.assertEqual(reader.read_i16_string(), "")

    def test_block_table(self) -> None:
        data = struct.pack("<iiiii", 2, 3, 100, 1, 50)
        self.assertEqual(ByteReader(data).read_block_table(), [(3, 100), (1, 50)])

    def test_negative_block_count_is_truncation(self) -> None:
        with self.assertRaises(TruncatedError):
            ByteReader(struct.pack("<i", -1)).read_block_table()


if __name__ == "__main__":
    unittest.main()
