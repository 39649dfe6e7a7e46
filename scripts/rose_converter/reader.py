"""
reader.py
=========

Little-endian cursor over an immutable byte buffer, plus the three string
flavours embedded in the client's binary files:

  * byte string   - u8 length, then that many bytes
  * short string  - u16 length, then that many bytes
  * token string  - NUL-terminated, quote-aware, whitespace-delimited

Strings are decoded as latin-1 so every byte maps to exactly one code point:
ASCII stays ASCII and anything above 0x7F survives untouched (``.encode
("latin-1")`` gives the original bytes back).
"""

from __future__ import annotations

import struct
from pathlib import Path
from typing import List, Optional, Tuple, Union

from .errors import PathLike, TruncatedError

STRING_ENCODING = "latin-1"
TOKEN_SAFETY_CAP = 10000
TOKEN_WHITESPACE = frozenset((0x20, 0x09, 0x0D, 0x0A))
QUOTE = 0x22

_U8 = struct.Struct("<B")
_U16 = struct.Struct("<H")
_U32 = struct.Struct("<I")
_I16 = struct.Struct("<h")
_I32 = struct.Struct("<i")
_F32 = struct.Struct("<f")


def decode_string(raw: bytes) -> str:
    return raw.decode(STRING_ENCODING)


class ByteReader:
    """Bounded little-endian reader. Every read past the end raises ``TruncatedError``."""

    def __init__(self, data: bytes, file: Optional[PathLike] = None) -> None:
        self.data = bytes(data)
        self.file = str(file) if file is not None else None
        self.pos = 0

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "ByteReader":
        path = Path(path)
        return cls(path.read_bytes(), file=path)

    # -- cursor -------------------------------------------------------------

    def __len__(self) -> int:
        return len(self.data)

    def tell(self) -> int:
        return self.pos

    def remaining(self) -> int:
        return len(self.data) - self.pos

    def at_end(self) -> bool:
        return self.pos >= len(self.data)

    def seek(self, offset: int) -> None:
        if offset < 0 or offset > len(self.data):
            raise TruncatedError(
                f"seek to {offset} outside buffer of {len(self.data)} bytes",
                self.file,
                offset,
            )
        self.pos = offset

    def skip(self, count: int) -> None:
        self._require(count)
        self.pos += count

    def _require(self, count: int) -> None:
        if count < 0 or self.pos + count > len(self.data):
            raise TruncatedError(
                f"need {count} bytes, {self.remaining()} left",
                self.file,
                self.pos,
            )

    # -- primitives ---------------------------------------------------------

    def _unpack(self, fmt: struct.Struct):
        self._require(fmt.size)
        value = fmt.unpack_from(self.data, self.pos)[0]
        self.pos += fmt.size
        return value

    def read_u8(self) -> int:
        return self._unpack(_U8)

    def read_u16(self) -> int:
        return self._unpack(_U16)

    def read_u32(self) -> int:
        return self._unpack(_U32)

    def read_i16(self) -> int:
        return self._unpack(_I16)

    def read_i32(self) -> int:
        return self._unpack(_I32)

    def read_f32(self) -> float:
        return self._unpack(_F32)

    def read_bytes(self, count: int) -> bytes:
        self._require(count)
        raw = self.data[self.pos:self.pos + count]
        self.pos += count
        return raw

    def read_array(self, fmt: str, count: int) -> Tuple:
        """Unpack ``count`` repetitions of a struct format (e.g. ``"f"``, ``"3f"``)."""
        layout = struct.Struct("<" + fmt * count)
        self._require(layout.size)
        values = layout.unpack_from(self.data, self.pos)
        self.pos += layout.size
        return values

    def read_vec3(self) -> Tuple[float, float, float]:
        return self.read_array("f", 3)

    def read_vec4(self) -> Tuple[float, float, float, float]:
        return self.read_array("f", 4)

    # -- strings ------------------------------------------------------------

    def read_byte_string(self) -> str:
        length = self.read_u8()
        return decode_string(self.read_bytes(length))

    def read_short_string(self) -> str:
        length = self.read_u16()
        return decode_string(self.read_bytes(length))

    def read_i16_string(self) -> str:
        """Signed 16-bit length prefix; lengths <= 0 are empty strings (string tables)."""
        length = self.read_i16()
        if length <= 0:
            return ""
        return decode_string(self.read_bytes(length))

    def read_token_string(self) -> str:
        """Read a NUL-terminated token.

        A double quote toggles quoted mode and is never stored. Outside quotes,
        leading whitespace is dropped and the token ends at the first
        whitespace after a character was collected; the rest of the string up
        to and including its NUL is then consumed. End of buffer terminates
        the string without error.
        """
        out = bytearray()
        in_quote = False
        token_done = False
        scanned = 0
        data = self.data
        while self.pos < len(data):
            byte = data[self.pos]
            self.pos += 1
            if byte == 0:
                break
            scanned += 1
            if scanned > TOKEN_SAFETY_CAP:
                break
            if token_done:
                continue
            if byte == QUOTE:
                in_quote = not in_quote
                continue
            if byte in TOKEN_WHITESPACE and not in_quote:
                if out:
                    token_done = True
                continue
            out.append(byte)
        return decode_string(bytes(out))

    # -- block-indexed files ------------------------------------------------

    def read_block_table(self) -> List[Tuple[int, int]]:
        """``i32 count`` then ``count`` pairs of ``(i32 type, i32 offset)``."""
        count = self.read_i32()
        if count < 0:
            raise TruncatedError(f"negative block count {count}", self.file, self.pos - 4)
        blocks: List[Tuple[int, int]] = []
        for _ in range(count):
            block_type = self.read_i32()
            offset = self.read_i32()
            blocks.append((block_type, offset))
        return blocks
