#!/usr/bin/env python3
"""
Fallout Tactics Save Codec - Tag and FString
============================================

Tag:
---
Schema identifier at the start of most records. Two zero-terminated strings:

    <name>\\0<version>\\0          e.g. "<world>\\0" "0.4\\0"

FString:
-------
Length-prefixed string. The top bit of the u32 length is a mode flag:

| Bit 31 | Mode | Length counts | Wire bytes | Text                          |
|--------|------|---------------|------------|-------------------------------|
| 0      | ANSI | bytes         | N          | cp1251                        |
| 1      | WCS2 | characters    | 2N         | low byte of each unit, cp1251 |

WCS2 is not UTF-16: the game keeps only the low byte of every 2-byte unit
and writes the high byte as zero. This is reproduced as-is.

The decoded unit count is kept in `enc_len` and used for encoded_size(), so a
decoded string re-encodes to exactly the bytes it came from. Bytes that are
undefined in cp1251 survive the trip as surrogate escapes.
"""

from dataclasses import dataclass
from enum import Enum

from fot_errors import TextDecodeError, TextEncodeError
from fot_stream import ReadStream, WriteStream

CODEPAGE = 'cp1251'
FLAG_BIT = 1 << 31


def to_codepage(text: str) -> bytes:
    try:
        return text.encode(CODEPAGE, errors='surrogateescape')
    except UnicodeEncodeError as e:
        raise TextEncodeError(f"Cannot encode {text!r} to {CODEPAGE}: {e}") from e


def from_codepage(data: bytes) -> str:
    return data.decode(CODEPAGE, errors='surrogateescape')


def _decode_utf8(data: bytes, offset: int) -> str:
    try:
        return data.decode('utf-8')
    except UnicodeDecodeError as e:
        raise TextDecodeError(f"Invalid UTF-8 string at offset 0x{offset:X}: {e}") from e


@dataclass
class Tag:
    """(name, version) pair identifying a record's schema"""
    name: str
    version: str

    @classmethod
    def decode(cls, rd: ReadStream) -> 'Tag':
        offset = rd.offset()
        name = _decode_utf8(rd.read_cstr(), offset)
        offset = rd.offset()
        version = _decode_utf8(rd.read_cstr(), offset)
        return cls(name, version)

    def encode(self, wd: WriteStream):
        wd.write_cstr(self.name.encode('utf-8'))
        wd.write_cstr(self.version.encode('utf-8'))

    def encoded_size(self) -> int:
        return len(self.name.encode('utf-8')) + 1 + len(self.version.encode('utf-8')) + 1

    def __str__(self):
        return f"{self.name} {self.version}"


class FStringEncoding(Enum):
    ANSI = 0
    WCS2 = 1


class FString:
    """Game string with its wire encoding and cached unit count"""

    def __init__(self, text: str = '', encoding: FStringEncoding = FStringEncoding.ANSI,
                 enc_len: int = None):
        self.encoding = encoding
        self._text = text
        self.enc_len = len(to_codepage(text)) if enc_len is None else enc_len

    @property
    def text(self) -> str:
        return self._text

    @text.setter
    def text(self, text: str):
        """Replace the text and recompute the wire unit count"""
        self.enc_len = len(to_codepage(text))
        self._text = text

    def set_text(self, text: str):
        self.text = text

    @classmethod
    def decode(cls, rd: ReadStream) -> 'FString':
        flen = rd.read_u32()
        length = flen & ~FLAG_BIT
        if flen & FLAG_BIT == 0:
            chars = rd.read_bytes(length)
            encoding = FStringEncoding.ANSI
        else:
            chars = rd.read_bytes(length * 2)[::2]
            encoding = FStringEncoding.WCS2
        return cls(from_codepage(chars), encoding, length)

    def encode(self, wd: WriteStream):
        chars = to_codepage(self.text)[:self.enc_len].ljust(self.enc_len, b'\x00')
        if self.encoding == FStringEncoding.ANSI:
            wd.write_u32(self.enc_len & ~FLAG_BIT)
            wd.write_bytes(chars)
        else:
            wide = bytearray(self.enc_len * 2)
            wide[::2] = chars
            wd.write_u32(self.enc_len | FLAG_BIT)
            wd.write_bytes(wide)

    def encoded_size(self) -> int:
        if self.encoding == FStringEncoding.ANSI:
            return 4 + self.enc_len
        return 4 + self.enc_len * 2

    def __eq__(self, other):
        if isinstance(other, FString):
            return self.text == other.text
        if isinstance(other, str):
            return self.text == other
        return NotImplemented

    def __hash__(self):
        return hash(self.text)

    def __str__(self):
        return self.text

    def __repr__(self):
        return f"FString({self.text!r}, {self.encoding.name}, enc_len={self.enc_len})"
