#!/usr/bin/env python3
"""
Fallout Tactics Save Codec - Byte Streams
=========================================

Little-endian cursor I/O shared by every record type.

Wire-Codec Contract:
-------------------
Every record class provides:

    decode(rd)          classmethod, builds the value from a ReadStream
    encode(wd)          writes the value into a WriteStream
    encoded_size()      exact byte count the value occupies on the wire

Records whose shape depends on something outside their own bytes (the
entity list being built, the compressed size of the World block) provide
decode_ctx(rd, ctx) and encoded_size_ctx(ctx), plus encode_ctx(wd, ctx) when
encoding needs the context too.

ReadStream.read(cls) decodes a value and then places the cursor at
start + value.encoded_size(), whatever the decoder itself consumed
(read_ctx uses encoded_size_ctx). Sizes are always computed from content, so
a value that re-encodes correctly also advances the stream correctly.
"""

import struct
from typing import Any, Optional, Protocol, Type, TypeVar

from fot_errors import NoZeroTerminatorError, StreamOverflowError, ValueRangeError

T = TypeVar('T')

U8 = struct.Struct('<B')
U16 = struct.Struct('<H')
U32 = struct.Struct('<I')
I32 = struct.Struct('<i')
F32 = struct.Struct('<f')


class Decoder(Protocol):
    @classmethod
    def decode(cls, rd: 'ReadStream') -> Any: ...

    def encode(self, wd: 'WriteStream') -> None: ...

    def encoded_size(self) -> int: ...


class DecoderCtx(Protocol):
    @classmethod
    def decode_ctx(cls, rd: 'ReadStream', ctx: Any) -> Any: ...

    def encode_ctx(self, wd: 'WriteStream', ctx: Any) -> None: ...

    def encoded_size_ctx(self, ctx: Any) -> int: ...


class ReadStream:
    """Bounds-checked reader over buf[offset:offset + size]"""

    def __init__(self, buf: bytes, offset: int = 0, size: Optional[int] = None):
        if size is None:
            size = len(buf) - offset
        if offset < 0 or size < 0 or offset + size > len(buf):
            raise StreamOverflowError(offset, len(buf), size)
        self.buf = memoryview(buf)
        self.start = offset
        self.size = size
        self.pos = 0

    def offset(self) -> int:
        """Position relative to the start of the window"""
        return self.pos

    def remaining(self) -> int:
        return self.size - self.pos

    def is_end(self) -> bool:
        return self.pos >= self.size

    def _take(self, n: int) -> memoryview:
        if n < 0 or self.pos + n > self.size:
            raise StreamOverflowError(self.pos, self.size, n)
        at = self.start + self.pos
        self.pos += n
        return self.buf[at:at + n]

    def skip(self, n: int):
        self._take(n)

    def seek(self, pos: int):
        if pos < 0 or pos > self.size:
            raise StreamOverflowError(pos, self.size, 0)
        self.pos = pos

    def read_u8(self) -> int:
        return U8.unpack(self._take(1))[0]

    def read_bool(self) -> bool:
        return self.read_u8() != 0

    def read_u16(self) -> int:
        return U16.unpack(self._take(2))[0]

    def read_u32(self) -> int:
        return U32.unpack(self._take(4))[0]

    def read_i32(self) -> int:
        return I32.unpack(self._take(4))[0]

    def read_f32(self) -> float:
        return F32.unpack(self._take(4))[0]

    def read_bytes(self, n: int) -> bytes:
        return bytes(self._take(n))

    def read_cstr(self) -> bytes:
        """Read up to and including a zero byte, return the bytes before it"""
        at = self.start + self.pos
        end = self.start + self.size
        for i in range(at, end):
            if self.buf[i] == 0:
                data = bytes(self.buf[at:i])
                self.pos += len(data) + 1
                return data
        raise NoZeroTerminatorError(self.pos)

    def read(self, cls: Type[T]) -> T:
        start = self.pos
        value = cls.decode(self)
        self.seek(start + value.encoded_size())
        return value

    def read_ctx(self, cls: Type[T], ctx: Any) -> T:
        start = self.pos
        value = cls.decode_ctx(self, ctx)
        self.seek(start + value.encoded_size_ctx(ctx))
        return value


class WriteStream:
    """Growable little-endian writer"""

    def __init__(self):
        self.buf = bytearray()

    def offset(self) -> int:
        return len(self.buf)

    def _pack(self, st: struct.Struct, value):
        try:
            self.buf += st.pack(value)
        except (struct.error, OverflowError) as e:
            raise ValueRangeError(len(self.buf), value, st.format) from e

    def write_u8(self, value: int):
        self._pack(U8, value)

    def write_bool(self, value: bool):
        self.write_u8(1 if value else 0)

    def write_u16(self, value: int):
        self._pack(U16, value)

    def write_u32(self, value: int):
        self._pack(U32, value)

    def write_i32(self, value: int):
        self._pack(I32, value)

    def write_f32(self, value: float):
        self._pack(F32, value)

    def write_bytes(self, data: bytes):
        self.buf += data

    def write_cstr(self, data: bytes):
        self.buf += data
        self.buf.append(0)

    def write(self, value: Decoder):
        value.encode(self)

    def write_ctx(self, value: DecoderCtx, ctx: Any):
        value.encode_ctx(self, ctx)

    def into_bytes(self) -> bytes:
        return bytes(self.buf)
