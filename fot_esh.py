#!/usr/bin/env python3
"""
Fallout Tactics Save Codec - ESH Property Bags
==============================================

ESH is the format's universal record: a Tag followed by an ordered list of
named, typed values.

ESH Layout:
----------
    Tag
    u32 count
    count x (FString name, ESHValue value)

ESHValue Layout (8-byte header + payload):
-----------------------------------------
| Type | Variant     | Payload                                              |
|------|-------------|------------------------------------------------------|
| 1    | Bool        | u8 (0/1)                                             |
| 2    | Float       | f32                                                  |
| 3    | Int         | i32                                                  |
| 4    | String      | FString                                              |
| 8    | Sprite      | FString                                              |
| 9    | Enum        | FString                                              |
| 11   | Binary      | payload_size raw bytes (nested ESH, esbin records)   |
| 12   | EntityFlags | u16 entity_id, u16 flags                             |
| 13   | Frame       | 0x24 opaque bytes, f32 c, f32 b, f32 a (stored x4)   |
| 14   | Rect        | i32 top, left, right, bottom                         |
| *    | Unknown     | payload_size raw bytes, type preserved               |

Property order is wire order. Encoding walks the dict in insertion order and
never sorts it.
"""

import struct
from dataclasses import dataclass, field
from typing import Dict, Iterator, Optional, Tuple

from fot_errors import ESHValueNonBinaryError, NoESHValueError, StructureError
from fot_stream import ReadStream, WriteStream
from fot_strings import FString, Tag

HDR_SIZE = 8

TYPE_BOOL = 1
TYPE_FLOAT = 2
TYPE_INT = 3
TYPE_STRING = 4
TYPE_SPRITE = 8
TYPE_ENUM = 9
TYPE_ESBIN = 11
TYPE_ENTITYFLAGS = 12
TYPE_FRAME = 13
TYPE_RECT = 14

FRAME_PREFIX_SIZE = 0x24
FRAME_SCALE = 4.0


def _format_f32(value: float) -> str:
    """Shortest text that reads back as the same f32"""
    packed = struct.pack('<f', value)
    for precision in range(1, 10):
        text = f"{value:.{precision}g}"
        if struct.pack('<f', float(text)) == packed:
            return text
    return repr(value)


class ESHValue:
    """Base for all typed ESH values; subclasses define `data_type`"""

    @classmethod
    def decode(cls, rd: ReadStream) -> 'ESHValue':
        data_type = rd.read_u32()
        data_size = rd.read_u32()
        value_cls = VALUE_TYPES.get(data_type)
        if value_cls is None:
            return ESHUnknown(data_type, rd.read_bytes(data_size))
        return value_cls.decode_payload(rd, data_size)

    @classmethod
    def decode_payload(cls, rd: ReadStream, size: int) -> 'ESHValue':
        raise NotImplementedError

    def encode(self, wd: WriteStream):
        wd.write_u32(self.data_type)
        wd.write_u32(self.payload_size())
        self.encode_payload(wd)

    def encode_payload(self, wd: WriteStream):
        raise NotImplementedError

    def payload_size(self) -> int:
        raise NotImplementedError

    def encoded_size(self) -> int:
        return HDR_SIZE + self.payload_size()


@dataclass
class ESHUnknown(ESHValue):
    data_type: int
    data: bytes

    def encode_payload(self, wd: WriteStream):
        wd.write_bytes(self.data)

    def payload_size(self) -> int:
        return len(self.data)

    def __str__(self):
        return f"Unknown type {self.data_type}, size {len(self.data)}"


@dataclass
class ESHBool(ESHValue):
    value: bool
    data_type = TYPE_BOOL

    @classmethod
    def decode_payload(cls, rd, size):
        return cls(rd.read_u8() == 1)

    def encode_payload(self, wd):
        wd.write_bool(self.value)

    def payload_size(self):
        return 1

    def __str__(self):
        return 'true' if self.value else 'false'


@dataclass
class ESHFloat(ESHValue):
    value: float
    data_type = TYPE_FLOAT

    @classmethod
    def decode_payload(cls, rd, size):
        return cls(rd.read_f32())

    def encode_payload(self, wd):
        wd.write_f32(self.value)

    def payload_size(self):
        return 4

    def __str__(self):
        return _format_f32(self.value)


@dataclass
class ESHInt(ESHValue):
    value: int
    data_type = TYPE_INT

    @classmethod
    def decode_payload(cls, rd, size):
        return cls(rd.read_i32())

    def encode_payload(self, wd):
        wd.write_i32(self.value)

    def payload_size(self):
        return 4

    def __str__(self):
        return str(self.value)


@dataclass
class ESHString(ESHValue):
    value: FString
    data_type = TYPE_STRING

    @classmethod
    def decode_payload(cls, rd, size):
        return cls(rd.read(FString))

    def encode_payload(self, wd):
        wd.write(self.value)

    def payload_size(self):
        return self.value.encoded_size()

    def __str__(self):
        return str(self.value)


@dataclass
class ESHSprite(ESHString):
    data_type = TYPE_SPRITE


@dataclass
class ESHEnum(ESHString):
    data_type = TYPE_ENUM


@dataclass
class ESHBinary(ESHValue):
    data: bytes
    data_type = TYPE_ESBIN

    @classmethod
    def decode_payload(cls, rd, size):
        return cls(rd.read_bytes(size))

    def encode_payload(self, wd):
        wd.write_bytes(self.data)

    def payload_size(self):
        return len(self.data)

    def __str__(self):
        return f"Binary, size {len(self.data)}"


@dataclass
class ESHEntityFlags(ESHValue):
    entity_id: int
    flags: int
    data_type = TYPE_ENTITYFLAGS

    @classmethod
    def decode_payload(cls, rd, size):
        entity_id = rd.read_u16()
        flags = rd.read_u16()
        return cls(entity_id, flags)

    def encode_payload(self, wd):
        wd.write_u16(self.entity_id)
        wd.write_u16(self.flags)

    def payload_size(self):
        return 4

    def __str__(self):
        return f"entity {self.entity_id} flags {self.flags:x}"


@dataclass
class ESHFrame(ESHValue):
    """Three floats stored on the wire in c, b, a order at a quarter scale"""
    unk1: bytes
    a: float
    b: float
    c: float
    data_type = TYPE_FRAME

    @classmethod
    def decode_payload(cls, rd, size):
        unk1 = rd.read_bytes(FRAME_PREFIX_SIZE)
        c = rd.read_f32() * FRAME_SCALE
        b = rd.read_f32() * FRAME_SCALE
        a = rd.read_f32() * FRAME_SCALE
        return cls(unk1, a, b, c)

    def encode_payload(self, wd):
        wd.write_bytes(self.unk1)
        wd.write_f32(self.c / FRAME_SCALE)
        wd.write_f32(self.b / FRAME_SCALE)
        wd.write_f32(self.a / FRAME_SCALE)

    def payload_size(self):
        return FRAME_PREFIX_SIZE + 12

    def __str__(self):
        return f"[{_format_f32(self.a)},{_format_f32(self.b)},{_format_f32(self.c)}]"


@dataclass
class ESHRect(ESHValue):
    top: int
    left: int
    right: int
    bottom: int
    data_type = TYPE_RECT

    @classmethod
    def decode_payload(cls, rd, size):
        top = rd.read_i32()
        left = rd.read_i32()
        right = rd.read_i32()
        bottom = rd.read_i32()
        return cls(top, left, right, bottom)

    def encode_payload(self, wd):
        wd.write_i32(self.top)
        wd.write_i32(self.left)
        wd.write_i32(self.right)
        wd.write_i32(self.bottom)

    def payload_size(self):
        return 16

    def __str__(self):
        return f"[({self.top},{self.left}),({self.right},{self.bottom})]"


VALUE_TYPES = {
    TYPE_BOOL: ESHBool,
    TYPE_FLOAT: ESHFloat,
    TYPE_INT: ESHInt,
    TYPE_STRING: ESHString,
    TYPE_SPRITE: ESHSprite,
    TYPE_ENUM: ESHEnum,
    TYPE_ESBIN: ESHBinary,
    TYPE_ENTITYFLAGS: ESHEntityFlags,
    TYPE_FRAME: ESHFrame,
    TYPE_RECT: ESHRect,
}


class ESH:
    """Tagged, ordered property bag"""

    def __init__(self, tag: Tag, props: Optional[Dict[FString, ESHValue]] = None):
        self.tag = tag
        self.props = props if props is not None else {}

    @classmethod
    def decode(cls, rd: ReadStream) -> 'ESH':
        tag = rd.read(Tag)
        count = rd.read_u32()
        props = {}
        for _ in range(count):
            name = rd.read(FString)
            if name in props:
                raise StructureError(f"Duplicate ESH property {name.text!r} in {tag.name}")
            props[name] = rd.read(ESHValue)
        return cls(tag, props)

    def encode(self, wd: WriteStream):
        wd.write(self.tag)
        wd.write_u32(len(self.props))
        for name, value in self.props.items():
            wd.write(name)
            wd.write(value)

    def encoded_size(self) -> int:
        size = self.tag.encoded_size() + 4
        for name, value in self.props.items():
            size += name.encoded_size() + value.encoded_size()
        return size

    def get(self, name: str) -> Optional[ESHValue]:
        return self.props.get(name)

    def set(self, name: str, value: ESHValue):
        """Replace an existing property in place, keeping its position"""
        if name not in self.props:
            raise NoESHValueError(str(name))
        self.props[name] = value

    def get_binary(self, name: str) -> bytes:
        value = self.props.get(name)
        if value is None:
            raise NoESHValueError(str(name))
        if not isinstance(value, ESHBinary):
            raise ESHValueNonBinaryError(str(name))
        return value.data

    def items(self) -> Iterator[Tuple[FString, ESHValue]]:
        return iter(self.props.items())

    def __contains__(self, name) -> bool:
        return name in self.props

    def __len__(self):
        return len(self.props)

    def __eq__(self, other):
        if not isinstance(other, ESH):
            return NotImplemented
        return self.tag == other.tag and list(self.props.items()) == list(other.props.items())

    def __repr__(self):
        return f"ESH({self.tag.name!r}, {len(self.props)} props)"


@dataclass
class NestedESH:
    """
    A Binary property holding `u32 prefix + ESH`.

    The prefix is opaque and written back unchanged; bytes after the ESH are
    kept in `tail`.
    """
    prefix: int
    esh: ESH
    tail: bytes = field(default=b'')

    @classmethod
    def from_binary(cls, data: bytes) -> 'NestedESH':
        rd = ReadStream(data)
        prefix = rd.read_u32()
        esh = rd.read(ESH)
        return cls(prefix, esh, rd.read_bytes(rd.remaining()))

    def to_binary(self) -> bytes:
        wd = WriteStream()
        wd.write_u32(self.prefix)
        wd.write(self.esh)
        wd.write_bytes(self.tail)
        return wd.into_bytes()
