#!/usr/bin/env python3
"""
Fallout Tactics Save Codec - World Block
========================================

World Header:
------------
| Field             | Size      | Notes                                   |
|-------------------|-----------|-----------------------------------------|
| Tag               | variable  | "<world>" + version                     |
| uncompressed_size | 4 bytes   | u32                                     |
| uncompressed_size | 4 bytes   | same value again                        |
| data              | size      | zlib stream, size supplied by the Save  |

The block does not record its own compressed length; Save finds it by a
heuristic and passes it in as decode context.

Inflated Payload (in order):
---------------------------
    FString     mission
    SGD         dialog table
    SSG         opaque block
    EntityList  World layout
    ...         unparsed tail, kept byte-for-byte

SGD Layout:
----------
    Tag
    0x48 opaque bytes
    u32 n, n x FString dialog names
    u32 m (== n), m x (u32 k, k x FString lines)

SSG Layout:
----------
    Tag
    0x14 opaque bytes
"""

import logging
import zlib
from typing import Dict, List

from fot_entity import EntityEncoding, EntityList
from fot_errors import CompressionError, StructureError
from fot_stream import ReadStream, WriteStream
from fot_strings import FString, Tag

logger = logging.getLogger(__name__)

DEFLATE_LEVEL = zlib.Z_DEFAULT_COMPRESSION


def inflate(data: bytes) -> bytes:
    """Inflate one complete zlib stream; trailing bytes are ignored"""
    decompressor = zlib.decompressobj()
    try:
        result = decompressor.decompress(data) + decompressor.flush()
    except zlib.error as e:
        raise CompressionError(f"DeflateError {e}") from e
    if not decompressor.eof:
        raise CompressionError("DeflateError incomplete zlib stream")
    if decompressor.unused_data:
        logger.debug("%d bytes after end of zlib stream", len(decompressor.unused_data))
    return result


def deflate(data: bytes) -> bytes:
    try:
        return zlib.compress(data, DEFLATE_LEVEL)
    except zlib.error as e:
        raise CompressionError(f"DeflateError {e}") from e


class SGD:
    """Dialog table: dialog name -> lines"""

    UNK1_SIZE = 0x48

    def __init__(self, tag: Tag, unk1: bytes, dialogs: Dict[FString, List[FString]]):
        self.tag = tag
        self.unk1 = unk1
        self.dialogs = dialogs

    @classmethod
    def decode(cls, rd: ReadStream) -> 'SGD':
        tag = rd.read(Tag)
        unk1 = rd.read_bytes(cls.UNK1_SIZE)

        n = rd.read_u32()
        names = [rd.read(FString) for _ in range(n)]

        m = rd.read_u32()
        if m != n:
            raise StructureError(f"SGD has {n} dialog names but {m} line lists")

        dialogs = {}
        for name in names:
            k = rd.read_u32()
            lines = [rd.read(FString) for _ in range(k)]
            if name in dialogs:
                raise StructureError(f"SGD dialog {name.text!r} appears twice")
            dialogs[name] = lines

        return cls(tag, unk1, dialogs)

    def encode(self, wd: WriteStream):
        wd.write(self.tag)
        wd.write_bytes(self.unk1)

        wd.write_u32(len(self.dialogs))
        for name in self.dialogs:
            wd.write(name)

        wd.write_u32(len(self.dialogs))
        for lines in self.dialogs.values():
            wd.write_u32(len(lines))
            for line in lines:
                wd.write(line)

    def encoded_size(self) -> int:
        size = self.tag.encoded_size() + len(self.unk1) + 4 + 4
        for name, lines in self.dialogs.items():
            size += name.encoded_size() + 4
            size += sum(line.encoded_size() for line in lines)
        return size


class SSG:
    UNK1_SIZE = 0x14

    def __init__(self, tag: Tag, unk1: bytes):
        self.tag = tag
        self.unk1 = unk1

    @classmethod
    def decode(cls, rd: ReadStream) -> 'SSG':
        tag = rd.read(Tag)
        return cls(tag, rd.read_bytes(cls.UNK1_SIZE))

    def encode(self, wd: WriteStream):
        wd.write(self.tag)
        wd.write_bytes(self.unk1)

    def encoded_size(self) -> int:
        return self.tag.encoded_size() + len(self.unk1)


class World:
    """The compressed world snapshot"""

    def __init__(self, tag: Tag, uncompressed_size: int, mission: FString,
                 sgd: SGD, ssg: SSG, entlist: EntityList, unparsed_tail: bytes = b''):
        self.tag = tag
        self.uncompressed_size = uncompressed_size
        self.mission = mission
        self.sgd = sgd
        self.ssg = ssg
        self.entlist = entlist
        self.unparsed_tail = unparsed_tail

    @classmethod
    def decode_ctx(cls, rd: ReadStream, size: int) -> 'World':
        """Decode a World whose zlib stream is `size` bytes long"""
        tag = rd.read(Tag)
        uncompressed_size = rd.read_u32()
        rd.read_u32()

        data = inflate(rd.read_bytes(size))
        logger.debug("Inflated world: %d -> %d bytes (header says %d)",
                     size, len(data), uncompressed_size)

        prd = ReadStream(data)
        mission = prd.read(FString)
        sgd = prd.read(SGD)
        ssg = prd.read(SSG)
        entlist = prd.read_ctx(EntityList, EntityEncoding.WORLD)
        unparsed_tail = prd.read_bytes(prd.remaining())
        if unparsed_tail:
            logger.warning("World has %d unparsed bytes after the entity list",
                           len(unparsed_tail))

        return cls(tag, uncompressed_size, mission, sgd, ssg, entlist, unparsed_tail)

    def encoded_size_ctx(self, size: int) -> int:
        return self.tag.encoded_size() + 8 + size

    def payload(self) -> bytes:
        """Serialize the uncompressed payload"""
        wd = WriteStream()
        wd.write(self.mission)
        wd.write(self.sgd)
        wd.write(self.ssg)
        wd.write(self.entlist)
        wd.write_bytes(self.unparsed_tail)
        return wd.into_bytes()

    def encode(self, wd: WriteStream):
        data = self.payload()
        self.uncompressed_size = len(data)
        compressed = deflate(data)

        wd.write(self.tag)
        wd.write_u32(self.uncompressed_size)
        wd.write_u32(self.uncompressed_size)
        wd.write_bytes(compressed)

    def encoded_size(self) -> int:
        return self.tag.encoded_size() + 8 + len(deflate(self.payload()))

    def to_bytes(self) -> bytes:
        wd = WriteStream()
        wd.write(self)
        return wd.into_bytes()
