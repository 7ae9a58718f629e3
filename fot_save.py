#!/usr/bin/env python3
"""
Fallout Tactics Save Codec - Save Files
=======================================

A .sav file holds exactly one compressed World block and no index. The block
is located from marker strings and its compressed size is inferred.

World Localization:
------------------
1. "<world>" - last occurrence in the file (scan backward from the end).
   This is where the World Tag starts.
2. "<campaign>" - first occurrence after the world marker.
3. Block size - scan the 256 bytes just before "<campaign>" backward, one
   byte at a time, for a u32 LE with the top bit set (the same flagged-length
   convention FString uses) whose low 31 bits do not exceed the distance from
   the world marker to the campaign marker. The first hit is the size of the
   World's zlib stream.

Writing:
-------
Only the World span is re-encoded. It is spliced into a copy of the original
bytes: everything outside the span is copied verbatim, and a shorter
re-encoded span is zero-padded to its original slot. The whole output is built
in memory before the file is opened, so a failed encode leaves the file alone.
"""

import logging
from dataclasses import dataclass
from typing import List, Tuple

from fot_errors import NoCampaignError, NoWorldError, UnknownWorldSizeError
from fot_stream import U32, ReadStream
from fot_strings import FLAG_BIT
from fot_world import World

logger = logging.getLogger(__name__)

WORLD_MARKER = b'<world>'
CAMPAIGN_MARKER = b'<campaign>'
SIZE_SCAN_WINDOW = 256


@dataclass
class Block:
    """Replacement bytes for the slot raw[offset:offset + size]"""
    offset: int
    size: int
    data: bytes


def assemble(raw: bytes, blocks: List[Block]) -> bytes:
    """Splice blocks into a copy of raw, padding short blocks with zeros"""
    output = bytearray()
    prev_end = 0
    for block in sorted(blocks, key=lambda b: b.offset):
        if block.offset < prev_end:
            raise ValueError(f"Block at 0x{block.offset:X} overlaps previous block ending at 0x{prev_end:X}")
        output += raw[prev_end:block.offset]
        output += block.data
        if block.size > len(block.data):
            output += bytes(block.size - len(block.data))
        prev_end = block.offset + block.size
    if prev_end < len(raw):
        output += raw[prev_end:]
    return bytes(output)


def find_world_size(raw: bytes, world_offset: int, campaign_offset: int,
                    window: int = SIZE_SCAN_WINDOW) -> Tuple[int, int]:
    """
    Find the flagged length just before the campaign marker.

    Returns:
        Tuple of (offset of the length field, compressed world size)
    """
    limit = campaign_offset - world_offset
    lowest = max(campaign_offset - window, 0)
    for pos in range(campaign_offset - 4, lowest - 1, -1):
        value = U32.unpack_from(raw, pos)[0]
        if value & FLAG_BIT and (value & ~FLAG_BIT) <= limit:
            return pos, value & ~FLAG_BIT
    raise UnknownWorldSizeError()


class Save:
    """A save file with its one decoded World"""

    def __init__(self, raw: bytes, world_offset: int, world_size: int,
                 size_offset: int, world: World):
        self.raw = raw
        self.world_offset = world_offset
        self.world_size = world_size
        self.size_offset = size_offset
        self.world = world
        self.world_slot = world.encoded_size_ctx(world_size)

    @classmethod
    def from_bytes(cls, raw: bytes) -> 'Save':
        world_offset = raw.rfind(WORLD_MARKER)
        if world_offset < 0:
            raise NoWorldError()

        campaign_offset = raw.find(CAMPAIGN_MARKER, world_offset)
        if campaign_offset < 0:
            raise NoCampaignError()

        size_offset, world_size = find_world_size(raw, world_offset, campaign_offset)
        logger.debug("World at 0x%X, campaign at 0x%X, size %d (field at 0x%X)",
                     world_offset, campaign_offset, world_size, size_offset)

        rd = ReadStream(raw, world_offset)
        world = rd.read_ctx(World, world_size)
        return cls(raw, world_offset, world_size, size_offset, world)

    @classmethod
    def load(cls, path: str) -> 'Save':
        with open(path, 'rb') as f:
            raw = f.read()
        save = cls.from_bytes(raw)
        logger.info("Loaded %s: %d bytes, world at 0x%X, %d entities",
                    path, len(raw), save.world_offset, len(save.world.entlist))
        return save

    def to_bytes(self, update_size: bool = False) -> bytes:
        """
        Rebuild the file with the re-encoded World.

        Args:
            update_size: Also rewrite the flagged length field found during
                load with the new compressed size. Off by default so that
                nothing outside the World span changes.
        """
        block = Block(self.world_offset, self.world_slot, self.world.to_bytes())
        blocks = [block]
        if len(block.data) > block.size:
            logger.debug("Re-encoded world grew by %d bytes", len(block.data) - block.size)

        if update_size:
            new_size = len(block.data) - self.world.encoded_size_ctx(0)
            blocks.append(Block(self.size_offset, 4, U32.pack(new_size | FLAG_BIT)))
        return assemble(self.raw, blocks)

    def save(self, path: str, update_size: bool = False):
        data = self.to_bytes(update_size)
        with open(path, 'wb') as f:
            f.write(data)
        logger.info("Saved %s (%d bytes)", path, len(data))

    def dump_world(self, path: str):
        """Write the uncompressed World payload"""
        with open(path, 'wb') as f:
            f.write(self.world.payload())
