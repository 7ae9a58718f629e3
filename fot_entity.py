#!/usr/bin/env python3
"""
Fallout Tactics Save Codec - Entities
=====================================

The same logical Entity has two incompatible wire layouts. The owning
EntityList's `encoding` decides which one applies to every entity in it.

File Layout (standalone .ent files):
-----------------------------------
Records repeat until the end of the data:

    Tag
    FString type name        (deduplicated into EntityList.types)
    ESH

Flags are always 0 and every record has an ESH.

World Layout (inside the World block):
-------------------------------------
    Tag                      (file tag)
    u32 type_count
    type_count x FString     (type table)
    u16 entity_count         (records present + 1)
    u32 unk1                 (opaque)
    (entity_count - 1) x:
        u32 flags
        u16 type_idx         (0xFFFF = no type, no ESH follows)
        ESH                  (only when type_idx != 0xFFFF)

The stored count is one more than the number of records. Encoding writes
len(entities) + 1 to match.

Entity ids handed to callers are 1-based.
"""

import logging
from enum import Enum
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

from fot_attributes import ATTRIBUTES, MODIFIERS, Attributes
from fot_errors import (EntityNoESHError, NoEntityError, NoESHValueError, NoTagError,
                        StructureError)
from fot_esh import ESH, ESHBinary, ESHValue, NestedESH
from fot_stream import ReadStream, WriteStream
from fot_strings import FString, Tag

logger = logging.getLogger(__name__)

NO_FLAGS = 0
NO_ESH = 0xFFFF


class EntityEncoding(Enum):
    FILE = 'file'
    WORLD = 'world'


class Entity:
    """One object: flags, an index into the type table and its property bag"""

    def __init__(self, flags: int = NO_FLAGS, type_idx: int = NO_ESH,
                 esh: Optional[ESH] = None, file_tag: Optional[Tag] = None):
        self.flags = flags
        self.type_idx = type_idx
        self.esh = esh
        # Only present for File layout records
        self.file_tag = file_tag

    @classmethod
    def decode_ctx(cls, rd: ReadStream, entlist: 'EntityList') -> 'Entity':
        if entlist.encoding == EntityEncoding.FILE:
            file_tag = rd.read(Tag)
            type_idx = entlist.add_or_get_type(rd.read(FString))
            esh = rd.read(ESH)
            return cls(NO_FLAGS, type_idx, esh, file_tag)

        flags = rd.read_u32()
        type_idx = rd.read_u16()
        esh = rd.read(ESH) if type_idx != NO_ESH else None
        return cls(flags, type_idx, esh)

    def encode_ctx(self, wd: WriteStream, entlist: 'EntityList'):
        if entlist.encoding == EntityEncoding.FILE:
            wd.write(self.get_file_tag())
            wd.write(entlist.get_type_name(self.type_idx))
            wd.write(self.get_esh())
            return

        wd.write_u32(self.flags)
        wd.write_u16(self.type_idx)
        if self.type_idx != NO_ESH:
            if self.esh is None:
                raise EntityNoESHError()
            wd.write(self.esh)

    def encoded_size_ctx(self, entlist: 'EntityList') -> int:
        if entlist.encoding == EntityEncoding.FILE:
            return (self.get_file_tag().encoded_size()
                    + entlist.get_type_name(self.type_idx).encoded_size()
                    + self.get_esh().encoded_size())
        size = 6
        if self.type_idx != NO_ESH:
            size += self.get_esh().encoded_size()
        return size

    def type_name(self, entlist: 'EntityList') -> Optional[FString]:
        if self.type_idx == NO_ESH:
            return None
        return entlist.get_type_name(self.type_idx)

    def get_esh(self) -> ESH:
        if self.esh is None:
            raise EntityNoESHError()
        return self.esh

    def get_file_tag(self) -> Tag:
        if self.file_tag is None:
            raise NoTagError("File layout entity")
        return self.file_tag

    # -------------------------------------------------------------------------
    # Property access
    # -------------------------------------------------------------------------

    def get_value(self, name: str) -> ESHValue:
        value = self.get_esh().get(name)
        if value is None:
            raise NoESHValueError(name)
        return value

    def set_value(self, name: str, value: ESHValue):
        self.get_esh().set(name, value)

    def get_nested(self, name: str) -> NestedESH:
        """Decode a Binary property holding `u32 + ESH` (detached copy)"""
        return NestedESH.from_binary(self.get_esh().get_binary(name))

    def set_nested(self, name: str, nested: NestedESH):
        self.get_esh().set(name, ESHBinary(nested.to_binary()))

    def get_nested_value(self, prop: str, name: str) -> ESHValue:
        value = self.get_nested(prop).esh.get(name)
        if value is None:
            raise NoESHValueError(name)
        return value

    def set_nested_value(self, prop: str, name: str, value: ESHValue):
        nested = self.get_nested(prop)
        nested.esh.set(name, value)
        self.set_nested(prop, nested)

    def get_attributes(self) -> Attributes:
        return Attributes.from_binary(self.get_esh().get_binary(ATTRIBUTES))

    def set_attributes(self, attrs: Attributes):
        self.get_esh().set(ATTRIBUTES, ESHBinary(attrs.to_binary()))

    def get_modifiers(self) -> Attributes:
        return Attributes.from_binary(self.get_esh().get_binary(MODIFIERS))

    def set_modifiers(self, attrs: Attributes):
        self.get_esh().set(MODIFIERS, ESHBinary(attrs.to_binary()))

    def __repr__(self):
        return f"Entity(flags=0x{self.flags:X}, type_idx={self.type_idx}, esh={self.esh!r})"


class EntityList:
    """Entities plus the type-name table they index into"""

    def __init__(self, encoding: EntityEncoding, file_tag: Optional[Tag] = None,
                 unk1: int = 0):
        self.encoding = encoding
        self.file_tag = file_tag
        self.unk1 = unk1
        self.types: List[FString] = []
        self.entities: List[Entity] = []

    @classmethod
    def decode_ctx(cls, rd: ReadStream, encoding: EntityEncoding) -> 'EntityList':
        if encoding == EntityEncoding.FILE:
            entlist = cls(encoding)
            while not rd.is_end():
                entlist.entities.append(rd.read_ctx(Entity, entlist))
            return entlist

        file_tag = rd.read(Tag)
        type_count = rd.read_u32()
        types = [rd.read(FString) for _ in range(type_count)]
        entity_count = rd.read_u16()
        unk1 = rd.read_u32()

        entlist = cls(encoding, file_tag, unk1)
        entlist.types = types
        for _ in range(1, entity_count):
            entlist.entities.append(rd.read_ctx(Entity, entlist))

        logger.debug("Decoded entity list: %d types, %d entities",
                     len(entlist.types), len(entlist.entities))
        return entlist

    def encode(self, wd: WriteStream):
        if self.encoding == EntityEncoding.WORLD:
            wd.write(self.get_file_tag())
            wd.write_u32(len(self.types))
            for type_name in self.types:
                wd.write(type_name)
            wd.write_u16(len(self.entities) + 1)
            wd.write_u32(self.unk1)
        for entity in self.entities:
            wd.write_ctx(entity, self)

    def encoded_size(self) -> int:
        size = 0
        if self.encoding == EntityEncoding.WORLD:
            size += self.get_file_tag().encoded_size() + 4 + 2 + 4
            size += sum(type_name.encoded_size() for type_name in self.types)
        size += sum(entity.encoded_size_ctx(self) for entity in self.entities)
        return size

    def encoded_size_ctx(self, encoding: EntityEncoding) -> int:
        return self.encoded_size()

    def get_file_tag(self) -> Tag:
        if self.file_tag is None:
            raise NoTagError("World layout entity list")
        return self.file_tag

    @classmethod
    def from_bytes(cls, data: bytes, encoding: EntityEncoding = EntityEncoding.FILE) -> 'EntityList':
        rd = ReadStream(data)
        entlist = rd.read_ctx(cls, encoding)
        if not rd.is_end():
            raise StructureError(
                f"{rd.remaining()} trailing bytes after entity list at 0x{rd.offset():X}")
        return entlist

    def to_bytes(self) -> bytes:
        wd = WriteStream()
        wd.write(self)
        return wd.into_bytes()

    @classmethod
    def load(cls, path: str) -> 'EntityList':
        """Load a standalone entity file"""
        with open(path, 'rb') as f:
            data = f.read()
        entlist = cls.from_bytes(data, EntityEncoding.FILE)
        logger.info("Loaded %s: %d entities", path, len(entlist.entities))
        return entlist

    def save(self, path: str):
        data = self.to_bytes()
        with open(path, 'wb') as f:
            f.write(data)
        logger.info("Saved %s (%d bytes)", path, len(data))

    # -------------------------------------------------------------------------
    # Type table
    # -------------------------------------------------------------------------

    def add_new_type(self, type_name: FString) -> int:
        self.types.append(type_name)
        return len(self.types) - 1

    def add_or_get_type(self, type_name: FString) -> int:
        for idx, existing in enumerate(self.types):
            if existing == type_name:
                return idx
        return self.add_new_type(type_name)

    def get_type_name(self, type_idx: int) -> FString:
        if not 0 <= type_idx < len(self.types):
            raise StructureError(f"Type index {type_idx} outside type table of {len(self.types)}")
        return self.types[type_idx]

    # -------------------------------------------------------------------------
    # Entity access (1-based ids)
    # -------------------------------------------------------------------------

    def get_entity(self, entity_id: int) -> Entity:
        if not 1 <= entity_id <= len(self.entities):
            raise NoEntityError(entity_id, len(self.entities))
        return self.entities[entity_id - 1]

    def __iter__(self) -> Iterator[Tuple[int, Entity]]:
        return enumerate(self.entities, start=1)

    def __len__(self):
        return len(self.entities)

    def select(self, ids: Iterable[int]) -> Dict[int, Entity]:
        return {entity_id: self.get_entity(entity_id) for entity_id in ids}

    def find(self, pairs: Iterable[Tuple[str, str]]) -> Dict[int, Entity]:
        """Entities with any property whose name and display value match a pair"""
        pairs = list(pairs)
        found = {}
        for entity_id, entity in self:
            if entity.esh is None:
                continue
            for name, value in entity.esh.items():
                text = str(value)
                if any(name == key and text == expected for key, expected in pairs):
                    found[entity_id] = entity
                    break
        return found

    def get_attributes(self, entity_id: int) -> Attributes:
        return self.get_entity(entity_id).get_attributes()

    def set_attributes(self, entity_id: int, attrs: Attributes):
        self.get_entity(entity_id).set_attributes(attrs)

    def get_modifiers(self, entity_id: int) -> Attributes:
        return self.get_entity(entity_id).get_modifiers()

    def set_modifiers(self, entity_id: int, attrs: Attributes):
        self.get_entity(entity_id).set_modifiers(attrs)
