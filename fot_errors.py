#!/usr/bin/env python3
"""
Fallout Tactics Save Codec - Error Types
========================================

Every failure raised by the codec derives from SaveFormatError, which is a
ValueError so callers that only care about "bad file" can catch that.

| Category     | Raised when                                              |
|--------------|----------------------------------------------------------|
| decode       | read past window end, missing terminator, bad text      |
| encode       | scalar out of range for its wire field                   |
| structural   | entity/ESH lacks a property, property has the wrong type |
| localization | <world>/<campaign> markers or the block size not found   |
| compression  | zlib inflate/deflate failure                             |

File I/O errors are plain OSError and are not wrapped.
"""


class SaveFormatError(ValueError):
    """Base class for all save codec errors"""


# =============================================================================
# Decode errors
# =============================================================================

class StreamOverflowError(SaveFormatError):
    """Read of `requested` bytes at `offset` overflows a window of `size`"""

    def __init__(self, offset: int, size: int, requested: int):
        self.offset = offset
        self.size = size
        self.requested = requested
        super().__init__(
            f"stream read {requested} at offset {offset} overflow size {size}")


class NoZeroTerminatorError(SaveFormatError):
    def __init__(self, offset: int):
        self.offset = offset
        super().__init__(f"No zero-terminator for string at offset 0x{offset:X}")


class TextDecodeError(SaveFormatError):
    pass


class TextEncodeError(SaveFormatError):
    pass


class ValueRangeError(SaveFormatError):
    """Scalar does not fit the wire field being written at `offset`"""

    def __init__(self, offset: int, value, fmt: str):
        self.offset = offset
        self.value = value
        self.fmt = fmt
        super().__init__(f"Value {value!r} at offset 0x{offset:X} does not fit format {fmt!r}")


# =============================================================================
# Structural errors
# =============================================================================

class StructureError(SaveFormatError):
    """Record is well-formed bytes but lacks what the caller needs"""


class EntityNoESHError(StructureError):
    def __init__(self):
        super().__init__("Entity has no ESH")


class NoESHValueError(StructureError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"ESH has no value named {name!r}")


class ESHValueNonBinaryError(StructureError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"ESH value {name!r} is not binary")


class AttributesNonBinaryError(StructureError):
    def __init__(self):
        super().__init__("Attributes Binary != true")


class ValueNoEsbinError(StructureError):
    def __init__(self):
        super().__init__("Value has no esbin")


class NoEntityError(StructureError):
    def __init__(self, entity_id: int, count: int):
        self.entity_id = entity_id
        super().__init__(f"No entity with id {entity_id} (have 1..{count})")


class NoTagError(StructureError):
    def __init__(self, owner: str):
        self.owner = owner
        super().__init__(f"{owner} has no file tag")


class AttributeFieldError(StructureError):
    def __init__(self, group: str, name: str = None):
        self.group = group
        self.name = name
        if name is None:
            super().__init__(f"Unknown attribute group {group!r}")
        else:
            super().__init__(f"Unknown attribute {group}.{name}")


# =============================================================================
# Localization errors
# =============================================================================

class LocateError(SaveFormatError):
    """World block could not be located in the save file"""


class NoWorldError(LocateError):
    def __init__(self):
        super().__init__("No world found in file")


class NoCampaignError(LocateError):
    def __init__(self):
        super().__init__("No campaign found after world")


class UnknownWorldSizeError(LocateError):
    def __init__(self):
        super().__init__("Unable to determine world block size")


# =============================================================================
# Compression errors
# =============================================================================

class CompressionError(SaveFormatError):
    pass
