import os
import struct
import tempfile
import unittest

from fot_entity import NO_ESH, Entity, EntityEncoding, EntityList
from fot_errors import (EntityNoESHError, NoEntityError, NoESHValueError, NoTagError,
                        StructureError, ValueRangeError)
from fot_esh import ESHInt, ESHString, NestedESH
from fot_stream import ReadStream
from fot_strings import FString, Tag

from tests.builders import ansi_bytes, encode, make_character, make_item, make_world_entlist


def file_record(type_name: str, esh) -> bytes:
    return encode(Tag('<entity>', '1.2')) + ansi_bytes(type_name) + encode(esh)


class WorldEntityListTest(unittest.TestCase):
    def setUp(self):
        self.entlist = make_world_entlist()
        self.wire = self.entlist.to_bytes()

    def test_stored_count_is_one_more(self):
        header = (encode(Tag('<entity_file>', '1.0')) + struct.pack('<I', 2)
                  + ansi_bytes('Actor') + ansi_bytes('Item'))
        self.assertTrue(self.wire.startswith(header))
        count, unk1 = struct.unpack_from('<HI', self.wire, len(header))
        self.assertEqual(count, 4)
        self.assertEqual(unk1, 0xDEADBEEF)

    def test_round_trip(self):
        rd = ReadStream(self.wire)
        entlist = rd.read_ctx(EntityList, EntityEncoding.WORLD)
        self.assertTrue(rd.is_end())
        self.assertEqual(len(entlist), 3)
        self.assertEqual(entlist.types, ['Actor', 'Item'])
        self.assertEqual(entlist.unk1, 0xDEADBEEF)
        self.assertEqual(entlist.to_bytes(), self.wire)
        self.assertEqual(entlist.encoded_size(), len(self.wire))

    def test_no_esh_entity(self):
        entlist = EntityList.from_bytes(self.wire, EntityEncoding.WORLD)
        empty = entlist.get_entity(2)
        self.assertEqual(empty.type_idx, NO_ESH)
        self.assertIsNone(empty.esh)
        self.assertIsNone(empty.type_name(entlist))
        self.assertEqual(empty.encoded_size_ctx(entlist), 6)
        with self.assertRaises(EntityNoESHError):
            empty.get_value('Name')

    def test_no_esh_entity_bytes(self):
        entlist = EntityList(EntityEncoding.WORLD, Tag('<entity_file>', '1.0'))
        entlist.entities.append(Entity(0x7, NO_ESH))
        self.assertEqual(entlist.to_bytes(), encode(Tag('<entity_file>', '1.0'))
                         + struct.pack('<IHI', 0, 2, 0) + struct.pack('<IH', 0x7, 0xFFFF))

    def test_empty_list(self):
        entlist = EntityList(EntityEncoding.WORLD, Tag('<entity_file>', '1.0'))
        wire = entlist.to_bytes()
        self.assertEqual(struct.unpack_from('<H', wire, len(wire) - 6)[0], 1)
        self.assertEqual(len(EntityList.from_bytes(wire, EntityEncoding.WORLD)), 0)

    def test_missing_esh_on_encode(self):
        self.entlist.entities.append(Entity(0, 0, None))
        with self.assertRaises(EntityNoESHError):
            self.entlist.to_bytes()

    def test_trailing_bytes(self):
        with self.assertRaises(StructureError):
            EntityList.from_bytes(self.wire + b'\x00', EntityEncoding.WORLD)

    def test_too_many_entities(self):
        self.entlist.entities = [Entity(0, NO_ESH) for _ in range(70000)]
        with self.assertRaises(ValueRangeError):
            self.entlist.to_bytes()

    def test_type_index_out_of_range(self):
        self.entlist.get_entity(1).type_idx = 0x10000
        with self.assertRaises(ValueRangeError):
            self.entlist.to_bytes()

    def test_missing_list_tag(self):
        self.entlist.file_tag = None
        with self.assertRaises(NoTagError):
            self.entlist.to_bytes()
        with self.assertRaises(NoTagError):
            self.entlist.encoded_size()


class FileEntityListTest(unittest.TestCase):
    def setUp(self):
        self.wire = (file_record('Actor', make_character('Stitch'))
                     + file_record('Item', make_item())
                     + file_record('Actor', make_character('Hammer')))

    def test_types_deduplicated(self):
        entlist = EntityList.from_bytes(self.wire)
        self.assertEqual(entlist.types, ['Actor', 'Item'])
        self.assertEqual([entity.type_idx for _, entity in entlist], [0, 1, 0])
        self.assertEqual([entity.flags for _, entity in entlist], [0, 0, 0])
        self.assertEqual(str(entlist.get_entity(3).type_name(entlist)), 'Actor')

    def test_round_trip(self):
        entlist = EntityList.from_bytes(self.wire)
        self.assertEqual(entlist.to_bytes(), self.wire)
        self.assertEqual(entlist.encoded_size(), len(self.wire))

    def test_empty_file(self):
        self.assertEqual(len(EntityList.from_bytes(b'')), 0)

    def test_missing_entity_tag(self):
        entlist = EntityList.from_bytes(self.wire)
        entlist.get_entity(2).file_tag = None
        with self.assertRaises(NoTagError):
            entlist.to_bytes()
        with self.assertRaises(NoTagError):
            entlist.encoded_size()

    def test_load_save(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, 'squad.ent')
            with open(path, 'wb') as f:
                f.write(self.wire)
            entlist = EntityList.load(path)
            entlist.get_entity(1).set_value('Level', ESHInt(12))
            out = os.path.join(tmp, 'squad2.ent')
            entlist.save(out)
            reread = EntityList.load(out)
        self.assertEqual(reread.get_entity(1).get_value('Level'), ESHInt(12))
        self.assertEqual(reread.get_entity(3).get_value('Level'), ESHInt(1))

    def test_type_table(self):
        entlist = EntityList(EntityEncoding.FILE)
        self.assertEqual(entlist.add_or_get_type(FString('Actor')), 0)
        self.assertEqual(entlist.add_or_get_type(FString('Item')), 1)
        self.assertEqual(entlist.add_or_get_type(FString('Actor')), 0)
        self.assertEqual(entlist.add_new_type(FString('Actor')), 2)
        with self.assertRaises(StructureError):
            entlist.get_type_name(3)


class EntityAccessTest(unittest.TestCase):
    def setUp(self):
        self.entlist = EntityList.from_bytes(make_world_entlist().to_bytes(), EntityEncoding.WORLD)

    def test_ids_are_one_based(self):
        self.assertEqual([entity_id for entity_id, _ in self.entlist], [1, 2, 3])
        self.assertEqual(self.entlist.get_entity(1).flags, 0x10)
        with self.assertRaises(NoEntityError):
            self.entlist.get_entity(0)
        with self.assertRaises(NoEntityError):
            self.entlist.get_entity(4)

    def test_select(self):
        selected = self.entlist.select([3, 1])
        self.assertEqual(sorted(selected), [1, 3])
        self.assertEqual(selected[3].flags, 0x20)
        with self.assertRaises(NoEntityError):
            self.entlist.select([9])

    def test_find(self):
        self.assertEqual(list(self.entlist.find([('Name', 'Stimpak')])), [3])
        self.assertEqual(sorted(self.entlist.find([('Name', 'Hero'), ('Count', '2')])), [1, 3])
        self.assertEqual(self.entlist.find([('Name', 'Nobody')]), {})

    def test_get_set_value(self):
        entity = self.entlist.get_entity(1)
        self.assertEqual(str(entity.get_value('Name')), 'Hero')
        entity.set_value('Name', ESHString(FString('Farsight')))
        with self.assertRaises(NoESHValueError):
            entity.get_value('Missing')
        with self.assertRaises(NoESHValueError):
            entity.set_value('Missing', ESHInt(1))

        reread = EntityList.from_bytes(self.entlist.to_bytes(), EntityEncoding.WORLD)
        self.assertEqual(str(reread.get_entity(1).get_value('Name')), 'Farsight')

    def test_nested_values(self):
        entity = self.entlist.get_entity(1)
        self.assertEqual(entity.get_nested_value('Inventory', 'Count'), ESHInt(3))
        entity.set_nested_value('Inventory', 'Count', ESHInt(7))
        nested = entity.get_nested('Inventory')
        self.assertIsInstance(nested, NestedESH)
        self.assertEqual(nested.prefix, 4)
        self.assertEqual(nested.esh.get('Count'), ESHInt(7))
        with self.assertRaises(NoESHValueError):
            entity.get_nested_value('Inventory', 'Weight')

    def test_attributes_through_list(self):
        attrs = self.entlist.get_attributes(1)
        attrs.set('stats', 'strength', 10)
        self.entlist.set_attributes(1, attrs)

        mods = self.entlist.get_modifiers(1)
        mods.set('stats', 'luck', 2)
        self.entlist.set_modifiers(1, mods)

        reread = EntityList.from_bytes(self.entlist.to_bytes(), EntityEncoding.WORLD)
        self.assertEqual(reread.get_attributes(1).stats['strength'], 10)
        self.assertEqual(reread.get_modifiers(1).stats['luck'], 2)
        self.assertEqual(reread.get_modifiers(1).stats['strength'], 0)

    def test_attributes_missing(self):
        with self.assertRaises(NoESHValueError):
            self.entlist.get_attributes(3)
        with self.assertRaises(EntityNoESHError):
            self.entlist.get_attributes(2)


if __name__ == '__main__':
    unittest.main()
