import unittest

from fot_attributes import (DERIVED, FIELD_COUNT, FIELDS_SIZE, GROUPS, SKILLS, STATS, TRAITS,
                            Attributes)
from fot_errors import AttributeFieldError, AttributesNonBinaryError, ValueNoEsbinError
from fot_esh import ESHBool, ESHInt, NestedESH
from fot_strings import Tag

from tests.builders import make_attributes_binary, make_esbin, make_esh, tag_bytes


class AttributesLayoutTest(unittest.TestCase):
    def test_field_tables(self):
        self.assertEqual(FIELD_COUNT, 239)
        self.assertEqual([len(names) for _, names, _ in GROUPS],
                         [7, 11, 26, 18, 18, 38, 111, 10])
        self.assertEqual(FIELDS_SIZE, (239 - 18 - 38) * 4 + 18 + 38)


class AttributesTest(unittest.TestCase):
    def setUp(self):
        self.data = make_attributes_binary()
        self.attrs = Attributes.from_binary(self.data)

    def test_decode_groups_in_wire_order(self):
        attrs = self.attrs
        self.assertEqual(attrs.tag, Tag('<attributes>', '0.1'))
        self.assertEqual(attrs.size2, 0x1234)
        self.assertEqual(attrs.stats['strength'], 0)
        self.assertEqual(attrs.stats['luck'], 6)
        self.assertEqual(attrs.traits['experience'], 7)
        self.assertEqual(attrs.derived['maxHitPoints'], 18)
        self.assertEqual(attrs.skills['smallGuns'], 44)
        # skill_tags start at 62, opt_traits at 80; even counters are true
        self.assertTrue(attrs.skill_tags['smallGuns'])
        self.assertFalse(attrs.skill_tags['bigGuns'])
        self.assertTrue(attrs.opt_traits['fastMetabolism'])
        self.assertEqual(attrs.perks['awareness'], 118)
        self.assertEqual(attrs.addictions['drunk'], 238)
        self.assertEqual(sum(len(values) for values in attrs.groups.values()), 239)

    def test_unchanged_round_trip(self):
        self.assertEqual(self.attrs.to_binary(), self.data)

    def test_set_strength_changes_one_field(self):
        self.attrs.set('stats', 'strength', 10)
        data = self.attrs.to_binary()
        self.assertEqual(len(data), len(self.data))
        changed = [i for i, (a, b) in enumerate(zip(self.data, data)) if a != b]
        self.assertTrue(changed)
        self.assertLess(max(changed) - min(changed), 4)
        self.assertEqual(Attributes.from_binary(data).stats['strength'], 10)

    def test_set_bool_field(self):
        self.attrs.set('skill_tags', 'bigGuns', 1)
        self.assertIs(self.attrs.get('skill_tags', 'bigGuns'), True)
        reread = Attributes.from_binary(self.attrs.to_binary())
        self.assertTrue(reread.skill_tags['bigGuns'])

    def test_set_out_of_range(self):
        with self.assertRaises(ValueError):
            self.attrs.set('stats', 'strength', -1)
        with self.assertRaises(ValueError):
            self.attrs.set('perks', 'awareness', 1 << 32)

    def test_unknown_names(self):
        with self.assertRaises(AttributeFieldError) as ctx:
            self.attrs.get('stats', 'height')
        self.assertEqual(ctx.exception.name, 'height')
        with self.assertRaises(AttributeFieldError) as ctx:
            self.attrs.set('powers', 'flight', 1)
        self.assertEqual(ctx.exception.group, 'powers')
        self.assertIsNone(ctx.exception.name)

    def test_tail_preserved(self):
        data = make_attributes_binary(tail=b'\x01\x02\x03\x04')
        attrs = Attributes.from_binary(data)
        self.assertEqual(attrs.tail, b'\x01\x02\x03\x04')
        attrs.set('stats', 'agility', 9)
        reread = Attributes.from_binary(attrs.to_binary())
        self.assertEqual(reread.tail, b'\x01\x02\x03\x04')
        self.assertEqual(reread.stats['agility'], 9)

    def test_outer_prefix_preserved(self):
        self.attrs.set('stats', 'luck', 1)
        self.assertEqual(NestedESH.from_binary(self.attrs.to_binary()).prefix, 0x99)

    def test_misspelled_key_rejected(self):
        self.attrs.stats['Strength'] = 10
        with self.assertRaises(AttributeFieldError) as ctx:
            self.attrs.to_binary()
        self.assertEqual(ctx.exception.name, 'Strength')

    def test_missing_key_rejected(self):
        del self.attrs.perks['awareness']
        with self.assertRaises(AttributeFieldError) as ctx:
            self.attrs.to_binary()
        self.assertEqual(ctx.exception.name, 'awareness')

    def test_encodes_in_table_order(self):
        stats = self.attrs.stats
        reordered = dict(reversed(list(stats.items())))
        self.attrs.groups['stats'] = reordered
        self.assertEqual(self.attrs.to_binary(), self.data)


class AttributesBoolByteTest(unittest.TestCase):
    def setUp(self):
        esbin = bytearray(make_esbin())
        offset = (4 + len(tag_bytes('<attributes>', '0.1'))
                  + 4 * (len(STATS) + len(TRAITS) + len(DERIVED) + len(SKILLS)) + len(SKILLS))
        esbin[offset] = 2
        self.data = make_attributes_binary(esbin=bytes(esbin))
        self.attrs = Attributes.from_binary(self.data)

    def test_raw_byte_round_trip(self):
        self.assertIs(self.attrs.opt_traits['fastMetabolism'], True)
        self.assertEqual(self.attrs.to_binary(), self.data)

    def test_unrelated_edit_keeps_raw_byte(self):
        self.attrs.set('stats', 'strength', 10)
        data = self.attrs.to_binary()
        changed = [i for i, (a, b) in enumerate(zip(self.data, data)) if a != b]
        self.assertTrue(changed)
        self.assertLess(max(changed) - min(changed), 4)
        self.assertEqual(Attributes.from_binary(data).bool_bytes['opt_traits']['fastMetabolism'], 2)

    def test_changed_bool_is_normalized(self):
        self.attrs.set('opt_traits', 'fastMetabolism', False)
        reread = Attributes.from_binary(self.attrs.to_binary())
        self.assertEqual(reread.bool_bytes['opt_traits']['fastMetabolism'], 0)
        reread.set('opt_traits', 'fastMetabolism', True)
        again = Attributes.from_binary(reread.to_binary())
        self.assertEqual(again.bool_bytes['opt_traits']['fastMetabolism'], 1)


class AttributesErrorTest(unittest.TestCase):
    def test_binary_flag_false(self):
        with self.assertRaises(AttributesNonBinaryError):
            Attributes.from_binary(make_attributes_binary(binary_flag=False))

    def test_binary_flag_missing(self):
        data = NestedESH(0, make_esh({'esbin': ESHInt(0)})).to_binary()
        with self.assertRaises(AttributesNonBinaryError):
            Attributes.from_binary(data)

    def test_esbin_not_binary(self):
        data = NestedESH(0, make_esh({'Binary': ESHBool(True), 'esbin': ESHInt(0)})).to_binary()
        with self.assertRaises(ValueNoEsbinError):
            Attributes.from_binary(data)

    def test_esbin_missing(self):
        data = NestedESH(0, make_esh({'Binary': ESHBool(True)})).to_binary()
        with self.assertRaises(ValueNoEsbinError):
            Attributes.from_binary(data)


if __name__ == '__main__':
    unittest.main()
