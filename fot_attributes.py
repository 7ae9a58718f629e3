#!/usr/bin/env python3
"""
Fallout Tactics Save Codec - Attributes / Modifiers
===================================================

Character attributes (and buff/debuff modifiers, which use the same record)
live two levels deep inside an entity's ESH:

    ESH property "Attributes" / "Modifiers"   (Binary)
      u32 size1
      ESH                                     (nested)
        "Binary" = Bool(true)
        "esbin"                               (Binary)
          u32 size2
          Tag
          239 scalars, fixed order:

| Group      | Count | Type |
|------------|-------|------|
| stats      | 7     | u32  |
| traits     | 11    | u32  |
| derived    | 26    | u32  |
| skills     | 18    | u32  |
| skill_tags | 18    | u8   |
| opt_traits | 38    | u8   |
| perks      | 111   | u32  |
| addictions | 10    | u32  |

There is no schema negotiation: the field count and order are fixed by the
game. Decoding produces detached dicts; nothing is written back until
to_binary() is called and the result stored on the owning ESH.
"""

from typing import Dict, Optional, Union

from fot_errors import AttributeFieldError, AttributesNonBinaryError, ValueNoEsbinError
from fot_esh import ESHBinary, ESHBool, NestedESH
from fot_stream import ReadStream, WriteStream
from fot_strings import Tag

# =============================================================================
# Field name tables (game data)
# =============================================================================

STATS = (
    "strength", "perception", "endurance", "charisma", "intelligence",
    "agility", "luck",
)

TRAITS = (
    "experience", "skillPoints", "tagsAvailable", "statsAvailable",
    "perksToTake", "rank", "reputation", "age", "bonusAC", "sex", "race",
)

DERIVED = (
    "maxHitPoints", "maxCarryWeight", "maxActionPoints", "radiationResist",
    "poisonResist", "armorClass", "criticalChance", "fallover",
    "normalThresh", "energyThresh", "fireThresh", "gasThresh",
    "explodeThresh", "electricalThresh", "normalResist", "energyResist",
    "fireResist", "gasResist", "explodeResist", "electricalResist",
    "camoflage", "healRate", "meleeDamage", "bonusDamage", "skillPerLevel",
    "levelsPerPerk",
)

SKILLS = (
    "smallGuns", "bigGuns", "energyWeapons", "unarmed", "meleeWeapons",
    "throwing", "firstAid", "doctor", "sneak", "lockpick", "steal", "traps",
    "science", "repair", "pilot", "barter", "gambling", "outdoorsman",
)

OPT_TRAITS = (
    "fastMetabolism", "bruiser", "smallFrame", "oneHander", "finesse",
    "kamikaze", "heavyHanded", "fastShot", "bloodyMess", "jinxed",
    "goodNatured", "chemReliant", "chemResistant", "nightPerson", "skilled",
    "gifted", "glowingOne", "techWizard", "fearTheReaper", "vatSkin",
    "hamFisted", "domesticated", "rabid", "tightNuts", "targetingComputer",
    "betaSoftware", "empShielding", "Human", "Ghoul", "Mutant",
    "RobotHumanoid", "Deathclaw", "Dog", "doAdrenalineRush", "doDieHard",
    "doHthEvade", "doDrunkenMaster", "doNightPerson",
)

PERKS = (
    "awareness", "bonusHtHAttacks", "bonusHtHDamage", "bonusMove",
    "bonusRangedDamage", "bonusRateofFire", "fasterHealing", "moreCriticals",
    "nightVision", "radResistance", "toughness", "strongBack",
    "sharpshooter", "silentRunning", "survivalist", "masterTrader",
    "educated", "healer", "fortuneFinder", "betterCriticals", "slayer",
    "sniper", "silentDeath", "actionBoy", "lifegiver", "dodger", "snakeater",
    "mrFixit", "medic", "masterThief", "heaveHo", "pickpocket", "ghost",
    "explorer", "flowerChild", "pathfinder", "scout", "mysteriousStranger",
    "ranger", "quickPockets", "swiftLearner", "tag", "mutate",
    "adrenalineRush", "cautiousNature", "comprehension", "demolitionExpert",
    "gambler", "gainStrenght", "gainPerception", "gainEndurance",
    "gainCharisma", "gainIntelligence", "gainAgility", "gainLuck",
    "harmless", "hereandNow", "hthEvade", "lightStep", "livingAnatomy",
    "negotiator", "packRat", "pyromaniac", "quickRecovery", "salesman",
    "stonewall", "thief", "weaponHandling", "stuntMan", "crazyBomber",
    "roadWarrior", "gunner", "leadFoot", "tunnelRat", "bracing", "flexible",
    "bendTheRules", "breakTheRules", "loner", "teamPlayer", "leader",
    "hitTheDeck", "boneHead", "brownNoser", "dieHard", "drunkenMaster",
    "stat", "radChild", "cancerousGrowth", "bonsai", "steadyArm",
    "psychotic", "toughHige", "deathSense", "brutishHulk", "talonOfFear",
    "hideOfScars", "wayOfTheFruit", "twitchGamer", "bluffMaster",
    "divineFavour", "unk1", "unk2", "unk3", "unk4", "unk5", "unk6", "unk7",
    "unk8", "unk9", "unk10",
)

ADDICTIONS = (
    "buffoutAddiction", "afterburnerAddiction", "mentatsAddiction",
    "psychoAddiction", "radAwayAddiction", "voodooAddiction",
    "nukaColaAddiction", "boozeAddiction", "withdrawal", "drunk",
)

KIND_U32 = 'u32'
KIND_BOOL = 'bool'

# (group, names, kind) in wire order
GROUPS = (
    ('stats', STATS, KIND_U32),
    ('traits', TRAITS, KIND_U32),
    ('derived', DERIVED, KIND_U32),
    ('skills', SKILLS, KIND_U32),
    ('skill_tags', SKILLS, KIND_BOOL),
    ('opt_traits', OPT_TRAITS, KIND_BOOL),
    ('perks', PERKS, KIND_U32),
    ('addictions', ADDICTIONS, KIND_U32),
)

GROUP_KINDS = {group: kind for group, _, kind in GROUPS}

FIELD_COUNT = sum(len(names) for _, names, _ in GROUPS)

# Size of the scalar block after size2 + Tag
FIELDS_SIZE = sum(len(names) * (4 if kind == KIND_U32 else 1) for _, names, kind in GROUPS)

ATTRIBUTES = "Attributes"
MODIFIERS = "Modifiers"
ESBIN = "esbin"
BINARY_FLAG = "Binary"

Scalar = Union[int, bool]


class Attributes:
    """Decoded copy of an Attributes/Modifiers record"""

    def __init__(self, outer: NestedESH, size2: int, tag: Tag,
                 groups: Dict[str, Dict[str, Scalar]], tail: bytes = b'',
                 bool_bytes: Optional[Dict[str, Dict[str, int]]] = None):
        self.outer = outer
        self.size2 = size2
        self.tag = tag
        self.groups = groups
        self.tail = tail
        # Raw u8 behind each bool field, so values other than 0/1 survive
        self.bool_bytes = bool_bytes if bool_bytes is not None else {}

    @classmethod
    def from_binary(cls, data: bytes) -> 'Attributes':
        outer = NestedESH.from_binary(data)
        if outer.esh.get(BINARY_FLAG) != ESHBool(True):
            raise AttributesNonBinaryError()
        esbin = outer.esh.get(ESBIN)
        if not isinstance(esbin, ESHBinary):
            raise ValueNoEsbinError()

        rd = ReadStream(esbin.data)
        size2 = rd.read_u32()
        tag = rd.read(Tag)
        groups = {}
        bool_bytes = {}
        for group, names, kind in GROUPS:
            if kind == KIND_U32:
                groups[group] = {name: rd.read_u32() for name in names}
            else:
                raw = {name: rd.read_u8() for name in names}
                bool_bytes[group] = raw
                groups[group] = {name: byte != 0 for name, byte in raw.items()}
        tail = rd.read_bytes(rd.remaining())

        return cls(outer, size2, tag, groups, tail, bool_bytes)

    def to_binary(self) -> bytes:
        wd = WriteStream()
        wd.write_u32(self.size2)
        wd.write(self.tag)
        for group, names, kind in GROUPS:
            values = self.groups[group]
            unknown = [name for name in values if name not in names]
            if unknown:
                raise AttributeFieldError(group, unknown[0])
            raw = self.bool_bytes.get(group, {})
            for name in names:
                if name not in values:
                    raise AttributeFieldError(group, name)
                value = values[name]
                if kind == KIND_U32:
                    wd.write_u32(value)
                else:
                    byte = raw.get(name)
                    if byte is None or (byte != 0) != bool(value):
                        byte = 1 if value else 0
                    wd.write_u8(byte)
        wd.write_bytes(self.tail)

        self.outer.esh.set(ESBIN, ESHBinary(wd.into_bytes()))
        return self.outer.to_binary()

    def get(self, group: str, name: str) -> Scalar:
        values = self._group(group)
        if name not in values:
            raise AttributeFieldError(group, name)
        return values[name]

    def set(self, group: str, name: str, value: Scalar):
        values = self._group(group)
        if name not in values:
            raise AttributeFieldError(group, name)
        if GROUP_KINDS[group] == KIND_BOOL:
            values[name] = bool(value)
        else:
            value = int(value)
            if not 0 <= value <= 0xFFFFFFFF:
                raise ValueError(f"{group}.{name} = {value} does not fit in u32")
            values[name] = value

    def _group(self, group: str) -> Dict[str, Scalar]:
        if group not in self.groups:
            raise AttributeFieldError(group)
        return self.groups[group]

    @property
    def stats(self) -> Dict[str, int]:
        return self.groups['stats']

    @property
    def traits(self) -> Dict[str, int]:
        return self.groups['traits']

    @property
    def derived(self) -> Dict[str, int]:
        return self.groups['derived']

    @property
    def skills(self) -> Dict[str, int]:
        return self.groups['skills']

    @property
    def skill_tags(self) -> Dict[str, bool]:
        return self.groups['skill_tags']

    @property
    def opt_traits(self) -> Dict[str, bool]:
        return self.groups['opt_traits']

    @property
    def perks(self) -> Dict[str, int]:
        return self.groups['perks']

    @property
    def addictions(self) -> Dict[str, int]:
        return self.groups['addictions']
