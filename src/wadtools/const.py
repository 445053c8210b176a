"""Flag enums and reserved type numbers used in level lumps."""
from typing import Any, Final, MutableMapping
from enum import Enum, Flag
import sys


__all__ = [
    'add_unknown',
    'WADKind', 'LineFlags', 'ThingFlags', 'PLAYER_STARTS',
]


def add_unknown(ns: MutableMapping[str, Any], bits: int = 16) -> None:
    """Add dummy members for :external:class:`enum.Flag` to allow all bits to be set.

    It should be called at the end of the class body. Lumps from source ports use bits we don't
    name, this ensures they are preserved when resaving.

    :param ns: The class namespace to add members to. This should be set to \
        :external:func:`locals()` or :external:func:`vars()`.
    :param bits: The width of the field the flags are stored in.
    """
    used_bits = 0
    for name, value in list(ns.items()):
        # Skip dunder names etc added to the namespace.
        if not name.startswith('_') and isinstance(value, int):
            used_bits |= value
    for i in range(bits):
        bit = 1 << i
        if not bit & used_bits:
            # We don't have to stick to var naming rules, so just name it
            # after the number. Intern so repeated calls share strings.
            ns[sys.intern(str(i))] = bit


class WADKind(Enum):
    """The identification tag at the start of the file."""
    IWAD = b'IWAD'  #: A primary WAD, containing a complete game.
    PWAD = b'PWAD'  #: A patch WAD, replacing parts of an IWAD.


class LineFlags(Flag):
    """Flags set on linedefs."""
    NONE = 0
    BLOCK_ALL = 0x0001  #: Blocks players and monsters.
    BLOCK_MONSTERS = 0x0002
    TWO_SIDED = 0x0004  #: Separates two sectors, with a back sidedef.
    UPPER_UNPEGGED = 0x0008  #: Upper texture is aligned to the ceiling.
    LOWER_UNPEGGED = 0x0010  #: Lower and middle textures are aligned to the floor.
    SECRET = 0x0020  #: Shown as one-sided on the automap.
    BLOCK_SOUND = 0x0040
    NEVER_AUTOMAP = 0x0080
    ALWAYS_AUTOMAP = 0x0100
    PASS_USE = 0x0200  #: Boom extension, use actions activate lines behind this one.

    add_unknown(locals())


class ThingFlags(Flag):
    """Flags set on things."""
    NONE = 0
    EASY = 0x0001  #: Present on skill 1 and 2.
    MEDIUM = 0x0002  #: Present on skill 3.
    HARD = 0x0004  #: Present on skill 4 and 5.
    AMBUSH = 0x0008  #: Monster waits until it sees the player.
    MULTIPLAYER = 0x0010  #: Only spawned in multiplayer.

    add_unknown(locals())


#: Thing types for the player 1-4 spawn points, mapped to the player slot.
PLAYER_STARTS: Final = {1: 1, 2: 2, 3: 3, 4: 4}
