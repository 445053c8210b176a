"""Decode the lumps making up a level, and assemble them into a :py:class:`Level`.

Each lump is a plain array of fixed-size little-endian structures. Every kind has a ``read_*``
function producing the records, and a ``write_*`` function producing the lump data again.
"""
from typing import Dict, Final, List, Optional, Sequence, Tuple
import struct

import attrs

from wadtools import FormatError, bsp, logger
from wadtools.binformat import bams_to_degrees, decode_name, encode_name, iter_records
from wadtools.bsp import BBox, Child, Point, decode_child, encode_child, side_test
from wadtools.const import PLAYER_STARTS, LineFlags, ThingFlags
from wadtools.wad import Buffer, LevelLumps, LumpName


__all__ = [
    'Vertex', 'Thing', 'LineDef', 'SideDef', 'Seg', 'SubSector', 'Node', 'Sector',
    'PlayerStart', 'Level', 'NO_SIDEDEF',
    'read_things', 'read_linedefs', 'read_sidedefs', 'read_vertexes', 'read_segs',
    'read_subsectors', 'read_nodes', 'read_sectors',
    'write_things', 'write_linedefs', 'write_sidedefs', 'write_vertexes', 'write_segs',
    'write_subsectors', 'write_nodes', 'write_sectors',
]

LOGGER = logger.get_logger(__name__)

#: Linedef sidedef index used when there is no sidedef on that side.
NO_SIDEDEF: Final = -1

ST_THING: Final = struct.Struct('<hhhhH')
ST_LINEDEF: Final = struct.Struct('<hhHhhhh')
ST_SIDEDEF: Final = struct.Struct('<hh8s8s8sh')
ST_VERTEX: Final = struct.Struct('<hh')
ST_SEG: Final = struct.Struct('<hhhhhh')
ST_SUBSECTOR: Final = struct.Struct('<hh')
ST_NODE: Final = struct.Struct('<hhhh4h4hhh')
ST_SECTOR: Final = struct.Struct('<hh8s8shhh')


@attrs.frozen
class Vertex:
    """A 2D map position."""
    x: int
    y: int


@attrs.frozen
class Thing:
    """A monster, item, decoration or spawn point placed in the map."""
    x: int
    y: int
    angle: int  # In degrees.
    type: int
    flags: ThingFlags = ThingFlags.NONE

    @property
    def pos(self) -> Vertex:
        return Vertex(self.x, self.y)

    @property
    def easy(self) -> bool:
        return ThingFlags.EASY in self.flags

    @property
    def medium(self) -> bool:
        return ThingFlags.MEDIUM in self.flags

    @property
    def hard(self) -> bool:
        return ThingFlags.HARD in self.flags

    @property
    def ambush(self) -> bool:
        return ThingFlags.AMBUSH in self.flags

    @property
    def multiplayer(self) -> bool:
        return ThingFlags.MULTIPLAYER in self.flags


@attrs.frozen
class LineDef:
    """A wall between two vertexes, with a sidedef on one or both sides."""
    start: int
    end: int
    flags: LineFlags
    special: int  # The action triggered by this line.
    tag: int  # Sectors with this tag are affected by the action.
    front: int
    back: int = NO_SIDEDEF

    @property
    def two_sided(self) -> bool:
        return LineFlags.TWO_SIDED in self.flags

    @property
    def has_back(self) -> bool:
        """Check if the back sidedef is present."""
        return self.back != NO_SIDEDEF


@attrs.frozen
class SideDef:
    """The textures for one side of a linedef.

    Texture names keep their NUL padding.
    """
    x_offset: int
    y_offset: int
    upper: str
    lower: str
    middle: str
    sector: int  # The sector this side faces.


@attrs.frozen
class Seg:
    """Part of a linedef, forming one edge of a subsector."""
    start: int
    end: int
    bams: int  # Binary angle, 8192 per 45 degrees.
    linedef: int
    direction: int  # 1 if this runs opposite to the linedef, 0 if along it.
    offset: int  # Distance along the linedef to the start of the seg.

    @property
    def reversed(self) -> bool:
        """If set, this is on the back side of the linedef."""
        return self.direction == 1

    @property
    def angle(self) -> float:
        """The angle in degrees."""
        return bams_to_degrees(self.bams)


@attrs.frozen
class SubSector:
    """A convex region of the map, bounded by a run of segs. These are the leaves of the tree."""
    seg_count: int
    first_seg: int

    @property
    def seg_range(self) -> range:
        """The indexes of the segs bounding this subsector."""
        return range(self.first_seg, self.first_seg + self.seg_count)


@attrs.frozen
class Node:
    """A line splitting the map in two, with a child node or subsector on each side."""
    start: Vertex
    delta: Vertex  # Direction of the line, relative to the start.
    right_box: BBox
    left_box: BBox
    right: Child
    left: Child

    def point_on_right(self, point: Point) -> bool:
        """Check if the point is on the right (front) side of the partition line."""
        return side_test(self.start, self.delta, point)


@attrs.frozen
class Sector:
    """An area with a floor and ceiling, referenced by sidedefs."""
    floor_height: int
    ceiling_height: int
    floor_texture: str
    ceiling_texture: str
    light: int
    special: int
    tag: int


@attrs.frozen
class PlayerStart:
    """The spawn position for a player.

    If no thing marks the start, this is at the origin, with ``found`` unset.
    """
    pos: Vertex = Vertex(0, 0)
    angle: int = 0
    found: bool = False


def read_things(data: Buffer) -> List[Thing]:
    """Parse the THINGS lump."""
    return [
        Thing(x, y, angle, typ, ThingFlags(flags))
        for x, y, angle, typ, flags in iter_records(ST_THING, data, 'THINGS')
    ]


def write_things(things: Sequence[Thing]) -> bytes:
    """Build the THINGS lump."""
    return b''.join([
        ST_THING.pack(thing.x, thing.y, thing.angle, thing.type, thing.flags.value)
        for thing in things
    ])


def read_linedefs(data: Buffer) -> List[LineDef]:
    """Parse the LINEDEFS lump."""
    return [
        LineDef(start, end, LineFlags(flags), special, tag, front, back)
        for start, end, flags, special, tag, front, back
        in iter_records(ST_LINEDEF, data, 'LINEDEFS')
    ]


def write_linedefs(linedefs: Sequence[LineDef]) -> bytes:
    """Build the LINEDEFS lump."""
    return b''.join([
        ST_LINEDEF.pack(
            line.start, line.end, line.flags.value,
            line.special, line.tag,
            line.front, line.back,
        )
        for line in linedefs
    ])


def read_sidedefs(data: Buffer) -> List[SideDef]:
    """Parse the SIDEDEFS lump."""
    return [
        SideDef(
            x_off, y_off,
            decode_name(upper, 'SIDEDEFS'),
            decode_name(lower, 'SIDEDEFS'),
            decode_name(middle, 'SIDEDEFS'),
            sector,
        )
        for x_off, y_off, upper, lower, middle, sector
        in iter_records(ST_SIDEDEF, data, 'SIDEDEFS')
    ]


def write_sidedefs(sidedefs: Sequence[SideDef]) -> bytes:
    """Build the SIDEDEFS lump."""
    return b''.join([
        ST_SIDEDEF.pack(
            side.x_offset, side.y_offset,
            encode_name(side.upper, 'Texture'),
            encode_name(side.lower, 'Texture'),
            encode_name(side.middle, 'Texture'),
            side.sector,
        )
        for side in sidedefs
    ])


def read_vertexes(data: Buffer) -> List[Vertex]:
    """Parse the VERTEXES lump."""
    return [Vertex(x, y) for x, y in iter_records(ST_VERTEX, data, 'VERTEXES')]


def write_vertexes(vertexes: Sequence[Vertex]) -> bytes:
    """Build the VERTEXES lump."""
    return b''.join([ST_VERTEX.pack(vert.x, vert.y) for vert in vertexes])


def read_segs(data: Buffer) -> List[Seg]:
    """Parse the SEGS lump."""
    return [
        Seg(start, end, bams, linedef, direction, offset)
        for start, end, bams, linedef, direction, offset
        in iter_records(ST_SEG, data, 'SEGS')
    ]


def write_segs(segs: Sequence[Seg]) -> bytes:
    """Build the SEGS lump."""
    return b''.join([
        ST_SEG.pack(seg.start, seg.end, seg.bams, seg.linedef, seg.direction, seg.offset)
        for seg in segs
    ])


def read_subsectors(data: Buffer) -> List[SubSector]:
    """Parse the SSECTORS lump."""
    return [
        SubSector(count, first)
        for count, first in iter_records(ST_SUBSECTOR, data, 'SSECTORS')
    ]


def write_subsectors(subsectors: Sequence[SubSector]) -> bytes:
    """Build the SSECTORS lump."""
    return b''.join([ST_SUBSECTOR.pack(ssec.seg_count, ssec.first_seg) for ssec in subsectors])


def read_nodes(data: Buffer) -> List[Node]:
    """Parse the NODES lump.

    The child references are decoded here, so the tree never deals with the sign bit.
    """
    nodes: List[Node] = []
    for (
        x, y, dx, dy,
        r_top, r_bottom, r_left, r_right,
        l_top, l_bottom, l_left, l_right,
        right, left,
    ) in iter_records(ST_NODE, data, 'NODES'):
        nodes.append(Node(
            Vertex(x, y), Vertex(dx, dy),
            BBox(r_top, r_bottom, r_left, r_right),
            BBox(l_top, l_bottom, l_left, l_right),
            decode_child(right), decode_child(left),
        ))
    return nodes


def write_nodes(nodes: Sequence[Node]) -> bytes:
    """Build the NODES lump, encoding the child references again."""
    buf: List[bytes] = []
    for node in nodes:
        rbox, lbox = node.right_box, node.left_box
        buf.append(ST_NODE.pack(
            node.start.x, node.start.y, node.delta.x, node.delta.y,
            rbox.top, rbox.bottom, rbox.left, rbox.right,
            lbox.top, lbox.bottom, lbox.left, lbox.right,
            encode_child(node.right), encode_child(node.left),
        ))
    return b''.join(buf)


def read_sectors(data: Buffer) -> List[Sector]:
    """Parse the SECTORS lump."""
    return [
        Sector(
            floor, ceil,
            decode_name(floor_tex, 'SECTORS'),
            decode_name(ceil_tex, 'SECTORS'),
            light, special, tag,
        )
        for floor, ceil, floor_tex, ceil_tex, light, special, tag
        in iter_records(ST_SECTOR, data, 'SECTORS')
    ]


def write_sectors(sectors: Sequence[Sector]) -> bytes:
    """Build the SECTORS lump."""
    return b''.join([
        ST_SECTOR.pack(
            sector.floor_height, sector.ceiling_height,
            encode_name(sector.floor_texture, 'Flat'),
            encode_name(sector.ceiling_texture, 'Flat'),
            sector.light, sector.special, sector.tag,
        )
        for sector in sectors
    ])


def _check_index(kind: str, what: str, index: int, count: int, target: str) -> None:
    """Raise if an index doesn't refer to a valid record."""
    if not 0 <= index < count:
        raise FormatError(kind, f'{what} refers to {target} #{index}, only {count} {target}s!')


@attrs.frozen(repr=False)
class Level:
    """A decoded level.

    All the record lists are tuples, a level is not modified once created. Use
    :py:meth:`parse` to decode and validate the raw lumps.
    """
    name: LumpName
    things: Tuple[Thing, ...] = attrs.field(converter=tuple)
    linedefs: Tuple[LineDef, ...] = attrs.field(converter=tuple)
    sidedefs: Tuple[SideDef, ...] = attrs.field(converter=tuple)
    vertexes: Tuple[Vertex, ...] = attrs.field(converter=tuple)
    segs: Tuple[Seg, ...] = attrs.field(converter=tuple)
    subsectors: Tuple[SubSector, ...] = attrs.field(converter=tuple)
    nodes: Tuple[Node, ...] = attrs.field(converter=tuple)
    sectors: Tuple[Sector, ...] = attrs.field(converter=tuple)
    # Player 1-4 starts.
    player_starts: Tuple[PlayerStart, ...] = attrs.field(converter=tuple)
    reject: bytes = b''
    blockmap: bytes = b''

    def __repr__(self) -> str:
        return (
            f'<Level {str(self.name)!r}: {len(self.things)} things, '
            f'{len(self.linedefs)} lines, {len(self.sectors)} sectors, {len(self.nodes)} nodes>'
        )

    @classmethod
    def parse(cls, lumps: LevelLumps) -> 'Level':
        """Decode all the lumps for a level, then check the references between them."""
        with logger.context(str(lumps.name)):
            things = read_things(lumps.things)
            level = cls(
                lumps.name,
                things,
                read_linedefs(lumps.linedefs),
                read_sidedefs(lumps.sidedefs),
                read_vertexes(lumps.vertexes),
                read_segs(lumps.segs),
                read_subsectors(lumps.ssectors),
                read_nodes(lumps.nodes),
                read_sectors(lumps.sectors),
                find_player_starts(things),
                bytes(lumps.reject),
                bytes(lumps.blockmap),
            )
            LOGGER.debug(
                'Loaded {} things, {} linedefs, {} segs, {} subsectors, {} nodes',
                len(level.things), len(level.linedefs), len(level.segs),
                len(level.subsectors), len(level.nodes),
            )
            level.validate()
        return level

    def lumps(self) -> LevelLumps:
        """Encode the level back into lumps."""
        return LevelLumps(
            self.name,
            write_things(self.things),
            write_linedefs(self.linedefs),
            write_sidedefs(self.sidedefs),
            write_vertexes(self.vertexes),
            write_segs(self.segs),
            write_subsectors(self.subsectors),
            write_nodes(self.nodes),
            write_sectors(self.sectors),
            self.reject,
            self.blockmap,
        )

    def validate(self) -> None:
        """Check every index in the level refers to an existing record.

        :raises FormatError: naming the lump with the invalid reference.
        """
        vert_count = len(self.vertexes)
        side_count = len(self.sidedefs)
        for i, line in enumerate(self.linedefs):
            _check_index('LINEDEFS', f'Linedef #{i}', line.start, vert_count, 'vertex')
            _check_index('LINEDEFS', f'Linedef #{i}', line.end, vert_count, 'vertex')
            for side in [line.front, line.back]:
                if side != NO_SIDEDEF:
                    _check_index('LINEDEFS', f'Linedef #{i}', side, side_count, 'sidedef')

        for i, sidedef in enumerate(self.sidedefs):
            _check_index('SIDEDEFS', f'Sidedef #{i}', sidedef.sector, len(self.sectors), 'sector')

        for i, seg in enumerate(self.segs):
            _check_index('SEGS', f'Seg #{i}', seg.start, vert_count, 'vertex')
            _check_index('SEGS', f'Seg #{i}', seg.end, vert_count, 'vertex')
            _check_index('SEGS', f'Seg #{i}', seg.linedef, len(self.linedefs), 'linedef')

        for i, ssec in enumerate(self.subsectors):
            if ssec.seg_count < 0 or ssec.first_seg < 0 or ssec.seg_range.stop > len(self.segs):
                raise FormatError(
                    'SSECTORS',
                    f'Subsector #{i} uses segs {ssec.first_seg}-{ssec.seg_range.stop - 1}, '
                    f'only {len(self.segs)} segs!',
                )

        bsp.check_tree(self.nodes, len(self.subsectors))

    def spawn_point(self, slot: int) -> PlayerStart:
        """Return the start for player 1-4."""
        if not 1 <= slot <= len(self.player_starts):
            raise ValueError(f'Invalid player slot {slot}, must be 1-{len(self.player_starts)}!')
        return self.player_starts[slot - 1]

    def traverse(self, point: Point, *, back_to_front: bool = False) -> List[int]:
        """Produce subsector indexes in order from the point outward.

        With ``back_to_front`` set, the farthest subsectors are produced first instead.
        """
        if not self.nodes:
            # A level with a single subsector doesn't need any nodes.
            return [0] if self.subsectors else []
        return bsp.traverse(self.nodes, point, back_to_front=back_to_front)

    def locate(self, point: Point) -> int:
        """Find the subsector containing this point."""
        return bsp.locate(self.nodes, point)

    def subsector_sector(self, index: int) -> Optional[int]:
        """Find the sector a subsector is part of.

        This is determined from the side of the linedef its first seg lies on. If it has no segs,
        or the seg is on a missing side, None is returned.
        """
        ssec = self.subsectors[index]
        if ssec.seg_count == 0:
            return None
        seg = self.segs[ssec.first_seg]
        line = self.linedefs[seg.linedef]
        side = line.back if seg.reversed else line.front
        if side == NO_SIDEDEF:
            return None
        return self.sidedefs[side].sector


def find_player_starts(things: Sequence[Thing], slots: int = 4) -> Tuple[PlayerStart, ...]:
    """Find the spawn positions for each player.

    If the same start is placed several times, the last one is used.
    """
    starts: Dict[int, PlayerStart] = {}
    for thing in things:
        try:
            slot = PLAYER_STARTS[thing.type]
        except KeyError:
            continue
        starts[slot] = PlayerStart(thing.pos, thing.angle, True)
    for slot in range(1, slots + 1):
        if slot not in starts:
            LOGGER.debug('No start for player {}', slot)
    return tuple(starts.get(slot, PlayerStart()) for slot in range(1, slots + 1))

