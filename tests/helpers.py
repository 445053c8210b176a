"""Helpers for building WAD data to test against.

These pack the structures directly, so the parser is not tested against its own writer.
"""
from typing import Dict, List, Sequence, Tuple
import struct


__all__ = [
    'build_wad', 'level_lumps', 'sample_level',
    'pack_things', 'pack_linedefs', 'pack_sidedefs', 'pack_vertexes',
    'pack_segs', 'pack_subsectors', 'pack_nodes', 'pack_sectors',
    'LEVEL_LUMP_NAMES',
]

LEVEL_LUMP_NAMES = [
    b'THINGS', b'LINEDEFS', b'SIDEDEFS', b'VERTEXES', b'SEGS',
    b'SSECTORS', b'NODES', b'SECTORS', b'REJECT', b'BLOCKMAP',
]


def build_wad(lumps: Sequence[Tuple[bytes, bytes]], tag: bytes = b'IWAD') -> bytes:
    """Build a WAD with the lump data first, then the directory."""
    header = struct.Struct('<4sII')
    data = bytearray()
    directory = bytearray()
    pos = header.size
    for name, content in lumps:
        directory += struct.pack('<II8s', pos, len(content), name)
        data += content
        pos += len(content)
    return header.pack(tag, len(lumps), pos) + bytes(data) + bytes(directory)


def pack_things(*things: Tuple[int, int, int, int, int]) -> bytes:
    return b''.join(struct.pack('<hhhhH', *thing) for thing in things)


def pack_linedefs(*lines: Tuple[int, int, int, int, int, int, int]) -> bytes:
    return b''.join(struct.pack('<hhHhhhh', *line) for line in lines)


def pack_sidedefs(*sides: Tuple[int, int, bytes, bytes, bytes, int]) -> bytes:
    return b''.join(struct.pack('<hh8s8s8sh', *side) for side in sides)


def pack_vertexes(*verts: Tuple[int, int]) -> bytes:
    return b''.join(struct.pack('<hh', *vert) for vert in verts)


def pack_segs(*segs: Tuple[int, int, int, int, int, int]) -> bytes:
    return b''.join(struct.pack('<hhhhhh', *seg) for seg in segs)


def pack_subsectors(*ssecs: Tuple[int, int]) -> bytes:
    return b''.join(struct.pack('<hh', *ssec) for ssec in ssecs)


def pack_nodes(*nodes: Tuple[int, ...]) -> bytes:
    return b''.join(struct.pack('<14h', *node) for node in nodes)


def pack_sectors(*sectors: Tuple[int, int, bytes, bytes, int, int, int]) -> bytes:
    return b''.join(struct.pack('<hh8s8shhh', *sector) for sector in sectors)


def sample_level() -> Dict[bytes, bytes]:
    """A square room, split into three subsectors.

    Node 0 is the vertical line x=0, with subsector 0 on the right (x > 0) and 1 on the left.
    Node 1 is the root, the horizontal line y=0, with node 0 on the right (y < 0) and
    subsector 2 on the left.
    """
    return {
        b'THINGS': pack_things(
            (32, -32, 90, 1, 0b00111),  # Player 1
            (-32, 32, 0, 2, 0b00111),  # Player 2
            (0, 0, 45, 3004, 0b10011),  # Zombieman, multiplayer only.
            (16, -16, 180, 1, 0b00111),  # Player 1 again, this one is used.
        ),
        b'LINEDEFS': pack_linedefs(
            (0, 1, 0x0001, 0, 0, 0, -1),
            (1, 2, 0x0001, 0, 0, 1, -1),
            (2, 3, 0x0001, 0, 0, 2, -1),
            (3, 0, 0x0001, 0, 0, 3, -1),
            (4, 5, 0x0004, 0, 0, 4, 5),
        ),
        b'SIDEDEFS': pack_sidedefs(
            (0, 0, b'-', b'-', b'STARTAN3', 0),
            (0, 0, b'-', b'-', b'STARTAN3', 0),
            (0, 0, b'-', b'-', b'STARTAN3', 1),
            (0, 0, b'-', b'-', b'STARTAN3', 1),
            (0, 0, b'-', b'-', b'-', 0),
            (0, 0, b'-', b'-', b'-', 1),
        ),
        b'VERTEXES': pack_vertexes(
            (-64, -64), (64, -64), (64, 64), (-64, 64),
            (-64, 0), (64, 0),
        ),
        b'SEGS': pack_segs(
            (0, 1, 0, 0, 0, 0),
            (1, 2, 16384, 1, 0, 0),
            (1, 2, 16384, 1, 0, 64),
            (3, 0, -16384, 3, 0, 0),
            (2, 3, -32768, 2, 0, 0),
            (5, 4, -32768, 4, 1, 0),
        ),
        b'SSECTORS': pack_subsectors((2, 0), (2, 2), (2, 4)),
        b'NODES': pack_nodes(
            # x, y, dx, dy, right box, left box, right, left
            (0, 0, 0, 64, 0, -64, 0, 64, 0, -64, -64, 0, -0x8000, -0x8000 + 1),
            (0, 0, 64, 0, 0, -64, -64, 64, 64, 0, -64, 64, 0, -0x8000 + 2),
        ),
        b'SECTORS': pack_sectors(
            (0, 128, b'FLOOR4_8', b'CEIL3_5', 160, 0, 0),
            (8, 120, b'FLOOR4_8', b'CEIL3_5', 192, 1, 7),
        ),
        b'REJECT': b'\0',
        b'BLOCKMAP': b'',
    }


def level_lumps(marker: bytes, lumps: Dict[bytes, bytes]) -> List[Tuple[bytes, bytes]]:
    """Produce the marker and level lumps in directory order."""
    return [(marker, b''), *[(name, lumps[name]) for name in LEVEL_LUMP_NAMES]]
