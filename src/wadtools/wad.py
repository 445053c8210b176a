"""Read and write the WAD container: the header, the lump directory, and the per-level lump groups.

Lump data is sliced from the loaded buffer without copying. Levels are only decoded when
requested through :py:meth:`WAD.level`.
"""
from typing import TYPE_CHECKING, Dict, Final, List, Optional, Sequence, Tuple, Union
from typing_extensions import TypeAlias
from io import BytesIO
import struct

import attrs

from wadtools import FormatError, StringPath, logger
from wadtools.binformat import NAME_LEN, DeferredWrites, decode_name
from wadtools.const import WADKind


if TYPE_CHECKING:
    from wadtools.level import Level


__all__ = [
    'WADKind', 'LumpName', 'LevelName', 'Lump', 'LevelLumps', 'WAD',
    'LEVEL_LUMPS', 'PALETTE', 'group_levels',
]

LOGGER = logger.get_logger(__name__)

HEADER: Final = struct.Struct('<4sII')  # Tag, lump count, directory offset.
DIR_ENTRY: Final = struct.Struct('<II8s')  # Offset, length, name.


@attrs.frozen(repr=False)
class LumpName:
    """The fixed 8-byte name of a lump.

    Names are compared exactly, padding included: ``LumpName.pad('E1M1')`` equals
    ``LumpName(b'E1M1\\0\\0\\0\\0')`` but not ``LumpName(b'E1M1    ')``.
    """
    raw: bytes = attrs.field(converter=bytes)

    @raw.validator
    def _check_len(self, _: 'attrs.Attribute[bytes]', value: bytes) -> None:
        if len(value) != NAME_LEN:
            raise ValueError(f'Lump names must be exactly {NAME_LEN} bytes, not {value!r}!')

    @classmethod
    def pad(cls, name: Union[str, bytes]) -> 'LumpName':
        """Build a name from a shorter string, padding with NUL bytes."""
        if isinstance(name, str):
            name = name.encode('ascii')
        if len(name) > NAME_LEN:
            raise ValueError(f'Lump name {name!r} exceeds {NAME_LEN} character limit')
        return cls(name.ljust(NAME_LEN, b'\0'))

    @property
    def text(self) -> str:
        """The name decoded as text, with padding kept."""
        return decode_name(self.raw, 'directory')

    def __str__(self) -> str:
        return self.raw.rstrip(b'\0').decode('ascii', 'backslashreplace')

    def __repr__(self) -> str:
        return f'LumpName({self.raw!r})'


LevelName = LumpName
Buffer: TypeAlias = Union[bytes, memoryview]

#: The lump which ends the run of levels.
PALETTE: Final = LumpName(b'PLAYPAL\0')
#: The lumps following a level marker, in order.
LEVEL_LUMPS: Final[Sequence[str]] = (
    'THINGS', 'LINEDEFS', 'SIDEDEFS', 'VERTEXES', 'SEGS',
    'SSECTORS', 'NODES', 'SECTORS', 'REJECT', 'BLOCKMAP',
)


@attrs.frozen(repr=False)
class Lump:
    """A named block of data in the WAD."""
    name: LumpName
    data: memoryview = attrs.field(converter=memoryview, hash=False)

    def __repr__(self) -> str:
        return f'<Lump {str(self.name)!r}, {len(self.data)} bytes>'


@attrs.frozen
class LevelLumps:
    """The raw data for a level: the marker name, then each of the following lumps."""
    name: LumpName
    things: Buffer
    linedefs: Buffer
    sidedefs: Buffer
    vertexes: Buffer
    segs: Buffer
    ssectors: Buffer
    nodes: Buffer
    sectors: Buffer
    # Not decoded, kept to preserve the lump layout.
    reject: Buffer = b''
    blockmap: Buffer = b''

    @classmethod
    def from_lumps(cls, marker: Lump, lumps: Sequence[Lump]) -> 'LevelLumps':
        """Build from the marker and the ten following lumps."""
        if len(lumps) != len(LEVEL_LUMPS):
            raise FormatError(
                'grouping',
                f'Level {marker.name} needs {len(LEVEL_LUMPS)} lumps, got {len(lumps)}!',
            )
        for lump, expected in zip(lumps, LEVEL_LUMPS):
            if str(lump.name) != expected:
                LOGGER.warning(
                    'Level {} has "{}" lump where "{}" was expected.',
                    marker.name, lump.name, expected,
                )
        return cls(marker.name, *[lump.data for lump in lumps])

    def to_lumps(self) -> List[Lump]:
        """Produce the marker and level lumps, with the standard names."""
        return [
            Lump(self.name, b''),
            *[
                Lump(LumpName.pad(name), getattr(self, name.lower()))
                for name in LEVEL_LUMPS
            ]
        ]


def group_levels(lumps: Sequence[Lump], sentinel: LumpName = PALETTE) -> Dict[LumpName, LevelLumps]:
    """Split the start of the directory into levels.

    Each level is a marker lump followed by the ten lumps in :py:data:`LEVEL_LUMPS`. This repeats
    until the sentinel lump is reached.
    If a level name appears twice, the later one replaces the earlier.
    """
    if not lumps:
        raise FormatError('grouping', 'WAD has no lumps!')
    levels: Dict[LumpName, LevelLumps] = {}
    count = len(LEVEL_LUMPS)
    pos = 0
    while True:
        if pos >= len(lumps):
            LOGGER.warning('Reached end of directory without finding "{}" lump.', sentinel)
            break
        marker = lumps[pos]
        if marker.name == sentinel:
            break
        level_lumps = lumps[pos + 1: pos + 1 + count]
        if len(level_lumps) < count or any(lump.name == sentinel for lump in level_lumps):
            raise FormatError(
                'grouping',
                f'Level {marker.name} at lump #{pos} is truncated, '
                f'{count} lumps must follow the marker!',
            )
        if marker.name in levels:
            LOGGER.warning('Level {} is repeated at lump #{}, using the last copy.', marker.name, pos)
        levels[marker.name] = LevelLumps.from_lumps(marker, level_lumps)
        LOGGER.debug('Found level {} at lump #{}', marker.name, pos)
        pos += count + 1
    return levels


class WAD:
    """A loaded WAD file.

    The lump directory is read immediately. Levels are grouped and decoded on first access.
    """
    kind: WADKind
    lumps: Tuple[Lump, ...]

    def __init__(self, kind: WADKind, lumps: Sequence[Lump]) -> None:
        self.kind = kind
        self.lumps = tuple(lumps)
        self._levels: Optional[Dict[LumpName, LevelLumps]] = None
        self._parsed_levels: Dict[LumpName, 'Level'] = {}

    def __repr__(self) -> str:
        return f'<WAD {self.kind.name}, {len(self.lumps)} lumps>'

    @classmethod
    def read(cls, filename: StringPath) -> 'WAD':
        """Load a WAD from a file."""
        with open(filename, 'rb') as file:
            data = file.read()
        with logger.context(str(filename)):
            return cls.parse(data)

    @classmethod
    def parse(cls, data: Union[bytes, bytearray, memoryview]) -> 'WAD':
        """Parse the WAD header and directory from a buffer."""
        buf = memoryview(data)
        if len(buf) < HEADER.size:
            raise FormatError('header', f'File is only {len(buf)} bytes, too short for a header!')
        tag, lump_count, dir_offset = HEADER.unpack_from(buf)
        try:
            kind = WADKind(tag)
        except ValueError:
            raise FormatError('header', f'File is not a WAD file, got tag {tag!r}!') from None

        dir_end = dir_offset + lump_count * DIR_ENTRY.size
        if dir_end > len(buf):
            raise FormatError(
                'directory',
                f'Directory of {lump_count} lumps at {dir_offset} '
                f'exceeds file size of {len(buf)} bytes!',
            )
        LOGGER.debug('{} with {} lumps, directory at {}', kind.name, lump_count, dir_offset)

        lumps: List[Lump] = []
        for index in range(lump_count):
            offset, length, name = DIR_ENTRY.unpack_from(buf, dir_offset + index * DIR_ENTRY.size)
            # Raises if the name isn't text.
            decode_name(name, 'directory')
            if offset + length > len(buf):
                raise FormatError(
                    'directory',
                    f'Lump #{index} {name!r} at {offset} with {length} bytes '
                    f'exceeds file size of {len(buf)} bytes!',
                )
            lumps.append(Lump(LumpName(name), buf[offset: offset + length]))
        return cls(kind, lumps)

    def build(self) -> bytes:
        """Produce the file data for this WAD.

        Lump data is written after the header, followed by the directory.
        """
        file = BytesIO()
        defer = DeferredWrites(file)
        file.write(self.kind.value)
        file.write(struct.pack('<I', len(self.lumps)))
        defer.defer('directory', '<I', write=True)

        entries: List[bytes] = []
        for lump in self.lumps:
            entries.append(DIR_ENTRY.pack(file.tell() if lump.data else 0, len(lump.data), lump.name.raw))
            file.write(lump.data)

        defer.set_data('directory', file.tell())
        file.write(b''.join(entries))
        defer.write()
        return file.getvalue()

    def find_lump(self, name: Union[LumpName, str]) -> Lump:
        """Return the first lump with this name."""
        if isinstance(name, str):
            name = LumpName.pad(name)
        for lump in self.lumps:
            if lump.name == name:
                return lump
        raise KeyError(f'No lump named {name}!')

    @property
    def levels(self) -> Dict[LumpName, LevelLumps]:
        """The raw lumps for each level, keyed by the exact marker name."""
        if self._levels is None:
            self._levels = group_levels(self.lumps)
        return self._levels

    def level(self, name: Union[LumpName, str]) -> 'Level':
        """Decode the specified level.

        A string name is padded with NULs first. Raises :external:py:class:`KeyError` if not present.
        """
        from wadtools.level import Level

        if isinstance(name, str):
            name = LumpName.pad(name)
        try:
            return self._parsed_levels[name]
        except KeyError:
            pass
        try:
            lumps = self.levels[name]
        except KeyError:
            raise KeyError(f'{name!r} not in {list(self.levels)}') from None
        level = self._parsed_levels[name] = Level.parse(lumps)
        return level
