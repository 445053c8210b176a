"""
The binformat module :mod:`binformat` contains functionality for handling the fixed-layout lumps \
in WAD files, essentially expanding on :external:mod:`struct`'s functionality.

"""
from typing import IO, Any, Dict, Final, Hashable, Iterator, Tuple, Union
from struct import Struct
import functools

from wadtools import FormatError, logger


__all__ = [
    'NAME_LEN', 'ENCODING', 'BAMS_PER_45',
    'iter_records',
    'decode_name', 'encode_name',
    'bams_to_degrees',
    'DeferredWrites',
]

LOGGER = logger.get_logger(__name__)

#: Lump names and texture names are always this many bytes.
NAME_LEN: Final = 8
#: The encoding used for all text in WAD files.
ENCODING: Final = 'ascii'
#: Binary angle units in 45 degrees.
BAMS_PER_45: Final = 8192

_cached_struct = functools.lru_cache()(Struct)


def iter_records(fmt: Union[Struct, str], data: Union[bytes, memoryview], kind: str = '') -> Iterator[Tuple[Any, ...]]:
    """Unpack every complete record in the data.

    Lumps are a plain array of fixed-size structures. If the length isn't a multiple of the size,
    the partial record at the end is skipped.
    """
    if not isinstance(fmt, Struct):
        fmt = _cached_struct(fmt)
    count, extra = divmod(len(data), fmt.size)
    if extra:
        LOGGER.debug(
            'Ignoring {} trailing bytes in {} lump ({} records of {} bytes)',
            extra, kind or fmt.format, count, fmt.size,
        )
        data = memoryview(data)[:count * fmt.size]
    return fmt.iter_unpack(data)


def decode_name(raw: bytes, kind: str) -> str:
    """Decode a fixed-width name field.

    Padding NULs are part of the value and are kept, so names compare exactly.
    """
    try:
        return raw.decode(ENCODING)
    except UnicodeDecodeError as exc:
        raise FormatError(kind, f'Name {raw!r} is not valid text: {exc.reason}') from None


def encode_name(name: str, kind: str = 'name') -> bytes:
    """Encode a name back into the fixed-width field, padding with NULs."""
    raw = name.encode(ENCODING)
    if len(raw) > NAME_LEN:
        raise ValueError(f'{kind} "{name}" exceeds {NAME_LEN} character limit')
    return raw.ljust(NAME_LEN, b'\0')


def bams_to_degrees(bams: int) -> float:
    """Convert a 16-bit binary angle into degrees."""
    return bams * 45.0 / BAMS_PER_45


class DeferredWrites:
    """Several formats require offsets or similar data to be written referring to data later in the file.

    Initially null bytes are written in the slots, then the data is filled in at the end.

    To use this class, initialise it with the open and seekable file. Call :py:func:`defer()` when
    reaching the relevant parts of the file, passing a format string for the structure and a hashable
    key used to identify it later. Once the value has been determined, call :py:func:`set_data()`
    to store the data. When the file is written out, call :py:func:`write()` which will seek
    back and fill in the values.
    """
    def __init__(self, file: IO[bytes]) -> None:
        self.file = file
        # Position to write to, and the struct format to use.
        self.loc: Dict[Hashable, Tuple[int, Struct]] = {}
        # Then the bytes to write there.
        self.data: Dict[Hashable, bytes] = {}

    def defer(self, key: Hashable, fmt: Union[str, Struct], write: bool = False) -> None:
        """Mark that data of the specified format is going to be written here.

        :param key: Any hashable object, used to identify this location later.
        :param fmt: The structure of the data, either a :external:py:class:`struct.Struct`
            or a format string.
        :param write: If true, write null bytes to occupy the space in the file.
        """
        if isinstance(fmt, str):
            fmt = _cached_struct(fmt)
        self.loc[key] = (self.file.tell(), fmt)
        if write:
            self.file.write(bytes(fmt.size))

    def set_data(self, key: Hashable, *data: Union[int, bytes]) -> None:
        """Specify the data for the given key."""
        off, fmt = self.loc[key]
        self.data[key] = packed = fmt.pack(*data)
        assert len(packed) == fmt.size

    def write(self) -> None:
        """Write out all the data. All values should have been set."""
        prev_pos = self.file.tell()
        for key, (off, fmt) in self.loc.items():
            try:
                data = self.data.pop(key)
            except KeyError:
                raise ValueError(f'No data for key "{key}"!') from None
            self.file.seek(off)
            self.file.write(data)
        self.loc.clear()
        if self.data:
            raise ValueError(f'Data not specified for keys {list(self.data)}!')
        self.file.seek(prev_pos)
