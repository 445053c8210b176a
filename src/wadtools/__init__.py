"""Read Doom-engine WAD files, decode their levels and query the BSP node tree."""
from typing import TYPE_CHECKING, Union
from typing_extensions import TypeAlias
import os as _os
import sys as _sys


__version__: str
if not TYPE_CHECKING:
    try:
        from ._version import __version__
    except ImportError:
        __version__ = '<unknown>'
    else:
        # Discard the now-useless module. Use globals so static analysis ignores this.
        del _sys.modules[globals().pop('_version').__name__]

__all__ = [
    '__version__',
    'FormatError', 'StringPath',
    'WAD', 'WADKind', 'Lump', 'LumpName', 'LevelLumps',
    'Level', 'Vertex',

    # Submodules:
    'binformat', 'bsp', 'const', 'level', 'logger', 'wad',  # pyright: ignore
]

StringPath: TypeAlias = Union[str, '_os.PathLike[str]']


class FormatError(ValueError):
    """Raised when a WAD file is malformed.

    Loading stops at the first error, since anything decoded from a misread buffer is unusable.
    """
    stage: str
    """The part of the file being read: ``header``, ``directory``, ``grouping``, or a lump name."""
    mess: str
    """The error message that occurred."""

    def __init__(self, stage: str, message: str) -> None:
        super().__init__(stage, message)
        self.stage = stage
        self.mess = message

    def __repr__(self) -> str:
        return f'FormatError({self.stage!r}, {self.mess!r})'

    def __str__(self) -> str:
        return f'[{self.stage}] {self.mess}'


# Import these, so people can reference 'wadtools.WAD' instead of 'wadtools.wad.WAD'.
# Should be done after other code, so everything's initialised.
# isort: off
from wadtools.wad import WAD, WADKind, Lump, LumpName, LevelLumps
from wadtools.level import Level, Vertex
