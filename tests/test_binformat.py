"""Test the binformat helpers."""
from io import BytesIO
import struct

import pytest

from wadtools import FormatError
from wadtools.binformat import (
    DeferredWrites, bams_to_degrees, decode_name, encode_name, iter_records,
)


def test_iter_records() -> None:
    """Partial records at the end are skipped."""
    data = struct.pack('<hhhh', 1, 2, 3, 4)
    assert list(iter_records('<hh', data)) == [(1, 2), (3, 4)]
    assert list(iter_records(struct.Struct('<hh'), data + b'\0\0\0')) == [(1, 2), (3, 4)]
    assert list(iter_records('<hh', b'\0')) == []
    assert list(iter_records('<hh', memoryview(data)[4:])) == [(3, 4)]


def test_names() -> None:
    """Names are padded with NULs, and the padding is kept when decoding."""
    assert decode_name(b'STEP1\0\0\0', 'SIDEDEFS') == 'STEP1\0\0\0'
    assert decode_name(b'STEP1   ', 'SIDEDEFS') == 'STEP1   '
    assert encode_name('STEP1') == b'STEP1\0\0\0'
    assert encode_name('STEP1\0\0\0') == b'STEP1\0\0\0'
    with pytest.raises(ValueError, match='character limit'):
        encode_name('TOOLONGNAME')
    with pytest.raises(FormatError, match='SECTORS') as exc:
        decode_name(b'\xC3\xA9\0\0\0\0\0\0', 'SECTORS')
    assert exc.value.stage == 'SECTORS'


def test_bams() -> None:
    assert bams_to_degrees(8192) == 45.0
    assert bams_to_degrees(0) == 0.0
    assert bams_to_degrees(-8192) == -45.0
    assert bams_to_degrees(-16384) == -90.0


def test_deferred_writes() -> None:
    """Values are filled in at the deferred locations."""
    file = BytesIO()
    defer = DeferredWrites(file)
    file.write(b'head')
    defer.defer('first', '<I', write=True)
    file.write(b'middle')
    defer.defer(('second', 2), '<hh', write=True)
    file.write(b'end')
    defer.set_data('first', 0x12345678)
    defer.set_data(('second', 2), -1, 48)
    defer.write()
    assert file.tell() == len(file.getvalue())
    assert file.getvalue() == b'head\x78\x56\x34\x12middle\xFF\xFF\x30\x00end'


def test_deferred_writes_missing() -> None:
    """All the values must be set."""
    defer = DeferredWrites(BytesIO())
    defer.defer('first', '<I', write=True)
    with pytest.raises(ValueError, match='first'):
        defer.write()
