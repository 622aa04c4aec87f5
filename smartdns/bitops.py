"""Bitmap searching and population counts.

Bitmaps are Python integers (bit ``n`` is ``1 << n``) or sequences of
64-bit words with the lowest bits in the first word.
"""

from __future__ import annotations

from typing import Sequence, Union

BITS_PER_LONG = 64

Bitmap = Union[int, Sequence[int]]


def _as_int(bits: Bitmap) -> int:
    if isinstance(bits, int):
        return bits
    mask = (1 << BITS_PER_LONG) - 1
    value = 0
    for shift, word in enumerate(bits):
        value |= (word & mask) << (shift * BITS_PER_LONG)
    return value


def _first_set(value: int, size: int, offset: int) -> int:
    if offset >= size:
        return size
    window = (value >> offset) & ((1 << (size - offset)) - 1)
    if not window:
        return size
    return offset + (window & -window).bit_length() - 1


def find_next_bit(bits: Bitmap, size: int, offset: int) -> int:
    """Index of the first set bit at or after ``offset``, or ``size``."""
    return _first_set(_as_int(bits), size, offset)


def find_first_bit(bits: Bitmap, size: int) -> int:
    """Index of the first set bit, or ``size``."""
    return _first_set(_as_int(bits), size, 0)


def find_next_zero_bit(bits: Bitmap, size: int, offset: int) -> int:
    """Index of the first clear bit at or after ``offset``, or ``size``."""
    return _first_set(~_as_int(bits), size, offset)


def find_first_zero_bit(bits: Bitmap, size: int) -> int:
    """Index of the first clear bit, or ``size``."""
    return _first_set(~_as_int(bits), size, 0)


def find_next_and_bit(bits1: Bitmap, bits2: Bitmap, size: int, offset: int) -> int:
    """Index of the first bit set in both bitmaps at or after ``offset``, or ``size``."""
    return _first_set(_as_int(bits1) & _as_int(bits2), size, offset)


def _weight(word: int, width: int) -> int:
    return (word & ((1 << width) - 1)).bit_count()


def hweight8(word: int) -> int:
    """Number of set bits in the low 8 bits of ``word``."""
    return _weight(word, 8)


def hweight16(word: int) -> int:
    """Number of set bits in the low 16 bits of ``word``."""
    return _weight(word, 16)


def hweight32(word: int) -> int:
    """Number of set bits in the low 32 bits of ``word``."""
    return _weight(word, 32)


def hweight64(word: int) -> int:
    """Number of set bits in the low 64 bits of ``word``."""
    return _weight(word, 64)