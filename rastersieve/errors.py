"""Exceptions raised by the raster processing functions."""

from typing import Iterable, Tuple


class ShapeMismatchError(ValueError):
    """Two grids (or a grid and its mask/predicate result) differ in shape."""

    def __init__(self, expected: Tuple[int, ...], got: Tuple[int, ...], what: str = "grid"):
        self.expected = tuple(expected)
        self.got = tuple(got)
        super().__init__(f"Shape mismatch for {what}: expected {self.expected}, got {self.got}")


class InvalidCodeError(ValueError):
    """A thematic grid holds class codes that have no lookup table entry."""

    def __init__(self, codes: Iterable[int]):
        self.codes = sorted(int(c) for c in codes)
        super().__init__(f"Class codes without lookup entry: {self.codes}")
