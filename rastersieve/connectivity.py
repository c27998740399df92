"""
Adjacency rules for connected component extraction on 2D grids.

- ROOK: 4 neighbours sharing an edge (N, S, E, W)
- QUEEN: 8 neighbours sharing an edge or a corner
"""

from enum import Enum
from typing import Tuple, Union

import numpy as np


class Adjacency(Enum):
    """Which neighbouring cells count as connected."""
    ROOK = 4
    QUEEN = 8

    @classmethod
    def parse(cls, value: Union["Adjacency", str, int]) -> "Adjacency":
        """
        Convert a user supplied value to an Adjacency.

        Accepts an Adjacency, a name ("rook", "queen") or a neighbour count
        (4, 8, "4", "8").

        Raises:
            ValueError: If the value does not name an adjacency rule
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            key = value.strip().lower()
            if key in ("rook", "4"):
                return cls.ROOK
            if key in ("queen", "8"):
                return cls.QUEEN
        elif isinstance(value, (int, np.integer)) and not isinstance(value, bool):
            if int(value) == 4:
                return cls.ROOK
            if int(value) == 8:
                return cls.QUEEN
        raise ValueError(f"Unknown adjacency rule: {value!r} (expected 'rook' or 'queen')")

    @property
    def offsets(self) -> Tuple[Tuple[int, int], ...]:
        """(row, col) deltas of the neighbours of a cell."""
        if self is Adjacency.ROOK:
            return ((-1, 0), (0, -1), (0, 1), (1, 0))
        return (
            (-1, -1), (-1, 0), (-1, 1),
            (0, -1), (0, 1),
            (1, -1), (1, 0), (1, 1),
        )

    @property
    def structure(self) -> np.ndarray:
        """3x3 structuring element for scipy.ndimage."""
        if self is Adjacency.ROOK:
            return np.array([[0, 1, 0], [1, 1, 1], [0, 1, 0]], dtype=bool)
        return np.ones((3, 3), dtype=bool)

    @property
    def skimage_connectivity(self) -> int:
        """Connectivity argument of skimage.measure.label."""
        return 1 if self is Adjacency.ROOK else 2

    @property
    def opencv_connectivity(self) -> int:
        """Connectivity argument of cv2.connectedComponents."""
        return self.value
