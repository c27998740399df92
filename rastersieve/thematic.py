"""
Class lookup (raster attribute table) for integer-coded thematic rasters.

The binder maps class codes to names and extracts single or multi class masks
from a classified raster, e.g. the forest mask that is sieved afterwards.
"""

import os
from typing import Dict, Iterable, List, Optional, Union

import numpy as np
import pandas as pd

from rastersieve.cste import CellState, ClassInfo, DataPath
from rastersieve.errors import InvalidCodeError
from rastersieve.logger import get_logger

log = get_logger(__name__)

_COLOR_COLUMNS = ("red", "green", "blue")


class ThematicClassBinder:
    """
    Explicit code -> name lookup attached to a thematic raster.

    Codes are unique integers; names need not be unique (several codes may
    share a name). Cells equal to nodata are never looked up.
    """

    def __init__(
        self,
        lookup: Dict[int, str],
        nodata: Optional[int] = None,
        colors: Optional[Dict[int, List[int]]] = None
    ):
        """
        Initialize the binder.

        Args:
            lookup: Mapping {class_code: class_name}
            nodata: Code marking cells without data (not part of the lookup)
            colors: Optional mapping {class_code: [R, G, B]} for plotting
        """
        for code in lookup:
            if isinstance(code, bool) or not isinstance(code, (int, np.integer)):
                raise ValueError(f"Class codes must be integers, got {code!r}")
        if nodata is not None and nodata in lookup:
            raise ValueError(f"No-data code {nodata} cannot also be a class code")

        self.lookup: Dict[int, str] = {int(code): str(name) for code, name in lookup.items()}
        self.nodata = nodata
        self.colors = dict(colors) if colors is not None else {}

    @classmethod
    def default(cls, nodata: Optional[int] = None) -> "ThematicClassBinder":
        """Binder over the land cover classes defined in cste.ClassInfo."""
        return cls(ClassInfo.CLASS_NAMES, nodata=nodata, colors=ClassInfo.CLASS_COLORS)

    @property
    def codes(self) -> List[int]:
        return sorted(self.lookup)

    def __len__(self) -> int:
        return len(self.lookup)

    def __repr__(self) -> str:
        return f"ThematicClassBinder({self.lookup!r}, nodata={self.nodata!r})"

    # ------------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------------

    def name_of(self, code: int) -> str:
        """Name of a class code; raises InvalidCodeError when unknown."""
        try:
            return self.lookup[int(code)]
        except KeyError:
            raise InvalidCodeError([code]) from None

    def codes_for(self, name: str) -> List[int]:
        """All codes bearing a name (empty list when the name is unknown)."""
        return sorted(code for code, value in self.lookup.items() if value == name)

    def _nodata_cells(self, grid: np.ndarray) -> np.ndarray:
        if self.nodata is None:
            return np.zeros(grid.shape, dtype=bool)
        return grid == self.nodata

    def invalid_cells(self, grid: np.ndarray) -> np.ndarray:
        """Boolean mask of data cells whose code has no lookup entry."""
        grid = np.asarray(grid)
        return ~np.isin(grid, self.codes) & ~self._nodata_cells(grid)

    def validate(self, grid: np.ndarray) -> None:
        """
        Check that every data cell of the grid has a lookup entry.

        Raises:
            InvalidCodeError: Listing the codes found in the grid but not in
                              the lookup
        """
        grid = np.asarray(grid)
        invalid = self.invalid_cells(grid)
        if invalid.any():
            raise InvalidCodeError(np.unique(grid[invalid]).tolist())

    # ------------------------------------------------------------------------
    # Mask extraction
    # ------------------------------------------------------------------------

    def extract_mask(
        self,
        grid: np.ndarray,
        codes: Union[int, Iterable[int]],
        on_invalid: str = "raise",
        keep_nodata: bool = False
    ) -> np.ndarray:
        """
        Select the cells of one or several classes.

        Args:
            grid: Thematic raster with integer class codes
            codes: Class code or codes counted as foreground
            on_invalid: "raise" to fail on codes missing from the lookup,
                        "background" to treat them as background
            keep_nodata: If True, return an int8 state grid where nodata
                         cells are CellState.NODATA; otherwise a boolean
                         mask where nodata cells are background

        Returns:
            Boolean mask, or int8 state grid when keep_nodata is True

        Raises:
            InvalidCodeError: If a queried code is not in the lookup, or a
                              grid code is not and on_invalid is "raise"
        """
        if on_invalid not in ("raise", "background"):
            raise ValueError(f"Unknown invalid code policy: {on_invalid!r} (expected 'raise' or 'background')")

        grid = np.asarray(grid)
        queried = [int(c) for c in np.atleast_1d(codes)]
        unknown = [c for c in queried if c not in self.lookup]
        if unknown:
            raise InvalidCodeError(unknown)

        if on_invalid == "raise":
            self.validate(grid)
        else:
            n_invalid = int(self.invalid_cells(grid).sum())
            if n_invalid:
                log.warning(f"{n_invalid} cells with unknown codes treated as background")

        mask = np.isin(grid, queried)
        names = sorted({self.lookup[c] for c in queried})
        log.info(f"Extracted {int(mask.sum())} cells of class(es) {names}")

        if not keep_nodata:
            return mask

        states = np.full(grid.shape, CellState.BACKGROUND, dtype=np.int8)
        states[mask] = CellState.FOREGROUND
        states[self._nodata_cells(grid)] = CellState.NODATA
        return states

    def extract_named_mask(self, grid: np.ndarray, name: str, **kwargs) -> np.ndarray:
        """Mask of every class bearing the given name."""
        codes = self.codes_for(name)
        if not codes:
            raise ValueError(f"No class named {name!r} in the lookup")
        return self.extract_mask(grid, codes, **kwargs)

    # ------------------------------------------------------------------------
    # Attribute table
    # ------------------------------------------------------------------------

    def to_names(self, grid: np.ndarray) -> np.ndarray:
        """
        Replace codes by class names.

        Returns:
            Object array of names, None on nodata cells

        Raises:
            InvalidCodeError: If a data cell has no lookup entry
        """
        grid = np.asarray(grid)
        self.validate(grid)
        names = np.full(grid.shape, None, dtype=object)
        for code, name in self.lookup.items():
            names[grid == code] = name
        return names

    def attribute_table(self, grid: np.ndarray, cell_area: Optional[float] = None) -> pd.DataFrame:
        """
        Per-class cell counts of a thematic raster.

        Args:
            grid: Thematic raster
            cell_area: Area of one cell; adds an "area" column when given

        Returns:
            DataFrame with columns code, name, count (, area), one row per
            lookup code in code order
        """
        grid = np.asarray(grid)
        self.validate(grid)

        rows = []
        for code in self.codes:
            count = int((grid == code).sum())
            row = {'code': code, 'name': self.lookup[code], 'count': count}
            if cell_area is not None:
                row['area'] = count * cell_area
            rows.append(row)

        columns = ['code', 'name', 'count'] + (['area'] if cell_area is not None else [])
        return pd.DataFrame(rows, columns=columns)

    def to_csv(self, csv_path: str = DataPath.CSV_ATTRIBUTE_TABLE) -> None:
        """
        Save the lookup as a CSV with code, name and red, green, blue columns.

        Color columns are empty for codes without a color. The nodata code is
        a property of the raster, not of the table, and is not written.
        """
        rows = []
        for code in self.codes:
            color = self.colors.get(code)
            rows.append({
                'code': code,
                'name': self.lookup[code],
                'red': color[0] if color is not None else None,
                'green': color[1] if color is not None else None,
                'blue': color[2] if color is not None else None,
            })
        df = pd.DataFrame(rows, columns=['code', 'name'] + list(_COLOR_COLUMNS))

        directory = os.path.dirname(csv_path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        df.to_csv(csv_path, index=False)
        log.info(f"Saved class lookup to {csv_path}")

    @classmethod
    def from_csv(
        cls,
        csv_path: str = DataPath.CSV_ATTRIBUTE_TABLE,
        nodata: Optional[int] = None
    ) -> "ThematicClassBinder":
        """
        Load a lookup from a CSV with code and name columns.

        Optional red, green and blue columns give the class colors; rows with
        an empty color get none. nodata must be given here since the CSV does
        not store it.

        Raises:
            ValueError: If columns are missing or a code appears twice
        """
        df = pd.read_csv(csv_path)

        required_columns = {'code', 'name'}
        if not required_columns.issubset(df.columns):
            raise ValueError(f"CSV must contain columns: {required_columns}")
        if df['code'].duplicated().any():
            duplicated = df.loc[df['code'].duplicated(), 'code'].tolist()
            raise ValueError(f"Duplicated class codes in {csv_path}: {duplicated}")

        lookup = {int(row['code']): str(row['name']) for _, row in df.iterrows()}

        colors = {}
        if set(_COLOR_COLUMNS).issubset(df.columns):
            with_color = df.dropna(subset=list(_COLOR_COLUMNS))
            for _, row in with_color.iterrows():
                colors[int(row['code'])] = [int(row[c]) for c in _COLOR_COLUMNS]

        return cls(lookup, nodata=nodata, colors=colors)
