"""
Sieve (clump-and-filter) of classified raster masks.

Foreground components smaller than a threshold are set to background. The
threshold is a cell count, or a minimum mapping unit area converted to a cell
count from the cell dimensions.

Processing order:
    1. Label connected foreground components (labeling.py)
    2. Build the component size table
    3. Keep cells whose component size reaches the threshold

All functions return new arrays; inputs are never modified.
"""

import math
from typing import Dict, Iterable, Optional, Tuple, Union

import numpy as np
from scipy import ndimage

from rastersieve.connectivity import Adjacency
from rastersieve.cste import CellState, ProcessingConfig
from rastersieve.errors import ShapeMismatchError
from rastersieve.labeling import (
    ForegroundSelector,
    as_foreground,
    component_sizes,
    label_components,
    label_components_tiled,
)
from rastersieve.logger import get_logger

log = get_logger(__name__)

SQUARE_METRES_PER_HECTARE: float = 10_000.0


def _check_threshold(threshold: Union[int, float]) -> int:
    """Return the threshold as an int; it must be a non-negative whole number."""
    if isinstance(threshold, bool) or not float(threshold).is_integer():
        raise ValueError(f"Sieve threshold must be a whole number of cells, got {threshold!r}")
    if threshold < 0:
        raise ValueError(f"Sieve threshold must be non-negative, got {threshold}")
    return int(threshold)


# ============================================================================
# SIEVE FILTER
# ============================================================================

def filter_components(
    grid: np.ndarray,
    labels: np.ndarray,
    sizes: Dict[int, int],
    threshold: int
) -> np.ndarray:
    """
    Set to background every foreground cell whose component is too small.

    A cell is foreground in the output iff it is foreground in the input and
    sizes[labels[cell]] >= threshold.

    Args:
        grid: Boolean mask or int state grid (see CellState)
        labels: Labeled grid of the same shape, from label_components
        sizes: Size table of labels, from component_sizes
        threshold: Minimum component size in cells

    Returns:
        New grid with the dtype of the input. For state grids, removed cells
        become CellState.BACKGROUND and NODATA cells are kept.

    Raises:
        ShapeMismatchError: If grid and labels differ in shape
        ValueError: If labels do not match the grid foreground or a label has
                    no size entry
    """
    grid = np.asarray(grid)
    labels = np.asarray(labels)
    if grid.shape != labels.shape:
        raise ShapeMismatchError(grid.shape, labels.shape, what="labeled grid")
    threshold = _check_threshold(threshold)

    mask = as_foreground(grid)
    if not np.array_equal(mask, labels > 0):
        raise ValueError("Labeled grid does not match the foreground of the grid")

    #! Size lookup indexed by label
    size_lookup = np.zeros(int(labels.max(initial=0)) + 1, dtype=np.int64)
    for lab, count in sizes.items():
        if 0 < lab < len(size_lookup):
            size_lookup[lab] = count

    present = np.unique(labels[mask])
    missing = [int(lab) for lab in present if int(lab) not in sizes]
    if missing:
        raise ValueError(f"Labels without size entry: {missing[:10]}")

    keep = size_lookup >= threshold
    keep[ProcessingConfig.BACKGROUND_LABEL] = False
    kept = keep[labels]

    if grid.dtype == bool:
        return kept

    result = grid.copy()
    result[mask & ~kept] = CellState.BACKGROUND
    return result


def sieve_mask(
    grid: np.ndarray,
    threshold: int,
    adjacency: Union[Adjacency, str] = ProcessingConfig.DEFAULT_ADJACENCY,
    foreground: ForegroundSelector = None,
    backend: str = ProcessingConfig.LABEL_BACKEND,
    tile_shape: Optional[Tuple[int, int]] = None,
    n_jobs: int = 1
) -> np.ndarray:
    """
    Remove foreground components smaller than threshold cells.

    Args:
        grid: Boolean mask or state grid. When foreground is given, the grid
              is any 2D array and the result is a boolean mask
        threshold: Minimum component size in cells (0 and 1 keep everything)
        adjacency: Adjacency rule used to build components
        foreground: Optional foreground selection (predicate or class codes)
        backend: Labeling backend
        tile_shape: Label tile by tile with this tile shape when given
        n_jobs: Worker processes for tiled labeling

    Returns:
        Sieved grid, same shape as the input

    Example:
        >>> mask = np.zeros((5, 5), dtype=bool)
        >>> mask[2, 2] = True
        >>> sieve_mask(mask, 2).any()
        False
    """
    threshold = _check_threshold(threshold)
    grid = np.asarray(grid)
    if foreground is not None:
        grid = as_foreground(grid, foreground)
    else:
        as_foreground(grid)

    if threshold <= 1:
        log.info(f"Sieve threshold {threshold} keeps every component, returning a copy")
        return grid.copy()

    if tile_shape is None:
        labels, n_components = label_components(grid, adjacency, backend=backend)
    else:
        labels, n_components = label_components_tiled(
            grid,
            adjacency,
            tile_shape=tile_shape,
            n_jobs=n_jobs,
            backend=backend
        )

    sizes = component_sizes(labels)
    result = filter_components(grid, labels, sizes, threshold)

    removed = [lab for lab, size in sizes.items() if size < threshold]
    removed_cells = sum(sizes[lab] for lab in removed)
    log.info(
        f"Sieve (threshold={threshold}, adjacency={Adjacency.parse(adjacency).name.lower()}): "
        f"removed {len(removed)}/{n_components} components ({removed_cells} cells)"
    )
    return result


# ============================================================================
# MINIMUM MAPPING UNIT
# ============================================================================

def hectares_to_square_metres(hectares: float) -> float:
    """Convert an area in hectares to square metres."""
    return hectares * SQUARE_METRES_PER_HECTARE


def area_to_cell_threshold(
    min_area: float,
    cell_width: float,
    cell_height: float,
    rounding: str = ProcessingConfig.THRESHOLD_ROUNDING
) -> int:
    """
    Convert a minimum mapping unit area to a cell count threshold.

    With the default "ceil" policy a kept component always covers at least
    min_area: 5000 m2 on 30 m x 30 m cells is 5.56 cells, giving 6.

    Args:
        min_area: Minimum area, in the squared units of the cell size
        cell_width: Cell width (absolute value of the pixel size)
        cell_height: Cell height
        rounding: "ceil" (default), "floor" or "round" (half up)

    Returns:
        Threshold in cells
    """
    if cell_width <= 0 or cell_height <= 0:
        raise ValueError(f"Cell dimensions must be positive, got {cell_width} x {cell_height}")
    if min_area < 0:
        raise ValueError(f"Minimum area must be non-negative, got {min_area}")

    cell_area = cell_width * cell_height
    # Snap float noise such as 1800 / 900.0000001
    ratio = round(min_area / cell_area, 9)

    if rounding == "ceil":
        count = math.ceil(ratio)
    elif rounding == "floor":
        count = math.floor(ratio)
    elif rounding == "round":
        count = math.floor(ratio + 0.5)
    else:
        raise ValueError(f"Unknown rounding policy: {rounding!r} (expected 'ceil', 'floor' or 'round')")

    log.info(
        f"Minimum area {min_area} / cell area {cell_area} = {ratio:.3f} cells "
        f"-> threshold {count} ({rounding})"
    )
    return int(count)


def sieve_by_area(
    grid: np.ndarray,
    min_area: float,
    cell_width: float,
    cell_height: float,
    adjacency: Union[Adjacency, str] = ProcessingConfig.DEFAULT_ADJACENCY,
    foreground: ForegroundSelector = None,
    rounding: str = ProcessingConfig.THRESHOLD_ROUNDING,
    backend: str = ProcessingConfig.LABEL_BACKEND
) -> np.ndarray:
    """Sieve with a minimum mapping unit instead of a cell count."""
    threshold = area_to_cell_threshold(min_area, cell_width, cell_height, rounding)
    return sieve_mask(grid, threshold, adjacency, foreground=foreground, backend=backend)


# ============================================================================
# CLASSIFIED RASTER SIEVE
# ============================================================================

def _is_nan(value: Union[int, float]) -> bool:
    return isinstance(value, (float, np.floating)) and math.isnan(value)


def _nodata_mask(grid: np.ndarray, nodata: Union[int, float]) -> np.ndarray:
    if _is_nan(nodata):
        return np.isnan(grid)
    return grid == nodata


def _dominant_neighbour(
    grid: np.ndarray,
    invalid: np.ndarray,
    labels: np.ndarray,
    lab: int,
    window: Tuple[slice, slice],
    structure: np.ndarray,
    code: Union[int, float]
) -> Optional[Union[int, float]]:
    """Most frequent class bordering one component (ties -> smallest code)."""
    component = labels[window] == lab
    ring = ndimage.binary_dilation(component, structure=structure) & ~component
    ring &= ~invalid[window]
    neighbours = grid[window][ring]
    neighbours = neighbours[neighbours != code]
    if neighbours.size == 0:
        return None
    values, counts = np.unique(neighbours, return_counts=True)
    return values[np.argmax(counts)]


def sieve_thematic(
    grid: np.ndarray,
    threshold: int,
    adjacency: Union[Adjacency, str] = ProcessingConfig.DEFAULT_ADJACENCY,
    nodata: Union[int, float] = ProcessingConfig.NODATA_CODE,
    classes: Optional[Iterable[int]] = None,
    replace: str = "nodata",
    backend: str = ProcessingConfig.LABEL_BACKEND
) -> np.ndarray:
    """
    Sieve every class of a classified raster.

    For each class code, components smaller than threshold are replaced.
    Replacement values are read from the input grid only, so the result does
    not depend on the order classes are processed in.

    Args:
        grid: 2D classified raster (integer class codes)
        threshold: Minimum component size in cells
        adjacency: Adjacency rule
        nodata: No-data code; never sieved, used as the replacement value
        classes: Class codes to sieve (default: every code present)
        replace: "nodata" to write nodata, "neighbour" to write the most
                 frequent neighbouring class (nodata when there is none)
        backend: Labeling backend

    Returns:
        New classified raster
    """
    grid = np.asarray(grid)
    if grid.ndim != 2:
        raise ValueError(f"Expected a 2D grid, got {grid.ndim} dimensions")
    if replace not in ("nodata", "neighbour"):
        raise ValueError(f"Unknown replacement mode: {replace!r} (expected 'nodata' or 'neighbour')")
    if nodata is None:
        raise ValueError("sieve_thematic needs a nodata value")
    if _is_nan(nodata) and not np.issubdtype(grid.dtype, np.floating):
        raise ValueError(f"NaN nodata needs a float grid, got dtype {grid.dtype}")
    threshold = _check_threshold(threshold)

    result = grid.copy()
    if threshold <= 1:
        return result

    adjacency = Adjacency.parse(adjacency)
    invalid = _nodata_mask(grid, nodata)
    codes = np.unique(grid[~invalid]) if classes is None else list(classes)

    rows, cols = grid.shape
    replaced_total = 0

    for code in codes:
        if _nodata_mask(np.asarray([code]), nodata)[0]:
            continue

        labels, n = label_components(grid, adjacency, foreground=code, backend=backend)
        if n == 0:
            continue

        sizes = np.bincount(labels.ravel(), minlength=n + 1)
        small = np.nonzero(sizes < threshold)[0]
        small = small[small != ProcessingConfig.BACKGROUND_LABEL]
        if small.size == 0:
            continue

        if replace == "nodata":
            result[np.isin(labels, small)] = nodata
        else:
            objects = ndimage.find_objects(labels)
            for lab in small.tolist():
                rs, cs = objects[lab - 1]
                # Grow the bounding box by one cell to include the border ring
                window = (
                    slice(max(rs.start - 1, 0), min(rs.stop + 1, rows)),
                    slice(max(cs.start - 1, 0), min(cs.stop + 1, cols)),
                )
                fill = _dominant_neighbour(
                    grid, invalid, labels, lab, window, adjacency.structure, code
                )
                result[window][labels[window] == lab] = nodata if fill is None else fill

        replaced_total += int(sizes[small].sum())
        log.info(f"Class {code}: replaced {small.size}/{n} components smaller than {threshold} cells")

    log.info(f"Thematic sieve replaced {replaced_total} cells ({replace})")
    return result
