"""
Pixel tables of band stacks, with explicit no-data alignment.

Classifiers work on (n_pixels, n_bands) tables holding valid pixels only. The
flat position of every row is kept next to the table so that predictions are
written back to the exact cells they came from.
"""

from typing import Iterable, List, Optional, Tuple

import numpy as np
import pandas as pd

from rastersieve.cste import BandInfo, GeneralConfig, ProcessingConfig
from rastersieve.errors import ShapeMismatchError
from rastersieve.logger import get_logger

log = get_logger(__name__)


def valid_pixel_mask(stack: np.ndarray, nodata: Optional[float] = None) -> np.ndarray:
    """
    Cells where every band holds data.

    Args:
        stack: Band stack (H, W, B), or a single band (H, W)
        nodata: Extra no-data value besides NaN / inf

    Returns:
        Boolean mask (H, W)
    """
    stack = np.asarray(stack)
    if stack.ndim == 2:
        stack = stack[:, :, np.newaxis]
    if stack.ndim != 3:
        raise ValueError(f"Expected an (H, W, B) band stack, got shape {stack.shape}")

    valid = np.all(np.isfinite(stack), axis=2)
    if nodata is not None:
        valid &= np.all(stack != nodata, axis=2)
    return valid


def stack_to_samples(
    stack: np.ndarray,
    nodata: Optional[float] = None
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Flatten a band stack into a table of valid pixels.

    Args:
        stack: Band stack (H, W, B)
        nodata: Extra no-data value besides NaN

    Returns:
        Tuple (X, flat_index):
        - X: (n_valid, B) pixel values in raster order
        - flat_index: (n_valid,) flat cell position of each row of X
    """
    stack = np.asarray(stack)
    valid = valid_pixel_mask(stack, nodata)
    flat_index = np.flatnonzero(valid)
    X = stack.reshape(-1, stack.shape[2])[flat_index]

    log.info(f"Pixel table: {len(flat_index):,} valid / {valid.size:,} cells")
    return X, flat_index


def samples_to_grid(
    values: np.ndarray,
    flat_index: np.ndarray,
    shape: Tuple[int, int],
    fill: float = ProcessingConfig.NODATA_CODE,
    dtype: Optional[np.dtype] = None
) -> np.ndarray:
    """
    Write per-pixel values back to their cells.

    Args:
        values: (n,) values, row i belongs to cell flat_index[i]
        flat_index: (n,) flat cell positions from stack_to_samples
        shape: (H, W) of the output grid
        fill: Value of cells without a row (no-data cells)
        dtype: Output dtype (default: dtype of values)

    Returns:
        Grid of shape (H, W)

    Raises:
        ShapeMismatchError: If values and flat_index differ in length
    """
    values = np.asarray(values)
    flat_index = np.asarray(flat_index)
    if values.shape[0] != flat_index.shape[0]:
        raise ShapeMismatchError(flat_index.shape, values.shape, what="per-pixel values")

    n_cells = int(np.prod(shape))
    if flat_index.size and (flat_index.min() < 0 or flat_index.max() >= n_cells):
        raise ValueError(f"Flat positions out of range for grid shape {shape}")

    grid = np.full(n_cells, fill, dtype=dtype or np.result_type(values.dtype, np.min_scalar_type(fill)))
    grid[flat_index] = values
    return grid.reshape(shape)


def sample_training_pixels(
    stack: np.ndarray,
    reference: np.ndarray,
    samples_per_class: int = ProcessingConfig.SAMPLES_PER_CLASS,
    nodata: Optional[float] = None,
    reference_nodata: Optional[int] = ProcessingConfig.NODATA_CODE,
    random_state: int = GeneralConfig.RANDOM_SEED,
    band_names: Optional[List[str]] = None
) -> pd.DataFrame:
    """
    Draw stratified random training pixels from a reference class raster.

    Args:
        stack: Band stack (H, W, B)
        reference: Reference classes (H, W)
        samples_per_class: Pixels drawn per class (all pixels when fewer)
        nodata: No-data value of the stack
        reference_nodata: No-data code of the reference raster
        random_state: Seed of the random generator
        band_names: Column names of the bands (default: BandInfo names or
                    band_<i>)

    Returns:
        DataFrame with one column per band plus row, col and class
    """
    stack = np.asarray(stack)
    reference = np.asarray(reference)
    if stack.shape[:2] != reference.shape:
        raise ShapeMismatchError(stack.shape[:2], reference.shape, what="reference raster")

    n_bands = stack.shape[2]
    if band_names is None:
        if n_bands == len(BandInfo.BAND_NAMES):
            band_names = [BandInfo.BAND_NAMES[i] for i in range(n_bands)]
        else:
            band_names = [f"band_{i + 1}" for i in range(n_bands)]
    if len(band_names) != n_bands:
        raise ValueError(f"Expected {n_bands} band names, got {len(band_names)}")

    usable = valid_pixel_mask(stack, nodata)
    if reference_nodata is not None:
        usable &= reference != reference_nodata

    rng = np.random.default_rng(random_state)
    frames = []
    for code in np.unique(reference[usable]):
        rows, cols = np.nonzero(usable & (reference == code))
        n = min(samples_per_class, len(rows))
        pick = np.sort(rng.choice(len(rows), size=n, replace=False))
        rows, cols = rows[pick], cols[pick]

        frame = pd.DataFrame(stack[rows, cols, :], columns=band_names)
        frame['row'] = rows
        frame['col'] = cols
        frame['class'] = int(code)
        frames.append(frame)
        log.info(f"Sampled {n} training pixels for class {code}")

    if not frames:
        return pd.DataFrame(columns=list(band_names) + ['row', 'col', 'class'])
    return pd.concat(frames, ignore_index=True)


def compute_class_pixel_counts(grid: np.ndarray, codes: Iterable[int]) -> List[int]:
    """
    Compute the absolute number of cells of each class.

    Parameters:
        grid (np.ndarray): 2D classified raster
        codes (Iterable[int]): Class codes to count

    Returns:
        List[int]: Number of cells per code, in the order of codes
    """
    grid = np.asarray(grid)
    return [int((grid == c).sum()) for c in codes]
