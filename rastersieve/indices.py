"""
Spectral indices, reclassification and band histograms of a band stack.

Stacks are (H, W, B) float arrays; no-data cells are NaN (see io_utils).
"""

from typing import Dict, Iterable, Optional, Sequence, Tuple

import numpy as np

from rastersieve.cste import BandInfo, ProcessingConfig


def normalized_difference(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    """
    Normalized difference (a - b) / (a + b).

    Cells with a zero denominator are NaN; NaN inputs propagate.
    """
    a = np.asarray(a, dtype=np.float64)
    b = np.asarray(b, dtype=np.float64)
    if a.shape != b.shape:
        raise ValueError(f"Shape mismatch: {a.shape} vs {b.shape}")

    numerator = a - b
    denominator = a + b
    result = np.full(a.shape, np.nan, dtype=np.float64)
    np.divide(numerator, denominator, out=result, where=denominator != 0)
    return result


def ndvi(stack: np.ndarray, red: int = BandInfo.RED, nir: int = BandInfo.NIR) -> np.ndarray:
    """
    Normalized Difference Vegetation Index: (NIR - Red) / (NIR + Red).

    Args:
        stack: Band stack (H, W, B)
        red: Index of the red band
        nir: Index of the near-infrared band

    Returns:
        NDVI map (H, W) in [-1, 1]
    """
    stack = _check_stack(stack)
    return normalized_difference(stack[:, :, nir], stack[:, :, red])


def ndwi(stack: np.ndarray, green: int = BandInfo.GREEN, nir: int = BandInfo.NIR) -> np.ndarray:
    """Normalized Difference Water Index (McFeeters): (Green - NIR) / (Green + NIR)."""
    stack = _check_stack(stack)
    return normalized_difference(stack[:, :, green], stack[:, :, nir])


def _check_stack(stack: np.ndarray) -> np.ndarray:
    stack = np.asarray(stack)
    if stack.ndim != 3:
        raise ValueError(f"Expected an (H, W, B) band stack, got shape {stack.shape}")
    return stack


def reclassify(
    values: np.ndarray,
    breaks: Sequence[float],
    codes: Sequence[int],
    nodata: int = ProcessingConfig.NODATA_CODE
) -> np.ndarray:
    """
    Reclassify continuous values into class codes.

    Interval i is [breaks[i - 1], breaks[i]), with -inf and +inf added at both
    ends, so codes needs len(breaks) + 1 entries.

    Example:
        >>> reclassify(ndvi_map, breaks=[0.4], codes=[1, 2])  # 2 = vegetation

    Args:
        values: Continuous 2D map (NaN = no data)
        breaks: Increasing class boundaries
        codes: Class code of each interval
        nodata: Code written on NaN cells

    Returns:
        int32 classified map
    """
    breaks = np.asarray(breaks, dtype=np.float64)
    codes = np.asarray(codes, dtype=np.int32)
    if len(codes) != len(breaks) + 1:
        raise ValueError(f"Need {len(breaks) + 1} codes for {len(breaks)} breaks, got {len(codes)}")
    if np.any(np.diff(breaks) <= 0):
        raise ValueError("Breaks must be strictly increasing")

    values = np.asarray(values, dtype=np.float64)
    classified = codes[np.digitize(values, breaks)]
    classified[np.isnan(values)] = nodata
    return classified


def vegetation_classes(
    stack: np.ndarray,
    threshold: float = ProcessingConfig.NDVI_VEGETATION_THRESHOLD,
    codes: Sequence[int] = (1, 2),
    nodata: int = ProcessingConfig.NODATA_CODE
) -> np.ndarray:
    """
    Two-class map from NDVI: codes[0] below threshold, codes[1] at or above.

    Cells without data (NaN in any of the red / NIR bands) get nodata.
    """
    return reclassify(ndvi(stack), breaks=[threshold], codes=codes, nodata=nodata)


def band_histograms(
    stack: np.ndarray,
    bands: Optional[Iterable[int]] = None,
    bins: int = ProcessingConfig.HISTOGRAM_BINS,
    value_range: Optional[Tuple[float, float]] = None
) -> Dict[int, Tuple[np.ndarray, np.ndarray]]:
    """
    Histogram of each band, ignoring NaN cells.

    Args:
        stack: Band stack (H, W, B)
        bands: Band indices (default: all)
        bins: Number of bins
        value_range: Common (min, max) range; per-band range when None

    Returns:
        Dictionary {band_index: (counts, bin_edges)}
    """
    stack = _check_stack(stack)
    bands = range(stack.shape[2]) if bands is None else bands

    histograms = {}
    for band in bands:
        values = stack[:, :, band].ravel()
        values = values[np.isfinite(values)]
        counts, edges = np.histogram(values, bins=bins, range=value_range)
        histograms[int(band)] = (counts, edges)
    return histograms
