"""
Input/Output utilities for rasters and masks.
"""

import os
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Optional, Tuple

import numpy as np
import rasterio
from affine import Affine
from PIL import Image

from rastersieve.logger import get_logger

log = get_logger(__name__)

# Creation options that depend on the source raster size
_SIZE_DEPENDENT_KEYS = ('blockxsize', 'blockysize', 'tiled')


@dataclass
class RasterMeta:
    """Georeferencing of a raster read with load_raster."""
    transform: Affine
    crs: Any = None
    nodata: Optional[float] = None
    profile: Dict[str, Any] = field(default_factory=dict)

    @property
    def cell_width(self) -> float:
        return abs(self.transform.a)

    @property
    def cell_height(self) -> float:
        return abs(self.transform.e)

    @property
    def cell_area(self) -> float:
        return self.cell_width * self.cell_height


def load_raster(
    raster_path: str,
    bands: Optional[Iterable[int]] = None
) -> Tuple[np.ndarray, RasterMeta]:
    """
    Load a multi-band raster as an (H, W, B) float32 stack.

    Args:
        raster_path: Path to a raster readable by rasterio (GeoTIFF, ...)
        bands: 1-based band indexes to read (default: all)

    Returns:
        Tuple (stack, meta):
        - stack: shape (H, W, B), dtype float32, no-data cells set to NaN
        - meta: transform, crs, nodata and profile of the file

    Raises:
        FileNotFoundError: If raster path does not exist
    """
    if not os.path.exists(raster_path):
        raise FileNotFoundError(f"Raster not found: {raster_path}")

    with rasterio.open(raster_path) as src:
        indexes = list(bands) if bands is not None else list(src.indexes)
        data = src.read(indexes, masked=True)
        meta = RasterMeta(
            transform=src.transform,
            crs=src.crs,
            nodata=src.nodata,
            profile=dict(src.profile)
        )

    #! Masked (no-data) cells become NaN
    stack = data.astype(np.float32).filled(np.nan)
    stack = np.moveaxis(stack, 0, -1)

    log.info(
        f"Loaded {raster_path}: {stack.shape[0]}x{stack.shape[1]} cells, {stack.shape[2]} bands, "
        f"cell size {meta.cell_width}x{meta.cell_height}"
    )
    return stack, meta


def load_classified(raster_path: str, band: int = 1) -> Tuple[np.ndarray, RasterMeta]:
    """
    Load one band of a classified raster with its original integer codes.

    Raises:
        FileNotFoundError: If raster path does not exist
    """
    if not os.path.exists(raster_path):
        raise FileNotFoundError(f"Raster not found: {raster_path}")

    with rasterio.open(raster_path) as src:
        grid = src.read(band)
        meta = RasterMeta(
            transform=src.transform,
            crs=src.crs,
            nodata=src.nodata,
            profile=dict(src.profile)
        )
    return grid, meta


def save_raster(
    array: np.ndarray,
    save_path: str,
    meta: Optional[RasterMeta] = None,
    dtype: Optional[str] = None,
    nodata: Optional[float] = None
) -> None:
    """
    Write a grid (H, W) or a stack (H, W, B) as a GeoTIFF.

    Args:
        array: Grid or band stack. Boolean grids are written as uint8
        save_path: Output file path
        meta: Georeferencing to copy (transform, crs, profile options)
        dtype: Output dtype (default: dtype of the array)
        nodata: No-data value written in the file (not inherited from meta)
    """
    array = np.asarray(array)
    if array.dtype == bool:
        array = array.astype(np.uint8)
    if array.ndim == 2:
        bands = array[np.newaxis, :, :]
    elif array.ndim == 3:
        bands = np.moveaxis(array, -1, 0)
    else:
        raise ValueError(f"Expected a 2D grid or an (H, W, B) stack, got shape {array.shape}")

    dtype = dtype or bands.dtype.name

    profile = dict(meta.profile) if meta is not None else {}
    for key in _SIZE_DEPENDENT_KEYS:
        profile.pop(key, None)
    profile.update(
        driver='GTiff',
        height=bands.shape[1],
        width=bands.shape[2],
        count=bands.shape[0],
        dtype=dtype,
        nodata=nodata,
    )
    if meta is not None:
        profile.update(transform=meta.transform, crs=meta.crs)

    # Ensure the output directory exists
    directory = os.path.dirname(save_path)
    if directory:
        os.makedirs(directory, exist_ok=True)

    with rasterio.open(save_path, 'w', **profile) as dst:
        dst.write(bands.astype(dtype))

    log.info(f"Saved raster to {save_path} ({bands.shape[0]} band(s), {dtype})")


def save_mask(mask: np.ndarray, save_path: str, as_uint8: bool = True) -> None:
    """
    Save a single-channel integer mask to disk as PNG.

    Args:
        mask: 2D array with integer class codes (or a boolean mask)
        save_path: Output file path.
        as_uint8: Whether to convert the mask to uint8 before saving.
                  Recommended if codes are <= 255.

    Notes:
        ! No normalization or scaling is applied; pixels retain their codes.
    """
    directory = os.path.dirname(save_path)
    if directory:
        os.makedirs(directory, exist_ok=True)

    if as_uint8 and mask.dtype != np.uint8:
        mask_to_save = mask.astype(np.uint8)
    else:
        mask_to_save = mask

    img = Image.fromarray(mask_to_save)
    img.save(save_path)
