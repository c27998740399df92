"""Shared fixtures: small grids and a synthetic Landsat-like scene."""

import matplotlib

matplotlib.use("Agg")

import numpy as np
import pytest
from rasterio.transform import from_origin

from rastersieve.io_utils import RasterMeta, save_raster

# Surface reflectance of bands 1-7
CROPLAND = [0.10, 0.09, 0.10, 0.14, 0.26, 0.30, 0.22]
FOREST = [0.05, 0.04, 0.06, 0.03, 0.45, 0.20, 0.09]
WATER = [0.08, 0.07, 0.06, 0.04, 0.02, 0.01, 0.01]

STACK_NODATA = -9999.0


def same_partition(labels_a: np.ndarray, labels_b: np.ndarray) -> bool:
    """True when two labelings group foreground cells identically."""
    if not np.array_equal(labels_a > 0, labels_b > 0):
        return False
    fg = labels_a > 0
    pairs = set(zip(labels_a[fg].tolist(), labels_b[fg].tolist()))
    return len(pairs) == len(np.unique(labels_a[fg])) == len(np.unique(labels_b[fg]))


@pytest.fixture
def scenario_grid() -> np.ndarray:
    """5x5 grid: isolated cell at (2, 2) and an L-shaped region of 4 cells."""
    grid = np.zeros((5, 5), dtype=bool)
    grid[2, 2] = True
    grid[2, 4] = True
    grid[3, 4] = True
    grid[4, 4] = True
    grid[4, 3] = True
    return grid


@pytest.fixture
def random_grids():
    """Reproducible random boolean grids of various densities and shapes."""
    rng = np.random.default_rng(7)
    grids = []
    for shape, density in [((1, 1), 0.5), ((1, 12), 0.5), ((9, 1), 0.6), ((17, 23), 0.3),
                           ((32, 32), 0.5), ((25, 40), 0.6), ((10, 10), 0.0), ((6, 8), 1.0)]:
        grids.append(rng.random(shape) < density)
    return grids


@pytest.fixture
def landcover_scene():
    """
    40x40 scene on 30 m cells.

    Returns:
        Tuple (stack (H, W, 7) with NaN on the last row, reference classes with
        1 = cropland, 2 = forest, 4 = water, 0 = no data)
    """
    rng = np.random.default_rng(0)
    reference = np.ones((40, 40), dtype=np.int32)
    reference[5:15, 5:15] = 2      # Forest block, 100 cells
    reference[25:27, 5:7] = 2      # Small forest patch, 4 cells
    reference[35, 15] = 2          # Single forest cell
    reference[25:33, 25:33] = 4    # Water
    reference[39, :] = 0           # No data

    spectra = {1: CROPLAND, 2: FOREST, 4: WATER}
    stack = np.full((40, 40, 7), np.nan, dtype=np.float32)
    for code, spectrum in spectra.items():
        cells = reference == code
        stack[cells] = np.asarray(spectrum, dtype=np.float32)
    stack += rng.normal(0.0, 0.004, stack.shape).astype(np.float32)
    return stack, reference


@pytest.fixture
def scene_files(tmp_path, landcover_scene):
    """The landcover scene written as GeoTIFFs (stack with -9999 no data, reference)."""
    stack, reference = landcover_scene
    meta = RasterMeta(transform=from_origin(500000.0, 4200000.0, 30.0, 30.0))

    raster_path = str(tmp_path / "scene.tif")
    reference_path = str(tmp_path / "reference.tif")
    save_raster(np.where(np.isnan(stack), STACK_NODATA, stack), raster_path, meta,
                dtype='float32', nodata=STACK_NODATA)
    save_raster(reference, reference_path, meta, dtype='int32', nodata=0)
    return raster_path, reference_path
