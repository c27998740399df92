"""
Constants and configuration for the raster classification and sieve pipeline.
"""

from typing import Dict, List, Tuple

# ============================================================================
# PATH CONFIGURATION
# ============================================================================
class GeneralConfig:
    """General project configuration."""
    RANDOM_SEED: int = 42
    NB_JOBS: int = 4  # Worker processes of tiled labeling (CLI --jobs)


class GeneralPath:
    """General project paths."""
    LOG_PATH: str = r".logs/"


class DataPath:
    """Data file paths."""
    CSV_ATTRIBUTE_TABLE: str = r"data/metadata/class_lookup.csv"


# ============================================================================
# CLASS DEFINITIONS
# ============================================================================

class ClassInfo:
    """Land cover class definitions (raster attribute table)."""

    # Mapping from class code to class name /!\
    CLASS_NAMES: Dict[int, str] = {
        1: "cropland",
        2: "forest",
        3: "wetland",
        4: "water",
        5: "built-up",
    }
    NUM_CLASSES: int = len(CLASS_NAMES)

    FOREST_CODE: int = 2

    # Mapping from class code to RGB color for visualization
    CLASS_COLORS: Dict[int, List[int]] = {
        1: [230, 200, 80],   # Yellow
        2: [20, 120, 40],    # Dark green
        3: [110, 180, 170],  # Teal
        4: [30, 70, 200],    # Blue
        5: [200, 30, 30],    # Red
    }


class BandInfo:
    """
    Band indices of a Landsat 8 surface reflectance stack (bands 1 to 7).

    Indices are zero-based positions along the last axis of an (H, W, B) stack.
    """
    ULTRA_BLUE: int = 0
    BLUE: int = 1
    GREEN: int = 2
    RED: int = 3
    NIR: int = 4
    SWIR1: int = 5
    SWIR2: int = 6

    BAND_NAMES: Dict[int, str] = {
        0: "ultra-blue",
        1: "blue",
        2: "green",
        3: "red",
        4: "NIR",
        5: "SWIR1",
        6: "SWIR2",
    }


class CellState:
    """Cell states of an int8 state grid."""
    FOREGROUND: int = 1
    BACKGROUND: int = 0
    NODATA: int = -1


# ============================================================================
# PROCESSING PARAMETERS
# ============================================================================

class ProcessingConfig:
    """Default parameters for labeling, sieving and classification."""

    # Background label written by every labeling backend
    BACKGROUND_LABEL: int = 0

    # Connected component labeling
    DEFAULT_ADJACENCY: str = "queen"
    LABEL_BACKEND: str = "skimage"
    TILE_SHAPE: Tuple[int, int] = (1024, 1024)

    # Minimum mapping unit (0.5 ha on 30 m Landsat cells -> 6 cells)
    MMU_HECTARES: float = 0.5
    THRESHOLD_ROUNDING: str = "ceil"

    # No-data code of classified rasters
    NODATA_CODE: int = 0

    # NDVI threshold for a vegetation mask
    NDVI_VEGETATION_THRESHOLD: float = 0.4

    # Classification
    NB_CLUSTERS: int = 5
    KMEANS_BATCH_SIZE: int = 10000
    RF_N_ESTIMATORS: int = 100
    RF_MAX_DEPTH: int = 20
    SAMPLES_PER_CLASS: int = 250

    # Histograms
    HISTOGRAM_BINS: int = 100
