"""
End-to-end forest mask pipeline.

Steps:
    1. Load a multi-band raster (and an optional reference class raster)
    2. Classify pixels with K-Means or Random Forest
    3. Extract the forest mask from the classified raster
    4. Sieve components smaller than the minimum mapping unit
    5. Write the sieved mask (and optionally the classified raster and plots)
"""

import os
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import matplotlib.pyplot as plt
import numpy as np

from rastersieve.class_models import (
    BasePixelClassifier,
    KMeansClassification,
    RandomForestClassification,
)
from rastersieve.connectivity import Adjacency
from rastersieve.cste import BandInfo, ClassInfo, GeneralConfig, ProcessingConfig
from rastersieve.data_utils import sample_training_pixels, stack_to_samples
from rastersieve.errors import ShapeMismatchError
from rastersieve.indices import ndvi
from rastersieve.io_utils import load_classified, load_raster, save_raster
from rastersieve.labeling import label_components
from rastersieve.logger import get_logger
from rastersieve.plotting import plot_sieve_comparison, plot_thematic
from rastersieve.sieve import area_to_cell_threshold, hectares_to_square_metres, sieve_mask
from rastersieve.thematic import ThematicClassBinder

log = get_logger(__name__)

METHODS = ("kmeans", "random_forest")


def classify_stack(
    stack: np.ndarray,
    method: str = "kmeans",
    reference: Optional[np.ndarray] = None,
    nodata: Optional[float] = None,
    n_clusters: int = ProcessingConfig.NB_CLUSTERS,
    samples_per_class: int = ProcessingConfig.SAMPLES_PER_CLASS,
    reference_nodata: int = ProcessingConfig.NODATA_CODE,
    random_state: int = GeneralConfig.RANDOM_SEED
) -> Tuple[np.ndarray, BasePixelClassifier]:
    """
    Classify every valid cell of a band stack.

    Args:
        stack: Band stack (H, W, B)
        method: "kmeans" (unsupervised) or "random_forest" (supervised)
        reference: Reference class raster (H, W). Required for random_forest;
                   for kmeans it maps clusters to reference classes
        nodata: No-data value of the stack besides NaN
        n_clusters: Number of K-Means clusters
        samples_per_class: Random Forest training pixels per class
        reference_nodata: No-data code of the reference raster
        random_state: Random seed

    Returns:
        Tuple (classified raster int32 with ProcessingConfig.NODATA_CODE on
        no-data cells, fitted model)
    """
    if method not in METHODS:
        raise ValueError(f"Unknown classification method: {method!r} (expected one of {METHODS})")
    stack = np.asarray(stack)
    if reference is not None:
        reference = np.asarray(reference)
        if reference.shape != stack.shape[:2]:
            raise ShapeMismatchError(stack.shape[:2], reference.shape, what="reference raster")

    if method == "random_forest":
        if reference is None:
            raise ValueError("Random Forest classification needs a reference raster")

        samples = sample_training_pixels(
            stack,
            reference,
            samples_per_class=samples_per_class,
            nodata=nodata,
            reference_nodata=reference_nodata,
            random_state=random_state
        )
        if samples.empty:
            raise ValueError("Reference raster holds no usable training pixels")

        band_columns = [c for c in samples.columns if c not in ('row', 'col', 'class')]
        model = RandomForestClassification(
            num_classes=int(samples['class'].nunique()),
            random_state=random_state
        )
        model.train(samples[band_columns].to_numpy(), samples['class'].to_numpy())
        return model.predict_grid(stack, nodata=nodata), model

    model = KMeansClassification(num_classes=n_clusters, random_state=random_state)
    X, flat_index = stack_to_samples(stack, nodata)
    model.train(X)

    if reference is not None:
        #! Map clusters with the reference classes of the same cells
        y = reference.reshape(-1)[flat_index]
        labeled = y != reference_nodata
        if labeled.any():
            model.fit_class_mapping(X[labeled], y[labeled])

    return model.predict_grid(stack, nodata=nodata), model


def greenest_cluster(classified: np.ndarray, ndvi_map: np.ndarray) -> int:
    """Code with the highest mean NDVI (forest candidate of an unlabeled cluster map)."""
    codes = [c for c in np.unique(classified) if c != ProcessingConfig.NODATA_CODE]
    if not codes:
        raise ValueError("Classified raster holds no class")

    means = {}
    for code in codes:
        values = ndvi_map[(classified == code) & np.isfinite(ndvi_map)]
        means[int(code)] = float(values.mean()) if values.size else -np.inf
    log.info(f"Mean NDVI per cluster: { {k: round(v, 3) for k, v in means.items()} }")
    return max(means, key=means.get)


def _cluster_binder(n_clusters: int, forest_codes: Sequence[int]) -> ThematicClassBinder:
    lookup = {
        code: ("forest" if code in forest_codes else f"cluster_{code}")
        for code in range(1, n_clusters + 1)
    }
    return ThematicClassBinder(lookup, nodata=ProcessingConfig.NODATA_CODE)


def forest_sieve_pipeline(
    raster_path: str,
    output_path: str,
    method: str = "kmeans",
    reference_path: Optional[str] = None,
    forest_codes: Optional[Sequence[int]] = None,
    min_area_ha: float = ProcessingConfig.MMU_HECTARES,
    adjacency: Union[Adjacency, str] = ProcessingConfig.DEFAULT_ADJACENCY,
    rounding: str = ProcessingConfig.THRESHOLD_ROUNDING,
    n_clusters: int = ProcessingConfig.NB_CLUSTERS,
    binder: Optional[ThematicClassBinder] = None,
    classified_path: Optional[str] = None,
    plot_dir: Optional[str] = None,
    tile_shape: Optional[Tuple[int, int]] = None,
    n_jobs: int = 1,
    random_state: int = GeneralConfig.RANDOM_SEED
) -> Dict[str, Any]:
    """
    Classify a raster, extract its forest mask and sieve it by minimum mapping unit.

    Args:
        raster_path: Multi-band raster to classify
        output_path: GeoTIFF written with the sieved forest mask (uint8 0/1)
        method: "kmeans" or "random_forest"
        reference_path: Reference class raster (required for random_forest)
        forest_codes: Codes counted as forest. Default: ClassInfo.FOREST_CODE
                      for classes, the greenest cluster for unmapped K-Means
        min_area_ha: Minimum mapping unit in hectares
        adjacency: Adjacency rule of the sieve
        rounding: Area to cell count rounding policy
        n_clusters: Number of K-Means clusters
        binder: Class lookup of the classified raster (default: ClassInfo)
        classified_path: Optional GeoTIFF path for the classified raster
        plot_dir: Optional directory for figures
        tile_shape: Label the mask tile by tile with this (rows, cols) shape
        n_jobs: Worker processes of tiled labeling
        random_state: Random seed

    Returns:
        Summary dictionary (threshold, cell and component counts, attribute
        table records)
    """
    log.info("=" * 60)
    log.info(f"Forest sieve pipeline: {raster_path} ({method})")
    log.info("=" * 60)

    #! Step 1: Load rasters
    stack, meta = load_raster(raster_path)
    reference = None
    if reference_path is not None:
        reference, _ = load_classified(reference_path)

    #! Step 2: Classify pixels
    classified, model = classify_stack(
        stack,
        method=method,
        reference=reference,
        n_clusters=n_clusters,
        random_state=random_state
    )

    #! Step 3: Forest mask
    unmapped_clusters = method == "kmeans" and getattr(model, 'cluster_to_class_map', None) is None
    if forest_codes is None:
        if unmapped_clusters and stack.shape[2] > max(BandInfo.RED, BandInfo.NIR):
            forest_codes = [greenest_cluster(classified, ndvi(stack))]
        else:
            forest_codes = [ClassInfo.FOREST_CODE]
    forest_codes = [int(c) for c in forest_codes]

    if binder is None:
        if unmapped_clusters:
            binder = _cluster_binder(n_clusters, forest_codes)
        else:
            binder = ThematicClassBinder.default(nodata=ProcessingConfig.NODATA_CODE)

    forest_mask = binder.extract_mask(classified, forest_codes)
    attribute_table = binder.attribute_table(classified, cell_area=meta.cell_area)
    log.info(f"Attribute table:\n{attribute_table.to_string(index=False)}")

    #! Step 4: Sieve by minimum mapping unit
    threshold = area_to_cell_threshold(
        hectares_to_square_metres(min_area_ha),
        meta.cell_width,
        meta.cell_height,
        rounding=rounding
    )
    sieved = sieve_mask(forest_mask, threshold, adjacency, tile_shape=tile_shape, n_jobs=n_jobs)

    _, components_before = label_components(forest_mask, adjacency)
    _, components_after = label_components(sieved, adjacency)

    #! Step 5: Outputs
    save_raster(sieved, output_path, meta, dtype='uint8')
    if classified_path is not None:
        save_raster(classified, classified_path, meta, dtype='int32', nodata=ProcessingConfig.NODATA_CODE)

    if plot_dir is not None:
        figures: List[plt.Figure] = [
            plot_thematic(classified, binder, save_path=os.path.join(plot_dir, "classified.png")),
            plot_sieve_comparison(forest_mask, sieved, save_path=os.path.join(plot_dir, "sieve.png")),
        ]
        for fig in figures:
            plt.close(fig)

    summary = {
        'method': method,
        'forest_codes': forest_codes,
        'threshold_cells': threshold,
        'forest_cells_before': int(forest_mask.sum()),
        'forest_cells_after': int(sieved.sum()),
        'components_before': components_before,
        'components_after': components_after,
        'attribute_table': attribute_table.to_dict(orient='records'),
    }

    log.info(
        f"Forest cells: {summary['forest_cells_before']} -> {summary['forest_cells_after']}, "
        f"components: {components_before} -> {components_after}"
    )
    return summary
