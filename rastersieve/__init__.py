"""
Remote sensing raster classification and connected component sieve.

Main API:
    label_components / component_sizes  -> connected components of a mask
    sieve_mask / sieve_by_area          -> remove components below a threshold
    ThematicClassBinder                 -> class lookup and mask extraction
"""

from .connectivity import Adjacency
from .errors import InvalidCodeError, ShapeMismatchError
from .labeling import as_foreground, component_sizes, label_components, label_components_tiled
from .sieve import (
    area_to_cell_threshold,
    filter_components,
    hectares_to_square_metres,
    sieve_by_area,
    sieve_mask,
    sieve_thematic,
)
from .thematic import ThematicClassBinder

__version__ = "0.1.0"

__all__ = [
    'Adjacency',
    'InvalidCodeError',
    'ShapeMismatchError',
    'as_foreground',
    'component_sizes',
    'label_components',
    'label_components_tiled',
    'area_to_cell_threshold',
    'filter_components',
    'hectares_to_square_metres',
    'sieve_by_area',
    'sieve_mask',
    'sieve_thematic',
    'ThematicClassBinder',
]
