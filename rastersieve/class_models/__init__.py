"""
Per-pixel classifiers of band stacks.

Both models wrap scikit-learn estimators and share the no-data aware
predict_grid of BasePixelClassifier.
"""

from .base_model import BasePixelClassifier
from .random_forest_model import RandomForestClassification
from .kmeans_model import KMeansClassification


__all__ = [
    'BasePixelClassifier',
    'RandomForestClassification',
    'KMeansClassification',
]
