"""Random Forest classifier for per-pixel land cover classification."""

import numpy as np
from typing import Dict, Any, Optional
from sklearn.ensemble import RandomForestClassifier

from rastersieve.class_models.base_model import BasePixelClassifier
from rastersieve.cste import GeneralConfig, ProcessingConfig
from rastersieve.logger import get_logger

log = get_logger(__name__)


class RandomForestClassification(BasePixelClassifier):
    """
    Random Forest classifier trained on sampled reference pixels.

    Each pixel is classified from its band values only.
    """

    MODEL_FILE = 'random_forest.pkl'

    def __init__(
        self,
        num_classes: int,
        n_estimators: int = ProcessingConfig.RF_N_ESTIMATORS,
        max_depth: Optional[int] = ProcessingConfig.RF_MAX_DEPTH,
        n_jobs: int = -1,
        random_state: int = GeneralConfig.RANDOM_SEED
    ):
        """
        Initialize Random Forest model.

        Args:
            num_classes: Number of land cover classes
            n_estimators: Number of trees in the forest
            max_depth: Maximum depth of trees
            n_jobs: Number of parallel jobs (-1 = use all cores)
            random_state: Random seed for reproducibility
        """
        super().__init__(num_classes, 'RandomForest')

        self.n_estimators = n_estimators
        self.max_depth = max_depth
        self.n_jobs = n_jobs
        self.random_state = random_state

        #! Store configuration
        self.config = {
            'num_classes': num_classes,
            'n_estimators': n_estimators,
            'max_depth': max_depth,
            'n_jobs': n_jobs,
            'random_state': random_state
        }

        #! Initialize model with balanced class weights
        self.model = RandomForestClassifier(
            n_estimators=n_estimators,
            max_depth=max_depth,
            n_jobs=n_jobs,
            random_state=random_state,
            class_weight='balanced'  # Handle class imbalance
        )

        log.info(f"Initialized Random Forest: trees={n_estimators}, depth={max_depth}")

    def train(
        self,
        X_train: np.ndarray,
        y_train: Optional[np.ndarray] = None,
        **kwargs
    ) -> Dict[str, Any]:
        """
        Train Random Forest on pixel values.

        Args:
            X_train: Training pixels, shape (n_pixels, n_bands)
            y_train: Reference classes, shape (n_pixels,)

        Returns:
            Training metrics dictionary
        """
        if y_train is None:
            raise ValueError("Random Forest training needs reference classes")

        X_train = np.asarray(X_train)
        y_train = np.asarray(y_train).reshape(-1)
        if len(X_train) != len(y_train):
            raise ValueError(f"Got {len(X_train)} pixels but {len(y_train)} classes")

        log.info(f"Training Random Forest on {len(X_train):,} pixels")
        self.model.fit(X_train, y_train)

        #! Accuracy on the training pixels
        train_acc = self.model.score(X_train, y_train)
        log.info(f"Training accuracy: {train_acc:.4f}")

        feature_importance = self.model.feature_importances_
        log.info(f"Band importance: {np.round(feature_importance, 3)}")

        metrics = {
            'train_accuracy': train_acc,
            'feature_importance': feature_importance.tolist(),
            'classes': self.model.classes_.tolist(),
            'n_samples_used': len(X_train)
        }

        return metrics

    def predict(self, X: np.ndarray) -> np.ndarray:
        """
        Predict land cover classes.

        Args:
            X: Pixels, shape (n_pixels, n_bands)

        Returns:
            Predicted class codes, shape (n_pixels,)
        """
        log.info(f"Predicting {len(X):,} pixels...")
        return self.model.predict(X)

    def predict_proba(self, X: np.ndarray) -> np.ndarray:
        """Class probabilities, columns ordered as self.model.classes_."""
        return self.model.predict_proba(X)

    def save(self, save_dir: str) -> None:
        """Write the fitted forest (random_forest.pkl) and config.json to save_dir."""
        self._dump_artifact(self.model, save_dir, self.MODEL_FILE)
        self._save_config(save_dir)

    def load(self, save_dir: str) -> None:
        """Restore a forest written by save."""
        self.config = self._load_config(save_dir)
        self.model = self._read_artifact(save_dir, self.MODEL_FILE)
        self.n_estimators = self.config['n_estimators']
        self.max_depth = self.config['max_depth']
