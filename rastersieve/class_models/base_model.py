"""Abstract base class for all pixel classification models."""

from abc import ABC, abstractmethod
from typing import Dict, Any, Optional
import numpy as np
import json
import pickle
from pathlib import Path

from rastersieve.cste import ProcessingConfig
from rastersieve.data_utils import samples_to_grid, stack_to_samples
from rastersieve.logger import get_logger

log = get_logger(__name__)


class BasePixelClassifier(ABC):
    """Abstract base class for per-pixel classifiers of band stacks."""

    def __init__(self, num_classes: int, model_name: str):
        """
        Initialize base model.

        Args:
            num_classes: Number of classes (or clusters)
            model_name: Name identifier for the model
        """
        self.num_classes = num_classes
        self.model_name = model_name
        self.model = None
        self.config = {}

    @abstractmethod
    def train(
        self,
        X_train: np.ndarray,
        y_train: Optional[np.ndarray] = None,
        **kwargs
    ) -> Dict[str, Any]:
        """
        Train the model.

        Args:
            X_train: Training pixels, shape (n_pixels, n_bands)
            y_train: Training classes, shape (n_pixels,)
            **kwargs: Additional training parameters

        Returns:
            Dictionary with training metrics
        """
        pass

    @abstractmethod
    def predict(self, X: np.ndarray) -> np.ndarray:
        """
        Predict one class per pixel.

        Args:
            X: Pixels, shape (n_pixels, n_bands)

        Returns:
            Predicted classes, shape (n_pixels,)
        """
        pass

    @abstractmethod
    def save(self, save_dir: str) -> None:
        """
        Save model and configuration.

        Args:
            save_dir: Directory to save model artifacts
        """
        pass

    @abstractmethod
    def load(self, save_dir: str) -> None:
        """
        Load model and configuration.

        Args:
            save_dir: Directory containing model artifacts
        """
        pass

    def predict_grid(
        self,
        stack: np.ndarray,
        nodata: Optional[float] = None,
        fill: int = ProcessingConfig.NODATA_CODE
    ) -> np.ndarray:
        """
        Classify every valid cell of a band stack.

        No-data cells are dropped before prediction, and each prediction is
        written back to the cell position it was computed from.

        Args:
            stack: Band stack (H, W, B)
            nodata: No-data value of the stack besides NaN
            fill: Code of no-data cells in the output

        Returns:
            Classified raster (H, W), int32
        """
        stack = np.asarray(stack)
        X, flat_index = stack_to_samples(stack, nodata)

        if len(X) == 0:
            log.warning("No valid pixels to classify")
            return np.full(stack.shape[:2], fill, dtype=np.int32)

        predictions = self.predict(X)
        return samples_to_grid(predictions, flat_index, stack.shape[:2], fill=fill, dtype=np.int32)

    def _save_config(self, save_dir: str) -> None:
        """
        Save model configuration to JSON.

        Args:
            save_dir: Directory to save configuration
        """
        save_path = Path(save_dir)
        save_path.mkdir(parents=True, exist_ok=True)

        config_path = save_path / 'config.json'
        with open(config_path, 'w') as f:
            json.dump(self.config, f, indent=2)

        log.info(f"Saved config to {config_path}")

    def _load_config(self, save_dir: str) -> Dict[str, Any]:
        """
        Load model configuration from JSON.

        Args:
            save_dir: Directory containing configuration

        Returns:
            Configuration dictionary
        """
        config_path = Path(save_dir) / 'config.json'
        with open(config_path, 'r') as f:
            config = json.load(f)

        log.info(f"Loaded config from {config_path}")
        return config

    @staticmethod
    def _dump_artifact(obj: Any, save_dir: str, file_name: str) -> Path:
        """Pickle a fitted estimator (or mapping) into save_dir."""
        artifact_path = Path(save_dir) / file_name
        artifact_path.parent.mkdir(parents=True, exist_ok=True)
        with open(artifact_path, 'wb') as f:
            pickle.dump(obj, f)
        log.info(f"Saved {file_name} to {artifact_path.parent}")
        return artifact_path

    @staticmethod
    def _read_artifact(save_dir: str, file_name: str) -> Any:
        artifact_path = Path(save_dir) / file_name
        if not artifact_path.exists():
            raise FileNotFoundError(f"Model artifact not found: {artifact_path}")
        with open(artifact_path, 'rb') as f:
            obj = pickle.load(f)
        log.info(f"Loaded {file_name} from {artifact_path.parent}")
        return obj
