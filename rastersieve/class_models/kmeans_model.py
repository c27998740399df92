"""K-Means clustering for unsupervised per-pixel classification."""

import numpy as np
from typing import Dict, Any, Optional
from sklearn.cluster import MiniBatchKMeans
from sklearn.metrics import silhouette_score

from rastersieve.class_models.base_model import BasePixelClassifier
from rastersieve.cste import GeneralConfig, ProcessingConfig
from rastersieve.data_utils import stack_to_samples
from rastersieve.logger import get_logger

log = get_logger(__name__)


class KMeansClassification(BasePixelClassifier):
    """
    K-Means clustering of pixel values.

    Uses MiniBatchKMeans for memory efficiency. Clusters are numbered from 1
    so that 0 stays free for no-data cells. Reference classes, when given,
    are used only for a post-hoc cluster -> class mapping.
    """

    MODEL_FILE = 'kmeans.pkl'
    MAPPING_FILE = 'cluster_mapping.pkl'

    def __init__(
        self,
        num_classes: int = ProcessingConfig.NB_CLUSTERS,
        batch_size: int = ProcessingConfig.KMEANS_BATCH_SIZE,
        n_init: int = 10,
        random_state: int = GeneralConfig.RANDOM_SEED
    ):
        """
        Initialize K-Means model.

        Args:
            num_classes: Number of clusters
            batch_size: Batch size for mini-batch training
            n_init: Number of random initializations
            random_state: Random seed for reproducibility
        """
        super().__init__(num_classes, 'KMeans')

        self.batch_size = batch_size
        self.n_init = n_init
        self.random_state = random_state
        self.cluster_to_class_map: Optional[Dict[int, int]] = None

        #! Store configuration
        self.config = {
            'num_classes': num_classes,
            'batch_size': batch_size,
            'n_init': n_init,
            'random_state': random_state
        }

        #! Initialize MiniBatchKMeans for memory efficiency
        self.model = MiniBatchKMeans(
            n_clusters=num_classes,
            batch_size=batch_size,
            n_init=n_init,
            random_state=random_state
        )

        log.info(f"Initialized K-Means: clusters={num_classes}, batch_size={batch_size}")

    def train(
        self,
        X_train: np.ndarray,
        y_train: Optional[np.ndarray] = None,
        sample_fraction: float = 1.0,
        **kwargs
    ) -> Dict[str, Any]:
        """
        Train K-Means clustering (unsupervised).

        Args:
            X_train: Pixels, shape (n_pixels, n_bands)
            y_train: Reference classes (optional, used only for post-hoc mapping)
            sample_fraction: Fraction of pixels to sample for clustering

        Returns:
            Training metrics dictionary
        """
        X_train = np.asarray(X_train)
        if len(X_train) < self.num_classes:
            raise ValueError(f"Need at least {self.num_classes} pixels, got {len(X_train)}")

        log.info(f"Training K-Means (unsupervised) with {sample_fraction*100:.1f}% pixel sampling")

        rng = np.random.default_rng(self.random_state)

        #! Sample pixels for memory efficiency
        if sample_fraction < 1.0:
            n_samples = max(self.num_classes, int(len(X_train) * sample_fraction))
            indices = rng.choice(len(X_train), n_samples, replace=False)
            X_train_sampled = X_train[indices]
            log.info(f"Sampled {n_samples:,} / {len(X_train):,} pixels for clustering")
        else:
            X_train_sampled = X_train

        log.info("Fitting K-Means clusters...")
        self.model.fit(X_train_sampled)

        inertia = float(self.model.inertia_)
        log.info(f"Inertia: {inertia:.2f}")

        #! Silhouette score on a sample (expensive for large datasets)
        silhouette = None
        labels = self.model.predict(X_train_sampled)
        if 1 < len(np.unique(labels)) < len(X_train_sampled):
            silhouette = float(silhouette_score(
                X_train_sampled,
                labels,
                sample_size=min(10000, len(X_train_sampled)),
                random_state=self.random_state
            ))
            log.info(f"Silhouette score: {silhouette:.4f}")

        #! Optional: Create mapping from clusters to reference classes
        if y_train is not None:
            self.cluster_to_class_map = self._map_clusters_to_classes(X_train, y_train)
            log.info(f"Cluster to class mapping: {self.cluster_to_class_map}")

        metrics = {
            'inertia': inertia,
            'silhouette_score': silhouette,
            'cluster_to_class_map': self.cluster_to_class_map
        }

        return metrics

    def _map_clusters_to_classes(
        self,
        X: np.ndarray,
        y: np.ndarray
    ) -> Dict[int, int]:
        """
        Map cluster IDs to reference classes (post-hoc).

        For each cluster, assign the majority reference class.

        Clusters holding no reference pixel have no supported class: they map
        to ProcessingConfig.NODATA_CODE and are logged as a warning.

        Args:
            X: Pixels, shape (n_pixels, n_bands)
            y: Reference classes, shape (n_pixels,)

        Returns:
            Dictionary mapping cluster_id -> class_code
        """
        log.info("Creating cluster-to-class mapping...")

        y = np.asarray(y).reshape(-1)
        if len(y) != len(X):
            raise ValueError(f"Got {len(X)} pixels but {len(y)} classes")

        cluster_labels = self.predict(X, use_mapping=False)

        mapping = {}
        unsupported = []
        for cluster_id in range(1, self.num_classes + 1):
            in_cluster = cluster_labels == cluster_id
            if in_cluster.sum() == 0:
                mapping[cluster_id] = ProcessingConfig.NODATA_CODE
                unsupported.append(cluster_id)
                continue

            #! Find majority class in this cluster
            values, counts = np.unique(y[in_cluster], return_counts=True)
            mapping[cluster_id] = int(values[np.argmax(counts)])

        if unsupported:
            log.warning(
                f"Clusters {unsupported} hold no reference pixel, "
                f"mapped to no-data ({ProcessingConfig.NODATA_CODE})"
            )
        return mapping

    def fit_class_mapping(self, X: np.ndarray, y: np.ndarray) -> Dict[int, int]:
        """
        Map the fitted clusters to reference classes from labeled pixels.

        Args:
            X: Pixels with a known class, shape (n_pixels, n_bands)
            y: Their reference classes, shape (n_pixels,)

        Returns:
            Dictionary mapping cluster_id -> class_code
        """
        self.cluster_to_class_map = self._map_clusters_to_classes(X, y)
        log.info(f"Cluster to class mapping: {self.cluster_to_class_map}")
        return self.cluster_to_class_map

    def predict(self, X: np.ndarray, use_mapping: bool = True) -> np.ndarray:
        """
        Assign pixels to clusters.

        Args:
            X: Pixels, shape (n_pixels, n_bands)
            use_mapping: If True and mapping exists, map clusters to classes

        Returns:
            Cluster IDs 1..num_classes (or mapped class codes), shape (n_pixels,)
        """
        cluster_ids = self.model.predict(np.asarray(X)) + 1

        if use_mapping and self.cluster_to_class_map is not None:
            lookup = np.zeros(self.num_classes + 1, dtype=np.int64)
            for cluster_id, class_code in self.cluster_to_class_map.items():
                lookup[cluster_id] = class_code
            cluster_ids = lookup[cluster_ids]

        return cluster_ids

    def fit_predict_grid(
        self,
        stack: np.ndarray,
        nodata: Optional[float] = None,
        fill: int = ProcessingConfig.NODATA_CODE,
        sample_fraction: float = 1.0
    ) -> np.ndarray:
        """
        Cluster the valid cells of a band stack and return the cluster map.

        Args:
            stack: Band stack (H, W, B)
            nodata: No-data value of the stack besides NaN
            fill: Code of no-data cells in the output
            sample_fraction: Fraction of pixels used to fit the clusters

        Returns:
            Cluster raster (H, W), int32
        """
        X, _ = stack_to_samples(stack, nodata)
        self.train(X, sample_fraction=sample_fraction)
        return self.predict_grid(stack, nodata=nodata, fill=fill)

    def save(self, save_dir: str) -> None:
        """
        Save the fitted clusters, the cluster mapping (if any) and config.json.

        Args:
            save_dir: Directory to save model artifacts
        """
        self._dump_artifact(self.model, save_dir, self.MODEL_FILE)
        if self.cluster_to_class_map is not None:
            self._dump_artifact(self.cluster_to_class_map, save_dir, self.MAPPING_FILE)

        self.config['has_mapping'] = self.cluster_to_class_map is not None
        self._save_config(save_dir)

    def load(self, save_dir: str) -> None:
        """Restore clusters and mapping written by save."""
        self.config = self._load_config(save_dir)
        self.model = self._read_artifact(save_dir, self.MODEL_FILE)
        self.num_classes = self.config['num_classes']

        self.cluster_to_class_map = None
        if self.config.get('has_mapping', False):
            self.cluster_to_class_map = self._read_artifact(save_dir, self.MAPPING_FILE)
