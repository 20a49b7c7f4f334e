from typing import List, Optional

import numpy as np
import pytest

from ccptrees._dataset import CLASS_INDEX, FeatureInfo, WeightedDataset


def make_dataset(
    X: np.ndarray,
    y: np.ndarray,
    *,
    categorical: Optional[List[int]] = None,
    sample_weight: Optional[np.ndarray] = None,
    n_classes: Optional[int] = None,
) -> WeightedDataset:
    """Build a WeightedDataset from raw arrays with encoded labels."""
    X = np.asarray(X, dtype=float)
    y = np.asarray(y, dtype=int)
    categorical = categorical or []
    features = [FeatureInfo(name=f"f{j + 1}", categorical=j in categorical, index=j) for j in range(X.shape[1])]
    return WeightedDataset(
        X=X,
        y=y,
        sample_weight=np.ones(len(y)) if sample_weight is None else np.asarray(sample_weight, dtype=float),
        features=features,
        n_classes=n_classes if n_classes is not None else int(y.max()) + 1,
        class_info=FeatureInfo(name="class", categorical=True, index=CLASS_INDEX),
    )


@pytest.fixture
def dataset_factory():
    """Factory for small weighted datasets."""
    return make_dataset
