from typing import Any, Dict, Optional, Union

import numpy as np
from numba import njit
from sklearn.utils.class_weight import compute_sample_weight


@njit(cache=True, nogil=True)
def estimate_proba(distribution: np.ndarray) -> np.ndarray:
    """Estimate class probabilities from a weighted class distribution.

    Parameters
    ----------
    distribution : np.ndarray
        Weighted count of each class.

    Returns
    -------
    np.ndarray
        Estimated probabilities for each class, uniform when the distribution carries no weight.
    """
    total = distribution.sum()
    if total <= 0:
        return np.full(len(distribution), 1.0 / len(distribution))

    return distribution / total


def instance_weights(
    *,
    y: np.ndarray,
    sample_weight: Optional[np.ndarray] = None,
    class_weight: Optional[Union[str, Dict[Any, float]]] = None,
) -> np.ndarray:
    """Calculate the weight of each instance as class weight * sample weight.

    Parameters
    ----------
    y : np.ndarray
        Original (not encoded) class labels.

    sample_weight : np.ndarray, default=None
        Weight of each sample, 1.0 for every sample when None.

    class_weight : {"balanced"} or dict, default=None
        Weight of each class, 1.0 for every class when None. Classes missing from a dict weigh 1.0.

    Returns
    -------
    np.ndarray
        Instance weights.
    """
    n = len(y)
    if sample_weight is None:
        weights = np.ones(n, dtype=float)
    else:
        weights = np.asarray(sample_weight, dtype=float).ravel()
        if len(weights) != n:
            raise ValueError(f"sample_weight has ({len(weights)}) values, expected ({n})")
        if np.any(~np.isfinite(weights)) or np.any(weights < 0):
            raise ValueError("sample_weight should contain finite, non-negative values")

    if class_weight is not None:
        if isinstance(class_weight, dict):
            observed = set(np.unique(y).tolist())
            class_weight = {key: value for key, value in class_weight.items() if key in observed}
        weights = weights * compute_sample_weight(class_weight, y)

    if weights.sum() <= 0:
        raise ValueError("Total sample weight should be > 0")

    return weights
