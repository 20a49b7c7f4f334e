from dataclasses import dataclass
from typing import Iterator, Optional, Sequence, Tuple

import numpy as np

# Index used by the class descriptor, it never refers to a real column
CLASS_INDEX = -1


@dataclass(frozen=True)
class FeatureInfo:
    """Descriptor of a feature (or of the class label when index is CLASS_INDEX).

    Parameters
    ----------
    name : str
        Feature name.

    categorical : bool
        Whether values are pre-encoded categories (True) or continuous measurements (False).

    index : int
        Stable column index in the training matrix.

    weight : float, optional (default=None)
        Optional feature weight, carried but not used by the split search.
    """

    name: str
    categorical: bool
    index: int
    weight: Optional[float] = None

    @property
    def continuous(self) -> bool:
        return not self.categorical


class WeightedDataset:
    """Read-only view over weighted, labeled tabular data.

    Parameters
    ----------
    X : np.ndarray
        Float matrix of shape (n_samples, n_features).

    y : np.ndarray
        Encoded class labels in 0, 1, ..., n_classes - 1.

    sample_weight : np.ndarray
        Weight of each row.

    features : Sequence[FeatureInfo]
        One descriptor per column of X, in column order.

    n_classes : int
        Number of classes seen during training, subsets keep the same value.

    class_info : FeatureInfo
        Descriptor of the class label.
    """

    def __init__(
        self,
        *,
        X: np.ndarray,
        y: np.ndarray,
        sample_weight: np.ndarray,
        features: Sequence[FeatureInfo],
        n_classes: int,
        class_info: FeatureInfo,
    ) -> None:
        if X.shape[1] != len(features):
            raise ValueError(f"X has ({X.shape[1]}) columns but ({len(features)}) feature descriptors were given")
        self.X = X
        self.y = y
        self.sample_weight = sample_weight
        self.features: Tuple[FeatureInfo, ...] = tuple(features)
        self.n_classes = n_classes
        self.class_info = class_info

    def __len__(self) -> int:
        return len(self.y)

    def __iter__(self) -> Iterator[Tuple[np.ndarray, int, float]]:
        """Iterate over rows as (attribute vector, class value, weight)."""
        return zip(self.X, self.y, self.sample_weight)

    @property
    def size(self) -> int:
        return len(self.y)

    @property
    def dimensionality(self) -> int:
        return len(self.features)

    def feature(self, j: int) -> FeatureInfo:
        return self.features[j]

    def total_weight(self) -> float:
        return float(self.sample_weight.sum())

    def classes(self) -> np.ndarray:
        """Distinct observed class values."""
        return np.unique(self.y)

    def class_distribution(self) -> np.ndarray:
        """Weighted count of each class.

        Returns
        -------
        np.ndarray
            Array of length n_classes, classes absent from this dataset have weight 0.
        """
        return np.bincount(self.y, weights=self.sample_weight, minlength=self.n_classes).astype(float)

    def distinct_values(self, j: int) -> np.ndarray:
        """Sorted distinct values of column j."""
        return np.unique(self.X[:, j])

    def conditional_distribution(self, j: int) -> Tuple[np.ndarray, np.ndarray]:
        """Weighted class distribution conditioned on each distinct value of column j.

        Parameters
        ----------
        j : int
            Column position.

        Returns
        -------
        values : np.ndarray
            Sorted distinct values of column j.

        table : np.ndarray
            Array of shape (len(values), n_classes), row i holds the weighted class counts where X[:, j] == values[i].
        """
        values, inverse = np.unique(self.X[:, j], return_inverse=True)
        table = np.zeros((len(values), self.n_classes), dtype=float)
        np.add.at(table, (inverse.ravel(), self.y), self.sample_weight)

        return values, table

    def majority_class(self) -> int:
        """Class with the greatest weighted count, the smallest encoded class wins ties."""
        return int(np.argmax(self.class_distribution()))

    def subset(self, idx: np.ndarray, drop_feature: Optional[int] = None) -> "WeightedDataset":
        """Select rows, optionally deleting one column.

        Parameters
        ----------
        idx : np.ndarray
            Boolean mask or integer indices of rows to keep.

        drop_feature : int, optional (default=None)
            Column position to delete from the new dataset.

        Returns
        -------
        WeightedDataset
            New dataset, self is left untouched.
        """
        X = self.X[idx]
        features = self.features
        if drop_feature is not None:
            X = np.delete(X, drop_feature, axis=1)
            features = features[:drop_feature] + features[drop_feature + 1 :]

        return WeightedDataset(
            X=X,
            y=self.y[idx],
            sample_weight=self.sample_weight[idx],
            features=features,
            n_classes=self.n_classes,
            class_info=self.class_info,
        )
