from abc import ABCMeta, abstractmethod
from dataclasses import dataclass
from typing import Any, Iterator, List, Literal, Optional, Tuple

import numpy as np

from ._criteria import children_impurity, scan_thresholds, split_information
from ._dataset import WeightedDataset
from ._registry import Criteria, SplitSelectors

SplitKind = Literal["threshold", "multiway", "partition"]

# Number of candidate bipartitions evaluated per batch in the categorical CART search
_PARTITION_BATCH = 4096


@dataclass
class SplitRecord:
    """Result of split selection on one dataset.

    Parameters
    ----------
    feature : int
        Column position (in the dataset that was searched) of the feature to split on.

    impurity : float
        Impurity before the split.

    improvement : float
        Impurity decrease weighted by the fraction of the root weight that reaches the node.

    kind : {"threshold", "multiway", "partition"}
        Shape of the split.

    threshold : float, optional
        Split point of a continuous feature, values <= threshold go left.

    values : Tuple[float, ...]
        Observed values of a discrete feature, one child per value.

    left_values : Tuple[float, ...]
        Values routed to the left child of a bipartition.

    right_values : Tuple[float, ...]
        Values routed to the right child of a bipartition.
    """

    feature: int
    impurity: float
    improvement: float
    kind: SplitKind
    threshold: Optional[float] = None
    values: Tuple[float, ...] = ()
    left_values: Tuple[float, ...] = ()
    right_values: Tuple[float, ...] = ()


@dataclass
class _Candidate:
    """Best split found on a single feature."""

    feature: int
    kind: SplitKind
    children_impurity: float
    branch_weights: np.ndarray
    n_branches: int
    threshold: Optional[float] = None
    values: Tuple[float, ...] = ()
    left_values: Tuple[float, ...] = ()
    right_values: Tuple[float, ...] = ()

    @property
    def usable(self) -> bool:
        # A split must send samples to at least two children
        return self.n_branches >= 2

    def to_record(self, *, impurity: float, improvement: float) -> SplitRecord:
        return SplitRecord(
            feature=self.feature,
            impurity=impurity,
            improvement=improvement,
            kind=self.kind,
            threshold=self.threshold,
            values=self.values,
            left_values=self.left_values,
            right_values=self.right_values,
        )


def _bipartition_masks(n_values: int) -> Iterator[np.ndarray]:
    """Yield batches of boolean masks describing every bipartition of n_values sorted values.

    Only partitions whose left side holds the first value are generated, the full set excluded, which gives the
    2^(n_values - 1) - 1 distinct bipartitions. Mask for code j holds value k iff bit (n_values - 1 - k) of j is 0.
    """
    shifts = np.arange(n_values - 1, -1, -1, dtype=np.int64)
    n_codes = 2 ** (n_values - 1)
    for start in range(1, n_codes, _PARTITION_BATCH):
        codes = np.arange(start, min(start + _PARTITION_BATCH, n_codes), dtype=np.int64)
        yield ((codes[:, None] >> shifts[None, :]) & 1) == 0


class BaseSplitSelector(metaclass=ABCMeta):
    """Base class for split search strategies.

    Warning: This class should not be used directly. Use derived classes instead.

    Parameters
    ----------
    criterion : str
        Alias of the impurity function in the Criteria registry.

    reuse_features : bool
        Whether a feature stays available to the descendants of the node that split on it.
    """

    def __init__(self, *, criterion: str, reuse_features: bool) -> None:
        self.criterion = criterion
        self.impurity: Any = Criteria[criterion]
        self.reuse_features = reuse_features

    @abstractmethod
    def select(self, dataset: WeightedDataset, total_weight: float) -> Optional[SplitRecord]:
        """Search every feature for the best split, None when no usable split exists."""
        pass

    def node_impurity(self, distribution: np.ndarray) -> float:
        return float(self.impurity(distribution))

    def _threshold_candidate(self, dataset: WeightedDataset, j: int, parent_impurity: float) -> _Candidate:
        """Best midpoint threshold on a continuous feature."""
        values, table = dataset.conditional_distribution(j)
        if len(values) < 2:
            return _Candidate(
                feature=j,
                kind="threshold",
                children_impurity=parent_impurity,
                branch_weights=table.sum(axis=1),
                n_branches=1,
                threshold=float(values[0]),
            )

        i, children, w_left, w_right = scan_thresholds(self.impurity, table)
        threshold = (values[i] + values[i + 1]) / 2.0
        # Midpoint of two adjacent floats can round up to the larger one
        if threshold == values[i + 1]:
            threshold = values[i]

        return _Candidate(
            feature=j,
            kind="threshold",
            children_impurity=float(children),
            branch_weights=np.array([w_left, w_right]),
            n_branches=2,
            threshold=float(threshold),
        )

    def _multiway_candidate(self, dataset: WeightedDataset, j: int) -> _Candidate:
        """One child per observed value of a discrete feature."""
        values, table = dataset.conditional_distribution(j)

        return _Candidate(
            feature=j,
            kind="multiway",
            children_impurity=children_impurity(self.impurity, table),
            branch_weights=table.sum(axis=1),
            n_branches=len(values),
            values=tuple(float(v) for v in values),
        )

    def _candidate(self, dataset: WeightedDataset, j: int, parent_impurity: float) -> _Candidate:
        if dataset.feature(j).categorical:
            return self._multiway_candidate(dataset, j)
        return self._threshold_candidate(dataset, j, parent_impurity)

    def partition(self, dataset: WeightedDataset, record: SplitRecord) -> List[Tuple[Any, WeightedDataset]]:
        """Split dataset according to record.

        Parameters
        ----------
        dataset : WeightedDataset
            Dataset at the node.

        record : SplitRecord
            Selected split.

        Returns
        -------
        List[Tuple[Any, WeightedDataset]]
            Ordered (edge, child dataset) pairs. Edges are "<=" and ">" for thresholds, the feature value for
            multi-way splits and "left" and "right" for bipartitions.
        """
        x = dataset.X[:, record.feature]
        drop = None if self.reuse_features else record.feature

        if record.kind == "threshold":
            idx = x <= record.threshold
            return [("<=", dataset.subset(idx, drop)), (">", dataset.subset(~idx, drop))]

        if record.kind == "multiway":
            return [(value, dataset.subset(x == value, drop)) for value in record.values]

        idx = np.isin(x, record.left_values)
        return [("left", dataset.subset(idx, drop)), ("right", dataset.subset(~idx, drop))]


@SplitSelectors.register("info_gain")
class InformationGainSelector(BaseSplitSelector):
    """ID3 split search: highest information gain, multi-way discrete splits, no feature reuse."""

    def __init__(self) -> None:
        super().__init__(criterion="entropy", reuse_features=False)

    def select(self, dataset: WeightedDataset, total_weight: float) -> Optional[SplitRecord]:
        """Select the feature with the lowest weighted child entropy.

        Features are scanned in column order and a later feature replaces an earlier one on ties.

        Parameters
        ----------
        dataset : WeightedDataset
            Dataset at the node.

        total_weight : float
            Total weight of the root dataset.

        Returns
        -------
        SplitRecord or None
            Best split, None if no feature can split the dataset.
        """
        distribution = dataset.class_distribution()
        parent = self.node_impurity(distribution)
        node_weight = distribution.sum()

        best = None
        best_impurity = parent
        for j in range(dataset.dimensionality):
            candidate = self._candidate(dataset, j, parent)
            if candidate.usable and candidate.children_impurity <= best_impurity:
                best = candidate
                best_impurity = candidate.children_impurity

        if best is None:
            return None

        return best.to_record(impurity=parent, improvement=node_weight / total_weight * (parent - best_impurity))


@SplitSelectors.register("gain_ratio")
class GainRatioSelector(BaseSplitSelector):
    """C4.5 split search: gain ratio among features with at least average information gain."""

    def __init__(self) -> None:
        super().__init__(criterion="entropy", reuse_features=False)

    def select(self, dataset: WeightedDataset, total_weight: float) -> Optional[SplitRecord]:
        """Select a feature in two phases.

        First the information gain of every feature is computed. Then only features whose gain is at least the
        mean gain are ranked by gain ratio, the first feature with the strictly highest ratio wins. Features with
        zero split information cannot be ranked. When no feature qualifies, the usable feature with the highest
        information gain is selected instead.

        Parameters
        ----------
        dataset : WeightedDataset
            Dataset at the node.

        total_weight : float
            Total weight of the root dataset.

        Returns
        -------
        SplitRecord or None
            Best split, None if no feature can split the dataset.
        """
        distribution = dataset.class_distribution()
        parent = self.node_impurity(distribution)
        node_weight = distribution.sum()

        candidates = [self._candidate(dataset, j, parent) for j in range(dataset.dimensionality)]
        if not candidates:
            return None
        gains = np.array([parent - c.children_impurity if c.usable else 0.0 for c in candidates])
        mean_gain = gains.mean()

        best = None
        best_gain = 0.0
        best_ratio = -1.0
        for candidate, gain in zip(candidates, gains):
            if not candidate.usable or gain < mean_gain:
                continue
            split_info = split_information(candidate.branch_weights)
            if split_info <= 0.0:
                continue
            ratio = gain / split_info
            if ratio > best_ratio:
                best = candidate
                best_gain = gain
                best_ratio = ratio

        if best is None:
            best_gain = -np.inf
            for candidate, gain in zip(candidates, gains):
                if candidate.usable and gain > best_gain:
                    best = candidate
                    best_gain = gain

        if best is None:
            return None

        return best.to_record(impurity=parent, improvement=node_weight / total_weight * float(best_gain))


@SplitSelectors.register("gini")
class GiniSelector(BaseSplitSelector):
    """CART split search: binary splits minimizing weighted gini, features stay available to descendants."""

    def __init__(self) -> None:
        super().__init__(criterion="gini", reuse_features=True)

    def _partition_candidate(self, dataset: WeightedDataset, j: int, parent_impurity: float) -> _Candidate:
        """Best bipartition of the observed values of a discrete feature."""
        values, table = dataset.conditional_distribution(j)
        n_values = len(values)
        if n_values < 2:
            return _Candidate(
                feature=j,
                kind="partition",
                children_impurity=parent_impurity,
                branch_weights=table.sum(axis=1),
                n_branches=1,
                left_values=tuple(float(v) for v in values),
            )

        total = table.sum()
        best_mask = None
        best_impurity = np.inf
        best_weights = None
        for masks in _bipartition_masks(n_values):
            left = masks.astype(float) @ table
            right = (~masks).astype(float) @ table
            w_left = left.sum(axis=1)
            w_right = right.sum(axis=1)
            for s in range(len(masks)):
                children = (w_left[s] * self.impurity(left[s]) + w_right[s] * self.impurity(right[s])) / total
                if children <= best_impurity:
                    best_mask = masks[s]
                    best_impurity = children
                    best_weights = np.array([w_left[s], w_right[s]])

        return _Candidate(
            feature=j,
            kind="partition",
            children_impurity=float(best_impurity),
            branch_weights=best_weights,
            n_branches=2,
            left_values=tuple(float(v) for v in values[best_mask]),
            right_values=tuple(float(v) for v in values[~best_mask]),
        )

    def _candidate(self, dataset: WeightedDataset, j: int, parent_impurity: float) -> _Candidate:
        if dataset.feature(j).categorical:
            return self._partition_candidate(dataset, j, parent_impurity)
        return self._threshold_candidate(dataset, j, parent_impurity)

    def select(self, dataset: WeightedDataset, total_weight: float) -> Optional[SplitRecord]:
        """Select the feature whose best binary split has the lowest weighted gini.

        Parameters
        ----------
        dataset : WeightedDataset
            Dataset at the node.

        total_weight : float
            Total weight of the root dataset.

        Returns
        -------
        SplitRecord or None
            Best split, None if no feature can split the dataset.
        """
        distribution = dataset.class_distribution()
        parent = self.node_impurity(distribution)
        node_weight = distribution.sum()

        best = None
        best_impurity = np.inf
        for j in range(dataset.dimensionality):
            candidate = self._candidate(dataset, j, parent)
            if candidate.usable and candidate.children_impurity <= best_impurity:
                best = candidate
                best_impurity = candidate.children_impurity

        if best is None:
            return None

        return best.to_record(impurity=parent, improvement=node_weight / total_weight * (parent - best_impurity))
