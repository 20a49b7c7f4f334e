from typing import Any, Tuple

import numpy as np
from numba import njit

from ._registry import Criteria


@Criteria.register("entropy")
@njit(cache=True, nogil=True)
def entropy(weights: np.ndarray) -> float:
    """Calculate entropy (base 2) of a weighted class distribution.

    Classes with zero weight are skipped so that 0 * log(0) = 0.

    Parameters
    ----------
    weights : np.ndarray
        Weighted count of each class.

    Returns
    -------
    float
        Entropy, 0.0 when all weight belongs to a single class or there is no weight at all.
    """
    total = 0.0
    for w in weights:
        if w > 0.0:
            total += w
    if total <= 0.0:
        return 0.0

    value = 0.0
    for w in weights:
        if w > 0.0:
            p = w / total
            value -= p * np.log2(p)

    return value if value > 0.0 else 0.0


@Criteria.register("gini")
@njit(cache=True, nogil=True)
def gini(weights: np.ndarray) -> float:
    """Calculate gini index of a weighted class distribution.

    Parameters
    ----------
    weights : np.ndarray
        Weighted count of each class.

    Returns
    -------
    float
        Gini index, 0.0 when all weight belongs to a single class or there is no weight at all.
    """
    total = 0.0
    for w in weights:
        if w > 0.0:
            total += w
    if total <= 0.0:
        return 0.0

    value = 1.0
    for w in weights:
        if w > 0.0:
            p = w / total
            value -= p * p

    return value if value > 0.0 else 0.0


@njit(nogil=True)
def scan_thresholds(impurity: Any, table: np.ndarray) -> Tuple[int, float, float, float]:
    """Find the best binary split between consecutive distinct values of a continuous feature.

    Rows of ``table`` hold the weighted class counts of each distinct value in ascending order. Candidate i
    sends values[:i + 1] left and the rest right. Left and right class weights are accumulated incrementally so
    all m - 1 candidates cost O(m * K). Equal candidates are resolved in favor of the one found last.

    Parameters
    ----------
    impurity : Any
        Compiled impurity function, see ``entropy`` and ``gini``.

    table : np.ndarray
        Array of shape (m, K) with weighted class counts per distinct value.

    Returns
    -------
    best_index : int
        Index i of the best candidate, the threshold lies between values[i] and values[i + 1].

    children_impurity : float
        Weighted average impurity of both children. For a single distinct value this is the parent impurity.

    left_weight : float
        Total weight sent left.

    right_weight : float
        Total weight sent right.
    """
    m, k = table.shape
    parent = np.zeros(k)
    for i in range(m):
        for c in range(k):
            parent[c] += table[i, c]
    total = parent.sum()

    if m < 2 or total <= 0.0:
        return 0, impurity(parent), total, 0.0

    left = np.zeros(k)
    right = np.zeros(k)
    best_index = 0
    best_impurity = np.inf
    best_left = 0.0
    best_right = 0.0
    for i in range(m - 1):
        w_left = 0.0
        for c in range(k):
            left[c] += table[i, c]
            right[c] = parent[c] - left[c]
            if right[c] < 0.0:
                right[c] = 0.0
            w_left += left[c]
        w_right = total - w_left

        children = (w_left * impurity(left) + w_right * impurity(right)) / total
        if children <= best_impurity:
            best_index = i
            best_impurity = children
            best_left = w_left
            best_right = w_right

    return best_index, best_impurity, best_left, best_right


def children_impurity(impurity: Any, table: np.ndarray) -> float:
    """Weighted average impurity of the children defined by the rows of a conditional distribution.

    Parameters
    ----------
    impurity : Any
        Compiled impurity function.

    table : np.ndarray
        Array of shape (n_children, K) with weighted class counts of each child.

    Returns
    -------
    float
        Sum over children of (child weight / total weight) * child impurity.
    """
    weights = table.sum(axis=1)
    total = weights.sum()
    if total <= 0:
        return 0.0

    return float(sum(w * impurity(row) for w, row in zip(weights, table)) / total)


def split_information(weights: np.ndarray) -> float:
    """Entropy of the branch weight distribution, used to normalize information gain into gain ratio.

    Parameters
    ----------
    weights : np.ndarray
        Total weight sent to each branch.

    Returns
    -------
    float
        Split information.
    """
    return entropy(np.asarray(weights, dtype=float))
