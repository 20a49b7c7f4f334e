import warnings
from abc import ABCMeta, abstractmethod
from typing import Any, Dict, List, Literal, Optional, Tuple, Union

import numpy as np
from loguru import logger
from pydantic import BaseModel, conint, field_validator, NonNegativeFloat, NonNegativeInt, PositiveInt
from sklearn.base import BaseEstimator, ClassifierMixin
from sklearn.exceptions import NotFittedError
from sklearn.preprocessing import LabelEncoder

from ._dataset import CLASS_INDEX, FeatureInfo, WeightedDataset
from ._node import apply, export_dict, export_text, is_leaf, iter_preorder, make_node, max_depth, n_leaves, Node
from ._pruning import CostComplexityPruner, PrunedTree
from ._registry import SplitSelectors
from ._splitter import BaseSplitSelector
from ._utils import estimate_proba, instance_weights

ClassWeightOption = Optional[Union[Literal["balanced"], Dict[Any, NonNegativeFloat]]]


class DecisionTreeParameters(BaseModel):
    """Model for decision tree parameters."""

    criterion: str
    max_depth: Optional[PositiveInt]
    min_samples_split: conint(ge=2)  # type: ignore
    min_samples_leaf: PositiveInt
    min_impurity_decrease: NonNegativeFloat
    ccp_alpha: NonNegativeFloat
    categorical_features: Optional[List[NonNegativeInt]]
    class_weight: ClassWeightOption
    verbose: NonNegativeInt

    @field_validator("criterion")
    @classmethod
    def validate_criterion(cls, v: str) -> str:
        """Validate criterion."""
        supported = SplitSelectors.keys()
        if v not in supported:
            raise ValueError(f"criterion ({v}) not supported, expected one of: {supported}")

        return v


class BaseDecisionTree(BaseEstimator, metaclass=ABCMeta):
    """Base class for decision trees grown top-down and pruned with minimal cost-complexity pruning.

    Warning: This class should not be used directly. Use derived classes instead.
    """

    @abstractmethod
    def __init__(
        self,
        *,
        criterion: str,
        max_depth: Optional[int],
        min_samples_split: int,
        min_samples_leaf: int,
        min_impurity_decrease: float,
        ccp_alpha: float,
        categorical_features: Optional[List[int]],
        class_weight: Optional[Union[str, Dict[Any, float]]],
        verbose: int,
    ) -> None:
        self.criterion = criterion
        self.max_depth = max_depth
        self.min_samples_split = min_samples_split
        self.min_samples_leaf = min_samples_leaf
        self.min_impurity_decrease = min_impurity_decrease
        self.ccp_alpha = ccp_alpha
        self.categorical_features = categorical_features
        self.class_weight = class_weight
        self.verbose = verbose

        self._validate_parameters({**self.get_params(), "criterion": self.criterion})

    def __repr__(self) -> str:
        """Class as string.

        Returns
        -------
        str
            Class as string.
        """
        string = self.__class__.__name__ + "("
        params = self.get_params()
        n_params = len(params)
        for j, (param, value) in enumerate(params.items()):
            if type(value) == str:
                string += f"{param}='{value}'"
            else:
                string += f"{param}={value}"
            if j < n_params - 1:
                string += ", "

        string += ")"

        return string

    def __str__(self) -> str:
        """Class as string.

        Returns
        -------
        str
            Class as string.
        """
        return self.__repr__()

    def _validate_parameters(self, params: Dict[str, Any]) -> None:
        """Validate hyperparameters.

        Parameters
        ----------
        params : Dict[str, Any]
            Hyperparameters.
        """
        DecisionTreeParameters(**params)

    def _validate_data_fit(self, *, X: Any, y: Any) -> Tuple[np.ndarray, np.ndarray]:
        """Validate data for training by checking types and casting.

        Parameters
        ----------
        X : array-like of shape (n_samples, n_features)
            Training features.

        y : array-like of shape (n_samples,)
            Training target.

        Returns
        -------
        np.ndarray
            Training features.

        np.ndarray
            Training target.
        """
        feature_names_in = None
        if not isinstance(X, np.ndarray):
            if isinstance(X, (list, tuple)):
                X = np.array(X)
            elif hasattr(X, "values"):
                if hasattr(X, "columns"):
                    feature_names_in = [str(column) for column in X.columns]
                X = X.values
            else:
                raise ValueError(
                    f"Unsupported type for X ({type(X)}), expected np.ndarray, list, tuple, or pandas data structure"
                )

        if X.ndim == 1:
            X = X[:, None]
        elif X.ndim > 2:
            raise ValueError(
                f"Arrays with more than 2 dimensions are not supported for X, detected ({X.ndim}) dimensions"
            )

        if feature_names_in is None:
            feature_names_in = [f"f{j}" for j in range(1, X.shape[1] + 1)]
        self.feature_names_in_ = feature_names_in

        self._target_name = "class"
        if not isinstance(y, np.ndarray):
            if isinstance(y, (list, tuple)):
                y = np.array(y)
            elif hasattr(y, "values"):
                if getattr(y, "name", None) is not None:
                    self._target_name = str(y.name)
                y = y.values
            else:
                raise ValueError(
                    f"Unsupported type for y ({type(y)}), expected np.ndarray, list, tuple, or pandas data structure"
                )

        if y.ndim == 2 and y.shape[1] == 1:
            y = y.ravel()
        elif y.ndim > 1:
            raise ValueError(f"Multi-output labels are not supported for y, detected ({y.shape[1]}) outputs")

        if len(X) != len(y):
            raise ValueError(f"Different number of samples between X ({len(X)}) and y ({len(y)})")

        if len(y) == 0:
            raise ValueError("Cannot fit a tree on an empty dataset")

        X = X.astype(float)
        if not np.all(np.isfinite(X)):
            raise ValueError("X contains missing or infinite values, which are not supported")

        if y.dtype.kind == "f" and np.any(np.isnan(y)):
            raise ValueError("y contains unlabeled (NaN) samples")

        return X, y

    def _validate_data_predict(self, X: Any) -> np.ndarray:
        """Validate data for inference by checking types and casting.

        Parameters
        ----------
        X : array-like of shape (n_samples, n_features)
            Inference features.

        Returns
        -------
        np.ndarray
            Inference features.
        """
        self._check_is_fitted()

        feature_names = None
        if not isinstance(X, np.ndarray):
            if isinstance(X, (list, tuple)):
                X = np.array(X)
            elif hasattr(X, "values"):
                if hasattr(X, "columns"):
                    feature_names = [str(column) for column in X.columns]
                X = X.values
            else:
                raise ValueError(
                    f"Unsupported type for X ({type(X)}), expected np.ndarray, list, tuple, or pandas data structure"
                )

        if X.ndim == 1:
            X = X[:, None]
        elif X.ndim > 2:
            raise ValueError(
                f"Arrays with more than 2 dimensions are not supported for X, detected ({X.ndim}) dimensions"
            )

        if X.shape[1] != len(self.feature_names_in_):
            raise ValueError(f"X should have ({len(self.feature_names_in_)}) features, got ({X.shape[1]})")

        if feature_names:
            if set(feature_names) != set(self.feature_names_in_):
                diff = list(set(self.feature_names_in_) - set(feature_names))
                raise ValueError(f"Mismatch in feature names for X, missing ({len(diff)}) features: {diff}")

        X = X.astype(float)
        return X

    def _check_is_fitted(self) -> None:
        if not hasattr(self, "tree_"):
            raise NotFittedError(
                f"This {self.__class__.__name__} instance is not fitted yet, call fit() before using this method"
            )

    def _make_leaf(self, dataset: WeightedDataset, depth: int, impurity: Optional[float] = None) -> Node:
        """Create a leaf from a dataset.

        Parameters
        ----------
        dataset : WeightedDataset
            Dataset at the node.

        depth : int
            Depth of the node.

        impurity : float, optional (default=None)
            Known impurity of the dataset, calculated when None.

        Returns
        -------
        Node
            Leaf node.
        """
        distribution = dataset.class_distribution()
        if impurity is None:
            impurity = self._splitter.node_impurity(distribution)

        return make_node(
            distribution=distribution,
            impurity=impurity,
            n_samples=dataset.size,
            depth=depth,
            feature=CLASS_INDEX,
            feature_name=dataset.class_info.name,
        )

    def _build_tree(self, dataset: WeightedDataset, depth: int) -> Node:
        """Recursively build tree.

        Parameters
        ----------
        dataset : WeightedDataset
            Training data at the node.

        depth : int
            Depth of the node, the root has depth 1.

        Returns
        -------
        Node
            Node in decision tree.
        """
        n = dataset.size
        if self._verbose > 2:
            logger.debug(f"Building tree at depth ({depth}) with ({n}) samples and ({dataset.dimensionality}) features")

        # Check for stopping criteria at node level
        if len(dataset.classes()) == 1:
            return self._make_leaf(dataset, depth, impurity=0.0)

        if depth >= self._max_depth or dataset.dimensionality == 0 or n < self._min_samples_split:
            return self._make_leaf(dataset, depth)

        # Split selection
        record = self._splitter.select(dataset, self._total_weight)
        if record is None:
            return self._make_leaf(dataset, depth)
        if record.improvement < self._min_impurity_decrease:
            return self._make_leaf(dataset, depth, impurity=record.impurity)

        children = []
        for _, subset in self._splitter.partition(dataset, record):
            if subset.size < self._min_samples_leaf:
                child = self._make_leaf(subset, depth + 1)
            else:
                child = self._build_tree(subset, depth + 1)
            children.append(child)

        feature = dataset.feature(record.feature)
        node = make_node(
            distribution=dataset.class_distribution(),
            impurity=record.impurity,
            n_samples=n,
            depth=depth,
            feature=feature.index,
            feature_name=feature.name,
        )
        node["kind"] = record.kind
        if record.kind == "threshold":
            node["threshold"] = record.threshold  # type: ignore
        elif record.kind == "multiway":
            node["edge_values"] = list(record.values)
        else:
            node["left_values"] = record.left_values
            node["right_values"] = record.right_values
        node["children"] = children

        return node

    def _feature_importances(self, tree: Node) -> np.ndarray:
        """Weighted impurity decrease contributed by each feature, normalized to sum to 1."""
        importances = np.zeros(self.n_features_in_, dtype=float)
        for node in iter_preorder(tree):
            if is_leaf(node):
                continue
            decrease = node["weighted_n_samples"] * node["impurity"] - sum(
                child["weighted_n_samples"] * child["impurity"] for child in node["children"]
            )
            importances[node["feature"]] += decrease / self._total_weight

        total = importances.sum()
        if total > 0:
            importances /= total

        return importances

    def fit(self, X: Any, y: Any, sample_weight: Optional[Any] = None) -> "BaseDecisionTree":
        """Train estimator.

        Parameters
        ----------
        X : array-like of shape (n_samples, n_features)
            Training features. Categorical features must be encoded as numbers.

        y : array-like of shape (n_samples,)
            Training target.

        sample_weight : array-like of shape (n_samples,), default=None
            Sample weights, multiplied by class weights when class_weight is set.

        Returns
        -------
        self
            Fitted estimator.
        """
        X, y = self._validate_data_fit(X=X, y=y)
        n, p = X.shape

        categorical = sorted(set(self.categorical_features or []))
        if categorical and categorical[-1] >= p:
            raise ValueError(f"categorical_features index ({categorical[-1]}) out of range for ({p}) features")

        weights = instance_weights(y=y, sample_weight=sample_weight, class_weight=self.class_weight)

        # Private attributes for all parameters - for consistency to reference across other methods
        self._max_depth = self.max_depth if self.max_depth else np.inf
        self._min_samples_leaf = self.min_samples_leaf
        self._min_samples_split = self.min_samples_split
        if self._min_samples_split < 2 * self._min_samples_leaf:
            warnings.warn(
                f"min_samples_split ({self._min_samples_split}) should be >= 2 * min_samples_leaf "
                f"({self._min_samples_leaf}), setting min_samples_split = {2 * self._min_samples_leaf}"
            )
            self._min_samples_split = 2 * self._min_samples_leaf
        self._min_impurity_decrease = float(self.min_impurity_decrease)
        self._ccp_alpha = float(self.ccp_alpha)
        self._verbose = min(self.verbose, 3)
        self._splitter: BaseSplitSelector = SplitSelectors[self.criterion]()

        self._label_encoder = LabelEncoder()
        y = self._label_encoder.fit_transform(y)

        # Fitted attributes
        self.classes_ = self._label_encoder.classes_
        self.n_classes_ = len(self.classes_)
        self.n_features_in_ = p

        features = [
            FeatureInfo(name=self.feature_names_in_[j], categorical=j in categorical, index=j) for j in range(p)
        ]
        dataset = WeightedDataset(
            X=X,
            y=y,
            sample_weight=weights,
            features=features,
            n_classes=self.n_classes_,
            class_info=FeatureInfo(name=self._target_name, categorical=True, index=CLASS_INDEX),
        )
        self._total_weight = dataset.total_weight()

        # Start recursion
        self.full_tree_ = self._build_tree(dataset, depth=1)

        pruner = CostComplexityPruner(self.full_tree_, verbose=self._verbose)
        self.pruned_subtrees_ = pruner.prune_all()
        self.tree_ = pruner.prune_with_alpha(self._ccp_alpha)
        self.feature_importances_ = self._feature_importances(self.tree_)

        if self._verbose > 0:
            logger.info(
                f"Fitted {self.__class__.__name__} (criterion={self.criterion}) on ({n}) samples: grown tree has "
                f"({n_leaves(self.full_tree_)}) leaves, pruned tree (ccp_alpha={self._ccp_alpha}) has "
                f"({n_leaves(self.tree_)}) leaves and depth ({max_depth(self.tree_)})"
            )

        return self

    def _predict_node(self, x: np.ndarray, tree: Optional[Node] = None) -> Node:
        """Node reached by a single sample.

        Parameters
        ----------
        x : np.ndarray
            Features of one sample.

        tree : Node, default=None
            Tree to use, the pruned tree when None.

        Returns
        -------
        Node
            Leaf reached, or the decision node whose test could not route the sample.
        """
        if tree is None:
            tree = self.tree_

        return apply(tree, x)

    def predict_proba(self, X: Any) -> np.ndarray:
        """Predict class probabilities.

        Parameters
        ----------
        X : array-like of shape (n_samples, n_features)
            Features.

        Returns
        -------
        np.ndarray
            Predicted class probabilities, columns ordered like classes_.
        """
        X = self._validate_data_predict(X)

        return np.array([estimate_proba(self._predict_node(x)["distribution"]) for x in X])

    def predict(self, X: Any) -> np.ndarray:
        """Predict target.

        Parameters
        ----------
        X : array-like of shape (n_samples, n_features)
            Features.

        Returns
        -------
        np.ndarray
            Predicted class labels.
        """
        X = self._validate_data_predict(X)

        y_hat = np.array([self._predict_node(x)["value"] for x in X], dtype=int)
        return self.classes_[y_hat]

    def pruned_subtrees(self) -> List[PrunedTree]:
        """Sequence of effective alphas and the pruned trees they produce.

        Returns
        -------
        List[Tuple[float, Node]]
            (effective alpha, tree) pairs in non-decreasing alpha order, from the unpruned tree at alpha 0.0 to a
            single leaf.
        """
        self._check_is_fitted()

        return self.pruned_subtrees_

    def cost_complexity_pruning_path(self) -> Dict[str, np.ndarray]:
        """Effective alphas of the pruning sequence and the total leaf impurity of each pruned tree.

        Returns
        -------
        Dict[str, np.ndarray]
            Keys "ccp_alphas" and "impurities".
        """
        self._check_is_fitted()

        alphas = []
        impurities = []
        for alpha, tree in self.pruned_subtrees_:
            alphas.append(alpha)
            impurities.append(
                sum(
                    node["weighted_n_samples"] / self._total_weight * node["impurity"]
                    for node in iter_preorder(tree)
                    if is_leaf(node)
                )
            )

        return {"ccp_alphas": np.array(alphas), "impurities": np.array(impurities)}

    def get_depth(self) -> int:
        """Depth of the pruned tree, a single leaf has depth 1."""
        self._check_is_fitted()
        return max_depth(self.tree_)

    def get_n_leaves(self) -> int:
        """Number of leaves of the pruned tree."""
        self._check_is_fitted()
        return n_leaves(self.tree_)

    def export_text(self, tree: Optional[Node] = None) -> str:
        """Breadth-first text dump of a tree, one line per depth level.

        Parameters
        ----------
        tree : Node, default=None
            Tree to export, the pruned tree when None.

        Returns
        -------
        str
            Text representation of the tree.
        """
        self._check_is_fitted()
        return export_text(self.tree_ if tree is None else tree, class_names=self.classes_)

    def print_tree(self, tree: Optional[Node] = None) -> None:
        """Print the breadth-first text dump of a tree."""
        print(self.export_text(tree))

    def export_tree(self, tree: Optional[Node] = None) -> Dict[str, Any]:
        """Copy a tree into nested builtin containers with decoded class labels.

        Parameters
        ----------
        tree : Node, default=None
            Tree to export, the pruned tree when None.

        Returns
        -------
        Dict[str, Any]
            Exported tree.
        """
        self._check_is_fitted()
        return export_dict(self.tree_ if tree is None else tree, class_names=self.classes_)


class DecisionTreeClassifier(ClassifierMixin, BaseDecisionTree):
    """Decision tree classifier with minimal cost-complexity pruning.

    Parameters
    ----------
    criterion : {"info_gain", "gain_ratio", "gini"}, default="gini"
        Split quality criterion, it also selects the induction algorithm: "info_gain" grows an ID3 tree,
        "gain_ratio" a C4.5 tree and "gini" a CART tree.

    max_depth : int, default=None
        Maximum depth to grow tree, the root has depth 1.

    min_samples_split : int, default=2
        Minimum samples required to split a node, raised to 2 * min_samples_leaf if smaller.

    min_samples_leaf : int, default=1
        Minimum number of samples required to grow a child further, smaller children become leaves.

    min_impurity_decrease : float, default=0.0
        Minimum impurity decrease, weighted by the fraction of the total weight reaching the node, required to
        split.

    ccp_alpha : float, default=0.0
        Complexity parameter used for minimal cost-complexity pruning, 0.0 disables pruning.

    categorical_features : List[int], default=None
        Indices of numerically encoded categorical features, all features are continuous when None.

    class_weight : {"balanced"} or dict, default=None
        Weights associated with classes, multiplied by sample weights.

    verbose : int, default=0
        Controls verbosity when fitting and pruning.

    Attributes
    ----------
    classes_ : np.ndarray
        Unique class labels.

    n_classes_ : int
        Number of classes.

    feature_importances_ : np.ndarray
        Feature importances of the pruned tree.

    n_features_in_ : int
        Number of features seen during fit.

    feature_names_in_ : List[str]
        List of feature names seen during fit.

    full_tree_ : Node
        Unpruned decision tree.

    pruned_subtrees_ : List[Tuple[float, Node]]
        Pruning sequence of (effective alpha, tree) pairs.

    tree_ : Node
        Decision tree pruned with ccp_alpha, used for prediction.
    """

    def __init__(
        self,
        *,
        criterion: str = "gini",
        max_depth: Optional[int] = None,
        min_samples_split: int = 2,
        min_samples_leaf: int = 1,
        min_impurity_decrease: float = 0.0,
        ccp_alpha: float = 0.0,
        categorical_features: Optional[List[int]] = None,
        class_weight: Optional[Union[str, Dict[Any, float]]] = None,
        verbose: int = 0,
    ) -> None:
        super().__init__(
            criterion=criterion,
            max_depth=max_depth,
            min_samples_split=min_samples_split,
            min_samples_leaf=min_samples_leaf,
            min_impurity_decrease=min_impurity_decrease,
            ccp_alpha=ccp_alpha,
            categorical_features=categorical_features,
            class_weight=class_weight,
            verbose=verbose,
        )


class _FixedCriterionClassifier(DecisionTreeClassifier):
    """Decision tree classifier whose criterion is fixed by the class."""

    _criterion = "gini"

    def __init__(
        self,
        *,
        max_depth: Optional[int] = None,
        min_samples_split: int = 2,
        min_samples_leaf: int = 1,
        min_impurity_decrease: float = 0.0,
        ccp_alpha: float = 0.0,
        categorical_features: Optional[List[int]] = None,
        class_weight: Optional[Union[str, Dict[Any, float]]] = None,
        verbose: int = 0,
    ) -> None:
        super().__init__(
            criterion=self._criterion,
            max_depth=max_depth,
            min_samples_split=min_samples_split,
            min_samples_leaf=min_samples_leaf,
            min_impurity_decrease=min_impurity_decrease,
            ccp_alpha=ccp_alpha,
            categorical_features=categorical_features,
            class_weight=class_weight,
            verbose=verbose,
        )


class ID3Classifier(_FixedCriterionClassifier):
    """ID3 decision tree classifier: information gain, multi-way splits on categorical features.

    A feature used by a node is not available to its descendants. See DecisionTreeClassifier for parameters.
    """

    _criterion = "info_gain"


class C45Classifier(_FixedCriterionClassifier):
    """C4.5 decision tree classifier: gain ratio among features with above average information gain.

    A feature used by a node is not available to its descendants. See DecisionTreeClassifier for parameters.
    """

    _criterion = "gain_ratio"


class CARTClassifier(_FixedCriterionClassifier):
    """CART decision tree classifier: gini index, binary splits on every feature.

    See DecisionTreeClassifier for parameters.
    """

    _criterion = "gini"
