"""Tests for ccptrees._tree.py."""
from typing import Any, Dict

import numpy as np
import pytest
from pydantic import ValidationError
from sklearn import datasets
from sklearn.base import clone
from sklearn.exceptions import NotFittedError

from ccptrees import C45Classifier, CARTClassifier, DecisionTreeClassifier, ID3Classifier
from ccptrees._node import is_leaf, iter_preorder
from ccptrees._tree import DecisionTreeParameters

pytestmark = pytest.mark.tree

ESTIMATORS = [ID3Classifier, C45Classifier, CARTClassifier]


def test_decision_tree_parameters() -> None:
    """Test DecisionTreeParameters functionality."""
    # Failure
    with pytest.raises(ValidationError) as e:
        DecisionTreeParameters()
    assert e.type is ValidationError, f"Wrong exception, got ({e.type}) but expected ({ValidationError})"

    # Success
    params = DecisionTreeParameters(
        criterion="gain_ratio",
        max_depth=None,
        min_samples_split=2,
        min_samples_leaf=1,
        min_impurity_decrease=0.0,
        ccp_alpha=0.01,
        categorical_features=[0, 2],
        class_weight={"a": 2.0},
        verbose=1,
    )
    assert type(params) is DecisionTreeParameters, f"Wrong class, got ({type(params)})"


@pytest.mark.parametrize(
    "kwargs",
    [
        {"criterion": "mse"},
        {"max_depth": 0},
        {"min_samples_split": 1},
        {"min_samples_leaf": 0},
        {"min_impurity_decrease": -0.1},
        {"ccp_alpha": -1.0},
        {"categorical_features": [-1]},
        {"class_weight": "uniform"},
        {"verbose": -1},
    ],
)
def test_invalid_parameters(kwargs: Dict[str, Any]) -> None:
    """Test invalid hyperparameters are rejected at construction."""
    with pytest.raises(ValidationError):
        DecisionTreeClassifier(**kwargs)


@pytest.mark.parametrize("estimator,criterion", list(zip(ESTIMATORS, ["info_gain", "gain_ratio", "gini"])))
def test_fixed_criterion(estimator, criterion: str) -> None:
    """Test named estimators fix their criterion and survive cloning."""
    clf = estimator(max_depth=3)
    assert clf.criterion == criterion
    assert "criterion" not in clf.get_params()

    new = clone(clf)
    assert new.criterion == criterion
    assert new.max_depth == 3
    assert str(new) == repr(new)


def test_not_fitted() -> None:
    """Test methods that need a fitted tree."""
    clf = CARTClassifier()
    for method in [clf.get_depth, clf.get_n_leaves, clf.export_text, clf.pruned_subtrees]:
        with pytest.raises(NotFittedError):
            method()

    with pytest.raises(NotFittedError):
        clf.predict(np.zeros((1, 2)))


@pytest.mark.parametrize("estimator", ESTIMATORS)
@pytest.mark.parametrize("categorical_features", [None, [0]])
def test_perfectly_correlated_feature(estimator, categorical_features) -> None:
    """Test a binary feature that matches the class gives a two leaf tree."""
    X = np.array([[0], [0], [1], [1]])
    y = np.array(["Class A", "Class A", "Class B", "Class B"])
    clf = estimator(categorical_features=categorical_features).fit(X, y)

    root = clf.tree_
    assert root["impurity"] > 0
    assert clf.get_n_leaves() == 2
    assert clf.get_depth() == 2
    for child in root["children"]:
        assert is_leaf(child)
        assert child["impurity"] == 0.0
    assert np.all(clf.predict(X) == y)


@pytest.mark.parametrize("estimator", ESTIMATORS)
def test_single_sample(estimator) -> None:
    """Test a single row gives a pure leaf."""
    clf = estimator().fit(np.array([[3.0, 1.0]]), np.array(["Class A"]))
    assert is_leaf(clf.tree_)
    assert clf.tree_["impurity"] == 0.0
    assert clf.get_depth() == 1
    assert clf.predict(np.array([[0.0, 0.0]]))[0] == "Class A"
    assert np.all(clf.feature_importances_ == 0.0)


def test_continuous_threshold() -> None:
    """Test CART splits at the midpoint between the closest cross-class values."""
    X = np.array([[1.0], [2.0], [3.0], [7.0], [8.0], [9.0]])
    y = np.array(["Class A", "Class A", "Class A", "Class B", "Class B", "Class B"])
    clf = CARTClassifier().fit(X, y)

    assert clf.tree_["kind"] == "threshold"
    assert clf.tree_["threshold"] == 5.0
    assert [child["impurity"] for child in clf.tree_["children"]] == [0.0, 0.0]
    assert list(clf.predict(np.array([[4.9], [5.0], [5.1]]))) == ["Class A", "Class A", "Class B"]
    assert clf.export_text().split("\n")[0] == "[{ attrName: f1, edgeValue: [ [<=5.0] [>5.0] ] }]"


@pytest.mark.parametrize("estimator", ESTIMATORS)
def test_xor(estimator) -> None:
    """Test splits without immediate impurity decrease are still grown."""
    X = np.array([[0, 0], [0, 1], [1, 0], [1, 1]] * 2)
    y = np.array([0, 1, 1, 0] * 2)
    clf = estimator().fit(X, y)
    assert clf.score(X, y) == 1.0


@pytest.mark.parametrize("estimator", [ID3Classifier, CARTClassifier])
def test_unseen_value(estimator) -> None:
    """Test a value never seen by a discrete split falls back to the node majority."""
    X = np.array([[0], [0], [1]])
    y = np.array(["A", "A", "B"])
    clf = estimator(categorical_features=[0]).fit(X, y)
    assert clf.predict(np.array([[2]]))[0] == "A"
    assert np.allclose(clf.predict_proba(np.array([[2]])), [[2 / 3, 1 / 3]])


@pytest.mark.parametrize(
    "class_weight,sample_weight,expected",
    [
        (None, None, 0),
        ({1: 3.0}, None, 1),
        ({1: 3.0, 7: 10.0}, None, 1),
        ("balanced", None, 0),
        (None, [1.0, 1.0, 5.0], 1),
        ({0: 4.0}, [1.0, 1.0, 5.0], 0),
    ],
)
def test_weights(class_weight, sample_weight, expected: int) -> None:
    """Test class and sample weights move the leaf majority."""
    X = np.ones((3, 1))
    y = np.array([0, 0, 1])
    clf = CARTClassifier(class_weight=class_weight).fit(X, y, sample_weight=sample_weight)
    assert is_leaf(clf.tree_)
    assert clf.predict(np.ones((1, 1)))[0] == expected


def test_invalid_data() -> None:
    """Test data validation."""
    clf = CARTClassifier()
    with pytest.raises(ValueError):
        clf.fit(np.zeros((3, 2)), np.zeros(2))
    with pytest.raises(ValueError):
        clf.fit(np.array([[np.nan], [1.0]]), np.array([0, 1]))
    with pytest.raises(ValueError):
        clf.fit(np.zeros((2, 1)), np.array([0.0, np.nan]))
    with pytest.raises(ValueError):
        clf.fit(np.zeros((2, 1)), np.array([0, 1]), sample_weight=[1.0, -1.0])
    with pytest.raises(ValueError):
        clf.fit(np.zeros((2, 1)), np.array([0, 1]), sample_weight=[0.0, 0.0])
    with pytest.raises(ValueError):
        CARTClassifier(categorical_features=[3]).fit(np.zeros((2, 1)), np.array([0, 1]))

    clf.fit(np.zeros((2, 2)), np.array([0, 1]))
    with pytest.raises(ValueError):
        clf.predict(np.zeros((2, 3)))


def test_min_samples_split_adjusted() -> None:
    """Test min_samples_split is raised to twice min_samples_leaf."""
    X, y = datasets.load_iris(return_X_y=True)
    with pytest.warns(UserWarning):
        clf = CARTClassifier(min_samples_leaf=5).fit(X, y)
    assert clf._min_samples_split == 10


class TestDecisionTreeClassifier:
    """Test DecisionTreeClassifier functionality."""

    @pytest.fixture(autouse=True)
    def setup(self) -> None:
        """Initialize tests."""
        iris = datasets.load_iris()
        self.X = iris.data
        self.y = iris.target_names[iris.target]

    @pytest.mark.parametrize("criterion", ["info_gain", "gain_ratio", "gini"])
    def test_fit(self, criterion: str) -> None:
        """Test fit method."""
        clf = DecisionTreeClassifier(criterion=criterion).fit(self.X, self.y)
        assert clf.score(self.X, self.y) >= 0.9
        assert list(clf.classes_) == ["setosa", "versicolor", "virginica"]
        assert clf.n_classes_ == 3
        assert clf.n_features_in_ == 4
        assert clf.feature_names_in_ == ["f1", "f2", "f3", "f4"]
        assert np.isclose(clf.feature_importances_.sum(), 1.0)
        assert np.all(clf.feature_importances_ >= 0)

    def test_predict_proba(self) -> None:
        """Test predict_proba method."""
        clf = CARTClassifier(max_depth=3).fit(self.X, self.y)
        proba = clf.predict_proba(self.X)
        assert proba.shape == (len(self.X), 3)
        assert np.allclose(proba.sum(axis=1), 1.0)
        assert np.all(clf.classes_[proba.argmax(axis=1)] == clf.predict(self.X))

    @pytest.mark.parametrize("estimator", ESTIMATORS)
    def test_weight_conservation(self, estimator) -> None:
        """Test children weights add up to the parent weight."""
        clf = estimator().fit(self.X, self.y)
        assert np.isclose(clf.full_tree_["weighted_n_samples"], len(self.y))
        for node in iter_preorder(clf.full_tree_):
            if is_leaf(node):
                continue
            children = node["children"]
            assert np.isclose(sum(child["weighted_n_samples"] for child in children), node["weighted_n_samples"])
            assert np.allclose(np.sum([child["distribution"] for child in children], axis=0), node["distribution"])

    @pytest.mark.parametrize("max_depth", [1, 2, 3])
    def test_max_depth(self, max_depth: int) -> None:
        """Test depth bound."""
        clf = CARTClassifier(max_depth=max_depth).fit(self.X, self.y)
        assert clf.get_depth() <= max_depth

    @pytest.mark.parametrize("estimator", ESTIMATORS)
    def test_min_samples_leaf(self, estimator) -> None:
        """Test small children become leaves and recursively grown leaves hold enough samples."""
        sample_weight = np.random.RandomState(1718).uniform(0.1, 3.0, size=len(self.y))
        clf = estimator(min_samples_leaf=7, min_samples_split=14).fit(self.X, self.y, sample_weight=sample_weight)

        small = []
        for node in iter_preorder(clf.full_tree_):
            if is_leaf(node):
                continue
            assert node["n_samples"] >= 14
            for child in node["children"]:
                if child["n_samples"] < 7:
                    assert is_leaf(child)
                    # Small leaves keep their own statistics
                    assert child["value"] == int(np.argmax(child["distribution"]))
                    small.append(id(child))

        for node in iter_preorder(clf.full_tree_):
            if is_leaf(node) and id(node) not in small:
                assert node["n_samples"] >= 7

    def test_min_samples_leaf_small_child(self) -> None:
        """Test a child below the minimum is a leaf even when it is impure."""
        X = np.array([[0], [0], [0], [0], [0], [0], [1], [1]])
        y = np.array([0, 0, 0, 0, 0, 1, 1, 0])
        clf = ID3Classifier(categorical_features=[0], min_samples_leaf=3, min_samples_split=6).fit(X, y)

        small = clf.tree_["children"][1]
        assert is_leaf(small)
        assert small["n_samples"] == 2
        assert small["impurity"] == 1.0
        assert small["depth"] == 2

    def test_min_impurity_decrease(self) -> None:
        """Test splits below the minimum decrease are not made."""
        clf = CARTClassifier(min_impurity_decrease=1.0).fit(self.X, self.y)
        assert clf.get_n_leaves() == 1

    def test_ccp_alpha(self) -> None:
        """Test larger complexity parameters give smaller trees."""
        leaves = [CARTClassifier(ccp_alpha=alpha).fit(self.X, self.y).get_n_leaves() for alpha in [0.0, 0.01, 0.1, 1.0]]
        assert leaves == sorted(leaves, reverse=True)
        assert leaves[-1] == 1

        clf = CARTClassifier(ccp_alpha=0.01).fit(self.X, self.y)
        path = clf.cost_complexity_pruning_path()
        assert len(path["ccp_alphas"]) == len(clf.pruned_subtrees())
        assert np.all(np.diff(path["ccp_alphas"]) >= 0)
        assert np.all(np.diff(path["impurities"]) >= -1e-12)

    def test_export(self, capsys) -> None:
        """Test text and dict export."""
        clf = CARTClassifier(max_depth=2, verbose=3).fit(self.X, self.y)
        text = clf.export_text()
        assert text.startswith("[{ attrName: f")
        assert len(text.split("\n")) == clf.get_depth()

        clf.print_tree()
        assert capsys.readouterr().out.strip() == text

        tree = clf.export_tree()
        assert tree["class"] in clf.classes_
        assert isinstance(tree["distribution"], list)
        assert all(child["class"] in clf.classes_ for child in tree["children"])

    def test_breast_cancer(self) -> None:
        """Test an unpruned tree fits a larger dataset."""
        X, y = datasets.load_breast_cancer(return_X_y=True)
        clf = CARTClassifier().fit(X, y)
        assert clf.score(X, y) >= 0.99

        pruned = CARTClassifier(ccp_alpha=0.01).fit(X, y)
        assert pruned.get_n_leaves() < clf.get_n_leaves()
