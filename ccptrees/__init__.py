# flake8: noqa
import sys

from ._tree import C45Classifier, CARTClassifier, DecisionTreeClassifier, ID3Classifier

# Tree building, pruning and export recurse once per depth level
sys.setrecursionlimit(max(sys.getrecursionlimit(), 100_000))
