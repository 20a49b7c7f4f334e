from typing import List, Optional, Tuple

import numpy as np
from loguru import logger

from ._node import collapse, copy_node, copy_tree, is_leaf, iter_postorder, Node

PrunedTree = Tuple[float, Node]


class CostComplexityPruner:
    """Minimal cost-complexity pruning of a fitted decision tree.

    The cost of a node is its weighted impurity, weighted_n_samples / W * impurity, where W is the weighted number
    of samples at the root. The effective alpha of a decision node with L leaves below it is

        (cost(node) - sum of cost(leaf) over its leaves) / (L - 1)

    that is the increase in total leaf cost per removed leaf if the node were collapsed. Pruning repeatedly
    collapses the node with the smallest effective alpha, the weakest link. The tree given to the pruner is never
    modified, every pruning step works on a copy.

    Parameters
    ----------
    tree : Node
        Root of the fully grown tree.

    verbose : int, default=0
        Controls verbosity when pruning.
    """

    def __init__(self, tree: Node, verbose: int = 0) -> None:
        self.tree = tree
        self.verbose = verbose
        self._total_weight = tree["weighted_n_samples"]

    def _cost(self, node: Node) -> float:
        if self._total_weight <= 0:
            return 0.0
        return node["weighted_n_samples"] / self._total_weight * node["impurity"]

    def weakest_link(self, tree: Node) -> Tuple[float, Optional[Node]]:
        """Find the decision node with the smallest effective alpha.

        Nodes are visited in post-order. On ties the node with the smaller or equal weighted number of samples
        replaces the current one, so the less supported subtree is collapsed first.

        Parameters
        ----------
        tree : Node
            Root of tree.

        Returns
        -------
        effective_alpha : float
            Smallest effective alpha, inf when tree is a single leaf.

        node : Node or None
            Node to collapse, None when tree is a single leaf.
        """
        best_alpha = np.inf
        best_node: Optional[Node] = None
        stats = {}
        for node in iter_postorder(tree):
            if is_leaf(node):
                stats[id(node)] = (1, self._cost(node))
                continue

            leaves = 0
            subtree_cost = 0.0
            for child in node["children"]:
                child_leaves, child_cost = stats.pop(id(child))
                leaves += child_leaves
                subtree_cost += child_cost
            stats[id(node)] = (leaves, subtree_cost)

            alpha = (self._cost(node) - subtree_cost) / (leaves - 1)
            if alpha < best_alpha:
                best_alpha = alpha
                best_node = node
            elif alpha == best_alpha and node["weighted_n_samples"] <= best_node["weighted_n_samples"]:  # type: ignore
                best_node = node

        return best_alpha, best_node

    def _copy_and_prune(self, tree: Node, target: Node) -> Node:
        if tree is target:
            return collapse(tree)

        new = copy_node(tree)
        new["children"] = [self._copy_and_prune(child, target) for child in tree.get("children", [])]
        return new

    def prune_all(self) -> List[PrunedTree]:
        """Collapse weakest links one at a time until only the root is left.

        Returns
        -------
        List[Tuple[float, Node]]
            (effective alpha, pruned tree) pairs in non-decreasing alpha order. The first pair is (0.0, copy of the
            unpruned tree) and the last tree is a single leaf. Equal alphas are all kept.
        """
        last = copy_tree(self.tree)
        subtrees: List[PrunedTree] = [(0.0, last)]
        while not is_leaf(last):
            alpha, target = self.weakest_link(last)
            last = self._copy_and_prune(last, target)  # type: ignore
            # Weakest link alphas are non-decreasing up to floating point error
            alpha = max(alpha, subtrees[-1][0])
            subtrees.append((alpha, last))
            if self.verbose > 1:
                logger.info(f"Pruned weakest link at depth ({target['depth']}) with effective alpha ({alpha})")

        return subtrees

    def prune_with_alpha(self, ccp_alpha: float) -> Node:
        """Prune the tree for a complexity parameter.

        Weakest links are collapsed while their effective alpha is <= ccp_alpha, giving the largest tree of the
        pruning sequence whose retained splits all have effective alpha > ccp_alpha. With ccp_alpha == 0 nothing
        is collapsed, so splits whose effective alpha is 0 are kept.

        Parameters
        ----------
        ccp_alpha : float
            Complexity parameter, 0.0 returns a copy of the unpruned tree.

        Returns
        -------
        Node
            Root of pruned tree.
        """
        last = copy_tree(self.tree)
        if ccp_alpha <= 0.0:
            return last

        while not is_leaf(last):
            alpha, target = self.weakest_link(last)
            if alpha > ccp_alpha:
                break
            last = self._copy_and_prune(last, target)  # type: ignore
            if self.verbose > 1:
                logger.info(f"Pruned weakest link at depth ({target['depth']}) with effective alpha ({alpha})")

        return last
