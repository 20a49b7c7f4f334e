from typing import Any, Dict, Iterator, List, Literal, Optional, Sequence, Tuple, TypedDict

import numpy as np

from ._dataset import CLASS_INDEX

NodeKind = Literal["leaf", "threshold", "multiway", "partition"]


class Node(TypedDict, total=False):
    """Node in decision tree.

    Every node carries the header fields, decision nodes add the fields of their kind.

    Parameters
    ----------
    kind : {"leaf", "threshold", "multiway", "partition"}
        Tag of the node.

    feature : int
        Column index of the feature tested at the node, CLASS_INDEX for leaves.

    feature_name : str
        Name of the tested feature, name of the class label for leaves.

    value : int
        Encoded majority class, also the fallback prediction of decision nodes.

    distribution : np.ndarray
        Read-only weighted class counts at the node.

    impurity : float
        Impurity at the node.

    n_samples : int
        Number of samples at the node.

    weighted_n_samples : float
        Weighted number of samples at the node.

    depth : int
        Depth of the node, the root has depth 1.

    threshold : float
        Split point of a "threshold" node, children are [<= threshold, > threshold].

    edge_values : List[float]
        Values of a "multiway" node, aligned with children.

    left_values : Tuple[float, ...]
        Values routed to the left child of a "partition" node.

    right_values : Tuple[float, ...]
        Values routed to the right child of a "partition" node.

    children : List[Node]
        Child nodes, empty for leaves.
    """

    kind: NodeKind
    feature: int
    feature_name: str
    value: int
    distribution: np.ndarray
    impurity: float
    n_samples: int
    weighted_n_samples: float
    depth: int
    threshold: float
    edge_values: List[float]
    left_values: Tuple[float, ...]
    right_values: Tuple[float, ...]
    children: List["Node"]


_PAYLOAD_KEYS = ("threshold", "edge_values", "left_values", "right_values")


def is_leaf(node: Node) -> bool:
    return node["kind"] == "leaf"


def route(node: Node, value: float) -> Optional[Node]:
    """Find the child of a decision node that matches a feature value.

    Parameters
    ----------
    node : Node
        Decision node.

    value : float
        Value of the tested feature in the sample.

    Returns
    -------
    Node or None
        Matching child, None when the value cannot be routed (unseen discrete value).
    """
    kind = node["kind"]
    if kind == "threshold":
        return node["children"][0] if value <= node["threshold"] else node["children"][1]
    if kind == "multiway":
        for edge_value, child in zip(node["edge_values"], node["children"]):
            if edge_value == value:
                return child
        return None
    if kind == "partition":
        if value in node["left_values"]:
            return node["children"][0]
        if value in node["right_values"]:
            return node["children"][1]
        return None

    return None


def apply(node: Node, x: np.ndarray) -> Node:
    """Walk a sample down the tree.

    Parameters
    ----------
    node : Node
        Root of (sub)tree.

    x : np.ndarray
        Sample, indexed by original column index.

    Returns
    -------
    Node
        Leaf reached by the sample, or the decision node where routing stopped.
    """
    while not is_leaf(node):
        child = route(node, x[node["feature"]])
        if child is None:
            break
        node = child

    return node


def copy_node(node: Node) -> Node:
    """Copy a node header and payload without its children."""
    new: Node = {key: value for key, value in node.items() if key != "children"}  # type: ignore
    for key in ("edge_values", "left_values", "right_values"):
        if key in new:
            new[key] = type(new[key])(new[key])  # type: ignore
    new["children"] = []

    return new


def copy_tree(node: Node) -> Node:
    """Deep structural copy, only the read-only distribution arrays are shared."""
    new = copy_node(node)
    new["children"] = [copy_tree(child) for child in node.get("children", [])]

    return new


def collapse(node: Node) -> Node:
    """Return a leaf copy of node, dropping its test and subtree.

    The leaf takes the class descriptor carried by the leaves below node.
    """
    leaf = node
    while not is_leaf(leaf):
        leaf = leaf["children"][0]

    new = copy_node(node)
    for key in _PAYLOAD_KEYS:
        new.pop(key, None)  # type: ignore
    new["kind"] = "leaf"
    new["feature"] = leaf["feature"]
    new["feature_name"] = leaf["feature_name"]

    return new


def iter_postorder(node: Node) -> Iterator[Node]:
    """Yield nodes with children before their parent, children in order."""
    for child in node.get("children", []):
        yield from iter_postorder(child)
    yield node


def iter_preorder(node: Node) -> Iterator[Node]:
    yield node
    for child in node.get("children", []):
        yield from iter_preorder(child)


def iter_levels(node: Node) -> Iterator[List[Node]]:
    """Yield the nodes of each depth level, left to right."""
    level = [node]
    while level:
        yield level
        level = [child for parent in level for child in parent.get("children", [])]


def n_leaves(node: Node) -> int:
    return sum(1 for n in iter_preorder(node) if is_leaf(n))


def max_depth(node: Node) -> int:
    return max(n["depth"] for n in iter_preorder(node))


def _format_number(value: float) -> str:
    return repr(float(value))


def edge_string(node: Node) -> str:
    """Describe the outgoing edges of a decision node."""
    kind = node["kind"]
    if kind == "threshold":
        threshold = _format_number(node["threshold"])
        return f"[ [<={threshold}] [>{threshold}] ]"
    if kind == "multiway":
        return "[ " + " ".join(f"[{_format_number(v)}]" for v in node["edge_values"]) + " ]"
    if kind == "partition":
        left = ", ".join(_format_number(v) for v in node["left_values"])
        right = ", ".join(_format_number(v) for v in node["right_values"])
        return f"[ {{{left}}} {{{right}}} ]"

    return "[ ]"


def format_node(node: Node, class_names: Optional[Sequence[Any]] = None) -> str:
    """Single line description of a node.

    Parameters
    ----------
    node : Node
        Node to describe.

    class_names : Sequence[Any], optional (default=None)
        Class labels indexed by encoded class, encoded classes are shown when None.

    Returns
    -------
    str
        "{ class: <label> }" for leaves and "{ attrName: <feature>, edgeValue: <edges> }" for decision nodes.
    """
    if is_leaf(node):
        label = class_names[node["value"]] if class_names is not None else node["value"]
        return f"{{ class: {label} }}"

    return f"{{ attrName: {node['feature_name']}, edgeValue: {edge_string(node)} }}"


def export_text(node: Node, class_names: Optional[Sequence[Any]] = None) -> str:
    """Breadth-first dump of a tree, one line per depth level.

    Parameters
    ----------
    node : Node
        Root of (sub)tree.

    class_names : Sequence[Any], optional (default=None)
        Class labels indexed by encoded class.

    Returns
    -------
    str
        Text representation of the tree.
    """
    lines = []
    for level in iter_levels(node):
        lines.append("[" + ", ".join(format_node(n, class_names) for n in level) + "]")

    return "\n".join(lines)


def export_dict(node: Node, class_names: Optional[Sequence[Any]] = None) -> Dict[str, Any]:
    """Convert a tree into nested builtin containers.

    Parameters
    ----------
    node : Node
        Root of (sub)tree.

    class_names : Sequence[Any], optional (default=None)
        Class labels indexed by encoded class, when given a "class" entry is added to every node.

    Returns
    -------
    Dict[str, Any]
        Copy of the tree with lists instead of arrays and tuples.
    """
    out: Dict[str, Any] = {}
    for key, value in node.items():
        if key == "children":
            continue
        if isinstance(value, np.ndarray):
            out[key] = value.tolist()
        elif isinstance(value, tuple):
            out[key] = list(value)
        elif isinstance(value, np.generic):
            out[key] = value.item()
        else:
            out[key] = value
    if class_names is not None:
        label = class_names[node["value"]]
        out["class"] = label.item() if isinstance(label, np.generic) else label
    out["children"] = [export_dict(child, class_names) for child in node.get("children", [])]

    return out


def make_node(
    *,
    distribution: np.ndarray,
    impurity: float,
    n_samples: int,
    depth: int,
    feature: int = CLASS_INDEX,
    feature_name: str = "class",
) -> Node:
    """Create a leaf node from the statistics of a dataset.

    Decision nodes are created the same way and then given a kind, payload and children.
    """
    distribution = np.array(distribution, dtype=float)
    distribution.flags.writeable = False

    return Node(
        kind="leaf",
        feature=feature,
        feature_name=feature_name,
        value=int(np.argmax(distribution)),
        distribution=distribution,
        impurity=float(impurity),
        n_samples=int(n_samples),
        weighted_n_samples=float(distribution.sum()),
        depth=depth,
        children=[],
    )
