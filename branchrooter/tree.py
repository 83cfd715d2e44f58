from __future__ import annotations
import json
from enum import Enum
from typing import Optional, Any, Dict, List, Iterator

try:
    from typing import Self
except ImportError:
    from typing_extensions import Self


class Units(Enum):
    """Units in which branch lengths (and therefore node heights) are expressed."""

    EXPECTED_SUBSTITUTIONS = "expected_substitutions"
    GENERATIONS = "generations"
    DAYS = "days"
    MONTHS = "months"
    YEARS = "years"
    UNKNOWN = "unknown"


class Node:
    """
    Tree node with optimized memory layout using __slots__.

    A node is either a leaf (no children) or an internal node with two or more
    children. ``length`` is the branch length to the parent and ``height`` is
    the distance from the tips, filled in by :func:`lengths_to_heights`.
    """

    __slots__ = (
        "children",
        "parent",
        "name",
        "length",
        "height",
        "number",
        "values",
        "_traverse_cache",
        "_leaves_cache",
    )

    children: List[Self]
    parent: Optional[Self]
    name: str
    length: float
    height: float
    number: Optional[int]
    values: Dict[str, Any]
    _traverse_cache: Optional[List[Self]]
    _leaves_cache: Optional[List[Self]]

    def __init__(
        self,
        children: Optional[List[Self]] = None,
        name: str = "",
        length: float = 0.0,
        values: Optional[Dict[str, Any]] = None,
        height: float = 0.0,
    ):
        self.children = list(children) if children is not None else []
        for child in self.children:
            child.parent = self
        self.parent = None
        self.name = name
        self.length = length
        self.height = height
        self.number = None
        self.values = dict(values) if values is not None else {}
        self._traverse_cache = None
        self._leaves_cache = None

    @property
    def leaves(self) -> List[Self]:
        """All leaf nodes in the subtree rooted at this node."""
        return self.get_leaves()

    def __repr__(self) -> str:
        return f"Node('{self.name}')"

    def __str__(self):
        return str(tuple(sorted(self.get_current_order())))

    # ------------------------------------------------------------------------
    # structure edits (pointer-based, invalidate caches)
    # ------------------------------------------------------------------------
    def append_child(self, node: Self) -> None:
        node.parent = self
        self.children.append(node)
        self.invalidate_caches(propagate_up=True)

    def replace_child(self, old_child: Self, new_child: Self) -> None:
        """Replaces an existing child node with a new one."""
        if not any(c is old_child for c in self.children):
            raise ValueError("old_child is not a child of this node.")

        index = next(i for i, c in enumerate(self.children) if c is old_child)
        self.children[index] = new_child

        old_child.parent = None
        new_child.parent = self
        self.invalidate_caches(propagate_up=True)

    def deep_copy(self) -> Self:
        # object.__new__ skips __init__; children are copied iteratively
        def _shallow(src: Node) -> Node:
            dup = object.__new__(type(src))
            dup.name = src.name
            dup.length = src.length
            dup.height = src.height
            dup.number = src.number
            dup.values = src.values.copy()
            dup.parent = None
            dup.children = []
            dup._traverse_cache = None
            dup._leaves_cache = None
            return dup

        new_root = _shallow(self)
        stack = [(self, new_root)]
        while stack:
            src, dup = stack.pop()
            for child in src.children:
                child_dup = _shallow(child)
                child_dup.parent = dup
                dup.children.append(child_dup)
                stack.append((child, child_dup))
        return new_root

    # ------------------------------------------------------------------------
    # traversal
    # ------------------------------------------------------------------------
    def traverse(self) -> List[Self]:
        """
        Return a list of all nodes in the subtree rooted at this node (Pre-order).
        Uses an iterative stack approach to avoid recursion depth issues.
        """
        if self._traverse_cache is not None:
            return self._traverse_cache

        nodes: List[Self] = []
        stack: List[Self] = [self]

        while stack:
            current = stack.pop()
            nodes.append(current)
            for child in reversed(current.children):
                stack.append(child)

        self._traverse_cache = nodes
        return nodes

    def postorder(self) -> Iterator[Self]:
        """Yield the nodes of this subtree children-first."""
        return reversed(self._reverse_preorder())

    def _reverse_preorder(self) -> List[Self]:
        # root, last child, ... reversed gives a valid post-order
        out: List[Self] = []
        stack: List[Self] = [self]
        while stack:
            current = stack.pop()
            out.append(current)
            stack.extend(current.children)
        return out

    def get_leaves(self) -> List[Self]:
        """
        Return all leaf nodes in the subtree rooted at this node.
        Uses caching for performance - cache is invalidated when tree structure changes.
        """
        if self._leaves_cache is not None:
            return self._leaves_cache

        leaves = [nd for nd in self.traverse() if not nd.children]
        self._leaves_cache = leaves
        return leaves

    def get_current_order(self) -> tuple[str, ...]:
        """
        Return the current order of taxa in the tree as a tuple.
        """
        return tuple(str(leaf.name) for leaf in self.get_leaves())

    def find_node_by_name(self, name: str) -> Optional[Self]:
        for nd in self.traverse():
            if nd.name == name:
                return nd
        return None

    # ------------------------------------------------------------------------
    # lengths
    # ------------------------------------------------------------------------
    def total_length(self) -> float:
        """Sum of the branch lengths below this node (its own branch excluded)."""
        return sum(nd.length for nd in self.traverse() if nd is not self)

    def max_path_length_to_leaf(self) -> float:
        best: Dict[int, float] = {}
        for nd in self.postorder():
            if not nd.children:
                best[id(nd)] = 0.0
            else:
                best[id(nd)] = max(best[id(ch)] + ch.length for ch in nd.children)
        return best[id(self)]

    # ------------------------------------------------------------------------
    # rendering
    # ------------------------------------------------------------------------
    def to_newick(self, lengths: bool = True) -> str:
        return self._to_newick(lengths=lengths) + ";"

    def _to_newick(self, lengths: bool = True) -> str:
        meta = ""
        if self.values:
            meta = "[" + ",".join(f"{k}={v}" for k, v in self.values.items()) + "]"

        label = self.name or ""
        if self.children:
            label = (
                "(" + ",".join(ch._to_newick(lengths) for ch in self.children) + ")"
            ) + label
        if lengths and self.parent is not None:
            return f"{label}{meta}:{float(self.length):.6f}"
        return f"{label}{meta}"

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=4)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "length": self.length,
            "height": self.height,
            "values": self.values,
            "children": [child.to_dict() for child in self.children],
        }

    # ------------------------------------------------------------------------
    # predicates
    # ------------------------------------------------------------------------
    def get_root(self) -> Self:
        cur = self
        while cur.parent is not None:
            cur = cur.parent
        return cur

    def is_leaf(self) -> bool:
        return len(self.children) == 0

    def is_root(self) -> bool:
        return self.parent is None

    # ------------------------------------------------------------------------
    # cache management
    # ------------------------------------------------------------------------
    def invalidate_caches(
        self, propagate_up: bool = True, propagate_down: bool = False
    ) -> None:
        """
        Invalidate the traversal and leaf caches for this node.
        If propagate_up is True, also invalidate caches for all ancestors.
        If propagate_down is True, also invalidate caches for all descendants.
        """
        self._traverse_cache = None
        self._leaves_cache = None

        if propagate_down:
            stack = list(self.children)
            while stack:
                nd = stack.pop()
                nd._traverse_cache = None
                nd._leaves_cache = None
                stack.extend(nd.children)

        cur = self.parent if propagate_up else None
        while cur is not None:
            cur._traverse_cache = None
            cur._leaves_cache = None
            cur = cur.parent


def lengths_to_heights(root: Node) -> None:
    """
    Set node heights from branch lengths.

    The root sits at the maximum root-to-leaf path length; every child is its
    parent's height minus its own branch length, so the deepest tip is at 0.
    """
    root.height = root.max_path_length_to_leaf()
    for nd in root.traverse():
        for child in nd.children:
            child.height = nd.height - child.length


class Tree:
    """A rooted tree: a root node plus the units its branch lengths are in."""

    def __init__(self, root: Node, units: Units = Units.UNKNOWN):
        if root.parent is not None:
            raise ValueError("Tree root must not have a parent")
        self.root = root
        self.units = units
        self._external: List[Node] = []
        self._internal: List[Node] = []
        self.create_node_list()

    def create_node_list(self) -> None:
        """
        Rebuild the external/internal node lists and number nodes in post-order.

        External nodes are numbered ``0..n-1`` and internal nodes continue from
        ``n``; the root is always the last internal node.
        """
        self.root.invalidate_caches(propagate_up=False, propagate_down=True)
        ordered = list(self.root.postorder())
        self._external = [nd for nd in ordered if not nd.children]
        self._internal = [nd for nd in ordered if nd.children]
        for i, nd in enumerate(self._external):
            nd.number = i
        for i, nd in enumerate(self._internal):
            nd.number = len(self._external) + i

    def get_root(self) -> Node:
        return self.root

    def get_external_nodes(self) -> List[Node]:
        return list(self._external)

    def get_internal_nodes(self) -> List[Node]:
        return list(self._internal)

    @property
    def external_node_count(self) -> int:
        return len(self._external)

    @property
    def internal_node_count(self) -> int:
        return len(self._internal)

    def leaf_names(self) -> List[str]:
        return [nd.name for nd in self._external]

    def total_length(self) -> float:
        return self.root.total_length()

    def __repr__(self) -> str:
        return f"Tree({self.root.to_newick()}, units={self.units.value})"
