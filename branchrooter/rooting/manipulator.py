"""
Rerooting and regrafting of phylogenetic trees.

A :class:`TreeManipulator` turns a tree into an unrooted graph once and then
answers rooting queries against it::

    manipulator = TreeManipulator(tree)
    manipulator.midpoint_rooted()
    manipulator.rooted_by(["outgroup_a", "outgroup_b"])

Rooted results are new :class:`Node` trees with heights filled in; the graph
and the input tree are never changed by a query.
"""

from __future__ import annotations
import logging
from typing import Any, Iterable, Iterator, List, Optional, Tuple, Union

import numpy as np

from branchrooter.rooting import editor, queries
from branchrooter.rooting.construction import (
    BuildResult,
    Construction,
    ConstructionPolicy,
    GraphBuilder,
)
from branchrooter.rooting.graph import UnrootedGraph
from branchrooter.rooting.sources import (
    NodeSource,
    Producer,
    RootedTreeRecorder,
    TreeSource,
    UnrootedTreeRecorder,
)
from branchrooter.tree import Node, Tree, Units

logger = logging.getLogger(__name__)

ConstructionLike = Union[Construction, ConstructionPolicy, str, None]
TreeLike = Union[Tree, Node]


def _as_source(subtree: Union[TreeLike, TreeSource]) -> TreeSource:
    if isinstance(subtree, Tree):
        return NodeSource(subtree.root)
    if isinstance(subtree, Node):
        return NodeSource(subtree)
    return subtree


class BranchAccess:
    """Handle on one edge of a manipulator's graph."""

    __slots__ = ("_manipulator", "index")

    def __init__(self, manipulator: "TreeManipulator", index: int):
        manipulator.graph.edge(index)
        self._manipulator = manipulator
        self.index = index

    @property
    def length(self) -> float:
        return self._manipulator.graph.edges[self.index].length

    @property
    def annotation(self) -> Any:
        return self._manipulator.graph.edges[self.index].annotation

    @annotation.setter
    def annotation(self, value: Any) -> None:
        self._manipulator.graph.edges[self.index].annotation = value

    def label_split(self) -> Tuple[frozenset, frozenset]:
        return queries.label_split(self._manipulator.graph, self.index)

    def attach_subtree(
        self,
        subtree: Union[TreeLike, TreeSource],
        construction: ConstructionLike = None,
    ) -> "TreeManipulator":
        return self._manipulator.attach(self.index, subtree, construction)

    def __repr__(self) -> str:
        return f"BranchAccess({self.index}, length={self.length})"


class TreeManipulator:
    """
    Unrooted view of a tree with rooting and regrafting operations.

    Args:
        tree: A :class:`Tree` or the root :class:`Node` of one. A root with two
            children is treated as rooted; a root with three or more children
            as an unrooted tree drawn from one internal node.
        construction: How multifurcations are represented; a
            :class:`Construction`, a :class:`ConstructionPolicy` or its name.
        units: Units of the branch lengths. Defaults to the tree's units.
    """

    def __init__(
        self,
        tree: TreeLike,
        construction: ConstructionLike = None,
        units: Optional[Units] = None,
    ):
        if isinstance(tree, Tree):
            root = tree.root
            units = units if units is not None else tree.units
        else:
            root = tree
        self.construction = Construction.coerce(construction)
        built = GraphBuilder(self.construction).build_rooted(NodeSource(root))
        self._adopt(built, units if units is not None else Units.UNKNOWN)

    def _adopt(self, built: BuildResult, units: Units) -> None:
        self.graph: UnrootedGraph = built.graph
        self.anchor: int = built.anchor
        self.proportion: float = built.proportion
        self.input_unrooted: bool = built.unrooted_input
        self.units = units

    @classmethod
    def _from_build(
        cls, built: BuildResult, construction: Construction, units: Units
    ) -> "TreeManipulator":
        manipulator = cls.__new__(cls)
        manipulator.construction = construction
        manipulator._adopt(built, units)
        return manipulator

    @classmethod
    def from_source(
        cls,
        source: TreeSource,
        construction: ConstructionLike = None,
        units: Units = Units.UNKNOWN,
    ) -> "TreeManipulator":
        construction = Construction.coerce(construction)
        built = GraphBuilder(construction).build_rooted(source)
        return cls._from_build(built, construction, units)

    @classmethod
    def from_rooted_producer(
        cls,
        producer: Producer,
        construction: ConstructionLike = None,
        units: Units = Units.UNKNOWN,
    ) -> "TreeManipulator":
        """Build from a producer that describes a rooted tree below an empty root."""
        return cls.from_source(
            RootedTreeRecorder(producer).source(), construction, units
        )

    @classmethod
    def from_unrooted_producer(
        cls,
        producer: Producer,
        construction: ConstructionLike = None,
        units: Units = Units.UNKNOWN,
    ) -> "TreeManipulator":
        """Build from a producer that describes an unrooted tree around a base branch."""
        construction = Construction.coerce(construction)
        left, right = UnrootedTreeRecorder(producer).sides()
        built = GraphBuilder(construction).build_recorded_unrooted(left, right)
        return cls._from_build(built, construction, units)

    # ------------------------------------------------------------------------
    # rooted output
    # ------------------------------------------------------------------------
    def _tree(self, root: Node) -> Tree:
        return Tree(root, self.units)

    def default_rooted(self) -> Node:
        """The tree rooted where the input was rooted, with the input's length split."""
        return queries.default_root(self.graph, self.anchor, self.proportion)

    def default_rooted_tree(self) -> Tree:
        return self._tree(self.default_rooted())

    def unrooted(self) -> Node:
        return queries.unrooted_tree(self.graph, self.anchor)

    def unrooted_tree(self) -> Tree:
        return self._tree(self.unrooted())

    def as_input(self) -> Node:
        """Unrooted output for unrooted input, the default rooting otherwise."""
        if self.input_unrooted:
            return self.unrooted()
        return self.default_rooted()

    def as_input_tree(self) -> Tree:
        return self._tree(self.as_input())

    def midpoint_rooted(self) -> Node:
        return queries.midpoint_root(self.graph, self.anchor)

    def midpoint_rooted_tree(self) -> Tree:
        return self._tree(self.midpoint_rooted())

    def midpoint_edge(self) -> BranchAccess:
        return BranchAccess(self, queries.midpoint_edge(self.graph, self.anchor))

    def every_root(self) -> Iterator[Node]:
        return queries.every_root(self.graph, self.anchor)

    def every_root_tree(self) -> Iterator[Tree]:
        for root in self.every_root():
            yield self._tree(root)

    def rooted_by(
        self, outgroup: Iterable[str], ingroup_length: Optional[float] = None
    ) -> Node:
        """
        Root on the branch leading to the outgroup.

        Labels missing from the tree are ignored. Without ``ingroup_length``
        the root sits where the farthest leaves on either side are balanced;
        with it the ingroup branch is at most that long and comes first.

        Raises:
            OutgroupError: no outgroup label is in the tree, or (without
                ``ingroup_length``) the outgroup names every leaf
        """
        outgroup = list(outgroup)
        if ingroup_length is None:
            return queries.rooted_by_outgroup(self.graph, self.anchor, outgroup)
        return queries.rooted_by_outgroup_capped(
            self.graph, self.anchor, outgroup, ingroup_length
        )

    def rooted_by_tree(
        self, outgroup: Iterable[str], ingroup_length: Optional[float] = None
    ) -> Tree:
        return self._tree(self.rooted_by(outgroup, ingroup_length))

    def all_rooted_by(self, outgroup: Iterable[str]) -> List[Node]:
        """One rooting per candidate branch; several when the outgroup is not a clade."""
        return queries.all_rooted_by_outgroup(self.graph, self.anchor, list(outgroup))

    def all_rooted_by_tree(self, outgroup: Iterable[str]) -> List[Tree]:
        return [self._tree(root) for root in self.all_rooted_by(outgroup)]

    def rooted_above(self, node: Node) -> Node:
        """
        Root on the branch above ``node``, a node of the tree this manipulator
        was built from.

        Raises:
            NodeNotFoundError: ``node`` has no vertex, e.g. it was the dissolved
                root or its branch was collapsed
        """
        return queries.rooted_above(self.graph, self.anchor, node)

    def rooted_above_tree(self, node: Node) -> Tree:
        return self._tree(self.rooted_above(node))

    # ------------------------------------------------------------------------
    # queries
    # ------------------------------------------------------------------------
    def is_exact_clade(self, labels: Iterable[str]) -> bool:
        return queries.is_exact_clade(self.graph, labels)

    def leaf_labels(self) -> List[str]:
        return self.graph.leaf_labels()

    def total_length(self) -> float:
        return self.graph.total_length()

    def branch(self, index: int) -> BranchAccess:
        return BranchAccess(self, index)

    def branches(self) -> List[BranchAccess]:
        return [BranchAccess(self, e) for e in self.graph.walk_edges(self.anchor)]

    def patristic_distances(self) -> Tuple[List[str], np.ndarray]:
        return queries.patristic_distances(self.graph, self.anchor)

    # ------------------------------------------------------------------------
    # edits
    # ------------------------------------------------------------------------
    def attach(
        self,
        edge: int,
        subtree: Union[TreeLike, TreeSource],
        construction: ConstructionLike = None,
    ) -> "TreeManipulator":
        """
        New manipulator with ``subtree`` grafted onto the middle of ``edge``.

        This manipulator is not changed. Grafting onto the anchor leaves no
        original root to return to, so the result counts as unrooted input.
        """
        if construction is None:
            construction = self.construction
        else:
            construction = Construction.coerce(construction)
        graph = editor.attach(self.graph, edge, _as_source(subtree), construction)
        at_anchor = edge == self.anchor
        built = BuildResult(
            graph,
            self.anchor,
            0.5 if at_anchor else self.proportion,
            self.input_unrooted or at_anchor,
        )
        return self._from_build(built, self.construction, self.units)

    def extract_and_reattach(self, moving: int, target: int) -> Optional[int]:
        """
        Move the subtree beyond ``moving`` onto ``target``, in place.

        Returns the bypass edge (pass it as ``target`` to undo the move), or
        ``None`` if the subtree already hangs from ``target``.
        """
        return editor.extract_and_reattach(self.graph, moving, target)

    def regrafted(
        self, moving: int, target: int
    ) -> Tuple["TreeManipulator", Optional[int]]:
        """Like :meth:`extract_and_reattach` but on a copy; this manipulator is not changed."""
        built = BuildResult(
            self.graph.copy(), self.anchor, self.proportion, self.input_unrooted
        )
        copy = self._from_build(built, self.construction, self.units)
        bypass = copy.extract_and_reattach(moving, target)
        return copy, bypass

    def __repr__(self) -> str:
        return (
            f"TreeManipulator(leaves={len(self.leaf_labels())}, "
            f"edges={len(self.graph.edges)}, "
            f"policy={self.construction.policy.value})"
        )


# ----------------------------------------------------------------------------
# Convenience functions
# ----------------------------------------------------------------------------
def get_unrooted(tree: TreeLike) -> Tree:
    return TreeManipulator(tree).unrooted_tree()


def get_midpoint_rooted(tree: TreeLike) -> Tree:
    return TreeManipulator(tree).midpoint_rooted_tree()


def get_every_root(tree: TreeLike) -> List[Tree]:
    return list(TreeManipulator(tree).every_root_tree())


def get_rooted_by(
    tree: TreeLike, outgroup: Iterable[str], ingroup_length: Optional[float] = None
) -> Tree:
    return TreeManipulator(tree).rooted_by_tree(outgroup, ingroup_length)


def get_all_rootings_by(tree: TreeLike, outgroup: Iterable[str]) -> List[Tree]:
    return TreeManipulator(tree).all_rooted_by_tree(outgroup)
