"""
Building the unrooted graph from a rooted or unrooted source tree.

How multifurcations are represented is decided by a :class:`Construction`
value passed through the builder:

- ``MIMIC`` keeps the branching of the input.
- ``EXPAND`` turns every multifurcation into a chain of zero-length branches so
  no vertex has degree above 3.
- ``REDUCE`` collapses internal branches no longer than a threshold, moving the
  grandchildren up to the parent.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, List, Optional, Tuple, Union

from branchrooter.config import Config
from branchrooter.exceptions import InvalidTreeStructureError
from branchrooter.rooting.graph import UnrootedGraph
from branchrooter.rooting.sources import InstructableNode, TreeSource

logger = logging.getLogger(__name__)


class ConstructionPolicy(Enum):
    MIMIC = "mimic"
    EXPAND = "expand"
    REDUCE = "reduce"

    @classmethod
    def from_name(cls, name: str) -> "ConstructionPolicy":
        try:
            return cls(name.lower())
        except ValueError:
            valid = ", ".join(p.value for p in cls)
            raise InvalidTreeStructureError(
                f"Unknown construction policy '{name}', expected one of: {valid}"
            )


@dataclass(frozen=True)
class Construction:
    """How to map input nodes onto graph vertices."""

    policy: ConstructionPolicy = ConstructionPolicy.MIMIC
    min_branch_length: float = Config.MIN_BRANCH_LENGTH
    inclusive: bool = Config.REDUCE_INCLUSIVE

    @classmethod
    def default(cls) -> "Construction":
        return cls(ConstructionPolicy.from_name(Config.DEFAULT_POLICY))

    @classmethod
    def coerce(
        cls, value: Union["Construction", ConstructionPolicy, str, None]
    ) -> "Construction":
        if value is None:
            return cls.default()
        if isinstance(value, Construction):
            return value
        if isinstance(value, ConstructionPolicy):
            return cls(value)
        if isinstance(value, str):
            return cls(ConstructionPolicy.from_name(value))
        raise TypeError(f"Cannot use {type(value).__name__} as a construction policy")

    def is_collapsible(self, source: TreeSource) -> bool:
        """True if ``source`` is an internal node whose branch is elided under reduce."""
        if self.policy is not ConstructionPolicy.REDUCE or not source.children:
            return False
        if self.inclusive:
            return source.length <= self.min_branch_length
        return source.length < self.min_branch_length

    def children_of(self, source: TreeSource) -> List[TreeSource]:
        """Children of ``source`` as they will appear in the graph, in input order."""
        if self.policy is not ConstructionPolicy.REDUCE:
            return list(source.children)
        out: List[TreeSource] = []
        stack: List[TreeSource] = list(reversed(source.children))
        while stack:
            child = stack.pop()
            if self.is_collapsible(child):
                stack.extend(reversed(child.children))
            else:
                out.append(child)
        return out


MIMIC = Construction(ConstructionPolicy.MIMIC)
EXPAND = Construction(ConstructionPolicy.EXPAND)
REDUCE = Construction(ConstructionPolicy.REDUCE)


@dataclass
class BuildResult:
    graph: UnrootedGraph
    anchor: int
    # share of the anchor length given to the first root child
    proportion: float
    unrooted_input: bool


def check_source(root: TreeSource, minimum_leaves: int = 2) -> int:
    """
    Validate a source tree and return its leaf count.

    Raises:
        InvalidTreeStructureError: too few leaves, a node with a single child,
            or a negative branch length below the root.
    """
    leaves = 0
    stack: List[Tuple[TreeSource, bool]] = [(root, True)]
    while stack:
        node, is_root = stack.pop()
        children = node.children
        if not children:
            leaves += 1
        elif len(children) == 1:
            raise InvalidTreeStructureError(
                f"Node '{node.label or ''}' has a single child; "
                "unary nodes have no place in an unrooted tree"
            )
        if not is_root and node.length < 0:
            raise InvalidTreeStructureError(
                f"Negative branch length {node.length} above node '{node.label or ''}'"
            )
        stack.extend((child, False) for child in children)
    if leaves < minimum_leaves:
        InvalidTreeStructureError.raise_too_few_leaves(leaves)
    return leaves


class GraphBuilder:
    """
    Adds source trees to an :class:`UnrootedGraph`.

    Every vertex created for a source node gets the branch to its parent as
    ``edges[0]``; the remaining edges follow the order of the source children.
    """

    def __init__(
        self,
        construction: Optional[Construction] = None,
        graph: Optional[UnrootedGraph] = None,
    ):
        self.construction = (
            construction if construction is not None else Construction.default()
        )
        self.graph = graph if graph is not None else UnrootedGraph()

    # ------------------------------------------------------------------------
    # entry points
    # ------------------------------------------------------------------------
    def build_rooted(self, root: TreeSource) -> BuildResult:
        """
        Build from a root. A bifurcating root is dissolved: its two branches
        merge into the anchor edge. A root with three or more children
        becomes a centre vertex and the input counts as unrooted.
        """
        check_source(root)
        children = list(root.children)
        if len(children) == 2:
            first, second = children
            v0 = self._add_source_vertex(first)
            v1 = self._add_source_vertex(second)
            total = first.length + second.length
            annotation = (
                first.branch_annotation
                if first.branch_annotation is not None
                else second.branch_annotation
            )
            anchor = self.graph.connect(v0, v1, total, annotation)
            proportion = first.length / total if total > 0 else 0.5
            self._grow(
                [
                    (v0, self.construction.children_of(first)),
                    (v1, self.construction.children_of(second)),
                ]
            )
            result = BuildResult(self.graph, anchor, proportion, False)
        else:
            centre = self.graph.add_vertex(annotation=root.annotation, peer=root.peer)
            pending: List[Tuple[int, List[TreeSource]]] = []
            self._place(centre, self.construction.children_of(root), 3, pending)
            self._grow(pending)
            anchor = self.graph.vertices[centre].edges[0]
            result = BuildResult(self.graph, anchor, 0.5, True)
        self._log_result(result)
        return result

    def build_unrooted(
        self,
        left: TreeSource,
        right: TreeSource,
        base_length: float,
        base_annotation: Any = None,
    ) -> BuildResult:
        """Build around a base branch joining ``left`` and ``right``; it becomes the anchor."""
        leaves = 0
        for side in (left, right):
            leaves += check_source(side, minimum_leaves=1)
        if leaves < 2:
            InvalidTreeStructureError.raise_too_few_leaves(leaves)
        if base_length < 0:
            raise InvalidTreeStructureError(f"Negative base branch length {base_length}")
        v0 = self._add_source_vertex(left)
        v1 = self._add_source_vertex(right)
        anchor = self.graph.connect(v0, v1, base_length, base_annotation)
        self._grow(
            [
                (v0, self.construction.children_of(left)),
                (v1, self.construction.children_of(right)),
            ]
        )
        result = BuildResult(self.graph, anchor, 0.5, True)
        self._log_result(result)
        return result

    def build_recorded_unrooted(
        self, left: InstructableNode, right: InstructableNode
    ) -> BuildResult:
        base = left.parent_branch
        return self.build_unrooted(left, right, base.length, base.annotation)

    def hang(self, parent: int, subtree: TreeSource) -> int:
        """
        Hang ``subtree`` below vertex ``parent``, joined by a branch of the
        subtree root's length. Returns the index of the joining edge.
        """
        check_source(subtree, minimum_leaves=1)
        if subtree.length < 0:
            raise InvalidTreeStructureError(
                f"Negative branch length {subtree.length} above the attached subtree"
            )
        top = self._add_source_vertex(subtree)
        edge = self.graph.connect(parent, top, subtree.length, subtree.branch_annotation)
        self._grow([(top, self.construction.children_of(subtree))])
        return edge

    # ------------------------------------------------------------------------
    # internals
    # ------------------------------------------------------------------------
    def _add_source_vertex(self, source: TreeSource) -> int:
        label = source.label if not source.children else None
        return self.graph.add_vertex(
            label=label, annotation=source.annotation, peer=source.peer
        )

    def _place(
        self,
        vertex: int,
        children: List[TreeSource],
        capacity: int,
        pending: List[Tuple[int, List[TreeSource]]],
    ) -> None:
        """Connect ``children`` below ``vertex``, chaining the overflow under expand."""
        rest: List[TreeSource] = []
        if self.construction.policy is ConstructionPolicy.EXPAND and len(children) > capacity:
            children, rest = children[: capacity - 1], children[capacity - 1 :]
        for child in children:
            w = self._add_source_vertex(child)
            self.graph.connect(vertex, w, child.length, child.branch_annotation)
            pending.append((w, self.construction.children_of(child)))
        if rest:
            link = self.graph.add_vertex()
            self.graph.connect(vertex, link, 0.0)
            pending.append((link, rest))

    def _grow(self, pending: List[Tuple[int, List[TreeSource]]]) -> None:
        while pending:
            vertex, children = pending.pop()
            if children:
                # one slot is taken by the edge to the parent
                self._place(vertex, children, 2, pending)

    def _log_result(self, result: BuildResult) -> None:
        logger.debug(
            "Built %s graph: %d vertices, %d edges, anchor=%d, unrooted_input=%s",
            self.construction.policy.value,
            len(result.graph.vertices),
            len(result.graph.edges),
            result.anchor,
            result.unrooted_input,
        )
