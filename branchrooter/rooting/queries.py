"""
Rooted trees derived from an unrooted graph.

Every function here reads the graph and returns freshly built :class:`Node`
trees with heights recomputed; none of them change the graph apart from
filling its distance cache.
"""

from __future__ import annotations
import logging
from collections import deque
from typing import Any, Dict, FrozenSet, Iterable, Iterator, List, Optional, Tuple

import numpy as np

from branchrooter.exceptions import NodeNotFoundError, OutgroupError
from branchrooter.rooting.graph import EdgeEnd, UnrootedGraph, Vertex
from branchrooter.tree import Node, lengths_to_heights

logger = logging.getLogger(__name__)


# ----------------------------------------------------------------------------
# Building output trees
# ----------------------------------------------------------------------------
def _node_values(vertex_annotation: Any, edge_annotation: Any) -> Dict[str, Any]:
    values: Dict[str, Any] = {}
    for key, annotation in (
        ("annotation", vertex_annotation),
        ("branch", edge_annotation),
    ):
        if isinstance(annotation, dict):
            values.update(annotation)
        elif annotation is not None:
            values[key] = annotation
    return values


def subtree_below(
    graph: UnrootedGraph,
    vertex: int,
    blocked: Optional[int],
    length: float,
) -> Node:
    """Build the subtree hanging from ``vertex`` away from ``blocked``."""
    vx = graph.vertices[vertex]
    top_annotation = graph.edges[blocked].annotation if blocked is not None else None
    top = Node(
        name=vx.label or "",
        length=length,
        values=_node_values(vx.annotation, top_annotation),
    )
    stack: List[Tuple[int, Optional[int], Node]] = [(vertex, blocked, top)]
    while stack:
        v, via, node = stack.pop()
        for f in graph.vertices[v].edges:
            if f == via:
                continue
            edge = graph.edges[f]
            w = edge.other(v)
            wx = graph.vertices[w]
            child = Node(
                name=wx.label or "",
                length=edge.length,
                values=_node_values(wx.annotation, edge.annotation),
            )
            child.parent = node
            node.children.append(child)
            stack.append((w, f, child))
    return top


def rooted_around(graph: UnrootedGraph, edge: int, first_length: float) -> Node:
    """
    Bifurcating tree with its root on ``edge``.

    The first child (the ``first`` end of the edge) gets ``first_length``, the
    second child the remainder. A ``first_length`` beyond the edge length is
    clamped so neither child ends up negative.
    """
    e = graph.edges[edge]
    total = e.length
    first_length = min(max(first_length, 0.0), total)
    second_length = max(total - first_length, 0.0)
    left = subtree_below(graph, e.first, edge, first_length)
    right = subtree_below(graph, e.second, edge, second_length)
    root = Node(children=[left, right])
    lengths_to_heights(root)
    return root


def balanced_lengths(graph: UnrootedGraph, edge: int) -> Tuple[float, float]:
    """
    Child lengths that put the root where the farthest leaf on either side is
    equally far away, or as close to that as the edge allows.
    """
    total = graph.edges[edge].length
    diff = graph.path_difference(edge)
    diff = min(max(diff, -total), total)
    return (total - diff) / 2, (total + diff) / 2


def rooted_balanced(graph: UnrootedGraph, edge: int) -> Node:
    first_length, _ = balanced_lengths(graph, edge)
    return rooted_around(graph, edge, first_length)


def default_root(graph: UnrootedGraph, anchor: int, proportion: float) -> Node:
    return rooted_around(graph, anchor, proportion * graph.edges[anchor].length)


def unrooted_tree(graph: UnrootedGraph, anchor: int) -> Node:
    """
    Multifurcating tree drawn from the first internal end of the anchor.

    Every neighbour of that vertex becomes a root child. A graph of two leaves
    has no internal vertex and is returned rooted halfway along its only edge.
    """
    e = graph.edges[anchor]
    if not graph.vertices[e.first].is_leaf():
        centre = e.first
    elif not graph.vertices[e.second].is_leaf():
        centre = e.second
    else:
        return rooted_around(graph, anchor, e.length / 2)
    root = subtree_below(graph, centre, None, 0.0)
    lengths_to_heights(root)
    return root


# ----------------------------------------------------------------------------
# Midpoint
# ----------------------------------------------------------------------------
def midpoint_edge(graph: UnrootedGraph, anchor: int) -> int:
    """
    The edge holding the midpoint of the longest leaf-to-leaf path.

    Edges are ranked by how far the midpoint lies outside them, then by the
    imbalance of their two sides; ties go to the edge met first from the anchor.
    """

    def rank(edge: int) -> Tuple[float, float]:
        imbalance = abs(graph.path_difference(edge))
        return max(0.0, imbalance - graph.edges[edge].length), imbalance

    best = min(graph.walk_edges(anchor), key=rank)
    logger.debug("Midpoint edge %d with rank %s", best, rank(best))
    return best


def midpoint_root(graph: UnrootedGraph, anchor: int) -> Node:
    return rooted_balanced(graph, midpoint_edge(graph, anchor))


def every_root(graph: UnrootedGraph, anchor: int) -> Iterator[Node]:
    """One balanced rooting per edge, in traversal order from the anchor."""
    for edge in list(graph.walk_edges(anchor)):
        yield rooted_balanced(graph, edge)


# ----------------------------------------------------------------------------
# Outgroups
# ----------------------------------------------------------------------------
def _edges_breadth_first(graph: UnrootedGraph, start: int) -> Iterator[int]:
    seen = {start}
    queue = deque([start])
    while queue:
        edge = queue.popleft()
        yield edge
        e = graph.edges[edge]
        for end in (e.first, e.second):
            for f in graph.vertices[end].edges:
                if f not in seen:
                    seen.add(f)
                    queue.append(f)


def match_counts(graph: UnrootedGraph, labels: Iterable[str]) -> Dict[EdgeEnd, int]:
    """Number of leaves labelled with one of ``labels`` on each side of every edge."""
    wanted = set(labels)

    def weight(vertex: Vertex) -> int:
        return 1 if vertex.label in wanted else 0

    return graph.directional_sums(weight)


def _matching_leaves(graph: UnrootedGraph, wanted: FrozenSet[str]) -> int:
    return sum(1 for v in graph.leaf_vertices() if v.label in wanted)


def _descend(
    graph: UnrootedGraph, counts: Dict[EdgeEnd, int], edge: int, vertex: int
) -> EdgeEnd:
    """
    Follow the matches inward from the side of ``edge`` starting at ``vertex``.

    Stops at the first vertex where the matches split into two or more
    directions, or at a matched leaf, and returns the edge it arrived by
    together with that vertex.
    """
    while True:
        vx = graph.vertices[vertex]
        if vx.is_leaf():
            return edge, vertex
        onward = []
        for f in vx.edges:
            if f == edge:
                continue
            w = graph.edges[f].other(vertex)
            if counts[(f, w)] > 0:
                onward.append((f, w))
        if len(onward) != 1:
            return edge, vertex
        edge, vertex = onward[0]


def mrca_edges(
    graph: UnrootedGraph,
    anchor: int,
    labels: Iterable[str],
    every: bool = False,
) -> List[EdgeEnd]:
    """
    Edges separating the outgroup ``labels`` from the rest of the tree.

    Each result is ``(edge, outgroup_vertex)`` where ``outgroup_vertex`` is the
    end of the edge on the outgroup side. Bases are visited breadth-first from
    the anchor; the first base with every match on one side decides the
    answer. With ``every`` set, every such base contributes its answer, so a
    non-monophyletic outgroup yields several candidates.

    Raises:
        OutgroupError: no label matches a leaf, or the labels cover every leaf
    """
    wanted = frozenset(labels)
    matched = _matching_leaves(graph, wanted)
    if matched == 0:
        OutgroupError.raise_missing(wanted)
    if matched == len(graph.leaf_vertices()):
        OutgroupError.raise_covers_all(wanted)

    counts = match_counts(graph, wanted)
    found: List[EdgeEnd] = []
    for base in _edges_breadth_first(graph, anchor):
        e = graph.edges[base]
        if counts[(base, e.first)] == 0:
            result = _descend(graph, counts, base, e.second)
        elif counts[(base, e.second)] == 0:
            result = _descend(graph, counts, base, e.first)
        else:
            continue
        if not every:
            logger.debug("MRCA of %s is edge %d", sorted(wanted), result[0])
            return [result]
        if result not in found:
            found.append(result)
    logger.debug("MRCA candidates of %s: %s", sorted(wanted), [f[0] for f in found])
    return found


def rooted_by_outgroup(
    graph: UnrootedGraph, anchor: int, labels: Iterable[str]
) -> Node:
    edge, _ = mrca_edges(graph, anchor, labels)[0]
    return rooted_balanced(graph, edge)


def all_rooted_by_outgroup(
    graph: UnrootedGraph, anchor: int, labels: Iterable[str]
) -> List[Node]:
    return [
        rooted_balanced(graph, edge)
        for edge, _ in mrca_edges(graph, anchor, labels, every=True)
    ]


def rooted_by_outgroup_capped(
    graph: UnrootedGraph,
    anchor: int,
    labels: Iterable[str],
    ingroup_length: float,
) -> Node:
    """
    Root on the outgroup's edge with the ingroup branch no longer than
    ``ingroup_length``; the outgroup branch takes the rest. The ingroup is the
    first root child.

    An outgroup naming every leaf has no separating edge; the tree is then
    rooted on the anchor with its first end treated as the outgroup.
    """
    wanted = frozenset(labels)
    matched = _matching_leaves(graph, wanted)
    if matched == 0:
        OutgroupError.raise_missing(wanted)
    if matched == len(graph.leaf_vertices()):
        edge, outgroup = anchor, graph.edges[anchor].first
    else:
        edge, outgroup = mrca_edges(graph, anchor, wanted)[0]
    e = graph.edges[edge]
    ingroup = e.other(outgroup)
    ingroup_length = min(max(ingroup_length, 0.0), e.length)
    outgroup_length = e.length - ingroup_length
    left = subtree_below(graph, ingroup, edge, ingroup_length)
    right = subtree_below(graph, outgroup, edge, outgroup_length)
    root = Node(children=[left, right])
    lengths_to_heights(root)
    return root


def is_exact_clade(graph: UnrootedGraph, labels: Iterable[str]) -> bool:
    """True if some edge has exactly the leaves named by ``labels`` on one side."""
    wanted = frozenset(labels)
    if not wanted:
        return False
    matches = match_counts(graph, wanted)
    sizes = graph.directional_sums(lambda vertex: 1)
    size = len(wanted)
    return any(
        count == size and sizes[side] == size for side, count in matches.items()
    )


# ----------------------------------------------------------------------------
# Original nodes
# ----------------------------------------------------------------------------
def find_peer_vertex(graph: UnrootedGraph, anchor: int, node: Any) -> int:
    """Index of the vertex built from ``node`` (compared by identity)."""
    for v, _ in graph.walk(graph.edges[anchor].first):
        if graph.vertices[v].peer is node:
            return v
    message = f"Node {node!r} is not represented in this tree"
    logger.warning(message)
    raise NodeNotFoundError(message)


def rooted_above(graph: UnrootedGraph, anchor: int, node: Any) -> Node:
    vertex = graph.vertices[find_peer_vertex(graph, anchor, node)]
    return rooted_balanced(graph, vertex.edges[0])


# ----------------------------------------------------------------------------
# Measurements
# ----------------------------------------------------------------------------
def label_split(
    graph: UnrootedGraph, edge: int
) -> Tuple[FrozenSet[str], FrozenSet[str]]:
    """Leaf labels on the first and on the second side of ``edge``."""
    e = graph.edge(edge)
    return (
        frozenset(graph.side_labels(edge, e.first)),
        frozenset(graph.side_labels(edge, e.second)),
    )


def patristic_distances(
    graph: UnrootedGraph, anchor: int
) -> Tuple[List[str], np.ndarray]:
    """
    Leaf-to-leaf path lengths.

    Returns the leaf labels in traversal order from the anchor and a symmetric
    matrix whose rows and columns follow that order.
    """
    leaves = [
        v
        for v, _ in graph.walk(graph.edges[anchor].first)
        if graph.vertices[v].is_leaf()
    ]
    row = {v: i for i, v in enumerate(leaves)}
    matrix = np.zeros((len(leaves), len(leaves)), dtype=float)
    for i, start in enumerate(leaves):
        stack: List[Tuple[int, Optional[int], float]] = [(start, None, 0.0)]
        while stack:
            v, via, dist = stack.pop()
            if v in row:
                matrix[i, row[v]] = dist
            for f in graph.vertices[v].edges:
                if f != via:
                    edge = graph.edges[f]
                    stack.append((edge.other(v), f, dist + edge.length))
    return [graph.vertices[v].label for v in leaves], matrix
