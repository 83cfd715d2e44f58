"""
Structural edits on an unrooted graph.

``attach`` works on a copy and leaves the given graph alone.
``extract_and_reattach`` edits in place; it resolves every edge and vertex it
needs before touching anything, so a failed call leaves the graph unchanged.
"""

from __future__ import annotations
import logging
from typing import List, Optional

from branchrooter.exceptions import NodeNotFoundError, TopologyEditError
from branchrooter.rooting.construction import Construction, GraphBuilder
from branchrooter.rooting.graph import UnrootedGraph
from branchrooter.rooting.sources import TreeSource

logger = logging.getLogger(__name__)


def _replace_in(edges: List[int], old: int, new: int) -> None:
    edges[edges.index(old)] = new


def split_edge(graph: UnrootedGraph, edge: int) -> int:
    """
    Insert a new vertex halfway along ``edge`` and return it.

    ``edge`` keeps its first end and now ends at the new vertex; a new edge
    with the other half of the length runs on to the old second end and takes
    the place of ``edge`` in that vertex's edge list.
    """
    e = graph.edge(edge)
    far = e.second
    half = e.length / 2
    middle = graph.add_vertex()
    e.replace_end(far, middle)
    graph.vertices[middle].edges.append(edge)
    rest = graph.connect(middle, far, e.length - half, e.annotation)
    e.length = half
    far_edges = graph.vertices[far].edges
    far_edges.pop()
    _replace_in(far_edges, edge, rest)
    return middle


def attach(
    graph: UnrootedGraph,
    edge: int,
    subtree: TreeSource,
    construction: Construction,
) -> UnrootedGraph:
    """
    Copy of ``graph`` with ``subtree`` hanging from the midpoint of ``edge``.

    The subtree root becomes a vertex joined to the new branch point by a
    branch of the subtree root's length.
    """
    graph.edge(edge)
    patched = graph.copy()
    middle = split_edge(patched, edge)
    GraphBuilder(construction, patched).hang(middle, subtree)
    patched.clear_path_info()
    logger.debug(
        "Attached subtree at edge %d: %d vertices, %d edges",
        edge,
        len(patched.vertices),
        len(patched.edges),
    )
    return patched


def junction_towards(graph: UnrootedGraph, moving: int, target: int) -> int:
    """The end of ``moving`` from which ``target`` is reached without crossing ``moving``."""
    m = graph.edges[moving]
    for _, via in graph.walk(m.first, blocked=moving):
        if via == target:
            return m.first
    return m.second


def extract_and_reattach(
    graph: UnrootedGraph, moving: int, target: int
) -> Optional[int]:
    """
    Move the subtree beyond ``moving`` onto the middle of ``target``.

    The junction ``u`` at the near end of ``moving`` is lifted out: its two
    other edges ``a`` (u-x) and ``b`` (u-y) collapse into ``a`` joining x and y
    with their summed length. ``u`` is then placed on ``target`` (p-q), which
    becomes p-u, while ``b`` is reused as u-q; each gets half of the target's
    length.

    Returns:
        The index of ``a``; moving ``moving`` back onto it restores the previous
        topology. ``None`` when ``u`` already touches ``target``, in which case
        nothing changes.

    Raises:
        TopologyEditError: unknown edges, or a junction that is not bifurcating
    """
    try:
        graph.edge(moving)
        graph.edge(target)
    except NodeNotFoundError as exc:
        raise TopologyEditError(str(exc)) from exc
    if moving == target:
        return None

    u = junction_towards(graph, moving, target)
    ux = graph.vertices[u]
    if target in ux.edges:
        logger.debug("Edge %d already hangs from target %d", moving, target)
        return None
    if ux.degree != 3:
        raise TopologyEditError(
            f"Edge {moving} meets vertex {u} of degree {ux.degree}; "
            "only bifurcating junctions can be moved"
        )

    a, b = (f for f in ux.edges if f != moving)
    ea, eb, et = graph.edges[a], graph.edges[b], graph.edges[target]
    y = eb.other(u)
    q = et.second
    half = et.length / 2

    # bypass u: a now runs x-y
    ea.replace_end(u, y)
    ea.length += eb.length
    _replace_in(graph.vertices[y].edges, b, a)

    # split the target: t runs p-u, b runs u-q
    et.replace_end(q, u)
    eb.replace_end(y, q)
    eb.length = et.length - half
    et.length = half
    _replace_in(graph.vertices[q].edges, target, b)
    ux.edges = [f if f == moving else (target if f == a else b) for f in ux.edges]

    graph.clear_path_info()
    logger.debug(
        "Moved edge %d onto %d; bypass edge %d, reused edge %d", moving, target, a, b
    )
    return a
