"""
Unrooted graph behind the tree manipulator.

Vertices and edges live in two flat lists and refer to each other by integer
index, so a graph can be copied without chasing object cycles. Every walk
takes the index of an edge it must not cross, which is how "do not go back the
way you came" is expressed without parent pointers.

Each edge caches, for both of its ends, the longest path from that end to a
leaf that does not use the edge itself. The cache is cleared wholesale after
any structural change and refilled lazily.
"""

from __future__ import annotations
import logging
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

from branchrooter.exceptions import NodeNotFoundError

logger = logging.getLogger(__name__)

EdgeEnd = Tuple[int, int]


class Vertex:
    __slots__ = ("index", "label", "annotation", "peer", "edges")

    def __init__(
        self,
        index: int,
        label: Optional[str] = None,
        annotation: Any = None,
        peer: Any = None,
    ):
        self.index = index
        self.label = label
        self.annotation = annotation
        # originating external node, None for synthetic vertices
        self.peer = peer
        # edges[0] is the parent-ward edge for every vertex built below a root
        self.edges: List[int] = []

    @property
    def degree(self) -> int:
        return len(self.edges)

    def is_leaf(self) -> bool:
        return len(self.edges) <= 1

    def copy(self) -> "Vertex":
        dup = Vertex(self.index, self.label, self.annotation, self.peer)
        dup.edges = list(self.edges)
        return dup

    def __repr__(self) -> str:
        if self.label is not None:
            return f"Vertex({self.index}, '{self.label}')"
        return f"Vertex({self.index}, degree={self.degree})"


class Edge:
    __slots__ = (
        "index",
        "first",
        "second",
        "length",
        "annotation",
        "_via_first",
        "_via_second",
    )

    def __init__(
        self,
        index: int,
        first: int,
        second: int,
        length: float,
        annotation: Any = None,
    ):
        self.index = index
        self.first = first
        self.second = second
        self.length = length
        self.annotation = annotation
        self._via_first: Optional[float] = None
        self._via_second: Optional[float] = None

    def other(self, vertex: int) -> int:
        if vertex == self.first:
            return self.second
        if vertex == self.second:
            return self.first
        raise NodeNotFoundError(
            f"Vertex {vertex} is not an end of edge {self.index} "
            f"({self.first}-{self.second})"
        )

    def connects(self, vertex: int) -> bool:
        return vertex == self.first or vertex == self.second

    def replace_end(self, old: int, new: int) -> None:
        if self.first == old:
            self.first = new
        elif self.second == old:
            self.second = new
        else:
            raise NodeNotFoundError(f"Vertex {old} is not an end of edge {self.index}")

    @property
    def cached_via_first(self) -> Optional[float]:
        return self._via_first

    @property
    def cached_via_second(self) -> Optional[float]:
        return self._via_second

    def clear_path_info(self) -> None:
        self._via_first = None
        self._via_second = None

    def copy(self) -> "Edge":
        dup = Edge(self.index, self.first, self.second, self.length, self.annotation)
        dup._via_first = self._via_first
        dup._via_second = self._via_second
        return dup

    def __repr__(self) -> str:
        return f"Edge({self.index}, {self.first}-{self.second}, length={self.length})"


class UnrootedGraph:
    """Arena of vertices and edges forming one unrooted tree."""

    def __init__(self):
        self.vertices: List[Vertex] = []
        self.edges: List[Edge] = []

    # ------------------------------------------------------------------------
    # construction
    # ------------------------------------------------------------------------
    def add_vertex(
        self, label: Optional[str] = None, annotation: Any = None, peer: Any = None
    ) -> int:
        index = len(self.vertices)
        self.vertices.append(Vertex(index, label, annotation, peer))
        return index

    def connect(
        self, first: int, second: int, length: float, annotation: Any = None
    ) -> int:
        """Create an edge and register it with both ends (appended to their lists)."""
        index = len(self.edges)
        self.edges.append(Edge(index, first, second, length, annotation))
        self.vertices[first].edges.append(index)
        self.vertices[second].edges.append(index)
        return index

    def copy(self) -> "UnrootedGraph":
        """Structural copy; peers and annotations are shared, not duplicated."""
        dup = UnrootedGraph()
        dup.vertices = [v.copy() for v in self.vertices]
        dup.edges = [e.copy() for e in self.edges]
        return dup

    # ------------------------------------------------------------------------
    # access
    # ------------------------------------------------------------------------
    def vertex(self, index: int) -> Vertex:
        if not 0 <= index < len(self.vertices):
            raise NodeNotFoundError(f"No vertex with index {index}")
        return self.vertices[index]

    def edge(self, index: int) -> Edge:
        if not 0 <= index < len(self.edges):
            raise NodeNotFoundError(f"No edge with index {index}")
        return self.edges[index]

    def __len__(self) -> int:
        return len(self.edges)

    def total_length(self) -> float:
        return sum(e.length for e in self.edges)

    def leaf_vertices(self) -> List[Vertex]:
        return [v for v in self.vertices if v.is_leaf()]

    def leaf_labels(self) -> List[str]:
        return [v.label for v in self.vertices if v.is_leaf()]

    # ------------------------------------------------------------------------
    # traversal
    # ------------------------------------------------------------------------
    def walk(
        self, start: int, blocked: Optional[int] = None
    ) -> Iterator[Tuple[int, Optional[int]]]:
        """
        Pre-order walk yielding ``(vertex, arrival_edge)`` pairs.

        The walk never crosses ``blocked``; the start vertex is yielded with
        ``blocked`` as its arrival edge.
        """
        stack: List[Tuple[int, Optional[int]]] = [(start, blocked)]
        while stack:
            v, via = stack.pop()
            yield v, via
            for f in reversed(self.vertices[v].edges):
                if f != via:
                    stack.append((self.edges[f].other(v), f))

    def walk_edges(self, start_edge: int) -> Iterator[int]:
        """Every edge of the component: ``start_edge``, then its first side, then its second."""
        yield start_edge
        e = self.edges[start_edge]
        for end in (e.first, e.second):
            for _, via in self.walk(end, blocked=start_edge):
                if via != start_edge:
                    yield via

    def side_labels(self, edge: int, vertex: int) -> List[str]:
        """Leaf labels reachable from ``vertex`` without crossing ``edge``."""
        return [
            self.vertices[v].label
            for v, _ in self.walk(vertex, blocked=edge)
            if self.vertices[v].is_leaf()
        ]

    # ------------------------------------------------------------------------
    # directional values
    # ------------------------------------------------------------------------
    def _resolve(
        self,
        edge: int,
        vertex: int,
        get: Callable[[int, int], Any],
        put: Callable[[int, int, Any], None],
        combine: Callable[[int, List[EdgeEnd]], Any],
    ) -> Any:
        """
        Value of the side of ``edge`` that starts at ``vertex``.

        ``combine(v, outward)`` computes the value at ``v`` from the already
        resolved ``(edge, far_vertex)`` pairs leaving ``v``; it receives an
        empty list at a leaf. Dependencies are resolved with an explicit stack
        so deep caterpillar trees do not hit the recursion limit.
        """
        stack: List[EdgeEnd] = [(edge, vertex)]
        while stack:
            e, v = stack[-1]
            if get(e, v) is not None:
                stack.pop()
                continue
            outward: List[EdgeEnd] = []
            waiting = False
            for f in self.vertices[v].edges:
                if f == e:
                    continue
                w = self.edges[f].other(v)
                outward.append((f, w))
                if get(f, w) is None:
                    stack.append((f, w))
                    waiting = True
            if waiting:
                continue
            stack.pop()
            put(e, v, combine(v, outward))
        return get(edge, vertex)

    def _get_distance(self, e: int, v: int) -> Optional[float]:
        edge = self.edges[e]
        return edge._via_first if v == edge.first else edge._via_second

    def _put_distance(self, e: int, v: int, value: float) -> None:
        edge = self.edges[e]
        if v == edge.first:
            edge._via_first = value
        else:
            edge._via_second = value

    def _combine_distance(self, v: int, outward: List[EdgeEnd]) -> float:
        best = 0.0
        for f, w in outward:
            best = max(best, self._get_distance(f, w) + self.edges[f].length)
        return best

    def max_leaf_distance(self, edge: int, vertex: int) -> float:
        """Longest path from ``vertex`` to a leaf that does not use ``edge``."""
        self.edge(edge).other(vertex)
        return self._resolve(
            edge, vertex, self._get_distance, self._put_distance, self._combine_distance
        )

    def max_leaf_distance_via_first(self, edge: int) -> float:
        return self.max_leaf_distance(edge, self.edges[edge].first)

    def max_leaf_distance_via_second(self, edge: int) -> float:
        return self.max_leaf_distance(edge, self.edges[edge].second)

    def path_difference(self, edge: int) -> float:
        """``via_first - via_second`` for ``edge``."""
        return self.max_leaf_distance_via_first(edge) - self.max_leaf_distance_via_second(
            edge
        )

    def clear_path_info(self) -> None:
        for e in self.edges:
            e.clear_path_info()

    def update_path_info(self) -> None:
        for e in self.edges:
            self.max_leaf_distance(e.index, e.first)
            self.max_leaf_distance(e.index, e.second)

    def has_path_info(self) -> bool:
        return all(
            e._via_first is not None and e._via_second is not None for e in self.edges
        )

    def directional_sums(self, weight: Callable[[Vertex], int]) -> Dict[EdgeEnd, int]:
        """
        For every edge end, the sum of ``weight(leaf)`` over the leaves on that side.

        Keys are ``(edge, vertex)``: the side of ``edge`` that starts at ``vertex``.
        """
        sums: Dict[EdgeEnd, int] = {}

        def combine(v: int, outward: List[EdgeEnd]) -> int:
            if not outward:
                return weight(self.vertices[v])
            return sum(sums[pair] for pair in outward)

        def put(e: int, v: int, value: int) -> None:
            sums[(e, v)] = value

        for e in self.edges:
            for end in (e.first, e.second):
                self._resolve(e.index, end, lambda f, w: sums.get((f, w)), put, combine)
        return sums

    # ------------------------------------------------------------------------
    # checks
    # ------------------------------------------------------------------------
    def validate(self) -> None:
        """Raise AssertionError if edge/vertex bookkeeping is inconsistent."""
        for e in self.edges:
            assert e.index in self.vertices[e.first].edges, f"{e} missing at first end"
            assert e.index in self.vertices[e.second].edges, f"{e} missing at second end"
            assert e.first != e.second, f"{e} is a loop"
            assert e.length >= 0, f"{e} has negative length"
        for v in self.vertices:
            assert v.degree == 1 or v.degree >= 3, f"{v} has degree {v.degree}"
            for f in v.edges:
                assert self.edges[f].connects(v.index), f"{v} lists foreign edge {f}"
        seen = {v for v, _ in self.walk(0)} if self.vertices else set()
        assert len(seen) == len(self.vertices), "graph is not connected"
        assert len(self.edges) == len(self.vertices) - 1, "graph is not a tree"
