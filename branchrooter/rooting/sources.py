"""
Inputs the graph builder can consume.

The builder only needs a handful of things from a tree node: its children, a
label and annotation, the length and annotation of the branch above it, and
the external object it stands for. ``NodeSource`` provides them for a
concrete :class:`Node`; the recorders let code that cannot hand over a
finished tree describe one by instructions instead.
"""

from __future__ import annotations
import logging
from typing import Any, Callable, List, Optional, Protocol, Sequence, Union

from branchrooter.tree import Node

logger = logging.getLogger(__name__)


class TreeSource(Protocol):
    @property
    def children(self) -> Sequence["TreeSource"]: ...

    @property
    def length(self) -> float: ...

    @property
    def label(self) -> Optional[str]: ...

    @property
    def annotation(self) -> Any: ...

    @property
    def branch_annotation(self) -> Any: ...

    @property
    def peer(self) -> Any: ...


class NodeSource:
    """Read-only view of a :class:`Node` subtree."""

    __slots__ = ("node", "_children")

    def __init__(self, node: Node):
        self.node = node
        self._children: Optional[List[NodeSource]] = None

    @property
    def children(self) -> List["NodeSource"]:
        if self._children is None:
            self._children = [NodeSource(ch) for ch in self.node.children]
        return self._children

    @property
    def length(self) -> float:
        return self.node.length

    @property
    def label(self) -> Optional[str]:
        return self.node.name

    @property
    def annotation(self) -> Any:
        return dict(self.node.values) if self.node.values else None

    @property
    def branch_annotation(self) -> None:
        return None

    @property
    def peer(self) -> Node:
        return self.node

    def __repr__(self) -> str:
        return f"NodeSource({self.node!r})"


# ----------------------------------------------------------------------------
# Recorded trees
# ----------------------------------------------------------------------------
class InstructableBranch:
    """A branch between two recorded nodes; length and annotation are settable."""

    __slots__ = ("left", "right", "length", "annotation")

    def __init__(
        self,
        left: Optional["InstructableNode"] = None,
        right: Optional["InstructableNode"] = None,
        length: float = 0.0,
        annotation: Any = None,
    ):
        self.left = left
        self.right = right
        self.length = length
        self.annotation = annotation

    def set_length(self, length: float) -> None:
        self.length = length

    def set_annotation(self, annotation: Any) -> None:
        self.annotation = annotation


class InstructableNode:
    __slots__ = ("_children", "label", "annotation", "parent_branch")

    def __init__(self, parent_branch: Optional[InstructableBranch] = None):
        self._children: List[InstructableNode] = []
        self.label: Optional[str] = None
        self.annotation: Any = None
        self.parent_branch = parent_branch

    def create_child(self) -> "InstructableNode":
        """Add a child below this node and return it; its ``parent_branch`` starts at length 0."""
        branch = InstructableBranch(left=self)
        child = InstructableNode(branch)
        branch.right = child
        self._children.append(child)
        return child

    def set_label(self, label: str) -> None:
        self.label = label

    def set_annotation(self, annotation: Any) -> None:
        self.annotation = annotation

    @property
    def children(self) -> List["InstructableNode"]:
        return self._children

    @property
    def length(self) -> float:
        return self.parent_branch.length if self.parent_branch is not None else 0.0

    @property
    def branch_annotation(self) -> Any:
        return self.parent_branch.annotation if self.parent_branch is not None else None

    @property
    def peer(self) -> None:
        return None

    def __repr__(self) -> str:
        return f"InstructableNode('{self.label}', children={len(self._children)})"


Producer = Union[Callable[[Any], None], Any]


def _run_producer(producer: Producer, target: Any) -> None:
    instruct = getattr(producer, "instruct", None)
    if instruct is not None:
        instruct(target)
    elif callable(producer):
        producer(target)
    else:
        raise TypeError(
            f"{type(producer).__name__} is neither callable nor has an instruct() method"
        )


class RootedTreeRecorder:
    """
    Records a rooted tree described by a producer.

    The producer receives the empty root :class:`InstructableNode` and builds the
    tree below it with ``create_child()``, ``set_label()`` and by setting
    ``parent_branch.length``.
    """

    def __init__(self, producer: Producer):
        self.root = InstructableNode()
        _run_producer(producer, self.root)
        logger.debug("Recorded rooted tree with %d root children", len(self.root.children))

    def source(self) -> InstructableNode:
        return self.root


class UnrootedTreeRecorder:
    """
    Records an unrooted tree described around one base branch.

    The producer receives an :class:`InstructableBranch` whose ``left`` and
    ``right`` nodes are already created; it grows both sides and may set the
    base length and annotation.
    """

    def __init__(self, producer: Producer):
        self.base = InstructableBranch()
        self.base.left = InstructableNode(self.base)
        self.base.right = InstructableNode(self.base)
        _run_producer(producer, self.base)
        logger.debug(
            "Recorded unrooted tree around base branch of length %s", self.base.length
        )

    def sides(self) -> List[InstructableNode]:
        return [self.base.left, self.base.right]
