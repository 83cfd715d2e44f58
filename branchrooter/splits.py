"""
Bipartitions of a leaf set, stored as integer bitmasks.

Rooting changes where a tree hangs from, never which bipartitions it has, so
comparing unrooted split sets is how rerooted trees are checked against the
tree they came from.
"""

from __future__ import annotations
from functools import total_ordering
from typing import Any, Dict, FrozenSet, List, Optional, Sequence, Tuple

from branchrooter.tree import Node


def make_encoding(names: Sequence[str]) -> Dict[str, int]:
    """Map taxon names to bit positions in sorted-name order."""
    return {name: i for i, name in enumerate(sorted(set(names)))}


@total_ordering
class Split:
    __slots__ = ("bitmask", "encoding", "_cached_reverse_encoding")

    def __init__(self, bitmask: int, encoding: Dict[str, int]):
        """
        Split represents one side of a bipartition as a bitmask over ``encoding``.
        Use :meth:`canonical` to compare unrooted bipartitions, since both sides
        of the same edge describe the same split.
        """
        self.bitmask: int = bitmask
        self.encoding: Dict[str, int] = encoding
        self._cached_reverse_encoding: Optional[Dict[int, str]] = None

    @classmethod
    def from_taxa(cls, names: Sequence[str], encoding: Dict[str, int]) -> "Split":
        bitmask = 0
        for name in names:
            try:
                bitmask |= 1 << encoding[name]
            except KeyError:
                raise ValueError(f"Unknown taxon name '{name}' for this encoding")
        return cls(bitmask, encoding)

    @property
    def full_mask(self) -> int:
        return (1 << len(self.encoding)) - 1

    def complement(self) -> "Split":
        return Split(self.full_mask & ~self.bitmask, self.encoding)

    def canonical(self) -> "Split":
        """The side of the bipartition that excludes taxon 0."""
        if self.bitmask & 1:
            return self.complement()
        return self

    def is_trivial(self) -> bool:
        """True for empty, full, single-taxon and all-but-one splits."""
        size = len(self)
        return size <= 1 or size >= len(self.encoding) - 1

    def __len__(self) -> int:
        return bin(self.bitmask).count("1")

    @property
    def reverse_encoding(self) -> Dict[int, str]:
        if self._cached_reverse_encoding is None:
            self._cached_reverse_encoding = {v: k for k, v in self.encoding.items()}
        return self._cached_reverse_encoding

    @property
    def taxa(self) -> FrozenSet[str]:
        reverse = self.reverse_encoding
        return frozenset(
            reverse[i] for i in range(len(self.encoding)) if self.bitmask >> i & 1
        )

    def bipartition(self) -> str:
        """String form ``left | right`` using taxon names."""
        left = sorted(self.taxa)
        right = sorted(self.complement().taxa)
        return f"{', '.join(left)} | {', '.join(right)}"

    def __eq__(self, other: Any) -> bool:
        if isinstance(other, Split):
            return self.bitmask == other.bitmask
        return NotImplemented

    def __lt__(self, other: Any) -> bool:
        if isinstance(other, Split):
            return self.bitmask < other.bitmask
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self.bitmask)

    def __str__(self) -> str:
        return f"({', '.join(sorted(self.taxa))})"

    def __repr__(self) -> str:
        return f"Split{self}"


def _subtree_masks(root: Node, encoding: Dict[str, int]) -> List[Tuple[Node, int]]:
    masks: Dict[int, int] = {}
    out: List[Tuple[Node, int]] = []
    for nd in root.postorder():
        if nd.children:
            mask = 0
            for ch in nd.children:
                mask |= masks[id(ch)]
        else:
            try:
                mask = 1 << encoding[nd.name]
            except KeyError:
                raise ValueError(f"Leaf '{nd.name}' is missing from the encoding")
        masks[id(nd)] = mask
        out.append((nd, mask))
    return out


def unrooted_splits(
    root: Node,
    encoding: Optional[Dict[str, int]] = None,
    include_trivial: bool = True,
) -> FrozenSet[Split]:
    """
    The set of canonical bipartitions induced by the branches below ``root``.

    The root position is ignored: the two branches under a bifurcating root
    induce the same bipartition and contribute one split.
    """
    if encoding is None:
        encoding = make_encoding(root.get_current_order())
    full = (1 << len(encoding)) - 1
    result = set()
    for nd, mask in _subtree_masks(root, encoding):
        if nd is root or mask == 0 or mask == full:
            continue
        split = Split(mask, encoding).canonical()
        if include_trivial or not split.is_trivial():
            result.add(split)
    return frozenset(result)


def split_lengths(
    root: Node, encoding: Optional[Dict[str, int]] = None
) -> Dict[Split, float]:
    """
    Total branch length per canonical bipartition.

    Branches inducing the same bipartition (the pair under a bifurcating root,
    or zero-length threading branches) have their lengths summed.
    """
    if encoding is None:
        encoding = make_encoding(root.get_current_order())
    full = (1 << len(encoding)) - 1
    lengths: Dict[Split, float] = {}
    for nd, mask in _subtree_masks(root, encoding):
        if nd is root or mask == 0 or mask == full:
            continue
        split = Split(mask, encoding).canonical()
        lengths[split] = lengths.get(split, 0.0) + nd.length
    return lengths


def robinson_foulds(first: Node, second: Node, rescaled: bool = False) -> float:
    """
    Robinson-Foulds distance between the unrooted topologies of two trees.

    Counts the non-trivial bipartitions found in exactly one of the trees.
    With ``rescaled`` the count is divided by the total number of non-trivial
    bipartitions in both trees.
    """
    names_first = set(first.get_current_order())
    names_second = set(second.get_current_order())
    if names_first != names_second:
        raise ValueError(
            "Trees must share the same leaf set: "
            f"{sorted(names_first ^ names_second)} differ"
        )
    encoding = make_encoding(list(names_first))
    splits_first = unrooted_splits(first, encoding, include_trivial=False)
    splits_second = unrooted_splits(second, encoding, include_trivial=False)
    distance = len(splits_first ^ splits_second)
    if rescaled:
        total = len(splits_first) + len(splits_second)
        return distance / total if total else 0.0
    return float(distance)
