import logging
from typing import Callable, Dict

import pytest

from branchrooter.config import LOG_FORMAT
from branchrooter.splits import make_encoding, split_lengths, unrooted_splits
from branchrooter.tree import Node


def pytest_configure(config):
    """Set up test environment before tests run."""
    logging.basicConfig(level=logging.DEBUG, format=LOG_FORMAT)


# ----------------------------------------------------------------------------
# Newick reading for building test trees
# ----------------------------------------------------------------------------
_DELIMITERS = "(),:;["


def _read_until(text: str, i: int, stops: str) -> int:
    while i < len(text) and text[i] not in stops:
        i += 1
    return i


def read_newick(text: str) -> Node:
    """
    Minimal Newick reader: names, branch lengths and ``[key=value,...]``
    comments on nodes. Enough to write test trees inline.
    """
    text = text.strip()
    if text.endswith(";"):
        text = text[:-1]
    root = Node()
    current = root
    i = 0
    while i < len(text):
        ch = text[i]
        if ch == "(":
            child = Node()
            current.append_child(child)
            current = child
            i += 1
        elif ch == ",":
            sibling = Node()
            current.parent.append_child(sibling)
            current = sibling
            i += 1
        elif ch == ")":
            current = current.parent
            i += 1
        elif ch == ":":
            j = _read_until(text, i + 1, _DELIMITERS)
            current.length = float(text[i + 1 : j])
            i = j
        elif ch == "[":
            j = text.index("]", i)
            for pair in text[i + 1 : j].lstrip("&").split(","):
                if "=" in pair:
                    key, value = pair.split("=", 1)
                    current.values[key.strip()] = value.strip()
            i = j + 1
        elif ch.isspace():
            i += 1
        else:
            j = _read_until(text, i, _DELIMITERS)
            current.name = text[i:j].strip()
            i = j
    root.invalidate_caches(propagate_up=False, propagate_down=True)
    return root


@pytest.fixture
def newick() -> Callable[[str], Node]:
    return read_newick


# ----------------------------------------------------------------------------
# Shared checks
# ----------------------------------------------------------------------------
def leaf_set(node: Node):
    return sorted(leaf.name for leaf in node.get_leaves())


def same_unrooted_topology(first: Node, second: Node) -> bool:
    encoding = make_encoding(first.get_current_order())
    return unrooted_splits(first, encoding) == unrooted_splits(second, encoding)


def same_unrooted_lengths(first: Node, second: Node, tolerance: float = 1e-9) -> bool:
    encoding = make_encoding(first.get_current_order())
    a: Dict = split_lengths(first, encoding)
    b: Dict = split_lengths(second, encoding)
    if set(a) != set(b):
        return False
    return all(abs(a[s] - b[s]) <= tolerance for s in a)


@pytest.fixture
def checks():
    """Helper predicates shared by the rooting tests."""

    class Checks:
        leaf_set = staticmethod(leaf_set)
        same_unrooted_topology = staticmethod(same_unrooted_topology)
        same_unrooted_lengths = staticmethod(same_unrooted_lengths)

    return Checks
