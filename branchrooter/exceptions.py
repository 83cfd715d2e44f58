"""
Custom exceptions for tree rooting and manipulation.
"""

from __future__ import annotations
import logging
from typing import Iterable, NoReturn

logger = logging.getLogger(__name__)


class TreeManipulationError(Exception):
    """Base exception for tree rooting and manipulation errors."""

    pass


class InvalidTreeStructureError(TreeManipulationError, ValueError):
    """Raised when an input tree cannot be turned into an unrooted graph."""

    @staticmethod
    def raise_too_few_leaves(leaf_count: int) -> NoReturn:
        message = (
            f"Tree must contain at least 2 leaves, found {leaf_count}. "
            "A single taxon has no unrooted topology."
        )
        logger.warning(message)
        raise InvalidTreeStructureError(message)


class NodeNotFoundError(TreeManipulationError, LookupError):
    """Raised when a queried node, vertex or edge is not part of the graph."""

    pass


class OutgroupError(TreeManipulationError, ValueError):
    """Raised when an outgroup cannot define a rooting."""

    @staticmethod
    def raise_missing(outgroup: Iterable[str]) -> NoReturn:
        """
        Raises an OutgroupError for an outgroup with no member in the tree.

        Args:
            outgroup: The requested outgroup labels

        Raises:
            OutgroupError: Always raised, naming the outgroup
        """
        message = f"Non existent outgroup: {sorted(outgroup)}"
        logger.warning(message)
        raise OutgroupError(message)

    @staticmethod
    def raise_covers_all(outgroup: Iterable[str]) -> NoReturn:
        message = (
            f"Outgroup {sorted(outgroup)} contains every leaf of the tree; "
            "no branch separates it from an ingroup"
        )
        logger.warning(message)
        raise OutgroupError(message)


class TopologyEditError(TreeManipulationError):
    """Raised when a subtree move cannot be applied to the graph."""

    pass
