"""Core branchrooter package."""

from branchrooter.exceptions import (
    InvalidTreeStructureError,
    NodeNotFoundError,
    OutgroupError,
    TopologyEditError,
    TreeManipulationError,
)
from branchrooter.rooting import Construction, ConstructionPolicy, TreeManipulator
from branchrooter.tree import Node, Tree, Units

__all__ = [
    "InvalidTreeStructureError",
    "NodeNotFoundError",
    "OutgroupError",
    "TopologyEditError",
    "TreeManipulationError",
    "Construction",
    "ConstructionPolicy",
    "TreeManipulator",
    "Node",
    "Tree",
    "Units",
]
