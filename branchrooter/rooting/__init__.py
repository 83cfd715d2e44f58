"""
Rooting module for phylogenetic trees.

This module turns trees into an unrooted graph and derives rooted trees from it:
- graph: vertices, edges and cached farthest-leaf distances
- sources: what the builder reads (concrete nodes, recorded producers)
- construction: graph builder and the mimic / expand / reduce policies
- queries: default, midpoint, outgroup and node-based rootings
- editor: subtree grafting and moves
- manipulator: the TreeManipulator facade tying the above together
"""

from .construction import (
    EXPAND,
    MIMIC,
    REDUCE,
    Construction,
    ConstructionPolicy,
)
from .manipulator import (
    BranchAccess,
    TreeManipulator,
    get_all_rootings_by,
    get_every_root,
    get_midpoint_rooted,
    get_rooted_by,
    get_unrooted,
)
from .sources import (
    InstructableBranch,
    InstructableNode,
    NodeSource,
    RootedTreeRecorder,
    TreeSource,
    UnrootedTreeRecorder,
)

__all__ = [
    "EXPAND",
    "MIMIC",
    "REDUCE",
    "Construction",
    "ConstructionPolicy",
    "BranchAccess",
    "TreeManipulator",
    "get_all_rootings_by",
    "get_every_root",
    "get_midpoint_rooted",
    "get_rooted_by",
    "get_unrooted",
    "InstructableBranch",
    "InstructableNode",
    "NodeSource",
    "RootedTreeRecorder",
    "TreeSource",
    "UnrootedTreeRecorder",
]
