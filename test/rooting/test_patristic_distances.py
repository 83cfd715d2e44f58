import numpy as np
import pytest

from branchrooter.exceptions import NodeNotFoundError
from branchrooter.rooting import TreeManipulator

FOUR_TAXA = "((A:1,B:1):1,(C:1,D:1):1);"


# --- patristic distances ---
def test_patristic_matrix(newick):
    labels, matrix = TreeManipulator(newick(FOUR_TAXA)).patristic_distances()
    assert sorted(labels) == ["A", "B", "C", "D"]
    idx = {label: i for i, label in enumerate(labels)}
    assert matrix.shape == (4, 4)
    assert np.allclose(matrix, matrix.T)
    assert np.allclose(np.diag(matrix), 0.0)
    assert matrix[idx["A"], idx["B"]] == pytest.approx(2.0)
    assert matrix[idx["A"], idx["C"]] == pytest.approx(4.0)
    assert matrix[idx["C"], idx["D"]] == pytest.approx(2.0)


def test_patristic_matrix_unaffected_by_rooting(newick):
    text = "(((A:1,B:3):0.5,C:2):1,(D:4,E:0.5):2);"
    root = newick(text)
    labels, matrix = TreeManipulator(root).patristic_distances()
    rerooted = TreeManipulator(TreeManipulator(root).rooted_by(["D"]))
    other_labels, other = rerooted.patristic_distances()
    order = [other_labels.index(label) for label in labels]
    assert np.allclose(matrix, other[np.ix_(order, order)])


def test_patristic_diameter_matches_midpoint(newick):
    root = newick("((A:2,B:2):2,C:6);")
    manipulator = TreeManipulator(root)
    _, matrix = manipulator.patristic_distances()
    rooted = manipulator.midpoint_rooted()
    assert rooted.max_path_length_to_leaf() == pytest.approx(matrix.max() / 2)


# --- branch access ---
def test_branches_cover_every_edge(newick):
    manipulator = TreeManipulator(newick(FOUR_TAXA))
    branches = manipulator.branches()
    assert branches[0].index == manipulator.anchor
    assert sorted(b.index for b in branches) == list(range(5))
    assert sum(b.length for b in branches) == pytest.approx(6.0)


def test_label_split(newick):
    manipulator = TreeManipulator(newick(FOUR_TAXA))
    first, second = manipulator.branch(manipulator.anchor).label_split()
    assert {first, second} == {frozenset("AB"), frozenset("CD")}
    for branch in manipulator.branches():
        left, right = branch.label_split()
        assert left | right == frozenset("ABCD")
        assert not left & right


def test_branch_annotation_reaches_output(newick):
    manipulator = TreeManipulator(newick(FOUR_TAXA))
    c_leaf = next(v for v in manipulator.graph.leaf_vertices() if v.label == "C")
    branch = manipulator.branch(c_leaf.edges[0])
    assert branch.annotation is None
    branch.annotation = {"support": 95}
    rooted = manipulator.default_rooted()
    assert rooted.find_node_by_name("C").values == {"support": 95}
    branch.annotation = "weak"
    rooted = manipulator.default_rooted()
    assert rooted.find_node_by_name("C").values == {"branch": "weak"}


def test_unknown_branch(newick):
    manipulator = TreeManipulator(newick(FOUR_TAXA))
    with pytest.raises(NodeNotFoundError):
        manipulator.branch(17)


def test_repr(newick):
    manipulator = TreeManipulator(newick(FOUR_TAXA))
    assert repr(manipulator) == "TreeManipulator(leaves=4, edges=5, policy=mimic)"
    assert repr(manipulator.branch(manipulator.anchor)) == "BranchAccess(0, length=2.0)"
