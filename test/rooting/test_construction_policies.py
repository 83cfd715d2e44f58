import pytest

from branchrooter.config import Config
from branchrooter.exceptions import InvalidTreeStructureError
from branchrooter.rooting.construction import (
    EXPAND,
    MIMIC,
    REDUCE,
    Construction,
    ConstructionPolicy,
    GraphBuilder,
)
from branchrooter.rooting.sources import NodeSource


def build(root, construction=MIMIC):
    return GraphBuilder(construction).build_rooted(NodeSource(root))


def internal_degrees(graph):
    return sorted(v.degree for v in graph.vertices if not v.is_leaf())


# --- mimic ---
def test_mimic_keeps_multifurcation(newick):
    result = build(newick("(A:1,B:1,C:1,D:1,E:1);"))
    assert internal_degrees(result.graph) == [5]
    assert result.unrooted_input
    assert result.proportion == 0.5
    centre = result.graph.edges[result.anchor].first
    assert result.graph.vertices[centre].edges[0] == result.anchor


def test_mimic_binary_input_has_degree_three(newick):
    result = build(newick("(((A:1,B:1):1,C:1):1,(D:1,E:1):1);"))
    assert internal_degrees(result.graph) == [3, 3, 3]
    result.graph.validate()


def test_bifurcating_root_merges_branches(newick):
    result = build(newick("((A:1,B:1):1.5,(C:1,D:1):0.5);"))
    assert result.graph.edges[result.anchor].length == pytest.approx(2.0)
    assert result.proportion == pytest.approx(0.75)
    assert result.graph.total_length() == pytest.approx(6.0)


def test_zero_length_root_split_defaults_to_half(newick):
    result = build(newick("((A:1,B:1):0,(C:1,D:1):0);"))
    assert result.proportion == 0.5


def test_two_leaves(newick):
    result = build(newick("(A:1,B:2);"))
    graph = result.graph
    assert len(graph.vertices) == 2
    assert len(graph.edges) == 1
    assert graph.edges[0].length == pytest.approx(3.0)
    assert result.proportion == pytest.approx(1 / 3)


# --- expand ---
def test_expand_unrooted_star(newick):
    result = build(newick("(A:1,B:1,C:1,D:1,E:1);"), EXPAND)
    graph = result.graph
    graph.validate()
    assert internal_degrees(graph) == [3, 3, 3]
    assert len(graph.vertices) == 8
    synthetic = [v for v in graph.vertices if not v.is_leaf() and v.peer is None]
    assert len(synthetic) == 2
    zero_edges = [e for e in graph.edges if e.length == 0.0]
    assert len(zero_edges) == 2
    assert graph.total_length() == pytest.approx(5.0)


def test_expand_internal_polytomy(newick):
    result = build(newick("((A:1,B:1,C:1,D:1):2,E:1);"), EXPAND)
    graph = result.graph
    graph.validate()
    assert all(d == 3 for d in internal_degrees(graph))
    assert sorted(graph.leaf_labels()) == ["A", "B", "C", "D", "E"]
    assert graph.total_length() == pytest.approx(7.0)


def test_expand_chain_order(newick):
    # first child hangs directly, the rest continue down the chain
    result = build(newick("((A:1,B:1,C:1):2,D:1);"), EXPAND)
    graph = result.graph
    top = graph.edges[result.anchor].first
    direct = [graph.edges[f].other(top) for f in graph.vertices[top].edges[1:]]
    assert graph.vertices[direct[0]].label == "A"
    chain = graph.vertices[direct[1]]
    assert chain.peer is None
    assert sorted(graph.side_labels(chain.edges[0], chain.index)) == ["B", "C"]


def test_expand_binary_input_unchanged(newick):
    text = "(((A:1,B:1):1,C:1):1,(D:1,E:1):1);"
    assert len(build(newick(text), EXPAND).graph.edges) == len(
        build(newick(text), MIMIC).graph.edges
    )


# --- reduce ---
def test_reduce_collapses_zero_length_internal(newick):
    result = build(newick("(((A:1,B:1):0,C:1):1,(D:1,E:1):1);"), REDUCE)
    graph = result.graph
    graph.validate()
    assert internal_degrees(graph) == [3, 4]
    assert sorted(graph.leaf_labels()) == ["A", "B", "C", "D", "E"]


def test_reduce_at_unrooted_centre(newick):
    result = build(newick("((A:1,B:1):0,(C:1,D:1):1,E:1);"), REDUCE)
    centre = result.graph.edges[result.anchor].first
    assert result.graph.vertices[centre].degree == 4


def test_reduce_keeps_leaves(newick):
    result = build(newick("((A:0,B:0):1,C:1,D:1);"), REDUCE)
    assert sorted(result.graph.leaf_labels()) == ["A", "B", "C", "D"]


def test_reduce_threshold_boundary(newick):
    text = "((A:1,B:1):0.5,(C:1,D:1):1,E:1);"
    inclusive = Construction(ConstructionPolicy.REDUCE, 0.5, inclusive=True)
    exclusive = Construction(ConstructionPolicy.REDUCE, 0.5, inclusive=False)
    assert len(build(newick(text), inclusive).graph.edges) == 6
    assert len(build(newick(text), exclusive).graph.edges) == 7


def test_reduce_drops_collapsed_peers(newick):
    root = newick("(((A:1,B:1):0,C:1):1,(D:1,E:1):1);")
    graph = build(root, REDUCE).graph
    collapsed = root.children[0].children[0]
    assert all(v.peer is not collapsed for v in graph.vertices)


# --- policy values ---
def test_policy_from_name():
    assert ConstructionPolicy.from_name("Expand") is ConstructionPolicy.EXPAND
    with pytest.raises(InvalidTreeStructureError, match="bogus"):
        ConstructionPolicy.from_name("bogus")


def test_coerce():
    assert Construction.coerce(EXPAND) is EXPAND
    assert Construction.coerce("reduce").policy is ConstructionPolicy.REDUCE
    assert Construction.coerce(ConstructionPolicy.MIMIC) == MIMIC
    with pytest.raises(TypeError):
        Construction.coerce(3)


def test_default_policy_from_config(monkeypatch):
    monkeypatch.setattr(Config, "DEFAULT_POLICY", "expand")
    assert Construction.coerce(None).policy is ConstructionPolicy.EXPAND


def test_construction_defaults_follow_config():
    assert MIMIC.min_branch_length == Config.MIN_BRANCH_LENGTH
    assert MIMIC.inclusive == Config.REDUCE_INCLUSIVE


# --- errors ---
def test_single_leaf_rejected(newick):
    with pytest.raises(InvalidTreeStructureError, match="at least 2 leaves"):
        build(newick("A;"))


def test_unary_node_rejected(newick):
    with pytest.raises(InvalidTreeStructureError, match="single child"):
        build(newick("((A:1):1,B:1);"))


def test_negative_length_rejected(newick):
    with pytest.raises(InvalidTreeStructureError, match="Negative"):
        build(newick("(A:-1,B:1);"))
