import pytest

from branchrooter.splits import (
    Split,
    make_encoding,
    robinson_foulds,
    split_lengths,
    unrooted_splits,
)


def test_make_encoding_is_sorted():
    assert make_encoding(["C", "A", "B", "A"]) == {"A": 0, "B": 1, "C": 2}


def test_split_complement_and_canonical():
    encoding = make_encoding(["A", "B", "C", "D"])
    ab = Split.from_taxa(["A", "B"], encoding)
    cd = Split.from_taxa(["C", "D"], encoding)
    assert ab.complement() == cd
    assert ab.canonical() == cd
    assert cd.canonical() == cd
    assert ab.bipartition() == "A, B | C, D"
    assert str(cd) == "(C, D)"


def test_split_unknown_taxon():
    encoding = make_encoding(["A", "B"])
    with pytest.raises(ValueError):
        Split.from_taxa(["Z"], encoding)


def test_trivial_splits():
    encoding = make_encoding(["A", "B", "C", "D"])
    assert Split.from_taxa(["A"], encoding).is_trivial()
    assert Split.from_taxa(["A", "B", "C"], encoding).is_trivial()
    assert not Split.from_taxa(["A", "B"], encoding).is_trivial()


def test_unrooted_splits_ignore_root_position(newick):
    rooted = newick("((A:1,B:1):1,(C:1,D:1):1);")
    other_root = newick("(A:1,(B:1,(C:1,D:1):2):1);")
    encoding = make_encoding(["A", "B", "C", "D"])
    assert unrooted_splits(rooted, encoding) == unrooted_splits(other_root, encoding)
    non_trivial = unrooted_splits(rooted, encoding, include_trivial=False)
    assert {s.taxa for s in non_trivial} == {frozenset({"C", "D"})}


def test_split_lengths_merge_root_branches(newick):
    root = newick("((A:1,B:1):1.5,(C:1,D:1):0.5);")
    lengths = split_lengths(root)
    encoding = make_encoding(["A", "B", "C", "D"])
    cd = Split.from_taxa(["C", "D"], encoding)
    assert lengths[cd] == pytest.approx(2.0)
    assert sum(lengths.values()) == pytest.approx(root.total_length())


def test_robinson_foulds(newick):
    first = newick("((A,B),(C,D),E);")
    second = newick("((A,C),(B,D),E);")
    assert robinson_foulds(first, first) == 0.0
    assert robinson_foulds(first, second) == 4.0
    assert robinson_foulds(first, second, rescaled=True) == pytest.approx(1.0)


def test_robinson_foulds_requires_same_leaves(newick):
    with pytest.raises(ValueError):
        robinson_foulds(newick("(A,B,C);"), newick("(A,B,D);"))
