import pytest

from rnadraw.common import (
    BpSeq,
    DotBracket,
    MalformedStructureError,
    MotifType,
    UnpairedRun,
)
from rnadraw.secondary import parse, read_structure
from rnadraw.util import read_input_file

TRNA_SEQUENCE = (
    "GCGGAUUUAGCUCAGUUGGGAGAGCGCCAGACUGAAGAUCUGGAGGUCCUGUGUUCGAUCCACAGAAUUCGCACCA"
)


def test_read_input_file_gz():
    assert read_input_file("tests/trna.dbn.gz") == read_input_file("tests/trna.dbn")


def test_dot_bracket_from_file():
    dot_bracket = DotBracket.from_file("tests/trna.dbn")
    assert dot_bracket.name == "tRNA-Phe"
    assert dot_bracket.sequence == TRNA_SEQUENCE
    assert len(dot_bracket.structure) == 76
    assert dot_bracket.pairs[0] == 71
    assert dot_bracket.pairs[71] == 0
    assert dot_bracket.pairs[7] is None


def test_dot_bracket_from_gzipped_file():
    assert DotBracket.from_file("tests/trna.dbn.gz") == DotBracket.from_file(
        "tests/trna.dbn"
    )


def test_dot_bracket_from_text_without_header():
    dot_bracket = DotBracket.from_text("GGAAACC\n((...))\n")
    assert dot_bracket.name == ""
    assert dot_bracket.structure == "((...))"
    assert str(dot_bracket) == "GGAAACC\n((...))"


def test_dot_bracket_errors():
    with pytest.raises(ValueError):
        DotBracket.from_string("GGAA", "((.))")
    with pytest.raises(ValueError):
        DotBracket.from_text("GGAA")
    with pytest.raises(ValueError):
        DotBracket.from_text("name\nGGAA\n(..)")


def test_without_pseudoknots():
    pseudoknotted = DotBracket.from_file("tests/trna-pk.dbn")
    plain = DotBracket.from_file("tests/trna.dbn")
    assert pseudoknotted.name == "tRNA-Phe-pk"
    assert pseudoknotted.without_pseudoknots().structure == plain.structure
    assert DotBracket("GAAAC", "(A<a)").without_pseudoknots().structure == "(...)"


def test_bpseq_hairpin():
    bpseq = BpSeq.from_file("tests/hairpin.bpseq")
    assert bpseq.name == "hairpin"
    assert bpseq.sequence == "GGGAAACCC"
    assert bpseq.pairs == [8, 7, 6, None, None, None, 2, 1, 0]

    dot_bracket = bpseq.to_dot_bracket()
    assert dot_bracket.structure == "(((...)))"
    assert dot_bracket.sequence == "GGGAAACCC"


def test_bpseq_skips_malformed_lines():
    bpseq = BpSeq.from_string("1 G 2\nbroken line here too\n2 C 1\n")
    assert bpseq.sequence == "GC"
    assert bpseq.pairs == [1, 0]


def test_bpseq_crossing_pairs():
    bpseq = BpSeq.from_file("tests/crossing.bpseq")
    with pytest.raises(MalformedStructureError):
        bpseq.to_dot_bracket()
    with pytest.raises(MalformedStructureError):
        read_structure("tests/crossing.bpseq", is_bpseq=True)


def test_motif_descriptions():
    tree = read_structure("tests/trna.dbn")
    acceptor = tree.root.daughters[0]
    assert str(acceptor) == "Helix 0 6 GCGGAUU 65 71 AAUUCGC"

    multi_loop = acceptor.daughters[0]
    assert str(multi_loop) == "MultiLoop 7 8 UA 25 25 G 43 47 AGGUC"

    tail = tree.root.daughters[1]
    assert isinstance(tail, UnpairedRun)
    assert str(tail) == "UnpairedRun 72 75 ACCA"


def test_bulge_description():
    tree = parse("", "GAGAACC", "(.(..))")
    assert str(tree.root.daughters[0].daughters[0]) == "Bulge 1 1 A left"


def test_counts_and_motifs():
    tree = read_structure("tests/trna.dbn")
    assert tree.counts[MotifType.root] == 1
    assert tree.counts[MotifType.bulge] == 0
    assert tree.counts[MotifType.internal_loop] == 0
    assert len(tree.motifs(MotifType.terminal_loop)) == 3
    assert [len(run) for run in tree.motifs(MotifType.unpaired)] == [
        2,
        8,
        1,
        9,
        5,
        7,
        4,
    ]


def test_graphviz():
    tree = read_structure("tests/trna.dbn")
    source = tree.to_graphviz().source
    assert "tRNA-Phe" in source
    assert "MultiLoop" in source
    assert "N0 -> N1" in source
