import logging
from typing import List, Optional, Tuple

from rnadraw.common import (
    BasePair,
    BpSeq,
    Bulge,
    BulgeSide,
    DotBracket,
    Helix,
    InternalLoop,
    MalformedStructureError,
    MultiLoop,
    Node,
    Nucleotide,
    StructureTree,
    TerminalLoop,
    UnbalancedBracketError,
    UnpairedRun,
)


def match(dot_bracket: str) -> List[Optional[int]]:
    """Convert a dot-bracket string into a pairing array.

    The i-th entry holds the index of the partner of position i or ``None``
    if the position is unpaired.

    Raises:
        UnbalancedBracketError: On a ')' without a pending '(' or unclosed '('.
        MalformedStructureError: On characters other than '.', '(' and ')'.
    """
    pairs: List[Optional[int]] = [None] * len(dot_bracket)
    opened: List[int] = []

    for i, c in enumerate(dot_bracket):
        if c == ".":
            continue
        elif c == "(":
            opened.append(i)
        elif c == ")":
            if not opened:
                raise UnbalancedBracketError(
                    f"Closing bracket at position {i} has no opening partner"
                )
            j = opened.pop()
            pairs[i] = j
            pairs[j] = i
        else:
            raise MalformedStructureError(
                f"Unsupported character '{c}' at position {i} of dot-bracket"
            )

    if opened:
        raise UnbalancedBracketError(
            f"Unclosed opening brackets at positions {opened}"
        )
    return pairs


def validate_pairs(pairs: List[Optional[int]]):
    """Check that a pairing array is in range, symmetric and free of crossings.

    Raises:
        MalformedStructureError: If any of the conditions is violated.
    """
    n = len(pairs)
    opened: List[int] = []

    for i, j in enumerate(pairs):
        if j is None:
            continue
        if not 0 <= j < n:
            raise MalformedStructureError(f"Partner {j} of {i} is out of range")
        if j == i:
            raise MalformedStructureError(f"Position {i} is paired with itself")
        if pairs[j] != i:
            raise MalformedStructureError(
                f"Pairing is not symmetric: {i} -> {j} but {j} -> {pairs[j]}"
            )
        if i < j:
            opened.append(i)
        elif not opened or opened[-1] != j:
            raise MalformedStructureError(f"Base pair ({j}, {i}) crosses another pair")
        else:
            opened.pop()


class StructureTreeBuilder:
    """Classify a nested secondary structure into a tree of motifs.

    The interior of each helix is classified as terminal loop, bulge,
    internal loop or multi-branch loop. Pending helix interiors are kept on an
    explicit stack, so nesting depth is not limited by the interpreter.
    """

    def __init__(self, sequence: str, pairs: List[Optional[int]]):
        if len(sequence) != len(pairs):
            raise MalformedStructureError(
                f"Sequence and pairs lengths differ, {len(sequence)} vs {len(pairs)}"
            )
        validate_pairs(pairs)
        self.sequence = sequence
        self.pairs = pairs
        self.pending: List[Tuple[int, int, Helix]] = []

    def build(self, name: str = "") -> StructureTree:
        tree = StructureTree(name, self.sequence, list(self.pairs))
        self.pending = []
        self._dispatch(0, len(self.pairs) - 1, tree.root)

        while self.pending:
            left, right, helix = self.pending.pop()
            self._classify_interior(left, right, helix)

        logging.debug(
            f"Structure tree of {name or 'input'}: "
            + ", ".join(f"{k.value}={v}" for k, v in tree.counts.items())
        )
        return tree

    def _nucleotide(self, i: int) -> Nucleotide:
        return Nucleotide(i, self.sequence[i])

    def _run(self, first: int, last: int) -> UnpairedRun:
        return UnpairedRun(
            residues=[self._nucleotide(i) for i in range(first, last + 1)]
        )

    def _end_of_unpaired(self, start: int, limit: int, step: int = 1) -> int:
        """Return the last index of the unpaired run starting at ``start``.

        The scan goes in the direction of ``step`` and never passes ``limit``.
        """
        cursor = start
        while cursor != limit and self.pairs[cursor + step] is None:
            cursor += step
        return cursor

    def _dispatch(self, left: int, right: int, parent: Node):
        """Scan a flat region (root or multi-loop interior) left to right."""
        cursor = left
        while cursor <= right:
            if self.pairs[cursor] is None:
                end = self._end_of_unpaired(cursor, right)
                parent.push_daughter(self._run(cursor, end))
                cursor = end + 1
            else:
                partner = self.pairs[cursor]
                self._classify_region(cursor, partner, parent)
                cursor = partner + 1

    def _classify_region(self, left: int, right: int, parent: Node) -> Helix:
        """Consume the helix closed by (left, right) and schedule its interior."""
        helix = Helix()
        while left < right and self.pairs[left] == right:
            helix.pairs.append(
                BasePair(self._nucleotide(left), self._nucleotide(right))
            )
            left += 1
            right -= 1
        parent.push_daughter(helix)
        self.pending.append((left, right, helix))
        return helix

    def _classify_interior(self, left: int, right: int, helix: Helix):
        if left > right:
            # zero-length interior, the helix has no child
            return

        left_paired = self.pairs[left] is not None
        right_paired = self.pairs[right] is not None

        if not left_paired and not right_paired:
            end = self._end_of_unpaired(left, right)
            if end == right:
                loop = helix.push_daughter(TerminalLoop())
                loop.push_daughter(self._run(left, right))
                return

            inner = end + 1
            partner = self.pairs[inner]
            start = self._end_of_unpaired(right, left, -1)
            if start == partner + 1:
                loop = helix.push_daughter(InternalLoop())
                loop.push_daughter(self._run(left, end))
                self._classify_region(inner, partner, loop)
                loop.push_daughter(self._run(start, right))
                return

        elif right_paired and not left_paired:
            partner = self.pairs[right]
            end = self._end_of_unpaired(left, right)
            if end + 1 == partner:
                loop = helix.push_daughter(Bulge(side=BulgeSide.left))
                loop.push_daughter(self._run(left, end))
                self._classify_region(partner, right, loop)
                return

        elif left_paired and not right_paired:
            partner = self.pairs[left]
            start = self._end_of_unpaired(right, left, -1)
            if start - 1 == partner:
                loop = helix.push_daughter(Bulge(side=BulgeSide.right))
                self._classify_region(left, partner, loop)
                loop.push_daughter(self._run(start, right))
                return

        loop = helix.push_daughter(MultiLoop())
        self._dispatch(left, right, loop)


def build(sequence: str, pairs: List[Optional[int]], name: str = "") -> StructureTree:
    """Build the structure tree of a sequence and its pairing array."""
    return StructureTreeBuilder(sequence, pairs).build(name)


def parse(name: str, sequence: str, dot_bracket: str) -> StructureTree:
    """Build the structure tree straight from a dot-bracket string."""
    if len(sequence) != len(dot_bracket):
        raise ValueError(
            f"Sequence and structure lengths differ, "
            f"{len(sequence)} vs {len(dot_bracket)}"
        )
    return build(sequence, match(dot_bracket), name)


def read_structure(
    path: str, is_bpseq: bool = False, remove_pseudoknots: bool = False
) -> StructureTree:
    """Read a dot-bracket (2-3 lines) or BPSEQ file and build its structure tree."""
    if is_bpseq:
        dot_bracket = BpSeq.from_file(path).to_dot_bracket()
    else:
        dot_bracket = DotBracket.from_file(path)
        if remove_pseudoknots:
            dot_bracket = dot_bracket.without_pseudoknots()
    return parse(dot_bracket.name, dot_bracket.sequence, dot_bracket.structure)
