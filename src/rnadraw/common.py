import logging
import os
import re
from dataclasses import dataclass, field
from enum import Enum
from functools import cached_property
from typing import ClassVar, Dict, Iterator, List, Optional, Tuple

import graphviz

from rnadraw.util import read_input_file

LOGLEVEL = os.environ.get("LOGLEVEL", "INFO").upper()
logging.basicConfig(level=LOGLEVEL)


class UnbalancedBracketError(ValueError):
    """Dot-bracket with a closing bracket too many or an unclosed opening one."""


class MalformedStructureError(ValueError):
    """Pairing information that does not describe a nested secondary structure."""


class GeometryError(ValueError):
    """Layout geometry that cannot be realized (e.g. chord longer than diameter)."""


class MotifType(Enum):
    """Kind of a structural element."""

    root = "root"
    unpaired = "unpaired"
    helix = "helix"
    terminal_loop = "terminal_loop"
    bulge = "bulge"
    internal_loop = "internal_loop"
    multi_loop = "multi_loop"

    @property
    def is_loop(self) -> bool:
        """Return True for motifs laid out on a circle."""
        return self in (
            MotifType.terminal_loop,
            MotifType.bulge,
            MotifType.internal_loop,
            MotifType.multi_loop,
        )


class BulgeSide(Enum):
    """Strand carrying the unpaired nucleotides of a bulge."""

    left = "left"
    right = "right"


@dataclass(frozen=True, order=True)
class Nucleotide:
    """Single residue identified by its 0-based position in the sequence."""

    index: int
    letter: str


@dataclass(frozen=True, order=True)
class BasePair:
    """Base pair between a 5' nucleotide and its 3' partner."""

    nt1: Nucleotide
    nt2: Nucleotide

    @property
    def indices(self) -> Tuple[int, int]:
        return self.nt1.index, self.nt2.index

    @property
    def letters(self) -> str:
        return f"{self.nt1.letter}{self.nt2.letter}"


@dataclass(eq=False)
class Node:
    """Base class of structure tree nodes.

    The ``parent`` attribute is a back reference only, the tree is owned
    through ``daughters`` which are ordered 5' to 3'.
    """

    motif: ClassVar[MotifType]

    parent: Optional["Node"] = field(default=None, repr=False)
    daughters: List["Node"] = field(default_factory=list)

    def push_daughter(self, daughter: "Node") -> "Node":
        daughter.parent = self
        self.daughters.append(daughter)
        return daughter

    @property
    def nucleotides(self) -> List[Nucleotide]:
        """Return nucleotides owned directly by this node."""
        return []

    def __str__(self):
        return self.motif.value


@dataclass(eq=False)
class UnpairedRun(Node):
    """Maximal stretch of consecutive unpaired nucleotides."""

    motif: ClassVar[MotifType] = MotifType.unpaired

    residues: List[Nucleotide] = field(default_factory=list)

    @property
    def nucleotides(self) -> List[Nucleotide]:
        return self.residues

    @property
    def sequence(self) -> str:
        return "".join(nt.letter for nt in self.residues)

    @property
    def indices(self) -> List[int]:
        return [nt.index for nt in self.residues]

    def __len__(self) -> int:
        return len(self.residues)

    def __str__(self):
        return f"UnpairedRun {self.indices[0]} {self.indices[-1]} {self.sequence}"


@dataclass(eq=False)
class Helix(Node):
    """Stack of perfectly nested base pairs, outermost pair first."""

    motif: ClassVar[MotifType] = MotifType.helix

    pairs: List[BasePair] = field(default_factory=list)

    @property
    def nucleotides(self) -> List[Nucleotide]:
        return [nt for pair in self.pairs for nt in (pair.nt1, pair.nt2)]

    @property
    def strand5p(self) -> str:
        return "".join(pair.nt1.letter for pair in self.pairs)

    @property
    def strand3p(self) -> str:
        return "".join(pair.nt2.letter for pair in reversed(self.pairs))

    @property
    def innermost(self) -> BasePair:
        return self.pairs[-1]

    def __str__(self):
        first, last = self.pairs[0], self.pairs[-1]
        return (
            f"Helix {first.nt1.index} {last.nt1.index} {self.strand5p} "
            f"{last.nt2.index} {first.nt2.index} {self.strand3p}"
        )


@dataclass(eq=False)
class Loop(Node):
    """Common base of motifs closed by a base pair and drawn on a circle."""

    @property
    def runs(self) -> List[UnpairedRun]:
        return [d for d in self.daughters if isinstance(d, UnpairedRun)]

    @property
    def helices(self) -> List[Helix]:
        return [d for d in self.daughters if isinstance(d, Helix)]

    def __str__(self):
        desc = " ".join(
            f"{run.indices[0]} {run.indices[-1]} {run.sequence}" for run in self.runs
        )
        return f"{type(self).__name__} {desc}".rstrip()


@dataclass(eq=False)
class TerminalLoop(Loop):
    """Hairpin tip, a single unpaired run closing a helix."""

    motif: ClassVar[MotifType] = MotifType.terminal_loop


@dataclass(eq=False)
class Bulge(Loop):
    """Unpaired nucleotides on one strand only, between two helices."""

    motif: ClassVar[MotifType] = MotifType.bulge

    side: Optional[BulgeSide] = None

    def __str__(self):
        return f"{super().__str__()} {self.side.value if self.side else ''}".rstrip()


@dataclass(eq=False)
class InternalLoop(Loop):
    """Unpaired nucleotides on both strands between two helices."""

    motif: ClassVar[MotifType] = MotifType.internal_loop


@dataclass(eq=False)
class MultiLoop(Loop):
    """Loop joining the closing pair with two or more inner helices."""

    motif: ClassVar[MotifType] = MotifType.multi_loop


@dataclass(eq=False)
class Root(Node):
    """Synthetic top-level node with no enclosing base pair."""

    motif: ClassVar[MotifType] = MotifType.root


@dataclass
class StructureTree:
    """Motif tree of a secondary structure together with its input."""

    name: str
    sequence: str
    pairs: List[Optional[int]]
    root: Root = field(default_factory=Root, repr=False)

    def walk(self) -> Iterator[Node]:
        """Yield all nodes in pre-order, 5' to 3'."""
        stack: List[Node] = [self.root]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.daughters))

    def motifs(self, motif: MotifType) -> List[Node]:
        return [node for node in self.walk() if node.motif == motif]

    @cached_property
    def counts(self) -> Dict[MotifType, int]:
        result = {motif: 0 for motif in MotifType}
        for node in self.walk():
            result[node.motif] += 1
        return result

    def flatten(self) -> str:
        """Rebuild the sequence from unpaired runs and helices."""
        nucleotides = []
        for node in self.walk():
            if isinstance(node, (UnpairedRun, Helix)):
                nucleotides.extend(node.nucleotides)
        return "".join(nt.letter for nt in sorted(nucleotides))

    def to_graphviz(self) -> graphviz.Digraph:
        """Create a Graphviz digraph of the motif tree."""
        dot = graphviz.Digraph(self.name or "structure")
        ids = {}
        for i, node in enumerate(self.walk()):
            ids[id(node)] = f"N{i}"
            label = self.name if isinstance(node, Root) and self.name else str(node)
            dot.node(f"N{i}", label)
            if node.parent is not None:
                dot.edge(ids[id(node.parent)], f"N{i}")
        return dot


@dataclass
class DotBracket:
    """Sequence and structure in dot-bracket notation."""

    sequence: str
    structure: str
    name: str = ""

    @staticmethod
    def from_string(sequence: str, structure: str, name: str = ""):
        """Create a DotBracket object from raw sequence and structure strings.

        Raises:
            ValueError: If sequence and structure lengths differ.
        """
        if len(sequence) != len(structure):
            raise ValueError(
                f"Sequence and structure lengths differ, "
                f"{len(sequence)} vs {len(structure)}"
            )
        return DotBracket(sequence, structure, name)

    @staticmethod
    def from_text(text: str):
        """Parse 2 lines (sequence, structure) or 3 lines with a '>name' header."""
        lines = [line.strip() for line in text.splitlines() if line.strip()]
        if len(lines) == 2:
            return DotBracket.from_string(lines[0], lines[1])
        if len(lines) == 3 and lines[0].startswith(">"):
            return DotBracket.from_string(lines[1], lines[2], lines[0][1:].strip())
        raise ValueError(f"Expected 2 or 3 lines of dot-bracket, got {len(lines)}")

    @staticmethod
    def from_file(path: str):
        return DotBracket.from_text(read_input_file(path))

    @cached_property
    def pairs(self) -> List[Optional[int]]:
        from rnadraw.secondary import match

        return match(self.structure)

    def without_pseudoknots(self):
        """Return a copy with pseudoknot brackets replaced by dots."""
        structure = re.sub(r"[\[\]\{\}\<\>A-Za-z]", ".", self.structure)
        return DotBracket(self.sequence, structure, self.name)

    def __str__(self):
        header = f">{self.name}\n" if self.name else ""
        return f"{header}{self.sequence}\n{self.structure}"


@dataclass
class BpSeq:
    """Sequence and pairing in BPSEQ format (1-based, 0 for unpaired)."""

    entries: List[Tuple[int, str, int]]
    name: str = ""

    @staticmethod
    def from_string(bpseq_str: str, name: str = ""):
        entries = []
        for line in bpseq_str.splitlines():
            line = line.strip()
            if len(line) == 0 or line.startswith("#"):
                continue
            fields = line.split()
            if len(fields) != 3:
                logging.warning(f"Failed to find 3 columns in BpSeq line: {line}")
                continue
            entries.append((int(fields[0]), fields[1], int(fields[2])))
        return BpSeq(sorted(entries), name)

    @staticmethod
    def from_file(path: str):
        name = os.path.basename(path).split(".")[0]
        return BpSeq.from_string(read_input_file(path), name)

    @cached_property
    def sequence(self) -> str:
        return "".join(letter for _, letter, _ in self.entries)

    @cached_property
    def pairs(self) -> List[Optional[int]]:
        """Return 0-based pairing array."""
        first = self.entries[0][0] if self.entries else 1
        return [j - first if j != 0 else None for _, _, j in self.entries]

    def to_dot_bracket(self) -> DotBracket:
        """Convert nested pairs to dot-bracket (crossing pairs are rejected)."""
        from rnadraw.secondary import validate_pairs

        validate_pairs(self.pairs)
        structure = [
            "." if j is None else ("(" if i < j else ")")
            for i, j in enumerate(self.pairs)
        ]
        return DotBracket(self.sequence, "".join(structure), self.name)

    def __str__(self):
        return "\n".join(f"{i} {c} {j}" for i, c, j in self.entries)
