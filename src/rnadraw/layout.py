import logging
import math
from dataclasses import dataclass, field, fields, replace
from enum import Enum
from typing import Dict, Iterator, List, Optional, Tuple

import numpy as np
import orjson
import pandas as pd

from rnadraw.common import (
    GeometryError,
    Helix,
    Loop,
    MotifType,
    Node,
    Nucleotide,
    StructureTree,
    UnpairedRun,
)
from rnadraw.geometry import (
    EPSILON,
    RIGHT,
    UP,
    Vector,
    angle_of,
    circle_through_chord,
    norm,
    point_on_circle,
    rotate,
    unit,
    vector,
)
from rnadraw.secondary import parse
from rnadraw.util import read_input_file

NT_RADIUS = 8.0
NT_SPACING = 25.0
BP_LENGTH = 40.0
BP_SPACING = 25.0


class RadiusMode(Enum):
    """Strategy for the radius of loop circles."""

    minimum = "minimum"
    default = "default"


@dataclass(frozen=True)
class LayoutConfig:
    """Sizes used by the layout engine, all in drawing units.

    Attributes:
        nt_radius: Radius of a drawn nucleotide.
        nt_spacing: Distance between consecutive unpaired nucleotides.
        bp_length: Distance between the two nucleotides of a base pair.
        bp_spacing: Distance between consecutive base pairs along a helix.
        origin: Position of the first nucleotide.
        radius_mode: Whether loops are packed tightly or spaced evenly.
    """

    nt_radius: float = NT_RADIUS
    nt_spacing: float = NT_SPACING
    bp_length: float = BP_LENGTH
    bp_spacing: float = BP_SPACING
    origin: Tuple[float, float] = (0.0, 0.0)
    radius_mode: RadiusMode = RadiusMode.default

    def __post_init__(self):
        for name in ("nt_radius", "nt_spacing", "bp_length", "bp_spacing"):
            if getattr(self, name) <= 0:
                raise ValueError(f"Layout parameter {name} must be positive")

    @staticmethod
    def from_dict(data: Dict) -> "LayoutConfig":
        known = {f.name for f in fields(LayoutConfig)}
        unknown = set(data.keys()) - known
        if unknown:
            logging.warning(f"Ignoring unknown layout parameters: {sorted(unknown)}")
        kwargs = {k: v for k, v in data.items() if k in known}
        if "origin" in kwargs:
            kwargs["origin"] = tuple(float(x) for x in kwargs["origin"])
        if "radius_mode" in kwargs:
            kwargs["radius_mode"] = RadiusMode(kwargs["radius_mode"])
        return LayoutConfig(**kwargs)

    @staticmethod
    def from_file(path: str) -> "LayoutConfig":
        return LayoutConfig.from_dict(orjson.loads(read_input_file(path)))

    def with_overrides(self, **kwargs) -> "LayoutConfig":
        return replace(self, **{k: v for k, v in kwargs.items() if v is not None})


@dataclass(eq=False)
class PlacedNucleotide:
    nucleotide: Nucleotide
    position: Vector

    @property
    def index(self) -> int:
        return self.nucleotide.index

    @property
    def letter(self) -> str:
        return self.nucleotide.letter


@dataclass(eq=False)
class PlacedElement:
    """Layout of a single structure tree node.

    ``node`` and ``parent`` are lookup references, the placed tree is owned
    through ``children``.
    """

    node: Node = field(repr=False)
    parent: Optional["PlacedElement"] = field(default=None, repr=False)
    children: List["PlacedElement"] = field(default_factory=list)
    nucleotides: List[PlacedNucleotide] = field(default_factory=list)

    @property
    def motif(self) -> MotifType:
        return self.node.motif


@dataclass(eq=False)
class PlacedUnpaired(PlacedElement):
    direction: Optional[Vector] = None


@dataclass(eq=False)
class PlacedHelix(PlacedElement):
    anchor: Vector = field(default_factory=lambda: np.zeros(2))
    direction: Vector = field(default_factory=lambda: UP.copy())
    next_anchor: Vector = field(default_factory=lambda: np.zeros(2))
    next_direction: Vector = field(default_factory=lambda: UP.copy())
    base_pairs: List[Tuple[PlacedNucleotide, PlacedNucleotide]] = field(
        default_factory=list
    )

    @property
    def innermost(self) -> Tuple[PlacedNucleotide, PlacedNucleotide]:
        return self.base_pairs[-1]


@dataclass(eq=False)
class PlacedLoop(PlacedElement):
    center: Vector = field(default_factory=lambda: np.zeros(2))
    radius: float = 0.0
    phi: float = 0.0
    increment: float = 0.0
    draw_direction: int = 1
    angle_start: float = 0.0
    angle_end: float = 0.0
    child_angles: List[Tuple[float, float]] = field(default_factory=list)


def walk(element: PlacedElement) -> Iterator[PlacedElement]:
    """Yield the placed subtree of ``element`` in pre-order."""
    stack = [element]
    while stack:
        current = stack.pop()
        yield current
        stack.extend(reversed(current.children))


def loop_radii(node: Loop, config: LayoutConfig) -> Tuple[float, float]:
    """Return (minimum, default) radius of a loop from its circumference budget."""
    closing = config.bp_length + 2 * config.nt_radius
    minimum, default = closing, closing

    for daughter in node.daughters:
        if isinstance(daughter, UnpairedRun):
            minimum += 2 * (len(daughter) + 1) * config.nt_radius
            default += (len(daughter) + 1) * config.nt_spacing
        elif isinstance(daughter, Helix):
            # same share as the closing pair, so bps * phi stays within 360
            minimum += closing
            default += closing
        else:
            raise RuntimeError(f"Unknown loop daughter: {daughter}")

    return minimum / (2 * math.pi), default / (2 * math.pi)


class StemLayout:
    """Place the base pairs of a helix along a straight axis."""

    def __init__(self, config: LayoutConfig):
        self.config = config

    def layout(
        self,
        node: Helix,
        anchor: Vector,
        direction: Vector,
        parent: Optional[PlacedElement] = None,
    ) -> PlacedHelix:
        """Lay out ``node`` with its outermost pair centered at ``anchor``.

        The 5' nucleotide of each pair lies to the left of the axis when
        looking along ``direction``. The returned element carries the anchor
        and direction for the helix child in ``next_anchor`` and
        ``next_direction``.
        """
        d = unit(direction)
        offset = rotate(d, -90.0) * (self.config.bp_length / 2)
        placed = PlacedHelix(
            node=node, parent=parent, anchor=np.array(anchor, dtype=float), direction=d
        )

        position = placed.anchor.copy()
        for pair in node.pairs:
            five = PlacedNucleotide(pair.nt1, position + offset)
            three = PlacedNucleotide(pair.nt2, position - offset)
            placed.base_pairs.append((five, three))
            placed.nucleotides.extend((five, three))
            position = position + d * self.config.bp_spacing

        placed.next_anchor = position
        placed.next_direction = d.copy()
        return placed


class LoopLayout:
    """Inscribe loop motifs in circles tangent to their closing helix."""

    def __init__(self, config: LayoutConfig, stem_layout: Optional[StemLayout] = None):
        self.config = config
        self.stem_layout = stem_layout or StemLayout(config)

    def radius(self, node: Loop, chord: float) -> float:
        """Pick the working radius for a loop closed by a chord of given length."""
        minimum, default = loop_radii(node, self.config)
        radius = minimum if self.config.radius_mode == RadiusMode.minimum else default
        if radius < chord / 2:
            logging.warning(
                f"Radius {radius:.3f} of {node} is too small for chord {chord:.3f}, "
                f"clamping to {chord / 2:.3f}"
            )
            radius = chord / 2
        return radius

    def layout(
        self,
        node: Loop,
        p1: Vector,
        p2: Vector,
        parent: Optional[PlacedElement] = None,
        radius: Optional[float] = None,
    ) -> PlacedLoop:
        """Lay out a loop closed by nucleotides at ``p1`` (5') and ``p2`` (3').

        Helix children and everything nested inside them are placed as well.

        Raises:
            GeometryError: If the chord is degenerate, does not fit an explicit
                ``radius``, or the loop cannot accommodate its helices.
        """
        pending: List[PlacedHelix] = []
        placed = self._place(node, p1, p2, parent, radius, pending)

        while pending:
            helix = pending.pop()
            if not helix.node.daughters:
                continue
            five, three = helix.innermost
            child = self._place(
                helix.node.daughters[0], five.position, three.position, helix, None, pending
            )
            helix.children.append(child)

        return placed

    def _place(
        self,
        node: Loop,
        p1: Vector,
        p2: Vector,
        parent: Optional[PlacedElement],
        radius: Optional[float],
        pending: List[PlacedHelix],
    ) -> PlacedLoop:
        if not isinstance(node, Loop):
            raise RuntimeError(f"Unknown loop node: {node}")

        chord = norm(p2 - p1)
        if chord < EPSILON:
            raise GeometryError(f"Closing base pair of {node} has a zero-length chord")
        if radius is None:
            radius = self.radius(node, chord)
        center, theta = circle_through_chord(p1, p2, radius)
        phi = 180.0 - 2.0 * theta

        nts = sum(len(d) for d in node.daughters if isinstance(d, UnpairedRun))
        bps = 1 + sum(1 for d in node.daughters if isinstance(d, Helix))
        increment = (360.0 - bps * phi) / (nts + bps)
        if increment < -EPSILON:
            raise GeometryError(
                f"Circle of radius {radius:.3f} cannot fit {bps} base pairs of {node}"
            )

        start = angle_of(p1 - center)
        placed = PlacedLoop(
            node=node,
            parent=parent,
            center=center,
            radius=radius,
            phi=phi,
            increment=increment,
            angle_start=start,
            angle_end=start + 360.0 - phi,
        )
        logging.debug(
            f"{node}: radius={radius:.3f} phi={phi:.3f} increment={increment:.3f}"
        )

        cursor = start
        after_pair = True
        for daughter in node.daughters:
            if isinstance(daughter, UnpairedRun):
                end = cursor + increment * (len(daughter) + 1)
                run = PlacedUnpaired(node=daughter, parent=placed)
                for k, nt in enumerate(daughter.residues, 1):
                    position = point_on_circle(center, radius, cursor + k * increment)
                    run.nucleotides.append(PlacedNucleotide(nt, position))
                placed.children.append(run)
                placed.child_angles.append((cursor, end))
                cursor = end
                after_pair = False
            elif isinstance(daughter, Helix):
                if after_pair:
                    cursor += increment
                q1 = point_on_circle(center, radius, cursor)
                q2 = point_on_circle(center, radius, cursor + phi)
                anchor = (q1 + q2) / 2
                helix = self.stem_layout.layout(
                    daughter, anchor, unit(anchor - center), parent=placed
                )
                placed.children.append(helix)
                placed.child_angles.append((cursor, cursor + phi))
                pending.append(helix)
                cursor += phi
                after_pair = True
            else:
                raise RuntimeError(f"Unknown loop daughter: {daughter}")

        return placed


@dataclass
class Layout:
    """Placed-element forest of a structure tree with flat lookup indices."""

    tree: StructureTree
    config: LayoutConfig
    elements: List[PlacedElement] = field(default_factory=list)

    def walk(self) -> Iterator[PlacedElement]:
        for element in self.elements:
            yield from walk(element)

    @property
    def nucleotides(self) -> List[PlacedNucleotide]:
        result = [nt for element in self.walk() for nt in element.nucleotides]
        return sorted(result, key=lambda nt: nt.index)

    @property
    def helices(self) -> List[PlacedHelix]:
        return [e for e in self.walk() if isinstance(e, PlacedHelix)]

    @property
    def unpaired(self) -> List[PlacedUnpaired]:
        return [e for e in self.walk() if isinstance(e, PlacedUnpaired)]

    @property
    def loops(self) -> Dict[MotifType, List[PlacedLoop]]:
        result: Dict[MotifType, List[PlacedLoop]] = {
            motif: [] for motif in MotifType if motif.is_loop
        }
        for element in self.walk():
            if isinstance(element, PlacedLoop):
                result[element.motif].append(element)
        return result

    def find(self, node: Node) -> Optional[PlacedElement]:
        """Return the placed element of a structure tree node."""
        return next((e for e in self.walk() if e.node is node), None)

    def to_dict(self) -> Dict:
        """Return a JSON-ready description with elements referenced by id."""
        ids = {id(element): i for i, element in enumerate(self.walk())}
        elements = []

        for element in self.walk():
            entry = {
                "id": ids[id(element)],
                "type": element.motif.value,
                "parent": (
                    ids[id(element.parent)] if element.parent is not None else None
                ),
                "children": [ids[id(child)] for child in element.children],
                "nucleotides": [nt.index for nt in element.nucleotides],
            }
            if isinstance(element, PlacedHelix):
                entry["anchor"] = element.anchor.tolist()
                entry["direction"] = element.direction.tolist()
                entry["next_anchor"] = element.next_anchor.tolist()
                entry["next_direction"] = element.next_direction.tolist()
                entry["base_pairs"] = [
                    [five.index, three.index] for five, three in element.base_pairs
                ]
            elif isinstance(element, PlacedLoop):
                entry["center"] = element.center.tolist()
                entry["radius"] = element.radius
                entry["phi"] = element.phi
                entry["increment"] = element.increment
                entry["draw_direction"] = element.draw_direction
                entry["child_angles"] = [list(a) for a in element.child_angles]
            elif isinstance(element, PlacedUnpaired):
                if element.direction is not None:
                    entry["direction"] = element.direction.tolist()
            else:
                raise RuntimeError(f"Unknown placed element: {element}")
            elements.append(entry)

        return {
            "name": self.tree.name,
            "sequence": self.tree.sequence,
            "nucleotides": [
                {
                    "index": nt.index,
                    "letter": nt.letter,
                    "x": float(nt.position[0]),
                    "y": float(nt.position[1]),
                }
                for nt in self.nucleotides
            ],
            "elements": elements,
        }

    def to_json(self) -> bytes:
        return orjson.dumps(self.to_dict(), option=orjson.OPT_INDENT_2)

    def to_dataframe(self) -> pd.DataFrame:
        """Return nucleotide coordinates as a table."""
        rows = []
        for element in self.walk():
            for nt in element.nucleotides:
                rows.append(
                    {
                        "index": nt.index,
                        "letter": nt.letter,
                        "x": float(nt.position[0]),
                        "y": float(nt.position[1]),
                        "motif": element.motif.value,
                    }
                )
        df = pd.DataFrame(rows, columns=["index", "letter", "x", "y", "motif"])
        return df.sort_values("index").reset_index(drop=True)


class LayoutCoordinator:
    """Lay out a whole structure tree starting from the configured origin."""

    def __init__(self, config: Optional[LayoutConfig] = None):
        self.config = config or LayoutConfig()
        self.stem_layout = StemLayout(self.config)
        self.loop_layout = LoopLayout(self.config, self.stem_layout)

    def run(self, tree: StructureTree) -> Layout:
        result = Layout(tree, self.config)
        cursor = vector(*self.config.origin)

        for node in tree.root.daughters:
            if isinstance(node, UnpairedRun):
                run = PlacedUnpaired(node=node, direction=RIGHT.copy())
                for nt in node.residues:
                    run.nucleotides.append(PlacedNucleotide(nt, cursor.copy()))
                    cursor = cursor + RIGHT * self.config.nt_spacing
                result.elements.append(run)
            elif isinstance(node, Helix):
                anchor = cursor + RIGHT * (self.config.bp_length / 2)
                helix = self.stem_layout.layout(node, anchor, UP)
                if node.daughters:
                    five, three = helix.innermost
                    helix.children.append(
                        self.loop_layout.layout(
                            node.daughters[0], five.position, three.position, helix
                        )
                    )
                result.elements.append(helix)
                cursor = cursor + RIGHT * (
                    self.config.bp_length + self.config.nt_spacing
                )
            else:
                raise RuntimeError(f"Unknown root daughter: {node}")

        logging.debug(
            f"Laid out {len(result.nucleotides)} nucleotides of {tree.name or 'input'}"
        )
        return result


def layout_structure(
    name: str, sequence: str, dot_bracket: str, config: Optional[LayoutConfig] = None
) -> Layout:
    """Parse a dot-bracket structure and compute its layout."""
    return LayoutCoordinator(config).run(parse(name, sequence, dot_bracket))
