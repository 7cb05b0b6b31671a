import argparse
import csv
import logging
from enum import Enum
from typing import List, Optional, Tuple

import numpy as np
from scipy.spatial import KDTree

from rnadraw.layout import (
    LayoutConfig,
    LayoutCoordinator,
    PlacedNucleotide,
    RadiusMode,
)
from rnadraw.secondary import read_structure


class OverlapType(Enum):
    backbone = "backbone"
    base_pair = "base_pair"
    remote = "remote"


def classify_overlap(
    nt_i: PlacedNucleotide, nt_j: PlacedNucleotide, pairs: List[Optional[int]]
) -> OverlapType:
    if abs(nt_i.index - nt_j.index) == 1:
        return OverlapType.backbone
    if pairs[nt_i.index] == nt_j.index:
        return OverlapType.base_pair
    return OverlapType.remote


def find_overlaps(
    nucleotides: List[PlacedNucleotide],
    min_distance: float,
    ignore_neighbours: bool = False,
) -> List[Tuple[PlacedNucleotide, PlacedNucleotide, float]]:
    """Find pairs of drawn nucleotides closer to each other than ``min_distance``.

    Args:
        nucleotides: Placed nucleotides of a layout.
        min_distance: Smallest allowed distance between nucleotide centers.
        ignore_neighbours: Skip nucleotides adjacent in the sequence.

    Returns:
        List of (nucleotide, nucleotide, distance) sorted by indices.
    """
    if len(nucleotides) < 2:
        return []

    coordinates = np.array([nt.position for nt in nucleotides])
    kdtree = KDTree(coordinates)
    result = []

    for i, j in kdtree.query_pairs(min_distance):
        nt_i, nt_j = sorted((nucleotides[i], nucleotides[j]), key=lambda nt: nt.index)
        if ignore_neighbours and abs(nt_i.index - nt_j.index) == 1:
            continue
        distance = float(np.linalg.norm(nt_i.position - nt_j.position))
        if distance >= min_distance:
            continue
        result.append((nt_i, nt_j, distance))

    return sorted(result, key=lambda item: (item[0].index, item[1].index))


def main():
    parser = argparse.ArgumentParser()
    parser.add_argument("input", help="Path to dot-bracket file (or BPSEQ with --bpseq)")
    parser.add_argument("--bpseq", help="Input is a BPSEQ file", action="store_true")
    parser.add_argument(
        "--min-distance",
        help="Report nucleotides closer than this distance (default=2 * nucleotide radius)",
        type=float,
    )
    parser.add_argument(
        "--minimum-radius",
        help="Pack loops as tightly as possible instead of using even nucleotide spacing",
        action="store_true",
    )
    parser.add_argument(
        "--ignore-neighbours",
        help="By default overlaps of consecutive nucleotides are reported too, but you can disable this behaviour",
        action="store_true",
    )
    parser.add_argument("--csv", help="Store result in CSV format")
    args = parser.parse_args()

    tree = read_structure(args.input, args.bpseq)
    config = LayoutConfig()
    if args.minimum_radius:
        config = config.with_overrides(radius_mode=RadiusMode.minimum)
    layout = LayoutCoordinator(config).run(tree)
    min_distance = args.min_distance or 2 * config.nt_radius

    overlaps = find_overlaps(layout.nucleotides, min_distance, args.ignore_neighbours)
    if not overlaps:
        logging.info("No overlapping nucleotides found")

    for nt_i, nt_j, distance in overlaps:
        print(
            f"Overlap between {nt_i.letter}{nt_i.index + 1} and "
            f"{nt_j.letter}{nt_j.index + 1} at distance {distance:.3f} "
            f"({classify_overlap(nt_i, nt_j, tree.pairs).value})"
        )

    if args.csv:
        with open(args.csv, "w") as f:
            writer = csv.writer(f)
            writer.writerow(["Name", "Nucleotide 1", "Nucleotide 2", "Distance", "Type"])
            for nt_i, nt_j, distance in overlaps:
                writer.writerow(
                    [
                        tree.name,
                        f"{nt_i.letter}{nt_i.index + 1}",
                        f"{nt_j.letter}{nt_j.index + 1}",
                        round(distance, 3),
                        classify_overlap(nt_i, nt_j, tree.pairs).value,
                    ]
                )


if __name__ == "__main__":
    main()
