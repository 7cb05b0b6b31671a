#! /usr/bin/env python
import argparse
import sys

from rnadraw.layout import Layout, LayoutConfig, LayoutCoordinator, RadiusMode
from rnadraw.rearrange import flip_layout
from rnadraw.secondary import read_structure


def load_config(args: argparse.Namespace) -> LayoutConfig:
    config = LayoutConfig.from_file(args.config) if args.config else LayoutConfig()
    return config.with_overrides(
        nt_radius=args.nt_radius,
        nt_spacing=args.nt_spacing,
        bp_length=args.bp_length,
        bp_spacing=args.bp_spacing,
        radius_mode=RadiusMode.minimum if args.minimum_radius else None,
    )


def write_outputs(layout: Layout, args: argparse.Namespace):
    if args.output:
        with open(args.output, "wb") as f:
            f.write(layout.to_json())
    else:
        print(layout.to_json().decode("utf-8"))

    if args.csv:
        with open(args.csv, "w") as f:
            layout.to_dataframe().to_csv(f, index=False)

    if args.graphviz:
        with open(args.graphviz, "w") as f:
            f.write(layout.tree.to_graphviz().source)


def main(argv=None):
    parser = argparse.ArgumentParser(
        description="Compute a 2D layout of an RNA secondary structure"
    )
    parser.add_argument("input", help="path to dot-bracket file (optionally gzipped)")
    parser.add_argument("--bpseq", help="input is a BPSEQ file", action="store_true")
    parser.add_argument(
        "--remove-pseudoknots",
        help="replace pseudoknot brackets ([]{}<> and letters) with dots",
        action="store_true",
    )
    parser.add_argument("--config", help="path to JSON file with layout parameters")
    parser.add_argument(
        "--minimum-radius",
        help="pack loops tightly instead of spacing nucleotides evenly",
        action="store_true",
    )
    parser.add_argument("--nt-radius", help="radius of a nucleotide", type=float)
    parser.add_argument(
        "--nt-spacing", help="distance between unpaired nucleotides", type=float
    )
    parser.add_argument(
        "--bp-length", help="distance between paired nucleotides", type=float
    )
    parser.add_argument(
        "--bp-spacing", help="distance between stacked base pairs", type=float
    )
    parser.add_argument(
        "--flip",
        help="mirror the layout across the horizontal line through the origin",
        action="store_true",
    )
    parser.add_argument("--output", "-o", help="path to output JSON (default=stdout)")
    parser.add_argument("--csv", help="path to output CSV with nucleotide coordinates")
    parser.add_argument("--graphviz", help="path to output Graphviz source of motif tree")
    args = parser.parse_args(argv)

    try:
        tree = read_structure(args.input, args.bpseq, args.remove_pseudoknots)
        layout = LayoutCoordinator(load_config(args)).run(tree)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if args.flip:
        flip_layout(layout)

    write_outputs(layout, args)
    return 0


if __name__ == "__main__":
    sys.exit(main())
