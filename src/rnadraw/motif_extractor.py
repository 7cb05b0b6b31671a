#! /usr/bin/env python
import argparse

from rnadraw.common import MotifType
from rnadraw.secondary import read_structure


def main():
    parser = argparse.ArgumentParser()
    parser.add_argument("input", help="path to dot-bracket file")
    parser.add_argument("--bpseq", help="input is a BPSEQ file", action="store_true")
    parser.add_argument(
        "--remove-pseudoknots", action="store_true", help="remove pseudoknots"
    )
    parser.add_argument(
        "--motif",
        "-m",
        help="motif type to list, you can provide as many as you want (default=all)",
        action="append",
        choices=[motif.value for motif in MotifType if motif != MotifType.root],
    )
    args = parser.parse_args()

    tree = read_structure(args.input, args.bpseq, args.remove_pseudoknots)
    selected = {MotifType(value) for value in args.motif} if args.motif else None

    for node in tree.walk():
        if node.motif == MotifType.root:
            continue
        if selected is None or node.motif in selected:
            print(node)


if __name__ == "__main__":
    main()
