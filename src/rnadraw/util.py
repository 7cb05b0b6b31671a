import gzip
import os


def read_input_file(path: str) -> str:
    """Read a text file, transparently decompressing ``.gz`` files."""
    _, ext = os.path.splitext(path)

    if ext == ".gz":
        with gzip.open(path, "rt") as f:
            return f.read()
    with open(path) as f:
        return f.read()
