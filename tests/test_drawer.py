import sys

import orjson
import pandas as pd

from rnadraw import motif_extractor
from rnadraw.drawer import main


def test_main_outputs(tmp_path):
    output = tmp_path / "trna.json"
    table = tmp_path / "trna.csv"
    graph = tmp_path / "trna.gv"

    code = main(
        [
            "tests/trna.dbn.gz",
            "-o",
            str(output),
            "--csv",
            str(table),
            "--graphviz",
            str(graph),
        ]
    )
    assert code == 0

    data = orjson.loads(output.read_bytes())
    assert data["name"] == "tRNA-Phe"
    assert len(data["nucleotides"]) == 76

    df = pd.read_csv(table)
    assert len(df) == 76
    assert df["index"].tolist() == list(range(76))

    assert "digraph" in graph.read_text()


def test_main_with_config_and_flip(tmp_path, capsys):
    config = tmp_path / "config.json"
    config.write_bytes(orjson.dumps({"bp_length": 30.0}))

    code = main(["tests/hairpin.bpseq", "--bpseq", "--config", str(config), "--flip"])
    assert code == 0

    data = orjson.loads(capsys.readouterr().out)
    first, last = data["nucleotides"][0], data["nucleotides"][-1]
    assert abs(last["x"] - first["x"] - 30.0) < 1e-9
    # flipped hairpin grows downwards
    assert data["nucleotides"][4]["y"] > 0


def test_main_overrides(capsys):
    code = main(["tests/trna.dbn", "--bp-length", "50", "--minimum-radius"])
    assert code == 0
    data = orjson.loads(capsys.readouterr().out)
    assert abs(data["nucleotides"][71]["x"] - 50.0) < 1e-9


def test_main_invalid_input(capsys):
    assert main(["tests/trna-pk.dbn"]) == 1
    assert capsys.readouterr().err.startswith("Error:")

    assert main(["tests/crossing.bpseq", "--bpseq"]) == 1


def test_motif_extractor(monkeypatch, capsys):
    monkeypatch.setattr(
        sys, "argv", ["motif-extractor", "tests/trna.dbn", "-m", "terminal_loop"]
    )
    motif_extractor.main()
    lines = capsys.readouterr().out.splitlines()
    assert lines == [
        "TerminalLoop 13 20 AGUUGGGA",
        "TerminalLoop 30 38 ACUGAAGAU",
        "TerminalLoop 53 59 UUCGAUC",
    ]


def test_motif_extractor_all(monkeypatch, capsys):
    monkeypatch.setattr(sys, "argv", ["motif-extractor", "tests/trna.dbn"])
    motif_extractor.main()
    lines = capsys.readouterr().out.splitlines()
    assert len(lines) == 15
    assert lines[0].startswith("Helix 0 6")
