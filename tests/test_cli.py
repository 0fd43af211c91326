"""Tests for the command line interface."""

import pytest
from PIL import Image

from chaosflame.cli import build_parser, main


class TestParser:
    def test_defaults(self):
        args = build_parser().parse_args([])
        assert args.preset == "fern4"
        assert args.workers == 1
        assert args.merge_policy == "first_wins"

    def test_background_hex(self):
        args = build_parser().parse_args(["--background", "#ff0000"])
        assert args.background == (1.0, 0.0, 0.0)


def test_main_writes_png(tmp_path, capsys):
    out = tmp_path / "fern.png"
    main(["fern4", "-o", str(out), "--width", "40", "--height", "30",
          "-n", "5000", "-w", "2", "--seed", "1", "--corrected"])
    with Image.open(out) as img:
        assert img.size == (40, 30)
    assert "Done!" in capsys.readouterr().out


def test_main_bad_config(tmp_path, capsys):
    with pytest.raises(SystemExit) as exc:
        main(["--width", "0", "-o", str(tmp_path / "x.png")])
    assert exc.value.code == 1
    assert "Error" in capsys.readouterr().err
