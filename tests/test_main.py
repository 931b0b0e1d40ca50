"""Tests for command-line parsing."""

from pathlib import Path

import pytest

from tapmacro import __version__
from tapmacro.main import build_parser, main


class TestParser:
    def test_defaults(self) -> None:
        args = build_parser().parse_args(["daily.json"])
        assert args.macro == Path("daily.json")
        assert args.templates == Path("templates")
        assert args.monitor == 1
        assert not args.calibrate
        assert args.log_level == "INFO"
        assert args.debug_crop is None

    def test_options(self) -> None:
        args = build_parser().parse_args(
            ["-t", "imgs", "-m", "2", "--calibrate", "--log-level", "DEBUG", "--debug-crop", "c.png"]
        )
        assert args.macro is None
        assert args.templates == Path("imgs")
        assert args.monitor == 2
        assert args.calibrate
        assert args.debug_crop == Path("c.png")

    def test_version(self, capsys) -> None:
        with pytest.raises(SystemExit):
            build_parser().parse_args(["--version"])
        assert __version__ in capsys.readouterr().out


def test_nothing_to_do_exits() -> None:
    with pytest.raises(SystemExit) as exc_info:
        main([])
    assert exc_info.value.code == 2
