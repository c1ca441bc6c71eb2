"""Tests for the command-line entry point."""

from __future__ import annotations

import argparse
import json
from unittest.mock import patch

import pytest

from server.__main__ import build_parser, main, parse_duration


class TestParseDuration:
    @pytest.mark.parametrize("value, seconds", [
        ("15s", 15.0),
        ("1m", 60.0),
        ("1h30m", 5400.0),
        ("500ms", 0.5),
        ("2.5s", 2.5),
        ("90", 90.0),
    ])
    def test_valid(self, value, seconds):
        assert parse_duration(value) == seconds

    @pytest.mark.parametrize("value", ["", "soon", "10x", "m5", "1h 30m"])
    def test_invalid(self, value):
        with pytest.raises(argparse.ArgumentTypeError):
            parse_duration(value)


class TestParser:
    def test_repeatable_config_files(self):
        args = build_parser().parse_args([
            "--config-file", "a.json", "--config-file", "b.yaml",
            "--scrape-interval", "5m", "--graceful-timeout", "30s",
        ])
        assert args.config_files == ["a.json", "b.yaml"]
        assert args.scrape_interval == 300.0
        assert args.graceful_timeout == 30.0
        assert args.overlay_file is None


class TestMain:
    def test_invalid_config_exits_non_zero(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"services": [], "storage": {"type": "s3"}}))
        with patch("server.__main__.uvicorn.run") as run:
            assert main(["--config-file", str(path)]) == 1
        run.assert_not_called()

    def test_missing_config_exits_non_zero(self, tmp_path):
        with patch("server.__main__.uvicorn.run") as run:
            assert main(["--config-file", str(tmp_path / "nope.json")]) == 1
        run.assert_not_called()

    def test_starts_server(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({
            "host": "0.0.0.0",
            "services": [{"name": "petfood", "url": "http://petfood.test"}],
            "storage": {"type": "disk", "disk": {"path": str(tmp_path / "specs")}},
        }))
        overlay = tmp_path / "overlay.yaml"
        overlay.write_text("servers:\n  - url: https://api.example.com\n")
        with patch("server.__main__.uvicorn.run") as run:
            assert main(["--config-file", str(path), "--overlay-file", str(overlay)]) == 0
        run.assert_called_once()
        assert run.call_args.kwargs["host"] == "0.0.0.0"
        assert (tmp_path / "specs").is_dir()
