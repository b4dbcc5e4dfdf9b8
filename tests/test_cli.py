"""Tests for the command line entry point."""

from __future__ import annotations

import json
from unittest.mock import patch

import pytest

from sbsrf_update.cli import _select, _yes_no, build_parser, main


@pytest.fixture
def home(tmp_path, monkeypatch):
    monkeypatch.delenv("SBSRF_UPDATE_RELEASE_SOURCE", raising=False)
    return tmp_path / "home"


def _run(home, *argv):
    main(["--home", str(home), *argv])


class TestParser:
    def test_update_flags(self):
        args = build_parser().parse_args(["update", "-f", "-H", "10.0.0.2", "iphone"])
        assert args.command == "update"
        assert args.force
        assert args.host == "10.0.0.2"
        assert args.name == "iphone"

    def test_bare_invocation(self):
        assert build_parser().parse_args([]).command is None


class TestPrompts:
    def test_yes_no_default(self):
        with patch("builtins.input", return_value=""):
            assert _yes_no("Continue?", default=False) is False
        with patch("builtins.input", return_value="y"):
            assert _yes_no("Continue?", default=False) is True

    def test_select_retries_invalid(self, capsys):
        with patch("builtins.input", side_effect=["9", "x", "1"]):
            assert _select("Pick", ["v1", "v2"], 1) == 0
        assert "between 1 and 2" in capsys.readouterr().out

    def test_select_default(self):
        with patch("builtins.input", return_value=""):
            assert _select("Pick", ["v1", "v2"], 1) == 1


class TestDeviceCommands:
    def test_add_list_show(self, home, capsys):
        _run(home, "device", "add", "iphone")
        _run(home, "device", "list")
        out = capsys.readouterr().out
        assert "Added device iphone (Hamster)" in out
        assert "iphone" in out

        _run(home, "device", "show", "iphone")
        shown = json.loads(capsys.readouterr().out)
        assert shown["name"] == "Hamster"
        assert shown["version"] == "20051203"

    def test_remove_confirmed(self, home, capsys):
        _run(home, "device", "add", "iphone")
        with patch("builtins.input", return_value="y"):
            _run(home, "device", "remove", "iphone")
        assert not (home / "iphone").exists()

    def test_remove_declined_by_default(self, home):
        _run(home, "device", "add", "iphone")
        with patch("builtins.input", return_value=""):
            _run(home, "device", "remove", "iphone")
        assert (home / "iphone" / "config.json").exists()

    def test_unknown_device_exits_1(self, home, capsys):
        with pytest.raises(SystemExit) as exc:
            _run(home, "device", "show", "ipad")
        assert exc.value.code == 1
        assert "Device not found: ipad" in capsys.readouterr().out

    def test_invalid_config_exits_1(self, home, capsys):
        path = home / "iphone" / "config.json"
        path.parent.mkdir(parents=True)
        path.write_text(json.dumps({"name": "Hamster", "max_backups": -1}))
        with pytest.raises(SystemExit) as exc:
            _run(home, "device", "show", "iphone")
        assert exc.value.code == 1
        assert "Invalid device config" in capsys.readouterr().out

    def test_update_unknown_device_exits_1(self, home, capsys):
        with pytest.raises(SystemExit) as exc:
            _run(home, "update", "ipad")
        assert exc.value.code == 1
        assert "Device not found: ipad" in capsys.readouterr().out

    def test_remote_update_without_host(self, home, capsys):
        _run(home, "device", "add", "iphone")
        with pytest.raises(SystemExit):
            _run(home, "update", "iphone")
        assert "--host" in capsys.readouterr().out


class TestClean:
    def test_clean_cache(self, home):
        (home / "_cache").mkdir(parents=True)
        (home / "_cache" / "sbsrf.zip").write_bytes(b"PK")
        _run(home, "clean")
        assert not (home / "_cache").exists()

    def test_clean_all_needs_confirmation(self, home):
        _run(home, "device", "add", "iphone")
        with patch("builtins.input", return_value=""):
            _run(home, "clean", "--all")
        assert home.exists()
        with patch("builtins.input", return_value="yes"):
            _run(home, "clean", "--all")
        assert not home.exists()
