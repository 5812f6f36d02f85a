"""End-to-end tests for the ``vz`` command line."""

import json

import pytest

from vizier import __version__
from vizier.cli import build_parser, main


def run_cli(capsys: pytest.CaptureFixture, *argv: str) -> dict:
    assert main(["--no-public-ip", *argv]) == 0
    out = capsys.readouterr().out
    lines = out.splitlines()
    assert len(lines) == 1
    return json.loads(lines[0])


def test_parser_requires_a_command() -> None:
    with pytest.raises(SystemExit):
        build_parser().parse_args([])


def test_watch_defaults() -> None:
    args = build_parser().parse_args(["watch"])
    assert args.interval == 1000
    assert not args.diff


def test_version(capsys: pytest.CaptureFixture) -> None:
    with pytest.raises(SystemExit):
        main(["--version"])
    assert __version__ in capsys.readouterr().out


def test_wake_is_compact_by_default(capsys: pytest.CaptureFixture) -> None:
    wake = run_cli(capsys, "wake")
    assert wake["schema_version"] == 1
    assert len(wake["user"]["groups"]) <= 2
    assert len(wake["recent_activity"]["shell_history"]) <= 5
    assert len(wake["filesystem"]["home_tree"]) <= 6
    assert len(wake["network_identity"]["local_ips"]) <= 2
    assert "public_ip" not in wake["network_identity"]


def test_verbose_wake_is_not_smaller(capsys: pytest.CaptureFixture) -> None:
    compact = run_cli(capsys, "wake")
    verbose = run_cli(capsys, "--verbose", "wake")
    assert len(verbose["recent_activity"]["shell_history"]) >= len(compact["recent_activity"]["shell_history"])
    assert len(verbose["filesystem"]["home_tree"]) >= len(compact["filesystem"]["home_tree"])
    assert len(verbose["user"]["groups"]) >= len(compact["user"]["groups"])


def test_snapshot(capsys: pytest.CaptureFixture, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("VIZIER_NO_WATCH", "1")
    obs = run_cli(capsys, "snapshot")
    assert obs["schema_version"] == 1
    assert obs["fs_events"] == []
    assert isinstance(obs["net_connections"], list)
