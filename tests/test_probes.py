"""Tests for best-effort probe helpers."""

from datetime import datetime
from pathlib import Path

from vizier.probes import (
    bytes_to_gb,
    command_stdout,
    current_ts,
    parse_os_release,
    parse_who_line,
    read_text,
    tilde_path,
)


def test_current_ts_is_positive() -> None:
    assert current_ts() > 0


def test_missing_binary_is_absent() -> None:
    assert command_stdout("vizier-no-such-binary-xyz") is None


def test_unreadable_file_is_absent(tmp_path: Path) -> None:
    assert read_text(tmp_path / "missing") is None


def test_tilde_path() -> None:
    home = Path("/home/ann")
    assert tilde_path(home, home) == "~"
    assert tilde_path(home, home / "code" / "app") == "~/code/app"
    assert tilde_path(home, Path("/etc")) == "/etc"


def test_bytes_to_gb_rounds() -> None:
    assert bytes_to_gb(1024**3 * 1.5) == 1.5
    assert bytes_to_gb(123456789) == 0.11


def test_parse_os_release() -> None:
    text = 'NAME="Ubuntu"\nVERSION_ID="24.04"\n# comment\nPRETTY_NAME="Ubuntu 24.04 LTS"\n'
    values = parse_os_release(text)
    assert values["VERSION_ID"] == "24.04"
    assert values["PRETTY_NAME"] == "Ubuntu 24.04 LTS"


def test_who_iso_format_with_origin() -> None:
    session = parse_who_line("ann      pts/1        2024-05-01 10:00 (192.168.1.5)")
    assert session is not None
    assert session.username == "ann"
    assert session.tty == "pts/1"
    assert session.origin == "192.168.1.5"
    assert session.login_ts == datetime(2024, 5, 1, 10, 0).astimezone().timestamp()


def test_who_month_format_defaults_to_local() -> None:
    now = datetime(2025, 6, 15, 12, 0)
    session = parse_who_line("ann  console  Jun  3 09:12", now=now)
    assert session is not None
    assert session.origin == "local"
    assert session.login_ts == datetime(2025, 6, 3, 9, 12).astimezone().timestamp()


def test_who_month_in_future_rolls_back_a_year() -> None:
    now = datetime(2025, 1, 2, 8, 0)
    session = parse_who_line("ann  ttys000  Dec 31 23:50", now=now)
    assert session is not None
    assert session.login_ts == datetime(2024, 12, 31, 23, 50).astimezone().timestamp()


def test_who_garbage_is_skipped() -> None:
    assert parse_who_line("") is None
    assert parse_who_line("ann pts/0 yesterday noon") is None
