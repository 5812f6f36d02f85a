"""Parsers behind the platform enrichment steps."""

import pytest

from vizier.models import Bounds
from vizier.platforms.linux import chassis_label, hypr_display, hypr_window, is_terminal_app
from vizier.platforms.macos import (
    parse_boottime,
    parse_frontmost,
    parse_hid_idle_ms,
    parse_netstat_gateway,
    parse_scutil_dns,
)


def test_hypr_window() -> None:
    window = hypr_window(
        {
            "address": "0x55d0",
            "title": "nvim diff.py",
            "class": "kitty",
            "pid": 4242,
            "at": [10, 40],
            "size": [1280, 720],
            "workspace": {"id": 3, "name": "3"},
            "fullscreen": 1,
        }
    )
    assert window.id == "0x55d0"
    assert window.app == "kitty"
    assert window.bounds == Bounds(10, 40, 1280, 720)
    assert window.workspace == 3
    assert window.is_fullscreen
    assert is_terminal_app(window.app)


def test_hypr_window_tolerates_missing_fields() -> None:
    window = hypr_window({})
    assert window.title == "unknown"
    assert window.bounds == Bounds(0, 0, 0, 0)
    assert not window.is_fullscreen


def test_hypr_display() -> None:
    display = hypr_display({"id": 1, "x": 1920, "width": 2560, "height": 1440, "focused": True, "scale": 1.5})
    assert display.bounds == Bounds(1920, 0, 2560, 1440)
    assert display.is_primary
    assert display.scale_factor == 1.5


@pytest.mark.parametrize("code,label", [(10, "Laptop"), (3, "Desktop"), (17, "Unknown"), (1, "Unknown")])
def test_chassis_label(code: int, label: str) -> None:
    assert chassis_label(code) == label


def test_parse_frontmost() -> None:
    window = parse_frontmost("Terminal\n812\nann@host: ~/code\n")
    assert window is not None
    assert (window.app, window.pid, window.title) == ("Terminal", 812, "ann@host: ~/code")
    assert parse_frontmost("Finder\nnot-a-pid\n") is None
    assert parse_frontmost("") is None


def test_parse_hid_idle_ms() -> None:
    output = '    |   "HIDIdleTime" = 2500000000\n    |   "HIDKind" = 1\n'
    assert parse_hid_idle_ms(output) == 2500
    assert parse_hid_idle_ms("nothing here") is None


def test_parse_netstat_gateway() -> None:
    output = (
        "Routing tables\n\nInternet:\n"
        "Destination        Gateway            Flags\n"
        "default            link#17            UCSIg\n"
        "default            192.168.1.1        UGScg\n"
    )
    assert parse_netstat_gateway(output) == "192.168.1.1"


def test_parse_scutil_dns_dedupes() -> None:
    output = (
        "resolver #1\n  nameserver[0] : 1.1.1.1\n  nameserver[1] : 8.8.8.8\n"
        "resolver #2\n  nameserver[0] : 1.1.1.1\n"
    )
    assert parse_scutil_dns(output) == ["1.1.1.1", "8.8.8.8"]


def test_parse_boottime() -> None:
    output = "{ sec = 1700000000, usec = 123456 } Tue Nov 14 22:13:20 2023"
    assert parse_boottime(output, 1700000300.5) == 300
    assert parse_boottime("{ sec = 12, usec = 0 }", 1700000300.0) is None
    assert parse_boottime("garbage", 1700000300.0) is None
