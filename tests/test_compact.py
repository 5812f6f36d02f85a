"""Tests for the default-profile compaction filter."""

import copy

from vizier.compact import (
    INTERNAL_COMPLETION_MARKER,
    PROMPT_COMPLETION_MARKER,
    compact,
    compact_groups,
    compact_home_tree,
    compact_listening_ports,
    compact_local_ips,
    compact_mounts,
    compact_recent_files,
    compact_sessions,
    compact_shell_history,
)
from vizier.models import (
    SCHEMA_VERSION,
    DateTimeInfo,
    FilesystemInfo,
    HomeTreeEntry,
    InstalledApp,
    ListeningPort,
    MachineInfo,
    MountInfo,
    NetworkIdentity,
    RecentActivity,
    RecentFileInfo,
    RunningProcessInfo,
    SessionInfo,
    UserInfo,
    WakeObservation,
    canonical,
)


def make_wake() -> WakeObservation:
    return WakeObservation(
        schema_version=SCHEMA_VERSION,
        ts=1_700_000_000.0,
        machine=MachineInfo(hostname="box", os="Linux", os_version="24.04", kernel="6.8", arch="x86_64"),
        user=UserInfo(
            username="ann",
            full_name="Ann",
            home_dir="/home/ann",
            shell="/bin/zsh",
            uid=1000,
            groups=["ann", "adm", "docker", "_lpadmin", "wheel", "docker", "plugdev"],
        ),
        datetime=DateTimeInfo(
            ts=1_700_000_000.0,
            iso="2023-11-14T22:13:20+00:00",
            timezone="+00:00",
            utc_offset_seconds=0,
            uptime_seconds=3600,
            login_ts=1_699_996_400.0,
        ),
        filesystem=FilesystemInfo(
            home_tree=[
                HomeTreeEntry(path="~/.config", kind="dir", children=["git"]),
                HomeTreeEntry(path="~/Music", kind="dir", children=[]),
                HomeTreeEntry(path="~/notes", kind="dir", children=["a.md", "b.md"]),
                HomeTreeEntry(path="~/Documents", kind="dir", entry_count=21),
                HomeTreeEntry(path="~/code", kind="dir", children=["vizier", "site"]),
                HomeTreeEntry(path="~/tmp", kind="dir", children=[]),
                HomeTreeEntry(path="~/Downloads", kind="dir", children=["x.zip"]),
                HomeTreeEntry(path="~/projects", kind="dir", children=["p"]),
            ],
            recent_files=[
                RecentFileInfo(path="/home/ann/.cache/pip/http/x", modified_ago_s=1),
                RecentFileInfo(path="/home/ann/code/vizier/diff.py", modified_ago_s=2),
                RecentFileInfo(path="/home/ann/node_modules/x/index.js", modified_ago_s=3),
                RecentFileInfo(path="/home/ann/notes/todo.md", modified_ago_s=4),
            ],
            mounts=[
                MountInfo(path="/boot/efi", fs_type="vfat", total_gb=0.5, free_gb=0.4),
                MountInfo(path="/home", fs_type="ext4", total_gb=400.0, free_gb=100.0),
                MountInfo(path="/", fs_type="ext4", total_gb=100.0, free_gb=20.0),
                MountInfo(path="/media/ann/USB", fs_type="exfat", total_gb=32.0, free_gb=31.0),
                MountInfo(path="/", fs_type="ext4", total_gb=100.0, free_gb=20.0),
            ],
        ),
        installed_apps=[InstalledApp(name="Git", id="git", kind="other")],
        network_identity=NetworkIdentity(
            local_ips=["192.168.1.20", "fe80::1", "10.0.0.2", "192.168.1.20", "172.17.0.1"],
            dns_servers=["1.1.1.1"],
        ),
        listening_ports=[
            ListeningPort(port=8080, proto="tcp", pid=1, app="python3", addr="0.0.0.0"),
            ListeningPort(port=22, proto="tcp", pid=2, app="sshd", addr="0.0.0.0"),
            ListeningPort(port=5353, proto="tcp", pid=3, app="avahi-daemon", addr="0.0.0.0"),
            ListeningPort(port=49152, proto="tcp", pid=4, app="node", addr="127.0.0.1"),
            ListeningPort(port=50051, proto="tcp", pid=5, app="grpc", addr="127.0.0.1"),
            ListeningPort(port=22, proto="tcp", pid=6, app="sshd", addr="::"),
            ListeningPort(port=7000, proto="tcp", pid=7, app="ControlCe", addr="*"),
        ],
        recent_activity=RecentActivity(
            shell_history=[
                "  git status  ",
                "PS1='%~ $ '",
                f"ls {INTERNAL_COMPLETION_MARKER}",
                f"make test{PROMPT_COMPLETION_MARKER}D;0",
                "git status",
                "   ",
                "cd ~/code",
                "vim diff.py",
                "pytest -q",
                "git commit -m wip",
            ],
            running_since_boot=[RunningProcessInfo(pid=1, app="systemd", started_ago_s=3600)],
        ),
        other_sessions=[
            SessionInfo(username="ann", tty="tty1", origin="local", login_ts=1.0),
            SessionInfo(username="ann", tty="pts/0", origin="10.0.0.9", login_ts=2.0),
            SessionInfo(username="bob", tty="pts/1", origin="-", login_ts=3.0),
            SessionInfo(username="bob", tty="pts/2", origin="", login_ts=4.0),
            SessionInfo(username="cy", tty="pts/3", origin="vpn.example", login_ts=5.0),
            SessionInfo(username="di", tty="pts/4", origin="10.0.0.10", login_ts=6.0),
            SessionInfo(username="ed", tty="pts/5", origin="10.0.0.11", login_ts=7.0),
        ],
    )


def test_compaction_is_idempotent() -> None:
    once = compact(make_wake())
    assert canonical(compact(once)) == canonical(once)


def test_compaction_does_not_mutate_input() -> None:
    wake = make_wake()
    before = copy.deepcopy(canonical(wake))
    compact(wake)
    assert canonical(wake) == before


def test_other_fields_pass_through() -> None:
    wake = make_wake()
    result = compact(wake)
    assert result.machine == wake.machine
    assert result.installed_apps == wake.installed_apps
    assert result.network_identity.dns_servers == ["1.1.1.1"]
    assert result.datetime == wake.datetime


def test_groups_drop_system_entries_and_cap() -> None:
    assert compact_groups(["ann", "adm", "docker", "_lpadmin", "wheel", "docker", "plugdev"]) == ["ann", "docker"]
    assert compact_groups(["staff", "everyone", "com.apple.sharepoint.group.1"]) == []


def test_admin_collapses_groups() -> None:
    assert compact_groups(["staff", "zeta", "admin", "alpha", "_developer"]) == ["admin"]


def test_home_tree_ranking_and_counts() -> None:
    tree = compact_home_tree(make_wake().filesystem.home_tree)
    assert [entry.path for entry in tree] == [
        "~/code",
        "~/projects",
        "~/Music",
        "~/Documents",
        "~/Downloads",
        "~/notes",
    ]
    assert all(entry.children is None for entry in tree)
    counts = {entry.path: entry.entry_count for entry in tree}
    assert counts["~/code"] == 2
    assert counts["~/Documents"] == 21
    assert counts["~/Music"] == 0
    assert "children" not in canonical(tree[0])


def test_recent_files_filter_noise() -> None:
    files = compact_recent_files(make_wake().filesystem.recent_files)
    assert [item.path for item in files] == ["/home/ann/code/vizier/diff.py", "/home/ann/notes/todo.md"]


def test_recent_files_fall_back_when_everything_is_noise() -> None:
    noisy = [RecentFileInfo(path=f"/home/ann/.cache/f{i}", modified_ago_s=i) for i in range(8)]
    result = compact_recent_files(noisy)
    assert result == noisy[:5]
    assert compact_recent_files(result) == result


def test_mounts_keep_root_home_and_removable() -> None:
    mounts = compact_mounts(make_wake().filesystem.mounts, "/home/ann")
    assert [mount.path for mount in mounts] == ["/", "/home", "/media/ann/USB"]


def test_mounts_without_separate_home() -> None:
    mounts = [
        MountInfo(path="/System/Volumes/Data", fs_type="apfs", total_gb=1.0, free_gb=1.0),
        MountInfo(path="/", fs_type="apfs", total_gb=1.0, free_gb=1.0),
        MountInfo(path="/Volumes/Backup", fs_type="hfs", total_gb=1.0, free_gb=1.0),
    ]
    assert [mount.path for mount in compact_mounts(mounts, "/Users/ann")] == ["/", "/Volumes/Backup"]


def test_local_ips_keep_ipv4_only() -> None:
    assert compact_local_ips(["192.168.1.20", "fe80::1", "10.0.0.2", "192.168.1.20", "172.17.0.1"]) == [
        "10.0.0.2",
        "172.17.0.1",
    ]


def test_listening_ports_policy() -> None:
    ports = compact_listening_ports(make_wake().listening_ports)
    assert [(port.port, port.app) for port in ports] == [(22, "sshd"), (8080, "python3"), (50051, "grpc")]


def test_listening_ports_cap() -> None:
    ports = [ListeningPort(port=1000 + i, proto="tcp", pid=i, app="svc", addr="*") for i in range(20)]
    assert len(compact_listening_ports(reversed(ports))) == 12
    assert compact_listening_ports(ports)[0].port == 1000


def test_shell_history_normalisation() -> None:
    history = compact_shell_history(make_wake().recent_activity.shell_history)
    assert history == ["make test", "git status", "cd ~/code", "vim diff.py", "pytest -q", "git commit -m wip"][-5:]
    assert len(history) <= 5
    assert not any(INTERNAL_COMPLETION_MARKER in line for line in history)


def test_shell_history_keeps_most_recent_duplicate() -> None:
    assert compact_shell_history(["ls", "pwd", "ls"]) == ["pwd", "ls"]


def test_running_since_boot_is_cleared() -> None:
    assert compact(make_wake()).recent_activity.running_since_boot == []


def test_sessions_drop_local_and_cap() -> None:
    sessions = compact_sessions(make_wake().other_sessions)
    assert [session.origin for session in sessions] == ["10.0.0.9", "vpn.example", "10.0.0.10"]
