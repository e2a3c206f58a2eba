import json
import os
import subprocess

import pytest

from lvmlocal import commands
from lvmlocal import constants as c
from lvmlocal.commands import (
    LVM_VOL_KEY,
    ExecError,
    LVMSnapshot,
    LVMVolume,
)

MISSING_NAME = "pvc-zz-not-a-real-volume-for-tests"


class FakeRunner:
    """Stands in for subprocess.run, answering per command name."""

    def __init__(self, responses=None):
        self.responses = responses or {}
        self.calls = []

    def __call__(self, argv, **kwargs):
        self.calls.append(list(argv))
        answer = self.responses.get(argv[0], (0, b""))
        if isinstance(answer, Exception):
            raise answer
        rc, out = answer
        return subprocess.CompletedProcess(argv, rc, stdout=out)

    def commands(self):
        return [call[0] for call in self.calls]


@pytest.fixture
def runner(monkeypatch):
    fake = FakeRunner()
    monkeypatch.setattr(commands.subprocess, "run", fake)
    return fake


@pytest.fixture
def existing_mapper(monkeypatch):
    real_stat = os.stat

    def fake_stat(path, *args, **kwargs):
        if str(path).startswith(c.DEV_MAPPER_PATH):
            return real_stat("/")
        return real_stat(path, *args, **kwargs)

    monkeypatch.setattr(commands.os, "stat", fake_stat)


def test_volume_dev_path_doubles_hyphens():
    vol = LVMVolume(name="pvc-213ca1e6-e271-4ec8-875c-c7def3a4908d", vol_group="linuxlvmvg")
    assert commands.volume_dev_path(vol) == (
        "/dev/mapper/linuxlvmvg-pvc--213ca1e6--e271--4ec8--875c--c7def3a4908d"
    )


def test_create_args_thick(runner):
    vol = LVMVolume(name="pvc-1", vol_group="lvmvg", capacity="1024")
    assert commands.build_lvm_create_args(vol) == [
        "-L", vol.capacity + "b", "-n", vol.name, vol.vol_group, "-y"
    ]
    assert runner.calls == []


def test_create_args_thin_with_existing_pool(runner):
    vol = LVMVolume(name="pvc-1", vol_group="lvmvg", capacity="1024", thin_provision=" yes ")
    pool = vol.vol_group + "_thinpool"
    runner.responses[c.LV_LIST] = (0, f"  {pool}\n".encode())
    assert commands.build_lvm_create_args(vol) == [
        "-T", f"{vol.vol_group}/{pool}", "-V", vol.capacity + "b", "-n", vol.name, "-y"
    ]


def test_create_args_thin_without_pool_uses_pool_size(runner):
    vol = LVMVolume(name="pvc-1", vol_group="lvmvg", capacity="1024", thin_provision="yes")
    runner.responses[c.LV_LIST] = (0, b"")
    runner.responses[c.VG_LIST] = (0, b"  999999999\n")
    args = commands.build_lvm_create_args(vol)
    assert args[:2] == ["-L", vol.capacity + "b"]
    assert args[2] == "-T"
    assert vol.vol_group not in args[args.index("-n"):][2:]


def test_thin_pool_size_when_group_too_small(runner):
    free = 2 * c.MIN_EXTENT_ROUND_OFF_SIZE
    runner.responses[c.VG_LIST] = (0, f"{free}\n".encode())
    size = commands.thin_pool_size("lvmvg", str(free * 4))
    assert size.endswith("b")
    assert 0 < int(size[:-1]) < free


def test_thin_pool_size_empty_on_failure(runner):
    runner.responses[c.VG_LIST] = (5, b"not found")
    assert commands.thin_pool_size("lvmvg", "1024") == ""
    runner.responses[c.VG_LIST] = (0, b"100")
    assert commands.thin_pool_size("lvmvg", "abc") == ""


def test_destroy_and_resize_args():
    vol = LVMVolume(name="pvc-1", vol_group="lvmvg", capacity="2048")
    dev = c.DEV_PATH + "lvmvg/pvc-1"
    assert commands.build_lvm_destroy_args(vol) == ["-y", dev]
    assert commands.build_volume_resize_args(vol, False) == [dev, "-L", "2048b"]
    assert commands.build_volume_resize_args(vol, True) == [dev, "-L", "2048b", "-r"]


def test_lvm_snap_name():
    assert commands.lvm_snap_name("snapshot-abc") == "abc"
    assert commands.lvm_snap_name("abc") == "abc"


def test_snapshot_args():
    snap = LVMSnapshot(
        name="snapshot-s1", vol_group="lvmvg", labels={LVM_VOL_KEY: "pvc-1"}
    )
    base = ["--snapshot", "--name", "s1", "--permission", "r", c.DEV_PATH + "lvmvg/pvc-1"]
    assert commands.build_lvm_snap_create_args(snap) == base
    snap.snap_size = "4096"
    assert commands.build_lvm_snap_create_args(snap) == base + ["--size", "4096b"]
    assert commands.build_lvm_snap_destroy_args(snap) == ["-y", c.DEV_PATH + "lvmvg/s1"]


def test_volume_exists_false_for_missing_device():
    assert commands.volume_exists(LVMVolume(name=MISSING_NAME, vol_group="vg")) is False


def test_create_volume_runs_lvcreate(runner):
    vol = LVMVolume(name=MISSING_NAME, vol_group="vg", capacity="1024")
    commands.create_volume(vol)
    assert runner.calls == [[c.LV_CREATE, *commands.build_lvm_create_args(vol)]]


def test_create_volume_failure_raises(runner):
    runner.responses[c.LV_CREATE] = (5, b"insufficient free space")
    vol = LVMVolume(name=MISSING_NAME, vol_group="vg", capacity="1024")
    with pytest.raises(ExecError) as info:
        commands.create_volume(vol)
    assert info.value.output == b"insufficient free space"
    assert "insufficient free space" in str(info.value)


def test_create_volume_skips_existing(runner, existing_mapper):
    vol = LVMVolume(name="pvc-1", vol_group="vg", capacity="1024")
    assert commands.volume_exists(vol) is True
    result = commands.create_volume(vol)
    assert result is None
    assert runner.calls == []


def test_destroy_volume_without_group_does_nothing(runner):
    result = commands.destroy_volume(LVMVolume(name="pvc-1"))
    assert result is None
    assert runner.calls == []


def test_destroy_volume_skips_missing(runner):
    vol = LVMVolume(name=MISSING_NAME, vol_group="vg")
    assert commands.volume_exists(vol) is False
    result = commands.destroy_volume(vol)
    assert result is None
    assert runner.calls == []


def test_destroy_volume_wipes_then_removes(runner, existing_mapper):
    vol = LVMVolume(name="pvc-1", vol_group="vg")
    result = commands.destroy_volume(vol)
    assert result is None
    assert runner.calls == [
        [c.BLOCK_CLEANER_COMMAND, "-af", "/dev/vg/pvc-1"],
        [c.LV_REMOVE, *commands.build_lvm_destroy_args(vol)],
    ]
    assert runner.calls[1] == [c.LV_REMOVE, "-y", "/dev/vg/pvc-1"]


def test_destroy_volume_wipe_failure_stops(runner, existing_mapper):
    runner.responses[c.BLOCK_CLEANER_COMMAND] = (1, b"busy")
    with pytest.raises(ExecError) as info:
        commands.destroy_volume(LVMVolume(name="pvc-1", vol_group="vg"))
    assert "failed to wipe filesystem" in str(info.value)
    assert c.LV_REMOVE not in runner.commands()


def test_lv_size_parses_output(runner):
    runner.responses[c.LV_LIST] = (0, b"  4294967296\n")
    assert commands.lv_size(LVMVolume(name="pvc-1", vol_group="vg")) == 4294967296


def test_lv_size_failure(runner):
    runner.responses[c.LV_LIST] = (5, b"no such volume")
    with pytest.raises(ExecError) as info:
        commands.lv_size(LVMVolume(name="pvc-1", vol_group="vg"))
    assert "could not get size of volume vg/pvc-1" in str(info.value)


def test_resize_skips_when_already_large(runner):
    runner.responses[c.LV_LIST] = (0, b"2048")
    vol = LVMVolume(name="pvc-1", vol_group="vg", capacity="2048")
    assert commands.lv_size(vol) == 2048
    result = commands.resize_volume(vol, False)
    assert result is None
    assert c.LV_EXTEND not in runner.commands()


def test_resize_extends_when_smaller(runner):
    runner.responses[c.LV_LIST] = (0, b"1024")
    vol = LVMVolume(name="pvc-1", vol_group="vg", capacity="2048")
    commands.resize_volume(vol, False)
    assert runner.calls[-1] == [c.LV_EXTEND, *commands.build_volume_resize_args(vol, False)]


def test_resize_with_fs_skips_size_check(runner):
    vol = LVMVolume(name="pvc-1", vol_group="vg", capacity="2048")
    result = commands.resize_volume(vol, True)
    assert result is None
    assert runner.calls == [[c.LV_EXTEND, *commands.build_volume_resize_args(vol, True)]]
    assert runner.calls[0][-1] == "-r"


def test_resize_invalid_capacity(runner):
    with pytest.raises(ValueError):
        commands.resize_volume(LVMVolume(name="p", vol_group="vg", capacity="1Gi"), False)


def test_snapshot_exists_and_thin_lv_exists(runner):
    runner.responses[c.LV_LIST] = (0, b"  s1\n")
    assert commands.snapshot_exists("vg", "s1") is True
    assert commands.thin_lv_exists("vg", "other") is False
    runner.responses[c.LV_LIST] = (5, b"failed")
    assert commands.thin_lv_exists("vg", "s1") is False
    with pytest.raises(ExecError):
        commands.snapshot_exists("vg", "s1")


def test_destroy_snapshot_skips_when_lookup_fails(runner):
    runner.responses[c.LV_LIST] = (5, b"failed")
    snap = LVMSnapshot(name="snapshot-s1", vol_group="vg")
    result = commands.destroy_snapshot(snap)
    assert result is None
    assert runner.calls == [runner.calls[0]]
    assert runner.calls[0][0] == c.LV_LIST
    assert c.LV_REMOVE not in runner.commands()
    with pytest.raises(ExecError):
        commands.snapshot_exists("vg", commands.lvm_snap_name(snap.name))


def test_destroy_snapshot_removes_existing(runner):
    runner.responses[c.LV_LIST] = (0, b"s1\n")
    snap = LVMSnapshot(name="snapshot-s1", vol_group="vg")
    commands.destroy_snapshot(snap)
    assert runner.calls[-1] == [c.LV_REMOVE, *commands.build_lvm_snap_destroy_args(snap)]


def test_create_snapshot_failure(runner):
    runner.responses[c.LV_CREATE] = (5, b"origin missing")
    snap = LVMSnapshot(name="snapshot-s1", vol_group="vg", labels={LVM_VOL_KEY: "pvc-1"})
    with pytest.raises(ExecError):
        commands.create_snapshot(snap)
    assert runner.calls[0][0] == c.LV_CREATE


def test_list_volume_groups_reloads_cache(runner):
    report = {"report": [{"vg": [{
        "vg_name": "lvmvg", "vg_uuid": "uuid-1", "pv_count": "1", "lv_count": "2",
        "max_lv": "0", "max_pv": "0", "snap_count": "0", "vg_missing_pv_count": "0",
        "vg_mda_count": "1", "vg_mda_used_count": "1", "vg_size": "1024B",
        "vg_free": "512B", "vg_mda_size": "0B", "vg_mda_free": "0B",
        "vg_permissions": "writeable", "vg_allocation_policy": "normal",
    }]}]}
    runner.responses[c.VG_LIST] = (0, json.dumps(report).encode())
    groups = commands.list_volume_groups(True)
    assert runner.commands() == [c.PV_SCAN, c.VG_LIST]
    assert [(g.name, g.lv_count, g.free) for g in groups] == [("lvmvg", 2, 512)]


def test_list_volume_groups_without_reload(runner):
    runner.responses[c.VG_LIST] = (0, b'{"report": [{"vg": []}]}')
    assert commands.list_volume_groups(False) == []
    assert runner.commands() == [c.VG_LIST]


def test_list_volume_groups_reload_failure(runner):
    runner.responses[c.PV_SCAN] = (5, b"lvmetad down")
    with pytest.raises(ExecError):
        commands.list_volume_groups(True)
    assert c.VG_LIST not in runner.commands()


def test_list_physical_volumes(runner):
    report = {"report": [{"pv": [{
        "pv_name": "/dev/sdc", "pv_uuid": "uuid-2", "pv_size": "2048B",
        "pv_free": "1024B", "pv_used": "1024B", "pv_mda_size": "0B",
        "pv_mda_free": "0B", "dev_size": "4096B", "vg_name": "lvmvg",
    }]}]}
    runner.responses[c.PV_LIST] = (0, json.dumps(report).encode())
    pvs = commands.list_physical_volumes()
    assert runner.commands() == [c.PV_SCAN, c.PV_LIST]
    assert [(p.name, p.size, p.vg_name) for p in pvs] == [("/dev/sdc", 2048, "lvmvg")]


def test_list_logical_volumes_resolves_device(runner, tmp_path):
    target = tmp_path / "dm-7"
    target.write_bytes(b"")
    link = tmp_path / "pvc-1"
    link.symlink_to(target)
    report = {"report": [{"lv": [{
        "lv_name": "pvc-1", "lv_path": str(link), "lv_size": "1024B",
        "segtype": "linear", "vg_name": "lvmvg",
    }]}]}
    runner.responses[c.LV_LIST] = (0, json.dumps(report).encode())
    lvs = commands.list_logical_volumes()
    assert [(lv.name, lv.device, lv.size) for lv in lvs] == [("pvc-1", "dm-7", 1024)]


def test_missing_tool_raises_exec_error(runner):
    runner.responses[c.PV_SCAN] = FileNotFoundError("pvscan")
    with pytest.raises(ExecError) as info:
        commands.reload_metadata_cache()
    assert isinstance(info.value.cause, FileNotFoundError)


def test_exec_error_message():
    err = ExecError(b"output text", "exit status 5")
    assert str(err) == "output text - exit status 5"
    assert str(ExecError(b"out", "boom", context="ctx")) == "ctx: out - boom"