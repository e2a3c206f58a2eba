"""Creation, removal, resizing and listing of LVM volumes through the LVM tools."""

from __future__ import annotations

import logging
import os
import re
import subprocess
from collections.abc import Sequence
from dataclasses import dataclass, field

from lvmlocal import constants as c
from lvmlocal.report import (
    LogicalVolume,
    PhysicalVolume,
    VolumeGroup,
    decode_lvs_json,
    decode_pvs_json,
    decode_vgs_json,
)

log = logging.getLogger(__name__)

# Label on a snapshot that names the volume it was taken from.
LVM_VOL_KEY = "openebs.io/persistent-volume"

_UINT = re.compile(r"[0-9]+")
_INT = re.compile(r"[+-]?[0-9]+")
_UINT64_MAX = 2**64 - 1
_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1


class ExecError(Exception):
    """An LVM tool failed; carries its combined output and the cause."""

    def __init__(self, output: bytes, cause: object, context: str = "") -> None:
        super().__init__(output, cause)
        self.output = output
        self.cause = cause
        self.context = context

    def __str__(self) -> str:
        text = f"{self.output.decode(errors='replace')} - {self.cause}"
        return f"{self.context}: {text}" if self.context else text


@dataclass
class LVMVolume:
    """A logical volume requested on a node; capacity is in bytes, as text."""

    name: str
    vol_group: str = ""
    capacity: str = ""
    thin_provision: str = ""


@dataclass
class LVMSnapshot:
    """A snapshot of a logical volume; snap_size is in bytes, as text."""

    name: str
    vol_group: str = ""
    snap_size: str = ""
    labels: dict[str, str] = field(default_factory=dict)


def _parse_uint(text: str) -> int:
    if not _UINT.fullmatch(text):
        raise ValueError(f"invalid unsigned integer: {text!r}")
    value = int(text)
    if value > _UINT64_MAX:
        raise ValueError(f"value out of range: {text!r}")
    return value


def _parse_int(text: str) -> int:
    if not _INT.fullmatch(text):
        raise ValueError(f"invalid integer: {text!r}")
    value = int(text)
    if not _INT64_MIN <= value <= _INT64_MAX:
        raise ValueError(f"value out of range: {text!r}")
    return value


def _run(command: str, args: Sequence[str]) -> bytes:
    """Run a command and return its combined output, raising ExecError on failure."""
    argv = [command, *args]
    try:
        completed = subprocess.run(
            argv, stdout=subprocess.PIPE, stderr=subprocess.STDOUT, check=False
        )
    except OSError as exc:
        raise ExecError(b"", exc) from exc
    output = completed.stdout or b""
    if completed.returncode != 0:
        raise ExecError(
            output, subprocess.CalledProcessError(completed.returncode, argv, output)
        )
    return output


def _is_yes(value: str) -> bool:
    return value.strip() == c.YES


def build_lvm_create_args(vol: LVMVolume) -> list[str]:
    """Return the ``lvcreate`` arguments for a volume."""
    size = vol.capacity + "b"
    pool = vol.vol_group + "_thinpool"
    thin = _is_yes(vol.thin_provision)
    args: list[str] = []

    if vol.capacity:
        if not thin:
            args += ["-L", size]
        elif not thin_lv_exists(vol.vol_group, pool):
            # A thin pool cannot be as large as the volume group itself.
            args += ["-L", thin_pool_size(vol.vol_group, vol.capacity)]

    if thin:
        args += ["-T", f"{vol.vol_group}/{pool}", "-V", size]
    if vol.vol_group:
        args += ["-n", vol.name]
    if not thin:
        args.append(vol.vol_group)

    # Wipe existing signatures before creating the volume.
    args.append("-y")
    return args


def build_lvm_destroy_args(vol: LVMVolume) -> list[str]:
    """Return the ``lvremove`` arguments for a volume."""
    return ["-y", f"{c.DEV_PATH}{vol.vol_group}/{vol.name}"]


def build_volume_resize_args(vol: LVMVolume, resizefs: bool) -> list[str]:
    """Return the ``lvextend`` arguments for a volume."""
    args = [f"{c.DEV_PATH}{vol.vol_group}/{vol.name}", "-L", vol.capacity + "b"]
    if resizefs:
        args.append("-r")
    return args


def lvm_snap_name(snap_name: str) -> str:
    """Strip the ``snapshot-`` prefix, since LVM reserves names starting with it."""
    return snap_name.removeprefix("snapshot-")


def build_lvm_snap_create_args(snap: LVMSnapshot) -> list[str]:
    """Return the ``lvcreate`` arguments for a read-only snapshot."""
    vol_name = snap.labels.get(LVM_VOL_KEY, "")
    args = [
        "--snapshot",
        "--name",
        lvm_snap_name(snap.name),
        "--permission",
        "r",
        f"{c.DEV_PATH}{snap.vol_group}/{vol_name}",
    ]
    # Without a size the snapshot of a thin volume stays thin.
    if snap.snap_size:
        args += ["--size", snap.snap_size + "b"]
    return args


def build_lvm_snap_destroy_args(snap: LVMSnapshot) -> list[str]:
    """Return the ``lvremove`` arguments for a snapshot."""
    return ["-y", f"{c.DEV_PATH}{snap.vol_group}/{lvm_snap_name(snap.name)}"]


def volume_dev_path(vol: LVMVolume) -> str:
    """Return the device-mapper path of a volume.

    Hyphens inside names are doubled; a single hyphen separates group and volume.
    """
    vg = vol.vol_group.replace("-", "--")
    lv = vol.name.replace("-", "--")
    return f"{c.DEV_MAPPER_PATH}{vg}-{lv}"


def volume_exists(vol: LVMVolume) -> bool:
    """Tell whether the volume's device node exists."""
    try:
        os.stat(volume_dev_path(vol))
    except FileNotFoundError:
        return False
    return True


def create_volume(vol: LVMVolume) -> None:
    """Create the logical volume unless it already exists."""
    volume = f"{vol.vol_group}/{vol.name}"
    if volume_exists(vol):
        log.info("lvm: volume (%s) already exists, skipping its creation", volume)
        return
    args = build_lvm_create_args(vol)
    try:
        _run(c.LV_CREATE, args)
    except ExecError as exc:
        log.error("lvm: could not create volume %s cmd %s error: %s", volume, args, exc)
        raise
    log.info("lvm: created volume %s", volume)


def destroy_volume(vol: LVMVolume) -> None:
    """Wipe and remove the logical volume if it exists."""
    if not vol.vol_group:
        log.info("volGroup not set for lvm volume %s, skipping its deletion", vol.name)
        return
    volume = f"{vol.vol_group}/{vol.name}"
    if not volume_exists(vol):
        log.info("lvm: volume (%s) doesn't exists, skipping its deletion", volume)
        return
    remove_volume_filesystem(vol)
    args = build_lvm_destroy_args(vol)
    try:
        _run(c.LV_REMOVE, args)
    except ExecError as exc:
        log.error("lvm: could not destroy volume %s cmd %s error: %s", volume, args, exc)
        raise
    log.info("lvm: destroyed volume %s", volume)


def resize_volume(vol: LVMVolume, resizefs: bool) -> None:
    """Extend the volume, and its filesystem when ``resizefs`` is set.

    Without ``resizefs`` the volume is only extended when it is smaller than
    the requested capacity, since repeating a bare extend fails.
    """
    if not resizefs:
        desired = _parse_uint(vol.capacity)
        if desired <= lv_size(vol):
            return
    volume = f"{vol.vol_group}/{vol.name}"
    args = build_volume_resize_args(vol, resizefs)
    try:
        _run(c.LV_EXTEND, args)
    except ExecError as exc:
        log.error("lvm: could not resize the volume %s cmd %s error: %s", volume, args, exc)
        raise


def lv_size(vol: LVMVolume) -> int:
    """Return the current size of the volume in bytes."""
    name = f"{vol.vol_group}/{vol.name}"
    args = [name, "--noheadings", "-o", "lv_size", "--units", "b", "--nosuffix"]
    try:
        raw = _run(c.LV_LIST, args)
    except ExecError as exc:
        raise ExecError(
            exc.output, exc.cause, context=f"could not get size of volume {name}"
        ) from exc
    return _parse_uint(raw.decode(errors="replace").strip())


def create_snapshot(snap: LVMSnapshot) -> None:
    """Create a read-only snapshot of the labelled volume."""
    volume = snap.labels.get(LVM_VOL_KEY, "")
    snap_volume = f"{snap.vol_group}/{lvm_snap_name(snap.name)}"
    args = build_lvm_snap_create_args(snap)
    try:
        _run(c.LV_CREATE, args)
    except ExecError as exc:
        log.error("lvm: could not create snapshot %s cmd %s error: %s", snap_volume, args, exc)
        raise
    log.info("created snapshot %s from %s", snap_volume, volume)


def destroy_snapshot(snap: LVMSnapshot) -> None:
    """Remove the snapshot; a snapshot that cannot be found is skipped."""
    name = lvm_snap_name(snap.name)
    snap_volume = f"{snap.vol_group}/{name}"
    try:
        exists = snapshot_exists(snap.vol_group, name)
    except ExecError as exc:
        log.info("lvm: snapshot %s could not be looked up: %s", snap_volume, exc)
        exists = False
    if not exists:
        log.info("lvm: snapshot %s does not exist, skipping deletion", snap_volume)
        return
    args = build_lvm_snap_destroy_args(snap)
    try:
        _run(c.LV_REMOVE, args)
    except ExecError as exc:
        log.error("lvm: could not remove snapshot %s cmd %s error: %s", snap_volume, args, exc)
        raise
    log.info("removed snapshot %s", snap_volume)


def reload_metadata_cache() -> None:
    """Refresh the lvmetad cache that serves ``vgs`` and the other tools."""
    try:
        _run(c.PV_SCAN, ["--cache"])
    except ExecError as exc:
        log.error("lvm: reload lvm metadata cache: %s", exc)
        raise


def list_volume_groups(reload_cache: bool) -> list[VolumeGroup]:
    """List the volume groups on this node, refreshing the cache first if asked."""
    if reload_cache:
        reload_metadata_cache()
    args = ["--options", "vg_all", "--reportformat", "json", "--units", "b"]
    try:
        output = _run(c.VG_LIST, args)
    except ExecError as exc:
        log.error("lvm: list volume group cmd %s: %s", args, exc)
        raise
    return decode_vgs_json(output)


def list_logical_volumes() -> list[LogicalVolume]:
    """List the logical volumes on this node."""
    args = ["--options", "lv_all,vg_name,segtype", "--reportformat", "json", "--units", "b"]
    try:
        output = _run(c.LV_LIST, args)
    except ExecError as exc:
        log.error("lvm: error while running command %s %s: %s", c.LV_LIST, args, exc)
        raise
    return decode_lvs_json(output)


def list_physical_volumes() -> list[PhysicalVolume]:
    """List the physical volumes on this node after refreshing the cache."""
    reload_metadata_cache()
    args = ["--options", "pv_all,vg_name", "--reportformat", "json", "--units", "b"]
    try:
        output = _run(c.PV_LIST, args)
    except ExecError as exc:
        log.error("lvm: error while running command %s %s: %s", c.PV_LIST, args, exc)
        raise
    return decode_pvs_json(output)


def _lv_name_matches(vg: str, name: str) -> bool:
    out = _run(c.LV_LIST, [f"{vg}/{name}", "--noheadings", "-o", "lv_name"])
    return name == out.decode(errors="replace").strip()


def thin_lv_exists(vg: str, name: str) -> bool:
    """Tell whether a thin pool or volume exists; lookup failures count as absent."""
    try:
        return _lv_name_matches(vg, name)
    except ExecError as exc:
        log.error("failed to list existing volumes: %s", exc)
        return False


def snapshot_exists(vg: str, snap_volume_name: str) -> bool:
    """Tell whether a snapshot volume exists; lookup failures raise ExecError."""
    return _lv_name_matches(vg, snap_volume_name)


def vg_free_size(vg_name: str) -> str:
    """Return the free space of a volume group in bytes, as text, or "" on failure."""
    args = [vg_name, "--noheadings", "-o", "vg_free", "--units", "b", "--nosuffix"]
    try:
        out = _run(c.VG_LIST, args)
    except ExecError as exc:
        log.error("failed to list existing volumegroup: %s, %s", vg_name, exc)
        return ""
    return out.decode(errors="replace").strip()


def thin_pool_size(vg_name: str, vol_size: str) -> str:
    """Return the thin pool size: the volume size, or the group's free space
    less one rounding extent when the volume would not fit. "" on failure."""
    free_text = vg_free_size(vg_name)
    try:
        free = _parse_int(free_text.strip())
    except ValueError as exc:
        log.error("failed to convert vg_size to int, got size: %s, %s", free_text, exc)
        return ""
    try:
        size = _parse_int(vol_size.strip())
    except ValueError as exc:
        log.error("failed to convert volsize to int, got size: %s, %s", vol_size, exc)
        return ""
    if free < size:
        return f"{free - c.MIN_EXTENT_ROUND_OFF_SIZE}b"
    return vol_size + "b"


def remove_volume_filesystem(vol: LVMVolume) -> None:
    """Erase all filesystem signatures from the volume's device."""
    device_path = os.path.join(c.DEV_PATH, vol.vol_group, vol.name)
    try:
        _run(c.BLOCK_CLEANER_COMMAND, ["-af", device_path])
    except ExecError as exc:
        raise ExecError(
            exc.output,
            exc.cause,
            context=f"failed to wipe filesystem on device path: {device_path}",
        ) from exc
    log.debug("Successfully wiped filesystem on device path: %s", device_path)