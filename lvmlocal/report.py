"""Parsing of the JSON reports produced by ``vgs``, ``lvs`` and ``pvs``."""

from __future__ import annotations

import json
import os
import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass

from lvmlocal import constants as c

_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1
_INTEGER = re.compile(r"[+-]?[0-9]+")


class ReportError(ValueError):
    """An LVM report could not be decoded or holds an invalid value."""


@dataclass
class VolumeGroup:
    """Attributes of an LVM volume group; sizes are in bytes."""

    name: str = ""
    uuid: str = ""
    pv_count: int = 0
    lv_count: int = 0
    max_lv: int = 0
    max_pv: int = 0
    snap_count: int = 0
    missing_pv_count: int = 0
    metadata_count: int = 0
    metadata_used_count: int = 0
    size: int = 0
    free: int = 0
    metadata_size: int = 0
    metadata_free: int = 0
    permission: int = -1
    allocation_policy: int = -1


@dataclass
class LogicalVolume:
    """Attributes of an LVM logical volume; enumerated fields are integer codes."""

    name: str = ""
    full_name: str = ""
    uuid: str = ""
    size: int = 0
    path: str = ""
    dm_path: str = ""
    device: str = ""
    vg_name: str = ""
    seg_type: str = ""
    permission: int = -1
    behaviour_when_full: int = -1
    health_status: int = -1
    raid_sync_action: int = -1
    active_status: str = ""
    host: str = ""
    pool_name: str = ""
    used_size_percent: float = 0.0
    metadata_size: int = 0
    metadata_used_percent: float = 0.0
    snapshot_used_percent: float = 0.0


@dataclass
class PhysicalVolume:
    """Attributes of an LVM physical volume; sizes are in bytes."""

    name: str = ""
    uuid: str = ""
    size: int = 0
    device_size: int = 0
    metadata_size: int = 0
    metadata_free: int = 0
    free: int = 0
    used: int = 0
    allocatable: str = ""
    missing: str = ""
    in_use: str = ""
    vg_name: str = ""


def _parse_int(text: str) -> int:
    if not _INTEGER.fullmatch(text):
        raise ValueError(f"invalid syntax: {text!r}")
    value = int(text)
    if not _INT64_MIN <= value <= _INT64_MAX:
        raise ValueError(f"value out of range: {text!r}")
    return value


def _parse_float(text: str) -> float:
    if text != text.strip() or "_" in text:
        raise ValueError(f"invalid syntax: {text!r}")
    return float(text)


def _parse_bytes(text: str) -> int:
    lowered = text.lower()
    return _parse_int(lowered[:-1] if lowered.endswith("b") else lowered)


def _field(m: Mapping[str, str], key: str, kind: str, owner: str, parse: Callable):
    value = m.get(key, "")
    try:
        return parse(value)
    except ValueError as exc:
        raise ReportError(
            f"invalid format of {key}={value} for {kind} {owner}: {exc}"
        ) from exc


def parse_volume_group(m: Mapping[str, str]) -> VolumeGroup:
    """Build a VolumeGroup from one ``vgs`` report row."""
    name = m.get(c.VG_NAME, "")

    def count(key: str) -> int:
        return _field(m, key, "vg", name, _parse_int)

    def size(key: str) -> int:
        return _field(m, key, "vg", name, _parse_bytes)

    return VolumeGroup(
        name=name,
        uuid=m.get(c.VG_UUID, ""),
        pv_count=count(c.VG_PV_COUNT),
        lv_count=count(c.VG_LV_COUNT),
        max_lv=count(c.VG_MAX_LV),
        max_pv=count(c.VG_MAX_PV),
        snap_count=count(c.VG_SNAP_COUNT),
        missing_pv_count=count(c.VG_MISSING_PV_COUNT),
        metadata_count=count(c.VG_METADATA_COUNT),
        metadata_used_count=count(c.VG_METADATA_USED_COUNT),
        size=size(c.VG_SIZE),
        free=size(c.VG_FREE_SIZE),
        metadata_size=size(c.VG_METADATA_SIZE),
        metadata_free=size(c.VG_METADATA_FREE_SIZE),
        permission=c.field_enum_index(c.VG_PERMISSIONS, m.get(c.VG_PERMISSIONS, "")),
        allocation_policy=c.field_enum_index(
            c.VG_ALLOCATION_POLICY, m.get(c.VG_ALLOCATION_POLICY, "")
        ),
    )


def parse_logical_volume(m: Mapping[str, str]) -> LogicalVolume:
    """Build a LogicalVolume from one ``lvs`` report row; ``device`` is left empty."""
    name = m.get(c.LV_NAME, "")
    seg_type = m.get(c.LV_SEGTYPE, "")

    size = _field(m, c.LV_SIZE, "vg", name, _parse_bytes)
    # Only thin pools carry a metadata area.
    metadata_size = (
        _field(m, c.LV_METADATA_SIZE, "vg", name, _parse_bytes)
        if seg_type == c.LV_THIN_POOL
        else 0
    )

    def percent(key: str) -> float:
        if m.get(key, "") == "":
            return 0.0
        return _field(m, key, "lv", name, _parse_float)

    def enum(key: str) -> int:
        return c.field_enum_index(key, m.get(key, ""))

    return LogicalVolume(
        name=name,
        full_name=m.get(c.LV_FULL_NAME, ""),
        uuid=m.get(c.LV_UUID, ""),
        size=size,
        path=m.get(c.LV_PATH, ""),
        dm_path=m.get(c.LV_DM_PATH, ""),
        vg_name=m.get(c.VG_NAME, ""),
        seg_type=seg_type,
        permission=enum(c.LV_PERMISSIONS),
        behaviour_when_full=enum(c.LV_WHEN_FULL),
        health_status=enum(c.LV_HEALTH_STATUS),
        raid_sync_action=enum(c.RAID_SYNC_ACTION),
        active_status=m.get(c.LV_ACTIVE, ""),
        host=m.get(c.LV_HOST, ""),
        pool_name=m.get(c.LV_POOL, ""),
        used_size_percent=percent(c.LV_DATA_PERCENT),
        metadata_size=metadata_size,
        metadata_used_percent=percent(c.LV_METADATA_PERCENT),
        snapshot_used_percent=percent(c.LV_SNAP_PERCENT),
    )


def parse_physical_volume(m: Mapping[str, str]) -> PhysicalVolume:
    """Build a PhysicalVolume from one ``pvs`` report row."""
    name = m.get(c.PV_NAME, "")

    def size(key: str) -> int:
        return _field(m, key, "pv", name, _parse_bytes)

    return PhysicalVolume(
        name=name,
        uuid=m.get(c.PV_UUID, ""),
        size=size(c.PV_SIZE),
        device_size=size(c.PV_DEVICE_SIZE),
        metadata_size=size(c.PV_METADATA_SIZE),
        metadata_free=size(c.PV_METADATA_FREE_SIZE),
        free=size(c.PV_FREE_SIZE),
        used=size(c.PV_USED_SIZE),
        allocatable=m.get(c.PV_ALLOCATABLE, ""),
        missing=m.get(c.PV_MISSING, ""),
        in_use=m.get(c.PV_IN_USE, ""),
        vg_name=m.get(c.VG_NAME, ""),
    )


def _report_rows(raw: bytes | str, section: str) -> list[dict[str, str]]:
    try:
        document = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise ReportError(f"invalid lvm report: {exc}") from exc
    if not isinstance(document, dict):
        raise ReportError("invalid lvm report: top level is not an object")
    reports = document.get("report") or []
    if not isinstance(reports, list):
        raise ReportError("invalid lvm report: 'report' is not a list")
    if len(reports) != 1:
        raise ReportError("expected exactly one lvm report")
    report = reports[0]
    if not isinstance(report, dict):
        raise ReportError("invalid lvm report: report entry is not an object")
    rows = report.get(section) or []
    if not isinstance(rows, list) or not all(
        isinstance(row, dict) and all(isinstance(v, str) for v in row.values())
        for row in rows
    ):
        raise ReportError(f"invalid lvm report: malformed {section!r} rows")
    return rows


def decode_vgs_json(raw: bytes | str) -> list[VolumeGroup]:
    """Decode ``vgs --reportformat json`` output."""
    return [parse_volume_group(row) for row in _report_rows(raw, "vg")]


def lv_device_name(path: str) -> str:
    """Resolve an LV path to its device-mapper node name, such as ``dm-0``."""
    resolved = os.path.realpath(path, strict=True)
    return resolved.split("/")[-1]


def decode_lvs_json(
    raw: bytes | str, resolve_device: Callable[[str], str] = lv_device_name
) -> list[LogicalVolume]:
    """Decode ``lvs --reportformat json`` output, resolving each volume's device."""
    volumes = []
    for row in _report_rows(raw, "lv"):
        lv = parse_logical_volume(row)
        lv.device = resolve_device(lv.path)
        volumes.append(lv)
    return volumes


def decode_pvs_json(raw: bytes | str) -> list[PhysicalVolume]:
    """Decode ``pvs --reportformat json`` output."""
    return [parse_physical_volume(row) for row in _report_rows(raw, "pv")]