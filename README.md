# lvmlocal

`lvmlocal` manages LVM logical volumes on the local node. It builds and runs
the `lvcreate`, `lvremove`, `lvextend`, `lvs`, `vgs`, `pvs`, `pvscan` and
`wipefs` commands, and parses the JSON reports of `vgs`, `lvs` and `pvs` into
dataclasses. It also holds per-volume-group IO rate limits.

Running the commands needs the LVM2 tools and usually root privileges. The
report parsers and the argument builders work anywhere.

## Installation

```
pip install lvmlocal
```

## Modules

- `lvmlocal.constants`: report field names, command names, device paths, the
  `ENUMS` table and `field_enum_index`.
- `lvmlocal.report`: `VolumeGroup`, `LogicalVolume`, `PhysicalVolume`, the
  `parse_*` and `decode_*_json` functions, `lv_device_name` and `ReportError`.
- `lvmlocal.commands`: `LVMVolume`, `LVMSnapshot`, `ExecError`, the argument
  builders and the functions that run the LVM tools.
- `lvmlocal.iolimiter`: `IOLimitConfig`, `IOLimiter` and `parse_rate_values`.

## Volumes

```python
from lvmlocal.commands import LVMVolume, create_volume, resize_volume, destroy_volume

vol = LVMVolume(name="pvc-1234", vol_group="lvmvg", capacity="4294967296")
create_volume(vol)                 # lvcreate -L 4294967296b -n pvc-1234 lvmvg -y
resize_volume(vol, resizefs=True)  # lvextend /dev/lvmvg/pvc-1234 -L 4294967296b -r
destroy_volume(vol)                # wipefs -af /dev/lvmvg/pvc-1234, then lvremove -y
```

`create_volume` does nothing when the device `/dev/mapper/<vg>-<lv>` already
exists (hyphens in names are doubled, see `volume_dev_path`). `destroy_volume`
does nothing when the volume group is empty or the device is missing.

Without `resizefs`, `resize_volume` first reads the current size with
`lv_size` and only extends the volume when the requested capacity is larger.

Thin provisioning is asked for with `thin_provision="yes"`. The thin pool
`<vg>_thinpool` is created on first use; `thin_pool_size` sizes it to the
requested capacity, or to the group's free space less 256 MiB when the
request does not fit.

The argument builders (`build_lvm_create_args`, `build_lvm_destroy_args`,
`build_volume_resize_args`, `build_lvm_snap_create_args`,
`build_lvm_snap_destroy_args`) return the argument lists without running
anything, except that `build_lvm_create_args` queries `lvs`/`vgs` for thin
volumes to decide whether the pool must be created.

A failing command raises `lvmlocal.commands.ExecError`, which carries the
command's combined output (`output`) and the cause (`cause`). A capacity or a
size reported by `lvs` that is not a whole number raises `ValueError`.

## Snapshots

```python
from lvmlocal.commands import LVMSnapshot, create_snapshot, destroy_snapshot

snap = LVMSnapshot(
    name="snapshot-abcd",
    vol_group="lvmvg",
    labels={"openebs.io/persistent-volume": "pvc-1234"},
)
create_snapshot(snap)   # read-only snapshot /dev/lvmvg/abcd of /dev/lvmvg/pvc-1234
destroy_snapshot(snap)
```

`lvm_snap_name` removes the `snapshot-` prefix, since LVM reserves names
starting with "snapshot". When `snap_size` is empty no `--size` is passed, so
a snapshot of a thin volume stays thin. `destroy_snapshot` skips a snapshot
that `lvs` cannot find.

## Reports

```python
from lvmlocal.commands import list_volume_groups, list_logical_volumes, list_physical_volumes

for vg in list_volume_groups(reload_cache=True):
    print(vg.name, vg.size, vg.free)
```

`list_physical_volumes` always refreshes the metadata cache with
`pvscan --cache` first; `list_volume_groups` does so when `reload_cache` is
true. `list_logical_volumes` resolves each volume's path to its
device-mapper node (such as `dm-5`) and stores it in `device`.

The parsers also work on saved output:

```python
from lvmlocal.report import decode_vgs_json, decode_lvs_json

with open("vgs.json", "rb") as fh:
    groups = decode_vgs_json(fh.read())

with open("lvs.json", "rb") as fh:
    volumes = decode_lvs_json(fh.read(), resolve_device=lambda path: "")
```

Sizes are in bytes. Malformed reports, a report list that does not hold
exactly one report, and invalid numeric fields raise
`lvmlocal.report.ReportError`. Enumerated fields such as `lv_permissions` are
stored as their index in `lvmlocal.constants.ENUMS`, or -1 when the value is
not known (see `field_enum_index`).

## IO limits

```python
from lvmlocal.iolimiter import IOLimiter, IOLimitConfig

limiter = IOLimiter()
limiter.configure(IOLimitConfig(
    container_runtime="containerd",
    riops_limit_per_gb=["lvmvg1:50", "lvmvg2:100"],
    wiops_limit_per_gb=["lvmvg1:70", "lvmvg2:120"],
))
limiter.riops_per_gb("lvmvg1-id1")   # 50, matched by prefix
limiter.riops_per_gb("lvmvg3")       # 0
limiter.enabled                      # True
```

A limiter is configured once; later calls to `configure` are ignored. A list
of rates that cannot be parsed is logged and treated as empty.

## What this package does not do

It does not format, mount or unmount volumes, does not apply IO limits to
devices or cgroups (it only keeps the per-gigabyte rates), and has no
command-line tool, server or cluster integration.

## Running the tests

```
pip install -e ".[test]"
pytest
```