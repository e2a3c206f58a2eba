"""Field names, command names and enumerations used when driving LVM tools."""

from __future__ import annotations

from collections.abc import Mapping
from types import MappingProxyType

# Volume group report fields.
VG_NAME = "vg_name"
VG_UUID = "vg_uuid"
VG_PV_COUNT = "pv_count"
VG_LV_COUNT = "lv_count"
VG_MAX_LV = "max_lv"
VG_MAX_PV = "max_pv"
VG_SNAP_COUNT = "snap_count"
VG_MISSING_PV_COUNT = "vg_missing_pv_count"
VG_METADATA_COUNT = "vg_mda_count"
VG_METADATA_USED_COUNT = "vg_mda_used_count"
VG_SIZE = "vg_size"
VG_FREE_SIZE = "vg_free"
VG_METADATA_SIZE = "vg_mda_size"
VG_METADATA_FREE_SIZE = "vg_mda_free"
VG_PERMISSIONS = "vg_permissions"
VG_ALLOCATION_POLICY = "vg_allocation_policy"

# Logical volume report fields.
LV_NAME = "lv_name"
LV_FULL_NAME = "lv_full_name"
LV_UUID = "lv_uuid"
LV_PATH = "lv_path"
LV_DM_PATH = "lv_dm_path"
LV_ACTIVE = "lv_active"
LV_SIZE = "lv_size"
LV_METADATA_SIZE = "lv_metadata_size"
LV_SEGTYPE = "segtype"
LV_HOST = "lv_host"
LV_POOL = "pool_lv"
LV_PERMISSIONS = "lv_permissions"
LV_WHEN_FULL = "lv_when_full"
LV_HEALTH_STATUS = "lv_health_status"
RAID_SYNC_ACTION = "raid_sync_action"
LV_DATA_PERCENT = "data_percent"
LV_METADATA_PERCENT = "metadata_percent"
LV_SNAP_PERCENT = "snap_percent"

# Physical volume report fields.
PV_NAME = "pv_name"
PV_UUID = "pv_uuid"
PV_IN_USE = "pv_in_use"
PV_ALLOCATABLE = "pv_allocatable"
PV_MISSING = "pv_missing"
PV_SIZE = "pv_size"
PV_FREE_SIZE = "pv_free"
PV_USED_SIZE = "pv_used"
PV_METADATA_SIZE = "pv_mda_size"
PV_METADATA_FREE_SIZE = "pv_mda_free"
PV_DEVICE_SIZE = "dev_size"

# Device paths.
DEV_PATH = "/dev/"
DEV_MAPPER_PATH = "/dev/mapper/"

# Minimum size (256Mi) used to round off the volume group size when a
# thin pool is provisioned.
MIN_EXTENT_ROUND_OFF_SIZE = 268435456

# Command used to wipe filesystem signatures from a device.
BLOCK_CLEANER_COMMAND = "wipefs"

# LVM commands.
VG_CREATE = "vgcreate"
VG_LIST = "vgs"
LV_CREATE = "lvcreate"
LV_REMOVE = "lvremove"
LV_EXTEND = "lvextend"
LV_LIST = "lvs"
PV_LIST = "pvs"
PV_SCAN = "pvscan"

YES = "yes"
LV_THIN_POOL = "thin-pool"

# Ordered string values of enumerated report fields; a value's position is
# its integer code.
ENUMS: Mapping[str, tuple[str, ...]] = MappingProxyType(
    {
        LV_PERMISSIONS: ("unknown", "writeable", "read-only", "read-only-override"),
        LV_WHEN_FULL: ("error", "queue"),
        RAID_SYNC_ACTION: ("idle", "frozen", "resync", "recover", "check", "repair"),
        LV_HEALTH_STATUS: ("", "partial", "refresh needed", "mismatches exist"),
        VG_ALLOCATION_POLICY: ("normal", "contiguous", "cling", "anywhere", "inherited"),
        VG_PERMISSIONS: ("writeable", "read-only"),
    }
)


def field_enum_index(field_name: str, field_value: str) -> int:
    """Return the integer code of an enumerated field value, or -1 if undefined."""
    try:
        return ENUMS.get(field_name, ()).index(field_value)
    except ValueError:
        return -1