"""Core constants: default plan table and shared literal values.

The plan table is the fallback when PLAN_LIMITS is not configured.
Sizes are binary multiples (MiB/GiB/TiB).
"""

from cloudvault.domain.enums import Plan

MIB = 1024 * 1024
GIB = 1024 * MIB
TIB = 1024 * GIB

DEFAULT_PLAN_LIMITS: dict[str, dict[str, int]] = {
    Plan.FREE.value: {
        "total_storage_bytes": 500 * MIB,
        "max_upload_bytes": 100 * MIB,
    },
    Plan.PRO.value: {
        "total_storage_bytes": 100 * GIB,
        "max_upload_bytes": 1 * GIB,
    },
    Plan.BUSINESS.value: {
        "total_storage_bytes": 1 * TIB,
        "max_upload_bytes": 5 * GIB,
    },
}

# Object key layout
USER_KEY_PREFIX = "users"
KEY_SEP = "/"

# Local backend sidecar and temp-file markers (excluded from list())
LOCAL_META_SUFFIX = ".meta.json"
LOCAL_TMP_PREFIX = ".tmp_"
