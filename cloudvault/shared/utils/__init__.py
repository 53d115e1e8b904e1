"""Shared utility helpers (datetime, ids, byte counters, retries, streams)."""

from cloudvault.shared.utils.bytes import bytes_from_wire, bytes_to_wire, format_bytes
from cloudvault.shared.utils.datetime import ensure_utc, utc_now
from cloudvault.shared.utils.generators import generate_cuid

__all__ = [
    "bytes_from_wire",
    "bytes_to_wire",
    "ensure_utc",
    "format_bytes",
    "generate_cuid",
    "utc_now",
]
