"""Resource type resolution and shared listing."""

from reaper.discovery.gvr import GroupVersionResource, GVRResolver, parse_group_version, pluralize_kind
from reaper.discovery.listers import ListerRegistry, SharedLister

__all__ = [
    "GroupVersionResource",
    "GVRResolver",
    "parse_group_version",
    "pluralize_kind",
    "ListerRegistry",
    "SharedLister",
]
