"""
Generic view over cluster resources.

Resources are semi-structured documents with kind-specific nesting. Rather
than typed accessors per kind, every read goes through one dotted-path walker
that reports a tagged outcome: found, not found, or a type mismatch.
"""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any

# fromisoformat before 3.11 accepts only 3 or 6 fractional digits
_FRACTION = re.compile(r"(?<=:\d\d)\.(\d+)")


class LookupStatus(str, Enum):
    """Outcome of walking a field path."""

    FOUND = "found"
    NOT_FOUND = "not_found"
    TYPE_MISMATCH = "type_mismatch"


@dataclass(frozen=True)
class FieldLookup:
    """Tagged result of a field path lookup."""

    status: LookupStatus
    value: Any = None

    @property
    def found(self) -> bool:
        return self.status == LookupStatus.FOUND

    @classmethod
    def hit(cls, value: Any) -> FieldLookup:
        return cls(LookupStatus.FOUND, value)

    @classmethod
    def miss(cls) -> FieldLookup:
        return cls(LookupStatus.NOT_FOUND)

    @classmethod
    def mismatch(cls, value: Any = None) -> FieldLookup:
        return cls(LookupStatus.TYPE_MISMATCH, value)


def parse_field_path(path: str | Sequence[str]) -> list[str]:
    """Split a dotted path ("status.phase") into its segments."""
    if isinstance(path, str):
        return path.split(".") if path else []
    return list(path)


def lookup_path(obj: Mapping[str, Any], path: str | Sequence[str]) -> FieldLookup:
    """
    Walk a dotted path through nested mappings.

    Every intermediate node must be a mapping. Reaching a scalar or list
    before the last segment is a type mismatch; a missing key is not found.
    """
    segments = parse_field_path(path)
    if not segments:
        return FieldLookup.miss()

    current: Any = obj
    for segment in segments:
        if not isinstance(current, Mapping):
            return FieldLookup.mismatch(current)
        if segment not in current:
            return FieldLookup.miss()
        current = current[segment]

    if current is None:
        return FieldLookup.miss()
    return FieldLookup.hit(current)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: Any) -> datetime | None:
    """
    Parse an RFC 3339 timestamp into an aware UTC datetime.

    Returns None when the value is not a valid timestamp.
    """
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if not isinstance(value, str) or not value:
        return None
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    text = _FRACTION.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), text)
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def format_timestamp(value: datetime) -> str:
    """Format a datetime as RFC 3339 with second precision."""
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


class Resource:
    """
    Read-only accessor set over a resource document.

    The engine never owns resources; it observes them and, conditionally,
    asks a deleter to remove them.
    """

    __slots__ = ("_obj",)

    def __init__(self, obj: Mapping[str, Any]) -> None:
        self._obj = obj

    @property
    def object(self) -> Mapping[str, Any]:
        """The underlying document."""
        return self._obj

    @property
    def metadata(self) -> Mapping[str, Any]:
        meta = self._obj.get("metadata")
        return meta if isinstance(meta, Mapping) else {}

    @property
    def api_version(self) -> str:
        return str(self._obj.get("apiVersion", ""))

    @property
    def kind(self) -> str:
        return str(self._obj.get("kind", ""))

    @property
    def name(self) -> str:
        return str(self.metadata.get("name", ""))

    @property
    def namespace(self) -> str:
        return str(self.metadata.get("namespace", "") or "")

    @property
    def uid(self) -> str:
        return str(self.metadata.get("uid", "") or "")

    @property
    def key(self) -> str:
        """Stable identifier: the UID, or namespace/name when no UID is set."""
        return self.uid or self.ref

    @property
    def ref(self) -> str:
        """Human-readable reference ("namespace/name" or "name")."""
        return f"{self.namespace}/{self.name}" if self.namespace else self.name

    def labels(self) -> dict[str, str]:
        labels = self.metadata.get("labels")
        return dict(labels) if isinstance(labels, Mapping) else {}

    def annotations(self) -> dict[str, str]:
        annotations = self.metadata.get("annotations")
        return dict(annotations) if isinstance(annotations, Mapping) else {}

    def creation_time(self) -> datetime | None:
        return parse_timestamp(self.metadata.get("creationTimestamp"))

    def lookup(self, path: str | Sequence[str]) -> FieldLookup:
        return lookup_path(self._obj, path)

    def nested_string(self, path: str | Sequence[str]) -> FieldLookup:
        """Look up a field that must hold a string."""
        result = self.lookup(path)
        if result.found and not isinstance(result.value, str):
            return FieldLookup.mismatch(result.value)
        return result

    def nested_int(self, path: str | Sequence[str]) -> FieldLookup:
        """Look up a field that must hold an integer (integral floats accepted)."""
        result = self.lookup(path)
        if not result.found:
            return result
        value = result.value
        if isinstance(value, bool):
            return FieldLookup.mismatch(value)
        if isinstance(value, int):
            return result
        if isinstance(value, float) and value.is_integer():
            return FieldLookup.hit(int(value))
        return FieldLookup.mismatch(value)

    def __repr__(self) -> str:
        return f"Resource({self.api_version}/{self.kind} {self.ref})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Resource):
            return NotImplemented
        return self._obj == other._obj

    def __hash__(self) -> int:
        return hash((self.api_version, self.kind, self.key))
