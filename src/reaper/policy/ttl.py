"""
TTL calculation.

Pure and deterministic for a given `now`. Modes are tried in precedence
order: relative, mapped, field-is-TTL, fixed. Policies should configure one
mode only; validate_policy() rejects multi-mode specs before they get here.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from reaper.core.errors import (
    FieldNotFoundError,
    InvalidTimestampError,
    InvalidTTLValueError,
    NoMatchingMappingError,
    NoTTLConfiguredError,
)
from reaper.core.resource import Resource, parse_timestamp
from reaper.policy.models import TTLSpec

CREATION_TIMESTAMP_PATH = "metadata.creationTimestamp"


@dataclass(frozen=True)
class TTLResult:
    """Outcome of evaluating a resource against a TTL spec."""

    expired: bool
    ttl_seconds: int
    expires_at: datetime
    mode: str


def _as_seconds(field_path: str, value: Any) -> int:
    if isinstance(value, bool):
        raise InvalidTTLValueError(field_path, value)
    if isinstance(value, int):
        seconds = value
    elif isinstance(value, float) and value.is_integer():
        seconds = int(value)
    elif isinstance(value, str):
        try:
            seconds = int(value.strip())
        except ValueError:
            raise InvalidTTLValueError(field_path, value) from None
    else:
        raise InvalidTTLValueError(field_path, value)
    if seconds < 0:
        raise InvalidTTLValueError(field_path, value)
    return seconds


def _as_mapping_key(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _created_at(resource: Resource) -> datetime:
    created = resource.creation_time()
    if created is None:
        raise FieldNotFoundError(CREATION_TIMESTAMP_PATH)
    return created


def calculate_expiration(resource: Resource, ttl: TTLSpec) -> tuple[datetime, int, str]:
    """
    Compute when a resource expires.

    Returns:
        (expires_at, effective TTL seconds, mode name)

    Raises:
        TTLConfigError: One of NoTTLConfigured, FieldNotFound,
            InvalidTimestamp, InvalidTTLValue, NoMatchingMapping
    """
    if ttl.relative_to:
        lookup = resource.lookup(ttl.relative_to)
        if not lookup.found:
            raise FieldNotFoundError(ttl.relative_to)
        anchor = parse_timestamp(lookup.value)
        if anchor is None:
            raise InvalidTimestampError(ttl.relative_to, lookup.value)
        seconds = ttl.seconds_after or 0
        return anchor + timedelta(seconds=seconds), seconds, "relative"

    if ttl.field_path and ttl.mappings is not None:
        lookup = resource.lookup(ttl.field_path)
        if not lookup.found:
            if ttl.default is None:
                raise FieldNotFoundError(ttl.field_path)
            seconds = ttl.default
        else:
            key = _as_mapping_key(lookup.value)
            if key in ttl.mappings:
                seconds = ttl.mappings[key]
            elif ttl.default is not None:
                seconds = ttl.default
            else:
                raise NoMatchingMappingError(ttl.field_path, lookup.value)
        return _created_at(resource) + timedelta(seconds=seconds), seconds, "mapped"

    if ttl.field_path:
        lookup = resource.lookup(ttl.field_path)
        if lookup.found:
            seconds = _as_seconds(ttl.field_path, lookup.value)
        elif ttl.default is not None:
            seconds = ttl.default
        else:
            raise FieldNotFoundError(ttl.field_path)
        return _created_at(resource) + timedelta(seconds=seconds), seconds, "field"

    if ttl.seconds_after_creation is not None:
        seconds = ttl.seconds_after_creation
        return _created_at(resource) + timedelta(seconds=seconds), seconds, "fixed"

    raise NoTTLConfiguredError()


def evaluate_ttl(resource: Resource, ttl: TTLSpec, now: datetime) -> TTLResult:
    """Evaluate expiry; a resource is expired at the boundary instant itself."""
    expires_at, seconds, mode = calculate_expiration(resource, ttl)
    return TTLResult(
        expired=now >= expires_at,
        ttl_seconds=seconds,
        expires_at=expires_at,
        mode=mode,
    )


def is_expired(resource: Resource, ttl: TTLSpec, now: datetime) -> tuple[bool, int]:
    """
    Return (expired, effective TTL seconds).

    Raises:
        TTLConfigError: If expiry cannot be computed
    """
    result = evaluate_ttl(resource, ttl, now)
    return result.expired, result.ttl_seconds
