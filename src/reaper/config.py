"""
Controller configuration for Reaper.

Defaults apply process-wide; individual policies may override the deletion
rate, batch size and evaluation interval.
"""

from __future__ import annotations

import os
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum
from typing import Any

from reaper.core.errors import ConfigError

DEFAULT_GC_INTERVAL = timedelta(minutes=1)
DEFAULT_MAX_DELETIONS_PER_SECOND = 10
DEFAULT_BATCH_SIZE = 50
DEFAULT_MAX_CONCURRENT_EVALUATIONS = 5

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|s|m|h)")
_UNIT_SECONDS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0}


def parse_duration(value: Any) -> timedelta:
    """
    Parse a duration given as seconds or a Go-style string.

    Accepts integers/floats (seconds), numeric strings ("90"), and unit
    strings such as "30s", "5m", "2h" or "1h30m".

    Raises:
        ValueError: If the value is not a valid non-negative duration
    """
    if isinstance(value, timedelta):
        return value
    if isinstance(value, bool):
        raise ValueError(f"invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        if value < 0:
            raise ValueError(f"duration must not be negative: {value!r}")
        return timedelta(seconds=value)
    if not isinstance(value, str):
        raise ValueError(f"invalid duration: {value!r}")

    text = value.strip()
    if not text:
        raise ValueError("duration must not be empty")
    if re.fullmatch(r"\d+(?:\.\d+)?", text):
        return timedelta(seconds=float(text))

    position = 0
    total = 0.0
    for match in _DURATION_PART.finditer(text):
        if match.start() != position:
            raise ValueError(f"invalid duration: {value!r}")
        total += float(match.group(1)) * _UNIT_SECONDS[match.group(2)]
        position = match.end()
    if position != len(text):
        raise ValueError(f"invalid duration: {value!r}")
    return timedelta(seconds=total)


class SchedulingStrategy(str, Enum):
    """How the scheduler runs due policies."""

    AUTO = "auto"
    SEQUENTIAL = "sequential"
    CONCURRENT = "concurrent"


@dataclass
class ControllerConfig:
    """
    Configuration for the evaluation engine.

    Attributes:
        gc_interval: Default interval between a policy's cycles
        max_deletions_per_second: Default per-policy deletion rate
        batch_size: Default deletion chunk size
        max_concurrent_evaluations: Worker pool size for concurrent scheduling
        scheduling_strategy: Sequential, concurrent, or auto (sequential when
            the due set fits in one round of workers)
        tick_interval: How often the scheduler loop checks for due policies
        status_update_timeout: Upper bound for one status write
        cancellation_check_interval: Items processed between stop checks
    """

    gc_interval: timedelta = field(default_factory=lambda: DEFAULT_GC_INTERVAL)
    max_deletions_per_second: int = DEFAULT_MAX_DELETIONS_PER_SECOND
    batch_size: int = DEFAULT_BATCH_SIZE
    max_concurrent_evaluations: int = DEFAULT_MAX_CONCURRENT_EVALUATIONS
    scheduling_strategy: SchedulingStrategy = SchedulingStrategy.AUTO
    tick_interval: timedelta = field(default_factory=lambda: timedelta(seconds=1))
    status_update_timeout: timedelta = field(default_factory=lambda: timedelta(seconds=10))
    cancellation_check_interval: int = 100

    def __post_init__(self) -> None:
        if isinstance(self.scheduling_strategy, str):
            self.scheduling_strategy = SchedulingStrategy(self.scheduling_strategy)
        problems = self.problems()
        if problems:
            raise ConfigError(problems)

    def problems(self) -> list[str]:
        """Return every validation problem with the current values."""
        problems = []
        if self.gc_interval <= timedelta(0):
            problems.append("gc_interval must be positive")
        if self.max_deletions_per_second < 1:
            problems.append("max_deletions_per_second must be at least 1")
        if self.batch_size < 1:
            problems.append("batch_size must be at least 1")
        if self.max_concurrent_evaluations < 1:
            problems.append("max_concurrent_evaluations must be at least 1")
        if self.tick_interval <= timedelta(0):
            problems.append("tick_interval must be positive")
        if self.cancellation_check_interval < 1:
            problems.append("cancellation_check_interval must be at least 1")
        return problems

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> ControllerConfig:
        """
        Build a config from environment variables, falling back to defaults.

        Recognised variables: GC_INTERVAL, GC_MAX_DELETIONS_PER_SECOND,
        GC_BATCH_SIZE, GC_MAX_CONCURRENT_EVALUATIONS, GC_SCHEDULING_STRATEGY.

        Raises:
            ConfigError: Listing every invalid variable
        """
        env = os.environ if environ is None else environ
        values: dict[str, Any] = {}
        problems: list[str] = []

        raw = env.get("GC_INTERVAL", "").strip()
        if raw:
            try:
                values["gc_interval"] = parse_duration(raw)
            except ValueError as e:
                problems.append(f"GC_INTERVAL: {e}")

        for var, attr in (
            ("GC_MAX_DELETIONS_PER_SECOND", "max_deletions_per_second"),
            ("GC_BATCH_SIZE", "batch_size"),
            ("GC_MAX_CONCURRENT_EVALUATIONS", "max_concurrent_evaluations"),
        ):
            raw = env.get(var, "").strip()
            if not raw:
                continue
            try:
                values[attr] = int(raw)
            except ValueError:
                problems.append(f"{var}: expected an integer, got {raw!r}")

        raw = env.get("GC_SCHEDULING_STRATEGY", "").strip()
        if raw:
            try:
                values["scheduling_strategy"] = SchedulingStrategy(raw.lower())
            except ValueError:
                choices = ", ".join(s.value for s in SchedulingStrategy)
                problems.append(f"GC_SCHEDULING_STRATEGY: expected one of {choices}")

        if problems:
            raise ConfigError(problems)
        return cls(**values)

    def interval_for(self, configured: timedelta | None) -> timedelta:
        """Resolve a policy's evaluation interval against the default."""
        if configured is not None and configured > timedelta(0):
            return configured
        return self.gc_interval
