"""
Shared test fixtures.
"""

from datetime import timedelta

import pytest

from reaper.config import ControllerConfig
from reaper.deletion.backoff import BackoffConfig
from reaper.deletion.rate_limit import RateLimiterRegistry
from reaper.discovery.gvr import GVRResolver
from reaper.discovery.listers import ListerRegistry
from reaper.policy.evaluator import PolicyEvaluator
from reaper.utils.testing import (
    FrozenClock,
    InMemoryResourceLister,
    InMemoryStatusUpdater,
    RecordingDeleter,
    RecordingEventRecorder,
)

# Fast enough for tests, still exercises every retry
FAST_BACKOFF = BackoffConfig(steps=3, initial=0.001, factor=2.0, jitter=0.0, cap=0.01)

# High enough that the token bucket never sleeps in tests
FAST_RATE = 100_000


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def lister():
    return InMemoryResourceLister()


@pytest.fixture
def deleter(lister):
    return RecordingDeleter(lister=lister)


@pytest.fixture
def status_updater():
    return InMemoryStatusUpdater()


@pytest.fixture
def recorder():
    return RecordingEventRecorder()


@pytest.fixture
def config():
    return ControllerConfig(
        max_deletions_per_second=FAST_RATE,
        tick_interval=timedelta(milliseconds=10),
    )


@pytest.fixture
def evaluator(lister, deleter, status_updater, recorder, config, clock):
    return PolicyEvaluator(
        resolver=GVRResolver(),
        listers=ListerRegistry(lister),
        deleter=deleter,
        rate_limiters=RateLimiterRegistry(default_rate=FAST_RATE),
        status_updater=status_updater,
        event_recorder=recorder,
        config=config,
        clock=clock,
        backoff=FAST_BACKOFF,
    )
