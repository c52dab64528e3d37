"""
Tests for leadership sources.
"""

import threading

from reaper.scheduler import ManualLeadership, StaticLeadership


class TestStaticLeadership:
    def test_default_is_leader(self):
        assert StaticLeadership().is_leader()

    def test_follower(self):
        assert not StaticLeadership(False).is_leader()


class TestManualLeadership:
    def test_starts_as_follower(self):
        assert not ManualLeadership().is_leader()

    def test_acquire_and_release(self):
        leadership = ManualLeadership()
        leadership.acquire()
        assert leadership.is_leader()
        leadership.acquire()
        assert leadership.is_leader()
        leadership.release()
        assert not leadership.is_leader()

    def test_flipped_from_other_threads(self):
        leadership = ManualLeadership()
        thread = threading.Thread(target=leadership.acquire)
        thread.start()
        thread.join()
        assert leadership.is_leader()
