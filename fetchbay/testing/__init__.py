"""Testing module for test mode support."""

from fetchbay.testing.fake_swarm import FakeSwarmClient, FakeSwarmHandle, FakeTorrent

__all__ = ["FakeSwarmClient", "FakeSwarmHandle", "FakeTorrent"]
