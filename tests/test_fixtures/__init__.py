"""
Test Fixtures Package

In-memory Redis stand-in and a controllable clock.
"""

from .fake_redis import FakeClock, FakePipeline, FakeRedis, glob_to_regex

__all__ = ["FakeClock", "FakePipeline", "FakeRedis", "glob_to_regex"]
