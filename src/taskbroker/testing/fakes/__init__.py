"""Testing fakes – in-memory broker and clock doubles."""
from taskbroker.kernel.time import FrozenClock
from taskbroker.testing.fakes.broker import InMemoryBroker, StoredMessage, headers_match, topic_matches
from taskbroker.testing.fakes.clock import FAKE_CLOCK_START, FakeClock

__all__ = [
    "FAKE_CLOCK_START",
    "FakeClock",
    "FrozenClock",
    "InMemoryBroker",
    "StoredMessage",
    "headers_match",
    "topic_matches",
]
