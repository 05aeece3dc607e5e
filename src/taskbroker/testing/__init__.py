"""Testing support – in-memory doubles for unit and end-to-end tests.

    from taskbroker.testing import InMemoryBroker

    broker = InMemoryBroker()
    manager = ConnectionManager(config, connector=broker.connect)
"""

from taskbroker.testing.fakes import FakeClock, FrozenClock, InMemoryBroker, StoredMessage

__all__ = ["FakeClock", "FrozenClock", "InMemoryBroker", "StoredMessage"]
