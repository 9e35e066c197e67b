"""Abstract interfaces for derived reading sinks.

This decouples the coordinator from storage and fan-out details.
Any implementation (SQLAlchemy, Redis Streams, in-memory) can be plugged in.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from .reading import DerivedReading


class PersistenceSink(ABC):
    """Durable storage for derived readings.

    Implementations:
    - SqlAlchemySink: time-series table via SQLAlchemy
    - InMemorySink: bounded in-process buffer
    """

    name: str = "persistence"

    @abstractmethod
    def store(self, reading: DerivedReading) -> None:
        """Persist a derived reading.

        Raises:
            SinkDeliveryError: if the backend rejects the write
        """

    def is_connected(self) -> bool:
        return True


class LiveUpdateSink(ABC):
    """Best-effort real-time fan-out of derived readings.

    Implementations:
    - RedisStreamSink: XADD to a Redis Stream
    - InMemorySink: bounded in-process buffer
    """

    name: str = "live"

    @abstractmethod
    def publish(self, reading: DerivedReading) -> None:
        """Publish a derived reading to subscribers.

        Raises:
            SinkDeliveryError: if the backend rejects the message
        """

    def is_connected(self) -> bool:
        return True
