"""Sinks layer - Persistencia y publicación en vivo."""

from .memory import InMemorySink
from .redis_sink import RedisConnection, RedisStreamSink
from .sqlalchemy_sink import SqlAlchemySink, ensure_schema

__all__ = ["InMemorySink", "RedisConnection", "RedisStreamSink", "SqlAlchemySink", "ensure_schema"]
