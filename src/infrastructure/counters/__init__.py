"""
Atomic counter stores backing the rate limiter.

Supports Redis, with an in-memory mock for local development.
"""

from .store import MockCounterStore, RedisConfig, RedisCounterStore, create_counter_store

__all__ = ["MockCounterStore", "RedisConfig", "RedisCounterStore", "create_counter_store"]
