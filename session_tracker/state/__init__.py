"""State management module."""
from .redis_client import RedisClient, redis_client
from .gateway import PersistenceGateway, gateway
from .live_store import LiveSessionStore, live_store

__all__ = [
    "RedisClient",
    "redis_client",
    "PersistenceGateway",
    "gateway",
    "LiveSessionStore",
    "live_store",
]
