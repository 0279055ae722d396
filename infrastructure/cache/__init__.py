"""缓存层对外暴露的接口"""
from .confirmation_cache import (
    InMemoryConfirmationCache,
    RedisConfirmationStore,
    create_confirmation_store,
)

__all__ = [
    "InMemoryConfirmationCache",
    "RedisConfirmationStore",
    "create_confirmation_store",
]
