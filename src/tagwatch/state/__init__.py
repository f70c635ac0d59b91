from .json_store import JsonStateStore
from .store import StateStore

__all__ = [
    "JsonStateStore",
    "StateStore",
]
