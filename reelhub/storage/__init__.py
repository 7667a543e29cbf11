"""Progress storage: key scheme, store contract and backends."""

from reelhub.storage.base import ProgressStore, now_ms
from reelhub.storage.factory import create_store
from reelhub.storage.keys import make_audiobook_key, make_key, make_video_key, parse_key
from reelhub.storage.memory import MemoryStore

__all__ = [
    "ProgressStore",
    "MemoryStore",
    "create_store",
    "now_ms",
    "make_key",
    "make_video_key",
    "make_audiobook_key",
    "parse_key",
]
