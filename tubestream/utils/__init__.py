from .filename import sanitize_filename
from .hash import cache_key, hash_stable

__all__ = ["cache_key", "hash_stable", "sanitize_filename"]
