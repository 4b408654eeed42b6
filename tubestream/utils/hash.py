import hashlib

def hash_stable(data: str) -> str:
    """Short SHA256 digest, stable across processes (unlike hash())"""
    return hashlib.sha256(data.encode()).hexdigest()[:16]

def cache_key(namespace: str, value: str) -> str:
    """Redis key for a cached value, e.g. info:<digest of url>"""
    return f"{namespace}:{hash_stable(value)}"
