HASH_PREFIX = "blake3:"

_blake3 = None


def _get_blake3():
    global _blake3
    if _blake3 is None:
        try:
            from blake3 import blake3 as _b3
            _blake3 = _b3
        except ImportError:
            raise ImportError(
                "blake3 is required for image checksums. Install with: pip install blake3"
            )
    return _blake3


def compute_checksum(data: bytes) -> str:
    """Content checksum of raw bytes, e.g. 'blake3:<hex>'."""
    return HASH_PREFIX + _get_blake3()(data).hexdigest()
