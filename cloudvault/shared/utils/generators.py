"""ID and value generators (CUID for row ids, short hex for object keys, signing keys)."""

import secrets

from cuid2 import cuid_wrapper

cuid_generator = cuid_wrapper()


def generate_cuid() -> str:
    """Generate a collision-resistant unique identifier (CUID2).

    Returns:
        A new CUID string.
    """
    result = cuid_generator()
    if not isinstance(result, str):
        raise TypeError(
            f"Expected str from cuid_generator, got {type(result).__name__}"
        )
    return result


def generate_short_hex(num_bytes: int = 4) -> str:
    """Return a random lowercase hex string of 2 * num_bytes characters."""
    return secrets.token_hex(num_bytes)


def generate_signing_secret() -> bytes:
    """Return 32 random bytes for use as an HMAC key."""
    return secrets.token_bytes(32)
