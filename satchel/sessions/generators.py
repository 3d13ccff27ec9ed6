"""
Satchel sessions - Session identifier generators.

Both generators produce 40 lowercase hex characters, matching the default
validator pattern.
"""

import hashlib
import os
import secrets
import time


def default_sid_generator() -> str:
    """
    SHA-1 hex digest over random bytes, the process id, a fresh object
    identity and the current time.

    The random part comes from ``secrets``, so the id is unguessable as
    long as the OS random source is; the other inputs only add uniqueness.
    """
    seed = b"".join((
        secrets.token_bytes(32),
        str(os.getpid()).encode(),
        str(id(object())).encode(),
        repr(time.time()).encode(),
    ))
    return hashlib.sha1(seed).hexdigest()


def secure_sid_generator() -> str:
    """160 bits straight from the OS random source, hex encoded."""
    return secrets.token_hex(20)


GENERATORS = {
    "default": default_sid_generator,
    "secure": secure_sid_generator,
}
