"""
Document identifiers.

Ids are 24 lowercase hex chars: a 4-byte big-endian creation timestamp
(seconds) followed by 8 random bytes, the same layout as a store-native
object id. Lexicographic order therefore follows creation order to the
second, which is what `id < cursor` pagination relies on.
"""
import re
import secrets
import time
from typing import Optional

_ID_RE = re.compile(r"^[0-9a-f]{24}$")


def new_id(timestamp: Optional[float] = None) -> str:
    seconds = int(time.time() if timestamp is None else timestamp)
    return f"{seconds:08x}{secrets.token_hex(8)}"


def is_valid_id(value: str) -> bool:
    return bool(_ID_RE.match(value))
