"""
Identifier helpers shared by the storage backends.
"""
import uuid
from typing import Optional


def id_or_new(value: Optional[uuid.UUID]) -> uuid.UUID:
    """Keep a caller-supplied id; None and the nil UUID both mean "generate one"."""
    if value is None or value.int == 0:
        return uuid.uuid4()
    return value
