"""Deterministic cluster identifiers."""

from __future__ import annotations

import hashlib
from collections.abc import Iterable

from .pair_index import PAIR_KEY_SEPARATOR

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits: list[str] = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def generate_cluster_id(member_ids: Iterable[str]) -> str:
    """Derive a stable cluster ID from a member set.

    The members are deduplicated and sorted before hashing, so any
    permutation (or repetition) of the same IDs yields the same result.
    Uses the first 8 bytes of a SHA-256 digest, rendered in base 36.
    """
    canonical = PAIR_KEY_SEPARATOR.join(sorted(set(member_ids)))
    digest = hashlib.sha256(canonical.encode("utf-8")).digest()
    return f"cluster_{_to_base36(int.from_bytes(digest[:8], 'big'))}"
