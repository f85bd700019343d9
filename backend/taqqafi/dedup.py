import hashlib
from typing import AbstractSet, FrozenSet


def normalize_for_hash(raw_text: str) -> str:
    return (raw_text or "").strip().lower()


def compute_hash(raw_text: str) -> str:
    """
    SHA-256 of the trimmed, lowercased body. The sender is deliberately left
    out so the same SMS relayed twice by the provider collapses to one key.
    """
    return hashlib.sha256(normalize_for_hash(raw_text).encode("utf-8")).hexdigest()


def is_processed(digest: str, seen: AbstractSet[str]) -> bool:
    return digest in seen


def mark_processed(digest: str, seen: AbstractSet[str]) -> FrozenSet[str]:
    return frozenset(seen) | {digest}
