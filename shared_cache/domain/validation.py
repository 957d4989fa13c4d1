from __future__ import annotations

from .constraints import MAX_KEY_LENGTH


def validate_key(key: str) -> None:
    if not isinstance(key, str):
        raise TypeError("Key must be a string")
    if not key:
        raise ValueError("Key cannot be empty")
    if len(key) > MAX_KEY_LENGTH:
        raise ValueError(f"Key is too long (max {MAX_KEY_LENGTH})")


def validate_ttl(ttl: int) -> None:
    if isinstance(ttl, bool) or not isinstance(ttl, int):
        raise TypeError("TTL must be an integer number of seconds")
    if ttl < 0:
        raise ValueError(f"TTL must be >= 0, got {ttl}")


def is_valid_key(key: str) -> bool:
    """Like ``validate_key`` but reports empty or overlong keys instead of raising."""
    if not isinstance(key, str):
        raise TypeError("Key must be a string")
    return 0 < len(key) <= MAX_KEY_LENGTH
