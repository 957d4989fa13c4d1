from __future__ import annotations

from typing import Any, Protocol, Tuple


class CacheEnginePort(Protocol):
    def clear(self) -> bool: ...

    def exists(self, key: str) -> bool: ...

    def fetch(self, key: str) -> Tuple[Any, bool]: ...

    def store(self, key: str, value: Any, ttl: int = 0) -> bool: ...
