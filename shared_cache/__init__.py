"""Test module for asserting on and seeding a process-wide shared cache."""

from shared_cache.application.module import NOT_SET, CacheModule
from shared_cache.domain.errors import ModuleError

__all__ = ["NOT_SET", "CacheModule", "ModuleError"]
