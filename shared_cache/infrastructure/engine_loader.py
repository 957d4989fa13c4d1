from __future__ import annotations

import importlib
import logging
from typing import Optional

from shared_cache.application.ports import CacheEnginePort

from .config import Settings

logger = logging.getLogger(__name__)


def parse_engine_path(path: str) -> tuple[str, str]:
    module_name, sep, attr = path.partition(":")
    if not sep or not module_name or not attr:
        raise ValueError(
            f"SHARED_CACHE_ENGINE must look like 'package.module:factory', got {path!r}"
        )
    return module_name, attr


def load_engine(settings: Settings) -> Optional[CacheEnginePort]:
    """Import the configured engine factory and build the engine.

    Returns ``None`` when the engine module or factory cannot be found, which
    the cache module reports as "engine not loaded".
    """
    module_name, attr = parse_engine_path(settings.engine)
    try:
        module = importlib.import_module(module_name)
        factory = getattr(module, attr)
    except (ImportError, AttributeError) as exc:
        logger.debug("Shared cache engine %r is unavailable: %s", settings.engine, exc)
        return None

    engine = factory(settings)
    logger.debug("Loaded shared cache engine %s", type(engine).__name__)
    return engine
