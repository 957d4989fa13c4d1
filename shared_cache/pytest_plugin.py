"""
pytest plugin for the shared cache module.

Registered through the ``pytest11`` entry point, so installing the package is
enough. Tests get:

- ``shared_cache``: a :class:`~shared_cache.application.module.CacheModule`;
  the engine is checked before the test and the whole cache is cleared after
  it, whatever the outcome.
- ``shared_cache_settings``: settings read from ``SHARED_CACHE_*`` variables.
- ``shared_cache_engine``: the engine the module talks to. Override it in a
  ``conftest.py`` to point the module at another store.

Pass ``--shared-cache-debug`` to print the module's fetch and value traces.
"""

import logging
from typing import Any, Iterator, Optional

import pytest

from shared_cache.application.module import CacheModule
from shared_cache.application.ports import CacheEnginePort
from shared_cache.infrastructure.config import Settings, load_settings
from shared_cache.infrastructure.engine_loader import load_engine
from shared_cache.infrastructure.logging import PACKAGE_LOGGER, configure_logging

_DEBUG_HANDLER_KEY = pytest.StashKey[Any]()


def pytest_addoption(parser: Any) -> None:
    """Register pytest command-line options."""
    group = parser.getgroup("shared-cache")
    group.addoption(
        "--shared-cache-debug",
        action="store_true",
        default=False,
        help="print shared cache module debug traces to stderr",
    )


def pytest_configure(config: Any) -> None:
    config.addinivalue_line(
        "markers",
        "shared_cache: test reads or writes the process-wide shared cache",
    )

    if config.getoption("shared_cache_debug"):
        settings = load_settings()
        config.stash[_DEBUG_HANDLER_KEY] = configure_logging(
            settings.log_level, settings.log_format
        )


def pytest_unconfigure(config: Any) -> None:
    handler = config.stash.get(_DEBUG_HANDLER_KEY, None)
    if handler is not None:
        logger = logging.getLogger(PACKAGE_LOGGER)
        logger.removeHandler(handler)
        logger.setLevel(logging.NOTSET)


@pytest.fixture
def shared_cache_settings() -> Settings:
    return load_settings()


@pytest.fixture
def shared_cache_engine(shared_cache_settings: Settings) -> Optional[CacheEnginePort]:
    return load_engine(shared_cache_settings)


@pytest.fixture
def shared_cache(
    request: Any,
    shared_cache_engine: Optional[CacheEnginePort],
    shared_cache_settings: Settings,
) -> Iterator[CacheModule]:
    """
    Provide the shared cache module for one test.

    Setup fails with ``ModuleError`` when the engine is missing or disabled;
    pytest reports that as an error, not a failure.
    """
    module = CacheModule(shared_cache_engine, shared_cache_settings)
    with module.around(request.node):
        yield module
