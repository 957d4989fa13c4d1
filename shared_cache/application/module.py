"""Test module for the process-wide shared cache.

Lets a test suite put values into the shared cache, read them back and
assert on them. The whole cache is cleared after every test, whether it
passed, failed or errored.

Example::

    def test_counter(shared_cache):
        shared_cache.have_in_cache("users_count", 200)
        shared_cache.see_in_cache("users_count", 200)
        shared_cache.dont_see_in_cache("admins_count")

Do not point the module at a cache that production code relies on: the
cleanup is a full clear, not limited to the keys a test wrote.
"""
from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any, Iterator, List, Mapping, Optional

from shared_cache.domain.errors import ModuleError

from .current_test import current_test_var
from .ports import CacheEnginePort

if TYPE_CHECKING:
    from shared_cache.infrastructure.config import Settings

logger = logging.getLogger(__name__)


class _NotSet:
    def __repr__(self) -> str:
        return "NOT_SET"


NOT_SET: Any = _NotSet()


def _test_id(test: Any) -> str:
    return getattr(test, "nodeid", None) or repr(test)


class CacheModule:
    name = "SharedCache"

    def __init__(self, engine: Optional[CacheEnginePort], settings: "Settings") -> None:
        self.engine = engine
        self.settings = settings

    def _before(self, test: Any) -> None:
        """Check the engine is loaded and enabled before a test runs.

        Raises:
            ModuleError: the engine is missing or disabled for this process.
        """
        if self.engine is None:
            raise ModuleError(self.name, "The shared cache engine is not loaded.")

        if not self.settings.enabled:
            raise ModuleError(
                self.name, 'The "SHARED_CACHE_ENABLED" setting must be set to "on".'
            )

        if self.settings.cli_mode and not self.settings.enable_cli:
            raise ModuleError(
                self.name, 'The "SHARED_CACHE_ENABLE_CLI" setting must be set to "on".'
            )

        logger.debug("Shared cache ready for %s", _test_id(test))

    def _after(self, test: Any) -> None:
        self._clear()
        logger.debug("Shared cache cleared after %s", _test_id(test))

    @contextmanager
    def around(self, test: Any) -> Iterator["CacheModule"]:
        """Run ``test`` with the module; the cache is cleared however it ends."""
        token = current_test_var.set(_test_id(test))
        try:
            self._before(test)
            try:
                yield self
            finally:
                self._after(test)
        finally:
            current_test_var.reset(token)

    def grab_value_from_cache(self, key: str) -> Any:
        """Return the value stored under ``key``, or ``None`` if there is none.

        Example::

            users_count = shared_cache.grab_value_from_cache("users_count")
        """
        value = self._fetch(key)
        logger.debug("Value: %r", value)
        return value

    def see_in_cache(self, key: str, value: Any = NOT_SET) -> None:
        """Assert ``key`` exists and, when ``value`` is given, equals it.

        Example::

            # only checks the key exists
            shared_cache.see_in_cache("users_count")

            # checks 'users_count' exists and has the value 200
            shared_cache.see_in_cache("users_count", 200)
        """
        if value is NOT_SET:
            _assert_true(
                self._exists(key), f"Cannot find key '{key}' in the shared cache."
            )
            return

        actual = self.grab_value_from_cache(key)
        _assert_equals(
            value,
            actual,
            f"Cannot find key '{key}' in the shared cache with the provided value.",
        )

    def dont_see_in_cache(self, key: str, value: Any = NOT_SET) -> None:
        """Assert ``key`` is missing or, when ``value`` is given, holds ``False``.

        With ``value`` the stored value itself must be ``False`` or missing (a
        missing key reads as ``None``); ``value`` is not compared against it.

        Example::

            # only checks the key does not exist
            shared_cache.dont_see_in_cache("users_count")

            shared_cache.dont_see_in_cache("users_count", 200)
        """
        if value is NOT_SET:
            _assert_false(
                self._exists(key), f"The key '{key}' exists in the shared cache."
            )
            return

        actual = self.grab_value_from_cache(key)
        _assert_false(
            actual,
            f"The key '{key}' exists in the shared cache with the provided value.",
        )

    def have_in_cache(self, key: str, value: Any, expiration: int = 0) -> str:
        """Store ``value`` under ``key`` for ``expiration`` seconds (0 keeps it).

        Example::

            shared_cache.have_in_cache("users", {"name": "miles", "email": "miles@davis.com"})
            shared_cache.have_in_cache("user", UserRepository.find_first())
        """
        self._store(key, value, expiration)
        return key

    def have_many_in_cache(
        self, entries: Mapping[str, Any], expiration: int = 0
    ) -> List[str]:
        """Store every ``key: value`` pair of ``entries`` with the same expiration.

        Example::

            shared_cache.have_many_in_cache(
                {"key1": "value1", "key3": ["value3a", "value3b"], "key4": 4}
            )
        """
        return [self.have_in_cache(key, value, expiration) for key, value in entries.items()]

    def flush_cache(self) -> None:
        self._clear()

    def _clear(self) -> bool:
        return self.engine.clear()

    def _exists(self, key: str) -> bool:
        return self.engine.exists(key)

    def _fetch(self, key: str) -> Any:
        value, success = self.engine.fetch(key)
        logger.debug("Fetching a stored variable: %s", "OK" if success else "FAILED")
        return value if success else None

    def _store(self, key: str, value: Any, ttl: int = 0) -> bool:
        return self.engine.store(key, value, ttl)


def _assert_true(condition: Any, message: str) -> None:
    if condition is not True:
        raise AssertionError(f"{message}\nFailed asserting that {condition!r} is true.")


def _assert_false(condition: Any, message: str) -> None:
    # a missing key reads as None
    if condition is not False and condition is not None:
        raise AssertionError(f"{message}\nFailed asserting that {condition!r} is false.")


def _equals(expected: Any, actual: Any) -> bool:
    """Compare values, falling back to attribute-by-attribute for objects.

    Stored objects come back as copies, so identity-based ``__eq__`` alone
    would never match them.
    """
    if expected == actual:
        return True
    if type(expected) is not type(actual):
        return False
    if isinstance(expected, (list, tuple)):
        return len(expected) == len(actual) and all(
            _equals(e, a) for e, a in zip(expected, actual)
        )
    if isinstance(expected, dict):
        return expected.keys() == actual.keys() and all(
            _equals(value, actual[key]) for key, value in expected.items()
        )
    if type(expected).__eq__ is object.__eq__ and hasattr(expected, "__dict__"):
        return _equals(vars(expected), vars(actual))
    return False


def _assert_equals(expected: Any, actual: Any, message: str) -> None:
    if not _equals(expected, actual):
        raise AssertionError(
            f"{message}\nExpected: {expected!r}\nActual:   {actual!r}"
        )
