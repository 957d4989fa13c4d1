"""Values accepted by the shared store.

Plain data (``None``, booleans, numbers, strings, bytes and lists, tuples or
string-keyed dicts of those) covers almost every test fixture. Anything else
is accepted only if ``pickle`` can serialize it explicitly; closures, locks
and open files are rejected.
"""
from __future__ import annotations

import pickle
from typing import Any, Dict, List, Tuple, Union

Scalar = Union[None, bool, int, float, str, bytes]
CacheValue = Union[Scalar, List[Any], Tuple[Any, ...], Dict[str, Any], Any]

PLAIN_TYPES = (type(None), bool, int, float, str, bytes, list, tuple, dict)


def is_plain_value(value: Any) -> bool:
    if isinstance(value, (list, tuple)):
        return all(is_plain_value(item) for item in value)
    if isinstance(value, dict):
        return all(
            isinstance(k, str) and is_plain_value(v) for k, v in value.items()
        )
    return isinstance(value, PLAIN_TYPES)


def encode_value(value: CacheValue) -> bytes:
    try:
        return pickle.dumps(value, protocol=pickle.HIGHEST_PROTOCOL)
    except (pickle.PicklingError, TypeError, AttributeError) as exc:
        raise TypeError(
            f"Value of type {type(value).__name__} cannot be serialized"
        ) from exc


def decode_value(payload: bytes) -> CacheValue:
    return pickle.loads(payload)
