from __future__ import annotations

import dataclasses
from collections.abc import Iterable, Mapping
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel

_SCALARS = (str, bytes, int, float, bool, Decimal, date, datetime, type(None))


def filter_fields(data: Any, allowed_fields: Iterable[str] | None) -> Any:
    """
    Redact a record, or a list of records, to ``allowed_fields``.

    - Empty/None allow-list: input returned unchanged (no restriction).
    - Mapping: shallow copy keeping only allowed keys; missing keys are skipped.
    - Dataclass or pydantic model instance: projected to a dict of its allowed
      fields (values are taken as is, not dumped recursively).
    - List/tuple: filtered element-wise, same container type.
    - Scalars are returned as is. Nested mappings are not traversed.
    - Any other object raises ``TypeError``; it is never passed through whole.
    """

    if not allowed_fields:
        return data
    allowed = frozenset(allowed_fields)
    if not allowed:
        return data
    return _filter(data, allowed)


def _filter(data: Any, allowed: frozenset[str]) -> Any:
    if isinstance(data, Mapping):
        return {key: value for key, value in data.items() if key in allowed}
    if isinstance(data, (list, tuple)):
        return type(data)(_filter(item, allowed) for item in data)
    if isinstance(data, BaseModel):
        return {name: getattr(data, name) for name in type(data).model_fields if name in allowed}
    if dataclasses.is_dataclass(data) and not isinstance(data, type):
        return {f.name: getattr(data, f.name) for f in dataclasses.fields(data) if f.name in allowed}
    if isinstance(data, _SCALARS):
        return data
    raise TypeError(f"cannot redact fields of {type(data).__name__}; convert it to a mapping first")
