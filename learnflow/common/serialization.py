"""
Serialization Utilities

Helpers for turning the analytics objects (dataclasses, enums, datetimes,
pydantic models) into plain JSON-compatible structures for API responses
and exports.
"""

import json
import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
from dataclasses import is_dataclass, fields

from pydantic import BaseModel


def serialize(obj: Any, exclude_none: bool = False, exclude_fields: Optional[List[str]] = None) -> Any:
    """
    Serialize an object into JSON-compatible primitives.

    Args:
        obj: The object to serialize
        exclude_none: Whether to drop None values from mappings
        exclude_fields: Field names to drop from mappings at every level

    Returns:
        Plain dicts, lists and scalars
    """
    exclude_fields = exclude_fields or []

    if obj is None or isinstance(obj, (str, int, float, bool)):
        return obj

    if isinstance(obj, Enum):
        return obj.value

    if isinstance(obj, (datetime.datetime, datetime.date)):
        return obj.isoformat()

    if isinstance(obj, BaseModel):
        return serialize(obj.model_dump(mode="json"), exclude_none, exclude_fields)

    if isinstance(obj, (list, tuple, set, frozenset)):
        return [serialize(item, exclude_none, exclude_fields) for item in obj]

    if isinstance(obj, dict):
        result = {}
        for key, value in obj.items():
            key = serialize(key) if isinstance(key, Enum) else key
            if key in exclude_fields:
                continue
            if exclude_none and value is None:
                continue
            result[key] = serialize(value, exclude_none, exclude_fields)
        return result

    if hasattr(obj, 'to_dict') and callable(getattr(obj, 'to_dict')):
        return serialize(obj.to_dict(), exclude_none, exclude_fields)

    if is_dataclass(obj) and not isinstance(obj, type):
        return serialize(
            {f.name: getattr(obj, f.name) for f in fields(obj)},
            exclude_none,
            exclude_fields
        )

    return str(obj)


def to_json(obj: Any, **kwargs: Any) -> str:
    """Serialize an object straight to a JSON string."""
    return json.dumps(serialize(obj), **kwargs)


class SerializableMixin:
    """Mixin for dataclasses that need a ``to_dict`` / ``to_json`` pair."""

    def to_dict(self) -> Dict[str, Any]:
        return serialize({f.name: getattr(self, f.name) for f in fields(self)})

    def to_json(self) -> str:
        return json.dumps(self.to_dict())
