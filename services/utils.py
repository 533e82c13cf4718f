from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any

def deep_serialize(obj: Any) -> Any:
    """
    Recursively convert objects to JSON-safe primitives.
    Money stays a decimal string; models dump with their camelCase aliases.
    """
    if obj is None:
        return None
    if isinstance(obj, Decimal):
        return format(obj, "f")
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, datetime):
        return obj.isoformat()
    if hasattr(obj, "model_dump"):
        return deep_serialize(obj.model_dump(by_alias=True, mode="json"))
    if isinstance(obj, dict):
        return {k: deep_serialize(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple, set, frozenset)):
        return [deep_serialize(v) for v in obj]
    if isinstance(obj, (str, int, float, bool)):
        return obj
    return str(obj)
