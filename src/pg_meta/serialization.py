"""JSON-safe conversion of driver values using orjson.

orjson covers datetime, date, time, UUID, and dataclasses natively; the
handler below adds the asyncpg value types it does not know about.
"""

from __future__ import annotations

import base64
import datetime
import decimal
import ipaddress
from typing import Any, Mapping

import orjson


def _default_handler(obj: Any) -> Any:
    # numeric keeps its exact text form
    if isinstance(obj, decimal.Decimal):
        return str(obj)

    if isinstance(obj, datetime.timedelta):
        return obj.total_seconds()

    if isinstance(obj, (bytes, bytearray, memoryview)):
        data = bytes(obj)
        try:
            return data.decode("utf-8")
        except UnicodeDecodeError:
            return base64.b64encode(data).decode("ascii")

    if isinstance(obj, (set, frozenset)):
        return list(obj)

    if isinstance(
        obj,
        (
            ipaddress.IPv4Address,
            ipaddress.IPv6Address,
            ipaddress.IPv4Network,
            ipaddress.IPv6Network,
            ipaddress.IPv4Interface,
            ipaddress.IPv6Interface,
        ),
    ):
        return str(obj)

    # asyncpg Range values
    if hasattr(obj, "lower") and hasattr(obj, "upper") and hasattr(obj, "isempty"):
        return {
            "lower": obj.lower,
            "upper": obj.upper,
            "lower_inc": obj.lower_inc,
            "upper_inc": obj.upper_inc,
            "empty": obj.isempty,
        }

    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def convert_value_to_json_safe(value: Any) -> Any:
    try:
        return orjson.loads(orjson.dumps(value, default=_default_handler))
    except TypeError:
        return str(value)


def convert_row_to_json_safe(row: Mapping[str, Any]) -> dict[str, Any]:
    return {key: convert_value_to_json_safe(value) for key, value in row.items()}


def convert_rows_to_json_safe(rows: list[Mapping[str, Any]]) -> list[dict[str, Any]]:
    return [convert_row_to_json_safe(row) for row in rows]
