"""
Compact JSON for values kept in the counter store.

Retry jobs carry arbitrary message payloads, so enums, datetimes and
ids are flattened to their wire form on the way in.
"""

from __future__ import annotations

import json
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Union
from uuid import UUID


class StoreJSONEncoder(json.JSONEncoder):
    def default(self, o: Any):
        if isinstance(o, Enum):
            return o.value
        if isinstance(o, (datetime, date)):
            return o.isoformat()
        if isinstance(o, UUID):
            return str(o)
        if isinstance(o, Decimal):
            return str(o)
        if isinstance(o, (set, frozenset)):
            return sorted(o)
        return super().default(o)


def dumps(data: Any) -> str:
    return json.dumps(data, separators=(",", ":"), sort_keys=True, cls=StoreJSONEncoder)


def loads(raw: Union[str, bytes]) -> Any:
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8")
    return json.loads(raw)
