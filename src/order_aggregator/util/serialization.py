from __future__ import annotations

import json
from typing import Any, Iterable, Iterator

from ..models import EnrichedOrder


def stable_json_dumps(obj: Any) -> str:
    """
    Dump JSON with sort_keys=True and separators to ensure stable output.
    """
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def iter_jsonl(orders: Iterable[EnrichedOrder]) -> Iterator[str]:
    for order in orders:
        yield stable_json_dumps(order.to_dict())


def dumps_json_array(orders: Iterable[EnrichedOrder]) -> str:
    return json.dumps([o.to_dict() for o in orders], sort_keys=True, indent=2, ensure_ascii=False)
