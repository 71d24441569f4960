"""Query filters for bulk reads and streams."""

import json
from dataclasses import dataclass, replace
from typing import Any


@dataclass(frozen=True)
class Filter:
    """An ordered, optionally limited and ranged query over a subtree.

    Build one with an ``order_by_*`` constructor and chain limits and ranges:

        Filter.order_by_child("age").start_at(18).limit_to_first(10)

    Each chained call returns a new Filter.
    """

    order_by: str
    limit_first: int | None = None
    limit_last: int | None = None
    start: Any = None
    end: Any = None
    equal: Any = None

    @classmethod
    def order_by_key(cls) -> "Filter":
        return cls(order_by="$key")

    @classmethod
    def order_by_value(cls) -> "Filter":
        return cls(order_by="$value")

    @classmethod
    def order_by_priority(cls) -> "Filter":
        return cls(order_by="$priority")

    @classmethod
    def order_by_child(cls, child: str) -> "Filter":
        if not child:
            raise ValueError("Child path must not be empty")
        return cls(order_by=child)

    def limit_to_first(self, count: int) -> "Filter":
        if count <= 0:
            raise ValueError(f"Limit must be positive, got {count}")
        return replace(self, limit_first=count)

    def limit_to_last(self, count: int) -> "Filter":
        if count <= 0:
            raise ValueError(f"Limit must be positive, got {count}")
        return replace(self, limit_last=count)

    def start_at(self, value: Any) -> "Filter":
        return replace(self, start=value)

    def end_at(self, value: Any) -> "Filter":
        return replace(self, end=value)

    def equal_to(self, value: Any) -> "Filter":
        return replace(self, equal=value)

    def to_params(self) -> dict[str, str]:
        """Render as query parameters. All values are JSON encoded."""
        params = {"orderBy": json.dumps(self.order_by)}
        if self.limit_first is not None:
            params["limitToFirst"] = json.dumps(self.limit_first)
        if self.limit_last is not None:
            params["limitToLast"] = json.dumps(self.limit_last)
        if self.start is not None:
            params["startAt"] = json.dumps(self.start)
        if self.end is not None:
            params["endAt"] = json.dumps(self.end)
        if self.equal is not None:
            params["equalTo"] = json.dumps(self.equal)
        return params
