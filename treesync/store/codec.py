"""Codec strategies that convert between decoded payloads and domain values."""

import copy
from dataclasses import dataclass
from typing import Any, Callable, Generic, TypeVar

T = TypeVar("T")

FromPayload = Callable[[Any], T]
ToPayload = Callable[[T], Any]
ApplyPatch = Callable[[T, dict[str, Any]], T]


@dataclass(frozen=True)
class StoreCodec(Generic[T]):
    """The three pure functions a store needs to handle its value type.

    Attributes:
        from_payload: Builds a value from a decoded JSON payload (may be None).
        to_payload: Converts a value back into a JSON-serializable payload.
        apply_patch: Folds a flat field map into an existing value.
    """

    from_payload: FromPayload
    to_payload: ToPayload
    apply_patch: ApplyPatch


def patch_json(data: Any, fields: dict[str, Any]) -> dict[str, Any]:
    """Apply a field map to a JSON object the way the server does.

    Field names may be slash-delimited paths into nested objects. A None
    value removes the field.
    """
    result = copy.deepcopy(data) if isinstance(data, dict) else {}

    for field_path, value in fields.items():
        segments = [s for s in field_path.split("/") if s]
        if not segments:
            continue

        node = result
        for segment in segments[:-1]:
            child = node.get(segment)
            if not isinstance(child, dict):
                child = {}
                node[segment] = child
            node = child

        if value is None:
            node.pop(segments[-1], None)
        else:
            node[segments[-1]] = copy.deepcopy(value)

    return result


def json_codec() -> StoreCodec[Any]:
    """Codec that keeps raw JSON values as they are."""
    return StoreCodec(
        from_payload=lambda payload: payload,
        to_payload=lambda value: value,
        apply_patch=patch_json,
    )
