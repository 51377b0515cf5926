import json
from typing import Dict, Optional, Tuple, TypeVar

from fincore.schema import ENTITY_TYPES, from_records

T = TypeVar("T")


def load_seed(path: str) -> Dict[str, tuple]:
    """Read demo records, one list per entity type; absent lists load as empty."""
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)

    seed = {}
    for name, et in ENTITY_TYPES.items():
        result = from_records(et.cls, data.get(name, []))
        if result.is_left():
            raise ValueError(f"bad seed data for {name}: {result.get_error()['message']}")
        seed[name] = result.get_or_else(())
    return seed


def append(items: Tuple[T, ...], item: T) -> Tuple[T, ...]:
    return items + (item,)


def find_by_id(items: Tuple[T, ...], item_id: str) -> Optional[T]:
    return next((i for i in items if i.id == item_id), None)


def replace_by_id(items: Tuple[T, ...], item: T) -> Tuple[T, ...]:
    return tuple(item if i.id == item.id else i for i in items)


def rekey(items: Tuple[T, ...], old_id: str, new_item: T) -> Tuple[T, ...]:
    return tuple(new_item if i.id == old_id else i for i in items)


def remove_by_id(items: Tuple[T, ...], item_id: str) -> Tuple[T, ...]:
    return tuple(filter(lambda i: i.id != item_id, items))
